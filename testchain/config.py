import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from .errors import ConfigValidationError
from .utils import parse_timestamp

POLL_INTERVAL = float(os.getenv("TESTCHAIN_POLL_INTERVAL", "1.0"))
ENGINE_TIMEOUT = float(os.getenv("TESTCHAIN_ENGINE_TIMEOUT", "10"))
IPC_HOST = os.getenv("TESTCHAIN_IPC_HOST", "127.0.0.1")
IPC_PORT = int(os.getenv("TESTCHAIN_IPC_PORT", "9545"))

# Raw option names (config form and wire contract) -> NodeConfig field
_ALIASES = {
    "port": "port",
    "blocktime": "block_time",
    "blockTime": "block_time",
    "blockTimeSeconds": "block_time",
    "gasPrice": "gas_price",
    "gasLimit": "gas_limit",
    "total_accounts": "total_accounts",
    "totalAccounts": "total_accounts",
    "mnemonic": "mnemonic",
    "seed": "seed",
    "time": "time",
    "fork": "fork_url",
    "forkUrl": "fork_url",
    "secure": "accounts_locked",
    "accountsLocked": "accounts_locked",
    "debug": "debug",
    "verbose": "verbose",
}

_INT_FIELDS = ("port", "gas_price", "gas_limit", "total_accounts")
_BOOL_FIELDS = ("accounts_locked", "debug", "verbose")
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass(frozen=True)
class NodeConfig:
    """Sparse node configuration; None means "let the engine decide"."""

    port: Optional[int] = None
    block_time: Optional[float] = None
    gas_price: Optional[int] = None
    gas_limit: Optional[int] = None
    total_accounts: Optional[int] = None
    mnemonic: Optional[str] = None
    seed: Optional[str] = None
    time: Optional[int] = None
    fork_url: Optional[str] = None
    accounts_locked: Optional[bool] = None
    debug: Optional[bool] = None
    verbose: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.mnemonic is not None and self.seed is not None:
            raise ConfigValidationError("mnemonic and seed are mutually exclusive")

    def set_fields(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def to_engine_options(self) -> Dict[str, Any]:
        engine_names = {
            "block_time": "blocktime",
            "fork_url": "fork",
            "accounts_locked": "secure",
        }
        return {engine_names.get(k, k): v for k, v in self.set_fields().items()}


def _parse_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigValidationError(f"{name} must be an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text.lstrip("-").isdigit():
            raise ConfigValidationError(f"{name} must be an integer, got {value!r}")
        value = int(text)
    if not isinstance(value, int):
        raise ConfigValidationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ConfigValidationError(f"{name} must not be negative")
    return value


def _parse_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(f"{name} must be a number, got {value!r}") from exc
    if number < 0:
        raise ConfigValidationError(f"{name} must not be negative")
    return number


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigValidationError(f"{name} must be a boolean, got {value!r}")


def build_node_config(raw: Optional[Dict[str, Any]]) -> NodeConfig:
    """Normalize start options into a NodeConfig.

    Falsy values (None, "", 0, False, empty containers) are dropped before
    parsing so the engine default applies. A deliberate zero therefore
    cannot be expressed.
    """
    if raw is None:
        return NodeConfig()
    if not isinstance(raw, dict):
        raise ConfigValidationError("start options must be an object")

    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if not value:
            continue
        name = _ALIASES.get(key)
        if name is None:
            raise ConfigValidationError(f"unknown option: {key}")
        if name in _INT_FIELDS:
            parsed = _parse_int(key, value)
        elif name == "block_time":
            parsed = _parse_float(key, value)
        elif name in _BOOL_FIELDS:
            parsed = _parse_bool(key, value)
        elif name == "time":
            try:
                parsed = parse_timestamp(value)
            except ValueError as exc:
                raise ConfigValidationError(str(exc)) from exc
        else:
            parsed = str(value).strip()
            if not parsed:
                continue
        if name in values and values[name] != parsed:
            raise ConfigValidationError(f"conflicting values for {name}")
        values[name] = parsed

    port = values.get("port")
    if port is not None and not 0 < port < 65536:
        raise ConfigValidationError(f"port out of range: {port}")
    return NodeConfig(**values)
