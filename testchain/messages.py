from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Type

LOG_LEVELS = ("log", "info", "warning", "error")


# -----------------------------
# Inbound commands
# -----------------------------


@dataclass
class Command:
    TAG: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TAG, "payload": {}}


@dataclass
class StartRpc(Command):
    TAG: ClassVar[str] = "APP/STARTRPC"
    options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TAG, "payload": dict(self.options)}


@dataclass
class GetBlockchainState(Command):
    TAG: ClassVar[str] = "APP/GETBLOCKCHAINSTATE"


@dataclass
class StartMining(Command):
    TAG: ClassVar[str] = "APP/STARTMINING"


@dataclass
class StopMining(Command):
    TAG: ClassVar[str] = "APP/STOPMINING"


@dataclass
class ForceMine(Command):
    TAG: ClassVar[str] = "APP/FORCEMINE"


@dataclass
class MakeSnapshot(Command):
    TAG: ClassVar[str] = "APP/MAKESNAPSHOT"


@dataclass
class RevertSnapshot(Command):
    TAG: ClassVar[str] = "APP/REVERTSNAPSHOT"


@dataclass
class AddAccount(Command):
    TAG: ClassVar[str] = "APP/ADDACCOUNT"
    options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TAG, "payload": dict(self.options)}


COMMANDS: Dict[str, Type[Command]] = {
    cls.TAG: cls
    for cls in (
        StartRpc,
        GetBlockchainState,
        StartMining,
        StopMining,
        ForceMine,
        MakeSnapshot,
        RevertSnapshot,
        AddAccount,
    )
}


def decode_command(data: Dict[str, Any]) -> Command:
    if not isinstance(data, dict):
        raise ValueError("command must be an object")
    tag = data.get("type")
    if not isinstance(tag, str):
        raise ValueError(f"command type must be a string, got {tag!r}")
    cls = COMMANDS.get(tag)
    if cls is None:
        raise ValueError(f"unknown command: {tag!r}")
    payload = data.get("payload") or {}
    if not isinstance(payload, dict):
        raise ValueError("command payload must be an object")
    if cls in (StartRpc, AddAccount):
        return cls(options=payload)
    return cls()


# -----------------------------
# Outbound events
# -----------------------------


@dataclass
class Event:
    TAG: ClassVar[str] = ""

    def payload(self) -> Any:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TAG, "payload": self.payload()}


@dataclass
class Started(Event):
    TAG: ClassVar[str] = "APP/TESTRPCSTARTED"
    snapshot: Dict[str, Any] = field(default_factory=dict)

    def payload(self) -> Any:
        return self.snapshot


@dataclass
class FailedToStart(Event):
    TAG: ClassVar[str] = "APP/FAILEDTOSTART"
    reason: str = ""

    def payload(self) -> Any:
        return {"reason": self.reason}


@dataclass
class BlockchainState(Event):
    TAG: ClassVar[str] = "APP/BLOCKCHAINSTATE"
    snapshot: Dict[str, Any] = field(default_factory=dict)

    def payload(self) -> Any:
        return self.snapshot


@dataclass
class Log(Event):
    TAG: ClassVar[str] = "APP/TESTRPCLOG"
    message: str = ""
    level: str = "log"

    def payload(self) -> Any:
        return {"message": self.message, "level": self.level}


def decode_event(data: Dict[str, Any]) -> Event:
    if not isinstance(data, dict):
        raise ValueError("event must be an object")
    tag = data.get("type")
    payload = data.get("payload") or {}
    if tag == Started.TAG:
        return Started(snapshot=payload)
    if tag == BlockchainState.TAG:
        return BlockchainState(snapshot=payload)
    if tag == FailedToStart.TAG:
        return FailedToStart(reason=str(payload.get("reason", "")))
    if tag == Log.TAG:
        level = payload.get("level", "log")
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level: {level!r}")
        return Log(message=str(payload.get("message", "")), level=level)
    raise ValueError(f"unknown event: {tag!r}")
