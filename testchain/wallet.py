import hashlib
import secrets
from dataclasses import dataclass, field
from typing import List, Optional

from . import crypto
from .utils import bytes_to_int, int_to_bytes

HD_PATH = "m/44'/60'/0'/0/"
MNEMONIC_WORDS = 12

# 64 words -> 6 bits per word, 72 bits of entropy per phrase
WORDLIST = (
    "abandon", "absorb", "actor", "adapt", "alarm", "amber", "anchor", "april",
    "arena", "autumn", "badge", "balance", "bamboo", "beacon", "bitter", "blossom",
    "border", "bridge", "cabin", "canvas", "castle", "cherry", "circle", "copper",
    "cradle", "crystal", "dawn", "desert", "dolphin", "dragon", "eagle", "ember",
    "engine", "falcon", "fiber", "forest", "galaxy", "garden", "glacier", "harbor",
    "harvest", "island", "jungle", "kettle", "lantern", "lemon", "marble", "meadow",
    "mirror", "nectar", "orbit", "oyster", "paddle", "planet", "quarry", "raven",
    "ribbon", "saddle", "shadow", "timber", "tunnel", "velvet", "willow", "zenith",
)


def mnemonic_from_entropy(entropy: bytes) -> str:
    bits = int.from_bytes(entropy, "big")
    words = []
    for i in range(MNEMONIC_WORDS):
        words.append(WORDLIST[(bits >> (6 * i)) & 0x3F])
    return " ".join(words)


def mnemonic_to_seed(mnemonic: str) -> bytes:
    normalized = " ".join(mnemonic.split())
    return hashlib.pbkdf2_hmac("sha512", normalized.encode(), b"mnemonic", 2048)


@dataclass
class Account:
    """A ledger entry. Balance and nonce are kept as big-endian bytes."""

    secret_key: bytes
    balance: bytes = b""
    nonce: bytes = b""
    address: str = ""

    def __post_init__(self) -> None:
        if not self.address:
            self.address = crypto.address_from_secret(self.secret_key)

    @staticmethod
    def create(secret_key: Optional[bytes] = None, balance: int = 0) -> "Account":
        return Account(
            secret_key=secret_key or crypto.generate_secret(),
            balance=int_to_bytes(balance),
        )

    @property
    def balance_int(self) -> int:
        return bytes_to_int(self.balance)

    @property
    def nonce_int(self) -> int:
        return bytes_to_int(self.nonce)

    def credit(self, amount: int) -> None:
        self.balance = int_to_bytes(self.balance_int + amount)

    def debit(self, amount: int) -> None:
        if amount > self.balance_int:
            raise ValueError("insufficient funds")
        self.balance = int_to_bytes(self.balance_int - amount)

    def bump_nonce(self) -> None:
        self.nonce = int_to_bytes(self.nonce_int + 1)

    def copy(self) -> "Account":
        return Account(
            secret_key=self.secret_key,
            balance=self.balance,
            nonce=self.nonce,
            address=self.address,
        )


@dataclass
class HDWallet:
    mnemonic: str
    hd_path: str = HD_PATH
    seed: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.seed = mnemonic_to_seed(self.mnemonic)

    @staticmethod
    def create(mnemonic: Optional[str] = None, seed: Optional[str] = None) -> "HDWallet":
        if mnemonic and seed:
            raise ValueError("mnemonic and seed are mutually exclusive")
        if mnemonic:
            return HDWallet(mnemonic=" ".join(mnemonic.split()))
        if seed:
            entropy = hashlib.sha256(str(seed).encode()).digest()
        else:
            entropy = secrets.token_bytes(32)
        return HDWallet(mnemonic=mnemonic_from_entropy(entropy))

    def secret_at(self, index: int) -> bytes:
        return crypto.derive_secret(self.seed, f"{self.hd_path}{index}")

    def accounts(self, count: int, balance: int) -> List[Account]:
        return [Account.create(self.secret_at(i), balance) for i in range(count)]
