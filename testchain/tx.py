from dataclasses import dataclass, field
from typing import Dict, Optional

from . import crypto
from .utils import json_dumps, now_ts, sha256

TX_GAS = 21000


@dataclass
class Transaction:
    sender: str
    to: Optional[str]
    value: int = 0
    nonce: int = 0
    gas_price: int = 0
    gas_limit: int = TX_GAS
    data: str = ""
    timestamp: int = field(default_factory=now_ts)
    signature: str = ""
    pubkey: Optional[Dict[str, int]] = None

    def payload_dict(self) -> Dict[str, object]:
        return {
            "from": self.sender,
            "to": self.to,
            "value": self.value,
            "nonce": self.nonce,
            "gasPrice": self.gas_price,
            "gas": self.gas_limit,
            "input": self.data,
            "timestamp": self.timestamp,
        }

    def to_dict(self, include_sig: bool = True) -> Dict[str, object]:
        data = self.payload_dict()
        if include_sig and self.signature:
            data["signature"] = self.signature
        return data

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Transaction":
        return Transaction(
            sender=str(data["from"]),
            to=data.get("to"),
            value=int(data.get("value", 0)),
            nonce=int(data.get("nonce", 0)),
            gas_price=int(data.get("gasPrice", 0)),
            gas_limit=int(data.get("gas", TX_GAS)),
            data=str(data.get("input", "")),
            timestamp=int(data.get("timestamp", now_ts())),
            signature=str(data.get("signature", "")),
        )

    def hash(self) -> str:
        return "0x" + sha256(json_dumps(self.payload_dict()).encode())

    @property
    def fee(self) -> int:
        return TX_GAS * self.gas_price

    def sign(self, secret: bytes) -> None:
        self.pubkey = crypto.public_key(secret)
        self.signature = crypto.sign(self.hash()[2:], secret)

    def verify(self) -> bool:
        if not self.signature or not self.pubkey:
            return False
        if crypto.address_from_pubkey(self.pubkey) != self.sender:
            return False
        return crypto.verify(self.hash()[2:], self.signature, self.pubkey)
