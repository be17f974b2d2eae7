from dataclasses import dataclass, field
from typing import List

from .merkle import merkle_root
from .tx import TX_GAS, Transaction
from .utils import bytes_to_int, int_to_bytes, json_dumps, now_ts, sha256

GENESIS_PARENT = "0x" + "0" * 64


@dataclass
class BlockHeader:
    parent_hash: str
    number: bytes
    timestamp: int
    gas_limit: int
    gas_used: int = 0
    coinbase: str = ""
    transactions_root: str = ""

    def payload_dict(self) -> dict:
        return {
            "parentHash": self.parent_hash,
            "number": bytes_to_int(self.number),
            "timestamp": self.timestamp,
            "gasLimit": self.gas_limit,
            "gasUsed": self.gas_used,
            "coinbase": self.coinbase,
            "transactionsRoot": self.transactions_root,
        }


@dataclass
class Block:
    header: BlockHeader
    transactions: List[Transaction] = field(default_factory=list)

    def hash(self) -> str:
        return "0x" + sha256(json_dumps(self.header.payload_dict()).encode())

    @property
    def number(self) -> int:
        return bytes_to_int(self.header.number)

    def to_dict(self) -> dict:
        return {
            "header": self.header.payload_dict(),
            "transactions": [tx.to_dict() for tx in self.transactions],
        }

    @staticmethod
    def build(
        parent_hash: str,
        number: int,
        gas_limit: int,
        transactions: List[Transaction],
        coinbase: str = "",
        timestamp: int = None,
    ) -> "Block":
        root = merkle_root([tx.hash() for tx in transactions])
        header = BlockHeader(
            parent_hash=parent_hash,
            number=int_to_bytes(number),
            timestamp=timestamp if timestamp is not None else now_ts(),
            gas_limit=gas_limit,
            gas_used=TX_GAS * len(transactions),
            coinbase=coinbase,
            transactions_root="0x" + root,
        )
        return Block(header=header, transactions=transactions)
