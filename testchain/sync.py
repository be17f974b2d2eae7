from typing import Any, Dict, List

from .utils import bytes_to_int

RECENT_BLOCKS = 5
RECENT_TRANSACTIONS = 5


def to_number(value) -> int:
    if isinstance(value, (bytes, bytearray)):
        return bytes_to_int(bytes(value))
    return int(value)


def marshal_transaction(tx) -> Dict[str, Any]:
    data = tx.to_dict()
    data["hash"] = tx.hash()
    return data


def marshal_block(block) -> Dict[str, Any]:
    data = block.to_dict()
    data["hash"] = block.hash()
    data["transactions"] = [marshal_transaction(tx) for tx in block.transactions]
    return data


def recent_blocks(blocks: List[Any], count: int = RECENT_BLOCKS) -> List[Dict[str, Any]]:
    """The newest `count` blocks, highest number first.

    Works on a slice so the engine's own block list keeps its order.
    """
    height = len(blocks)
    window = list(blocks[max(0, height - count):height])
    window.sort(key=lambda b: to_number(b.header.number))
    window.reverse()
    return [marshal_block(block) for block in window]


def recent_transactions(blocks: List[Any], threshold: int = RECENT_TRANSACTIONS) -> List[Dict[str, Any]]:
    """Transactions from the tip backwards, whole blocks at a time.

    Stops once at least `threshold` were collected, so the result may hold
    more than `threshold`. The genesis block is never visited.
    """
    transactions: List[Dict[str, Any]] = []
    index = len(blocks) - 1
    while len(transactions) < threshold and index > 0:
        block = blocks[index]
        if block.transactions:
            transactions.extend(marshal_transaction(tx) for tx in block.transactions)
        index -= 1
    return transactions


class StateSynchronizer:
    """Builds the consumer-facing chain state from a live engine."""

    def build_state(self, engine) -> Dict[str, Any]:
        with engine.lock:
            return {
                "accounts": [
                    {
                        "index": index,
                        "address": address,
                        "balance": to_number(account.balance),
                        "nonce": to_number(account.nonce),
                        "privateKey": account.secret_key.hex(),
                        "isUnlocked": engine.is_unlocked(address),
                    }
                    for index, (address, account) in enumerate(engine.accounts.items())
                ],
                "mnemonic": engine.mnemonic,
                "hdPath": engine.wallet_hdpath,
                "gasPrice": engine.gas_price_val,
                "gasLimit": engine.block_gas_limit,
                "totalAccounts": engine.total_accounts,
                "coinbase": engine.coinbase,
                "isMiningOnInterval": engine.is_mining_on_interval,
                "isMining": engine.is_mining,
                "blocktime": engine.blocktime,
                "blockNumber": engine.block_number(),
                "networkId": engine.net_version,
                "snapshots": [
                    {"id": snap["id"], "blockNumber": snap["block_number"]}
                    for snap in engine.snapshots
                ],
                "blocks": recent_blocks(engine.blocks),
                "transactions": recent_transactions(engine.blocks),
            }
