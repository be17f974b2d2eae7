import os
import threading
from typing import Dict, List, Optional

from .block import GENESIS_PARENT, Block
from .rpc import RpcMixin, RpcServer
from .tx import TX_GAS, Transaction
from .utils import now_ts, parse_quantity, parse_timestamp
from .wallet import HD_PATH, Account, HDWallet

ETHER = 10 ** 18
DEFAULT_PORT = 8545
DEFAULT_TOTAL_ACCOUNTS = int(os.getenv("TESTCHAIN_DEFAULT_ACCOUNTS", "10"))
DEFAULT_GAS_PRICE = int(os.getenv("TESTCHAIN_DEFAULT_GAS_PRICE", "1"))
DEFAULT_GAS_LIMIT = int(os.getenv("TESTCHAIN_DEFAULT_GAS_LIMIT", "4712388"))
DEFAULT_BALANCE = int(os.getenv("TESTCHAIN_DEFAULT_BALANCE", str(100 * ETHER)))
NETWORK_ID = os.getenv("TESTCHAIN_NETWORK_ID")
RPC_HOST = os.getenv("TESTCHAIN_RPC_HOST", "127.0.0.1")


class DevChain(RpcMixin):
    """In-process development chain with instant or interval mining.

    Every mutation happens under `lock`; the RPC thread and the interval
    miner share it with callers of the public methods.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.accounts: Dict[str, Account] = {}
        self.unlocked_accounts: Dict[str, Account] = {}
        self.foreign_balances: Dict[str, int] = {}
        self.blocks: List[Block] = []
        self.pending: List[Transaction] = []
        self.snapshots: List[dict] = []
        self.wallet: Optional[HDWallet] = None
        self.mnemonic: Optional[str] = None
        self.wallet_hdpath = HD_PATH
        self.gas_price_val = DEFAULT_GAS_PRICE
        self.block_gas_limit = DEFAULT_GAS_LIMIT
        self.total_accounts = DEFAULT_TOTAL_ACCOUNTS
        self.coinbase = "0x" + "0" * 40
        self.blocktime: Optional[float] = None
        self.is_mining = False
        self.net_version: Optional[str] = None
        self.secure = False
        self.debug = False
        self.verbose = False
        self.time_offset = 0
        self.logger = None
        self.rpc: Optional[RpcServer] = None
        self.started = False
        self._snapshot_seq = 0
        self._stop = threading.Event()
        self._miner: Optional[threading.Thread] = None

    @property
    def is_mining_on_interval(self) -> bool:
        return bool(self.blocktime)

    def _log(self, level: str, message: str) -> None:
        if self.logger is not None:
            getattr(self.logger, level)(message)

    def _now(self) -> int:
        return now_ts() + self.time_offset

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def start(self, options: Dict[str, object], logger=None) -> None:
        with self.lock:
            if self.started:
                raise RuntimeError("engine already started")
            if options.get("fork"):
                raise ValueError("forking is not supported by the embedded engine")
            self.logger = logger
            self.debug = bool(options.get("debug"))
            self.verbose = bool(options.get("verbose"))
            self.secure = bool(options.get("secure"))
            self.total_accounts = int(options.get("total_accounts") or DEFAULT_TOTAL_ACCOUNTS)
            self.gas_price_val = int(options.get("gas_price") or DEFAULT_GAS_PRICE)
            self.block_gas_limit = int(options.get("gas_limit") or DEFAULT_GAS_LIMIT)
            blocktime = options.get("blocktime")
            self.blocktime = float(blocktime) if blocktime else None
            if options.get("time"):
                self.time_offset = parse_timestamp(options["time"]) - now_ts()

            self.wallet = HDWallet.create(options.get("mnemonic"), options.get("seed"))
            self.mnemonic = self.wallet.mnemonic
            self.wallet_hdpath = self.wallet.hd_path
            for account in self.wallet.accounts(self.total_accounts, DEFAULT_BALANCE):
                self.add_account(account, unlocked=not self.secure)
            if self.accounts:
                self.coinbase = next(iter(self.accounts))

            genesis = Block.build(
                GENESIS_PARENT, 0, self.block_gas_limit, [], self.coinbase, timestamp=self._now()
            )
            self.blocks.append(genesis)
            self.net_version = NETWORK_ID or str(now_ts() * 1000)
            self.is_mining = True
            self.started = True

        self._log("info", f"Created {len(self.accounts)} accounts, coinbase {self.coinbase}")
        if self.blocktime:
            self._stop.clear()
            self._miner = threading.Thread(target=self._mine_loop, daemon=True)
            self._miner.start()

    def listen(self, port: int) -> None:
        if not self.started:
            raise RuntimeError("engine not started")
        self.rpc = RpcServer(self, RPC_HOST, port)
        self.rpc.start()
        self._log("info", f"Listening on {RPC_HOST}:{self.rpc.port}")

    def close(self) -> None:
        self._stop.set()
        if self._miner:
            self._miner.join(timeout=5)
            self._miner = None
        if self.rpc:
            self.rpc.stop()
            self.rpc = None

    def _mine_loop(self) -> None:
        while not self._stop.wait(self.blocktime):
            if not self.is_mining:
                continue
            try:
                self.process_blocks(1)
            except Exception as exc:
                self._log("error", f"interval mining failed: {exc}")

    # -----------------------------
    # Mining
    # -----------------------------

    def start_mining(self) -> None:
        with self.lock:
            self.is_mining = True
            if not self.blocktime and self.pending:
                self._mine_block()

    def stop_mining(self) -> None:
        with self.lock:
            self.is_mining = False

    def process_blocks(self, count: int = 1) -> List[Block]:
        with self.lock:
            return [self._mine_block() for _ in range(count)]

    def _mine_block(self) -> Block:
        capacity = max(1, self.block_gas_limit // TX_GAS)
        selected, self.pending = self.pending[:capacity], self.pending[capacity:]
        included = []
        for tx in selected:
            try:
                self._apply_tx(tx)
            except ValueError as exc:
                self._log("warning", f"dropping tx {tx.hash()}: {exc}")
                continue
            included.append(tx)
        parent = self.blocks[-1]
        block = Block.build(
            parent.hash(),
            parent.number + 1,
            self.block_gas_limit,
            included,
            self.coinbase,
            timestamp=self._now(),
        )
        self.blocks.append(block)
        if self.verbose:
            self._log("log", f"Block {block.number} mined: {block.hash()} ({len(included)} txs)")
        return block

    def _apply_tx(self, tx: Transaction) -> None:
        sender = self.accounts.get(tx.sender)
        if not sender:
            raise ValueError("unknown sender")
        if tx.nonce != sender.nonce_int:
            raise ValueError("bad nonce")
        sender.debit(tx.value + tx.fee)
        sender.bump_nonce()
        if tx.to:
            recipient = self.accounts.get(tx.to)
            if recipient is None:
                self.foreign_balances[tx.to] = self.foreign_balances.get(tx.to, 0) + tx.value
            else:
                recipient.credit(tx.value)
        miner = self.accounts.get(self.coinbase)
        if miner is not None:
            miner.credit(tx.fee)
        if self.debug:
            self._log("log", f"tx {tx.hash()}: {tx.sender} -> {tx.to} value={tx.value} gas={TX_GAS}")

    # -----------------------------
    # Restore points
    # -----------------------------

    def snapshot(self) -> int:
        with self.lock:
            self._snapshot_seq += 1
            self.snapshots.append(
                {
                    "id": self._snapshot_seq,
                    "block_number": self.block_number(),
                    "accounts": {a: acct.copy() for a, acct in self.accounts.items()},
                    "unlocked": list(self.unlocked_accounts.keys()),
                    "foreign": dict(self.foreign_balances),
                    "blocks": list(self.blocks),
                    "pending": list(self.pending),
                }
            )
            self._log("info", f"Saved snapshot #{self._snapshot_seq}")
            return self._snapshot_seq

    def revert(self, snapshot_id: Optional[int] = None) -> bool:
        with self.lock:
            if not self.snapshots:
                return False
            if snapshot_id is None:
                index = len(self.snapshots) - 1
            else:
                ids = [s["id"] for s in self.snapshots]
                if snapshot_id not in ids:
                    return False
                index = ids.index(snapshot_id)
            state = self.snapshots[index]
            del self.snapshots[index:]
            self.accounts = state["accounts"]
            self.unlocked_accounts = {a: self.accounts[a] for a in state["unlocked"]}
            self.foreign_balances = state["foreign"]
            self.blocks = state["blocks"]
            self.pending = state["pending"]
            self._log("info", f"Reverted to snapshot #{state['id']}")
            return True

    # -----------------------------
    # Accounts and transactions
    # -----------------------------

    def create_account(self, options: Optional[Dict[str, object]] = None) -> Account:
        options = options or {}
        with self.lock:
            raw_key = options.get("secretKey")
            if raw_key:
                text = str(raw_key)
                secret = bytes.fromhex(text[2:] if text.startswith("0x") else text)
            elif self.wallet:
                secret = self.wallet.secret_at(len(self.accounts))
            else:
                secret = None
            balance = options.get("balance")
            amount = parse_quantity(balance) if balance is not None else DEFAULT_BALANCE
            return Account.create(secret, amount)

    def add_account(self, account: Account, unlocked: bool) -> None:
        with self.lock:
            if account.address in self.accounts:
                raise ValueError(f"account {account.address} already exists")
            self.accounts[account.address] = account
            if unlocked:
                self.unlocked_accounts[account.address] = account

    def is_unlocked(self, address: str) -> bool:
        return address in self.unlocked_accounts

    def block_number(self) -> int:
        return self.blocks[-1].number if self.blocks else 0

    def send_transaction(self, params: Dict[str, object]) -> str:
        with self.lock:
            sender = str(params.get("from", ""))
            account = self.accounts.get(sender)
            if account is None:
                raise ValueError("sender account not recognized")
            if not self.is_unlocked(sender):
                raise ValueError("signer account is locked")
            queued = sum(1 for t in self.pending if t.sender == sender)
            tx = Transaction(
                sender=sender,
                to=params.get("to"),
                value=parse_quantity(params.get("value", 0)),
                nonce=account.nonce_int + queued,
                gas_price=parse_quantity(params.get("gasPrice", self.gas_price_val)),
                gas_limit=parse_quantity(params.get("gas", TX_GAS)),
                data=str(params.get("data", "")),
                timestamp=self._now(),
            )
            if tx.gas_limit < TX_GAS:
                raise ValueError("intrinsic gas too low")
            if tx.value + tx.fee > account.balance_int:
                raise ValueError("insufficient funds")
            tx.sign(account.secret_key)
            self.pending.append(tx)
            if self.is_mining and not self.blocktime:
                self._mine_block()
            return tx.hash()
