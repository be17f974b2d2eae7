import asyncio
from types import SimpleNamespace

import pytest

from testchain.chain import DevChain
from testchain.utils import bytes_to_int, int_to_bytes, sha256

MNEMONIC = "amber bridge castle dawn eagle forest garden harbor island jungle kettle lantern"


class FakeTx:
    def __init__(self, label: str) -> None:
        self.label = label

    def hash(self) -> str:
        return "0x" + sha256(self.label.encode())

    def to_dict(self) -> dict:
        return {"label": self.label}


class FakeBlock:
    def __init__(self, number: int, txs=()) -> None:
        self.header = SimpleNamespace(number=int_to_bytes(number))
        self.transactions = list(txs)

    def hash(self) -> str:
        return "0x" + sha256(f"block-{bytes_to_int(self.header.number)}".encode())

    def to_dict(self) -> dict:
        return {
            "header": {"number": bytes_to_int(self.header.number)},
            "transactions": [tx.to_dict() for tx in self.transactions],
        }


def make_blocks(tx_counts):
    return [
        FakeBlock(i, [FakeTx(f"b{i}t{j}") for j in range(count)])
        for i, count in enumerate(tx_counts)
    ]


class RecordingChain(DevChain):
    """DevChain that records lifecycle calls and never binds a real port."""

    def __init__(self, fail_start=None, fail_ops=(), slow_ops=None) -> None:
        super().__init__()
        self.calls = []
        self.fail_start = fail_start
        self.fail_ops = set(fail_ops)
        self.slow_ops = dict(slow_ops or {})

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if name in self.slow_ops:
            import time
            time.sleep(self.slow_ops[name])
        if name in self.fail_ops:
            raise RuntimeError(f"{name} exploded")

    def start(self, options, logger=None):
        self.calls.append("start")
        self.options = options
        if self.fail_start:
            raise self.fail_start
        super().start(options, logger)

    def listen(self, port):
        self.calls.append("listen")
        self.listen_port = port

    def close(self):
        self.calls.append("close")
        super().close()

    def start_mining(self):
        self._maybe_fail("start_mining")
        super().start_mining()

    def stop_mining(self):
        self._maybe_fail("stop_mining")
        super().stop_mining()

    def snapshot(self):
        self._maybe_fail("snapshot")
        return super().snapshot()


class ChainFactory:
    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.created = []

    def __call__(self) -> RecordingChain:
        engine = RecordingChain(**self.kwargs)
        self.created.append(engine)
        return engine


@pytest.fixture
def chain_factory():
    return ChainFactory


@pytest.fixture
def started_chain():
    chains = []

    def _start(**options):
        chain = DevChain()
        options.setdefault("mnemonic", MNEMONIC)
        options.setdefault("total_accounts", 3)
        chain.start(options)
        chains.append(chain)
        return chain

    yield _start
    for chain in chains:
        chain.close()


async def settle() -> None:
    # let call_soon_threadsafe hand-offs from worker threads run
    for _ in range(3):
        await asyncio.sleep(0)
