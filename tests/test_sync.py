from conftest import FakeBlock, make_blocks

from testchain.sync import StateSynchronizer, recent_blocks, recent_transactions, to_number

WIRE_KEYS = {
    "accounts", "mnemonic", "hdPath", "gasPrice", "gasLimit", "totalAccounts", "coinbase",
    "isMiningOnInterval", "isMining", "blocktime", "blockNumber", "networkId",
    "snapshots", "blocks", "transactions",
}


def _numbers(views):
    return [v["header"]["number"] for v in views]


def test_recent_blocks_takes_newest_five_descending():
    blocks = make_blocks([0] * 8)
    views = recent_blocks(blocks)
    assert _numbers(views) == [7, 6, 5, 4, 3]


def test_recent_blocks_short_chain_returns_all():
    views = recent_blocks(make_blocks([0, 0, 0]))
    assert _numbers(views) == [2, 1, 0]


def test_recent_blocks_leaves_source_order_alone():
    blocks = [FakeBlock(n) for n in (0, 1, 2, 4, 3, 5)]
    before = list(blocks)
    views = recent_blocks(blocks)
    assert _numbers(views) == [5, 4, 3, 2, 1]
    assert blocks == before


def test_recent_blocks_stamp_hashes():
    blocks = make_blocks([0, 2])
    views = recent_blocks(blocks)
    assert views[0]["hash"] == blocks[1].hash()
    assert [t["hash"] for t in views[0]["transactions"]] == [t.hash() for t in blocks[1].transactions]


def test_recent_transactions_walks_whole_blocks_from_tip():
    blocks = make_blocks([0, 3, 0, 4, 2])
    txs = recent_transactions(blocks)
    assert [t["label"] for t in txs] == [
        "b4t0", "b4t1",
        "b3t0", "b3t1", "b3t2", "b3t3",
    ]
    assert all(t["hash"].startswith("0x") for t in txs)


def test_recent_transactions_never_visits_genesis():
    blocks = make_blocks([5, 1])
    txs = recent_transactions(blocks)
    assert [t["label"] for t in txs] == ["b1t0"]


def test_recent_transactions_returns_all_when_fewer_available():
    assert len(recent_transactions(make_blocks([0, 1, 1, 1]))) == 3
    assert recent_transactions(make_blocks([0])) == []


def test_to_number():
    assert to_number(b"") == 0
    assert to_number(b"\x01\x00") == 256
    assert to_number(7) == 7


def _assert_no_bytes(value):
    assert not isinstance(value, (bytes, bytearray))
    if isinstance(value, dict):
        for v in value.values():
            _assert_no_bytes(v)
    elif isinstance(value, list):
        for v in value:
            _assert_no_bytes(v)


def test_build_state_wire_shape(started_chain):
    chain = started_chain()
    chain.process_blocks(2)
    chain.snapshot()
    state = StateSynchronizer().build_state(chain)

    assert set(state) == WIRE_KEYS
    assert state["blockNumber"] == 2
    assert [a["index"] for a in state["accounts"]] == [0, 1, 2]
    assert set(state["accounts"][0]) == {"index", "address", "balance", "nonce", "privateKey", "isUnlocked"}
    assert state["accounts"][0]["balance"] == chain.accounts[state["accounts"][0]["address"]].balance_int
    assert state["snapshots"] == [{"id": 1, "blockNumber": 2}]
    assert _numbers(state["blocks"]) == [2, 1, 0]
    _assert_no_bytes(state)


def test_build_state_repeatable_without_mutation(started_chain):
    chain = started_chain()
    sync = StateSynchronizer()
    assert sync.build_state(chain) == sync.build_state(chain)
