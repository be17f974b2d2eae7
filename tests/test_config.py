import pytest

from testchain.config import NodeConfig, build_node_config
from testchain.errors import ConfigValidationError


def test_falsy_fields_are_dropped():
    config = build_node_config(
        {
            "port": "8545",
            "seed": "",
            "mnemonic": None,
            "secure": False,
            "gasPrice": 0,
            "time": None,
            "fork": "",
        }
    )
    assert config.set_fields() == {"port": 8545}


def test_zero_cannot_be_expressed():
    config = build_node_config({"gasPrice": 0, "blocktime": 0, "total_accounts": 0})
    assert config == NodeConfig()


def test_form_and_contract_names():
    form = build_node_config(
        {"port": "7545", "blocktime": "2", "total_accounts": "4", "secure": True, "fork": "http://x"}
    )
    contract = build_node_config(
        {"port": 7545, "blockTimeSeconds": 2, "totalAccounts": 4, "accountsLocked": True, "forkUrl": "http://x"}
    )
    assert form == contract
    assert form.block_time == 2.0
    assert form.accounts_locked is True


def test_engine_options_are_sparse():
    config = build_node_config({"port": 8545, "secure": True, "blocktime": "1.5", "debug": False})
    assert config.to_engine_options() == {"port": 8545, "secure": True, "blocktime": 1.5}


def test_mnemonic_and_seed_rejected():
    with pytest.raises(ConfigValidationError):
        build_node_config({"mnemonic": "a b c", "seed": "xyz"})
    with pytest.raises(ConfigValidationError):
        NodeConfig(mnemonic="a b c", seed="xyz")


def test_only_one_of_mnemonic_or_seed_survives():
    config = build_node_config({"mnemonic": "", "seed": "data"})
    assert config.seed == "data"
    assert config.mnemonic is None


@pytest.mark.parametrize(
    "raw",
    [
        {"port": "abc"},
        {"port": 70000},
        {"gasLimit": "-5"},
        {"blocktime": "soon"},
        {"debug": "maybe"},
        {"time": "yesterday"},
        {"colour": "blue"},
        {"blocktime": 1, "blockTimeSeconds": 2},
        ["port", 8545],
    ],
)
def test_malformed_input(raw):
    with pytest.raises(ConfigValidationError):
        build_node_config(raw)


def test_time_accepts_iso_and_unix():
    iso = build_node_config({"time": "2020-01-01T00:00:00+00:00"})
    assert iso.time == 1577836800
    assert build_node_config({"time": "1577836800"}).time == 1577836800


def test_validation_error_is_value_error():
    with pytest.raises(ValueError):
        build_node_config({"port": "x"})


def test_none_input_gives_empty_config():
    assert build_node_config(None).set_fields() == {}
