import pytest

from testchain import cli
from testchain.chain import ETHER, DevChain
from testchain.config import IPC_HOST, IPC_PORT, build_node_config
from testchain.sync import StateSynchronizer
from conftest import MNEMONIC


def test_run_defaults_map_to_config():
    args = cli.build_parser().parse_args(["run"])
    config = build_node_config(cli.start_options(args))
    assert config.port == 8545
    assert config.total_accounts == 6
    assert config.block_time == 1.0
    assert config.gas_price == 1
    assert config.gas_limit == 4712388
    assert config.mnemonic is None
    assert config.accounts_locked is None


def test_run_flags():
    args = cli.build_parser().parse_args(
        ["run", "--port", "7545", "--accounts", "2", "--secure", "--seed", "abc", "--time", "1577836800"]
    )
    config = build_node_config(cli.start_options(args))
    assert config.port == 7545
    assert config.total_accounts == 2
    assert config.accounts_locked is True
    assert config.seed == "abc"
    assert config.time == 1577836800


def test_mnemonic_and_seed_are_exclusive():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["run", "--mnemonic", MNEMONIC, "--seed", "abc"])


def test_serve_defaults():
    args = cli.build_parser().parse_args(["serve"])
    assert (args.host, args.port) == (IPC_HOST, IPC_PORT)
    assert args.func is cli.cmd_serve


def test_format_ether():
    assert cli.format_ether(100 * ETHER) == "100 ETH"
    assert cli.format_ether(ETHER * 3 // 2) == "1.5 ETH"


def test_print_started(started_chain, capsys):
    chain = started_chain(secure=True, total_accounts=2)
    cli.print_started(StateSynchronizer().build_state(chain))
    out = capsys.readouterr().out
    first = list(chain.accounts)[0]
    assert f"(0) {first} 100 ETH (locked)" in out
    assert f"Mnemonic: {MNEMONIC}" in out
    assert "Base HD Path: m/44'/60'/0'/0/{account_index}" in out


def test_run_reports_failed_start(capsys):
    args = cli.build_parser().parse_args(["run", "--fork", "http://127.0.0.1:8545"])
    assert cli.cmd_run(args) == 1
    assert "Failed to start: forking is not supported" in capsys.readouterr().out
