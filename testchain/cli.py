import argparse
import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, Dict

from .chain import ETHER
from .config import IPC_HOST, IPC_PORT
from .messages import BlockchainState, FailedToStart, Started, StartRpc
from .network import QueueTransport, serve_once
from .supervisor import NodeSupervisor


def format_ether(wei: int) -> str:
    return f"{Decimal(wei) / ETHER:f} ETH"


def print_started(state: Dict[str, Any]) -> None:
    print("Available Accounts")
    print("==================")
    for acct in state["accounts"]:
        lock = "" if acct["isUnlocked"] else " (locked)"
        print(f"({acct['index']}) {acct['address']} {format_ether(acct['balance'])}{lock}")
    print()
    print("Private Keys")
    print("==================")
    for acct in state["accounts"]:
        print(f"({acct['index']}) {acct['privateKey']}")
    print()
    print("HD Wallet")
    print("==================")
    print("Mnemonic:", state["mnemonic"])
    print("Base HD Path:", state["hdPath"] + "{account_index}")
    print()
    print("Network id:", state["networkId"])
    print("Block number:", state["blockNumber"])


def start_options(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "port": args.port,
        "total_accounts": args.accounts,
        "blocktime": args.blocktime,
        "gasPrice": args.gas_price,
        "gasLimit": args.gas_limit,
        "mnemonic": args.mnemonic,
        "seed": args.seed,
        "time": args.time,
        "fork": args.fork,
        "secure": args.secure,
        "debug": args.debug,
        "verbose": args.verbose,
    }


async def _run_headless(args: argparse.Namespace) -> int:
    transport = QueueTransport()
    supervisor = NodeSupervisor(transport)
    transport.consumer_send(StartRpc(options=start_options(args)))
    runner = asyncio.create_task(supervisor.run())
    try:
        while True:
            event = await transport.consumer_receive()
            if isinstance(event, Started):
                print_started(event.snapshot)
            elif isinstance(event, FailedToStart):
                print("Failed to start:", event.reason)
                return 1
            elif isinstance(event, BlockchainState) and args.state:
                print(json.dumps(event.to_dict()), flush=True)
    finally:
        transport.close()
        await runner


def cmd_run(args: argparse.Namespace) -> int:
    return asyncio.run(_run_headless(args))


def cmd_serve(args: argparse.Namespace) -> int:
    def _listening(port: int) -> None:
        print(f"Waiting for consumer on {args.host}:{port}", flush=True)

    async def _handler(transport) -> None:
        await NodeSupervisor(transport).run()

    asyncio.run(serve_once(args.host, args.port, _handler, on_listening=_listening))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="testchain")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="run the supervisor for a remote consumer")
    s.add_argument("--host", default=IPC_HOST)
    s.add_argument("--port", type=int, default=IPC_PORT)
    s.set_defaults(func=cmd_serve)

    s = sub.add_parser("run", help="start a node right away and print its state")
    s.add_argument("--port", type=int, default=8545)
    s.add_argument("--accounts", type=int, default=6)
    s.add_argument("--blocktime", default="1")
    s.add_argument("--gas-price", type=int, default=1)
    s.add_argument("--gas-limit", type=int, default=4712388)
    seed = s.add_mutually_exclusive_group()
    seed.add_argument("--mnemonic")
    seed.add_argument("--seed")
    s.add_argument("--time", help="unix seconds or ISO-8601 start time")
    s.add_argument("--fork", help="URL of a chain to fork")
    s.add_argument("--secure", action="store_true", help="lock accounts by default")
    s.add_argument("--debug", action="store_true")
    s.add_argument("--verbose", action="store_true")
    s.add_argument("--state", action="store_true", help="print every state push as JSON")
    s.set_defaults(func=cmd_run)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        raise SystemExit(args.func(args))
    except KeyboardInterrupt:
        raise SystemExit(130)


if __name__ == "__main__":
    main()
