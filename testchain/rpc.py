import json
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional

from .utils import parse_quantity, to_hex

MAX_RPC_SIZE = int(os.getenv("TESTCHAIN_RPC_MAX", "1048576"))
CLIENT_VERSION = "testchain/v0.1.0/python"


class RpcServer:
    def __init__(self, chain, host: str, port: int) -> None:
        self.chain = chain
        self.host = host
        self.port = port
        self._thread: Optional[threading.Thread] = None
        self._server: Optional[ThreadingHTTPServer] = None

    def start(self) -> None:
        if self._thread:
            return

        class Handler(BaseHTTPRequestHandler):
            def _send(self, code: int, payload: Dict[str, Any]) -> None:
                data = json.dumps(payload).encode()
                self.send_response(code)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            def do_POST(self) -> None:
                length = int(self.headers.get("Content-Length", "0"))
                if length > MAX_RPC_SIZE:
                    self._send(413, {"jsonrpc": "2.0", "id": None, "error": {"code": -32600, "message": "payload too large"}})
                    return
                raw = self.rfile.read(length)
                try:
                    req = json.loads(raw.decode())
                except Exception:
                    self._send(400, {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "parse error"}})
                    return
                if isinstance(req, list):
                    self._send(200, [self.server.chain.rpc_dispatch(r) for r in req])
                else:
                    self._send(200, self.server.chain.rpc_dispatch(req))

            def log_message(self, format: str, *args: Any) -> None:
                return

        self._server = ThreadingHTTPServer((self.host, self.port), Handler)
        self._server.chain = self.chain
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._thread = None


class RpcMixin:
    def rpc_dispatch(self, req: Dict[str, Any]) -> Dict[str, Any]:
        req_id = req.get("id") if isinstance(req, dict) else None
        if not isinstance(req, dict) or not isinstance(req.get("method"), str):
            return {"jsonrpc": "2.0", "id": req_id, "error": {"code": -32600, "message": "invalid request"}}
        method = req["method"]
        params = req.get("params") or []
        if getattr(self, "verbose", False):
            self._log("log", f"rpc {method} {json.dumps(params)}")
        try:
            result = self._rpc_handle(method, params)
        except LookupError as exc:
            return {"jsonrpc": "2.0", "id": req_id, "error": {"code": -32601, "message": str(exc)}}
        except Exception as exc:
            return {"jsonrpc": "2.0", "id": req_id, "error": {"code": -32000, "message": str(exc)}}
        return {"jsonrpc": "2.0", "id": req_id, "result": result}

    def _rpc_handle(self, method: str, params: List[Any]) -> Any:
        if method == "web3_clientVersion":
            return CLIENT_VERSION
        if method == "net_version":
            return self.net_version
        if method == "eth_accounts":
            return list(self.accounts.keys())
        if method == "eth_blockNumber":
            return to_hex(self.block_number())
        if method == "eth_coinbase":
            return self.coinbase
        if method == "eth_gasPrice":
            return to_hex(self.gas_price_val)
        if method == "eth_mining":
            return self.is_mining
        if method == "eth_getBalance":
            if not params:
                raise ValueError("address required")
            account = self.accounts.get(params[0])
            if account is None:
                return to_hex(self.foreign_balances.get(params[0], 0))
            return to_hex(account.balance_int)
        if method == "eth_getTransactionCount":
            if not params:
                raise ValueError("address required")
            account = self.accounts.get(params[0])
            return to_hex(account.nonce_int if account else 0)
        if method == "eth_sendTransaction":
            if not params or not isinstance(params[0], dict):
                raise ValueError("transaction object required")
            return self.send_transaction(params[0])
        if method == "evm_snapshot":
            return to_hex(self.snapshot())
        if method == "evm_revert":
            snapshot_id = parse_quantity(params[0]) if params else None
            return self.revert(snapshot_id)
        if method == "evm_mine":
            self.process_blocks(1)
            return "0x0"
        if method == "miner_start":
            self.start_mining()
            return True
        if method == "miner_stop":
            self.stop_mining()
            return True
        raise LookupError(f"method {method} not supported")
