"""
Unit tests for RpcClient against an in-process JSON-RPC server
"""

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Dict, Optional

import pytest

from fee_call.core.client.rpc_client import RpcClient
from fee_call.utils.exceptions import ErrorCodes, NodeConnectionError, RpcError

CHAIN_ID = 31337
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
RUNTIME_CODE = "0x60003560e01c"


class MockDevChain:
    """
    Minimal JSON-RPC endpoint answering the read calls RpcClient makes.

    Unknown methods get a -32601 error; `http_status` forces an HTTP failure.
    """

    def __init__(self):
        self.block_number = 3
        self.http_status = 200
        self.requests = []
        self._server: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def rpc_url(self) -> str:
        return f"http://127.0.0.1:{self._server.server_address[1]}"

    def handle_request(self, body: Dict[str, Any]) -> Dict[str, Any]:
        method = body.get("method", "")
        params = body.get("params", [])
        req_id = body.get("id", 1)
        self.requests.append(body)

        if method == "eth_chainId":
            result = hex(CHAIN_ID)
        elif method == "eth_blockNumber":
            result = hex(self.block_number)
        elif method == "eth_getCode":
            result = RUNTIME_CODE if params[0] == CONTRACT_ADDRESS else "0x"
        else:
            return {
                "jsonrpc": "2.0",
                "id": req_id,
                "error": {"code": -32601, "message": f"Method {method} not found"},
            }
        return {"jsonrpc": "2.0", "id": req_id, "result": result}

    def start(self) -> None:
        chain = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self):
                length = int(self.headers.get("Content-Length", 0))
                body = json.loads(self.rfile.read(length))
                if chain.http_status != 200:
                    payload = b"unavailable"
                    self.send_response(chain.http_status)
                else:
                    payload = json.dumps(chain.handle_request(body)).encode()
                    self.send_response(200)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(payload)))
                self.end_headers()
                self.wfile.write(payload)

            def log_message(self, format, *args):
                pass

        self._server = HTTPServer(("127.0.0.1", 0), Handler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None


@pytest.fixture
def dev_chain():
    chain = MockDevChain()
    chain.start()
    yield chain
    chain.stop()


def _unused_url() -> str:
    server = HTTPServer(("127.0.0.1", 0), BaseHTTPRequestHandler)
    port = server.server_address[1]
    server.server_close()
    return f"http://127.0.0.1:{port}"


class TestRpcClient:
    """JSON-RPC reads and error mapping"""

    @pytest.mark.asyncio
    async def test_reads(self, dev_chain):
        async with RpcClient(dev_chain.rpc_url) as client:
            assert await client.get_chain_id() == CHAIN_ID
            assert await client.get_block_number() == 3
            assert await client.get_code(CONTRACT_ADDRESS.lower()) == RUNTIME_CODE

        ids = [request["id"] for request in dev_chain.requests]
        assert ids == sorted(set(ids))
        # addresses are sent checksummed
        assert dev_chain.requests[2]["params"][0] == CONTRACT_ADDRESS

    @pytest.mark.asyncio
    async def test_rpc_error(self, dev_chain):
        async with RpcClient(dev_chain.rpc_url) as client:
            with pytest.raises(RpcError) as exc_info:
                await client.send_request("eth_unknown")

        assert exc_info.value.details["rpc_code"] == -32601
        assert exc_info.value.details["method"] == "eth_unknown"

    @pytest.mark.asyncio
    async def test_http_error(self, dev_chain):
        dev_chain.http_status = 503

        async with RpcClient(dev_chain.rpc_url) as client:
            with pytest.raises(RpcError, match="HTTP 503"):
                await client.get_chain_id()

    @pytest.mark.asyncio
    async def test_unreachable_node(self):
        async with RpcClient(_unused_url(), timeout=2) as client:
            with pytest.raises(NodeConnectionError) as exc_info:
                await client.get_chain_id()

        assert exc_info.value.code == ErrorCodes.NODE_CONNECTION_FAILED

    @pytest.mark.asyncio
    async def test_health_check(self, dev_chain):
        async with RpcClient(dev_chain.rpc_url) as client:
            health = await client.health_check()

        assert health == {
            "status": "healthy",
            "url": dev_chain.rpc_url,
            "chain_id": CHAIN_ID,
            "block_number": 3,
        }

    @pytest.mark.asyncio
    async def test_health_check_unreachable(self):
        url = _unused_url()
        async with RpcClient(url, timeout=2) as client:
            health = await client.health_check()

        assert health["status"] == "unreachable"
        assert health["url"] == url
        assert "Cannot reach" in health["error"]

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        client = RpcClient("http://127.0.0.1:1")

        with pytest.raises(RuntimeError, match="async with"):
            await client.get_chain_id()
