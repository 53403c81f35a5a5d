import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from web3 import Web3

from ...utils.common import hex_to_int
from ...utils.exceptions import ErrorCodes, NodeConnectionError, RpcError

LOG = logging.getLogger(__name__)


class RpcClient:
    """Minimal async JSON-RPC client used for pre-flight and post-deploy checks"""

    def __init__(self, rpc_url: str, timeout: float = 30.0):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None

    async def send_request(self, method: str, params: List[Any] = None) -> Any:
        """Send a JSON-RPC request and return its result

        Raises:
            NodeConnectionError: The endpoint could not be reached
            RpcError: HTTP error status or JSON-RPC error object
        """
        if not self.session:
            raise RuntimeError("Client not initialized. Use async with statement.")

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._request_id
        }

        try:
            async with self.session.post(self.rpc_url, json=payload) as response:
                if response.status != 200:
                    text = await response.text()
                    raise RpcError(
                        f"HTTP {response.status}: {text}",
                        method=method,
                        rpc_code=response.status
                    )
                result = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise RpcError(
                f"{method} timed out after {self.timeout}s",
                method=method,
                code=ErrorCodes.RPC_TIMEOUT,
                cause=e
            ) from e
        except aiohttp.ClientConnectionError as e:
            raise NodeConnectionError(
                f"Cannot reach {self.rpc_url}: {e}",
                url=self.rpc_url,
                cause=e
            ) from e
        except (aiohttp.ClientError, json.JSONDecodeError) as e:
            raise RpcError(f"Invalid response to {method}: {e}", method=method, cause=e) from e

        if "error" in result:
            error = result["error"]
            raise RpcError(
                f"RPC Error: {error.get('message', str(error))}",
                method=method,
                rpc_code=error.get("code")
            )

        return result.get("result")

    async def get_chain_id(self) -> int:
        return hex_to_int(await self.send_request("eth_chainId"))

    async def get_block_number(self) -> int:
        return hex_to_int(await self.send_request("eth_blockNumber"))

    async def get_code(self, address: str, block: str = "latest") -> str:
        address = Web3.to_checksum_address(address)
        return await self.send_request("eth_getCode", [address, block])

    async def health_check(self) -> Dict[str, Any]:
        """Check the node is reachable; never raises, reports the failure in the result"""
        try:
            chain_id = await self.get_chain_id()
            block_number = await self.get_block_number()
        except (NodeConnectionError, RpcError) as e:
            LOG.debug(f"Health check against {self.rpc_url} failed: {e}")
            return {"status": "unreachable", "url": self.rpc_url, "error": str(e)}

        return {
            "status": "healthy",
            "url": self.rpc_url,
            "chain_id": chain_id,
            "block_number": block_number
        }
