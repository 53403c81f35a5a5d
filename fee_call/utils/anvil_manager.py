"""
Anvil manager for local development runs

Starts and stops a local `anvil` process so the deploy-and-call sequence can
run against a throwaway chain.
"""

import logging
import shutil
import signal
import socket
import subprocess
import time
from typing import List, Optional

LOG = logging.getLogger(__name__)

# Anvil default mnemonic, account 0
ANVIL_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ANVIL_DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DEFAULT_ANVIL_PORT = 8545


def anvil_available() -> bool:
    """True when the anvil binary is on PATH"""
    return shutil.which("anvil") is not None


class AnvilManager:
    """
    Manages an Anvil process.

    Usage:
        with AnvilManager() as anvil:
            anvil.start(port=8546)
            web3 = Web3(Web3.HTTPProvider(anvil.rpc_url))
            ...
    """

    def __init__(self):
        self._process: Optional[subprocess.Popen] = None
        self._port: int = DEFAULT_ANVIL_PORT
        self._rpc_url: str = ""

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    @property
    def port(self) -> int:
        return self._port

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def __enter__(self) -> "AnvilManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def build_command(self, port: int, block_time: Optional[int] = None,
                      chain_id: Optional[int] = None) -> List[str]:
        cmd = ["anvil", "--port", str(port)]
        if block_time is not None:
            cmd.extend(["--block-time", str(block_time)])
        if chain_id is not None:
            cmd.extend(["--chain-id", str(chain_id)])
        return cmd

    def start(self, port: int = DEFAULT_ANVIL_PORT, block_time: Optional[int] = None,
              chain_id: Optional[int] = None, timeout: float = 10.0) -> None:
        """
        Start Anvil local testnet.

        Args:
            port: Port to run Anvil on.
            block_time: Block time in seconds. None = auto-mine (instant).
            chain_id: Chain id override. None = Anvil default (31337).
            timeout: Seconds to wait for the RPC port to open.
        """
        if self.is_running:
            LOG.warning("Anvil already running, stopping first...")
            self.stop()

        if not anvil_available():
            raise RuntimeError("anvil not found on PATH (install Foundry: https://getfoundry.sh)")

        if self._is_port_in_use(port):
            raise RuntimeError(f"Port {port} is already in use")

        self._port = port
        self._rpc_url = f"http://127.0.0.1:{port}"

        if block_time is not None:
            LOG.info(f"Starting Anvil on port {port} (block-time: {block_time}s)...")
        else:
            LOG.info(f"Starting Anvil on port {port} (auto-mine mode)...")

        self._process = subprocess.Popen(
            self.build_command(port, block_time, chain_id),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

        if not self._wait_for_ready(timeout=timeout):
            self.stop()
            raise RuntimeError("Anvil failed to start within timeout")

        LOG.info(f"Anvil running at {self._rpc_url} (PID: {self._process.pid})")

    def stop(self) -> None:
        """Stop Anvil process."""
        if self._process is None:
            return

        LOG.info("Stopping Anvil...")
        try:
            self._process.send_signal(signal.SIGTERM)
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
        finally:
            self._process = None
        LOG.info("Anvil stopped")

    def _wait_for_ready(self, timeout: float = 10.0) -> bool:
        """Wait for Anvil RPC to accept connections."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            if self._process.poll() is not None:
                return False
            if self._is_port_in_use(self._port):
                return True
            time.sleep(0.2)
        return False

    @staticmethod
    def _is_port_in_use(port: int) -> bool:
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=1):
                return True
        except OSError:
            return False
