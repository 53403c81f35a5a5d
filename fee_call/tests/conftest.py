"""
Fixtures for fee-call tests.

Dev-chain tests use the `web3` fixture. It connects to --rpc-url when given,
otherwise to an anvil started for the session. Without either it runs on a
fresh in-process eth-tester chain for every test.
"""

import logging
from pathlib import Path
from typing import Generator, Optional

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import EthereumTesterProvider, Web3

from ..core.interface import Interface
from ..helpers.fee_contract import SET_FEE_PERCENTAGE_ABI
from ..utils.anvil_manager import (
    ANVIL_DEPLOYER,
    ANVIL_PRIVATE_KEY,
    AnvilManager,
    anvil_available,
)

LOG = logging.getLogger(__name__)

DEPLOYER_FUNDING = 1000 * 10**18


@pytest.fixture
def fee_interface() -> Interface:
    return Interface(SET_FEE_PERCENTAGE_ABI)


@pytest.fixture(scope="session")
def deployer_account() -> LocalAccount:
    """Anvil's first pre-funded account"""
    return Account.from_key(ANVIL_PRIVATE_KEY)


@pytest.fixture(scope="session")
def output_dir(request) -> Path:
    """Get output directory and create if needed."""
    output_path = Path(request.config.getoption("--output-dir"))
    output_path.mkdir(parents=True, exist_ok=True)
    return output_path


@pytest.fixture(scope="session")
def dev_chain_url(request) -> Generator[Optional[str], None, None]:
    """JSON-RPC URL of the dev chain, None when tests run on the in-process EVM"""
    rpc_url = request.config.getoption("--rpc-url")
    if rpc_url:
        LOG.info(f"Using dev chain at {rpc_url}")
        yield rpc_url
        return

    if not anvil_available():
        LOG.info("anvil not installed and no --rpc-url given, using the in-process EVM")
        yield None
        return

    with AnvilManager() as anvil:
        try:
            anvil.start(port=request.config.getoption("--anvil-port"))
        except RuntimeError as e:
            LOG.warning(f"Could not start anvil ({e}), using the in-process EVM")
            yield None
            return
        yield anvil.rpc_url


def _in_process_web3() -> Web3:
    """Fresh eth-tester chain with the Anvil deployer funded from a tester account"""
    w3 = Web3(EthereumTesterProvider())
    tx_hash = w3.eth.send_transaction({
        "from": w3.eth.accounts[0],
        "to": ANVIL_DEPLOYER,
        "value": DEPLOYER_FUNDING,
        "gas": 21000,
    })
    w3.eth.wait_for_transaction_receipt(tx_hash)
    return w3


@pytest.fixture
def web3(dev_chain_url: Optional[str]) -> Web3:
    if dev_chain_url is None:
        return _in_process_web3()

    w3 = Web3(Web3.HTTPProvider(dev_chain_url))
    if not w3.is_connected():
        pytest.skip(f"Dev chain at {dev_chain_url} is not reachable")
    return w3


@pytest.fixture
def rpc_url(dev_chain_url: Optional[str]) -> str:
    """For tests that talk JSON-RPC directly and cannot use the in-process EVM"""
    if dev_chain_url is None:
        pytest.skip("needs anvil or --rpc-url")
    return dev_chain_url
