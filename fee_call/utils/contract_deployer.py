"""
Contract deployment utility for the fee-call toolkit

Loads compiled contract artifacts and deploys them through the transaction
builder, then checks that code exists at the new address.

Design Notes:
- Artifacts are JSON files with 'abi' and 'bytecode' (forge/hardhat layout)
- Constructor arguments are supported
- Optional extra confirmations after the deployment receipt
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract

from .async_retry import AsyncRetry, read_retry
from .exceptions import ContractError, ErrorCodes
from .transaction_builder import TransactionBuilder, run_sync

LOG = logging.getLogger(__name__)

DEFAULT_CONTRACTS_DIR = Path(__file__).parent.parent / "contracts_data"


@dataclass
class ContractData:
    """Contract bytecode and ABI data"""
    bytecode: str
    abi: List[Dict]
    deployed_bytecode: Optional[str] = None


@dataclass
class DeploymentOptions:
    """Options for contract deployment"""
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    value: int = 0
    confirmations: int = 1
    timeout: float = 120.0
    verify: bool = True


@dataclass
class DeploymentResult:
    """Result of contract deployment"""
    success: bool
    contract_address: Optional[str] = None
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    deploy_time: Optional[float] = None
    error: Optional[str] = None
    contract: Optional[Contract] = None


class ContractDeployer:
    """
    Deploys contracts from compiled artifacts with a single local account.
    """

    def __init__(
        self,
        web3: Web3,
        account: LocalAccount,
        tx_builder: Optional[TransactionBuilder] = None,
        retry_config: Optional[AsyncRetry] = None
    ):
        """
        Initialize contract deployer.

        Args:
            web3: Web3 instance for blockchain interaction
            account: Account to deploy contracts with
            tx_builder: Transaction builder to share nonce state with
            retry_config: Retry configuration for read-only checks
        """
        self.web3 = web3
        self.account = account
        self.tx_builder = tx_builder or TransactionBuilder(web3=web3, account=account)
        self.retry = retry_config or read_retry

        self._contract_cache: Dict[str, ContractData] = {}

    def load_contract_data(
        self,
        contract_name: str,
        contracts_dir: Optional[Path] = None
    ) -> ContractData:
        """
        Load contract data from '<contracts_dir>/<contract_name>.json'.

        Raises:
            ContractError: If contract data is not found or invalid
        """
        if contract_name in self._contract_cache:
            return self._contract_cache[contract_name]

        contract_file = Path(contracts_dir or DEFAULT_CONTRACTS_DIR) / f"{contract_name}.json"

        if not contract_file.exists():
            raise ContractError(
                f"Contract file not found: {contract_file}",
                contract_name=contract_name,
                code=ErrorCodes.CONTRACT_NOT_FOUND
            )

        try:
            with open(contract_file, 'r') as f:
                contract_json = json.load(f)
        except json.JSONDecodeError as e:
            raise ContractError(
                f"Invalid JSON in contract file {contract_file}: {e}",
                contract_name=contract_name,
                code=ErrorCodes.CONTRACT_DATA_INVALID,
                cause=e
            ) from e

        for key in ('bytecode', 'abi'):
            if key not in contract_json:
                raise ContractError(
                    f"Missing '{key}' in contract file {contract_file}",
                    contract_name=contract_name,
                    code=ErrorCodes.CONTRACT_DATA_INVALID
                )

        # forge nests bytecode as {"object": "0x..."}
        bytecode = contract_json['bytecode']
        if isinstance(bytecode, dict):
            bytecode = bytecode.get('object', '')
        deployed_bytecode = contract_json.get('deployedBytecode')
        if isinstance(deployed_bytecode, dict):
            deployed_bytecode = deployed_bytecode.get('object')

        contract_data = ContractData(
            bytecode=bytecode,
            abi=contract_json['abi'],
            deployed_bytecode=deployed_bytecode
        )
        self._contract_cache[contract_name] = contract_data

        LOG.info(f"Loaded contract data for {contract_name}")
        return contract_data

    async def deploy(
        self,
        contract_name: str,
        constructor_args: Optional[List] = None,
        options: Optional[DeploymentOptions] = None,
        contracts_dir: Optional[Path] = None
    ) -> DeploymentResult:
        """
        Deploy a contract by name.

        Failures are reported in the result rather than raised.
        """
        opts = options or DeploymentOptions()
        start_time = asyncio.get_running_loop().time()

        try:
            contract_data = self.load_contract_data(contract_name, contracts_dir)
            result = await self.deploy_from_data(
                contract_data=contract_data,
                constructor_args=constructor_args,
                options=opts
            )
        except Exception as e:
            LOG.error(f"Deployment of {contract_name} failed: {e}")
            return DeploymentResult(
                success=False,
                error=str(e),
                deploy_time=asyncio.get_running_loop().time() - start_time
            )

        result.deploy_time = asyncio.get_running_loop().time() - start_time
        return result

    async def deploy_from_data(
        self,
        contract_data: ContractData,
        constructor_args: Optional[List] = None,
        options: Optional[DeploymentOptions] = None
    ) -> DeploymentResult:
        """
        Deploy a contract from ContractData.

        Raises:
            ContractError: If the deployment transaction cannot be built or sent
        """
        opts = options or DeploymentOptions()

        try:
            factory = self.web3.eth.contract(
                abi=contract_data.abi,
                bytecode=contract_data.bytecode
            )
            deploy_tx = factory.constructor(*(constructor_args or []))

            tx_data = await run_sync(deploy_tx.build_transaction, {
                'from': self.account.address,
                'value': opts.value,
                'nonce': await self.tx_builder.get_nonce()
            })

            if opts.gas_limit:
                tx_data['gas'] = opts.gas_limit
            if opts.gas_price:
                tx_data['gasPrice'] = opts.gas_price
                tx_data.pop('maxFeePerGas', None)
                tx_data.pop('maxPriorityFeePerGas', None)
            if opts.max_fee_per_gas:
                tx_data['maxFeePerGas'] = opts.max_fee_per_gas
            if opts.max_priority_fee_per_gas:
                tx_data['maxPriorityFeePerGas'] = opts.max_priority_fee_per_gas

            result = await self.tx_builder.send_transaction(
                transaction=tx_data,
                wait_for_receipt=True,
                timeout=opts.timeout
            )
        except Exception as e:
            raise ContractError(
                f"Contract deployment failed: {e}",
                cause=e
            ) from e

        if not result.success:
            return DeploymentResult(
                success=False,
                transaction_hash=result.tx_hash,
                error=result.error or "Deployment transaction failed"
            )

        if opts.confirmations > 1:
            await self._wait_for_confirmations(
                result.block_number,
                opts.confirmations - 1,
                timeout=opts.timeout
            )

        contract_address = result.tx_receipt['contractAddress']
        deployed_contract = self.web3.eth.contract(
            address=contract_address,
            abi=contract_data.abi
        )

        is_verified = True
        if opts.verify:
            is_verified = await self._verify_deployment(contract_address)

        return DeploymentResult(
            success=is_verified,
            contract_address=contract_address,
            transaction_hash=result.tx_hash,
            block_number=result.block_number,
            gas_used=result.gas_used,
            error=None if is_verified else f"No contract code at {contract_address}",
            contract=deployed_contract
        )

    async def _wait_for_confirmations(
        self,
        receipt_block: int,
        confirmations: int,
        timeout: float
    ) -> None:
        """Wait until the chain is `confirmations` blocks past the receipt block"""
        target_block = receipt_block + confirmations
        start_time = asyncio.get_running_loop().time()

        current_block = await self.retry.execute(run_sync, lambda: self.web3.eth.block_number)
        while current_block < target_block:
            if asyncio.get_running_loop().time() - start_time > timeout:
                raise ContractError(
                    f"Confirmation timeout: waited {timeout}s for {confirmations} confirmations"
                )
            await asyncio.sleep(1.0)
            current_block = await self.retry.execute(run_sync, lambda: self.web3.eth.block_number)

    async def _verify_deployment(self, address: str) -> bool:
        """Check that code exists at the deployed address"""
        try:
            deployed_code = await self.retry.execute(run_sync, self.web3.eth.get_code, address)
        except Exception as e:
            LOG.warning(f"Contract verification failed: {e}")
            return False
        return len(deployed_code) > 0
