"""
FeeContract helpers: encode a setFeePercentage call and run the
deploy -> call -> read-back sequence against a development chain.

Fee values are percentages scaled by 100, so 500 means 5.00%.
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3

from ..core.interface import Interface
from ..utils.async_retry import read_retry
from ..utils.common import format_timestamp, to_0x_hex
from ..utils.contract_deployer import ContractDeployer, DeploymentOptions
from ..utils.exceptions import ContractError, ErrorCodes, TransactionError
from ..utils.transaction_builder import TransactionOptions, run_sync

LOG = logging.getLogger(__name__)

FEE_CONTRACT_NAME = "FeeContract"
SET_FEE_PERCENTAGE_ABI = ["function setFeePercentage(uint256 newFeePercentage)"]
DEFAULT_FEE_PERCENTAGE = 500
FEE_SCALE = 100


def encode_set_fee_percentage(fee_percentage: int = DEFAULT_FEE_PERCENTAGE) -> bytes:
    """Call data for setFeePercentage(fee_percentage)"""
    iface = Interface(SET_FEE_PERCENTAGE_ABI)
    return iface.encode_function_data("setFeePercentage", [fee_percentage])


def format_fee_percentage(fee_percentage: int) -> str:
    """500 -> '5.00%', -250 -> '-2.50%'"""
    sign = "-" if fee_percentage < 0 else ""
    whole, fraction = divmod(abs(fee_percentage), FEE_SCALE)
    return f"{sign}{whole}.{fraction:02d}%"


@dataclass
class FeeCallResult:
    """Outcome of a deploy-and-call run"""
    contract_address: str
    deploy_tx_hash: str
    call_tx_hash: str
    call_data: str
    requested_fee: int
    fee_percentage: int
    deploy_gas_used: Optional[int] = None
    call_gas_used: Optional[int] = None
    call_block_number: Optional[int] = None
    finished_at: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.fee_percentage == self.requested_fee

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success"] = self.success
        data["fee_percentage_display"] = format_fee_percentage(self.fee_percentage)
        return data


async def deploy_and_call(
    web3: Web3,
    account: LocalAccount,
    fee_percentage: int = DEFAULT_FEE_PERCENTAGE,
    contract_name: str = FEE_CONTRACT_NAME,
    contracts_dir: Optional[Path] = None,
    gas_limit: Optional[int] = None,
    receipt_timeout: float = 120.0,
    confirmations: int = 1
) -> FeeCallResult:
    """
    Deploy FeeContract, send a raw setFeePercentage transaction, and read the
    stored value back.

    Raises:
        AbiError: If fee_percentage cannot be encoded as uint256
        ContractError: If the deployment or the read-back fails
        TransactionError: If the call transaction fails or reverts
    """
    # Encode first so a bad fee fails before anything is sent
    call_data = encode_set_fee_percentage(fee_percentage)

    deployer = ContractDeployer(web3, account)

    LOG.info(f"Deploying {contract_name}...")
    deployment = await deployer.deploy(
        contract_name,
        options=DeploymentOptions(
            gas_limit=gas_limit,
            timeout=receipt_timeout,
            confirmations=confirmations
        ),
        contracts_dir=contracts_dir
    )
    if not deployment.success:
        raise ContractError(
            f"Deployment failed: {deployment.error}",
            contract_name=contract_name,
            address=deployment.contract_address
        )
    LOG.info(f"Contract deployed at: {deployment.contract_address}")

    LOG.info(
        f"Calling setFeePercentage with {format_fee_percentage(fee_percentage)} "
        f"({fee_percentage})..."
    )
    tx_result = await deployer.tx_builder.build_and_send_tx(
        to=deployment.contract_address,
        data=call_data,
        options=TransactionOptions(gas_limit=gas_limit),
        timeout=receipt_timeout
    )
    if not tx_result.success:
        raise TransactionError(
            f"setFeePercentage transaction reverted: {tx_result.tx_hash}",
            tx_hash=tx_result.tx_hash,
            from_address=account.address,
            to_address=deployment.contract_address,
            code=ErrorCodes.TRANSACTION_REVERTED
        )
    LOG.info(f"Transaction hash: {tx_result.tx_hash}")

    try:
        new_fee = await read_retry.execute(
            run_sync, deployment.contract.functions.feePercentage().call
        )
    except Exception as e:
        raise ContractError(
            f"Failed to read feePercentage(): {e}",
            contract_name=contract_name,
            address=deployment.contract_address,
            code=ErrorCodes.CONTRACT_CALL_FAILED,
            cause=e
        ) from e
    LOG.info(f"New fee percentage: {new_fee}")

    if new_fee != fee_percentage:
        LOG.warning(f"Read back {new_fee}, expected {fee_percentage}")

    return FeeCallResult(
        contract_address=deployment.contract_address,
        deploy_tx_hash=deployment.transaction_hash,
        call_tx_hash=tx_result.tx_hash,
        call_data=to_0x_hex(call_data),
        requested_fee=fee_percentage,
        fee_percentage=new_fee,
        deploy_gas_used=deployment.gas_used,
        call_gas_used=tx_result.gas_used,
        call_block_number=tx_result.block_number,
        finished_at=format_timestamp()
    )
