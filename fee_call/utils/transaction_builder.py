"""
Transaction builder for the fee-call toolkit

Builds, signs and sends raw transactions from a local account, then waits for
the receipt.

Design Notes:
- Supports both EIP-1559 and legacy fee fields
- Gas estimation with padding when no explicit limit is given
- Signing happens locally with eth-account; only the raw transaction is sent
- Synchronous Web3 calls run in a thread pool (run_sync) so the event loop
  is never blocked
- A send is never retried: waiting for the receipt is the only suspend point
"""

import asyncio
import functools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, Union

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TransactionNotFound
from web3.types import TxParams, TxReceipt, Wei

from .common import to_0x_hex
from .exceptions import ErrorCodes, TransactionError

LOG = logging.getLogger(__name__)

T = TypeVar('T')

# Shared thread pool for Web3 sync calls
_web3_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="web3_sync_")

MIN_GAS_LIMIT = 21000
FALLBACK_GAS_PRICE = 20_000_000_000  # 20 gwei


async def run_sync(func: Callable[..., T], *args, **kwargs) -> T:
    """
    Run a synchronous function in a thread pool to avoid blocking the event loop.

    Args:
        func: Synchronous function to run
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func
    """
    loop = asyncio.get_running_loop()
    partial_func = functools.partial(func, *args, **kwargs)
    return await loop.run_in_executor(_web3_executor, partial_func)


@dataclass
class TransactionOptions:
    """Options for transaction construction"""
    gas_limit: Optional[int] = None
    max_fee_per_gas: Optional[int] = None  # EIP-1559
    max_priority_fee_per_gas: Optional[int] = None  # EIP-1559
    gas_price: Optional[int] = None  # legacy
    nonce: Optional[int] = None
    value: int = 0
    chain_id: Optional[int] = None
    tx_type: Optional[int] = None  # 0 legacy, 2 EIP-1559


@dataclass
class TransactionResult:
    """Result of a transaction"""
    tx_hash: str
    tx_receipt: Optional[TxReceipt] = None
    success: bool = False
    error: Optional[str] = None
    gas_used: Optional[int] = None
    block_number: Optional[int] = None
    timestamp: Optional[datetime] = None


class TransactionBuilder:
    """
    Builds, signs, and sends transactions for a single local account.
    """

    def __init__(
        self,
        web3: Web3,
        account: LocalAccount,
        default_options: Optional[TransactionOptions] = None
    ):
        """
        Initialize transaction builder.

        Args:
            web3: Web3 instance for blockchain interaction
            account: Account to sign transactions with
            default_options: Default transaction options
        """
        self.web3 = web3
        self.account = account
        self.default_options = default_options or TransactionOptions()

        self._nonce_cache: Dict[str, int] = {}
        self._last_nonce_update: Optional[datetime] = None

    async def get_nonce(self, refresh: bool = False) -> int:
        """
        Get the next nonce for the account.

        Args:
            refresh: Force refresh nonce from blockchain

        Returns:
            Next nonce to use
        """
        address = self.account.address

        if not refresh and address in self._nonce_cache:
            # Cached nonce is trusted for 30 seconds
            if self._last_nonce_update and \
               (datetime.now() - self._last_nonce_update).seconds < 30:
                return self._nonce_cache[address]

        try:
            pending_count = await run_sync(
                self.web3.eth.get_transaction_count,
                address,
                'pending'
            )
        except Exception as e:
            raise TransactionError(
                f"Failed to get nonce for {address}: {e}",
                from_address=address,
                cause=e
            ) from e

        self._nonce_cache[address] = pending_count
        self._last_nonce_update = datetime.now()
        return pending_count

    async def estimate_gas(
        self,
        transaction: TxParams,
        padding: float = 1.2
    ) -> int:
        """
        Estimate gas required for a transaction.

        Args:
            transaction: Transaction to estimate gas for
            padding: Multiplier applied to the node's estimate

        Returns:
            Estimated gas limit with padding
        """
        tx_copy = dict(transaction)
        tx_copy.setdefault('from', self.account.address)

        for key in ('gas', 'gasLimit', 'maxFeePerGas', 'maxPriorityFeePerGas', 'gasPrice', 'nonce'):
            tx_copy.pop(key, None)

        try:
            gas_estimate = await run_sync(self.web3.eth.estimate_gas, tx_copy)
        except Exception as e:
            raise TransactionError(
                f"Gas estimation failed: {e}",
                from_address=self.account.address,
                to_address=transaction.get('to'),
                cause=e
            ) from e

        gas_limit = max(int(gas_estimate * padding), MIN_GAS_LIMIT)
        LOG.debug(f"Gas estimate: {gas_estimate} -> {gas_limit} (with padding)")
        return gas_limit

    def _merge_options(self, options: Optional[TransactionOptions]) -> TransactionOptions:
        opts = self.default_options
        if not options:
            return opts
        return TransactionOptions(
            gas_limit=options.gas_limit or opts.gas_limit,
            max_fee_per_gas=options.max_fee_per_gas or opts.max_fee_per_gas,
            max_priority_fee_per_gas=options.max_priority_fee_per_gas or opts.max_priority_fee_per_gas,
            gas_price=options.gas_price or opts.gas_price,
            nonce=options.nonce if options.nonce is not None else opts.nonce,
            value=options.value or opts.value,
            chain_id=options.chain_id or opts.chain_id,
            tx_type=options.tx_type if options.tx_type is not None else opts.tx_type
        )

    async def build_transaction(
        self,
        to: str,
        data: Optional[Union[bytes, str]] = None,
        options: Optional[TransactionOptions] = None,
        **kwargs
    ) -> TxParams:
        """
        Build a transaction with proper defaults.

        Args:
            to: Recipient address
            data: Call data
            options: Transaction options to override defaults
            **kwargs: Additional transaction parameters

        Returns:
            Complete transaction dictionary
        """
        opts = self._merge_options(options)

        tx: TxParams = {
            'to': Web3.to_checksum_address(to),
            'value': Wei(opts.value),
            'data': to_0x_hex(data) if data else '0x'
        }

        if opts.chain_id:
            tx['chainId'] = opts.chain_id
        else:
            tx['chainId'] = await run_sync(lambda: self.web3.eth.chain_id)

        if opts.nonce is not None:
            tx['nonce'] = opts.nonce
        else:
            tx['nonce'] = await self.get_nonce()

        if opts.tx_type == 2 or (opts.tx_type is None and opts.max_fee_per_gas):
            # EIP-1559 transaction
            if opts.max_fee_per_gas:
                tx['maxFeePerGas'] = Wei(opts.max_fee_per_gas)
            if opts.max_priority_fee_per_gas:
                tx['maxPriorityFeePerGas'] = Wei(opts.max_priority_fee_per_gas)
        else:
            # Legacy transaction
            if opts.gas_price:
                tx['gasPrice'] = Wei(opts.gas_price)
            else:
                try:
                    tx['gasPrice'] = await run_sync(lambda: self.web3.eth.gas_price)
                except Exception as e:
                    LOG.warning(f"Could not get gas price, using fallback: {e}")
                    tx['gasPrice'] = Wei(FALLBACK_GAS_PRICE)

        if opts.gas_limit:
            tx['gas'] = opts.gas_limit
        else:
            tx['gas'] = await self.estimate_gas(tx)

        tx.update(kwargs)
        return tx

    def sign_transaction(self, transaction: TxParams) -> Tuple[str, bytes]:
        """
        Sign a transaction with the account's private key.

        Returns:
            Tuple of (raw transaction hex, raw transaction bytes)
        """
        if 'from' in transaction and transaction['from'] != self.account.address:
            raise TransactionError(
                f"Transaction from address {transaction['from']} does not match "
                f"account address {self.account.address}",
                from_address=transaction['from'],
                code=ErrorCodes.TRANSACTION_SIGNING_FAILED
            )

        try:
            signed_tx = self.account.sign_transaction(transaction)
        except Exception as e:
            raise TransactionError(
                f"Failed to sign transaction: {e}",
                from_address=self.account.address,
                code=ErrorCodes.TRANSACTION_SIGNING_FAILED,
                cause=e
            ) from e

        # web3/eth-account renamed rawTransaction -> raw_transaction
        raw_tx = getattr(signed_tx, 'raw_transaction', None) or getattr(signed_tx, 'rawTransaction', None)
        return to_0x_hex(raw_tx), bytes(raw_tx)

    async def send_transaction(
        self,
        transaction: TxParams,
        wait_for_receipt: bool = True,
        timeout: float = 120.0,
        poll_latency: float = 0.5
    ) -> TransactionResult:
        """
        Sign and send a transaction.

        Args:
            transaction: Transaction to send
            wait_for_receipt: Whether to wait for transaction receipt
            timeout: Timeout for waiting for receipt
            poll_latency: Polling interval for receipt

        Returns:
            TransactionResult with receipt information
        """
        _, raw_tx = self.sign_transaction(transaction)

        try:
            tx_hash = await run_sync(self.web3.eth.send_raw_transaction, raw_tx)
        except Exception as e:
            raise TransactionError(
                f"Failed to send transaction: {e}",
                from_address=self.account.address,
                to_address=transaction.get('to'),
                cause=e
            ) from e

        result = TransactionResult(
            tx_hash=to_0x_hex(tx_hash),
            timestamp=datetime.now()
        )

        if 'nonce' in transaction:
            self._nonce_cache[self.account.address] = transaction['nonce'] + 1

        if wait_for_receipt:
            LOG.info(f"Waiting for transaction receipt: {result.tx_hash}")

            receipt = await self._wait_for_receipt(
                tx_hash,
                timeout=timeout,
                poll_latency=poll_latency
            )

            result.tx_receipt = receipt
            result.success = bool(receipt['status'])
            result.gas_used = receipt['gasUsed']
            result.block_number = receipt['blockNumber']

            if result.success:
                LOG.info(f"Transaction successful: {result.tx_hash}")
            else:
                result.error = "Transaction reverted"
                LOG.error(f"Transaction failed: {result.tx_hash}")

        return result

    async def _wait_for_receipt(
        self,
        tx_hash,
        timeout: float,
        poll_latency: float
    ) -> TxReceipt:
        """Poll for the receipt until it exists or the timeout expires"""
        start_time = time.time()

        while True:
            try:
                receipt = await run_sync(self.web3.eth.get_transaction_receipt, tx_hash)
                if receipt is not None:
                    return receipt
            except TransactionNotFound:
                pass

            if time.time() - start_time > timeout:
                raise TransactionError(
                    f"Transaction receipt timeout after {timeout}s",
                    tx_hash=to_0x_hex(tx_hash),
                    from_address=self.account.address,
                    code=ErrorCodes.TRANSACTION_TIMEOUT
                )

            await asyncio.sleep(poll_latency)

    async def build_and_send_tx(
        self,
        to: str,
        data: Optional[Union[bytes, str]] = None,
        options: Optional[TransactionOptions] = None,
        wait_for_receipt: bool = True,
        timeout: float = 120.0,
        **kwargs: Any
    ) -> TransactionResult:
        """
        Build and send a transaction in one call.

        Args:
            to: Recipient address
            data: Call data
            options: Transaction options
            wait_for_receipt: Whether to wait for receipt
            timeout: Receipt wait timeout in seconds
            **kwargs: Additional transaction parameters

        Returns:
            TransactionResult with execution details
        """
        tx = await self.build_transaction(
            to=to,
            data=data,
            options=options,
            **kwargs
        )

        return await self.send_transaction(
            tx,
            wait_for_receipt=wait_for_receipt,
            timeout=timeout
        )
