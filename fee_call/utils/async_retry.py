"""
Retry wrapper for idempotent chain reads

Code checks and view calls go through ``read_retry``. Transactions never do:
a send that fails is reported to the caller and not repeated.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from .exceptions import NodeConnectionError, RpcError

T = TypeVar('T')
LOG = logging.getLogger(__name__)

TRANSIENT_ERRORS = (NodeConnectionError, RpcError, ConnectionError, TimeoutError)


class AsyncRetry:
    """Re-awaits a read on transient node errors, backing off exponentially"""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retry_on: Optional[Tuple[Type[Exception], ...]] = None,
        stop_on: Optional[Tuple[Type[Exception], ...]] = None
    ):
        """
        Args:
            max_retries: Attempts in total, the first one included
            base_delay: Seconds to wait after the first failure
            max_delay: Upper bound for a single wait
            exponential_base: Growth factor between waits
            jitter: Spread each wait by up to 25% either way
            retry_on: Exception types worth another attempt
            stop_on: Exception types re-raised at once even if listed in retry_on
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on or TRANSIENT_ERRORS
        self.stop_on = stop_on or ()

    def delay_for(self, failures: int) -> float:
        """Wait before the next attempt, given how many attempts failed so far"""
        delay = self.base_delay * self.exponential_base ** (failures - 1)
        if self.jitter:
            delay *= random.uniform(0.75, 1.25)
        return min(delay, self.max_delay)

    def is_retryable(self, error: Exception) -> bool:
        return isinstance(error, self.retry_on) and not isinstance(error, self.stop_on)

    async def execute(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Await ``func(*args, **kwargs)`` until it succeeds or attempts run out.

        Raises:
            The last error once max_retries attempts failed, or any error
            that is not retryable right away
        """
        failures = 0
        while True:
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                failures += 1
                if not self.is_retryable(e) or failures >= self.max_retries:
                    if failures > 1:
                        LOG.error(f"Giving up after {failures} attempts: {type(e).__name__}: {e}")
                    raise

                delay = self.delay_for(failures)
                LOG.warning(
                    f"Attempt {failures}/{self.max_retries} failed ({type(e).__name__}: {e}), "
                    f"retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
            else:
                if failures:
                    LOG.info(f"Read succeeded after {failures} failed attempt(s)")
                return result


read_retry = AsyncRetry(max_retries=3, base_delay=0.5, max_delay=5.0)
