"""
Base payment client implementing shared concerns: bounded calls, retry, logging.

Provider SDKs are blocking; every call runs in a worker thread under an
overall deadline and is retried by tenacity for transport-level failures
only. Concrete providers subclass and declare which SDK errors are transient.
"""
from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Callable, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from domain.common.exceptions import ServiceUnavailableException


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"
    # Errors worth retrying; asyncio.TimeoutError covers the per-call deadline
    transient_errors: tuple[type[BaseException], ...] = (asyncio.TimeoutError,)

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}

    async def _call(self, operation: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking SDK call with deadline and retry.

        Exhausted transient failures surface as ServiceUnavailableException.
        """
        call = partial(fn, *args, **kwargs)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
                wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
                retry=retry_if_exception_type(self.transient_errors),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        self._log("provider_call_retry", operation=operation, attempt=attempt.retry_state.attempt_number)
                    return await asyncio.wait_for(
                        asyncio.to_thread(call), timeout=self._timeouts_cfg["total"]
                    )
        except self.transient_errors as exc:
            logger.error(
                "provider_unavailable",
                provider=self.provider,
                operation=operation,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise ServiceUnavailableException(
                "Payment provider temporarily unavailable, please retry",
                details={"provider": self.provider, "operation": operation},
            ) from exc

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
