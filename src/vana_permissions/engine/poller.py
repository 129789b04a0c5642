"""
Confirmation polling for asynchronous relayer operations.

State machine per operation id:

    Pending -> Confirmed   relayer reports ``confirmed``; returns the hash
            -> Failed      relayer reports ``error``; raises RelayerError
            -> Cancelled   cancellation token set; raises PollingCancelledError
            -> TimedOut    budget exhausted; raises TransactionPendingError

Ticks for one operation id are strictly sequential. Cancellation is checked
at tick boundaries only.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from ..schemas.bases import OperationStatus
from ..schemas.options import PollingOptions
from ..schemas.relayer import (
    ConfirmedResponse,
    DirectResponse,
    ErrorResponse,
    PendingResponse,
    StatusCheckRequest,
    SubmittedResponse,
    LegacySignedResponse,
    parse_relayer_response,
)
from ..utils import logger
from .exceptions import (
    NetworkError,
    PollingCancelledError,
    RelayerError,
    TransactionPendingError,
    VanaError,
    reraise_or_wrap,
)


RelayCallback = Callable[[Any], Awaitable[Any]]


class CancellationToken:
    """Cooperative cancellation flag checked by the poller between ticks."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class PollOutcome:
    hash: str
    receipt: Optional[Dict[str, Any]] = None


def _to_status(response: Any) -> OperationStatus:
    if isinstance(response, ConfirmedResponse):
        return OperationStatus.CONFIRMED
    if isinstance(response, ErrorResponse):
        return OperationStatus.FAILED
    if isinstance(response, (SubmittedResponse, LegacySignedResponse)):
        return OperationStatus.SUBMITTED
    if isinstance(response, DirectResponse) and isinstance(response.result, dict):
        queue_status = response.result.get("status")
        if queue_status == "queued":
            return OperationStatus.QUEUED
        if queue_status == "processing":
            return OperationStatus.PROCESSING
    return OperationStatus.PENDING


class ConfirmationPoller:
    """
    Polls relayer status with exponential backoff and jitter.

    Args:
        relay: The relayer callback; receives ``StatusCheckRequest`` models.
        options: Default schedule, overridable per call.
        sleep: Awaitable delay function.
        clock: Monotonic time source, seconds.
        rng: Uniform [0, 1) source for jitter.
    """

    def __init__(
        self,
        relay: RelayCallback,
        options: Optional[PollingOptions] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
    ):
        self._relay = relay
        self.options = options or PollingOptions()
        self._sleep = sleep
        self._clock = clock
        self._rng = rng

    def _jittered(self, interval: float, jitter: float) -> float:
        spread = interval * jitter
        return max(0.0, interval + (self._rng() - 0.5) * 2 * spread)

    async def wait_for_confirmation(
        self,
        operation_id: str,
        options: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> PollOutcome:
        """
        Poll until the operation confirms, fails, is cancelled or times out.

        Raises:
            RelayerError: The relayer reported failure, or replied with an
                unrecognized shape.
            PollingCancelledError: ``cancel`` was set.
            TransactionPendingError: The operation did not confirm within
                ``options.timeout``; resumable with the same operation id.
            NetworkError: More than ``max_consecutive_errors`` transport
                failures in a row.
        """
        opts = options or self.options
        deadline = self._clock() + opts.timeout
        interval = opts.initial_interval
        consecutive_errors = 0
        current = OperationStatus.PENDING
        last_status: Optional[Dict[str, Any]] = None

        while True:
            if cancel is not None and cancel.cancelled:
                raise PollingCancelledError(operation_id)
            if self._clock() >= deadline:
                raise TransactionPendingError(
                    operation_id,
                    f"did not confirm within {opts.timeout}s",
                    last_status,
                )

            try:
                raw = await self._relay(StatusCheckRequest(operation_id=operation_id))
                consecutive_errors = 0
            except NetworkError as e:
                consecutive_errors += 1
                logger.debug(f"Status check for {operation_id} failed ({consecutive_errors}): {e}")
                # the tick still reports, carrying the last known status
                if opts.on_status_update is not None:
                    opts.on_status_update(current, {"error": str(e), "attempt": consecutive_errors})
                if consecutive_errors > opts.max_consecutive_errors:
                    raise NetworkError(
                        f"Failed to poll {operation_id} after {consecutive_errors} attempts: {e.message}",
                        e,
                    ) from e
                raw = None
            except VanaError:
                raise
            except Exception as e:
                raise reraise_or_wrap(e, f"Status check for {operation_id} failed") from e

            if raw is not None:
                try:
                    response = parse_relayer_response(raw)
                except ValidationError as e:
                    raise RelayerError("Unexpected relayer response shape", response=raw) from e

                current = _to_status(response)
                info = response.model_dump(mode="json", by_alias=True)
                last_status = {"status": current.value, **info}
                logger.debug(f"Poll {operation_id}: {current.value}")
                if opts.on_status_update is not None:
                    opts.on_status_update(current, info)

                if current.is_terminal:
                    if current is OperationStatus.CONFIRMED:
                        return PollOutcome(hash=response.hash, receipt=response.receipt)
                    raise RelayerError(response.error, response=info)

            remaining = deadline - self._clock()
            if remaining <= 0:
                continue
            await self._sleep(min(self._jittered(interval, opts.jitter), remaining))
            interval = min(interval * opts.multiplier, opts.max_interval)
