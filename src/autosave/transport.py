"""
Transport pipeline: retry with backoff, composition, and callable adapters.

A Transport is any ``async (payload, context) -> SaveResult`` callable. The
helpers here wrap transports into new transports, so they stack freely:

    transport = with_retry(compose_transports(save_draft, save_audit))
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from autosave.config import RetryConfig
from autosave.errors import AutosaveError, CancellationError, TransportError
from autosave.log import get_logger
from autosave.metrics import MetricsCollector
from autosave.scheduler import AsyncioScheduler, Scheduler
from autosave.snapshot_model import CancellationToken, SaveContext, SavePayload, SaveResult

logger = logging.getLogger(__name__)

Transport = Callable[[SavePayload, Optional[SaveContext]], Awaitable[SaveResult]]


async def _interruptible_sleep(scheduler: Scheduler, delay_ms: float, token: Optional[CancellationToken]) -> None:
    """Sleep for delay_ms, returning early if the token is cancelled."""
    if token is None:
        await scheduler.sleep(delay_ms)
        return

    sleeper = asyncio.ensure_future(scheduler.sleep(delay_ms))
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, waiter):
            if not task.done():
                task.cancel()
        await asyncio.gather(sleeper, waiter, return_exceptions=True)


def with_retry(
    transport: Transport,
    config: Optional[RetryConfig] = None,
    *,
    scheduler: Optional[Scheduler] = None,
    metrics: Optional[MetricsCollector] = None,
    log: Optional[logging.LoggerAdapter] = None,
) -> Transport:
    """Wrap transport with exponential-backoff retries.

    Up to ``config.max_retries + 1`` attempts are made. Each attempt sees
    ``retry_count`` equal to the incoming context's count plus the attempt
    index. Both a raised exception and ``ok=False`` count as a failed attempt.

    Cancellation is checked before every backoff sleep and again after it; the
    sleep itself ends early when the token is cancelled. A cancelled save
    returns a CancellationError failure without further attempts.

    Returns:
        A transport that never raises for transport errors; exhaustion yields
        ``failure(TransportError("Transport failed after N attempts"))``.
    """
    config = config or RetryConfig()
    scheduler = scheduler or AsyncioScheduler()
    log = log or get_logger("transport")
    attempts = config.max_retries + 1

    async def retrying_transport(payload: SavePayload, context: Optional[SaveContext] = None) -> SaveResult:
        context = context or SaveContext()
        token = context.token
        last_error: Optional[BaseException] = None

        for attempt in range(attempts):
            attempt_context = context.with_retry_count(context.retry_count + attempt)
            try:
                result = await transport(payload, attempt_context)
            except Exception as e:
                log.debug(f"Attempt {attempt + 1}/{attempts} raised: {e!r}")
                last_error = e
            else:
                if result.ok:
                    if attempt > 0:
                        log.info(f"Save succeeded after {attempt} retries")
                    return result
                log.debug(f"Attempt {attempt + 1}/{attempts} failed: {result.error}")
                last_error = result.error

            if attempt == attempts - 1:
                break

            if token is not None and token.is_cancelled:
                log.debug("Retry cancelled before backoff")
                return SaveResult.failure(CancellationError(original_error=last_error))

            delay_ms = config.compute_delay(attempt)
            if metrics is not None:
                metrics.record_retry()
            log.debug(f"Retrying in {delay_ms:.0f}ms (retry {attempt + 1}/{config.max_retries})")
            await _interruptible_sleep(scheduler, delay_ms, token)

            if token is not None and token.is_cancelled:
                log.debug("Retry cancelled during backoff")
                return SaveResult.failure(CancellationError(original_error=last_error))

        log.warning(f"Transport failed after {attempts} attempts: {last_error}")
        return SaveResult.failure(
            TransportError(
                f"Transport failed after {attempts} attempts",
                attempts=attempts,
                original_error=last_error,
            )
        )

    return retrying_transport


def compose_transports(*transports: Transport) -> Transport:
    """Run transports in order; the first failure short-circuits.

    Returns the last transport's result when all succeed.

    Raises:
        ValueError: If no transports are given
    """
    if not transports:
        raise ValueError("compose_transports requires at least one transport")
    if len(transports) == 1:
        return transports[0]

    async def composed_transport(payload: SavePayload, context: Optional[SaveContext] = None) -> SaveResult:
        result = None
        for index, transport in enumerate(transports):
            result = await transport(payload, context)
            if not result.ok:
                logger.debug(f"Composed transport {index + 1}/{len(transports)} failed, stopping")
                return result
        return result

    return composed_transport


def parallel_transports(*transports: Transport) -> Transport:
    """Run transports concurrently and wait for all of them.

    Any failure (including a raised exception) fails the whole call with a
    TransportError naming every failure. With no transports the call
    succeeds immediately.
    """

    async def parallel_transport(payload: SavePayload, context: Optional[SaveContext] = None) -> SaveResult:
        if not transports:
            return SaveResult.success()

        results = await asyncio.gather(
            *(transport(payload, context) for transport in transports),
            return_exceptions=True,
        )

        errors: List[AutosaveError] = []
        for result in results:
            if isinstance(result, BaseException):
                errors.append(AutosaveError.from_unknown(result))
            elif not result.ok:
                errors.append(result.error)

        if errors:
            messages = ", ".join(error.message for error in errors)
            return SaveResult.failure(
                TransportError(
                    f"{len(errors)} transports failed: {messages}",
                    original_error=errors[0],
                    metadata={'errors': errors},
                )
            )
        return SaveResult.success(metadata={'results': list(results)})

    return parallel_transport


def as_transport(fn: Callable[..., Awaitable[Any]], pass_context: bool = False) -> Transport:
    """Adapt an async callable that raises on error into a Transport.

    Args:
        fn: ``async fn(payload)`` (or ``fn(payload, context)`` with
            pass_context). A returned SaveResult is passed through; any other
            return value is kept under ``metadata["response"]``, and a
            ``"version"`` key of a dict response becomes the result version.
        pass_context: Forward the SaveContext as a second argument
    """

    async def adapted_transport(payload: SavePayload, context: Optional[SaveContext] = None) -> SaveResult:
        try:
            response = await (fn(payload, context) if pass_context else fn(payload))
        except Exception as e:
            return SaveResult.failure(TransportError(str(e) or type(e).__name__, original_error=e))

        if isinstance(response, SaveResult):
            return response
        version = response.get("version") if isinstance(response, dict) else None
        return SaveResult.success(
            version=str(version) if version is not None else None,
            metadata={'response': response},
        )

    return adapted_transport
