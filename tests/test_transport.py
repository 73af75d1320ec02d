"""
Tests for the transport pipeline.

Tests cover:
- with_retry attempt counting, backoff timing and cancellation
- compose_transports / parallel_transports semantics
- as_transport adapter
"""

import asyncio
import logging

import pytest
from pydantic import ValidationError as PydanticValidationError

from autosave import (
    AutosaveError,
    CancellationError,
    CancellationToken,
    MetricsCollector,
    RetryConfig,
    SaveContext,
    SaveResult,
    TransportError,
    as_transport,
    compose_transports,
    parallel_transports,
    with_retry,
)
from autosave.scheduler import AsyncioScheduler
from autosave.testing import RecordingTransport


class TestRetryConfig:
    """Test backoff configuration."""

    def test_defaults(self):
        config = RetryConfig()
        assert (config.max_retries, config.base_delay_ms, config.max_delay_ms, config.backoff_factor) == (3, 1000, 10000, 2)

    def test_delay_is_capped(self):
        """min(base * factor**attempt, max)."""
        config = RetryConfig(base_delay_ms=1000, max_delay_ms=3000)
        assert [config.compute_delay(a) for a in range(4)] == [1000, 2000, 3000, 3000]

    def test_max_below_base_rejected(self):
        with pytest.raises(PydanticValidationError):
            RetryConfig(base_delay_ms=5000, max_delay_ms=1000)

    def test_frozen(self):
        with pytest.raises(PydanticValidationError):
            RetryConfig().max_retries = 5


class TestWithRetry:
    """Test the retry wrapper under virtual time."""

    @pytest.mark.asyncio
    async def test_always_failing_makes_four_attempts(self, scheduler):
        """max_retries=3 means exactly four attempts."""
        inner = RecordingTransport(default=SaveResult.failure("boom"))
        wrapped = with_retry(inner, RetryConfig(max_retries=3), scheduler=scheduler)

        task = asyncio.ensure_future(wrapped({"a": 1}, SaveContext()))
        await scheduler.advance(1000 + 2000 + 4000)
        result = await task

        assert inner.call_count == 4
        assert result.ok is False
        assert isinstance(result.error, TransportError)
        assert "failed after 4 attempts" in result.error.message
        assert result.error.attempts == 4
        assert result.code == "TRANSPORT_ERROR"
        assert result.error.__cause__.message == "boom"

    @pytest.mark.asyncio
    async def test_backoff_timing(self, scheduler):
        """Nothing is retried before its delay elapses."""
        inner = RecordingTransport(default=SaveResult.failure("boom"))
        wrapped = with_retry(inner, RetryConfig(max_retries=2), scheduler=scheduler)

        task = asyncio.ensure_future(wrapped({}, None))
        await scheduler.advance(999)
        assert inner.call_count == 1
        await scheduler.advance(1)
        assert inner.call_count == 2
        await scheduler.advance(1999)
        assert inner.call_count == 2
        await scheduler.advance(1)
        assert inner.call_count == 3
        assert (await task).ok is False

    @pytest.mark.asyncio
    async def test_retry_count_builds_on_incoming(self, scheduler):
        """Each attempt sees incoming + attempt index."""
        inner = RecordingTransport(default=SaveResult.failure("boom"))
        wrapped = with_retry(inner, RetryConfig(max_retries=2), scheduler=scheduler)

        task = asyncio.ensure_future(wrapped({}, SaveContext(retry_count=2)))
        await scheduler.advance(10000)
        await task

        assert [call.context.retry_count for call in inner.calls] == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_exception_then_success(self, scheduler, caplog):
        """A raised exception is a failed attempt; later success is returned."""
        caplog.set_level(logging.INFO)
        metrics = MetricsCollector()
        inner = RecordingTransport([RuntimeError("network down"), SaveResult.success(version="7")])
        wrapped = with_retry(inner, RetryConfig(), scheduler=scheduler, metrics=metrics)

        task = asyncio.ensure_future(wrapped({"a": 1}))
        await scheduler.advance(1000)
        result = await task

        assert result.ok is True
        assert result.version == "7"
        assert metrics.snapshot().retry_count == 1
        assert "succeeded after 1 retries" in caplog.text

    @pytest.mark.asyncio
    async def test_cancel_mid_backoff(self, scheduler):
        """Cancelling during a backoff sleep stops immediately."""
        inner = RecordingTransport(default=SaveResult.failure("boom"))
        wrapped = with_retry(inner, RetryConfig(max_retries=3), scheduler=scheduler)
        token = CancellationToken()

        task = asyncio.ensure_future(wrapped({}, SaveContext(token=token)))
        await scheduler.advance(500)
        assert not task.done()

        token.cancel()
        await scheduler.settle()

        assert task.done()
        result = task.result()
        assert isinstance(result.error, CancellationError)
        assert result.code == "CANCELLED"
        assert inner.call_count == 1
        assert scheduler.pending_timers == 0

    @pytest.mark.asyncio
    async def test_cancelled_token_checked_before_sleep(self, scheduler):
        """An already-cancelled token allows the attempt but no retry."""
        inner = RecordingTransport(default=SaveResult.failure("boom"))
        wrapped = with_retry(inner, RetryConfig(max_retries=3), scheduler=scheduler)
        token = CancellationToken()
        token.cancel()

        result = await wrapped({}, SaveContext(token=token))

        assert inner.call_count == 1
        assert isinstance(result.error, CancellationError)

    @pytest.mark.asyncio
    async def test_zero_retries(self, scheduler):
        inner = RecordingTransport(default=SaveResult.failure("boom"))
        result = await with_retry(inner, RetryConfig(max_retries=0), scheduler=scheduler)({})
        assert inner.call_count == 1
        assert "failed after 1 attempts" in result.error.message


class TestComposition:
    """Test sequential and parallel composition."""

    def test_compose_empty_raises(self):
        with pytest.raises(ValueError):
            compose_transports()

    def test_compose_single_is_identity(self):
        inner = RecordingTransport()
        assert compose_transports(inner) is inner

    @pytest.mark.asyncio
    async def test_compose_short_circuits(self):
        """First failure is returned; later transports never run."""
        first = RecordingTransport(default=SaveResult.failure("first failed"))
        second = RecordingTransport()

        result = await compose_transports(first, second)({"a": 1})

        assert result.ok is False
        assert result.error.message == "first failed"
        assert second.call_count == 0

    @pytest.mark.asyncio
    async def test_compose_returns_last_result(self):
        first = RecordingTransport(default=SaveResult.success(version="1"))
        second = RecordingTransport(default=SaveResult.success(version="2"))

        result = await compose_transports(first, second)({"a": 1})

        assert result.version == "2"
        assert first.payloads == second.payloads == [{"a": 1}]

    @pytest.mark.asyncio
    async def test_parallel_collects_failures(self):
        """All transports run; failures and exceptions are listed."""
        ok = RecordingTransport()
        failing = RecordingTransport(default=SaveResult.failure("boom"))
        raising = RecordingTransport([RuntimeError("kaput")])

        result = await parallel_transports(ok, failing, raising)({"a": 1})

        assert [t.call_count for t in (ok, failing, raising)] == [1, 1, 1]
        assert isinstance(result.error, TransportError)
        assert result.error.message == "2 transports failed: boom, kaput"

    @pytest.mark.asyncio
    async def test_parallel_success_and_empty(self):
        assert (await parallel_transports(RecordingTransport(), RecordingTransport())({})).ok
        assert (await parallel_transports()({})).ok


class TestAsTransport:
    """Test adapting raising callables."""

    @pytest.mark.asyncio
    async def test_response_becomes_success(self):
        async def update(payload):
            return {"version": 3, "echo": payload}

        result = await as_transport(update)({"a": 1})

        assert result.ok and result.version == "3"
        assert result.metadata["response"]["echo"] == {"a": 1}

    @pytest.mark.asyncio
    async def test_exception_becomes_failure(self):
        error = ValueError("bad request")

        async def update(payload):
            raise error

        result = await as_transport(update)({})

        assert isinstance(result.error, TransportError)
        assert result.error.original_error is error

    @pytest.mark.asyncio
    async def test_pass_context(self):
        seen = []

        async def update(payload, context):
            seen.append(context.retry_count)
            return SaveResult.success()

        await as_transport(update, pass_context=True)({}, SaveContext(retry_count=4))
        assert seen == [4]


class TestSaveResult:
    """Test result construction rules."""

    def test_failure_requires_error(self):
        with pytest.raises(ValueError):
            SaveResult(ok=False)

    def test_success_rejects_error(self):
        with pytest.raises(ValueError):
            SaveResult(ok=True, error=AutosaveError("x"))

    def test_failure_wraps_unknown(self):
        """Plain exceptions become AutosaveErrors with the original chained."""
        original = KeyError("k")
        result = SaveResult.failure(original, code="CUSTOM")
        assert isinstance(result.error, AutosaveError)
        assert result.error.__cause__ is original
        assert result.code == "CUSTOM"


class TestAsyncioScheduler:
    """Test the production scheduler against the real loop."""

    @pytest.mark.asyncio
    async def test_call_later_and_sleep(self):
        scheduler = AsyncioScheduler()
        fired = []
        scheduler.call_later(1, lambda: fired.append(True))
        started = scheduler.now()
        await scheduler.sleep(20)
        assert fired == [True]
        assert scheduler.now() >= started
