"""
Test doubles: deterministic virtual time and a scriptable transport.

    scheduler = VirtualScheduler()
    transport = RecordingTransport([SaveResult.failure("boom"), SaveResult.success()])
    autosave = AutosaveOrchestrator(form, transport, scheduler=scheduler)
    form.set_value("name", "x")
    await scheduler.advance(600)     # debounce fires, first attempt fails
    await scheduler.advance(1000)    # backoff elapses, retry succeeds
"""

import asyncio
import copy
import heapq
import itertools
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Union

from autosave.snapshot_model import SaveContext, SavePayload, SaveResult


class VirtualTimer:
    """Handle for a callback scheduled on a VirtualScheduler."""

    def __init__(self, when: float, seq: int, callback: Callable[[], None]):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: 'VirtualTimer') -> bool:
        return (self.when, self.seq) < (other.when, other.seq)


class VirtualScheduler:
    """Scheduler whose clock only moves when advance() is awaited.

    Timers fire in due order; between timers the event loop is drained so
    tasks woken by one timer can schedule the next before time moves on.
    """

    def __init__(self, start_ms: float = 0.0, settle_rounds: int = 50):
        self._now = start_ms
        self._timers: List[VirtualTimer] = []
        self._seq = itertools.count()
        self._settle_rounds = settle_rounds

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> VirtualTimer:
        timer = VirtualTimer(self._now + max(delay_ms, 0), next(self._seq), callback)
        heapq.heappush(self._timers, timer)
        return timer

    async def sleep(self, delay_ms: float) -> None:
        future = asyncio.get_running_loop().create_future()

        def wake() -> None:
            if not future.done():
                future.set_result(None)

        timer = self.call_later(delay_ms, wake)
        try:
            await future
        finally:
            timer.cancel()

    @property
    def pending_timers(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)

    async def settle(self) -> None:
        """Give every runnable task a chance to run without moving time."""
        for _ in range(self._settle_rounds):
            await asyncio.sleep(0)

    async def advance(self, ms: float) -> None:
        """Move the clock forward by ms, firing every timer due on the way."""
        target = self._now + ms
        await self.settle()
        while self._timers and self._timers[0].when <= target:
            timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = timer.when
            timer.callback()
            await self.settle()
        self._now = target
        await self.settle()


@dataclass
class RecordedCall:
    payload: SavePayload
    context: Optional[SaveContext]


Outcome = Union[SaveResult, BaseException]


class RecordingTransport:
    """Transport that records calls and replays scripted outcomes.

    Outcomes are consumed in order; an exception instance is raised instead
    of returned. Once the script runs out, ``default`` is returned.
    hold() makes calls block until release().
    """

    def __init__(self, outcomes: Optional[Iterable[Outcome]] = None, default: Optional[SaveResult] = None):
        self.calls: List[RecordedCall] = []
        self._outcomes = deque(outcomes or [])
        self._default = default or SaveResult.success()
        self._gate: Optional[asyncio.Event] = None

    async def __call__(self, payload: SavePayload, context: Optional[SaveContext] = None) -> SaveResult:
        self.calls.append(RecordedCall(copy.deepcopy(payload), context))
        if self._gate is not None:
            await self._gate.wait()
        outcome = self._outcomes.popleft() if self._outcomes else self._default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def script(self, *outcomes: Outcome) -> None:
        self._outcomes.extend(outcomes)

    def hold(self) -> None:
        self._gate = asyncio.Event()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()
            self._gate = None

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def payloads(self) -> List[Any]:
        return [call.payload for call in self.calls]
