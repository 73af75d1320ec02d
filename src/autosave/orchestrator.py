"""
AutosaveOrchestrator: decides when to save, what to send, and what to do
with the outcome.

Lifecycle of one save cycle:

    change -> debounce -> should_save gate -> select payload -> validate
           -> array handlers -> key map / map_payload / date serialization
           -> payload cache -> transport (with retry) -> commit -> on_saved

Commit on success adopts the payload that was actually sent into a new
baseline version, records the applied patches as one history entry, and
re-evaluates pending paths. A field edited while the save was in flight
therefore stays pending and is picked up by the next cycle.

At most one save runs at a time. A debounce firing while a save is in flight
is deferred until that save settles.
"""

import asyncio
import copy
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Union

from autosave.cache import PayloadCache, stable_signature
from autosave.config import AutosaveConfig, RetryConfig
from autosave.errors import AutosaveError, CancellationError, TransportError
from autosave.form_state import ValueSource
from autosave.history import HistoryManager, KeyEvent, UndoHotkeys, diff_to_patches
from autosave.log import get_logger
from autosave.metrics import AutosaveMetrics, MetricsCollector
from autosave.payload import DirtyFields, dirty_paths, pick_changed, serialize_dates, widen_to_array
from autosave.pending import PendingChangeTracker
from autosave.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from autosave.snapshot_model import BaselineSnapshot, CancellationToken, SaveContext, SavePayload, SaveResult
from autosave.transport import Transport, with_retry
from autosave.validation import PayloadValidator, Validator
from nestedpath.array_diff import ArrayDiffResult, IdentityKey, diff_arrays
from nestedpath.key_map import NestedKeyMap, NestedKeyMapper
from nestedpath.paths import delete_by_path, get_by_path, has_path, is_parent_path, leaf_paths, normalize_path

ArrayCallback = Callable[[List[Any]], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class SaveGateState:
    """Everything should_save gets to look at."""
    values: Dict[str, Any]
    dirty_fields: DirtyFields
    pending: FrozenSet[str]
    baseline: BaselineSnapshot


def default_should_save(state: SaveGateState) -> bool:
    """Save when anything is marked dirty or diverges from the baseline."""
    return bool(dirty_paths(state.dirty_fields)) or bool(state.pending)


@dataclass(frozen=True)
class ArrayFieldHandler:
    """Side-channel persistence for an array field.

    Items are matched against the baseline by identity_key; added and removed
    items are handed to the callbacks and the field is kept off the wire
    payload.
    """
    identity_key: IdentityKey = "id"
    on_add: Optional[ArrayCallback] = None
    on_remove: Optional[ArrayCallback] = None


def _overlaps(a: str, b: str) -> bool:
    return a == b or is_parent_path(a, b) or is_parent_path(b, a)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _sent_paths(payload: SavePayload, dirty: DirtyFields) -> List[str]:
    """Paths whose payload subtrees replace the baseline whole.

    Widened dirty paths present in the payload are taken as units, so a
    container that lost keys replaces its old value. Payload leaves outside
    every dirty path (custom select_payload) are added individually.
    """
    selected = {path for path in map(widen_to_array, dirty_paths(dirty)) if has_path(payload, path)}
    roots = sorted(path for path in selected if not any(is_parent_path(other, path) for other in selected))
    roots.extend(
        leaf for leaf in leaf_paths(payload)
        if not any(leaf == root or is_parent_path(root, leaf) for root in roots)
    )
    return roots


class AutosaveOrchestrator:
    """Debounced, serialized autosave for one value source.

    Example:
        form = FormState({"name": "", "email": ""})
        autosave = AutosaveOrchestrator(form, transport, AutosaveConfig(debounce_ms=500))
        form.set_value("name", "Jane")      # saved ~500ms after the last edit
        result = await autosave.flush()     # or right now
    """

    def __init__(
        self,
        source: ValueSource,
        transport: Transport,
        config: Optional[AutosaveConfig] = None,
        *,
        should_save: Optional[Callable[[SaveGateState], bool]] = None,
        select_payload: Optional[Callable[[Dict[str, Any], DirtyFields], SavePayload]] = None,
        on_saved: Optional[Callable[[SaveResult], None]] = None,
        validator: Optional[Validator] = None,
        key_map: Optional[NestedKeyMap] = None,
        map_payload: Optional[Callable[[SavePayload], SavePayload]] = None,
        array_handlers: Optional[Mapping[str, ArrayFieldHandler]] = None,
        scheduler: Optional[Scheduler] = None,
        retry_config: Optional[RetryConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        name: str = "form",
    ):
        self.config = config or AutosaveConfig()
        self.name = name
        self._source = source
        self._scheduler = scheduler or AsyncioScheduler()
        self._log = get_logger(name, enabled=self.config.debug)

        self._should_save = should_save or default_should_save
        self._select_payload = select_payload or pick_changed
        self._on_saved = on_saved
        self._key_mapper = NestedKeyMapper(key_map) if key_map else None
        self._map_payload = map_payload
        self._array_handlers: Dict[str, ArrayFieldHandler] = {
            normalize_path(path): handler for path, handler in (array_handlers or {}).items()
        }

        if metrics is None and self.config.enable_metrics:
            metrics = MetricsCollector()
        self._metrics = metrics

        self._validator: Optional[PayloadValidator] = None
        if validator is not None and self.config.validate_mode != "none":
            self._validator = PayloadValidator(validator)

        retry_config = retry_config or self.config.retry_config()
        if retry_config.max_retries > 0:
            transport = with_retry(
                transport, retry_config, scheduler=self._scheduler, metrics=self._metrics, log=self._log
            )
        self._transport = transport

        self._baseline = BaselineSnapshot.create(source.get_values())
        self._pending = PendingChangeTracker(self._baseline)

        self._cache: Optional[PayloadCache[SaveResult]] = None
        if self.config.enable_cache:
            self._cache = PayloadCache(
                lambda: self._baseline.version,
                max_size=self.config.cache_size,
                ttl_ms=self.config.cache_ttl_ms,
                clock=self._scheduler.now,
            )

        self._history: Optional[HistoryManager] = None
        self._hotkeys: Optional[UndoHotkeys] = None
        if self.config.undo.enabled:
            self._history = HistoryManager(self._apply_history_value, max_entries=self.config.undo.max_entries)
            if self.config.undo.hotkeys:
                self._hotkeys = UndoHotkeys(
                    self._history,
                    capture_in_inputs=self.config.undo.capture_in_inputs,
                    undo=self.undo,
                    redo=self.redo,
                )

        self._timer: Optional[TimerHandle] = None
        self._save_task: Optional[asyncio.Future] = None
        self._token: Optional[CancellationToken] = None
        self._deferred = False
        self._closed = False
        self._last_result: Optional[SaveResult] = None

        # Paths written by undo/redo that have not been saved yet; they are
        # saved like any edit but not recorded as new history.
        self._applying_history = False
        self._history_paths: Set[str] = set()

        self._source.add_change_callback(self._on_source_change)
        self._log.debug(f"Attached (debounce={self.config.debounce_ms}ms, max_retries={retry_config.max_retries})")

    # ---- status ----

    @property
    def baseline(self) -> BaselineSnapshot:
        return self._baseline

    @property
    def pending_paths(self) -> Set[str]:
        return self._pending.paths

    @property
    def has_pending_changes(self) -> bool:
        return bool(len(self._pending))

    @property
    def is_saving(self) -> bool:
        return self._save_task is not None and not self._save_task.done()

    @property
    def last_result(self) -> Optional[SaveResult]:
        return self._last_result

    @property
    def history(self) -> Optional[HistoryManager]:
        return self._history

    @property
    def can_undo(self) -> bool:
        return self._history is not None and self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history is not None and self._history.can_redo

    @property
    def metrics(self) -> Optional[AutosaveMetrics]:
        return self._metrics.snapshot() if self._metrics is not None else None

    # ---- change intake ----

    def _on_source_change(self, paths: List[str]) -> None:
        self.notify_change(paths)

    def notify_change(self, paths: Optional[Iterable[str]] = None) -> None:
        """Report mutated paths (default: re-check everything) and restart the debounce."""
        if self._closed:
            return

        values = self._source.get_values()
        changed = {normalize_path(p) for p in paths} if paths is not None else set(leaf_paths(values))
        self._pending.reconcile_all(values, changed | self._pending.paths)

        if self._applying_history:
            self._history_paths.update(changed)
        else:
            self._history_paths.difference_update(changed)
            if self._history is not None and self._history.can_redo:
                self._history.clear_future()

        self._schedule()

    def _schedule(self) -> None:
        self._cancel_timer()
        if self._metrics is not None:
            self._metrics.record_debounce()
        self._timer = self._scheduler.call_later(self.config.debounce_ms, self._on_debounce_fired)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_debounce_fired(self) -> None:
        self._timer = None
        if self._closed:
            return
        if self.is_saving:
            self._log.debug("Debounce fired during save, deferring")
            self._deferred = True
            return
        self._start_save()

    def _start_save(self) -> asyncio.Future:
        task = asyncio.ensure_future(self._run_cycle())
        self._save_task = task
        task.add_done_callback(self._on_save_settled)
        return task

    def _on_save_settled(self, task: asyncio.Future) -> None:
        if self._save_task is task:
            self._save_task = None
        if self._deferred and not self._closed:
            self._deferred = False
            self._start_save()

    async def _wait_idle(self) -> None:
        while self._save_task is not None and not self._save_task.done():
            await asyncio.wait({self._save_task})

    # ---- explicit control ----

    async def flush(self) -> SaveResult:
        """Save now: skip the debounce wait, after any in-flight save settles.

        A cycle the gate skips is returned here but not reported to on_saved.
        """
        self._cancel_timer()
        await self._wait_idle()
        self._deferred = False
        return await asyncio.shield(self._start_save())

    def abort(self) -> None:
        """Cancel the pending debounce and signal the in-flight save to stop retrying."""
        self._cancel_timer()
        self._deferred = False
        if self._token is not None:
            self._log.debug("Aborting in-flight save")
            self._token.cancel()

    async def reset(self, values: Optional[Dict[str, Any]] = None) -> None:
        """Adopt values (default: the source's current values) as a fresh baseline.

        Waits for an in-flight save first, then clears pending paths,
        history and dirty markers.
        """
        self._cancel_timer()
        self._deferred = False
        await self._wait_idle()
        self._cancel_timer()

        self._baseline = BaselineSnapshot.create(
            values if values is not None else self._source.get_values(), label="reset"
        )
        self._pending = PendingChangeTracker(self._baseline)
        self._history_paths.clear()
        if self._history is not None:
            self._history.clear()
        if self._cache is not None:
            self._cache.invalidate()
        self._source.mark_clean()
        self._log.debug("Reset baseline")

    def close(self) -> None:
        """Detach from the source and cancel timers. The in-flight save, if any, completes."""
        self._cancel_timer()
        self._deferred = False
        self._closed = True
        self._source.remove_change_callback(self._on_source_change)

    # ---- undo/redo ----

    def _apply_history_value(self, path: str, value: Any) -> None:
        self._applying_history = True
        try:
            self._source.set_value(path, copy.deepcopy(value))
        finally:
            self._applying_history = False

    def undo(self) -> bool:
        if self._history is None:
            return False
        return self._history.undo()

    def redo(self) -> bool:
        if self._history is None:
            return False
        return self._history.redo()

    def handle_key_event(self, event: KeyEvent) -> Optional[str]:
        """Route a key press to undo/redo; returns which one it was, if any."""
        if self._hotkeys is None:
            return None
        return self._hotkeys.handle(event)

    # ---- save cycle ----

    async def _run_cycle(self) -> SaveResult:
        token = CancellationToken()
        self._token = token
        try:
            result = await self._save(token)
        except Exception as e:
            self._log.error(f"Save cycle raised: {e!r}")
            result = SaveResult.failure(AutosaveError.from_unknown(e))
        finally:
            self._token = None

        if not result.ok and token.is_cancelled and not isinstance(result.error, CancellationError):
            result = SaveResult.failure(CancellationError(original_error=result.error))

        # Nothing was saved; only flush() callers see the skipped result
        if result.skipped:
            return result

        self._last_result = result
        self._notify_saved(result)
        return result

    def _skip(self, reason: str) -> SaveResult:
        self._log.debug(f"SKIP: {reason}")
        if self._metrics is not None:
            self._metrics.record_skip()
        return SaveResult.success(metadata={'skipped': True, 'reason': reason})

    async def _save(self, token: CancellationToken) -> SaveResult:
        values = self._source.get_values()
        dirty = self._source.get_dirty_fields()
        gate = SaveGateState(
            values=values,
            dirty_fields=dirty,
            pending=frozenset(self._pending.paths),
            baseline=self._baseline,
        )
        if not self._should_save(gate):
            return self._skip("should_save returned False")

        payload = copy.deepcopy(self._select_payload(values, dirty))
        if not payload:
            return self._skip("empty payload")
        sent = _sent_paths(payload, dirty)

        if self._validator is not None:
            target = values if self.config.validate_mode == "all" else payload
            error = await self._validator.validate(target)
            if error is not None:
                self._log.debug(f"Validation failed: {error.message}")
                if self._metrics is not None:
                    self._metrics.record_validation_failure()
                return SaveResult.failure(error)

        baseline = self._baseline
        wire = await self._run_array_handlers(payload, baseline)
        if not wire:
            self._log.debug("Payload fully handled by array handlers")
            result = SaveResult.success(metadata={'handled_by': 'array_handlers'})
            self._commit(payload, sent, baseline)
            return result

        wire = self._shape(wire)
        signature = stable_signature(wire)
        if self._cache is not None:
            cached = self._cache.get(signature)
            if cached is not None:
                self._log.debug("CACHE: identical payload already saved, skipping transport")
                if self._metrics is not None:
                    self._metrics.record_cache_hit()
                self._clean_sent(sent)
                return cached
            if self._metrics is not None:
                self._metrics.record_cache_miss()

        started = self._scheduler.now()
        context = SaveContext(token=token, timestamp=time.time())
        try:
            result = await self._transport(wire, context)
        except Exception as e:
            result = SaveResult.failure(TransportError(str(e) or type(e).__name__, original_error=e))
        if self._metrics is not None:
            self._metrics.record_save(result.ok, self._scheduler.now() - started)

        if result.ok:
            self._commit(payload, sent, baseline)
            if self._cache is not None:
                self._cache.put(signature, result)
            self._log.debug(f"SAVE: ok (baseline v{self._baseline.version})")
        else:
            self._log.debug(f"SAVE: failed ({result.error})")
        return result

    async def _run_array_handlers(self, payload: SavePayload, baseline: BaselineSnapshot) -> SavePayload:
        """Dispatch added/removed items and strip handled arrays from a copy of payload."""
        wire = copy.deepcopy(payload)
        for path, handler in self._array_handlers.items():
            if not has_path(payload, path):
                continue
            current = get_by_path(payload, path) or []
            previous = get_by_path(baseline.values, path) or []
            diff: ArrayDiffResult = diff_arrays(previous, current, identity_key=handler.identity_key)
            if diff.added and handler.on_add is not None:
                await _maybe_await(handler.on_add(diff.added))
            if diff.removed and handler.on_remove is not None:
                await _maybe_await(handler.on_remove(diff.removed))
            delete_by_path(wire, path)
        return wire

    def _shape(self, payload: SavePayload) -> SavePayload:
        if self._key_mapper is not None:
            payload = self._key_mapper(payload)
        if self._map_payload is not None:
            payload = self._map_payload(payload)
        return serialize_dates(payload)

    def _commit(self, payload: SavePayload, sent: List[str], baseline: BaselineSnapshot) -> None:
        updated = baseline.merged({path: get_by_path(payload, path) for path in sent})
        self._baseline = updated

        if self._history is not None:
            recordable = [
                path for path in sent
                if not any(_overlaps(path, applied) for applied in self._history_paths)
            ]
            self._history.record(
                diff_to_patches(baseline.values, updated.values, paths=recordable),
                label=f"save v{updated.version}",
            )
            self._history_paths = {
                applied for applied in self._history_paths
                if not any(_overlaps(path, applied) for path in sent)
            }

        self._pending.rebase(updated, values=self._source.get_values())
        self._clean_sent(sent)

    def _clean_sent(self, sent: List[str]) -> None:
        """Clear dirty markers covering sent paths, unless they are still pending."""
        candidates = set(sent)
        candidates.update(
            marker for marker in dirty_paths(self._source.get_dirty_fields())
            if any(_overlaps(marker, path) for path in sent)
        )
        pending = self._pending.paths
        clean = sorted(path for path in candidates if not any(_overlaps(path, p) for p in pending))
        if clean:
            self._source.mark_clean(clean)

    def _notify_saved(self, result: SaveResult) -> None:
        if self._on_saved is None:
            return
        try:
            self._on_saved(result)
        except Exception as e:
            self._log.warning(f"on_saved callback failed: {e}")
