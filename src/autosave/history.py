"""
Undo/redo history of field patches.

HistoryManager keeps two stacks of HistoryEntry transactions. Values are
written back through an ``apply_value(path, value)`` callback, so the manager
never owns the form data itself.

Grouping several records into one undo step:

    with history.atomic("bulk edit"):
        history.record([Patch("title", "a", "b")])
        history.record([Patch("tags", [], ["x"])])
    # one entry labelled "bulk edit"
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional

from autosave.snapshot_model import HistoryEntry, HistoryState, Patch
from nestedpath.paths import deep_equal, get_by_path, leaf_paths

logger = logging.getLogger(__name__)

ApplyValue = Callable[[str, Any], None]


def diff_to_patches(prev: Dict[str, Any], next_values: Dict[str, Any], paths: Optional[Iterable[str]] = None) -> List[Patch]:
    """Patches for every path whose value differs between two snapshots.

    Args:
        prev: Values before
        next_values: Values after
        paths: Restrict to these paths; default is every leaf path of either
            snapshot (lists count as leaves, so arrays are patched whole)
    """
    if paths is None:
        candidates = leaf_paths(next_values)
        seen = set(candidates)
        candidates.extend(p for p in leaf_paths(prev) if p not in seen)
    else:
        candidates = list(paths)

    patches = []
    for path in candidates:
        before = get_by_path(prev, path)
        after = get_by_path(next_values, path)
        if not deep_equal(before, after):
            patches.append(Patch(path, before, after))
    return patches


def _coalesce(patches: Iterable[Patch]) -> List[Patch]:
    """Collapse repeated paths into one patch: first prev_value, last next_value."""
    merged: Dict[str, Patch] = {}
    for patch in patches:
        first = merged.get(patch.name)
        merged[patch.name] = Patch(patch.name, first.prev_value if first else patch.prev_value, patch.next_value)
    return [patch for patch in merged.values() if not deep_equal(patch.prev_value, patch.next_value)]


class HistoryManager:
    """Undo/redo stacks with atomic grouping and checkpoints."""

    def __init__(self, apply_value: ApplyValue, max_entries: Optional[int] = None):
        self._apply_value = apply_value
        self._max_entries = max_entries
        self._past: List[HistoryEntry] = []
        self._future: List[HistoryEntry] = []
        self._checkpoints: List[int] = []
        self._last_op: Optional[str] = None
        self._on_history_changed_callbacks: List[Callable[[], None]] = []

        # Atomic operation state - when >0, records are buffered until the block exits
        self._atomic_depth: int = 0
        self._atomic_label: Optional[str] = None
        self._atomic_patches: List[Patch] = []

    # ---- callbacks ----

    def add_history_changed_callback(self, callback: Callable[[], None]) -> None:
        """Subscribe to any change of the undo/redo stacks."""
        if callback not in self._on_history_changed_callbacks:
            self._on_history_changed_callbacks.append(callback)

    def remove_history_changed_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._on_history_changed_callbacks:
            self._on_history_changed_callbacks.remove(callback)

    def _fire_history_changed_callbacks(self) -> None:
        for callback in list(self._on_history_changed_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in history_changed callback: {e}")

    # ---- recording ----

    @contextmanager
    def atomic(self, label: str) -> Generator[None, None, None]:
        """Coalesce every record inside the block into a single entry.

        Nested blocks are supported; only the outermost one records, under
        its own label. Patches touching the same path collapse into one.
        """
        self._atomic_depth += 1
        if self._atomic_depth == 1:
            self._atomic_label = label
            self._atomic_patches = []

        try:
            yield
        finally:
            self._atomic_depth -= 1
            if self._atomic_depth == 0:
                final_label = self._atomic_label or label
                patches = self._atomic_patches
                self._atomic_label = None
                self._atomic_patches = []
                self._push(_coalesce(patches), final_label)

    def record(self, patches: Iterable[Patch], label: str = "") -> Optional[HistoryEntry]:
        """Push a transaction and clear the redo stack.

        No-op patches are dropped; an empty transaction is not recorded.

        Returns:
            The recorded entry, or None if nothing was recorded (empty, or
            deferred to an enclosing atomic block)
        """
        if self._atomic_depth > 0:
            logger.debug(f"ATOMIC: Deferring record '{label}' (depth={self._atomic_depth})")
            self._atomic_patches.extend(patches)
            return None
        return self._push(_coalesce(patches), label)

    def _push(self, patches: List[Patch], label: str) -> Optional[HistoryEntry]:
        if not patches:
            return None

        entry = HistoryEntry.create(patches, label=label)
        self._past.append(entry)
        self._future.clear()

        if self._max_entries and len(self._past) > self._max_entries:
            self._past.pop(0)
            self._checkpoints = [cp - 1 for cp in self._checkpoints if cp - 1 >= 0]

        self._last_op = "record"
        logger.debug(f"HISTORY: Recorded '{label}' ({len(patches)} patch(es))")
        self._fire_history_changed_callbacks()
        return entry

    def clear_future(self) -> None:
        """Drop the redo stack (a fresh edit after undo)."""
        if self._future:
            self._future.clear()
            self._fire_history_changed_callbacks()

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()
        self._checkpoints.clear()
        self._last_op = None
        self._fire_history_changed_callbacks()

    # ---- traversal ----

    def undo(self) -> bool:
        """Revert the newest transaction.

        Returns:
            False (and logs) when there is nothing to undo
        """
        if not self._past:
            logger.debug("HISTORY: nothing to undo")
            return False

        entry = self._past.pop()
        for patch in reversed(entry.patches):
            self._apply_value(patch.name, patch.prev_value)
        self._future.append(entry)
        self._last_op = "undo"
        logger.debug(f"HISTORY: Undid '{entry.label}'")
        self._fire_history_changed_callbacks()
        return True

    def redo(self) -> bool:
        """Re-apply the most recently undone transaction."""
        if not self._future:
            logger.debug("HISTORY: nothing to redo")
            return False

        entry = self._future.pop()
        for patch in entry.patches:
            self._apply_value(patch.name, patch.next_value)
        self._past.append(entry)
        self._last_op = "redo"
        logger.debug(f"HISTORY: Redid '{entry.label}'")
        self._fire_history_changed_callbacks()
        return True

    def mark_checkpoint(self) -> None:
        """Remember the current position of the undo stack."""
        self._checkpoints.append(len(self._past))

    def undo_to_last_checkpoint(self) -> bool:
        """Undo back to the most recent checkpoint (everything, if none).

        Returns:
            Whether anything was undone
        """
        target = self._checkpoints.pop() if self._checkpoints else 0
        undid = False
        while len(self._past) > target:
            if not self.undo():
                break
            undid = True
        return undid

    # ---- status ----

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    @property
    def last_op(self) -> Optional[str]:
        """Most recent operation: "record", "undo" or "redo" (None after clear)."""
        return self._last_op

    @property
    def state(self) -> HistoryState:
        """Copy of both stacks."""
        return HistoryState(past=list(self._past), future=list(self._future))


@dataclass(frozen=True)
class KeyEvent:
    """A key press, reduced to what undo hotkeys care about.

    in_editable is True when the event targets a text input, textarea,
    select or contenteditable element.
    """
    key: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    in_editable: bool = False


class UndoHotkeys:
    """Ctrl/Cmd+Z undoes, Shift+Ctrl/Cmd+Z redoes."""

    def __init__(self, history: HistoryManager, capture_in_inputs: bool = False,
                 undo: Optional[Callable[[], bool]] = None, redo: Optional[Callable[[], bool]] = None):
        self.history = history
        self.capture_in_inputs = capture_in_inputs
        self._undo = undo or history.undo
        self._redo = redo or history.redo

    def handle(self, event: KeyEvent) -> Optional[str]:
        """Dispatch a key event.

        Returns:
            "undo" or "redo" if the event was consumed as a hotkey, else None
        """
        if not (event.ctrl or event.meta):
            return None
        if (event.key or "").lower() != "z":
            return None
        if event.in_editable and not self.capture_in_inputs:
            return None

        if event.shift:
            if self.history.can_redo:
                self._redo()
            return "redo"
        if self.history.can_undo:
            self._undo()
        return "undo"
