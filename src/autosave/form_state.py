"""
In-memory value source: the record an orchestrator watches and writes back to.

Any object with the ValueSource methods can stand in (a UI form adapter, a
document model). FormState is the reference implementation, a nested dict
plus a set of dirty paths.
"""

import copy
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Set

from nestedpath.paths import get_by_path, is_parent_path, normalize_path, set_by_path

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[List[str]], None]


class ValueSource(Protocol):
    """What the orchestrator needs from the record it saves."""

    def get_values(self) -> Dict[str, Any]: ...

    def get_dirty_fields(self) -> Any: ...

    def set_value(self, path: str, value: Any) -> None: ...

    def mark_clean(self, paths: Optional[Iterable[str]] = None) -> None: ...

    def add_change_callback(self, callback: ChangeCallback) -> None: ...

    def remove_change_callback(self, callback: ChangeCallback) -> None: ...


class FormState:
    """Nested values with per-path dirty markers and change notification.

    Change callbacks receive the list of paths written by one call.
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = copy.deepcopy(dict(values or {}))
        self._dirty: Set[str] = set()
        self._change_callbacks: List[ChangeCallback] = []

    # ---- reads ----

    def get_values(self) -> Dict[str, Any]:
        """Deep copy of all values."""
        return copy.deepcopy(self._values)

    def get_value(self, path: str, default: Any = None) -> Any:
        return copy.deepcopy(get_by_path(self._values, path, default))

    def get_dirty_fields(self) -> Set[str]:
        return set(self._dirty)

    def is_dirty(self, path: Optional[str] = None) -> bool:
        """Whether path (or anything, when path is None) is marked dirty."""
        if path is None:
            return bool(self._dirty)
        path = normalize_path(path)
        return any(p == path or is_parent_path(path, p) for p in self._dirty)

    # ---- writes ----

    def set_value(self, path: str, value: Any, mark_dirty: bool = True) -> None:
        self.set_values({path: value}, mark_dirty=mark_dirty)

    def set_values(self, updates: Mapping[str, Any], mark_dirty: bool = True) -> None:
        """Write several paths, notifying listeners once."""
        written = []
        for path, value in updates.items():
            path = normalize_path(path)
            set_by_path(self._values, path, copy.deepcopy(value))
            if mark_dirty:
                self._dirty.add(path)
            written.append(path)
        if written:
            self._notify_change(written)

    def mark_clean(self, paths: Optional[Iterable[str]] = None) -> None:
        """Clear dirty markers for paths (and their descendants), or all."""
        if paths is None:
            self._dirty.clear()
            return
        for path in paths:
            path = normalize_path(path)
            self._dirty = {p for p in self._dirty if p != path and not is_parent_path(path, p)}

    def load(self, values: Mapping[str, Any]) -> None:
        """Replace all values and clear dirty markers without notifying."""
        self._values = copy.deepcopy(dict(values))
        self._dirty.clear()

    # ---- change notification ----

    def add_change_callback(self, callback: ChangeCallback) -> None:
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)
            logger.debug(f"Connected change listener: {callback}")

    def remove_change_callback(self, callback: ChangeCallback) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)
            logger.debug(f"Disconnected change listener: {callback}")

    def _notify_change(self, paths: List[str]) -> None:
        for callback in list(self._change_callbacks):
            try:
                callback(paths)
            except Exception as e:
                logger.warning(f"Change callback failed: {e}")
