"""
Pending-change tracking against an explicit baseline.

A path is pending iff its current value differs from the baseline value at
that path. The pending set is recomputed per field on every change, so
editing a field back to its saved value clears it.
"""

import logging
from typing import Any, Callable, Iterable, Iterator, Optional, Set

from autosave.snapshot_model import BaselineSnapshot
from nestedpath.paths import deep_equal, get_by_path, normalize_path

logger = logging.getLogger(__name__)

EqualityFn = Callable[[Any, Any], bool]
Getter = Callable[[Any, str], Any]


def _baseline_values(baseline: Any) -> Any:
    return baseline.values if isinstance(baseline, BaselineSnapshot) else baseline


def is_pending(
    path: str,
    current_value: Any,
    baseline: Any,
    equal: EqualityFn = deep_equal,
    get: Getter = get_by_path,
) -> bool:
    """True iff current_value differs from the baseline value at path.

    baseline may be a BaselineSnapshot or a plain values dict.
    """
    return not equal(current_value, get(_baseline_values(baseline), path))


def reconcile_pending_field(
    path: str,
    current_value: Any,
    pending: Set[str],
    baseline: Any,
    equal: EqualityFn = deep_equal,
    get: Getter = get_by_path,
) -> bool:
    """Add path to pending if it diverges from baseline, otherwise remove it.

    Returns:
        Whether path is pending afterwards
    """
    if is_pending(path, current_value, baseline, equal, get):
        pending.add(path)
        return True
    pending.discard(path)
    return False


class PendingChangeTracker:
    """Owns the pending set and the baseline it is measured against."""

    def __init__(
        self,
        baseline: BaselineSnapshot,
        equal: EqualityFn = deep_equal,
        get: Getter = get_by_path,
    ):
        self._baseline = baseline
        self._equal = equal
        self._get = get
        self._pending: Set[str] = set()

    @property
    def baseline(self) -> BaselineSnapshot:
        return self._baseline

    @property
    def paths(self) -> Set[str]:
        """Copy of the pending paths."""
        return set(self._pending)

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._pending))

    def reconcile(self, path: str, current_value: Any) -> bool:
        """Re-evaluate one path against the baseline."""
        return reconcile_pending_field(
            normalize_path(path), current_value, self._pending, self._baseline, self._equal, self._get
        )

    def reconcile_all(self, values: Any, paths: Optional[Iterable[str]] = None) -> Set[str]:
        """Re-evaluate paths (default: every tracked path) from a values snapshot.

        Returns:
            The pending set afterwards
        """
        targets = list(self._pending) if paths is None else [normalize_path(p) for p in paths]
        for path in targets:
            reconcile_pending_field(
                path, self._get(values, path), self._pending, self._baseline, self._equal, self._get
            )
        return self.paths

    def rebase(self, baseline: BaselineSnapshot, values: Optional[Any] = None) -> Set[str]:
        """Switch to a new baseline, re-evaluating tracked paths when values are given."""
        logger.debug(f"Rebasing pending set from v{self._baseline.version} to v{baseline.version}")
        self._baseline = baseline
        if values is not None:
            self.reconcile_all(values)
        return self.paths

    def clear(self) -> None:
        self._pending.clear()
