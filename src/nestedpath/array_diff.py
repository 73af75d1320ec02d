"""
Identity-keyed diffing for arrays of records.

Two snapshots of a list of dicts are matched by an identity key (default
``"id"``). Each item is classified as added, removed or modified; modified
items optionally carry a per-field before/after map, and index changes can be
reported as reorders.

Example:
    >>> old = [{"id": 1, "age": 25}, {"id": 2, "age": 30}]
    >>> new = [{"id": 1, "age": 26}, {"id": 3, "age": 35}]
    >>> diff = diff_arrays(old, new)
    >>> [item["id"] for item in diff.added], [item["id"] for item in diff.removed]
    ([3], [2])
    >>> diff.modified[0].changes
    {'age': FieldChange(before=25, after=26)}

Reordering alone never sets ``has_changes``: order is reported for display,
not treated as a value change.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from nestedpath.paths import get_all_paths, get_by_path

IdentityKey = Union[str, Callable[[Any], Any]]
EqualityFn = Callable[[Any, Any], bool]


@dataclass(frozen=True)
class FieldChange:
    """Before/after pair for one field of a modified item."""
    before: Any
    after: Any


@dataclass
class ModifiedItem:
    """An item present in both snapshots whose contents differ."""
    before: Any
    after: Any
    changes: Optional[Dict[str, FieldChange]] = None


@dataclass
class ReorderedItem:
    """An item whose index moved between snapshots."""
    item: Any
    old_index: int
    new_index: int


@dataclass
class ArrayDiffResult:
    """Outcome of diff_arrays.

    reordered is None unless order tracking was requested.
    """
    added: List[Any] = field(default_factory=list)
    removed: List[Any] = field(default_factory=list)
    modified: List[ModifiedItem] = field(default_factory=list)
    reordered: Optional[List[ReorderedItem]] = None

    @property
    def has_changes(self) -> bool:
        """True iff anything was added, removed or modified."""
        return bool(self.added or self.removed or self.modified)


def identity_of(item: Any, identity_key: IdentityKey) -> Any:
    """Resolve an item's identity from a key name or a callable."""
    if callable(identity_key):
        return identity_key(item)
    if isinstance(item, Mapping):
        return item.get(identity_key)
    return getattr(item, identity_key, None)


def _strict_equal(a: Any, b: Any) -> bool:
    return a == b


def _deep_equal_with(a: Any, b: Any, equality_fn: EqualityFn) -> bool:
    """Recursive structural comparison using equality_fn at every level."""
    if equality_fn(a, b):
        return True
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(_deep_equal_with(a[key], b[key], equality_fn) for key in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(_deep_equal_with(x, y, equality_fn) for x, y in zip(a, b))
    return False


def _field_changes(before: Mapping, after: Mapping, equality_fn: EqualityFn) -> Dict[str, FieldChange]:
    """Compare the union of both items' keys."""
    changes: Dict[str, FieldChange] = {}
    keys = list(before.keys()) + [key for key in after.keys() if key not in before]
    for key in keys:
        old_value = before.get(key)
        new_value = after.get(key)
        if not _deep_equal_with(old_value, new_value, equality_fn):
            changes[key] = FieldChange(before=old_value, after=new_value)
    return changes


def _index(items: Sequence[Any], identity_key: IdentityKey) -> Dict[Any, Tuple[Any, int]]:
    return {identity_of(item, identity_key): (item, index) for index, item in enumerate(items)}


def diff_arrays(
    old_array: Sequence[Any],
    new_array: Sequence[Any],
    identity_key: IdentityKey = "id",
    track_field_changes: bool = True,
    track_order: bool = False,
    equality_fn: Optional[EqualityFn] = None,
) -> ArrayDiffResult:
    """Compute added/removed/modified (and optionally reordered) items.

    Args:
        old_array: Previous snapshot
        new_array: Current snapshot
        identity_key: Field name (or callable) identifying an item across snapshots
        track_field_changes: Attach a per-field before/after map to modified items
        track_order: Report items whose index changed
        equality_fn: Leaf comparison used during the deep compare (default ==)

    Returns:
        ArrayDiffResult; items are reported in new-array order for added and
        modified, old-array order for removed.
    """
    equal = equality_fn or _strict_equal
    old_map = _index(old_array, identity_key)
    new_map = _index(new_array, identity_key)

    result = ArrayDiffResult(reordered=[] if track_order else None)

    for key, (new_item, new_index) in new_map.items():
        if key not in old_map:
            result.added.append(new_item)
            continue

        old_item, old_index = old_map[key]
        if not _deep_equal_with(old_item, new_item, equal):
            modified = ModifiedItem(before=old_item, after=new_item)
            if track_field_changes and isinstance(old_item, Mapping) and isinstance(new_item, Mapping):
                modified.changes = _field_changes(old_item, new_item, equal)
            result.modified.append(modified)

        if track_order and old_index != new_index:
            result.reordered.append(ReorderedItem(item=new_item, old_index=old_index, new_index=new_index))

    for key, (old_item, _) in old_map.items():
        if key not in new_map:
            result.removed.append(old_item)

    return result


def apply_array_diff(
    array: Sequence[Any],
    diff: ArrayDiffResult,
    identity_key: IdentityKey = "id",
) -> List[Any]:
    """Rebuild a "new" array from an old one plus a diff.

    Order of application: remove, replace modified items, append added.
    Original ordering and reorders are not reproduced.
    """
    removed_ids = {identity_of(item, identity_key) for item in diff.removed}
    replacements = {identity_of(mod.before, identity_key): mod.after for mod in diff.modified}

    result = [item for item in array if identity_of(item, identity_key) not in removed_ids]
    result = [replacements.get(identity_of(item, identity_key), item) for item in result]
    result.extend(diff.added)
    return result


def detect_nested_array_changes(
    old_obj: Any,
    new_obj: Any,
    array_paths: Iterable[str],
    **options: Any,
) -> Dict[str, ArrayDiffResult]:
    """Run diff_arrays at each path, keeping only paths that changed.

    Paths where either side is not a list are skipped. Keyword options are
    passed through to diff_arrays.
    """
    results: Dict[str, ArrayDiffResult] = {}
    for path in array_paths:
        old_array = get_by_path(old_obj, path)
        new_array = get_by_path(new_obj, path)
        if not isinstance(old_array, list) or not isinstance(new_array, list):
            continue
        diff = diff_arrays(old_array, new_array, **options)
        if diff.has_changes:
            results[path] = diff
    return results


def find_array_fields(obj: Any) -> List[str]:
    """Paths of every list inside obj, nested lists included."""
    return [path for path in get_all_paths(obj) if isinstance(get_by_path(obj, path), list)]


def summarize_array_diff(diff: ArrayDiffResult) -> str:
    """One-line summary for logs, e.g. '+1 added, -1 removed, 2 modified'."""
    parts = []
    if diff.added:
        parts.append(f"+{len(diff.added)} added")
    if diff.removed:
        parts.append(f"-{len(diff.removed)} removed")
    if diff.modified:
        parts.append(f"{len(diff.modified)} modified")
    if diff.reordered:
        parts.append(f"{len(diff.reordered)} reordered")
    return ", ".join(parts) if parts else "no changes"


def merge_array_diffs(*diffs: ArrayDiffResult) -> ArrayDiffResult:
    """Concatenate several diffs into one."""
    merged = ArrayDiffResult()
    for diff in diffs:
        merged.added.extend(diff.added)
        merged.removed.extend(diff.removed)
        merged.modified.extend(diff.modified)
        if diff.reordered is not None:
            if merged.reordered is None:
                merged.reordered = []
            merged.reordered.extend(diff.reordered)
    return merged
