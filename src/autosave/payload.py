"""
Default payload selection and wire transforms.

Dirty fields may be given as a set of paths or as a nested marker structure
(``{"profile": {"name": True}, "tags": [True]}``); both normalize to paths.
"""

import copy
import datetime
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Set, Union

from nestedpath.paths import get_by_path, has_path, join_path, normalize_path, parse_path, set_by_path

DirtyFields = Union[Iterable[str], Mapping]


def _marker_paths(markers: Any, prefix: List[Any]) -> Iterable[str]:
    if isinstance(markers, Mapping):
        for key, child in markers.items():
            yield from _marker_paths(child, prefix + [key])
    elif isinstance(markers, list):
        # Any dirty element marks the whole array
        if any(markers) and prefix:
            yield join_path(prefix)
    elif markers and prefix:
        yield join_path(prefix)


def dirty_paths(dirty_fields: DirtyFields) -> Set[str]:
    """Normalize dirty fields into a set of path strings."""
    if isinstance(dirty_fields, Mapping):
        return set(_marker_paths(dirty_fields, []))
    return {normalize_path(path) for path in dirty_fields if path}


def widen_to_array(path: str) -> str:
    """Cut a path at its first list index: 'tags[2].label' -> 'tags'."""
    segments = parse_path(path)
    for index, segment in enumerate(segments):
        if isinstance(segment, int):
            return join_path(segments[:index]) if index else path
    return path


def pick_changed(values: Dict[str, Any], dirty_fields: DirtyFields) -> Dict[str, Any]:
    """Nested payload holding the current value of every dirty field.

    Array element paths are widened to the whole array. Dirty paths that no
    longer exist in values are skipped.

    Example:
        >>> pick_changed({"name": "A", "tags": ["x", "y"], "age": 3},
        ...              {"name", "tags[1]"})
        {'name': 'A', 'tags': ['x', 'y']}
    """
    payload: Dict[str, Any] = {}
    for path in sorted({widen_to_array(p) for p in dirty_paths(dirty_fields)}):
        if has_path(values, path):
            set_by_path(payload, path, copy.deepcopy(get_by_path(values, path)))
    return payload


def serialize_dates(value: Any) -> Any:
    """Copy of value with datetime/date objects replaced by ISO-8601 strings."""
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {key: serialize_dates(child) for key, child in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_dates(child) for child in value]
    return value
