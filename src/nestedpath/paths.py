"""
Field path utilities for nested dict/list structures.

Paths address a location inside a nested structure using dot notation for
properties and bracket notation for list indices:

    "user.profile.name"     -> ["user", "profile", "name"]
    "users[0].name"         -> ["users", 0, "name"]
    "items[0][1]"           -> ["items", 0, 1]

Every function accepts either a path string or an already-parsed segment list.
Traversal only descends into mappings and lists; anything else is a leaf.
"""

import copy
from collections.abc import Mapping, MutableMapping, MutableSequence
from typing import Any, Iterator, List, Sequence, Tuple, Union


PathSegment = Union[str, int]
PathLike = Union[str, Sequence[PathSegment]]

_MISSING = object()


def _is_index(segment: Any) -> bool:
    """Int segments address list slots (bools are not indices)."""
    return isinstance(segment, int) and not isinstance(segment, bool)


def _is_container(value: Any) -> bool:
    return isinstance(value, (Mapping, list))


def _segments(path: PathLike) -> List[PathSegment]:
    if isinstance(path, str):
        return parse_path(path)
    return list(path)


def parse_path(path: str) -> List[PathSegment]:
    """Parse a path string into segments.

    Numeric bracket contents become ints, other bracket contents stay strings.
    Empty segments (leading, trailing or doubled separators) are dropped.

    Limitations: a stray "]" outside brackets is dropped ("a]b" parses as
    ["ab"]), and there is no escaping, so keys containing "." or "[" do not
    survive a join_path / parse_path round trip (nor leaf_paths).

    Example:
        >>> parse_path("a.b[0].c")
        ['a', 'b', 0, 'c']
        >>> parse_path("")
        []
    """
    if not path:
        return []

    segments: List[PathSegment] = []
    current = ""
    in_bracket = False

    for char in path:
        if char == "[":
            if current:
                segments.append(current)
                current = ""
            in_bracket = True
        elif char == "]":
            if in_bracket and current:
                segments.append(int(current) if current.isdigit() else current)
                current = ""
            in_bracket = False
        elif char == "." and not in_bracket:
            if current:
                segments.append(current)
                current = ""
        else:
            current += char

    if current:
        segments.append(current)

    return segments


def join_path(segments: Sequence[PathSegment]) -> str:
    """Inverse of parse_path: ints render as [n], later strings are dot-prefixed.

    Example:
        >>> join_path(["users", 0, "name"])
        'users[0].name'
    """
    path = ""
    for index, segment in enumerate(segments):
        if _is_index(segment):
            path = f"{path}[{segment}]"
        elif index == 0:
            path = str(segment)
        else:
            path = f"{path}.{segment}"
    return path


def normalize_path(path: str) -> str:
    """Canonical string form of a path (drops stray separators)."""
    return join_path(parse_path(path))


def _step(current: Any, segment: PathSegment) -> Any:
    """Descend one segment, returning _MISSING when it does not exist."""
    if isinstance(current, Mapping):
        return current.get(segment, _MISSING)
    if isinstance(current, list) and _is_index(segment):
        if 0 <= segment < len(current):
            return current[segment]
    return _MISSING


def get_by_path(obj: Any, path: PathLike, default: Any = None) -> Any:
    """Read the value at path, or default if any segment is missing.

    Never raises for a missing intermediate.
    """
    current = obj
    for segment in _segments(path):
        if current is None:
            return default
        current = _step(current, segment)
        if current is _MISSING:
            return default
    return current


def has_path(obj: Any, path: PathLike) -> bool:
    """True if every segment exists, even when the final value is None."""
    current = obj
    for segment in _segments(path):
        if current is None:
            return False
        current = _step(current, segment)
        if current is _MISSING:
            return False
    return True


def set_by_path(obj: Any, path: PathLike, value: Any) -> Any:
    """Write value at path, creating intermediate containers on demand.

    A missing intermediate becomes a list when the next segment is an int,
    otherwise a dict. Lists are padded with None to reach an index.

    Returns:
        The root object (mutated in place), so calls can be chained.
    """
    segments = _segments(path)
    if obj is None or not segments:
        return obj

    current = obj
    for segment, next_segment in zip(segments, segments[1:]):
        child = _step(current, segment)
        if child is _MISSING or child is None:
            child = [] if _is_index(next_segment) else {}
            _assign(current, segment, child)
        current = child

    _assign(current, segments[-1], value)
    return obj


def _assign(container: Any, segment: PathSegment, value: Any) -> None:
    if isinstance(container, MutableSequence) and _is_index(segment):
        if segment >= len(container):
            container.extend([None] * (segment + 1 - len(container)))
        container[segment] = value
    elif isinstance(container, MutableMapping):
        container[segment] = value
    else:
        raise TypeError(
            f"Cannot set segment {segment!r} on {type(container).__name__}"
        )


def delete_by_path(obj: Any, path: PathLike) -> bool:
    """Remove the final segment's key. Returns whether it existed."""
    segments = _segments(path)
    if obj is None or not segments:
        return False

    parent = get_by_path(obj, segments[:-1], _MISSING) if len(segments) > 1 else obj
    if parent is _MISSING or parent is None:
        return False

    last = segments[-1]
    if isinstance(parent, MutableMapping):
        if last in parent:
            del parent[last]
            return True
        return False
    if isinstance(parent, MutableSequence) and _is_index(last):
        if 0 <= last < len(parent):
            del parent[last]
            return True
    return False


def get_parent_path(path: str) -> str:
    """Path of the containing element ('' for top-level paths)."""
    segments = parse_path(path)
    if len(segments) <= 1:
        return ""
    return join_path(segments[:-1])


def get_field_name(path: str) -> PathSegment:
    """Last segment of a path ('' for the empty path)."""
    segments = parse_path(path)
    return segments[-1] if segments else ""


def is_parent_path(parent_path: str, child_path: str) -> bool:
    """Strict prefix relation on parsed segments.

    The empty path is the parent of every non-empty path; a path is never
    its own parent.
    """
    parent = parse_path(parent_path)
    child = parse_path(child_path)
    if not parent:
        return bool(child)
    if len(parent) >= len(child):
        return False
    return child[:len(parent)] == parent


def is_child_path(child_path: str, parent_path: str) -> bool:
    return is_parent_path(parent_path, child_path)


def get_all_paths(obj: Any, prefix: str = "", include_arrays: bool = True) -> List[str]:
    """Enumerate every reachable path, containers and leaves, in pre-order.

    With include_arrays=False the path of a list container itself is omitted
    while its elements are still listed.

    Example:
        >>> get_all_paths({"user": {"name": "J"}, "tags": ["a"]})
        ['user', 'user.name', 'tags', 'tags[0]']
    """
    paths: List[str] = []
    for segments, value in _walk(obj, parse_path(prefix)):
        if isinstance(value, list) and not include_arrays:
            continue
        paths.append(join_path(segments))
    return paths


def _walk(value: Any, base: List[PathSegment]) -> Iterator[Tuple[List[PathSegment], Any]]:
    if isinstance(value, Mapping):
        items = ((key, value[key]) for key in value)
    elif isinstance(value, list):
        items = enumerate(value)
    else:
        return
    for key, child in items:
        child_segments = base + [key]
        yield child_segments, child
        if _is_container(child):
            yield from _walk(child, child_segments)


def leaf_paths(obj: Any, prefix: str = "") -> List[str]:
    """Paths of non-mapping values; lists are treated as leaves.

    Empty mappings are leaves too, so they survive a round trip.
    """
    paths: List[str] = []

    def visit(value: Any, segments: List[PathSegment]) -> None:
        if isinstance(value, Mapping) and value:
            for key in value:
                visit(value[key], segments + [key])
        elif segments:
            paths.append(join_path(segments))

    visit(obj, parse_path(prefix))
    return paths


def clone_along_path(obj: Any, path: PathLike) -> Any:
    """Shallow-copy only the containers along path; siblings stay shared.

    The root and every container leading to the final segment are copied, so
    writing the final segment on the result leaves obj untouched.
    """
    if not _is_container(obj):
        return obj
    segments = _segments(path)
    if not segments:
        return obj

    result = _shallow_copy(obj)
    current = result
    for segment in segments[:-1]:
        child = _step(current, segment)
        if not _is_container(child):
            break
        child = _shallow_copy(child)
        _assign(current, segment, child)
        current = child
    return result


def _shallow_copy(value: Any) -> Any:
    if isinstance(value, list):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return copy.copy(value)


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality that keeps bools distinct from ints.

    Mappings compare by key set and values, lists/tuples element-wise.
    """
    if a is b:
        return True
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[key], b[key]) for key in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b
