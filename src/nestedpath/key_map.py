"""
Nested key mapping: reshape a payload before it leaves the process.

A key map goes from a source path to one of three shapes:

    "user.firstName": "user.first_name"                      # rename
    "age": ("age_years", int)                                # rename + transform
    "user.profile.email": {"to": "contact.email",            # advanced
                           "transform": str.lower,
                           "flatten": True}

The raw shapes are resolved once into KeyMapping records (see
normalize_key_map) so mapping a payload never branches on value shape.

Example:
    >>> mapper = NestedKeyMapper({"profile.firstName": "first_name"})
    >>> mapper({"profile": {"firstName": "Jane"}})
    {'first_name': 'Jane'}
"""

import copy
import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from nestedpath.paths import (
    _MISSING,
    delete_by_path,
    get_by_path,
    join_path,
    normalize_path,
    parse_path,
    set_by_path,
)

Transform = Callable[[Any], Any]
KeyMapValue = Union[str, Sequence[Any], Mapping, "KeyMapping"]
NestedKeyMap = Mapping[str, KeyMapValue]


class MappingKind(enum.Enum):
    """Which key-map shape a mapping was declared with."""
    RENAME = "rename"
    TRANSFORM = "transform"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class KeyMapping:
    """One resolved key-map entry.

    flatten is None when the entry does not say; the mapper's auto_flatten
    option applies then.
    """
    source: str
    target: str
    kind: MappingKind = MappingKind.RENAME
    transform: Optional[Transform] = None
    flatten: Optional[bool] = None

    def apply(self, value: Any) -> Any:
        return self.transform(value) if self.transform else value

    def should_flatten(self, auto_flatten: bool) -> bool:
        return auto_flatten if self.flatten is None else self.flatten


def resolve_mapping(source: str, mapping: KeyMapValue) -> KeyMapping:
    """Resolve one raw key-map value into a KeyMapping.

    Raises:
        TypeError: If the value is none of the supported shapes
    """
    if isinstance(mapping, KeyMapping):
        return mapping
    if isinstance(mapping, str):
        return KeyMapping(source=source, target=mapping, kind=MappingKind.RENAME)
    if isinstance(mapping, Mapping):
        if "to" not in mapping:
            raise TypeError(f"Key map entry for {source!r} is missing 'to'")
        return KeyMapping(
            source=source,
            target=mapping["to"],
            kind=MappingKind.ADVANCED,
            transform=mapping.get("transform"),
            flatten=mapping.get("flatten"),
        )
    if isinstance(mapping, (tuple, list)) and len(mapping) == 2 and isinstance(mapping[0], str):
        target, transform = mapping
        if transform is not None and not callable(transform):
            raise TypeError(f"Transform for {source!r} is not callable: {transform!r}")
        return KeyMapping(source=source, target=target, kind=MappingKind.TRANSFORM, transform=transform)
    raise TypeError(f"Unsupported key map entry for {source!r}: {mapping!r}")


def normalize_key_map(key_map: Union[NestedKeyMap, Iterable[KeyMapping]]) -> List[KeyMapping]:
    """Resolve a whole key map, preserving declaration order."""
    if isinstance(key_map, Mapping):
        return [resolve_mapping(source, mapping) for source, mapping in key_map.items()]
    return [resolve_mapping(mapping.source, mapping) for mapping in key_map]


def map_nested_keys(
    payload: Mapping,
    key_map: Union[NestedKeyMap, Iterable[KeyMapping]],
    preserve_unmapped: bool = True,
    auto_flatten: bool = False,
    flatten_separator: str = "_",
    preserve_paths: Iterable[str] = (),
) -> Dict[str, Any]:
    """Map nested source paths to target paths.

    Each mapping whose source path exists in payload has its transform
    applied, then is written either under a single flattened key (path
    separators replaced by flatten_separator) or at the literal target path.

    Args:
        payload: Input mapping, never mutated
        key_map: Raw key map or resolved KeyMappings
        preserve_unmapped: Start from a full copy of payload and remove each
            mapped source afterwards (pruning parents left empty). If False,
            start empty.
        auto_flatten: Flatten entries that do not specify flatten themselves
        flatten_separator: Joiner for flattened keys
        preserve_paths: With preserve_unmapped=False, paths copied through as-is

    Returns:
        A new dict in the target shape
    """
    mappings = normalize_key_map(key_map)
    if preserve_unmapped:
        result: Dict[str, Any] = copy.deepcopy(dict(payload))
    else:
        result = {}
        for path in preserve_paths:
            value = get_by_path(payload, path, _MISSING)
            if value is not _MISSING:
                set_by_path(result, path, copy.deepcopy(value))

    for mapping in mappings:
        value = get_by_path(payload, mapping.source, _MISSING)
        if value is _MISSING:
            continue

        value = mapping.apply(copy.deepcopy(value))
        if mapping.should_flatten(auto_flatten):
            written = [_flat_key(mapping.target, flatten_separator)]
        else:
            written = parse_path(mapping.target)

        if preserve_unmapped and join_path(written) != normalize_path(mapping.source):
            _remove_and_prune(result, mapping.source)
        set_by_path(result, written, value)

    return result


def _flat_key(target: str, separator: str) -> str:
    return separator.join(str(segment) for segment in parse_path(target))


def _remove_and_prune(obj: Dict[str, Any], path: str) -> None:
    """Delete path, then drop parent dicts the deletion left empty."""
    segments = parse_path(path)
    if not delete_by_path(obj, segments):
        return
    for depth in range(len(segments) - 1, 0, -1):
        parent_segments = segments[:depth]
        parent = get_by_path(obj, parent_segments)
        if isinstance(parent, dict) and not parent:
            delete_by_path(obj, parent_segments)
        else:
            break


class NestedKeyMapper:
    """Key map resolved once at construction, applied per payload."""

    def __init__(
        self,
        key_map: Union[NestedKeyMap, Iterable[KeyMapping]],
        preserve_unmapped: bool = True,
        auto_flatten: bool = False,
        flatten_separator: str = "_",
    ):
        self.mappings = normalize_key_map(key_map)
        self.preserve_unmapped = preserve_unmapped
        self.auto_flatten = auto_flatten
        self.flatten_separator = flatten_separator

    def __call__(self, payload: Mapping) -> Dict[str, Any]:
        return map_nested_keys(
            payload,
            self.mappings,
            preserve_unmapped=self.preserve_unmapped,
            auto_flatten=self.auto_flatten,
            flatten_separator=self.flatten_separator,
        )

    def conflicts(self) -> List[str]:
        return validate_nested_key_map(self.mappings)


def reverse_nested_key_map(key_map: Union[NestedKeyMap, Iterable[KeyMapping]]) -> Dict[str, str]:
    """Swap sources and targets, e.g. to map API responses back to form shape.

    Transforms cannot be inverted and are dropped, so a reversed map is lossy
    for TRANSFORM entries and advanced entries carrying a transform. An entry
    declared with flatten=True is reversed from its flattened key, using the
    default "_" separator.
    """
    reversed_map: Dict[str, str] = {}
    for mapping in normalize_key_map(key_map):
        target = _flat_key(mapping.target, "_") if mapping.flatten else mapping.target
        reversed_map[target] = mapping.source
    return reversed_map


def merge_nested_key_maps(*key_maps: NestedKeyMap) -> Dict[str, KeyMapValue]:
    """Later maps override earlier ones for the same source path."""
    merged: Dict[str, KeyMapValue] = {}
    for key_map in key_maps:
        merged.update(key_map)
    return merged


def validate_nested_key_map(key_map: Union[NestedKeyMap, Iterable[KeyMapping]]) -> List[str]:
    """Report every pair of different sources mapped to the same target.

    Returns:
        Human-readable conflict descriptions; empty when the map is valid
    """
    conflicts: List[str] = []
    seen: Dict[str, str] = {}
    for mapping in normalize_key_map(key_map):
        target = normalize_path(mapping.target)
        existing = seen.get(target)
        if existing is not None and existing != mapping.source:
            conflicts.append(
                f"{mapping.source} -> {mapping.target} conflicts with {existing} -> {mapping.target}"
            )
        seen.setdefault(target, mapping.source)
    return conflicts


def flatten_object(obj: Mapping, separator: str = ".", prefix: str = "") -> Dict[str, Any]:
    """Flatten nested dicts into separator-joined keys; lists are leaves.

    Example:
        >>> flatten_object({"user": {"name": "J", "tags": ["a"]}})
        {'user.name': 'J', 'user.tags': ['a']}
    """
    result: Dict[str, Any] = {}
    for key, value in obj.items():
        new_key = f"{prefix}{separator}{key}" if prefix else str(key)
        if isinstance(value, Mapping) and value:
            result.update(flatten_object(value, separator, new_key))
        else:
            result[new_key] = value
    return result


def unflatten_object(obj: Mapping, separator: str = ".") -> Dict[str, Any]:
    """Inverse of flatten_object (keys split on separator into dict levels)."""
    result: Dict[str, Any] = {}
    for key, value in obj.items():
        set_by_path(result, key.split(separator), value)
    return result


def map_keys(payload: Mapping, key_map: Mapping[str, Union[str, Sequence[Any]]]) -> Dict[str, Any]:
    """Shallow top-level rename with optional value transform.

    Keys without a rule are copied unchanged.

    Example:
        >>> map_keys({"jurisdiction_id": "5", "title": "A"},
        ...          {"jurisdiction_id": ("geo_entity_id", int)})
        {'geo_entity_id': 5, 'title': 'A'}
    """
    out: Dict[str, Any] = {}
    for key, value in payload.items():
        rule = key_map.get(key)
        if not rule:
            out[key] = value
        elif isinstance(rule, str):
            out[rule] = value
        else:
            target, transform = rule
            out[target] = transform(value) if transform else value
    return out
