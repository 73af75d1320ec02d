"""
Generic data-shaping utilities for nested dict/list records.

Modules:
    - paths: dot/bracket field paths (parse, get/set/delete, enumeration)
    - array_diff: identity-keyed diffing of arrays of records
    - key_map: nested key remapping with transforms and flattening
"""

from nestedpath.paths import (
    PathLike,
    PathSegment,
    clone_along_path,
    deep_equal,
    delete_by_path,
    get_all_paths,
    get_by_path,
    get_field_name,
    get_parent_path,
    has_path,
    is_child_path,
    is_parent_path,
    join_path,
    leaf_paths,
    normalize_path,
    parse_path,
    set_by_path,
)
from nestedpath.array_diff import (
    ArrayDiffResult,
    FieldChange,
    ModifiedItem,
    ReorderedItem,
    apply_array_diff,
    detect_nested_array_changes,
    diff_arrays,
    find_array_fields,
    identity_of,
    merge_array_diffs,
    summarize_array_diff,
)
from nestedpath.key_map import (
    KeyMapping,
    MappingKind,
    NestedKeyMapper,
    flatten_object,
    map_keys,
    map_nested_keys,
    merge_nested_key_maps,
    normalize_key_map,
    reverse_nested_key_map,
    unflatten_object,
    validate_nested_key_map,
)

__all__ = [
    # paths
    'PathLike',
    'PathSegment',
    'clone_along_path',
    'deep_equal',
    'delete_by_path',
    'get_all_paths',
    'get_by_path',
    'get_field_name',
    'get_parent_path',
    'has_path',
    'is_child_path',
    'is_parent_path',
    'join_path',
    'leaf_paths',
    'normalize_path',
    'parse_path',
    'set_by_path',
    # array_diff
    'ArrayDiffResult',
    'FieldChange',
    'ModifiedItem',
    'ReorderedItem',
    'apply_array_diff',
    'detect_nested_array_changes',
    'diff_arrays',
    'find_array_fields',
    'identity_of',
    'merge_array_diffs',
    'summarize_array_diff',
    # key_map
    'KeyMapping',
    'MappingKind',
    'NestedKeyMapper',
    'flatten_object',
    'map_keys',
    'map_nested_keys',
    'merge_nested_key_maps',
    'normalize_key_map',
    'reverse_nested_key_map',
    'unflatten_object',
    'validate_nested_key_map',
]
