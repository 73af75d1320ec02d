"""
Tests for nested field path utilities.

Tests cover:
- Parsing, joining and normalizing dot/bracket paths
- get/set/has/delete with missing intermediates
- Parent/child relations and path enumeration
- Path copying and structural equality
"""

import pytest

from nestedpath.paths import (
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


class TestParsePath:
    """Test path parsing and joining."""

    def test_dots_and_brackets(self):
        """Bracket digits become int segments."""
        assert parse_path("a.b[0].c") == ["a", "b", 0, "c"]
        assert parse_path("items[0][1]") == ["items", 0, 1]

    def test_non_numeric_bracket_stays_string(self):
        """Bracket contents that are not digits are property names."""
        assert parse_path("map[key].x") == ["map", "key", "x"]

    def test_empty_segments_dropped(self):
        """Stray separators do not produce empty segments."""
        assert parse_path("a..b.") == ["a", "b"]
        assert parse_path("") == []

    def test_join_path(self):
        """Ints render as [n], later strings dot-prefixed."""
        assert join_path(["users", 0, "name"]) == "users[0].name"
        assert join_path([0, "a"]) == "[0].a"
        assert join_path([]) == ""

    @pytest.mark.parametrize("path", ["a.b[2].c", "a..b", "[0].x", "x[1][2]", "", "a.b."])
    def test_join_parse_is_normalize(self, path):
        """join(parse(p)) equals normalize(p)."""
        assert join_path(parse_path(path)) == normalize_path(path)

    def test_normalize(self):
        """Normalization removes doubled dots."""
        assert normalize_path("a..b[1]") == "a.b[1]"

    def test_unescaped_syntax_limits(self):
        """Stray brackets are dropped; dotted keys split on a round trip."""
        assert parse_path("a]b") == ["ab"]
        assert parse_path(join_path(["a.b"])) == ["a", "b"]
        assert leaf_paths({"a.b": 1}) == ["a.b"]
        assert get_by_path({"a.b": 1}, "a.b") is None


class TestGetSet:
    """Test reading and writing through paths."""

    def test_get_nested(self):
        """Reads through dicts and lists."""
        obj = {"a": {"b": [{"c": 1}]}}
        assert get_by_path(obj, "a.b[0].c") == 1
        assert get_by_path(obj, ["a", "b", 0, "c"]) == 1

    def test_get_missing_returns_default(self):
        """Missing intermediates never raise."""
        obj = {"a": {"b": None}, "l": [1]}
        assert get_by_path(obj, "a.x.y") is None
        assert get_by_path(obj, "a.b.c", "d") == "d"
        assert get_by_path(obj, "l[5]", 0) == 0

    def test_has_path_with_none_value(self):
        """A key holding None exists."""
        assert has_path({"a": None}, "a") is True
        assert has_path({"a": None}, "a.b") is False

    def test_set_creates_intermediates(self):
        """Lists are created when the next segment is an int, and padded."""
        obj = {}
        result = set_by_path(obj, "a.b[2].c", 5)
        assert result is obj
        assert obj == {"a": {"b": [None, None, {"c": 5}]}}

    @pytest.mark.parametrize("path,value", [
        ("x", 1),
        ("a.b.c", {"deep": True}),
        ("list[0]", "first"),
        ("users[1].tags[0]", "t"),
    ])
    def test_set_then_get(self, path, value):
        """Whatever is set can be read back."""
        assert get_by_path(set_by_path({}, path, value), path) == value

    def test_set_through_scalar_raises(self):
        """Cannot descend into a non-container."""
        with pytest.raises(TypeError):
            set_by_path({"a": "x"}, "a.b", 1)

    def test_set_overwrites_existing(self):
        """Existing siblings are kept."""
        obj = {"a": {"b": 1, "c": 2}}
        set_by_path(obj, "a.b", 10)
        assert obj == {"a": {"b": 10, "c": 2}}


class TestDelete:
    """Test delete_by_path."""

    def test_delete_existing(self):
        """Removes the key and reports it existed."""
        obj = {"a": {"b": 1}}
        assert delete_by_path(obj, "a.b") is True
        assert obj == {"a": {}}

    def test_delete_missing(self):
        """Missing keys report False."""
        assert delete_by_path({"a": {}}, "a.b") is False
        assert delete_by_path({}, "x.y.z") is False

    def test_delete_list_index(self):
        """List elements are removed by index."""
        obj = {"l": [1, 2, 3]}
        assert delete_by_path(obj, "l[1]") is True
        assert obj == {"l": [1, 3]}


class TestParentPaths:
    """Test parent/child relations."""

    def test_parent_and_field_name(self):
        """Parent path and last segment."""
        assert get_parent_path("a.b[0].c") == "a.b[0]"
        assert get_parent_path("a") == ""
        assert get_field_name("a.b[0]") == 0
        assert get_field_name("a.b") == "b"

    def test_strict_prefix(self):
        """A path is never its own parent."""
        assert is_parent_path("a", "a.b") is True
        assert is_parent_path("users", "users[0].name") is True
        assert is_parent_path("a", "a") is False
        assert is_parent_path("a.b", "a") is False
        assert is_parent_path("a", "ab") is False

    def test_empty_is_parent_of_everything(self):
        """Empty path parents every non-empty path."""
        assert is_parent_path("", "a") is True
        assert is_parent_path("", "") is False

    def test_is_child_path(self):
        """Mirror of is_parent_path."""
        assert is_child_path("a.b", "a") is True
        assert is_child_path("a", "a.b") is False


class TestEnumeration:
    """Test get_all_paths and leaf_paths."""

    def test_all_paths_preorder(self):
        """Containers and leaves, each once, in pre-order."""
        obj = {"user": {"name": "J"}, "tags": ["a"]}
        assert get_all_paths(obj) == ["user", "user.name", "tags", "tags[0]"]

    def test_all_paths_without_arrays(self):
        """List containers omitted, elements kept."""
        obj = {"user": {"name": "J"}, "tags": ["a"]}
        assert get_all_paths(obj, include_arrays=False) == ["user", "user.name", "tags[0]"]

    def test_all_paths_unique(self):
        """No path appears twice."""
        obj = {"a": [{"b": [1, 2]}, {"b": []}], "c": {"d": {"e": None}}}
        paths = get_all_paths(obj)
        assert len(paths) == len(set(paths))

    def test_leaf_paths(self):
        """Lists and empty dicts are leaves."""
        obj = {"a": {"b": 1, "c": [1, 2]}, "d": {}}
        assert leaf_paths(obj) == ["a.b", "a.c", "d"]


class TestCloneAlongPath:
    """Test structural sharing when copying along a path."""

    def test_copies_only_along_path(self):
        """Containers on the path are new, siblings are shared."""
        obj = {"a": {"b": {"c": 1}}, "x": {"y": 2}}
        result = clone_along_path(obj, "a.b.c")
        assert result is not obj
        assert result["a"] is not obj["a"]
        assert result["a"]["b"] is not obj["a"]["b"]
        assert result["x"] is obj["x"]

    def test_write_does_not_touch_original(self):
        """Writing the cloned leaf leaves the source intact."""
        obj = {"a": {"b": 1}}
        result = clone_along_path(obj, "a.b")
        result["a"]["b"] = 2
        assert obj == {"a": {"b": 1}}


class TestDeepEqual:
    """Test structural equality."""

    def test_nested(self):
        assert deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 2}]})
        assert not deep_equal({"a": [1]}, {"a": [1, 2]})
        assert not deep_equal({"a": 1}, {"b": 1})

    def test_bool_is_not_int(self):
        """True and 1 differ."""
        assert not deep_equal(1, True)
        assert deep_equal(1, 1.0)
