"""Tests for JSON-Patch generation and application.

These tests verify:
1. Object diffs (add, replace, remove, nested)
2. Identifier-matched array diffs (remove, add, move)
3. In-place application keeps container references
4. Root and parent edge cases
"""

import pytest

from enigma import json_patch
from enigma.error import ErrorCode, ProtocolError


def item(qid, **extra):
    return {"qInfo": {"qId": qid}, **extra}


class TestGenerate:
    """Tests for patch generation."""

    def test_identical_values_produce_no_patches(self) -> None:
        value = {"a": 1, "b": [1, 2], "c": {"d": None}}
        assert json_patch.generate(value, json_patch.clone(value)) == []

    def test_primitives_produce_no_patches(self) -> None:
        assert json_patch.generate(1, 2) == []
        assert json_patch.generate("a", {"a": 1}) == []

    def test_add_replace_remove(self) -> None:
        patches = json_patch.generate({"a": 1, "b": 2}, {"a": 3, "c": 4})
        assert patches == [
            {"op": "replace", "path": "/a", "value": 3},
            {"op": "add", "path": "/c", "value": 4},
            {"op": "remove", "path": "/b"},
        ]

    def test_type_change_is_replace(self) -> None:
        patches = json_patch.generate({"a": {"b": 1}}, {"a": [1]})
        assert patches == [{"op": "replace", "path": "/a", "value": [1]}]

    def test_bool_does_not_equal_int(self) -> None:
        patches = json_patch.generate({"a": 1}, {"a": True})
        assert patches == [{"op": "replace", "path": "/a", "value": True}]

    def test_nested_objects_recurse(self) -> None:
        patches = json_patch.generate({"a": {"b": {"c": 1}}}, {"a": {"b": {"c": 2}}})
        assert patches == [{"op": "replace", "path": "/a/b/c", "value": 2}]

    def test_keys_are_escaped(self) -> None:
        patches = json_patch.generate({}, {"a/b": 1, "c~d": 2})
        assert [p["path"] for p in patches] == ["/a~1b", "/c~0d"]

    def test_special_properties_are_skipped(self) -> None:
        patches = json_patch.generate(
            {"_private": 1, "$$hash": 2},
            {"_private": 3, "fn": lambda: None},
        )
        assert patches == []

    def test_array_without_identifiers_is_replaced(self) -> None:
        patches = json_patch.generate({"a": [1, 2, 3]}, {"a": [1, 2]})
        assert patches == [{"op": "replace", "path": "/a", "value": [1, 2]}]

    def test_root_array_without_identifiers_is_replaced_at_root(self) -> None:
        patches = json_patch.generate([1], [2])
        assert patches == [{"op": "replace", "path": "/", "value": [2]}]

    def test_identifier_matched_removal_and_addition(self) -> None:
        original = [item(1), item(2), item(3)]
        new = [item(2), item(4)]
        patches = json_patch.generate(original, new)
        assert patches == [
            {"op": "remove", "path": "/2"},
            {"op": "remove", "path": "/0"},
            {"op": "add", "path": "/1", "value": item(4)},
        ]
        json_patch.apply(original, patches)
        assert original == new

    def test_identifier_matched_move(self) -> None:
        original = [item(1), item(2), item(3)]
        new = [item(3), item(1), item(2)]
        patches = json_patch.generate(original, new)
        assert patches == [{"op": "move", "path": "/0", "from": "/2"}]
        json_patch.apply(original, patches)
        assert original == new

    def test_identifier_matched_element_changes_recurse(self) -> None:
        original = {"list": [item(1, title="a"), item(2, title="b")]}
        new = {"list": [item(1, title="a"), item(2, title="c")]}
        patches = json_patch.generate(original, new)
        assert patches == [{"op": "replace", "path": "/list/1/title", "value": "c"}]


class TestApply:
    """Tests for in-place patch application."""

    def test_empty_patch_list_leaves_value_unchanged(self) -> None:
        value = {"a": [1, {"b": 2}]}
        json_patch.apply(value, [])
        assert value == {"a": [1, {"b": 2}]}

    def test_round_trip(self) -> None:
        a = {"title": "x", "nested": {"n": 1, "gone": True}, "items": [item("x"), item("y")]}
        b = {"title": "y", "nested": {"n": 2, "new": [1]}, "items": [item("y", v=1), item("z")]}
        target = json_patch.clone(a)
        json_patch.apply(target, json_patch.generate(a, b))
        assert target == b

    def test_object_reference_is_preserved(self) -> None:
        original = {"layout": {"title": "old", "sub": {"x": 1}}}
        layout = original["layout"]
        json_patch.apply(original, [
            {"op": "replace", "path": "/layout", "value": {"title": "new"}},
        ])
        assert original["layout"] is layout
        assert layout == {"title": "new"}

    def test_array_reference_is_preserved(self) -> None:
        original = {"values": [1, 2, 3]}
        values = original["values"]
        json_patch.apply(original, [{"op": "replace", "path": "/values", "value": [4]}])
        assert original["values"] is values
        assert values == [4]

    def test_root_container_replace_keeps_reference(self) -> None:
        original = {"a": 1, "_keep": "me"}
        json_patch.apply(original, [{"op": "add", "path": "/", "value": {"b": 2}}])
        assert original == {"b": 2, "_keep": "me"}

    def test_add_into_array(self) -> None:
        original = {"a": [1, 3]}
        json_patch.apply(original, [
            {"op": "add", "path": "/a/1", "value": 2},
            {"op": "add", "path": "/a/-", "value": 4},
        ])
        assert original == {"a": [1, 2, 3, 4]}

    def test_missing_intermediates_are_created(self) -> None:
        original: dict = {}
        json_patch.apply(original, [
            {"op": "add", "path": "/a/b", "value": 1},
            {"op": "add", "path": "/c/0", "value": "x"},
        ])
        assert original == {"a": {"b": 1}, "c": ["x"]}

    def test_escaped_path(self) -> None:
        original = {"a/b": 1}
        json_patch.apply(original, [{"op": "replace", "path": "/a~1b", "value": 2}])
        assert original == {"a/b": 2}

    def test_remove(self) -> None:
        original = {"a": [1, 2], "b": 1}
        json_patch.apply(original, [
            {"op": "remove", "path": "/a/0"},
            {"op": "remove", "path": "/b"},
        ])
        assert original == {"a": [2]}

    def test_primitive_root_has_no_parent(self) -> None:
        with pytest.raises(ProtocolError) as exc_info:
            json_patch.apply({}, [{"op": "replace", "path": "/", "value": False}])
        assert exc_info.value.code == ErrorCode.PATCH_HAS_NO_PARENT

    def test_patch_through_primitive_has_no_parent(self) -> None:
        with pytest.raises(ProtocolError) as exc_info:
            json_patch.apply({"a": 1}, [{"op": "add", "path": "/a/b/c", "value": 1}])
        assert exc_info.value.code == ErrorCode.PATCH_HAS_NO_PARENT

    def test_null_intermediate_has_no_parent(self) -> None:
        original = {"a": None}
        with pytest.raises(ProtocolError) as exc_info:
            json_patch.apply(original, [{"op": "add", "path": "/a/b", "value": 1}])
        assert exc_info.value.code == ErrorCode.PATCH_HAS_NO_PARENT
        assert original == {"a": None}

    @pytest.mark.parametrize(
        "original,patch",
        [
            ([1, 2], {"op": "replace", "path": "/a", "value": 3}),
            ({"x": [1]}, {"op": "add", "path": "/x/5", "value": 3}),
            ({"x": [1]}, {"op": "remove", "path": "/x/5"}),
            ({"x": [1]}, {"op": "remove", "path": "/x/1"}),
            ({"x": [1]}, {"op": "remove", "path": "/x/-"}),
            ({"x": [1, 2]}, {"op": "move", "path": "/x/0", "from": "/x/7"}),
            ({"x": [1], "y": {}}, {"op": "move", "path": "/x/0", "from": "/y/missing"}),
        ],
    )
    def test_malformed_patch_has_no_parent(self, original, patch) -> None:
        with pytest.raises(ProtocolError) as exc_info:
            json_patch.apply(original, [patch])
        assert exc_info.value.code == ErrorCode.PATCH_HAS_NO_PARENT

    def test_replace_past_end_of_array_appends(self) -> None:
        original = {"x": [1]}
        json_patch.apply(original, [{"op": "replace", "path": "/x/1", "value": 2}])
        assert original == {"x": [1, 2]}


class TestHelpers:
    """Tests for update_object, create_patch and clone."""

    def test_update_object_fills_empty(self) -> None:
        original: dict = {}
        new = {"a": {"b": 1}}
        json_patch.update_object(original, new)
        assert original == new
        assert original["a"] is not new["a"]

    def test_update_object_patches_existing(self) -> None:
        original = {"foo": [1, 2, 3], "bar": {"baz": True, "qux": 1}}
        bar = original["bar"]
        json_patch.update_object(original, {"foo": [4, 5, 6], "bar": {"baz": False}})
        assert original == {"foo": [4, 5, 6], "bar": {"baz": False}}
        assert original["bar"] is bar

    def test_create_patch(self) -> None:
        assert json_patch.create_patch("Add", 1, "/a") == {"op": "add", "path": "/a", "value": 1}
        assert json_patch.create_patch("remove", path="/a") == {"op": "remove", "path": "/a"}
        assert json_patch.create_patch("move", "/b", "/a") == {"op": "move", "path": "/a", "from": "/b"}

    def test_clone_is_deep(self) -> None:
        value = {"a": [{"b": 1}]}
        copied = json_patch.clone(value)
        copied["a"][0]["b"] = 2
        assert value["a"][0]["b"] == 1
