"""
Tests for Store Paths, Values and Push Keys

Tests for path validation, value normalization, server timestamp
placeholders and push key ordering.
"""

import random

import pytest

from livestore import InvalidPathError, PushIdGenerator, SERVER_TIMESTAMP, StoreError
from livestore.paths import is_related, is_valid_key, join_path, split_path
from livestore.tree import (
    DataTree,
    contains_server_values,
    normalize,
    resolve_server_values,
)


# ----------------------------------------------------------------------------
# Paths
# ----------------------------------------------------------------------------

def test_split_path_ignores_outer_slashes():
    assert split_path("/rooms/abc/") == ("rooms", "abc")
    assert split_path("") == ()
    assert split_path("/") == ()


@pytest.mark.parametrize("bad", ["a//b", "rooms/a.b", "x$", "has#hash", "a[0]"])
def test_split_path_rejects_unsafe_segments(bad):
    with pytest.raises(InvalidPathError):
        split_path(bad)


def test_is_valid_key():
    assert is_valid_key("-NxYz_09")
    assert is_valid_key("❤️")
    assert not is_valid_key("")
    assert not is_valid_key("a/b")
    assert not is_valid_key("tab\there")
    assert not is_valid_key("x" * 769)


def test_join_path_and_related():
    assert join_path("rooms", "/r1/", "name") == "rooms/r1/name"
    assert is_related(("rooms",), ("rooms", "r1"))
    assert is_related(("rooms", "r1"), ("rooms", "r1"))
    assert not is_related(("rooms", "r1"), ("rooms", "r2"))
    assert is_related((), ("anything",))


# ----------------------------------------------------------------------------
# Values
# ----------------------------------------------------------------------------

def test_normalize_prunes_empty_values():
    assert normalize({"a": None, "b": {}, "c": 1}) == {"c": 1}
    assert normalize({"a": {"b": None}}) is None
    assert normalize(None) is None


def test_normalize_rejects_unsupported_types():
    with pytest.raises(StoreError) as exc_info:
        normalize({"list": [1, 2]})
    assert exc_info.value.code == "invalid_value"


def test_normalize_rejects_unsafe_keys():
    with pytest.raises(InvalidPathError):
        normalize({"a.b": 1})


def test_server_timestamp_resolution():
    value = {"text": "hi", "meta": {"at": SERVER_TIMESTAMP}}
    assert contains_server_values(value)
    assert not contains_server_values({"text": "hi"})
    assert resolve_server_values(value, 42) == {"text": "hi", "meta": {"at": 42}}
    # The placeholder itself is untouched
    assert SERVER_TIMESTAMP == {".sv": "timestamp"}


# ----------------------------------------------------------------------------
# DataTree
# ----------------------------------------------------------------------------

def test_tree_set_get_and_prune():
    tree = DataTree()
    tree.set(("rooms", "r1", "name"), "General")
    assert tree.get(("rooms", "r1")) == {"name": "General"}

    tree.delete(("rooms", "r1", "name"))
    assert tree.get(("rooms",)) is None
    assert tree.snapshot() == {}


def test_tree_get_returns_copies():
    tree = DataTree({"a": {"b": 1}})
    value = tree.get(("a",))
    value["b"] = 2
    assert tree.get(("a", "b")) == 1


def test_tree_write_below_leaf_replaces_leaf():
    tree = DataTree({"a": 1})
    tree.set(("a", "b"), 2)
    assert tree.get(("a",)) == {"b": 2}


# ----------------------------------------------------------------------------
# Push keys
# ----------------------------------------------------------------------------

def test_push_keys_have_fixed_length():
    generator = PushIdGenerator(clock=lambda: 1_700_000_000.0)
    key = generator.generate()
    assert len(key) == 20
    assert is_valid_key(key)


def test_push_keys_sort_in_generation_order_within_one_millisecond():
    generator = PushIdGenerator(clock=lambda: 1_700_000_000.0, rng=random.Random(7))
    keys = [generator.generate() for _ in range(200)]
    assert keys == sorted(keys)
    assert len(set(keys)) == 200


def test_push_keys_sort_across_milliseconds():
    now = [1_700_000_000.0]
    generator = PushIdGenerator(clock=lambda: now[0], rng=random.Random(3))
    keys = []
    for _ in range(50):
        keys.append(generator.generate())
        now[0] += 0.001
    assert keys == sorted(keys)
