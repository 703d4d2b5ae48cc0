from types import SimpleNamespace

import pytest

from epaxos.model import Command, CommandType
from epaxos.util import append_if_missing, commands_conflict, equal_deps, merge_deps


def put(key, value="v"):
    return Command(CommandType.PUT, key, value)


def get(key):
    return Command(CommandType.GET, key)


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        (put("x"), put("x", "other"), True),
        (put("x"), put("y"), False),
        (put("x"), get("x"), False),
        (get("x"), put("x"), False),
        (get("x"), get("x"), False),
    ],
)
def test_commands_conflict(a, b, expected):
    assert commands_conflict(a, b) is expected


def test_commands_conflict_is_symmetric():
    pairs = [(put("a"), put("a")), (put("a"), get("a")), (put("a"), put("b"))]
    for a, b in pairs:
        assert commands_conflict(a, b) == commands_conflict(b, a)


def test_append_if_missing_adds_new_value():
    assert append_if_missing([1, 2], 3) == [1, 2, 3]


def test_append_if_missing_keeps_existing():
    values = [1, 2]
    result = append_if_missing(values, 2)
    assert result == [1, 2]
    assert result is values


def test_append_if_missing_on_empty():
    assert append_if_missing([], 5) == [5]


def test_equal_deps_ignores_order():
    assert equal_deps([1, 2, 3], [3, 1, 2]) is True


def test_equal_deps_counts_duplicates():
    assert equal_deps([1, 1, 2], [1, 2, 2]) is False
    assert equal_deps([1, 1, 2], [2, 1, 1]) is True


def test_equal_deps_length_mismatch():
    assert equal_deps([1], [1, 1]) is False
    assert equal_deps([], []) is True


def test_merge_deps_is_union_without_duplicates():
    replies = [
        SimpleNamespace(seq=1, deps=[1, 2]),
        SimpleNamespace(seq=2, deps=[2, 3]),
        SimpleNamespace(seq=1, deps=[]),
    ]
    merged = merge_deps(replies)
    assert sorted(merged) == [1, 2, 3]
    assert len(merged) == len(set(merged))


def test_merge_deps_preserves_first_appearance_order():
    replies = [SimpleNamespace(deps=[4, 1]), SimpleNamespace(deps=[1, 9])]
    assert merge_deps(replies) == [4, 1, 9]


def test_merge_deps_of_nothing_is_empty():
    assert merge_deps([]) == []