"""Helpers for conflict detection and dependency bookkeeping."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from .model import Command, CommandType


def commands_conflict(a: Command, b: Command) -> bool:
    """Return True when both commands are PUTs to the same key."""
    return a.type == CommandType.PUT and b.type == CommandType.PUT and a.key == b.key


def append_if_missing(values: list[int], val: int) -> list[int]:
    """Return ``values`` with ``val`` appended unless it is already present."""
    if val in values:
        return values
    return [*values, val]


def equal_deps(a: Iterable[int], b: Iterable[int]) -> bool:
    """Compare two dependency lists as multisets, ignoring order."""
    return Counter(a) == Counter(b)


def merge_deps(replies: Iterable) -> list[int]:
    """Union of the ``deps`` of every reply, in order of first appearance."""
    merged: dict[int, None] = {}
    for reply in replies:
        merged.update(dict.fromkeys(reply.deps))
    return list(merged)