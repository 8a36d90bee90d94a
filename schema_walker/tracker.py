"""
tracker.py - "evaluated" bookkeeping for ``unevaluatedProperties`` / ``unevaluatedItems``
======================================================================================

One :class:`EvaluationTracker` lives for exactly one top-level validation call
and is threaded through the recursive engine as part of its context.

A schema node that declares ``unevaluatedProperties`` (object) or
``unevaluatedItems`` (array) opens an *evaluated set* on the value instance
with :meth:`EvaluationTracker.begin`, seeded with every current key / index.
Applicator keywords then :meth:`~EvaluationTracker.claim` the keys they
evaluated; a claim removes the key from every set open on that instance.
Sets only ever shrink, and claiming an already-removed key is a no-op.

Branches
--------
Claims made inside a combinator branch are buffered until the branch closes:
``anyOf`` / ``oneOf`` commit a branch's claims only when it passed, ``not``
never commits (collection is suppressed), ``if`` always commits.  Sets opened
*inside* a branch see that branch's claims immediately.

Instances are keyed by identity (``id``), never by equality: two equal but
distinct dicts never share a set.
"""

from __future__ import annotations

import contextlib
from collections.abc import Mapping
from typing import Any, Dict, Hashable, Iterator, List, Tuple

__all__ = ["EvaluationTracker"]


def _keys_of(value: Any) -> List[Hashable]:
    if isinstance(value, Mapping):
        return list(value)
    return list(range(len(value)))


class _Frame:
    __slots__ = ("value", "keys", "level")

    def __init__(self, value: Any, level: int):
        self.value = value              # pins the instance so its id stays unique
        self.keys = set(_keys_of(value))
        self.level = level


class _Branch:
    __slots__ = ("commit",)

    def __init__(self) -> None:
        self.commit = False


class EvaluationTracker:
    """Per-call table of unclaimed keys, keyed by value-instance identity."""

    def __init__(self) -> None:
        self._frames: Dict[int, List[_Frame]] = {}
        self._buffers: List[List[Tuple[Any, Hashable]]] = []

    # ------------------------------------------------------------------ #
    # Sets                                                               #
    # ------------------------------------------------------------------ #
    def begin(self, value: Any) -> None:
        """Open an evaluated set on *value*, seeded with all keys/indices."""
        self._frames.setdefault(id(value), []).append(_Frame(value, len(self._buffers)))

    def active(self, value: Any) -> bool:
        """True while at least one set is open on *value*."""
        return bool(self._frames.get(id(value)))

    def claim(self, value: Any, key: Hashable) -> None:
        """Mark *key* of *value* as evaluated."""
        frames = self._frames.get(id(value))
        if not frames:
            return
        level = len(self._buffers)
        outer = False
        for frame in frames:
            if frame.level == level:
                frame.keys.discard(key)
            elif frame.level < level:
                outer = True
        if outer:
            self._buffers[-1].append((value, key))

    def remaining(self, value: Any) -> Iterator[Hashable]:
        """Iterate the still-unclaimed keys of the innermost set, in order."""
        frames = self._frames.get(id(value))
        if not frames:
            return iter(())
        keys = frames[-1].keys
        return iter([k for k in _keys_of(value) if k in keys])

    def end(self, value: Any) -> None:
        """Discard the innermost set opened on *value*."""
        frames = self._frames.get(id(value))
        if not frames:
            return
        frames.pop()
        if not frames:
            del self._frames[id(value)]

    # ------------------------------------------------------------------ #
    # Branches                                                           #
    # ------------------------------------------------------------------ #
    @contextlib.contextmanager
    def branch(self) -> Iterator[_Branch]:
        """Buffer claims for enclosing sets; replay them if ``commit`` is set."""
        buffer: List[Tuple[Any, Hashable]] = []
        outcome = _Branch()
        self._buffers.append(buffer)
        try:
            yield outcome
        finally:
            self._buffers.pop()
            if outcome.commit:
                for value, key in buffer:
                    self.claim(value, key)

    @contextlib.contextmanager
    def suppressed(self) -> Iterator[None]:
        """Claims made inside never reach sets opened outside (``not``)."""
        with self.branch():
            yield
