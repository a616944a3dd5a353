# reversible_ad/core/routine.py
"""
Compute / uncompute composition.

    compute, uncompute = routine([...])
    body = [compute, <use the result>, uncompute]

`uncompute` is the structural inverse of `compute`. With checks on, `compute`
records the values of the bindings it writes and `uncompute` verifies they were
restored; an ancilla that the uncompute pass cannot return to its allocation
constant is reported as RoutineNotCleanError.
"""
from __future__ import annotations
import itertools
import logging
from typing import Iterator, Set, Tuple

from .domains import copy_value, values_equal
from .errors import NonZeroDeallocationError, RoutineNotCleanError
from .expr import Ref
from .statements import (Alloc, Block, Call, Dealloc, Neg, Pop, Push, Statement, Swap, Update,
                         as_statement)

logger = logging.getLogger(__name__)

_routine_ids = itertools.count()


def _walk(stmt: Statement) -> Iterator[Statement]:
    yield stmt
    for child in stmt.children():
        yield from _walk(child)


def write_set(stmt: Statement) -> Tuple[Set[str], Set[str]]:
    """(names written, names allocated) by a statement tree."""
    written, allocated = set(), set()
    for s in _walk(stmt):
        if isinstance(s, (Update, Neg, Push, Pop)):
            written.add((s.target if isinstance(s, (Update, Neg)) else s.ref).name)
        elif isinstance(s, Swap):
            written.update((s.a.name, s.b.name))
        elif isinstance(s, Call):
            written.update(a.name for a in s.args if isinstance(a, Ref))
        elif isinstance(s, (Alloc, Dealloc)):
            allocated.add(s.name)
    return written - allocated, allocated


class Routine(Statement):
    """The compute half of a routine."""

    def __init__(self, body, key: int):
        self.body = as_statement(body)
        self.key = key
        self.written, self.allocated = write_set(self.body)

    def execute(self, frame) -> None:
        if frame.check:
            snapshot = {}
            for name in sorted(self.written):
                if frame.ctx.store.is_live(frame.scope, name):
                    snapshot[name] = copy_value(frame.binding(name).value)
            frame.routines[self.key] = snapshot
            logger.debug("routine %d: recorded %s", self.key, sorted(snapshot))
        self.body.execute(frame)

    def invert(self) -> "Unroutine":
        return Unroutine(self.body.invert(), self.key)

    def children(self):
        return (self.body,)

    def blocks(self):
        return ((None, self.body),)

    def describe(self) -> str:
        return "@routine"


class Unroutine(Statement):
    """The uncompute half: runs the inverse body and verifies the cleanup."""

    def __init__(self, body, key: int):
        self.body = as_statement(body)
        self.key = key
        _, self.allocated = write_set(self.body)

    def execute(self, frame) -> None:
        try:
            self.body.execute(frame)
        except NonZeroDeallocationError as e:
            if e.binding in self.allocated:
                raise RoutineNotCleanError(
                    f"uncompute left ancilla '{e.binding}' dirty: {e.message}",
                    binding=e.binding) from e
            raise
        snapshot = frame.routines.pop(self.key, None)
        if not frame.check or snapshot is None:
            return
        for name, before in snapshot.items():
            b = frame.binding(name)
            if not values_equal(b.domain, b.value, before, b.aggregate):
                raise RoutineNotCleanError(
                    f"uncompute did not restore '{name}': {b.value!r} != {before!r}",
                    binding=name)

    def invert(self) -> Routine:
        return Routine(self.body.invert(), self.key)

    def children(self):
        return (self.body,)

    def blocks(self):
        return ((None, self.body),)

    def describe(self) -> str:
        return "~@routine"


def routine(block) -> Tuple[Routine, Unroutine]:
    """Build the (compute, uncompute) pair for a block."""
    key = next(_routine_ids)
    compute = Routine(block, key)
    return compute, compute.invert()


def compute_uncompute(compute, *use) -> Block:
    """compute; use...; ~compute"""
    if not isinstance(compute, Routine):
        compute, _ = routine(compute)
    return Block([compute, *use, compute.invert()])


def invcheckoff(*stmts) -> Block:
    """Block with predicate / routine checks switched off (deallocation checks stay on)."""
    if len(stmts) == 1 and isinstance(stmts[0], (list, tuple)):
        stmts = stmts[0]
    return Block(stmts, check=False)
