# reversible_ad/core/statements.py
"""
Atomic reversible statements.

Every statement knows how to execute itself on a Frame and how to build the
statement that undoes it. While a gradient is being computed (frame.grad) the
statements run as parts of the *inverse* program: besides restoring the
forward value, each one pushes adjoints backward through the local derivative
of the forward statement it undoes.

    statement            inverse
    -----------------    -----------------
    y += f(x)            y -= f(x)
    y *= g(x)            y /= g(x)          (logarithmic domain)
    y ^= k               y ^= k             (integers)
    swap(a, b)           swap(a, b)
    neg(y)               neg(y)
    y <- c   (alloc)     y -> c   (dealloc)
    push(y)              pop(y)
    [s1, ..., sn]        [~sn, ..., ~s1]
"""
from __future__ import annotations
from typing import Callable, Iterable, List, Optional, Sequence

import numpy as np

from .domains import (REAL, Domain, UpdateOp, coerce_aggregate, copy_value, domain_of,
                      get_domain, is_aggregate, is_cleared, make_zeros, real, zeros_like)
from .errors import (AliasedOperandError, IrreversibleOperationError, NonZeroPopTargetError,
                     ReversibleError)
from .expr import Operand, Ref, as_operand, as_ref
from .stack import Stack


class Statement:
    """Base class for statements and control-flow nodes."""

    # False for statements that cannot propagate adjoints
    differentiable = True

    def execute(self, frame) -> None:
        raise NotImplementedError

    def invert(self) -> "Statement":
        raise NotImplementedError

    def __invert__(self):
        return self.invert()

    def children(self) -> Sequence["Statement"]:
        return ()

    def blocks(self):
        """(label, Block) pairs rendered under this statement by format_program."""
        return ()

    def describe(self) -> str:
        return type(self).__name__

    def __repr__(self):
        return f"<{self.describe()}>"


def as_statement(s) -> Statement:
    if isinstance(s, Statement):
        return s
    if isinstance(s, (list, tuple)):
        return Block(s)
    raise TypeError(f"not a statement: {s!r}")


def _check_aliases(frame, written: dict, refs) -> None:
    """
    Reject operand refs that resolve to an element being written.

    `written` maps (name, resolved index) to the written ref; structurally
    distinct refs such as x[i] and x[j] only collide once indices are known.
    """
    for r in refs:
        if r.index is None or r.name in frame.indices:
            continue
        other = written.get((r.name, frame.resolve(r.index)))
        if other is not None:
            raise AliasedOperandError(
                f"'{r.describe()}' and '{other.describe()}' resolve to the same element",
                binding=r.name)


def _zero_adjoint_like(adj):
    return np.zeros_like(adj) if isinstance(adj, np.ndarray) else 0.0


class Block(Statement):
    """
    Ordered statement sequence. ``check=False`` switches predicate and routine
    checks off inside the block (see routine.invcheckoff).
    """

    def __init__(self, stmts: Iterable = (), check: Optional[bool] = None):
        self.stmts: List[Statement] = [as_statement(s) for s in stmts]
        self.check = check

    def execute(self, frame) -> None:
        prev = frame.check
        if self.check is not None:
            frame.check = self.check
        try:
            for i, s in enumerate(self.stmts):
                try:
                    s.execute(frame)
                except ReversibleError as e:
                    e.locate(i)
                    raise
        finally:
            frame.check = prev

    def invert(self) -> "Block":
        return Block([s.invert() for s in reversed(self.stmts)], check=self.check)

    def children(self):
        return self.stmts

    def describe(self) -> str:
        return "invcheckoff" if self.check is False else "block"

    def __len__(self):
        return len(self.stmts)

    def __iter__(self):
        return iter(self.stmts)


# ----------------------------- updates --------------------------------------- #
class Update(Statement):
    """``target op= expr`` with op one of +=, -=, *=, /=, ^=."""

    def __init__(self, target, op, expr):
        self.target = as_ref(target)
        self.op = UpdateOp.parse(op)
        self.expr = as_operand(expr)
        for r in self.expr.refs():
            if r.name != self.target.name:
                continue
            if r.index is None or self.target.index is None or r.key() == self.target.key():
                raise IrreversibleOperationError(
                    f"'{self.target.describe()}' appears among the operands of its own update",
                    binding=self.target.name)
        self._peers = [r for r in self.expr.refs()
                       if r.name == self.target.name and r.index is not None]

    def execute(self, frame) -> None:
        b = frame.binding(self.target.name)
        index = frame.resolve(self.target.index)
        if self._peers:
            _check_aliases(frame, {(self.target.name, index): self.target}, self._peers)
        delta = b.domain.coerce(self.expr.evaluate(frame))
        value = b.domain.combine(self.op, b.get(index), delta)
        b.set(index, value)
        if frame.grad and b.domain.differentiable:
            self._backprop(frame, index, delta, value)

    def _backprop(self, frame, index, delta, restored) -> None:
        # adjoint rule of the forward statement this one undoes
        name = self.target.name
        adj = frame.get_adjoint(name, index)
        if not np.any(adj):
            return
        forward = self.op.inverse
        if forward is UpdateOp.ADD:
            self.expr.backprop(frame, adj)
        elif forward is UpdateOp.SUB:
            self.expr.backprop(frame, -adj)
        elif forward is UpdateOp.MUL:
            g, y = real(delta), real(restored)
            self.expr.backprop(frame, adj * y)
            frame.set_adjoint(name, index, adj * g)
        elif forward is UpdateOp.DIV:
            g, y = real(delta), real(restored)
            self.expr.backprop(frame, -adj * y / (g * g))
            frame.set_adjoint(name, index, adj / g)

    def invert(self) -> "Update":
        return Update(self.target, self.op.inverse, self.expr)

    def describe(self) -> str:
        return f"{self.target.describe()} {self.op.value} {self.expr.describe()}"


class Swap(Statement):
    def __init__(self, a, b):
        self.a = as_ref(a)
        self.b = as_ref(b)
        if self.a.key() == self.b.key():
            raise IrreversibleOperationError(f"cannot swap '{self.a.describe()}' with itself",
                                             binding=self.a.name)

    def execute(self, frame) -> None:
        va, vb = frame.read(self.a), frame.read(self.b)
        frame.write(self.a, vb)
        frame.write(self.b, va)
        if frame.grad:
            ia, ib = frame.resolve(self.a.index), frame.resolve(self.b.index)
            da, db = frame.is_differentiable(self.a.name), frame.is_differentiable(self.b.name)
            ga = frame.get_adjoint(self.a.name, ia) if da else 0.0
            gb = frame.get_adjoint(self.b.name, ib) if db else 0.0
            if da:
                frame.set_adjoint(self.a.name, ia, copy_value(gb))
            if db:
                frame.set_adjoint(self.b.name, ib, copy_value(ga))

    def invert(self) -> "Swap":
        return self

    def describe(self) -> str:
        return f"swap({self.a.describe()}, {self.b.describe()})"


class Neg(Statement):
    def __init__(self, target):
        self.target = as_ref(target)

    def execute(self, frame) -> None:
        frame.write(self.target, -frame.read(self.target))
        if frame.grad and frame.is_differentiable(self.target.name):
            index = frame.resolve(self.target.index)
            frame.set_adjoint(self.target.name, index, -frame.get_adjoint(self.target.name, index))

    def invert(self) -> "Neg":
        return self

    def describe(self) -> str:
        return f"neg({self.target.describe()})"


# ----------------------------- allocation ------------------------------------ #
class _Allocation(Statement):
    """
    Shared parts of Alloc / Dealloc.

    value  : constant, or a callable(view) evaluated when the statement runs
             (None: the domain's cleared value, or cleared aggregate of `size`)
    domain : element domain (inferred from a constant value when omitted,
             required with a callable value)
    size   : aggregate size: int, binding / loop name, callable(view) or a tuple
    """

    def __init__(self, name: str, value=None, *, domain=None, size=None):
        self.name = name
        self.value = value
        self.size = size
        self.domain: Optional[Domain] = None if domain is None else get_domain(domain)
        self.aggregate: Optional[bool] = size is not None
        if value is not None and not callable(value):
            inferred, agg = domain_of(value)
            self.domain = self.domain or inferred
            self.aggregate = agg
        elif value is not None:
            if self.domain is None:
                raise ValueError(f"'{name}': a computed allocation value needs an explicit domain")
            self.aggregate = None
        if self.domain is None and value is None:
            self.domain = REAL

    def make_value(self, frame):
        if callable(self.value):
            return self.value(frame.view)
        if self.value is not None:
            if self.aggregate:
                return coerce_aggregate(self.domain, self.value)
            return self.domain.coerce(self.value)
        if self.size is not None:
            return make_zeros(self.domain, self._resolve_size(frame))
        return self.domain.zero()

    def _resolve_size(self, frame):
        size = self.size
        if isinstance(size, tuple):
            return tuple(resolve_bound(s, frame) for s in size)
        return resolve_bound(size, frame)

    def _spec(self) -> str:
        if callable(self.value):
            return getattr(self.value, "__name__", "<fn>")
        if self.size is not None:
            return f"zeros({self.domain.name}, {self.size})"
        if self.value is None:
            return f"zero({self.domain.name})"
        return repr(self.value)


class Alloc(_Allocation):
    """``name <- value``: create an ancilla holding a known constant."""

    def execute(self, frame) -> None:
        value = self.make_value(frame)
        frame.ctx.store.allocate(frame.scope, self.name, value, self.domain, self.aggregate)
        if frame.grad:
            frame.drop_adjoint(self.name)

    def invert(self) -> "Dealloc":
        return Dealloc(self.name, self.value, domain=self.domain, size=self.size)

    def describe(self) -> str:
        return f"{self.name} <- {self._spec()}"


class Dealloc(_Allocation):
    """``name -> value``: free an ancilla that must hold the asserted constant."""

    def execute(self, frame) -> None:
        expected = self.make_value(frame)
        frame.ctx.store.deallocate(frame.scope, self.name, expected)
        if frame.grad:
            frame.drop_adjoint(self.name)

    def invert(self) -> "Alloc":
        return Alloc(self.name, self.value, domain=self.domain, size=self.size)

    def describe(self) -> str:
        return f"{self.name} -> {self._spec()}"


def resolve_bound(spec, frame) -> int:
    """Integer bound / size: int, binding or loop name, operand or callable(view)."""
    if isinstance(spec, str):
        return int(frame.view[spec])
    if isinstance(spec, Operand):
        return int(spec.evaluate(frame))
    if callable(spec):
        return int(spec(frame.view))
    return int(spec)


# ----------------------------- escape stack ---------------------------------- #
class Push(Statement):
    """Move a value onto the escape stack, leaving the binding zero-cleared."""

    def __init__(self, ref, stack: Optional[Stack] = None):
        self.ref = as_ref(ref)
        self.stack = stack

    def execute(self, frame) -> None:
        stack = self.stack if self.stack is not None else frame.ctx.stack
        b = frame.binding(self.ref.name)
        index = frame.resolve(self.ref.index)
        value = b.get(index)
        depth = stack.push(copy_value(value))
        b.set(index, zeros_like(b.domain, value) if is_aggregate(value) else b.domain.zero())
        if frame.grad and b.domain.differentiable:
            adj = frame.get_adjoint(self.ref.name, index)
            frame.ctx.stack_adjoints[depth] = copy_value(adj)
            frame.set_adjoint(self.ref.name, index, _zero_adjoint_like(adj))

    def invert(self) -> "Pop":
        return Pop(self.ref, self.stack)

    def describe(self) -> str:
        return f"push({self.ref.describe()})"


class Pop(Statement):
    """Restore the top of the escape stack into a zero-cleared binding."""

    def __init__(self, ref, stack: Optional[Stack] = None):
        self.ref = as_ref(ref)
        self.stack = stack

    def execute(self, frame) -> None:
        stack = self.stack if self.stack is not None else frame.ctx.stack
        b = frame.binding(self.ref.name)
        index = frame.resolve(self.ref.index)
        current = b.get(index)
        if not is_cleared(b.domain, current):
            raise NonZeroPopTargetError(
                f"pop target '{self.ref.describe()}' holds {current!r}, expected a cleared value",
                binding=self.ref.name)
        depth, value = stack.pop_entry()
        b.set(index, value)
        if frame.grad and b.domain.differentiable:
            adj = frame.ctx.stack_adjoints.pop(depth, None)
            if adj is None:
                adj = _zero_adjoint_like(frame.get_adjoint(self.ref.name, index))
            frame.set_adjoint(self.ref.name, index, adj)

    def invert(self) -> "Push":
        return Push(self.ref, self.stack)

    def describe(self) -> str:
        return f"pop({self.ref.describe()})"


# ----------------------------- misc ------------------------------------------ #
class Safe(Statement):
    """Side-effect free check, run in both directions (e.g. shape assertions)."""

    def __init__(self, fn: Callable, label: Optional[str] = None):
        self.fn = fn
        self.label = label or getattr(fn, "__name__", "check")

    def execute(self, frame) -> None:
        self.fn(frame.view)

    def invert(self) -> "Safe":
        return self

    def describe(self) -> str:
        return f"@safe {self.label}"


class Call(Statement):
    """
    Call a sub-program on references of the caller (copy-in / copy-out).

    References are written back after the call; constants and expressions are
    passed in only, their adjoints flow back into the bindings they read.
    Inverting a call calls the callee's inverse.
    """

    def __init__(self, program, *args):
        self.program = program
        self.args: List[Operand] = [as_operand(a) for a in args]
        refs = [a for a in self.args if isinstance(a, Ref)]
        keys = [a.key() for a in refs]
        if len(keys) != len(set(keys)):
            raise IrreversibleOperationError(f"aliased arguments in call to {program.name}")
        for a in self.args:
            if isinstance(a, Ref):
                continue
            for r in a.refs():
                for w in refs:
                    if r.name == w.name and (r.index is None or w.index is None
                                             or r.key() == w.key()):
                        raise IrreversibleOperationError(
                            f"argument '{a.describe()}' reads '{w.describe()}', which the call "
                            f"to {program.name} writes", binding=w.name)

    def execute(self, frame) -> None:
        from .engine import call_program  # local import to avoid cycles

        written = {}
        for a in self.args:
            if not self._writable(a, frame):
                continue
            key = (a.name, frame.resolve(a.index))
            if key in written:
                raise AliasedOperandError(
                    f"arguments '{written[key].describe()}' and '{a.describe()}' of "
                    f"{self.program.name} resolve to the same element", binding=a.name)
            written[key] = a
        for a in self.args:
            if not isinstance(a, Ref):
                _check_aliases(frame, written, a.refs())

        values = [a.evaluate(frame) for a in self.args]
        adjoints = None
        if frame.grad:
            adjoints = [frame.get_adjoint(a.name, frame.resolve(a.index))
                        if self._writable(a, frame) and a.has_adjoint(frame) else None
                        for a in self.args]
        out, out_adj = call_program(frame.ctx, self.program, values, adjoints)
        for k, a in enumerate(self.args):
            if self._writable(a, frame):
                frame.write(a, out[k])
                if frame.grad and out_adj[k] is not None and a.has_adjoint(frame):
                    frame.set_adjoint(a.name, frame.resolve(a.index), out_adj[k])
            elif frame.grad and out_adj[k] is not None and a.has_adjoint(frame):
                # value passed in only: its adjoint belongs to the operands it was computed from
                a.backprop(frame, out_adj[k])

    @staticmethod
    def _writable(a, frame) -> bool:
        return isinstance(a, Ref) and a.name not in frame.indices

    def invert(self) -> "Call":
        return Call(~self.program, *self.args)

    def describe(self) -> str:
        return f"{self.program.name}({', '.join(a.describe() for a in self.args)})"
