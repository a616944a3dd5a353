# reversible_ad/core/expr.py
"""
Operand trees for update statements.

    Ref('x')                a binding (or a loop index)
    Ref('x')['i']           element i of an aggregate binding
    Const(2)                a constant
    Expr(fn, operands)      a registered Function applied to operands

Python operators on Ref / Expr build Expr trees (bound in ops.arithmetic), so
``Ref('y') += Ref('x')['i'] ** 2`` style expressions read like the statements
they describe. An operand tree is evaluated against a Frame; during
differentiation it also pushes an upstream adjoint to its leaves through the
local partials of each Function (chain rule, no tape).
"""
from __future__ import annotations
from typing import Any, Callable, Iterator, Optional, Sequence, Tuple

import numpy as np

from .domains import real
from .errors import NoAdjointRuleError


class Operand:
    """Base class of everything that can appear on the right of an update."""

    def evaluate(self, frame) -> Any:
        raise NotImplementedError

    def has_adjoint(self, frame) -> bool:
        """True when an upstream adjoint can flow into this operand."""
        return False

    def backprop(self, frame, upstream) -> None:
        pass

    def refs(self) -> Iterator["Ref"]:
        """All binding references in the tree (index expressions included)."""
        return iter(())

    def functions(self) -> Iterator["Expr"]:
        return iter(())

    def describe(self) -> str:
        raise NotImplementedError

    def __repr__(self):
        return self.describe()


class Ref(Operand):
    """Reference to a binding, optionally to one element of an aggregate."""

    def __init__(self, name: str, index=None):
        self.name = name
        if isinstance(index, list):
            index = tuple(index)
        if isinstance(index, tuple):
            index = tuple(as_index(i) for i in index)
        elif index is not None:
            index = as_index(index)
        self.index = index

    def __getitem__(self, index) -> "Ref":
        if self.index is not None:
            raise TypeError(f"'{self.describe()}' is already indexed")
        return Ref(self.name, index)

    def key(self) -> Tuple[str, str]:
        """Structural identity, used by the aliasing checks."""
        return self.name, _describe_index(self.index)

    def evaluate(self, frame):
        return frame.read(self)

    def has_adjoint(self, frame) -> bool:
        return frame.is_differentiable(self.name)

    def backprop(self, frame, upstream) -> None:
        frame.add_adjoint(self.name, frame.resolve(self.index), upstream)

    def refs(self):
        yield self
        for part in _index_parts(self.index):
            if isinstance(part, Operand):
                yield from part.refs()

    def describe(self) -> str:
        if self.index is None:
            return self.name
        return f"{self.name}[{_describe_index(self.index)}]"


class Const(Operand):
    def __init__(self, value):
        self.value = value

    def evaluate(self, frame):
        return self.value

    def describe(self) -> str:
        return repr(self.value)


class Function:
    """
    A registered pure function usable inside operand trees.

    value    : callable on domain values (ints, floats, Fixed, Logarithmic, arrays)
    partials : one callable per argument returning d value / d arg on the real
               interpretation of the arguments, or None when the function has
               no adjoint rule
    symbol   : infix symbol used by `describe` for binary operators
    """

    def __init__(self, name: str, value: Callable,
                 partials: Optional[Sequence[Optional[Callable]]] = None,
                 symbol: Optional[str] = None):
        self.name = name
        self.value = value
        self.partials = None if partials is None else tuple(partials)
        self.symbol = symbol

    @property
    def has_adjoint_rule(self) -> bool:
        return self.partials is not None

    def __call__(self, *operands) -> "Expr":
        return Expr(self, [as_operand(o) for o in operands])

    def __repr__(self):
        return f"Function({self.name!r})"


class Expr(Operand):
    """A Function applied to operand subtrees."""

    def __init__(self, fn: Function, operands: Sequence[Operand]):
        if fn.partials is not None and len(fn.partials) != len(operands):
            raise TypeError(f"{fn.name} takes {len(fn.partials)} operands, got {len(operands)}")
        self.fn = fn
        self.operands = list(operands)

    def evaluate(self, frame):
        return self.fn.value(*[o.evaluate(frame) for o in self.operands])

    def has_adjoint(self, frame) -> bool:
        return any(o.has_adjoint(frame) for o in self.operands)

    def backprop(self, frame, upstream) -> None:
        args = None
        for k, o in enumerate(self.operands):
            if not o.has_adjoint(frame):
                continue
            if self.fn.partials is None or self.fn.partials[k] is None:
                raise NoAdjointRuleError(f"function '{self.fn.name}' has no adjoint rule "
                                         f"for operand {k}")
            if args is None:
                args = [real(a.evaluate(frame)) for a in self.operands]
            o.backprop(frame, upstream * self.fn.partials[k](*args))

    def refs(self):
        for o in self.operands:
            yield from o.refs()

    def functions(self):
        yield self
        for o in self.operands:
            yield from o.functions()

    def describe(self) -> str:
        if self.fn.symbol is not None and len(self.operands) == 2:
            a, b = self.operands
            return f"({a.describe()} {self.fn.symbol} {b.describe()})"
        if self.fn.symbol is not None and len(self.operands) == 1:
            return f"{self.fn.symbol}{self.operands[0].describe()}"
        return f"{self.fn.name}({', '.join(o.describe() for o in self.operands)})"


# ----------------------------- helpers --------------------------------------- #
def as_operand(x) -> Operand:
    """Strings are binding references, everything else not an Operand is a constant."""
    if isinstance(x, Operand):
        return x
    if isinstance(x, str):
        return Ref(x)
    return Const(x)


def as_ref(x) -> Ref:
    if isinstance(x, Ref):
        return x
    if isinstance(x, str):
        return Ref(x)
    raise TypeError(f"expected a binding reference, got {x!r}")


def as_index(i):
    if isinstance(i, (int, np.integer)):
        return int(i)
    return as_operand(i)


def _index_parts(index):
    if index is None:
        return ()
    return index if isinstance(index, tuple) else (index,)


def _describe_index(index) -> str:
    if index is None:
        return ""
    return ", ".join(p.describe() if isinstance(p, Operand) else str(p)
                     for p in _index_parts(index))
