# reversible_ad/core/control.py
"""
Reversible control flow.

For    the inverse walks the identical index set in reverse order.
If     guarded by a (precondition, postcondition) pair: after the chosen branch
       the postcondition must agree with the precondition, so the inverse can
       re-derive the branch from state alone by testing the postcondition.
While  forward: postcondition False on entry, True after every iteration;
       runs while the precondition holds. The inverse swaps the two roles.

Predicate checks run only while the frame's check flag is on (EngineConfig.invcheck,
switched off inside invcheckoff blocks); failures raise PredicateInconsistencyError.
"""
from __future__ import annotations
import logging
from typing import Callable, Optional, Tuple, Union

from .errors import PredicateInconsistencyError, ReversibleError
from .expr import Operand
from .statements import Block, Statement, resolve_bound, as_statement

logger = logging.getLogger(__name__)

Predicate = Callable[..., bool]


def _as_block(body) -> Block:
    body = as_statement(body)
    return body if isinstance(body, Block) else Block([body])


def _test(pred, frame) -> bool:
    if isinstance(pred, Operand):
        return bool(pred.evaluate(frame))
    return bool(pred(frame.view))


def _pred_name(pred) -> str:
    if isinstance(pred, Operand):
        return pred.describe()
    return getattr(pred, "__name__", repr(pred))


def _bound_name(b) -> str:
    if isinstance(b, Operand):
        return b.describe()
    if callable(b):
        return getattr(b, "__name__", "<bound>")
    return str(b)


def _pair(cond) -> Tuple[Predicate, Predicate]:
    if isinstance(cond, tuple):
        if len(cond) != 2:
            raise ValueError("condition must be a predicate or a (precondition, postcondition) pair")
        return cond
    return cond, cond


class For(Statement):
    """
    ``for var = start : step : stop`` (inclusive bounds).

    Bounds are ints, binding / loop-index names, operands or callables over the
    frame's StateView. The loop index is loop-control metadata, not a binding.
    """

    def __init__(self, var: str, start, stop, body, step=1, *, reverse: bool = False):
        self.var = var
        self.start = start
        self.stop = stop
        self.step = step
        self.body = _as_block(body)
        self.reverse = reverse

    def _range(self, frame) -> range:
        start = resolve_bound(self.start, frame)
        stop = resolve_bound(self.stop, frame)
        step = resolve_bound(self.step, frame)
        if step == 0:
            raise ValueError(f"for {self.var}: step must be non-zero")
        return range(start, stop + (1 if step > 0 else -1), step)

    def execute(self, frame) -> None:
        indices = self._range(frame)
        order = reversed(indices) if self.reverse else indices
        shadowed = frame.indices.get(self.var)
        try:
            for i in order:
                frame.indices[self.var] = i
                try:
                    self.body.execute(frame)
                except ReversibleError as e:
                    e.locate(f"{self.var}={i}")
                    raise
        finally:
            if shadowed is None:
                frame.indices.pop(self.var, None)
            else:
                frame.indices[self.var] = shadowed
        if frame.check and self._range(frame) != indices:
            raise PredicateInconsistencyError(
                f"bounds of loop '{self.var}' changed while it ran")

    def invert(self) -> "For":
        return For(self.var, self.start, self.stop, self.body.invert(), self.step,
                   reverse=not self.reverse)

    def children(self):
        return (self.body,)

    def blocks(self):
        return ((None, self.body),)

    def describe(self) -> str:
        start, stop, step = (_bound_name(b) for b in (self.start, self.stop, self.step))
        rng = f"{start}:{stop}" if self.step == 1 else f"{start}:{step}:{stop}"
        return f"for {self.var} = {rng}" + (" (reversed)" if self.reverse else "")


class If(Statement):
    """
    ``if (pre, post) then ... else ... end``; both branches are mandatory
    (pass ``[]`` for an empty one).
    """

    def __init__(self, cond: Union[Predicate, Tuple[Predicate, Predicate]], then, orelse):
        self.pre, self.post = _pair(cond)
        self.then = _as_block(then)
        self.orelse = _as_block(orelse)

    def execute(self, frame) -> None:
        taken = _test(self.pre, frame)
        branch, label = (self.then, "then") if taken else (self.orelse, "else")
        try:
            branch.execute(frame)
        except ReversibleError as e:
            e.locate(label)
            raise
        if frame.check and _test(self.post, frame) != taken:
            raise PredicateInconsistencyError(
                f"postcondition {_pred_name(self.post)} is {not taken} after the '{label}' "
                f"branch, expected {taken}")

    def invert(self) -> "If":
        return If((self.post, self.pre), self.then.invert(), self.orelse.invert())

    def children(self):
        return (self.then, self.orelse)

    def blocks(self):
        return ((None, self.then), ("else", self.orelse))

    def describe(self) -> str:
        if self.pre is self.post:
            return f"if {_pred_name(self.pre)}"
        return f"if ({_pred_name(self.pre)}, {_pred_name(self.post)})"


class While(Statement):
    """``while (pre, post) ... end``."""

    def __init__(self, cond: Tuple[Predicate, Predicate], body, max_iter: Optional[int] = None):
        if not isinstance(cond, tuple) or len(cond) != 2:
            raise ValueError("while needs a (precondition, postcondition) pair")
        self.pre, self.post = cond
        self.body = _as_block(body)
        self.max_iter = max_iter

    def execute(self, frame) -> None:
        if frame.check and _test(self.post, frame):
            raise PredicateInconsistencyError(
                f"postcondition {_pred_name(self.post)} holds before the first iteration")
        it = 0
        while _test(self.pre, frame):
            if self.max_iter is not None and it >= self.max_iter:
                raise RuntimeError(f"while loop exceeded max_iter={self.max_iter}")
            it += 1
            try:
                self.body.execute(frame)
            except ReversibleError as e:
                e.locate(f"while/{it}")
                raise
            if frame.check and not _test(self.post, frame):
                raise PredicateInconsistencyError(
                    f"postcondition {_pred_name(self.post)} is False after iteration {it}")
        logger.debug("while loop ran %d iterations", it)

    def invert(self) -> "While":
        return While((self.post, self.pre), self.body.invert(), self.max_iter)

    def children(self):
        return (self.body,)

    def blocks(self):
        return ((None, self.body),)

    def describe(self) -> str:
        return f"while ({_pred_name(self.pre)}, {_pred_name(self.post)})"
