# reversible_ad/core/engine.py
"""
Execution and differentiation entry points.

run / apply / invert
    Execute a program (or a single statement over a dict of bindings) and build
    inverses.

gradient
    Reverse-mode differentiation without a tape:
      1) static check that every reachable update has adjoint rules,
      2) run the program forward,
      3) seed the adjoint of the loss argument,
      4) run the inverse program with adjoint propagation; every statement
         restores its forward input and pushes adjoints through its local
         derivative, so intermediate values are regenerated rather than stored.
    Extra memory is one adjoint per live binding.
"""
from __future__ import annotations
import logging
from typing import Any, List, MutableMapping, Optional, Sequence, Tuple

import numpy as np

from .domains import copy_value, domain_of
from .errors import NoAdjointRuleError, ReversibleError
from .expr import Ref
from .frame import Context, Frame
from .program import Param, Program, SymbolTable, iter_statements, validate
from .stack import Stack, current_stack
from .statements import Call, Update, as_statement

logger = logging.getLogger(__name__)


# ----------------------------- execution ------------------------------------- #
def call_program(ctx: Context, program: Program, values: Sequence[Any],
                 adjoints: Optional[Sequence[Any]] = None) -> Tuple[tuple, Optional[tuple]]:
    """
    Invoke `program` inside `ctx` with copy-in / copy-out argument passing.

    Returns (values after the call, adjoints after the call or None when the
    context is not differentiating).
    """
    if len(values) != len(program.params):
        raise TypeError(f"{program.name} takes {len(program.params)} arguments, "
                        f"got {len(values)}")
    logger.debug("enter %s", program.name)
    store = ctx.store
    try:
        with store.scope(program.name) as scope:
            frame = Frame(ctx, scope, program.name)
            for k, (p, v) in enumerate(zip(program.params, values)):
                store.allocate(scope, p.name, p.coerce(v), p.domain, p.aggregate, ancilla=False)
                if ctx.grad and adjoints is not None and adjoints[k] is not None \
                        and p.domain.differentiable:
                    frame.set_adjoint(p.name, None, _adjoint_arg(adjoints[k], p.aggregate))
            program.body.execute(frame)
            out = tuple(store.read(scope, p.name) for p in program.params)
            out_adj = None
            if ctx.grad:
                out_adj = tuple(copy_value(frame.get_adjoint(p.name)) if p.domain.differentiable
                                else None for p in program.params)
    except ReversibleError as e:
        e.locate(program.name)
        raise
    logger.debug("exit %s", program.name)
    return out, out_adj


def _adjoint_arg(adj, aggregate: bool):
    if aggregate:
        return np.array(adj, dtype=np.float64)
    return float(adj)


def run(program: Program, *args, stack: Optional[Stack] = None, check: Optional[bool] = None) -> tuple:
    """Run `program` on `args`; returns the values of all its arguments afterwards."""
    ctx = Context.create(current_stack(stack), check=check)
    out, _ = call_program(ctx, program, args)
    return out


def apply(node, bindings: MutableMapping[str, Any], *, stack: Optional[Stack] = None) -> None:
    """
    Execute a statement (or program) over a mapping of bindings, in place.

    For a program, the mapping is keyed by parameter name. For a statement, each
    entry becomes a live (non-ancilla) binding; ancillas the statement leaves
    allocated are released under the deallocation contract. The statement is
    validated against the domains of the bindings before anything runs.
    """
    if isinstance(node, Program):
        out = run(node, *[bindings[n] for n in node.param_names], stack=stack)
        for name, value in zip(node.param_names, out):
            bindings[name] = value
        return None

    stmt = as_statement(node)
    params = [Param(name, *domain_of(value)) for name, value in bindings.items()]
    validate(stmt, SymbolTable.build(params, stmt))
    ctx = Context.create(current_stack(stack))
    with ctx.store.scope("apply") as scope:
        for p in params:
            ctx.store.allocate(scope, p.name, copy_value(bindings[p.name]), p.domain, p.aggregate,
                               ancilla=False)
        stmt.execute(Frame(ctx, scope, "apply"))
        for name in list(bindings):
            bindings[name] = ctx.store.read(scope, name)
    return None


def invert(node):
    """Statement, statement list or program that undoes `node`."""
    if isinstance(node, Program):
        return node.inverse()
    return as_statement(node).invert()


# ----------------------------- differentiation ------------------------------- #
def check_adjoint_rules(program: Program, _seen: Optional[set] = None) -> None:
    """
    Raise NoAdjointRuleError if a differentiable update reachable from `program`
    (called programs included) uses a function without an adjoint rule, or a
    statement that cannot propagate adjoints.
    """
    seen = set() if _seen is None else _seen
    if id(program) in seen:
        return
    seen.add(id(program))
    symbols = program.symbols
    for path, s in iter_statements(program.body):
        where = "/".join(str(p) for p in (program.name,) + path)
        if not s.differentiable:
            raise NoAdjointRuleError(f"statement '{s.describe()}' has no adjoint rule",
                                     statement=where)
        if isinstance(s, Call):
            check_adjoint_rules(s.program, seen)
            for p, a in zip(s.program.params, s.args):
                if not isinstance(a, Ref) and p.domain.differentiable:
                    _check_functions(a, symbols, None, where)
        elif isinstance(s, Update):
            domain = symbols.domain(s.target.name)
            if domain is not None and not domain.differentiable:
                continue
            _check_functions(s.expr, symbols, s.target.name, where)


def _check_functions(expr, symbols, binding, where) -> None:
    for e in expr.functions():
        if e.fn.has_adjoint_rule and all(d is not None for d in e.fn.partials):
            continue
        if any(_maybe_differentiable(r, symbols) for r in e.refs()):
            raise NoAdjointRuleError(f"function '{e.fn.name}' has no adjoint rule",
                                     binding=binding, statement=where)


def _maybe_differentiable(ref: Ref, symbols) -> bool:
    if ref.name in symbols.loop_vars and ref.name not in symbols.domains:
        return False
    domain = symbols.domain(ref.name)
    return domain is None or domain.differentiable


def gradient(program: Program, inputs: Sequence[Any], loss_index: int = 0, *,
             seed: float = 1.0, stack: Optional[Stack] = None) -> Tuple[tuple, tuple]:
    """
    Gradient of argument `loss_index` (after the call) with respect to every
    argument (before the call).

    Returns (outputs, grads): `outputs` are the argument values after the
    forward run, `grads[k]` is d loss / d input_k (float or ndarray), or None for
    non-differentiable (integer) arguments.
    """
    if not 0 <= loss_index < len(program.params):
        raise IndexError(f"loss_index {loss_index} out of range for {program.name}")
    loss = program.params[loss_index]
    if loss.aggregate or not loss.domain.differentiable:
        raise ValueError(f"loss argument '{loss.name}' must be a differentiable scalar")
    check_adjoint_rules(program)

    stack = current_stack(stack)
    outputs = run(program, *inputs, stack=stack)
    logger.debug("gradient of %s: forward pass done, loss=%r", program.name, outputs[loss_index])

    seeds: List[Any] = [None] * len(program.params)
    seeds[loss_index] = float(seed)
    ctx = Context.create(stack, grad=True)
    _, adjoints = call_program(ctx, program.inverse(), outputs, seeds)
    logger.debug("gradient of %s: inverse pass done", program.name)

    grads = tuple(_grad_value(adj, p) for adj, p in zip(adjoints, program.params))
    return outputs, grads


def _grad_value(adj, param):
    if adj is None or not param.domain.differentiable:
        return None
    if param.aggregate:
        return np.asarray(adj, dtype=np.float64)
    return float(adj)
