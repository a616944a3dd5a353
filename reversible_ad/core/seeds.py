# reversible_ad/core/seeds.py

#-----------------------------------------------------------------------------
# We "plant" a seed (dloss/dloss = 1) on the loss argument after the forward
# run and let the inverse program carry it back to the inputs.
#-----------------------------------------------------------------------------
from __future__ import annotations
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import numpy as np

from .domains import FIXED, REAL, real
from .numbers import Fixed
from .program import Program
from .stack import Stack
from .engine import gradient, run


def value(x: Any) -> Any:
    """Real interpretation of a domain value; plain floats pass through unchanged."""
    if isinstance(x, (float, np.ndarray)):
        return x
    return real(x)


def _as_args(program: Program, inputs: Union[Sequence[Any], Mapping[str, Any]]) -> list:
    """Accept inputs either positionally or as a dict keyed by parameter name."""
    if isinstance(inputs, Mapping):
        missing = [n for n in program.param_names if n not in inputs]
        if missing:
            raise KeyError(f"missing inputs for {program.name}: {missing}")
        return [inputs[n] for n in program.param_names]
    return list(inputs)


def _position(program: Program, wrt: Union[int, str]) -> int:
    if isinstance(wrt, str):
        return program.param_names.index(wrt)
    return int(wrt)


# ----------------------------- single-input grad ----------------------------- #
def grad(program: Program, inputs, wrt: Union[int, str], loss_index: Union[int, str] = 0,
         *, stack: Optional[Stack] = None):
    """
    d loss / d inputs[wrt] for one argument.
    Runs one forward and one inverse pass.
    """
    args = _as_args(program, inputs)
    _, gs = gradient(program, args, _position(program, loss_index), stack=stack)
    return gs[_position(program, wrt)]


# ----------------------------- multi-input grads ----------------------------- #
def grads(program: Program, inputs, loss_index: Union[int, str] = 0,
          *, stack: Optional[Stack] = None) -> Dict[str, Any]:
    """
    Gradient of the loss argument w.r.t. ALL arguments (dict form).

    Parameters
    ----------
    program    : Program to differentiate
    inputs     : positional list, or dict {param name: value}
    loss_index : position or name of the scalar loss argument

    Returns
    -------
    dict {param name: gradient}  # None for integer arguments
    """
    args = _as_args(program, inputs)
    _, gs = gradient(program, args, _position(program, loss_index), stack=stack)
    return dict(zip(program.param_names, gs))


# ----------------------------- bumping --------------------------------------- #
def finite_difference(program: Program, inputs, wrt: Union[int, str],
                      loss_index: Union[int, str] = 0, eps: float = 1e-6):
    """
    Central-difference estimate of d loss / d inputs[wrt]:

        [L(x + eps) - L(x - eps)] / (2 eps)

    elementwise for aggregate arguments. Fixed-point arguments are bumped by
    the nearest representable step. Used to check adjoint consistency.
    """
    args = _as_args(program, inputs)
    k = _position(program, wrt)
    loss = _position(program, loss_index)
    param = program.params[k]
    if param.domain not in (REAL, FIXED):
        raise ValueError(f"cannot bump {param.domain.name} argument '{param.name}'")

    def loss_at(x) -> float:
        bumped = list(args)
        bumped[k] = x
        return value(run(program, *bumped, stack=Stack())[loss])

    def bump(x, h):
        if param.domain is FIXED:
            return x + Fixed(h, x.frac_bits)
        return float(x) + h

    x0 = args[k]
    if not param.aggregate:
        step = float(bump(x0, eps)) - float(x0)
        return (loss_at(bump(x0, eps)) - loss_at(bump(x0, -eps))) / (2.0 * step)

    base = np.array(x0, dtype=object) if param.domain is FIXED else np.array(x0, dtype=np.float64)
    out = np.zeros(base.shape, dtype=np.float64)
    for idx in np.ndindex(base.shape):
        plus, minus = base.copy(), base.copy()
        plus[idx], minus[idx] = bump(base[idx], eps), bump(base[idx], -eps)
        step = float(plus[idx]) - float(base[idx])
        out[idx] = (loss_at(plus.tolist()) - loss_at(minus.tolist())) / (2.0 * step)
    return out
