# reversible_ad/ops/transcendental.py
import numpy as np
from ..core.domains import real
from ..core.expr import Function


def _unary(name, f, dfdx):
    """Real-valued primitive; the result is coerced into the target's domain by the update."""
    return Function(name, lambda a: f(real(a)), (dfdx,))


exp  = _unary("exp",  np.exp,  np.exp)
log  = _unary("log",  np.log,  lambda a: 1.0 / a)
sqrt = _unary("sqrt", np.sqrt, lambda a: 0.5 / np.sqrt(a))
sin  = _unary("sin",  np.sin,  np.cos)
cos  = _unary("cos",  np.cos,  lambda a: -np.sin(a))
tanh = _unary("tanh", np.tanh, lambda a: 1.0 - np.tanh(a) ** 2)
