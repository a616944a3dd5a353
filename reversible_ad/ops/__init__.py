# reversible_ad/ops/__init__.py

# Ensure operator overloading is registered
from . import arithmetic
from . import transcendental
from . import special

# Convenience re-exports so users can do: from reversible_ad.ops import sqrt, to_log, ...
from .arithmetic import add, sub, mul, div, neg, pow, square, identity, absolute, floor
from .transcendental import exp, log, sqrt, sin, cos, tanh
from .special import erf, norm_cdf, to_log, from_log

__all__ = [
    "add", "sub", "mul", "div", "neg", "pow", "square", "identity", "absolute", "floor",
    "exp", "log", "sqrt", "sin", "cos", "tanh",
    "erf", "norm_cdf", "to_log", "from_log",
]
