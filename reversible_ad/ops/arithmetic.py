# reversible_ad/ops/arithmetic.py
import numpy as np
from ..core.expr import Function, Operand


def _binary(name, f, dfdx, dfdy, symbol=None):
    """
    Generic binary primitive:
      - value   : f(x, y) on domain values (ints, floats, Fixed, Logarithmic)
      - partials: (d f / dx, d f / dy) on their real interpretation
    """
    return Function(name, f, (dfdx, dfdy), symbol=symbol)


add = _binary("add", lambda a, b: a + b, lambda a, b: 1.0,     lambda a, b: 1.0,            "+")
sub = _binary("sub", lambda a, b: a - b, lambda a, b: 1.0,     lambda a, b: -1.0,           "-")
mul = _binary("mul", lambda a, b: a * b, lambda a, b: b,       lambda a, b: a,              "*")
div = _binary("div", lambda a, b: a / b, lambda a, b: 1.0 / b, lambda a, b: -a / np.square(b), "/")


def _dpow_dy(a, b):
    # d(a**b)/db = a**b * log(a); undefined for a <= 0
    return np.power(a, b) * np.log(a) if np.all(np.asarray(a) > 0) else 0.0


pow = _binary("pow", lambda a, b: a ** b, lambda a, b: b * np.power(a, b - 1.0), _dpow_dy, "**")

neg = Function("neg", lambda a: -a, (lambda a: -1.0,), symbol="-")
identity = Function("identity", lambda a: a, (lambda a: 1.0,))
square = Function("square", lambda a: a * a, (lambda a: 2.0 * a,))
absolute = Function("abs", lambda a: -a if a < 0 else a, (lambda a: np.sign(a),))

# piecewise constant: usable in integer updates, no adjoint rule
floor = Function("floor", lambda a: int(np.floor(float(a))), None)


# Bind Python operators to operand trees
Operand.__add__      = lambda self, other: add(self, other)
Operand.__radd__     = lambda self, other: add(other, self)
Operand.__sub__      = lambda self, other: sub(self, other)
Operand.__rsub__     = lambda self, other: sub(other, self)
Operand.__mul__      = lambda self, other: mul(self, other)
Operand.__rmul__     = lambda self, other: mul(other, self)
Operand.__truediv__  = lambda self, other: div(self, other)
Operand.__rtruediv__ = lambda self, other: div(other, self)
Operand.__pow__      = lambda self, other: pow(self, other)
Operand.__neg__      = lambda self: neg(self)
