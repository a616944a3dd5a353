# reversible_ad/programs/basic.py
"""
Small reversible programs: adders, norms and an affine map.

    reversible_plus(x, y)            x += y
    reversible_plus2(x, y)           two calls of reversible_plus
    reversible_norm(res, y, x[])     y += sum(x**2); res += sqrt(y)
    norm_uncompute(res, x[])         same norm, the ancilla y is uncomputed
    norm_stack(res, x[])             same norm, y is parked on the escape stack
    make_affine(domain)              y[] += W[][] @ x[] + b[]
"""
from ..core.control import For
from ..core.domains import REAL
from ..core.expr import Ref
from ..core.program import Param, Program
from ..core.routine import routine
from ..core.statements import Alloc, Call, Push, Safe, Update
from ..ops import sqrt

x, y = Ref("x"), Ref("y")


reversible_plus = Program("reversible_plus", ["x", "y"], [
    Update("x", "+=", y),
])

reversible_plus2 = Program("reversible_plus2", ["x", "y"], [
    Call(reversible_plus, "x", "y"),
    Call(reversible_plus, "x", "y"),
])

reversible_norm = Program("reversible_norm", ["res", "y", Param("x", REAL, aggregate=True)], [
    For("i", 0, lambda s: len(s["x"]) - 1, [
        Update("y", "+=", x["i"] ** 2),
    ]),
    Update("res", "+=", sqrt(y)),
])


def _sum_of_squares():
    return For("i", 0, lambda s: len(s["x"]) - 1, [Update("y", "+=", x["i"] ** 2)])


_compute, _uncompute = routine([_sum_of_squares()])

norm_uncompute = Program("norm_uncompute", ["res", Param("x", REAL, aggregate=True)], [
    Alloc("y", 0.0),
    _compute,
    Update("res", "+=", sqrt(y)),
    _uncompute,
])

_stack_compute, _ = routine([_sum_of_squares()])

norm_stack = Program("norm_stack", ["res", Param("x", REAL, aggregate=True)], [
    Alloc("y", 0.0),
    _stack_compute,
    Update("res", "+=", sqrt(y)),
    Push("y"),
])


def _check_affine_shapes(s):
    W = s["W"]
    if len(W) != len(s["y"]) or len(W[0]) != len(s["x"]) or len(s["b"]) != len(s["y"]):
        raise ValueError("affine: incompatible shapes")


def make_affine(domain=REAL) -> Program:
    """
    y += W @ x + b over `domain` (REAL or FIXED).

    Over REAL the inverse only restores y up to float rounding; over FIXED the
    products round deterministically and the round trip is exact.
    """
    W, X, b = Ref("W"), Ref("x"), Ref("b")
    rows = lambda s: len(s["W"]) - 1
    cols = lambda s: len(s["W"][0]) - 1
    return Program(f"affine_{domain.name}" if domain is not REAL else "affine", [
        Param("y", domain, aggregate=True),
        Param("W", domain, aggregate=True),
        Param("b", domain, aggregate=True),
        Param("x", domain, aggregate=True),
    ], [
        Safe(_check_affine_shapes, "shapes"),
        For("j", 0, cols, [
            For("i", 0, rows, [
                Update(Ref("y")["i"], "+=", W["i", "j"] * X["j"]),
            ]),
        ]),
        For("i", 0, rows, [
            Update(Ref("y")["i"], "+=", b["i"]),
        ]),
    ])


affine = make_affine(REAL)
