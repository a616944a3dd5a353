"""
Reversible differentiation vs analytic derivatives and bumping.
"""

import math
import sys
from pathlib import Path

import numpy as np
import pytest
from scipy import special

sys.path.insert(0, str(Path(__file__).parent))

from reversible_ad import (INTEGER, LOG, Call, Fixed, Function, Logarithmic, NoAdjointRuleError,
                           Param, Program, Ref, Update, exp, finite_difference, grad, gradient,
                           grads, sin, use_stack)
from reversible_ad.ops import floor
from reversible_ad.programs import (besselj, norm_stack, norm_uncompute, power_cache,
                                    power_lognumber, reversible_norm, reversible_plus,
                                    reversible_plus2)


def test_norm_gradient():
    x = np.array([3.0, 4.0])
    outputs, gs = gradient(reversible_norm, (0.0, 0.0, x), loss_index=0)
    assert outputs[0] == pytest.approx(5.0)
    assert gs[0] == pytest.approx(1.0)
    assert gs[1] == pytest.approx(0.1)
    np.testing.assert_allclose(gs[2], x / np.linalg.norm(x), rtol=1e-12)


def test_norm_gradient_matches_bumping():
    x = np.array([1.5, -2.0, 0.5])
    ad = grad(reversible_norm, (0.0, 0.0, x), wrt="x", loss_index="res")
    fd = finite_difference(reversible_norm, (0.0, 0.0, x), wrt="x", loss_index="res")
    np.testing.assert_allclose(ad, fd, rtol=1e-6)


def test_uncompute_and_stack_norm_gradients():
    x = np.array([3.0, 4.0])
    g1 = grad(norm_uncompute, (0.0, x), wrt=1)
    np.testing.assert_allclose(g1, [0.6, 0.8], rtol=1e-12)
    with use_stack() as s:
        g2 = grad(norm_stack, (0.0, x), wrt=1)
        # the parked value is popped back during the inverse pass
        assert len(s) == 0
    np.testing.assert_allclose(g2, [0.6, 0.8], rtol=1e-12)


def test_expression_gradient():
    prog = Program("poly", ["out", "x", "z"], [
        Update("out", "+=", Ref("x") * Ref("z")),
        Update("out", "+=", exp(Ref("x")) / Ref("z")),
        Update("out", "-=", sin(Ref("z"))),
    ])
    x, z = 0.3, 1.7
    gs = grads(prog, {"out": 0.0, "x": x, "z": z}, loss_index="out")
    assert gs["out"] == pytest.approx(1.0)
    assert gs["x"] == pytest.approx(z + math.exp(x) / z, rel=1e-12)
    assert gs["z"] == pytest.approx(x - math.exp(x) / z ** 2 - math.cos(z), rel=1e-12)
    assert gs["x"] == pytest.approx(finite_difference(prog, [0.0, x, z], wrt="x"), rel=1e-6)


def test_call_gradient():
    _, gs = gradient(reversible_plus2, (1.0, 2.0), loss_index=0)
    assert gs == pytest.approx((1.0, 2.0))


def test_call_expression_argument_gradient():
    twice = Program("twice", ["y", "x"], [Call(reversible_plus, "y", Ref("x") * 2.0)])
    assert twice(0.0, 1.5) == (3.0, 1.5)

    _, gs = gradient(twice, (0.0, 1.5))
    assert gs == pytest.approx((1.0, 2.0))
    assert gs[1] == pytest.approx(finite_difference(twice, [0.0, 1.5], wrt="x"), rel=1e-6)

    rounded = Program("rounded_call", ["y", "x"], [Call(reversible_plus, "y", floor(Ref("x")))])
    with pytest.raises(NoAdjointRuleError):
        gradient(rounded, (0.0, 1.5))


def test_log_domain_gradients():
    mul = Program("lmul", [Param("y", LOG), Param("x", LOG)], [Update("y", "*=", Ref("x"))])
    div = Program("ldiv", [Param("y", LOG), Param("x", LOG)], [Update("y", "/=", Ref("x"))])
    y, x = Logarithmic(2.0), Logarithmic(3.0)

    _, gs = gradient(mul, (y, x))
    assert gs == pytest.approx((3.0, 2.0), rel=1e-9)

    _, gs = gradient(div, (y, x))
    assert gs == pytest.approx((1.0 / 3.0, -2.0 / 9.0), rel=1e-9)


def test_power_gradients():
    x = Fixed(0.99)
    expected = 100 * 0.99 ** 99
    _, gs = gradient(power_cache, (Fixed(0), x, 100))
    assert gs[1] == pytest.approx(expected, rel=1e-8)
    assert gs[2] is None

    _, gs = gradient(power_lognumber, (Fixed(0), x, 100))
    assert gs[1] == pytest.approx(expected, rel=1e-7)


def test_bessel_gradient():
    z = 2.5
    _, gs = gradient(besselj, (Fixed(0), 2, Fixed(z)))
    assert gs[2] == pytest.approx(special.jvp(2, z), abs=1e-7)
    assert gs[1] is None


def test_missing_adjoint_rule():
    prog = Program("rounded", ["y", "x"], [Update("y", "+=", floor(Ref("x")))])
    assert prog(0.0, 2.7) == (2.0, 2.7)
    with pytest.raises(NoAdjointRuleError):
        gradient(prog, (0.0, 2.7))

    opaque = Function("opaque", lambda v: 2.0 * v)
    prog = Program("opaque", ["y", "x"], [Update("y", "+=", opaque(Ref("x")))])
    with pytest.raises(NoAdjointRuleError):
        gradient(prog, (0.0, 1.0))


def test_missing_rule_on_integer_path_is_fine():
    prog = Program("count", [Param("k", INTEGER), "x", "y"], [
        Update("k", "+=", floor(Ref("x"))),
    ])
    _, gs = gradient(prog, (0, 2.5, 1.0), loss_index=2)
    assert gs == (None, 0.0, 1.0)


def test_invalid_loss():
    with pytest.raises(ValueError):
        gradient(power_cache, (Fixed(0), Fixed(0.5), 3), loss_index=2)
    with pytest.raises(ValueError):
        gradient(reversible_norm, (0.0, 0.0, np.ones(2)), loss_index=2)
    with pytest.raises(IndexError):
        gradient(reversible_plus2, (1.0, 2.0), loss_index=5)
