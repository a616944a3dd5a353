"""
Statement model: updates, swaps, blocks, calls and their inverses.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent))

from reversible_ad import (FIXED, REAL, AliasedOperandError, Block, BindingNotFoundError, Call,
                           Fixed, For, IrreversibleOperationError, Neg, Param, Program, Ref, Swap,
                           Update, apply, invert)
from reversible_ad.ops import absolute
from reversible_ad.programs import make_affine, reversible_plus, reversible_plus2


def test_adder_forward_and_inverse():
    assert reversible_plus(2.0, 3.0) == (5.0, 3.0)
    assert (~reversible_plus)(5.0, 3.0) == (2.0, 3.0)
    assert reversible_plus.inverse().name == "~reversible_plus"
    assert ~~reversible_plus is reversible_plus


def test_apply_statement_on_dict():
    stmt = Update("x", "+=", Ref("y"))
    d = {"x": 2.0, "y": 3.0}
    assert apply(stmt, d) is None
    assert d == {"x": 5.0, "y": 3.0}
    apply(invert(stmt), d)
    assert d == {"x": 2.0, "y": 3.0}


def test_apply_program_on_dict():
    d = {"x": 1.0, "y": 4.0}
    apply(reversible_plus, d)
    assert d["x"] == 5.0


def test_integer_xor_is_self_inverse():
    stmt = Update("a", "^=", Ref("b"))
    d = {"a": 5, "b": 3}
    apply(stmt, d)
    assert d["a"] == 6
    apply(invert(stmt), d)
    assert d["a"] == 5


def test_block_inverse_reverses_order():
    block = Block([Update("x", "+=", Ref("y")), Update("z", "-=", Ref("y"))])
    inv = invert(block)
    assert [s.describe() for s in inv] == ["z += y", "x -= y"]


def test_update_of_own_operand_rejected():
    with pytest.raises(IrreversibleOperationError):
        Update("x", "+=", Ref("x") * 2)
    with pytest.raises(IrreversibleOperationError):
        Update(Ref("x")[1], "+=", Ref("x")[1])
    # distinct elements of the same aggregate are fine
    Update(Ref("x")[0], "+=", Ref("x")[1])


def test_missing_binding():
    with pytest.raises(BindingNotFoundError) as exc:
        apply(Update("x", "+=", Ref("nope")), {"x": 1.0})
    assert exc.value.binding == "nope"


def test_swap_and_neg_are_self_inverse():
    d = {"a": 1.0, "b": 2.0}
    apply(Swap("a", "b"), d)
    assert d == {"a": 2.0, "b": 1.0}
    apply(invert(Swap("a", "b")), d)
    assert d == {"a": 1.0, "b": 2.0}

    apply(Neg("a"), d)
    assert d["a"] == -1.0
    apply(invert(Neg("a")), d)
    assert d["a"] == 1.0

    with pytest.raises(IrreversibleOperationError):
        Swap("a", "a")


def test_call_and_inverse_call():
    assert reversible_plus2(2.0, 3.0) == (8.0, 3.0)
    assert (~reversible_plus2)(8.0, 3.0) == (2.0, 3.0)


def test_call_rejects_aliased_arguments():
    with pytest.raises(IrreversibleOperationError):
        Call(reversible_plus, "x", "x")


def test_call_on_aggregate_elements():
    prog = Program("pairwise", [Param("v", REAL, aggregate=True)], [
        Call(reversible_plus, Ref("v")[0], Ref("v")[1]),
    ])
    (out,) = prog(np.array([1.0, 2.0]))
    np.testing.assert_allclose(out, [3.0, 2.0])


def test_call_expression_argument_reading_written_binding():
    with pytest.raises(IrreversibleOperationError):
        Call(reversible_plus, "y", Ref("y") * 2.0)
    with pytest.raises(IrreversibleOperationError):
        Call(reversible_plus, Ref("v")[0], Ref("v")[0] + 1.0)
    Call(reversible_plus, Ref("v")[0], Ref("v")[1] * 2.0)


def test_elements_resolving_to_same_index_rejected():
    prog = Program("crossed", [Param("x", REAL, aggregate=True)], [
        For("i", 0, 1, [For("j", 0, 1, [Update(Ref("x")["i"], "+=", Ref("x")["j"])])]),
    ])
    with pytest.raises(AliasedOperandError) as exc:
        prog(np.array([1.0, 2.0]))
    assert exc.value.binding == "x"


def test_distinct_elements_through_loop_indices():
    prog = Program("prefix", [Param("x", REAL, aggregate=True)], [
        For("i", 1, 2, [Update(Ref("x")["i"], "+=", Ref("x")[Ref("i") - 1])]),
    ])
    (out,) = prog(np.array([1.0, 2.0, 3.0]))
    np.testing.assert_allclose(out, [1.0, 3.0, 6.0])
    (back,) = (~prog)(out)
    np.testing.assert_allclose(back, [1.0, 2.0, 3.0])

    d = {"x": np.array([1.0, 2.0])}
    apply(Update(Ref("x")[0], "+=", Ref("x")[1]), d)
    np.testing.assert_allclose(d["x"], [3.0, 2.0])


def test_call_arguments_resolving_to_same_element():
    prog = Program("pairs", [Param("v", REAL, aggregate=True)], [
        For("i", 0, 1, [For("j", 0, 1, [Call(reversible_plus, Ref("v")["i"], Ref("v")["j"])])]),
    ])
    with pytest.raises(AliasedOperandError):
        prog(np.array([1.0, 2.0]))


def test_absolute_value_operand():
    d = {"y": 0.0, "x": -2.5}
    apply(Update("y", "+=", absolute(Ref("x"))), d)
    assert d["y"] == 2.5
    assert absolute(Ref("x")).describe() == "abs(x)"


def test_fixed_affine_round_trip_is_exact():
    affine_fixed = make_affine(FIXED)
    y = [Fixed(0.1), Fixed(-0.2)]
    W = [[Fixed(0.3), Fixed(0.7)], [Fixed(-1.1), Fixed(0.05)]]
    b = [Fixed(0.5), Fixed(0.25)]
    x = [Fixed(1.3), Fixed(-0.9)]

    out = affine_fixed(y, W, b, x)
    expected0 = float(y[0]) + float(W[0][0]) * float(x[0]) + float(W[0][1]) * float(x[1]) + float(b[0])
    assert abs(float(out[0][0]) - expected0) < 1e-10

    back = (~affine_fixed)(*out)
    assert back[0] == y
    assert back[1] == W and back[3] == x


def test_real_affine():
    from reversible_ad.programs import affine

    W = np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
    x = np.array([0.5, -1.0])
    b = np.array([0.1, 0.2, 0.3])
    y = np.zeros(3)
    out = affine(y, W, b, x)
    np.testing.assert_allclose(out[0], W @ x + b)
    back = (~affine)(*out)
    np.testing.assert_allclose(back[0], y, atol=1e-12)


def test_affine_shape_check():
    from reversible_ad.programs import affine

    with pytest.raises(ValueError):
        affine(np.zeros(2), np.ones((3, 2)), np.zeros(3), np.ones(2))
