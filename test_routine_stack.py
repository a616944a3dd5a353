"""
Compute / uncompute composition and the escape stack.
"""

import sys
import threading
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent))

from reversible_ad import (REAL, Alloc, Block, EmptyStackError, For, NonZeroPopTargetError, Param,
                           Pop, Program, Push, Ref, Routine, RoutineNotCleanError, Stack,
                           Unroutine, Update, apply, compute_uncompute, invcheckoff, routine,
                           sqrt, use_config, use_stack)
from reversible_ad.programs import norm_stack, norm_uncompute


def _sum_of_squares():
    return For("i", 0, lambda s: len(s["x"]) - 1, [Update("y", "+=", Ref("x")["i"] ** 2)])


def test_norm_uncompute():
    res, x = norm_uncompute(0.0, np.array([3.0, 4.0]))
    assert res == pytest.approx(5.0)
    np.testing.assert_array_equal(x, [3.0, 4.0])


def test_uncompute_clears_ancilla():
    compute, uncompute = routine([_sum_of_squares()])
    prog = Program("norm_cu", ["res", "y", Param("x", REAL, aggregate=True)], [
        compute,
        Update("res", "+=", sqrt(Ref("y"))),
        uncompute,
    ])
    res, y, _ = prog(0.0, 0.0, np.array([3.0, 4.0]))
    assert res == pytest.approx(5.0)
    assert y == 0.0


def test_routine_pair_structure():
    compute, uncompute = routine([Update("y", "+=", Ref("x"))])
    assert isinstance(compute, Routine)
    assert isinstance(uncompute, Unroutine)
    assert isinstance(~uncompute, Routine)
    assert compute.key == uncompute.key

    block = compute_uncompute([Update("y", "+=", Ref("x"))], Update("z", "+=", Ref("y")))
    assert isinstance(block, Block) and len(block) == 3
    assert [s.describe() for s in block] == ["@routine", "z += y", "~@routine"]


def test_dirty_ancilla_in_uncompute():
    compute, uncompute = routine([
        Alloc("t", 0.0),
        Update("t", "+=", Ref("x")),
    ])
    prog = Program("leaky", ["x", "y"], [
        compute,
        Update("y", "+=", Ref("t")),
        Update("x", "+=", 1.0),
        uncompute,
    ])
    with pytest.raises(RoutineNotCleanError) as exc:
        prog(1.0, 0.0)
    assert exc.value.binding == "t"


def test_uncompute_restores_written_bindings():
    compute, uncompute = routine([Update("y", "+=", Ref("x"))])
    prog = Program("drift", ["x", "y"], [
        compute,
        Update("x", "+=", 1.0),
        uncompute,
    ])
    with pytest.raises(RoutineNotCleanError) as exc:
        prog(1.0, 0.0)
    assert exc.value.binding == "y"

    with use_config(invcheck=False):
        assert prog(1.0, 0.0) == (2.0, -1.0)


def test_routine_snapshot_taken_outside_invcheckoff():
    compute, uncompute = routine(invcheckoff([Update("y", "+=", Ref("x"))]))
    prog = Program("drift", ["x", "y"], [compute, Update("x", "+=", 1.0), uncompute])
    # the snapshot is taken outside the unchecked block
    with pytest.raises(RoutineNotCleanError):
        prog(1.0, 0.0)


# ----------------------------- escape stack ---------------------------------- #
def test_stack_basics():
    s = Stack()
    assert len(s) == 0
    assert s.push(1.0) == 0
    assert s.push(2.0) == 1
    assert s.peek() == 2.0
    assert s.pop() == 2.0
    assert s.pop() == 1.0
    with pytest.raises(EmptyStackError):
        s.pop()


def test_pop_entry_reports_depth():
    s = Stack()
    s.push(1.0)
    s.push(2.0)
    assert s.pop_entry() == (1, 2.0)
    assert len(s) == 1
    assert s.pop_entry() == (0, 1.0)
    assert repr(s) == "Stack(depth=0)"
    with pytest.raises(EmptyStackError):
        s.pop_entry()


def test_stack_shared_between_threads():
    s = Stack()

    def worker():
        for k in range(200):
            s.push(float(k))
            s.pop()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(s) == 0


def test_push_clears_and_pop_restores():
    s = Stack()
    d = {"v": 7.0}
    apply(Push("v", s), d)
    assert d["v"] == 0.0
    assert len(s) == 1
    apply(Pop("v", s), d)
    assert d["v"] == 7.0
    assert len(s) == 0


def test_pop_errors():
    s = Stack()
    with pytest.raises(EmptyStackError):
        apply(Pop("v", s), {"v": 0.0})
    s.push(3.0)
    with pytest.raises(NonZeroPopTargetError):
        apply(Pop("v", s), {"v": 1.0})
    assert len(s) == 1


def test_push_pop_are_inverses():
    assert isinstance(~Push("v"), Pop)
    assert isinstance(~Pop("v"), Push)


def test_norm_stack_round_trip():
    with use_stack() as s:
        out = norm_stack(0.0, np.array([3.0, 4.0]))
        assert out[0] == pytest.approx(5.0)
        assert len(s) == 1
        assert s.peek() == pytest.approx(25.0)

        back = (~norm_stack)(*out)
        assert back[0] == pytest.approx(0.0)
        np.testing.assert_array_equal(back[1], [3.0, 4.0])
        assert len(s) == 0


def test_explicit_stack_argument():
    s = Stack()
    out = norm_stack(0.0, np.array([6.0, 8.0]), stack=s)
    assert out[0] == pytest.approx(10.0)
    assert len(s) == 1
    (~norm_stack)(*out, stack=s)
    assert len(s) == 0
