"""
Variable store: binding lifecycles and the deallocation contract.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from reversible_ad import (REAL, Alloc, BindingNotFoundError, DuplicateBindingError,
                           NonZeroDeallocationError, Program, Ref, Update, UseAfterFreeError,
                           VariableStore)
from reversible_ad.core.program_utils import format_program


def test_allocate_read_write():
    store = VariableStore()
    with store.scope("t") as sc:
        store.allocate(sc, "a", 0.0)
        store.write(sc, "a", 2.5)
        assert store.read(sc, "a") == 2.5
        assert store.lookup(sc, "a").domain is REAL
        store.write(sc, "a", 0.0)
    assert store.scopes == []


def test_duplicate_binding():
    store = VariableStore()
    with store.scope("t") as sc:
        store.allocate(sc, "a", 0)
        with pytest.raises(DuplicateBindingError) as exc:
            store.allocate(sc, "a", 0)
        assert exc.value.binding == "a"


def test_nonzero_deallocation_then_reuse():
    store = VariableStore()
    with store.scope("t") as sc:
        store.allocate(sc, "a", 0.0)
        store.write(sc, "a", 1.0)
        with pytest.raises(NonZeroDeallocationError):
            store.deallocate(sc, "a", 0.0)
        assert store.is_live(sc, "a")

        store.write(sc, "a", 0.0)
        store.deallocate(sc, "a", 0.0)
        assert not store.is_live(sc, "a")

        # the name may be bound again after deallocation
        store.allocate(sc, "a", 0.0)
        assert store.read(sc, "a") == 0.0


def test_use_after_free_and_not_found():
    store = VariableStore()
    with store.scope("t") as sc:
        store.allocate(sc, "a", 0)
        store.deallocate(sc, "a", 0)
        with pytest.raises(UseAfterFreeError):
            store.read(sc, "a")
        with pytest.raises(BindingNotFoundError):
            store.read(sc, "zzz")


def test_auto_deallocation_on_scope_exit():
    store = VariableStore()
    with pytest.raises(NonZeroDeallocationError) as exc:
        with store.scope("t") as sc:
            store.allocate(sc, "a", 0)
            store.allocate(sc, "b", 0.0)
            store.write(sc, "a", 5)
            store.write(sc, "b", 1.0)
    # newest ancilla is released first
    assert exc.value.binding == "b"
    assert store.scopes == []


def test_arguments_are_not_deallocated():
    store = VariableStore()
    with store.scope("t") as sc:
        store.allocate(sc, "x", 0.0, ancilla=False)
        store.write(sc, "x", 3.0)
    assert store.scopes == []


def test_scope_released_on_error():
    store = VariableStore()
    with pytest.raises(KeyError):
        with store.scope("t") as sc:
            store.allocate(sc, "a", 0.0)
            store.write(sc, "a", 1.0)
            raise KeyError("boom")
    assert store.scopes == []


def test_program_closes_leftover_ancillas():
    prog = Program("anc", ["x"], [
        Alloc("t", 0.0),
        Update("t", "+=", Ref("x")),
        Update("t", "-=", Ref("x")),
    ])
    assert prog(2.0) == (2.0,)
    assert format_program(prog).splitlines()[-1].strip() == "t -> 0.0"


def test_program_dirty_ancilla_reports_path():
    prog = Program("dirty", ["x"], [
        Alloc("t", 0.0),
        Update("t", "+=", Ref("x")),
    ])
    with pytest.raises(NonZeroDeallocationError) as exc:
        prog(2.0)
    assert exc.value.binding == "t"
    assert exc.value.statement_path.startswith("dirty")
    # nothing is checked when the ancilla really is cleared
    assert prog(0.0) == (0.0,)
