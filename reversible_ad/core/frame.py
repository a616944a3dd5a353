# reversible_ad/core/frame.py
"""
Execution state shared by all statements of one program invocation.

Context   one run (store, escape stack, check / gradient flags)
Frame     one program invocation: its scope, loop indices, routine snapshots
          and, while differentiating, the adjoints of its bindings
StateView read-only mapping handed to predicates, bounds and Safe checks
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from ..config import get_config
from .domains import real
from .errors import BindingNotFoundError
from .expr import Operand, Ref
from .stack import Stack
from .store import Binding, Scope, VariableStore

logger = logging.getLogger(__name__)


@dataclass
class Context:
    store: VariableStore
    stack: Stack
    check: bool = True
    grad: bool = False
    # adjoints of values parked on the escape stack, keyed by stack depth
    stack_adjoints: Dict[int, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, stack: Stack, *, grad: bool = False, check: Optional[bool] = None) -> "Context":
        check = get_config().invcheck if check is None else check
        return cls(store=VariableStore(), stack=stack, check=check, grad=grad)


class StateView:
    """Read-only view of a frame: view['x'] is a binding value or a loop index."""

    def __init__(self, frame: "Frame"):
        self._frame = frame

    def __getitem__(self, name: str):
        return self._frame.read(Ref(name))

    def __contains__(self, name: str) -> bool:
        return name in self._frame.indices or self._frame.ctx.store.is_live(self._frame.scope, name)

    def get(self, name: str, default=None):
        return self[name] if name in self else default


class Frame:
    def __init__(self, ctx: Context, scope: Scope, program_name: str = "<block>"):
        self.ctx = ctx
        self.scope = scope
        self.program_name = program_name
        self.indices: Dict[str, int] = {}
        self.routines: Dict[int, Dict[str, Any]] = {}
        self.adjoints: Dict[str, Any] = {}
        self.view = StateView(self)

    @property
    def grad(self) -> bool:
        return self.ctx.grad

    @property
    def check(self) -> bool:
        return self.ctx.check

    @check.setter
    def check(self, value: bool):
        self.ctx.check = value

    # ---------------------------- values ------------------------------------- #
    def binding(self, name: str) -> Binding:
        return self.ctx.store.lookup(self.scope, name)

    def resolve(self, index):
        """Turn an index spec (int, operand, tuple of those) into concrete ints."""
        if index is None:
            return None
        if isinstance(index, tuple):
            return tuple(self._resolve_one(i) for i in index)
        return self._resolve_one(index)

    def _resolve_one(self, i) -> int:
        if isinstance(i, Operand):
            i = i.evaluate(self)
        return int(i)

    def read(self, ref: Ref):
        if ref.index is None and ref.name in self.indices:
            return self.indices[ref.name]
        return self.ctx.store.read(self.scope, ref.name, self.resolve(ref.index))

    def write(self, ref: Ref, value) -> None:
        if ref.name in self.indices:
            raise BindingNotFoundError(f"loop index '{ref.name}' is not a binding", binding=ref.name)
        self.ctx.store.write(self.scope, ref.name, value, self.resolve(ref.index))

    def is_differentiable(self, name: str) -> bool:
        if name in self.indices:
            return False
        return self.binding(name).domain.differentiable

    # ---------------------------- adjoints ----------------------------------- #
    def _zero_adjoint(self, name: str):
        b = self.binding(name)
        if b.aggregate:
            return np.zeros(np.shape(real(b.value)), dtype=np.float64)
        return 0.0

    def get_adjoint(self, name: str, index=None):
        adj = self.adjoints.get(name)
        if adj is None:
            adj = self._zero_adjoint(name)
            if isinstance(adj, np.ndarray):
                self.adjoints[name] = adj
        if index is None:
            return adj
        return adj[index]

    def set_adjoint(self, name: str, index, value) -> None:
        if index is None:
            self.adjoints[name] = value
        else:
            self.get_adjoint(name)[index] = value

    def add_adjoint(self, name: str, index, value) -> None:
        if not self.is_differentiable(name):
            return
        if index is None:
            self.adjoints[name] = self.get_adjoint(name) + value
        else:
            self.get_adjoint(name)[index] += value

    def drop_adjoint(self, name: str) -> None:
        self.adjoints.pop(name, None)

    def __repr__(self):
        return f"Frame({self.program_name}, bindings={list(self.scope.bindings)})"
