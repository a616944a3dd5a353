# reversible_ad/core/stack.py
from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from typing import Any, List, Optional, Tuple

from .errors import EmptyStackError

logger = logging.getLogger(__name__)


class Stack:
    """
    Escape stack: a LIFO channel for values deliberately taken out of the
    reversible flow (PUSH / POP).

    Push/pop ordering is part of program correctness, so access is serialized
    with a re-entrant lock; concurrent programs should rather use their own
    Stack (see `use_stack`).
    """
    def __init__(self):
        self.items: List[Any] = []
        self._lock = threading.RLock()

    def push(self, value) -> int:
        """Append `value`; returns the depth it was stored at."""
        with self._lock:
            self.items.append(value)
            logger.debug("stack push %r (depth %d)", value, len(self.items))
            return len(self.items) - 1

    def pop(self):
        return self.pop_entry()[1]

    def pop_entry(self) -> Tuple[int, Any]:
        """Remove the top value; returns (depth it was stored at, value)."""
        with self._lock:
            if not self.items:
                raise EmptyStackError("pop from an empty escape stack")
            value = self.items.pop()
            depth = len(self.items)
            logger.debug("stack pop %r (depth %d)", value, depth)
            return depth, value

    def peek(self):
        with self._lock:
            if not self.items:
                raise EmptyStackError("peek at an empty escape stack")
            return self.items[-1]

    def clear(self):
        with self._lock:
            self.items.clear()

    def __len__(self):
        with self._lock:
            return len(self.items)

    def __repr__(self):
        return f"Stack(depth={len(self)})"


# Process-wide default, used only when a caller does not pass `stack=`
global_stack = Stack()


@contextmanager
def use_stack(stack: Optional[Stack] = None):
    """
    Context manager to temporarily use a fresh (or given) default stack:
        with use_stack() as s:
            program(...)
            assert len(s) == 0
    """
    from . import stack as _stack_mod  # local import: rebinds the module global
    prev = _stack_mod.global_stack
    try:
        _stack_mod.global_stack = stack if stack is not None else Stack()
        yield _stack_mod.global_stack
    finally:
        _stack_mod.global_stack = prev


def current_stack(stack: Optional[Stack] = None) -> Stack:
    """Resolve an explicitly passed stack, falling back to the process default."""
    if stack is not None:
        return stack
    from . import stack as _stack_mod
    return _stack_mod.global_stack
