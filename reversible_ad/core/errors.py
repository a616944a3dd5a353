# reversible_ad/core/errors.py
"""
Error taxonomy for the reversible runtime.

Construction-time errors reject a program before anything runs. Execution
errors are fatal to the program run in progress: a reversible program whose
invariant broke cannot be trusted to un-execute, so nothing is retried.

Every error carries the offending binding (when there is one) and a statement
path such as ``besselj/2/while/k=3/1`` that is filled in frame by frame as the
exception propagates out of nested blocks.
"""
from __future__ import annotations
from typing import List, Optional


class ReversibleError(Exception):
    """Base class for all runtime and construction errors."""

    def __init__(self, message: str, *, binding: Optional[str] = None,
                 statement: Optional[object] = None):
        super().__init__(message)
        self.message = message
        self.binding = binding
        self.path: List[str] = [] if statement is None else [str(statement)]

    def locate(self, part) -> "ReversibleError":
        """Prepend one level of statement path (called while unwinding)."""
        self.path.insert(0, str(part))
        return self

    @property
    def statement_path(self) -> str:
        return "/".join(self.path)

    def __str__(self):
        details = []
        if self.binding is not None:
            details.append(f"binding={self.binding}")
        if self.path:
            details.append(f"at={self.statement_path}")
        if details:
            return f"{self.message} [{', '.join(details)}]"
        return self.message


# ----------------------------- construction time ----------------------------- #
class ConstructionError(ReversibleError):
    """Raised while building or validating a program, never during execution."""


class IrreversibleOperationError(ConstructionError):
    """An operation outside the target domain's reversible set."""


class NoAdjointRuleError(ConstructionError):
    """A statement reachable from a differentiated program has no adjoint rule."""


# ----------------------------- execution time -------------------------------- #
class ExecutionError(ReversibleError):
    """Run-time state error; fatal to the program execution in progress."""


class DuplicateBindingError(ExecutionError):
    pass


class NonZeroDeallocationError(ExecutionError):
    pass


class UseAfterFreeError(ExecutionError):
    pass


class BindingNotFoundError(ExecutionError):
    pass


class PredicateInconsistencyError(ExecutionError):
    pass


class EmptyStackError(ExecutionError):
    pass


class NonZeroPopTargetError(ExecutionError):
    pass


class RoutineNotCleanError(ExecutionError):
    pass


class AliasedOperandError(ExecutionError):
    """Two references resolved to the same element, e.g. x[i] += x[j] with i == j."""


class IntegerOverflowError(ExecutionError, ArithmeticError):
    """Integer result outside the configured width under the 'trap' policy."""
