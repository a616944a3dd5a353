# reversible_ad/core/__init__.py

"""
Core public API of the reversible runtime.

Exports:
    Fixed, Logarithmic    : exactly invertible number representations
    INTEGER, REAL, FIXED, LOG : numeric domains
    Ref, Const, Function  : operand trees for update statements
    Update ... Call       : reversible statements
    For, If, While        : reversible control flow
    routine, compute_uncompute, invcheckoff : compute / uncompute composition
    Stack, global_stack, use_stack : escape stack
    Param, Program        : program construction (validated up front)
    run, apply, invert, gradient : execution and differentiation
    grad, grads, finite_difference, value : convenience wrappers
"""

from .errors import (BindingNotFoundError, ConstructionError, DuplicateBindingError,
                     EmptyStackError, ExecutionError, IntegerOverflowError,
                     IrreversibleOperationError, NoAdjointRuleError, NonZeroDeallocationError,
                     NonZeroPopTargetError, PredicateInconsistencyError, ReversibleError,
                     RoutineNotCleanError, UseAfterFreeError, AliasedOperandError)
from .numbers import Fixed, Logarithmic, fast_log2, from_log, log_epsilon, to_log
from .domains import (FIXED, INTEGER, LOG, REAL, Domain, DomainTag, UpdateOp, check_update,
                      domain_of, get_domain, is_admissible, register_domain, register_update)
from .store import Binding, Scope, VariableStore
from .stack import Stack, global_stack, use_stack
from .expr import Const, Expr, Function, Ref
from .statements import (Alloc, Block, Call, Dealloc, Neg, Pop, Push, Safe, Statement, Swap,
                         Update)
from .control import For, If, While
from .routine import Routine, Unroutine, compute_uncompute, invcheckoff, routine
from .program import Param, Program
from .engine import apply, call_program, check_adjoint_rules, gradient, invert, run
from .seeds import finite_difference, grad, grads, value
from .program_utils import format_program, print_program_summary

__all__ = [
    "ReversibleError", "ConstructionError", "ExecutionError",
    "IrreversibleOperationError", "NoAdjointRuleError", "DuplicateBindingError",
    "NonZeroDeallocationError", "UseAfterFreeError", "BindingNotFoundError",
    "PredicateInconsistencyError", "EmptyStackError", "NonZeroPopTargetError",
    "RoutineNotCleanError", "IntegerOverflowError", "AliasedOperandError",
    "Fixed", "Logarithmic", "fast_log2", "to_log", "from_log", "log_epsilon",
    "INTEGER", "REAL", "FIXED", "LOG", "Domain", "DomainTag", "UpdateOp",
    "register_domain", "register_update", "is_admissible", "check_update",
    "get_domain", "domain_of",
    "Binding", "Scope", "VariableStore",
    "Stack", "global_stack", "use_stack",
    "Ref", "Const", "Function", "Expr",
    "Statement", "Block", "Update", "Swap", "Neg", "Alloc", "Dealloc",
    "Push", "Pop", "Safe", "Call",
    "For", "If", "While",
    "Routine", "Unroutine", "routine", "compute_uncompute", "invcheckoff",
    "Param", "Program",
    "run", "apply", "invert", "gradient", "call_program", "check_adjoint_rules",
    "grad", "grads", "finite_difference", "value",
    "format_program", "print_program_summary",
]
