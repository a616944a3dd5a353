# reversible_ad/core/domains.py
"""
Numeric domains and their invertibility contracts.

A domain says which in-place updates are exactly invertible for a value
representation, what its cleared ("zero") value is, and how values are
compared by the deallocation / stack / routine contracts.

    domain    admissible updates     cleared value
    -------   --------------------   ---------------------
    integer   +=  -=  ^=             0
    real      +=  -=                 0.0   (compared with real_atol)
    fixed     +=  -=                 Fixed(0)
    log       *=  /=                 Logarithmic.one()

Updates are looked up in the admissibility table at program construction,
so a program with ``*=`` on a fixed-point binding is rejected before it runs.
"""
from __future__ import annotations

import operator
from collections import defaultdict
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Set, Tuple, Union

import numpy as np

from ..config import get_config
from .errors import IrreversibleOperationError, IntegerOverflowError
from .numbers import Fixed, Logarithmic, to_log


class DomainTag(Enum):
    INTEGER = "integer"
    REAL = "real"
    FIXED = "fixed"
    LOG = "log"
    AGGREGATE = "aggregate"


class UpdateOp(Enum):
    """Closed set of in-place update kinds."""
    ADD = "+="
    SUB = "-="
    MUL = "*="
    DIV = "/="
    XOR = "^="

    @property
    def inverse(self) -> "UpdateOp":
        return _INVERSE[self]

    @classmethod
    def parse(cls, op: Union[str, "UpdateOp"]) -> "UpdateOp":
        if isinstance(op, UpdateOp):
            return op
        try:
            return cls(op)
        except ValueError:
            raise ValueError(f"unknown update operator {op!r}; expected one of "
                             f"{[o.value for o in cls]}") from None


_INVERSE = {
    UpdateOp.ADD: UpdateOp.SUB,
    UpdateOp.SUB: UpdateOp.ADD,
    UpdateOp.MUL: UpdateOp.DIV,
    UpdateOp.DIV: UpdateOp.MUL,
    UpdateOp.XOR: UpdateOp.XOR,
}

_COMBINE = {
    UpdateOp.ADD: operator.add,
    UpdateOp.SUB: operator.sub,
    UpdateOp.MUL: operator.mul,
    UpdateOp.DIV: operator.truediv,
    UpdateOp.XOR: operator.xor,
}


class Domain:
    """Base class for a numeric domain."""
    tag: DomainTag
    name: str = "domain"
    differentiable: bool = True
    invertible: FrozenSet[UpdateOp] = frozenset()

    def zero(self) -> Any:
        raise NotImplementedError

    def accepts(self, value) -> bool:
        raise NotImplementedError

    def coerce(self, value) -> Any:
        """Convert an operand result into this domain (deterministically)."""
        raise NotImplementedError

    def coerce_arg(self, value) -> Any:
        """Validate an argument passed by a caller; no lossy conversion."""
        if not self.accepts(value):
            raise TypeError(f"{self.name} domain cannot hold {value!r}")
        return value

    def equals(self, a, b) -> bool:
        return a == b

    def is_zero(self, value) -> bool:
        return self.equals(value, self.zero())

    def combine(self, op: UpdateOp, old, delta):
        return _COMBINE[op](old, delta)

    def __repr__(self):
        return f"<{self.name} domain>"


class IntegerDomain(Domain):
    tag = DomainTag.INTEGER
    name = "integer"
    differentiable = False
    invertible = frozenset({UpdateOp.ADD, UpdateOp.SUB, UpdateOp.XOR})

    def zero(self):
        return 0

    def accepts(self, value):
        return isinstance(value, (int, np.integer))

    def coerce(self, value):
        if isinstance(value, (int, np.integer)):
            return int(value)
        raise TypeError(f"integer domain cannot hold {value!r}")

    def coerce_arg(self, value):
        return self._bound(self.coerce(value))

    def combine(self, op, old, delta):
        return self._bound(_COMBINE[op](int(old), int(delta)))

    @staticmethod
    def _bound(value: int) -> int:
        cfg = get_config()
        lo = -(1 << (cfg.integer_bits - 1))
        hi = (1 << (cfg.integer_bits - 1)) - 1
        if lo <= value <= hi:
            return value
        if cfg.overflow == 'wrap':
            return ((value - lo) % (1 << cfg.integer_bits)) + lo
        raise IntegerOverflowError(f"integer overflow: {value} outside [{lo}, {hi}]")


class RealDomain(Domain):
    """Floats. ``+=``/``-=`` are reversible only up to rounding."""
    tag = DomainTag.REAL
    name = "real"
    invertible = frozenset({UpdateOp.ADD, UpdateOp.SUB})

    def zero(self):
        return 0.0

    def accepts(self, value):
        return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool)

    def coerce(self, value):
        if isinstance(value, np.ndarray) and value.ndim > 0:
            return value.astype(np.float64)
        return float(value)

    def coerce_arg(self, value):
        return float(super().coerce_arg(value))

    def equals(self, a, b):
        return abs(float(a) - float(b)) <= get_config().real_atol

    def combine(self, op, old, delta):
        if isinstance(old, np.ndarray) or isinstance(delta, np.ndarray):
            return _COMBINE[op](np.asarray(old, dtype=np.float64), delta)
        return _COMBINE[op](float(old), float(delta))


class FixedDomain(Domain):
    tag = DomainTag.FIXED
    name = "fixed"
    invertible = frozenset({UpdateOp.ADD, UpdateOp.SUB})

    def zero(self):
        return Fixed(0)

    def accepts(self, value):
        return isinstance(value, (Fixed, int, np.integer))

    def coerce(self, value):
        return value if isinstance(value, Fixed) else Fixed(value)

    def coerce_arg(self, value):
        return self.coerce(super().coerce_arg(value))


class LogDomain(Domain):
    tag = DomainTag.LOG
    name = "log"
    invertible = frozenset({UpdateOp.MUL, UpdateOp.DIV})

    def zero(self):
        return Logarithmic.one()

    def accepts(self, value):
        return isinstance(value, Logarithmic)

    def coerce(self, value):
        return to_log(value, signed=True)


INTEGER = IntegerDomain()
REAL = RealDomain()
FIXED = FixedDomain()
LOG = LogDomain()

_DOMAINS: Dict[str, Domain] = {}
_ALIASES = {"int": "integer", "float": "real", "logarithmic": "log"}


def register_domain(domain: Domain) -> Domain:
    _DOMAINS[domain.name] = domain
    for op in domain.invertible:
        register_update(domain, op)
    return domain


def get_domain(spec: Union[str, DomainTag, Domain]) -> Domain:
    """Resolve a Domain from a Domain, a DomainTag or a name."""
    if isinstance(spec, Domain):
        return spec
    if isinstance(spec, DomainTag):
        spec = spec.value
    name = _ALIASES.get(str(spec).lower(), str(spec).lower())
    if name not in _DOMAINS:
        raise ValueError(f"unknown domain {spec!r}")
    return _DOMAINS[name]


# ----------------------------- admissibility --------------------------------- #
_ADMISSIBLE: Dict[DomainTag, Set[UpdateOp]] = defaultdict(set)


def register_update(domain, op) -> None:
    """
    Declare `op` admissible over `domain`.

    Fails with IrreversibleOperationError when the update is not exactly
    invertible on the representation (e.g. ``*=`` on fixed-point numbers,
    whose rounding would make the inverse inexact).
    """
    domain = get_domain(domain)
    op = UpdateOp.parse(op)
    if op not in domain.invertible:
        raise IrreversibleOperationError(
            f"'{op.value}' is not exactly invertible over the {domain.name} domain")
    _ADMISSIBLE[domain.tag].add(op)


def is_admissible(domain, op) -> bool:
    return UpdateOp.parse(op) in _ADMISSIBLE[get_domain(domain).tag]


def check_update(domain, op, *, binding: Optional[str] = None) -> None:
    domain = get_domain(domain)
    op = UpdateOp.parse(op)
    if not is_admissible(domain, op):
        raise IrreversibleOperationError(
            f"'{op.value}' is not an admissible update over the {domain.name} domain",
            binding=binding)


for _d in (INTEGER, REAL, FIXED, LOG):
    register_domain(_d)


# ----------------------------- value helpers --------------------------------- #
def is_aggregate(value) -> bool:
    if isinstance(value, np.ndarray):
        return value.ndim > 0
    return isinstance(value, (list, tuple))


def _first_leaf(value):
    while is_aggregate(value):
        if len(value) == 0:
            return None
        value = value[0]
    return value


def domain_of(value) -> Tuple[Domain, bool]:
    """Infer (element domain, is_aggregate) from a value."""
    if is_aggregate(value):
        if isinstance(value, np.ndarray) and value.dtype != object:
            return (INTEGER if value.dtype.kind in "iu" else REAL), True
        leaf = _first_leaf(value)
        return (REAL if leaf is None else domain_of(leaf)[0]), True
    if isinstance(value, Logarithmic):
        return LOG, False
    if isinstance(value, Fixed):
        return FIXED, False
    if isinstance(value, (bool, int, np.integer)):
        return INTEGER, False
    if isinstance(value, (float, np.floating)):
        return REAL, False
    raise TypeError(f"no numeric domain for {value!r}")


def copy_value(value):
    """Copy mutable containers; scalars are immutable and returned as-is."""
    if isinstance(value, np.ndarray):
        return value.copy()
    if isinstance(value, (list, tuple)):
        return [copy_value(v) for v in value]
    return value


def coerce_aggregate(domain: Domain, value):
    """Copy an aggregate argument into the container used for its domain."""
    if domain is REAL:
        return np.array(value, dtype=np.float64)
    if isinstance(value, np.ndarray):
        value = value.tolist()
    return [coerce_aggregate(domain, v) if is_aggregate(v) else domain.coerce_arg(v) for v in value]


def zeros_like(domain: Domain, template):
    """Cleared aggregate with the same shape as `template`."""
    if isinstance(template, np.ndarray) and template.dtype != object:
        return np.zeros_like(template)
    return [zeros_like(domain, v) if is_aggregate(v) else domain.zero() for v in template]


def make_zeros(domain: Domain, size):
    """Cleared aggregate of `size` (int or shape tuple)."""
    shape = (int(size),) if np.isscalar(size) else tuple(int(s) for s in size)
    if domain is REAL:
        return np.zeros(shape, dtype=np.float64)

    def build(dims):
        if len(dims) == 1:
            return [domain.zero() for _ in range(dims[0])]
        return [build(dims[1:]) for _ in range(dims[0])]
    return build(shape)


def values_equal(domain: Domain, a, b, aggregate: bool = False) -> bool:
    """Domain equality, elementwise for aggregates."""
    if aggregate or is_aggregate(a) or is_aggregate(b):
        if not (is_aggregate(a) and is_aggregate(b)) or len(a) != len(b):
            return False
        return all(values_equal(domain, x, y) for x, y in zip(a, b))
    return domain.equals(a, b)


def is_cleared(domain: Domain, value) -> bool:
    if is_aggregate(value):
        return all(is_cleared(domain, v) for v in value)
    return domain.is_zero(value)


def get_element(container, index):
    if isinstance(container, np.ndarray):
        return container[index]
    if isinstance(index, tuple):
        for i in index:
            container = container[i]
        return container
    return container[index]


def set_element(container, index, value) -> None:
    if isinstance(container, np.ndarray):
        container[index] = value
        return
    if isinstance(index, tuple):
        for i in index[:-1]:
            container = container[i]
        index = index[-1]
    container[index] = value


def real(value):
    """Real (float) interpretation used by local derivative rules."""
    if isinstance(value, np.ndarray):
        return value.astype(np.float64) if value.dtype != object else np.array([real(v) for v in value])
    if isinstance(value, (list, tuple)):
        return np.array([real(v) for v in value], dtype=np.float64)
    return float(value)
