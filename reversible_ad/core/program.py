# reversible_ad/core/program.py
from __future__ import annotations
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

from .domains import REAL, Domain, check_update, coerce_aggregate, get_domain, is_aggregate
from .errors import IrreversibleOperationError, ReversibleError
from .statements import (Alloc, Block, Dealloc, Neg, Pop, Push, Statement, Swap, Update,
                         as_statement)
from .control import For

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Param:
    """
    A program argument.

    name      : binding name inside the program
    domain    : element domain (REAL by default)
    aggregate : True for array / list arguments
    """
    name: str
    domain: Domain = REAL
    aggregate: bool = False

    def __post_init__(self):
        object.__setattr__(self, "domain", get_domain(self.domain))

    def coerce(self, value):
        """Copy-in conversion of a caller value (no lossy conversion)."""
        if self.aggregate:
            if not is_aggregate(value):
                raise TypeError(f"argument '{self.name}' expects an aggregate, got {value!r}")
            return coerce_aggregate(self.domain, value)
        if is_aggregate(value):
            raise TypeError(f"argument '{self.name}' expects a scalar, got {value!r}")
        return self.domain.coerce_arg(value)

    def describe(self) -> str:
        suffix = "[]" if self.aggregate else ""
        return f"{self.name}{suffix}: {self.domain.name}"


def as_param(p) -> Param:
    if isinstance(p, Param):
        return p
    if isinstance(p, str):
        return Param(p)
    raise TypeError(f"not a parameter: {p!r}")


def iter_statements(stmt: Statement, path: Tuple = ()) -> Iterator[Tuple[Tuple, Statement]]:
    """Depth-first walk yielding (path, statement); does not enter called programs."""
    yield path, stmt
    if isinstance(stmt, Block):
        for i, s in enumerate(stmt.stmts):
            yield from iter_statements(s, path + (i,))
    else:
        for label, block in stmt.blocks():
            yield from iter_statements(block, path + ((label,) if label else ()))


@dataclass
class SymbolTable:
    """Construction-time view of the names a program uses."""
    domains: Dict[str, Optional[Domain]] = field(default_factory=dict)
    loop_vars: Set[str] = field(default_factory=set)

    @classmethod
    def build(cls, params: Sequence[Param], body: Statement) -> "SymbolTable":
        table = cls({p.name: p.domain for p in params})
        for _, s in iter_statements(body):
            if isinstance(s, (Alloc, Dealloc)):
                table.domains.setdefault(s.name, s.domain)
            elif isinstance(s, For):
                table.loop_vars.add(s.var)
        return table

    def domain(self, name: str) -> Optional[Domain]:
        return self.domains.get(name)


def validate_statement(s: Statement, symbols: SymbolTable) -> None:
    """Construction-time checks of one statement: loop indices and admissible updates."""
    targets = []
    if isinstance(s, (Update, Neg)):
        targets = [s.target.name]
    elif isinstance(s, (Push, Pop)):
        targets = [s.ref.name]
    elif isinstance(s, Swap):
        targets = [s.a.name, s.b.name]
    for name in targets:
        if name in symbols.loop_vars and name not in symbols.domains:
            raise IrreversibleOperationError(f"loop index '{name}' cannot be updated",
                                             binding=name)
    if isinstance(s, Update):
        domain = symbols.domain(s.target.name)
        if domain is not None:
            check_update(domain, s.op, binding=s.target.name)


def validate(body: Statement, symbols: SymbolTable) -> None:
    for path, s in iter_statements(body):
        try:
            validate_statement(s, symbols)
        except ReversibleError as e:
            e.path[:0] = [str(p) for p in path]
            raise


class Program:
    """
    A named reversible program: parameters plus a statement block.

    Construction validates the whole tree (admissible updates per domain, no
    updates of loop indices) and appends deallocations for ancillas the body
    allocates but never frees, newest first, so that the inverse program
    allocates them again. Calling a program returns the values of all its
    arguments after execution; ``~program`` is its inverse.
    """

    def __init__(self, name: str, params: Sequence[Union[str, Param]], body, *,
                 _validated: bool = False):
        self.name = name
        self.params: List[Param] = [as_param(p) for p in params]
        names = [p.name for p in self.params]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate parameter names in {name}: {names}")
        body = as_statement(body)
        if not isinstance(body, Block):
            body = Block([body])
        self._inverse: Optional[Program] = None
        if _validated:
            self.body = body
            return
        self.body = self._close_ancillas(body)
        self.symbols = SymbolTable.build(self.params, self.body)
        try:
            self._validate()
        except ReversibleError as e:
            e.locate(self.name)
            raise

    @staticmethod
    def _close_ancillas(body: Block) -> Block:
        balance: Counter = Counter()
        first: Dict[str, Alloc] = {}
        for _, s in iter_statements(body):
            if isinstance(s, Alloc):
                balance[s.name] += 1
                first.setdefault(s.name, s)
            elif isinstance(s, Dealloc):
                balance[s.name] -= 1
        missing = [a for name, a in first.items() if balance[name] > 0]
        if not missing:
            return body
        logger.debug("closing ancillas %s", [a.name for a in reversed(missing)])
        return Block(body.stmts + [a.invert() for a in reversed(missing)], check=body.check)

    def _validate(self) -> None:
        validate(self.body, self.symbols)

    # ---------------------------- inversion / calls -------------------------- #
    def inverse(self) -> "Program":
        if self._inverse is None:
            name = self.name[1:] if self.name.startswith("~") else "~" + self.name
            inv = Program(name, self.params, self.body.invert(), _validated=True)
            inv.symbols = self.symbols
            inv._inverse = self
            self._inverse = inv
        return self._inverse

    def __invert__(self) -> "Program":
        return self.inverse()

    def __call__(self, *args, stack=None):
        from .engine import run  # local import to avoid cycles
        return run(self, *args, stack=stack)

    @property
    def param_names(self) -> List[str]:
        return [p.name for p in self.params]

    def describe(self) -> str:
        return f"{self.name}({', '.join(p.describe() for p in self.params)})"

    def __repr__(self):
        return f"<Program {self.describe()}>"
