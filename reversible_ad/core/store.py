# reversible_ad/core/store.py
"""
Variable store: binding lifecycles.

A Scope is an arena of Bindings owned by one program invocation. Ancillas
(bindings allocated by the program itself) must be returned to the constant
they were allocated with; erasing any other value would not be reversible.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set

from .domains import (Domain, DomainTag, copy_value, domain_of, get_domain,
                      get_element, set_element, values_equal)
from .errors import (BindingNotFoundError, DuplicateBindingError,
                     NonZeroDeallocationError, UseAfterFreeError)

logger = logging.getLogger(__name__)


@dataclass
class Binding:
    """
    A name-to-value slot inside a scope.

    Attributes
    ----------
    name      : identifier inside its scope
    value     : current value (scalar, ndarray or nested list)
    domain    : element domain
    aggregate : True for arrays / lists
    ancilla   : allocated by the program (False for arguments)
    initial   : constant asserted at allocation, used by automatic deallocation
    alive     : False once deallocated
    """
    name: str
    value: Any
    domain: Domain
    aggregate: bool = False
    ancilla: bool = True
    initial: Any = None
    alive: bool = True

    @property
    def tag(self) -> DomainTag:
        return DomainTag.AGGREGATE if self.aggregate else self.domain.tag

    def get(self, index=None):
        if index is None:
            return self.value
        return get_element(self.value, index)

    def set(self, index, value) -> None:
        if index is None:
            self.value = value
        else:
            set_element(self.value, index, value)


@dataclass
class Scope:
    """Ordered set of bindings created by one invocation or nested block."""
    name: str
    bindings: Dict[str, Binding] = field(default_factory=dict)
    freed: Set[str] = field(default_factory=set)

    def ancillas(self) -> List[Binding]:
        """Live ancillas in allocation order."""
        return [b for b in self.bindings.values() if b.ancilla]

    def __contains__(self, name: str) -> bool:
        return name in self.bindings


class VariableStore:
    """
    Owns the scopes of the executing call stack.

    Scopes are entered with `scope(name)`; on normal exit the remaining
    ancillas are deallocated in reverse allocation order against the constant
    they were allocated with, on an exception the arena is simply released.
    """

    def __init__(self):
        self.scopes: List[Scope] = []

    @property
    def current(self) -> Scope:
        if not self.scopes:
            raise RuntimeError("no active scope")
        return self.scopes[-1]

    @contextmanager
    def scope(self, name: str) -> Iterator[Scope]:
        sc = Scope(name)
        self.scopes.append(sc)
        logger.debug("enter scope %s (depth %d)", name, len(self.scopes))
        try:
            yield sc
        except BaseException:
            sc.bindings.clear()
            raise
        else:
            self.close(sc)
        finally:
            self.scopes.remove(sc)

    def close(self, scope: Scope) -> None:
        """Automatic deallocation of leftover ancillas, newest first."""
        try:
            for b in reversed(scope.ancillas()):
                logger.debug("auto-deallocate %s in %s", b.name, scope.name)
                self.deallocate(scope, b.name, b.initial)
        finally:
            scope.bindings.clear()

    # ---------------------------- lifecycle ---------------------------------- #
    def allocate(self, scope: Scope, name: str, initial_value, domain=None,
                 aggregate: Optional[bool] = None, ancilla: bool = True) -> Binding:
        if name in scope.bindings:
            raise DuplicateBindingError(f"'{name}' is already live in scope {scope.name}",
                                        binding=name)
        if domain is None or aggregate is None:
            inferred, agg = domain_of(initial_value)
            domain = inferred if domain is None else domain
            aggregate = agg if aggregate is None else aggregate
        b = Binding(name=name, value=initial_value, domain=get_domain(domain),
                    aggregate=bool(aggregate), ancilla=ancilla,
                    initial=copy_value(initial_value))
        scope.bindings[name] = b
        scope.freed.discard(name)
        logger.debug("allocate %s = %r in %s", name, initial_value, scope.name)
        return b

    def deallocate(self, scope: Scope, name: str, expected_value) -> None:
        b = self.lookup(scope, name)
        if not values_equal(b.domain, b.value, expected_value, b.aggregate):
            raise NonZeroDeallocationError(
                f"cannot deallocate '{name}': holds {b.value!r}, expected {expected_value!r}",
                binding=name)
        b.alive = False
        del scope.bindings[name]
        scope.freed.add(name)
        logger.debug("deallocate %s in %s", name, scope.name)

    # ---------------------------- access ------------------------------------- #
    def lookup(self, scope: Scope, name: str) -> Binding:
        b = scope.bindings.get(name)
        if b is not None:
            return b
        if name in scope.freed:
            raise UseAfterFreeError(f"'{name}' used after deallocation", binding=name)
        raise BindingNotFoundError(f"no binding '{name}' in scope {scope.name}", binding=name)

    def read(self, scope: Scope, name: str, index=None):
        return self.lookup(scope, name).get(index)

    def write(self, scope: Scope, name: str, value, index=None) -> None:
        self.lookup(scope, name).set(index, value)

    def is_live(self, scope: Scope, name: str) -> bool:
        return name in scope.bindings
