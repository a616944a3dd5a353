# reversible_ad/programs/__init__.py
"""Library of reversible programs built on the core statement model."""

from .basic import (affine, make_affine, norm_stack, norm_uncompute, reversible_norm,
                    reversible_plus, reversible_plus2)
from .power import make_power_cache, make_power_lognumber, power_cache, power_lognumber
from .bessel import besselj, make_besselj

__all__ = [
    "reversible_plus", "reversible_plus2", "reversible_norm",
    "norm_uncompute", "norm_stack", "affine", "make_affine",
    "power_cache", "power_lognumber", "make_power_cache", "make_power_lognumber",
    "besselj", "make_besselj",
]
