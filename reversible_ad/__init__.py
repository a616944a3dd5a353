# reversible_ad/__init__.py
# Reversible execution and differentiation runtime

from .config import EngineConfig, configure_logging, get_config, set_config, use_config
from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all

# Operator overloading on operand trees and the library of primitive functions
from . import ops
from .ops import exp, log, sqrt, sin, cos, tanh, erf, norm_cdf, square

__all__ = [
    # Config
    'EngineConfig',
    'get_config',
    'set_config',
    'use_config',
    'configure_logging',
    # Primitive functions
    'ops',
    'exp', 'log', 'sqrt', 'sin', 'cos', 'tanh', 'erf', 'norm_cdf', 'square',
] + list(_core_all)
