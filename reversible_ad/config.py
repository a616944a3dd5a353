"""
Engine Configuration

Shared configuration for the reversible runtime: checking mode, integer
overflow policy, fixed-point resolution and the precision of the logarithmic
number conversions.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Optional


@dataclass
class EngineConfig:
    """Configuration for program execution and differentiation."""
    # Checking
    invcheck: bool = True  # predicate / routine consistency checks ("safe" mode)

    # Integer domain
    integer_bits: int = 64
    overflow: str = 'trap'  # 'trap' or 'wrap'

    # Fixed-point / logarithmic domains
    fixed_frac_bits: int = 43  # Fixed43
    log_bits: int = 43         # fractional bits produced by the fast binary logarithm

    # Floating point comparisons (deallocation / routine checks on REAL values)
    real_atol: float = 1e-8

    # Logging
    log_level: str = 'WARNING'

    def __post_init__(self):
        if self.overflow not in ('trap', 'wrap'):
            raise ValueError(f"overflow must be 'trap' or 'wrap', got {self.overflow!r}")
        if self.integer_bits < 2:
            raise ValueError("integer_bits must be >= 2")
        if not 0 < self.fixed_frac_bits < 128:
            raise ValueError("fixed_frac_bits must be in (0, 128)")
        if not 0 < self.log_bits <= 128:
            raise ValueError("log_bits must be in (0, 128]")
        if self.real_atol < 0:
            raise ValueError("real_atol must be non-negative")

    @classmethod
    def from_file(cls, path: Path) -> "EngineConfig":
        """Load configuration from JSON file."""
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: Path) -> None:
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)


_config = EngineConfig()


def get_config() -> EngineConfig:
    """Return the active configuration."""
    return _config


def set_config(config: EngineConfig) -> None:
    global _config
    _config = config


@contextmanager
def use_config(config: Optional[EngineConfig] = None, **overrides):
    """
    Context manager to temporarily switch the active configuration:
        with use_config(invcheck=False):
            program(...)
    """
    global _config
    prev = _config
    try:
        _config = replace(config or prev, **overrides)
        yield _config
    finally:
        _config = prev


def configure_logging(level=None) -> logging.Logger:
    """Install a single stream handler on the package logger."""
    logger = logging.getLogger('reversible_ad')
    level = level if level is not None else _config.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
    handler.setLevel(level)
    logger.addHandler(handler)
    return logger
