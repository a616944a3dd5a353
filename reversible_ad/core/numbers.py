# reversible_ad/core/numbers.py
"""
Exactly-invertible number representations.

Fixed
    Fixed-point number: an integer ``raw`` scaled by ``2**-frac_bits``
    (``Fixed43`` by default). Addition and subtraction are exact; products and
    quotients round deterministically to the nearest representable value, so
    ``y += a * b`` followed by ``y -= a * b`` restores ``y`` bit for bit.

Logarithmic
    Stores ``log(|x|)`` as a ``Fixed`` plus a sign tag. Multiplication and
    division add/subtract the stored logarithms, so ``*=`` / ``/=`` are exact.

Conversions between the two go through Turner's fast binary logarithm
(C. S. Turner, "A Fast Binary Logarithm Algorithm", IEEE Signal Processing
Mag., Sep. 2010). ``to_log``/``from_log`` are a paired but only approximately
invertible: the relative round-trip error is bounded by ``log_epsilon()``
(``2**-log_bits``) plus one float rounding.
"""
from __future__ import annotations

import math
from fractions import Fraction
from typing import Optional, Tuple

import numpy as np

from ..config import get_config

LN2 = math.log(2.0)


def _shift_round(x: int, n: int) -> int:
    """x / 2**n rounded to nearest (ties toward +inf)."""
    if n <= 0:
        return x << -n
    return (x + (1 << (n - 1))) >> n


def _div_round(num: int, den: int) -> int:
    """num / den rounded to nearest (ties toward +inf)."""
    if den == 0:
        raise ZeroDivisionError("fixed-point division by zero")
    if den < 0:
        num, den = -num, -den
    return (2 * num + den) // (2 * den)


class Fixed:
    """
    Fixed-point number with ``frac_bits`` fractional bits.

    Fixed(0.99)            -> nearest Fixed43 to 0.99
    Fixed(3)               -> exactly 3
    Fixed.from_raw(1, 43)  -> 2**-43
    """
    __slots__ = ("raw", "frac_bits")

    def __init__(self, value=0, frac_bits: Optional[int] = None):
        if frac_bits is None:
            frac_bits = value.frac_bits if isinstance(value, Fixed) else get_config().fixed_frac_bits
        self.frac_bits = int(frac_bits)
        if isinstance(value, Fixed):
            self.raw = _shift_round(value.raw, value.frac_bits - self.frac_bits)
        elif isinstance(value, (int, np.integer)):
            self.raw = int(value) << self.frac_bits
        else:
            v = float(value)
            if not math.isfinite(v):
                raise ValueError(f"cannot represent {v} as a fixed-point number")
            self.raw = int(round(math.ldexp(v, self.frac_bits)))

    @classmethod
    def from_raw(cls, raw: int, frac_bits: Optional[int] = None) -> "Fixed":
        out = cls.__new__(cls)
        out.frac_bits = get_config().fixed_frac_bits if frac_bits is None else int(frac_bits)
        out.raw = int(raw)
        return out

    def _coerce(self, other) -> Optional["Fixed"]:
        if isinstance(other, Fixed):
            return other if other.frac_bits == self.frac_bits else Fixed(other, self.frac_bits)
        if isinstance(other, (int, float, np.integer, np.floating)):
            return Fixed(other, self.frac_bits)
        if isinstance(other, Logarithmic):
            return Fixed(float(other), self.frac_bits)
        return None

    # ---- arithmetic ----
    def __add__(self, other):
        o = self._coerce(other)
        if o is None:
            return NotImplemented
        return Fixed.from_raw(self.raw + o.raw, self.frac_bits)

    __radd__ = __add__

    def __sub__(self, other):
        o = self._coerce(other)
        if o is None:
            return NotImplemented
        return Fixed.from_raw(self.raw - o.raw, self.frac_bits)

    def __rsub__(self, other):
        o = self._coerce(other)
        if o is None:
            return NotImplemented
        return Fixed.from_raw(o.raw - self.raw, self.frac_bits)

    def __mul__(self, other):
        if isinstance(other, (int, np.integer)):
            return Fixed.from_raw(self.raw * int(other), self.frac_bits)
        o = self._coerce(other)
        if o is None:
            return NotImplemented
        return Fixed.from_raw(_shift_round(self.raw * o.raw, self.frac_bits), self.frac_bits)

    __rmul__ = __mul__

    def __truediv__(self, other):
        if isinstance(other, (int, np.integer)):
            return Fixed.from_raw(_div_round(self.raw, int(other)), self.frac_bits)
        o = self._coerce(other)
        if o is None:
            return NotImplemented
        return Fixed.from_raw(_div_round(self.raw << self.frac_bits, o.raw), self.frac_bits)

    def __rtruediv__(self, other):
        o = self._coerce(other)
        if o is None:
            return NotImplemented
        return o / self

    def __pow__(self, n):
        if isinstance(n, (int, np.integer)):
            n = int(n)
            out = Fixed(1, self.frac_bits)
            for _ in range(abs(n)):
                out = out * self
            return Fixed(1, self.frac_bits) / out if n < 0 else out
        return Fixed(float(self) ** float(n), self.frac_bits)

    def __neg__(self):
        return Fixed.from_raw(-self.raw, self.frac_bits)

    def __pos__(self):
        return self

    def __abs__(self):
        return Fixed.from_raw(abs(self.raw), self.frac_bits)

    # ---- conversion / comparison ----
    def __float__(self):
        return math.ldexp(self.raw, -self.frac_bits)

    def __int__(self):
        return int(Fraction(self.raw, 1 << self.frac_bits))

    def __bool__(self):
        return self.raw != 0

    def _compare_key(self, other):
        if isinstance(other, Fixed):
            return Fraction(self.raw, 1 << self.frac_bits), Fraction(other.raw, 1 << other.frac_bits)
        if isinstance(other, (int, np.integer)):
            return Fraction(self.raw, 1 << self.frac_bits), Fraction(int(other))
        if isinstance(other, (float, np.floating)):
            return float(self), float(other)
        return None

    def __eq__(self, other):
        key = self._compare_key(other)
        return NotImplemented if key is None else key[0] == key[1]

    def __lt__(self, other):
        key = self._compare_key(other)
        return NotImplemented if key is None else key[0] < key[1]

    def __le__(self, other):
        key = self._compare_key(other)
        return NotImplemented if key is None else key[0] <= key[1]

    def __gt__(self, other):
        key = self._compare_key(other)
        return NotImplemented if key is None else key[0] > key[1]

    def __ge__(self, other):
        key = self._compare_key(other)
        return NotImplemented if key is None else key[0] >= key[1]

    def __hash__(self):
        return hash(Fraction(self.raw, 1 << self.frac_bits))

    def __format__(self, spec):
        return format(float(self), spec)

    def __repr__(self):
        if self.frac_bits == get_config().fixed_frac_bits:
            return f"Fixed({float(self)!r})"
        return f"Fixed({float(self)!r}, frac_bits={self.frac_bits})"


class Logarithmic:
    """
    Logarithmic number: value = sign * exp(log), with ``log`` a ``Fixed``.

    ``Logarithmic(x)`` converts a positive real through ``to_log``;
    ``Logarithmic.one()`` is the multiplicative identity (log == 0), which is
    also the cleared value of the logarithmic domain.
    """
    __slots__ = ("log", "sign")

    def __init__(self, value=1, *, signed: bool = False):
        converted = to_log(value, signed=signed)
        self.log = converted.log
        self.sign = converted.sign

    @classmethod
    def from_log_value(cls, log, sign: int = 1) -> "Logarithmic":
        """Build directly from the stored logarithm (no conversion)."""
        out = cls.__new__(cls)
        out.log = log if isinstance(log, Fixed) else Fixed(log)
        out.sign = 1 if sign >= 0 else -1
        return out

    @classmethod
    def one(cls) -> "Logarithmic":
        return cls.from_log_value(Fixed(0), 1)

    def _coerce(self, other) -> Optional["Logarithmic"]:
        if isinstance(other, Logarithmic):
            return other
        if isinstance(other, (int, float, np.integer, np.floating, Fixed)):
            return to_log(other, signed=True)
        return None

    def __mul__(self, other):
        o = self._coerce(other)
        if o is None:
            return NotImplemented
        return Logarithmic.from_log_value(self.log + o.log, self.sign * o.sign)

    __rmul__ = __mul__

    def __truediv__(self, other):
        o = self._coerce(other)
        if o is None:
            return NotImplemented
        return Logarithmic.from_log_value(self.log - o.log, self.sign * o.sign)

    def __rtruediv__(self, other):
        o = self._coerce(other)
        if o is None:
            return NotImplemented
        return o / self

    def __pow__(self, n):
        if isinstance(n, (int, np.integer)):
            n = int(n)
            return Logarithmic.from_log_value(self.log * n, self.sign ** (n % 2) if self.sign < 0 else 1)
        if self.sign < 0:
            raise ValueError("non-integer power of a negative logarithmic number")
        return Logarithmic.from_log_value(Fixed(float(self.log) * float(n), self.log.frac_bits), 1)

    def __neg__(self):
        return Logarithmic.from_log_value(self.log, -self.sign)

    def __float__(self):
        return from_log(self)

    def __bool__(self):
        return True

    def __eq__(self, other):
        if not isinstance(other, Logarithmic):
            return NotImplemented
        return self.sign == other.sign and self.log == other.log

    def __lt__(self, other):
        if isinstance(other, Logarithmic) and self.sign > 0 and other.sign > 0:
            return self.log < other.log
        return float(self) < float(other)

    def __gt__(self, other):
        if isinstance(other, Logarithmic) and self.sign > 0 and other.sign > 0:
            return self.log > other.log
        return float(self) > float(other)

    def __le__(self, other):
        return not self > other

    def __ge__(self, other):
        return not self < other

    def __hash__(self):
        return hash((self.log.raw, self.log.frac_bits, self.sign))

    def __format__(self, spec):
        return format(float(self), spec)

    def __repr__(self):
        s = "-" if self.sign < 0 else ""
        return f"Logarithmic({s}exp({float(self.log)!r}))"


# ----------------------------- conversions ----------------------------------- #
def log_epsilon(bits: Optional[int] = None) -> float:
    """Relative precision of a to_log / from_log round trip."""
    return 2.0 ** -(get_config().log_bits if bits is None else bits)


def _as_dyadic(x) -> Tuple[int, int]:
    """Return (num, shift) with x == num * 2**-shift exactly."""
    if isinstance(x, Fixed):
        return x.raw, x.frac_bits
    if isinstance(x, (int, np.integer)):
        return int(x), 0
    num, den = float(x).as_integer_ratio()
    return num, den.bit_length() - 1


def fast_log2(x, bits: Optional[int] = None) -> float:
    """
    Binary logarithm of a positive number, one fractional bit per squaring.

    The mantissa is held as an exact integer with ``2*bits + 16`` guard bits, so
    the first ``bits`` fractional bits are those of the true logarithm.
    """
    bits = get_config().log_bits if bits is None else bits
    num, shift = _as_dyadic(x)
    if num <= 0:
        raise ValueError(f"fast_log2 expects a positive number, got {x!r}")

    n = num.bit_length() - 1
    exponent = n - shift
    precision = 2 * bits + 16
    y = num << (precision - n) if precision >= n else num >> (n - precision)
    two = 2 << precision

    frac = 0
    for _ in range(bits):
        y = (y * y) >> precision
        frac <<= 1
        if y >= two:
            y >>= 1
            frac |= 1
    return exponent + math.ldexp(frac, -bits)


def to_log(x, *, signed: bool = False) -> Logarithmic:
    """Convert a real (int, float, Fixed) to a logarithmic number."""
    if isinstance(x, Logarithmic):
        return x
    sign = 1
    if x < 0:
        if not signed:
            raise ValueError(f"unsigned logarithmic number cannot hold {x!r}")
        sign, x = -1, -x
    if x == 0:
        raise ValueError("zero has no logarithmic representation")
    return Logarithmic.from_log_value(Fixed(fast_log2(x) * LN2), sign)


def from_log(x) -> float:
    """Convert a logarithmic number back to a float (anti-logarithm)."""
    if not isinstance(x, Logarithmic):
        return float(x)
    t = float(x.log) / LN2
    n = math.floor(t)
    return x.sign * math.ldexp(2.0 ** (t - n), int(n))
