# reversible_ad/ops/special.py
import numpy as np
from scipy.special import erf as _erf, ndtr

from ..core.domains import real
from ..core.expr import Function
from ..core.numbers import from_log as _from_log, to_log as _to_log

SQRT_TWO_PI = np.sqrt(2.0 * np.pi)


def norm_pdf(x):
    return np.exp(-0.5 * x * x) / SQRT_TWO_PI


erf = Function("erf", lambda a: _erf(real(a)),
               (lambda a: (2.0 / np.sqrt(np.pi)) * np.exp(-a * a),))

# N(x) via scipy's ndtr; dN/dx = phi(x)
norm_cdf = Function("norm_cdf", lambda a: ndtr(real(a)), (norm_pdf,))

# Representation changes between fixed-point / real and logarithmic numbers.
# Both denote the same real value, so the local derivative is 1; the value is
# only accurate to log_epsilon() (fast binary logarithm).
to_log = Function("to_log", lambda a: _to_log(a, signed=True), (lambda a: 1.0,))
from_log = Function("from_log", _from_log, (lambda a: 1.0,))
