# reversible_ad/programs/bessel.py
"""
Bessel function of the first kind by its Taylor series,

    J_nu(z) = sum_k (-1)^k (z/2)^(2k + nu) / (k! (k + nu)!)

The running term s lives in the logarithmic domain so that every update of it
is an exact ``*=`` / ``/=``; the alternating sum is accumulated in `domain`.
The series stops once the term drops below e^-25.
"""
from ..core.control import For, If, While
from ..core.domains import FIXED, INTEGER, LOG
from ..core.expr import Ref
from ..core.program import Param, Program
from ..core.routine import invcheckoff, routine
from ..core.statements import Alloc, Update
from ..ops import from_log, to_log

LOG_TOLERANCE = -25


def _term_significant(s):
    return s["s"].log > LOG_TOLERANCE


def _started(s):
    return s["k"] != 0


def _k_even(s):
    return s["k"] % 2 == 0


def _z_is_zero(s):
    return s["z"] == 0


def _nu_is_zero(s):
    return s["nu"] == 0


def make_besselj(domain=FIXED) -> Program:
    k, nu = Ref("k"), Ref("nu")
    lz, halfz, halfz_sq, s = Ref("lz"), Ref("halfz"), Ref("halfz_power_2"), Ref("s")

    compute, uncompute = routine(invcheckoff([
        Alloc("k", 0, domain=INTEGER),
        Alloc("lz", domain=LOG),
        Alloc("halfz", domain=LOG),
        Alloc("halfz_power_2", domain=LOG),
        Alloc("s", domain=LOG),
        Alloc("out_anc", domain=domain),
        Update("lz", "*=", to_log(Ref("z"))),
        Update("halfz", "*=", lz / 2),
        Update("halfz_power_2", "*=", halfz ** 2),
        # s = (z/2)^nu / nu!
        Update("s", "*=", halfz ** nu),
        For("i", 1, "nu", [
            Update("s", "/=", Ref("i")),
        ]),
        Update("out_anc", "+=", from_log(s)),
        While((_term_significant, _started), [
            Update("k", "+=", 1),
            # s *= (z/2)^2 / (k (k + nu))
            Update("s", "*=", halfz_sq / (k * (k + nu))),
            If(_k_even,
               [Update("out_anc", "+=", from_log(s))],
               [Update("out_anc", "-=", from_log(s))]),
        ]),
    ]))

    return Program("besselj", [Param("y", domain), Param("nu", INTEGER), Param("z", domain)], [
        If(_z_is_zero, [
            If(_nu_is_zero, [Update("y", "+=", 1)], []),
        ], [
            compute,
            Update("y", "+=", Ref("out_anc")),
            uncompute,
        ]),
    ])


besselj = make_besselj(FIXED)
