# reversible_ad/programs/power.py
"""
x ** n with fixed-point numbers, two ways.

make_power_cache
    Keeps every partial power in a buffer of size n (O(n) memory): products of
    fixed-point numbers round, so the only exact way to accumulate them is
    ``cache[i] += cache[i-1] * x`` into fresh zero slots.

make_power_lognumber
    Converts x to a logarithmic number once and multiplies in the log domain,
    where ``*=`` is exact; only two ancillas are needed.
"""
from ..core.control import For
from ..core.domains import FIXED, INTEGER, LOG
from ..core.expr import Ref
from ..core.program import Param, Program
from ..core.routine import invcheckoff, routine
from ..core.statements import Alloc, Update
from ..ops import from_log, to_log


def make_power_cache(domain=FIXED) -> Program:
    cache, x = Ref("cache"), Ref("x")
    compute, uncompute = routine(invcheckoff([
        Alloc("cache", domain=domain, size="n"),
        Update(cache[0], "+=", x),
        For("i", 1, lambda s: s["n"] - 1, [
            Update(cache["i"], "+=", cache[Ref("i") - 1] * x),
        ]),
    ]))
    return Program("power_cache", [Param("y", domain), Param("x", domain), Param("n", INTEGER)], [
        compute,
        Update("y", "+=", cache[Ref("n") - 1]),
        uncompute,
    ])


def make_power_lognumber(domain=FIXED) -> Program:
    lx, ly = Ref("lx"), Ref("ly")
    compute, uncompute = routine(invcheckoff([
        Alloc("lx", domain=LOG),
        Alloc("ly", domain=LOG),
        Update("lx", "*=", to_log(Ref("x"))),
        For("i", 1, "n", [
            Update("ly", "*=", lx),
        ]),
    ]))
    return Program("power_lognumber", [Param("y", domain), Param("x", domain), Param("n", INTEGER)], [
        compute,
        Update("y", "+=", from_log(ly)),
        uncompute,
    ])


power_cache = make_power_cache(FIXED)
power_lognumber = make_power_lognumber(FIXED)
