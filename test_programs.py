"""
Library programs: fixed-point power, Bessel series, and program display.
"""

import sys
from pathlib import Path

import pytest
from scipy import special

sys.path.insert(0, str(Path(__file__).parent))

from reversible_ad import REAL, Fixed, format_program, print_program_summary
from reversible_ad.core.program_utils import get_program_stats
from reversible_ad.programs import (besselj, make_besselj, power_cache, power_lognumber,
                                    reversible_norm, reversible_plus2)


@pytest.mark.parametrize("prog", [power_cache, power_lognumber])
def test_power(prog):
    y, x, n = prog(Fixed(0), Fixed(0.99), 100)
    assert float(y) == pytest.approx(0.99 ** 100, rel=1e-8)
    assert x == Fixed(0.99) and n == 100


@pytest.mark.parametrize("prog", [power_cache, power_lognumber])
def test_power_round_trip_is_exact(prog):
    out = prog(Fixed(0), Fixed(0.99), 100)
    y, x, n = (~prog)(*out)
    assert y == Fixed(0)
    assert x == Fixed(0.99)


@pytest.mark.parametrize("nu", [0, 1, 2, 3])
@pytest.mark.parametrize("z", [0.5, 1.0, 2.5, 6.0])
def test_besselj_matches_scipy(nu, z):
    y, _, _ = besselj(Fixed(0), nu, Fixed(z))
    assert float(y) == pytest.approx(special.jv(nu, z), abs=1e-8)


def test_besselj_at_zero():
    assert besselj(Fixed(0), 0, Fixed(0))[0] == Fixed(1)
    assert besselj(Fixed(0), 2, Fixed(0))[0] == Fixed(0)


def test_besselj_round_trip_is_exact():
    out = besselj(Fixed(0), 2, Fixed(2.5))
    assert (~besselj)(*out) == (Fixed(0), 2, Fixed(2.5))


def test_besselj_real_domain():
    bessel_real = make_besselj(REAL)
    y, _, _ = bessel_real(0.0, 1, 3.0)
    assert y == pytest.approx(special.jv(1, 3.0), abs=1e-8)


def test_format_program():
    text = format_program(reversible_norm)
    lines = text.splitlines()
    assert lines[0] == "reversible_norm(res: real, y: real, x[]: real)"
    assert lines[1].strip().startswith("for i = 0:")
    assert "res += sqrt(y)" in text

    inv = format_program(~reversible_norm).splitlines()
    assert inv[1].strip() == "res -= sqrt(y)"
    assert "(reversed)" in inv[2]


def test_program_stats():
    stats = get_program_stats(reversible_plus2)
    assert stats['statements'] == 2
    assert stats['calls'] == ['reversible_plus']
    assert stats['kinds'] == {'Call': 2}


def test_print_program_summary(capsys):
    stats = print_program_summary(besselj, detailed=True)
    printed = capsys.readouterr().out
    assert "PROGRAM SUMMARY: besselj(y: fixed, nu: integer, z: fixed)" in printed
    assert "~besselj" in printed
    for kind in ('If', 'While', 'Routine', 'Unroutine', 'For'):
        assert stats['kinds'][kind] >= 1
