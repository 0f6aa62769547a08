"""
Unit tests for nodal corrections
"""
import numpy as np
import pytest

from tidal_harmonics.constituents import CONSTITUENTS
from tidal_harmonics.nodal import NODAL_TERMS, lunar_orbit, nodal_factors, nodal_table

FULL_NODAL_CYCLE = np.linspace(0.0, 360.0, 73)

SOLAR = ['S2', 'T2', 'R2', 'P1', 'S1', 'SA', 'SSA', 'S4', 'S6']


def _angle_difference(a, b):
    return (a - b + 180.0) % 360.0 - 180.0


class TestLunarOrbit:
    """Tests for the derived lunar orbit angles."""

    def test_inclination_extremes(self):
        """I ranges from w - i (node at 180) to w + i (node at 0)."""
        assert np.degrees(lunar_orbit(0.0).I) == pytest.approx(23.452 + 5.145, abs=1e-6)
        assert np.degrees(lunar_orbit(180.0).I) == pytest.approx(23.452 - 5.145, abs=1e-6)

    def test_nu_and_xi_vanish_at_node_zero(self):
        """nu and xi should vanish when the node is at 0."""
        orbit = lunar_orbit(0.0)
        assert np.degrees(orbit.nu) == pytest.approx(0.0, abs=1e-9)
        assert np.degrees(orbit.xi) == pytest.approx(0.0, abs=1e-9)

    def test_nu_at_node_ninety(self):
        """nu reaches about 13 degrees near N = 90."""
        assert np.degrees(lunar_orbit(90.0).nu) == pytest.approx(12.75, abs=0.1)

    def test_perigee_only_when_given(self):
        """P should only be computed when a perigee is given."""
        assert lunar_orbit(45.0).P is None
        assert lunar_orbit(45.0, perigee=100.0).P is not None


class TestNodalFactors:
    """Tests for f and u of individual constituents."""

    @pytest.mark.parametrize("symbol", SOLAR)
    def test_solar_constituents_are_identity(self, symbol):
        """Solar constituents should have f=1 and u=0."""
        for node in (0.0, 90.0, 200.0):
            factors = nodal_factors(symbol, node, 50.0)
            assert factors.f == 1.0
            assert factors.u == 0.0

    def test_unknown_symbol_is_identity(self):
        """Unknown symbols should get the identity correction."""
        factors = nodal_factors('XYZ9', 123.0)
        assert factors.f == 1.0
        assert factors.u == 0.0

    def test_m2_at_node_zero(self):
        """M2 f should be at its minimum when the node is at 0."""
        factors = nodal_factors('M2', 0.0)
        assert factors.f == pytest.approx(0.9632, abs=1e-3)
        assert factors.u == pytest.approx(0.0, abs=1e-9)

    @pytest.mark.parametrize("symbol,low,high", [
        ('M2', 0.96, 1.04),
        ('N2', 0.96, 1.04),
        ('K1', 0.87, 1.12),
        ('O1', 0.80, 1.19),
        ('K2', 0.74, 1.33),
        ('MF', 0.60, 1.46),
        ('MM', 0.86, 1.14),
        ('M4', 0.92, 1.08),
    ])
    def test_f_within_physical_range(self, symbol, low, high):
        """Amplitude factors stay in their known ranges over a full nodal cycle."""
        f = nodal_factors(symbol, FULL_NODAL_CYCLE).f
        assert np.all(f >= low), f"{symbol}: min f {f.min():.4f}"
        assert np.all(f <= high), f"{symbol}: max f {f.max():.4f}"

    @pytest.mark.parametrize("symbol", sorted(NODAL_TERMS))
    def test_u_in_half_open_range(self, symbol):
        """u should stay in (-180, 180]."""
        u = np.atleast_1d(nodal_factors(symbol, FULL_NODAL_CYCLE, 75.0).u)
        assert np.all(u > -180.0)
        assert np.all(u <= 180.0)

    @pytest.mark.parametrize("symbol", sorted(NODAL_TERMS))
    def test_f_positive(self, symbol):
        """f should always be positive."""
        f = np.atleast_1d(nodal_factors(symbol, FULL_NODAL_CYCLE, 75.0).f)
        assert np.all(f > 0.0)

    def test_compound_tides_combine_bases(self):
        """M4 should be the square of M2."""
        m2 = nodal_factors('M2', 60.0)
        m4 = nodal_factors('M4', 60.0)
        assert m4.f == pytest.approx(m2.f ** 2)
        assert _angle_difference(m4.u, 2 * m2.u) == pytest.approx(0.0, abs=1e-9)

    def test_mk3_is_m2_times_k1(self):
        """MK3 should combine M2 and K1."""
        m2 = nodal_factors('M2', 300.0)
        k1 = nodal_factors('K1', 300.0)
        mk3 = nodal_factors('MK3', 300.0)
        assert mk3.f == pytest.approx(m2.f * k1.f)
        assert _angle_difference(mk3.u, m2.u + k1.u) == pytest.approx(0.0, abs=1e-9)

    def test_msf_is_inverse_phase_of_m2(self):
        """MSF should have the M2 amplitude factor and opposite phase."""
        m2 = nodal_factors('M2', 45.0)
        msf = nodal_factors('MSF', 45.0)
        assert msf.f == pytest.approx(m2.f)
        assert msf.u == pytest.approx(-m2.u)

    def test_l2_without_perigee_matches_m2(self):
        """L2 should fall back to M2 without a perigee."""
        assert nodal_factors('L2', 110.0) == nodal_factors('M2', 110.0)

    def test_perigee_changes_l2_and_m1(self):
        """L2 and M1 should depend on the perigee."""
        assert nodal_factors('L2', 110.0, 30.0).f != pytest.approx(nodal_factors('L2', 110.0, 120.0).f)
        assert nodal_factors('M1', 110.0, 30.0).u != pytest.approx(nodal_factors('M1', 110.0, 120.0).u)

    def test_spelling_is_normalized(self):
        """Symbol spelling should not change the factors."""
        assert nodal_factors('Mf', 77.0) == nodal_factors('MF', 77.0)
        assert nodal_factors('lam2', 77.0) == nodal_factors('LDA2', 77.0)

    def test_array_node(self):
        """Array nodes should give array factors."""
        factors = nodal_factors('O1', np.array([0.0, 90.0, 180.0]))
        assert factors.f.shape == (3,)
        assert factors.u.shape == (3,)
        assert factors.f[1] == pytest.approx(nodal_factors('O1', 90.0).f)

    def test_every_catalog_symbol_is_modeled(self):
        """Every catalog constituent should have nodal terms."""
        assert set(CONSTITUENTS) <= set(NODAL_TERMS)


class TestNodalTable:
    """Tests for batch lookups."""

    def test_keys_are_symbols_as_given(self):
        """Table keys should be the symbols as passed in."""
        table = nodal_table(['M2', 'Mf', 'S2'], 30.0, 200.0)
        assert set(table) == {'M2', 'Mf', 'S2'}

    def test_matches_single_lookups(self):
        """Table entries should match single lookups."""
        table = nodal_table(['M2', 'K1', 'O1', 'L2'], 250.0, 10.0)
        for symbol, factors in table.items():
            single = nodal_factors(symbol, 250.0, 10.0)
            assert factors.f == pytest.approx(single.f)
            assert factors.u == pytest.approx(single.u)
