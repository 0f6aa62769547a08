"""
Nodal corrections (f and u) for tidal constituents.

The 18.61-year regression of the lunar node modulates the amplitude (f) and
shifts the phase (u) of every lunar constituent. Corrections are built from a
small closed set of base formulas (Schureman 1958), keyed by the constituent
whose behaviour they describe. Each catalog symbol maps to a product of those
bases with integer exponents, so compound shallow-water tides follow the
usual rule:

    f = prod(f_k ** |m_k|)        u = sum(m_k * u_k)

Purely solar constituents map to the empty product and have no correction.
Symbols absent from the map fall back to the identity (f=1, u=0); this is an
approximation for minor constituents, not an error.

References:
- Schureman, P. (1958) "Manual of Harmonic Analysis and Prediction of Tides",
  node factor formulas and Table 2
"""
import logging
from typing import Callable, Dict, Iterable, NamedTuple, Optional, Tuple

import numpy as np

from .constituents import normalize_constituent_name
from .models import NodalFactors

logger = logging.getLogger(__name__)

# Obliquity of the ecliptic (omega) and inclination of the lunar orbit to the
# ecliptic (i), Schureman's adopted values in degrees
OBLIQUITY = 23.452
LUNAR_INCLINATION = 5.145


class LunarOrbit(NamedTuple):
    """Derived lunar orbit quantities for one node longitude, all in radians."""
    I: object  # inclination of the lunar orbit to the equator
    nu: object  # right ascension of the lunar intersection
    xi: object  # longitude in the lunar orbit of the lunar intersection
    nu_p: object  # nu' (K1)
    two_nu_pp: object  # 2nu'' (K2)
    P: object  # p - xi, None without a perigee longitude


def lunar_orbit(node, perigee=None) -> LunarOrbit:
    """
    Compute Schureman's I, nu, xi, nu' and nu'' from the node longitude.

    Args:
        node: Longitude of the lunar ascending node N (degrees), scalar or array
        perigee: Longitude of the lunar perigee p (degrees), optional

    Returns:
        LunarOrbit with angles in radians
    """
    N = np.radians(node)
    w = np.radians(OBLIQUITY)
    i = np.radians(LUNAR_INCLINATION)

    # Schureman: cos(I) = cos(w) cos(i) - sin(w) sin(i) cos(N)
    I = np.arccos(np.cos(w) * np.cos(i) - np.sin(w) * np.sin(i) * np.cos(N))

    # Napier's analogies on the lunar intersection triangle:
    # tan((N - xi + nu)/2) = 1.01883 tan(N/2)
    # tan((N - xi - nu)/2) = 0.64412 tan(N/2)
    half_N = 0.5 * N
    e1 = np.arctan(np.cos(0.5 * (w - i)) / np.cos(0.5 * (w + i)) * np.tan(half_N)) - half_N
    e2 = np.arctan(np.sin(0.5 * (w - i)) / np.sin(0.5 * (w + i)) * np.tan(half_N)) - half_N
    nu = e1 - e2
    xi = -(e1 + e2)
    xi = np.arctan2(np.sin(xi), np.cos(xi))

    # Schureman: tan(nu') = sin(2I) sin(nu) / (sin(2I) cos(nu) + 0.3347)
    sin2I = np.sin(2 * I)
    nu_p = np.arctan2(sin2I * np.sin(nu), sin2I * np.cos(nu) + 0.3347)

    # Schureman: tan(2nu'') = sin^2(I) sin(2nu) / (sin^2(I) cos(2nu) + 0.0727)
    sin2_I = np.sin(I) ** 2
    two_nu_pp = np.arctan2(sin2_I * np.sin(2 * nu), sin2_I * np.cos(2 * nu) + 0.0727)

    P = None if perigee is None else np.radians(perigee) - xi
    return LunarOrbit(I=I, nu=nu, xi=xi, nu_p=nu_p, two_nu_pp=two_nu_pp, P=P)


# -- Base formulas: LunarOrbit -> (f, u in radians) --

def _m2(o: LunarOrbit):
    # Schureman: f = cos^4(I/2) / 0.9154, u = 2xi - 2nu
    return np.cos(0.5 * o.I) ** 4 / 0.9154, 2 * o.xi - 2 * o.nu


def _o1(o: LunarOrbit):
    # Schureman: f = sin(I) cos^2(I/2) / 0.3800, u = 2xi - nu
    return np.sin(o.I) * np.cos(0.5 * o.I) ** 2 / 0.3800, 2 * o.xi - o.nu


def _k1(o: LunarOrbit):
    # Schureman Eq 227
    sin2I = np.sin(2 * o.I)
    f = np.sqrt(0.8965 * sin2I**2 + 0.6001 * sin2I * np.cos(o.nu) + 0.1006)
    return f, -o.nu_p


def _k2(o: LunarOrbit):
    # Schureman: lunisolar semidiurnal
    sin2_I = np.sin(o.I) ** 2
    f = np.sqrt(19.0444 * sin2_I**2 + 2.7702 * sin2_I * np.cos(2 * o.nu) + 0.0981)
    return f, -o.two_nu_pp


def _j1(o: LunarOrbit):
    # Schureman: f = sin(2I) / 0.7214, u = -nu
    return np.sin(2 * o.I) / 0.7214, -o.nu


def _oo1(o: LunarOrbit):
    # Schureman: f = sin(I) sin^2(I/2) / 0.0164, u = -2xi - nu
    return np.sin(o.I) * np.sin(0.5 * o.I) ** 2 / 0.0164, -2 * o.xi - o.nu


def _mf(o: LunarOrbit):
    # Schureman: f = sin^2(I) / 0.1578, u = -2xi
    return np.sin(o.I) ** 2 / 0.1578, -2 * o.xi


def _mm(o: LunarOrbit):
    # Schureman: f = (2/3 - sin^2(I)) / 0.5021, u = 0
    return (2.0 / 3.0 - np.sin(o.I) ** 2) / 0.5021, 0.0 * o.I


def _m3(o: LunarOrbit):
    # Schureman: f = cos^6(I/2) / 0.8758, u = 3xi - 3nu
    return np.cos(0.5 * o.I) ** 6 / 0.8758, 3 * o.xi - 3 * o.nu


def _m1(o: LunarOrbit):
    # Schureman: f = f(O1) / Qa, u = -nu + Q
    f_o1, _ = _o1(o)
    if o.P is None:
        return f_o1, -o.nu
    cosI = np.cos(o.I)
    cos2_half = np.cos(0.5 * o.I) ** 2
    inv_qa = np.sqrt(0.25 + 1.5 * cosI / cos2_half * np.cos(2 * o.P)
                     + 2.25 * cosI**2 / cos2_half**2)
    Q = np.arctan2((5 * cosI - 1) * np.sin(o.P), (7 * cosI + 1) * np.cos(o.P))
    return f_o1 * inv_qa, -o.nu + Q


def _l2(o: LunarOrbit):
    # Schureman: f = f(M2) / Ra, u = 2xi - 2nu - R
    f_m2, u_m2 = _m2(o)
    if o.P is None:
        return f_m2, u_m2
    tan2_half = np.tan(0.5 * o.I) ** 2
    inv_ra = np.sqrt(1 - 12 * tan2_half * np.cos(2 * o.P) + 36 * tan2_half**2)
    R = np.arctan2(np.sin(2 * o.P), 1.0 / (6 * tan2_half) - np.cos(2 * o.P))
    return f_m2 * inv_ra, u_m2 - R


BASE_FORMULAS: Dict[str, Callable[[LunarOrbit], Tuple[object, object]]] = {
    'M2': _m2,
    'O1': _o1,
    'K1': _k1,
    'K2': _k2,
    'J1': _j1,
    'OO1': _oo1,
    'MF': _mf,
    'MM': _mm,
    'M3': _m3,
    'M1': _m1,
    'L2': _l2,
}

# Catalog symbol -> ((base formula, exponent), ...)
NODAL_TERMS: Dict[str, Tuple[Tuple[str, int], ...]] = {
    # Semidiurnal, lunar
    'M2': (('M2', 1),),
    'N2': (('M2', 1),),
    '2N2': (('M2', 1),),
    'MU2': (('M2', 1),),
    'NU2': (('M2', 1),),
    'LDA2': (('M2', 1),),
    'L2': (('L2', 1),),
    'K2': (('K2', 1),),
    # Diurnal, lunar
    'K1': (('K1', 1),),
    'O1': (('O1', 1),),
    'Q1': (('O1', 1),),
    '2Q1': (('O1', 1),),
    'RHO1': (('O1', 1),),
    'J1': (('J1', 1),),
    'OO1': (('OO1', 1),),
    'M1': (('M1', 1),),
    # Long-period
    'MF': (('MF', 1),),
    'MM': (('MM', 1),),
    'MSM': (('MM', 1),),
    'MSF': (('M2', -1),),
    # Shallow-water and compound
    'M3': (('M3', 1),),
    'M4': (('M2', 2),),
    'M6': (('M2', 3),),
    'M8': (('M2', 4),),
    'MS4': (('M2', 1),),
    'MN4': (('M2', 2),),
    'MK3': (('M2', 1), ('K1', 1)),
    '2MK3': (('M2', 2), ('K1', -1)),
    'MO3': (('M2', 1), ('O1', 1)),
    '2SM2': (('M2', -1),),
    # Solar: no nodal modulation
    'S2': (),
    'T2': (),
    'R2': (),
    'P1': (),
    'S1': (),
    'SA': (),
    'SSA': (),
    'S4': (),
    'S6': (),
}


def _wrap_degrees(u):
    """Wrap a phase correction into (-180, 180]."""
    wrapped = 180.0 - np.mod(180.0 - u, 360.0)
    return float(wrapped) if np.ndim(wrapped) == 0 else wrapped


def _factors_from_orbit(symbol: str, orbit: Optional[LunarOrbit]) -> NodalFactors:
    terms = NODAL_TERMS.get(symbol)
    if terms is None:
        logger.debug("No nodal correction modeled for %s; using f=1, u=0", symbol)
        return NodalFactors(f=1.0, u=0.0)
    if not terms:
        return NodalFactors(f=1.0, u=0.0)

    f = 1.0
    u = 0.0
    for base, power in terms:
        base_f, base_u = BASE_FORMULAS[base](orbit)
        f = f * base_f ** abs(power)
        u = u + power * base_u

    f = float(f) if np.ndim(f) == 0 else f
    return NodalFactors(f=f, u=_wrap_degrees(np.degrees(u)))


def nodal_factors(symbol: str, node, perigee=None) -> NodalFactors:
    """
    Get the nodal correction for one constituent.

    Args:
        symbol: Constituent symbol (any supported spelling)
        node: Longitude of the lunar ascending node N in degrees (scalar or array)
        perigee: Longitude of the lunar perigee p in degrees. Only M1 and L2
            use it; without it their perigee terms are left out.

    Returns:
        NodalFactors with f (dimensionless) and u (degrees, in (-180, 180])
    """
    key = normalize_constituent_name(symbol)
    orbit = lunar_orbit(node, perigee) if NODAL_TERMS.get(key) else None
    return _factors_from_orbit(key, orbit)


def nodal_table(symbols: Iterable[str], node, perigee=None) -> Dict[str, NodalFactors]:
    """
    Get nodal corrections for several constituents at once.

    The lunar orbit quantities are computed a single time and shared by every
    symbol. Keys of the returned dict are the symbols exactly as given.
    """
    orbit = lunar_orbit(node, perigee)
    return {
        symbol: _factors_from_orbit(normalize_constituent_name(symbol), orbit)
        for symbol in symbols
    }
