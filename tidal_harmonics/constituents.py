"""
Tidal constituent catalog.

Defines the NOS standard 37 constituents plus S1 and M3, keyed by their
canonical upper-case symbol. Doodson numbers are the coefficients of the
astronomical angles (T, s, h, p, N, p') with T the hour angle of the mean
sun, so that each constituent's speed is the dot product of its Doodson
numbers with the angle rates.

Constituent speeds are from Schureman (1958) Special Publication No. 98,
Table 2. Constant phase offsets follow the same table.
"""
from typing import Any, Dict, Iterable, Mapping, Optional

from .models import ConstituentDefinition, ConstituentFamily

_SD = ConstituentFamily.SEMIDIURNAL
_D = ConstituentFamily.DIURNAL
_LP = ConstituentFamily.LONG_PERIOD
_SW = ConstituentFamily.SHALLOW_WATER

# symbol: (name, family, doodson (T, s, h, p, N, p'), speed deg/h, phase offset deg)
_CATALOG_TABLE = {
    # -- Semidiurnal --
    'M2':   ('Principal lunar semidiurnal', _SD, (2, -2, 2, 0, 0, 0), 28.9841042, 0.0),
    'S2':   ('Principal solar semidiurnal', _SD, (2, 0, 0, 0, 0, 0), 30.0000000, 0.0),
    'N2':   ('Larger lunar elliptic semidiurnal', _SD, (2, -3, 2, 1, 0, 0), 28.4397295, 0.0),
    'K2':   ('Lunisolar semidiurnal', _SD, (2, 0, 2, 0, 0, 0), 30.0821373, 0.0),
    '2N2':  ('Lunar elliptic semidiurnal second-order', _SD, (2, -4, 2, 2, 0, 0), 27.8953548, 0.0),
    'MU2':  ('Variational', _SD, (2, -4, 4, 0, 0, 0), 27.9682084, 0.0),
    'NU2':  ('Larger lunar evectional', _SD, (2, -3, 4, -1, 0, 0), 28.5125831, 0.0),
    'L2':   ('Smaller lunar elliptic semidiurnal', _SD, (2, -1, 2, -1, 0, 0), 29.5284789, 180.0),
    'T2':   ('Larger solar elliptic', _SD, (2, 0, -1, 0, 0, 1), 29.9589333, 0.0),
    'R2':   ('Smaller solar elliptic', _SD, (2, 0, 1, 0, 0, -1), 30.0410667, 180.0),
    'LDA2': ('Smaller lunar evectional', _SD, (2, -1, 0, 1, 0, 0), 29.4556253, 180.0),
    # -- Diurnal --
    'K1':   ('Lunisolar diurnal', _D, (1, 0, 1, 0, 0, 0), 15.0410686, -90.0),
    'O1':   ('Principal lunar diurnal', _D, (1, -2, 1, 0, 0, 0), 13.9430356, 90.0),
    'P1':   ('Principal solar diurnal', _D, (1, 0, -1, 0, 0, 0), 14.9589314, 90.0),
    'Q1':   ('Larger lunar elliptic diurnal', _D, (1, -3, 1, 1, 0, 0), 13.3986609, 90.0),
    'J1':   ('Smaller lunar elliptic diurnal', _D, (1, 1, 1, -1, 0, 0), 15.5854433, -90.0),
    'M1':   ('Smaller lunar elliptic diurnal', _D, (1, -1, 1, 1, 0, 0), 14.4966939, -90.0),
    'OO1':  ('Lunar diurnal', _D, (1, 2, 1, 0, 0, 0), 16.1391017, -90.0),
    '2Q1':  ('Larger elliptic diurnal', _D, (1, -4, 1, 2, 0, 0), 12.8542862, 90.0),
    'RHO1': ('Larger lunar evectional diurnal', _D, (1, -3, 3, -1, 0, 0), 13.4715145, 90.0),
    'S1':   ('Solar diurnal', _D, (1, 0, 0, 0, 0, 0), 15.0000000, 180.0),
    # -- Long-period --
    'MF':   ('Lunisolar fortnightly', _LP, (0, 2, 0, 0, 0, 0), 1.0980331, 0.0),
    'MM':   ('Lunar monthly', _LP, (0, 1, 0, -1, 0, 0), 0.5443747, 0.0),
    'SSA':  ('Solar semiannual', _LP, (0, 0, 2, 0, 0, 0), 0.0821373, 0.0),
    'SA':   ('Solar annual', _LP, (0, 0, 1, 0, 0, 0), 0.0410686, 0.0),
    'MSM':  ('Lunisolar monthly', _LP, (0, 1, -2, 1, 0, 0), 0.4715211, 0.0),
    'MSF':  ('Lunisolar synodic fortnightly', _LP, (0, 2, -2, 0, 0, 0), 1.0158958, 0.0),
    # -- Shallow-water / overtides --
    'M4':   ('Shallow water overtide of principal lunar', _SW, (4, -4, 4, 0, 0, 0), 57.9682084, 0.0),
    'M6':   ('Shallow water overtide of principal lunar', _SW, (6, -6, 6, 0, 0, 0), 86.9523127, 0.0),
    'M8':   ('Shallow water eighth diurnal', _SW, (8, -8, 8, 0, 0, 0), 115.9364169, 0.0),
    'MS4':  ('Shallow water quarter diurnal', _SW, (4, -2, 2, 0, 0, 0), 58.9841042, 0.0),
    'MN4':  ('Shallow water quarter diurnal', _SW, (4, -5, 4, 1, 0, 0), 57.4238337, 0.0),
    'MK3':  ('Shallow water terdiurnal', _SW, (3, -2, 3, 0, 0, 0), 44.0251729, -90.0),
    'S4':   ('Shallow water overtide of principal solar', _SW, (4, 0, 0, 0, 0, 0), 60.0000000, 0.0),
    'S6':   ('Shallow water overtide of principal solar', _SW, (6, 0, 0, 0, 0, 0), 90.0000000, 0.0),
    '2MK3': ('Shallow water terdiurnal', _SW, (3, -4, 3, 0, 0, 0), 42.9271398, 90.0),
    '2SM2': ('Shallow water semidiurnal', _SW, (2, 2, -2, 0, 0, 0), 31.0158958, 0.0),
    'MO3':  ('Lunar terdiurnal', _SW, (3, -4, 3, 0, 0, 0), 42.9271398, 90.0),
    'M3':   ('Lunar terdiurnal', _SW, (3, -3, 3, 0, 0, 0), 43.4761563, 180.0),
}

# Alternate spellings seen in station records and the CO-OPS harcon API
CONSTITUENT_ALIASES: Dict[str, str] = {
    'LAM2': 'LDA2',
    'LAMBDA2': 'LDA2',
    'RHO': 'RHO1',
    'MSQM': 'MSF',
}


def normalize_constituent_name(name: str) -> str:
    """
    Normalize a constituent symbol to the catalog convention.

    Args:
        name: Symbol as found in a station record ('Mf', 'lam2', ' M2 ')

    Returns:
        Canonical upper-case symbol ('MF', 'LDA2', 'M2'). Unknown names are
        returned upper-cased.
    """
    cleaned = name.strip().upper()
    return CONSTITUENT_ALIASES.get(cleaned, cleaned)


def _definition(symbol: str, name: str, family: ConstituentFamily, doodson, speed: float,
                phase_offset: float = 0.0) -> ConstituentDefinition:
    return ConstituentDefinition(
        symbol=symbol,
        name=name,
        family=ConstituentFamily(family),
        doodson=tuple(int(d) for d in doodson),
        speed=float(speed),
        period=360.0 / float(speed),
        phase_offset=float(phase_offset),
    )


CONSTITUENTS: Dict[str, ConstituentDefinition] = {
    symbol: _definition(symbol, *row)
    for symbol, row in _CATALOG_TABLE.items()
}
"""Default constituent catalog keyed by canonical symbol."""

CONSTITUENT_SPEEDS: Dict[str, float] = {
    symbol: definition.speed for symbol, definition in CONSTITUENTS.items()
}
"""Angular speeds (degrees/hour) of the catalog constituents."""


def get_constituent(
    symbol: str,
    catalog: Optional[Mapping[str, ConstituentDefinition]] = None,
) -> Optional[ConstituentDefinition]:
    """
    Look up a constituent definition by symbol.

    Args:
        symbol: Constituent symbol in any supported spelling
        catalog: Catalog to search (defaults to CONSTITUENTS)

    Returns:
        ConstituentDefinition, or None if the catalog does not know the symbol
    """
    catalog = CONSTITUENTS if catalog is None else catalog
    return catalog.get(normalize_constituent_name(symbol))


def build_catalog(records: Iterable[Mapping[str, Any]]) -> Dict[str, ConstituentDefinition]:
    """
    Build a catalog from external constituent records.

    Each record needs symbol, name, family, doodson (6 ints) and speed;
    period defaults to 360/speed and phase_offset to 0.

    Raises:
        ValueError: If a record is malformed
    """
    catalog = {}
    for record in records:
        try:
            symbol = normalize_constituent_name(record['symbol'])
            speed = float(record['speed'])
            catalog[symbol] = ConstituentDefinition(
                symbol=symbol,
                name=str(record['name']),
                family=ConstituentFamily(record['family']),
                doodson=tuple(int(d) for d in record['doodson']),
                speed=speed,
                period=float(record.get('period', 360.0 / speed)),
                phase_offset=float(record.get('phase_offset', 0.0)),
            )
        except KeyError as e:
            raise ValueError(f"Constituent record missing field {e}") from e
    return catalog
