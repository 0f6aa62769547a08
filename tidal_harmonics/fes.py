"""
FES2022 global tide atlas.

Builds harmonic stations for any ocean location from the FES2022 (Finite
Element Solution) atlas, so predictions are not limited to stations with
published harmonic constants.

The atlas is one NetCDF file per constituent, ``<constituent>_fes2022.nc``,
in an ``ocean_tide_extrapolated`` directory. Grids carry either
``amplitude``/``phase`` or ``Re``/``Im`` variables, with amplitudes in
centimeters. Values are sampled at the nearest grid point.

Accuracy expectations:
- Timing: ±30-60 minutes (typical for global models)
- Tidal range: ±0.3m

References:
- FES2022 model: LEGOS/CNES global ocean tide atlas
"""
import logging
import os
from typing import Dict, List, Optional, Tuple

import numpy as np
from netCDF4 import Dataset

from .constituents import normalize_constituent_name
from .models import Station, StationConstituent

logger = logging.getLogger(__name__)


class FES2022Atlas:
    """
    Reads FES2022 constituent grids and turns a lat/lon into a Station.
    """

    # Constituents read from the atlas (ordered by importance)
    CONSTITUENTS_TO_USE = [
        # Primary constituents (largest amplitudes)
        'm2', 's2', 'n2', 'k1', 'o1',
        # Secondary semidiurnal
        'k2', 'l2', 't2', '2n2', 'mu2', 'nu2',
        # Secondary diurnal
        'p1', 'q1', 'j1', 'oo1',
        # Shallow water overtides (important for coastal areas)
        'm4', 'ms4', 'mn4', 'm6', 'm3',
        # Long period constituents (seasonal/monthly)
        'mf', 'mm', 'ssa', 'sa',
    ]

    # Amplitudes below this (meters) are left out of atlas stations
    MIN_AMPLITUDE = 0.001

    def __init__(self, data_path: str = './'):
        """
        Args:
            data_path: Path to directory containing 'ocean_tide_extrapolated' folder

        Raises:
            FileNotFoundError: If the atlas directory does not exist
        """
        self.data_path = data_path
        self.ocean_path = os.path.join(data_path, 'ocean_tide_extrapolated')

        # Opened NetCDF datasets and their grids, by constituent
        self._datasets: Dict[str, Dataset] = {}
        self._grids: Dict[str, Dict] = {}

        if not os.path.exists(self.ocean_path):
            raise FileNotFoundError(f"Ocean tide data directory not found: {self.ocean_path}")

    def _get_dataset(self, constituent: str) -> Optional[Dataset]:
        """Load and cache NetCDF dataset for a constituent."""
        if constituent in self._datasets:
            return self._datasets[constituent]

        ocean_file = os.path.join(self.ocean_path, f"{constituent}_fes2022.nc")
        if os.path.exists(ocean_file):
            try:
                ds = Dataset(ocean_file, 'r')
            except (OSError, RuntimeError):
                logger.warning("Could not open FES2022 file %s", ocean_file)
                return None
            self._datasets[constituent] = ds
            return ds

        return None

    def _get_grid_info(self, constituent: str, dataset: Dataset) -> Optional[Dict]:
        """Extract (and cache) the lat/lon axes of a dataset."""
        if constituent in self._grids:
            return self._grids[constituent]

        if 'lat' not in dataset.variables or 'lon' not in dataset.variables:
            return None

        lats = np.array(dataset.variables['lat'][:])
        lons = np.array(dataset.variables['lon'][:])
        grid = {
            'lats': lats,
            'lons': lons,
            'lon_min': float(np.min(lons)),
            'lon_max': float(np.max(lons)),
        }
        self._grids[constituent] = grid
        return grid

    def _sample(self, constituent: str, dataset: Dataset, lat: float, lon: float) -> Tuple[float, float]:
        """
        Nearest-neighbour amplitude and phase at a location.

        Returns:
            Tuple of (amplitude, phase) in meters and degrees; (0, 0) over land
            or where the grid has no data
        """
        grid = self._get_grid_info(constituent, dataset)
        if not grid:
            return 0.0, 0.0

        # Match the grid's longitude convention (0-360 or -180-180)
        if grid['lon_min'] >= 0 and grid['lon_max'] > 180:
            if lon < 0:
                lon += 360
        elif lon > 180:
            lon -= 360

        lats = grid['lats']
        lons = grid['lons']
        lat_idx = int(np.argmin(np.abs(lats - lat)))
        lon_idx = int(np.argmin(np.abs(lons - lon)))

        if 'amplitude' in dataset.variables and 'phase' in dataset.variables:
            amp_var = dataset.variables['amplitude']
            phase_var = dataset.variables['phase']
            if len(amp_var.shape) == 2:
                amplitude = amp_var[lat_idx, lon_idx]
                phase = phase_var[lat_idx, lon_idx]
            else:
                idx = lat_idx * len(lons) + lon_idx
                amplitude = amp_var[idx]
                phase = phase_var[idx]
        elif 'Re' in dataset.variables and 'Im' in dataset.variables:
            re_var = dataset.variables['Re']
            im_var = dataset.variables['Im']
            if len(re_var.shape) == 2:
                re = re_var[lat_idx, lon_idx]
                im = im_var[lat_idx, lon_idx]
            else:
                idx = lat_idx * len(lons) + lon_idx
                re = re_var[idx]
                im = im_var[idx]
            if np.ma.is_masked(re) or np.ma.is_masked(im):
                return 0.0, 0.0
            amplitude = np.hypot(float(re), float(im))
            phase = np.degrees(np.arctan2(float(im), float(re)))
        else:
            return 0.0, 0.0

        # Land cells are masked or NaN
        if np.ma.is_masked(amplitude) or np.ma.is_masked(phase):
            return 0.0, 0.0
        amplitude = float(amplitude)
        phase = float(phase)
        if np.isnan(amplitude) or np.isnan(phase) or amplitude < 0:
            return 0.0, 0.0

        # FES2022 stores amplitude in centimeters
        return amplitude / 100.0, phase % 360.0

    def get_constituent_data(self, constituent: str, lat: float, lon: float) -> Tuple[float, float]:
        """
        Get amplitude and phase for a specific tide constituent at given coordinates.

        Args:
            constituent: Tide constituent name (e.g., 'm2', 'k1', 'o1')
            lat: Latitude in degrees
            lon: Longitude in degrees

        Returns:
            Tuple of (amplitude in meters, phase in degrees). (0, 0) when the
            atlas has no file for the constituent.
        """
        constituent = constituent.lower()
        dataset = self._get_dataset(constituent)
        if dataset is None:
            return 0.0, 0.0
        return self._sample(constituent, dataset, lat, lon)

    def station_at(self, lat: float, lon: float, timezone: Optional[str] = None) -> Station:
        """
        Build a harmonic station for an ocean location.

        Heights predicted for the station are relative to mean sea level.

        Raises:
            ValueError: If the atlas has no tide data at the location
        """
        constituents: List[StationConstituent] = []
        for name in self.CONSTITUENTS_TO_USE:
            amplitude, phase = self.get_constituent_data(name, lat, lon)
            if amplitude > self.MIN_AMPLITUDE:
                constituents.append(StationConstituent(
                    symbol=normalize_constituent_name(name),
                    amplitude=amplitude,
                    phase=phase,
                ))

        if not constituents:
            raise ValueError(f"No tide data available for location ({lat}, {lon})")

        logger.info("FES2022 station at (%.4f, %.4f) with %d constituents", lat, lon, len(constituents))
        return Station(
            id=f"fes2022:{lat:.4f},{lon:.4f}",
            name=f"FES2022 ({lat:.4f}, {lon:.4f})",
            lat=lat,
            lon=lon,
            datum='MSL',
            constituents=tuple(constituents),
            timezone=timezone,
        )

    def close(self):
        for dataset in self._datasets.values():
            dataset.close()
        self._datasets.clear()
        self._grids.clear()
