"""
Exception and warning types raised by the tide prediction engine.
"""


class TideError(Exception):
    """Base class for tidal_harmonics errors."""


class StationNotFoundError(TideError, KeyError):
    """Raised when a station id is not present in a registry."""

    def __init__(self, station_id: str):
        super().__init__(station_id)
        self.station_id = station_id

    def __str__(self) -> str:
        return f"Station not found: {self.station_id}"


class DataIntegrityWarning(UserWarning):
    """
    A station record references something the constituent catalog does not
    know. The offending term is left out of the prediction.
    """


class ReducedConfidenceWarning(UserWarning):
    """
    The instant lies far outside the validity window of the mean-longitude
    polynomials, so predicted phases are less accurate.
    """
