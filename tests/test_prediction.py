"""
Unit tests for tide synthesis, series sampling and contributions
"""
import math
import threading
import warnings
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from tidal_harmonics import (
    get_constituent_contributions,
    predict_tide,
    predict_tide_series,
)
from tidal_harmonics.astronomy import astronomical_parameters
from tidal_harmonics.constituents import CONSTITUENTS
from tidal_harmonics.exceptions import DataIntegrityWarning, ReducedConfidenceWarning
from tidal_harmonics.extremes import find_extremes
from tidal_harmonics.models import ExtremeType, Station, StationConstituent
from tidal_harmonics.nodal import nodal_factors
from tidal_harmonics.prediction import (
    TideSynthesizer,
    lunar_phase,
    spring_neap_indicator,
    tidal_range,
)
from tests.stations import (
    SAN_FRANCISCO,
    THE_BATTERY,
    aligned_phase,
    single_constituent_station,
    station_from_record,
)

T0 = datetime(2024, 3, 10, 4, 0, tzinfo=timezone.utc)


@pytest.fixture
def synthesizer():
    return TideSynthesizer()


@pytest.fixture
def san_francisco():
    return station_from_record(SAN_FRANCISCO)


def _m2_factor(instant):
    angles = astronomical_parameters(instant)
    return nodal_factors('M2', angles.N, angles.p).f


class TestTideSynthesizer:
    """Tests for single-instant predictions."""

    def test_deterministic(self, synthesizer, san_francisco):
        """Same station and instant should give the same height."""
        t = datetime(2024, 7, 4, 15, 30)
        first = synthesizer.height(san_francisco, t)
        assert synthesizer.height(san_francisco, t) == first
        assert TideSynthesizer().height(san_francisco, t) == first

    def test_realistic_heights(self, synthesizer, san_francisco):
        """San Francisco heights should stay within a realistic range."""
        for hour in range(0, 72, 3):
            h = synthesizer.height(san_francisco, T0 + timedelta(hours=hour))
            assert -2.5 < h < 2.5

    def test_empty_station_is_mean_level(self, synthesizer):
        """A station without constituents should predict its mean level."""
        station = Station(id='x', name='x', lat=0, lon=0, datum='MSL', mean_level=1.25)
        assert synthesizer.height(station, T0) == 1.25

    def test_zero_amplitude_contributes_nothing(self, synthesizer):
        """A zero amplitude constituent should add nothing."""
        station = single_constituent_station('K1', amplitude=0.0, phase=123.0, mean_level=0.5)
        assert synthesizer.height(station, T0) == pytest.approx(0.5)

    def test_mean_level_offsets_prediction(self, synthesizer, san_francisco):
        """Mean level should offset every prediction."""
        raised = replace(san_francisco, mean_level=2.0)
        t = T0 + timedelta(hours=5)
        assert synthesizer.height(raised, t) == pytest.approx(synthesizer.height(san_francisco, t) + 2.0)

    def test_naive_and_aware_agree(self, synthesizer, san_francisco):
        """Naive datetimes should be treated as UTC."""
        naive = datetime(2024, 3, 10, 4, 0)
        assert synthesizer.height(san_francisco, naive) == synthesizer.height(san_francisco, T0)

    def test_bounded_by_node_corrected_amplitudes(self, synthesizer, san_francisco):
        """|h - Z0| never exceeds the sum of f * A."""
        for hour in range(0, 24 * 15, 7):
            t = T0 + timedelta(hours=hour)
            bound = sum(c.amplitude for c in synthesizer.contributions(san_francisco, t))
            h = synthesizer.height(san_francisco, t)
            assert abs(h - san_francisco.mean_level) <= bound + 1e-9

    def test_constituent_names_are_normalized(self, synthesizer):
        """Constituent spelling should not change the prediction."""
        lower = Station(id='a', name='a', lat=0, lon=0, datum='MSL',
                        constituents=(StationConstituent('mf', 0.2, 40.0),))
        upper = Station(id='b', name='b', lat=0, lon=0, datum='MSL',
                        constituents=(StationConstituent('MF', 0.2, 40.0),))
        assert synthesizer.height(lower, T0) == synthesizer.height(upper, T0)


class TestSingleConstituentScenarios:
    """Predictions for stations with one or two constituents."""

    def test_m2_peaks_when_argument_is_zero(self, synthesizer):
        """M2 should peak at f when its argument is zero."""
        station = single_constituent_station('M2', aligned_at=T0)
        assert synthesizer.height(station, T0) == pytest.approx(_m2_factor(T0), abs=1e-9)

    def test_m2_low_half_a_period_later(self, synthesizer):
        """M2 should be at -f half a period later."""
        station = single_constituent_station('M2', aligned_at=T0)
        half_period = timedelta(hours=CONSTITUENTS['M2'].period / 2)
        assert half_period.total_seconds() / 3600 == pytest.approx(6.2103, abs=1e-4)
        assert synthesizer.height(station, T0 + half_period) == pytest.approx(-_m2_factor(T0), abs=1e-4)

    def test_m2_extremes(self, synthesizer):
        """M2 extremes should be found at the expected times and heights."""
        station = single_constituent_station('M2', aligned_at=T0)
        f = _m2_factor(T0)
        series = synthesizer.predict_series(station, T0 - timedelta(hours=1), T0 + timedelta(hours=13), 6)
        extremes = find_extremes(series)

        assert [e.type for e in extremes] == [ExtremeType.HIGH, ExtremeType.LOW, ExtremeType.HIGH]
        assert abs((extremes[0].time - T0).total_seconds()) <= 60
        assert extremes[0].height == pytest.approx(f, abs=1e-4)

        expected_low = T0 + timedelta(hours=CONSTITUENTS['M2'].period / 2)
        assert abs((extremes[1].time - expected_low).total_seconds()) <= 60
        assert extremes[1].height == pytest.approx(-f, abs=1e-4)

    def test_s2_period_is_exactly_12_hours(self, synthesizer):
        """S2 should repeat exactly every 12 hours."""
        station = single_constituent_station('S2', amplitude=0.8, phase=77.0)
        for hour in (0, 5, 11):
            t = T0 + timedelta(hours=hour, minutes=17)
            assert synthesizer.height(station, t) == pytest.approx(
                synthesizer.height(station, t + timedelta(hours=12)), abs=1e-9)

    def test_m2_periodicity(self, synthesizer):
        """M2 should repeat after one period."""
        station = single_constituent_station('M2', amplitude=1.0, phase=200.0)
        period = timedelta(hours=CONSTITUENTS['M2'].period)
        for minutes in (0, 95, 400):
            t = T0 + timedelta(minutes=minutes)
            assert synthesizer.height(station, t) == pytest.approx(
                synthesizer.height(station, t + period), abs=1e-4)

    def test_m2_s2_spring_neap_beat(self, synthesizer):
        """M2 + S2 in phase at T0: spring at T0, neap half a beat later, spring again after a beat."""
        station = Station(
            id='beat', name='M2+S2', lat=0, lon=0, datum='MSL',
            constituents=(
                StationConstituent('M2', 1.0, aligned_phase('M2', T0)),
                StationConstituent('S2', 1.0, aligned_phase('S2', T0)),
            ),
        )
        f = _m2_factor(T0)
        beat_hours = 360.0 / (CONSTITUENTS['S2'].speed - CONSTITUENTS['M2'].speed)
        assert beat_hours == pytest.approx(354.37, abs=0.01)

        assert synthesizer.height(station, T0) == pytest.approx(f + 1.0, abs=1e-9)

        def window_max(centre):
            times = [centre + timedelta(minutes=m) for m in range(-390, 391)]
            return float(np.max(synthesizer.heights(station, times)))

        neap = T0 + timedelta(hours=beat_hours / 2)
        spring = T0 + timedelta(hours=beat_hours)
        assert window_max(neap) < 0.2
        assert window_max(spring) > 1.9

    def test_beat_period_from_extrema_spacing(self, synthesizer):
        """Highest high waters of consecutive spring tides are one M2/S2 beat apart."""
        station = Station(
            id='beat', name='M2+S2', lat=0, lon=0, datum='MSL',
            constituents=(
                StationConstituent('M2', 1.0, aligned_phase('M2', T0)),
                StationConstituent('S2', 0.3, aligned_phase('S2', T0)),
            ),
        )
        beat = timedelta(hours=360.0 / (CONSTITUENTS['S2'].speed - CONSTITUENTS['M2'].speed))
        week = timedelta(days=7)
        series = synthesizer.predict_series(station, T0 - week, T0 + beat + week, 6)
        highs = [e for e in find_extremes(series) if e.type == ExtremeType.HIGH]

        def highest_high(centre):
            return max((e for e in highs if abs(e.time - centre) < week), key=lambda e: e.height)

        first = highest_high(T0)
        second = highest_high(T0 + beat)
        assert first.height == pytest.approx(_m2_factor(T0) + 0.3, abs=0.01)
        spacing_hours = (second.time - first.time).total_seconds() / 3600
        assert spacing_hours == pytest.approx(354.37, rel=0.05)


class TestBatchEvaluation:
    """Tests for the vectorized path."""

    def test_heights_match_height(self, synthesizer, san_francisco):
        """Batch heights should match single predictions."""
        times = [T0 + timedelta(minutes=37 * i) for i in range(50)]
        batch = synthesizer.heights(san_francisco, times)
        assert batch.shape == (50,)
        for t, h in zip(times, batch):
            assert h == pytest.approx(synthesizer.height(san_francisco, t), abs=1e-9)

    def test_empty_batch(self, synthesizer, san_francisco):
        """An empty batch should give an empty array."""
        assert synthesizer.heights(san_francisco, []).shape == (0,)

    def test_datetime64_batch(self, synthesizer, san_francisco):
        """datetime64 arrays should be accepted."""
        times = np.array(['2024-03-10T04:00:00', '2024-03-10T05:00:00'], dtype='datetime64[s]')
        batch = synthesizer.heights(san_francisco, times)
        assert batch[0] == pytest.approx(synthesizer.height(san_francisco, T0), abs=1e-9)


class TestNodalBuckets:
    """Tests for memoized nodal factors."""

    def test_bucketed_close_to_exact(self, san_francisco):
        """Daily nodal buckets should stay close to exact factors."""
        exact = TideSynthesizer(nodal_bucket_hours=0)
        bucketed = TideSynthesizer(nodal_bucket_hours=24)
        for hour in range(0, 96, 5):
            t = T0 + timedelta(hours=hour)
            assert bucketed.height(san_francisco, t) == pytest.approx(exact.height(san_francisco, t), abs=2e-3)

    def test_cache_hits_do_not_change_values(self, san_francisco):
        """Cached buckets should not change results."""
        bucketed = TideSynthesizer(nodal_bucket_hours=24)
        t = T0 + timedelta(hours=3)
        first = bucketed.height(san_francisco, t)
        bucketed.heights(san_francisco, [T0 + timedelta(hours=h) for h in range(48)])
        assert bucketed.height(san_francisco, t) == first
        assert TideSynthesizer(nodal_bucket_hours=24).height(san_francisco, t) == first

    def test_batch_uses_same_buckets(self, san_francisco):
        """Batch and single evaluation should share buckets."""
        bucketed = TideSynthesizer(nodal_bucket_hours=6)
        times = [T0 + timedelta(hours=h) for h in range(0, 30, 2)]
        batch = bucketed.heights(san_francisco, times)
        for t, h in zip(times, batch):
            assert h == pytest.approx(bucketed.height(san_francisco, t), abs=1e-9)

    @pytest.mark.parametrize("hours", [-1.0, math.inf, math.nan])
    def test_invalid_bucket_raises(self, hours):
        """Invalid bucket widths should raise ValueError."""
        with pytest.raises(ValueError):
            TideSynthesizer(nodal_bucket_hours=hours)


class TestDataWarnings:
    """Tests for non-fatal data problems."""

    def test_unknown_constituent_excluded_with_warning(self, synthesizer):
        """Unknown constituents should be left out with a warning."""
        m2 = StationConstituent('M2', 1.0, 45.0)
        clean = Station(id='c', name='c', lat=0, lon=0, datum='MSL', constituents=(m2,))
        dirty = Station(id='d', name='d', lat=0, lon=0, datum='MSL',
                        constituents=(m2, StationConstituent('XX7', 5.0, 0.0)))

        with pytest.warns(DataIntegrityWarning, match="XX7"):
            h = synthesizer.height(dirty, T0)
        assert h == synthesizer.height(clean, T0)

    def test_unknown_constituent_left_out_of_contributions(self, synthesizer):
        """Unknown constituents should not appear in contributions."""
        dirty = Station(id='d', name='d', lat=0, lon=0, datum='MSL',
                        constituents=(StationConstituent('M2', 1.0, 45.0),
                                      StationConstituent('XX7', 5.0, 0.0)))
        with pytest.warns(DataIntegrityWarning):
            contributions = synthesizer.contributions(dirty, T0)
        assert [c.symbol for c in contributions] == ['M2']

    @pytest.mark.parametrize("year", [1650, 2420])
    def test_far_dates_warn_but_predict(self, synthesizer, san_francisco, year):
        """Far dates should warn but still predict."""
        with pytest.warns(ReducedConfidenceWarning):
            h = synthesizer.height(san_francisco, datetime(year, 6, 1))
        assert math.isfinite(h)

    def test_no_warning_near_epoch(self, synthesizer, san_francisco):
        """Dates near the epoch should not warn."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            synthesizer.height(san_francisco, T0)


class TestContributions:
    """Tests for per-constituent decomposition."""

    def test_sum_equals_height_minus_mean_level(self, synthesizer):
        """Contributions should sum to height minus mean level."""
        battery = station_from_record(THE_BATTERY)
        for hour in range(0, 48, 5):
            t = T0 + timedelta(hours=hour)
            total = sum(c.value for c in synthesizer.contributions(battery, t))
            assert total == pytest.approx(synthesizer.height(battery, t) - battery.mean_level, abs=1e-9)

    def test_one_entry_per_constituent(self, synthesizer, san_francisco):
        """There should be one contribution per station constituent."""
        contributions = synthesizer.contributions(san_francisco, T0)
        assert [c.symbol for c in contributions] == [c.symbol for c in san_francisco.constituents]

    def test_fields(self, synthesizer, san_francisco):
        """Contribution fields should be consistent."""
        for c in synthesizer.contributions(san_francisco, T0):
            assert 0.0 <= c.phase < 360.0
            assert c.amplitude >= 0.0
            assert abs(c.value) <= c.amplitude + 1e-12
            assert c.value == pytest.approx(c.amplitude * math.cos(math.radians(c.phase)))

    def test_solar_amplitude_is_not_node_corrected(self, synthesizer):
        """Solar amplitudes should not be node corrected."""
        station = single_constituent_station('S2', amplitude=0.4, phase=10.0)
        assert synthesizer.contributions(station, T0)[0].amplitude == pytest.approx(0.4)


class TestTideSeries:
    """Tests for interval sampling."""

    def test_point_count_and_bounds(self, synthesizer, san_francisco):
        """A day at 6 minutes should give 240 points within bounds."""
        end = T0 + timedelta(days=1)
        points = synthesizer.predict_series(san_francisco, T0, end, 6).to_list()
        assert len(points) == 240
        assert points[0].time == T0
        assert all(T0 <= p.time < end for p in points)

    def test_times_strictly_increasing(self, synthesizer, san_francisco):
        """Sample times should be evenly spaced."""
        points = synthesizer.predict_series(san_francisco, T0, T0 + timedelta(hours=5), 7).to_list()
        for a, b in zip(points, points[1:]):
            assert b.time - a.time == timedelta(minutes=7)

    def test_partial_last_interval(self, synthesizer, san_francisco):
        """A partial last interval should still get a sample."""
        series = synthesizer.predict_series(san_francisco, T0, T0 + timedelta(minutes=10), 3)
        assert [p.time for p in series] == [T0 + timedelta(minutes=m) for m in (0, 3, 6, 9)]
        assert len(series) == 4

    def test_heights_match_single_predictions(self, synthesizer, san_francisco):
        """Series heights should match single predictions."""
        series = synthesizer.predict_series(san_francisco, T0, T0 + timedelta(hours=3), 30)
        for point in series:
            assert point.height == pytest.approx(synthesizer.height(san_francisco, point.time), abs=1e-9)
            assert point.height == pytest.approx(series.height_at(point.time), abs=1e-9)

    def test_spans_several_chunks(self, synthesizer, san_francisco):
        """Series longer than a chunk should be complete."""
        series = synthesizer.predict_series(san_francisco, T0, T0 + timedelta(days=2), 1)
        points = series.to_list()
        assert len(points) == 2880
        assert points[-1].time == T0 + timedelta(minutes=2879)

    def test_restartable(self, synthesizer, san_francisco):
        """Iterating twice should give the same points."""
        series = synthesizer.predict_series(san_francisco, T0, T0 + timedelta(hours=6), 15)
        assert list(series) == list(series)

    @pytest.mark.parametrize("end_offset", [timedelta(0), timedelta(hours=-3)])
    def test_empty_range(self, synthesizer, san_francisco, end_offset):
        """End at or before start should give an empty series."""
        series = synthesizer.predict_series(san_francisco, T0, T0 + end_offset, 6)
        assert series.to_list() == []
        assert len(series) == 0

    @pytest.mark.parametrize("interval", [0, -6, math.nan, math.inf])
    def test_invalid_interval_raises(self, synthesizer, san_francisco, interval):
        """Invalid intervals should raise ValueError."""
        with pytest.raises(ValueError):
            synthesizer.predict_series(san_francisco, T0, T0 + timedelta(hours=1), interval)

    def test_cancel_before_start(self, synthesizer, san_francisco):
        """A cancelled series should yield nothing."""
        event = threading.Event()
        event.set()
        series = synthesizer.predict_series(san_francisco, T0, T0 + timedelta(days=1), 6, event)
        assert series.to_list() == []

    def test_cancel_mid_iteration(self, synthesizer, san_francisco):
        """Cancelling mid-iteration should stop after the current point."""
        event = threading.Event()
        series = synthesizer.predict_series(san_francisco, T0, T0 + timedelta(days=1), 6, event)
        points = []
        for point in series:
            points.append(point)
            if len(points) == 10:
                event.set()
        assert len(points) == 10
        assert points[-1].time == T0 + timedelta(minutes=54)

    @pytest.mark.parametrize("start,end", [
        (datetime(2024, 3, 10, 4), T0 + timedelta(hours=1)),
        (T0, datetime(2024, 3, 10, 5)),
    ])
    def test_mixed_naive_and_aware_bounds(self, synthesizer, san_francisco, start, end):
        """Naive bounds are UTC, so they mix freely with aware ones."""
        series = synthesizer.predict_series(san_francisco, start, end, 15)
        assert len(series) == 4
        points = series.to_list()
        assert [p.time for p in points] == [T0 + timedelta(minutes=m) for m in (0, 15, 30, 45)]
        assert points[0].height == pytest.approx(synthesizer.height(san_francisco, T0), abs=1e-9)

    def test_local_time_bounds_are_converted_to_utc(self, synthesizer, san_francisco):
        """Bounds with a UTC offset give UTC sample times."""
        pacific = timezone(timedelta(hours=-8))
        start = datetime(2024, 3, 9, 20, 0, tzinfo=pacific)
        series = synthesizer.predict_series(san_francisco, start, start + timedelta(hours=2), 60)
        assert [p.time for p in series] == [T0, T0 + timedelta(hours=1)]
        assert series.start.tzinfo == timezone.utc

    def test_interval_below_timedelta_resolution_raises(self, synthesizer, san_francisco):
        """An interval that rounds to a zero timedelta is rejected up front."""
        with pytest.raises(ValueError, match="resolution"):
            synthesizer.predict_series(san_francisco, T0, T0 + timedelta(hours=1), 1e-9)


class TestFacade:
    """Tests for the package-level functions."""

    def test_predict_tide(self, san_francisco):
        """predict_tide should match the synthesizer."""
        assert predict_tide(san_francisco, T0) == TideSynthesizer().height(san_francisco, T0)

    def test_predict_tide_series_defaults_to_six_minutes(self, san_francisco):
        """predict_tide_series should default to 6 minutes."""
        series = predict_tide_series(san_francisco, T0, T0 + timedelta(hours=1))
        assert len(series.to_list()) == 10

    def test_get_constituent_contributions(self, san_francisco):
        """Facade contributions should sum to the predicted height."""
        contributions = get_constituent_contributions(san_francisco, T0)
        assert sum(c.value for c in contributions) == pytest.approx(predict_tide(san_francisco, T0), abs=1e-9)


class TestIndicators:
    """Tests for lunar phase, spring-neap indicator and tidal range."""

    NEW_MOON = datetime(2024, 1, 11, 11, 57)
    FIRST_QUARTER = datetime(2024, 1, 18, 3, 53)
    FULL_MOON = datetime(2024, 1, 25, 17, 54)

    def test_lunar_phase_range(self):
        """Lunar phase should be in [0, 1)."""
        for day in range(0, 60, 3):
            assert 0.0 <= lunar_phase(self.NEW_MOON + timedelta(days=day)) < 1.0

    def test_lunar_phase_at_new_and_full_moon(self):
        """Lunar phase should be near 0 at new moon and 0.5 at full moon."""
        phase = lunar_phase(self.NEW_MOON)
        assert min(phase, 1.0 - phase) < 0.04
        assert lunar_phase(self.FULL_MOON) == pytest.approx(0.5, abs=0.04)

    def test_spring_neap_indicator(self):
        """Indicator should be near 1 at syzygy and -1 at quadrature."""
        assert spring_neap_indicator(self.NEW_MOON) > 0.9
        assert spring_neap_indicator(self.FULL_MOON) > 0.9
        assert spring_neap_indicator(self.FIRST_QUARTER) < -0.9

    def test_tidal_range_m2_only(self):
        """M2-only range should be twice the node-corrected amplitude."""
        station = single_constituent_station('M2', amplitude=1.0, phase=30.0)
        result = tidal_range(station, T0)
        assert result['range'] == pytest.approx(2 * _m2_factor(T0), abs=0.01)
        assert result['high'] == pytest.approx(-result['low'], abs=0.01)

    def test_tidal_range_station(self, san_francisco):
        """San Francisco range should be realistic."""
        result = tidal_range(san_francisco, T0)
        assert result['high'] > result['low']
        assert result['range'] == pytest.approx(result['high'] - result['low'])
        assert 0.5 < result['range'] < 3.0
