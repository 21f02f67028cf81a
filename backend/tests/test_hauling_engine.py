"""
test_hauling_engine.py — Unit tests for HaulingCostModel and half-up rounding.

Tests cover:
  - Reference trip: 45 km at 20 / 30 km/h, 500/hr, 5 cu.m., with and without
    5 km of a 50 km route free
  - Half-up rounding of each output field (2.125 → 2.13, where round() gives 2.12)
  - Multi-segment routes
  - Default fallback config for projects with a distance only, priced at the
    standard or a resolved truck rate
  - Zero capacity / zero speed → ComputationError

All tests are pure unit tests; no database or external services required.
"""

import pytest

from dupa_estimator import config
from dupa_estimator.models.domain import HaulingConfig, Project, RouteSegment
from dupa_estimator.services.errors import ComputationError
from dupa_estimator.services.hauling_engine import (
    HaulingCostModel,
    hauling_config_for_project,
    needs_default_truck,
    round_half_up,
)


@pytest.fixture(scope="module")
def model():
    return HaulingCostModel()


def _config(segments, total=45.0, free=0.0, rate=500.0, capacity=5.0):
    return HaulingConfig(
        total_distance_km=total,
        free_hauling_distance_km=free,
        route_segments=[RouteSegment(distance_km=d, speed_unloaded_kmh=u, speed_loaded_kmh=l)
                        for d, u, l in segments],
        equipment_hourly_rate=rate,
        equipment_capacity_cum=capacity,
    )


# ===========================================================================
# Class 1: round_half_up
# ===========================================================================

class TestRoundHalfUp:

    @pytest.mark.parametrize("value, expected", [
        (0.375, 0.38),
        (2.125, 2.13),
        (4.375, 4.38),
        (1.0, 1.0),
        (0.004, 0.0),
        (0.005, 0.01),
    ])
    def test_two_decimals(self, value, expected):
        assert round_half_up(value) == expected

    def test_other_precision(self):
        assert round_half_up(12.5, decimals=0) == 13.0


# ===========================================================================
# Class 2: Trip cost model
# ===========================================================================

class TestHaulingCostModel:

    def test_reference_trip(self, model):
        """
        45 km at 20 km/h unloaded / 30 km/h loaded, 500/hr, 5 cu.m.:
            t_unloaded 2.25, t_loaded 1.5, delay 0.375 → 0.38, maneuver 0.25
            cycle 4.375 → 4.38, cost/trip 2187.5, cost/cu.m. 437.5
        """
        r = model.compute(_config([(45.0, 20.0, 30.0)]))
        assert r["chargeable_distance_km"] == 45.0
        assert r["time_unloaded_hr"] == 2.25
        assert r["time_loaded_hr"] == 1.5
        assert r["delay_allowance_hr"] == 0.38
        assert r["maneuver_allowance_hr"] == 0.25
        assert r["cycle_time_hr"] == 4.38
        assert r["cost_per_trip"] == 2187.5
        assert r["cost_per_cum"] == 437.5

    def test_reference_trip_with_free_distance(self, model):
        """
        50 km route, first 5 km free, one 45 km segment at 20 / 30 km/h:
            chargeable 45.0; the cycle uses segment distances only, so the
            cost is the same 437.5 per cu.m.
        """
        r = model.compute(_config([(45.0, 20.0, 30.0)], total=50.0, free=5.0))
        assert r["chargeable_distance_km"] == 45.0
        assert r["cycle_time_hr"] == 4.38
        assert r["cost_per_trip"] == 2187.5
        assert r["cost_per_cum"] == 437.5

    def test_fields_rounded_independently(self, model):
        """cost/trip comes from the unrounded cycle (4.375 × 500), not 4.38 × 500 = 2190."""
        r = model.compute(_config([(45.0, 20.0, 30.0)]))
        assert r["cost_per_trip"] != round_half_up(r["cycle_time_hr"] * 500.0)

    def test_deterministic(self, model):
        cfg = _config([(45.0, 20.0, 30.0)])
        assert model.compute(cfg) == model.compute(cfg)

    def test_multi_segment_route(self, model):
        """
        10 km @ 40/30 + 20 km @ 20/20:
            t_unloaded = 0.25 + 1.0 = 1.25, t_loaded = 0.3333 + 1.0 = 1.3333
            delay = 0.258333 → 0.26, cycle = 3.091667 → 3.09
        """
        r = model.compute(_config([(10.0, 40.0, 30.0), (20.0, 20.0, 20.0)], total=30.0, free=3.0))
        assert r["chargeable_distance_km"] == 27.0
        assert r["time_unloaded_hr"] == 1.25
        assert r["time_loaded_hr"] == 1.33
        assert r["delay_allowance_hr"] == 0.26
        assert r["cycle_time_hr"] == 3.09

    def test_empty_route_is_maneuver_only(self, model):
        """No segments → cycle 0.25 h → 125 per trip, 25 per cu.m."""
        r = model.compute(_config([], total=0.0))
        assert r["cycle_time_hr"] == 0.25
        assert r["cost_per_cum"] == 25.0

    def test_zero_capacity_raises(self, model):
        with pytest.raises(ComputationError) as exc_info:
            model.compute(_config([(45.0, 20.0, 30.0)], capacity=0.0))
        assert exc_info.value.field == "equipment_capacity_cum"

    @pytest.mark.parametrize("unloaded, loaded, field", [
        (0.0, 30.0, "speed_unloaded_kmh"),
        (20.0, 0.0, "speed_loaded_kmh"),
    ])
    def test_zero_speed_raises(self, model, unloaded, loaded, field):
        with pytest.raises(ComputationError) as exc_info:
            model.compute(_config([(45.0, unloaded, loaded)]))
        assert exc_info.value.field == field


# ===========================================================================
# Class 3: Project configuration
# ===========================================================================

class TestProjectHaulingConfig:

    def test_no_distance_no_config(self, model):
        project = Project(location="Malaybalay City")
        assert hauling_config_for_project(project) is None
        assert model.surcharge_for_project(project) is None

    def test_default_fallback(self, model):
        """
        13 km, default truck: 40 / 30 km/h, 1420/hr, 6 cu.m., 3 km free
            t = 0.325 + 0.433333 = 0.758333; delay 0.075833
            cycle 1.084167 → cost/trip 1539.5167 → cost/cu.m. 256.586 → 256.59
        """
        project = Project(location="Malaybalay City", distance_from_office_km=13.0)
        cfg = hauling_config_for_project(project)
        assert cfg.free_hauling_distance_km == 3.0
        assert cfg.equipment_hourly_rate == 1420.0
        assert cfg.equipment_capacity_cum == 6.0
        assert len(cfg.route_segments) == 1
        r = model.surcharge_for_project(project)
        assert r["chargeable_distance_km"] == 10.0
        assert r["cycle_time_hr"] == 1.08
        assert r["cost_per_trip"] == 1539.52
        assert r["cost_per_cum"] == 256.59

    def test_explicit_config_wins(self, model):
        cfg = _config([(45.0, 20.0, 30.0)])
        project = Project(location="Malaybalay City", distance_from_office_km=13.0, hauling=cfg)
        assert hauling_config_for_project(project) == cfg
        assert model.surcharge_for_project(project)["cost_per_cum"] == 437.5

    def test_explicit_config_default_capacity(self):
        cfg = HaulingConfig(total_distance_km=10.0)
        assert cfg.equipment_capacity_cum == 10.0
        assert cfg.free_hauling_distance_km == 3.0
        assert cfg.equipment_capacity_cum == config.DEFAULT_CONFIG_CAPACITY_CUM
        assert cfg.equipment_hourly_rate == config.DEFAULT_HAULING_RATE

    def test_default_fallback_with_truck_rate(self, model):
        """
        Same 13 km route priced at a 2000/hr truck:
            cycle 1.084167 × 2000 = 2168.33 per trip → 361.389 → 361.39 per cu.m.
        """
        project = Project(location="Malaybalay City", distance_from_office_km=13.0)
        assert hauling_config_for_project(project, 2000.0).equipment_hourly_rate == 2000.0
        r = model.surcharge_for_project(project, 2000.0)
        assert r["cost_per_trip"] == 2168.33
        assert r["cost_per_cum"] == 361.39

    def test_truck_rate_ignored_for_explicit_config(self, model):
        cfg = _config([(45.0, 20.0, 30.0)])
        project = Project(location="Malaybalay City", distance_from_office_km=13.0, hauling=cfg)
        assert model.surcharge_for_project(project, 2000.0)["cost_per_cum"] == 437.5

    def test_needs_default_truck(self):
        assert needs_default_truck(Project(location="X", distance_from_office_km=13.0))
        assert not needs_default_truck(Project(location="X"))
        assert not needs_default_truck(
            Project(location="X", distance_from_office_km=13.0, hauling=_config([]))
        )
