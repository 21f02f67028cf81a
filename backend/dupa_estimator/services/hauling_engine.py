"""
HaulingCostModel — per-cu.m. delivery surcharge for hauled materials.

Cycle time of one hauling trip over the project route:

    t_unloaded = Σ segment.distance / segment.speed_unloaded
    t_loaded   = Σ segment.distance / segment.speed_loaded
    delay      = 10 % of (t_unloaded + t_loaded)
    maneuver   = 0.25 hr (fixed)
    cycle      = t_unloaded + t_loaded + delay + maneuver
    cost/trip  = cycle × equipment hourly rate
    cost/cu.m. = cost/trip ÷ equipment capacity

Every reported field is rounded to 2 decimals on its own, half-up, from the
unrounded intermediate. Material unit costs pick up the *rounded* cost/cu.m.
Downstream figures depend on these exact rounded values; do not change the
rounding.
"""
import logging
import math
from typing import Any, Dict, Optional

from dupa_estimator import config
from dupa_estimator.models.domain import HaulingConfig, Project, RouteSegment
from dupa_estimator.services.errors import ComputationError

logger = logging.getLogger("dupa-hauling")

DELAY_ALLOWANCE_FACTOR: float = 0.10
MANEUVER_ALLOWANCE_HR: float = 0.25


def round_half_up(value: float, decimals: int = 2) -> float:
    """Half-up rounding, ``floor(x * 10^d + 0.5) / 10^d``."""
    factor = 10 ** decimals
    return math.floor(value * factor + 0.5) / factor


class HaulingCostModel:
    """Pure, stateless trip-cost model."""

    def compute(self, cfg: HaulingConfig) -> Dict[str, float]:
        """
        Compute the hauling breakdown for one configuration.

        Returns a dict with chargeable_distance_km, time_unloaded_hr,
        time_loaded_hr, delay_allowance_hr, maneuver_allowance_hr,
        cycle_time_hr, cost_per_trip and cost_per_cum, each rounded to
        2 decimals.

        Raises:
            ComputationError: zero capacity or a zero segment speed.
        """
        if cfg.equipment_capacity_cum <= 0:
            raise ComputationError(
                f"Hauling equipment capacity must be positive; got {cfg.equipment_capacity_cum}",
                field="equipment_capacity_cum",
            )

        chargeable_distance_km = cfg.total_distance_km - cfg.free_hauling_distance_km

        time_unloaded_hr = 0.0
        time_loaded_hr = 0.0
        for idx, segment in enumerate(cfg.route_segments):
            _check_speeds(segment, idx)
            time_unloaded_hr += segment.distance_km / segment.speed_unloaded_kmh
            time_loaded_hr += segment.distance_km / segment.speed_loaded_kmh

        delay_allowance_hr = DELAY_ALLOWANCE_FACTOR * (time_unloaded_hr + time_loaded_hr)
        maneuver_allowance_hr = MANEUVER_ALLOWANCE_HR

        cycle_time_hr = time_unloaded_hr + time_loaded_hr + delay_allowance_hr + maneuver_allowance_hr

        cost_per_trip = cycle_time_hr * cfg.equipment_hourly_rate
        cost_per_cum = cost_per_trip / cfg.equipment_capacity_cum

        return {
            "chargeable_distance_km": round_half_up(chargeable_distance_km),
            "time_unloaded_hr": round_half_up(time_unloaded_hr),
            "time_loaded_hr": round_half_up(time_loaded_hr),
            "delay_allowance_hr": round_half_up(delay_allowance_hr),
            "maneuver_allowance_hr": round_half_up(maneuver_allowance_hr),
            "cycle_time_hr": round_half_up(cycle_time_hr),
            "cost_per_trip": round_half_up(cost_per_trip),
            "cost_per_cum": round_half_up(cost_per_cum),
        }

    def surcharge_for_project(
        self,
        project: Project,
        truck_hourly_rate: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Hauling breakdown for a project, or None when nothing is hauled.

        Uses the project's explicit hauling config when present, otherwise the
        default dump-truck config when the project lies some distance from the
        district office. ``truck_hourly_rate`` prices the default truck;
        DEFAULT_HAULING_RATE when omitted.
        """
        cfg = hauling_config_for_project(project, truck_hourly_rate)
        if cfg is None:
            return None
        result = self.compute(cfg)
        logger.debug(
            "hauling surcharge %.2f/cu.m. for project %s",
            result["cost_per_cum"],
            project.id,
            extra={"project_id": project.id},
        )
        return result


def _check_speeds(segment: RouteSegment, idx: int) -> None:
    if segment.speed_unloaded_kmh <= 0:
        raise ComputationError(
            f"Route segment {idx + 1}: unloaded speed must be positive",
            field="speed_unloaded_kmh",
        )
    if segment.speed_loaded_kmh <= 0:
        raise ComputationError(
            f"Route segment {idx + 1}: loaded speed must be positive",
            field="speed_loaded_kmh",
        )


def hauling_config_for_project(
    project: Project,
    truck_hourly_rate: Optional[float] = None,
) -> Optional[HaulingConfig]:
    """Explicit config if the project has one; default config if it has a distance."""
    if project.hauling is not None:
        return project.hauling
    distance = project.distance_from_office_km
    if distance <= 0:
        return None
    return HaulingConfig(
        total_distance_km=distance,
        free_hauling_distance_km=config.DEFAULT_FREE_HAULING_KM,
        route_segments=[
            RouteSegment(
                distance_km=distance,
                speed_unloaded_kmh=config.DEFAULT_SPEED_UNLOADED_KMH,
                speed_loaded_kmh=config.DEFAULT_SPEED_LOADED_KMH,
            )
        ],
        equipment_hourly_rate=(
            config.DEFAULT_HAULING_RATE if truck_hourly_rate is None else truck_hourly_rate
        ),
        equipment_capacity_cum=config.DEFAULT_TRUCK_CAPACITY_CUM,
    )


def needs_default_truck(project: Project) -> bool:
    """True when the project is hauled with the default config (no explicit one)."""
    return project.hauling is None and project.distance_from_office_km > 0
