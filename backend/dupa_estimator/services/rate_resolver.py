"""
RateResolver — location- and date-specific master rates for DUPA entries.

Entry lookups go through the master-data repository's ``find_rate()``.
Entry resolution never defaults: a missing location, designation, equipment
record or material price raises RateResolutionError, and the caller aborts the
whole instantiation. The fallback hauling truck rate is the one lookup with a
default, the DPWH standard dump-truck rate.

Designations on templates are free text ("Equipment Operator - Heavy");
labor rate tables are keyed by snake_case designation keys. The map below
covers the DPWH standard designations; anything else is slugged.
"""
import logging
import re
from datetime import date
from typing import Dict, Optional

from dupa_estimator import config
from dupa_estimator.models.domain import EquipmentRate, LaborRate, MaterialPrice
from dupa_estimator.repositories.base import MasterDataRepository, RateKind
from dupa_estimator.services.errors import RateResolutionError

logger = logging.getLogger("dupa-rates")

HOURS_PER_RENTAL_DAY = 8

DESIGNATION_MAP: Dict[str, str] = {
    "foreman": "foreman",
    "leadman": "leadman",
    "equipment operator - heavy": "equipment_operator_heavy",
    "equipment operator - high skilled": "equipment_operator_high_skilled",
    "equipment operator - light skilled": "equipment_operator_light_skilled",
    "driver": "driver",
    "skilled labor": "labor_skilled",
    "semi-skilled labor": "labor_semi_skilled",
    "unskilled labor": "labor_unskilled",
}

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


def normalize_designation(designation: str) -> str:
    """Map a template designation to its labor-rate key."""
    cleaned = " ".join(designation.lower().split())
    if cleaned in DESIGNATION_MAP:
        return DESIGNATION_MAP[cleaned]
    return _SLUG_SEPARATORS.sub("_", cleaned).strip("_")


class RateResolver:
    """Resolves hourly rates and material prices against master data."""

    def __init__(self, master_data: MasterDataRepository) -> None:
        self.master_data = master_data

    async def resolve_labor_rate(self, location: str, designation: str, as_of: date) -> float:
        key = normalize_designation(designation)
        record = await self.master_data.find_rate(RateKind.LABOR, key, location, as_of)
        if not isinstance(record, LaborRate):
            raise RateResolutionError(
                "labor", designation, location,
                message=f"No labor rates found for location '{location}' as of {as_of.isoformat()}",
            )
        if key not in record.rates:
            raise RateResolutionError("labor", designation, location)
        return record.rates[key]

    async def resolve_equipment_rate(self, equipment_id: str, as_of: date) -> float:
        """
        Hourly rate for one equipment record.

        Falls back to rental_rate / 8 (daily rental over an 8-hour day) when
        no hourly rate is recorded.
        """
        record = await self.master_data.find_rate(RateKind.EQUIPMENT, equipment_id, None, as_of)
        if not isinstance(record, EquipmentRate):
            raise RateResolutionError("equipment", equipment_id)
        if record.hourly_rate is not None:
            return record.hourly_rate
        if record.rental_rate is not None:
            logger.debug("equipment %s: hourly rate derived from rental rate", equipment_id)
            return record.rental_rate / HOURS_PER_RENTAL_DAY
        raise RateResolutionError(
            "equipment", equipment_id,
            message=f"Equipment '{equipment_id}' has neither an hourly nor a rental rate",
        )

    async def resolve_material_price(
        self,
        material_code: str,
        location: Optional[str],
        as_of: date,
    ) -> MaterialPrice:
        """Location-specific price first, then the location-less catalog price."""
        record = None
        if location:
            record = await self.master_data.find_rate(
                RateKind.MATERIAL, material_code, location, as_of
            )
        if record is None:
            record = await self.master_data.find_rate(
                RateKind.MATERIAL, material_code, None, as_of
            )
        if not isinstance(record, MaterialPrice):
            raise RateResolutionError("material", material_code, location)
        return record

    async def resolve_hauling_rate(self, as_of: date) -> float:
        """
        Hourly rate for the default hauling truck.

        The cheapest truck / hauling / dump equipment on record is used when
        its hourly rate reaches MIN_HAULING_EQUIPMENT_RATE; otherwise the DPWH
        standard DEFAULT_HAULING_RATE.
        """
        record = await self.master_data.find_hauling_equipment(as_of)
        if record is not None and record.hourly_rate is not None \
                and record.hourly_rate >= config.MIN_HAULING_EQUIPMENT_RATE:
            logger.debug("hauling truck rate %.2f from equipment %s",
                         record.hourly_rate, record.equipment_id)
            return record.hourly_rate
        logger.info("no suitable hauling equipment on record; using standard rate %.2f",
                    config.DEFAULT_HAULING_RATE)
        return config.DEFAULT_HAULING_RATE
