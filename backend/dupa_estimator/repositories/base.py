"""
Collaborator contracts consumed by the engine.

The engine only talks to persistence and master data through these narrow,
async interfaces. Implementations raise RepositoryUnavailableError for
transient I/O failures and return None for "no such record".
"""
import re
from datetime import date
from enum import Enum
from typing import List, Optional, Protocol, Union

from dupa_estimator.models.domain import (
    ComputedBOQLineItem,
    EquipmentRate,
    LaborRate,
    MaterialPrice,
    Project,
    Template,
)

RateRecord = Union[LaborRate, EquipmentRate, MaterialPrice]

HAULING_EQUIPMENT_PATTERN = re.compile(r"truck|hauling|dump", re.IGNORECASE)


class RateKind(str, Enum):
    LABOR = "labor"
    EQUIPMENT = "equipment"
    MATERIAL = "material"


class TemplateRepository(Protocol):
    async def get(self, template_id: str) -> Optional[Template]: ...


class ProjectRepository(Protocol):
    async def get(self, project_id: str) -> Optional[Project]: ...


class MasterDataRepository(Protocol):
    async def find_rate(
        self,
        kind: RateKind,
        key: str,
        location: Optional[str],
        as_of: date,
    ) -> Optional[RateRecord]:
        """
        Latest record effective on or before ``as_of``.

        labor:     key = normalized designation, matched on location; returns
                   the location's LaborRate table
        equipment: key = equipment id; location ignored
        material:  key = material code; location None selects catalog prices
        """
        ...

    async def find_hauling_equipment(self, as_of: date) -> Optional[EquipmentRate]:
        """Cheapest hourly-rated truck / hauling / dump equipment effective on ``as_of``."""
        ...


class BOQRepository(Protocol):
    async def save(self, item: ComputedBOQLineItem) -> str: ...

    async def get(self, item_id: str) -> Optional[ComputedBOQLineItem]: ...

    async def list_for_project(self, project_id: str) -> List[ComputedBOQLineItem]: ...

    async def update_quantity(self, item_id: str, quantity: float, total_amount: float) -> bool: ...

    async def delete(self, item_id: str) -> bool: ...
