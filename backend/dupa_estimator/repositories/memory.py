"""
In-memory repositories.

Used by the test suite and by the API when DATABASE_URL is not set (dev mode).
Stored line items are kept as plain dicts, so a reload always builds a fresh
model from the persisted snapshot.
"""
from datetime import date
from typing import Dict, List, Optional

from dupa_estimator.models.domain import (
    ComputedBOQLineItem,
    EquipmentRate,
    LaborRate,
    MaterialPrice,
    Project,
    Template,
)
from dupa_estimator.repositories.base import HAULING_EQUIPMENT_PATTERN, RateKind, RateRecord


def _effective_on(record_date: Optional[date], as_of: date) -> bool:
    return record_date is None or record_date <= as_of


def _latest(records: List[RateRecord], as_of: date) -> Optional[RateRecord]:
    candidates = [r for r in records if _effective_on(r.effective_date, as_of)]
    if not candidates:
        return None
    return max(candidates, key=lambda r: r.effective_date or date.min)


class InMemoryTemplateRepository:
    def __init__(self, templates: Optional[List[Template]] = None) -> None:
        self._items: Dict[str, Template] = {t.id: t for t in templates or []}

    def add(self, template: Template) -> Template:
        self._items[template.id] = template
        return template

    async def get(self, template_id: str) -> Optional[Template]:
        return self._items.get(template_id)


class InMemoryProjectRepository:
    def __init__(self, projects: Optional[List[Project]] = None) -> None:
        self._items: Dict[str, Project] = {p.id: p for p in projects or []}

    def add(self, project: Project) -> Project:
        self._items[project.id] = project
        return project

    async def get(self, project_id: str) -> Optional[Project]:
        return self._items.get(project_id)


class InMemoryMasterDataRepository:
    """Master rate tables with effective-date history."""

    def __init__(self) -> None:
        self.labor: List[LaborRate] = []
        self.equipment: List[EquipmentRate] = []
        self.materials: List[MaterialPrice] = []
        self.lookups: int = 0

    def add_labor_rate(self, rate: LaborRate) -> LaborRate:
        self.labor.append(rate)
        return rate

    def add_equipment_rate(self, rate: EquipmentRate) -> EquipmentRate:
        self.equipment.append(rate)
        return rate

    def add_material_price(self, price: MaterialPrice) -> MaterialPrice:
        self.materials.append(price)
        return price

    async def find_rate(
        self,
        kind: RateKind,
        key: str,
        location: Optional[str],
        as_of: date,
    ) -> Optional[RateRecord]:
        self.lookups += 1
        if kind == RateKind.LABOR:
            matches = [r for r in self.labor if r.location == location]
        elif kind == RateKind.EQUIPMENT:
            matches = [r for r in self.equipment if r.equipment_id == key]
        elif kind == RateKind.MATERIAL:
            code = key.strip().upper()
            matches = [
                r for r in self.materials
                if r.material_code.strip().upper() == code and r.location == location
            ]
        else:
            raise ValueError(f"Unknown rate kind: {kind}")
        return _latest(matches, as_of)

    async def find_hauling_equipment(self, as_of: date) -> Optional[EquipmentRate]:
        self.lookups += 1
        by_id: Dict[str, List[EquipmentRate]] = {}
        for r in self.equipment:
            if HAULING_EQUIPMENT_PATTERN.search(r.category):
                by_id.setdefault(r.equipment_id, []).append(r)
        current = [_latest(records, as_of) for records in by_id.values()]
        rated = [r for r in current if r is not None and r.hourly_rate is not None]
        if not rated:
            return None
        return min(rated, key=lambda r: r.hourly_rate)


class InMemoryBOQRepository:
    def __init__(self) -> None:
        self._rows: Dict[str, dict] = {}
        self.save_calls: int = 0

    async def save(self, item: ComputedBOQLineItem) -> str:
        self.save_calls += 1
        self._rows[item.id] = item.model_dump(mode="json")
        return item.id

    async def get(self, item_id: str) -> Optional[ComputedBOQLineItem]:
        row = self._rows.get(item_id)
        return ComputedBOQLineItem.model_validate(row) if row is not None else None

    async def list_for_project(self, project_id: str) -> List[ComputedBOQLineItem]:
        rows = [r for r in self._rows.values() if r["project_id"] == project_id]
        rows.sort(key=lambda r: r["pay_item_number"])
        return [ComputedBOQLineItem.model_validate(r) for r in rows]

    async def update_quantity(self, item_id: str, quantity: float, total_amount: float) -> bool:
        row = self._rows.get(item_id)
        if row is None:
            return False
        row["quantity"] = quantity
        row["total_amount"] = total_amount
        return True

    async def delete(self, item_id: str) -> bool:
        return self._rows.pop(item_id, None) is not None
