"""
CostAggregator — direct cost of one DUPA from resolved line entries.

    labor     = Σ persons × hours × hourly_rate
    equipment = Σ units × hours × hourly_rate          (standard entries)
              + Σ labor × 10 %                          (each minor tools entry)
    material  = Σ quantity × unit_cost                  (unit_cost may include hauling)
    direct    = labor + equipment + material

A template carrying more than one minor tools entry gets the 10 % surcharge
once per entry. That is how existing estimates were priced and is reproduced
as-is.

Entries are duck-typed: anything with the attributes named below works, so the
same functions price both resolved snapshots and ad-hoc rows in tests.
"""
from typing import Any, Dict, Iterable, List

from dupa_estimator.models.domain import EquipmentKind

MINOR_TOOLS_RATE: float = 0.10      # fraction of labor cost


def _is_minor_tools(entry: Any) -> bool:
    return getattr(entry, "kind", EquipmentKind.STANDARD) == EquipmentKind.MINOR_TOOLS


# ---------------------------------------------------------------------------
# Labor
# ---------------------------------------------------------------------------

def compute_labor_cost(entries: Iterable[Any]) -> float:
    """Σ no_of_persons × no_of_hours × hourly_rate."""
    total = 0.0
    for entry in entries:
        total += entry.no_of_persons * entry.no_of_hours * entry.hourly_rate
    return total


def compute_total_labor_hours(entries: Iterable[Any]) -> float:
    return sum(e.no_of_persons * e.no_of_hours for e in entries)


def average_labor_rate(entries: List[Any]) -> float:
    """Person-hour weighted hourly rate; 0 when there are no hours."""
    hours = compute_total_labor_hours(entries)
    return compute_labor_cost(entries) / hours if hours > 0 else 0.0


# ---------------------------------------------------------------------------
# Equipment
# ---------------------------------------------------------------------------

def compute_minor_tools_cost(labor_cost: float) -> float:
    return labor_cost * MINOR_TOOLS_RATE


def compute_equipment_entry_cost(entry: Any, labor_cost: float) -> float:
    if _is_minor_tools(entry):
        return compute_minor_tools_cost(labor_cost)
    return entry.no_of_units * entry.no_of_hours * entry.hourly_rate


def compute_equipment_cost(entries: Iterable[Any], labor_cost: float) -> float:
    """Σ per-entry equipment cost; minor tools entries ignore their own fields."""
    total = 0.0
    for entry in entries:
        total += compute_equipment_entry_cost(entry, labor_cost)
    return total


def compute_total_equipment_hours(entries: Iterable[Any]) -> float:
    """Σ units × hours, minor tools excluded."""
    return sum(
        e.no_of_units * e.no_of_hours for e in entries if not _is_minor_tools(e)
    )


def average_equipment_rate(entries: List[Any], labor_cost: float) -> float:
    hours = compute_total_equipment_hours(entries)
    return compute_equipment_cost(entries, labor_cost) / hours if hours > 0 else 0.0


# ---------------------------------------------------------------------------
# Material
# ---------------------------------------------------------------------------

def compute_material_cost(entries: Iterable[Any]) -> float:
    """Σ quantity × unit_cost."""
    total = 0.0
    for entry in entries:
        total += entry.quantity * entry.unit_cost
    return total


def materials_breakdown(entries: List[Any]) -> List[Dict[str, Any]]:
    """Per-material cost with its share of the material total."""
    total = compute_material_cost(entries)
    rows: List[Dict[str, Any]] = []
    for entry in entries:
        cost = entry.quantity * entry.unit_cost
        rows.append({
            "material_code": getattr(entry, "material_code", ""),
            "description": getattr(entry, "description", ""),
            "unit": getattr(entry, "unit", ""),
            "quantity": entry.quantity,
            "unit_cost": entry.unit_cost,
            "total_cost": cost,
            "percentage": (cost / total) * 100 if total > 0 else 0.0,
        })
    return rows


# ---------------------------------------------------------------------------
# Direct cost
# ---------------------------------------------------------------------------

class CostAggregator:
    """Sums resolved labor, equipment and material entries into a direct cost."""

    def aggregate(
        self,
        labor: List[Any],
        equipment: List[Any],
        material: List[Any],
    ) -> Dict[str, float]:
        labor_cost = compute_labor_cost(labor)
        equipment_cost = compute_equipment_cost(equipment, labor_cost)
        material_cost = compute_material_cost(material)
        return {
            "labor_cost": labor_cost,
            "equipment_cost": equipment_cost,
            "material_cost": material_cost,
            "direct_cost": labor_cost + equipment_cost + material_cost,
        }
