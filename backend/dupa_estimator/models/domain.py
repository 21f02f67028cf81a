"""
Domain models for DUPA templates, master rates, projects and computed BOQ
line items.

Templates and master-rate records are read-only inputs to the engine.
ComputedBOQLineItem is the engine's output: a frozen snapshot whose resolved
rates never change after instantiation. Only ``quantity`` and
``total_amount`` may be replaced, together, through ``with_quantity()``.
"""
import math
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dupa_estimator import config

MINOR_TOOLS_MARKER = "minor tools"


def gen_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ── TEMPLATE ENTRIES ─────────────────────────────────────────────────────────

class LaborTemplateEntry(BaseModel):
    designation: str = Field(..., min_length=1, description="e.g. Foreman, Skilled Labor")
    no_of_persons: float = Field(0.0, ge=0)
    no_of_hours: float = Field(0.0, ge=0)


class EquipmentKind(str, Enum):
    STANDARD = "standard"
    MINOR_TOOLS = "minor_tools"       # 10 % of labor cost in lieu of itemized tools


class EquipmentTemplateEntry(BaseModel):
    """
    Equipment line of a template.

    ``kind`` is fixed when the template is authored. Payloads that predate the
    explicit tag are classified here, once, from the description; cost
    computation never inspects the description.
    """
    kind: EquipmentKind = EquipmentKind.STANDARD
    equipment_id: Optional[str] = None
    description: str = ""
    no_of_units: float = Field(0.0, ge=0)
    no_of_hours: float = Field(0.0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _classify_legacy_entry(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("kind"):
            description = str(data.get("description") or "")
            data = dict(data)
            if MINOR_TOOLS_MARKER in description.lower():
                data["kind"] = EquipmentKind.MINOR_TOOLS
            else:
                data["kind"] = EquipmentKind.STANDARD
        return data

    @model_validator(mode="after")
    def _standard_needs_equipment(self) -> "EquipmentTemplateEntry":
        if self.kind == EquipmentKind.STANDARD and not self.equipment_id:
            raise ValueError("standard equipment entries require an equipment_id")
        return self

    @property
    def is_minor_tools(self) -> bool:
        return self.kind == EquipmentKind.MINOR_TOOLS


class MaterialTemplateEntry(BaseModel):
    material_code: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    unit: str = "unit"
    quantity: float = Field(0.0, ge=0)


class AddOnPercentages(BaseModel):
    ocm: float = Field(..., ge=0)
    cp: float = Field(..., ge=0)
    vat: float = Field(..., ge=0)


class Template(BaseModel):
    """DUPA template: reusable cost breakdown with no location-specific rates."""
    id: str = Field(default_factory=gen_id)
    pay_item_number: str = Field(..., min_length=1)
    pay_item_description: str = Field(..., min_length=1)
    unit_of_measurement: str = Field(..., min_length=1)
    output_per_hour: float = Field(1.0, gt=0)

    labor_template: List[LaborTemplateEntry] = Field(default_factory=list)
    equipment_template: List[EquipmentTemplateEntry] = Field(default_factory=list)
    material_template: List[MaterialTemplateEntry] = Field(default_factory=list)

    ocm_percentage: float = Field(15.0, ge=0)
    cp_percentage: float = Field(10.0, ge=0)
    vat_percentage: float = Field(12.0, ge=0)
    evaluated: Optional[AddOnPercentages] = None    # "as evaluated" set, when recorded

    category: str = ""
    specification: str = ""
    notes: str = ""
    is_active: bool = True

    @property
    def submitted(self) -> AddOnPercentages:
        return AddOnPercentages(
            ocm=self.ocm_percentage, cp=self.cp_percentage, vat=self.vat_percentage
        )


# ── MASTER RATES ─────────────────────────────────────────────────────────────

class LaborRate(BaseModel):
    """Per-location hourly wage table keyed by normalized designation."""
    location: str
    district: str = ""
    rates: dict[str, float] = Field(default_factory=dict)
    effective_date: Optional[date] = None


class EquipmentRate(BaseModel):
    equipment_id: str
    description: str = ""
    category: str = ""                                 # e.g. "Dump Truck"
    hourly_rate: Optional[float] = Field(None, ge=0)
    rental_rate: Optional[float] = Field(None, ge=0)   # daily (8 hr) rental
    effective_date: Optional[date] = None


class MaterialPrice(BaseModel):
    material_code: str
    description: str = ""
    unit: str = ""
    base_price: float = Field(..., ge=0)
    location: Optional[str] = None                     # None = catalog price, any location
    effective_date: Optional[date] = None
    include_hauling: bool = True


# ── PROJECT / HAULING ────────────────────────────────────────────────────────

class RouteSegment(BaseModel):
    distance_km: float = Field(..., ge=0)
    speed_unloaded_kmh: float
    speed_loaded_kmh: float


class HaulingConfig(BaseModel):
    total_distance_km: float = Field(..., ge=0)
    free_hauling_distance_km: float = Field(3.0, ge=0)
    route_segments: List[RouteSegment] = Field(default_factory=list)
    equipment_hourly_rate: float = Field(config.DEFAULT_HAULING_RATE, ge=0)
    equipment_capacity_cum: float = config.DEFAULT_CONFIG_CAPACITY_CUM


class Project(BaseModel):
    id: str = Field(default_factory=gen_id)
    name: str = ""
    location: str
    district: str = ""
    distance_from_office_km: float = Field(0.0, ge=0)
    hauling: Optional[HaulingConfig] = None


# ── COMPUTED SNAPSHOTS ───────────────────────────────────────────────────────

_SNAPSHOT = ConfigDict(frozen=True)


class ComputedLabor(BaseModel):
    model_config = _SNAPSHOT

    designation: str
    no_of_persons: float
    no_of_hours: float
    hourly_rate: float = Field(..., ge=0)
    amount: float = Field(..., ge=0)


class ComputedEquipment(BaseModel):
    model_config = _SNAPSHOT

    kind: EquipmentKind
    equipment_id: Optional[str] = None
    description: str
    no_of_units: float
    no_of_hours: float
    hourly_rate: float = Field(..., ge=0)
    amount: float = Field(..., ge=0)


class ComputedMaterial(BaseModel):
    model_config = _SNAPSHOT

    material_code: str
    description: str
    unit: str
    quantity: float
    base_price: float = Field(..., ge=0)
    hauling_cost: float = Field(0.0, ge=0)
    hauling_included: bool = False
    unit_cost: float = Field(..., ge=0)
    amount: float = Field(..., ge=0)


class ComputedBOQLineItem(BaseModel):
    """Project-scoped, location-scoped, rate-snapshotted BOQ line item."""
    model_config = _SNAPSHOT

    id: str = Field(default_factory=gen_id)
    project_id: str
    template_id: str

    pay_item_number: str
    pay_item_description: str
    unit_of_measurement: str
    output_per_hour: float
    category: str = ""
    location: str

    labor_items: List[ComputedLabor] = Field(default_factory=list)
    equipment_items: List[ComputedEquipment] = Field(default_factory=list)
    material_items: List[ComputedMaterial] = Field(default_factory=list)

    labor_cost: float = Field(..., ge=0)
    equipment_cost: float = Field(..., ge=0)
    material_cost: float = Field(..., ge=0)
    direct_cost: float = Field(..., ge=0)

    ocm_percentage: float = Field(..., ge=0)
    ocm_cost: float = Field(..., ge=0)
    cp_percentage: float = Field(..., ge=0)
    cp_cost: float = Field(..., ge=0)
    subtotal_with_markup: float = Field(..., ge=0)
    vat_percentage: float = Field(..., ge=0)
    vat_cost: float = Field(..., ge=0)
    total_cost: float = Field(..., ge=0)
    unit_cost: float = Field(..., ge=0)

    quantity: float = Field(..., ge=0)
    total_amount: float = Field(..., ge=0)

    used_evaluated: bool = False
    rates_as_of: Optional[date] = None
    instantiated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _total_amount_matches(self) -> "ComputedBOQLineItem":
        expected = self.unit_cost * self.quantity
        if not math.isclose(self.total_amount, expected, rel_tol=1e-9, abs_tol=1e-6):
            raise ValueError(
                f"total_amount {self.total_amount} != unit_cost × quantity ({expected})"
            )
        return self

    def with_quantity(self, quantity: float) -> "ComputedBOQLineItem":
        """Return a copy with a new quantity and the matching total_amount."""
        if not math.isfinite(quantity) or quantity < 0:
            raise ValueError("quantity must be a finite number >= 0")
        data = self.model_dump()
        data["quantity"] = quantity
        data["total_amount"] = self.unit_cost * quantity
        return ComputedBOQLineItem.model_validate(data)
