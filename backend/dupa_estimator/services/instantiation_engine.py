"""
InstantiationEngine — DUPA template + project location → persisted BOQ line item.

Pipeline:
  1. Load template and project
  2. Resolve labor, equipment and material rates concurrently (one barrier)
  3. Price entries and aggregate the direct cost (CostAggregator)
  4. Apply the line-item add-ons (Policy A: flat OCM / CP / VAT)
  5. Snapshot everything into a ComputedBOQLineItem and save it once

Run states:  DRAFT → RESOLVING_RATES → COMPUTED
                 ↘          ↘
                  FAILED  ←──
All-or-nothing: any failure before the save leaves nothing persisted.
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Awaitable, List, Optional, Sequence

from pydantic import BaseModel, Field

from dupa_estimator import config
from dupa_estimator.models.domain import (
    ComputedBOQLineItem,
    ComputedEquipment,
    ComputedLabor,
    ComputedMaterial,
    MaterialPrice,
    Template,
)
from dupa_estimator.repositories.base import (
    BOQRepository,
    MasterDataRepository,
    ProjectRepository,
    TemplateRepository,
)
from dupa_estimator.services.addon_engine import compute_line_item_add_ons
from dupa_estimator.services.cost_aggregator import (
    CostAggregator,
    compute_equipment_entry_cost,
    compute_labor_cost,
)
from dupa_estimator.services.errors import (
    EngineError,
    NotFoundError,
    RateLookupTimeoutError,
    StateTransitionError,
    ValidationError,
)
from dupa_estimator.services.hauling_engine import HaulingCostModel, needs_default_truck
from dupa_estimator.services.rate_resolver import RateResolver

logger = logging.getLogger("dupa-engine")


class InstantiationState(str, Enum):
    DRAFT = "draft"
    RESOLVING_RATES = "resolving_rates"
    COMPUTED = "computed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    InstantiationState.DRAFT: {InstantiationState.RESOLVING_RATES, InstantiationState.FAILED},
    InstantiationState.RESOLVING_RATES: {InstantiationState.COMPUTED, InstantiationState.FAILED},
    InstantiationState.COMPUTED: set(),
    InstantiationState.FAILED: set(),
}


@dataclass
class InstantiationRun:
    """State of one instantiation attempt."""
    template_id: str
    project_id: str
    state: InstantiationState = InstantiationState.DRAFT
    item: Optional[ComputedBOQLineItem] = None
    error: Optional[Exception] = None
    history: List[InstantiationState] = field(default_factory=lambda: [InstantiationState.DRAFT])

    @property
    def is_terminal(self) -> bool:
        return not _ALLOWED_TRANSITIONS[self.state]

    def transition(self, target: InstantiationState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise StateTransitionError(
                f"Illegal instantiation transition {self.state.value} → {target.value}",
                field="state",
            )
        self.state = target
        self.history.append(target)

    def complete(self, item: ComputedBOQLineItem) -> None:
        self.transition(InstantiationState.COMPUTED)
        self.item = item

    def fail(self, error: Exception) -> None:
        self.transition(InstantiationState.FAILED)
        self.error = error


class InstantiateOptions(BaseModel):
    use_evaluated: bool = False
    as_of: Optional[date] = None                      # rate date; today when omitted
    active_only: bool = False
    ocm_override: Optional[float] = Field(None, ge=0)  # project-level OCM %
    cp_override: Optional[float] = Field(None, ge=0)   # project-level CP %
    lookup_timeout_s: Optional[float] = Field(None, gt=0)


async def _gather_or_cancel(aws: Sequence[Awaitable[Any]]) -> List[Any]:
    """asyncio.gather that cancels the remaining lookups on the first failure."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class InstantiationEngine:
    """
    Turns a DUPA template into a location-priced, rate-snapshotted BOQ line item.

    Collaborators are injected; the engine holds no other state and performs
    no retries. Repository errors propagate unchanged.
    """

    def __init__(
        self,
        templates: TemplateRepository,
        master_data: MasterDataRepository,
        projects: ProjectRepository,
        boq: BOQRepository,
        resolver: Optional[RateResolver] = None,
        hauling: Optional[HaulingCostModel] = None,
        aggregator: Optional[CostAggregator] = None,
        lookup_timeout_s: Optional[float] = None,
    ) -> None:
        self.templates = templates
        self.projects = projects
        self.boq = boq
        self.resolver = resolver or RateResolver(master_data)
        self.hauling = hauling or HaulingCostModel()
        self.aggregator = aggregator or CostAggregator()
        if lookup_timeout_s is None and config.RATE_LOOKUP_TIMEOUT_S > 0:
            lookup_timeout_s = config.RATE_LOOKUP_TIMEOUT_S
        self.lookup_timeout_s = lookup_timeout_s

    async def instantiate(
        self,
        template_id: str,
        location: str,
        quantity: float,
        project_id: str,
        options: Optional[InstantiateOptions] = None,
        run: Optional[InstantiationRun] = None,
    ) -> ComputedBOQLineItem:
        """
        Instantiate a template for a project location and persist the result.

        Pass ``run`` to observe the state machine; it ends COMPUTED with the
        saved item, or FAILED with the raised error.

        Raises:
            ValidationError, NotFoundError, RateResolutionError,
            ComputationError, RateLookupTimeoutError, RepositoryUnavailableError
        """
        options = options or InstantiateOptions()
        run = run or InstantiationRun(template_id=template_id, project_id=project_id)
        if run.state != InstantiationState.DRAFT:
            raise StateTransitionError("Instantiation run already started", field="state")

        start = time.perf_counter()
        try:
            item = await self._execute(run, template_id, location, quantity, project_id, options)
        except Exception as exc:
            run.fail(exc)
            logger.warning(
                "instantiation failed for template %s: %s",
                template_id,
                exc,
                extra={"template_id": template_id, "project_id": project_id},
            )
            raise

        run.complete(item)
        logger.info(
            "instantiated template %s as BOQ item %s (total %.2f)",
            template_id,
            item.id,
            item.total_amount,
            extra={
                "template_id": template_id,
                "project_id": project_id,
                "boq_item_id": item.id,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return item

    async def instantiate_many(
        self,
        template_ids: Sequence[str],
        location: str,
        quantity: float,
        project_id: str,
        options: Optional[InstantiateOptions] = None,
    ) -> List[InstantiationRun]:
        """
        Instantiate several templates for one project location, in order.

        Returns one run per template id: COMPUTED with its saved item, or
        FAILED with the EngineError that stopped it. A failure does not stop
        the remaining templates. Errors outside the EngineError taxonomy
        propagate.
        """
        runs: List[InstantiationRun] = []
        for template_id in template_ids:
            run = InstantiationRun(template_id=template_id, project_id=project_id)
            try:
                await self.instantiate(template_id, location, quantity, project_id, options, run=run)
            except EngineError:
                pass  # recorded on run.error
            runs.append(run)
        failed = sum(1 for r in runs if r.state == InstantiationState.FAILED)
        logger.info(
            "batch instantiation: %d of %d templates computed",
            len(runs) - failed,
            len(runs),
            extra={"project_id": project_id},
        )
        return runs

    async def _execute(
        self,
        run: InstantiationRun,
        template_id: str,
        location: str,
        quantity: float,
        project_id: str,
        options: InstantiateOptions,
    ) -> ComputedBOQLineItem:
        if not math.isfinite(quantity) or quantity < 0:
            raise ValidationError(
                f"quantity must be a finite number >= 0; got {quantity}", field="quantity"
            )
        if not location:
            raise ValidationError("location is required", field="location")

        template = await self.templates.get(template_id)
        if template is None:
            raise NotFoundError(f"DUPA template '{template_id}' not found", field="template_id")
        if options.active_only and not template.is_active:
            raise NotFoundError(f"DUPA template '{template_id}' is inactive", field="template_id")

        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError(f"Project '{project_id}' not found", field="project_id")

        as_of = options.as_of or date.today()

        run.transition(InstantiationState.RESOLVING_RATES)
        logger.debug("resolving rates for template %s at %s", template_id, location,
                     extra={"template_id": template_id, "project_id": project_id})
        with_truck = bool(template.material_template) and needs_default_truck(project)
        labor_rates, equipment_rates, prices, truck_rate = await self._resolve_rates(
            template, location, as_of, options.lookup_timeout_s or self.lookup_timeout_s,
            with_truck=with_truck,
        )

        hauling_per_cum = 0.0
        if template.material_template:
            surcharge = self.hauling.surcharge_for_project(project, truck_rate)
            if surcharge is not None:
                hauling_per_cum = surcharge["cost_per_cum"]

        labor_items = [
            ComputedLabor(
                designation=entry.designation,
                no_of_persons=entry.no_of_persons,
                no_of_hours=entry.no_of_hours,
                hourly_rate=rate,
                amount=entry.no_of_persons * entry.no_of_hours * rate,
            )
            for entry, rate in zip(template.labor_template, labor_rates)
        ]
        labor_cost = compute_labor_cost(labor_items)

        equipment_items = self._price_equipment(template, equipment_rates, labor_cost)
        material_items = [
            _price_material(entry, price, hauling_per_cum)
            for entry, price in zip(template.material_template, prices)
        ]

        totals = self.aggregator.aggregate(labor_items, equipment_items, material_items)

        percentages = template.submitted
        used_evaluated = False
        if options.use_evaluated and template.evaluated is not None:
            percentages = template.evaluated
            used_evaluated = True
        ocm_pct = options.ocm_override if options.ocm_override is not None else percentages.ocm
        cp_pct = options.cp_override if options.cp_override is not None else percentages.cp
        vat_pct = percentages.vat

        add_ons = compute_line_item_add_ons(totals["direct_cost"], ocm_pct, cp_pct, vat_pct)
        unit_cost = add_ons["total"]

        item = ComputedBOQLineItem(
            project_id=project.id,
            template_id=template.id,
            pay_item_number=template.pay_item_number,
            pay_item_description=template.pay_item_description,
            unit_of_measurement=template.unit_of_measurement,
            output_per_hour=template.output_per_hour,
            category=template.category,
            location=location,
            labor_items=labor_items,
            equipment_items=equipment_items,
            material_items=material_items,
            labor_cost=totals["labor_cost"],
            equipment_cost=totals["equipment_cost"],
            material_cost=totals["material_cost"],
            direct_cost=totals["direct_cost"],
            ocm_percentage=ocm_pct,
            ocm_cost=add_ons["ocm"],
            cp_percentage=cp_pct,
            cp_cost=add_ons["cp"],
            subtotal_with_markup=add_ons["subtotal"],
            vat_percentage=vat_pct,
            vat_cost=add_ons["vat"],
            total_cost=add_ons["total"],
            unit_cost=unit_cost,
            quantity=quantity,
            total_amount=unit_cost * quantity,
            used_evaluated=used_evaluated,
            rates_as_of=as_of,
        )

        await self.boq.save(item)
        return item

    async def _resolve_rates(
        self,
        template: Template,
        location: str,
        as_of: date,
        timeout_s: Optional[float],
        with_truck: bool = False,
    ):
        """
        Resolve every rate the template needs in one concurrent barrier.

        Returns (labor, equipment, material, truck); truck is the default
        hauling truck rate when ``with_truck``, else None.
        """
        labor_lookups = [
            self.resolver.resolve_labor_rate(location, entry.designation, as_of)
            for entry in template.labor_template
        ]
        equipment_lookups = [
            self.resolver.resolve_equipment_rate(entry.equipment_id, as_of)
            for entry in template.equipment_template
            if not entry.is_minor_tools
        ]
        material_lookups = [
            self.resolver.resolve_material_price(entry.material_code, location, as_of)
            for entry in template.material_template
        ]
        truck_lookups = [self.resolver.resolve_hauling_rate(as_of)] if with_truck else []
        lookups = _gather_or_cancel(
            labor_lookups + equipment_lookups + material_lookups + truck_lookups
        )
        if timeout_s:
            try:
                results = await asyncio.wait_for(lookups, timeout=timeout_s)
            except asyncio.TimeoutError:
                raise RateLookupTimeoutError(
                    f"Rate lookups did not complete within {timeout_s}s", field="lookup_timeout_s"
                ) from None
        else:
            results = await lookups

        n_labor = len(labor_lookups)
        n_equipment = len(equipment_lookups)
        n_material = len(material_lookups)
        n_priced = n_labor + n_equipment + n_material
        return (
            results[:n_labor],
            results[n_labor:n_labor + n_equipment],
            results[n_labor + n_equipment:n_priced],
            results[n_priced] if with_truck else None,
        )

    def _price_equipment(
        self,
        template: Template,
        standard_rates: List[float],
        labor_cost: float,
    ) -> List[ComputedEquipment]:
        rates = iter(standard_rates)
        items: List[ComputedEquipment] = []
        for entry in template.equipment_template:
            hourly_rate = 0.0 if entry.is_minor_tools else next(rates)
            priced = ComputedEquipment(
                kind=entry.kind,
                equipment_id=entry.equipment_id,
                description=entry.description,
                no_of_units=entry.no_of_units,
                no_of_hours=entry.no_of_hours,
                hourly_rate=hourly_rate,
                amount=0.0,
            )
            amount = compute_equipment_entry_cost(priced, labor_cost)
            items.append(priced.model_copy(update={"amount": amount}))
        return items


def _price_material(entry: Any, price: MaterialPrice, hauling_per_cum: float) -> ComputedMaterial:
    hauling_cost = hauling_per_cum if price.include_hauling else 0.0
    unit_cost = price.base_price + hauling_cost
    return ComputedMaterial(
        material_code=entry.material_code,
        description=entry.description,
        unit=entry.unit,
        quantity=entry.quantity,
        base_price=price.base_price,
        hauling_cost=hauling_cost,
        hauling_included=hauling_cost > 0,
        unit_cost=unit_cost,
        amount=entry.quantity * unit_cost,
    )

