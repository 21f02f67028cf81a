"""
BOQ line-item maintenance and the project indirect-cost summary.

Persisted line items are snapshots; the only permitted change is a new
quantity, which always moves total_amount with it.

The project summary applies the EDC bracket schedule (Policy B) to
    EDC = Σ direct_cost × quantity
over the project's line items. The Σ of the line items' own total_amount
(Policy A, flat markups plus VAT) is reported next to it. The two are
different policies and are not reconciled.
"""
import logging
import math
from typing import Any, Dict, Optional

from dupa_estimator.models.domain import ComputedBOQLineItem
from dupa_estimator.repositories.base import BOQRepository, ProjectRepository
from dupa_estimator.services.addon_engine import compute_project_indirect_costs
from dupa_estimator.services.errors import NotFoundError, ValidationError
from dupa_estimator.services.hauling_engine import round_half_up

logger = logging.getLogger("dupa-boq")


class BOQService:
    def __init__(self, boq: BOQRepository, projects: Optional[ProjectRepository] = None) -> None:
        self.boq = boq
        self.projects = projects

    async def get_item(self, item_id: str) -> ComputedBOQLineItem:
        item = await self.boq.get(item_id)
        if item is None:
            raise NotFoundError(f"BOQ item '{item_id}' not found", field="item_id")
        return item

    async def update_quantity(self, item_id: str, quantity: float) -> ComputedBOQLineItem:
        """Replace the quantity; total_amount is recomputed from the snapshotted unit cost."""
        if not math.isfinite(quantity) or quantity < 0:
            raise ValidationError(
                f"quantity must be a finite number >= 0; got {quantity}", field="quantity"
            )
        item = await self.get_item(item_id)
        updated = item.with_quantity(quantity)
        if not await self.boq.update_quantity(item_id, updated.quantity, updated.total_amount):
            raise NotFoundError(f"BOQ item '{item_id}' not found", field="item_id")
        logger.info(
            "BOQ item %s quantity %s → %s",
            item_id,
            item.quantity,
            quantity,
            extra={"boq_item_id": item_id, "project_id": item.project_id},
        )
        return updated

    async def delete_item(self, item_id: str) -> None:
        if not await self.boq.delete(item_id):
            raise NotFoundError(f"BOQ item '{item_id}' not found", field="item_id")
        logger.info("BOQ item %s deleted", item_id, extra={"boq_item_id": item_id})

    async def summarize_project(self, project_id: str) -> Dict[str, Any]:
        if self.projects is not None and await self.projects.get(project_id) is None:
            raise NotFoundError(f"Project '{project_id}' not found", field="project_id")
        items = await self.boq.list_for_project(project_id)
        edc = sum(item.direct_cost * item.quantity for item in items)
        line_item_total = sum(item.total_amount for item in items)

        summary = compute_project_indirect_costs(edc)
        summary["project_id"] = project_id
        summary["item_count"] = len(items)
        summary["line_items_total_amount"] = round_half_up(line_item_total)
        return summary
