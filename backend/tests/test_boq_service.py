"""
test_boq_service.py — Unit tests for BOQ line-item maintenance and the
project indirect-cost summary.

Tests cover:
  - Quantity updates keep total_amount == unit_cost × quantity
  - Negative or non-finite quantity / missing items
  - Deletion
  - Project summary: EDC = Σ direct_cost × quantity, bracket OCM / CP,
    Policy A totals reported side by side
  - ComputedBOQLineItem.with_quantity and its invariant check

Uses the in-memory repositories; asyncio.run drives the coroutines.
"""

import asyncio

import pydantic
import pytest

from dupa_estimator.models.domain import ComputedBOQLineItem
from dupa_estimator.services.boq_service import BOQService
from dupa_estimator.services.errors import NotFoundError, ValidationError

_DIRECT = 17_946.264
_TOTAL = 25_124.7696


@pytest.fixture
def service(repos):
    return BOQService(repos.boq, repos.projects)


def _instantiate(engine, quantity, project_id="prj-001"):
    return asyncio.run(engine.instantiate("tpl-801", "Malaybalay City", quantity, project_id))


# ===========================================================================
# Class 1: Quantity updates
# ===========================================================================

class TestUpdateQuantity:

    def test_total_amount_follows_quantity(self, engine, service, repos):
        item = _instantiate(engine, 2.0)
        updated = asyncio.run(service.update_quantity(item.id, 5.0))
        assert updated.quantity == 5.0
        assert abs(updated.total_amount - 5 * _TOTAL) < 1e-6

        loaded = asyncio.run(repos.boq.get(item.id))
        assert loaded.quantity == 5.0
        assert loaded.total_amount == updated.total_amount
        # snapshot untouched
        assert loaded.unit_cost == item.unit_cost
        assert loaded.labor_items == item.labor_items

    def test_negative_quantity_rejected(self, engine, service, repos):
        item = _instantiate(engine, 2.0)
        with pytest.raises(ValidationError):
            asyncio.run(service.update_quantity(item.id, -1.0))
        assert asyncio.run(repos.boq.get(item.id)).quantity == 2.0

    @pytest.mark.parametrize("quantity", [float("nan"), float("inf")])
    def test_non_finite_quantity_rejected(self, engine, service, repos, quantity):
        item = _instantiate(engine, 2.0)
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(service.update_quantity(item.id, quantity))
        assert exc_info.value.field == "quantity"
        assert asyncio.run(repos.boq.get(item.id)).quantity == 2.0
        with pytest.raises(ValueError):
            item.with_quantity(quantity)

    def test_unknown_item(self, service):
        with pytest.raises(NotFoundError):
            asyncio.run(service.update_quantity("missing", 1.0))

    def test_with_quantity_returns_new_value(self, engine):
        item = _instantiate(engine, 1.0)
        changed = item.with_quantity(4.0)
        assert item.quantity == 1.0
        assert changed.quantity == 4.0
        assert changed.id == item.id
        with pytest.raises(ValueError):
            item.with_quantity(-0.5)

    def test_invariant_enforced_on_construction(self, engine):
        data = _instantiate(engine, 1.0).model_dump()
        data["total_amount"] = data["total_amount"] + 100.0
        with pytest.raises(pydantic.ValidationError):
            ComputedBOQLineItem.model_validate(data)


# ===========================================================================
# Class 2: Get / delete
# ===========================================================================

class TestGetAndDelete:

    def test_get_item(self, engine, service):
        item = _instantiate(engine, 1.0)
        assert asyncio.run(service.get_item(item.id)).id == item.id

    def test_delete(self, engine, service):
        item = _instantiate(engine, 1.0)
        asyncio.run(service.delete_item(item.id))
        with pytest.raises(NotFoundError):
            asyncio.run(service.get_item(item.id))

    def test_delete_unknown(self, service):
        with pytest.raises(NotFoundError):
            asyncio.run(service.delete_item("missing"))


# ===========================================================================
# Class 3: Project summary (Policy B)
# ===========================================================================

class TestProjectSummary:

    def test_edc_weights_direct_cost_by_quantity(self, engine, service):
        """
        Two items, quantities 2 and 3: EDC = 5 × 17 946.264 = 89 731.32
        ≤ 5M → OCM 15 % = 13 459.698 → 13 459.70, CP 10 % = 8 973.132 → 8 973.13
        """
        _instantiate(engine, 2.0)
        _instantiate(engine, 3.0)
        summary = asyncio.run(service.summarize_project("prj-001"))
        assert summary["item_count"] == 2
        assert summary["estimated_direct_cost"] == 89_731.32
        assert summary["ocm_percentage"] == 15.0
        assert summary["ocm_amount"] == 13_459.70
        assert summary["contractors_profit_amount"] == 8_973.13
        assert summary["total_project_cost"] == 112_164.15
        assert abs(summary["line_items_total_amount"] - 125_623.85) < 0.005

    def test_items_of_other_projects_excluded(self, engine, service):
        _instantiate(engine, 2.0, project_id="prj-002")
        summary = asyncio.run(service.summarize_project("prj-001"))
        assert summary["item_count"] == 0
        assert summary["estimated_direct_cost"] == 0.0

    def test_large_project_uses_lower_bracket(self, engine, service):
        """300 × 17 946.264 = 5 383 879.2 > 5M → 12 % / 8 %."""
        _instantiate(engine, 300.0)
        summary = asyncio.run(service.summarize_project("prj-001"))
        assert summary["ocm_percentage"] == 12.0
        assert summary["contractors_profit_percentage"] == 8.0

    def test_unknown_project(self, service):
        with pytest.raises(NotFoundError):
            asyncio.run(service.summarize_project("nope"))
