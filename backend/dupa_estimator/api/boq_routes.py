"""
DUPA instantiation and project BOQ routes

POST   /api/dupa-templates/{template_id}/instantiate — price a template for a project
POST   /api/dupa-templates/batch-instantiate        — price several templates, one outcome each
GET    /api/project-boq/{item_id}                     — one BOQ line item
PATCH  /api/project-boq/{item_id}                     — change its quantity
DELETE /api/project-boq/{item_id}                     — remove it
GET    /api/projects/{project_id}/indirect-costs      — EDC bracket summary
"""
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from dupa_estimator.api.deps import get_boq_service, get_engine, http_error
from dupa_estimator.services.boq_service import BOQService
from dupa_estimator.services.errors import EngineError
from dupa_estimator.services.instantiation_engine import (
    InstantiateOptions,
    InstantiationEngine,
    InstantiationRun,
)

router = APIRouter(prefix="/api", tags=["DUPA / BOQ"])
logger = logging.getLogger("dupa-api")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class InstantiateRequest(BaseModel):
    project_id: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    quantity: float = 1.0               # negative or non-finite values are rejected by the engine (400)
    use_evaluated: bool = False
    effective_date: Optional[date] = None
    project_ocm_percentage: Optional[float] = Field(None, ge=0)
    project_cp_percentage: Optional[float] = Field(None, ge=0)


class BatchInstantiateRequest(InstantiateRequest):
    template_ids: List[str] = Field(..., min_length=1)


class QuantityUpdateRequest(BaseModel):
    quantity: float                     # validated by BOQService (400)


# ── Instantiation ────────────────────────────────────────────────────────────

@router.post("/dupa-templates/{template_id}/instantiate", status_code=status.HTTP_201_CREATED)
async def instantiate_template(
    template_id: str,
    req: InstantiateRequest,
    engine: InstantiationEngine = Depends(get_engine),
):
    try:
        item = await engine.instantiate(
            template_id, req.location, req.quantity, req.project_id, _options(req)
        )
    except EngineError as exc:
        raise http_error(exc) from exc
    return item.model_dump(mode="json")


@router.post("/dupa-templates/batch-instantiate")
async def batch_instantiate(
    req: BatchInstantiateRequest,
    engine: InstantiationEngine = Depends(get_engine),
):
    runs = await engine.instantiate_many(
        req.template_ids, req.location, req.quantity, req.project_id, _options(req)
    )
    results = [_run_outcome(run) for run in runs]
    computed = sum(1 for r in results if "item" in r)
    return {"computed": computed, "failed": len(results) - computed, "results": results}


def _options(req: InstantiateRequest) -> InstantiateOptions:
    return InstantiateOptions(
        use_evaluated=req.use_evaluated,
        as_of=req.effective_date,
        ocm_override=req.project_ocm_percentage,
        cp_override=req.project_cp_percentage,
    )


def _run_outcome(run: InstantiationRun) -> dict:
    outcome = {"template_id": run.template_id, "state": run.state.value}
    if run.item is not None:
        outcome["item"] = run.item.model_dump(mode="json")
    if isinstance(run.error, EngineError):
        outcome["error"] = run.error.to_dict()
    return outcome


# ── Project BOQ ──────────────────────────────────────────────────────────────

@router.get("/project-boq/{item_id}")
async def get_boq_item(item_id: str, service: BOQService = Depends(get_boq_service)):
    try:
        item = await service.get_item(item_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    return item.model_dump(mode="json")


@router.patch("/project-boq/{item_id}")
async def update_boq_quantity(
    item_id: str,
    req: QuantityUpdateRequest,
    service: BOQService = Depends(get_boq_service),
):
    try:
        item = await service.update_quantity(item_id, req.quantity)
    except EngineError as exc:
        raise http_error(exc) from exc
    return item.model_dump(mode="json")


@router.delete("/project-boq/{item_id}")
async def delete_boq_item(item_id: str, service: BOQService = Depends(get_boq_service)):
    try:
        await service.delete_item(item_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    return {"deleted": item_id}


@router.get("/projects/{project_id}/indirect-costs")
async def project_indirect_costs(project_id: str, service: BOQService = Depends(get_boq_service)):
    """EDC bracket OCM / CP over the project's BOQ (no VAT)."""
    try:
        return await service.summarize_project(project_id)
    except EngineError as exc:
        raise http_error(exc) from exc
