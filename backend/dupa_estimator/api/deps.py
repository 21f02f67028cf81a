"""FastAPI dependency injection — repositories, engine and error mapping."""
from dataclasses import dataclass
from fastapi import Depends, HTTPException, Request, status

from dupa_estimator import db
from dupa_estimator.repositories.base import (
    BOQRepository,
    MasterDataRepository,
    ProjectRepository,
    TemplateRepository,
)
from dupa_estimator.repositories.memory import (
    InMemoryBOQRepository,
    InMemoryMasterDataRepository,
    InMemoryProjectRepository,
    InMemoryTemplateRepository,
)
from dupa_estimator.repositories.sql import (
    SQLBOQRepository,
    SQLMasterDataRepository,
    SQLProjectRepository,
    SQLTemplateRepository,
)
from dupa_estimator.services.boq_service import BOQService
from dupa_estimator.services.errors import (
    ComputationError,
    EngineError,
    NotFoundError,
    RateResolutionError,
    StateTransitionError,
    ValidationError,
)
from dupa_estimator.services.instantiation_engine import InstantiationEngine


@dataclass
class Repositories:
    templates: TemplateRepository
    master_data: MasterDataRepository
    projects: ProjectRepository
    boq: BOQRepository
    storage: str = "memory"


def build_repositories() -> Repositories:
    """SQL repositories when DATABASE_URL is set, in-memory ones otherwise (dev mode)."""
    if db.database_configured():
        factory = db.AsyncSessionLocal
        return Repositories(
            templates=SQLTemplateRepository(factory),
            master_data=SQLMasterDataRepository(factory),
            projects=SQLProjectRepository(factory),
            boq=SQLBOQRepository(factory),
            storage="sql",
        )
    return Repositories(
        templates=InMemoryTemplateRepository(),
        master_data=InMemoryMasterDataRepository(),
        projects=InMemoryProjectRepository(),
        boq=InMemoryBOQRepository(),
    )


def get_repositories(request: Request) -> Repositories:
    return request.app.state.repositories


def get_engine(repos: Repositories = Depends(get_repositories)) -> InstantiationEngine:
    return InstantiationEngine(
        templates=repos.templates,
        master_data=repos.master_data,
        projects=repos.projects,
        boq=repos.boq,
    )


def get_boq_service(repos: Repositories = Depends(get_repositories)) -> BOQService:
    return BOQService(repos.boq, repos.projects)


def http_error(exc: EngineError) -> HTTPException:
    """Map an engine error onto its HTTP status; the body is the error's dict form."""
    if exc.retryable:
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (RateResolutionError, ComputationError)):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, StateTransitionError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    headers = {"Retry-After": "5"} if exc.retryable else None
    return HTTPException(status_code=code, detail=exc.to_dict(), headers=headers)
