"""FastAPI server that exposes the Maintso Vola admin services to the web dashboard."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Literal, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import AppConfig, configure_logging, load_config
from .models import (
    CostRecord,
    CultureRecord,
    FinancialSummary,
    PaymentRecord,
    ProjectCultureRecord,
    ProjectRecord,
    UserRecord,
    to_payload,
)
from .repository import DataStore, build_data_store_from_env
from .service import DashboardService
from .services import CultureService, FinanceService, ProjectService, UserService

logger = logging.getLogger(__name__)

UserRole = Literal["admin", "superviseur", "technicien", "investisseur"]
UserStatus = Literal["actif", "en_attente", "inactif"]


@dataclass
class Services:
    dashboard: DashboardService
    cultures: CultureService
    projects: ProjectService
    users: UserService
    finance: FinanceService

    @classmethod
    def build(
        cls,
        store: DataStore,
        config: AppConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "Services":
        return cls(
            dashboard=DashboardService(store, config.dashboard, clock=clock),
            cultures=CultureService(store, clock=clock),
            projects=ProjectService(store, clock=clock),
            users=UserService(store, clock=clock),
            finance=FinanceService(store, clock=clock),
        )


class CulturePayload(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    yield_per_ha: Optional[float] = Field(None, ge=0)
    cost_per_ha: Optional[float] = Field(None, ge=0)
    price_per_tonne: Optional[float] = Field(None, ge=0)


class CultureUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    yield_per_ha: Optional[float] = Field(None, ge=0)
    cost_per_ha: Optional[float] = Field(None, ge=0)
    price_per_tonne: Optional[float] = Field(None, ge=0)


class ProjectUpdate(BaseModel):
    title: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    planned_end_date: Optional[date] = None
    surface_ha: Optional[float] = Field(None, ge=0)
    budget_total: Optional[float] = Field(None, ge=0)
    technician_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    farmer_id: Optional[str] = None
    commune_id: Optional[int] = None
    district_id: Optional[int] = None
    region_id: Optional[int] = None


class ProjectPayload(ProjectUpdate):
    title: str = Field(..., min_length=1)
    status: str = "planifié"
    created_by: Optional[str] = None
    culture_ids: List[int] = Field(default_factory=list)


class ProjectCulturesPayload(BaseModel):
    culture_ids: List[int]
    user_id: Optional[str] = None


class UserPayload(BaseModel):
    name: str = Field(..., min_length=1)
    email: str
    role: UserRole
    status: UserStatus = "en_attente"
    first_names: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    first_names: Optional[str] = None


class PaymentPayload(BaseModel):
    cost_id: int
    amount: float = Field(..., gt=0)
    payment_date: date
    method: Optional[str] = None
    transaction_reference: Optional[str] = None
    created_by: Optional[str] = None


router = APIRouter()


def get_services(request: Request) -> Services:
    services = request.app.state.services
    if services is None:
        raise HTTPException(
            status_code=503,
            detail="MAINTSO_DATABASE_URL is not configured; no data store is available.",
        )
    return services


def _found(value: Any, what: str) -> Any:
    if value is None:
        raise HTTPException(status_code=404, detail=f"{what} not found.")
    return value


def _done(ok: bool, what: str) -> Dict[str, bool]:
    if not ok:
        raise HTTPException(status_code=400, detail=f"Could not {what}.")
    return {"ok": True}


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


# Dashboard


@router.get("/dashboard")
async def dashboard_overview(services: Services = Depends(get_services)) -> Dict[str, Any]:
    overview = await services.dashboard.build_overview()
    return overview.as_dict()


@router.get("/dashboard/stats")
def dashboard_stats(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return to_payload(services.dashboard.fetch_stats())


@router.get("/dashboard/revenue")
def dashboard_revenue(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return to_payload(services.dashboard.fetch_monthly_revenue())


@router.get("/dashboard/projects-by-type")
def dashboard_projects_by_type(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return to_payload(services.dashboard.fetch_projects_by_type())


@router.get("/dashboard/activities")
def dashboard_activities(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return to_payload(services.dashboard.fetch_recent_activities())


@router.get("/dashboard/milestones")
def dashboard_milestones(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return to_payload(services.dashboard.fetch_upcoming_milestones())


# Cultures


@router.get("/cultures")
def list_cultures(services: Services = Depends(get_services)) -> List[CultureRecord]:
    return services.cultures.list_cultures()


@router.post("/cultures", status_code=201)
def create_culture(payload: CulturePayload, services: Services = Depends(get_services)) -> CultureRecord:
    created = services.cultures.create_culture(CultureRecord(**payload.model_dump()))
    if created is None:
        raise HTTPException(status_code=400, detail="Could not create culture.")
    return created


@router.get("/cultures/{culture_id}")
def get_culture(culture_id: int, services: Services = Depends(get_services)) -> CultureRecord:
    return _found(services.cultures.get_culture(culture_id), "Culture")


@router.patch("/cultures/{culture_id}")
def update_culture(
    culture_id: int, payload: CultureUpdate, services: Services = Depends(get_services)
) -> Dict[str, bool]:
    return _done(services.cultures.update_culture(culture_id, payload.model_dump(exclude_unset=True)), "update culture")


@router.delete("/cultures/{culture_id}")
def delete_culture(culture_id: int, services: Services = Depends(get_services)) -> Dict[str, bool]:
    return _done(services.cultures.delete_culture(culture_id), "delete culture")


# Projects


@router.get("/projects")
def list_projects(services: Services = Depends(get_services)) -> List[ProjectRecord]:
    return services.projects.list_projects()


@router.get("/projects/stats/status")
def project_stats_by_status(services: Services = Depends(get_services)) -> Dict[str, int]:
    return services.projects.count_projects_by_status()


@router.post("/projects", status_code=201)
def create_project(payload: ProjectPayload, services: Services = Depends(get_services)) -> ProjectRecord:
    data = payload.model_dump()
    culture_ids = data.pop("culture_ids")
    created = services.projects.create_project(ProjectRecord(**data), culture_ids)
    if created is None:
        raise HTTPException(status_code=400, detail="Could not create project.")
    return created


@router.get("/projects/{project_id}")
def get_project(project_id: int, services: Services = Depends(get_services)) -> ProjectRecord:
    return _found(services.projects.get_project(project_id), "Project")


@router.patch("/projects/{project_id}")
def update_project(
    project_id: int, payload: ProjectUpdate, services: Services = Depends(get_services)
) -> Dict[str, bool]:
    return _done(services.projects.update_project(project_id, payload.model_dump(exclude_unset=True)), "update project")


@router.delete("/projects/{project_id}")
def delete_project(project_id: int, services: Services = Depends(get_services)) -> Dict[str, bool]:
    return _done(services.projects.delete_project(project_id), "delete project")


@router.get("/projects/{project_id}/cultures")
def list_project_cultures(project_id: int, services: Services = Depends(get_services)) -> List[ProjectCultureRecord]:
    return services.projects.list_project_cultures(project_id)


@router.put("/projects/{project_id}/cultures")
def replace_project_cultures(
    project_id: int, payload: ProjectCulturesPayload, services: Services = Depends(get_services)
) -> Dict[str, bool]:
    ok = services.projects.replace_project_cultures(project_id, payload.culture_ids, payload.user_id)
    return _done(ok, "update project cultures")


# Finance


@router.get("/projects/{project_id}/costs")
def list_project_costs(project_id: int, services: Services = Depends(get_services)) -> List[CostRecord]:
    return services.finance.list_project_costs(project_id)


@router.get("/projects/{project_id}/finance")
def project_financial_summary(project_id: int, services: Services = Depends(get_services)) -> Dict[str, float]:
    summary: FinancialSummary = services.finance.get_financial_summary(project_id)
    return to_payload(summary)


@router.get("/costs/{cost_id}/payments")
def list_payments(cost_id: int, services: Services = Depends(get_services)) -> List[PaymentRecord]:
    return services.finance.list_payments(cost_id)


@router.post("/payments", status_code=201)
def create_payment(payload: PaymentPayload, services: Services = Depends(get_services)) -> PaymentRecord:
    created = services.finance.create_payment(PaymentRecord(**payload.model_dump()))
    if created is None:
        raise HTTPException(status_code=400, detail="Could not record payment.")
    return created


# Users


@router.get("/users")
def list_users(services: Services = Depends(get_services)) -> List[UserRecord]:
    return services.users.list_users()


@router.post("/users", status_code=201)
def create_user(payload: UserPayload, services: Services = Depends(get_services)) -> UserRecord:
    created = services.users.create_user(UserRecord(**payload.model_dump()))
    if created is None:
        raise HTTPException(status_code=400, detail="Could not create user.")
    return created


@router.get("/users/{user_id}")
def get_user(user_id: str, services: Services = Depends(get_services)) -> UserRecord:
    return _found(services.users.get_user(user_id), "User")


@router.patch("/users/{user_id}")
def update_user(user_id: str, payload: UserUpdate, services: Services = Depends(get_services)) -> Dict[str, bool]:
    return _done(services.users.update_user(user_id, payload.model_dump(exclude_unset=True)), "update user")


@router.delete("/users/{user_id}")
def delete_user(user_id: str, services: Services = Depends(get_services)) -> Dict[str, bool]:
    return _done(services.users.delete_user(user_id), "delete user")


def create_app(
    store: Optional[DataStore] = None,
    config: Optional[AppConfig] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    cfg = config or load_config()
    configure_logging(cfg.logging)

    data_store = store if store is not None else build_data_store_from_env(cfg.database)
    if data_store is None:
        logger.warning("MAINTSO_DATABASE_URL is not configured; data routes will answer 503.")

    app = FastAPI(title="Maintso Vola Admin API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.services = Services.build(data_store, cfg, clock) if data_store is not None else None
    app.include_router(router)
    return app


load_dotenv()
app = create_app()
