from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Any, ClassVar, Dict, Iterable, Mapping, Optional, Sequence

USER_ROLES = ("admin", "superviseur", "technicien", "investisseur")
USER_STATUSES = ("actif", "en_attente", "inactif")
DEFAULT_USER_ROLE = "technicien"
DEFAULT_USER_STATUS = "en_attente"

PROJECT_STATUSES = ("planifié", "en cours", "terminé", "annulé")

MILESTONE_PLANNED = "Prévu"
MILESTONE_DONE = "Terminé"

PAYMENT_STATUS_UNENGAGED = "Non engagé"
PAYMENT_STATUS_IN_PROGRESS = "En cours"
PAYMENT_STATUS_PAID = "Payé"
PAYMENT_STATUS_CANCELLED = "Annulé"
PAYMENT_STATUSES = (
    PAYMENT_STATUS_UNENGAGED,
    PAYMENT_STATUS_IN_PROGRESS,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_CANCELLED,
)


class RowRecord:
    """
    Mixin for records that map one-to-one onto a hosted table row.

    ``_columns`` maps dataclass attribute names to column names. Attributes
    that are not listed there (embedded values such as a culture name) are
    filled through the ``extra`` keyword arguments of ``from_row``.
    """

    _columns: ClassVar[Dict[str, str]] = {}
    _read_only: ClassVar[Sequence[str]] = ("id", "created_at")

    @classmethod
    def from_row(cls, row: Mapping[str, Any], **extra: Any):
        values = {attr: row.get(column) for attr, column in cls._columns.items()}
        values.update(extra)
        return cls(**values)

    def to_row(self) -> Dict[str, Any]:
        """Columns to write on insert; generated and empty values are left to the store."""
        return {
            column: getattr(self, attr)
            for attr, column in self._columns.items()
            if attr not in self._read_only and getattr(self, attr) is not None
        }

    @classmethod
    def columns_for(cls, changes: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate a partial update keyed by attribute names into column names."""
        unknown = sorted(set(changes) - set(cls._columns))
        if unknown:
            raise ValueError(f"Unknown {cls.__name__} fields: {', '.join(unknown)}")
        return {cls._columns[attr]: value for attr, value in changes.items() if attr not in cls._read_only}


@dataclass(frozen=True)
class UserRecord(RowRecord):
    """
    Platform account. ``role`` lives in ``utilisateurs_par_role`` and is
    resolved by the user service, not stored on the row.
    """

    _columns: ClassVar[Dict[str, str]] = {
        "id": "id_utilisateur",
        "name": "nom",
        "first_names": "prenoms",
        "email": "email",
        "status": "statut",
        "created_at": "created_at",
    }

    name: str
    email: Optional[str] = None
    role: str = DEFAULT_USER_ROLE
    status: str = DEFAULT_USER_STATUS
    first_names: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.name, self.first_names) if part)


@dataclass(frozen=True)
class CultureRecord(RowRecord):
    _columns: ClassVar[Dict[str, str]] = {
        "id": "id_culture",
        "name": "nom_culture",
        "description": "description",
        "yield_per_ha": "rendement_ha",
        "cost_per_ha": "cout_exploitation_ha",
        "price_per_tonne": "prix_tonne",
        "created_at": "created_at",
        "modified_at": "modified_at",
    }

    name: str
    description: Optional[str] = None
    yield_per_ha: Optional[float] = None
    cost_per_ha: Optional[float] = None
    price_per_tonne: Optional[float] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProjectRecord(RowRecord):
    """
    Funded agricultural effort.

    ``geometry`` carries the PostGIS value as-is; nothing in this package
    interprets it.
    """

    _columns: ClassVar[Dict[str, str]] = {
        "id": "id_projet",
        "title": "titre",
        "description": "description",
        "status": "statut",
        "start_date": "date_lancement",
        "planned_end_date": "date_fin_prevue",
        "surface_ha": "surface_ha",
        "budget_total": "budget_total",
        "technician_id": "id_technicien",
        "supervisor_id": "id_superviseur",
        "farmer_id": "id_tantsaha",
        "commune_id": "id_commune",
        "district_id": "id_district",
        "region_id": "id_region",
        "geometry": "geom",
        "created_by": "created_by",
        "created_at": "created_at",
        "modified_at": "modified_at",
    }

    title: str
    status: str = "planifié"
    description: Optional[str] = None
    start_date: Optional[date] = None
    planned_end_date: Optional[date] = None
    surface_ha: Optional[float] = None
    budget_total: Optional[float] = None
    technician_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    farmer_id: Optional[str] = None
    commune_id: Optional[int] = None
    district_id: Optional[int] = None
    region_id: Optional[int] = None
    geometry: Optional[str] = None
    created_by: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProjectCultureRecord(RowRecord):
    _columns: ClassVar[Dict[str, str]] = {
        "id": "id_projet_culture",
        "project_id": "id_projet",
        "culture_id": "id_culture",
        "planned_yield": "rendement_previsionnel",
        "actual_yield": "rendement_reel",
        "planned_cost": "cout_exploitation_previsionnel",
        "actual_cost": "cout_exploitation_reel",
        "created_by": "created_by",
        "created_at": "created_at",
    }

    project_id: int
    culture_id: int
    culture_name: Optional[str] = None
    planned_yield: Optional[float] = None
    actual_yield: Optional[float] = None
    planned_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    created_by: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class MilestoneRecord(RowRecord):
    """Phase template of a culture (sowing, harvest, ...)."""

    _columns: ClassVar[Dict[str, str]] = {
        "id": "id_jalon",
        "culture_id": "id_culture",
        "name": "nom_jalon",
        "action": "action_a_faire",
        "days_after_start": "jours_apres_lancement",
    }

    name: str
    culture_id: Optional[int] = None
    action: Optional[str] = None
    days_after_start: Optional[int] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class ProjectMilestoneRecord(RowRecord):
    _columns: ClassVar[Dict[str, str]] = {
        "id": "id_jalon_projet",
        "project_id": "id_projet",
        "milestone_id": "id_jalon",
        "status": "statut",
        "planned_date": "date_prev_planifiee",
        "executed_at": "date_reelle_execution",
        "created_at": "created_at",
    }

    project_id: int
    milestone_id: int
    status: str = MILESTONE_PLANNED
    planned_date: Optional[date] = None
    executed_at: Optional[datetime] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class InvestmentRecord(RowRecord):
    _columns: ClassVar[Dict[str, str]] = {
        "id": "id_investissement",
        "project_id": "id_projet",
        "investor_id": "id_investisseur",
        "amount": "montant",
        "payment_date": "date_paiement",
        "created_at": "created_at",
    }

    amount: float
    project_id: Optional[int] = None
    investor_id: Optional[str] = None
    payment_date: Optional[date] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class CostRecord(RowRecord):
    """Expense line of a project milestone; ``payment_status`` is derived from its payments."""

    _columns: ClassVar[Dict[str, str]] = {
        "id": "id_cout_projet",
        "project_id": "id_projet",
        "project_milestone_id": "id_jalon_projet",
        "expense_type": "type_depense",
        "amount_per_ha": "montant_par_hectare",
        "total_amount": "montant_total",
        "payment_status": "statut_paiement",
        "created_by": "created_by",
        "created_at": "created_at",
    }

    project_id: int
    total_amount: float
    expense_type: Optional[str] = None
    amount_per_ha: Optional[float] = None
    project_milestone_id: Optional[int] = None
    payment_status: str = PAYMENT_STATUS_UNENGAGED
    created_by: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class PaymentRecord(RowRecord):
    _columns: ClassVar[Dict[str, str]] = {
        "id": "id_paiement",
        "cost_id": "id_cout_projet",
        "payment_date": "date_paiement",
        "amount": "montant",
        "method": "methode_paiement",
        "transaction_reference": "reference_transaction",
        "created_by": "created_by",
        "created_at": "created_at",
    }

    cost_id: int
    amount: float
    payment_date: Optional[date] = None
    method: Optional[str] = None
    transaction_reference: Optional[str] = None
    created_by: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class FinancialSummary:
    total_budget: float = 0.0
    total_committed: float = 0.0
    total_paid: float = 0.0
    remaining: float = 0.0


# Dashboard views


@dataclass(frozen=True)
class DashboardStats:
    user_count: int = 0
    new_user_count: int = 0
    active_projects: int = 0
    pending_projects: int = 0
    culture_count: int = 0
    total_revenue: float = 0.0
    revenue_increase: float = 0.0


@dataclass(frozen=True)
class RevenuePoint:
    name: str
    value: float


@dataclass(frozen=True)
class ProjectTypeShare:
    name: str
    value: int


@dataclass(frozen=True)
class ActivityItem:
    """
    Entry of the recent activity feed.

    ``occurred_at`` is the source timestamp and drives ordering;
    ``time_label`` is only the display form of it.
    """

    title: str
    description: str
    occurred_at: datetime
    time_label: str
    icon: str


@dataclass(frozen=True)
class UpcomingMilestone:
    project: str
    milestone: str
    planned_date: date
    days_until: int
    date_label: str
    progress: int


@dataclass(frozen=True)
class DashboardOverview:
    stats: DashboardStats
    monthly_revenue: Sequence[RevenuePoint] = field(default_factory=list)
    projects_by_type: Sequence[ProjectTypeShare] = field(default_factory=list)
    recent_activities: Sequence[ActivityItem] = field(default_factory=list)
    upcoming_milestones: Sequence[UpcomingMilestone] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        """JSON-serialisable form with the camelCase keys the web client reads."""
        return {
            "stats": to_payload(self.stats),
            "monthlyRevenue": to_payload(self.monthly_revenue),
            "projectsByType": to_payload(self.projects_by_type),
            "recentActivities": to_payload(self.recent_activities),
            "upcomingMilestones": to_payload(self.upcoming_milestones),
        }


def to_payload(obj: Any) -> Any:
    """
    Convert dashboard views into plain JSON structures.

    Field names are camel-cased; dates are emitted as ISO strings.
    """

    if isinstance(obj, ActivityItem):
        return {
            "title": obj.title,
            "desc": obj.description,
            "time": obj.time_label,
            "occurredAt": obj.occurred_at.isoformat(),
            "icon": obj.icon,
        }
    if isinstance(obj, UpcomingMilestone):
        return {
            "project": obj.project,
            "milestone": obj.milestone,
            "date": obj.date_label,
            "plannedDate": obj.planned_date.isoformat(),
            "daysUntil": obj.days_until,
            "progress": obj.progress,
        }
    if isinstance(obj, (DashboardStats, FinancialSummary, RevenuePoint, ProjectTypeShare)):
        return {_camel(item.name): getattr(obj, item.name) for item in fields(obj)}
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Iterable) and not isinstance(obj, (str, bytes, dict)):
        return [to_payload(item) for item in obj]
    return obj


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
