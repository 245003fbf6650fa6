from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .config import DashboardConfig
from .models import (
    MILESTONE_DONE,
    MILESTONE_PLANNED,
    ActivityItem,
    DashboardOverview,
    DashboardStats,
    InvestmentRecord,
    MilestoneRecord,
    ProjectMilestoneRecord,
    ProjectTypeShare,
    RevenuePoint,
    UpcomingMilestone,
)
from .repository import DataStore, DataStoreError
from .schema import (
    CULTURES,
    INVESTMENTS,
    MILESTONES,
    PROJECT_CULTURES,
    PROJECT_MILESTONES,
    PROJECTS,
    USERS,
)
from .timeutils import (
    MONTH_LABELS,
    as_local_datetime,
    coerce_timezone,
    days_between,
    format_days_until,
    format_time_ago,
    milestone_progress,
    normalize_datetime,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNKNOWN_CULTURE = "Autre"
OVERFLOW_LABEL = "Autres"


def top_with_overflow(
    counts: Iterable[Tuple[str, int]],
    limit: int,
    overflow_label: str = OVERFLOW_LABEL,
) -> List[Tuple[str, int]]:
    """
    Rank ``(label, count)`` pairs by count and fold everything past ``limit`` into one bucket.

    Equal counts keep their input order. The folded bucket is only added
    when something is actually folded, so the result has at most
    ``limit + 1`` entries and the same total as the input.
    """

    ranked = sorted(counts, key=lambda item: item[1], reverse=True)
    if len(ranked) <= limit:
        return ranked
    head, tail = ranked[:limit], ranked[limit:]
    return head + [(overflow_label, sum(count for _, count in tail))]


def _as_amount(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class DashboardService:
    """
    Summary views for the admin home page.

    Nothing is cached: each call reads the current data. Every query is
    guarded on its own; a failing one is logged and replaced by an empty or
    zero value, so callers always get a result and cannot tell an empty
    table from an unreachable one.
    """

    def __init__(
        self,
        store: DataStore,
        config: Optional[DashboardConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.config = config or DashboardConfig()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.tz = coerce_timezone(self.config.timezone)

    def _now(self) -> datetime:
        return as_local_datetime(self.clock(), self.tz)

    def _guarded(self, label: str, default: T, query: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return query(*args, **kwargs)
        except DataStoreError as exc:
            logger.warning("Dashboard query failed (%s): %s", label, exc)
            return default

    async def build_overview(self) -> DashboardOverview:
        stats, revenue, by_type, activities, milestones = await asyncio.gather(
            asyncio.to_thread(self.fetch_stats),
            asyncio.to_thread(self.fetch_monthly_revenue),
            asyncio.to_thread(self.fetch_projects_by_type),
            asyncio.to_thread(self.fetch_recent_activities),
            asyncio.to_thread(self.fetch_upcoming_milestones),
        )
        return DashboardOverview(
            stats=stats,
            monthly_revenue=revenue,
            projects_by_type=by_type,
            recent_activities=activities,
            upcoming_milestones=milestones,
        )

    def fetch_stats(self) -> DashboardStats:
        cfg = self.config
        # Stored timestamps are UTC; SQLite compares them as wall-clock text.
        since = normalize_datetime(self.clock(), timezone.utc) - timedelta(days=cfg.new_user_window_days)
        investments = self._guarded("investment amounts", [], self.store.select, INVESTMENTS, columns=["montant"])
        return DashboardStats(
            user_count=self._guarded("users", 0, self.store.count, USERS),
            new_user_count=self._guarded("new users", 0, self.store.count, USERS, since=("created_at", since)),
            active_projects=self._guarded(
                "active projects", 0, self.store.count, PROJECTS, {"statut": cfg.active_project_status}
            ),
            pending_projects=self._guarded(
                "pending projects", 0, self.store.count, PROJECTS, {"statut": cfg.pending_project_status}
            ),
            culture_count=self._guarded("cultures", 0, self.store.count, CULTURES),
            total_revenue=sum(_as_amount(row.get("montant")) for row in investments),
            revenue_increase=cfg.revenue_increase_placeholder,
        )

    def fetch_monthly_revenue(self) -> List[RevenuePoint]:
        year = self._now().year
        totals = [0.0] * len(MONTH_LABELS)
        rows = self._guarded(
            "monthly revenue", [], self.store.select, INVESTMENTS, columns=["montant", "date_paiement"]
        )
        for row in rows:
            investment = InvestmentRecord.from_row(row)
            paid_at = as_local_datetime(investment.payment_date, self.tz)
            if paid_at is None or paid_at.year != year:
                continue
            totals[paid_at.month - 1] += _as_amount(investment.amount)
        return [RevenuePoint(name=label, value=value) for label, value in zip(MONTH_LABELS, totals)]

    def fetch_projects_by_type(self) -> List[ProjectTypeShare]:
        links = self._guarded("project cultures", None, self.store.select, PROJECT_CULTURES, columns=["id_culture"])
        if not links:
            return []
        culture_ids = sorted({link["id_culture"] for link in links if link["id_culture"] is not None})
        names: Dict[int, str] = {}
        if culture_ids:
            rows = self._guarded(
                "culture names",
                None,
                self.store.select,
                CULTURES,
                {"id_culture": culture_ids},
                columns=["id_culture", "nom_culture"],
            )
            if rows is None:
                return []
            names = {row["id_culture"]: row["nom_culture"] for row in rows}

        counts: Dict[str, int] = {}
        for link in links:
            name = names.get(link["id_culture"]) or UNKNOWN_CULTURE
            counts[name] = counts.get(name, 0) + 1
        ranked = top_with_overflow(counts.items(), self.config.top_culture_types)
        return [ProjectTypeShare(name=name, value=value) for name, value in ranked]

    def fetch_recent_activities(self) -> List[ActivityItem]:
        now = self._now()
        per_source = self.config.recent_items_per_source
        activities: List[Optional[ActivityItem]] = []

        projects = self._guarded(
            "recent projects",
            [],
            self.store.select,
            PROJECTS,
            columns=["titre", "created_at"],
            order_by="created_at",
            descending=True,
            limit=per_source,
        )
        for project in projects:
            activities.append(
                self._activity(
                    "Nouveau projet soumis",
                    f"Le projet {project['titre'] or 'Sans titre'} a été soumis pour validation",
                    project["created_at"],
                    "FolderKanban",
                    now,
                )
            )

        users = self._guarded(
            "recent users",
            [],
            self.store.select,
            USERS,
            columns=["nom", "prenoms", "created_at"],
            order_by="created_at",
            descending=True,
            limit=per_source,
        )
        for user in users:
            full_name = " ".join(part for part in (user["nom"], user["prenoms"]) if part)
            activities.append(
                self._activity("Utilisateur inscrit", f"{full_name} s'est inscrit", user["created_at"], "Users", now)
            )

        done = self._guarded(
            "completed milestones",
            [],
            self.store.select,
            PROJECT_MILESTONES,
            {"statut": MILESTONE_DONE},
            order_by="date_reelle_execution",
            descending=True,
            limit=per_source,
        )
        milestones = [ProjectMilestoneRecord.from_row(row) for row in done]
        phase_names, titles = self._milestone_labels(milestones)
        for milestone in milestones:
            phase = phase_names.get(milestone.milestone_id) or "inconnue"
            title = titles.get(milestone.project_id) or milestone.project_id
            activities.append(
                self._activity(
                    "Jalon complété",
                    f'La phase "{phase}" a été complétée pour le projet {title}',
                    milestone.executed_at,
                    "Leaf",
                    now,
                )
            )

        # Sort on the source timestamps; the labels are display-only.
        dated = [item for item in activities if item is not None]
        dated.sort(key=lambda item: item.occurred_at, reverse=True)
        return dated[: self.config.recent_activity_limit]

    def fetch_upcoming_milestones(self) -> List[UpcomingMilestone]:
        today = self._now().date()
        rows = self._guarded(
            "upcoming milestones",
            [],
            self.store.select,
            PROJECT_MILESTONES,
            {"statut": MILESTONE_PLANNED},
            order_by="date_prev_planifiee",
            limit=self.config.upcoming_milestone_limit,
        )
        milestones = [ProjectMilestoneRecord.from_row(row) for row in rows]
        phase_names, titles = self._milestone_labels(milestones)

        upcoming: List[UpcomingMilestone] = []
        for milestone in milestones:
            planned = as_local_datetime(milestone.planned_date, self.tz)
            if planned is None:
                continue
            days_until = days_between(today, planned.date())
            upcoming.append(
                UpcomingMilestone(
                    project=titles.get(milestone.project_id) or f"Projet {milestone.project_id}",
                    milestone=phase_names.get(milestone.milestone_id) or "Jalon",
                    planned_date=planned.date(),
                    days_until=days_until,
                    date_label=format_days_until(days_until),
                    progress=milestone_progress(days_until),
                )
            )
        return upcoming

    def _activity(
        self, title: str, description: str, occurred_at: Any, icon: str, now: datetime
    ) -> Optional[ActivityItem]:
        moment = as_local_datetime(occurred_at, self.tz)
        if moment is None:
            logger.debug("Skipping activity %r without timestamp", title)
            return None
        return ActivityItem(
            title=title,
            description=description,
            occurred_at=moment,
            time_label=format_time_ago(moment, now),
            icon=icon,
        )

    def _milestone_labels(
        self, milestones: Sequence[ProjectMilestoneRecord]
    ) -> Tuple[Dict[int, str], Dict[int, str]]:
        """Phase names by milestone id and project titles by project id, empty when lookups fail."""
        milestone_ids = sorted({item.milestone_id for item in milestones if item.milestone_id is not None})
        project_ids = sorted({item.project_id for item in milestones if item.project_id is not None})

        phase_names: Dict[int, str] = {}
        if milestone_ids:
            rows = self._guarded("milestone names", [], self.store.select, MILESTONES, {"id_jalon": milestone_ids})
            phase_names = {record.id: record.name for record in map(MilestoneRecord.from_row, rows)}

        titles: Dict[int, str] = {}
        if project_ids:
            rows = self._guarded(
                "project titles",
                [],
                self.store.select,
                PROJECTS,
                {"id_projet": project_ids},
                columns=["id_projet", "titre"],
            )
            titles = {row["id_projet"]: row["titre"] for row in rows}
        return phase_names, titles
