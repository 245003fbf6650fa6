from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional

from ..models import (
    PAYMENT_STATUS_IN_PROGRESS,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_UNENGAGED,
    CostRecord,
    FinancialSummary,
    PaymentRecord,
)
from ..repository import DataStoreError
from ..schema import COSTS, PAYMENTS, PROJECTS
from .base import EntityService

logger = logging.getLogger(__name__)


def derive_payment_status(total_paid: float, total_cost: float) -> str:
    """Payment status of a cost line as a function of what has been paid against it."""
    if total_paid >= total_cost:
        return PAYMENT_STATUS_PAID
    if total_paid > 0:
        return PAYMENT_STATUS_IN_PROGRESS
    return PAYMENT_STATUS_UNENGAGED


def _sum_amounts(rows: Iterable[Mapping[str, Any]], column: str) -> float:
    return sum(float(row.get(column) or 0) for row in rows)


class FinanceService(EntityService):
    """Project cost lines, their payments and the per-project money summary."""

    def list_project_costs(self, project_id: int) -> List[CostRecord]:
        try:
            rows = self.store.select(COSTS, {"id_projet": project_id}, order_by="created_at", descending=True)
        except DataStoreError as exc:
            logger.warning("Error fetching costs for project %s: %s", project_id, exc)
            return []
        return [CostRecord.from_row(row) for row in rows]

    def list_payments(self, cost_id: int) -> List[PaymentRecord]:
        try:
            rows = self.store.select(PAYMENTS, {"id_cout_projet": cost_id}, order_by="date_paiement", descending=True)
        except DataStoreError as exc:
            logger.warning("Error fetching payments for cost %s: %s", cost_id, exc)
            return []
        return [PaymentRecord.from_row(row) for row in rows]

    def create_payment(self, payment: PaymentRecord) -> Optional[PaymentRecord]:
        try:
            rows = self.store.insert(PAYMENTS, payment.to_row())
        except DataStoreError as exc:
            logger.warning("Error creating payment for cost %s: %s", payment.cost_id, exc)
            return None
        if not self.update_cost_payment_status(payment.cost_id):
            logger.warning("Payment %s recorded but status of cost %s is stale", rows[0]["id_paiement"], payment.cost_id)
        return PaymentRecord.from_row(rows[0])

    def update_cost_payment_status(self, cost_id: int) -> bool:
        """
        Recompute and store the payment status of a cost line.

        The status is never set directly: it always follows the payment
        history, so running this again without new payments changes nothing.
        """

        try:
            costs = self.store.select(COSTS, {"id_cout_projet": cost_id}, columns=["montant_total"], limit=1)
            if not costs:
                logger.warning("Cost %s not found", cost_id)
                return False
            payments = self.store.select(PAYMENTS, {"id_cout_projet": cost_id}, columns=["montant"])
            status = derive_payment_status(_sum_amounts(payments, "montant"), float(costs[0]["montant_total"] or 0))
            self.store.update(COSTS, {"statut_paiement": status}, {"id_cout_projet": cost_id})
        except DataStoreError as exc:
            logger.warning("Error updating payment status of cost %s: %s", cost_id, exc)
            return False
        return True

    def get_financial_summary(self, project_id: int) -> FinancialSummary:
        try:
            projects = self.store.select(PROJECTS, {"id_projet": project_id}, columns=["budget_total"], limit=1)
            if not projects:
                logger.warning("Project %s not found for financial summary", project_id)
                return FinancialSummary()
            costs = self.store.select(COSTS, {"id_projet": project_id}, columns=["id_cout_projet", "montant_total"])
            cost_ids = [cost["id_cout_projet"] for cost in costs]
            payments = self.store.select(PAYMENTS, {"id_cout_projet": cost_ids}, columns=["montant"]) if cost_ids else []
        except DataStoreError as exc:
            logger.warning("Error building financial summary for project %s: %s", project_id, exc)
            return FinancialSummary()

        total_budget = float(projects[0]["budget_total"] or 0)
        total_paid = _sum_amounts(payments, "montant")
        return FinancialSummary(
            total_budget=total_budget,
            total_committed=_sum_amounts(costs, "montant_total"),
            total_paid=total_paid,
            remaining=total_budget - total_paid,
        )
