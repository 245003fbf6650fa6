from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from ..models import CultureRecord
from ..repository import DataStoreError
from ..schema import CULTURES
from .base import EntityService

logger = logging.getLogger(__name__)


class CultureService(EntityService):
    """Crop catalog."""

    def list_cultures(self) -> List[CultureRecord]:
        try:
            rows = self.store.select(CULTURES, order_by="nom_culture")
        except DataStoreError as exc:
            logger.warning("Error fetching cultures: %s", exc)
            return []
        return [CultureRecord.from_row(row) for row in rows]

    def get_culture(self, culture_id: int) -> Optional[CultureRecord]:
        try:
            rows = self.store.select(CULTURES, {"id_culture": culture_id}, limit=1)
        except DataStoreError as exc:
            logger.warning("Error fetching culture %s: %s", culture_id, exc)
            return None
        return CultureRecord.from_row(rows[0]) if rows else None

    def create_culture(self, culture: CultureRecord) -> Optional[CultureRecord]:
        try:
            rows = self.store.insert(CULTURES, culture.to_row())
        except DataStoreError as exc:
            logger.warning("Error creating culture %r: %s", culture.name, exc)
            return None
        return CultureRecord.from_row(rows[0])

    def update_culture(self, culture_id: int, changes: Mapping[str, Any]) -> bool:
        values = CultureRecord.columns_for(changes)
        values["modified_at"] = self.clock()
        try:
            updated = self.store.update(CULTURES, values, {"id_culture": culture_id})
        except DataStoreError as exc:
            logger.warning("Error updating culture %s: %s", culture_id, exc)
            return False
        if not updated:
            logger.info("Culture %s not found for update", culture_id)
        return updated > 0

    def delete_culture(self, culture_id: int) -> bool:
        try:
            deleted = self.store.delete(CULTURES, {"id_culture": culture_id})
        except DataStoreError as exc:
            logger.warning("Error deleting culture %s: %s", culture_id, exc)
            return False
        return deleted > 0
