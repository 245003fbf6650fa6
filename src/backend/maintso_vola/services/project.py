from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import PROJECT_STATUSES, ProjectCultureRecord, ProjectRecord
from ..repository import DataStore, DataStoreError
from ..schema import CULTURES, PROJECT_CULTURES, PROJECTS
from .base import EntityService

logger = logging.getLogger(__name__)


def _culture_links(project_id: int, culture_ids: Iterable[int], created_by: Optional[str]) -> List[Dict[str, Any]]:
    return [
        {"id_projet": project_id, "id_culture": culture_id, "created_by": created_by}
        for culture_id in dict.fromkeys(culture_ids)
    ]


class ProjectService(EntityService):
    """
    Projects and their culture associations.

    Multi-step writes (create with cultures, culture replacement, deletion)
    run inside one store transaction, so a failure part-way leaves the
    previous state untouched.
    """

    def list_projects(self) -> List[ProjectRecord]:
        try:
            rows = self.store.select(PROJECTS, order_by="created_at", descending=True)
        except DataStoreError as exc:
            logger.warning("Error fetching projects: %s", exc)
            return []
        return [ProjectRecord.from_row(row) for row in rows]

    def get_project(self, project_id: int) -> Optional[ProjectRecord]:
        try:
            rows = self.store.select(PROJECTS, {"id_projet": project_id}, limit=1)
        except DataStoreError as exc:
            logger.warning("Error fetching project %s: %s", project_id, exc)
            return None
        return ProjectRecord.from_row(rows[0]) if rows else None

    def list_project_cultures(self, project_id: int) -> List[ProjectCultureRecord]:
        try:
            links = self.store.select(PROJECT_CULTURES, {"id_projet": project_id}, order_by="id_projet_culture")
            names = self._culture_names(self.store, [link["id_culture"] for link in links])
        except DataStoreError as exc:
            logger.warning("Error fetching cultures for project %s: %s", project_id, exc)
            return []
        return [ProjectCultureRecord.from_row(link, culture_name=names.get(link["id_culture"])) for link in links]

    def create_project(self, project: ProjectRecord, culture_ids: Sequence[int] = ()) -> Optional[ProjectRecord]:
        try:
            with self.store.transaction() as tx:
                created = tx.insert(PROJECTS, project.to_row())[0]
                links = _culture_links(created["id_projet"], culture_ids, project.created_by)
                if links:
                    tx.insert(PROJECT_CULTURES, links)
        except DataStoreError as exc:
            logger.warning("Error creating project %r: %s", project.title, exc)
            return None
        return ProjectRecord.from_row(created)

    def update_project(self, project_id: int, changes: Mapping[str, Any]) -> bool:
        values = ProjectRecord.columns_for(changes)
        values["modified_at"] = self.clock()
        try:
            updated = self.store.update(PROJECTS, values, {"id_projet": project_id})
        except DataStoreError as exc:
            logger.warning("Error updating project %s: %s", project_id, exc)
            return False
        return updated > 0

    def replace_project_cultures(self, project_id: int, culture_ids: Sequence[int], user_id: Optional[str]) -> bool:
        try:
            with self.store.transaction() as tx:
                tx.delete(PROJECT_CULTURES, {"id_projet": project_id})
                links = _culture_links(project_id, culture_ids, user_id)
                if links:
                    tx.insert(PROJECT_CULTURES, links)
        except DataStoreError as exc:
            logger.warning("Error replacing cultures of project %s: %s", project_id, exc)
            return False
        return True

    def delete_project(self, project_id: int) -> bool:
        """
        Delete the culture associations, then the project.

        When the association delete fails the project row is not touched.
        """

        try:
            with self.store.transaction() as tx:
                tx.delete(PROJECT_CULTURES, {"id_projet": project_id})
                deleted = tx.delete(PROJECTS, {"id_projet": project_id})
        except DataStoreError as exc:
            logger.warning("Error deleting project %s: %s", project_id, exc)
            return False
        return deleted > 0

    def count_projects_by_status(self) -> Dict[str, int]:
        try:
            rows = self.store.select(PROJECTS, columns=["statut"])
        except DataStoreError as exc:
            logger.warning("Error fetching project stats: %s", exc)
            return {}
        stats = {status: 0 for status in PROJECT_STATUSES}
        for row in rows:
            if row["statut"] in stats:
                stats[row["statut"]] += 1
        return stats

    @staticmethod
    def _culture_names(store: DataStore, culture_ids: Iterable[int]) -> Dict[int, str]:
        wanted = sorted({culture_id for culture_id in culture_ids if culture_id is not None})
        if not wanted:
            return {}
        rows = store.select(CULTURES, {"id_culture": wanted}, columns=["id_culture", "nom_culture"])
        return {row["id_culture"]: row["nom_culture"] for row in rows}
