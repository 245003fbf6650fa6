from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from ..models import DEFAULT_USER_ROLE, DEFAULT_USER_STATUS, UserRecord
from ..repository import DataStore, DataStoreError
from ..schema import ROLES, USER_ROLES, USERS
from .base import EntityService

logger = logging.getLogger(__name__)


class RoleAssignmentError(LookupError):
    """The user or the requested role does not exist."""


class UserService(EntityService):
    """
    Accounts and their role.

    Writing a user is three steps: the ``utilisateur`` row, the role id
    lookup by name, then the ``utilisateurs_par_role`` link (updated when
    present, inserted otherwise). The steps share a transaction, so a
    missing role rolls back the user row as well.
    """

    def list_users(self) -> List[UserRecord]:
        try:
            users = self.store.select(USERS, order_by="created_at", descending=True)
            roles = self._roles_by_user(self.store, [user["id_utilisateur"] for user in users])
        except DataStoreError as exc:
            logger.warning("Error fetching users: %s", exc)
            return []
        return [self._to_record(user, roles.get(user["id_utilisateur"])) for user in users]

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        try:
            users = self.store.select(USERS, {"id_utilisateur": user_id}, limit=1)
            roles = self._roles_by_user(self.store, [user_id]) if users else {}
        except DataStoreError as exc:
            logger.warning("Error fetching user %s: %s", user_id, exc)
            return None
        return self._to_record(users[0], roles.get(user_id)) if users else None

    def create_user(self, user: UserRecord) -> Optional[UserRecord]:
        try:
            with self.store.transaction() as tx:
                created = tx.insert(USERS, user.to_row())[0]
                role_id = self._role_id(tx, user.role)
                self._assign_role(tx, created["id_utilisateur"], role_id)
        except (DataStoreError, RoleAssignmentError) as exc:
            logger.warning("Error creating user %r: %s", user.email, exc)
            return None
        return self._to_record(created, user.role)

    def update_user(self, user_id: str, changes: Mapping[str, Any]) -> bool:
        changes = dict(changes)
        role = changes.pop("role", None)
        values = UserRecord.columns_for(changes)
        try:
            with self.store.transaction() as tx:
                if not tx.count(USERS, {"id_utilisateur": user_id}):
                    raise RoleAssignmentError(f"user {user_id} does not exist")
                if values:
                    tx.update(USERS, values, {"id_utilisateur": user_id})
                if role:
                    self._assign_role(tx, user_id, self._role_id(tx, role))
        except (DataStoreError, RoleAssignmentError) as exc:
            logger.warning("Error updating user %s: %s", user_id, exc)
            return False
        return True

    def delete_user(self, user_id: str) -> bool:
        try:
            with self.store.transaction() as tx:
                tx.delete(USER_ROLES, {"id_utilisateur": user_id})
                deleted = tx.delete(USERS, {"id_utilisateur": user_id})
        except DataStoreError as exc:
            logger.warning("Error deleting user %s: %s", user_id, exc)
            return False
        return deleted > 0

    @staticmethod
    def _role_id(store: DataStore, role: str) -> int:
        rows = store.select(ROLES, {"nom_role": role}, columns=["id_role"], limit=1)
        if not rows:
            raise RoleAssignmentError(f"unknown role {role!r}")
        return rows[0]["id_role"]

    @staticmethod
    def _assign_role(store: DataStore, user_id: str, role_id: int) -> None:
        existing = store.select(USER_ROLES, {"id_utilisateur": user_id}, columns=["id"], limit=1)
        if existing:
            store.update(USER_ROLES, {"id_role": role_id}, {"id": existing[0]["id"]})
        else:
            store.insert(USER_ROLES, {"id_utilisateur": user_id, "id_role": role_id})

    @staticmethod
    def _roles_by_user(store: DataStore, user_ids: List[str]) -> Dict[str, str]:
        if not user_ids:
            return {}
        links = store.select(USER_ROLES, {"id_utilisateur": user_ids}, columns=["id_utilisateur", "id_role"])
        role_ids = sorted({link["id_role"] for link in links})
        if not role_ids:
            return {}
        roles = store.select(ROLES, {"id_role": role_ids}, columns=["id_role", "nom_role"])
        names = {role["id_role"]: role["nom_role"] for role in roles}
        return {link["id_utilisateur"]: names[link["id_role"]] for link in links if link["id_role"] in names}

    @staticmethod
    def _to_record(row: Mapping[str, Any], role: Optional[str]) -> UserRecord:
        record = UserRecord.from_row(row, role=role or DEFAULT_USER_ROLE)
        return replace(record, name=record.name or "Sans nom", status=record.status or DEFAULT_USER_STATUS)
