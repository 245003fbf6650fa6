from __future__ import annotations

from datetime import timedelta

import pytest

from backend.maintso_vola.models import UserRecord
from backend.maintso_vola.schema import ROLES, USER_ROLES, USERS
from backend.maintso_vola.services import UserService

from .conftest import NOW


@pytest.fixture
def service(store, clock) -> UserService:
    return UserService(store, clock=clock)


def test_create_user_assigns_role(store, service, roles):
    created = service.create_user(UserRecord(name="Rakoto", first_names="Jean", email="jean@example.mg", role="superviseur"))

    assert created.id is not None
    assert created.role == "superviseur"
    assert created.status == "en_attente"
    assert created.display_name == "Rakoto Jean"
    links = store.select(USER_ROLES, {"id_utilisateur": created.id})
    assert [link["id_role"] for link in links] == [roles["superviseur"]]


def test_create_user_with_unknown_role_rolls_back(store, service, roles):
    store.delete(ROLES, {"nom_role": "investisseur"})

    created = service.create_user(UserRecord(name="Rabe", email="rabe@example.mg", role="investisseur"))

    assert created is None
    assert store.count(USERS) == 0
    assert store.count(USER_ROLES) == 0


def test_list_users_resolves_roles_and_defaults(store, service, roles):
    store.insert(
        USERS,
        [
            {"id_utilisateur": "u-1", "nom": "Rakoto", "statut": "actif", "created_at": NOW - timedelta(days=2)},
            {"id_utilisateur": "u-2", "nom": "", "created_at": NOW - timedelta(hours=2)},
        ],
    )
    store.insert(USER_ROLES, {"id_utilisateur": "u-1", "id_role": roles["admin"]})

    users = service.list_users()

    assert [(user.id, user.name, user.role, user.status) for user in users] == [
        ("u-2", "Sans nom", "technicien", "en_attente"),
        ("u-1", "Rakoto", "admin", "actif"),
    ]


def test_get_user(store, service, roles):
    created = service.create_user(UserRecord(name="Rakoto", email="r@example.mg", role="admin"))

    assert service.get_user(created.id).role == "admin"
    assert service.get_user("missing") is None


def test_update_user_changes_fields_and_role(store, service, roles):
    created = service.create_user(UserRecord(name="Rakoto", email="r@example.mg", role="technicien"))

    assert service.update_user(created.id, {"status": "actif", "role": "admin"}) is True

    user = service.get_user(created.id)
    assert (user.status, user.role) == ("actif", "admin")
    assert store.count(USER_ROLES, {"id_utilisateur": created.id}) == 1


def test_update_user_inserts_missing_role_link(store, service, roles):
    store.insert(USERS, {"id_utilisateur": "u-1", "nom": "Rakoto"})

    assert service.update_user("u-1", {"role": "investisseur"}) is True
    assert service.get_user("u-1").role == "investisseur"


def test_update_missing_user_or_role_fails(store, service, roles):
    created = service.create_user(UserRecord(name="Rakoto", email="r@example.mg", role="technicien"))

    assert service.update_user("missing", {"status": "actif"}) is False
    assert service.update_user(created.id, {"status": "inactif", "role": "pirate"}) is False
    assert service.get_user(created.id).status == "en_attente"


def test_delete_user(store, service, roles):
    created = service.create_user(UserRecord(name="Rakoto", email="r@example.mg", role="technicien"))

    assert service.delete_user(created.id) is True
    assert store.count(USERS) == 0
    assert store.count(USER_ROLES) == 0
    assert service.delete_user(created.id) is False


def test_list_users_fail_soft(store, service):
    store.insert(USERS, {"nom": "Rakoto"})
    store.fail("select", USER_ROLES)

    assert service.list_users() == []
