from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from backend.maintso_vola.config import DatabaseConfig
from backend.maintso_vola.repository import (
    DataStoreError,
    InMemoryDataStore,
    SQLDataStore,
    build_data_store_from_env,
)
from backend.maintso_vola.schema import CULTURES, PROJECTS, USERS

from .conftest import NOW


@pytest.fixture
def sql_store() -> SQLDataStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return SQLDataStore(engine, create_schema=True)


@pytest.fixture(params=["memory", "sql"])
def any_store(request, clock):
    if request.param == "memory":
        return InMemoryDataStore(clock=clock)
    return request.getfixturevalue("sql_store")


def test_insert_returns_generated_keys(any_store):
    rows = any_store.insert(CULTURES, [{"nom_culture": "Riz"}, {"nom_culture": "Maïs"}])

    assert sorted(row["nom_culture"] for row in rows) == ["Maïs", "Riz"]
    assert rows[0]["id_culture"] != rows[1]["id_culture"]
    assert rows[0]["created_at"] is not None


def test_string_primary_key_defaults_to_uuid(any_store):
    row = any_store.insert(USERS, {"nom": "Rakoto"})[0]

    assert isinstance(row["id_utilisateur"], str)
    assert len(row["id_utilisateur"]) == 36


def test_select_filters_orders_and_limits(any_store):
    any_store.insert(
        PROJECTS,
        [
            {"titre": "A", "statut": "planifié", "budget_total": 300.0},
            {"titre": "B", "statut": "en cours", "budget_total": None},
            {"titre": "C", "statut": "planifié", "budget_total": 100.0},
            {"titre": "D", "statut": "terminé", "budget_total": 200.0},
        ],
    )

    rows = any_store.select(PROJECTS, {"statut": ["planifié", "en cours"]}, columns=["titre"], order_by="budget_total")
    assert [row["titre"] for row in rows] == ["C", "A", "B"]

    rows = any_store.select(PROJECTS, order_by="budget_total", descending=True, limit=2, columns=["titre"])
    assert [row["titre"] for row in rows] == ["A", "D"]

    assert any_store.count(PROJECTS, {"statut": "planifié"}) == 2
    assert any_store.count(PROJECTS) == 4


def test_nulls_sort_last_when_descending(any_store):
    any_store.insert(PROJECTS, [{"titre": "sans", "budget_total": None}, {"titre": "avec", "budget_total": 5.0}])

    rows = any_store.select(PROJECTS, order_by="budget_total", descending=True, columns=["titre"])

    assert [row["titre"] for row in rows] == ["avec", "sans"]


def test_update_and_delete_report_affected_rows(any_store):
    any_store.insert(CULTURES, [{"nom_culture": "Riz"}, {"nom_culture": "Vanille"}])

    assert any_store.update(CULTURES, {"description": "céréale"}, {"nom_culture": "Riz"}) == 1
    assert any_store.update(CULTURES, {"description": "x"}, {"nom_culture": "Absente"}) == 0
    assert any_store.select(CULTURES, {"nom_culture": "Riz"})[0]["description"] == "céréale"

    assert any_store.delete(CULTURES, {"nom_culture": "Vanille"}) == 1
    assert any_store.delete(CULTURES, {"nom_culture": "Vanille"}) == 0
    assert any_store.count(CULTURES) == 1


def test_unknown_table_or_column_raises_store_error(any_store):
    with pytest.raises(DataStoreError):
        any_store.select("nope")
    with pytest.raises(DataStoreError):
        any_store.select(CULTURES, {"nope": 1})


def test_failed_transaction_rolls_back(any_store):
    with pytest.raises(DataStoreError):
        with any_store.transaction() as tx:
            tx.insert(CULTURES, {"nom_culture": "Riz"})
            tx.select(CULTURES, {"nope": 1})

    assert any_store.count(CULTURES) == 0


def test_transaction_commits_all_writes(any_store):
    with any_store.transaction() as tx:
        project = tx.insert(PROJECTS, {"titre": "Rizière"})[0]
        tx.update(PROJECTS, {"statut": "en cours"}, {"id_projet": project["id_projet"]})

    assert any_store.select(PROJECTS, columns=["statut"]) == [{"statut": "en cours"}]


def test_sql_constraint_violation_is_wrapped(sql_store):
    with pytest.raises(DataStoreError):
        sql_store.insert(CULTURES, {"description": "sans nom"})


def test_memory_since_filter_and_seeded_tables(clock):
    store = InMemoryDataStore(
        {
            USERS: [
                {"nom": "Ancien", "created_at": NOW - timedelta(days=30)},
                {"nom": "Récent", "created_at": NOW - timedelta(days=2)},
            ]
        },
        clock=clock,
    )

    assert store.count(USERS, since=("created_at", NOW - timedelta(days=7))) == 1
    assert store.count(USERS) == 2


def test_memory_sequence_continues_after_explicit_ids(clock):
    store = InMemoryDataStore({CULTURES: [{"id_culture": 10, "nom_culture": "Riz"}]}, clock=clock)

    row = store.insert(CULTURES, {"nom_culture": "Maïs"})[0]

    assert row["id_culture"] == 11


def test_memory_dates_compare_in_filters(clock):
    store = InMemoryDataStore(clock=clock)
    store.insert(PROJECTS, {"titre": "A", "date_lancement": date(2024, 1, 1)})

    assert store.count(PROJECTS, {"date_lancement": date(2024, 1, 1)}) == 1


def test_build_data_store_without_url_returns_none():
    assert build_data_store_from_env(DatabaseConfig(url=None)) is None


def test_build_data_store_with_url_creates_schema():
    store = build_data_store_from_env(DatabaseConfig(url="sqlite://", create_schema=True))

    assert isinstance(store, SQLDataStore)
    assert store.count(CULTURES) == 0


def test_created_at_uses_store_clock():
    moment = datetime(2023, 1, 1, tzinfo=timezone.utc)
    store = InMemoryDataStore(clock=lambda: moment)

    assert store.insert(CULTURES, {"nom_culture": "Riz"})[0]["created_at"] == moment


def test_memory_mixes_naive_and_aware_timestamps(clock):
    store = InMemoryDataStore(
        {
            USERS: [
                {"nom": "Naïf", "created_at": datetime(2024, 6, 14, 12, 0)},
                {"nom": "Conscient", "created_at": NOW - timedelta(days=3)},
            ]
        },
        clock=clock,
    )

    rows = store.select(USERS, order_by="created_at", descending=True, columns=["nom"])

    assert [row["nom"] for row in rows] == ["Naïf", "Conscient"]
    assert store.count(USERS, since=("created_at", NOW - timedelta(days=2))) == 1


def test_memory_uncomparable_values_raise_store_error(clock):
    store = InMemoryDataStore({USERS: [{"nom": "Texte", "created_at": "hier"}]}, clock=clock)

    with pytest.raises(DataStoreError):
        store.count(USERS, since=("created_at", NOW))
