from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, Tuple

import pytest

from backend.maintso_vola.config import DashboardConfig
from backend.maintso_vola.repository import DataStoreError, InMemoryDataStore

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class FlakyStore(InMemoryDataStore):
    """In-memory store whose calls can be made to fail per (operation, table)."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.failures: Set[Tuple[str, Optional[str]]] = set()
        self.calls: list = []
        super().__init__(*args, **kwargs)

    def fail(self, operation: str, table: Optional[str] = None) -> None:
        self.failures.add((operation, table))

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if (operation, table) in self.failures or (operation, None) in self.failures:
            raise DataStoreError(f"{operation} on {table} unavailable")

    def select(self, table: str, filters=None, **kwargs: Any):
        self._check("select", table)
        return super().select(table, filters, **kwargs)

    def count(self, table: str, filters=None, **kwargs: Any) -> int:
        self._check("count", table)
        return super().count(table, filters, **kwargs)

    def insert(self, table: str, values):
        self._check("insert", table)
        return super().insert(table, values)

    def update(self, table: str, values, filters) -> int:
        self._check("update", table)
        return super().update(table, values, filters)

    def delete(self, table: str, filters) -> int:
        self._check("delete", table)
        return super().delete(table, filters)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def store(clock) -> FlakyStore:
    return FlakyStore(clock=clock)


@pytest.fixture
def dashboard_config() -> DashboardConfig:
    return DashboardConfig(timezone="UTC")


@pytest.fixture
def roles(store) -> Dict[str, int]:
    rows = store.insert(
        "role",
        [{"nom_role": name} for name in ("admin", "superviseur", "technicien", "investisseur")],
    )
    return {row["nom_role"]: row["id_role"] for row in rows}
