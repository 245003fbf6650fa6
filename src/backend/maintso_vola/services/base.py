from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from ..repository import DataStore


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityService:
    """Shared wiring: every service talks to one injected data store."""

    def __init__(self, store: DataStore, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self.clock = clock or utcnow
