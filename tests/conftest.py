"""Pytest fixtures for absence engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from absence_engine.api import create_app
from absence_engine.config import AbsencePolicy
from absence_engine.database import get_engine, make_session_factory
from absence_engine.domain import AbsenceDraft, AbsenceType
from absence_engine.events import EventEmitter
from absence_engine.models import Base
from absence_engine.services import ManagerRecipientResolver, RequestLifecycleService
from absence_engine.store import (
    InMemoryAbsenceStore,
    InMemoryNotificationSink,
    SqlAbsenceStore,
    SqlNotificationSink,
)

# 2025-03-03 is a Monday.
MONDAY = date(2025, 3, 3)
FRIDAY = date(2025, 3, 7)
NEXT_MONDAY = date(2025, 3, 10)
NEXT_FRIDAY = date(2025, 3, 14)

ALICE = "alice"
BOB = "bob"
CAROL = "carol"
MANAGER = "mgr-1"

MANAGERS = {ALICE: [MANAGER], BOB: [MANAGER], CAROL: [MANAGER]}

FIXED_NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def make_draft(
    employee_id: str = ALICE,
    start: date | None = MONDAY,
    end: date | None = FRIDAY,
    absence_type: AbsenceType = AbsenceType.VACATION,
    **kwargs: Any,
) -> AbsenceDraft:
    """Build a draft with Mon-Fri vacation defaults."""
    return AbsenceDraft(
        employee_id=employee_id,
        absence_type=absence_type,
        start_date=start,
        end_date=end,
        **kwargs,
    )


@pytest.fixture
def policy() -> AbsencePolicy:
    """Default policy: 20 days entitlement, one approval level."""
    return AbsencePolicy(default_entitlement=Decimal("20"))


@pytest.fixture
def store() -> InMemoryAbsenceStore:
    return InMemoryAbsenceStore()


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def make_service(store, sink, emitter):
    """Factory for a lifecycle service over the in-memory store."""

    def _make(policy: AbsencePolicy | None = None, **kwargs: Any) -> RequestLifecycleService:
        kwargs.setdefault("clock", fixed_clock)
        return RequestLifecycleService(
            store=store,
            sink=sink,
            policy=policy or AbsencePolicy(default_entitlement=Decimal("20")),
            resolver=ManagerRecipientResolver(MANAGERS),
            emitter=emitter,
            **kwargs,
        )

    return _make


@pytest.fixture
def service(make_service, policy) -> RequestLifecycleService:
    return make_service(policy)


# SQL-backed fixtures


@pytest.fixture
def sql_engine(tmp_path) -> Generator[Engine, None, None]:
    """File-backed SQLite database with the absence schema."""
    engine = get_engine(f"sqlite:///{tmp_path / 'absence.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine) -> sessionmaker[Session]:
    return make_session_factory(sql_engine)


@pytest.fixture
def sql_service(session_factory, emitter) -> RequestLifecycleService:
    """Lifecycle service over SQLite; bulk runs on a pool of workers."""
    return RequestLifecycleService(
        store=SqlAbsenceStore(session_factory),
        sink=SqlNotificationSink(session_factory),
        policy=AbsencePolicy(default_entitlement=Decimal("20")),
        resolver=ManagerRecipientResolver(MANAGERS),
        emitter=emitter,
        clock=fixed_clock,
        max_workers=8,
    )


@pytest_asyncio.fixture
async def client(service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app wired to the in-memory service."""
    app = create_app(service=service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
