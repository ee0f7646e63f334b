"""
Pytest configuration and shared fixtures for SprintKeeper tests.
"""
import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, select

from sprintkeeper.schema import NotificationLog, Sprint, SprintCommitment, SprintKind, SprintStatus
from sprintkeeper.services.lifecycle_engine import SprintLifecycleEngine
from sprintkeeper.services.sprint_calendar import SprintCalendar
from sprintkeeper.services.validation_engine import RollingWindowValidator
from sprintkeeper.utils.clock import FixedClock
from sprintkeeper.utils.db import TransactionRunner, build_engine

ANCHOR = datetime(2025, 6, 20, 0, 1, tzinfo=timezone.utc)
CYCLE = timedelta(days=14)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = build_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite with a real connection pool, for tests that use several threads."""
    engine = build_engine(
        f"sqlite:///{tmp_path / 'sprints.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine):
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def sleeps():
    """Delays requested by the transaction runner, instead of real sleeping."""
    return []


@pytest.fixture
def runner(test_engine, sleeps):
    return TransactionRunner(
        bind=test_engine,
        isolation_level="SERIALIZABLE",
        max_retries=3,
        base_delay=0.01,
        max_delay=0.1,
        sleep=sleeps.append,
    )


# ============================================================================
# Domain Fixtures
# ============================================================================

@pytest.fixture
def calendar():
    return SprintCalendar(ANCHOR, CYCLE)


@pytest.fixture
def clock(calendar):
    """Halfway through sprint 40."""
    return FixedClock(calendar.start_of(40) + timedelta(days=7))


@pytest.fixture
def validator():
    return RollingWindowValidator(window_size=6, max_pto=2, min_build=2)


@pytest.fixture
def lifecycle(runner, calendar, clock, validator):
    return SprintLifecycleEngine(
        runner=runner,
        calendar=calendar,
        clock=clock,
        validator=validator,
        future_count=6,
        historic_retention=24,
    )


# ============================================================================
# Helpers
# ============================================================================

def seed_sprints(
    engine,
    calendar: SprintCalendar,
    owner_id: str,
    indices: Iterable[int],
    as_of: datetime,
    kinds: Optional[Dict[int, SprintKind]] = None,
    notes: Optional[Dict[int, str]] = None,
):
    """Insert sprints labelled as they would have been at `as_of`."""
    kinds = kinds or {}
    notes = notes or {}
    with Session(engine) as session:
        for index in indices:
            session.add(Sprint(
                owner_id=owner_id,
                sprint_index=index,
                start_at=calendar.start_of(index),
                end_at=calendar.end_of(index),
                kind=kinds.get(index, SprintKind.UNCOMMITTED),
                note=notes.get(index),
                status=calendar.status_of(index, as_of),
            ))
        session.commit()


def load_sprints(engine, owner_id: str):
    with Session(engine) as session:
        return list(session.exec(
            select(Sprint).where(Sprint.owner_id == owner_id).order_by(Sprint.sprint_index)
        ).all())


def load_commitments(engine, owner_id: Optional[str] = None):
    with Session(engine) as session:
        query = select(SprintCommitment)
        if owner_id is not None:
            query = query.where(SprintCommitment.owner_id == owner_id)
        return list(session.exec(query).all())


def by_status(rows, status: SprintStatus):
    return [row.sprint_index for row in rows if row.status == status]


def load_notifications(engine, owner_id: Optional[str] = None):
    with Session(engine) as session:
        query = select(NotificationLog)
        if owner_id is not None:
            query = query.where(NotificationLog.owner_id == owner_id)
        return list(session.exec(query).all())
