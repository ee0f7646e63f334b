"""
Tests for the sprint tables and enums.
"""
import pytest
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from sprintkeeper.schema import (
    DeliveryStatus,
    NotificationLog,
    NotificationType,
    Sprint,
    SprintCommitment,
    SprintKind,
    SprintStatus,
)

from conftest import ANCHOR, CYCLE


def make_sprint(owner_id="alice", index=0, status=SprintStatus.CURRENT):
    return Sprint(
        owner_id=owner_id,
        sprint_index=index,
        start_at=ANCHOR + index * CYCLE,
        end_at=ANCHOR + (index + 1) * CYCLE,
        status=status,
    )


class TestSprintTable:
    def test_defaults(self, db_session):
        sprint = make_sprint()
        db_session.add(sprint)
        db_session.commit()
        db_session.refresh(sprint)

        assert sprint.id is not None
        assert sprint.kind == SprintKind.UNCOMMITTED
        assert sprint.note is None
        assert sprint.created_at is not None

    def test_index_is_unique_per_owner(self, db_session):
        db_session.add(make_sprint(index=3))
        db_session.commit()

        db_session.add(make_sprint(index=3, status=SprintStatus.FUTURE))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_same_index_for_different_owners(self, db_session):
        db_session.add(make_sprint(owner_id="alice", index=3))
        db_session.add(make_sprint(owner_id="bob", index=3))
        db_session.commit()

        assert len(db_session.exec(select(Sprint)).all()) == 2


class TestSprintCommitmentTable:
    def test_one_record_per_sprint(self, db_session):
        sprint = make_sprint()
        db_session.add(sprint)
        db_session.commit()

        db_session.add(SprintCommitment(owner_id="alice", sprint_id=sprint.id, kind=SprintKind.BUILD, note="api"))
        db_session.commit()
        db_session.add(SprintCommitment(owner_id="alice", sprint_id=sprint.id, kind=SprintKind.TEST))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_record_requires_existing_sprint(self, db_session):
        from uuid import uuid4

        db_session.add(SprintCommitment(owner_id="alice", sprint_id=uuid4(), kind=SprintKind.PTO))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_deleting_sprint_cascades_to_record(self, test_engine):
        with Session(test_engine) as session:
            sprint = make_sprint()
            session.add(sprint)
            session.commit()
            session.add(SprintCommitment(owner_id="alice", sprint_id=sprint.id, kind=SprintKind.BUILD, note="api"))
            session.commit()
            sprint_id = sprint.id

        with test_engine.begin() as conn:
            conn.execute(delete(Sprint.__table__).where(Sprint.__table__.c.id == sprint_id))

        with Session(test_engine) as session:
            assert session.exec(select(SprintCommitment)).all() == []


class TestNotificationLogTable:
    def test_owner_level_entry_has_no_sprint(self, db_session):
        entry = NotificationLog(
            owner_id="alice",
            notification_type=NotificationType.DASHBOARD_COMPLETION,
            payload={"user_name": "alice", "dashboard_url": "http://localhost"},
            status=DeliveryStatus.SUCCESS,
        )
        db_session.add(entry)
        db_session.commit()
        db_session.refresh(entry)

        assert entry.sprint_id is None
        assert entry.payload["user_name"] == "alice"
        assert entry.created_at is not None

    def test_deleting_sprint_cascades_to_entries(self, test_engine):
        with Session(test_engine) as session:
            sprint = make_sprint()
            session.add(sprint)
            session.commit()
            session.add(NotificationLog(
                owner_id="alice",
                sprint_id=sprint.id,
                notification_type=NotificationType.NEW_COMMITMENT,
                payload={"error": "webhook down"},
                status=DeliveryStatus.FAILED,
            ))
            session.commit()
            sprint_id = sprint.id

        with test_engine.begin() as conn:
            conn.execute(delete(Sprint.__table__).where(Sprint.__table__.c.id == sprint_id))

        with Session(test_engine) as session:
            assert session.exec(select(NotificationLog)).all() == []


class TestSprintKind:
    @pytest.mark.parametrize("raw, expected", [
        ("build", SprintKind.BUILD),
        ("Build", SprintKind.BUILD),
        (" TEST ", SprintKind.TEST),
        ("pto", SprintKind.PTO),
        ("PTO", SprintKind.PTO),
        ("uncommitted", SprintKind.UNCOMMITTED),
        (None, SprintKind.UNCOMMITTED),
        ("", SprintKind.UNCOMMITTED),
        ("   ", SprintKind.UNCOMMITTED),
        (SprintKind.TEST, SprintKind.TEST),
    ])
    def test_parse(self, raw, expected):
        assert SprintKind.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["vacation", "builds", 3])
    def test_parse_rejects_unknown(self, raw):
        with pytest.raises(ValueError):
            SprintKind.parse(raw)

    def test_labels(self):
        assert [kind.label for kind in SprintKind] == ["Build", "Test", "PTO", "Uncommitted"]

    def test_is_committed(self):
        assert SprintKind.BUILD.is_committed
        assert SprintKind.PTO.is_committed
        assert not SprintKind.UNCOMMITTED.is_committed
