"""
Tests for build_engine() and init_db().
"""
import pytest
from unittest.mock import patch
from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from sprintkeeper.core.exceptions import ConfigurationError
from sprintkeeper.utils.db import build_engine, init_db


@pytest.fixture
def empty_engine():
    engine = build_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    yield engine
    engine.dispose()


class TestBuildEngine:
    def test_sqlite_enforces_foreign_keys(self, empty_engine):
        with empty_engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_pool_options_only_for_server_databases(self):
        with patch("sprintkeeper.utils.db.create_engine") as create:
            build_engine("postgresql://u:p@db/sprints")
        kwargs = create.call_args.kwargs
        assert kwargs["pool_size"] == 10
        assert kwargs["pool_pre_ping"] is True

    def test_missing_url(self):
        with patch("sprintkeeper.utils.db.settings") as settings:
            settings.database_url = ""
            with pytest.raises(ConfigurationError):
                build_engine()


class TestInitDb:
    def test_creates_tables(self, empty_engine):
        init_db(bind=empty_engine)
        tables = set(inspect(empty_engine).get_table_names())
        assert {"sprints", "sprint_commitments"} <= tables

    def test_is_repeatable(self, empty_engine):
        init_db(bind=empty_engine)
        init_db(bind=empty_engine)

    def test_retries_until_database_is_up(self, empty_engine):
        failure = OperationalError("CREATE TABLE", {}, Exception("connection refused"))
        with patch.object(SQLModel.metadata, "create_all", side_effect=[failure, None]) as create_all, \
                patch("sprintkeeper.utils.db.time.sleep") as sleep:
            init_db(bind=empty_engine, max_retries=3, delay=0.5)

        assert create_all.call_count == 2
        sleep.assert_called_once_with(0.5)

    def test_gives_up_after_max_retries(self, empty_engine):
        failure = OperationalError("CREATE TABLE", {}, Exception("connection refused"))
        with patch.object(SQLModel.metadata, "create_all", side_effect=failure), \
                patch("sprintkeeper.utils.db.time.sleep") as sleep:
            with pytest.raises(OperationalError):
                init_db(bind=empty_engine, max_retries=2, delay=0.1)

        assert sleep.call_count == 1
