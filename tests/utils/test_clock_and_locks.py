"""
Tests for the clock seam and per-owner locks.
"""
import threading
from datetime import datetime, timedelta, timezone

import pytest

from sprintkeeper.utils.clock import FixedClock, SystemClock, as_utc
from sprintkeeper.utils.locks import OwnerLocks


class TestClock:
    def test_as_utc(self):
        naive = datetime(2025, 6, 20, 0, 1)
        assert as_utc(naive) == datetime(2025, 6, 20, 0, 1, tzinfo=timezone.utc)

        shifted = datetime(2025, 6, 20, 2, 1, tzinfo=timezone(timedelta(hours=2)))
        assert as_utc(shifted).tzinfo == timezone.utc
        assert as_utc(shifted).hour == 0

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None

    def test_fixed_clock(self):
        clock = FixedClock(datetime(2025, 6, 20))
        assert clock.now() == datetime(2025, 6, 20, tzinfo=timezone.utc)

        clock.advance(timedelta(days=14))
        assert clock.now() == datetime(2025, 7, 4, tzinfo=timezone.utc)

        clock.set(datetime(2030, 1, 1, tzinfo=timezone.utc))
        assert clock.now().year == 2030


class TestOwnerLocks:
    def test_other_owners_are_not_blocked(self):
        locks = OwnerLocks()
        entered = threading.Event()

        def other():
            with locks.hold("bob"):
                entered.set()

        with locks.hold("alice"):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(2)
        thread.join(timeout=2)

    def test_hold_excludes_other_threads(self):
        locks = OwnerLocks()
        entered = threading.Event()

        with locks.hold("alice"):
            def contender():
                with locks.hold("alice"):
                    entered.set()

            thread = threading.Thread(target=contender)
            thread.start()
            assert not entered.wait(0.1)
            assert len(locks) == 1

        thread.join(timeout=2)
        assert entered.is_set()
        assert len(locks) == 0

    def test_released_locks_are_dropped(self):
        locks = OwnerLocks()
        for owner_id in ("alice", "bob", "carol"):
            with locks.hold(owner_id):
                assert owner_id in locks
        assert len(locks) == 0
        assert "alice" not in locks

    def test_hold_releases_on_error(self):
        locks = OwnerLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("alice"):
                raise RuntimeError("boom")
        assert "alice" not in locks

        with locks.hold("alice"):
            assert "alice" in locks
