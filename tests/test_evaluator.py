"""Tests for reminder due-ness evaluation."""

import logging
from datetime import UTC, datetime, timedelta

import pytest

from chime.scheduling.evaluator import filter_due, is_due
from chime.scheduling.timezones import LocalTime
from tests.conftest import make_reminder

NOW = datetime(2025, 1, 15, 13, 0, 0, tzinfo=UTC)


class TestOneTime:
    """Tests for reminders without a cron expression."""

    def test_due_at_scheduled_instant(self):
        """Test a reminder scheduled exactly now is due."""
        assert is_due(make_reminder(scheduled_for=NOW), NOW)

    def test_not_due_one_microsecond_early(self):
        """Test a reminder scheduled just after now is not due."""
        reminder = make_reminder(scheduled_for=NOW + timedelta(microseconds=1))
        assert not is_due(reminder, NOW)

    def test_stays_due_once_past(self):
        """Test an overdue reminder remains due until it fires."""
        reminder = make_reminder(scheduled_for=NOW - timedelta(days=3))
        assert is_due(reminder, NOW)
        assert is_due(reminder, NOW + timedelta(hours=5))

    def test_ignores_last_sent_and_end_date(self):
        """Test only scheduled_for decides one-time due-ness."""
        reminder = make_reminder(
            scheduled_for=NOW,
            last_sent=NOW,
            end_date=NOW - timedelta(days=1),
        )
        assert is_due(reminder, NOW)

    def test_fixed_instant_scenario(self):
        """Test 13:00Z reminder against 12:59:59Z and 13:00:00Z."""
        reminder = make_reminder(scheduled_for=datetime(2025, 1, 15, 13, 0, tzinfo=UTC))
        assert not is_due(reminder, datetime(2025, 1, 15, 12, 59, 59, tzinfo=UTC))
        assert is_due(reminder, datetime(2025, 1, 15, 13, 0, 0, tzinfo=UTC))

    def test_naive_values_are_utc(self):
        """Test naive datetimes (as read back from SQLite) are treated as UTC."""
        reminder = make_reminder(scheduled_for=datetime(2025, 1, 15, 13, 0))
        assert is_due(reminder, NOW)
        assert not is_due(reminder, NOW - timedelta(seconds=1))


class TestRecurring:
    """Tests for reminders with a cron expression."""

    def test_every_minute_without_last_sent(self):
        """Test a matching recurring reminder with no history is due."""
        assert is_due(make_reminder(cron_expression="* * * * *"), NOW)

    def test_same_minute_dedup(self):
        """Test last_sent in the current minute blocks a re-fire."""
        reminder = make_reminder(
            cron_expression="* * * * *",
            last_sent=NOW.replace(second=5, microsecond=123),
        )
        assert not is_due(reminder, NOW.replace(second=50))

    def test_next_minute_after_dedup(self):
        """Test advancing into the next minute makes it due again."""
        reminder = make_reminder(cron_expression="* * * * *", last_sent=NOW)
        assert is_due(reminder, NOW + timedelta(minutes=1))

    def test_dedup_applies_even_when_cron_matches(self):
        """Test dedup short-circuits before matching."""
        reminder = make_reminder(cron_expression="0 13 * * *", last_sent=NOW)
        assert not is_due(reminder, NOW + timedelta(seconds=30))

    def test_future_start_bound(self):
        """Test a matching reminder that has not started is not due."""
        reminder = make_reminder(
            cron_expression="* * * * *",
            scheduled_for=NOW + timedelta(days=1),
        )
        assert not is_due(reminder, NOW)

    def test_start_bound_inclusive(self):
        """Test the start instant itself is inside the window."""
        reminder = make_reminder(cron_expression="* * * * *", scheduled_for=NOW)
        assert is_due(reminder, NOW)

    def test_past_end_date(self):
        """Test an expired window is never due even on an exact match."""
        reminder = make_reminder(
            cron_expression="0 13 15 1 *",
            end_date=NOW - timedelta(minutes=1),
        )
        assert not is_due(reminder, NOW)

    def test_end_date_inclusive(self):
        """Test the end instant itself is still inside the window."""
        reminder = make_reminder(cron_expression="* * * * *", end_date=NOW)
        assert is_due(reminder, NOW)

    def test_cron_mismatch(self):
        """Test a non-matching minute is not due."""
        reminder = make_reminder(cron_expression="30 * * * *")
        assert not is_due(reminder, NOW)

    def test_malformed_cron_never_due(self, caplog: pytest.LogCaptureFixture):
        """Test a wrong field count is not due and is logged at ERROR."""
        reminder = make_reminder(cron_expression="0 13 * *")
        with caplog.at_level(logging.ERROR):
            assert not is_due(reminder, NOW)
        assert any(r.levelno == logging.ERROR for r in caplog.records)

    def test_invalid_timezone_never_due(self, caplog: pytest.LogCaptureFixture):
        """Test an unknown zone is not due and is logged at ERROR."""
        reminder = make_reminder(cron_expression="* * * * *", timezone="Mars/Olympus")
        with caplog.at_level(logging.ERROR):
            assert not is_due(reminder, NOW)
        assert any(r.message == "reminder_timezone_invalid" for r in caplog.records)


class TestWeekdayMorningScenario:
    """Weekday 9am reminder evaluated in the reminder's own timezone."""

    @pytest.fixture
    def reminder(self):
        return make_reminder(
            cron_expression="0 9 * * 1-5",
            timezone="America/New_York",
        )

    def test_monday_nine_local(self, reminder):
        """Test Monday 09:00 New York (14:00Z in winter) is due."""
        assert is_due(reminder, datetime(2025, 1, 20, 14, 0, tzinfo=UTC))

    def test_monday_nine_oh_one_local(self, reminder):
        """Test Monday 09:01 local is not due."""
        assert not is_due(reminder, datetime(2025, 1, 20, 14, 1, tzinfo=UTC))

    def test_saturday_nine_local(self, reminder):
        """Test Saturday 09:00 local is not due."""
        assert not is_due(reminder, datetime(2025, 1, 25, 14, 0, tzinfo=UTC))

    def test_nine_utc_is_not_nine_local(self, reminder):
        """Test the cron fields are not matched against UTC wall-clock time."""
        assert not is_due(reminder, datetime(2025, 1, 20, 9, 0, tzinfo=UTC))

    def test_daylight_saving_offset(self, reminder):
        """Test summer 09:00 New York is 13:00Z."""
        assert is_due(reminder, datetime(2025, 7, 14, 13, 0, tzinfo=UTC))
        assert not is_due(reminder, datetime(2025, 7, 14, 14, 0, tzinfo=UTC))

    def test_default_timezone(self):
        """Test Santiago summer time (UTC-3) projects 12:00Z to 09:00."""
        reminder = make_reminder(
            cron_expression="0 9 * * 1-5", timezone="America/Santiago"
        )
        assert is_due(reminder, datetime(2025, 1, 20, 12, 0, tzinfo=UTC))


class TestInjectedProjection:
    """Tests for evaluation with a deterministic zone projector."""

    def test_uses_injected_projector(self):
        """Test the projector output, not the real zone, drives matching."""
        calls: list[tuple[datetime, str]] = []

        def project(instant: datetime, zone: str) -> LocalTime:
            calls.append((instant, zone))
            return LocalTime(
                minute=0, hour=9, day_of_month=20, month=1, day_of_week=1
            )

        reminder = make_reminder(cron_expression="0 9 * * 1", timezone="Asia/Tokyo")
        assert is_due(reminder, NOW, project=project)
        assert calls == [(NOW, "Asia/Tokyo")]

    def test_projector_not_called_when_guards_fail(self):
        """Test cheap guards short-circuit before projection."""

        def project(instant: datetime, zone: str) -> LocalTime:
            raise AssertionError("projection should not run")

        reminder = make_reminder(
            cron_expression="* * * * *",
            end_date=NOW - timedelta(days=1),
        )
        assert not is_due(reminder, NOW, project=project)


class TestFilterDue:
    """Tests for batch evaluation."""

    def test_returns_only_due(self):
        """Test the due subset is returned."""
        reminders = [
            make_reminder("past", scheduled_for=NOW - timedelta(hours=1)),
            make_reminder("future", scheduled_for=NOW + timedelta(hours=1)),
            make_reminder("every", cron_expression="* * * * *"),
            make_reminder("never", cron_expression="30 * * * *"),
        ]
        due = filter_due(reminders, NOW)
        assert {r.id for r in due} == {"past", "every"}

    def test_one_bad_record_does_not_abort(self, caplog: pytest.LogCaptureFixture):
        """Test an unexpected evaluation error skips only that reminder."""

        def project(instant: datetime, zone: str) -> LocalTime:
            if zone == "Broken/Zone":
                raise RuntimeError("tz database unavailable")
            return LocalTime(minute=0, hour=13, day_of_month=15, month=1, day_of_week=3)

        reminders = [
            make_reminder("bad", cron_expression="* * * * *", timezone="Broken/Zone"),
            make_reminder("good", cron_expression="* * * * *"),
        ]
        with caplog.at_level(logging.ERROR):
            due = filter_due(reminders, NOW, project=project)

        assert [r.id for r in due] == ["good"]
        assert any(r.message == "reminder_evaluation_failed" for r in caplog.records)
