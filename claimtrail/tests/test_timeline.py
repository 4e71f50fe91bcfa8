"""Tests for claimtrail.claims.timeline module."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from claimtrail.claims.timeline import DEFAULT_ICON, format_relative_time, icon_for, project_timeline

NOW = datetime(2026, 2, 17, 12, 0, 0, tzinfo=timezone.utc)


def _entry(id, action, minutes_ago, description="", actor="WEBHOOK_HANDLER"):
    return SimpleNamespace(
        id=id,
        action=action,
        description=description,
        actor_id=actor,
        timestamp=(NOW - timedelta(minutes=minutes_ago)).replace(tzinfo=None),
    )


class TestFormatRelativeTime:
    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(0), "0 minutes ago"),
            (timedelta(seconds=30), "1 minute ago"),
            (timedelta(seconds=29), "0 minutes ago"),
            (timedelta(minutes=45), "45 minutes ago"),
            (timedelta(minutes=59, seconds=40), "60 minutes ago"),
            (timedelta(hours=1), "1 hour ago"),
            (timedelta(minutes=90), "2 hours ago"),
            (timedelta(hours=23), "23 hours ago"),
            (timedelta(days=1), "1 day ago"),
            (timedelta(days=3, hours=11), "3 days ago"),
            (timedelta(days=3, hours=12), "4 days ago"),
            (timedelta(days=6, hours=23), "7 days ago"),
        ],
    )
    def test_relative_buckets(self, delta, expected):
        assert format_relative_time(NOW - delta, NOW) == expected

    def test_absolute_date_same_year(self):
        assert format_relative_time(datetime(2026, 2, 3, 9, 0, tzinfo=timezone.utc), NOW) == "Feb 3"

    def test_absolute_date_other_year(self):
        assert format_relative_time(datetime(2025, 12, 30, tzinfo=timezone.utc), NOW) == "Dec 30, 2025"

    def test_future_timestamp_clamps_to_zero(self):
        assert format_relative_time(NOW + timedelta(hours=2), NOW) == "0 minutes ago"

    def test_naive_timestamps_are_utc(self):
        naive = (NOW - timedelta(hours=2)).replace(tzinfo=None)
        assert format_relative_time(naive, NOW) == "2 hours ago"

    def test_custom_window(self):
        ts = NOW - timedelta(days=3)
        assert format_relative_time(ts, NOW, window_days=2) == "Feb 14"


class TestIcons:
    def test_known_actions(self):
        assert icon_for("PAYMENT_CONFIRMED") == ("💵", "emerald")
        assert icon_for("FRAUD_ALERT") == ("🚨", "red")
        assert icon_for("WEBHOOK_RECEIVED")[1] == "slate"

    @pytest.mark.parametrize("action", ["SOMETHING_NEW", "", None, 42])
    def test_unknown_actions_get_generic_marker(self, action):
        assert icon_for(action) == DEFAULT_ICON


class TestProjectTimeline:
    def test_orders_by_timestamp_then_id(self):
        entries = [
            _entry(3, "PAYMENT_CONFIRMED", 10),
            _entry(1, "CLAIM_SUBMITTED", 60 * 24 * 10),
            _entry(2, "WEBHOOK_RECEIVED", 10),
        ]
        items = project_timeline(entries, NOW)
        assert [i.id for i in items] == [1, 2, 3]

    def test_item_fields(self):
        items = project_timeline([_entry(7, "FRAUD_ALERT", 120, description="External fraud alert: 81% risk")], NOW)
        item = items[0]
        assert item.label == "FRAUD ALERT"
        assert item.icon == "🚨"
        assert item.color == "red"
        assert item.description == "External fraud alert: 81% risk"
        assert item.actor == "WEBHOOK_HANDLER"
        assert item.relative_time == "2 hours ago"

    def test_unknown_action_does_not_raise(self):
        items = project_timeline([_entry(1, "LEGACY_IMPORT", 5)], NOW)
        assert (items[0].icon, items[0].color) == DEFAULT_ICON

    def test_empty(self):
        assert project_timeline([], NOW) == []

    def test_accepts_iterators(self):
        items = project_timeline(iter([_entry(1, "CLAIM_SUBMITTED", 5)]), NOW)
        assert len(items) == 1
