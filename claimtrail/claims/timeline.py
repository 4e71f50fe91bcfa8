"""Timeline projection for claim audit history.

Turns an ordered sequence of audit entries into display-ready rows.  The
projection is a pure function of its inputs: the current time is passed in
explicitly, nothing reads the clock and the ledger is never touched.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any


@dataclass(frozen=True)
class TimelineItem:
    """One row of a claim timeline."""

    id: int
    action: str
    label: str
    icon: str
    color: str
    description: str
    actor: str | None
    timestamp: datetime
    relative_time: str


# action tag -> (icon, color)
EVENT_ICONS: dict[str, tuple[str, str]] = {
    "CLAIM_SUBMITTED": ("📝", "blue"),
    "CLAIM_RECEIVED": ("📥", "blue"),
    "CLAIM_ACKNOWLEDGED": ("✓", "green"),
    "DOCUMENTS_UPLOADED": ("📎", "purple"),
    "DOCUMENT_ANALYZED": ("📄", "purple"),
    "FRAUD_CHECK_COMPLETED": ("🔍", "yellow"),
    "FRAUD_ALERT": ("🚨", "red"),
    "COVERAGE_VERIFIED": ("📋", "indigo"),
    "DAMAGE_ASSESSED": ("🔧", "orange"),
    "SETTLEMENT_DRAFTED": ("💰", "green"),
    "CLAIM_APPROVED": ("✅", "green"),
    "CLAIM_REJECTED": ("❌", "red"),
    "PAYMENT_ISSUED": ("💵", "emerald"),
    "PAYMENT_CONFIRMED": ("💵", "emerald"),
    "CLAIM_CLOSED": ("📁", "gray"),
    "STATUS_CHANGED": ("🔄", "blue"),
    "ESCALATION": ("⚠️", "amber"),
    "WEBHOOK_RECEIVED": ("📡", "slate"),
    "WEBHOOK_ANOMALY": ("⚠️", "amber"),
    "WEBHOOK_REJECTED": ("⛔", "red"),
}

DEFAULT_ICON: tuple[str, str] = ("📌", "gray")


def icon_for(action: Any) -> tuple[str, str]:
    """Icon and color for an action tag; unknown or malformed tags get the generic marker."""
    if not isinstance(action, str):
        return DEFAULT_ICON
    return EVENT_ICONS.get(action, DEFAULT_ICON)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'' if n == 1 else 's'} ago"


def format_relative_time(timestamp: datetime, now: datetime, window_days: int = 7) -> str:
    """Human-relative age of *timestamp* as seen at *now*.

    Under an hour: minutes.  Under a day: hours.  Under *window_days*: days.
    Beyond that an absolute date ("Mar 4", with the year when it differs
    from *now*).  Timestamps in the future count as zero minutes old.
    """
    ts = _as_utc(timestamp)
    current = _as_utc(now)
    diff = max(current - ts, timedelta(0))

    hours = diff.total_seconds() / 3600
    if hours < 1:
        return _plural(_round_half_up(diff.total_seconds() / 60), "minute")
    if hours < 24:
        return _plural(_round_half_up(hours), "hour")
    days = hours / 24
    if days < window_days:
        return _plural(_round_half_up(days), "day")

    label = f"{ts:%b} {ts.day}"
    if ts.year != current.year:
        label += f", {ts.year}"
    return label


def project_timeline(entries: Iterable[Any], now: datetime, window_days: int = 7) -> list[TimelineItem]:
    """Project audit entries into chronologically ordered timeline rows.

    *entries* may be ORM ``AuditEntry`` rows or any objects exposing ``id``,
    ``action``, ``description``, ``actor_id`` and ``timestamp``.
    """
    rows = sorted(entries, key=lambda e: (_as_utc(e.timestamp), e.id))

    items: list[TimelineItem] = []
    for entry in rows:
        action = entry.action if isinstance(entry.action, str) else str(entry.action)
        icon, color = icon_for(action)
        items.append(
            TimelineItem(
                id=entry.id,
                action=action,
                label=action.replace("_", " "),
                icon=icon,
                color=color,
                description=entry.description or "",
                actor=getattr(entry, "actor_id", None),
                timestamp=entry.timestamp,
                relative_time=format_relative_time(entry.timestamp, now, window_days),
            )
        )
    return items
