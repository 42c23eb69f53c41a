"""
jobless.constants — Shared Constants & Helpers
================================================

Single source of truth for the module catalogue, the pin slot cap and the
small clock helpers every layer needs.  Import from here instead of
duplicating in engine, services and routes.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

# ---------------------------------------------------------------------------
# Platform modules — a badge's ``category`` is one of these (or "admin")
# ---------------------------------------------------------------------------
MODULES: tuple[str, ...] = ("hub", "studio", "academy", "alpha", "info", "general")

BADGE_CATEGORIES: frozenset[str] = frozenset(MODULES) | {"admin"}

RARITIES: tuple[str, ...] = ("common", "rare", "epic", "legendary")

# ---------------------------------------------------------------------------
# Pinning
# ---------------------------------------------------------------------------
MAX_PINNED_BADGES = 3
PIN_SLOTS: tuple[int, ...] = tuple(range(1, MAX_PINNED_BADGES + 1))

SECONDS_PER_DAY = 86400

# Rolling windows for criteria ``timeframe`` qualifiers ("daily" is
# calendar-based, see :func:`timeframe_start`).
TIMEFRAME_DAYS: dict[str, int] = {
    "weekly": 7,
    "monthly": 30,
    "yearly": 365,
}


# ---------------------------------------------------------------------------
# Clock helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Number of complete days from *earlier* to *later* (floored)."""
    delta = as_utc(later) - as_utc(earlier)
    return int(delta.total_seconds() // SECONDS_PER_DAY)


def start_of_day(now: datetime) -> datetime:
    """Midnight of *now*'s calendar day, in *now*'s own timezone."""
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def timeframe_start(timeframe: str, now: datetime) -> datetime | None:
    """Lower bound for a criteria timeframe, or None for ``all_time``."""
    if timeframe == "daily":
        return start_of_day(now)
    days = TIMEFRAME_DAYS.get(timeframe)
    if days is None:
        return None
    return now - timedelta(days=days)
