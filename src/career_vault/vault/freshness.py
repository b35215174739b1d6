"""Recency scoring for vault items.

Freshness is a coarse step function of whole days since the item was
last touched, so that the score shown to a user is easy to explain:

=================  =====
days since update  score
=================  =====
0 – 30              100
31 – 90              90
91 – 180             80
181 – 365            70
366 – 730            60
731 – 1095           50
> 1095               40
=================  =====

Items with no timestamp at all score a neutral 50.  Timestamps in the
future count as zero days old.
"""

from __future__ import annotations

import calendar
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from career_vault.vault.models import VaultItem

NO_TIMESTAMP_SCORE = 50

# (max days inclusive, score), most recent first
_BUCKETS: tuple[tuple[int, int], ...] = (
    (30, 100),
    (90, 90),
    (180, 80),
    (365, 70),
    (730, 60),
    (1095, 50),
)
_OLDEST_SCORE = 40


def reference_timestamp(item: VaultItem) -> datetime | None:
    """The timestamp freshness is measured from: last update, else creation."""
    return item.last_updated_at or item.created_at


def score_for_days(days: int) -> int:
    """Map a whole-day age onto the bucket table."""
    for limit, score in _BUCKETS:
        if days <= limit:
            return score
    return _OLDEST_SCORE


def freshness(item: VaultItem, now: datetime | None = None) -> int:
    """Return the 0–100 freshness score of *item* as of *now*."""
    stamp = reference_timestamp(item)
    if stamp is None:
        return NO_TIMESTAMP_SCORE
    current = now or datetime.now(UTC)
    days = max(0, (current - stamp).days)
    return score_for_days(days)


def months_before(moment: datetime, months: int) -> datetime:
    """Return *moment* shifted back by whole calendar months.

    The day is clamped to the end of the target month, so 31 August minus
    six months is 28 (or 29) February.
    """
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def is_stale(item: VaultItem, now: datetime, *, months: int = 6) -> bool:
    """True when the item has no update timestamp or it is older than *months*."""
    if item.last_updated_at is None:
        return True
    return item.last_updated_at < months_before(now, months)
