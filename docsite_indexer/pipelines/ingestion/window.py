"""Day-window filter for incremental updates."""

import logging
from datetime import date
from typing import Optional

from dateutil.parser import isoparse

logger = logging.getLogger(__name__)


def parse_lastmod_date(value: str) -> Optional[date]:
    """Date part of a sitemap <lastmod> value.

    Accepts any W3C datetime precision, from ``yyyy`` and ``yyyy-MM-dd`` up to
    ``2024-01-07T10:00:00+09:00``. Returns None if the value is not a date.
    """
    try:
        return isoparse(value.strip()).date()
    except (ValueError, OverflowError, AttributeError):
        return None


def is_within_last_n_days(lastmod: Optional[str], n: int, today: Optional[date] = None) -> bool:
    """True if ``lastmod`` is between ``today - n`` days and ``today``, inclusive."""
    if not lastmod:
        return False

    lastmod_date = parse_lastmod_date(lastmod)
    if lastmod_date is None:
        logger.warning(f"Unparsable lastmod value treated as outside window: {lastmod!r}")
        return False

    days_between = ((today or date.today()) - lastmod_date).days
    return 0 <= days_between <= n


class ChangeWindowFilter:
    """Predicate selecting entries modified within the last ``days`` days."""

    def __init__(self, days: int, today: Optional[date] = None):
        if days < 0:
            raise ValueError(f"Window size must not be negative: {days}")
        self.days = days
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    def __call__(self, lastmod: Optional[str]) -> bool:
        return is_within_last_n_days(lastmod, self.days, self.today)

    def __repr__(self) -> str:
        return f"ChangeWindowFilter(days={self.days}, today={self.today.isoformat()})"
