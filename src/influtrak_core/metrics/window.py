"""Attribution window normalization.

Dashboard date pickers send ISO-8601 bounds (often empty). Bounds are parsed
strictly: a malformed value is rejected instead of being compared.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional

from ..schemas.records import ensure_utc
from .exceptions import InvalidWindowError


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_DATE_ONLY = re.compile(r"\d{4}-\d{2}-\d{2}")


@dataclass(frozen=True)
class AttributionWindow:
    """Inclusive [start, end] range in UTC."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= ensure_utc(moment) <= self.end

    @classmethod
    def open_ended(cls, now: Optional[datetime] = None) -> "AttributionWindow":
        """Window from the epoch to now."""
        end = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
        return cls(start=EPOCH, end=end)


def _is_missing(raw: Optional[str]) -> bool:
    return raw is None or not raw.strip()


def _parse_bound(bound: str, raw: str, end_of_day: bool) -> datetime:
    value = raw.strip()

    try:
        if _DATE_ONLY.fullmatch(value):
            day = date.fromisoformat(value)
            moment = datetime.combine(day, time.max if end_of_day else time.min)
        else:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidWindowError(bound, raw, str(exc)) from exc

    return ensure_utc(moment)


def normalize_window(
    raw_from: Optional[str] = None,
    raw_to: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AttributionWindow:
    """Parse raw window bounds into an AttributionWindow.

    Args:
        raw_from: ISO-8601 start (missing/blank -> epoch)
        raw_to: ISO-8601 end (missing/blank -> now). A date-only value
            covers the whole day.
        now: Override for the current time

    Returns:
        AttributionWindow in UTC

    Raises:
        InvalidWindowError: If a bound is malformed or from > to
    """
    start = EPOCH if _is_missing(raw_from) else _parse_bound("from", raw_from, False)

    if _is_missing(raw_to):
        end = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    else:
        end = _parse_bound("to", raw_to, True)

    if start > end:
        raise InvalidWindowError(
            "from", raw_from, f"window start is after end ({end.isoformat()})"
        )

    return AttributionWindow(start=start, end=end)
