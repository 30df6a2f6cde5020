import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True)
class Month:
    slug: str
    start: date
    end: date


def current_month_slug(*, today: Optional[date] = None) -> str:
    if today is None:
        today = datetime.now(ZoneInfo(get_settings().timezone)).date()
    return f"{today.year:04d}-{today.month:02d}"


def resolve_month(month: Optional[str], *, today: Optional[date] = None) -> Month:
    slug = month or current_month_slug(today=today)
    match = _MONTH_RE.match(slug)
    if not match:
        raise ValueError("Month must be formatted as YYYY-MM")
    year, month_num = int(match.group(1)), int(match.group(2))
    if not 1 <= month_num <= 12:
        raise ValueError("Month must be between 01 and 12")

    first = date(year, month_num, 1)
    if month_num == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month_num + 1, 1)
    return Month(slug, first, next_month - date.resolution)
