"""Conditional GET support (``If-Modified-Since``)."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

# Day and month names are always English in HTTP dates, whatever LC_TIME says.
MONTHS = {
    name: number
    for number, name in enumerate(
        ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"), start=1
    )
}
_DAY = r"(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun)"
_LONG_DAY = r"(?:Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday)"
_MONTH = r"(?P<month>" + "|".join(MONTHS) + ")"
_TIME = r"(?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})"

# IMF-fixdate, obsolete RFC 850 and asctime, in the order HTTP recommends trying them.
HTTP_DATE_PATTERNS = (
    re.compile(rf"{_DAY}, (?P<day>\d{{2}}) {_MONTH} (?P<year>\d{{4}}) {_TIME} GMT", re.IGNORECASE),
    re.compile(rf"{_LONG_DAY}, (?P<day>\d{{2}})-{_MONTH}-(?P<year>\d{{2}}) {_TIME} GMT", re.IGNORECASE),
    re.compile(rf"{_DAY} {_MONTH}\s+(?P<day>\d{{1,2}}) {_TIME} (?P<year>\d{{4}})", re.IGNORECASE),
)


def parse_http_date(value: str) -> datetime:
    text = value.strip()
    for pattern in HTTP_DATE_PATTERNS:
        match = pattern.fullmatch(text)
        if match is None:
            continue
        year = int(match["year"])
        if len(match["year"]) == 2:
            year += 1900 if year >= 69 else 2000
        try:
            return datetime(
                year,
                MONTHS[match["month"].title()],
                int(match["day"]),
                int(match["hour"]),
                int(match["minute"]),
                int(match["second"]),
                tzinfo=timezone.utc,
            )
        except ValueError:
            break
    raise ValueError(f"unparsable HTTP date: {value!r}")


def is_not_modified(updated: Optional[datetime], since: datetime) -> bool:
    """True when the object has not changed after ``since`` at second precision."""

    if updated is None:
        return False
    if updated.tzinfo is None:
        updated = updated.replace(tzinfo=timezone.utc)
    return not updated.replace(microsecond=0) > since
