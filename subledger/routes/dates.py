from __future__ import annotations

import datetime as dt
import re

from fastapi import HTTPException

_MONTH_RE = re.compile(r"^(\d{2})-(\d{4})$")


def parse_month(s: str, field: str) -> dt.date:
    """'MM-YYYY' -> first day of that month; bad input is a 400 naming the field."""
    m = _MONTH_RE.match((s or "").strip())
    if not m:
        raise HTTPException(status_code=400, detail=f"invalid {field}: expected MM-YYYY, got {s!r}")
    month, year = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12 or year < 1:
        raise HTTPException(status_code=400, detail=f"invalid {field}: month out of range in {s!r}")
    return dt.date(year, month, 1)


def parse_month_opt(s: str | None, field: str) -> dt.date | None:
    return parse_month(s, field) if s else None


def format_month(d: dt.date | None) -> str | None:
    return d.strftime("%m-%Y") if d else None
