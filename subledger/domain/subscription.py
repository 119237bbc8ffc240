from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, replace

from .errors import InvalidPeriod, OverlapRejected


@dataclass(frozen=True)
class Subscription:
    """One billing period of one service for one user."""

    user_id: str
    service_name: str
    cost: int
    start_date: dt.date
    end_date: dt.date | None = None

    @property
    def is_open(self) -> bool:
        return self.end_date is None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "service_name": self.service_name,
            "cost": self.cost,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


def month_start(d: dt.date) -> dt.date:
    """Truncate a date to the first day of its month."""
    return d.replace(day=1)


def normalize(sub: Subscription) -> Subscription:
    """Return ``sub`` with both dates truncated to month granularity."""
    return replace(
        sub,
        start_date=month_start(sub.start_date),
        end_date=month_start(sub.end_date) if sub.end_date else None,
    )


def validate_period(sub: Subscription) -> None:
    if not sub.user_id:
        raise InvalidPeriod("user_id is required")
    if not sub.service_name or not sub.service_name.strip():
        raise InvalidPeriod("service_name is required")
    if sub.cost < 0:
        raise InvalidPeriod("cost cannot be negative")
    if sub.end_date is not None and sub.end_date < sub.start_date:
        raise InvalidPeriod(
            f"end_date {sub.end_date.isoformat()} is before start_date {sub.start_date.isoformat()}"
        )


def check_no_overlap(
    has_prior: bool,
    prior_end: dt.date | None,
    new_start: dt.date,
    prior_start: dt.date | None = None,
) -> None:
    """
    新周期不能与该订阅线最近一期重叠：
    - 无历史：允许
    - 最近一期未结束（end_date 为空）：拒绝
    - 新 start_date 不晚于最近一期 start_date：拒绝（含 start == end 的单月周期）
    - 最近一期 end_date 晚于新 start_date：拒绝；相等允许
    """
    if not has_prior:
        return
    if prior_end is None:
        raise OverlapRejected("previous subscription has not ended")
    if prior_start is not None and new_start <= prior_start:
        raise OverlapRejected(
            f"new start {new_start.isoformat()} is not after previous start {prior_start.isoformat()}"
        )
    if prior_end > new_start:
        raise OverlapRejected(
            f"previous subscription ends {prior_end.isoformat()}, after new start {new_start.isoformat()}"
        )


def overlaps_window(
    start: dt.date,
    end: dt.date | None,
    window_start: dt.date,
    window_end: dt.date | None,
) -> bool:
    """Python twin of the repository overlap filter; None bounds are unbounded."""
    if window_end is not None and not start < window_end:
        return False
    return end is None or end >= window_start
