"""
订阅数据访问层
负责 subscriptions 表的 SQL：当前周期（最大 start_date）选择、重叠过滤、条件插入。
日期以 ISO 文本 YYYY-MM-DD 存储，字典序即时间序。
"""
from __future__ import annotations

import datetime as dt
import logging
import sqlite3
from sqlite3 import Connection
from typing import List, Optional, Tuple

from ..domain.errors import (
    CreateFailed,
    DeleteFailed,
    NoActivePeriod,
    NothingToDelete,
    ReadFailed,
    TotalCostFailed,
    UpdateFailed,
)
from ..domain.subscription import Subscription
from ..logs import log_extra

logger = logging.getLogger(__name__)

DDL = """
CREATE TABLE IF NOT EXISTS subscriptions (
  user_id TEXT NOT NULL,
  service_name TEXT NOT NULL,
  month_cost INTEGER NOT NULL CHECK (month_cost >= 0),
  start_date TEXT NOT NULL,
  end_date TEXT,
  PRIMARY KEY (user_id, service_name, start_date)
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_subscriptions_one_open
  ON subscriptions(user_id, service_name) WHERE end_date IS NULL;
CREATE INDEX IF NOT EXISTS idx_subscriptions_user ON subscriptions(user_id);
"""

_COLUMNS = "user_id, service_name, month_cost, start_date, end_date"

# 同一订阅线上的当前周期 start_date
_CURRENT_START_SQL = """
(SELECT MAX(start_date) FROM subscriptions
  WHERE user_id = :user_id AND service_name = :service_name)
"""


def ensure_schema(conn: Connection) -> None:
    conn.executescript(DDL)


def _date_text(d: Optional[dt.date]) -> Optional[str]:
    return d.isoformat() if d is not None else None


def _parse_date(s: Optional[str]) -> Optional[dt.date]:
    return dt.date.fromisoformat(s) if s else None


def _row_to_subscription(row: sqlite3.Row) -> Subscription:
    return Subscription(
        user_id=row["user_id"],
        service_name=row["service_name"],
        cost=int(row["month_cost"]),
        start_date=_parse_date(row["start_date"]),
        end_date=_parse_date(row["end_date"]),
    )


def _params(sub: Subscription) -> dict:
    return {
        "user_id": sub.user_id,
        "service_name": sub.service_name,
        "cost": sub.cost,
        "start_date": _date_text(sub.start_date),
        "end_date": _date_text(sub.end_date),
    }


def create(conn: Connection, sub: Subscription) -> None:
    logger.debug("Repository: creating subscription.", extra=log_extra())
    try:
        conn.execute(
            f"INSERT INTO subscriptions({_COLUMNS}) "
            "VALUES(:user_id, :service_name, :cost, :start_date, :end_date)",
            _params(sub),
        )
    except sqlite3.Error as e:
        raise CreateFailed(f"create failed: {e}") from e


def create_if_no_overlap(conn: Connection, sub: Subscription) -> bool:
    """
    单条语句完成“无冲突才插入”：当前周期未结束、结束晚于新 start_date，
    或新 start_date 不晚于当前周期 start_date 时不插入。
    返回是否插入成功。
    """
    logger.debug("Repository: creating subscription if no overlap.", extra=log_extra())
    try:
        cur = conn.execute(
            f"INSERT INTO subscriptions({_COLUMNS}) "
            "SELECT :user_id, :service_name, :cost, :start_date, :end_date "
            "WHERE NOT EXISTS ("
            "  SELECT 1 FROM subscriptions"
            "  WHERE user_id = :user_id AND service_name = :service_name"
            f"   AND start_date = {_CURRENT_START_SQL}"
            "   AND (end_date IS NULL OR end_date > :start_date OR start_date >= :start_date)"
            ")",
            _params(sub),
        )
    except sqlite3.Error as e:
        raise CreateFailed(f"create failed: {e}") from e
    return cur.rowcount == 1


def read_all_by_user_id(conn: Connection, user_id: str) -> List[Subscription]:
    logger.debug("Repository: reading by user id.", extra=log_extra())
    try:
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM subscriptions WHERE user_id = ? "
            "ORDER BY service_name ASC, start_date ASC",
            (user_id,),
        ).fetchall()
    except sqlite3.Error as e:
        raise ReadFailed(f"read failed: {e}") from e
    return [_row_to_subscription(r) for r in rows]


def get_latest(conn: Connection, user_id: str) -> Subscription:
    """用户所有订阅线中 start_date 最大的一条；无记录抛 NoActivePeriod。"""
    logger.debug("Repository: getting latest subscription.", extra=log_extra())
    try:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM subscriptions WHERE user_id = ? "
            "ORDER BY start_date DESC, service_name ASC LIMIT 1",
            (user_id,),
        ).fetchone()
    except sqlite3.Error as e:
        raise ReadFailed(f"get latest failed: {e}") from e
    if row is None:
        raise NoActivePeriod(f"no subscription for user {user_id}")
    return _row_to_subscription(row)


def get_current_period(conn: Connection, user_id: str, service_name: str) -> Optional[Subscription]:
    logger.debug("Repository: getting current period.", extra=log_extra())
    try:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM subscriptions "
            "WHERE user_id = ? AND service_name = ? ORDER BY start_date DESC LIMIT 1",
            (user_id, service_name),
        ).fetchone()
    except sqlite3.Error as e:
        raise ReadFailed(f"get current period failed: {e}") from e
    return _row_to_subscription(row) if row else None


def get_latest_subscription_date(
    conn: Connection, user_id: str, service_name: str
) -> Tuple[bool, Optional[dt.date], Optional[dt.date]]:
    """
    返回 (has_prior, start_date, end_date)，均取当前周期（最大 start_date）：
    - (False, None, None)  该订阅线从未订阅
    - (True, start, None)  当前周期未结束
    - (True, start, end)   当前周期已结束
    """
    logger.debug("Repository: getting latest subscription date.", extra=log_extra())
    try:
        row = conn.execute(
            "SELECT start_date, end_date FROM subscriptions "
            "WHERE user_id = ? AND service_name = ? ORDER BY start_date DESC LIMIT 1",
            (user_id, service_name),
        ).fetchone()
    except sqlite3.Error as e:
        raise ReadFailed(f"get latest date failed: {e}") from e
    if row is None:
        return False, None, None
    return True, _parse_date(row["start_date"]), _parse_date(row["end_date"])


def update(conn: Connection, sub: Subscription) -> int:
    """Update cost/end_date of the line's current period in one statement; returns rows affected."""
    logger.debug("Repository: updating subscription.", extra=log_extra())
    try:
        cur = conn.execute(
            "UPDATE subscriptions SET month_cost = :cost, end_date = :end_date "
            "WHERE user_id = :user_id AND service_name = :service_name "
            f"AND start_date = {_CURRENT_START_SQL}",
            _params(sub),
        )
    except sqlite3.Error as e:
        raise UpdateFailed(f"update failed: {e}") from e
    return cur.rowcount


def delete(conn: Connection, user_id: str, service_name: str) -> None:
    logger.debug("Repository: deleting subscription.", extra=log_extra())
    try:
        cur = conn.execute(
            "DELETE FROM subscriptions "
            "WHERE user_id = :user_id AND service_name = :service_name "
            f"AND start_date = {_CURRENT_START_SQL}",
            {"user_id": user_id, "service_name": service_name},
        )
    except sqlite3.Error as e:
        raise DeleteFailed(f"delete failed: {e}") from e
    if cur.rowcount == 0:
        raise NothingToDelete(f"no subscription found to delete: {user_id}/{service_name}")


def all_matching_subscriptions_for_period(
    conn: Connection,
    user_id: str,
    service_name: str,
    window_start: dt.date,
    window_end: Optional[dt.date],
) -> List[int]:
    """
    与 [window_start, window_end) 有交集的所有周期费用。
    end_date 为空视为一直有效；window_end 为空视为无上界。
    """
    logger.debug("Repository: getting all matching subscriptions by period.", extra=log_extra())
    try:
        rows = conn.execute(
            "SELECT month_cost FROM subscriptions "
            "WHERE user_id = :user_id AND service_name = :service_name "
            "AND (:window_end IS NULL OR start_date < :window_end) "
            "AND (end_date IS NULL OR end_date >= :window_start)",
            {
                "user_id": user_id,
                "service_name": service_name,
                "window_start": _date_text(window_start),
                "window_end": _date_text(window_end),
            },
        ).fetchall()
    except sqlite3.Error as e:
        raise TotalCostFailed(f"total cost failed: {e}") from e
    return [int(r["month_cost"]) for r in rows]
