from __future__ import annotations

import datetime as dt
import logging
import sqlite3
from sqlite3 import Connection
from typing import Callable, Type, TypeVar

from ..db import ConnectionProvider
from ..domain.errors import (
    InfrastructureFailure,
    InvalidPeriod,
    NoActivePeriod,
    OverlapRejected,
    ServiceCreateFailed,
    ServiceDeleteFailed,
    ServiceError,
    ServiceReadFailed,
    ServiceTotalCostFailed,
    ServiceUpdateFailed,
)
from ..domain.subscription import Subscription, check_no_overlap, normalize, validate_period
from ..logs import log_extra
from ..repository import subscription_repo

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SubscriptionService:
    """
    订阅业务规则：
    - 同一订阅线（user_id + service_name）周期不重叠，创建时在同一事务内检查并插入
    - update/delete 永远作用于当前周期（最大 start_date）
    - 费用汇总：与查询窗口有交集的周期费用之和，无匹配返回 0

    Business errors (validation, not found) propagate as raised. Storage
    failures, whether from the repository or from opening/locking the
    connection, are re-raised as the operation's ``ServiceError`` kind with the
    lower error as ``__cause__``.
    """

    def __init__(self, provider: ConnectionProvider, repo=subscription_repo):
        self.provider = provider
        self.repo = repo

    def _run(self, unit: Callable[[Connection], T], failure: Type[ServiceError], tx: bool = False) -> T:
        run = self.provider.execute_tx if tx else self.provider.execute
        try:
            return run(unit)
        except (InfrastructureFailure, sqlite3.Error) as e:
            logger.warning("Service: %s: %s", failure.__name__, e, extra=log_extra())
            raise failure(str(e)) from e

    def create(self, sub: Subscription) -> Subscription:
        logger.debug("Service: creating subscription.", extra=log_extra())
        sub = normalize(sub)
        validate_period(sub)

        def unit(conn: Connection) -> Subscription:
            has_prior, prior_start, prior_end = self.repo.get_latest_subscription_date(
                conn, sub.user_id, sub.service_name
            )
            check_no_overlap(has_prior, prior_end, sub.start_date, prior_start)
            if not self.repo.create_if_no_overlap(conn, sub):
                raise OverlapRejected("conflicting period was created concurrently")
            return sub

        return self._run(unit, ServiceCreateFailed, tx=True)

    def update(self, sub: Subscription) -> Subscription:
        """Set cost/end_date on the line's current period; ``sub.start_date`` is ignored."""
        logger.debug("Service: updating subscription.", extra=log_extra())
        sub = normalize(sub)
        if sub.cost < 0:
            raise InvalidPeriod("cost cannot be negative")

        def unit(conn: Connection) -> Subscription:
            current = self.repo.get_current_period(conn, sub.user_id, sub.service_name)
            if current is None:
                raise NoActivePeriod(f"no subscription {sub.service_name!r} for user {sub.user_id}")
            if sub.end_date is not None and sub.end_date < current.start_date:
                raise InvalidPeriod(
                    f"end_date {sub.end_date.isoformat()} is before current period start {current.start_date.isoformat()}"
                )
            if self.repo.update(conn, sub) == 0:
                raise NoActivePeriod(f"no subscription {sub.service_name!r} for user {sub.user_id}")
            return Subscription(current.user_id, current.service_name, sub.cost, current.start_date, sub.end_date)

        return self._run(unit, ServiceUpdateFailed, tx=True)

    def delete(self, user_id: str, service_name: str) -> None:
        logger.debug("Service: deleting subscription.", extra=log_extra())
        self._run(lambda conn: self.repo.delete(conn, user_id, service_name), ServiceDeleteFailed)

    def read_all_by_user_id(self, user_id: str) -> list[Subscription]:
        logger.debug("Service: reading subscriptions by user ID.", extra=log_extra())
        return self._run(lambda conn: self.repo.read_all_by_user_id(conn, user_id), ServiceReadFailed)

    def get_latest(self, user_id: str) -> Subscription:
        logger.debug("Service: getting latest subscription.", extra=log_extra())
        return self._run(lambda conn: self.repo.get_latest(conn, user_id), ServiceReadFailed)

    def total_subscriptions_cost(
        self,
        user_id: str,
        service_name: str,
        start: dt.date,
        end: dt.date | None,
    ) -> int:
        logger.debug("Service: calculating total cost.", extra=log_extra())
        if end is not None and end < start:
            raise InvalidPeriod(f"window end {end.isoformat()} is before start {start.isoformat()}")
        costs = self._run(
            lambda conn: self.repo.all_matching_subscriptions_for_period(conn, user_id, service_name, start, end),
            ServiceTotalCostFailed,
        )
        return sum(costs)

    def close(self) -> None:
        self.provider.close()
