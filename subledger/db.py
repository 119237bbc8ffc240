from __future__ import annotations

# subledger/db.py
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from .config import get_db_path, get_settings
from .domain.errors import InfrastructureFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def get_conn(db_path: str | None = None, busy_timeout_s: float | None = None) -> Iterator[sqlite3.Connection]:
    """
    获取 SQLite 连接。优先使用显式传入的 db_path，否则走 get_db_path()。
    autocommit 模式（isolation_level=None），事务由调用方显式 BEGIN。
    打开 foreign_keys，设置 row_factory 为 Row。
    """
    path = db_path or get_db_path()
    timeout = busy_timeout_s if busy_timeout_s is not None else get_settings()["busy_timeout_s"]
    conn = sqlite3.connect(
        path,
        timeout=timeout,
        check_same_thread=False,
        isolation_level=None,
    )
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.row_factory = sqlite3.Row
        yield conn
    finally:
        conn.close()


class ConnectionProvider:
    """Runs units of work against fresh connections.

    ``execute`` runs the unit in autocommit mode, every statement is atomic on
    its own. ``execute_tx`` wraps the unit in ``BEGIN IMMEDIATE`` and commits
    only if it returns; any exception rolls back and is re-raised unchanged.
    Each unit gets its own connection, so concurrent units never share one.
    """

    def __init__(self, db_path: str | None = None, busy_timeout_s: float | None = None):
        self.db_path = db_path
        self.busy_timeout_s = busy_timeout_s
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise InfrastructureFailure("connection provider is closed")

    def execute(self, unit: Callable[[sqlite3.Connection], T]) -> T:
        self._check_open()
        with get_conn(self.db_path, self.busy_timeout_s) as conn:
            return unit(conn)

    def execute_tx(self, unit: Callable[[sqlite3.Connection], T]) -> T:
        self._check_open()
        with get_conn(self.db_path, self.busy_timeout_s) as conn:
            # IMMEDIATE 先拿写锁，读-判断-写之间不会被并发写入插队
            conn.execute("BEGIN IMMEDIATE")
            try:
                result = unit(conn)
            except BaseException:
                conn.rollback()
                logger.debug("transaction rolled back")
                raise
            conn.commit()
            return result

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        logger.debug("connection provider closed")
