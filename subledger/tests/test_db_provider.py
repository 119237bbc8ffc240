import sqlite3
import threading

import pytest

from subledger.domain.errors import InfrastructureFailure


def _count(provider):
    return provider.execute(lambda c: c.execute("SELECT COUNT(1) AS n FROM subscriptions").fetchone()["n"])


def _insert(conn, start):
    conn.execute(
        "INSERT INTO subscriptions(user_id, service_name, month_cost, start_date, end_date) "
        "VALUES('u', 'svc', 1, ?, ?)",
        (start, start),
    )


def test_execute_returns_unit_result(provider):
    assert provider.execute(lambda c: c.execute("SELECT 41 + 1").fetchone()[0]) == 42


def test_execute_tx_commits_on_success(provider):
    provider.execute_tx(lambda c: _insert(c, "2024-01-01"))
    assert _count(provider) == 1


def test_execute_tx_rolls_back_and_propagates_unchanged(provider):
    class Boom(Exception):
        pass

    err = Boom("stop")

    def unit(conn):
        _insert(conn, "2024-01-01")
        _insert(conn, "2024-02-01")
        raise err

    with pytest.raises(Boom) as ei:
        provider.execute_tx(unit)
    assert ei.value is err
    assert _count(provider) == 0


def test_execute_without_tx_keeps_earlier_statements(provider):
    def unit(conn):
        _insert(conn, "2024-01-01")
        _insert(conn, "2024-01-01")  # duplicate key

    with pytest.raises(sqlite3.IntegrityError):
        provider.execute(unit)
    assert _count(provider) == 1


def test_execute_passes_driver_errors_untranslated(provider):
    with pytest.raises(sqlite3.OperationalError):
        provider.execute(lambda c: c.execute("SELECT * FROM no_such_table"))


def test_close_twice_is_safe_and_blocks_new_units(provider):
    provider.close()
    provider.close()
    assert provider.closed
    with pytest.raises(InfrastructureFailure):
        provider.execute(lambda c: None)
    with pytest.raises(InfrastructureFailure):
        provider.execute_tx(lambda c: None)


def test_each_unit_gets_its_own_connection(provider):
    seen = []
    barrier = threading.Barrier(2)

    def unit(conn):
        seen.append(id(conn))
        barrier.wait(timeout=5)

    threads = [threading.Thread(target=provider.execute, args=(unit,)) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(set(seen)) == 2
