from subledger.logs import LogContext, current_request_id, search_logs, set_request_id


def test_log_context_writes_and_search_filters():
    log = LogContext("CREATE_SUBSCRIPTION", user="tester")
    log.set_entity("subscription", "u/svc")
    log.set_payload({"name": "svc", "cost": 100})
    log.set_after({"cost": 100})
    log.write("OK")

    LogContext("DELETE_SUBSCRIPTION").write("ERROR", "NothingToDelete: x")

    total, items = search_logs(None, None, None, None, 1, 20)
    assert total == 2

    total, items = search_logs("svc", None, None, None, 1, 20)
    assert total == 1
    assert items[0]["action"] == "CREATE_SUBSCRIPTION"
    assert items[0]["entity_id"] == "u/svc"
    assert items[0]["user"] == "tester"

    total, items = search_logs(None, "DELETE_SUBSCRIPTION", None, None, 1, 20)
    assert total == 1 and items[0]["err_msg"] == "NothingToDelete: x"


def test_log_context_uses_current_request_id():
    rid = set_request_id("req-abc")
    assert current_request_id() == "req-abc" == rid
    assert LogContext("X").request_id == "req-abc"


def test_search_by_entity():
    a = LogContext("UPDATE_SUBSCRIPTION")
    a.set_entity("subscription", "u1/svc")
    a.write("OK")
    b = LogContext("UPDATE_SUBSCRIPTION")
    b.set_entity("subscription", "u2/svc")
    b.write("OK")

    total, items = search_logs(None, None, None, None, 1, 20, entity_id="u2/svc")
    assert total == 1
    assert items[0]["entity_id"] == "u2/svc"
