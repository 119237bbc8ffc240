#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Subscription ledger CLI (SQLite)

Commands:
  init                Create the subscriptions and operation_log tables
  add                 Start a new subscription period for a user/service line
  update              Change cost / end month of a line's current period
  delete              Delete a line's current period
  list                List every period of a user
  latest              Show the user's most recent subscription overall
  total               Total cost of a line across a month window
  report              Print a user's periods with per-window flags and export CSV

Notes:
- Months are given as MM-YYYY; --end omitted means still active.
- DB path comes from --db, SUBLEDGER_DB_PATH, or config.yaml (db_path).
"""

import argparse
import datetime as dt
import os
import sys

import pandas as pd

from subledger.api import ensure_schemas
from subledger.config import get_settings
from subledger.db import ConnectionProvider
from subledger.domain.errors import SubscriptionError
from subledger.domain.subscription import Subscription, overlaps_window
from subledger.logs import LogContext, setup_logging
from subledger.services.subscription_svc import SubscriptionService


def parse_month(s: str) -> dt.date:
    try:
        return dt.datetime.strptime(s, "%m-%Y").date()
    except ValueError:
        raise SystemExit(f"Bad month {s!r}, expected MM-YYYY")


def fmt_month(d):
    return d.strftime("%m-%Y") if d else "-"


def make_service(args) -> SubscriptionService:
    if args.db:
        os.environ["SUBLEDGER_DB_PATH"] = args.db
    cfg = get_settings()
    setup_logging("DEBUG" if args.verbose else cfg["log_level"])
    ensure_schemas()
    return SubscriptionService(ConnectionProvider(busy_timeout_s=cfg["busy_timeout_s"]))


def _print_sub(sub: Subscription):
    print(f"{sub.user_id}  {sub.service_name:<20} {sub.cost:>8}  {fmt_month(sub.start_date)} -> {fmt_month(sub.end_date)}")


# ---------------- Commands ----------------

def cmd_init(args):
    make_service(args).close()
    print("DB initialized.")


def cmd_add(args):
    svc = make_service(args)
    sub = Subscription(args.user, args.name, args.cost, parse_month(args.start),
                       parse_month(args.end) if args.end else None)
    log = LogContext("CREATE_SUBSCRIPTION", user="cli")
    log.set_payload(sub.to_dict())
    try:
        created = svc.create(sub)
    except SubscriptionError as e:
        log.write("ERROR", f"{type(e).__name__}: {e}")
        raise SystemExit(f"Create failed: {e}")
    finally:
        svc.close()
    log.write("OK")
    _print_sub(created)


def cmd_update(args):
    svc = make_service(args)
    sub = Subscription(args.user, args.name, args.cost, dt.date.today(),
                       parse_month(args.end) if args.end else None)
    log = LogContext("UPDATE_SUBSCRIPTION", user="cli")
    log.set_payload(sub.to_dict())
    try:
        updated = svc.update(sub)
    except SubscriptionError as e:
        log.write("ERROR", f"{type(e).__name__}: {e}")
        raise SystemExit(f"Update failed: {e}")
    finally:
        svc.close()
    log.write("OK")
    _print_sub(updated)


def cmd_delete(args):
    svc = make_service(args)
    log = LogContext("DELETE_SUBSCRIPTION", user="cli")
    log.set_entity("subscription", f"{args.user}/{args.name}")
    try:
        svc.delete(args.user, args.name)
    except SubscriptionError as e:
        log.write("ERROR", f"{type(e).__name__}: {e}")
        raise SystemExit(f"Delete failed: {e}")
    finally:
        svc.close()
    log.write("OK")
    print("Current period deleted.")


def cmd_list(args):
    svc = make_service(args)
    try:
        subs = svc.read_all_by_user_id(args.user)
    finally:
        svc.close()
    if not subs:
        print("(empty)")
    for s in subs:
        _print_sub(s)


def cmd_latest(args):
    svc = make_service(args)
    try:
        _print_sub(svc.get_latest(args.user))
    except SubscriptionError as e:
        raise SystemExit(str(e))
    finally:
        svc.close()


def cmd_total(args):
    svc = make_service(args)
    try:
        total = svc.total_subscriptions_cost(args.user, args.name, parse_month(args.start),
                                             parse_month(args.end) if args.end else None)
    except SubscriptionError as e:
        raise SystemExit(str(e))
    finally:
        svc.close()
    print(total)


def cmd_report(args):
    svc = make_service(args)
    try:
        subs = svc.read_all_by_user_id(args.user)
    finally:
        svc.close()

    df = pd.DataFrame([s.to_dict() for s in subs],
                      columns=["user_id", "service_name", "cost", "start_date", "end_date"])
    if args.start:
        ws = parse_month(args.start)
        we = parse_month(args.end) if args.end else None
        df["in_window"] = [overlaps_window(s.start_date, s.end_date, ws, we) for s in subs]
    df["open"] = df["end_date"].isna()

    pd.set_option("display.max_rows", 200)
    pd.set_option("display.width", 160)

    print("\n=== Subscriptions ===")
    if not df.empty:
        print(df)
        print("\n=== Monthly cost by service (current periods) ===")
        current = df.sort_values("start_date").groupby("service_name").tail(1)
        print(current[["service_name", "cost", "open"]].to_string(index=False))
    else:
        print("(empty)")

    out_dir = args.out_dir or os.path.join(os.path.dirname(os.path.abspath(__file__)), "exports")
    os.makedirs(out_dir, exist_ok=True)
    out = os.path.join(out_dir, f"subscriptions_{args.user}.csv")
    df.to_csv(out, index=False, encoding="utf-8-sig")
    print(f"\nCSV exported to {out}")


# ---------------- Entry ----------------

def main():
    parser = argparse.ArgumentParser(description="Subscription ledger (SQLite)")
    parser.add_argument("--db", default=None, help="SQLite path (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers()

    p_init = sub.add_parser("init", help="create tables")
    p_init.set_defaults(func=cmd_init)

    p_add = sub.add_parser("add", help="start a new subscription period")
    p_add.add_argument("--user", required=True)
    p_add.add_argument("--name", required=True)
    p_add.add_argument("--cost", required=True, type=int)
    p_add.add_argument("--start", required=True, help="MM-YYYY")
    p_add.add_argument("--end", required=False, help="MM-YYYY (omit for open-ended)")
    p_add.set_defaults(func=cmd_add)

    p_upd = sub.add_parser("update", help="update the current period")
    p_upd.add_argument("--user", required=True)
    p_upd.add_argument("--name", required=True)
    p_upd.add_argument("--cost", required=True, type=int)
    p_upd.add_argument("--end", required=False, help="MM-YYYY (omit to reopen)")
    p_upd.set_defaults(func=cmd_update)

    p_del = sub.add_parser("delete", help="delete the current period")
    p_del.add_argument("--user", required=True)
    p_del.add_argument("--name", required=True)
    p_del.set_defaults(func=cmd_delete)

    p_list = sub.add_parser("list", help="list all periods of a user")
    p_list.add_argument("--user", required=True)
    p_list.set_defaults(func=cmd_list)

    p_latest = sub.add_parser("latest", help="most recent subscription of a user")
    p_latest.add_argument("--user", required=True)
    p_latest.set_defaults(func=cmd_latest)

    p_total = sub.add_parser("total", help="total cost over a window")
    p_total.add_argument("--user", required=True)
    p_total.add_argument("--name", required=True)
    p_total.add_argument("--start", required=True, help="MM-YYYY")
    p_total.add_argument("--end", required=False, help="MM-YYYY (exclusive; omit for unbounded)")
    p_total.set_defaults(func=cmd_total)

    p_rep = sub.add_parser("report", help="print and export a user's periods")
    p_rep.add_argument("--user", required=True)
    p_rep.add_argument("--start", required=False, help="MM-YYYY window start")
    p_rep.add_argument("--end", required=False, help="MM-YYYY window end")
    p_rep.add_argument("--out-dir", required=False, help="CSV directory (default: exports/)")
    p_rep.set_defaults(func=cmd_report)

    args = parser.parse_args()
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)
    args.func(args)


if __name__ == "__main__":
    main()
