from __future__ import annotations

import math
import threading
import time
from typing import Callable

import psycopg
from psycopg import sql

from .db import log_event
from .errors import ClusterError, HealthTimeout

# counter(table, timeout_s): timeout_s is the budget left for this poll, None for no limit.
Counter = Callable[[str, float | None], int]

MAX_CONNECT_TIMEOUT_S = 5


def count_records(dsn: str, table: str, timeout_s: float | None = None) -> int:
    """``select count(*)`` on ``table`` (optionally schema qualified).

    ``timeout_s`` bounds both the connection attempt and the query.
    """
    query = sql.SQL("SELECT count(*) FROM {}").format(sql.Identifier(*table.split(".")))
    connect_timeout = MAX_CONNECT_TIMEOUT_S
    options = ""
    if timeout_s is not None:
        # connect_timeout=0 means no limit in libpq.
        connect_timeout = max(1, min(MAX_CONNECT_TIMEOUT_S, math.ceil(timeout_s)))
        options = f"-c statement_timeout={max(1, round(timeout_s * 1000))}"
    with psycopg.connect(dsn, connect_timeout=connect_timeout, options=options) as conn:
        row = conn.execute(query).fetchone()
    return int(row[0]) if row else 0


def check_health(
    table: str,
    records: int,
    counter: Counter,
    interval_s: float = 1.0,
    timeout_s: float = 0,
    cancel: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], object] | None = None,
) -> int:
    """Poll ``counter`` until ``table`` holds exactly ``records`` rows.

    A poll happens every ``interval_s`` seconds. With ``timeout_s > 0`` the
    check gives up with ``HealthTimeout`` as soon as the next poll would land
    after the deadline. A poll that returns after the deadline is a timeout
    even if it reached the target. ``timeout_s == 0`` waits forever.
    Connection and query errors are logged and polling continues. Setting
    ``cancel`` stops the loop at the next wake-up.
    """
    cancel = cancel or threading.Event()
    sleep = sleep or cancel.wait
    deadline = clock() + timeout_s if timeout_s > 0 else None
    prev = -1

    while True:
        if deadline is not None and clock() + interval_s > deadline:
            raise HealthTimeout(
                f"health check failed. duration limit reached ({timeout_s}s, last count {max(prev, 0)}/{records} in {table})"
            )
        sleep(interval_s)
        if cancel.is_set():
            raise ClusterError("health check cancelled")

        try:
            remaining = deadline - clock() if deadline is not None else None
            count = counter(table, remaining)
        except (psycopg.Error, OSError) as e:
            log_event("WARN", f"Couldn't query database for records: {type(e).__name__}: {e}")
            continue

        if deadline is not None and clock() > deadline:
            raise HealthTimeout(
                f"health check failed. duration limit reached ({timeout_s}s, last poll finished after the deadline)"
            )

        if count == records:
            log_event("INFO", f"{table} has {records} records")
            return count
        if count != prev:
            log_event("INFO", f"Found only {count} records in {table}, waiting for {records}")
        prev = count
