"""Statement timing for the document store engine."""

from __future__ import annotations

import hashlib
import logging
import time

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..routes_metrics import store_slow_queries_total

logger = logging.getLogger("obs")


def _fingerprint(parameters) -> str:  # type: ignore[no-untyped-def]
    # bound parameters hold customer data; never log them verbatim
    return hashlib.sha256(repr(parameters).encode()).hexdigest()[:8]


def add_query_logger(engine: Engine, label: str, slow_query_ms: int = 200) -> None:
    """Log statements on ``engine`` slower than ``slow_query_ms``.

    Slow statements are logged at WARNING with the store ``label``, the
    statement verb and table, and a fingerprint of the parameters, and are
    counted in ``store_slow_queries_total``.
    """
    target = engine.sync_engine if hasattr(engine, "sync_engine") else engine

    @event.listens_for(target, "before_cursor_execute")
    def _start(conn, cursor, statement, parameters, context, executemany):  # type: ignore[no-untyped-def]
        context._orderhub_started = time.perf_counter()

    @event.listens_for(target, "after_cursor_execute")
    def _finish(conn, cursor, statement, parameters, context, executemany):  # type: ignore[no-untyped-def]
        started = getattr(context, "_orderhub_started", None)
        if started is None:
            return
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms <= slow_query_ms:
            return
        words = statement.split()
        verb = words[0].upper() if words else "?"
        store_slow_queries_total.labels(store=label, verb=verb).inc()
        logger.warning(
            "slow query %dms store=%s verb=%s sql=%s params=%s",
            int(elapsed_ms),
            label,
            verb,
            " ".join(words)[:200],
            _fingerprint(parameters),
        )


__all__ = ["add_query_logger"]
