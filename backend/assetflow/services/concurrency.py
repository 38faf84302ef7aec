# Overview: Service-layer operations for concurrency; transaction boundaries, row locks and retries.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Failures caused by another writer, safe to replay from the top
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Lock the rows a workflow command is about to transition.

    SQLite ignores FOR UPDATE; there the version columns carry the race.
    populate_existing() forces a replayed command to read the committed row
    instead of the copy already in the identity map.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Call func, replaying it after lock timeouts and lost version races.

    Workflow errors (conflict, invalid state, ...) propagate on the first
    attempt. The last retryable failure is re-raised once attempts run out.
    """
    attempts = attempts or current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3)
    attempt = 1
    while True:
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts:
                current_app.logger.error(
                    "Transaction failed after %d attempt(s): %s", attempts, type(exc).__name__
                )
                raise
            current_app.logger.warning(
                "Replaying transaction after %s (attempt %d of %d)",
                type(exc).__name__, attempt, attempts,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
            attempt += 1


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Run one workflow command: the transition, its asset status write and its
    ledger event commit together or not at all.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
