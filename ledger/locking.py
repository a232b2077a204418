"""
Ledger — Transaction Boundary & Row Locks

Every mutating ledger operation runs inside ledger_transaction(using):
one database transaction at READ COMMITTED with explicit row locks
(SELECT ... FOR UPDATE) on exactly the Batch / InventoryPosition rows it
reads-then-writes. Locks are taken in primary-key order so two
operations touching the same rows cannot deadlock each other.

On PostgreSQL the wait for a lock is bounded by SET LOCAL lock_timeout
(settings.LEDGER_LOCK_TIMEOUT_MS). Lock timeouts, serialization failures
and deadlocks surface as ResourceBusyError so callers can retry
transient contention but not logic errors.

@file ledger/locking.py
"""

import logging
from contextlib import contextmanager

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, OperationalError, connections, transaction

from core.exceptions import ResourceBusyError

logger = logging.getLogger('quittrace')

# lock_not_available, serialization_failure, deadlock_detected
CONTENTION_SQLSTATES = frozenset({'55P03', '40001', '40P01'})
SQLITE_BUSY_MESSAGES = ('database is locked', 'database table is locked')


def _sqlstate(exc: BaseException) -> str | None:
    for err in (exc, exc.__cause__):
        if err is None:
            continue
        code = getattr(err, 'sqlstate', None) or getattr(err, 'pgcode', None)
        if code:
            return code
    return None


def is_contention_error(exc: BaseException) -> bool:
    """True for lock-wait timeouts, serialization failures and deadlocks."""
    if not isinstance(exc, OperationalError):
        return False
    if _sqlstate(exc) in CONTENTION_SQLSTATES:
        return True
    message = str(exc).lower()
    return any(text in message for text in SQLITE_BUSY_MESSAGES)


def _apply_lock_timeout(using: str) -> None:
    connection = connections[using]
    if connection.vendor != 'postgresql':
        return
    timeout_ms = int(getattr(settings, 'LEDGER_LOCK_TIMEOUT_MS', 0) or 0)
    if timeout_ms > 0:
        with connection.cursor() as cursor:
            cursor.execute(f'SET LOCAL lock_timeout = {timeout_ms}')


@contextmanager
def ledger_transaction(using: str | None = None):
    """
    Atomic block for one ledger operation on database alias `using`.
    Nested use joins the outer transaction; the lock timeout is only set
    by the outermost block.
    """
    using = using or DEFAULT_DB_ALIAS
    outermost = not connections[using].in_atomic_block
    try:
        with transaction.atomic(using=using):
            if outermost:
                _apply_lock_timeout(using)
            yield using
    except OperationalError as exc:
        if is_contention_error(exc):
            logger.warning('Ledger contention on %s: %s', using, exc)
            raise ResourceBusyError(detail='The batch or stock position is busy; retry shortly.') from exc
        raise


def lock_rows(queryset, using: str):
    """
    SELECT ... FOR UPDATE the rows of `queryset` in primary-key order and
    return them as a list. `of=('self',)` keeps joined tables unlocked.
    """
    return list(
        queryset.using(using)
        .select_for_update(of=('self',))
        .order_by('pk')
    )
