"""
Ledger — Celery Tasks

Nightly replay of the movement log against cached balances.

@file ledger/tasks.py
"""

import logging

from celery import shared_task

logger = logging.getLogger('quittrace')


@shared_task(name='ledger.reconcile_batches')
def reconcile_batches_task():
    """
    Nightly task: reconcile every batch. Drift is logged at ERROR level by
    ReconciliationService; the summary is returned for the result backend.
    """
    from .services import ReconciliationService

    drifted = ReconciliationService.reconcile_all()
    if drifted:
        logger.error('reconcile_batches_task: %d batch(es) drifted.', len(drifted))
    else:
        logger.info('reconcile_batches_task completed: no drift.')
    return {
        'drifted_count': len(drifted),
        'drifted': [report.batch_reference for report in drifted],
    }
