"""
Celery Tasks
Background jobs for feedback export and zone fan-out recovery.
"""

import asyncio
import time
from datetime import datetime
from typing import Any

from tableserve.celery_worker import celery_app
from tableserve.core.config import get_logger, get_settings
from tableserve.database import async_session_maker, engine
from tableserve.services.excel_manager import FeedbackExcelManager, feedback_export_rows
from tableserve.services.feedback import FeedbackPropagator, PersistenceError, get_order_store

logger = get_logger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def export_feedback_to_excel(self, rows: list[dict[str, Any]]) -> dict:
    """
    Append submitted feedback to the Excel export.

    Args:
        rows: Rows built by feedback_export_rows()

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    logger.info(f"Task {task_id}: exporting {len(rows)} feedback rows")
    start_time = time.time()

    result = FeedbackExcelManager.export_feedback(rows)

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result['success']:
        logger.info(f"Task {task_id}: export completed in {elapsed}s")
    else:
        logger.warning(f"Task {task_id}: export failed - {result['message']}")

    return result


@celery_app.task(
    bind=True,
    max_retries=5,
    default_retry_delay=10,
    autoretry_for=(PersistenceError,),
    retry_backoff=True
)
def resume_zone_fan_out(self, order_id: int) -> dict:
    """
    Finish propagating a zone order's feedback to its child orders.

    Safe to run any number of times: children that already carry a
    rating are skipped.
    """
    logger.info(f"Task {self.request.id}: resuming fan-out for order {order_id}")
    return asyncio.run(_run_resume_zone_fan_out(order_id))


async def _run_resume_zone_fan_out(order_id: int) -> dict:
    # Pooled connections belong to this run's event loop
    try:
        return await _resume_zone_fan_out(order_id)
    finally:
        await engine.dispose()


async def _resume_zone_fan_out(order_id: int) -> dict:
    async with async_session_maker() as session:
        propagator = FeedbackPropagator(get_order_store(session))
        result = await propagator.resume_fan_out(order_id)

    rows = feedback_export_rows(result)
    if rows and get_settings().feedback_export_enabled:
        export_feedback_to_excel.delay(rows)

    return result.to_dict()


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
