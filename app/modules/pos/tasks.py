"""
Background tasks for the POS module
"""
from uuid import UUID
import logging

from app.core.celery import celery_app
from app.database.database import SessionLocal

logger = logging.getLogger(__name__)


@celery_app.task
def verify_shift_accumulators(shift_id: str):
    """
    Recompute a shift's summary from its sales and expenses and compare it
    with the running accumulators (open) or the closing figures (closed).
    Reports only; never rewrites the shift.
    """
    from app.modules.pos.services import ShiftService

    db = SessionLocal()
    try:
        logger.info(f"Verifying shift {shift_id}")
        result = ShiftService(db).verify_shift(UUID(shift_id))
        if result.consistent:
            logger.info(f"Shift {shift_id} accumulators are consistent")
        else:
            logger.error(f"Shift {shift_id} has {len(result.issues)} inconsistencies: {result.issues}")
        return result.model_dump(mode="json")

    except Exception as e:
        logger.error(f"Shift verification failed for {shift_id}: {str(e)}")
        raise
    finally:
        db.close()
