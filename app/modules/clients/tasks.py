"""
Background tasks for the clients ledger
"""
from app.core.celery import celery_app
from app.database.database import SessionLocal
import logging

logger = logging.getLogger(__name__)


@celery_app.task
def verify_client_balances():
    """
    Recompute every client's balance from its movement history and
    report mismatches against the cached balance. Never rewrites data.
    """
    from app.modules.clients.service import CreditLedger

    db = SessionLocal()
    try:
        logger.info("Starting client ledger verification")
        report = CreditLedger(db).verify_all()
        if report["inconsistent"]:
            logger.error(f"Ledger verification found {report['inconsistent']} inconsistent clients")
        else:
            logger.info(f"Ledger verification completed: {report['checked']} clients consistent")
        return report

    except Exception as e:
        logger.error(f"Ledger verification failed: {str(e)}")
        raise
    finally:
        db.close()
