"""
Background tasks for the cash drawer
"""
from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.caja.services import CajaSessionManager
import logging

logger = logging.getLogger(__name__)


@celery_app.task
def expire_stale_sessions():
    """
    Periodic task that expires cash sessions left open past the maximum age.

    Runs server-side from the beat schedule so expiry happens even when no
    client is connected.
    """
    db = SessionLocal()
    try:
        expired = CajaSessionManager(db).expire_stale_sessions()
        if expired:
            logger.info(f"Expired cash sessions: {[session.id for session in expired]}")
        return {"status": "completed", "expired": [session.id for session in expired]}
    except Exception as e:
        logger.error(f"Cash session expiry sweep failed: {str(e)}")
        raise
    finally:
        db.close()
