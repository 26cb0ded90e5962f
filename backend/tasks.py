"""
Celery tasks for the carpool scheduling backend.

Delivers schedule slot notifications outside the request cycle.
"""

from typing import Any, Dict
import logging

from celery_app import celery_app
from config import config
from services.notification_service import dead_letter, deliver_slot_notification

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=config.NOTIFICATION_MAX_RETRIES)
def deliver_slot_notification_task(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Send the emails and socket event for one slot change.

    Args:
        payload: Snapshot built by services.notification_service.build_slot_payload

    Returns:
        dict: Delivery summary, or a dead-letter marker once retries run out
    """
    slot_id = payload.get("schedule_slot_id")
    try:
        result = deliver_slot_notification(payload)
        logger.info(
            f"[Celery] Notification {payload.get('change_type')} for slot {slot_id} delivered "
            f"({result['emails_sent']} emails)"
        )
        return {"status": "delivered", **result}

    except Exception as exc:
        retry_count = self.request.retries
        if retry_count >= self.max_retries:
            dead_letter(payload, exc)
            return {"status": "dead_lettered", "error": str(exc)}

        countdown = config.NOTIFICATION_RETRY_BASE_SECONDS * (2 ** retry_count)  # 30s, 60s, 120s
        logger.warning(
            f"[Celery] Notification for slot {slot_id} failed: {exc}. "
            f"Retrying in {countdown}s (attempt {retry_count + 1}/{self.max_retries})"
        )
        raise self.retry(exc=exc, countdown=countdown)
