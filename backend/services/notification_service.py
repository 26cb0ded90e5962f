"""
Schedule slot change notifications.

A payload is snapshotted synchronously inside the request (so a removal
notification still describes the removed vehicle), then handed off after
commit to the celery task `tasks.deliver_slot_notification_task`. When
celery is disabled or the broker refuses the task, delivery runs on a
daemon thread with the same bounded retry policy. NotificationService
never raises into the mutation that triggered it.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from config import config
from db import crud
from models.schedule import ChangeType
from services.schedule_slot_validation import linked_child_assignments, total_capacity
from services.timezone_utils import as_utc, format_datetime_for_user, get_validated_timezone, utcnow

logger = logging.getLogger(__name__)

GROUP_EVENTS_CHANNEL = "group_events:{group_id}"


# =============================================================================
# Email backends
# =============================================================================

class LoggingEmailBackend:
    """Writes outgoing mail to the log instead of sending it."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info(f"[email] to={to} subject={subject!r}")
        logger.debug(body)


EMAIL_BACKENDS: Dict[str, Callable[[], Any]] = {
    "logging": LoggingEmailBackend,
}


def get_email_backend(name: Optional[str] = None):
    backend_name = name or config.EMAIL_BACKEND
    try:
        return EMAIL_BACKENDS[backend_name]()
    except KeyError:
        raise ValueError(f"Unknown email backend: {backend_name}") from None


# =============================================================================
# Payload
# =============================================================================

def build_slot_payload(db: Session, slot_id: str, change_type: ChangeType) -> Optional[Dict[str, Any]]:
    """
    Snapshot a slot for notification. Returns None when the slot is gone.
    """
    slot = crud.get_slot(db, slot_id)
    if slot is None:
        logger.warning(f"Cannot build notification for missing slot {slot_id}")
        return None

    group = slot.group
    tz_name = get_validated_timezone(group.timezone if group else None)
    vehicles = [
        {
            "id": str(va.vehicle_id),
            "name": va.vehicle.name if va.vehicle else None,
            "capacity": va.effective_capacity,
            "driver": va.driver.name if va.driver else None,
        }
        for va in slot.vehicle_assignments
    ]
    children = [
        c.child.name for c in linked_child_assignments(slot) if c.child is not None
    ]

    return {
        "schedule_slot_id": str(slot.id),
        "group_id": str(slot.group_id),
        "group_name": group.name if group else None,
        "datetime": as_utc(slot.datetime).isoformat(),
        "local_time": format_datetime_for_user(slot.datetime, tz_name),
        "change_type": ChangeType(change_type).value,
        "vehicles": vehicles,
        "assigned_children": children,
        "total_capacity": total_capacity(slot),
        "recipients": crud.get_family_user_emails(db, crud.get_group_family_ids(db, slot.group_id)),
        "slot_deleted": False,
        "created_at": utcnow().isoformat(),
    }


def _event_type(payload: Dict[str, Any]) -> str:
    if payload.get("slot_deleted"):
        return "SCHEDULE_SLOT_DELETED"
    if payload.get("change_type") == ChangeType.SLOT_CREATED.value:
        return "SCHEDULE_SLOT_CREATED"
    return "SCHEDULE_SLOT_UPDATED"


def _render_email(payload: Dict[str, Any]) -> Dict[str, str]:
    change = payload["change_type"].replace("_", " ").lower()
    subject = f"[{payload.get('group_name') or 'Carpool'}] Trip {payload.get('local_time')} updated"
    lines = [
        f"A trip of {payload.get('group_name')} on {payload.get('local_time')} changed ({change}).",
        "",
        "Vehicles:",
    ]
    for vehicle in payload.get("vehicles", []):
        driver = vehicle.get("driver") or "no driver yet"
        lines.append(f"  - {vehicle.get('name')} ({vehicle.get('capacity')} seats, {driver})")
    if not payload.get("vehicles"):
        lines.append("  - none")
    children = payload.get("assigned_children") or []
    lines.append("")
    lines.append(f"Children: {', '.join(children) if children else 'none'}")
    return {"subject": subject, "body": "\n".join(lines)}


# =============================================================================
# Delivery
# =============================================================================

def publish_group_event(group_id: str, event: Dict[str, Any]) -> bool:
    """
    Publish a group event to Redis for WebSocket distribution.

    Returns:
        True if published successfully
    """
    try:
        import redis

        client = redis.Redis.from_url(config.REDIS_URL, socket_connect_timeout=2)
        client.publish(GROUP_EVENTS_CHANNEL.format(group_id=group_id), json.dumps(event))
        return True
    except Exception as e:
        logger.debug(f"Redis publish failed (WebSocket may be unavailable): {e}")
        return False


def deliver_slot_notification(payload: Dict[str, Any], email_backend=None) -> Dict[str, Any]:
    """
    Email every recipient and publish the socket event.

    Email failures propagate so the caller can retry; the socket event is
    best effort.
    """
    backend = email_backend or get_email_backend()
    message = _render_email(payload)
    recipients: List[str] = payload.get("recipients") or []
    for recipient in recipients:
        backend.send(recipient, message["subject"], message["body"])

    event = {
        "type": _event_type(payload),
        "group_id": payload["group_id"],
        "schedule_slot_id": payload["schedule_slot_id"],
        "change_type": payload["change_type"],
        "datetime": payload["datetime"],
        "timestamp": utcnow().isoformat(),
    }
    published = publish_group_event(payload["group_id"], event)
    return {"emails_sent": len(recipients), "event_published": published}


def dead_letter(payload: Dict[str, Any], error: Exception) -> None:
    logger.error(
        f"[dead-letter] Notification for slot {payload.get('schedule_slot_id')} "
        f"({payload.get('change_type')}) dropped after retries: {error} | payload={json.dumps(payload)}"
    )


def deliver_with_retries(
    payload: Dict[str, Any],
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[Dict[str, Any]]:
    """In-process delivery with exponential backoff, dead-lettered on exhaustion."""
    retries = config.NOTIFICATION_MAX_RETRIES if max_retries is None else max_retries
    delay = config.NOTIFICATION_RETRY_BASE_SECONDS if base_delay is None else base_delay

    for attempt in range(retries + 1):
        try:
            return deliver_slot_notification(payload)
        except Exception as e:
            if attempt >= retries:
                dead_letter(payload, e)
                return None
            countdown = delay * (2 ** attempt)
            logger.warning(
                f"Notification for slot {payload.get('schedule_slot_id')} failed ({e}), "
                f"retrying in {countdown}s (attempt {attempt + 1}/{retries})"
            )
            sleep(countdown)
    return None


class NotificationDispatcher:
    """Hands payloads to celery, or to a background thread when celery is off."""

    def __init__(self, use_celery: Optional[bool] = None):
        self.use_celery = config.is_celery_available() if use_celery is None else use_celery

    def dispatch(self, payload: Dict[str, Any]) -> str:
        """Returns the delivery channel used: 'celery', 'thread' or 'failed'."""
        if self.use_celery:
            try:
                from tasks import deliver_slot_notification_task

                deliver_slot_notification_task.apply_async(args=[payload])
                return "celery"
            except Exception as e:
                logger.warning(f"Celery dispatch failed, delivering in-process: {e}")

        try:
            worker = threading.Thread(
                target=deliver_with_retries,
                args=(payload,),
                name=f"notify-{payload.get('schedule_slot_id')}",
                daemon=True,
            )
            worker.start()
            return "thread"
        except Exception as e:
            logger.error(f"Failed to dispatch notification: {e}")
            return "failed"


class NotificationService:
    """Snapshot-then-dispatch entry point used by the slot services."""

    def __init__(self, db: Session, dispatcher: Optional[NotificationDispatcher] = None):
        self.db = db
        self.dispatcher = dispatcher or NotificationDispatcher()

    def snapshot(self, slot_id: str, change_type: ChangeType) -> Optional[Dict[str, Any]]:
        try:
            return build_slot_payload(self.db, slot_id, change_type)
        except Exception as e:
            logger.error(f"Failed to snapshot slot {slot_id} for {change_type}: {e}")
            return None

    def dispatch(self, payload: Optional[Dict[str, Any]]) -> None:
        if payload is None:
            return
        try:
            self.dispatcher.dispatch(payload)
        except Exception as e:
            logger.error(f"Failed to dispatch notification for slot {payload.get('schedule_slot_id')}: {e}")

    def notify_schedule_slot_change(self, slot_id: str, change_type: ChangeType) -> None:
        """Snapshot the slot as it is now and dispatch the notification."""
        self.dispatch(self.snapshot(slot_id, change_type))
