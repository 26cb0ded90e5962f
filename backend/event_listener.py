"""
Redis Pub/Sub listener for group events.

Celery workers (or the in-process notification thread) publish slot
events on `group_events:{group_id}`; this listener forwards them to the
WebSocket clients of that group via the ConnectionManager.

Usage:
    # In main.py startup:
    await start_event_listener(manager)
"""

import asyncio
import json
import logging
from typing import Optional

from config import config

logger = logging.getLogger(__name__)

CHANNEL_PATTERN = "group_events:*"

_listener_started: bool = False
_listener_task: Optional[asyncio.Task] = None


async def handle_event_message(websocket_manager, raw_data) -> int:
    """
    Decode one pub/sub payload and broadcast it to its group.

    Returns:
        Number of clients that received the event
    """
    try:
        data = json.loads(raw_data)
    except (TypeError, json.JSONDecodeError) as e:
        logger.error(f"Failed to decode group event: {e}")
        return 0

    group_id = data.get("group_id")
    if not group_id:
        logger.debug("Group event without group_id ignored")
        return 0

    sent = await websocket_manager.broadcast_to_group(group_id, data)
    logger.debug(f"Forwarded {data.get('type')} for group {group_id} to {sent} clients")
    return sent


async def listen_group_events(websocket_manager):
    """
    Listen for group events from Redis and forward them to WebSockets.

    Runs until cancelled; start it as a background task.
    """
    global _listener_started

    from redis.asyncio import Redis

    try:
        redis = Redis.from_url(config.REDIS_URL, decode_responses=True)
        pubsub = redis.pubsub()
        await pubsub.psubscribe(CHANNEL_PATTERN)
        logger.info(f"Event listener started, subscribed to {CHANNEL_PATTERN}")
        _listener_started = True

        async for message in pubsub.listen():
            if message["type"] != "pmessage":
                continue
            try:
                await handle_event_message(websocket_manager, message["data"])
            except Exception as e:
                logger.error(f"Error processing group event: {e}")

    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Event listener error: {e}")
        _listener_started = False
        raise


async def start_event_listener(websocket_manager) -> bool:
    """
    Start the listener as a background task.

    Returns:
        True if listener was started, False otherwise
    """
    global _listener_task

    if is_listener_running():
        logger.debug("Event listener already running")
        return True

    if not config.is_redis_available():
        logger.warning("Redis not available, group events will not reach WebSocket clients")
        return False

    _listener_task = asyncio.create_task(
        listen_group_events(websocket_manager),
        name="group_event_listener"
    )
    await asyncio.sleep(0.1)
    return _listener_started


def stop_event_listener() -> bool:
    global _listener_started, _listener_task

    if _listener_task and not _listener_task.done():
        _listener_task.cancel()
        _listener_started = False
        logger.info("Event listener stopped")
        return True
    return False


def is_listener_running() -> bool:
    global _listener_started

    if not _listener_started:
        return False
    if _listener_task and _listener_task.done():
        _listener_started = False
        return False
    return True
