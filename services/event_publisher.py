"""Fire-and-forget publication of report lifecycle events on Redis pub/sub."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import redis

from core.config import ServiceSettings
from core.logging import get_logger

logger = get_logger(__name__)

_CLIENT: Optional[redis.Redis] = None
_CLIENT_ERROR_LOGGED = False


def _get_client(settings: ServiceSettings) -> Optional[redis.Redis]:
    global _CLIENT, _CLIENT_ERROR_LOGGED  # pylint: disable=global-statement
    if _CLIENT is not None:
        return _CLIENT
    if not settings.events_redis_url:
        logger.debug("Event publisher redis url missing; events disabled.")
        return None
    try:
        _CLIENT = redis.Redis.from_url(settings.events_redis_url, socket_timeout=2, socket_connect_timeout=2)
    except (redis.RedisError, ValueError) as exc:
        if not _CLIENT_ERROR_LOGGED:
            logger.warning("Event publisher Redis init failed: %s", exc)
            _CLIENT_ERROR_LOGGED = True
        _CLIENT = None
    return _CLIENT


def build_completed_event(report: Any) -> Dict[str, Any]:
    metadata = report.metadata or {}
    return {
        "event": "report.completed",
        "reportId": str(report.id),
        "userId": report.user_id,
        "type": report.type,
        "format": report.format,
        "status": report.status,
        "fileSize": report.file_size,
        "downloadUrl": report.download_url,
        "recordCount": metadata.get("recordCount"),
        "completedAt": report.completed_at.isoformat() if report.completed_at else None,
    }


def publish_report_completed(report: Any, *, settings: Optional[ServiceSettings] = None) -> bool:
    """Publish the completion event; failures are logged and reported as ``False``."""
    settings = settings or ServiceSettings.load()
    client = _get_client(settings)
    if client is None:
        return False
    try:
        client.publish(settings.events_channel, json.dumps(build_completed_event(report), default=str))
    except redis.RedisError as exc:
        logger.warning("Failed to publish %s for report %s: %s", settings.events_channel, report.id, exc)
        return False
    logger.info("Published %s for report %s.", settings.events_channel, report.id)
    return True


__all__ = ["build_completed_event", "publish_report_completed"]
