# dormitory/services/activity.py
"""
Append-only audit trail.

``record`` never writes inside the caller's transaction: the row is queued with
``transaction.on_commit`` so a rolled-back operation leaves no trace, and a
failing insert is logged instead of aborting the business operation.
"""
import logging

from django.db import DatabaseError, transaction

from dormitory.models import ActivityLog

logger = logging.getLogger(__name__)


def _client_info(request):
    if request is None:
        return None, ""
    meta = getattr(request, "META", {})
    forwarded = meta.get("HTTP_X_FORWARDED_FOR", "")
    ip = forwarded.split(",")[0].strip() if forwarded else meta.get("REMOTE_ADDR")
    return ip or None, meta.get("HTTP_USER_AGENT", "")


def _user_id(user):
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return user.pk


def _write(entry: dict) -> None:
    try:
        ActivityLog.objects.create(**entry)
    except DatabaseError:
        logger.exception("Could not write activity log %s %s#%s", entry["action"], entry["entity_type"], entry["entity_id"])


def record(user, action: str, entity_type: str, entity_id=None, description: str = "", request=None) -> None:
    ip_address, user_agent = _client_info(request)
    entry = {
        "user_id": _user_id(user),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "description": description,
        "ip_address": ip_address,
        "user_agent": user_agent,
    }
    transaction.on_commit(lambda: _write(entry))
