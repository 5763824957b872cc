"""
In-app notifications.

Records live in the "notification" collection. Push delivery is handled by
an external service; it only ever receives `push_payload` output.
"""

import logging
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

import database
from schemas import Notification

logger = logging.getLogger(__name__)


def create_notification(user_id: str, title: str, message: str, type: Optional[str] = None, link: Optional[str] = None) -> str:
    notification = Notification(user_id=user_id, title=title, message=message, type=type, link=link)
    return database.create_document("notification", notification)


def notify(user_id: Optional[str], title: str, message: str, **kwargs: Any) -> Optional[str]:
    """Best-effort notification attached to another operation."""
    if not user_id:
        return None
    try:
        return create_notification(user_id, title, message, **kwargs)
    except Exception as e:
        logger.warning("Could not notify user %s: %s", user_id, e)
        return None


def list_notifications(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    cursor = database.get_collection("notification").find({"user_id": user_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit)
    return [database.serialize_doc(d) for d in cursor]


def unread_count(user_id: str) -> int:
    return database.get_collection("notification").count_documents({"user_id": user_id, "read": False})


def mark_read(user_id: str, notification_id: str) -> bool:
    oid = database.to_object_id(notification_id)
    if oid is None:
        return False
    res = database.get_collection("notification").update_one({"_id": oid, "user_id": user_id}, {"$set": {"read": True}})
    return res.matched_count > 0


def mark_all_read(user_id: str) -> int:
    res = database.get_collection("notification").update_many({"user_id": user_id, "read": False}, {"$set": {"read": True}})
    return res.modified_count


def push_payload(notification: Dict[str, Any]) -> Dict[str, str]:
    return {"title": notification.get("title", ""), "body": notification.get("message", "")}
