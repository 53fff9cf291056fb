from .events import CommentAdded, NotificationMeta, StatusChange, parse_meta
from .fanout import notify_comment, notify_status_change, plan_comment_notifications

__all__ = [
    "CommentAdded",
    "NotificationMeta",
    "StatusChange",
    "notify_comment",
    "notify_status_change",
    "parse_meta",
    "plan_comment_notifications",
]
