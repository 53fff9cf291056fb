from .comments import add_comment
from .dashboard import dashboard
from .errors import AppError
from .identity import Identity, resolve_identity
from .lifecycle import (
    TRANSITIONS,
    create_idea,
    decide_idea,
    delete_idea,
    get_idea,
    list_ideas,
    list_ideas_for_review,
    submit_idea,
    transition,
    update_idea,
)
from .profiles import ensure_profile, set_role

__all__ = [
    "AppError",
    "Identity",
    "TRANSITIONS",
    "add_comment",
    "create_idea",
    "dashboard",
    "decide_idea",
    "delete_idea",
    "ensure_profile",
    "get_idea",
    "list_ideas",
    "list_ideas_for_review",
    "resolve_identity",
    "set_role",
    "submit_idea",
    "transition",
    "update_idea",
]
