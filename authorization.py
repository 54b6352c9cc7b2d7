"""Centralized moderation authorization policy.

Single place to answer: "Can this caller do this action here?"

- Route handlers and services stay free of scattered role checks.
- Every answer carries a machine-readable reason.
- Anything not explicitly allowed is denied.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from flask_login import UserMixin

from exceptions import ForbiddenError


ROLES = ("viewer", "contributor", "creator", "admin")


class Caller(UserMixin):
    """Identity supplied by the gateway in front of this service."""

    def __init__(self, user_id: str, role: str = "viewer"):
        self.id = user_id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<Caller {self.id} ({self.role})>"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""


class Actions:
    SUBMIT_REPORT = "submit_report"
    REVIEW_REPORT = "review_report"
    MODERATE_CONTENT = "moderate_content"
    VIEW_CONTENT_LOGS = "view_content_logs"
    VIEW_DISCUSSION_LOGS = "view_discussion_logs"
    VIEW_MODERATED_CONTENT = "view_moderated_content"

    VIEW_QUEUE = "view_queue"
    ASSIGN_QUEUE_ITEM = "assign_queue_item"

    MANAGE_FILTERS = "manage_filters"
    PROCESS_CONTENT = "process_content"

    CREATE_SANCTION = "create_sanction"
    REVOKE_SANCTION = "revoke_sanction"
    APPEAL_SANCTION = "appeal_sanction"
    REVIEW_APPEAL = "review_appeal"
    VIEW_SANCTIONS = "view_sanctions"
    VIEW_USER_SANCTIONS = "view_user_sanctions"
    NOTIFY_SANCTIONED_USER = "notify_sanctioned_user"

    VIEW_STATS = "view_stats"


# Admin-only actions; nobody else gets these regardless of context.
ADMIN_ONLY = {
    Actions.MANAGE_FILTERS,
    Actions.CREATE_SANCTION,
    Actions.REVOKE_SANCTION,
    Actions.REVIEW_APPEAL,
    Actions.VIEW_SANCTIONS,
    Actions.NOTIFY_SANCTIONED_USER,
}

# Actions an admin or the owner of the discussion in question may take.
OWNER_OR_ADMIN = {
    Actions.REVIEW_REPORT,
    Actions.MODERATE_CONTENT,
    Actions.VIEW_DISCUSSION_LOGS,
    Actions.VIEW_MODERATED_CONTENT,
}


def is_authenticated(user: Any) -> bool:
    return bool(getattr(user, "is_authenticated", False))


def role(user: Any) -> str:
    return getattr(user, "role", "viewer") or "viewer"


def user_id(user: Any) -> Optional[str]:
    return getattr(user, "id", None)


def can(user: Any, action: str, **ctx: Any) -> Decision:
    """Authorization decision.

    Args:
        user: flask_login current_user-like object.
        action: one of Actions.*
        ctx: discussion_owner_id, author_id, target_user_id as the action needs.
    """

    if not is_authenticated(user):
        return Decision(False, "authentication_required")

    if action == Actions.APPEAL_SANCTION:
        # Only the sanctioned user may appeal, admins included.
        if ctx.get("target_user_id") == user_id(user):
            return Decision(True, "sanctioned_user")
        return Decision(False, "not_sanctioned_user")

    if role(user) == "admin":
        return Decision(True, "admin")

    if action in ADMIN_ONLY:
        return Decision(False, "admin_required")

    if action == Actions.SUBMIT_REPORT:
        return Decision(True, "authenticated")

    is_owner = ctx.get("discussion_owner_id") is not None and ctx.get("discussion_owner_id") == user_id(user)

    if action in OWNER_OR_ADMIN:
        return Decision(True, "discussion_owner") if is_owner else Decision(False, "not_discussion_owner")

    if action == Actions.VIEW_CONTENT_LOGS:
        if is_owner:
            return Decision(True, "discussion_owner")
        if ctx.get("author_id") is not None and ctx.get("author_id") == user_id(user):
            return Decision(True, "author")
        return Decision(False, "forbidden")

    if action in {Actions.VIEW_QUEUE, Actions.ASSIGN_QUEUE_ITEM, Actions.PROCESS_CONTENT, Actions.VIEW_STATS}:
        # Creators moderate the discussions they own; the caller narrows scope.
        if role(user) == "creator":
            if "discussion_owner_id" in ctx and not is_owner:
                return Decision(False, "not_discussion_owner")
            return Decision(True, "creator")
        return Decision(False, "forbidden_role")

    if action == Actions.VIEW_USER_SANCTIONS:
        if ctx.get("target_user_id") == user_id(user):
            return Decision(True, "self")
        return Decision(False, "forbidden")

    return Decision(False, "unknown_action")


def require(user: Any, action: str, message: str = "forbidden", **ctx: Any) -> Decision:
    """Like can(), but raises ForbiddenError on denial."""
    decision = can(user, action, **ctx)
    if not decision.allowed:
        raise ForbiddenError(message, decision.reason)
    return decision
