"""
Moderation actions on content.

The moderation state of a content item is a projection with two independent
flags, ``is_hidden`` and ``is_deleted``. Every accepted action bumps the
projection version and appends a log entry whose sequence is that version.
"""
import logging
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from authorization import Actions, require
from content_directory import ContentDirectory, ContentRef
from exceptions import ConflictError, NotFoundError, ValidationError
from models import ContentModeration, ModerationActionType, ModerationLog, utcnow
from notifier import NotificationEvents, Notifier
from utils.conditional import compare_and_set

logger = logging.getLogger(__name__)

ACTION_MESSAGES = {
    ModerationActionType.HIDE.value: 'Your post has been hidden by a moderator.',
    ModerationActionType.SHOW.value: 'Your post is visible again.',
    ModerationActionType.DELETE.value: 'Your post has been removed by a moderator.',
    ModerationActionType.RESTORE.value: 'Your post has been restored.',
}

MODERATED_CONTENT_STATUSES = ('all', 'hidden', 'deleted', 'moderated')


def _next_state(current: ContentModeration, action: str, moderator_id: str, reason: Optional[str], now) -> Dict:
    """Column values after ``action``; empty when the action changes nothing."""
    if action == ModerationActionType.HIDE.value:
        if current.is_hidden:
            return {}
        return {'is_hidden': True, 'hidden_by': moderator_id, 'hidden_at': now, 'hidden_reason': reason}
    if action == ModerationActionType.SHOW.value:
        if not current.is_hidden:
            return {}
        return {'is_hidden': False, 'hidden_by': None, 'hidden_at': None, 'hidden_reason': None}
    if action == ModerationActionType.DELETE.value:
        if current.is_deleted:
            return {}
        return {'is_deleted': True, 'deleted_by': moderator_id, 'deleted_at': now, 'deleted_reason': reason}
    if action == ModerationActionType.RESTORE.value:
        if not current.is_deleted:
            return {}
        return {'is_deleted': False, 'deleted_by': None, 'deleted_at': None, 'deleted_reason': None}
    raise ValidationError('invalid action', field_errors={'action': [f'unknown action {action!r}']})


class ModerationActionEngine:

    def __init__(
        self,
        session,
        content_directory: ContentDirectory,
        notifier: Notifier,
        clock: Callable = utcnow,
    ):
        self.session = session
        self.content_directory = content_directory
        self.notifier = notifier
        self.clock = clock

    def resolve_content(self, content_id: str) -> ContentRef:
        content = self.content_directory.get_content(content_id)
        if content is None:
            raise NotFoundError('content', content_id)
        return content

    def discussion_owner(self, discussion_id: str) -> str:
        discussion = self.content_directory.get_discussion(discussion_id)
        if discussion is None:
            raise NotFoundError('discussion', discussion_id)
        return discussion.owner_id

    def authorize(self, caller, content: ContentRef) -> None:
        require(
            caller,
            Actions.MODERATE_CONTENT,
            'insufficient permissions to moderate this content',
            discussion_owner_id=self.discussion_owner(content.discussion_id),
        )

    def projection(self, content_id: str) -> Optional[ContentModeration]:
        return self.session.get(ContentModeration, content_id)

    def _projection_for(self, content: ContentRef) -> ContentModeration:
        current = self.session.get(ContentModeration, content.id)
        if current is not None:
            return current
        current = ContentModeration(content_id=content.id, discussion_id=content.discussion_id, version=0)
        self.session.add(current)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError('content was moderated concurrently', {'contentId': content.id})
        return current

    def _apply(
        self,
        content: ContentRef,
        action: str,
        moderator_id: str,
        reason: Optional[str] = None,
        related_report_id: Optional[str] = None,
    ) -> Tuple[ContentModeration, ModerationLog]:
        """Apply ``action`` and append its log entry. Flushes, never commits."""
        current = self._projection_for(content)
        expected_version = current.version
        before = current.snapshot()
        now = self.clock()

        changes = _next_state(current, action, moderator_id, reason, now)
        won = compare_and_set(
            self.session,
            ContentModeration,
            [ContentModeration.content_id == content.id],
            [ContentModeration.version == expected_version],
            dict(changes, version=expected_version + 1, updated_at=now),
        )
        if not won:
            raise ConflictError('content was moderated concurrently', {'contentId': content.id})

        current = self.session.get(ContentModeration, content.id, populate_existing=True)
        entry = ModerationLog(
            content_id=content.id,
            discussion_id=content.discussion_id,
            moderator_id=moderator_id,
            action=action,
            reason=reason,
            timestamp=now,
            sequence=current.version,
            previous_state=before,
            new_state=current.snapshot(),
            related_report_id=related_report_id,
        )
        self.session.add(entry)
        self.session.flush()
        return current, entry

    def notify_author(self, content: ContentRef, entry: ModerationLog) -> None:
        if content.author_id == entry.moderator_id:
            return
        self.notifier.notify(
            content.author_id,
            NotificationEvents.CONTENT_MODERATED,
            ACTION_MESSAGES.get(entry.action, 'Your post was moderated.'),
            {
                'contentId': content.id,
                'discussionId': content.discussion_id,
                'action': entry.action,
                'reason': entry.reason,
            },
        )

    def moderate(self, caller, content_id: str, action: str, reason: Optional[str] = None):
        """Apply one moderation action on behalf of ``caller``."""
        try:
            action = ModerationActionType(action).value
        except ValueError:
            raise ValidationError('invalid action', field_errors={'action': [f'unknown action {action!r}']})

        content = self.resolve_content(content_id)
        self.authorize(caller, content)

        try:
            current, entry = self._apply(content, action, caller.id, reason)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Content {content_id} {action} by {caller.id} (version {current.version})")
        self.notify_author(content, entry)
        return current, entry

    def logs_for_content(self, caller, content_id: str) -> List[ModerationLog]:
        content = self.resolve_content(content_id)
        require(
            caller,
            Actions.VIEW_CONTENT_LOGS,
            'insufficient permissions to view moderation logs',
            discussion_owner_id=self.discussion_owner(content.discussion_id),
            author_id=content.author_id,
        )
        return (
            self.session.query(ModerationLog)
            .filter_by(content_id=content_id)
            .order_by(ModerationLog.sequence.asc())
            .all()
        )

    def logs_for_discussion(self, caller, discussion_id: str, limit: int = 100) -> List[ModerationLog]:
        require(
            caller,
            Actions.VIEW_DISCUSSION_LOGS,
            'insufficient permissions to view moderation logs',
            discussion_owner_id=self.discussion_owner(discussion_id),
        )
        return (
            self.session.query(ModerationLog)
            .filter_by(discussion_id=discussion_id)
            .order_by(ModerationLog.timestamp.desc(), ModerationLog.sequence.desc())
            .limit(limit)
            .all()
        )

    def moderated_content(self, caller, discussion_id: str, status: str = 'all', limit: int = 20) -> List[ContentModeration]:
        """Moderation state of a discussion's content, newest change first.

        ``hidden`` excludes deleted content; ``moderated`` is hidden or deleted.
        Content that was never moderated has no row and is not listed.
        """
        require(
            caller,
            Actions.VIEW_MODERATED_CONTENT,
            'insufficient permissions to view moderated content',
            discussion_owner_id=self.discussion_owner(discussion_id),
        )
        query = self.session.query(ContentModeration).filter_by(discussion_id=discussion_id)
        if status == 'hidden':
            query = query.filter(ContentModeration.is_hidden.is_(True), ContentModeration.is_deleted.is_(False))
        elif status == 'deleted':
            query = query.filter(ContentModeration.is_deleted.is_(True))
        elif status == 'moderated':
            query = query.filter(or_(ContentModeration.is_hidden.is_(True), ContentModeration.is_deleted.is_(True)))
        elif status != 'all':
            raise ValidationError(
                'invalid status',
                field_errors={'status': [f"expected one of {', '.join(MODERATED_CONTENT_STATUSES)}"]},
            )
        return (
            query.order_by(ContentModeration.updated_at.desc(), ContentModeration.content_id.asc())
            .limit(limit)
            .all()
        )

    def stats(self, scope: Optional[List[str]] = None, start=None, end=None) -> Dict:
        query = self.session.query(ModerationLog)
        if scope is not None:
            query = query.filter(ModerationLog.discussion_id.in_(scope))
        if start is not None:
            query = query.filter(ModerationLog.timestamp >= start)
        if end is not None:
            query = query.filter(ModerationLog.timestamp <= end)

        by_action = dict(
            query.with_entities(ModerationLog.action, func.count(ModerationLog.id))
            .group_by(ModerationLog.action).all()
        )
        by_moderator = (
            query.with_entities(ModerationLog.moderator_id, func.count(ModerationLog.id))
            .group_by(ModerationLog.moderator_id)
            .order_by(func.count(ModerationLog.id).desc())
            .limit(10)
            .all()
        )

        now = self.clock()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return {
            'totalActions': sum(by_action.values()),
            'byAction': {a.value: by_action.get(a.value, 0) for a in ModerationActionType},
            'byModerator': [{'moderatorId': m, 'count': c} for m, c in by_moderator],
            'actionsToday': query.filter(ModerationLog.timestamp >= today).count(),
            'actionsThisWeek': query.filter(ModerationLog.timestamp >= now - timedelta(days=7)).count(),
        }
