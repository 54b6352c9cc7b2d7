"""
Moderation work queue.

Items move pending -> in_review -> resolved. Each move is a conditional update
so two moderators racing for the same item get exactly one winner.
"""
import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy import func

from authorization import Actions, require
from content_directory import ContentDirectory, ContentRef
from exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models import PRIORITY_RANK, ModerationQueueItem, Priority, QueueStatus, utcnow
from utils.conditional import compare_and_set

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200


def build_queue_item(
    content: ContentRef,
    priority: str,
    now,
    report=None,
    category: Optional[str] = None,
    reason: Optional[str] = None,
    auto_detected: bool = False,
) -> ModerationQueueItem:
    is_urgent = priority == Priority.URGENT.value
    return ModerationQueueItem(
        report=report,
        content_id=content.id,
        discussion_id=content.discussion_id,
        author_id=content.author_id,
        content_type=content.content_type,
        content_preview=(content.text or '')[:PREVIEW_LENGTH],
        report_category=category,
        report_reason=reason,
        priority=priority,
        priority_rank=PRIORITY_RANK[priority],
        status=QueueStatus.PENDING.value,
        is_urgent=is_urgent,
        requires_special_attention=is_urgent,
        is_auto_detected=auto_detected,
        created_at=now,
        updated_at=now,
    )


class ModerationQueue:

    def __init__(
        self,
        session,
        content_directory: ContentDirectory,
        page_size: int = 20,
        max_page_size: int = 100,
        clock: Callable = utcnow,
    ):
        self.session = session
        self.content_directory = content_directory
        self.page_size = page_size
        self.max_page_size = max_page_size
        self.clock = clock

    def _owner_of(self, discussion_id: str) -> Optional[str]:
        discussion = self.content_directory.get_discussion(discussion_id)
        return discussion.owner_id if discussion else None

    def visible_discussions(self, caller) -> Optional[List[str]]:
        """None means every discussion; otherwise the ids the caller may see."""
        require(caller, Actions.VIEW_QUEUE, 'insufficient permissions to access moderation queue')
        if caller.is_admin:
            return None
        return self.content_directory.discussions_owned_by(caller.id)

    def get(self, item_id: str) -> ModerationQueueItem:
        item = self.session.get(ModerationQueueItem, item_id)
        if item is None:
            raise NotFoundError('queue item', item_id)
        return item

    def list_items(
        self,
        caller,
        priority: Optional[str] = None,
        status: Optional[str] = None,
        assigned_to: Optional[str] = None,
        discussion_id: Optional[str] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> Dict:
        scope = self.visible_discussions(caller)

        query = self.session.query(ModerationQueueItem)
        if scope is not None:
            query = query.filter(ModerationQueueItem.discussion_id.in_(scope))
        if discussion_id:
            query = query.filter(ModerationQueueItem.discussion_id == discussion_id)
        if priority:
            query = query.filter(ModerationQueueItem.priority == priority)
        if status:
            query = query.filter(ModerationQueueItem.status == status)
        if assigned_to:
            query = query.filter(ModerationQueueItem.assigned_to == assigned_to)

        per_page = min(per_page or self.page_size, self.max_page_size)
        paged = query.order_by(
            ModerationQueueItem.priority_rank.desc(),
            ModerationQueueItem.created_at.desc(),
        ).paginate(page=page, per_page=per_page, error_out=False)

        return {
            'items': paged.items,
            'pagination': {
                'page': paged.page,
                'perPage': paged.per_page,
                'total': paged.total,
                'pages': paged.pages,
                'hasNext': paged.has_next,
                'hasPrev': paged.has_prev,
            },
        }

    def assign(self, item_id: str, moderator_id: Optional[str], caller) -> ModerationQueueItem:
        """Claim a pending item for ``moderator_id`` (the caller when omitted)."""
        item = self.get(item_id)
        require(
            caller,
            Actions.ASSIGN_QUEUE_ITEM,
            'insufficient permissions to assign queue items',
            discussion_owner_id=self._owner_of(item.discussion_id),
        )
        moderator_id = moderator_id or caller.id
        if moderator_id != caller.id and not caller.is_admin:
            raise ForbiddenError('only administrators can assign items to others', 'admin_required')

        now = self.clock()
        won = compare_and_set(
            self.session,
            ModerationQueueItem,
            [ModerationQueueItem.id == item_id],
            [ModerationQueueItem.status == QueueStatus.PENDING.value],
            {
                'status': QueueStatus.IN_REVIEW.value,
                'assigned_to': moderator_id,
                'assigned_by': caller.id,
                'assigned_at': now,
                'updated_at': now,
            },
        )
        if won:
            self.session.commit()
            logger.info(f"Queue item {item_id} assigned to {moderator_id} by {caller.id}")
            return self.session.get(ModerationQueueItem, item_id, populate_existing=True)

        self.session.rollback()
        current = self.session.get(ModerationQueueItem, item_id, populate_existing=True)
        if current.status == QueueStatus.IN_REVIEW.value and current.assigned_to == moderator_id:
            return current
        if current.status == QueueStatus.RESOLVED.value:
            raise ConflictError('queue item already resolved', {'queueItemId': item_id})
        raise ConflictError('already assigned', {'queueItemId': item_id, 'assignedTo': current.assigned_to})

    def unassign(self, item_id: str, caller) -> ModerationQueueItem:
        item = self.get(item_id)
        require(
            caller,
            Actions.ASSIGN_QUEUE_ITEM,
            'insufficient permissions to assign queue items',
            discussion_owner_id=self._owner_of(item.discussion_id),
        )

        won = compare_and_set(
            self.session,
            ModerationQueueItem,
            [ModerationQueueItem.id == item_id],
            [ModerationQueueItem.status == QueueStatus.IN_REVIEW.value],
            {
                'status': QueueStatus.PENDING.value,
                'assigned_to': None,
                'assigned_by': None,
                'assigned_at': None,
                'updated_at': self.clock(),
            },
        )
        if won:
            self.session.commit()
            logger.info(f"Queue item {item_id} unassigned by {caller.id}")
            return self.session.get(ModerationQueueItem, item_id, populate_existing=True)

        self.session.rollback()
        current = self.session.get(ModerationQueueItem, item_id, populate_existing=True)
        if current.status == QueueStatus.PENDING.value:
            return current
        raise ConflictError('queue item already resolved', {'queueItemId': item_id})

    def _resolve(self, item_id: str) -> ModerationQueueItem:
        """Mark an item resolved without committing."""
        now = self.clock()
        won = compare_and_set(
            self.session,
            ModerationQueueItem,
            [ModerationQueueItem.id == item_id],
            [ModerationQueueItem.status != QueueStatus.RESOLVED.value],
            {'status': QueueStatus.RESOLVED.value, 'resolved_at': now, 'updated_at': now},
        )
        current = self.session.get(ModerationQueueItem, item_id, populate_existing=True)
        if current is None:
            raise NotFoundError('queue item', item_id)
        if not won:
            raise ConflictError('queue item already resolved', {'queueItemId': item_id})
        return current

    def resolve(self, item_id: str) -> ModerationQueueItem:
        item = self._resolve(item_id)
        self.session.commit()
        logger.info(f"Queue item {item_id} resolved")
        return item

    def resolve_for_report(self, report_id: str) -> Optional[ModerationQueueItem]:
        """Resolve the item raised by a report, if it is still open. Does not commit."""
        item = self.session.query(ModerationQueueItem).filter_by(report_id=report_id).first()
        if item is None or item.status == QueueStatus.RESOLVED.value:
            return item
        return self._resolve(item.id)

    def enqueue_automated(self, content_id: str, reason: str, priority: str = Priority.MEDIUM.value) -> ModerationQueueItem:
        """Queue content flagged by automated detection; there is no report behind it."""
        if priority not in PRIORITY_RANK:
            raise ValidationError('invalid priority', field_errors={'priority': [f'unknown priority {priority!r}']})
        content = self.content_directory.get_content(content_id)
        if content is None:
            raise NotFoundError('content', content_id)

        item = build_queue_item(content, priority, self.clock(), reason=reason, auto_detected=True)
        self.session.add(item)
        self.session.commit()
        logger.info(f"Automated detection queued content {content_id} at {priority} priority")
        return item

    def stats(self, scope: Optional[List[str]] = None) -> Dict:
        def scoped(query):
            if scope is not None:
                query = query.filter(ModerationQueueItem.discussion_id.in_(scope))
            return query

        by_status = dict(scoped(
            self.session.query(ModerationQueueItem.status, func.count(ModerationQueueItem.id))
        ).group_by(ModerationQueueItem.status).all())

        by_priority = dict(scoped(
            self.session.query(ModerationQueueItem.priority, func.count(ModerationQueueItem.id))
            .filter(ModerationQueueItem.status != QueueStatus.RESOLVED.value)
        ).group_by(ModerationQueueItem.priority).all())

        oldest_pending = scoped(
            self.session.query(func.min(ModerationQueueItem.created_at))
            .filter(ModerationQueueItem.status == QueueStatus.PENDING.value)
        ).scalar()

        resolved = scoped(
            self.session.query(ModerationQueueItem)
            .filter(ModerationQueueItem.status == QueueStatus.RESOLVED.value)
            .filter(ModerationQueueItem.assigned_at.isnot(None))
        ).all()
        review_minutes = [i.review_minutes for i in resolved if i.review_minutes is not None]

        return {
            'totalItems': sum(by_status.values()),
            'byStatus': {s.value: by_status.get(s.value, 0) for s in QueueStatus},
            'openByPriority': {p.value: by_priority.get(p.value, 0) for p in Priority},
            'oldestPendingAt': oldest_pending.isoformat() if oldest_pending else None,
            'averageReviewMinutes': round(sum(review_minutes) / len(review_minutes), 2) if review_minutes else None,
        }
