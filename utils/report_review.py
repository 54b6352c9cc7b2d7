"""
Report review.

Reviewing a report can cascade into a moderation action on the reported
content and a sanction on its author. The report transition, the cascade and
the queue resolution commit together; notifications go out afterwards.
"""
import logging
from typing import Callable, Dict, Optional

from authorization import Actions, require
from exceptions import NotFoundError, ValidationError
from models import Report, ReportStatus, utcnow
from utils.conditional import transition
from utils.moderation_actions import ModerationActionEngine
from utils.moderation_queue import ModerationQueue
from utils.sanctions import SanctionManager
from utils.schemas import ModerationActionSpec, SanctionSpec

logger = logging.getLogger(__name__)


class ReportReviewService:

    def __init__(
        self,
        session,
        queue: ModerationQueue,
        actions: ModerationActionEngine,
        sanctions: SanctionManager,
        clock: Callable = utcnow,
    ):
        self.session = session
        self.queue = queue
        self.actions = actions
        self.sanctions = sanctions
        self.clock = clock

    def review_report(
        self,
        caller,
        report_id: str,
        status: str,
        resolution: str,
        action: Optional[ModerationActionSpec] = None,
        user_sanction: Optional[SanctionSpec] = None,
        notes: Optional[str] = None,
    ) -> Dict:
        if status != ReportStatus.REVIEWED.value:
            raise ValidationError('status must be reviewed', field_errors={'status': ['must be "reviewed"']})
        if not resolution:
            raise ValidationError('resolution is required', field_errors={'resolution': ['must not be empty']})

        report = self.session.get(Report, report_id)
        if report is None:
            raise NotFoundError('report', report_id)
        require(
            caller,
            Actions.REVIEW_REPORT,
            'insufficient permissions to review this report',
            discussion_owner_id=self.actions.discussion_owner(report.discussion_id),
        )

        content = None
        if action is not None or user_sanction is not None:
            content = self.actions.resolve_content(report.content_id)

        now = self.clock()
        projection = entry = sanction = None
        try:
            report = transition(
                self.session,
                Report,
                report_id,
                [Report.status == ReportStatus.PENDING.value],
                {
                    'status': ReportStatus.REVIEWED.value,
                    'resolution': resolution,
                    'reviewed_by': caller.id,
                    'reviewed_at': now,
                    'review_notes': notes,
                    'updated_at': now,
                },
                'report',
                'report already reviewed',
            )

            if action is not None:
                projection, entry = self.actions._apply(
                    content,
                    action.action.value,
                    caller.id,
                    action.reason or resolution,
                    related_report_id=report.id,
                )

            if user_sanction is not None:
                sanction = self.sanctions._create(
                    content.author_id,
                    caller.id,
                    user_sanction.sanction_type.value,
                    user_sanction.reason,
                    user_sanction.duration,
                    description=user_sanction.description,
                    related_content_id=content.id,
                    related_report_id=report.id,
                )

            item = self.queue.resolve_for_report(report.id)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            f"Report {report_id} reviewed by {caller.id}"
            f" (action={entry.action if entry else None}, sanction={sanction.sanction_type if sanction else None})"
        )

        if entry is not None:
            self.actions.notify_author(content, entry)
        if sanction is not None:
            self.sanctions.notify_created(sanction)

        return {
            'report': report,
            'content': projection,
            'log': entry,
            'sanction': sanction,
            'queueItem': item,
        }
