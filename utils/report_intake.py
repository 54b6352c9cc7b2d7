"""
Report intake.

A report and the queue item it raises are written in the same transaction.
"""
import logging
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from content_directory import ContentDirectory
from exceptions import ConflictError, NotFoundError, ValidationError
from models import Priority, Report, ReportCategory, ReportStatus, utcnow
from utils.moderation_queue import build_queue_item

logger = logging.getLogger(__name__)

PRIORITY_BY_CATEGORY = {
    ReportCategory.HATE_SPEECH.value: Priority.URGENT.value,
    ReportCategory.VIOLENCE.value: Priority.URGENT.value,
    ReportCategory.HARASSMENT.value: Priority.HIGH.value,
    ReportCategory.MISINFORMATION.value: Priority.HIGH.value,
    ReportCategory.PRIVACY.value: Priority.HIGH.value,
    ReportCategory.SPAM.value: Priority.MEDIUM.value,
    ReportCategory.INAPPROPRIATE.value: Priority.MEDIUM.value,
    ReportCategory.COPYRIGHT.value: Priority.MEDIUM.value,
}


def priority_for(category: str) -> str:
    """Fixed category -> priority table. Unmapped categories are low."""
    return PRIORITY_BY_CATEGORY.get(category, Priority.LOW.value)


class ReportIntake:

    def __init__(self, session, content_directory: ContentDirectory, clock: Callable = utcnow):
        self.session = session
        self.content_directory = content_directory
        self.clock = clock

    def get(self, report_id: str) -> Report:
        report = self.session.get(Report, report_id)
        if report is None:
            raise NotFoundError('report', report_id)
        return report

    def submit_report(
        self,
        reporter_id: str,
        content_id: str,
        category: str,
        reason: str,
        description: Optional[str] = None,
    ) -> Report:
        try:
            category = ReportCategory(category).value
        except ValueError:
            raise ValidationError('invalid category', field_errors={'category': [f'unknown category {category!r}']})
        if not reason or not reason.strip():
            raise ValidationError('reason is required', field_errors={'reason': ['must not be empty']})

        content = self.content_directory.get_content(content_id)
        if content is None:
            raise NotFoundError('content', content_id)

        existing = self.session.query(Report).filter_by(
            reporter_id=reporter_id,
            content_id=content_id,
            status=ReportStatus.PENDING.value,
        ).first()
        if existing:
            raise ConflictError('already reported', {'reportId': existing.id})

        now = self.clock()
        priority = priority_for(category)
        report = Report(
            content_id=content.id,
            discussion_id=content.discussion_id,
            reporter_id=reporter_id,
            category=category,
            reason=reason.strip(),
            description=description,
            priority=priority,
            status=ReportStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        item = build_queue_item(content, priority, now, report=report, category=category, reason=report.reason)
        self.session.add_all([report, item])

        try:
            self.session.commit()
        except IntegrityError:
            # A concurrent duplicate won the partial unique index.
            self.session.rollback()
            raise ConflictError('already reported', {'contentId': content_id})

        logger.info(f"Report {report.id} on content {content_id} by {reporter_id} ({category}, {priority})")
        return report
