import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import text

from app import db


def utcnow():
    """Naive UTC timestamp, the storage convention for every table here."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class ReportCategory(str, Enum):
    SPAM = 'spam'
    HARASSMENT = 'harassment'
    INAPPROPRIATE = 'inappropriate'
    MISINFORMATION = 'misinformation'
    HATE_SPEECH = 'hate_speech'
    VIOLENCE = 'violence'
    COPYRIGHT = 'copyright'
    PRIVACY = 'privacy'
    OTHER = 'other'


class Priority(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    URGENT = 'urgent'


PRIORITY_RANK = {
    Priority.LOW.value: 1,
    Priority.MEDIUM.value: 2,
    Priority.HIGH.value: 3,
    Priority.URGENT.value: 4,
}


class ReportStatus(str, Enum):
    PENDING = 'pending'
    REVIEWED = 'reviewed'


class QueueStatus(str, Enum):
    PENDING = 'pending'
    IN_REVIEW = 'in_review'
    RESOLVED = 'resolved'


class ModerationActionType(str, Enum):
    HIDE = 'hide'
    SHOW = 'show'
    DELETE = 'delete'
    RESTORE = 'restore'


class SanctionType(str, Enum):
    WARNING = 'warning'
    TEMPORARY_SUSPENSION = 'temporary_suspension'
    PERMANENT_BAN = 'permanent_ban'


SANCTION_SEVERITY = {
    SanctionType.WARNING.value: 1,
    SanctionType.TEMPORARY_SUSPENSION.value: 2,
    SanctionType.PERMANENT_BAN.value: 3,
}


class AppealStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    DENIED = 'denied'


class FilterKind(str, Enum):
    KEYWORD = 'keyword'
    PATTERN = 'pattern'
    EXTERNAL_MODEL = 'external-model'
    EXTERNAL_API = 'external-api'


class FilterAction(str, Enum):
    FLAG = 'flag'
    HIDE = 'hide'
    DELETE = 'delete'
    QUEUE = 'queue'


class FilterRule(db.Model):
    __tablename__ = 'filter_rules'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, default='')

    kind = db.Column(db.String(32), nullable=False)
    keywords = db.Column(db.JSON)  # keyword rules only
    pattern = db.Column(db.Text)  # pattern rules only
    external_ref = db.Column(db.String(500))  # model name or API endpoint

    action = db.Column(db.String(16), nullable=False)
    severity = db.Column(db.String(16), nullable=False, default='medium')
    confidence_threshold = db.Column(db.Float, nullable=False, default=0.8)

    applies_to_body = db.Column(db.Boolean, nullable=False, default=True)
    applies_to_title = db.Column(db.Boolean, nullable=False, default=True)
    applies_to_comment = db.Column(db.Boolean, nullable=False, default=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_test_mode = db.Column(db.Boolean, nullable=False, default=False)

    total_matches = db.Column(db.Integer, nullable=False, default=0)
    true_positives = db.Column(db.Integer, nullable=False, default=0)
    false_positives = db.Column(db.Integer, nullable=False, default=0)
    accuracy = db.Column(db.Float, nullable=False, default=0.0)
    last_feedback_at = db.Column(db.DateTime)

    created_by = db.Column(db.String(64), nullable=False)
    last_modified_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'filterId': self.id,
            'name': self.name,
            'description': self.description,
            'kind': self.kind,
            'keywords': self.keywords,
            'pattern': self.pattern,
            'externalRef': self.external_ref,
            'action': self.action,
            'severity': self.severity,
            'confidence': self.confidence_threshold,
            'applyToContent': self.applies_to_body,
            'applyToTitles': self.applies_to_title,
            'applyToComments': self.applies_to_comment,
            'isActive': self.is_active,
            'isTestMode': self.is_test_mode,
            'stats': {
                'totalMatches': self.total_matches,
                'truePositives': self.true_positives,
                'falsePositives': self.false_positives,
                'accuracy': self.accuracy,
            },
            'createdBy': self.created_by,
            'lastModifiedBy': self.last_modified_by,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class Report(db.Model):
    __tablename__ = 'reports'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    content_id = db.Column(db.String(64), nullable=False, index=True)
    discussion_id = db.Column(db.String(64), nullable=False, index=True)
    reporter_id = db.Column(db.String(64), nullable=False, index=True)

    category = db.Column(db.String(32), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text)
    priority = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ReportStatus.PENDING.value)

    resolution = db.Column(db.Text)
    reviewed_by = db.Column(db.String(64))
    reviewed_at = db.Column(db.DateTime)
    review_notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # One pending report per (reporter, content); reviewed reports drop out of the index.
    __table_args__ = (
        db.Index(
            'uq_reports_pending_reporter_content',
            'reporter_id', 'content_id',
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        db.Index('ix_reports_status_priority', 'status', 'priority', 'created_at'),
    )

    def to_dict(self):
        return {
            'reportId': self.id,
            'contentId': self.content_id,
            'discussionId': self.discussion_id,
            'reporterId': self.reporter_id,
            'category': self.category,
            'reason': self.reason,
            'description': self.description,
            'priority': self.priority,
            'status': self.status,
            'resolution': self.resolution,
            'reviewedBy': self.reviewed_by,
            'reviewedAt': _iso(self.reviewed_at),
            'reviewNotes': self.review_notes,
            'createdAt': _iso(self.created_at),
        }


class ModerationQueueItem(db.Model):
    __tablename__ = 'moderation_queue_items'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    report_id = db.Column(db.String(36), db.ForeignKey('reports.id'), unique=True)
    content_id = db.Column(db.String(64), nullable=False, index=True)
    discussion_id = db.Column(db.String(64), nullable=False, index=True)
    author_id = db.Column(db.String(64))
    content_type = db.Column(db.String(32), nullable=False, default='post')
    content_preview = db.Column(db.String(200), default='')

    report_category = db.Column(db.String(32))
    report_reason = db.Column(db.Text)
    priority = db.Column(db.String(16), nullable=False)
    priority_rank = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=QueueStatus.PENDING.value)
    assigned_to = db.Column(db.String(64), index=True)
    assigned_by = db.Column(db.String(64))
    assigned_at = db.Column(db.DateTime)
    resolved_at = db.Column(db.DateTime)

    is_urgent = db.Column(db.Boolean, nullable=False, default=False)
    requires_special_attention = db.Column(db.Boolean, nullable=False, default=False)
    is_auto_detected = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    report = db.relationship('Report', backref=db.backref('queue_item', uselist=False))

    __table_args__ = (
        db.Index('ix_queue_triage', 'status', 'priority_rank', 'created_at'),
    )

    @property
    def review_minutes(self):
        if self.assigned_at and self.resolved_at:
            return round((self.resolved_at - self.assigned_at).total_seconds() / 60, 2)
        return None

    def to_dict(self):
        return {
            'queueItemId': self.id,
            'reportId': self.report_id,
            'contentId': self.content_id,
            'discussionId': self.discussion_id,
            'authorId': self.author_id,
            'contentType': self.content_type,
            'contentPreview': self.content_preview,
            'reportCategory': self.report_category,
            'reportReason': self.report_reason,
            'priority': self.priority,
            'status': self.status,
            'assignedTo': self.assigned_to,
            'assignedBy': self.assigned_by,
            'assignedAt': _iso(self.assigned_at),
            'resolvedAt': _iso(self.resolved_at),
            'isUrgent': self.is_urgent,
            'requiresSpecialAttention': self.requires_special_attention,
            'isAutoDetected': self.is_auto_detected,
            'actualReviewTime': self.review_minutes,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class ContentModeration(db.Model):
    """Moderation projection of a content item owned by the content service."""
    __tablename__ = 'content_moderation'

    content_id = db.Column(db.String(64), primary_key=True)
    discussion_id = db.Column(db.String(64), nullable=False, index=True)

    is_hidden = db.Column(db.Boolean, nullable=False, default=False)
    hidden_by = db.Column(db.String(64))
    hidden_at = db.Column(db.DateTime)
    hidden_reason = db.Column(db.Text)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_by = db.Column(db.String(64))
    deleted_at = db.Column(db.DateTime)
    deleted_reason = db.Column(db.Text)

    version = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_effectively_hidden(self):
        return bool(self.is_hidden or self.is_deleted)

    def snapshot(self):
        return {'isHidden': bool(self.is_hidden), 'isDeleted': bool(self.is_deleted)}

    def to_dict(self):
        return {
            'contentId': self.content_id,
            'discussionId': self.discussion_id,
            'moderation': {
                'isHidden': bool(self.is_hidden),
                'hiddenBy': self.hidden_by,
                'hiddenAt': _iso(self.hidden_at),
                'hiddenReason': self.hidden_reason,
                'isDeleted': bool(self.is_deleted),
                'deletedBy': self.deleted_by,
                'deletedAt': _iso(self.deleted_at),
                'deletedReason': self.deleted_reason,
                'isEffectivelyHidden': self.is_effectively_hidden,
            },
            'version': self.version,
            'updatedAt': _iso(self.updated_at),
        }


class ModerationLog(db.Model):
    """Append-only audit trail. Rows are never updated or deleted."""
    __tablename__ = 'moderation_logs'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    content_id = db.Column(db.String(64), nullable=False)
    discussion_id = db.Column(db.String(64), nullable=False)
    moderator_id = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)
    reason = db.Column(db.Text)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
    sequence = db.Column(db.Integer, nullable=False)
    previous_state = db.Column(db.JSON, nullable=False)
    new_state = db.Column(db.JSON, nullable=False)
    related_report_id = db.Column(db.String(36))

    __table_args__ = (
        db.UniqueConstraint('content_id', 'sequence', name='uq_moderation_log_content_sequence'),
        db.Index('ix_moderation_logs_discussion_time', 'discussion_id', 'timestamp'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'contentId': self.content_id,
            'discussionId': self.discussion_id,
            'moderatorId': self.moderator_id,
            'action': self.action,
            'reason': self.reason,
            'timestamp': _iso(self.timestamp),
            'sequence': self.sequence,
            'previousState': self.previous_state,
            'newState': self.new_state,
            'relatedReportId': self.related_report_id,
        }


class UserSanction(db.Model):
    __tablename__ = 'user_sanctions'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    moderator_id = db.Column(db.String(64), nullable=False, index=True)

    sanction_type = db.Column(db.String(32), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text)

    start_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    end_date = db.Column(db.DateTime)  # temporary suspensions only
    duration_hours = db.Column(db.Integer)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Appeal
    is_appealed = db.Column(db.Boolean, nullable=False, default=False)
    appealed_at = db.Column(db.DateTime)
    appeal_reason = db.Column(db.Text)
    appeal_status = db.Column(db.String(16))
    appeal_reviewed_by = db.Column(db.String(64))
    appeal_reviewed_at = db.Column(db.DateTime)
    appeal_review_notes = db.Column(db.Text)

    # Revocation
    revoked_by = db.Column(db.String(64))
    revoked_at = db.Column(db.DateTime)
    revocation_reason = db.Column(db.Text)

    related_content_id = db.Column(db.String(64))
    related_report_id = db.Column(db.String(36))
    previous_sanction_ids = db.Column(db.JSON, nullable=False, default=list)

    user_notified = db.Column(db.Boolean, nullable=False, default=False)
    notified_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.Index('ix_user_sanctions_user_active', 'user_id', 'is_active'),
    )

    def to_dict(self):
        return {
            'sanctionId': self.id,
            'userId': self.user_id,
            'moderatorId': self.moderator_id,
            'sanctionType': self.sanction_type,
            'reason': self.reason,
            'description': self.description,
            'startDate': _iso(self.start_date),
            'endDate': _iso(self.end_date),
            'duration': self.duration_hours,
            'isActive': self.is_active,
            'isAppealed': self.is_appealed,
            'appealedAt': _iso(self.appealed_at),
            'appealReason': self.appeal_reason,
            'appealStatus': self.appeal_status,
            'appealReviewedBy': self.appeal_reviewed_by,
            'appealReviewedAt': _iso(self.appeal_reviewed_at),
            'appealReviewNotes': self.appeal_review_notes,
            'revokedBy': self.revoked_by,
            'revokedAt': _iso(self.revoked_at),
            'revocationReason': self.revocation_reason,
            'relatedContentId': self.related_content_id,
            'relatedReportId': self.related_report_id,
            'previousSanctions': list(self.previous_sanction_ids or []),
            'userNotified': self.user_notified,
            'createdAt': _iso(self.created_at),
        }
