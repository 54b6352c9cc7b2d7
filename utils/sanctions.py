"""
User sanction lifecycle.

A sanction is active until it is revoked, its appeal is approved, or (for
temporary suspensions) its end date passes. Expiry is never written back; it is
derived on read by is_sanction_currently_active.
"""
import logging
from collections import Counter
from datetime import timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import or_

from authorization import Actions, require
from exceptions import ConflictError, ExternalDependencyError, NotFoundError, ValidationError
from models import SANCTION_SEVERITY, AppealStatus, SanctionType, UserSanction, utcnow
from notifier import NotificationEvents, Notifier
from utils.conditional import compare_and_set, transition

logger = logging.getLogger(__name__)

RISK_WINDOW_DAYS = 30


def is_sanction_currently_active(sanction, now) -> bool:
    """The only place sanction activity is decided."""
    if not sanction.is_active:
        return False
    if sanction.end_date is not None and now > sanction.end_date:
        return False
    return True


def validate_sanction_terms(sanction_type: str, duration: Optional[int]) -> str:
    try:
        sanction_type = SanctionType(sanction_type).value
    except ValueError:
        raise ValidationError(
            'invalid sanction type', field_errors={'sanctionType': [f'unknown sanction type {sanction_type!r}']}
        )

    if sanction_type == SanctionType.TEMPORARY_SUSPENSION.value:
        if duration is None or isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError(
                'temporary suspensions need a positive duration in hours',
                field_errors={'duration': ['must be a positive number of hours']},
            )
    elif duration is not None:
        raise ValidationError(
            'duration only applies to temporary suspensions',
            field_errors={'duration': [f'not allowed for {sanction_type}']},
        )
    return sanction_type


def risk_level(sanctions: List[UserSanction], now) -> str:
    recent = [s for s in sanctions if s.created_at and s.created_at > now - timedelta(days=RISK_WINDOW_DAYS)]
    if len(recent) >= 3:
        return 'high'
    if len(recent) >= 2 or any(is_sanction_currently_active(s, now) for s in sanctions):
        return 'medium'
    return 'low'


class SanctionManager:

    def __init__(self, session, notifier: Notifier, clock: Callable = utcnow):
        self.session = session
        self.notifier = notifier
        self.clock = clock

    def get(self, sanction_id: str) -> UserSanction:
        sanction = self.session.get(UserSanction, sanction_id)
        if sanction is None:
            raise NotFoundError('sanction', sanction_id)
        return sanction

    # -----------------
    # Writes
    # -----------------

    def _create(
        self,
        user_id: str,
        moderator_id: str,
        sanction_type: str,
        reason: str,
        duration: Optional[int] = None,
        description: Optional[str] = None,
        related_content_id: Optional[str] = None,
        related_report_id: Optional[str] = None,
    ) -> UserSanction:
        """Add a sanction to the session without committing."""
        sanction_type = validate_sanction_terms(sanction_type, duration)
        if not reason or not reason.strip():
            raise ValidationError('reason is required', field_errors={'reason': ['must not be empty']})

        now = self.clock()
        previous = (
            self.session.query(UserSanction.id)
            .filter_by(user_id=user_id)
            .order_by(UserSanction.created_at.asc())
            .all()
        )
        sanction = UserSanction(
            user_id=user_id,
            moderator_id=moderator_id,
            sanction_type=sanction_type,
            reason=reason.strip(),
            description=description,
            start_date=now,
            end_date=now + timedelta(hours=duration) if duration else None,
            duration_hours=duration,
            is_active=True,
            related_content_id=related_content_id,
            related_report_id=related_report_id,
            previous_sanction_ids=[row.id for row in previous],
            created_at=now,
            updated_at=now,
        )
        self.session.add(sanction)
        self.session.flush()
        return sanction

    def _created_notice(self, sanction: UserSanction):
        message = f"You have received a {sanction.sanction_type.replace('_', ' ')}: {sanction.reason}"
        data = {
            'sanctionId': sanction.id,
            'sanctionType': sanction.sanction_type,
            'endDate': sanction.end_date.isoformat() if sanction.end_date else None,
        }
        return message, data

    def _mark_notified(self, sanction: UserSanction) -> None:
        sanction.user_notified = True
        sanction.notified_at = self.clock()
        self.session.commit()

    def notify_created(self, sanction: UserSanction) -> None:
        """Tell the user about a committed sanction.

        ``user_notified`` is only set on a confirmed synchronous delivery.
        """
        message, data = self._created_notice(sanction)
        delivered = self.notifier.notify(sanction.user_id, NotificationEvents.SANCTION_CREATED, message, data)
        if delivered is True:
            self._mark_notified(sanction)

    def notify_user(self, caller, sanction_id: str) -> UserSanction:
        """Re-send the sanction notice synchronously and record the delivery."""
        require(caller, Actions.NOTIFY_SANCTIONED_USER, 'only administrators can send notifications')
        sanction = self.get(sanction_id)
        message, data = self._created_notice(sanction)
        if not self.notifier.send(sanction.user_id, NotificationEvents.SANCTION_CREATED, message, data):
            raise ExternalDependencyError('notification was not delivered', 'notification_service')

        self._mark_notified(sanction)
        logger.info(f"Sanction {sanction_id} notice re-sent to {sanction.user_id} by {caller.id}")
        return sanction

    def create_sanction(self, caller, user_id: str, sanction_type: str, reason: str, duration: Optional[int] = None,
                        description: Optional[str] = None, related_content_id: Optional[str] = None,
                        related_report_id: Optional[str] = None) -> UserSanction:
        require(caller, Actions.CREATE_SANCTION, 'only administrators can create user sanctions')
        sanction = self._create(
            user_id, caller.id, sanction_type, reason, duration,
            description=description,
            related_content_id=related_content_id,
            related_report_id=related_report_id,
        )
        self.session.commit()
        logger.info(f"Sanction {sanction.id} ({sanction.sanction_type}) issued to {user_id} by {caller.id}")
        self.notify_created(sanction)
        return sanction

    def revoke_sanction(self, caller, sanction_id: str, reason: str) -> UserSanction:
        require(caller, Actions.REVOKE_SANCTION, 'only administrators can revoke sanctions')
        now = self.clock()
        sanction = transition(
            self.session,
            UserSanction,
            sanction_id,
            [UserSanction.is_active.is_(True)],
            {
                'is_active': False,
                'revoked_by': caller.id,
                'revoked_at': now,
                'revocation_reason': reason,
                'updated_at': now,
            },
            'sanction',
            'sanction is not active',
        )
        self.session.commit()
        logger.info(f"Sanction {sanction_id} revoked by {caller.id}")

        self.notifier.notify(
            sanction.user_id,
            NotificationEvents.SANCTION_REVOKED,
            'A sanction on your account has been lifted.',
            {'sanctionId': sanction.id, 'reason': reason},
        )
        return sanction

    def appeal_sanction(self, caller, sanction_id: str, appeal_reason: str) -> UserSanction:
        sanction = self.get(sanction_id)
        require(
            caller,
            Actions.APPEAL_SANCTION,
            'only the sanctioned user can appeal',
            target_user_id=sanction.user_id,
        )

        now = self.clock()
        won = compare_and_set(
            self.session,
            UserSanction,
            [UserSanction.id == sanction_id],
            [
                UserSanction.is_active.is_(True),
                UserSanction.is_appealed.is_(False),
                or_(UserSanction.end_date.is_(None), UserSanction.end_date >= now),
            ],
            {
                'is_appealed': True,
                'appealed_at': now,
                'appeal_reason': appeal_reason,
                'appeal_status': AppealStatus.PENDING.value,
                'updated_at': now,
            },
        )
        if not won:
            self.session.rollback()
            current = self.session.get(UserSanction, sanction_id, populate_existing=True)
            if current.is_appealed:
                raise ConflictError('sanction already appealed', {'sanctionId': sanction_id})
            raise ConflictError('sanction is not active', {'sanctionId': sanction_id})

        self.session.commit()
        sanction = self.session.get(UserSanction, sanction_id, populate_existing=True)
        logger.info(f"Sanction {sanction_id} appealed by {caller.id}")

        self.notifier.notify(
            sanction.moderator_id,
            NotificationEvents.SANCTION_APPEALED,
            f"User {sanction.user_id} appealed sanction {sanction.id}.",
            {'sanctionId': sanction.id, 'appealReason': appeal_reason},
        )
        return sanction

    def review_appeal(self, caller, sanction_id: str, approved: bool, notes: Optional[str] = None) -> UserSanction:
        require(caller, Actions.REVIEW_APPEAL, 'only administrators can review appeals')
        now = self.clock()
        values = {
            'appeal_status': AppealStatus.APPROVED.value if approved else AppealStatus.DENIED.value,
            'appeal_reviewed_by': caller.id,
            'appeal_reviewed_at': now,
            'appeal_review_notes': notes,
            'updated_at': now,
        }
        if approved:
            values['is_active'] = False

        sanction = transition(
            self.session,
            UserSanction,
            sanction_id,
            [UserSanction.appeal_status == AppealStatus.PENDING.value],
            values,
            'sanction',
            'no pending appeal for this sanction',
        )
        self.session.commit()
        logger.info(f"Appeal on sanction {sanction_id} {sanction.appeal_status} by {caller.id}")

        self.notifier.notify(
            sanction.user_id,
            NotificationEvents.APPEAL_REVIEWED,
            f"Your appeal was {sanction.appeal_status}.",
            {'sanctionId': sanction.id, 'appealStatus': sanction.appeal_status},
        )
        return sanction

    # -----------------
    # Reads
    # -----------------

    def get_user_sanction_status(self, caller, user_id: str) -> Dict:
        require(
            caller,
            Actions.VIEW_USER_SANCTIONS,
            'insufficient permissions to check user sanction status',
            target_user_id=user_id,
        )
        now = self.clock()
        candidates = self.session.query(UserSanction).filter_by(user_id=user_id, is_active=True).all()
        active = [s for s in candidates if is_sanction_currently_active(s, now)]

        status = {
            'userId': user_id,
            'isSanctioned': bool(active),
            'activeSanctions': [s.to_dict() for s in active],
            'highestSanctionType': None,
            'canPost': True,
            'canCreateDiscussion': True,
            'restrictionEndDate': None,
        }
        if not active:
            return status

        highest = max(active, key=lambda s: SANCTION_SEVERITY.get(s.sanction_type, 0))
        status['highestSanctionType'] = highest.sanction_type
        if highest.sanction_type != SanctionType.WARNING.value:
            status['canPost'] = False
            status['canCreateDiscussion'] = False
        if highest.sanction_type == SanctionType.TEMPORARY_SUSPENSION.value:
            ends = [s.end_date for s in active if s.sanction_type == highest.sanction_type and s.end_date]
            status['restrictionEndDate'] = max(ends).isoformat() if ends else None
        return status

    def user_history(self, user_id: str) -> Dict:
        now = self.clock()
        sanctions = (
            self.session.query(UserSanction)
            .filter_by(user_id=user_id)
            .order_by(UserSanction.created_at.desc())
            .all()
        )
        return {
            'userId': user_id,
            'totalSanctions': len(sanctions),
            'activeSanctions': sum(1 for s in sanctions if is_sanction_currently_active(s, now)),
            'sanctions': [s.to_dict() for s in sanctions],
            'riskLevel': risk_level(sanctions, now),
            'lastSanctionDate': sanctions[0].created_at.isoformat() if sanctions else None,
        }

    def expiring(self, hours_ahead: int = 24) -> List[UserSanction]:
        """Active temporary suspensions that end within ``hours_ahead``."""
        now = self.clock()
        return (
            self.session.query(UserSanction)
            .filter(
                UserSanction.is_active.is_(True),
                UserSanction.sanction_type == SanctionType.TEMPORARY_SUSPENSION.value,
                UserSanction.end_date >= now,
                UserSanction.end_date <= now + timedelta(hours=hours_ahead),
            )
            .order_by(UserSanction.end_date.asc())
            .all()
        )

    def by_moderator(self, moderator_id: str, limit: int = 100) -> List[UserSanction]:
        return (
            self.session.query(UserSanction)
            .filter_by(moderator_id=moderator_id)
            .order_by(UserSanction.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_sanctions(
        self,
        user_id: Optional[str] = None,
        sanction_type: Optional[str] = None,
        active_only: bool = False,
        page: int = 1,
        per_page: int = 20,
    ) -> Dict:
        query = self.session.query(UserSanction)
        if user_id:
            query = query.filter(UserSanction.user_id == user_id)
        if sanction_type:
            query = query.filter(UserSanction.sanction_type == sanction_type)
        if active_only:
            now = self.clock()
            query = query.filter(
                UserSanction.is_active.is_(True),
                or_(UserSanction.end_date.is_(None), UserSanction.end_date >= now),
            )

        paged = query.order_by(UserSanction.created_at.desc()).paginate(
            page=page, per_page=per_page, error_out=False
        )
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

    def stats(self) -> Dict:
        now = self.clock()
        sanctions = self.session.query(UserSanction).all()
        total = len(sanctions)

        appealed = [s for s in sanctions if s.is_appealed]
        approved = [s for s in appealed if s.appeal_status == AppealStatus.APPROVED.value]
        durations = [s.duration_hours for s in sanctions if s.duration_hours]
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)

        return {
            'totalSanctions': total,
            'sanctionsByType': {t.value: sum(1 for s in sanctions if s.sanction_type == t.value) for t in SanctionType},
            'activeSanctions': sum(1 for s in sanctions if is_sanction_currently_active(s, now)),
            'sanctionsToday': sum(1 for s in sanctions if s.created_at and s.created_at >= today),
            'sanctionsThisWeek': sum(1 for s in sanctions if s.created_at and s.created_at >= now - timedelta(days=7)),
            'appealRate': round(len(appealed) / total * 100, 2) if total else 0.0,
            'appealSuccessRate': round(len(approved) / len(appealed) * 100, 2) if appealed else 0.0,
            'averageSanctionDuration': round(sum(durations) / len(durations), 2) if durations else 0.0,
            'topReasons': [
                {'reason': reason, 'count': count}
                for reason, count in Counter(s.reason for s in sanctions).most_common(10)
            ],
        }
