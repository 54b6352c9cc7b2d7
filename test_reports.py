"""
Tests for report intake and report review.
"""
from datetime import timedelta

import pytest
from flask_login import AnonymousUserMixin
from sqlalchemy.exc import IntegrityError

from app import db
from authorization import Actions, Caller, can
from exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models import ContentModeration, ModerationQueueItem, Report, ReportCategory, UserSanction
from notifier import NotificationEvents
from utils.report_intake import priority_for
from utils.schemas import ModerationActionSpec, SanctionSpec


# =============================================================================
# PRIORITY
# =============================================================================

class TestPriority:
    """Test the category -> priority table."""

    @pytest.mark.parametrize('category,expected', [
        ('hate_speech', 'urgent'),
        ('violence', 'urgent'),
        ('harassment', 'high'),
        ('misinformation', 'high'),
        ('privacy', 'high'),
        ('spam', 'medium'),
        ('inappropriate', 'medium'),
        ('copyright', 'medium'),
        ('other', 'low'),
        ('something-new', 'low'),
    ])
    def test_priority_table(self, category, expected):
        assert priority_for(category) == expected

    def test_priority_is_deterministic(self):
        for category in ReportCategory:
            assert priority_for(category.value) == priority_for(category.value)


# =============================================================================
# INTAKE
# =============================================================================

class TestSubmitReport:
    """Test report creation and duplicate handling."""

    @pytest.mark.parametrize('role', ['viewer', 'contributor', 'creator', 'admin'])
    def test_any_signed_in_caller_may_report(self, role):
        assert can(Caller('reporter-1', role), Actions.SUBMIT_REPORT).allowed is True

    def test_anonymous_caller_may_not_report(self):
        decision = can(AnonymousUserMixin(), Actions.SUBMIT_REPORT)
        assert decision.allowed is False
        assert decision.reason == 'authentication_required'

    def test_creates_report_and_queue_item(self, services):
        report = services.reports.submit_report('reporter-1', 'c1', 'hate_speech', 'slurs in the second paragraph')

        assert report.status == 'pending'
        assert report.priority == 'urgent'
        assert report.discussion_id == 'd1'

        item = ModerationQueueItem.query.filter_by(report_id=report.id).one()
        assert item.status == 'pending'
        assert item.is_urgent is True
        assert item.requires_special_attention is True
        assert item.author_id == 'author-1'
        assert len(item.content_preview) == 200
        assert item.report_category == 'hate_speech'

    def test_non_urgent_item(self, services):
        report = services.reports.submit_report('reporter-1', 'c2', 'spam', 'advert')
        item = ModerationQueueItem.query.filter_by(report_id=report.id).one()
        assert item.priority == 'medium'
        assert item.is_urgent is False

    def test_duplicate_pending_report_conflicts(self, services):
        services.reports.submit_report('reporter-1', 'c1', 'spam', 'advert')

        with pytest.raises(ConflictError) as exc:
            services.reports.submit_report('reporter-1', 'c1', 'harassment', 'also rude')
        assert exc.value.message == 'already reported'
        assert Report.query.count() == 1

    def test_other_reporters_may_report_same_content(self, services):
        services.reports.submit_report('reporter-1', 'c1', 'spam', 'advert')
        services.reports.submit_report('reporter-2', 'c1', 'spam', 'advert')
        assert Report.query.filter_by(content_id='c1').count() == 2

    def test_report_accepted_again_after_review(self, services, owner):
        first = services.reports.submit_report('reporter-1', 'c1', 'spam', 'advert')
        services.review.review_report(owner, first.id, 'reviewed', 'no violation')

        second = services.reports.submit_report('reporter-1', 'c1', 'spam', 'advert again')
        assert second.id != first.id
        assert second.status == 'pending'

    def test_unknown_content(self, services):
        with pytest.raises(NotFoundError):
            services.reports.submit_report('reporter-1', 'missing', 'spam', 'advert')

    def test_unknown_category(self, services):
        with pytest.raises(ValidationError):
            services.reports.submit_report('reporter-1', 'c1', 'boring', 'meh')

    def test_blank_reason(self, services):
        with pytest.raises(ValidationError):
            services.reports.submit_report('reporter-1', 'c1', 'spam', '   ')

    def test_partial_index_rejects_second_pending_row(self, services):
        """The database itself refuses a duplicate that skips the pre-check."""
        for _ in range(2):
            db.session.add(Report(
                content_id='c1', discussion_id='d1', reporter_id='reporter-1',
                category='spam', reason='advert', priority='medium', status='pending',
            ))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_integrity_error_becomes_conflict(self, services, monkeypatch):
        import utils.report_intake as report_intake

        real_build = report_intake.build_queue_item

        def build_after_concurrent_insert(*args, **kwargs):
            # A concurrent request commits its report after our pre-check ran.
            db.session.add(Report(
                content_id='c1', discussion_id='d1', reporter_id='reporter-1',
                category='spam', reason='advert', priority='medium', status='pending',
            ))
            db.session.commit()
            return real_build(*args, **kwargs)

        monkeypatch.setattr(report_intake, 'build_queue_item', build_after_concurrent_insert)
        with pytest.raises(ConflictError) as exc:
            services.reports.submit_report('reporter-1', 'c1', 'spam', 'advert')

        assert exc.value.message == 'already reported'
        assert Report.query.count() == 1


# =============================================================================
# REVIEW
# =============================================================================

class TestReviewReport:
    """Test report review and its cascades."""

    def test_review_resolves_queue_item(self, services, owner):
        report = services.reports.submit_report('reporter-1', 'c1', 'spam', 'advert')
        result = services.review.review_report(owner, report.id, 'reviewed', 'no violation', notes='fine')

        assert result['report'].status == 'reviewed'
        assert result['report'].reviewed_by == 'owner-1'
        assert result['report'].review_notes == 'fine'
        assert result['queueItem'].status == 'resolved'
        assert result['log'] is None
        assert result['sanction'] is None

    def test_review_twice_conflicts(self, services, owner):
        report = services.reports.submit_report('reporter-1', 'c1', 'spam', 'advert')
        services.review.review_report(owner, report.id, 'reviewed', 'no violation')

        with pytest.raises(ConflictError):
            services.review.review_report(owner, report.id, 'reviewed', 'changed my mind')

    def test_only_owner_or_admin_can_review(self, services, other_owner, author):
        report = services.reports.submit_report('reporter-1', 'c1', 'spam', 'advert')
        for caller in (other_owner, author):
            with pytest.raises(ForbiddenError):
                services.review.review_report(caller, report.id, 'reviewed', 'nope')

    def test_status_must_be_reviewed(self, services, admin):
        report = services.reports.submit_report('reporter-1', 'c1', 'spam', 'advert')
        with pytest.raises(ValidationError):
            services.review.review_report(admin, report.id, 'pending', 'nope')

    def test_unknown_report(self, services, admin):
        with pytest.raises(NotFoundError):
            services.review.review_report(admin, 'missing', 'reviewed', 'nope')

    def test_cascades_into_action_and_sanction(self, services, owner, notifier, clock):
        report = services.reports.submit_report('reporter-1', 'c1', 'harassment', 'insults')

        result = services.review.review_report(
            owner,
            report.id,
            'reviewed',
            'harassment confirmed',
            action=ModerationActionSpec(action='hide'),
            user_sanction=SanctionSpec(sanctionType='temporary_suspension', reason='harassment', duration=24),
        )

        assert result['content'].is_hidden is True
        assert result['log'].related_report_id == report.id
        assert result['log'].reason == 'harassment confirmed'

        sanction = result['sanction']
        assert sanction.user_id == 'author-1'
        assert sanction.moderator_id == 'owner-1'
        assert sanction.related_report_id == report.id
        assert sanction.related_content_id == 'c1'
        assert sanction.end_date == clock.now + timedelta(hours=24)
        assert sanction.user_notified is True

        events = [call.args[1] for call in notifier.notify.call_args_list]
        assert NotificationEvents.CONTENT_MODERATED in events
        assert NotificationEvents.SANCTION_CREATED in events

    def test_failed_cascade_rolls_back_everything(self, services, admin, notifier):
        report = services.reports.submit_report('reporter-1', 'c1', 'harassment', 'insults')

        with pytest.raises(ValidationError):
            services.review.review_report(
                admin,
                report.id,
                'reviewed',
                'harassment confirmed',
                action=ModerationActionSpec(action='hide'),
                # Suspensions need a duration.
                user_sanction=SanctionSpec(sanctionType='temporary_suspension', reason='harassment'),
            )

        assert db.session.get(Report, report.id).status == 'pending'
        assert db.session.get(ContentModeration, 'c1') is None
        assert UserSanction.query.count() == 0
        assert ModerationQueueItem.query.filter_by(report_id=report.id).one().status == 'pending'
        notifier.notify.assert_not_called()
