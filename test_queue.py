"""
Tests for the moderation queue: ordering, scope, assignment and resolution.
"""
import pytest

from authorization import Caller
from exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models import ModerationQueueItem


def submit(services, content_id='c1', category='spam', reporter='reporter-1'):
    report = services.reports.submit_report(reporter, content_id, category, 'please look')
    return ModerationQueueItem.query.filter_by(report_id=report.id).one()


# =============================================================================
# LISTING
# =============================================================================

class TestListItems:
    """Test queue ordering, filters and visibility."""

    def test_urgent_before_newer_medium(self, services, admin, clock):
        urgent = submit(services, category='violence')
        clock.advance(minutes=5)
        medium = submit(services, category='spam', reporter='reporter-2')

        items = services.queue.list_items(admin)['items']
        assert [i.id for i in items] == [urgent.id, medium.id]

    def test_newest_first_within_priority(self, services, admin, clock):
        older = submit(services, category='spam')
        clock.advance(minutes=5)
        newer = submit(services, category='spam', reporter='reporter-2')

        items = services.queue.list_items(admin)['items']
        assert [i.id for i in items] == [newer.id, older.id]

    def test_filters(self, services, admin):
        submit(services, category='violence')
        submit(services, 'c2', category='spam')

        assert len(services.queue.list_items(admin, priority='urgent')['items']) == 1
        assert len(services.queue.list_items(admin, discussion_id='d2')['items']) == 1
        assert services.queue.list_items(admin, status='resolved')['items'] == []

    def test_creator_sees_only_owned_discussions(self, services, owner):
        submit(services, 'c1')
        submit(services, 'c2')

        items = services.queue.list_items(owner)['items']
        assert [i.discussion_id for i in items] == ['d1']

    def test_viewer_is_forbidden(self, services, viewer):
        with pytest.raises(ForbiddenError):
            services.queue.list_items(viewer)

    def test_contributor_is_forbidden(self, services, author):
        with pytest.raises(ForbiddenError):
            services.queue.list_items(author)

    def test_page_size_is_clamped(self, services, admin):
        result = services.queue.list_items(admin, per_page=10_000)
        assert result['pagination']['perPage'] == 100

    def test_pagination_meta(self, services, admin):
        for n in range(3):
            submit(services, reporter=f'reporter-{n}')

        result = services.queue.list_items(admin, page=2, per_page=2)
        assert len(result['items']) == 1
        assert result['pagination']['total'] == 3
        assert result['pagination']['pages'] == 2
        assert result['pagination']['hasPrev'] is True
        assert result['pagination']['hasNext'] is False


# =============================================================================
# ASSIGNMENT
# =============================================================================

class TestAssign:
    """Test claiming and releasing queue items."""

    def test_assign_to_self(self, services, owner, clock):
        item = submit(services)
        assigned = services.queue.assign(item.id, None, owner)

        assert assigned.status == 'in_review'
        assert assigned.assigned_to == 'owner-1'
        assert assigned.assigned_by == 'owner-1'
        assert assigned.assigned_at == clock.now

    def test_second_moderator_conflicts(self, services, admin, owner):
        item = submit(services)
        services.queue.assign(item.id, None, owner)

        with pytest.raises(ConflictError) as exc:
            services.queue.assign(item.id, None, admin)
        assert exc.value.message == 'already assigned'

    def test_reassign_to_same_moderator_is_idempotent(self, services, owner):
        item = submit(services)
        first = services.queue.assign(item.id, None, owner)
        second = services.queue.assign(item.id, None, owner)
        assert second.assigned_at == first.assigned_at
        assert second.status == 'in_review'

    def test_admin_assigns_to_someone_else(self, services, admin):
        item = submit(services)
        assigned = services.queue.assign(item.id, 'owner-1', admin)
        assert assigned.assigned_to == 'owner-1'
        assert assigned.assigned_by == 'admin-1'

    def test_creator_cannot_assign_to_others(self, services, owner):
        item = submit(services)
        with pytest.raises(ForbiddenError):
            services.queue.assign(item.id, 'someone-else', owner)

    def test_creator_cannot_assign_outside_their_discussions(self, services, other_owner):
        item = submit(services, 'c1')
        with pytest.raises(ForbiddenError):
            services.queue.assign(item.id, None, other_owner)

    def test_resolved_item_cannot_be_assigned(self, services, admin):
        item = submit(services)
        services.queue.resolve(item.id)

        with pytest.raises(ConflictError) as exc:
            services.queue.assign(item.id, None, admin)
        assert exc.value.message == 'queue item already resolved'

    def test_unknown_item(self, services, admin):
        with pytest.raises(NotFoundError):
            services.queue.assign('missing', None, admin)

    def test_unassign_returns_item_to_pending(self, services, owner):
        item = submit(services)
        services.queue.assign(item.id, None, owner)

        released = services.queue.unassign(item.id, owner)
        assert released.status == 'pending'
        assert released.assigned_to is None
        assert released.assigned_at is None

    def test_unassign_pending_is_noop(self, services, owner):
        item = submit(services)
        assert services.queue.unassign(item.id, owner).status == 'pending'

    def test_unassign_resolved_conflicts(self, services, owner):
        item = submit(services)
        services.queue.resolve(item.id)
        with pytest.raises(ConflictError):
            services.queue.unassign(item.id, owner)


# =============================================================================
# RESOLUTION AND AUTOMATED ITEMS
# =============================================================================

class TestResolve:
    """Test resolution and automated enqueueing."""

    def test_resolve_twice_conflicts(self, services, clock):
        item = submit(services)
        resolved = services.queue.resolve(item.id)
        assert resolved.status == 'resolved'
        assert resolved.resolved_at == clock.now

        with pytest.raises(ConflictError):
            services.queue.resolve(item.id)

    def test_enqueue_automated(self, services, admin):
        item = services.queue.enqueue_automated('c2', 'spam heuristics', priority='high')

        assert item.report_id is None
        assert item.is_auto_detected is True
        assert item.priority == 'high'
        assert item.report_reason == 'spam heuristics'
        assert services.queue.list_items(admin)['items'][0].id == item.id

    def test_enqueue_automated_rejects_unknown_priority(self, services):
        with pytest.raises(ValidationError):
            services.queue.enqueue_automated('c2', 'spam heuristics', priority='whenever')

    def test_enqueue_automated_unknown_content(self, services):
        with pytest.raises(NotFoundError):
            services.queue.enqueue_automated('missing', 'spam heuristics')


class TestQueueStats:
    """Test queue statistics."""

    def test_counts_and_review_time(self, services, owner, clock):
        first = submit(services, category='violence')
        submit(services, category='spam', reporter='reporter-2')

        services.queue.assign(first.id, None, owner)
        clock.advance(minutes=30)
        services.queue.resolve(first.id)

        stats = services.queue.stats()
        assert stats['totalItems'] == 2
        assert stats['byStatus'] == {'pending': 1, 'in_review': 0, 'resolved': 1}
        assert stats['openByPriority']['medium'] == 1
        assert stats['openByPriority']['urgent'] == 0
        assert stats['averageReviewMinutes'] == 30.0

    def test_scope_limits_counts(self, services):
        submit(services, 'c1')
        submit(services, 'c2')
        assert services.queue.stats(scope=['d2'])['totalItems'] == 1

    def test_stranger_with_creator_role_sees_empty_queue(self, services):
        submit(services, 'c1')
        stranger = Caller('creator-9', 'creator')
        assert services.queue.list_items(stranger)['items'] == []
