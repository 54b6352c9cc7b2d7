"""
Moderation statistics.

Derived reads only; nothing here writes.
"""
from typing import Dict, Optional

from sqlalchemy import func

from authorization import Actions, require
from models import Priority, Report, ReportCategory, ReportStatus
from utils.filter_rules import FilterRuleService
from utils.moderation_actions import ModerationActionEngine
from utils.moderation_queue import ModerationQueue
from utils.sanctions import SanctionManager


class ModerationStats:

    def __init__(
        self,
        session,
        queue: ModerationQueue,
        actions: ModerationActionEngine,
        filters: FilterRuleService,
        sanctions: SanctionManager,
    ):
        self.session = session
        self.queue = queue
        self.actions = actions
        self.filters = filters
        self.sanctions = sanctions

    def report_stats(self, scope=None, start=None, end=None) -> Dict:
        query = self.session.query(Report)
        if scope is not None:
            query = query.filter(Report.discussion_id.in_(scope))
        if start is not None:
            query = query.filter(Report.created_at >= start)
        if end is not None:
            query = query.filter(Report.created_at <= end)

        def grouped(column):
            return dict(query.with_entities(column, func.count(Report.id)).group_by(column).all())

        by_category = grouped(Report.category)
        by_status = grouped(Report.status)
        by_priority = grouped(Report.priority)
        return {
            'totalReports': sum(by_status.values()),
            'byCategory': {c.value: by_category.get(c.value, 0) for c in ReportCategory},
            'byStatus': {s.value: by_status.get(s.value, 0) for s in ReportStatus},
            'byPriority': {p.value: by_priority.get(p.value, 0) for p in Priority},
        }

    def overview(self, caller, discussion_id: Optional[str] = None, start=None, end=None) -> Dict:
        """Dashboard numbers scoped to what ``caller`` may moderate."""
        require(caller, Actions.VIEW_STATS, 'insufficient permissions to view moderation statistics')

        scope = self.queue.visible_discussions(caller)
        if discussion_id:
            scope = [discussion_id] if scope is None or discussion_id in scope else []

        result = {
            'queue': self.queue.stats(scope),
            'reports': self.report_stats(scope, start, end),
            'actions': self.actions.stats(scope, start, end),
        }
        if caller.is_admin:
            result['filters'] = self.filters.summary()
            result['sanctions'] = self.sanctions.stats()
        return result
