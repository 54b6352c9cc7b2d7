"""
Filter rule management.

Rules are created, edited and deactivated by administrators. Deactivation is a
soft flag so the accuracy history of a rule survives it.
"""
import logging
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as SchemaError
from sqlalchemy import case, func, update

from exceptions import NotFoundError, ValidationError
from models import FilterRule, utcnow
from utils.filter_engine import CombinedDecision, FilterEngine, FilterResult, combine, compile_filter
from utils.schemas import FilterRuleCreate, FilterRuleUpdate

logger = logging.getLogger(__name__)


def _columns_from(data: FilterRuleCreate) -> Dict:
    """Map a validated body onto FilterRule columns, clearing unused payloads."""
    return {
        'name': data.name,
        'description': data.description,
        'kind': data.kind.value,
        'keywords': data.keywords,
        'pattern': data.pattern,
        'external_ref': data.external_ref,
        'action': data.action.value,
        'severity': data.severity,
        'confidence_threshold': data.confidence,
        'applies_to_body': data.apply_to_content,
        'applies_to_title': data.apply_to_titles,
        'applies_to_comment': data.apply_to_comments,
        'is_active': data.is_active,
        'is_test_mode': data.is_test_mode,
    }


def _as_body(rule: FilterRule) -> Dict:
    return {
        'name': rule.name,
        'description': rule.description or '',
        'kind': rule.kind,
        'keywords': rule.keywords,
        'pattern': rule.pattern,
        'external_ref': rule.external_ref,
        'action': rule.action,
        'severity': rule.severity,
        'confidence': rule.confidence_threshold,
        'apply_to_content': rule.applies_to_body,
        'apply_to_titles': rule.applies_to_title,
        'apply_to_comments': rule.applies_to_comment,
        'is_active': rule.is_active,
        'is_test_mode': rule.is_test_mode,
    }


class FilterRuleService:

    def __init__(self, session, engine: FilterEngine, clock: Callable = utcnow):
        self.session = session
        self.engine = engine
        self.clock = clock

    def get(self, rule_id: str) -> FilterRule:
        rule = self.session.get(FilterRule, rule_id)
        if rule is None:
            raise NotFoundError('filter', rule_id)
        return rule

    def list_active(self) -> List[FilterRule]:
        return (
            self.session.query(FilterRule).filter_by(is_active=True)
            .order_by(FilterRule.created_at.asc())
            .all()
        )

    def create(self, caller_id: str, data: FilterRuleCreate) -> FilterRule:
        rule = FilterRule(created_by=caller_id, last_modified_by=caller_id, **_columns_from(data))
        self.session.add(rule)
        self.session.commit()
        logger.info(f"Filter {rule.id} ({rule.kind}) created by {caller_id}")
        return rule

    def update(self, caller_id: str, rule_id: str, changes: FilterRuleUpdate) -> FilterRule:
        rule = self.get(rule_id)

        merged = _as_body(rule)
        merged.update(changes.model_dump(exclude_unset=True))
        # A kind switch drops payloads that belong to the previous kind.
        if 'kind' in changes.model_fields_set:
            for payload in ('keywords', 'pattern', 'external_ref'):
                if payload not in changes.model_fields_set:
                    merged[payload] = None

        try:
            data = FilterRuleCreate.model_validate(merged)
        except SchemaError as e:
            raise ValidationError(
                'invalid filter update',
                field_errors={'.'.join(str(p) for p in err['loc']) or 'filter': [err['msg']] for err in e.errors()},
            )

        for column, value in _columns_from(data).items():
            setattr(rule, column, value)
        rule.last_modified_by = caller_id
        self.session.commit()
        logger.info(f"Filter {rule.id} updated by {caller_id}")
        return rule

    def deactivate(self, caller_id: str, rule_id: str) -> FilterRule:
        rule = self.get(rule_id)
        rule.is_active = False
        rule.last_modified_by = caller_id
        self.session.commit()
        logger.info(f"Filter {rule.id} deactivated by {caller_id}")
        return rule

    def test(self, rule_id: str, content: str) -> FilterResult:
        """Evaluate one rule regardless of its active or test-mode flags."""
        return self.engine.evaluate(content, compile_filter(self.get(rule_id)))

    def process_content(self, content: str, field: Optional[str] = None) -> CombinedDecision:
        rules = [compile_filter(r) for r in self.list_active()]
        return combine(self.engine.evaluate_all(content, rules, field=field))

    def record_feedback(self, rule_id: str, was_correct: bool) -> FilterRule:
        """Fold one reviewer verdict into the rule's accuracy in a single UPDATE.

        Every right-hand side reads the pre-update column values, so concurrent
        feedback never loses an increment.
        """
        hit = 1 if was_correct else 0
        stmt = (
            update(FilterRule)
            .where(FilterRule.id == rule_id)
            .values(
                total_matches=FilterRule.total_matches + 1,
                true_positives=FilterRule.true_positives + hit,
                false_positives=FilterRule.false_positives + (1 - hit),
                accuracy=(FilterRule.true_positives + hit) * 1.0 / (FilterRule.total_matches + 1),
                last_feedback_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            self.session.rollback()
            raise NotFoundError('filter', rule_id)
        self.session.commit()
        return self.session.get(FilterRule, rule_id, populate_existing=True)

    def stats(self, rule_id: str) -> Dict:
        rule = self.get(rule_id)
        return {
            'filterId': rule.id,
            'name': rule.name,
            'isActive': rule.is_active,
            'isTestMode': rule.is_test_mode,
            'totalMatches': rule.total_matches,
            'truePositives': rule.true_positives,
            'falsePositives': rule.false_positives,
            'accuracy': rule.accuracy,
            'lastFeedbackAt': rule.last_feedback_at.isoformat() if rule.last_feedback_at else None,
        }

    def summary(self, top: int = 5) -> Dict:
        total, active, matches, avg_accuracy = self.session.query(
            func.count(FilterRule.id),
            func.coalesce(func.sum(case((FilterRule.is_active.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(FilterRule.total_matches), 0),
            func.avg(case((FilterRule.total_matches > 0, FilterRule.accuracy), else_=None)),
        ).one()

        top_performers = (
            self.session.query(FilterRule).filter(FilterRule.total_matches > 0)
            .order_by(FilterRule.accuracy.desc(), FilterRule.total_matches.desc())
            .limit(top)
            .all()
        )
        return {
            'totalFilters': total,
            'activeFilters': int(active),
            'totalMatches': int(matches),
            'averageAccuracy': round(float(avg_accuracy), 4) if avg_accuracy is not None else 0.0,
            'topPerformers': [
                {'filterId': r.id, 'name': r.name, 'accuracy': r.accuracy, 'totalMatches': r.total_matches}
                for r in top_performers
            ],
        }
