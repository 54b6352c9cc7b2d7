"""
Content filter evaluation.

Rules are compiled into immutable snapshots before evaluation so a request
never sees a rule change halfway through. Evaluation itself is pure: counters
only move through the explicit accuracy feedback in utils.filter_rules.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

logger = logging.getLogger(__name__)

ALLOW = 'allow'

# Higher wins when two matches carry the same confidence.
ACTION_PRIORITY = {
    'hide': 3,
    'delete': 3,
    'queue': 2,
    'flag': 1,
    ALLOW: 0,
}

BLOCKING_ACTIONS = {'hide', 'delete', 'queue'}

SCOPE_FIELDS = ('body', 'title', 'comment')


@dataclass(frozen=True)
class CompiledFilter:
    id: str
    name: str
    kind: str
    action: str
    confidence: float
    keywords: tuple[str, ...] = ()
    pattern: Optional[str] = None
    external_ref: Optional[str] = None
    scopes: frozenset[str] = frozenset(SCOPE_FIELDS)
    is_active: bool = True
    is_test_mode: bool = False


@dataclass(frozen=True)
class FilterResult:
    rule_id: str
    rule_name: str
    matched: bool
    confidence: float
    matched_text: Optional[str]
    suggested_action: str
    explanation: str
    is_test_mode: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            'filterId': self.rule_id,
            'filterName': self.rule_name,
            'matched': self.matched,
            'confidence': self.confidence,
            'matchedText': self.matched_text,
            'suggestedAction': self.suggested_action,
            'explanation': self.explanation,
            'isTestMode': self.is_test_mode,
        }


@dataclass(frozen=True)
class CombinedDecision:
    should_allow: bool
    action: str
    confidence: float
    reason: Optional[str]
    triggered: list[FilterResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            'shouldAllow': self.should_allow,
            'action': self.action,
            'confidence': self.confidence,
            'reason': self.reason,
            'triggeredFilters': [r.to_dict() for r in self.triggered],
        }


@dataclass(frozen=True)
class ClassifierVerdict:
    matched: bool
    confidence: float
    matched_text: Optional[str] = None
    explanation: str = ''


class ExternalClassifier(Protocol):
    """Backs 'external-model' and 'external-api' rules."""

    def classify(self, content: str, rule: CompiledFilter) -> ClassifierVerdict:
        ...


def compile_filter(rule: Any) -> CompiledFilter:
    """Snapshot a FilterRule row (or anything shaped like one)."""
    scopes = {
        name for name, enabled in (
            ('body', rule.applies_to_body),
            ('title', rule.applies_to_title),
            ('comment', rule.applies_to_comment),
        ) if enabled
    }
    return CompiledFilter(
        id=str(rule.id),
        name=rule.name,
        kind=rule.kind,
        action=rule.action,
        confidence=float(rule.confidence_threshold),
        keywords=tuple(rule.keywords or ()),
        pattern=rule.pattern,
        external_ref=rule.external_ref,
        scopes=frozenset(scopes),
        is_active=bool(rule.is_active),
        is_test_mode=bool(rule.is_test_mode),
    )


def _no_match(rule: CompiledFilter, explanation: str = '') -> FilterResult:
    return FilterResult(
        rule_id=rule.id,
        rule_name=rule.name,
        matched=False,
        confidence=0.0,
        matched_text=None,
        suggested_action=ALLOW,
        explanation=explanation,
        is_test_mode=rule.is_test_mode,
    )


def _hit(rule: CompiledFilter, matched_text: str, explanation: str, confidence: Optional[float] = None) -> FilterResult:
    return FilterResult(
        rule_id=rule.id,
        rule_name=rule.name,
        matched=True,
        confidence=rule.confidence if confidence is None else confidence,
        matched_text=matched_text,
        suggested_action=rule.action,
        explanation=explanation,
        is_test_mode=rule.is_test_mode,
    )


class FilterEngine:
    """Evaluates content against compiled filter rules."""

    def __init__(self, classifier: Optional[ExternalClassifier] = None):
        self.classifier = classifier

    def evaluate(self, content: str, rule: CompiledFilter) -> FilterResult:
        content = content or ''

        if rule.kind == 'keyword':
            lowered = content.lower()
            for keyword in rule.keywords:
                if keyword and keyword.lower() in lowered:
                    return _hit(rule, keyword, f'keyword "{keyword}" matched')
            return _no_match(rule)

        if rule.kind == 'pattern':
            try:
                compiled = re.compile(rule.pattern or '', re.IGNORECASE)
            except re.error as e:
                logger.warning(f"Filter {rule.id} has an invalid pattern {rule.pattern!r}: {e}")
                return _no_match(rule, 'invalid pattern')
            found = compiled.search(content)
            if found is None:
                return _no_match(rule)
            return _hit(rule, found.group(0), f'pattern /{rule.pattern}/ matched')

        if rule.kind in ('external-model', 'external-api'):
            if self.classifier is None:
                return _no_match(rule, f'{rule.kind} analysis not implemented')
            try:
                verdict = self.classifier.classify(content, rule)
            except Exception as e:
                logger.warning(f"Classifier failed for filter {rule.id} ({rule.kind}): {e}")
                return _no_match(rule, 'classifier error')
            if not verdict.matched:
                return _no_match(rule, verdict.explanation)
            return _hit(rule, verdict.matched_text or '', verdict.explanation, confidence=verdict.confidence)

        logger.warning(f"Filter {rule.id} has unknown kind {rule.kind!r}")
        return _no_match(rule, 'unknown filter kind')

    def evaluate_all(
        self,
        content: str,
        rules: Iterable[CompiledFilter],
        field: Optional[str] = None,
    ) -> list[FilterResult]:
        """Evaluate every active rule, optionally only those scoped to ``field``."""
        results = []
        for rule in rules:
            if not rule.is_active:
                continue
            if field is not None and field not in rule.scopes:
                continue
            results.append(self.evaluate(content, rule))
        return results


def _rank(result: FilterResult) -> tuple[float, int]:
    return (result.confidence, ACTION_PRIORITY.get(result.suggested_action, 0))


def combine(results: Iterable[FilterResult]) -> CombinedDecision:
    """Reduce per-rule results to one suggested action.

    Matches from rules in test mode are reported in ``triggered`` but never
    drive the decision.
    """
    triggered = [r for r in results if r.matched]
    live = [r for r in triggered if not r.is_test_mode]

    if not live:
        return CombinedDecision(
            should_allow=True, action=ALLOW, confidence=0.0, reason=None, triggered=triggered,
        )

    winner = max(live, key=_rank)
    should_allow = not any(r.suggested_action in BLOCKING_ACTIONS for r in live)
    return CombinedDecision(
        should_allow=should_allow,
        action=winner.suggested_action,
        confidence=winner.confidence,
        reason=None if should_allow else winner.explanation,
        triggered=triggered,
    )
