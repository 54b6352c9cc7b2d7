"""
Tests for filter evaluation, result combination and the spam heuristics.
These run without an application or database.
"""
import logging
from unittest.mock import MagicMock

import pytest

from utils.filter_engine import (
    ClassifierVerdict,
    CompiledFilter,
    FilterEngine,
    FilterResult,
    combine,
)
from utils.spam_detection import detect_spam


def keyword_rule(keywords=('spam',), action='flag', confidence=0.8, **kwargs):
    return CompiledFilter(
        id=kwargs.pop('id', 'kw-1'),
        name=kwargs.pop('name', 'spam words'),
        kind='keyword',
        action=action,
        confidence=confidence,
        keywords=tuple(keywords),
        **kwargs
    )


def pattern_rule(pattern, action='hide', confidence=0.9, **kwargs):
    return CompiledFilter(
        id=kwargs.pop('id', 're-1'),
        name=kwargs.pop('name', 'phone numbers'),
        kind='pattern',
        action=action,
        confidence=confidence,
        pattern=pattern,
        **kwargs
    )


def result(rule_id, action, confidence, matched=True, test_mode=False):
    return FilterResult(
        rule_id=rule_id,
        rule_name=rule_id,
        matched=matched,
        confidence=confidence,
        matched_text='x' if matched else None,
        suggested_action=action if matched else 'allow',
        explanation=f'{rule_id} matched',
        is_test_mode=test_mode,
    )


@pytest.fixture
def engine():
    return FilterEngine()


# =============================================================================
# KEYWORD RULES
# =============================================================================

class TestKeywordRules:
    """Keyword rules match on case-insensitive substring containment."""

    def test_matches_keyword(self, engine):
        outcome = engine.evaluate('this is spam content', keyword_rule())
        assert outcome.matched is True
        assert outcome.confidence >= 0.8
        assert outcome.matched_text == 'spam'
        assert outcome.suggested_action == 'flag'

    def test_clean_content_does_not_match(self, engine):
        outcome = engine.evaluate('clean content', keyword_rule())
        assert outcome.matched is False
        assert outcome.suggested_action == 'allow'
        assert outcome.confidence == 0.0

    def test_match_is_case_insensitive(self, engine):
        assert engine.evaluate('BUY SPAM NOW', keyword_rule()).matched is True

    def test_first_keyword_in_list_order_wins(self, engine):
        rule = keyword_rule(keywords=('buy', 'cheap'))
        outcome = engine.evaluate('cheap watches, buy today', rule)
        assert outcome.matched_text == 'buy'

    def test_substring_inside_word_matches(self, engine):
        assert engine.evaluate('spammy offer', keyword_rule()).matched is True


# =============================================================================
# PATTERN RULES
# =============================================================================

class TestPatternRules:
    """Pattern rules apply a case-insensitive regular expression."""

    def test_first_match_is_reported(self, engine):
        outcome = engine.evaluate('call 555-1234 or 555-9876', pattern_rule(r'\d{3}-\d{4}'))
        assert outcome.matched is True
        assert outcome.matched_text == '555-1234'
        assert outcome.suggested_action == 'hide'
        assert outcome.confidence == 0.9

    def test_pattern_is_case_insensitive(self, engine):
        assert engine.evaluate('Visit FREE-MONEY today', pattern_rule(r'free-money')).matched is True

    def test_invalid_pattern_fails_closed(self, engine):
        outcome = engine.evaluate('anything at all', pattern_rule('(unclosed'))
        assert outcome.matched is False
        assert outcome.suggested_action == 'allow'
        assert outcome.explanation == 'invalid pattern'


# =============================================================================
# EXTERNAL CLASSIFIERS
# =============================================================================

class TestExternalRules:
    """External kinds go through the classifier seam."""

    def external_rule(self, kind='external-model'):
        return CompiledFilter(
            id='ext-1', name='toxicity', kind=kind, action='queue', confidence=0.7, external_ref='toxicity-v1',
        )

    @pytest.mark.parametrize('kind', ['external-model', 'external-api'])
    def test_without_classifier_is_not_implemented(self, engine, kind):
        outcome = engine.evaluate('you are terrible', self.external_rule(kind))
        assert outcome.matched is False
        assert outcome.confidence == 0.0
        assert 'not implemented' in outcome.explanation

    def test_classifier_verdict_is_used(self):
        classifier = MagicMock()
        classifier.classify.return_value = ClassifierVerdict(
            matched=True, confidence=0.95, matched_text='terrible', explanation='toxic language'
        )
        outcome = FilterEngine(classifier).evaluate('you are terrible', self.external_rule())

        assert outcome.matched is True
        assert outcome.confidence == 0.95
        assert outcome.suggested_action == 'queue'
        classifier.classify.assert_called_once()

    def test_classifier_failure_is_no_match(self, caplog):
        classifier = MagicMock()
        classifier.classify.side_effect = RuntimeError('model endpoint timed out')

        with caplog.at_level(logging.WARNING, logger='utils.filter_engine'):
            outcome = FilterEngine(classifier).evaluate('you are terrible', self.external_rule('external-api'))

        assert outcome.matched is False
        assert outcome.suggested_action == 'allow'
        assert outcome.explanation == 'classifier error'
        assert 'model endpoint timed out' in caplog.text


# =============================================================================
# EVALUATE ALL AND COMBINE
# =============================================================================

class TestEvaluateAll:
    """Test rule selection for batch evaluation."""

    def test_skips_inactive_rules(self, engine):
        rules = [keyword_rule(id='a'), keyword_rule(id='b', is_active=False)]
        outcomes = engine.evaluate_all('spam', rules)
        assert [o.rule_id for o in outcomes] == ['a']

    def test_respects_field_scope(self, engine):
        rules = [
            keyword_rule(id='titles', scopes=frozenset({'title'})),
            keyword_rule(id='everywhere'),
        ]
        outcomes = engine.evaluate_all('spam', rules, field='comment')
        assert [o.rule_id for o in outcomes] == ['everywhere']


class TestCombine:
    """Test reduction of many results into one decision."""

    def test_no_matches_allows(self):
        decision = combine([result('a', 'hide', 0.9, matched=False)])
        assert decision.should_allow is True
        assert decision.action == 'allow'
        assert decision.triggered == []

    def test_highest_confidence_wins(self):
        decision = combine([result('a', 'flag', 0.95), result('b', 'hide', 0.6)])
        assert decision.action == 'flag'
        assert decision.confidence == 0.95
        # A blocking match anywhere still blocks.
        assert decision.should_allow is False

    def test_ties_prefer_stronger_action(self):
        decision = combine([result('a', 'flag', 0.8), result('b', 'queue', 0.8), result('c', 'hide', 0.8)])
        assert decision.action == 'hide'

    def test_queue_beats_flag_on_tie(self):
        decision = combine([result('a', 'flag', 0.8), result('b', 'queue', 0.8)])
        assert decision.action == 'queue'

    def test_flag_only_still_allows(self):
        decision = combine([result('a', 'flag', 0.8)])
        assert decision.should_allow is True
        assert decision.action == 'flag'
        assert decision.reason is None

    def test_test_mode_matches_do_not_decide(self):
        decision = combine([result('a', 'delete', 0.99, test_mode=True), result('b', 'flag', 0.5)])
        assert decision.action == 'flag'
        assert decision.should_allow is True
        assert {r.rule_id for r in decision.triggered} == {'a', 'b'}

    def test_to_dict_uses_api_field_names(self):
        body = combine([result('a', 'hide', 0.9)]).to_dict()
        assert body['shouldAllow'] is False
        assert body['triggeredFilters'][0]['filterId'] == 'a'


# =============================================================================
# SPAM HEURISTICS
# =============================================================================

class TestSpamDetection:
    """Test the deterministic spam score."""

    def test_ordinary_text_scores_zero(self):
        outcome = detect_spam('Hello there, this is a normal comment.')
        assert outcome['spamScore'] == 0
        assert outcome['isSpam'] is False

    def test_links_digits_and_exclamations_add_up(self):
        outcome = detect_spam('BUY NOW!!!!! http://x.example CALL 5551234567')
        assert outcome['spamScore'] == 60
        assert outcome['isSpam'] is True
        assert outcome['confidence'] == pytest.approx(0.6)
        assert set(outcome['reasons']) == {'excessive_links', 'long_digit_run', 'excessive_exclamation'}

    def test_short_text(self):
        outcome = detect_spam('hi')
        assert outcome['spamScore'] == 10
        assert 'too_short' in outcome['reasons']

    def test_repetitive_text_alone_is_not_spam(self):
        outcome = detect_spam('a' * 12)
        assert outcome['spamScore'] == 30
        assert outcome['isSpam'] is False

    def test_shouting(self):
        outcome = detect_spam('THIS IS ALL CAPS TEXT')
        assert 'excessive_caps' in outcome['reasons']
        assert outcome['spamScore'] == 20
