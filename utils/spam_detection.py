"""Deterministic spam heuristics for user-submitted text."""
import re
from typing import Dict, List

SPAM_THRESHOLD = 50

# (pattern, reason, score)
SPAM_PATTERNS = [
    (re.compile(r'(.)\1{10,}'), 'repetitive_text', 30),
    (re.compile(r'https?://\S+', re.IGNORECASE), 'excessive_links', 25),
    (re.compile(r'\b\d{10,}\b'), 'long_digit_run', 20),
    (re.compile(r'!{5,}'), 'excessive_exclamation', 15),
    (re.compile(r'\?{5,}'), 'excessive_question', 15),
]

MIN_LENGTH = 10
MAX_LENGTH = 5000
CAPS_RATIO = 0.5


def detect_spam(content: str) -> Dict:
    """Score ``content``; 50 or more is spam."""
    content = content or ''
    score = 0
    reasons: List[str] = []
    patterns: List[Dict] = []

    for pattern, reason, points in SPAM_PATTERNS:
        if pattern.search(content):
            score += points
            reasons.append(reason)
            patterns.append({'type': reason, 'confidence': 0.8})

    if len(content) < MIN_LENGTH:
        score += 10
        reasons.append('too_short')
    elif len(content) > MAX_LENGTH:
        score += 15
        reasons.append('too_long')

    if content:
        upper = sum(1 for ch in content if 'A' <= ch <= 'Z')
        if upper / len(content) > CAPS_RATIO:
            score += 20
            reasons.append('excessive_caps')
            patterns.append({'type': 'excessive_caps', 'confidence': 0.7})

    return {
        'isSpam': score >= SPAM_THRESHOLD,
        'confidence': min(score / 100, 1.0),
        'spamScore': score,
        'reasons': reasons,
        'detectedPatterns': patterns,
    }
