"""
Chat message risk scan and message credibility scoring.

Used for every inbound chat message before broadcast and for insider
submissions. Credibility starts at 50 and moves with message length, risk
keyword count, links and contract addresses; the result is clamped to 0-100.
"""

from __future__ import annotations

import re
from typing import Any

from rugwatch.analysis_engine.sentiment import categorize_sentiment
from rugwatch.ml.text_model import LexiconTextModel
from rugwatch.warning_signs.models import utcnow

RISK_KEYWORDS: tuple[str, ...] = (
    "rug",
    "scam",
    "honeypot",
    "dump",
    "fake",
    "suspicious",
    "warning",
    "alert",
    "risk",
    "danger",
)

CONTRACT_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")

BASE_CREDIBILITY = 50
LENGTH_BONUS = 10
LONG_MESSAGE_CHARS = 100
VERY_LONG_MESSAGE_CHARS = 200
KEYWORD_PENALTY = 5
LINK_BONUS = 15
ADDRESS_BONUS = 20


def find_risk_indicators(tokens: list[str]) -> list[str]:
    """Risk keywords present in tokens, in keyword-list order."""
    present = set(tokens)
    return [k for k in RISK_KEYWORDS if k in present]


def message_credibility(message: str, indicators: list[str]) -> int:
    score = BASE_CREDIBILITY
    if len(message) > LONG_MESSAGE_CHARS:
        score += LENGTH_BONUS
    if len(message) > VERY_LONG_MESSAGE_CHARS:
        score += LENGTH_BONUS
    score -= len(indicators) * KEYWORD_PENALTY
    if "http" in message:
        score += LINK_BONUS
    if CONTRACT_ADDRESS_RE.search(message):
        score += ADDRESS_BONUS
    return min(max(score, 0), 100)


def analyze_chat_message(message: str, model: LexiconTextModel | None = None) -> dict[str, Any]:
    """Keywords, risk indicators, sentiment category and credibility for one message."""
    model = model or LexiconTextModel()
    tokens = model.tokenize(message)
    indicators = find_risk_indicators(tokens)
    return {
        "keywords": tokens,
        "risk_indicators": indicators,
        "sentiment": categorize_sentiment(model.sentiment(tokens)).value,
        "credibility_score": message_credibility(message, indicators),
        "timestamp": utcnow().isoformat(),
    }
