"""
Social sentiment scoring.

Each text is tokenized and scored with the lexicon text model, then
classified Positive (> 0.2), Negative (< -0.2) or Neutral. The aggregate
carries the mean score and a volatility: the square root of the
Bessel-corrected sample variance, defined as 0 for fewer than two samples.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from rugwatch.ml.text_model import LexiconTextModel
from rugwatch.warning_signs.models import utcnow

POSITIVE_THRESHOLD = 0.2
NEGATIVE_THRESHOLD = -0.2


class Sentiment(str, Enum):
    POSITIVE = "Positive"
    NEUTRAL = "Neutral"
    NEGATIVE = "Negative"


def categorize_sentiment(score: float) -> Sentiment:
    if score > POSITIVE_THRESHOLD:
        return Sentiment.POSITIVE
    if score < NEGATIVE_THRESHOLD:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def sentiment_volatility(scores: list[float]) -> float:
    n = len(scores)
    if n < 2:
        return 0.0
    mean = sum(scores) / n
    variance = sum((s - mean) ** 2 for s in scores) / (n - 1)
    return math.sqrt(variance)


@dataclass
class SentimentResult:
    text: str
    score: float
    sentiment: Sentiment

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "score": self.score, "sentiment": self.sentiment.value}


@dataclass
class SentimentReport:
    results: list[SentimentResult]
    average_score: float
    dominant_sentiment: Sentiment
    volatility: float
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "aggregate": {
                "average_score": self.average_score,
                "dominant_sentiment": self.dominant_sentiment.value,
                "volatility": self.volatility,
            },
            "timestamp": self.timestamp.isoformat(),
        }


def analyze_sentiment(
    texts: Iterable[str],
    model: LexiconTextModel | None = None,
) -> SentimentReport:
    """Score every text and aggregate. An empty batch is Neutral with zero volatility."""
    model = model or LexiconTextModel()
    results = []
    for text in texts:
        score = model.sentiment(model.tokenize(text))
        results.append(SentimentResult(text=text, score=score, sentiment=categorize_sentiment(score)))

    scores = [r.score for r in results]
    average = sum(scores) / len(scores) if scores else 0.0
    return SentimentReport(
        results=results,
        average_score=average,
        dominant_sentiment=categorize_sentiment(average),
        volatility=sentiment_volatility(scores),
    )
