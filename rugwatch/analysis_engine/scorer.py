"""
Risk score computation for warnings.

Feature extraction and post-processing around an external risk model:
riskScore is the model probability scaled to 0-100 and rounded; confidence is
the share of the 12 indicators that were actually known (a completeness
proxy, not a statistical confidence interval); factors are the fixed
threshold labels. The risk level tier is a pure function of the score.
"""

from __future__ import annotations

from dataclasses import dataclass

from rugwatch.analysis_engine.features import (
    NUM_FEATURES,
    ProjectFeatureVector,
    build_feature_vector,
    triggered_factor_rules,
)
from rugwatch.core.providers import call_with_timeout, run_blocking
from rugwatch.logging import get_logger
from rugwatch.ml.risk_model import RiskModel, RuleBasedRiskModel
from rugwatch.warning_signs.models import AIAnalysis, RiskLevel, WarningSign, utcnow

logger = get_logger(__name__)

DEFAULT_CRITICAL_THRESHOLD = 80
DEFAULT_HIGH_THRESHOLD = 60
DEFAULT_MEDIUM_THRESHOLD = 40


@dataclass
class ScorerConfig:
    critical_threshold: int = DEFAULT_CRITICAL_THRESHOLD
    high_threshold: int = DEFAULT_HIGH_THRESHOLD
    medium_threshold: int = DEFAULT_MEDIUM_THRESHOLD
    inference_timeout_sec: float = 15.0


def risk_level_for_score(score: int, config: ScorerConfig | None = None) -> RiskLevel:
    """>=80 Critical, >=60 High, >=40 Medium, else Low."""
    cfg = config or ScorerConfig()
    if score >= cfg.critical_threshold:
        return RiskLevel.CRITICAL
    if score >= cfg.high_threshold:
        return RiskLevel.HIGH
    if score >= cfg.medium_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def compute_confidence(vector: ProjectFeatureVector) -> int:
    return round(vector.known_count / NUM_FEATURES * 100)


def scale_probability(probability: float) -> int:
    return max(0, min(100, round(probability * 100)))


class RiskScorer:
    """Turns a feature vector into AIAnalysis using the configured RiskModel."""

    def __init__(self, model: RiskModel | None = None, config: ScorerConfig | None = None) -> None:
        self.model = model or RuleBasedRiskModel()
        self.config = config or ScorerConfig()

    def score(self, vector: ProjectFeatureVector) -> AIAnalysis:
        probability = self.model.predict_risk(vector)
        return AIAnalysis(
            risk_score=scale_probability(probability),
            confidence=compute_confidence(vector),
            factors=triggered_factor_rules(vector),
            timestamp=utcnow(),
        )

    async def score_async(self, vector: ProjectFeatureVector) -> AIAnalysis:
        """Score off the event loop with a deadline; ProviderError on failure."""
        return await call_with_timeout(
            run_blocking(self.score, vector),
            provider=self.model.name,
            operation="predict_risk",
            timeout_sec=self.config.inference_timeout_sec,
        )

    async def rescore(self, warning: WarningSign) -> None:
        """Recompute ai_analysis and the derived risk_level on the warning in place."""
        vector = build_feature_vector(warning.project_profile, warning.evidence)
        analysis = await self.score_async(vector)
        warning.ai_analysis = analysis
        warning.risk_level = risk_level_for_score(analysis.risk_score, self.config)
        logger.debug(
            "warning_rescored",
            warning_id=warning.id,
            risk_score=analysis.risk_score,
            confidence=analysis.confidence,
            risk_level=warning.risk_level.value,
        )
