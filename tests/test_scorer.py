"""
Tests for feature assembly, risk factors, confidence, risk level tiers and
the risk models (rule-based fallback and joblib-persisted scikit-learn).
"""

from __future__ import annotations

import asyncio

import joblib
import numpy as np
import pytest
from sklearn.linear_model import LogisticRegression

from rugwatch.analysis_engine.features import (
    FEATURE_NAMES,
    NUM_FACTOR_RULES,
    ProjectFeatureVector,
    build_feature_vector,
    triggered_factor_rules,
)
from rugwatch.analysis_engine.scorer import (
    RiskScorer,
    compute_confidence,
    risk_level_for_score,
    scale_probability,
)
from rugwatch.core.exceptions import ProviderTimeoutError
from rugwatch.ml import RuleBasedRiskModel, SklearnRiskModel, load_risk_model
from rugwatch.ml.risk_model import RiskModel
from rugwatch.warning_signs.models import Evidence, Network, RiskLevel, WarningSign

SAFE_PROFILE = {
    "team_anonymous": 0,
    "team_social_presence": 0.9,
    "team_past_projects": 3,
    "token_liquidity": 0.9,
    "token_holder_count": 5000,
    "token_distribution": 0.8,
    "contract_audited": 1,
    "contract_age": 400,
    "contract_risk_patterns": 0,
    "market_cap": 1_000_000,
    "price_volatility": 0.1,
    "trading_volume": 250_000,
}


@pytest.mark.parametrize(
    "score,level",
    [
        (0, RiskLevel.LOW),
        (39, RiskLevel.LOW),
        (40, RiskLevel.MEDIUM),
        (59, RiskLevel.MEDIUM),
        (60, RiskLevel.HIGH),
        (79, RiskLevel.HIGH),
        (80, RiskLevel.CRITICAL),
        (100, RiskLevel.CRITICAL),
    ],
)
def test_risk_level_boundaries(score, level):
    assert risk_level_for_score(score) == level


def test_scale_probability_rounds_and_clamps():
    assert scale_probability(0.004) == 0
    assert scale_probability(0.736) == 74
    assert scale_probability(1.2) == 100
    assert scale_probability(-0.1) == 0


def test_confidence_counts_known_features():
    """Confidence is the share of the 12 indicators that were supplied."""
    assert compute_confidence(build_feature_vector({})) == 0
    assert compute_confidence(build_feature_vector(SAFE_PROFILE)) == 100
    half = {name: 1 for name in FEATURE_NAMES[:6]}
    assert compute_confidence(build_feature_vector(half)) == 50


def test_safe_profile_triggers_no_factors():
    vector = build_feature_vector(SAFE_PROFILE)
    assert triggered_factor_rules(vector) == []
    assert RuleBasedRiskModel().predict_risk(vector) == 0.0


def test_factor_labels_in_rule_order():
    """Labels appear in indicator order with their exact names."""
    profile = dict(SAFE_PROFILE, team_anonymous=1, contract_audited=0, trading_volume=10)
    factors = triggered_factor_rules(build_feature_vector(profile))
    assert factors == ["Anonymous Team", "Unaudited Contract", "Low Trading Volume"]


def test_unknown_features_treated_as_zero_for_rules():
    """An empty profile trips every rule whose threshold 0 satisfies."""
    factors = triggered_factor_rules(build_feature_vector({}))
    assert "Anonymous Team" not in factors
    assert "Suspicious Contract Patterns" not in factors
    assert "High Price Volatility" not in factors
    assert len(factors) == 8
    assert NUM_FACTOR_RULES == 11


def test_evidence_overlays_features():
    """Contract risks, price change and liquidity change overlay the profile."""
    evidence = Evidence.from_dict(
        {
            "on_chain": {"details": {"risks": ["selfdestruct", "delegatecall"]}},
            "market": {"price_change": -65.0, "liquidity_change": -60.0},
        }
    )
    values = build_feature_vector({"token_liquidity": 0.8}, evidence).to_dict()
    assert values["contract_risk_patterns"] == 2.0
    assert values["price_volatility"] == pytest.approx(0.65)
    assert values["token_liquidity"] == pytest.approx(0.32)


def test_liquidity_change_without_profile_value_is_clamped():
    evidence = Evidence.from_dict({"market": {"liquidity_change": 50.0}})
    assert build_feature_vector({}, evidence).to_dict()["token_liquidity"] == 1.0


def test_vector_rejects_wrong_length():
    with pytest.raises(ValueError):
        ProjectFeatureVector(values=[0.0] * 3)


def test_scorer_builds_analysis():
    analysis = RiskScorer().score(build_feature_vector({}))
    assert analysis.risk_score == round(8 / 11 * 100)
    assert analysis.confidence == 0
    assert len(analysis.factors) == 8


def test_rescore_sets_level_from_score():
    warning = WarningSign(
        project_name="P",
        token_symbol="P",
        network=Network.BSC,
        contract_address="0xabc",
        description="d",
        project_profile=dict(SAFE_PROFILE),
    )
    asyncio.run(RiskScorer().rescore(warning))
    assert warning.ai_analysis.risk_score == 0
    assert warning.risk_level == RiskLevel.LOW
    assert warning.ai_analysis.confidence == 100


class _SlowModel(RiskModel):
    name = "slow"

    def predict_risk(self, vector):
        import time

        time.sleep(0.5)
        return 0.5


def test_inference_timeout_raises_provider_timeout():
    from rugwatch.analysis_engine.scorer import ScorerConfig

    scorer = RiskScorer(_SlowModel(), ScorerConfig(inference_timeout_sec=0.05))
    with pytest.raises(ProviderTimeoutError):
        asyncio.run(scorer.score_async(build_feature_vector({})))


def test_load_risk_model_falls_back_to_rules(tmp_path):
    assert isinstance(load_risk_model(None), RuleBasedRiskModel)
    assert isinstance(load_risk_model(tmp_path / "missing.joblib"), RuleBasedRiskModel)
    broken = tmp_path / "broken.joblib"
    broken.write_text("not a model", encoding="utf-8")
    assert isinstance(load_risk_model(broken), RuleBasedRiskModel)


def test_sklearn_model_roundtrip(tmp_path):
    """A persisted classifier is loaded and yields the positive-class probability."""
    safe = np.asarray([list(SAFE_PROFILE.values())] * 10, dtype=float)
    risky = np.zeros_like(safe)
    risky[:, 0] = 1.0
    X = np.vstack([safe, risky])
    y = np.asarray([0] * 10 + [1] * 10)
    clf = LogisticRegression(max_iter=1000).fit(X, y)
    path = tmp_path / "risk_model.joblib"
    joblib.dump(clf, path)

    model = load_risk_model(path)
    assert isinstance(model, SklearnRiskModel)
    risky_p = model.predict_risk(build_feature_vector({"team_anonymous": 1}))
    safe_p = model.predict_risk(build_feature_vector(SAFE_PROFILE))
    assert 0.0 <= safe_p < 0.5 < risky_p <= 1.0
