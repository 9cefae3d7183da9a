"""
ML / NLP providers for Rugwatch.

Risk inference (scikit-learn classifier via joblib, rule-based fallback) and
the lexicon text model used for sentiment and chat scanning.
"""

from rugwatch.ml.risk_model import (
    RiskModel,
    RuleBasedRiskModel,
    SklearnRiskModel,
    load_risk_model,
)
from rugwatch.ml.text_model import LexiconTextModel

__all__ = [
    "LexiconTextModel",
    "RiskModel",
    "RuleBasedRiskModel",
    "SklearnRiskModel",
    "load_risk_model",
]
