"""
Rug-pull risk inference from a project feature vector.

SklearnRiskModel loads a joblib-persisted scikit-learn classifier and returns
the positive-class probability. When no model file is configured or it fails
to load, RuleBasedRiskModel stands in: the probability is the share of risk
factor threshold rules the vector trips.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

import joblib
import numpy as np

from rugwatch.analysis_engine.features import (
    NUM_FACTOR_RULES,
    ProjectFeatureVector,
    triggered_factor_rules,
)
from rugwatch.logging import get_logger

logger = get_logger(__name__)


class RiskModel(ABC):
    """Inference provider: feature vector in, rug-pull probability in [0, 1] out."""

    name = "risk_model"

    @abstractmethod
    def predict_risk(self, vector: ProjectFeatureVector) -> float:
        ...


class RuleBasedRiskModel(RiskModel):
    name = "rule_based"

    def predict_risk(self, vector: ProjectFeatureVector) -> float:
        return len(triggered_factor_rules(vector)) / NUM_FACTOR_RULES


class SklearnRiskModel(RiskModel):
    """Wraps any fitted classifier exposing predict_proba (RandomForest, LogisticRegression, ...)."""

    name = "sklearn"

    def __init__(self, classifier) -> None:
        if not hasattr(classifier, "predict_proba"):
            raise TypeError("classifier must implement predict_proba")
        self.classifier = classifier

    @classmethod
    def load(cls, path: str | Path) -> "SklearnRiskModel":
        return cls(joblib.load(path))

    def predict_risk(self, vector: ProjectFeatureVector) -> float:
        proba = self.classifier.predict_proba(vector.as_array())[0]
        classes = list(getattr(self.classifier, "classes_", range(len(proba))))
        # Positive class is label 1 when present, else the last column
        idx = classes.index(1) if 1 in classes else len(proba) - 1
        return float(np.clip(proba[idx], 0.0, 1.0))


def load_risk_model(path: str | Path | None) -> RiskModel:
    """Return SklearnRiskModel for a readable model file; RuleBasedRiskModel otherwise."""
    if not path:
        logger.info("risk_model_rule_based", reason="no_model_path")
        return RuleBasedRiskModel()
    model_path = Path(path)
    if not model_path.is_file():
        logger.warning("risk_model_missing", path=str(model_path))
        return RuleBasedRiskModel()
    try:
        model = SklearnRiskModel.load(model_path)
    except Exception as e:
        logger.warning("risk_model_load_failed", path=str(model_path), error=str(e))
        return RuleBasedRiskModel()
    logger.info("risk_model_loaded", path=str(model_path))
    return model
