"""
Project feature vector for rug-pull risk scoring.

Twelve indicators in fixed order across team, token, contract and market
dimensions. Values come from the caller's project profile, then evidence on
the warning overlays what it can observe directly (contract risk patterns,
price volatility, liquidity). Unknown indicators stay None so confidence can
reflect completeness; inference and factor thresholds treat them as 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np

from rugwatch.warning_signs.models import Evidence

FEATURE_NAMES: tuple[str, ...] = (
    # Team
    "team_anonymous",
    "team_social_presence",
    "team_past_projects",
    # Token
    "token_liquidity",
    "token_holder_count",
    "token_distribution",
    # Contract
    "contract_audited",
    "contract_age",
    "contract_risk_patterns",
    # Market
    "market_cap",
    "price_volatility",
    "trading_volume",
)

NUM_FEATURES = len(FEATURE_NAMES)

# Label per index, checked in this order. Downstream consumers key off these strings.
_FACTOR_RULES: tuple[tuple[int, str, Any], ...] = (
    (0, "Anonymous Team", lambda v: v == 1),
    (1, "Low Social Presence", lambda v: v < 0.3),
    (2, "No Past Projects", lambda v: v == 0),
    (3, "Low Liquidity", lambda v: v < 0.5),
    (4, "Concentrated Token Holdings", lambda v: v < 100),
    (5, "Uneven Token Distribution", lambda v: v < 0.4),
    (6, "Unaudited Contract", lambda v: v == 0),
    (7, "New Contract", lambda v: v < 30),
    (8, "Suspicious Contract Patterns", lambda v: v > 0),
    (10, "High Price Volatility", lambda v: v > 0.5),
    (11, "Low Trading Volume", lambda v: v < 1000),
)

NUM_FACTOR_RULES = len(_FACTOR_RULES)


@dataclass
class ProjectFeatureVector:
    """Fixed-order indicator values; None marks an indicator nobody supplied."""

    values: list[float | None]

    def __post_init__(self) -> None:
        if len(self.values) != NUM_FEATURES:
            raise ValueError(f"expected {NUM_FEATURES} features, got {len(self.values)}")

    @property
    def known_count(self) -> int:
        return sum(1 for v in self.values if v is not None)

    def filled(self) -> list[float]:
        """Values with unknowns replaced by 0 (inference and threshold input)."""
        return [0.0 if v is None else float(v) for v in self.values]

    def as_array(self) -> np.ndarray:
        return np.asarray(self.filled(), dtype=np.float64).reshape(1, -1)

    def to_dict(self) -> dict[str, float | None]:
        return dict(zip(FEATURE_NAMES, self.values))


def _numeric(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def build_feature_vector(
    profile: Mapping[str, Any] | None,
    evidence: Evidence | None = None,
) -> ProjectFeatureVector:
    """
    Assemble the 12-feature vector from a project profile plus evidence.

    Evidence overlay:
    - contract_risk_patterns = number of named risk matches in on-chain details
    - price_volatility = |price change %| / 100
    - token_liquidity scaled by (1 + liquidity change % / 100); when the profile
      has no liquidity score the factor itself is used, clamped to [0, 1]
    """
    profile = profile or {}
    values: dict[str, float | None] = {name: _numeric(profile.get(name)) for name in FEATURE_NAMES}

    if evidence is not None:
        details = evidence.on_chain.details or {}
        risks = details.get("risks")
        if isinstance(risks, (list, tuple)):
            values["contract_risk_patterns"] = float(len(risks))

        market = evidence.market
        if market.price_change is not None:
            values["price_volatility"] = abs(float(market.price_change)) / 100.0
        if market.liquidity_change is not None:
            factor = max(0.0, 1.0 + float(market.liquidity_change) / 100.0)
            current = values["token_liquidity"]
            if current is None:
                values["token_liquidity"] = min(1.0, factor)
            else:
                values["token_liquidity"] = current * factor

    return ProjectFeatureVector(values=[values[name] for name in FEATURE_NAMES])


def triggered_factor_rules(vector: ProjectFeatureVector) -> list[str]:
    """Ordered risk-factor labels for every threshold rule the vector trips."""
    filled = vector.filled()
    return [label for index, label, rule in _FACTOR_RULES if rule(filled[index])]
