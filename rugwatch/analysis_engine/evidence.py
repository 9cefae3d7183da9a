"""
Evidence aggregation: field-level merge of on-chain, market and social fragments.

merge_evidence is a pure transform. Each sub-record present in the incoming
fragment overwrites only the fields it supplies (None means "not supplied"),
so repeated partial updates accumulate the latest known value per field.
On-chain details are merged key-wise. Liquidity change is derived from pool
reserves when the fragment carries reserves but no explicit percentage.
"""

from __future__ import annotations

import copy
from dataclasses import fields
from typing import Any, Mapping

from rugwatch.warning_signs.models import Evidence

_SUB_RECORDS = ("on_chain", "market", "social")


def liquidity_change_pct(old_reserve_sum: int | None, new_reserve_sum: int | None) -> float:
    """
    Percent change between two pool reserve sums.

    A zero or unknown previous sum has no meaningful baseline; the change is
    defined as 0.0 rather than dividing by zero.
    """
    if not old_reserve_sum or new_reserve_sum is None:
        return 0.0
    return (new_reserve_sum - old_reserve_sum) / old_reserve_sum * 100.0


def _coerce(incoming: Evidence | Mapping[str, Any] | None) -> Evidence:
    if incoming is None:
        return Evidence()
    if isinstance(incoming, Evidence):
        return incoming
    return Evidence.from_dict(incoming)


def _merge_record(existing: Any, incoming: Any) -> Any:
    merged = copy.deepcopy(existing)
    for f in fields(incoming):
        value = getattr(incoming, f.name)
        if value is None:
            continue
        if f.name == "details":
            current = getattr(merged, "details") or {}
            merged.details = {**current, **copy.deepcopy(value)}
        else:
            setattr(merged, f.name, copy.deepcopy(value))
    return merged


def merge_evidence(
    existing: Evidence,
    incoming: Evidence | Mapping[str, Any] | None,
) -> Evidence:
    """
    Return a new Evidence with incoming fields layered over existing.

    Merging the same fragment twice yields the same result as merging it once.
    """
    update = _coerce(incoming)
    merged = Evidence(
        on_chain=_merge_record(existing.on_chain, update.on_chain),
        market=_merge_record(existing.market, update.market),
        social=_merge_record(existing.social, update.social),
    )

    has_reserves = update.market.reserve0 is not None or update.market.reserve1 is not None
    if has_reserves and update.market.liquidity_change is None:
        old_sum = existing.market.reserve_sum
        new_sum = merged.market.reserve_sum
        # Unchanged reserves keep the last derived change (idempotent re-merge)
        if new_sum != old_sum:
            merged.market.liquidity_change = liquidity_change_pct(old_sum, new_sum)
    return merged


def evidence_is_empty(evidence: Evidence | Mapping[str, Any] | None) -> bool:
    """True when the fragment supplies no field in any sub-record."""
    update = _coerce(evidence)
    for name in _SUB_RECORDS:
        record = getattr(update, name)
        if any(getattr(record, f.name) is not None for f in fields(record)):
            return False
    return True
