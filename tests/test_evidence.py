"""
Tests for evidence aggregation (merge_evidence, liquidity_change_pct).
"""

from __future__ import annotations

from rugwatch.analysis_engine.evidence import evidence_is_empty, liquidity_change_pct, merge_evidence
from rugwatch.warning_signs.models import Evidence


def test_liquidity_change_from_reserves():
    """Reserve sum 1000 -> 400 is a 60% reduction."""
    assert liquidity_change_pct(1000, 400) == -60.0
    assert liquidity_change_pct(400, 1000) == 150.0


def test_liquidity_change_zero_baseline_is_zero():
    """No baseline (zero or unknown old sum) yields 0 instead of dividing by zero."""
    assert liquidity_change_pct(0, 500) == 0.0
    assert liquidity_change_pct(None, 500) == 0.0


def test_merge_only_overwrites_supplied_fields():
    """Fields absent from the fragment keep their previous value."""
    existing = Evidence.from_dict({"market": {"price_change": -12.5, "volume_change": 40.0}})
    merged = merge_evidence(existing, {"market": {"price_change": -30.0}})
    assert merged.market.price_change == -30.0
    assert merged.market.volume_change == 40.0


def test_merge_is_pure():
    """The existing evidence object is not mutated."""
    existing = Evidence.from_dict({"social": {"sentiment": 0.4, "platform": "twitter"}})
    merge_evidence(existing, {"social": {"sentiment": -0.6}})
    assert existing.social.sentiment == 0.4


def test_on_chain_details_merge_keywise():
    """Details dicts merge key by key; later keys win."""
    existing = Evidence.from_dict({"on_chain": {"details": {"risks": ["delegatecall"], "code_size": 100}}})
    merged = merge_evidence(existing, {"on_chain": {"details": {"risks": [], "is_contract": True}}})
    assert merged.on_chain.details == {"risks": [], "code_size": 100, "is_contract": True}


def test_merge_derives_liquidity_change_from_reserves():
    """Reserves without an explicit percentage derive liquidity_change from the previous sum."""
    existing = Evidence.from_dict({"market": {"reserve0": 500, "reserve1": 500}})
    merged = merge_evidence(existing, {"market": {"reserve0": 200, "reserve1": 200}})
    assert merged.market.liquidity_change == -60.0


def test_merge_first_reserves_have_zero_change():
    """First reserves seen: no baseline, change is 0."""
    merged = merge_evidence(Evidence(), {"market": {"reserve0": 500, "reserve1": 500}})
    assert merged.market.liquidity_change == 0.0
    assert merged.market.reserve_sum == 1000


def test_explicit_liquidity_change_wins():
    """An explicit percentage in the fragment is kept as given."""
    existing = Evidence.from_dict({"market": {"reserve0": 500, "reserve1": 500}})
    merged = merge_evidence(existing, {"market": {"reserve0": 100, "liquidity_change": -5.0}})
    assert merged.market.liquidity_change == -5.0


def test_merge_same_fragment_twice_is_idempotent():
    """Merging a fragment again gives the same evidence as merging it once."""
    existing = Evidence.from_dict({"market": {"reserve0": 500, "reserve1": 500, "price_change": 3.0}})
    fragment = {
        "market": {"reserve0": 200, "reserve1": 200},
        "on_chain": {"details": {"risks": ["selfdestruct"]}},
    }
    once = merge_evidence(existing, fragment)
    twice = merge_evidence(once, fragment)
    assert twice.to_dict() == once.to_dict()
    assert twice.market.liquidity_change == -60.0


def test_evidence_is_empty():
    assert evidence_is_empty(None)
    assert evidence_is_empty({"market": {}})
    assert not evidence_is_empty({"social": {"volume": 3}})
