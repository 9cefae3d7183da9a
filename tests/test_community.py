"""
Tests for tombstones, anonymous insider submissions and the chat relay:
duplicate protection, moderation and auto-escalation at the threshold.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from datetime import datetime, timedelta, timezone

import pytest
from conftest import evm_address

from rugwatch.alerts import EventKind
from rugwatch.community.chat import ChatRelay
from rugwatch.community.insider import InsiderService, adjusted_credibility, submission_hash
from rugwatch.community.models import (
    InsiderStatus,
    MessageVisibility,
    ModerationStatus,
    TombstoneStatus,
)
from rugwatch.community.tombstones import TombstoneService
from rugwatch.core.exceptions import DuplicateRecordError, NotFoundError, ProviderUnavailableError, ValidationError
from rugwatch.warning_signs.models import Network

SECRET = "test-secret"
ADDRESS = "0x" + "cd" * 20


def tombstone_data(**overrides):
    data = {
        "project_name": "Squid Game Token",
        "token_symbol": "squid",
        "network": "BSC",
        "contract_address": ADDRESS,
        "launch_date": "2025-10-20T00:00:00Z",
        "rug_pull_date": "2025-11-01T00:00:00Z",
        "total_loss": 3_380_000,
        "affected_users": 40_000,
        "fraud_tactics": ["Honeypot", "Liquidity Removal"],
    }
    data.update(overrides)
    return data


def insider_data(**overrides):
    data = {
        "title": "Dev wallet preparing to exit",
        "content": "The deployer wallet has been bridging funds out every night this week.",
        "project_name": "Squid Game Token",
        "network": "BSC",
        "categories": ["Insider Trading"],
    }
    data.update(overrides)
    return data


# -----------------------------------------------------------------------------
# Tombstones
# -----------------------------------------------------------------------------


def test_create_tombstone_snapshots_chain_data(db, fake_chain):
    fake_chain.risks = ["selfdestruct"]
    service = TombstoneService(db, chain=fake_chain)

    tombstone = asyncio.run(service.create_tombstone(tombstone_data(verification_status="Verified"), "user-1"))
    assert tombstone.token_symbol == "SQUID"
    assert tombstone.verification_status == TombstoneStatus.PENDING
    assert tombstone.submitted_by == "user-1"
    assert tombstone.trading_data["token_info"]["symbol"] == "SMR"
    assert tombstone.trading_data["contract_risks"]["risks"] == ["selfdestruct"]


def test_create_tombstone_unsupported_network_skips_chain(db, fake_chain):
    service = TombstoneService(db, chain=fake_chain)
    tombstone = asyncio.run(service.create_tombstone(tombstone_data(network="Solana"), "user-1"))
    assert tombstone.trading_data == {}


def test_duplicate_tombstone_rejected(db):
    service = TombstoneService(db)

    async def run():
        await service.create_tombstone(tombstone_data(), "user-1")
        await service.create_tombstone(tombstone_data(contract_address="0x" + "ef" * 20), "user-2")

    with pytest.raises(DuplicateRecordError):
        asyncio.run(run())


@pytest.mark.parametrize(
    "overrides",
    [
        {"total_loss": -1},
        {"network": "Tron"},
        {"rug_pull_date": "2025-01-01T00:00:00Z"},
        {"fraud_tactics": ["Pump"]},
    ],
)
def test_tombstone_validation(db, overrides):
    with pytest.raises(ValidationError):
        asyncio.run(TombstoneService(db).create_tombstone(tombstone_data(**overrides), "user-1"))


def test_verify_tombstone_adds_verifier_once(db):
    service = TombstoneService(db)

    async def run():
        tombstone = await service.create_tombstone(tombstone_data(), "user-1")
        await service.verify_tombstone(tombstone.id, "Verified", "mod-1")
        await service.verify_tombstone(tombstone.id, "Verified", "mod-1")
        return await service.verify_tombstone(tombstone.id, "Disputed", "mod-2")

    tombstone = asyncio.run(run())
    assert tombstone.verification_status == TombstoneStatus.DISPUTED
    assert tombstone.verified_by == ["mod-1", "mod-2"]


def test_verified_stats(db):
    service = TombstoneService(db)

    async def run():
        a = await service.create_tombstone(tombstone_data(), "u")
        b = await service.create_tombstone(
            tombstone_data(token_symbol="MOON", contract_address=evm_address(1), total_loss=1000, affected_users=10,
                           fraud_tactics=["Honeypot"]),
            "u",
        )
        await service.create_tombstone(tombstone_data(token_symbol="PEND", contract_address=evm_address(2)), "u")
        await service.verify_tombstone(a.id, "Verified", "mod")
        await service.verify_tombstone(b.id, "Verified", "mod")
        return await service.get_verified_stats()

    stats = asyncio.run(run())
    assert stats["total_cases"] == 2
    assert stats["total_loss"] == 3_381_000
    assert stats["affected_users"] == 40_010
    assert stats["tactic_distribution"] == {"Honeypot": 2, "Liquidity Removal": 1}
    assert stats["timeline"] == {"2025-11": 2}


def test_tombstone_records_total_volume(db, fake_chain):
    fake_chain.transfers = [
        {"from": evm_address(1), "to": evm_address(2), "value": str(10**24)},
        {"from": evm_address(2), "to": evm_address(3), "value": "5"},
    ]
    service = TombstoneService(db, chain=fake_chain)
    tombstone = asyncio.run(service.create_tombstone(tombstone_data(), "user-1"))
    assert tombstone.trading_data["total_volume"] == str(10**24 + 5)


def test_total_volume_degrades_to_zero(db, fake_chain):
    service = TombstoneService(db, chain=fake_chain)
    fake_chain.error = ConnectionError("rpc down")
    assert asyncio.run(service.calculate_total_volume(ADDRESS, Network.BSC)) == "0"
    assert asyncio.run(service.calculate_total_volume(ADDRESS, Network.SOLANA)) == "0"
    assert asyncio.run(TombstoneService(db).calculate_total_volume(ADDRESS, Network.BSC)) == "0"


def test_risk_report_reads_chain_and_scores(db, fake_chain):
    fake_chain.risks = ["selfdestruct", "delegatecall"]
    fake_chain.reserves = (10, 20)
    service = TombstoneService(db, chain=fake_chain)
    report = asyncio.run(
        service.generate_risk_report(
            {
                "network": "BSC",
                "contract_address": ADDRESS,
                "pair_address": evm_address(7),
                "team_wallets": [evm_address(8)],
                "project_profile": {"team_anonymous": 1, "contract_audited": 0},
            }
        )
    )
    assert report["network"] == "BSC"
    assert report["contract_analysis"]["risks"] == ["selfdestruct", "delegatecall"]
    assert report["liquidity_analysis"]["reserve0"] == 10
    assert report["team_analysis"][0]["address"] == evm_address(8)
    prediction = report["risk_prediction"]
    assert 0 <= prediction["risk_score"] <= 100
    assert prediction["risk_level"] in {"Low", "Medium", "High", "Critical"}
    assert "Anonymous Team" in prediction["factors"]
    assert "Suspicious Contract Patterns" in prediction["factors"]
    assert [op for op, _ in fake_chain.calls] == ["analyze_contract_risks", "check_liquidity_pool", "track_team_wallets"]
    assert db.query_tombstones() == []


def test_risk_report_profile_only_off_evm(db, fake_chain):
    service = TombstoneService(db, chain=fake_chain)
    report = asyncio.run(
        service.generate_risk_report(
            {"network": "Solana", "contract_address": "So1anaMint111", "project_profile": {"team_anonymous": 1}}
        )
    )
    assert report["contract_analysis"] is None
    assert report["liquidity_analysis"] is None
    assert "Anonymous Team" in report["risk_prediction"]["factors"]


@pytest.mark.parametrize(
    "project",
    [
        {"network": "BSC", "contract_address": "0x1234"},
        {"network": "BSC", "contract_address": ADDRESS, "pair_address": "pair"},
        {"network": "BSC", "contract_address": ADDRESS, "team_wallets": ["0xzz"]},
        {"network": "BSC", "contract_address": ADDRESS, "project_profile": {"moon_factor": 1}},
        {"network": "BSC"},
        {"network": "Tron", "contract_address": ADDRESS},
    ],
)
def test_risk_report_validation(db, fake_chain, project):
    with pytest.raises(ValidationError):
        asyncio.run(TombstoneService(db, chain=fake_chain).generate_risk_report(project))
    assert fake_chain.calls == []


def test_risk_report_provider_failure_propagates(db, fake_chain):
    fake_chain.error = ConnectionError("rpc down")
    service = TombstoneService(db, chain=fake_chain)
    with pytest.raises(ProviderUnavailableError):
        asyncio.run(service.generate_risk_report({"network": "BSC", "contract_address": ADDRESS}))


# -----------------------------------------------------------------------------
# Insider submissions
# -----------------------------------------------------------------------------


def test_submission_hash_and_fingerprint(db):
    service = InsiderService(db, secret=SECRET)
    submission = asyncio.run(service.submit_information(insider_data(), "alice@example.org"))

    assert submission.submission_hash == submission_hash(submission.to_dict())
    assert len(submission.submission_hash) == 64
    expected = hmac.new(SECRET.encode(), b"alice@example.org", hashlib.sha256).hexdigest()
    assert submission.submitter_fingerprint == expected
    assert "alice" not in str(submission.to_dict())
    assert submission.verification_status == InsiderStatus.PENDING
    assert 0 <= submission.credibility_score <= 100


def test_identical_submission_rejected(db):
    service = InsiderService(db, secret=SECRET)

    async def run():
        await service.submit_information(insider_data(), "alice")
        await service.submit_information(insider_data(title="  Dev wallet preparing to exit "), "bob")

    with pytest.raises(DuplicateRecordError):
        asyncio.run(run())


def test_submission_validation(db):
    service = InsiderService(db, secret=SECRET)
    with pytest.raises(ValidationError):
        asyncio.run(service.submit_information(insider_data(content="too short"), "alice"))
    with pytest.raises(ValidationError):
        asyncio.run(service.submit_information(insider_data(categories=[]), "alice"))


def test_reports_escalate_exactly_at_threshold(db):
    service = InsiderService(db, secret=SECRET, report_threshold=5)

    async def run():
        submission = await service.submit_information(insider_data(), "alice")
        await service.verify_information(submission.id, "Verified", "mod-1", "checked on-chain")
        statuses = []
        for i in range(6):
            s = await service.report_submission(submission.id, f"user-{i}", "looks fake")
            statuses.append(s.verification_status)
        with pytest.raises(DuplicateRecordError):
            await service.report_submission(submission.id, "user-0")
        return await service.get_submission(submission.id), statuses

    submission, statuses = asyncio.run(run())
    assert statuses[:4] == [InsiderStatus.VERIFIED] * 4
    assert statuses[4] == InsiderStatus.PENDING
    assert len(submission.reports) == 6
    system_notes = [n for n in submission.moderator_notes if n["moderator_id"] == "system"]
    assert len(system_notes) == 1


def test_moderation_adjusts_credibility():
    assert adjusted_credibility(60, InsiderStatus.VERIFIED) == 90
    assert adjusted_credibility(90, InsiderStatus.VERIFIED) == 100
    assert adjusted_credibility(30, InsiderStatus.REJECTED) == 0
    assert adjusted_credibility(55, InsiderStatus.PENDING) == 55


def test_related_submissions(db):
    service = InsiderService(db, secret=SECRET)

    async def run():
        base = await service.submit_information(insider_data(), "a")
        same_project = await service.submit_information(
            insider_data(title="Second tip on squid", categories=["Team Background"]), "b"
        )
        same_category = await service.submit_information(
            insider_data(title="Other project tip", project_name="Moon Inu"), "c"
        )
        unrelated = await service.submit_information(
            insider_data(title="Unrelated tip here", project_name="Moon Inu", categories=["Other"]), "d"
        )
        unverified = await service.submit_information(insider_data(title="Pending tip on squid"), "e")
        for s in (same_project, same_category, unrelated):
            await service.verify_information(s.id, "Verified", "mod")
        return base, same_project, same_category, unverified, await service.related_submissions(base.id)

    base, same_project, same_category, unverified, related = asyncio.run(run())
    ids = {s.id for s in related}
    assert ids == {same_project.id, same_category.id}
    assert unverified.id not in ids


def test_submission_stats(db):
    service = InsiderService(db, secret=SECRET)
    now = datetime.now(timezone.utc)

    async def run():
        a = await service.submit_information(insider_data(), "a")
        b = await service.submit_information(
            insider_data(title="Second tip", categories=["Insider Trading", "Team Background"]), "b"
        )
        await service.submit_information(insider_data(title="Third tip"), "c")
        await service.verify_information(a.id, "Verified", "mod")
        await service.verify_information(b.id, "Rejected", "mod")
        submissions = [await service.get_submission(s) for s in (a.id, b.id)]
        window = await service.get_submission_stats(now - timedelta(days=1), now + timedelta(days=1))
        past = await service.get_submission_stats(now - timedelta(days=10), now - timedelta(days=5))
        return submissions, window, past

    (verified, rejected), stats, past = asyncio.run(run())
    assert stats["total_submissions"] == 3
    assert (stats["verified_count"], stats["rejected_count"], stats["pending_count"]) == (1, 1, 1)
    assert stats["category_distribution"] == {"Insider Trading": 3, "Team Background": 1}
    assert sum(stats["risk_level_distribution"].values()) == 3
    assert 0 <= stats["average_credibility"] <= 100
    assert verified.credibility_score >= rejected.credibility_score
    assert past["total_submissions"] == 0
    assert past["average_credibility"] == 0


def test_submission_stats_rejects_inverted_window(db):
    now = datetime.now(timezone.utc)
    with pytest.raises(ValidationError):
        asyncio.run(InsiderService(db, secret=SECRET).get_submission_stats(now, now - timedelta(days=1)))


# -----------------------------------------------------------------------------
# Chat relay
# -----------------------------------------------------------------------------


def test_chat_frame_is_scanned_persisted_and_broadcast(db, dispatcher):
    relay = ChatRelay(db, dispatcher)

    async def run():
        sub = dispatcher.subscribe(EventKind.CHAT_MESSAGE_SENT, "room-1")
        reply = await relay.handle_inbound(
            {"type": "chat", "roomId": "room-1", "userId": "u1", "content": "this is a rug", "anonymous": True}
        )
        stored = await relay.get_message(reply["messageId"])
        return reply, stored, sub.get_nowait()

    reply, stored, event = asyncio.run(run())
    assert reply["type"] == "ack"
    assert stored.analysis["risk_indicators"] == ["rug"]
    assert stored.sender_id == "u1"
    assert event.payload["type"] == "chat"
    assert event.payload["message"]["sender_id"] is None
    assert event.payload["message"]["flag_count"] == 0


def test_join_returns_history_and_announces(db, dispatcher):
    relay = ChatRelay(db, dispatcher)

    async def run():
        await relay.post_message("room-1", "u1", "first")
        await relay.post_message("room-2", "u1", "elsewhere")
        sub = dispatcher.subscribe(EventKind.CHAT_MESSAGE_SENT, "room-1")
        reply = await relay.handle_inbound({"type": "join", "roomId": "room-1", "userId": "u2"})
        return reply, sub.get_nowait()

    reply, event = asyncio.run(run())
    assert [m["content"] for m in reply["messages"]] == ["first"]
    assert event.payload["type"] == "system"
    assert event.payload["content"] == "u2 joined the room"


@pytest.mark.parametrize(
    "frame",
    [
        {"type": "typing", "roomId": "r", "userId": "u"},
        {"type": "chat", "roomId": "", "userId": "u", "content": "hi"},
        {"type": "chat", "roomId": "r", "userId": "u", "content": "   "},
        {"type": "chat", "roomId": "r", "userId": "u", "content": "x" * 2001},
        {"type": "chat", "roomId": "r", "userId": "u", "content": "hi", "messageType": "video"},
    ],
)
def test_bad_frames_rejected(db, dispatcher, frame):
    with pytest.raises(ValidationError):
        asyncio.run(ChatRelay(db, dispatcher).handle_inbound(frame))


def test_fifth_flag_moderates_message(db, dispatcher):
    relay = ChatRelay(db, dispatcher, flag_threshold=5)

    async def run():
        message = await relay.post_message("room-1", "u1", "buy now")
        sub = dispatcher.subscribe(EventKind.CHAT_MESSAGE_UPDATED, "room-1")
        visibilities = []
        for i in range(5):
            flagged = await relay.flag_message(message.id, f"flagger-{i}", "spam")
            visibilities.append(flagged.visibility)
        with pytest.raises(DuplicateRecordError):
            await relay.flag_message(message.id, "flagger-0")
        events = [sub.get_nowait() for _ in range(5)]
        history = await relay.recent_messages("room-1")
        return flagged, visibilities, events, history

    flagged, visibilities, events, history = asyncio.run(run())
    assert visibilities[:4] == [MessageVisibility.PUBLIC] * 4
    assert visibilities[4] == MessageVisibility.MODERATED
    assert flagged.moderation_status == ModerationStatus.PENDING
    assert all(e is not None for e in events)
    assert events[-1].payload["message"]["visibility"] == "moderated"
    assert history == []


def test_moderation_decisions(db, dispatcher):
    relay = ChatRelay(db, dispatcher)

    async def run():
        message = await relay.post_message("room-1", "u1", "hello")
        rejected = await relay.moderate_message(message.id, "mod-1", "rejected", "off topic")
        approved = await relay.moderate_message(message.id, "mod-2", "approved")
        return rejected, approved

    rejected, approved = asyncio.run(run())
    assert rejected.visibility == MessageVisibility.MODERATED
    assert rejected.moderation_reason == "off topic"
    assert approved.visibility == MessageVisibility.PUBLIC
    assert approved.moderated_by == "mod-2"


def test_flag_unknown_message(db, dispatcher):
    with pytest.raises(NotFoundError):
        asyncio.run(ChatRelay(db, dispatcher).flag_message("missing", "u1"))


def test_tombstone_dates_accept_datetimes(db):
    data = tombstone_data(
        launch_date=datetime(2025, 10, 20, tzinfo=timezone.utc),
        rug_pull_date=datetime(2025, 11, 1, tzinfo=timezone.utc),
    )
    tombstone = asyncio.run(TombstoneService(db).create_tombstone(data, "u"))
    assert tombstone.rug_pull_date.year == 2025


def test_history_limit_counts_visible_messages_only(db, dispatcher):
    relay = ChatRelay(db, dispatcher)

    async def run():
        posted = [await relay.post_message("room-1", "u1", f"message {i}") for i in range(60)]
        for message in posted[-15:]:
            await relay.moderate_message(message.id, "mod-1", "rejected", "spam")
        return posted, await relay.recent_messages("room-1", limit=50)

    posted, history = asyncio.run(run())
    assert len(history) == 45
    assert all(m.visibility == MessageVisibility.PUBLIC for m in history)
    assert history[-1].id == posted[44].id


def test_room_stats(db, dispatcher):
    relay = ChatRelay(db, dispatcher)

    async def run():
        empty = await relay.room_stats("room-1")
        for user in ("u1", "u2"):
            await relay.handle_inbound({"type": "join", "roomId": "room-1", "userId": user})
        await relay.post_message("room-1", "u1", "hello")
        last = await relay.post_message("room-1", "u2", "hi")
        await relay.moderate_message(last.id, "mod-1", "rejected")
        await relay.handle_inbound({"type": "leave", "roomId": "room-1", "userId": "u1"})
        return empty, last, await relay.room_stats("room-1")

    empty, last, stats = asyncio.run(run())
    assert empty == {"room_id": "room-1", "active_users": 0, "message_count": 0, "last_activity": None}
    assert stats["active_users"] == 1
    assert stats["message_count"] == 2
    assert abs(datetime.fromisoformat(stats["last_activity"]) - last.created_at) < timedelta(milliseconds=1)
