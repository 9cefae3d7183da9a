"""
Tests for the FastAPI surface: REST routes, error-to-status mapping and the
WebSocket channels. The lifespan runs against a temporary database and the
fake chain provider from conftest.
"""

from __future__ import annotations

from conftest import PAIR_ADDRESS, evm_address, warning_payload

from rugwatch.api_server.server import error_status
from rugwatch.core.exceptions import (
    DuplicateRecordError,
    InvalidTransitionError,
    NotFoundError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    UnsupportedNetworkError,
    ValidationError,
    WarningClosedError,
)

TOKEN = "0x" + "ab" * 20

TOMBSTONE = {
    "submitted_by": "user-1",
    "project_name": "Squid Game Token",
    "token_symbol": "SQUID",
    "network": "BSC",
    "contract_address": "0x" + "cd" * 20,
    "launch_date": "2025-10-20T00:00:00Z",
    "rug_pull_date": "2025-11-01T00:00:00Z",
    "total_loss": 3380000,
    "affected_users": 40000,
    "fraud_tactics": ["Liquidity Removal"],
}


def test_error_status_mapping():
    assert error_status(NotFoundError("WarningSign", "x")) == 404
    assert error_status(InvalidTransitionError("x", "Resolved", "False Alarm")) == 409
    assert error_status(WarningClosedError("x", "Resolved")) == 409
    assert error_status(DuplicateRecordError("dup")) == 409
    assert error_status(ValidationError("bad")) == 422
    assert error_status(UnsupportedNetworkError("Solana")) == 422
    assert error_status(ProviderUnavailableError("web3", "get_code", "down")) == 502
    assert error_status(ProviderTimeoutError("web3", "get_code", 15)) == 504


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_warning_lifecycle_over_http(client):
    r = client.post("/warnings", json=warning_payload())
    assert r.status_code == 201
    warning = r.json()
    assert warning["status"] == "Active"
    assert warning["risk_level"] in {"Low", "Medium", "High", "Critical"}
    wid = warning["id"]

    r = client.patch(f"/warnings/{wid}", json={"evidence": {"market": {"price_change": -80}}})
    assert r.status_code == 200
    assert "High Price Volatility" in r.json()["ai_analysis"]["factors"]

    assert client.patch(f"/warnings/{wid}", json={"risk_level": "Low"}).status_code == 422

    r = client.post(f"/warnings/{wid}/verify", json={"verifier_id": "user-9"})
    assert r.json()["verified_by"] == ["user-9"]

    r = client.post(f"/warnings/{wid}/notify", json={"recipients": ["a", "b"], "channel": "In-App"})
    assert r.json()["notifications_sent"][0]["recipient_count"] == 2

    r = client.post(f"/warnings/{wid}/resolve", json={"moderator_id": "mod-1", "resolution": "Liquidity relocked"})
    assert r.status_code == 200
    assert r.json()["resolution_details"]["resolved_by"] == "mod-1"

    r = client.post(f"/warnings/{wid}/false-alarm", json={"moderator_id": "mod-2", "explanation": "late"})
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_transition"

    assert client.patch(f"/warnings/{wid}", json={"description": "late"}).status_code == 409


def test_warning_queries(client):
    ids = [
        client.post("/warnings", json=warning_payload(contract_address=evm_address(i))).json()["id"] for i in range(3)
    ]
    client.post(f"/warnings/{ids[0]}/resolve", json={"moderator_id": "m", "resolution": "done"})

    assert len(client.get("/warnings/active").json()) == 2
    assert len(client.get("/warnings", params={"status": "Resolved"}).json()) == 1
    assert client.get("/warnings", params={"network": "Tron"}).status_code == 422

    stats = client.get("/warnings/stats").json()
    assert stats["total_warnings"] == 3
    assert stats["resolved_warnings"] == 1

    similar = client.get(f"/warnings/{ids[1]}/similar").json()
    assert [c["id"] for c in similar] == [ids[0]]


def test_unknown_warning_is_404(client):
    r = client.get("/warnings/does-not-exist")
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"
    assert client.delete("/warnings/does-not-exist").status_code == 404


def test_invalid_body_is_422(client):
    assert client.post("/warnings", json={"project_name": "x"}).status_code == 422
    assert client.post("/warnings", json=warning_payload(network="Tron")).status_code == 422
    bad_evidence = warning_payload(evidence={"market": {"price_change": "abc"}})
    assert client.post("/warnings", json=bad_evidence).status_code == 422
    assert client.post("/warnings", json=warning_payload(contract_address="0xnope")).json()["error"] == "validation_error"


def test_provider_failure_maps_to_502(client, fake_chain):
    fake_chain.error = ConnectionError("rpc down")
    r = client.post("/warnings", json=warning_payload())
    assert r.status_code == 502
    assert r.json()["error"] == "provider_unavailable"


def test_monitored_warning_registered_with_scheduler(client):
    body = warning_payload(requires_monitoring=True, evidence={"on_chain": {"pair_address": PAIR_ADDRESS}})
    wid = client.post("/warnings", json=body).json()["id"]
    assert client.get("/health").json()["monitored_warnings"] == 1
    client.delete(f"/warnings/{wid}")


def test_tombstone_routes(client):
    r = client.post("/tombstones", json=TOMBSTONE)
    assert r.status_code == 201
    tid = r.json()["id"]
    assert r.json()["verification_status"] == "Pending"

    assert client.post("/tombstones", json=TOMBSTONE).status_code == 409

    r = client.post(f"/tombstones/{tid}/verify", json={"status": "Verified", "user_id": "mod-1"})
    assert r.json()["verification_status"] == "Verified"
    assert client.post(f"/tombstones/{tid}/verify", json={"status": "Maybe", "user_id": "m"}).status_code == 422

    stats = client.get("/tombstones/stats").json()
    assert stats["total_cases"] == 1

    wid = client.post("/warnings", json=warning_payload()).json()["id"]
    similar = client.get(f"/warnings/{wid}/similar").json()
    assert [(c["kind"], c["id"]) for c in similar] == [("tombstone", tid)]
    assert client.get(f"/tombstones/{tid}/similar").json() == []


def test_risk_report_route(client, fake_chain):
    body = {
        "network": "BSC",
        "contract_address": TOKEN,
        "pair_address": PAIR_ADDRESS,
        "project_profile": {"team_anonymous": 1},
    }
    r = client.post("/tombstones/risk-report", json=body)
    assert r.status_code == 200
    assert r.json()["liquidity_analysis"]["reserve0"] == 500
    assert "Anonymous Team" in r.json()["risk_prediction"]["factors"]
    assert client.get("/tombstones/stats").json()["total_cases"] == 0

    assert client.post("/tombstones/risk-report", json={**body, "pair_address": "0x12"}).status_code == 422
    fake_chain.error = ConnectionError("rpc down")
    assert client.post("/tombstones/risk-report", json=body).status_code == 502


def test_insider_routes(client):
    body = {
        "submitter_info": "whistleblower@example.org",
        "title": "Dev wallet preparing to exit",
        "content": "The deployer wallet has been bridging funds out every night this week.",
        "project_name": "Squid Game Token",
        "network": "BSC",
        "categories": ["Insider Trading"],
    }
    r = client.post("/insider", json=body)
    assert r.status_code == 201
    sid = r.json()["id"]
    assert "whistleblower" not in r.text
    assert client.post("/insider", json=body).status_code == 409

    r = client.post(f"/insider/{sid}/verify", json={"status": "Verified", "moderator_id": "mod-1"})
    assert r.json()["verification_status"] == "Verified"

    for i in range(5):
        r = client.post(f"/insider/{sid}/report", json={"user_id": f"u{i}"})
    assert r.json()["verification_status"] == "Pending"
    assert client.get(f"/insider/{sid}/related").json() == []

    stats = client.get("/insider/stats").json()
    assert stats["total_submissions"] == 1
    assert stats["pending_count"] == 1
    january = {"start": "2020-01-01T00:00:00Z", "end": "2020-02-01T00:00:00Z"}
    assert client.get("/insider/stats", params=january).json()["total_submissions"] == 0
    inverted = {"start": january["end"], "end": january["start"]}
    assert client.get("/insider/stats", params=inverted).status_code == 422


def test_warning_feed_websocket(client):
    with client.websocket_connect("/ws/warnings") as ws:
        wid = client.post("/warnings", json=warning_payload()).json()["id"]
        event = ws.receive_json()
        assert event["type"] == "warning_created"
        assert event["payload"]["id"] == wid


def test_selective_warning_feed(client):
    wid = client.post("/warnings", json=warning_payload(contract_address=evm_address(1))).json()["id"]
    other = client.post("/warnings", json=warning_payload(contract_address=evm_address(2))).json()["id"]
    with client.websocket_connect(f"/ws/warnings?warning_id={wid}") as ws:
        client.post(f"/warnings/{other}/resolve", json={"moderator_id": "m", "resolution": "done"})
        client.post(f"/warnings/{wid}/resolve", json={"moderator_id": "m", "resolution": "done"})
        event = ws.receive_json()
        assert event["type"] == "warning_updated"
        assert event["key"] == wid
        assert event["payload"]["status"] == "Resolved"


def _receive(ws, count: int) -> dict[str, dict]:
    """Collect messages keyed by their type (event kind or reply type)."""
    received = {}
    for _ in range(count):
        message = ws.receive_json()
        received[message["type"]] = message
    return received


def test_chat_websocket_flow(client):
    with client.websocket_connect("/ws/chat/room-1") as ws:
        ws.send_json({"type": "chat", "userId": "u1", "content": "hello"})
        assert ws.receive_json() == {"type": "error", "message": "Not joined to a room"}

        ws.send_text("{not json")
        assert ws.receive_json() == {"type": "error", "message": "Invalid message format"}

        ws.send_json({"type": "join", "roomId": "room-1", "userId": "u1"})
        joined = _receive(ws, 2)
        assert joined["history"]["messages"] == []
        assert joined["chat_message_sent"]["payload"]["type"] == "system"

        ws.send_json({"type": "chat", "roomId": "room-1", "userId": "someone-else", "content": "this looks like a rug"})
        sent = _receive(ws, 2)
        message = sent["chat_message_sent"]["payload"]["message"]
        assert message["sender_id"] == "u1"
        assert message["analysis"]["risk_indicators"] == ["rug"]
        assert sent["ack"]["messageId"] == message["id"]

        ws.send_json({"type": "dance", "roomId": "room-1", "userId": "u1"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["error"] == "validation_error"

    r = client.post(f"/chat/messages/{message['id']}/flag", json={"user_id": "u2", "reason": "spam"})
    assert r.json()["flag_count"] == 1
    r = client.post(
        f"/chat/messages/{message['id']}/moderate",
        json={"status": "rejected", "moderator_id": "mod-1", "reason": "fud"},
    )
    assert r.json()["visibility"] == "moderated"
    assert client.get("/chat/rooms/room-1/messages").json() == []

    stats = client.get("/chat/rooms/room-1/stats").json()
    assert stats["message_count"] == 1
    assert stats["last_activity"] is not None
