"""
Operator API tests: sessions, policy, credentials, auth.
"""

import pytest
from httpx import AsyncClient

from signalgate.config import Environment, settings
from signalgate.models import SignalRole

HEADERS = {"X-Org-ID": "org-test"}


async def _create(client: AsyncClient, asset_id: str = "asset-1", **overrides):
    body = {"assetId": asset_id, "operatorUserId": "tech-1", "operatorName": "Tech One"}
    body.update(overrides)
    return await client.post("/v1/sessions", headers=HEADERS, json=body)


@pytest.mark.asyncio
async def test_health_is_unauthenticated(client: AsyncClient):
    response = await client.get("/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_create_session_returns_pending_session_token_and_ice(client: AsyncClient):
    response = await _create(client)

    assert response.status_code == 201
    body = response.json()
    assert body["session"]["status"] == "pending"
    assert body["session"]["orgId"] == "org-test"
    assert body["session"]["assetId"] == "asset-1"
    assert body["session"]["policySnapshot"]["allowClipboard"] is False
    assert body["token"].count(".") == 2
    assert body["iceServers"][0]["urls"] == ["stun:stun.l.google.com:19302"]


@pytest.mark.asyncio
async def test_duplicate_open_session_is_409(client: AsyncClient):
    assert (await _create(client)).status_code == 201

    duplicate = await _create(client, operatorUserId="tech-2")

    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_create_session_validation_is_400(client: AsyncClient):
    response = await client.post("/v1/sessions", headers=HEADERS, json={"assetId": "asset-1"})

    assert response.status_code == 400
    assert "operatorUserId" in response.json()["detail"]


@pytest.mark.asyncio
async def test_disabled_policy_is_403(client: AsyncClient):
    updated = await client.put(
        "/v1/policy", headers=HEADERS, json={"enabled": False, "updatedBy": "admin-1"}
    )
    assert updated.status_code == 200
    assert updated.json()["enabled"] is False

    response = await _create(client)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_get_policy_creates_defaults(client: AsyncClient):
    response = await client.get("/v1/policy", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["orgId"] == "org-test"
    assert body["enabled"] is True
    assert body["requireConsent"] is False
    assert body["idleTimeoutMinutes"] == 30
    assert body["allowedRoles"] == ["admin", "technician"]


@pytest.mark.asyncio
async def test_policy_update_is_partial_and_validated(client: AsyncClient):
    response = await client.put(
        "/v1/policy",
        headers=HEADERS,
        json={"allowClipboard": True, "updatedBy": "admin-1"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["allowClipboard"] is True
    assert body["idleTimeoutMinutes"] == 30
    assert body["updatedBy"] == "admin-1"

    invalid = await client.put(
        "/v1/policy",
        headers=HEADERS,
        json={"idleTimeoutMinutes": 0, "updatedBy": "admin-1"},
    )
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_status_transitions(client: AsyncClient):
    session_id = (await _create(client)).json()["session"]["sessionId"]
    url = f"/v1/sessions/{session_id}/status"

    active = await client.post(url, headers=HEADERS, json={"status": "active"})
    assert active.status_code == 200
    assert active.json()["activatedAt"] is not None

    back = await client.post(url, headers=HEADERS, json={"status": "pending"})
    assert back.status_code == 409

    ended = await client.post(
        url, headers=HEADERS, json={"status": "ended", "reason": "done", "actorId": "tech-1"}
    )
    assert ended.status_code == 200
    assert ended.json()["endReason"] == "done"
    assert ended.json()["durationSeconds"] is not None

    again = await client.post(url, headers=HEADERS, json={"status": "ended"})
    assert again.status_code == 409

    unknown = await client.post(url, headers=HEADERS, json={"status": "failed"})
    assert unknown.status_code == 400


@pytest.mark.asyncio
async def test_unknown_session_is_404(client: AsyncClient):
    assert (await client.get("/v1/sessions/missing", headers=HEADERS)).status_code == 404
    status = await client.post(
        "/v1/sessions/missing/status", headers=HEADERS, json={"status": "ended"}
    )
    assert status.status_code == 404
    assert (await client.get("/v1/sessions/missing/audit", headers=HEADERS)).status_code == 404


@pytest.mark.asyncio
async def test_sessions_are_org_scoped(client: AsyncClient):
    session_id = (await _create(client)).json()["session"]["sessionId"]

    response = await client.get(f"/v1/sessions/{session_id}", headers={"X-Org-ID": "org-other"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_sessions_filters(client: AsyncClient):
    first = (await _create(client, "asset-1")).json()["session"]["sessionId"]
    await _create(client, "asset-2", operatorUserId="tech-2")
    await client.post(f"/v1/sessions/{first}/status", headers=HEADERS, json={"status": "ended"})

    by_asset = await client.get("/v1/sessions", headers=HEADERS, params={"assetId": "asset-1"})
    assert [s["sessionId"] for s in by_asset.json()["sessions"]] == [first]

    pending = await client.get("/v1/sessions", headers=HEADERS, params={"status": "pending"})
    assert [s["assetId"] for s in pending.json()["sessions"]] == ["asset-2"]

    by_operator = await client.get(
        "/v1/sessions", headers=HEADERS, params={"operatorUserId": "tech-2"}
    )
    assert len(by_operator.json()["sessions"]) == 1


@pytest.mark.asyncio
async def test_reissue_operator_token(client: AsyncClient):
    created = (await _create(client)).json()
    session_id = created["session"]["sessionId"]
    url = f"/v1/sessions/{session_id}/token"

    reissued = await client.post(url, headers=HEADERS)
    assert reissued.status_code == 200
    assert reissued.json()["sessionId"] == session_id
    assert reissued.json()["token"] != created["token"]

    await client.post(f"/v1/sessions/{session_id}/status", headers=HEADERS, json={"status": "ended"})
    assert (await client.post(url, headers=HEADERS)).status_code == 409


@pytest.mark.asyncio
async def test_audit_log_records_lifecycle(client: AsyncClient):
    session_id = (await _create(client)).json()["session"]["sessionId"]
    await client.post(
        f"/v1/sessions/{session_id}/status",
        headers=HEADERS,
        json={"status": "ended", "reason": "cancelled", "actorId": "tech-1"},
    )

    response = await client.get(f"/v1/sessions/{session_id}/audit", headers=HEADERS)

    assert response.status_code == 200
    events = response.json()["events"]
    assert [e["action"] for e in events] == ["session_start", "session_end"]
    assert events[0]["actorId"] == "tech-1"
    assert events[1]["details"]["reason"] == "cancelled"


@pytest.mark.asyncio
async def test_enroll_and_revoke_agent_credential(client: AsyncClient):
    enrolled = await client.post(
        "/v1/agent-credentials",
        headers=HEADERS,
        json={"assetId": "asset-9", "agentId": "agent-9"},
    )
    assert enrolled.status_code == 201
    body = enrolled.json()
    assert body["credential"].startswith(body["keyPrefix"])

    poll = await client.get(
        "/v1/agent/rc/poll", headers={"Authorization": f"Bearer {body['credential']}"}
    )
    assert poll.status_code == 204

    url = f"/v1/agent-credentials/{body['credentialId']}/revoke"
    other_org = await client.post(url, headers={"X-Org-ID": "org-other"}, json={"revokedBy": "x"})
    assert other_org.status_code == 404

    revoked = await client.post(url, headers=HEADERS, json={"revokedBy": "admin-1"})
    assert revoked.status_code == 200


@pytest.mark.asyncio
async def test_metrics_snapshot(client: AsyncClient):
    await _create(client)

    response = await client.get("/v1/metrics")

    assert response.status_code == 200
    assert response.json()["counters"]["sessions.created"] == 1


@pytest.mark.asyncio
async def test_operator_api_requires_key_outside_insecure_dev(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "allow_insecure_dev", False)
    monkeypatch.setattr(settings, "env", Environment.DEVELOPMENT)
    monkeypatch.setattr(settings, "api_key", "operator-key")

    missing = await client.get("/v1/sessions", headers=HEADERS)
    assert missing.status_code == 401

    wrong = await client.get("/v1/sessions", headers={**HEADERS, "X-API-Key": "nope"})
    assert wrong.status_code == 401

    ok = await client.get(
        "/v1/sessions", headers={**HEADERS, "Authorization": "Bearer operator-key"}
    )
    assert ok.status_code == 200

    # Health stays open
    assert (await client.get("/v1/health")).status_code == 200


@pytest.mark.asyncio
async def test_operator_api_fails_closed_without_configured_key(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "allow_insecure_dev", False)
    monkeypatch.setattr(settings, "api_key", None)

    response = await client.get("/v1/sessions", headers={**HEADERS, "X-API-Key": "anything"})

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_grant_consent_activates_session(client: AsyncClient):
    session_id = (await _create(client)).json()["session"]["sessionId"]

    granted = await client.post(
        f"/v1/sessions/{session_id}/consent/grant",
        headers=HEADERS,
        json={"actorId": "device-user"},
    )

    assert granted.status_code == 200
    body = granted.json()
    assert body["status"] == "active"
    assert body["consentGrantedBy"] == "device-user"
    assert body["consentGrantedAt"] is not None

    repeated = await client.post(
        f"/v1/sessions/{session_id}/consent/grant",
        headers=HEADERS,
        json={"actorId": "device-user"},
    )
    assert repeated.status_code == 409


@pytest.mark.asyncio
async def test_deny_consent_ends_session_and_clears_signals(client: AsyncClient, relay):
    created = (await _create(client)).json()
    session_id = created["session"]["sessionId"]
    await client.post(
        "/v1/rc/signalling",
        json={
            "sessionId": session_id,
            "token": created["token"],
            "type": "offer",
            "data": {"sdp": "v=0"},
            "sender": "operator",
        },
    )

    denied = await client.post(
        f"/v1/sessions/{session_id}/consent/deny",
        headers=HEADERS,
        json={"actorId": "device-user"},
    )

    assert denied.status_code == 200
    assert denied.json()["status"] == "ended"
    assert denied.json()["endReason"] == "consent_denied"
    assert await relay.poll(session_id, 0, SignalRole.AGENT) == []

    audit = await client.get(f"/v1/sessions/{session_id}/audit", headers=HEADERS)
    actions = [e["action"] for e in audit.json()["events"]]
    assert actions[-2:] == ["session_end", "consent_denied"]


@pytest.mark.asyncio
async def test_consent_routes_validate_and_scope(client: AsyncClient):
    session_id = (await _create(client)).json()["session"]["sessionId"]

    missing_actor = await client.post(
        f"/v1/sessions/{session_id}/consent/deny", headers=HEADERS, json={}
    )
    unknown = await client.post(
        "/v1/sessions/missing/consent/grant", headers=HEADERS, json={"actorId": "u"}
    )

    assert missing_actor.status_code == 400
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_update_quality_metrics(client: AsyncClient):
    session_id = (await _create(client)).json()["session"]["sessionId"]

    response = await client.put(
        f"/v1/sessions/{session_id}/metrics",
        headers=HEADERS,
        json={"avgFps": 29.5, "avgLatency": 80, "packetsLost": 3},
    )

    assert response.status_code == 200
    assert response.json()["qualityMetrics"] == {
        "avgFps": 29.5,
        "avgLatency": 80.0,
        "packetsLost": 3,
        "bandwidth": None,
    }

    negative = await client.put(
        f"/v1/sessions/{session_id}/metrics", headers=HEADERS, json={"packetsLost": -1}
    )
    unknown = await client.put("/v1/sessions/missing/metrics", headers=HEADERS, json={})
    assert negative.status_code == 400
    assert unknown.status_code == 404
