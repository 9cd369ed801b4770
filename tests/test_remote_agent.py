"""
Reference remote agent driven against the in-process app.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from agent import RemoteAgent

from signalgate.main import app


@pytest.fixture
async def agent_http(client):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.mark.asyncio
async def test_agent_answers_offer_then_goes_idle(client, agent_http, agent_credential):
    credential, record = agent_credential
    offers = []

    async def on_offer(session, offer):
        offers.append(offer)
        return {"sdp": "v=0 answer"}

    agent = RemoteAgent(
        server_url="http://test",
        credential=credential,
        signal_interval_seconds=0,
        idle_signal_polls=2,
        on_offer=on_offer,
        client=agent_http,
    )

    assert await agent.poll_for_session() is None

    created = (
        await client.post(
            "/v1/sessions",
            headers={"X-Org-ID": record.org_id},
            json={"assetId": record.asset_id, "operatorUserId": "tech-1", "operatorName": "T"},
        )
    ).json()
    session_id = created["session"]["sessionId"]

    session = await agent.poll_for_session()
    assert session["sessionId"] == session_id
    assert await agent.poll_for_session() is None

    await client.post(
        "/v1/rc/signalling",
        json={
            "sessionId": session_id,
            "token": created["token"],
            "type": "offer",
            "data": {"sdp": "v=0 offer"},
            "sender": "operator",
        },
    )

    await agent.handle_session(session)

    assert offers == [{"sdp": "v=0 offer"}]
    answers = await client.get(
        "/v1/rc/signalling",
        params={"sessionId": session_id, "token": created["token"], "role": "operator"},
    )
    assert [m["data"] for m in answers.json()["data"]] == [{"sdp": "v=0 answer"}]


@pytest.mark.asyncio
async def test_agent_stops_when_token_rejected(agent_http):
    agent = RemoteAgent(server_url="http://test", credential="sgk_x", client=agent_http)

    assert await agent.receive_signals({"sessionId": "s", "token": "bad"}, 0) is None
    assert await agent.send_signal({"sessionId": "s", "token": "bad"}, "answer", {}) is False
