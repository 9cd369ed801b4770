#!/usr/bin/env python3
"""Golden path demo for SignalGate (operator and agent over one session)."""

from __future__ import annotations

import json
import os
import sys
from typing import Any
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen


def _env(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value


class HttpClient:
    def __init__(self, base_url: str, api_key: str | None = None, org_id: str | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
        if org_id:
            self.headers["X-Org-ID"] = org_id

    def request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> tuple[int, dict[str, Any]]:
        url = f"{self.base_url}{path}"
        if query:
            query = {k: v for k, v in query.items() if v is not None}
            if query:
                url = f"{url}?{urlencode(query)}"

        data = None
        if payload is not None:
            data = json.dumps(payload, default=str).encode("utf-8")

        req = Request(url, data=data, method=method)
        for key, value in {**self.headers, **(headers or {})}.items():
            req.add_header(key, value)

        try:
            with urlopen(req, timeout=timeout) as response:
                status = response.status
                raw = response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"{method} {url} failed: {exc.code} {exc.reason}: {detail}") from None

        if not raw:
            return status, {}
        return status, json.loads(raw.decode("utf-8"))


def main() -> int:
    server_url = _env("SIGNALGATE_URL", "http://localhost:8080")
    api_key = _env("SIGNALGATE_API_KEY")
    org_id = _env("SIGNALGATE_ORG_ID", "demo-org")
    asset_id = _env("SIGNALGATE_ASSET_ID", "demo-asset")

    operator = HttpClient(server_url, api_key=api_key, org_id=org_id)
    peer = HttpClient(server_url)

    print("Checking health...")
    _, health = peer.request("GET", "/v1/health")
    if health.get("status") != "healthy":
        raise RuntimeError(f"Unexpected health response: {health}")

    print("Enrolling agent...")
    _, enrolled = operator.request(
        "POST",
        "/v1/agent-credentials",
        payload={"assetId": asset_id, "agentId": "demo-agent"},
    )
    credential = enrolled["credential"]

    print("Opening session...")
    _, created = operator.request(
        "POST",
        "/v1/sessions",
        payload={
            "assetId": asset_id,
            "operatorUserId": "demo-operator",
            "operatorName": "Demo Operator",
        },
    )
    session_id = created["session"]["sessionId"]
    operator_token = created["token"]
    print(f"Session {session_id} is {created['session']['status']}")

    print("Agent polling...")
    status, handed = peer.request(
        "GET", "/v1/agent/rc/poll", headers={"Authorization": f"Bearer {credential}"}
    )
    if status != 200:
        raise RuntimeError(f"Agent poll returned {status}, expected a session")
    agent_token = handed["session"]["token"]

    print("Operator sends offer...")
    peer.request(
        "POST",
        "/v1/rc/signalling",
        payload={
            "sessionId": session_id,
            "token": operator_token,
            "type": "offer",
            "data": {"sdp": "v=0 demo-offer"},
            "sender": "operator",
        },
    )

    _, inbox = peer.request(
        "GET",
        "/v1/rc/signalling",
        query={"sessionId": session_id, "token": agent_token, "since": 0, "role": "agent"},
    )
    offers = [m for m in inbox["data"] if m["type"] == "offer"]
    if not offers:
        raise RuntimeError("Agent did not receive the offer")
    cursor = offers[-1]["timestamp"]
    print(f"Agent received offer at {cursor}")

    peer.request(
        "POST",
        "/v1/rc/signalling",
        payload={
            "sessionId": session_id,
            "token": agent_token,
            "type": "answer",
            "data": {"sdp": "v=0 demo-answer"},
            "sender": "agent",
        },
    )

    _, outbox = peer.request(
        "GET",
        "/v1/rc/signalling",
        query={"sessionId": session_id, "token": operator_token, "since": 0, "role": "operator"},
    )
    answers = [m for m in outbox["data"] if m["type"] == "answer"]
    if len(answers) != 1 or any(m["sender"] == "operator" for m in outbox["data"]):
        raise RuntimeError(f"Operator inbox unexpected: {outbox}")
    print("Operator received answer")

    print("Ending session...")
    _, ended = operator.request(
        "POST",
        f"/v1/sessions/{session_id}/status",
        payload={"status": "ended", "reason": "demo complete"},
    )
    print(f"Session ended after {ended.get('durationSeconds')}s")

    _, audit = operator.request("GET", f"/v1/sessions/{session_id}/audit")
    print("Audit trail: " + ", ".join(e["action"] for e in audit["events"]))
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except RuntimeError as exc:
        print(f"Golden path failed: {exc}", file=sys.stderr)
        sys.exit(1)
