"""
Remote Agent Poller - Reference Implementation

This agent demonstrates the device side of the SignalGate protocol by:
1. Polling for a session handed to its asset
2. Exchanging offer/answer/ICE messages over the signalling relay
3. Tracking its own since cursor between signalling polls
4. Going back to polling once the session's signalling goes quiet

Media transport is out of scope: answers are produced by a pluggable
callback, which by default only logs the offer.
"""

import argparse
import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

OfferHandler = Callable[[Dict[str, Any], Any], Awaitable[Optional[Any]]]


class RemoteAgent:
    def __init__(
        self,
        server_url: str,
        credential: str,
        poll_interval_seconds: float = 5.0,
        signal_interval_seconds: float = 1.0,
        idle_signal_polls: int = 120,
        on_offer: Optional[OfferHandler] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.poll_interval = poll_interval_seconds
        self.signal_interval = signal_interval_seconds
        self.idle_signal_polls = idle_signal_polls
        self.on_offer = on_offer
        self.headers = {"Authorization": f"Bearer {credential}"}
        self._client = client or httpx.AsyncClient(timeout=10.0)

    def log(self, message: str, level: str = "INFO"):
        """Simple logging"""
        timestamp = datetime.now(timezone.utc).isoformat()
        print(f"[{timestamp}] [{level}] [remote-agent] {message}", flush=True)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def poll_for_session(self) -> Optional[Dict[str, Any]]:
        """
        Ask for a session awaiting hand-off.

        Anything but a 200 is treated as "no session"; server errors and
        network failures are logged and retried on the next interval.
        """
        try:
            response = await self._client.get(
                f"{self.server_url}/v1/agent/rc/poll",
                headers=self.headers,
            )
        except httpx.HTTPError as e:
            self.log(f"Error polling for session: {e}", "ERROR")
            return None

        if response.status_code == 204:
            return None

        if response.status_code == 200:
            session = response.json().get("session")
            if session:
                self.log(f"Received session: {session.get('sessionId')}")
            return session

        if response.status_code in (401, 403):
            self.log(f"Credential rejected ({response.status_code})", "ERROR")
        else:
            self.log(f"Unexpected response from poll: {response.status_code}", "WARN")
        return None

    async def send_signal(self, session: Dict[str, Any], type: str, data: Any) -> bool:
        """Post one message as the agent."""
        try:
            response = await self._client.post(
                f"{self.server_url}/v1/rc/signalling",
                json={
                    "sessionId": session["sessionId"],
                    "token": session["token"],
                    "type": type,
                    "data": data,
                    "sender": "agent",
                },
            )
        except httpx.HTTPError as e:
            self.log(f"Error sending {type}: {e}", "ERROR")
            return False

        if response.status_code != 200:
            self.log(f"Signal {type} rejected: {response.status_code}", "WARN")
            return False
        return True

    async def receive_signals(
        self, session: Dict[str, Any], since: int
    ) -> Optional[list[Dict[str, Any]]]:
        """
        Operator messages newer than since.

        Returns None when the token is no longer accepted, which ends the
        exchange.
        """
        try:
            response = await self._client.get(
                f"{self.server_url}/v1/rc/signalling",
                params={
                    "sessionId": session["sessionId"],
                    "token": session["token"],
                    "since": since,
                    "role": "agent",
                },
            )
        except httpx.HTTPError as e:
            self.log(f"Error polling signals: {e}", "ERROR")
            return []

        if response.status_code == 401:
            return None
        if response.status_code != 200:
            self.log(f"Unexpected response from signalling: {response.status_code}", "WARN")
            return []
        return response.json().get("data", [])

    async def handle_session(self, session: Dict[str, Any]) -> None:
        """Run the signalling exchange for one session until it goes quiet."""
        since = 0
        idle = 0

        while idle < self.idle_signal_polls:
            messages = await self.receive_signals(session, since)
            if messages is None:
                self.log(f"Session {session['sessionId']} token no longer valid")
                return

            if not messages:
                idle += 1
                await asyncio.sleep(self.signal_interval)
                continue

            idle = 0
            for message in messages:
                since = max(since, int(message["timestamp"]))
                if message["type"] == "offer":
                    await self._answer(session, message.get("data"))
                elif message["type"] == "ice-candidate":
                    self.log("Received ICE candidate")

        self.log(f"Session {session['sessionId']} signalling idle, returning to poll")

    async def _answer(self, session: Dict[str, Any], offer: Any) -> None:
        self.log(f"Received offer for session {session['sessionId']}")
        if self.on_offer is None:
            return
        answer = await self.on_offer(session, offer)
        if answer is not None:
            await self.send_signal(session, "answer", answer)

    async def run(self) -> None:
        """Main agent loop"""
        self.log(f"Starting remote agent against {self.server_url}")
        try:
            while True:
                try:
                    session = await self.poll_for_session()
                    if session:
                        await self.handle_session(session)
                    else:
                        await asyncio.sleep(self.poll_interval)
                except Exception as e:
                    self.log(f"Unexpected error in main loop: {e}", "ERROR")
                    await asyncio.sleep(self.poll_interval)
        finally:
            await self.close()


def main():
    parser = argparse.ArgumentParser(description="SignalGate Remote Agent Poller")
    parser.add_argument(
        "--server-url",
        required=True,
        help="SignalGate base URL (e.g., http://localhost:8080)",
    )
    parser.add_argument(
        "--credential",
        required=True,
        help="Agent credential (sgk_...) issued at enrollment",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=5.0,
        help="Session polling interval in seconds (default: 5)",
    )

    args = parser.parse_args()

    agent = RemoteAgent(
        server_url=args.server_url,
        credential=args.credential,
        poll_interval_seconds=args.poll_interval,
    )
    asyncio.run(agent.run())


if __name__ == "__main__":
    main()
