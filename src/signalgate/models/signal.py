"""Signalling message model."""

from typing import Any

from pydantic import BaseModel, ConfigDict

from signalgate.models.enums import SignalRole, SignalType


class SignalMessage(BaseModel):
    """
    One offer, answer or ICE candidate queued for a session.

    Messages carry no id of their own: consumers filter by timestamp and
    sender, and track the last timestamp they saw as their next cursor.
    """

    model_config = ConfigDict(frozen=True)

    type: SignalType
    data: Any = None
    timestamp: int
    sender: SignalRole

    def visible_to(self, role: SignalRole, since: int) -> bool:
        """Newer than the cursor and not posted by the polling party."""
        return self.timestamp > since and self.sender != role
