"""Channel sender interfaces consumed by the engine."""

from typing import Protocol

from slot_alerts.schemas.notifications import (
    DeliveryTarget,
    EmailTemplateData,
    PushPayload,
    PushResult,
)


class DirectMessageSender(Protocol):
    """Sends the availability message straight to a user's address."""

    async def send(self, to: str, template_data: EmailTemplateData) -> bool:
        """Return True if the message was accepted for delivery."""
        ...


class PushSender(Protocol):
    """Sends a push notification to one delivery target."""

    async def send(self, target: DeliveryTarget, notification: PushPayload) -> PushResult:
        """Return the delivery outcome with the transport status code, if any."""
        ...
