"""Delivery channel senders."""

from slot_alerts.channels.base import DirectMessageSender, PushSender
from slot_alerts.channels.email_sender import SmtpEmailSender
from slot_alerts.channels.push_sender import FcmPushSender, RoutingPushSender, WebPushSender

__all__ = [
    "DirectMessageSender",
    "FcmPushSender",
    "PushSender",
    "RoutingPushSender",
    "SmtpEmailSender",
    "WebPushSender",
]
