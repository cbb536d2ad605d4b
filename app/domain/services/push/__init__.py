"""
Push Notification Layer

שכבת הפשטה לשליחת push: transport (gateway מעל FCM), recipient directory
(לקוח → device token) ודיספצ'ר שמחבר ביניהם.
"""
from app.domain.services.push.base_transport import BasePushTransport, PushResult
from app.domain.services.push.dispatcher import PushDispatcher
from app.domain.services.push.recipient_directory import AppUserDirectory, BaseRecipientDirectory
from app.domain.services.push.transport_factory import get_push_transport

__all__ = [
    "AppUserDirectory",
    "BasePushTransport",
    "BaseRecipientDirectory",
    "PushDispatcher",
    "PushResult",
    "get_push_transport",
]
