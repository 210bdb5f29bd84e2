"""
Notification delivery channels.
"""

from .mail_sink import MailSink
from .webhook_sink import WebhookSink

__all__ = ["MailSink", "WebhookSink"]
