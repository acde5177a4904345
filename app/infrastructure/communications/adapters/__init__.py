"""Channel adapters.

Exports:
    ChannelAdapter: Abstract base every channel implements
    WhatsAppAdapter: WhatsApp Business Cloud API (two-way)
    WebhookAdapter: Arbitrary HTTP webhook (two-way, signed)
    SMSAdapter: GC Notify SMS (one-way)
"""

from infrastructure.communications.adapters.base import ChannelAdapter, is_e164
from infrastructure.communications.adapters.sms import SMSAdapter, SMSCredentials
from infrastructure.communications.adapters.webhook import (
    WebhookAdapter,
    WebhookCredentials,
)
from infrastructure.communications.adapters.whatsapp import (
    WhatsAppAdapter,
    WhatsAppCredentials,
)

BUILTIN_ADAPTERS = (WhatsAppAdapter, WebhookAdapter, SMSAdapter)

__all__ = [
    "BUILTIN_ADAPTERS",
    "ChannelAdapter",
    "SMSAdapter",
    "SMSCredentials",
    "WebhookAdapter",
    "WebhookCredentials",
    "WhatsAppAdapter",
    "WhatsAppCredentials",
    "is_e164",
]
