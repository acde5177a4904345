"""Integration settings __init__ - exports all provider settings."""

from infrastructure.configuration.integrations.notify import NotifySettings
from infrastructure.configuration.integrations.whatsapp import WhatsAppSettings

__all__ = [
    "NotifySettings",
    "WhatsAppSettings",
]
