"""Webhook handler registry."""

from __future__ import annotations

from qcsat.services.webhooks.app_store import AppStoreWebhookHandler
from qcsat.services.webhooks.base import WebhookHandler
from qcsat.services.webhooks.ga4 import GA4WebhookHandler
from qcsat.services.webhooks.play_store import PlayStoreWebhookHandler
from qcsat.services.webhooks.zendesk import ZendeskWebhookHandler

_app_store = AppStoreWebhookHandler()
_play_store = PlayStoreWebhookHandler()

# Hyphenated names are the paths providers are usually configured with.
_HANDLERS: dict[str, WebhookHandler] = {
    "zendesk": ZendeskWebhookHandler(),
    "app-store": _app_store,
    "app_store": _app_store,
    "play-store": _play_store,
    "play_store": _play_store,
    "ga4": GA4WebhookHandler(),
}


def get_handler(name: str) -> WebhookHandler:
    handler = _HANDLERS.get(name)
    if not handler:
        raise KeyError(f"Unknown webhook handler: {name}")
    return handler
