"""Reload signal for the home-screen widget process."""

import logging
from typing import Optional

import httpx

from shared.config import get_widget_config

logger = logging.getLogger(__name__)


class WidgetReloadNotifier:
    """Tells the widget consumer to reload its timeline for a given kind."""

    def __init__(self, enabled: Optional[bool] = None, webhook_url: Optional[str] = None):
        """Initialize from arguments, falling back to environment configuration."""
        config = get_widget_config()
        self.reload_enabled = config["reload_enabled"] if enabled is None else enabled
        self.reload_webhook = webhook_url if webhook_url is not None else config["reload_webhook"]

    async def reload_timelines(self, kind: str) -> None:
        """
        Ask the consumer to reload widgets of ``kind``.

        Fire-and-forget: there is no delivery guarantee and failures are
        only logged.

        Args:
            kind: Widget kind identifier, e.g. ``LovelyWidget``
        """
        if not self.reload_enabled:
            logger.info(f"Widget reload disabled, skipping reload for {kind}")
            return

        logger.info(f"Requesting widget timeline reload for {kind}")

        if self.reload_webhook:
            try:
                async with httpx.AsyncClient() as client:
                    await client.post(
                        self.reload_webhook,
                        json={"event": "reload_timelines", "kind": kind},
                        timeout=10.0
                    )
                logger.info(f"Reload signal sent for {kind}")
            except httpx.HTTPError as e:
                logger.error(f"Failed to send reload signal for {kind}: {e}")
