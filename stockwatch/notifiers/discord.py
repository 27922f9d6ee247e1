"""
Discord webhook notifier.
"""

import time
from datetime import datetime
from typing import Any

import requests

from stockwatch.database.models import Condition
from stockwatch.rules.types import TriggerEvent, format_percent
from .base import Notifier, NotificationResult


class DiscordNotifier(Notifier):
    """Sends notifications via Discord webhook."""

    channel = "discord"

    # Discord embed colors
    COLOR_DEFAULT = 0x3498DB  # Blue
    COLOR_ABOVE = 0xE74C3C  # Red, rising
    COLOR_BELOW = 0x2ECC71  # Green, falling

    def __init__(self, webhook_url: str, mention_on_trigger: bool = False):
        """
        Initialize Discord notifier.

        Args:
            webhook_url: Discord webhook URL
            mention_on_trigger: Whether to @here on trigger events
        """
        self.webhook_url = webhook_url
        self.mention_on_trigger = mention_on_trigger

    def notify(self, title: str, body: str) -> NotificationResult:
        """Send a plain title/body embed."""
        embed = {
            "title": title,
            "description": body,
            "color": self.COLOR_DEFAULT,
            "timestamp": datetime.now().isoformat(),
        }
        return self._post({"embeds": [embed]})

    def send(self, event: TriggerEvent) -> NotificationResult:
        """Send a trigger event with quote fields."""
        payload: dict[str, Any] = {"embeds": [self._create_embed(event)]}
        if self.mention_on_trigger:
            payload["content"] = "@here"
        return self._post(payload)

    def _post(self, payload: dict[str, Any]) -> NotificationResult:
        try:
            response = self._send_webhook(payload)

            if response.ok:
                return NotificationResult(success=True, channel=self.channel)
            else:
                return NotificationResult(
                    success=False,
                    channel=self.channel,
                    error=f"HTTP {response.status_code}: {response.text}",
                )

        except requests.exceptions.ConnectionError as e:
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"Connection error: {str(e)}",
            )
        except requests.RequestException as e:
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=str(e),
            )

    def _send_webhook(self, payload: dict[str, Any]) -> requests.Response:
        """Send webhook with rate limit handling."""
        response = requests.post(
            self.webhook_url,
            json=payload,
            timeout=10,
        )

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "1")
            time.sleep(float(retry_after))
            response = requests.post(
                self.webhook_url,
                json=payload,
                timeout=10,
            )

        return response

    def _create_embed(self, event: TriggerEvent) -> dict[str, Any]:
        """Create Discord embed for a trigger event."""
        snapshot = event.snapshot
        embed: dict[str, Any] = {
            "title": f"{event.title} · {event.monitor.name}",
            "description": event.body,
            "color": self._get_color(event),
            "fields": [
                {"name": "Code", "value": event.code, "inline": True},
                {"name": "Price", "value": f"{snapshot.current_price:.3f}", "inline": True},
                {"name": "Change", "value": f"{snapshot.change_percent:.2f}%", "inline": True},
                {"name": "Premium", "value": format_percent(snapshot.premium), "inline": True},
            ],
            "timestamp": event.triggered_at.isoformat(),
        }
        return embed

    def _get_color(self, event: TriggerEvent) -> int:
        """Get embed color based on direction."""
        if event.metric.condition == Condition.ABOVE:
            return self.COLOR_ABOVE
        return self.COLOR_BELOW
