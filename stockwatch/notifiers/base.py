"""
Base notifier classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Any

from stockwatch.rules.types import TriggerEvent


@dataclass
class NotificationResult:
    """Result of a notification attempt."""

    success: bool
    channel: str
    error: Optional[str] = None


class Notifier(ABC):
    """Abstract base class for notifiers."""

    channel = "base"

    @abstractmethod
    def notify(self, title: str, body: str) -> NotificationResult:
        """
        Deliver a notification.

        Args:
            title: Short headline
            body: Notification text

        Returns:
            NotificationResult indicating success or failure
        """
        pass

    def send(self, event: TriggerEvent) -> NotificationResult:
        """Deliver a trigger event."""
        return self.notify(event.title, event.body)

    def send_batch(self, events: list[TriggerEvent]) -> list[NotificationResult]:
        """
        Send multiple events.

        Args:
            events: List of trigger events to send

        Returns:
            List of NotificationResult for each event
        """
        return [self.send(event) for event in events]


class NotifierFactory:
    """Factory for creating notifier instances."""

    @staticmethod
    def create(config: dict[str, Any]) -> Notifier:
        """
        Create a notifier from configuration.

        Args:
            config: Notifier configuration dict

        Returns:
            Appropriate Notifier instance

        Raises:
            ValueError: If notifier type is unknown
        """
        notifier_type = config.get("type")

        if notifier_type == "desktop":
            from .desktop import DesktopNotifier

            return DesktopNotifier(
                app_name=config.get("app_name", "stockwatch"),
                enabled=config.get("enabled", True),
            )

        elif notifier_type == "discord":
            from .discord import DiscordNotifier

            return DiscordNotifier(
                webhook_url=config.get("webhook_url", ""),
                mention_on_trigger=config.get("mention_on_trigger", False),
            )

        elif notifier_type == "email":
            from .email import EmailNotifier

            return EmailNotifier(
                smtp_host=config.get("smtp_host", ""),
                smtp_port=config.get("smtp_port", 587),
                smtp_user=config.get("smtp_user", ""),
                smtp_password=config.get("smtp_password", ""),
                from_address=config.get("from_address", ""),
                to_addresses=config.get("to_addresses", []),
            )

        else:
            raise ValueError(f"Unknown notifier type: {notifier_type}")


def build_notifiers(configs: list[dict[str, Any]]) -> list[Notifier]:
    """Create one notifier per config dict."""
    return [NotifierFactory.create(config) for config in configs]
