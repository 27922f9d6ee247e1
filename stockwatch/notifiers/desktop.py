"""
Desktop notifier using the platform's notification command.
"""

import logging
import shutil
import subprocess
import sys
from typing import Optional

from .base import Notifier, NotificationResult

logger = logging.getLogger(__name__)


class DesktopNotifier(Notifier):
    """Shows a desktop notification via notify-send (Linux) or osascript (macOS)."""

    channel = "desktop"

    def __init__(self, app_name: str = "stockwatch", enabled: bool = True):
        """
        Initialize desktop notifier.

        Args:
            app_name: Application name shown by the notification daemon
            enabled: Whether the user allowed desktop notifications
        """
        self.app_name = app_name
        self.enabled = enabled

    def _command(self, title: str, body: str) -> Optional[list[str]]:
        """Build the platform command, or None if unsupported."""
        if sys.platform == "darwin" and shutil.which("osascript"):
            script = f"display notification {_quote(body)} with title {_quote(title)}"
            return ["osascript", "-e", script]
        if shutil.which("notify-send"):
            return ["notify-send", "--app-name", self.app_name, title, body]
        return None

    def notify(self, title: str, body: str) -> NotificationResult:
        """Show a notification. Silently skipped when not permitted."""
        if not self.enabled:
            return NotificationResult(
                success=False, channel=self.channel, error="permission denied"
            )

        command = self._command(title, body)
        if command is None:
            logger.debug("No desktop notification backend available")
            return NotificationResult(
                success=False, channel=self.channel, error="unsupported platform"
            )

        try:
            subprocess.run(command, check=True, capture_output=True, timeout=10)
        except (OSError, subprocess.SubprocessError) as e:
            return NotificationResult(success=False, channel=self.channel, error=str(e))

        return NotificationResult(success=True, channel=self.channel)


def _quote(text: str) -> str:
    """Quote a string for AppleScript."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
