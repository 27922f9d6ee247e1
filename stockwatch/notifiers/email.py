"""
Email SMTP notifier.
"""

import html
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from stockwatch.database.models import Condition
from stockwatch.rules.types import TriggerEvent, format_percent
from .base import Notifier, NotificationResult

ACCENT_ABOVE = "#E74C3C"
ACCENT_BELOW = "#2ECC71"
ACCENT_DEFAULT = "#3498DB"


class EmailNotifier(Notifier):
    """Sends notifications via email SMTP."""

    channel = "email"

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_address: str,
        to_addresses: list[str],
    ):
        """
        Initialize email notifier.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            from_address: Sender email address
            to_addresses: List of recipient email addresses
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_address = from_address
        self.to_addresses = to_addresses

    def notify(self, title: str, body: str) -> NotificationResult:
        """Send a plain notification email."""
        return self._deliver(self._create_message(title, body))

    def send(self, event: TriggerEvent) -> NotificationResult:
        """Send a trigger event with a quote table."""
        accent = ACCENT_ABOVE if event.metric.condition == Condition.ABOVE else ACCENT_BELOW
        snapshot = event.snapshot
        rows = [
            ("代码", event.code),
            ("现价", f"{snapshot.current_price:.3f}"),
            ("涨跌幅", f"{snapshot.change_percent:.2f}%"),
            ("溢价", format_percent(snapshot.premium)),
        ]
        message = self._create_message(
            f"{event.title} · {event.monitor.name}", event.body, rows=rows, accent=accent
        )
        return self._deliver(message)

    def _deliver(self, message: MIMEMultipart) -> NotificationResult:
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.send_message(message)
        except smtplib.SMTPAuthenticationError as e:
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"Authentication failed: {e}",
            )
        except (smtplib.SMTPException, OSError) as e:
            return NotificationResult(
                success=False,
                channel=self.channel,
                error=f"SMTP error: {e}",
            )
        return NotificationResult(success=True, channel=self.channel)

    def _create_message(
        self,
        title: str,
        body: str,
        rows: Optional[list[tuple[str, str]]] = None,
        accent: str = ACCENT_DEFAULT,
    ) -> MIMEMultipart:
        """Build a plain text plus HTML message."""
        rows = rows or []
        sent_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        message = MIMEMultipart("alternative")
        message["Subject"] = f"[stockwatch] {title}"
        message["From"] = self.from_address
        message["To"] = ", ".join(self.to_addresses)

        lines = [title, "", body, ""]
        lines.extend(f"{label}: {value}" for label, value in rows)
        lines.append(f"时间: {sent_at}")
        message.attach(MIMEText("\n".join(lines) + "\n", "plain", "utf-8"))
        message.attach(MIMEText(self._render_html(title, body, rows, accent, sent_at), "html", "utf-8"))

        return message

    def _render_html(
        self,
        title: str,
        body: str,
        rows: list[tuple[str, str]],
        accent: str,
        sent_at: str,
    ) -> str:
        table = "".join(
            f"<tr><td class=\"label\">{html.escape(label)}</td><td>{html.escape(value)}</td></tr>"
            for label, value in rows
        )
        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: -apple-system, "PingFang SC", sans-serif; padding: 16px; }}
        .card {{ border-top: 4px solid {accent}; padding: 12px 16px; background: #fafafa; }}
        h2 {{ margin: 0 0 8px; color: {accent}; font-size: 18px; }}
        td {{ padding: 2px 12px 2px 0; }}
        .label {{ color: #666; }}
        .sent {{ color: #999; font-size: 12px; margin-top: 12px; }}
    </style>
</head>
<body>
    <div class="card">
        <h2>{html.escape(title)}</h2>
        <p>{html.escape(body)}</p>
        <table>{table}</table>
        <div class="sent">{sent_at}</div>
    </div>
</body>
</html>
"""
