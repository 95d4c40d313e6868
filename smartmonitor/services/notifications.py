from __future__ import annotations
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Set

import httpx

from smartmonitor.config import Settings, get_settings
from smartmonitor.models.domain import Alert, AlertSeverity, AlertState


logger = logging.getLogger("smartmonitor.notifications")


def _alert_lines(alert: Alert) -> str:
    lines = [
        f"{alert.title}",
        f"Sensor: {alert.sensor}",
        f"Message: {alert.message}",
        f"Value: {alert.value} (threshold {alert.threshold})",
        f"Raised: {alert.created_at.isoformat()}",
    ]
    if alert.suggestions:
        lines.append("Suggested actions:")
        lines.extend(f"  - {item}" for item in alert.suggestions)
    if alert.contact_info:
        lines.append(alert.contact_info)
    return "\n".join(lines)


async def send_slack_alert(alert: Alert, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    if not settings.slack_webhook:
        return
    payload = {"text": f"⚠️ SmartMonitor Alert\n{_alert_lines(alert)}"}
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            resp = await client.post(settings.slack_webhook, json=payload)
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Slack notification failed: %s", exc)


def send_email_alert(alert: Alert, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    recipients = [r.strip() for r in settings.smtp_recipients.split(",") if r.strip()]
    if not (settings.smtp_host and recipients):
        return

    msg = EmailMessage()
    msg["Subject"] = f"SmartMonitor Critical Alert – {alert.sensor}"
    msg["From"] = settings.smtp_sender
    msg["To"] = ", ".join(recipients)
    msg.set_content("Critical alert detected:\n\n" + _alert_lines(alert) + "\n")

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            if settings.smtp_username and settings.smtp_password:
                server.starttls()
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Email notification failed: %s", exc)


def should_notify(alert: Alert) -> bool:
    return alert.state == AlertState.ACTIVE and alert.severity == AlertSeverity.DANGER


async def notify_critical(alert: Alert, settings: Optional[Settings] = None) -> None:
    await send_slack_alert(alert, settings)
    await asyncio.to_thread(send_email_alert, alert, settings)


class AlertNotifier:
    """
    ``on_alert_changed`` listener. Sends newly raised danger alerts in the
    background so ingestion never waits on Slack or SMTP.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings
        self._tasks: Set[asyncio.Task] = set()
        self.sent = 0

    def __call__(self, alert: Alert) -> None:
        if not should_notify(alert):
            return
        task = asyncio.create_task(notify_critical(alert, self._settings))
        self._tasks.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Alert notification failed: %s", exc)
        else:
            self.sent += 1

    async def aclose(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
