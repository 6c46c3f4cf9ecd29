"""Best-effort notifications to reporters and workers."""
import json
import smtplib
from concurrent.futures import Executor, Future
from email.message import EmailMessage
from typing import Callable, Iterable, List, Optional

import requests
from loguru import logger

from configurations.config import Config
from core.errors import ExternalServiceError
from models.dispatch_entities import CollectionGroup, Report, Task, Worker


class LogSender:
    """Default channel: writes the message to the log."""

    def send(self, recipient: str, subject: str, body: str) -> bool:
        logger.info(f"📨 [{recipient}] {subject}")
        return True


class WebhookSender:
    def __init__(self, url: str = Config.WEBHOOK_URL, timeout: float = 10):
        self.url = url
        self.timeout = timeout

    def send(self, recipient: str, subject: str, body: str) -> bool:
        try:
            response = requests.post(
                self.url,
                json={'recipient': recipient, 'subject': subject, 'body': body},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ExternalServiceError(f"Webhook unreachable: {e}") from e

        if response.status_code not in [200, 201, 202, 204]:
            logger.error(f"Webhook returned status {response.status_code}: {response.text[:200]}")
            return False
        return True


class SMTPSender:
    """E-mail channel. Recipients without an address are skipped."""

    def __init__(self, host: str = Config.SMTP_HOST, port: int = Config.SMTP_PORT,
                 username: str = Config.SMTP_USER, password: str = Config.SMTP_PASSWORD,
                 sender: str = Config.SMTP_SENDER,
                 resolve_address: Callable[[str], Optional[str]] = None):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.resolve_address = resolve_address or (lambda r: r if "@" in r else None)

    def send(self, recipient: str, subject: str, body: str) -> bool:
        address = self.resolve_address(recipient)
        if not address:
            logger.warning(f"No e-mail address for {recipient}, skipping")
            return False

        message = EmailMessage()
        message['From'] = self.sender
        message['To'] = address
        message['Subject'] = subject
        message.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
                smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise ExternalServiceError(f"SMTP delivery to {address} failed: {e}") from e
        return True


class NotificationService:
    """Fire-and-forget delivery on an executor.

    A failed delivery is logged and never propagates to the dispatch that
    triggered it. Without an executor, messages go out inline (still
    best-effort).
    """

    def __init__(self, sender=None, executor: Executor = None):
        self.sender = sender or LogSender()
        self.executor = executor

    def notify_reporters(self, group: CollectionGroup, reports: Iterable[Report]) -> List[Future]:
        reporter_ids = list(dict.fromkeys(report.reporter_id for report in reports))
        body_template = (
            "Your waste collection has been scheduled. A worker will collect the waste soon.\n\n"
            "Group ID: {group_id}\n\nThank you!"
        )
        return [
            self._submit(reporter_id, 'Waste Collection Scheduled',
                         body_template.format(group_id=group.id))
            for reporter_id in reporter_ids
        ]

    def notify_worker(self, worker: Worker, group: CollectionGroup, task: Task) -> Future:
        locations = [p.to_dict() for p in task.route[1:]]
        body = (
            f"Dear {worker.name or worker.id},\n\n"
            f"You have been assigned a new waste collection task.\n\n"
            f"Group ID: {group.id}\nTask ID: {task.id}\n"
            f"Locations: {json.dumps(locations)}\n"
            f"Route: {json.dumps(task.stop_ids)}\n\n"
            f"Please start the collection soon."
        )
        return self._submit(worker.email or worker.id, 'New Waste Collection Task', body)

    def _submit(self, recipient: str, subject: str, body: str) -> Optional[Future]:
        if self.executor is None:
            self._deliver(recipient, subject, body)
            return None
        return self.executor.submit(self._deliver, recipient, subject, body)

    def _deliver(self, recipient: str, subject: str, body: str) -> bool:
        try:
            delivered = self.sender.send(recipient, subject, body)
        except Exception as e:
            logger.error(f"Notification '{subject}' to {recipient} failed: {e}")
            return False
        if not delivered:
            logger.warning(f"Notification '{subject}' to {recipient} was not delivered")
        return delivered

    def shutdown(self):
        if self.executor is not None:
            self.executor.shutdown(wait=False)
