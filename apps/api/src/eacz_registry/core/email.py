"""
Email Service using Resend

Notifications are best-effort side effects: services enqueue an
``EmailMessage`` on the ``EmailDispatcher`` and return immediately. A
background worker delivers queued messages through ``ResendEmailSender``,
retrying failed sends with exponential backoff.

The dispatcher is constructed once in the application lifespan, stored on
``app.state.email_dispatcher`` and injected into request handlers with the
``get_email_dispatcher`` dependency.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import resend
from fastapi import Request

from eacz_registry.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class EmailMessage:
    """A single outbound email."""

    to: list[str]
    subject: str
    html: str
    text: str | None = None
    attachments: list[EmailAttachment] = field(default_factory=list)


def mask_email(email: str | None) -> str:
    """Mask an email address for logging: ``jane.doe@x.com`` -> ``ja***@x.com``."""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> bool: ...


class ResendEmailSender:
    """Deliver email through the Resend API."""

    def __init__(
        self,
        api_key: str | None,
        from_address: str,
        timeout_seconds: float,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.timeout_seconds = timeout_seconds

    def _params(self, message: EmailMessage) -> dict[str, Any]:
        params: dict[str, Any] = {
            "from": self.from_address,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            params["text"] = message.text
        if message.attachments:
            params["attachments"] = [
                {
                    "filename": attachment.filename,
                    "content": list(attachment.content),
                    "content_type": attachment.content_type,
                }
                for attachment in message.attachments
            ]
        return params

    def _send_sync(self, params: dict[str, Any]) -> dict[str, Any]:
        resend.api_key = self.api_key
        return resend.Emails.send(params)

    async def send(self, message: EmailMessage) -> bool:
        """
        Send ``message``.

        Returns:
            True if the email was accepted by Resend (or logged when no API
            key is configured), False on failure or timeout
        """
        recipients = ", ".join(mask_email(to) for to in message.to)

        if not self.api_key:
            logger.warning("RESEND_API_KEY not set - logging email instead of sending")
            logger.info(f"EMAIL TO: {recipients} | SUBJECT: {message.subject}")
            return True

        try:
            # Resend's client is synchronous; keep it off the event loop
            result = await asyncio.wait_for(
                asyncio.to_thread(self._send_sync, self._params(message)),
                timeout=self.timeout_seconds,
            )
            logger.info(f"Email sent successfully to {recipients}, id: {result.get('id')}")
            return True
        except TimeoutError:
            logger.error(
                f"Email send to {recipients} timed out after {self.timeout_seconds}s"
            )
            return False
        except Exception as e:
            logger.error(f"Failed to send email to {recipients}: {e}")
            return False


@dataclass
class _QueuedEmail:
    message: EmailMessage
    attempt: int = 1


class EmailDispatcher:
    """
    Queue-backed email delivery with retries.

    ``enqueue`` never waits on delivery. Failed sends are re-queued after
    ``retry_base_seconds * 2 ** (attempt - 1)`` seconds until
    ``max_attempts`` is reached, then dropped with an error log.
    """

    def __init__(
        self,
        sender: EmailSender,
        max_attempts: int = 3,
        retry_base_seconds: float = 2.0,
    ):
        self.sender = sender
        self.max_attempts = max_attempts
        self.retry_base_seconds = retry_base_seconds
        self._queue: asyncio.Queue[_QueuedEmail] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._retry_tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="email-dispatcher")
            logger.info("Email dispatcher started")

    async def stop(self, drain_timeout: float = 10.0) -> None:
        """Deliver what is queued (bounded by ``drain_timeout``) and stop the worker."""
        if self._worker is None:
            return

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)

        for task in (self._worker, *self._retry_tasks):
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        logger.info("Email dispatcher stopped")

    def enqueue(self, message: EmailMessage) -> None:
        """Queue ``message`` for delivery."""
        if not message.to:
            logger.warning(f"Dropping email '{message.subject}' with no recipients")
            return
        self._queue.put_nowait(_QueuedEmail(message=message))

    async def deliver(self, item: _QueuedEmail) -> bool:
        """Attempt one delivery, scheduling a retry on failure."""
        try:
            sent = await self.sender.send(item.message)
        except Exception as e:
            logger.error(f"Email sender raised for '{item.message.subject}': {e}", exc_info=True)
            sent = False

        if sent:
            return True

        if item.attempt >= self.max_attempts:
            logger.error(
                f"Giving up on email '{item.message.subject}' after {item.attempt} attempts"
            )
            return False

        delay = self.retry_base_seconds * (2 ** (item.attempt - 1))
        logger.warning(
            f"Email '{item.message.subject}' failed (attempt {item.attempt}), retrying in {delay}s"
        )
        self._schedule_retry(_QueuedEmail(message=item.message, attempt=item.attempt + 1), delay)
        return False

    def _schedule_retry(self, item: _QueuedEmail, delay: float) -> None:
        async def requeue() -> None:
            await asyncio.sleep(delay)
            self._queue.put_nowait(item)

        task = asyncio.create_task(requeue())
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self.deliver(item)
            finally:
                self._queue.task_done()


def build_email_dispatcher() -> EmailDispatcher:
    """Construct the dispatcher from settings."""
    sender = ResendEmailSender(
        api_key=settings.resend_api_key,
        from_address=settings.email_from,
        timeout_seconds=settings.email_send_timeout_seconds,
    )
    return EmailDispatcher(
        sender,
        max_attempts=settings.email_max_attempts,
        retry_base_seconds=settings.email_retry_base_seconds,
    )


def get_email_dispatcher(request: Request) -> EmailDispatcher:
    """FastAPI dependency returning the dispatcher built at startup."""
    return request.app.state.email_dispatcher
