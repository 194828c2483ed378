"""
Tests for the email dispatcher.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from eacz_registry.core.email import EmailDispatcher, EmailMessage, _QueuedEmail, mask_email


def _message(to=("tendai@example.com",)) -> EmailMessage:
    return EmailMessage(to=list(to), subject="Application received", html="<p>Hi</p>")


class TestMaskEmail:
    def test_masks_local_part(self):
        assert mask_email("tendai.moyo@example.com") == "te***@example.com"

    def test_not_an_email(self):
        assert mask_email(None) == "***"
        assert mask_email("nobody") == "***"


class TestEmailDispatcher:
    @pytest.mark.asyncio
    async def test_successful_delivery(self):
        sender = MagicMock()
        sender.send = AsyncMock(return_value=True)
        dispatcher = EmailDispatcher(sender)
        dispatcher._schedule_retry = MagicMock()

        assert await dispatcher.deliver(_QueuedEmail(_message())) is True
        dispatcher._schedule_retry.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_schedules_backoff_retry(self):
        sender = MagicMock()
        sender.send = AsyncMock(return_value=False)
        dispatcher = EmailDispatcher(sender, max_attempts=3, retry_base_seconds=2.0)
        dispatcher._schedule_retry = MagicMock()

        assert await dispatcher.deliver(_QueuedEmail(_message(), attempt=2)) is False

        retry, delay = dispatcher._schedule_retry.call_args.args
        assert retry.attempt == 3
        assert delay == 4.0

    @pytest.mark.asyncio
    async def test_sender_exception_counts_as_failure(self):
        sender = MagicMock()
        sender.send = AsyncMock(side_effect=RuntimeError("connection reset"))
        dispatcher = EmailDispatcher(sender)
        dispatcher._schedule_retry = MagicMock()

        assert await dispatcher.deliver(_QueuedEmail(_message())) is False
        dispatcher._schedule_retry.assert_called_once()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        sender = MagicMock()
        sender.send = AsyncMock(return_value=False)
        dispatcher = EmailDispatcher(sender, max_attempts=3)
        dispatcher._schedule_retry = MagicMock()

        assert await dispatcher.deliver(_QueuedEmail(_message(), attempt=3)) is False
        dispatcher._schedule_retry.assert_not_called()

    @pytest.mark.asyncio
    async def test_worker_drains_queue_on_stop(self):
        sender = MagicMock()
        sender.send = AsyncMock(return_value=True)
        dispatcher = EmailDispatcher(sender)

        dispatcher.start()
        dispatcher.enqueue(_message())
        dispatcher.enqueue(_message(to=()))
        await dispatcher.stop(drain_timeout=1.0)

        sender.send.assert_awaited_once()
        assert dispatcher.pending == 0
