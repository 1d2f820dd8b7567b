"""Tests for the notification service."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from dm_monitor.errors import NotificationError
from dm_monitor.notifier import NotificationService


def make_config(**overrides):
    values = dict(
        TELEGRAM_API_URL="https://api.telegram.org",
        TELEGRAM_BOT_TOKEN="123:abc",
        TELEGRAM_CHAT_ID="-100",
        TWILIO_ENABLED=False,
        TWILIO_VOICE_ENABLED=True,
        TWILIO_SMS_ENABLED=False,
        TWILIO_ACCOUNT_SID="AC1",
        TWILIO_AUTH_TOKEN="token",
        TWILIO_FROM_NUMBER="+100",
        TWILIO_TO_NUMBER="+200",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestNotificationService:
    """Tests for NotificationService."""

    @pytest.mark.asyncio
    async def test_ping_posts_to_bot_api(self):
        service = NotificationService(make_config())
        with patch("dm_monitor.notifier.requests.post") as post:
            post.return_value = MagicMock(status_code=200)
            await service.send_ping_notification("alice", "Discord")

        post.assert_called_once_with(
            "https://api.telegram.org/bot123:abc/sendMessage",
            json={"chat_id": "-100", "text": "/Ping from: @alice, Discord"},
            timeout=10,
        )

    @pytest.mark.asyncio
    async def test_monitored_user_text(self):
        service = NotificationService(make_config())
        with patch("dm_monitor.notifier.requests.post") as post:
            post.return_value = MagicMock(status_code=200)
            await service.send_monitored_user_message("bob", "Telegram")

        assert post.call_args.kwargs["json"]["text"] == \
            "Message from monitored user: @bob, Telegram"

    def test_rejected_message_raises(self):
        service = NotificationService(make_config())
        with patch("dm_monitor.notifier.requests.post") as post:
            post.return_value = MagicMock(status_code=400, text="Bad Request")
            with pytest.raises(NotificationError):
                service.send_notification("hello")

    def test_network_error_raises(self):
        service = NotificationService(make_config())
        with patch("dm_monitor.notifier.requests.post",
                   side_effect=requests.ConnectionError("offline")):
            with pytest.raises(NotificationError):
                service.send_notification("hello", urgent=True)

    def test_twilio_backup_for_urgent(self):
        with patch("dm_monitor.notifier.Client") as client_cls:
            twilio = client_cls.return_value
            twilio.calls.create.return_value = MagicMock(sid="CA123")
            service = NotificationService(make_config(TWILIO_ENABLED=True))

            with patch("dm_monitor.notifier.requests.post",
                       side_effect=requests.Timeout("slow")):
                service.send_notification("/Ping from: @alice, Discord", urgent=True)

        twilio.calls.create.assert_called_once()
        assert twilio.calls.create.call_args.kwargs["to"] == "+200"

    def test_no_twilio_backup_for_routine_messages(self):
        with patch("dm_monitor.notifier.Client") as client_cls:
            service = NotificationService(make_config(TWILIO_ENABLED=True))
            with patch("dm_monitor.notifier.requests.post",
                       side_effect=requests.Timeout("slow")):
                with pytest.raises(NotificationError):
                    service.send_notification("routine")

        client_cls.return_value.calls.create.assert_not_called()
