"""Notification service for forwarding pings and monitored-user messages."""
import asyncio
import logging
import requests
from twilio.rest import Client

from .errors import NotificationError

logger = logging.getLogger(__name__)


class NotificationService:
    """Handles sending notifications through various channels."""

    def __init__(self, config):
        """Initialize the notification service with configuration."""
        self.config = config
        self.twilio_client = None

        # Initialize Twilio client if enabled
        if self.config.TWILIO_ENABLED:
            try:
                self.twilio_client = Client(
                    self.config.TWILIO_ACCOUNT_SID,
                    self.config.TWILIO_AUTH_TOKEN
                )
                logger.info("Twilio client initialized successfully")
            except Exception as e:
                logger.error("Failed to initialize Twilio client: %s", e)

    async def send_ping_notification(self, username, platform):
        """Notify that ``username`` pinged us on ``platform``."""
        text = f"/Ping from: @{username}, {platform}"
        await asyncio.to_thread(self.send_notification, text, True)

    async def send_monitored_user_message(self, username, platform):
        """Notify that a monitored user wrote to us on ``platform``."""
        text = f"Message from monitored user: @{username}, {platform}"
        await asyncio.to_thread(self.send_notification, text, False)

    def send_notification(self, text, urgent=False):
        """Send through the primary channel, falling back to Twilio for urgent ones."""
        if self._send_telegram_message(text):
            return

        # If the bot API fails and Twilio is enabled, try Twilio as immediate backup
        if urgent and self.config.TWILIO_ENABLED and self.twilio_client:
            if self._send_twilio_notification(text):
                return

        raise NotificationError(f"Failed to deliver notification: {text}")

    def _send_telegram_message(self, text):
        """Send a message to the configured chat through the Telegram Bot API."""
        url = f"{self.config.TELEGRAM_API_URL}/bot{self.config.TELEGRAM_BOT_TOKEN}/sendMessage"
        payload = {
            "chat_id": self.config.TELEGRAM_CHAT_ID,
            "text": text,
        }

        try:
            response = requests.post(url, json=payload, timeout=10)
            if response.status_code == 200:
                logger.info("Successfully sent Telegram notification: %s", text)
                return True
            else:
                logger.error(
                    "Failed to send Telegram notification. Status code: %s, Response: %s",
                    response.status_code, response.text)
                return False
        except requests.RequestException as e:
            logger.error("Error sending Telegram notification: %s", e)
            return False

    def _send_twilio_notification(self, text):
        """Send notification through Twilio voice and SMS as a backup."""
        if not self.twilio_client:
            logger.error("Twilio client not initialized, cannot send backup notification")
            return False

        success = False

        if self.config.TWILIO_VOICE_ENABLED:
            try:
                call = self.twilio_client.calls.create(
                    twiml=f'<Response><Say>Alert! {text}</Say><Pause length="1"/>'
                          f'<Say>Check your messages for details.</Say></Response>',
                    from_=self.config.TWILIO_FROM_NUMBER,
                    to=self.config.TWILIO_TO_NUMBER
                )
                logger.info(
                    "Successfully initiated Twilio voice call: %s", call.sid)
                success = True
            except Exception as call_error:
                logger.error("Error making Twilio voice call: %s", call_error)

        if self.config.TWILIO_SMS_ENABLED:
            try:
                sms = self.twilio_client.messages.create(
                    body=text,
                    from_=self.config.TWILIO_FROM_NUMBER,
                    to=self.config.TWILIO_TO_NUMBER
                )
                logger.info(
                    "Successfully sent Twilio SMS notification: %s", sms.sid)
                success = True
            except Exception as e:
                logger.error("Error sending Twilio SMS notification: %s", e)

        return success
