"""Configuration settings module."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


def _split_list(value):
    """Split a comma separated environment value into a list of names."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# Discord gateway (user account)
DISCORD_USER_TOKEN = os.environ.get("DISCORD_USER_TOKEN")
DISCORD_MY_USERNAME = os.environ.get("DISCORD_MY_USERNAME", "")
DISCORD_MONITORED_USERS = _split_list(os.environ.get("DISCORD_MONITORED_USERS"))
DISCORD_GATEWAY_URL = os.environ.get(
    "DISCORD_GATEWAY_URL", "wss://gateway.discord.gg/?v=9&encoding=json")

# Telegram user session (MTProto)
TELEGRAM_API_ID = int(os.environ.get("TELEGRAM_API_ID", "0"))
TELEGRAM_API_HASH = os.environ.get("TELEGRAM_API_HASH")
TELEGRAM_PHONE = os.environ.get("TELEGRAM_PHONE")
TELEGRAM_USERNAME = os.environ.get("TELEGRAM_USERNAME")
TELEGRAM_MONITORED_USERS = _split_list(os.environ.get("TELEGRAM_MONITORED_USERS"))

# Primary notification (Telegram bot)
TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")
TELEGRAM_API_URL = os.environ.get("TELEGRAM_API_URL", "https://api.telegram.org")

# Backup notification (Twilio)
TWILIO_ENABLED = os.environ.get("TWILIO_ENABLED", "false").lower() == "true"
TWILIO_VOICE_ENABLED = os.environ.get(
    "TWILIO_VOICE_ENABLED", "true").lower() == "true"
TWILIO_SMS_ENABLED = os.environ.get(
    "TWILIO_SMS_ENABLED", "false").lower() == "true"
TWILIO_ACCOUNT_SID = os.environ.get("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.environ.get("TWILIO_FROM_NUMBER")
TWILIO_TO_NUMBER = os.environ.get("TWILIO_TO_NUMBER")

# Business rules
MONITORED_USER_COOLDOWN_MINUTES = int(
    os.environ.get("MONITORED_USER_COOLDOWN_MINUTES", "15"))

# Session files
SESSION_DIR = os.environ.get(
    "SESSION_DIR",
    os.path.join(
        os.environ.get("XDG_STATE_HOME", os.path.expanduser("~/.local/state")),
        "dm_monitor"))

# Reconnect policy
MAX_BACKOFF_SECONDS = float(os.environ.get("MAX_BACKOFF_SECONDS", "600"))

# Stack guard: 8 MiB worker budget, preempt at 75% of it
STACK_BUDGET_BYTES = int(os.environ.get("STACK_BUDGET_BYTES", str(8 * 1024 * 1024)))
STACK_PREEMPT_RATIO = float(os.environ.get("STACK_PREEMPT_RATIO", "0.75"))

# Health check server
HEALTH_ENABLED = os.environ.get("HEALTH_ENABLED", "true").lower() == "true"
HEALTH_HOST = os.environ.get("HEALTH_HOST", "127.0.0.1")
HEALTH_PORT = int(os.environ.get("HEALTH_PORT", "5000"))
HEALTH_FAILURE_THRESHOLD = int(os.environ.get("HEALTH_FAILURE_THRESHOLD", "5"))

# Logging
LOG_DIR = os.environ.get("LOG_DIR", "/app/logs")

# Debugging
DEBUG = os.environ.get("DEBUG", "false").lower() == "true"


def discord_configured(config):
    """Return True when the Discord monitor has the credentials it needs."""
    return bool(config.DISCORD_USER_TOKEN)


def telegram_configured(config):
    """Return True when the Telegram monitor has the credentials it needs."""
    return bool(config.TELEGRAM_API_ID and config.TELEGRAM_API_HASH
                and config.TELEGRAM_PHONE and config.TELEGRAM_USERNAME)


def validate_config(config):
    """Validate that all required configuration is present."""
    missing_vars = []

    # The notification sink is always required
    if not config.TELEGRAM_BOT_TOKEN:
        missing_vars.append("TELEGRAM_BOT_TOKEN")
    if not config.TELEGRAM_CHAT_ID:
        missing_vars.append("TELEGRAM_CHAT_ID")

    if config.TWILIO_ENABLED:
        for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN",
                     "TWILIO_FROM_NUMBER", "TWILIO_TO_NUMBER"):
            if not getattr(config, name):
                missing_vars.append(name)

    if not discord_configured(config) and not telegram_configured(config):
        missing_vars.append("DISCORD_USER_TOKEN or TELEGRAM_API_ID/TELEGRAM_API_HASH/"
                            "TELEGRAM_PHONE/TELEGRAM_USERNAME")

    if missing_vars:
        raise ValueError(
            f"Missing required configuration variables: {', '.join(missing_vars)}")
