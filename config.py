import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

from errors import ConfigError

# Load environment variables from .env file
load_dotenv()

TOKEN_ENV_VARS = ("SLACK_TOKEN", "SLACK_BOT_TOKEN", "SLACK_USER_TOKEN")


@dataclass
class SlackConfig:
    """Configuration for a single slackline invocation"""
    token: str
    max_retries: int = 3
    request_timeout: int = 30
    unread_concurrency: int = 10


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def get_token(token: Optional[str] = None) -> str:
    """Resolve the Slack token from the --token flag or the environment"""
    if token:
        return token

    for name in TOKEN_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value

    raise ConfigError(
        "No Slack token found. Set SLACK_TOKEN, SLACK_BOT_TOKEN, or SLACK_USER_TOKEN "
        "environment variable, or use --token flag"
    )


def get_config(token: Optional[str] = None) -> SlackConfig:
    """Get configuration from the command line token and environment variables"""

    return SlackConfig(
        token=get_token(token),
        max_retries=max(1, _env_int("MAX_RETRIES", 3)),
        request_timeout=_env_int("REQUEST_TIMEOUT", 30),
        unread_concurrency=max(1, _env_int("UNREAD_CONCURRENCY", 10))
    )
