"""Shared pytest fixtures and test doubles.

Slack is never contacted: commands get a MagicMock SlackClient whose async
methods are AsyncMocks, and the unread aggregator gets an in-memory lookup.
"""

import asyncio
from typing import Dict, Iterable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from click.testing import CliRunner

from errors import TransportError
from slack_client import SlackClient

TOKEN_ENV_VARS = ("SLACK_TOKEN", "SLACK_BOT_TOKEN", "SLACK_USER_TOKEN")


class FakeUnreadLookup:
    """In-memory stand-in for the two Slack lookups the unread aggregator needs.

    Channels listed in fail_last_read / fail_latest raise TransportError.
    delays (seconds per channel) let tests finish channels out of order.
    """

    def __init__(self, last_read: Optional[Dict[str, str]] = None, latest: Optional[Dict[str, str]] = None,
                 fail_last_read: Iterable[str] = (), fail_latest: Iterable[str] = (),
                 delays: Optional[Dict[str, float]] = None):
        self.last_read = last_read or {}
        self.latest = latest or {}
        self.fail_last_read = set(fail_last_read)
        self.fail_latest = set(fail_latest)
        self.delays = delays or {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls = []

    async def get_last_read(self, channel_id: str) -> Optional[str]:
        self.calls.append(("last_read", channel_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(channel_id, 0))
            if channel_id in self.fail_last_read:
                raise TransportError(f"conversations_info failed for {channel_id}")
            return self.last_read.get(channel_id)
        finally:
            self.in_flight -= 1

    async def get_latest_message_ts(self, channel_id: str) -> Optional[str]:
        self.calls.append(("latest", channel_id))
        if channel_id in self.fail_latest:
            raise TransportError(f"conversations_history failed for {channel_id}")
        return self.latest.get(channel_id)


@pytest.fixture
def fake_client():
    """A SlackClient double with every API method stubbed as an AsyncMock."""
    client = MagicMock(spec=SlackClient)
    client.auth_test = AsyncMock(return_value={
        "url": "https://acme.slack.com/",
        "team": "Acme",
        "user": "alice",
        "team_id": "T123",
        "user_id": "U123",
    })
    client.list_channels = AsyncMock(return_value=[])
    client.list_user_conversations = AsyncMock(return_value=[])
    client.get_channel_info = AsyncMock()
    client.get_channel_history = AsyncMock(return_value=[])
    client.get_channel_members = AsyncMock(return_value=[])
    client.get_thread_replies = AsyncMock(return_value=[])
    client.get_permalink = AsyncMock()
    client.get_last_read = AsyncMock(return_value=None)
    client.get_latest_message_ts = AsyncMock(return_value=None)
    client.list_users = AsyncMock(return_value=[])
    client.get_user_info = AsyncMock()
    client.get_user_presence = AsyncMock(return_value="away")
    client.list_files = AsyncMock(return_value=[])
    client.get_file_info = AsyncMock()
    client.search_messages = AsyncMock(return_value={"matches": [], "total": 0})
    client.download_file = MagicMock(return_value=0)
    return client


@pytest.fixture
def no_token_env(monkeypatch):
    """Remove every Slack token variable from the environment."""
    for name in TOKEN_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner():
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_client(monkeypatch, fake_client):
    """Make main.SlackClient hand out fake_client and provide a token."""
    monkeypatch.setenv("SLACK_TOKEN", "xoxp-test")
    monkeypatch.setattr("main.SlackClient", lambda config: fake_client)
    return fake_client
