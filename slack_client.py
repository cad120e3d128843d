import asyncio
import logging
from typing import Any, BinaryIO, Dict, List, Optional

import aiohttp
import requests
from slack_sdk.errors import SlackApiError, SlackClientError
from slack_sdk.web.async_client import AsyncWebClient
from tqdm import tqdm

from config import SlackConfig
from errors import (ApiError, AuthError, ChannelNotFoundError, TransportError,
                    UserNotFoundError)

logger = logging.getLogger(__name__)

AUTH_ERRORS = {"invalid_auth", "not_authed", "account_inactive", "token_revoked", "token_expired"}
RATE_LIMIT_ERRORS = {"ratelimited", "rate_limited"}
DEFAULT_RETRY_AFTER = 30
DOWNLOAD_CHUNK_SIZE = 8192


class SlackClient:
    """Wrapper for the async Slack WebClient with error translation and rate limit handling.

    A single instance is shared by every task of an invocation; it holds no
    per-request state, so concurrent calls are safe.
    """

    def __init__(self, config: SlackConfig):
        self.token = config.token
        self.max_retries = config.max_retries
        self.request_timeout = config.request_timeout
        self.client = AsyncWebClient(token=config.token, timeout=config.request_timeout)

    async def _make_request(self, method: str, **kwargs) -> Dict[str, Any]:
        """Make an API request, retrying only when Slack rate limits us"""
        # Slack rejects explicit nulls for optional arguments
        kwargs = {k: v for k, v in kwargs.items() if v is not None}

        for attempt in range(self.max_retries):
            try:
                logger.debug(f"Calling {method} with {kwargs}")
                response = await getattr(self.client, method)(**kwargs)
                return response.data
            except SlackApiError as e:
                error_code = e.response.get("error", "unknown_error")

                if error_code in RATE_LIMIT_ERRORS and attempt < self.max_retries - 1:
                    retry_after = _retry_after(e)
                    logger.warning(f"Rate limited on {method}, waiting {retry_after} seconds...")
                    await asyncio.sleep(retry_after)
                    continue
                raise _translate_api_error(method, error_code, kwargs) from e
            except SlackClientError as e:
                raise ApiError(f"{method}: {e}") from e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"Transport failure on {method}: {e!r}")
                raise TransportError(f"{method} failed: {e or type(e).__name__}") from e

        raise ApiError(f"{method} still rate limited after {self.max_retries} attempts")

    async def auth_test(self) -> Dict[str, Any]:
        """Test authentication and return workspace/user info"""
        return await self._make_request("auth_test")

    async def list_channels(self, limit: int, exclude_archived: bool = True) -> List[Dict[str, Any]]:
        """Get one page of public and private channels"""
        response = await self._make_request(
            "conversations_list",
            exclude_archived=exclude_archived,
            limit=limit
        )
        return response.get("channels", [])

    async def list_user_conversations(self, types: List[str], limit: int,
                                      exclude_archived: bool = True) -> List[Dict[str, Any]]:
        """Get one page of conversations the current user is a member of"""
        response = await self._make_request(
            "users_conversations",
            types=",".join(types),
            exclude_archived=exclude_archived,
            limit=limit
        )
        return response.get("channels", [])

    async def get_channel_info(self, channel_id: str) -> Dict[str, Any]:
        """Get channel information"""
        response = await self._make_request("conversations_info", channel=channel_id, include_num_members=True)
        return _require(response, "channel", "conversations_info")

    async def get_channel_history(self, channel_id: str, limit: int) -> List[Dict[str, Any]]:
        """Get the most recent messages of a channel, newest first"""
        response = await self._make_request("conversations_history", channel=channel_id, limit=limit)
        return response.get("messages", [])

    async def get_channel_members(self, channel_id: str, limit: int) -> List[str]:
        response = await self._make_request("conversations_members", channel=channel_id, limit=limit)
        return response.get("members", [])

    async def get_thread_replies(self, channel_id: str, thread_ts: str, limit: int) -> List[Dict[str, Any]]:
        """Get a thread, parent message included"""
        response = await self._make_request("conversations_replies", channel=channel_id, ts=thread_ts, limit=limit)
        return response.get("messages", [])

    async def get_permalink(self, channel_id: str, message_ts: str) -> str:
        response = await self._make_request("chat_getPermalink", channel=channel_id, message_ts=message_ts)
        return _require(response, "permalink", "chat_getPermalink")

    async def get_last_read(self, channel_id: str) -> Optional[str]:
        """Get the current user's last-read marker for a channel, if Slack reports one"""
        channel = await self.get_channel_info(channel_id)
        return channel.get("last_read") or None

    async def get_latest_message_ts(self, channel_id: str) -> Optional[str]:
        """Get the timestamp of the newest message in a channel, if any"""
        messages = await self.get_channel_history(channel_id, limit=1)
        if not messages:
            return None
        return messages[0].get("ts")

    async def list_users(self, limit: int) -> List[Dict[str, Any]]:
        response = await self._make_request("users_list", limit=limit)
        return response.get("members", [])

    async def get_user_info(self, user_id: str) -> Dict[str, Any]:
        response = await self._make_request("users_info", user=user_id)
        return _require(response, "user", "users_info")

    async def get_user_presence(self, user_id: str) -> str:
        response = await self._make_request("users_getPresence", user=user_id)
        return response.get("presence", "away")

    async def list_files(self, channel_id: Optional[str] = None, user_id: Optional[str] = None,
                         count: Optional[int] = None) -> List[Dict[str, Any]]:
        response = await self._make_request("files_list", channel=channel_id, user=user_id, count=count)
        return response.get("files", [])

    async def get_file_info(self, file_id: str) -> Dict[str, Any]:
        response = await self._make_request("files_info", file=file_id)
        return _require(response, "file", "files_info")

    async def search_messages(self, query: str, count: int) -> Dict[str, Any]:
        """Search messages, newest first. Returns the "messages" block with matches and total"""
        response = await self._make_request(
            "search_messages",
            query=query,
            count=count,
            sort="timestamp",
            sort_dir="desc"
        )
        return response.get("messages") or {"matches": [], "total": 0}

    def download_file(self, url: str, destination: BinaryIO, show_progress: bool = False) -> int:
        """
        Stream a private file into destination

        Uses the bot/user token as a bearer token, the same way Slack clients
        fetch url_private links. Returns the number of bytes written.
        """
        headers = {
            "Authorization": f"Bearer {self.token}",
            "User-Agent": "slackline"
        }

        try:
            response = requests.get(url, headers=headers, stream=True, timeout=self.request_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise TransportError(f"Download failed: {e}") from e

        total = int(response.headers.get("Content-Length", 0)) or None
        written = 0
        with tqdm(total=total, unit="B", unit_scale=True, desc="Downloading",
                  disable=not show_progress) as pbar:
            try:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        destination.write(chunk)
                        written += len(chunk)
                        pbar.update(len(chunk))
            except requests.RequestException as e:
                raise TransportError(f"Download interrupted: {e}") from e
            finally:
                response.close()

        logger.info(f"Downloaded {written} bytes from {url}")
        return written


def _retry_after(error: SlackApiError) -> int:
    headers = getattr(error.response, "headers", None) or {}
    value = headers.get("Retry-After") or headers.get("retry-after")
    if isinstance(value, list):
        value = value[0] if value else None
    try:
        return int(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER


def _translate_api_error(method: str, error_code: str, kwargs: Dict[str, Any]):
    if error_code in AUTH_ERRORS:
        logger.error(f"Authentication error for {method}: {error_code}")
        return AuthError(error_code)
    if error_code == "channel_not_found":
        return ChannelNotFoundError(kwargs.get("channel", error_code))
    if error_code == "user_not_found":
        return UserNotFoundError(kwargs.get("user", error_code))
    return ApiError(f"{method}: {error_code}")


def _require(response: Dict[str, Any], key: str, method: str) -> Any:
    value = response.get(key)
    if value is None:
        raise ApiError(f"{method}: response has no '{key}'")
    return value
