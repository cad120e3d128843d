"""
Command implementations: one async function per CLI operation.

Each function makes its Slack request(s) through SlackClient, maps the raw
payload into records from models.py and hands them to Output.
"""

import asyncio
import json
import logging
import os
from typing import Any, BinaryIO, Dict, List, Optional
from urllib.parse import quote

import click
from tqdm import tqdm

from errors import ApiError
from models import (AppManifest, AuthInfo, ChannelInfo, DmConversation,
                    DmMessage, FileInfo, MemberInfo, MessageInfo, MyChannel,
                    PermalinkInfo, PresenceInfo, ReplyInfo, SearchResult,
                    TokenGuide, UserInfo, ts_to_datetime)
from output import Output
from slack_client import SlackClient
from unread import DEFAULT_CONCURRENCY, find_unread_channels

logger = logging.getLogger(__name__)

USER_SEARCH_LIMIT = 1000

APP_SCOPES = [
    "channels:history",
    "channels:read",
    "files:read",
    "groups:history",
    "groups:read",
    "im:history",
    "im:read",
    "mpim:history",
    "mpim:read",
    "search:read",
    "users:read",
    "users:read.email",
]

APP_MANIFEST: Dict[str, Any] = {
    "display_information": {
        "name": "Slackline CLI",
        "description": "Read-only Slack CLI for AI agents",
        "background_color": "#4a154b"
    },
    "oauth_config": {
        "scopes": {
            "user": APP_SCOPES
        }
    },
    "settings": {
        "org_deploy_enabled": False,
        "socket_mode_enabled": False,
        "token_rotation_enabled": False
    }
}

TOKEN_STEPS = [
    "Open the Slack app creation URL",
    "Select your workspace",
    "Click 'Create' to create the app from manifest",
    "Go to 'OAuth & Permissions' in the sidebar",
    "Click 'Install to Workspace' and authorize",
    "Copy the 'User OAuth Token' (starts with xoxp-)",
    "Store the token securely",
]


# -- Payload mapping -----------------------------------------------------------


def _nested_value(data: Dict[str, Any], key: str) -> Optional[str]:
    """Slack wraps topic/purpose as {"value": ...}"""
    value = data.get(key)
    if isinstance(value, dict):
        return value.get("value")
    return value


def channel_from_slack(c: Dict[str, Any]) -> ChannelInfo:
    return ChannelInfo(
        id=c["id"],
        name=c.get("name") or "",
        topic=_nested_value(c, "topic"),
        purpose=_nested_value(c, "purpose"),
        num_members=c.get("num_members"),
        is_private=bool(c.get("is_private", False)),
        is_archived=bool(c.get("is_archived", False))
    )


def message_from_slack(m: Dict[str, Any]) -> MessageInfo:
    return MessageInfo(
        ts=m.get("ts", ""),
        user=m.get("user"),
        text=m.get("text") or "",
        timestamp=ts_to_datetime(m.get("ts")),
        thread_ts=m.get("thread_ts"),
        reply_count=m.get("reply_count")
    )


def reply_from_slack(m: Dict[str, Any], record_type=ReplyInfo):
    return record_type(
        ts=m.get("ts", ""),
        user=m.get("user"),
        text=m.get("text") or "",
        timestamp=ts_to_datetime(m.get("ts"))
    )


def user_from_slack(u: Dict[str, Any]) -> UserInfo:
    profile = u.get("profile") or {}
    return UserInfo(
        id=u["id"],
        name=u.get("name") or "",
        real_name=profile.get("real_name"),
        display_name=profile.get("display_name"),
        email=profile.get("email"),
        title=profile.get("title"),
        is_admin=bool(u.get("is_admin", False)),
        is_bot=bool(u.get("is_bot", False)),
        deleted=bool(u.get("deleted", False)),
        tz=u.get("tz")
    )


def file_from_slack(f: Dict[str, Any]) -> FileInfo:
    created = f.get("timestamp") or f.get("created")
    return FileInfo(
        id=f["id"],
        name=f.get("name") or "",
        title=f.get("title"),
        mimetype=f.get("mimetype"),
        filetype=f.get("filetype"),
        user=f.get("user"),
        url_private=f.get("url_private"),
        url_private_download=f.get("url_private_download"),
        permalink=f.get("permalink"),
        timestamp=ts_to_datetime(str(created)) if created else None
    )


def dm_from_slack(c: Dict[str, Any]) -> DmConversation:
    priority = c.get("priority")
    return DmConversation(
        id=c["id"],
        user_id=c.get("user") or c.get("creator"),
        is_open=bool(c.get("is_open", c.get("is_im") or c.get("is_mpim"))),
        priority=float(priority) if priority is not None else None
    )


def my_channel_from_slack(c: Dict[str, Any]) -> MyChannel:
    return MyChannel(
        id=c["id"],
        name=c.get("name") or "DM",
        is_private=bool(c.get("is_private", False)),
        is_im=bool(c.get("is_im", False)),
        is_mpim=bool(c.get("is_mpim", False)),
        num_members=c.get("num_members"),
        unread_count=c.get("unread_count")
    )


def search_result_from_slack(m: Dict[str, Any]) -> SearchResult:
    channel = m.get("channel") or {}
    return SearchResult(
        ts=m.get("ts", ""),
        text=m.get("text") or "",
        user=m.get("user"),
        username=m.get("username"),
        channel_id=channel.get("id", ""),
        channel_name=channel.get("name"),
        permalink=m.get("permalink", ""),
        timestamp=ts_to_datetime(m.get("ts"))
    )


# -- auth / token ------------------------------------------------------------


async def token_test(client: SlackClient, output: Output):
    """Verify the token and show workspace info"""
    response = await client.auth_test()

    info = AuthInfo(
        url=response.get("url", ""),
        team=response.get("team", ""),
        user=response.get("user") or "",
        team_id=response.get("team_id", ""),
        user_id=response.get("user_id", "")
    )

    output.print(info)
    output.success("Authentication successful")


def create_url() -> str:
    manifest_json = json.dumps(APP_MANIFEST, indent=2)
    return f"https://api.slack.com/apps?new_app=1&manifest_json={quote(manifest_json, safe='')}"


def token_create(output: Output):
    """Explain how to create a user token for slackline"""
    guide = TokenGuide(
        steps=list(TOKEN_STEPS),
        create_url=create_url(),
        manifest=APP_MANIFEST,
        scopes=list(APP_SCOPES)
    )
    output.print(guide)


def token_manifest(output: Output):
    output.print(AppManifest(manifest=APP_MANIFEST))


# -- channels ------------------------------------------------------------------


async def channels_list(client: SlackClient, output: Output, limit: int = 100):
    channels = [channel_from_slack(c) for c in await client.list_channels(limit=limit)]
    output.print_list(channels, "Channels")


async def channels_info(client: SlackClient, output: Output, channel: str):
    output.print(channel_from_slack(await client.get_channel_info(channel)))


async def channels_history(client: SlackClient, output: Output, channel: str, limit: int = 20):
    messages = [message_from_slack(m) for m in await client.get_channel_history(channel, limit=limit)]
    output.print_list(messages, f"Messages in {channel}")


async def channels_members(client: SlackClient, output: Output, channel: str, limit: int = 100):
    members = [MemberInfo(id=user_id) for user_id in await client.get_channel_members(channel, limit=limit)]
    output.print_list(members, f"Members of {channel}")


# -- users ---------------------------------------------------------------------


async def users_list(client: SlackClient, output: Output, limit: int = 100):
    users = [user_from_slack(u) for u in await client.list_users(limit=limit) if not u.get("deleted", False)]
    output.print_list(users, "Users")


async def users_search(client: SlackClient, output: Output, query: str):
    """Search users by name, display name, real name or email (first page of users only)"""
    members = await client.list_users(limit=USER_SEARCH_LIMIT)
    users = [
        user for user in (user_from_slack(u) for u in members if not u.get("deleted", False))
        if user.matches(query)
    ]
    output.print_list(users, f"Users matching '{query}'")


async def users_info(client: SlackClient, output: Output, user: str):
    output.print(user_from_slack(await client.get_user_info(user)))


async def users_presence(client: SlackClient, output: Output, user: str):
    presence = await client.get_user_presence(user)
    output.print(PresenceInfo(user_id=user, presence=presence, online=presence == "active"))


# -- messages ------------------------------------------------------------------


async def messages_replies(client: SlackClient, output: Output, channel: str, thread_ts: str, limit: int = 100):
    replies = [reply_from_slack(m) for m in await client.get_thread_replies(channel, thread_ts, limit=limit)]
    output.print_list(replies, f"Thread replies in {channel}")


async def messages_permalink(client: SlackClient, output: Output, channel: str, message_ts: str):
    permalink = await client.get_permalink(channel, message_ts)
    output.print(PermalinkInfo(channel=channel, message_ts=message_ts, permalink=permalink))


# -- dms -----------------------------------------------------------------------


async def dms_list(client: SlackClient, output: Output, limit: int = 50):
    conversations = await client.list_user_conversations(types=["im", "mpim"], limit=limit)
    output.print_list([dm_from_slack(c) for c in conversations], "Direct Messages")


async def dms_history(client: SlackClient, output: Output, dm_channel: str, limit: int = 20):
    messages = [reply_from_slack(m, DmMessage) for m in await client.get_channel_history(dm_channel, limit=limit)]
    output.print_list(messages, f"DM history in {dm_channel}")


# -- files ---------------------------------------------------------------------


def files_title(channel: Optional[str], user: Optional[str]) -> str:
    if channel and user:
        return f"Files in #{channel} by {user}"
    if channel:
        return f"Files in #{channel}"
    if user:
        return f"Files by {user}"
    return "Files"


async def files_list(client: SlackClient, output: Output, channel: Optional[str] = None,
                     user: Optional[str] = None, limit: Optional[int] = None):
    files = [file_from_slack(f) for f in await client.list_files(channel_id=channel, user_id=user, count=limit)]
    output.print_list(files, files_title(channel, user))


async def files_info(client: SlackClient, output: Output, file_id: str):
    output.print(file_from_slack(await client.get_file_info(file_id)))


async def files_download(client: SlackClient, output: Output, file_id: str,
                         output_path: Optional[str] = None, stdout: Optional[BinaryIO] = None):
    """Download a file to output_path, or to stdout when no path is given"""
    info = file_from_slack(await client.get_file_info(file_id))
    if not info.download_url:
        raise ApiError("No download URL available")

    filename = info.name or "file"

    if output_path is None:
        stdout = stdout or click.get_binary_stream("stdout")
        await asyncio.to_thread(client.download_file, info.download_url, stdout)
        return

    show_progress = not output.quiet and not output.is_json()
    # Opened outside the try: a file we could not open is not ours to remove
    f = open(output_path, "wb")
    try:
        with f:
            size = await asyncio.to_thread(client.download_file, info.download_url, f, show_progress)
    except BaseException:
        # Clean up partial file
        if os.path.exists(output_path):
            os.remove(output_path)
        raise

    logger.info(f"Downloaded {filename} ({size} bytes) to {output_path}")
    output.success(f"Downloaded {filename} to {output_path}")


# -- me ------------------------------------------------------------------------


async def me_channels(client: SlackClient, output: Output, limit: int = 100, include_dms: bool = False,
                      unread_only: bool = False, concurrency: int = DEFAULT_CONCURRENCY):
    """List channels the current user is a member of, optionally only those with unread messages"""
    types = ["public_channel", "private_channel"]
    if include_dms:
        types.extend(["im", "mpim"])

    conversations = await client.list_user_conversations(types=types, limit=limit)
    channels: List[MyChannel] = [my_channel_from_slack(c) for c in conversations]

    if unread_only:
        output.status("Checking for unread messages...")
        show_progress = not output.quiet and not output.is_json()
        with tqdm(total=len(channels), desc="Checking channels", unit="ch", leave=False,
                  disable=not show_progress) as pbar:
            channels = await find_unread_channels(client, channels, concurrency=concurrency, progress=pbar)

    output.print_list(channels, "Unread Channels" if unread_only else "My Channels")


# -- search --------------------------------------------------------------------


async def search_messages(client: SlackClient, output: Output, query: str, limit: int = 20):
    messages = await client.search_messages(query, count=limit)
    results = [search_result_from_slack(m) for m in messages.get("matches", [])]
    total = messages.get("total", len(results))
    output.print_list(results, f"Search results for '{query}' ({total} total)")
