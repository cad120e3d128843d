"""
Display records produced by the slackline commands.

Every record is a dataclass with two projections of the same field values:
``to_dict()`` for --json output and ``to_text()`` for the terminal.
"""

import json
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Tuple

import click
import pytz

HUMAN_TIME_FORMAT = "%Y-%m-%d %H:%M"
JSON_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
SEARCH_TEXT_LIMIT = 200


def ts_to_datetime(ts: Optional[str]) -> Optional[datetime]:
    """Convert a Slack timestamp ("1713203474.121819") to a UTC datetime"""
    if not ts:
        return None
    try:
        return datetime.fromtimestamp(int(float(ts)), tz=pytz.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def format_time(timestamp: Optional[datetime], fallback: str) -> str:
    if timestamp is None:
        return fallback
    return timestamp.strftime(HUMAN_TIME_FORMAT)


def _to_json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.astimezone(pytz.utc).strftime(JSON_TIME_FORMAT)
    if isinstance(value, (list, tuple)):
        return [_to_json_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_json_value(v) for k, v in value.items()}
    return value


@dataclass
class Record:
    """Base class for everything the Output renderer can display"""

    # Fields dropped from the JSON projection when they are None
    OMIT_IF_NONE: ClassVar[Tuple[str, ...]] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None and f.name in self.OMIT_IF_NONE:
                continue
            data[f.name] = _to_json_value(value)
        return data

    def to_text(self) -> str:
        raise NotImplementedError


@dataclass
class AuthInfo(Record):
    url: str
    team: str
    user: str
    team_id: str
    user_id: str

    def to_text(self) -> str:
        return "\n".join([
            f"{click.style('Team', fg='cyan')}: {self.team}",
            f"{click.style('User', fg='cyan')}: {self.user}",
            f"{click.style('Team ID', dim=True)}: {self.team_id}",
            f"{click.style('User ID', dim=True)}: {self.user_id}",
            f"{click.style('URL', dim=True)}: {self.url}",
        ])


@dataclass
class ChannelInfo(Record):
    id: str
    name: str
    topic: Optional[str] = None
    purpose: Optional[str] = None
    num_members: Optional[int] = None
    is_private: bool = False
    is_archived: bool = False

    def to_text(self) -> str:
        prefix = "🔒" if self.is_private else "#"
        members = f" ({self.num_members} members)" if self.num_members is not None else ""
        archived = click.style(" (archived)", dim=True) if self.is_archived else ""

        lines = [f"{prefix}{click.style(self.name, bold=True)}{click.style(members, dim=True)}{archived}"]
        if self.topic:
            lines.append(f"  {click.style(self.topic, dim=True)}")
        return "\n".join(lines)


@dataclass
class MessageInfo(Record):
    ts: str
    user: Optional[str]
    text: str
    timestamp: Optional[datetime] = None
    thread_ts: Optional[str] = None
    reply_count: Optional[int] = None

    def to_text(self) -> str:
        time = format_time(self.timestamp, self.ts)
        user = self.user or "unknown"
        thread_info = ""
        if self.reply_count:
            thread_info = click.style(f" [{self.reply_count} replies]", fg="cyan")

        return "\n".join([
            f"{click.style(time, dim=True)} {click.style(user, fg='green')}{thread_info}:",
            f"  {self.text}",
            "",
        ])


@dataclass
class MemberInfo(Record):
    id: str
    name: Optional[str] = None

    def to_text(self) -> str:
        return f"  @{self.name or self.id}"


@dataclass
class UserInfo(Record):
    id: str
    name: str
    real_name: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    title: Optional[str] = None
    is_admin: bool = False
    is_bot: bool = False
    deleted: bool = False
    tz: Optional[str] = None

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on name, real/display name and email"""
        query = query.lower()
        candidates = [self.name, self.real_name, self.display_name, self.email]
        return any(c and query in c.lower() for c in candidates)

    def to_text(self) -> str:
        if self.deleted:
            status = click.style(" (deleted)", fg="red")
        elif self.is_bot:
            status = click.style(" (bot)", fg="cyan")
        elif self.is_admin:
            status = click.style(" (admin)", fg="yellow")
        else:
            status = ""

        display = self.display_name or self.real_name or self.name
        lines = [f"@{click.style(self.name, fg='green')} - {click.style(display, bold=True)}{status}"]
        if self.title:
            lines.append(f"  {click.style(self.title, dim=True)}")
        if self.email:
            lines.append(f"  {click.style(self.email, dim=True)}")
        return "\n".join(lines)


@dataclass
class PresenceInfo(Record):
    user_id: str
    presence: str
    online: bool

    def to_text(self) -> str:
        status = click.style("online", fg="green") if self.online else click.style("away", dim=True)
        return f"{self.user_id}: {status}"


@dataclass
class ReplyInfo(Record):
    ts: str
    user: Optional[str]
    text: str
    timestamp: Optional[datetime] = None

    def to_text(self) -> str:
        time = format_time(self.timestamp, self.ts)
        user = self.user or "unknown"
        return "\n".join([
            f"{click.style(time, dim=True)} {click.style(user, fg='green')}:",
            f"  {self.text}",
            "",
        ])


@dataclass
class DmMessage(ReplyInfo):
    pass


@dataclass
class PermalinkInfo(Record):
    channel: str
    message_ts: str
    permalink: str

    def to_text(self) -> str:
        return click.style(self.permalink, fg="cyan")


@dataclass
class DmConversation(Record):
    id: str
    user_id: Optional[str] = None
    is_open: bool = True
    priority: Optional[float] = None

    def to_text(self) -> str:
        user = self.user_id or "unknown"
        status = "" if self.is_open else " (closed)"
        return (f"DM {click.style(self.id, dim=True)} → user "
                f"{click.style(user, fg='green')}{click.style(status, dim=True)}")


@dataclass
class FileInfo(Record):
    id: str
    name: str
    title: Optional[str] = None
    mimetype: Optional[str] = None
    filetype: Optional[str] = None
    user: Optional[str] = None
    url_private: Optional[str] = None
    url_private_download: Optional[str] = None
    permalink: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def download_url(self) -> Optional[str]:
        return self.url_private_download or self.url_private

    def to_text(self) -> str:
        time = format_time(self.timestamp, "unknown")
        user = self.user or "unknown"
        title = self.title or self.name

        lines = [f"{click.style(title, fg='green', bold=True)} by {click.style(user, fg='cyan')}"]
        if self.filetype and self.mimetype:
            lines.append(f"  {click.style(self.filetype, fg='yellow')} | {click.style(self.mimetype, dim=True)}")
        lines.append(f"  Uploaded: {click.style(time, dim=True)}")

        if self.url_private_download:
            lines.append(f"  Download: {click.style(self.url_private_download, fg='blue')}")
        elif self.url_private:
            lines.append(f"  URL: {click.style(self.url_private, fg='blue')}")

        if self.permalink:
            lines.append(f"  Permalink: {click.style(self.permalink, dim=True)}")
        lines.append("")
        return "\n".join(lines)


@dataclass
class SearchResult(Record):
    ts: str
    text: str
    user: Optional[str]
    username: Optional[str]
    channel_id: str
    channel_name: Optional[str]
    permalink: str
    timestamp: Optional[datetime] = None

    def to_text(self) -> str:
        time = format_time(self.timestamp, self.ts)
        user = self.username or self.user or "unknown"
        channel = self.channel_name or self.channel_id

        text = self.text
        if len(text) > SEARCH_TEXT_LIMIT:
            text = text[:SEARCH_TEXT_LIMIT] + "..."

        return "\n".join([
            f"{click.style(time, dim=True)} {click.style(user, fg='green')} in #{click.style(channel, fg='cyan')}:",
            f"  {text}",
            f"  {click.style(self.permalink, dim=True)}",
            "",
        ])


@dataclass
class MyChannel(Record):
    OMIT_IF_NONE: ClassVar[Tuple[str, ...]] = ("has_unread",)

    id: str
    name: str
    is_private: bool = False
    is_im: bool = False
    is_mpim: bool = False
    num_members: Optional[int] = None
    unread_count: Optional[int] = None
    # None until the unread aggregator has a definite answer
    has_unread: Optional[bool] = None

    @property
    def is_dm(self) -> bool:
        return self.is_im or self.is_mpim

    def to_text(self) -> str:
        if self.is_dm:
            prefix = "DM"
        elif self.is_private:
            prefix = "🔒"
        else:
            prefix = "#"

        if self.unread_count is not None and self.unread_count > 0:
            unread = click.style(f" [{self.unread_count}]", fg="red")
        elif self.has_unread:
            unread = click.style(" [unread]", fg="red")
        else:
            unread = ""

        members = ""
        if self.num_members is not None and not self.is_dm:
            members = f" ({self.num_members} members)"

        return f"{prefix} {click.style(self.name, bold=True)}{click.style(members, dim=True)}{unread}"


@dataclass
class TokenGuide(Record):
    steps: List[str]
    create_url: str
    manifest: Dict[str, Any]
    scopes: List[str]

    def to_text(self) -> str:
        heavy = "═" * 60
        light = "─" * 60
        return "\n".join([
            "",
            heavy,
            "  CREATE A SLACK USER TOKEN FOR SLACKLINE",
            heavy,
            "",
            "1. Open this URL to create a Slack app with the right permissions:",
            "",
            f"   {self.create_url}",
            "",
            "2. Select your workspace and click 'Create'",
            "",
            "3. In the app settings, go to 'OAuth & Permissions'",
            "",
            "4. Click 'Install to Workspace' and authorize",
            "",
            "5. Copy the 'User OAuth Token' (starts with xoxp-)",
            "",
            "6. Store it securely:",
            "",
            "   # macOS Keychain (recommended):",
            "   security add-generic-password -s slack-token -a $USER -w 'xoxp-...'",
            "",
            "   # Then use with:",
            "   export SLACK_TOKEN=$(security find-generic-password -s slack-token -w)",
            "",
            "   # Or add to ~/.zshrc:",
            "   export SLACK_TOKEN='xoxp-...'",
            "",
            light,
            "  Scopes included:",
            f"  {', '.join(self.scopes)}",
            light,
            "",
        ])


@dataclass
class AppManifest(Record):
    manifest: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        # The manifest is emitted as-is, not wrapped in a field
        return dict(self.manifest)

    def to_text(self) -> str:
        return json.dumps(self.manifest, indent=2, ensure_ascii=False)
