"""
Unread detection for the channels the current user belongs to.

Slack's users.conversations only reports unread counters for some
conversation types, so for each channel we look up the user's last-read
marker and the newest message and compare their timestamps. Lookups run
concurrently (one task per channel, bounded by a semaphore) and every
channel gets a tri-state answer:

    True   the newest message is after the last-read marker
    False  nothing newer than the last-read marker
    None   unknown: the marker or the newest message was missing, or a lookup failed

Unknown is treated as read when filtering; only a positive counter or a
definite True keeps a channel in the unread view.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Protocol, Sequence

from models import MyChannel

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10


class UnreadLookup(Protocol):
    async def get_last_read(self, channel_id: str) -> Optional[str]: ...

    async def get_latest_message_ts(self, channel_id: str) -> Optional[str]: ...


class ProgressSink(Protocol):
    def update(self, n: int = 1) -> Optional[bool]: ...


@dataclass
class ChannelUnreadStatus:
    channel_id: str
    has_unread: Optional[bool] = None


def is_newer(latest_ts: str, last_read: str) -> bool:
    """True iff latest_ts is strictly after last_read.

    Slack timestamps are decimal strings ("1713203474.121819"); they are
    compared numerically so differing digit counts still order correctly.
    """
    try:
        return Decimal(latest_ts) > Decimal(last_read)
    except InvalidOperation:
        raise ValueError(f"Invalid Slack timestamp: {latest_ts!r} / {last_read!r}")


async def check_channel_unread(lookup: UnreadLookup, channel_id: str) -> Optional[bool]:
    """Work out whether a channel has unread messages, or None if that can't be told"""
    try:
        last_read = await lookup.get_last_read(channel_id)
        if not last_read:
            logger.debug(f"{channel_id}: no last-read marker")
            return None

        latest_ts = await lookup.get_latest_message_ts(channel_id)
        if not latest_ts:
            logger.debug(f"{channel_id}: no messages")
            return None

        return is_newer(latest_ts, last_read)
    except Exception as e:
        logger.warning(f"Failed to check unread status for {channel_id}: {e}")
        return None


async def collect_unread_statuses(lookup: UnreadLookup, channel_ids: Sequence[str],
                                  concurrency: int = DEFAULT_CONCURRENCY,
                                  progress: Optional[ProgressSink] = None) -> List[ChannelUnreadStatus]:
    """Check every channel concurrently and return statuses in input order.

    Each task owns exactly one slot of the pre-sized results list, so the
    merge needs no locking. All tasks run to completion: a failing channel
    degrades to unknown and never cancels the others.
    """
    results: List[ChannelUnreadStatus] = [ChannelUnreadStatus(channel_id) for channel_id in channel_ids]
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def check(index: int):
        async with semaphore:
            has_unread = await check_channel_unread(lookup, results[index].channel_id)
        results[index].has_unread = has_unread
        if progress is not None:
            try:
                progress.update(1)
            except Exception as e:
                logger.warning(f"Progress update failed for {results[index].channel_id}: {e}")

    await asyncio.gather(*(check(i) for i in range(len(results))))
    return results


def apply_unread_statuses(channels: Sequence[MyChannel], statuses: Sequence[ChannelUnreadStatus]):
    """Copy each status onto the channel at the same position"""
    for channel, status in zip(channels, statuses):
        if channel.id != status.channel_id:
            raise ValueError(f"Status for {status.channel_id} does not match channel {channel.id}")
        channel.has_unread = status.has_unread


def filter_unread(channels: Sequence[MyChannel]) -> List[MyChannel]:
    """Keep channels with a positive unread counter or a definite unread signal"""
    return [
        c for c in channels
        if (c.unread_count is not None and c.unread_count > 0) or c.has_unread is True
    ]


async def find_unread_channels(lookup: UnreadLookup, channels: List[MyChannel],
                               concurrency: int = DEFAULT_CONCURRENCY,
                               progress: Optional[ProgressSink] = None) -> List[MyChannel]:
    statuses = await collect_unread_statuses(lookup, [c.id for c in channels], concurrency, progress)
    apply_unread_statuses(channels, statuses)
    return filter_unread(channels)
