"""
Slack Source

One channel's messages in the compile window become one document. Flat
message lists are rebuilt into threads (root followed by its replies) so the
extractor reads conversations the way people had them.

Replies whose root fell outside the window are kept as standalone entries
rather than dropped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ...common.schemas import SlackChannel, Source, SourceDocument, SourceType
from ..interfaces import SlackService
from ..recorder import CompileContext, KnowledgeRecorder
from ..results import SourceStats
from .base import SourceProcessor

logger = logging.getLogger("harvest.compiler.sources.slack")

DEFAULT_PAGE_SIZE = 100


@dataclass
class SlackMessage:
    """
    A Slack message.

    `id` is the message ts. `thread_ts` is empty for root messages; thread
    parents reported by Slack with thread_ts == ts are normalized to roots.
    """
    id: str
    channel_id: str
    text: str
    created_at: datetime
    thread_ts: str = ""
    team_id: str = ""
    user_id: str = ""
    user_name: str = ""

    @classmethod
    def from_api(cls, channel_id: str, data: Dict[str, Any]) -> "SlackMessage":
        ts = data.get("ts", "")
        thread_ts = data.get("thread_ts", "")
        if thread_ts == ts:
            thread_ts = ""

        user_id = data.get("user") or data.get("bot_id") or ""
        profile = data.get("user_profile") or {}
        user_name = profile.get("display_name") or profile.get("real_name") or data.get("username") or user_id

        return cls(
            id=ts,
            channel_id=channel_id,
            text=data.get("text", ""),
            created_at=datetime.fromtimestamp(float(ts), tz=timezone.utc) if ts else datetime.now(timezone.utc),
            thread_ts=thread_ts,
            team_id=data.get("team", ""),
            user_id=user_id,
            user_name=user_name,
        )

    @property
    def is_reply(self) -> bool:
        return bool(self.thread_ts)


def format_timestamp(dt: datetime) -> str:
    """RFC 3339 in UTC, second precision"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _created_key(msg: SlackMessage) -> datetime:
    dt = msg.created_at
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def build_threaded_markdown(messages: List[SlackMessage], channel: SlackChannel) -> str:
    """
    Render a channel's messages as markdown threads.

    Roots, each thread's replies, and orphan replies are each sorted by
    creation time. Orphans are rendered at root level after all threads.
    """
    roots: List[SlackMessage] = []
    replies: Dict[str, List[SlackMessage]] = {}
    orphans: List[SlackMessage] = []

    for msg in messages:
        if not msg.is_reply:
            roots.append(msg)
            replies[msg.id] = []

    for msg in messages:
        if not msg.is_reply:
            continue
        if msg.thread_ts in replies:
            replies[msg.thread_ts].append(msg)
        else:
            orphans.append(msg)

    roots.sort(key=_created_key)
    orphans.sort(key=_created_key)

    parts = [f"# Slack Channel: #{channel.name or channel.id} ({channel.id})\n\n"]
    blocks: List[str] = []

    for root in roots:
        block = f"## Message by {root.user_name} at {format_timestamp(root.created_at)}\n{root.text}\n"
        for reply in sorted(replies[root.id], key=_created_key):
            block += f"\n### Reply by {reply.user_name} at {format_timestamp(reply.created_at)}\n{reply.text}\n"
        blocks.append(block)

    for msg in orphans:
        blocks.append(f"## Message by {msg.user_name} at {format_timestamp(msg.created_at)}\n{msg.text}\n")

    parts.append("\n---\n\n".join(blocks))
    return "".join(parts)


def build_slack_source_urls(messages: List[SlackMessage]) -> Optional[List[str]]:
    """
    Permalinks for root messages.

    The team id comes from the first message carrying one. Without a team id
    no URL can be built, so None is returned rather than a partial list.
    """
    team_id = next((m.team_id for m in messages if m.team_id), "")
    if not team_id:
        return None

    urls = []
    for msg in messages:
        if msg.is_reply:
            continue
        ts = msg.id.replace(".", "")
        urls.append(f"https://app.slack.com/client/{team_id}/{msg.channel_id}/p{ts}")
    return urls


def fetch_channel_messages(
    slack: SlackService,
    channel_id: str,
    since: datetime,
    until: datetime,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> List[SlackMessage]:
    """All messages in [since, until), following cursors until the last page"""
    messages: List[SlackMessage] = []
    cursor = ""

    while True:
        page, cursor = slack.list_messages(channel_id, since, until, page_size, cursor)
        messages.extend(page)
        if not cursor:
            break

    return messages


class SlackProcessor(SourceProcessor):
    """One document per channel with activity in the window"""

    source_type = SourceType.SLACK

    def __init__(
        self,
        recorder: KnowledgeRecorder,
        slack: SlackService,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        super().__init__(recorder)
        self._slack = slack
        self._page_size = page_size
        self._clock = clock

    def accepts(self, source: Source) -> bool:
        return super().accepts(source) and bool(source.slack_config.channels)

    def process(self, ctx: CompileContext, source: Source) -> SourceStats:
        channels = source.slack_config.channels
        logger.info(
            "Processing Slack source (workspace=%s, source=%s, name=%r, channels=%d)",
            ctx.workspace_id, source.id, source.name, len(channels),
        )

        stats = SourceStats()
        now = self._clock()

        for channel in channels:
            try:
                messages = fetch_channel_messages(self._slack, channel.id, ctx.since, now, self._page_size)
            except Exception as e:
                logger.error(
                    "Failed to fetch Slack messages (workspace=%s, channel=%s): %s",
                    ctx.workspace_id, channel.id, e,
                    exc_info=True,
                )
                stats.errors += 1
                continue

            if not messages:
                continue

            self.record_item(
                ctx,
                stats,
                messages,
                lambda msgs, ch=channel: SourceDocument(
                    source_id=source.id,
                    source_urls=build_slack_source_urls(msgs) or [],
                    sourced_at=now,
                    content=build_threaded_markdown(msgs, ch),
                ),
            )

        return stats
