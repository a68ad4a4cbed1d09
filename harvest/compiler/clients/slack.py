"""
Slack Web API Client

SlackService on top of slack_sdk's WebClient. A page of channel history is
returned together with the in-window replies of every thread root on that
page, so the thread reconstructor sees whole conversations.

The first page also carries in-window replies to older threads (roots up to
`thread_lookback` before the window); their roots are not returned.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from slack_sdk.http_retry.builtin_handlers import (
    ConnectionErrorRetryHandler,
    RateLimitErrorRetryHandler,
    ServerErrorRetryHandler,
)

from ...common.errors import FetchError
from ..interfaces import SlackService
from ..sources.slack import SlackMessage

logger = logging.getLogger("harvest.compiler.clients.slack")

DEFAULT_THREAD_LOOKBACK = timedelta(days=30)
LOOKBACK_PAGE_SIZE = 200


def _slack_ts(dt: datetime) -> str:
    return f"{dt.timestamp():.6f}"


class SlackWebClient(SlackService):
    """Reads channel history and posts notifications with a bot token"""

    def __init__(
        self,
        token: str,
        client: Optional[WebClient] = None,
        thread_lookback: timedelta = DEFAULT_THREAD_LOOKBACK,
    ):
        if client is None:
            if not token:
                raise ValueError("Slack bot token is not set")
            client = WebClient(
                token=token,
                retry_handlers=[
                    RateLimitErrorRetryHandler(max_retry_count=5),
                    ServerErrorRetryHandler(max_retry_count=2),
                    ConnectionErrorRetryHandler(max_retry_count=2),
                ],
            )
        self._client = client
        self._user_names: Dict[str, str] = {}
        self._team_id: Optional[str] = None
        self._thread_lookback = thread_lookback

    def list_messages(
        self,
        channel_id: str,
        since: datetime,
        until: datetime,
        page_size: int,
        cursor: str = "",
    ) -> Tuple[List[SlackMessage], str]:
        oldest, latest = _slack_ts(since), _slack_ts(until)

        try:
            resp = self._client.conversations_history(
                channel=channel_id,
                oldest=oldest,
                latest=latest,
                inclusive=True,
                limit=page_size,
                cursor=cursor or None,
            )
        except SlackApiError as e:
            raise FetchError(
                "failed to fetch channel history",
                channel_id=channel_id,
                error=e.response.get("error", ""),
            ) from e

        # threads rooted at or after this ts have their replies fetched below
        thread_floor = (since - self._thread_lookback).timestamp()

        raw_messages: List[Dict[str, Any]] = []
        for raw in resp.get("messages", []):
            thread_ts = raw.get("thread_ts")
            if thread_ts and thread_ts != raw.get("ts") and float(thread_ts) >= thread_floor:
                # thread_broadcast copy of a reply
                continue
            raw_messages.append(raw)
            if raw.get("reply_count"):
                raw_messages.extend(self._fetch_replies(channel_id, raw["ts"], oldest, latest))

        if not cursor:
            for root_ts in self._revived_thread_roots(channel_id, since):
                raw_messages.extend(self._fetch_replies(channel_id, root_ts, oldest, latest))

        messages = []
        seen: Set[str] = set()
        until_ts = until.timestamp()
        for raw in raw_messages:
            ts = raw.get("ts", "")
            if ts in seen or float(ts or "0") >= until_ts:
                continue
            seen.add(ts)
            if not raw.get("team"):
                raw = {**raw, "team": self._get_team_id()}
            msg = SlackMessage.from_api(channel_id, raw)
            if msg.user_id and msg.user_name == msg.user_id:
                msg.user_name = self._get_user_name(msg.user_id)
            messages.append(msg)

        next_cursor = (resp.get("response_metadata") or {}).get("next_cursor") or ""
        return messages, next_cursor

    def _revived_thread_roots(self, channel_id: str, since: datetime) -> List[str]:
        """
        Roots older than `since` (within the look-back) with a reply at or after it.

        Their in-window replies come back without the root and are rendered
        as orphans.
        """
        if self._thread_lookback <= timedelta(0):
            return []

        since_ts = since.timestamp()
        roots: List[str] = []
        cursor = None

        while True:
            try:
                resp = self._client.conversations_history(
                    channel=channel_id,
                    oldest=_slack_ts(since - self._thread_lookback),
                    latest=_slack_ts(since),
                    inclusive=True,
                    limit=LOOKBACK_PAGE_SIZE,
                    cursor=cursor,
                )
            except SlackApiError as e:
                raise FetchError(
                    "failed to fetch thread look-back history",
                    channel_id=channel_id,
                    error=e.response.get("error", ""),
                ) from e

            for raw in resp.get("messages", []):
                ts = raw.get("ts", "")
                if not ts or float(ts) >= since_ts or not raw.get("reply_count"):
                    continue
                if raw.get("thread_ts") and raw.get("thread_ts") != ts:
                    continue
                if float(raw.get("latest_reply") or "0") >= since_ts:
                    roots.append(ts)

            cursor = (resp.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return roots

    def _fetch_replies(self, channel_id: str, thread_ts: str, oldest: str, latest: str) -> List[Dict[str, Any]]:
        """Replies (parent excluded) of one thread within the window"""
        replies: List[Dict[str, Any]] = []
        cursor = None

        while True:
            try:
                resp = self._client.conversations_replies(
                    channel=channel_id,
                    ts=thread_ts,
                    oldest=oldest,
                    latest=latest,
                    inclusive=True,
                    cursor=cursor,
                )
            except SlackApiError as e:
                raise FetchError(
                    "failed to fetch thread replies",
                    channel_id=channel_id,
                    thread_ts=thread_ts,
                    error=e.response.get("error", ""),
                ) from e

            for raw in resp.get("messages", []):
                if raw.get("ts") != thread_ts:
                    replies.append(raw)

            cursor = (resp.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return replies

    def _get_user_name(self, user_id: str) -> str:
        if user_id in self._user_names:
            return self._user_names[user_id]

        name = user_id
        try:
            resp = self._client.users_info(user=user_id)
            user = resp.get("user") or {}
            profile = user.get("profile") or {}
            name = profile.get("display_name") or user.get("real_name") or user.get("name") or user_id
        except SlackApiError as e:
            logger.debug("users.info failed for %s: %s", user_id, e)

        self._user_names[user_id] = name
        return name

    def _get_team_id(self) -> str:
        if self._team_id is None:
            try:
                self._team_id = self._client.auth_test().get("team_id", "") or ""
            except SlackApiError as e:
                logger.warning("auth.test failed, permalinks unavailable: %s", e)
                self._team_id = ""
        return self._team_id

    def post_message(self, channel_id: str, blocks: List[Dict[str, Any]], fallback_text: str) -> str:
        resp = self._client.chat_postMessage(channel=channel_id, blocks=blocks, text=fallback_text)
        return resp.get("ts", "")
