"""
Knowledge Notifier

Posts a short Block Kit message to the Slack channel of the case a new
Knowledge was linked to. Best-effort: a failed post is logged and reported
as False, never raised.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from slack_sdk.models.blocks import (
    ActionsBlock,
    ButtonElement,
    ContextBlock,
    HeaderBlock,
    MarkdownTextObject,
    PlainTextObject,
    SectionBlock,
)

from ..common.schemas import Case, Knowledge
from .interfaces import SlackService

logger = logging.getLogger("harvest.compiler.notifier")

# Block Kit limits
HEADER_MAX_CHARS = 150
SECTION_MAX_CHARS = 3000


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


class SlackNotifier:
    """Renders and posts knowledge notifications"""

    def __init__(self, slack_service: Optional[SlackService] = None, base_url: str = ""):
        """
        Args:
            slack_service: Slack provider; None disables notifications
            base_url: Web UI base URL; enables the "Link" button when set
        """
        self._slack = slack_service
        self._base_url = base_url.rstrip("/")

    @property
    def is_enabled(self) -> bool:
        return self._slack is not None

    def notify(self, workspace_id: str, knowledge: Knowledge, case_map: Mapping[int, Case]) -> bool:
        """
        Notify the case channel about new knowledge.

        Returns:
            True only if the message was posted
        """
        if self._slack is None:
            return False

        target_case = case_map.get(knowledge.case_id)
        if target_case is None or not target_case.slack_channel_id:
            return False

        try:
            blocks = self.build_blocks(workspace_id, knowledge, target_case)
            self._slack.post_message(
                target_case.slack_channel_id,
                blocks,
                f"Knowledge: {knowledge.title}",
            )
        except Exception as e:
            logger.warning(
                "Failed to post Slack notification (workspace=%s, case=%s, knowledge=%s): %s",
                workspace_id, knowledge.case_id, knowledge.id, e,
                exc_info=True,
            )
            return False

        return True

    def build_blocks(self, workspace_id: str, knowledge: Knowledge, target_case: Case) -> List[Dict[str, Any]]:
        """Header, then optional summary, source links and case link button"""
        blocks = [
            HeaderBlock(text=PlainTextObject(
                text=_clip(f"Knowledge: {knowledge.title}", HEADER_MAX_CHARS),
                emoji=True,
            )),
        ]

        if knowledge.summary:
            blocks.append(SectionBlock(
                text=MarkdownTextObject(text=_clip(knowledge.summary, SECTION_MAX_CHARS)),
            ))

        if knowledge.source_urls:
            links = ", ".join(f"<{url}|Source>" for url in knowledge.source_urls)
            blocks.append(ContextBlock(elements=[
                MarkdownTextObject(text=_clip(f"Source: {links}", SECTION_MAX_CHARS)),
            ]))

        if self._base_url:
            case_url = f"{self._base_url}/ws/{workspace_id}/cases/{target_case.id}"
            blocks.append(ActionsBlock(elements=[
                ButtonElement(
                    text=PlainTextObject(text="🔗 Link", emoji=True),
                    action_id="link_case",
                    url=case_url,
                ),
            ]))

        return [block.to_dict() for block in blocks]
