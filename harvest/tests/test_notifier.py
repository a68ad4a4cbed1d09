"""Tests for the Slack knowledge notifier."""

from unittest.mock import MagicMock

import pytest

from conftest import NOW


@pytest.fixture
def knowledge():
    from harvest.common.schemas import Knowledge

    return Knowledge(
        id="k-1",
        case_id=1,
        source_id="s1",
        source_urls=["https://www.notion.so/p1", "https://www.notion.so/p2"],
        title="Retry budget exhausted",
        summary="Payments retries hit the cap during the outage.",
        sourced_at=NOW,
    )


@pytest.fixture
def case_map(open_case):
    return {open_case.id: open_case}


class TestBlocks:
    def test_block_layout_without_base_url(self, slack, knowledge, open_case):
        from harvest.compiler.notifier import SlackNotifier

        blocks = SlackNotifier(slack).build_blocks("ws-1", knowledge, open_case)

        assert [b["type"] for b in blocks] == ["header", "section", "context"]
        assert blocks[0]["text"]["text"] == "Knowledge: Retry budget exhausted"
        assert blocks[1]["text"]["text"] == knowledge.summary
        assert blocks[2]["elements"][0]["text"] == (
            "Source: <https://www.notion.so/p1|Source>, <https://www.notion.so/p2|Source>"
        )

    def test_link_button_with_base_url(self, slack, knowledge, open_case):
        from harvest.compiler.notifier import SlackNotifier

        blocks = SlackNotifier(slack, base_url="https://app.example.com/").build_blocks("ws-1", knowledge, open_case)

        button = blocks[-1]["elements"][0]
        assert blocks[-1]["type"] == "actions"
        assert button["url"] == "https://app.example.com/ws/ws-1/cases/1"

    def test_optional_blocks_are_omitted(self, slack, knowledge, open_case):
        from harvest.compiler.notifier import SlackNotifier

        bare = knowledge.model_copy(update={"summary": "", "source_urls": []})

        blocks = SlackNotifier(slack).build_blocks("ws-1", bare, open_case)

        assert [b["type"] for b in blocks] == ["header"]

    def test_long_title_is_clipped(self, slack, knowledge, open_case):
        from harvest.compiler.notifier import HEADER_MAX_CHARS, SlackNotifier

        long = knowledge.model_copy(update={"title": "x" * 500})

        blocks = SlackNotifier(slack).build_blocks("ws-1", long, open_case)

        assert len(blocks[0]["text"]["text"]) == HEADER_MAX_CHARS


class TestNotify:
    def test_posts_to_case_channel(self, slack, knowledge, case_map):
        from harvest.compiler.notifier import SlackNotifier

        assert SlackNotifier(slack).notify("ws-1", knowledge, case_map) is True

        channel, blocks, fallback = slack.posted[0]
        assert channel == "C-CASE"
        assert fallback == "Knowledge: Retry budget exhausted"
        assert blocks[0]["type"] == "header"

    def test_disabled_without_slack(self, knowledge, case_map):
        from harvest.compiler.notifier import SlackNotifier

        notifier = SlackNotifier(None)

        assert not notifier.is_enabled
        assert notifier.notify("ws-1", knowledge, case_map) is False

    def test_unknown_case_is_not_notified(self, slack, knowledge):
        from harvest.compiler.notifier import SlackNotifier

        assert SlackNotifier(slack).notify("ws-1", knowledge, {}) is False
        assert slack.posted == []

    def test_case_without_channel_is_not_notified(self, slack, knowledge, open_case):
        from harvest.compiler.notifier import SlackNotifier

        silent = open_case.model_copy(update={"slack_channel_id": ""})

        assert SlackNotifier(slack).notify("ws-1", knowledge, {1: silent}) is False
        assert slack.posted == []

    def test_post_failure_returns_false(self, knowledge, case_map, caplog):
        from harvest.compiler.notifier import SlackNotifier

        service = MagicMock()
        service.post_message.side_effect = RuntimeError("channel_not_found")

        with caplog.at_level("WARNING", logger="harvest.compiler.notifier"):
            assert SlackNotifier(service).notify("ws-1", knowledge, case_map) is False

        assert "Failed to post Slack notification" in caplog.text
