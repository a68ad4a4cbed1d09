"""
Provider Client Tests

HTTP clients run against httpx.MockTransport; the Slack client gets a mocked
WebClient. No network access.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import httpx
import pytest

from conftest import SINCE


def _json(data, status=200, headers=None):
    return httpx.Response(status, json=data, headers=headers or {})


# ============================================================================
# GitHub
# ============================================================================

def _search_item(number, comments=0, pull_request=False, created="2024-01-01T05:00:00Z"):
    item = {
        "number": number,
        "title": f"Item {number}",
        "body": None,
        "user": {"login": "alice"},
        "state": "open",
        "html_url": f"https://github.com/acme/api/issues/{number}",
        "created_at": created,
        "labels": [{"name": "bug"}],
        "comments": comments,
    }
    if pull_request:
        item["pull_request"] = {"url": "..."}
    return item


def _comment(created):
    return {"user": {"login": "bob"}, "body": "me too", "created_at": created, "html_url": "c"}


@pytest.fixture
def github_factory():
    def factory(handler):
        from harvest.compiler.clients.github import GitHubRestClient

        http = httpx.Client(base_url="https://api.github.com", transport=httpx.MockTransport(handler))
        return GitHubRestClient(client=http)
    return factory


class TestGitHubRestClient:
    def test_pull_requests_include_comments_and_reviews(self, github_factory):
        queries = []

        def handler(request):
            path = request.url.path
            if path == "/search/issues":
                queries.append(request.url.params["q"])
                return _json({"items": [_search_item(7, pull_request=True)]})
            if path.endswith("/comments"):
                return _json([_comment("2024-01-01T06:00:00Z")])
            if path.endswith("/reviews"):
                return _json([{"user": {"login": "carol"}, "body": "ok", "state": "APPROVED",
                               "submitted_at": "2024-01-01T07:00:00Z"}])
            return _json({}, status=404)

        items = list(github_factory(handler).fetch_recent_pull_requests("acme", "api", SINCE))

        assert queries == ["repo:acme/api is:pr created:>=2024-01-01T00:00:00Z"]
        pr, err = items[0]
        assert err is None
        assert pr.number == 7
        assert pr.body == ""
        assert pr.labels == ["bug"]
        assert pr.comments[0].author == "bob"
        assert pr.reviews[0].state == "APPROVED"

    def test_search_follows_next_link(self, github_factory):
        def handler(request):
            if request.url.path == "/search/issues":
                if request.url.params.get("page") == "2":
                    return _json({"items": [_search_item(2)]})
                return _json(
                    {"items": [_search_item(1)]},
                    headers={"Link": '<https://api.github.com/search/issues?page=2>; rel="next"'},
                )
            return _json([])

        items = list(github_factory(handler).fetch_recent_issues("acme", "api", SINCE))

        assert [i.number for i, _ in items] == [1, 2]

    def test_api_failure_is_yielded_as_error(self, github_factory):
        from harvest.common.errors import FetchError

        items = list(github_factory(lambda r: _json({"message": "rate limited"}, status=403))
                     .fetch_recent_issues("acme", "api", SINCE))

        assert len(items) == 1
        assert items[0][0] is None
        assert isinstance(items[0][1], FetchError)

    def test_updated_comments_filtering(self, github_factory):
        def handler(request):
            path = request.url.path
            if path == "/search/issues":
                return _json({"items": [
                    _search_item(1, comments=3),
                    _search_item(2, comments=0),
                    _search_item(3, comments=1),
                    _search_item(4, comments=1, pull_request=True),
                ]})
            if path.endswith("/3/comments"):
                return _json([_comment("2023-12-01T00:00:00Z")])
            if path.endswith("/4/comments"):
                return _json([_comment("2023-12-01T00:00:00Z"), _comment("2024-01-01T03:00:00Z")])
            raise AssertionError(f"unexpected request {path}")

        items = list(github_factory(handler).fetch_updated_issue_comments("acme", "api", SINCE, {1}))

        assert len(items) == 1
        item, err = items[0]
        assert err is None
        assert item.number == 4
        assert item.is_pr
        assert item.since == SINCE
        assert len(item.comments) == 2


# ============================================================================
# Notion
# ============================================================================

def _page_obj(page_id, edited="2024-01-01T06:00:00.000Z", title="Runbook"):
    return {
        "id": page_id,
        "url": f"https://www.notion.so/{page_id}",
        "last_edited_time": edited,
        "created_time": "2023-06-01T00:00:00.000Z",
        "properties": {"Name": {"type": "title", "title": [{"plain_text": title}]}},
    }


def _paragraph(block_id, text, has_children=False):
    return {
        "id": block_id,
        "type": "paragraph",
        "has_children": has_children,
        "paragraph": {"rich_text": [{"plain_text": text}]},
    }


@pytest.fixture
def notion_factory():
    def factory(handler):
        from harvest.compiler.clients.notion import NotionRestClient

        http = httpx.Client(base_url="https://api.notion.com/v1", transport=httpx.MockTransport(handler))
        return NotionRestClient(token="", client=http)
    return factory


class TestNotionRestClient:
    def test_database_query_renders_page_tree(self, notion_factory):
        bodies = []

        def handler(request):
            path = request.url.path
            if path == "/v1/databases/db-1/query":
                bodies.append(request.read())
                return _json({"results": [_page_obj("p1")], "has_more": False})
            if path == "/v1/blocks/p1/children":
                return _json({"results": [_paragraph("b1", "parent", has_children=True)], "has_more": False})
            if path == "/v1/blocks/b1/children":
                return _json({"results": [_paragraph("b2", "nested")], "has_more": False})
            return _json({}, status=404)

        items = list(notion_factory(handler).query_updated_pages("db-1", SINCE))

        assert b"on_or_after" in bodies[0]
        page, err = items[0]
        assert err is None
        assert page.title == "Runbook"
        assert page.last_edited_time == datetime(2024, 1, 1, 6, tzinfo=timezone.utc)
        assert page.to_markdown() == "# Runbook\n\nparent\n  nested\n"

    def test_query_failure_yields_error_and_stops(self, notion_factory):
        from harvest.common.errors import FetchError

        items = list(notion_factory(lambda r: _json({}, status=500)).query_updated_pages("db-1", SINCE))

        assert len(items) == 1
        assert isinstance(items[0][1], FetchError)

    def test_page_walk_respects_depth_and_watermark(self, notion_factory):
        pages = {
            "root": _page_obj("root", edited="2023-12-01T00:00:00.000Z"),
            "child": _page_obj("child", title="Child"),
            "grandchild": _page_obj("grandchild", title="Grandchild"),
        }
        children = {
            "root": [{"id": "child", "type": "child_page", "has_children": True}],
            "child": [{"id": "grandchild", "type": "child_page", "has_children": True}],
            "grandchild": [],
        }

        def handler(request):
            kind, ident = request.url.path.split("/")[2:4]
            if kind == "pages":
                return _json(pages[ident])
            return _json({"results": children[ident], "has_more": False})

        client = notion_factory(handler)

        limited = list(client.query_updated_pages_from_page("root", SINCE, True, 1))
        unlimited = list(client.query_updated_pages_from_page("root", SINCE, True, 0))
        flat = list(client.query_updated_pages_from_page("root", SINCE, False, 0))

        assert [p.title for p, _ in limited] == ["Child"]
        assert [p.title for p, _ in unlimited] == ["Child", "Grandchild"]
        assert flat == []


# ============================================================================
# Slack
# ============================================================================

def _route_history(web, window, lookback=None):
    """Window history and look-back history answer different `latest` bounds"""
    from harvest.compiler.clients.slack import _slack_ts

    def history(**kwargs):
        if kwargs["latest"] == _slack_ts(SINCE):
            return lookback or {"messages": []}
        return window

    web.conversations_history.side_effect = history


class TestSlackWebClient:
    @pytest.fixture
    def web(self):
        web = MagicMock()
        web.auth_test.return_value = {"team_id": "T9"}
        web.users_info.return_value = {"user": {"name": "alice", "profile": {"display_name": "Alice"}}}
        return web

    def test_history_with_thread_replies(self, web):
        from harvest.compiler.clients.slack import SlackWebClient

        _route_history(web, {
            "messages": [{"ts": "1704067200.000100", "user": "U1", "text": "root", "reply_count": 1}],
            "response_metadata": {"next_cursor": "abc"},
        })
        web.conversations_replies.return_value = {
            "messages": [
                {"ts": "1704067200.000100", "user": "U1", "text": "root"},
                {"ts": "1704067201.000000", "user": "U1", "text": "reply", "thread_ts": "1704067200.000100"},
            ],
        }

        messages, cursor = SlackWebClient("", client=web).list_messages(
            "C1", SINCE, datetime(2024, 1, 2, tzinfo=timezone.utc), 100,
        )

        assert cursor == "abc"
        assert [m.text for m in messages] == ["root", "reply"]
        assert messages[1].thread_ts == "1704067200.000100"
        assert {m.team_id for m in messages} == {"T9"}
        assert {m.user_name for m in messages} == {"Alice"}
        web.users_info.assert_called_once_with(user="U1")
        web.auth_test.assert_called_once()

    def test_broadcast_reply_is_returned_once(self, web):
        from harvest.common.schemas import SlackChannel
        from harvest.compiler.clients.slack import SlackWebClient
        from harvest.compiler.sources.slack import build_threaded_markdown

        root = {"ts": "1704067200.000100", "user": "U1", "text": "root", "reply_count": 1, "team": "T1"}
        broadcast = {
            "ts": "1704067260.000000",
            "user": "U1",
            "text": "broadcast reply",
            "thread_ts": "1704067200.000100",
            "subtype": "thread_broadcast",
            "team": "T1",
        }
        _route_history(web, {"messages": [broadcast, root]})
        web.conversations_replies.return_value = {"messages": [root, broadcast]}

        messages, _ = SlackWebClient("", client=web).list_messages(
            "C1", SINCE, datetime(2024, 1, 2, tzinfo=timezone.utc), 100,
        )

        assert [m.text for m in messages] == ["root", "broadcast reply"]
        md = build_threaded_markdown(messages, SlackChannel(id="C1"))
        assert md.count("broadcast reply") == 1
        assert "### Reply by Alice at 2024-01-01T00:01:00Z\nbroadcast reply" in md

    def test_replies_to_older_thread_arrive_as_orphans(self, web):
        from harvest.common.schemas import SlackChannel
        from harvest.compiler.clients.slack import SlackWebClient, _slack_ts
        from harvest.compiler.sources.slack import build_threaded_markdown

        old_root = "1703894400.000000"  # two days before the window
        _route_history(web, {"messages": []}, lookback={"messages": [
            {"ts": old_root, "user": "U1", "text": "old question", "reply_count": 2,
             "latest_reply": "1704150000.000000", "team": "T1"},
            {"ts": "1703980800.000000", "user": "U1", "text": "stale thread", "reply_count": 1,
             "latest_reply": "1703990000.000000", "team": "T1"},
        ]})
        web.conversations_replies.return_value = {"messages": [
            {"ts": old_root, "user": "U1", "text": "old question", "team": "T1"},
            {"ts": "1704150000.000000", "user": "U1", "text": "still broken", "thread_ts": old_root, "team": "T1"},
        ]}

        messages, cursor = SlackWebClient("", client=web).list_messages(
            "C1", SINCE, datetime(2024, 1, 2, tzinfo=timezone.utc), 100,
        )

        assert cursor == ""
        assert [m.text for m in messages] == ["still broken"]
        web.conversations_replies.assert_called_once()
        kwargs = web.conversations_replies.call_args[1]
        assert kwargs["ts"] == old_root
        assert kwargs["oldest"] == _slack_ts(SINCE)
        md = build_threaded_markdown(messages, SlackChannel(id="C1"))
        assert "## Message by Alice at 2024-01-01T23:00:00Z\nstill broken" in md

    def test_older_threads_are_only_scanned_on_first_page(self, web):
        from harvest.compiler.clients.slack import SlackWebClient

        _route_history(web, {"messages": []})

        SlackWebClient("", client=web).list_messages(
            "C1", SINCE, datetime(2024, 1, 2, tzinfo=timezone.utc), 100, cursor="next",
        )

        assert web.conversations_history.call_count == 1

    def test_zero_lookback_disables_scan(self, web):
        from datetime import timedelta

        from harvest.compiler.clients.slack import SlackWebClient

        _route_history(web, {"messages": []})

        SlackWebClient("", client=web, thread_lookback=timedelta(0)).list_messages(
            "C1", SINCE, datetime(2024, 1, 2, tzinfo=timezone.utc), 100,
        )

        assert web.conversations_history.call_count == 1

    def test_messages_at_until_are_excluded(self, web):
        from harvest.compiler.clients.slack import SlackWebClient

        until = datetime.fromtimestamp(1704067300, tz=timezone.utc)
        _route_history(web, {"messages": [
            {"ts": "1704067300.000000", "user": "U1", "text": "edge", "team": "T1"},
            {"ts": "1704067299.000000", "user": "U1", "text": "inside", "team": "T1"},
        ]})

        messages, cursor = SlackWebClient("", client=web).list_messages("C1", SINCE, until, 100)

        assert [m.text for m in messages] == ["inside"]
        assert cursor == ""

    def test_api_error_becomes_fetch_error(self, web):
        from slack_sdk.errors import SlackApiError

        from harvest.common.errors import FetchError
        from harvest.compiler.clients.slack import SlackWebClient

        web.conversations_history.side_effect = SlackApiError("denied", {"ok": False, "error": "not_in_channel"})

        with pytest.raises(FetchError) as exc_info:
            SlackWebClient("", client=web).list_messages("C1", SINCE, SINCE, 100)

        assert exc_info.value.context["error"] == "not_in_channel"

    def test_post_message_returns_ts(self, web):
        from harvest.compiler.clients.slack import SlackWebClient

        web.chat_postMessage.return_value = {"ok": True, "ts": "1.2"}

        assert SlackWebClient("", client=web).post_message("C1", [], "hi") == "1.2"
        web.chat_postMessage.assert_called_once_with(channel="C1", blocks=[], text="hi")
