"""Shared fakes for the compile pipeline tests."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import pytest

from harvest.common.schemas import Case, ExtractionResult, Knowledge, Source
from harvest.compiler.interfaces import (
    GitHubService,
    KnowledgeService,
    NotionService,
    Repository,
    SlackService,
)

SINCE = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
NOW = SINCE + timedelta(days=1)


class FakeRepository(Repository):
    def __init__(self):
        self.sources: Dict[str, List[Source]] = {}
        self.cases: Dict[str, List[Case]] = {}
        self.created: List[Knowledge] = []
        self.fail_titles: Set[str] = set()
        self.list_sources_error: Optional[Exception] = None
        self.list_cases_error: Optional[Exception] = None
        self.list_cases_calls = 0

    def list_sources(self, workspace_id):
        if self.list_sources_error:
            raise self.list_sources_error
        return list(self.sources.get(workspace_id, []))

    def list_open_cases(self, workspace_id):
        self.list_cases_calls += 1
        if self.list_cases_error:
            raise self.list_cases_error
        return [c for c in self.cases.get(workspace_id, []) if c.is_open]

    def create_knowledge(self, workspace_id, knowledge):
        if knowledge.title in self.fail_titles:
            raise RuntimeError(f"cannot save {knowledge.title}")
        stored = knowledge.model_copy(update={"id": f"k-{len(self.created) + 1}", "created_at": NOW})
        self.created.append(stored)
        return stored


class FakeKnowledgeService(KnowledgeService):
    """One result per call for the first case, or an error for marked documents"""

    def __init__(self, fail_on: Optional[Set[str]] = None, results_per_doc: int = 1):
        self.fail_on = fail_on or set()
        self.results_per_doc = results_per_doc
        self.inputs = []

    def extract(self, extraction_input):
        self.inputs.append(extraction_input)
        content = extraction_input.source_data.content
        if any(marker in content for marker in self.fail_on):
            raise RuntimeError("oracle failure")
        case = extraction_input.cases[0]
        return [
            ExtractionResult(case_id=case.id, title=f"Finding {i + 1}", summary="summary", embedding=[0.1, 0.2])
            for i in range(self.results_per_doc)
        ]


class FakeSlack(SlackService):
    def __init__(self):
        self.pages: Dict[str, List[tuple]] = {}
        self.errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.posted: List[tuple] = []
        self.post_error: Optional[Exception] = None

    def list_messages(self, channel_id, since, until, page_size, cursor=""):
        self.calls.append((channel_id, cursor))
        if channel_id in self.errors:
            raise self.errors[channel_id]
        pages = self.pages.get(channel_id, [([], "")])
        index = int(cursor) if cursor else 0
        return pages[index]

    def post_message(self, channel_id, blocks, fallback_text):
        if self.post_error:
            raise self.post_error
        self.posted.append((channel_id, blocks, fallback_text))
        return "1700000000.000100"


class FakeNotion(NotionService):
    def __init__(self, items=None):
        self.items = items or []
        self.db_calls: List[tuple] = []
        self.page_calls: List[tuple] = []
        self.closed = False

    def _iterate(self):
        try:
            for item in self.items:
                yield item
        finally:
            self.closed = True

    def query_updated_pages(self, database_id, since):
        self.db_calls.append((database_id, since))
        return self._iterate()

    def query_updated_pages_from_page(self, page_id, since, recursive, max_depth):
        self.page_calls.append((page_id, since, recursive, max_depth))
        return self._iterate()


class FakeGitHub(GitHubService):
    """Replays fixed phase results; phase 2 ignores the exclusion set"""

    def __init__(self, prs=None, issues=None, discussions=None):
        self.prs = prs or []
        self.issues = issues or []
        self.discussions = discussions or []
        self.exclude_seen: List[Set[int]] = []

    def fetch_recent_pull_requests(self, owner, repo, since):
        yield from self.prs

    def fetch_recent_issues(self, owner, repo, since):
        yield from self.issues

    def fetch_updated_issue_comments(self, owner, repo, since, exclude_numbers):
        self.exclude_seen.append(set(exclude_numbers))
        yield from self.discussions


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def slack():
    return FakeSlack()


@pytest.fixture
def open_case():
    return Case(id=1, title="Payment outage", description="Checkout failures", slack_channel_id="C-CASE")
