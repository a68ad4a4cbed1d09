"""Tests for extract -> persist -> notify on a single document."""

from unittest.mock import MagicMock

import pytest

from conftest import NOW, SINCE, FakeKnowledgeService


@pytest.fixture
def ctx(open_case):
    from harvest.compiler.recorder import CompileContext

    return CompileContext(workspace_id="ws-1", cases=[open_case], since=SINCE, compile_prompt="Be brief")


@pytest.fixture
def document():
    from harvest.common.schemas import SourceDocument

    return SourceDocument(source_id="s1", source_urls=["https://x/1"], sourced_at=NOW, content="# Doc\n\nbody")


def _recorder(repository, knowledge, slack=None):
    from harvest.compiler.notifier import SlackNotifier
    from harvest.compiler.recorder import KnowledgeRecorder

    return KnowledgeRecorder(repository, knowledge, SlackNotifier(slack))


class TestKnowledgeRecorder:
    def test_context_indexes_cases(self, ctx, open_case):
        assert ctx.case_map == {1: open_case}

    def test_knowledge_inherits_document_fields(self, repository, ctx, document):
        stats = _recorder(repository, FakeKnowledgeService()).record(ctx, document)

        assert stats.knowledge_created == 1
        assert stats.pages_processed == 0
        created = repository.created[0]
        assert created.source_id == "s1"
        assert created.source_urls == ["https://x/1"]
        assert created.sourced_at == NOW
        assert created.case_id == 1
        assert created.embedding == [0.1, 0.2]

    def test_extraction_input_carries_prompt_and_cases(self, repository, ctx, document, open_case):
        knowledge = FakeKnowledgeService()

        _recorder(repository, knowledge).record(ctx, document)

        sent = knowledge.inputs[0]
        assert sent.prompt == "Be brief"
        assert sent.cases == [open_case]
        assert sent.source_data == document

    def test_extraction_failure_counts_one_error(self, repository, ctx, document, caplog):
        knowledge = MagicMock()
        knowledge.extract.side_effect = RuntimeError("model overloaded")

        with caplog.at_level("ERROR", logger="harvest.compiler.recorder"):
            stats = _recorder(repository, knowledge).record(ctx, document)

        assert stats.errors == 1
        assert stats.knowledge_created == 0
        assert repository.created == []
        assert "Failed to extract knowledge" in caplog.text

    def test_no_candidates_is_not_an_error(self, repository, ctx, document):
        knowledge = MagicMock()
        knowledge.extract.return_value = []

        stats = _recorder(repository, knowledge).record(ctx, document)

        assert stats.errors == 0
        assert stats.knowledge_created == 0

    def test_notification_counted_only_when_posted(self, repository, slack, ctx, document):
        stats = _recorder(repository, FakeKnowledgeService(results_per_doc=2), slack).record(ctx, document)

        assert stats.knowledge_created == 2
        assert stats.notifications == 2
        assert [p[0] for p in slack.posted] == ["C-CASE", "C-CASE"]
