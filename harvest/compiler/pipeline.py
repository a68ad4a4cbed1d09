"""
Compile Pipeline

Entry point of a compile run. For every registered workspace:

1. List sources and open cases (failure here aborts the whole run)
2. Dispatch each enabled source to the processor for its type
3. Fold each source's counters into the workspace result

Everything below the workspace listing is recoverable and shows up only in
the returned counters.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ..common.errors import CompileError
from ..common.schemas import SourceType
from .interfaces import GitHubService, KnowledgeService, NotionService, Repository, SlackService
from .notifier import SlackNotifier
from .recorder import CompileContext, KnowledgeRecorder
from .registry import WorkspaceEntry, WorkspaceRegistry
from .results import CompileResult, WorkspaceCompileResult
from .sources import (
    GitHubProcessor,
    NotionDBProcessor,
    NotionPageProcessor,
    SlackProcessor,
    SourceProcessor,
)
from .sources.github import BODY_TRUNCATE_CHARS
from .sources.slack import DEFAULT_PAGE_SIZE

logger = logging.getLogger("harvest.compiler.pipeline")


class Compiler:
    """
    Knowledge compilation pipeline.

    Providers are optional: a source whose provider is not configured has no
    processor and is skipped like a source with no config.
    """

    def __init__(
        self,
        repository: Repository,
        registry: WorkspaceRegistry,
        knowledge_service: KnowledgeService,
        notion: Optional[NotionService] = None,
        slack: Optional[SlackService] = None,
        github: Optional[GitHubService] = None,
        base_url: str = "",
        page_size: int = DEFAULT_PAGE_SIZE,
        body_truncate_chars: int = BODY_TRUNCATE_CHARS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._repo = repository
        self._registry = registry

        notifier = SlackNotifier(slack, base_url=base_url)
        recorder = KnowledgeRecorder(repository, knowledge_service, notifier)

        self._processors: Dict[SourceType, SourceProcessor] = {}
        if notion is not None:
            self._processors[SourceType.NOTION_DB] = NotionDBProcessor(recorder, notion)
            self._processors[SourceType.NOTION_PAGE] = NotionPageProcessor(recorder, notion)
        if slack is not None:
            self._processors[SourceType.SLACK] = SlackProcessor(recorder, slack, page_size=page_size, clock=clock)
        if github is not None:
            self._processors[SourceType.GITHUB] = GitHubProcessor(
                recorder, github, body_truncate_chars=body_truncate_chars,
            )

    @property
    def registry(self) -> WorkspaceRegistry:
        return self._registry

    @property
    def processors(self) -> Dict[SourceType, SourceProcessor]:
        """Processor per source type, only for configured providers"""
        return dict(self._processors)

    def compile(self, since: datetime, workspace_id: Optional[str] = None) -> CompileResult:
        """
        Compile knowledge from every source updated since `since`.

        Args:
            since: Watermark; only content at or after it is fetched
            workspace_id: Restrict the run to one workspace. An unknown id
                yields an empty result, not an error.

        Raises:
            CompileError: if a workspace's sources or open cases cannot be listed
        """
        if workspace_id:
            entry = self._registry.get(workspace_id)
            entries: List[WorkspaceEntry] = [entry] if entry is not None else []
            if entry is None:
                logger.info("Workspace not registered, nothing to compile: %s", workspace_id)
        else:
            entries = self._registry.list()

        result = CompileResult()
        for entry in entries:
            ws_result = self._compile_workspace(entry, since)
            logger.info(
                "Compile finished (workspace=%s, sources=%d, pages=%d, knowledge=%d, notifications=%d, errors=%d)",
                ws_result.workspace_id,
                ws_result.sources_processed,
                ws_result.pages_processed,
                ws_result.knowledge_created,
                ws_result.notifications,
                ws_result.errors,
            )
            result.workspace_results.append(ws_result)

        return result

    def _compile_workspace(self, entry: WorkspaceEntry, since: datetime) -> WorkspaceCompileResult:
        ws_id = entry.workspace.id
        ws_result = WorkspaceCompileResult(workspace_id=ws_id)

        try:
            sources = self._repo.list_sources(ws_id)
        except Exception as e:
            raise CompileError("failed to list sources", workspace_id=ws_id) from e

        if not sources:
            logger.warning("No sources configured (workspace=%s)", ws_id)
            return ws_result

        try:
            cases = self._repo.list_open_cases(ws_id)
        except Exception as e:
            raise CompileError("failed to list open cases", workspace_id=ws_id) from e

        if not cases:
            logger.info("No open cases, skipping (workspace=%s)", ws_id)
            return ws_result

        ctx = CompileContext(
            workspace_id=ws_id,
            cases=cases,
            since=since,
            compile_prompt=entry.compile_prompt,
        )

        for source in sources:
            if not source.enabled:
                continue

            processor = self._processors.get(source.source_type)
            if processor is None or not processor.accepts(source):
                logger.debug(
                    "Skipping source without usable config or provider (workspace=%s, source=%s, type=%s)",
                    ws_id, source.id, source.source_type.value,
                )
                continue

            ws_result.add_source(processor.process(ctx, source))

        return ws_result
