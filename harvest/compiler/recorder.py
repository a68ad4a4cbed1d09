"""
Knowledge Recorder

The extraction and persistence step: send a document to the extraction
oracle, store every candidate as Knowledge, and notify the case channel.

Failure scope is as narrow as possible:
- extraction fails   -> errors += 1, the document yields nothing
- one save fails     -> errors += 1, the next candidate is still saved
- notification fails -> swallowed, knowledge_created is unaffected
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from ..common.schemas import Case, ExtractionInput, Knowledge, SourceDocument
from .interfaces import KnowledgeService, Repository
from .notifier import SlackNotifier
from .results import SourceStats

logger = logging.getLogger("harvest.compiler.recorder")


@dataclass
class CompileContext:
    """Per-workspace state shared by every source during one run"""
    workspace_id: str
    cases: List[Case]
    since: datetime
    compile_prompt: str = ""
    case_map: Dict[int, Case] = field(init=False, repr=False)

    def __post_init__(self):
        self.case_map = {c.id: c for c in self.cases}


class KnowledgeRecorder:
    """Runs extract -> persist -> notify for one document at a time"""

    def __init__(
        self,
        repository: Repository,
        knowledge_service: KnowledgeService,
        notifier: SlackNotifier,
    ):
        self._repo = repository
        self._knowledge = knowledge_service
        self._notifier = notifier

    def record(self, ctx: CompileContext, document: SourceDocument) -> SourceStats:
        """
        Extract knowledge from a document and persist it.

        Returns:
            knowledge_created / notifications / errors for this document
            (pages_processed is the caller's business)
        """
        stats = SourceStats()

        extraction_input = ExtractionInput(
            cases=ctx.cases,
            source_data=document,
            prompt=ctx.compile_prompt,
        )
        try:
            results = self._knowledge.extract(extraction_input)
        except Exception as e:
            logger.error(
                "Failed to extract knowledge (workspace=%s, source=%s, urls=%s): %s",
                ctx.workspace_id, document.source_id, document.source_urls, e,
                exc_info=True,
            )
            stats.errors += 1
            return stats

        for result in results:
            knowledge = Knowledge(
                case_id=result.case_id,
                source_id=document.source_id,
                source_urls=list(document.source_urls),
                title=result.title,
                summary=result.summary,
                embedding=result.embedding,
                sourced_at=document.sourced_at,
            )

            try:
                created = self._repo.create_knowledge(ctx.workspace_id, knowledge)
            except Exception as e:
                logger.error(
                    "Failed to save knowledge (workspace=%s, case=%s, title=%r): %s",
                    ctx.workspace_id, result.case_id, result.title, e,
                    exc_info=True,
                )
                stats.errors += 1
                continue

            stats.knowledge_created += 1
            logger.debug("Knowledge created: %s (case %s)", created.id, created.case_id)

            if self._notifier.notify(ctx.workspace_id, created, ctx.case_map):
                stats.notifications += 1

        return stats
