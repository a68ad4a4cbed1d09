"""
Base Source Processor

Abstract base class for source-type specific fetch + synthesize logic.
Every processor turns a Source into a stream of SourceDocuments and hands
each one to the KnowledgeRecorder, returning its own SourceStats.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional, Tuple, TypeVar

from ...common.schemas import Source, SourceDocument, SourceType
from ..recorder import CompileContext, KnowledgeRecorder
from ..results import SourceStats

logger = logging.getLogger("harvest.compiler.sources")

T = TypeVar("T")


class SourceProcessor(ABC):
    """
    Abstract base class for source processors.

    Each processor must implement:
    - process: fetch items for a source and record them

    Override `accepts` when an empty config should also be skipped.
    """

    source_type: SourceType

    def __init__(self, recorder: KnowledgeRecorder):
        self._recorder = recorder

    def accepts(self, source: Source) -> bool:
        """
        Whether the source has a usable config for this processor.

        Sources without one are skipped silently by the dispatcher; a source
        is often created before its config is filled in.
        """
        return source.source_type == self.source_type and source.config is not None

    @abstractmethod
    def process(self, ctx: CompileContext, source: Source) -> SourceStats:
        """
        Fetch and record everything new for this source.

        Must not raise for per-item or fetch failures; those are counted in
        the returned stats.
        """
        pass

    def record_item(
        self,
        ctx: CompileContext,
        stats: SourceStats,
        item: T,
        build_document: Callable[[T], SourceDocument],
    ) -> None:
        """Count one page, build its document and record it; failures stay local"""
        stats.pages_processed += 1

        try:
            document = build_document(item)
        except Exception as e:
            logger.error(
                "Failed to build document (workspace=%s, item=%s): %s",
                ctx.workspace_id, _describe(item), e,
                exc_info=True,
            )
            stats.errors += 1
            return

        stats.merge(self._recorder.record(ctx, document))

    def consume(
        self,
        ctx: CompileContext,
        stats: SourceStats,
        items: Iterable[Tuple[Optional[T], Optional[Exception]]],
        build_document: Callable[[T], SourceDocument],
        on_item: Optional[Callable[[T], None]] = None,
    ) -> bool:
        """
        Drain a lazy (item, error) sequence.

        A fetch error ends the sequence: the stream's ordering can no longer
        be trusted. The generator is closed explicitly when we stop early.

        Returns:
            False if the sequence was aborted by a fetch error
        """
        iterator = iter(items)
        try:
            while True:
                try:
                    item, fetch_err = next(iterator)
                except StopIteration:
                    return True
                except Exception as e:
                    item, fetch_err = None, e

                if fetch_err is not None:
                    logger.error(
                        "Fetch failed, aborting remaining items (workspace=%s): %s",
                        ctx.workspace_id, fetch_err,
                        exc_info=fetch_err,
                    )
                    stats.errors += 1
                    return False

                if on_item is not None:
                    on_item(item)
                self.record_item(ctx, stats, item, build_document)
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()


def _describe(item: Any) -> str:
    url = getattr(item, "url", "")
    if url:
        return url
    return type(item).__name__
