"""
LLM Knowledge Extractor

The extraction oracle: asks an LLM which open cases a source document is
relevant to and returns one ExtractionResult per related case, each with an
embedding of its summary.

Results that name a case id outside the candidate set are dropped; the model
is only allowed to link knowledge to cases it was shown.
"""

import logging
from typing import List, Optional

from ..common.embedding_service import EmbeddingService
from ..common.errors import ExtractionError
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..common.schemas import ExtractionInput, ExtractionResult
from .interfaces import KnowledgeService

logger = logging.getLogger("harvest.compiler.llm_extractor")

DEFAULT_COMPILE_PROMPT = (
    "Analyze the source content and identify information relevant to each case.\n"
    "Consider both direct mentions and indirect relevance."
)

SYSTEM_PROMPT = """You are a knowledge extraction assistant. Your task is to analyze source content and determine which cases are related to it.

## Instructions:

1. Analyze the source content and identify any relevant information for each case.
2. For each related case, provide:
   - case_id: The ID of the related case
   - title: A concise title for the extracted knowledge (in the same language as the source content)
   - summary: A brief summary of how the source content relates to the case (in the same language as the source content)
3. Only include cases that have clear relevance to the source content.
4. If no cases are related, return an empty array.

Respond with a valid JSON object only:
{"related_cases": [{"case_id": 1, "title": "...", "summary": "..."}]}
"""


def build_user_prompt(extraction_input: ExtractionInput) -> str:
    """Custom (or default) instructions, then the candidate cases, then the document"""
    parts = [extraction_input.prompt or DEFAULT_COMPILE_PROMPT, "\n\n", "## Cases to consider:\n\n"]

    for case in extraction_input.cases:
        parts.append(f"### Case ID: {case.id}\n")
        parts.append(f"**Title:** {case.title}\n")
        if case.description:
            parts.append(f"**Description:** {case.description}\n")
        parts.append("\n")

    parts.append("## Source Content:\n\n")
    parts.append(extraction_input.source_data.content)
    parts.append("\n")
    return "".join(parts)


class LLMKnowledgeExtractor(KnowledgeService):
    """KnowledgeService backed by LLMClient and fastembed embeddings"""

    def __init__(
        self,
        llm_client: LLMClient,
        embedding_service: EmbeddingService,
        max_tokens: int = 2048,
        timeout: float = 60.0,
    ):
        self._llm = llm_client
        self._embedding = embedding_service
        self._max_tokens = max_tokens
        self._timeout = timeout

    @property
    def is_available(self) -> bool:
        return self._llm.is_available

    def extract(self, extraction_input: ExtractionInput) -> List[ExtractionResult]:
        """
        Find the cases a document relates to.

        Raises:
            ExtractionError: LLM unavailable, call failed, unparseable
                response, or embedding failure
        """
        if not extraction_input.cases:
            return []

        if not self._llm.is_available:
            raise ExtractionError("LLM client is not available", provider=self._llm.provider)

        source_id = extraction_input.source_data.source_id

        try:
            raw = self._llm.generate(
                build_user_prompt(extraction_input),
                system=SYSTEM_PROMPT,
                max_tokens=self._max_tokens,
                timeout=self._timeout,
            )
        except Exception as e:
            raise ExtractionError("failed to generate content from LLM", source_id=source_id) from e

        try:
            data = parse_llm_json(raw)
        except ValueError as e:
            raise ExtractionError("failed to parse LLM response", source_id=source_id) from e

        related = data.get("related_cases") if isinstance(data, dict) else None
        if not related:
            return []

        known_ids = {c.id for c in extraction_input.cases}
        results: List[ExtractionResult] = []

        for item in related:
            candidate = self._parse_candidate(item)
            if candidate is None:
                continue
            case_id, title, summary = candidate

            if case_id not in known_ids:
                logger.warning("Dropping result for unknown case %s (source=%s)", case_id, source_id)
                continue

            try:
                embedding = self._embedding.embed_single(summary or title)
            except Exception as e:
                raise ExtractionError(
                    "failed to generate embedding", case_id=case_id, title=title,
                ) from e

            results.append(ExtractionResult(
                case_id=case_id,
                title=title,
                summary=summary,
                embedding=embedding,
            ))

        logger.debug("Extracted %d knowledge candidate(s) (source=%s)", len(results), source_id)
        return results

    @staticmethod
    def _parse_candidate(item) -> Optional[tuple]:
        if not isinstance(item, dict):
            return None
        try:
            case_id = int(item.get("case_id"))
        except (TypeError, ValueError):
            logger.warning("Dropping result with invalid case_id: %r", item.get("case_id"))
            return None
        title = str(item.get("title") or "").strip()
        summary = str(item.get("summary") or "").strip()
        if not title:
            logger.warning("Dropping result without title (case %s)", case_id)
            return None
        return case_id, title, summary
