"""
Harvest Schemas

Sources, cases, knowledge, and the ephemeral documents passed to extraction.
"""

from .records import (
    Source,
    SourceType,
    SourceConfig,
    NotionDBConfig,
    NotionPageConfig,
    SlackConfig,
    SlackChannel,
    GitHubConfig,
    GitHubRepository,
    Case,
    CaseStatus,
    Knowledge,
    SourceDocument,
    ExtractionInput,
    ExtractionResult,
    generate_source_id,
    generate_knowledge_id,
)

__all__ = [
    "Source",
    "SourceType",
    "SourceConfig",
    "NotionDBConfig",
    "NotionPageConfig",
    "SlackConfig",
    "SlackChannel",
    "GitHubConfig",
    "GitHubRepository",
    "Case",
    "CaseStatus",
    "Knowledge",
    "SourceDocument",
    "ExtractionInput",
    "ExtractionResult",
    "generate_source_id",
    "generate_knowledge_id",
]
