"""
Domain Records

Sources describe where content comes from, Cases are what the content is
matched against, and Knowledge is what the pipeline writes back. Records are
scoped to a workspace by the repository, not by a field on the record.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_source_id() -> str:
    return str(uuid.uuid4())


def generate_knowledge_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Enums
# ============================================================================

class SourceType(str, Enum):
    """Kinds of external content origins"""
    NOTION_DB = "notion_db"
    NOTION_PAGE = "notion_page"
    SLACK = "slack"
    GITHUB = "github"


class CaseStatus(str, Enum):
    """Case lifecycle status; only OPEN cases take part in compilation"""
    OPEN = "open"
    CLOSED = "closed"


# ============================================================================
# Source configuration variants
# ============================================================================

class NotionDBConfig(BaseModel):
    """Notion database source"""
    database_id: str
    database_title: str = ""
    database_url: str = ""


class NotionPageConfig(BaseModel):
    """Notion page source; child pages are followed when recursive"""
    page_id: str
    page_title: str = ""
    page_url: str = ""
    recursive: bool = False
    max_depth: int = Field(default=0, ge=0)


class SlackChannel(BaseModel):
    """Slack channel; name is only a display fallback"""
    id: str
    name: str = ""


class SlackConfig(BaseModel):
    channels: List[SlackChannel] = Field(default_factory=list)


class GitHubRepository(BaseModel):
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class GitHubConfig(BaseModel):
    repositories: List[GitHubRepository] = Field(default_factory=list)


SourceConfig = Union[NotionDBConfig, NotionPageConfig, SlackConfig, GitHubConfig]


# ============================================================================
# Records
# ============================================================================

class Source(BaseModel):
    """
    A configured content origin.

    Only the config field matching source_type is meaningful. A source whose
    matching config is missing is kept as-is (it may have been created before
    its config was filled in) and is skipped at compile time.
    """
    id: str = Field(default_factory=generate_source_id)
    name: str = ""
    source_type: SourceType
    description: str = ""
    enabled: bool = True
    notion_db_config: Optional[NotionDBConfig] = None
    notion_page_config: Optional[NotionPageConfig] = None
    slack_config: Optional[SlackConfig] = None
    github_config: Optional[GitHubConfig] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def config(self) -> Optional[SourceConfig]:
        """The configuration payload matching source_type, or None"""
        return {
            SourceType.NOTION_DB: self.notion_db_config,
            SourceType.NOTION_PAGE: self.notion_page_config,
            SourceType.SLACK: self.slack_config,
            SourceType.GITHUB: self.github_config,
        }.get(self.source_type)


class Case(BaseModel):
    """A case that knowledge can be linked to"""
    id: int
    title: str = ""
    description: str = ""
    status: CaseStatus = CaseStatus.OPEN
    slack_channel_id: str = ""

    @property
    def is_open(self) -> bool:
        return self.status == CaseStatus.OPEN


class Knowledge(BaseModel):
    """
    A case-linked finding extracted from one source document.

    If a document relates to several cases, one Knowledge is created per case.
    """
    id: str = ""
    case_id: int
    source_id: str
    source_urls: List[str] = Field(default_factory=list)
    title: str
    summary: str = ""
    embedding: List[float] = Field(default_factory=list)
    sourced_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SourceDocument(BaseModel):
    """Markdown rendering of one fetched item plus its citations. Never persisted."""
    source_id: str
    source_urls: List[str] = Field(default_factory=list)
    sourced_at: datetime
    content: str


class ExtractionInput(BaseModel):
    """What the extraction oracle is asked about"""
    cases: List[Case]
    source_data: SourceDocument
    prompt: str = ""


class ExtractionResult(BaseModel):
    """One knowledge candidate returned by the extraction oracle"""
    case_id: int
    title: str
    summary: str = ""
    embedding: List[float] = Field(default_factory=list)
