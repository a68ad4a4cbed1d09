"""
Collaborator Interfaces

Abstract base classes for everything the compile pipeline talks to but does
not own: persistence, the extraction oracle, and the Notion, Slack and
GitHub providers.

Lazy fetches are generators of (item, error) pairs. Exactly one side of the
pair is set. Consumers may stop early with `break`; implementations must not
rely on being drained.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Set, Tuple

from ..common.schemas import Case, ExtractionInput, ExtractionResult, Knowledge, Source

if TYPE_CHECKING:
    from .sources.github import Issue, IssueWithComments, PullRequest
    from .sources.notion import NotionPage
    from .sources.slack import SlackMessage


class Repository(ABC):
    """Workspace-scoped persistence for sources, cases and knowledge"""

    @abstractmethod
    def list_sources(self, workspace_id: str) -> List[Source]:
        pass

    @abstractmethod
    def list_open_cases(self, workspace_id: str) -> List[Case]:
        pass

    @abstractmethod
    def create_knowledge(self, workspace_id: str, knowledge: Knowledge) -> Knowledge:
        """Persist knowledge and return the stored record (with id and timestamps)"""
        pass


class KnowledgeService(ABC):
    """The extraction oracle"""

    @abstractmethod
    def extract(self, extraction_input: ExtractionInput) -> List[ExtractionResult]:
        """
        Decide which cases the document relates to.

        Returns one result per related case; an empty list when none relate.
        Raises on failure.
        """
        pass


class NotionService(ABC):

    @abstractmethod
    def query_updated_pages(
        self,
        database_id: str,
        since: datetime,
    ) -> Iterator[Tuple[Optional["NotionPage"], Optional[Exception]]]:
        """Pages of a database edited at or after `since`"""
        pass

    @abstractmethod
    def query_updated_pages_from_page(
        self,
        page_id: str,
        since: datetime,
        recursive: bool,
        max_depth: int,
    ) -> Iterator[Tuple[Optional["NotionPage"], Optional[Exception]]]:
        """The page itself and, when recursive, its child pages, edited since `since`"""
        pass


class SlackService(ABC):

    @abstractmethod
    def list_messages(
        self,
        channel_id: str,
        since: datetime,
        until: datetime,
        page_size: int,
        cursor: str = "",
    ) -> Tuple[List["SlackMessage"], str]:
        """One page of messages in [since, until); next cursor is "" on the last page"""
        pass

    @abstractmethod
    def post_message(self, channel_id: str, blocks: List[Dict[str, Any]], fallback_text: str) -> str:
        """Post Block Kit blocks and return the message timestamp"""
        pass


class GitHubService(ABC):

    @abstractmethod
    def fetch_recent_pull_requests(
        self, owner: str, repo: str, since: datetime,
    ) -> Iterator[Tuple[Optional["PullRequest"], Optional[Exception]]]:
        """PRs created since `since`, with comments and reviews"""
        pass

    @abstractmethod
    def fetch_recent_issues(
        self, owner: str, repo: str, since: datetime,
    ) -> Iterator[Tuple[Optional["Issue"], Optional[Exception]]]:
        """Issues (not PRs) created since `since`, with comments"""
        pass

    @abstractmethod
    def fetch_updated_issue_comments(
        self, owner: str, repo: str, since: datetime, exclude_numbers: Set[int],
    ) -> Iterator[Tuple[Optional["IssueWithComments"], Optional[Exception]]]:
        """Issues/PRs with comments since `since`, skipping `exclude_numbers`"""
        pass
