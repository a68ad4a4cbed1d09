"""
GitHub Source

Each repository is read in three phases:
- 1a: pull requests created since the watermark
- 1b: issues created since the watermark
- 2:  issues/PRs with comments since the watermark, minus everything seen in 1a/1b

Numbers captured in phase 1 are passed to phase 2 as an exclusion set so an
item that was both opened and commented on in the same window is processed
once. Issue and PR numbers share one sequence per repository, so a single
set covers both.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from ...common.schemas import GitHubRepository, Source, SourceDocument, SourceType
from ..interfaces import GitHubService
from ..recorder import CompileContext, KnowledgeRecorder
from ..results import SourceStats
from .base import SourceProcessor

logger = logging.getLogger("harvest.compiler.sources.github")

BODY_TRUNCATE_CHARS = 2000
TRUNCATION_MARKER = "...(truncated)"


# ============================================================================
# Native types
# ============================================================================

@dataclass
class Comment:
    author: str
    body: str
    created_at: datetime
    url: str = ""


@dataclass
class Review:
    author: str
    body: str
    state: str
    created_at: datetime


@dataclass
class PullRequest:
    number: int
    title: str
    body: str
    author: str
    state: str
    url: str
    created_at: datetime
    labels: List[str] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    reviews: List[Review] = field(default_factory=list)


@dataclass
class Issue:
    number: int
    title: str
    body: str
    author: str
    state: str
    url: str
    created_at: datetime
    labels: List[str] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)


@dataclass
class IssueWithComments:
    """
    An issue or PR that received comments in the window.

    Carries the full comment history; comments created at or after `since`
    are the new ones.
    """
    number: int
    title: str
    body: str
    author: str
    state: str
    url: str
    created_at: datetime
    since: datetime
    is_pr: bool = False
    comments: List[Comment] = field(default_factory=list)


# ============================================================================
# Markdown rendering
# ============================================================================

def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _fmt(dt: datetime) -> str:
    return _utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def truncate_body(body: str, limit: int = BODY_TRUNCATE_CHARS) -> str:
    if len(body) <= limit:
        return body
    return body[:limit] + TRUNCATION_MARKER


def _header(kind: str, number: int, title: str, repo: GitHubRepository) -> List[str]:
    return [f"# {kind} #{number}: {title}", "", f"- Repository: {repo.full_name}"]


def _labels_line(labels: List[str]) -> str:
    return f"- Labels: {', '.join(labels) if labels else '(none)'}"


def _comment_lines(comments: List[Comment], since: Optional[datetime] = None) -> List[str]:
    lines = ["", "## Comments"]
    if not comments:
        lines.append("(no comments)")
        return lines

    for c in comments:
        marker = ""
        if since is not None and _utc(c.created_at) >= _utc(since):
            marker = "[NEW] "
        lines.append("")
        lines.append(f"### {marker}{c.author} at {_fmt(c.created_at)}")
        lines.append(c.body)
    return lines


def build_pull_request_markdown(pr: PullRequest, repo: GitHubRepository) -> str:
    lines = _header("Pull Request", pr.number, pr.title, repo)
    lines += [
        f"- Author: {pr.author}",
        f"- State: {pr.state}",
        f"- Created: {_fmt(pr.created_at)}",
        _labels_line(pr.labels),
        "",
        "## Description",
        pr.body or "(no description)",
    ]
    lines += _comment_lines(pr.comments)

    lines += ["", "## Reviews"]
    if not pr.reviews:
        lines.append("(no reviews)")
    for r in pr.reviews:
        lines.append("")
        lines.append(f"### {r.author} ({r.state}) at {_fmt(r.created_at)}")
        if r.body:
            lines.append(r.body)

    return "\n".join(lines) + "\n"


def build_issue_markdown(issue: Issue, repo: GitHubRepository) -> str:
    lines = _header("Issue", issue.number, issue.title, repo)
    lines += [
        f"- Author: {issue.author}",
        f"- State: {issue.state}",
        f"- Created: {_fmt(issue.created_at)}",
        _labels_line(issue.labels),
        "",
        "## Description",
        issue.body or "(no description)",
    ]
    lines += _comment_lines(issue.comments)
    return "\n".join(lines) + "\n"


def build_discussion_markdown(
    item: IssueWithComments,
    repo: GitHubRepository,
    body_limit: int = BODY_TRUNCATE_CHARS,
) -> str:
    """
    Render an issue/PR with new comments.

    The description is truncated; comments at or after `item.since` are
    marked [NEW] so the extractor can tell fresh discussion from context.
    """
    kind = "Pull Request" if item.is_pr else "Issue"
    lines = _header(kind, item.number, item.title, repo)
    lines += [
        f"- Author: {item.author}",
        f"- State: {item.state}",
        f"- Created: {_fmt(item.created_at)}",
        f"- New comments since: {_fmt(item.since)}",
        "",
        "## Description",
        truncate_body(item.body, body_limit) if item.body else "(no description)",
    ]
    lines += _comment_lines(item.comments, since=item.since)
    return "\n".join(lines) + "\n"


def _latest_activity(item: IssueWithComments) -> datetime:
    times = [_utc(c.created_at) for c in item.comments]
    return max(times) if times else _utc(item.created_at)


# ============================================================================
# Processor
# ============================================================================

def exclude_processed(
    items: Iterable[Tuple[Optional[IssueWithComments], Optional[Exception]]],
    exclude_numbers: Set[int],
) -> Iterator[Tuple[Optional[IssueWithComments], Optional[Exception]]]:
    """Drop items whose number was already processed, passing errors through"""
    iterator = iter(items)
    try:
        for item, err in iterator:
            if err is None and item is not None and item.number in exclude_numbers:
                logger.debug("Skipping already processed #%d", item.number)
                continue
            yield item, err
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()


class GitHubProcessor(SourceProcessor):
    """One document per PR, issue, or commented-on discussion"""

    source_type = SourceType.GITHUB

    def __init__(
        self,
        recorder: KnowledgeRecorder,
        github: GitHubService,
        body_truncate_chars: int = BODY_TRUNCATE_CHARS,
    ):
        super().__init__(recorder)
        self._github = github
        self._body_limit = body_truncate_chars

    def accepts(self, source: Source) -> bool:
        return super().accepts(source) and bool(source.github_config.repositories)

    def process(self, ctx: CompileContext, source: Source) -> SourceStats:
        repositories = source.github_config.repositories
        logger.info(
            "Processing GitHub source (workspace=%s, source=%s, name=%r, repositories=%d)",
            ctx.workspace_id, source.id, source.name, len(repositories),
        )

        stats = SourceStats()
        for repo in repositories:
            self._process_repository(ctx, source, repo, stats)
        return stats

    def _process_repository(
        self,
        ctx: CompileContext,
        source: Source,
        repo: GitHubRepository,
        stats: SourceStats,
    ) -> None:
        processed_numbers: Set[int] = set()

        def track(item):
            processed_numbers.add(item.number)

        # Phase 1a
        if not self.consume(
            ctx,
            stats,
            self._github.fetch_recent_pull_requests(repo.owner, repo.repo, ctx.since),
            lambda pr: SourceDocument(
                source_id=source.id,
                source_urls=[pr.url],
                sourced_at=pr.created_at,
                content=build_pull_request_markdown(pr, repo),
            ),
            on_item=track,
        ):
            logger.warning("Pull request phase aborted (workspace=%s, repo=%s)", ctx.workspace_id, repo.full_name)

        # Phase 1b
        if not self.consume(
            ctx,
            stats,
            self._github.fetch_recent_issues(repo.owner, repo.repo, ctx.since),
            lambda issue: SourceDocument(
                source_id=source.id,
                source_urls=[issue.url],
                sourced_at=issue.created_at,
                content=build_issue_markdown(issue, repo),
            ),
            on_item=track,
        ):
            logger.warning("Issue phase aborted (workspace=%s, repo=%s)", ctx.workspace_id, repo.full_name)

        # Phase 2
        exclude = set(processed_numbers)
        if not self.consume(
            ctx,
            stats,
            exclude_processed(
                self._github.fetch_updated_issue_comments(repo.owner, repo.repo, ctx.since, exclude),
                exclude,
            ),
            lambda item: SourceDocument(
                source_id=source.id,
                source_urls=[item.url],
                sourced_at=_latest_activity(item),
                content=build_discussion_markdown(item, repo, self._body_limit),
            ),
        ):
            logger.warning("Comment phase aborted (workspace=%s, repo=%s)", ctx.workspace_id, repo.full_name)

        logger.debug(
            "GitHub repository done (workspace=%s, repo=%s, phase1_items=%d)",
            ctx.workspace_id, repo.full_name, len(processed_numbers),
        )
