"""
GitHub REST Client

GitHubService over the GitHub REST API with httpx. Items are found with the
issue search endpoint, oldest first, and enriched with their comments (and
reviews for pull requests) before being yielded.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

import httpx

from ...common.errors import FetchError
from ..interfaces import GitHubService
from ..sources.github import Comment, Issue, IssueWithComments, PullRequest, Review

logger = logging.getLogger("harvest.compiler.clients.github")

GITHUB_API_URL = "https://api.github.com"
SEARCH_PAGE_SIZE = 50
LIST_PAGE_SIZE = 100


def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _search_time(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _login(obj: Optional[Dict[str, Any]]) -> str:
    return (obj or {}).get("login", "")


def _labels(item: Dict[str, Any]) -> List[str]:
    return [label.get("name", "") for label in item.get("labels", []) if isinstance(label, dict)]


class GitHubRestClient(GitHubService):

    def __init__(
        self,
        token: str = "",
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        if client is None:
            headers = {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
            if token:
                headers["Authorization"] = f"Bearer {token}"
            client = httpx.Client(base_url=base_url, timeout=httpx.Timeout(timeout), headers=headers)
        self._http = client

    def close(self) -> None:
        self._http.close()

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            resp = self._http.get(url, params=params)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise FetchError("GitHub API request failed", url=url) from e
        return resp

    def _get_all(self, url: str) -> List[Dict[str, Any]]:
        """Every item of a list endpoint, following Link: rel=next"""
        items: List[Dict[str, Any]] = []
        next_url: Optional[str] = url
        params: Optional[Dict[str, Any]] = {"per_page": LIST_PAGE_SIZE}
        while next_url:
            resp = self._get(next_url, params=params)
            items.extend(resp.json())
            next_url = resp.links.get("next", {}).get("url")
            params = None  # the next link already carries them
        return items

    def _search(self, query: str, sort: str) -> Iterator[Dict[str, Any]]:
        next_url: Optional[str] = "/search/issues"
        params: Optional[Dict[str, Any]] = {
            "q": query,
            "sort": sort,
            "order": "asc",
            "per_page": SEARCH_PAGE_SIZE,
        }
        while next_url:
            resp = self._get(next_url, params=params)
            yield from resp.json().get("items", [])
            next_url = resp.links.get("next", {}).get("url")
            params = None

    def _comments(self, owner: str, repo: str, number: int) -> List[Comment]:
        return [
            Comment(
                author=_login(c.get("user")),
                body=c.get("body") or "",
                created_at=_parse_time(c.get("created_at")),
                url=c.get("html_url", ""),
            )
            for c in self._get_all(f"/repos/{owner}/{repo}/issues/{number}/comments")
        ]

    def _reviews(self, owner: str, repo: str, number: int) -> List[Review]:
        return [
            Review(
                author=_login(r.get("user")),
                body=r.get("body") or "",
                state=r.get("state", ""),
                created_at=_parse_time(r.get("submitted_at")),
            )
            for r in self._get_all(f"/repos/{owner}/{repo}/pulls/{number}/reviews")
        ]

    # ------------------------------------------------------------------
    # GitHubService
    # ------------------------------------------------------------------

    def fetch_recent_pull_requests(
        self, owner: str, repo: str, since: datetime,
    ) -> Iterator[Tuple[Optional[PullRequest], Optional[Exception]]]:
        query = f"repo:{owner}/{repo} is:pr created:>={_search_time(since)}"
        try:
            for item in self._search(query, sort="created"):
                number = item["number"]
                yield PullRequest(
                    number=number,
                    title=item.get("title", ""),
                    body=item.get("body") or "",
                    author=_login(item.get("user")),
                    state=item.get("state", ""),
                    url=item.get("html_url", ""),
                    created_at=_parse_time(item.get("created_at")),
                    labels=_labels(item),
                    comments=self._comments(owner, repo, number),
                    reviews=self._reviews(owner, repo, number),
                ), None
        except FetchError as e:
            yield None, e

    def fetch_recent_issues(
        self, owner: str, repo: str, since: datetime,
    ) -> Iterator[Tuple[Optional[Issue], Optional[Exception]]]:
        query = f"repo:{owner}/{repo} is:issue created:>={_search_time(since)}"
        try:
            for item in self._search(query, sort="created"):
                number = item["number"]
                yield Issue(
                    number=number,
                    title=item.get("title", ""),
                    body=item.get("body") or "",
                    author=_login(item.get("user")),
                    state=item.get("state", ""),
                    url=item.get("html_url", ""),
                    created_at=_parse_time(item.get("created_at")),
                    labels=_labels(item),
                    comments=self._comments(owner, repo, number),
                ), None
        except FetchError as e:
            yield None, e

    def fetch_updated_issue_comments(
        self, owner: str, repo: str, since: datetime, exclude_numbers: Set[int],
    ) -> Iterator[Tuple[Optional[IssueWithComments], Optional[Exception]]]:
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)

        query = f"repo:{owner}/{repo} updated:>={_search_time(since)}"
        try:
            for item in self._search(query, sort="updated"):
                number = item["number"]
                if number in exclude_numbers:
                    continue
                # updated_at also moves on edits and label changes
                if not item.get("comments"):
                    continue

                comments = self._comments(owner, repo, number)
                if not any(c.created_at >= since for c in comments):
                    continue

                yield IssueWithComments(
                    number=number,
                    title=item.get("title", ""),
                    body=item.get("body") or "",
                    author=_login(item.get("user")),
                    state=item.get("state", ""),
                    url=item.get("html_url", ""),
                    created_at=_parse_time(item.get("created_at")),
                    since=since,
                    is_pr="pull_request" in item,
                    comments=comments,
                ), None
        except FetchError as e:
            yield None, e
