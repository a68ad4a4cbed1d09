"""
Notion REST Client

NotionService over the public Notion API with httpx. Pages are yielded
lazily with their full block tree; closing the generator stops any further
requests.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

import httpx

from ...common.errors import FetchError
from ..interfaces import NotionService
from ..sources.notion import NotionBlock, NotionPage

logger = logging.getLogger("harvest.compiler.clients.notion")

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
PAGE_SIZE = 100

PageResult = Tuple[Optional[NotionPage], Optional[Exception]]


def _parse_time(value: str) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def extract_page_title(properties: Dict[str, Any]) -> str:
    """Plain text of the page's title property"""
    for prop in properties.values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            return "".join(t.get("plain_text", "") for t in prop.get("title", []))
    return ""


class NotionRestClient(NotionService):

    def __init__(
        self,
        token: str,
        base_url: str = NOTION_API_URL,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        if client is None:
            if not token:
                raise ValueError("Notion API token is not set")
            client = httpx.Client(
                base_url=base_url,
                timeout=httpx.Timeout(timeout),
                headers={
                    "Authorization": f"Bearer {token}",
                    "Notion-Version": NOTION_VERSION,
                },
            )
        self._http = client

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = self._http.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise FetchError("Notion API request failed", method=method, path=path) from e
        return resp.json()

    # ------------------------------------------------------------------
    # NotionService
    # ------------------------------------------------------------------

    def query_updated_pages(self, database_id: str, since: datetime) -> Iterator[PageResult]:
        cursor = None

        while True:
            body: Dict[str, Any] = {
                "filter": {
                    "timestamp": "last_edited_time",
                    "last_edited_time": {"on_or_after": since.isoformat()},
                },
                "page_size": PAGE_SIZE,
            }
            if cursor:
                body["start_cursor"] = cursor

            try:
                resp = self._request("POST", f"/databases/{database_id}/query", json=body)
            except FetchError as e:
                yield None, e
                return

            for page_obj in resp.get("results", []):
                try:
                    page = self._page_details(page_obj)
                except FetchError as e:
                    yield None, e
                    continue
                yield page, None

            if not resp.get("has_more"):
                return
            cursor = resp.get("next_cursor")

    def query_updated_pages_from_page(
        self,
        page_id: str,
        since: datetime,
        recursive: bool,
        max_depth: int,
    ) -> Iterator[PageResult]:
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        yield from self._walk_page(page_id, since, recursive, max_depth, 0)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _walk_page(
        self,
        page_id: str,
        since: datetime,
        recursive: bool,
        max_depth: int,
        depth: int,
    ) -> Iterator[PageResult]:
        """The page if edited since `since`, then its child pages; max_depth 0 is unlimited"""
        try:
            page_obj = self._request("GET", f"/pages/{page_id}")
        except FetchError as e:
            yield None, e
            return

        if _parse_time(page_obj.get("last_edited_time", "")) >= since:
            try:
                yield self._page_details(page_obj), None
            except FetchError as e:
                yield None, e
                return

        if not recursive:
            return
        if max_depth > 0 and depth >= max_depth:
            return

        try:
            child_ids = self._child_page_ids(page_id)
        except FetchError as e:
            yield None, e
            return

        for child_id in child_ids:
            yield from self._walk_page(child_id, since, recursive, max_depth, depth + 1)

    def _page_details(self, page_obj: Dict[str, Any]) -> NotionPage:
        page_id = page_obj.get("id", "")
        properties = page_obj.get("properties") or {}
        return NotionPage(
            id=page_id,
            url=page_obj.get("url", ""),
            last_edited_time=_parse_time(page_obj.get("last_edited_time", "")),
            created_time=_parse_time(page_obj.get("created_time", "")),
            title=extract_page_title(properties),
            properties=properties,
            blocks=self._fetch_blocks(page_id),
        )

    def _iter_children(self, block_id: str) -> Iterator[Dict[str, Any]]:
        cursor = None
        while True:
            params: Dict[str, Any] = {"page_size": PAGE_SIZE}
            if cursor:
                params["start_cursor"] = cursor
            resp = self._request("GET", f"/blocks/{block_id}/children", params=params)
            yield from resp.get("results", [])
            if not resp.get("has_more"):
                return
            cursor = resp.get("next_cursor")

    def _fetch_blocks(self, block_id: str) -> List[NotionBlock]:
        blocks = []
        for data in self._iter_children(block_id):
            children: List[NotionBlock] = []
            # child pages are separate documents
            if data.get("has_children") and data.get("type") != "child_page":
                children = self._fetch_blocks(data["id"])
            blocks.append(NotionBlock.from_api(data, children))
        return blocks

    def _child_page_ids(self, block_id: str) -> List[str]:
        return [b["id"] for b in self._iter_children(block_id) if b.get("type") == "child_page"]
