"""
Notion Sources

Notion pages as documents: the block tree is rendered to markdown and each
updated page becomes one SourceDocument citing the page URL.

Two source types share the same per-page flow:
- notion_db:   pages of a database edited since the watermark
- notion_page: a page and (optionally) its child pages, depth-limited
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ...common.schemas import Source, SourceDocument, SourceType
from ..interfaces import NotionService
from ..recorder import CompileContext, KnowledgeRecorder
from ..results import SourceStats
from .base import SourceProcessor

logger = logging.getLogger("harvest.compiler.sources.notion")

_HEX_ID = re.compile(r"^[0-9a-f]{32}$")


# ============================================================================
# Native types
# ============================================================================

@dataclass
class NotionBlock:
    """
    A Notion block with its children already fetched.

    `content` is the type-specific object from the API, e.g. for a
    paragraph block the value of block["paragraph"].
    """
    id: str
    type: str
    content: Dict[str, Any] = field(default_factory=dict)
    children: List["NotionBlock"] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any], children: Optional[List["NotionBlock"]] = None) -> "NotionBlock":
        block_type = data.get("type", "")
        return cls(
            id=data.get("id", ""),
            type=block_type,
            content=data.get(block_type) or {},
            children=children or [],
        )


@dataclass
class NotionPage:
    id: str
    url: str
    last_edited_time: datetime
    created_time: Optional[datetime] = None
    title: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)
    blocks: List[NotionBlock] = field(default_factory=list)

    def to_markdown(self) -> str:
        body = blocks_to_markdown(self.blocks)
        if not self.title:
            return body
        return f"# {self.title}\n\n{body}"


# ============================================================================
# Markdown rendering
# ============================================================================

def format_rich_text(item: Dict[str, Any]) -> str:
    """One rich text element with its annotations and link applied"""
    text = item.get("plain_text", "")
    annotations = item.get("annotations") or {}

    if annotations.get("bold"):
        text = f"**{text}**"
    if annotations.get("italic"):
        text = f"*{text}*"
    if annotations.get("code"):
        text = f"`{text}`"
    if annotations.get("strikethrough"):
        text = f"~~{text}~~"

    href = item.get("href")
    if href:
        text = f"[{text}]({href})"

    return text


def extract_rich_text(content: Any) -> str:
    if not content:
        return ""
    if isinstance(content, dict):
        items = content.get("rich_text", content.get("text", []))
    else:
        items = content
    if not isinstance(items, list):
        return ""
    return "".join(format_rich_text(i) for i in items if isinstance(i, dict))


def blocks_to_markdown(blocks: List[NotionBlock]) -> str:
    lines: List[str] = []
    _render_blocks(blocks, 0, lines)
    return "".join(lines)


def _render_blocks(blocks: List[NotionBlock], indent: int, out: List[str]) -> None:
    pad = "  " * indent
    counter = 0

    for i, block in enumerate(blocks):
        if block.type == "numbered_list_item":
            counter = counter + 1 if i > 0 and blocks[i - 1].type == "numbered_list_item" else 1
        else:
            counter = 0

        text = extract_rich_text(block.content)

        if block.type == "paragraph":
            if text:
                out.append(f"{pad}{text}\n")
        elif block.type in ("heading_1", "heading_2", "heading_3"):
            level = int(block.type[-1])
            out.append(f"{pad}{'#' * level} {text}\n")
        elif block.type == "bulleted_list_item":
            out.append(f"{pad}- {text}\n")
        elif block.type == "numbered_list_item":
            out.append(f"{pad}{counter}. {text}\n")
        elif block.type == "code":
            language = block.content.get("language", "")
            code = "\n".join(pad + line for line in text.split("\n"))
            out.append(f"{pad}```{language}\n{code}\n{pad}```\n")
        elif block.type in ("quote", "callout"):
            out.append(f"{pad}> {text}\n")
        elif block.type == "divider":
            out.append(f"{pad}---\n")
        elif block.type == "toggle":
            out.append(f"{pad}<details><summary>{text}</summary>\n")
            _render_blocks(block.children, indent + 1, out)
            out.append(f"{pad}</details>\n")
            continue
        elif block.type == "to_do":
            mark = "x" if block.content.get("checked") else " "
            out.append(f"{pad}- [{mark}] {text}\n")
        elif text:
            out.append(f"{pad}{text}\n")

        if block.children:
            _render_blocks(block.children, indent + 1, out)


# ============================================================================
# IDs
# ============================================================================

def parse_notion_id(value: str) -> str:
    """
    Normalize a Notion ID or URL to the dashed UUID form the API expects.

    Accepts a 32-hex id (with or without dashes) or a notion.so URL whose
    last path segment ends with the id.

    Raises:
        ValueError: if no id can be found
    """
    value = (value or "").strip()
    if not value:
        raise ValueError("invalid Notion ID: empty")

    if value.startswith(("http://", "https://")):
        parsed = urlparse(value)
        if parsed.hostname not in ("www.notion.so", "notion.so"):
            raise ValueError(f"invalid Notion ID: not a notion.so URL: {value}")
        segment = parsed.path.rstrip("/").split("/")[-1]
        clean = segment.replace("-", "").lower()
        candidate = clean[-32:] if len(clean) >= 32 else ""
    else:
        candidate = value.replace("-", "").lower()

    if not _HEX_ID.match(candidate):
        raise ValueError(f"invalid Notion ID: {value}")

    h = candidate
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


# ============================================================================
# Processors
# ============================================================================

def build_page_document(source_id: str, page: NotionPage) -> SourceDocument:
    return SourceDocument(
        source_id=source_id,
        source_urls=[page.url] if page.url else [],
        sourced_at=page.last_edited_time,
        content=page.to_markdown(),
    )


class NotionDBProcessor(SourceProcessor):
    """One document per page of a Notion database"""

    source_type = SourceType.NOTION_DB

    def __init__(self, recorder: KnowledgeRecorder, notion: NotionService):
        super().__init__(recorder)
        self._notion = notion

    def process(self, ctx: CompileContext, source: Source) -> SourceStats:
        db_id = source.notion_db_config.database_id
        logger.info(
            "Processing Notion source (workspace=%s, source=%s, name=%r, database=%s)",
            ctx.workspace_id, source.id, source.name, db_id,
        )

        stats = SourceStats()
        self.consume(
            ctx,
            stats,
            self._notion.query_updated_pages(db_id, ctx.since),
            lambda page: build_page_document(source.id, page),
        )
        return stats


class NotionPageProcessor(SourceProcessor):
    """One document per page under a root page, following child pages when recursive"""

    source_type = SourceType.NOTION_PAGE

    def __init__(self, recorder: KnowledgeRecorder, notion: NotionService):
        super().__init__(recorder)
        self._notion = notion

    def process(self, ctx: CompileContext, source: Source) -> SourceStats:
        cfg = source.notion_page_config
        logger.info(
            "Processing Notion page source (workspace=%s, source=%s, page=%s, recursive=%s, max_depth=%d)",
            ctx.workspace_id, source.id, cfg.page_id, cfg.recursive, cfg.max_depth,
        )

        stats = SourceStats()
        self.consume(
            ctx,
            stats,
            self._notion.query_updated_pages_from_page(cfg.page_id, ctx.since, cfg.recursive, cfg.max_depth),
            lambda page: build_page_document(source.id, page),
        )
        return stats
