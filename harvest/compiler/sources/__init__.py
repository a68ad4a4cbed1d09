"""
Source Processors

One processor per SourceType. Each fetches native items, renders them to
markdown documents and hands them to the KnowledgeRecorder.
"""

from .base import SourceProcessor
from .github import GitHubProcessor
from .notion import NotionDBProcessor, NotionPageProcessor, parse_notion_id
from .slack import SlackProcessor, build_slack_source_urls, build_threaded_markdown

__all__ = [
    "SourceProcessor",
    "GitHubProcessor",
    "NotionDBProcessor",
    "NotionPageProcessor",
    "SlackProcessor",
    "parse_notion_id",
    "build_slack_source_urls",
    "build_threaded_markdown",
]
