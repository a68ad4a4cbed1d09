"""
Provider Clients

Concrete Slack, Notion and GitHub services used outside of tests.
"""

from .github import GitHubRestClient
from .notion import NotionRestClient
from .slack import SlackWebClient

__all__ = [
    "GitHubRestClient",
    "NotionRestClient",
    "SlackWebClient",
]
