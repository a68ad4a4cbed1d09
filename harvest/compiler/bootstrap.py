"""
Compiler wiring from HarvestConfig, shared by the CLI and the HTTP trigger.
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional

from ..common.config import HarvestConfig
from ..common.embedding_service import get_embedding_service
from ..common.errors import ConfigError
from ..common.llm_client import SUPPORTED_PROVIDERS, LLMClient
from .clients import GitHubRestClient, NotionRestClient, SlackWebClient
from .interfaces import Repository
from .llm_extractor import LLMKnowledgeExtractor
from .pipeline import Compiler
from .registry import WorkspaceRegistry
from .store import JsonRepository

logger = logging.getLogger("harvest.compiler.bootstrap")


def build_compiler(config: HarvestConfig, repository: Optional[Repository] = None) -> Compiler:
    """
    Build a Compiler with every provider the config has credentials for.

    Providers without credentials are left out; their sources are skipped.

    Raises:
        ConfigError: unsupported LLM provider
    """
    provider = (config.llm.provider or "").lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ConfigError("unsupported LLM provider", provider=config.llm.provider)

    if repository is None:
        repository = JsonRepository(Path(config.compile.store_path).expanduser())

    llm_client = LLMClient.from_config(config.llm)
    if not llm_client.is_available:
        logger.warning("LLM client not available (provider=%s); extraction will fail", llm_client.provider)

    extractor = LLMKnowledgeExtractor(
        llm_client=llm_client,
        embedding_service=get_embedding_service(config.embedding.model),
        max_tokens=config.llm.max_tokens,
        timeout=config.llm.timeout,
    )

    notion = None
    if config.notion.api_token:
        notion = NotionRestClient(config.notion.api_token)
        logger.info("Notion service enabled")
    else:
        logger.warning("Notion API token not configured")

    slack = None
    if config.slack.bot_token:
        slack = SlackWebClient(
            config.slack.bot_token,
            thread_lookback=timedelta(days=config.slack.thread_lookback_days),
        )
        logger.info("Slack service enabled")
    else:
        logger.warning("Slack bot token not configured")

    # Public repositories are readable without a token
    github = GitHubRestClient(token=config.github.token, base_url=config.github.api_url)

    registry = WorkspaceRegistry.from_config(config)
    if not len(registry):
        logger.warning("No workspaces configured")

    return Compiler(
        repository=repository,
        registry=registry,
        knowledge_service=extractor,
        notion=notion,
        slack=slack,
        github=github,
        base_url=config.slack.base_url,
        page_size=config.compile.page_size,
        body_truncate_chars=config.compile.body_truncate_chars,
    )
