"""
Configuration Management for Harvest

Loads configuration from ~/.harvest/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger("harvest.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".harvest"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
STORE_PATH = CONFIG_DIR / "store.json"


@dataclass
class LLMConfig:
    """LLM provider configuration for the extraction step"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    max_tokens: int = 2048
    timeout: float = 60.0


@dataclass
class EmbeddingConfig:
    """Embedding model configuration (fastembed, on-device)"""
    model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"


@dataclass
class SlackConfig:
    """Slack API access and notification settings"""
    bot_token: str = ""
    base_url: str = ""  # Web UI base URL used for case deep links
    thread_lookback_days: int = 30  # how far back revived threads are looked up


@dataclass
class NotionConfig:
    """Notion API access"""
    api_token: str = ""


@dataclass
class GitHubConfig:
    """GitHub API access"""
    token: str = ""
    api_url: str = "https://api.github.com"


@dataclass
class CompileConfig:
    """Compile run defaults"""
    duration: str = "24h"
    page_size: int = 100
    body_truncate_chars: int = 2000
    store_path: str = str(STORE_PATH)


@dataclass
class WorkspaceConfig:
    """A tenant workspace and its optional custom compile prompt"""
    id: str = ""
    name: str = ""
    compile_prompt: str = ""


@dataclass
class HarvestConfig:
    """Main Harvest configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    notion: NotionConfig = field(default_factory=NotionConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    compile: CompileConfig = field(default_factory=CompileConfig)
    workspaces: List[WorkspaceConfig] = field(default_factory=list)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "anthropic"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.0-flash-exp"),
        max_tokens=llm_data.get("max_tokens", 2048),
        timeout=llm_data.get("timeout", 60.0),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        model=embedding_data.get("model", "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"),
    )


def _parse_slack_config(data: dict) -> SlackConfig:
    """Parse slack section from config dict"""
    slack_data = data.get("slack", {})
    return SlackConfig(
        bot_token=slack_data.get("bot_token", ""),
        base_url=slack_data.get("base_url", "").rstrip("/"),
        thread_lookback_days=slack_data.get("thread_lookback_days", 30),
    )


def _parse_compile_config(data: dict) -> CompileConfig:
    """Parse compile section from config dict"""
    compile_data = data.get("compile", {})
    return CompileConfig(
        duration=compile_data.get("duration", "24h"),
        page_size=compile_data.get("page_size", 100),
        body_truncate_chars=compile_data.get("body_truncate_chars", 2000),
        store_path=compile_data.get("store_path", str(STORE_PATH)),
    )


def _parse_workspaces(data: dict) -> List[WorkspaceConfig]:
    """Parse workspaces list; entries without an id are dropped"""
    workspaces = []
    for ws in data.get("workspaces", []):
        ws_id = ws.get("id", "")
        if not ws_id:
            logger.warning("Skipping workspace entry without id: %s", ws)
            continue
        workspaces.append(WorkspaceConfig(
            id=ws_id,
            name=ws.get("name", ws_id),
            compile_prompt=ws.get("compile_prompt", ""),
        ))
    return workspaces


def load_config() -> HarvestConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.harvest/config.json)
    3. Default values
    """
    config = HarvestConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
            config.slack = _parse_slack_config(data)
            config.notion = NotionConfig(api_token=data.get("notion", {}).get("api_token", ""))
            config.github = GitHubConfig(
                token=data.get("github", {}).get("token", ""),
                api_url=data.get("github", {}).get("api_url", "https://api.github.com"),
            )
            config.compile = _parse_compile_config(data)
            config.workspaces = _parse_workspaces(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Secrets and endpoints; track which ones came from the environment
    _env_map = {
        "ANTHROPIC_API_KEY": ("llm", "anthropic_api_key"),
        "ANTHROPIC_MODEL": ("llm", "anthropic_model"),
        "OPENAI_API_KEY": ("llm", "openai_api_key"),
        "OPENAI_MODEL": ("llm", "openai_model"),
        "GOOGLE_API_KEY": ("llm", "google_api_key"),
        "GEMINI_API_KEY": ("llm", "google_api_key"),
        "GOOGLE_MODEL": ("llm", "google_model"),
        "HARVEST_LLM_PROVIDER": ("llm", "provider"),
        "SLACK_BOT_TOKEN": ("slack", "bot_token"),
        "HARVEST_BASE_URL": ("slack", "base_url"),
        "NOTION_API_TOKEN": ("notion", "api_token"),
        "GITHUB_TOKEN": ("github", "token"),
        "HARVEST_COMPILE_DURATION": ("compile", "duration"),
        "HARVEST_STORE_PATH": ("compile", "store_path"),
    }
    for env_var, (section, attr) in _env_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(getattr(config, section), attr, val)
            config._env_sourced_keys.add(f"{section}.{attr}")

    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    return config


def save_config(config: HarvestConfig) -> None:
    """Save configuration to file.

    Secret fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    _secret_fields = {
        "llm.anthropic_api_key", "llm.openai_api_key", "llm.google_api_key",
        "slack.bot_token", "notion.api_token", "github.token",
    }

    def _secret(section: str, attr: str) -> str:
        key = f"{section}.{attr}"
        if key in _secret_fields and key in env_sourced:
            return ""
        return getattr(getattr(config, section), attr)

    data = {
        "llm": {
            "provider": config.llm.provider,
            "anthropic_api_key": _secret("llm", "anthropic_api_key"),
            "anthropic_model": config.llm.anthropic_model,
            "openai_api_key": _secret("llm", "openai_api_key"),
            "openai_model": config.llm.openai_model,
            "google_api_key": _secret("llm", "google_api_key"),
            "google_model": config.llm.google_model,
            "max_tokens": config.llm.max_tokens,
            "timeout": config.llm.timeout,
        },
        "embedding": {
            "model": config.embedding.model,
        },
        "slack": {
            "bot_token": _secret("slack", "bot_token"),
            "base_url": config.slack.base_url,
            "thread_lookback_days": config.slack.thread_lookback_days,
        },
        "notion": {
            "api_token": _secret("notion", "api_token"),
        },
        "github": {
            "token": _secret("github", "token"),
            "api_url": config.github.api_url,
        },
        "compile": {
            "duration": config.compile.duration,
            "page_size": config.compile.page_size,
            "body_truncate_chars": config.compile.body_truncate_chars,
            "store_path": config.compile.store_path,
        },
        "workspaces": [
            {"id": ws.id, "name": ws.name, "compile_prompt": ws.compile_prompt}
            for ws in config.workspaces
        ],
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
