"""
Harvest Common Module

Shared infrastructure: configuration, schemas, LLM and embedding clients.
"""

from .config import HarvestConfig, load_config
from .embedding_service import EmbeddingService, get_embedding_service
from .errors import HarvestError, CompileError, ConfigError, ExtractionError, FetchError, RepositoryError
from .llm_client import LLMClient

__all__ = [
    "HarvestConfig",
    "load_config",
    "EmbeddingService",
    "get_embedding_service",
    "HarvestError",
    "CompileError",
    "ConfigError",
    "ExtractionError",
    "FetchError",
    "RepositoryError",
    "LLMClient",
]
