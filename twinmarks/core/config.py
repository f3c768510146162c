"""
Environment-driven configuration for the twinmarks index.
"""

import os
from pathlib import Path
from typing import List

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/twinmarks.db")

# Debug flag is now a function to be dynamic
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Storage and embedding providers
STORE_PROVIDER = os.getenv("STORE_PROVIDER", "sqlite")  # sqlite|memory
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "ollama")  # ollama|sentence_transformers|hash

# Oracle (Ollama) configuration
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_API_KEY = os.getenv("OLLAMA_API_KEY", "")
OLLAMA_TIMEOUT_SEC = float(os.getenv("OLLAMA_TIMEOUT_SEC", "120"))
EMBED_MODEL = os.getenv("EMBED_MODEL", "nomic-embed-text")
EMBED_FALLBACK_MODELS = [
    m.strip() for m in os.getenv("EMBED_FALLBACK_MODELS", "mxbai-embed-large,all-minilm").split(",") if m.strip()
]
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "llama3.2")
MULTIMODAL_MODEL_HINTS = ("llava", "vision", "gemma3", "minicpm-v", "qwen2.5vl")
EMBED_MAX_CHARS = 8000

# Clustering, categories and retrieval
CATEGORY_COUNT = int(os.getenv("CATEGORY_COUNT", "20"))
RAG_CATEGORY_TOP_K = int(os.getenv("RAG_CATEGORY_TOP_K", "7"))
RAG_GLOBAL_TOP_K = int(os.getenv("RAG_GLOBAL_TOP_K", "5"))
RAG_MAX_SELECTED_CATEGORIES = 3
LINK_THRESHOLD = float(os.getenv("LINK_THRESHOLD", "0.65"))
KMEANS_RANDOM_STATE = int(os.getenv("KMEANS_RANDOM_STATE", "42"))

# Record content limits
TEXT_SNIPPET_CHARS = int(os.getenv("TEXT_SNIPPET_CHARS", "200"))
UNCATEGORIZED = "uncategorized"

# Version string
VERSION = "1.0.0"

LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1", "0.0.0.0")


def get_record_store():
    """Get configured record store implementation."""
    if STORE_PROVIDER == "memory":
        from twinmarks.core.store import InMemoryRecordStore
        return InMemoryRecordStore()

    from twinmarks.core.store import SQLiteRecordStore
    return SQLiteRecordStore(DB_PATH)


def get_settings_store():
    """Get the persisted settings store matching the record store provider."""
    if STORE_PROVIDER == "memory":
        from twinmarks.core.settings import InMemorySettingsStore
        return InMemorySettingsStore()

    from twinmarks.core.settings import SQLiteSettingsStore
    return SQLiteSettingsStore(DB_PATH)


def requires_api_key(host: str = None) -> bool:
    """Remote oracle hosts need an API key; a local Ollama daemon does not."""
    host = (host or OLLAMA_HOST).lower()
    hostname = host.split("://", 1)[-1].split("/", 1)[0].rsplit(":", 1)[0].strip("[]")
    return hostname not in LOCAL_HOSTS


def get_oracle_client():
    """Get the Ollama-backed oracle used for generation (and embeddings by default)."""
    from twinmarks.agents.gateway import OllamaGateway
    return OllamaGateway(
        host=OLLAMA_HOST,
        api_key=OLLAMA_API_KEY or None,
        timeout=OLLAMA_TIMEOUT_SEC,
        require_api_key=requires_api_key(OLLAMA_HOST)
    )


def get_embedding_provider(oracle=None):
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "hash":
        from twinmarks.vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding()
    elif EMBED_PROVIDER == "sentence_transformers":
        from twinmarks.vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding()
    return oracle or get_oracle_client()


def get_gateway():
    """Get the embedding/generation gateway wired from configuration."""
    from twinmarks.agents.gateway import EmbeddingGateway
    oracle = get_oracle_client()
    return EmbeddingGateway(provider=get_embedding_provider(oracle), generator=oracle)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def validate_config() -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    if STORE_PROVIDER not in ["sqlite", "memory"]:
        issues.append(f"Invalid STORE_PROVIDER: {STORE_PROVIDER}")

    if EMBED_PROVIDER not in ["ollama", "sentence_transformers", "hash"]:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if requires_api_key(OLLAMA_HOST) and not OLLAMA_API_KEY:
        issues.append(f"OLLAMA_API_KEY is required for remote host {OLLAMA_HOST}")

    if CATEGORY_COUNT < 2:
        issues.append("CATEGORY_COUNT must be >= 2")

    if not 0.0 <= LINK_THRESHOLD <= 1.0:
        issues.append("LINK_THRESHOLD must be between 0 and 1")

    if RAG_CATEGORY_TOP_K < 1 or RAG_GLOBAL_TOP_K < 1:
        issues.append("RAG_CATEGORY_TOP_K and RAG_GLOBAL_TOP_K must be >= 1")

    return issues
