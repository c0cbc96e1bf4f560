"""
Retrieval engine configuration.
Values come from the environment (optionally a .env file) with local defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Corpus and persisted index image
CORPUS_DIR = os.getenv("CORPUS_DIR", "./brain")
INDEX_DIR = os.getenv("INDEX_DIR", "./brain")
INDEX_FILE_NAME = os.getenv("INDEX_FILE_NAME", "vector_index.bin")
DOC_STORE_FILE_NAME = os.getenv("DOC_STORE_FILE_NAME", "doc_store.json")

# Embedding provider
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence_transformers|ollama|openai
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "")  # empty = provider default
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OLLAMA_HOST = os.getenv("OLLAMA_HOST")

# HNSW index
INDEX_MAX_ELEMENTS = int(os.getenv("INDEX_MAX_ELEMENTS", "10000"))
HNSW_M = int(os.getenv("HNSW_M", "32"))
HNSW_EF_CONSTRUCTION = int(os.getenv("HNSW_EF_CONSTRUCTION", "200"))
HNSW_EF_SEARCH = int(os.getenv("HNSW_EF_SEARCH", "64"))

# Chunking
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
CHUNK_THRESHOLD = int(os.getenv("CHUNK_THRESHOLD", "4000"))

# Context assembly
RELEVANCE_THRESHOLD = float(os.getenv("RELEVANCE_THRESHOLD", "0.5"))
CONTEXT_SNIPPET_CHARS = int(os.getenv("CONTEXT_SNIPPET_CHARS", "500"))
DEFAULT_CONTEXT_K = int(os.getenv("DEFAULT_CONTEXT_K", "3"))

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

VERSION = "1.0.0"

EMBED_PROVIDERS = ["hash", "sentence_transformers", "ollama", "openai"]


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_index_paths():
    """Return (index file, document store file) of the persisted image."""
    index_dir = Path(INDEX_DIR)
    return index_dir / INDEX_FILE_NAME, index_dir / DOC_STORE_FILE_NAME


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "sentence_transformers":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME or "all-mpnet-base-v2")
    elif EMBED_PROVIDER == "ollama":
        from ..vector.embeddings import OllamaEmbedding
        return OllamaEmbedding(EMBED_MODEL_NAME or "nomic-embed-text", host=OLLAMA_HOST)
    elif EMBED_PROVIDER == "openai":
        from ..vector.embeddings import OpenAIEmbedding
        return OpenAIEmbedding(
            api_key=OPENAI_API_KEY,
            model_name=EMBED_MODEL_NAME or "text-embedding-3-small",
            dimension=EMBED_DIM,
            base_url=OPENAI_BASE_URL,
        )
    else:
        from ..vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(EMBED_DIM)


def validate_retrieval_config():
    """Validate retrieval configuration and return any issues."""
    issues = []

    if EMBED_PROVIDER not in EMBED_PROVIDERS:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if EMBED_PROVIDER == "openai" and not OPENAI_API_KEY:
        issues.append("EMBED_PROVIDER=openai requires OPENAI_API_KEY")

    if EMBED_DIM < 1:
        issues.append("EMBED_DIM must be >= 1")

    if INDEX_MAX_ELEMENTS < 1:
        issues.append("INDEX_MAX_ELEMENTS must be >= 1")

    if CHUNK_SIZE < 1:
        issues.append("CHUNK_SIZE must be >= 1")

    if not 0 <= CHUNK_OVERLAP < CHUNK_SIZE:
        issues.append("CHUNK_OVERLAP must be >= 0 and smaller than CHUNK_SIZE")

    if not 0.0 < RELEVANCE_THRESHOLD <= 2.0:
        issues.append("RELEVANCE_THRESHOLD must be in (0, 2]")

    if DEFAULT_CONTEXT_K < 1:
        issues.append("DEFAULT_CONTEXT_K must be >= 1")

    return issues
