"""
Embedding providers. The embedding model is an external capability: text in,
fixed-dimension float vector out. Every provider exposes a single-text and a
batch call; the batch call is what the index uses when adding documents.
"""

from abc import ABC, abstractmethod
import hashlib
import re
from typing import List, Optional

import requests

from .errors import EmbeddingError


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Identifier of the model, persisted alongside the index."""
        pass

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Generate one embedding vector per text, in input order."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    Each word is hashed into one of ``dimension`` buckets with a hash-derived
    sign, so identical texts map to identical vectors and texts sharing
    vocabulary land close together. No model download is required.
    """

    _TOKEN_RE = re.compile(r"\w+")

    def __init__(self, dimension: int = 384):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    @property
    def model_name(self) -> str:
        return f"hash-{self.dimension}"

    def embed_text(self, text: str) -> List[float]:
        """Generate deterministic embedding vector using hash function."""
        vector = [0.0] * self.dimension
        for token in self._TOKEN_RE.findall(text.lower()):
            hex_dig = hashlib.md5(token.encode()).hexdigest()
            bucket = int(hex_dig[:8], 16) % self.dimension
            sign = 1.0 if int(hex_dig[8:10], 16) % 2 == 0 else -1.0
            vector[bucket] += sign
        return vector

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self.embed_text(text) for text in texts]

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Uses the all-mpnet-base-v2 model by default.
    """

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self._model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self._model_name)
        return self._model

    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False)
        return embedding.tolist()

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        embeddings = self.model.encode(texts, convert_to_tensor=False)
        return [embedding.tolist() for embedding in embeddings]

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


class OllamaEmbedding(IEmbeddingProvider):
    """Embedding provider backed by a local Ollama instance."""

    def __init__(self, model_name: str = "nomic-embed-text", host: Optional[str] = None):
        self._model_name = model_name
        self.host = host
        self._client = None
        self._dimension = None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def client(self):
        if self._client is None:
            import ollama
            self._client = ollama.Client(host=self.host)
        return self._client

    def embed_text(self, text: str) -> List[float]:
        return self.embed_documents([text])[0]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        response = self.client.embed(model=self._model_name, input=texts)
        embeddings = response["embeddings"]
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Ollama returned {len(embeddings)} embeddings for {len(texts)} texts"
            )
        return [list(embedding) for embedding in embeddings]

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed_text("dimension probe"))
        return self._dimension


class OpenAIEmbedding(IEmbeddingProvider):
    """Embedding provider calling the OpenAI embeddings endpoint over HTTP."""

    def __init__(
        self,
        api_key: str,
        model_name: str = "text-embedding-3-small",
        dimension: int = 1536,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
    ):
        if not api_key:
            raise ValueError("OpenAI embeddings require an API key")
        self.api_key = api_key
        self._model_name = model_name
        self.dimension = dimension
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def model_name(self) -> str:
        return self._model_name

    def embed_text(self, text: str) -> List[float]:
        return self.embed_documents([text])[0]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            response = requests.post(
                f"{self.base_url}/embeddings",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"model": self._model_name, "input": texts, "dimensions": self.dimension},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise EmbeddingError(f"OpenAI embedding request failed: {e}") from e

        data = sorted(response.json().get("data", []), key=lambda item: item["index"])
        if len(data) != len(texts):
            raise EmbeddingError(f"OpenAI returned {len(data)} embeddings for {len(texts)} texts")
        return [item["embedding"] for item in data]

    def get_dimension(self) -> int:
        return self.dimension
