# recallbot/vectorizers/http_embeddings.py
"""Vectorizer for OpenAI-compatible /embeddings HTTP endpoints."""

import logging
import os
from typing import List, Optional, Dict, Any

import httpx
import numpy as np

from ..contracts.vectorizer import IVectorizer
from ..core.errors import ConfigError, EmbeddingError, RateLimitError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0  # seconds


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class HttpEmbeddingVectorizer(IVectorizer):
    """
    Calls an OpenAI-compatible embeddings API (OpenAI, LiteLLM, Ollama, vLLM...).

    Config keys:
        base_url: API root, e.g. https://api.openai.com/v1
        model: Embedding model name
        api_key_env: Environment variable holding the API key
        dimensions: Optional output dimensionality (text-embedding-3-*)
        max_batch: Texts per request
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, transport: Optional[httpx.BaseTransport] = None):
        self.config = config or {}
        self.base_url = self.config.get("base_url", "https://api.openai.com/v1").rstrip("/")
        self.model = self.config.get("model", "text-embedding-3-small")
        self.dimensions = self.config.get("dimensions")
        self.max_batch = int(self.config.get("max_batch", 100))
        self.timeout = float(self.config.get("timeout", DEFAULT_TIMEOUT))
        self.api_key_env = self.config.get("api_key_env", "OPENAI_API_KEY")

        if self.max_batch <= 0:
            raise ConfigError("vectorizer.max_batch must be positive")

        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._embedding_dim: Optional[int] = self.dimensions

    def load(self) -> None:
        if self._client is not None:
            return

        headers = {"Content-Type": "application/json"}
        api_key = os.environ.get(self.api_key_env) if self.api_key_env else None
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.info("Embedding client ready: %s (%s)", self.base_url, self.model)

    def unload(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None

    def vectorize(self, text: str) -> np.ndarray:
        return self.vectorize_batch([text])[0]

    def vectorize_batch(self, texts: List[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.get_embedding_dim()), dtype=np.float32)

        self.load()
        chunks = [
            self._embed_request(texts[start:start + self.max_batch])
            for start in range(0, len(texts), self.max_batch)
        ]
        return np.vstack(chunks)

    def _embed_request(self, texts: List[str]) -> np.ndarray:
        payload: Dict[str, Any] = {
            "model": self.model,
            # Empty strings are rejected by most providers
            "input": [text if text.strip() else " " for text in texts],
        }
        if self.dimensions:
            payload["dimensions"] = self.dimensions

        try:
            response = self._client.post("/embeddings", json=payload)
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(
                f"Embedding provider rate limited the request ({self.model})",
                retry_after=_retry_after(response),
            )
        if response.status_code >= 400:
            raise EmbeddingError(
                f"Embedding provider returned HTTP {response.status_code}: {response.text[:200]}"
            )

        data = response.json().get("data", [])
        if len(data) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(data)}")

        # Providers may return items out of order
        data.sort(key=lambda item: int(item.get("index", 0)))
        vectors = np.array([item["embedding"] for item in data], dtype=np.float32)

        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        vectors = vectors / np.where(norms == 0.0, 1.0, norms)

        self._embedding_dim = vectors.shape[1]
        return vectors

    def get_embedding_dim(self) -> int:
        if self._embedding_dim is None:
            return 1536 if "text-embedding-3-small" in self.model or "ada" in self.model else 768
        return self._embedding_dim
