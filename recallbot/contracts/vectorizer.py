# recallbot/contracts/vectorizer.py
"""Abstract interface for text vectorization (embeddings)."""

from abc import ABC, abstractmethod
from typing import List
import numpy as np


class IVectorizer(ABC):
    """
    Generates embedding vectors from text.

    Implementations can use:
    - Sentence Transformers (local)
    - An OpenAI-compatible /embeddings HTTP API

    Remote providers signal throttling with RateLimitError so the batch
    processor can back off and retry.
    """

    @abstractmethod
    def vectorize(self, text: str) -> np.ndarray:
        """
        Generate embedding vector for single text.

        Returns:
            1D float32 array, L2-normalized
        """
        pass

    @abstractmethod
    def vectorize_batch(self, texts: List[str]) -> np.ndarray:
        """
        Generate embeddings for multiple texts in one call.

        Returns:
            2D array (n_texts, embedding_dim)

        Raises:
            RateLimitError: Provider is throttling requests
            EmbeddingError: Any other provider failure
        """
        pass

    @abstractmethod
    def get_embedding_dim(self) -> int:
        """Return the dimensionality of embeddings."""
        pass

    @abstractmethod
    def load(self) -> None:
        """Load model/resources. Must be idempotent."""
        pass

    @abstractmethod
    def unload(self) -> None:
        """Free resources (GPU memory, HTTP connections)."""
        pass
