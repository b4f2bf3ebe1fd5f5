# recallbot/vectorizers/sentence_transformer.py
"""Local Sentence Transformers vectorizer."""

import gc
import logging
from typing import List, Optional, Dict, Any
import numpy as np

try:
    import torch
    from sentence_transformers import SentenceTransformer
    SENTENCE_TRANSFORMERS_AVAILABLE = True
except ImportError:
    SENTENCE_TRANSFORMERS_AVAILABLE = False

from ..contracts.vectorizer import IVectorizer
from ..core.errors import ConfigError

logger = logging.getLogger(__name__)

# Multilingual default: the archives are mostly Russian
DEFAULT_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"

KNOWN_DIMS = {
    "MiniLM-L6": 384,
    "MiniLM-L12": 384,
    "mpnet": 768,
    "e5-large": 1024,
}


class SentenceTransformerVectorizer(IVectorizer):
    """
    Vectorizer running a Sentence Transformers model in-process.

    Needs the `local` extra (sentence-transformers + torch).
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        if not SENTENCE_TRANSFORMERS_AVAILABLE:
            raise ConfigError(
                "sentence-transformers is required for the local vectorizer. "
                "Install with: pip install 'recallbot[local]'"
            )

        self.config = config or {}
        self.model_name = self.config.get("model", DEFAULT_MODEL)
        self.batch_size = self.config.get("batch_size", 64)
        self.device = self.config.get("device", "cuda" if torch.cuda.is_available() else "cpu")

        self.model = None
        self._embedding_dim = None

    def vectorize(self, text: str) -> np.ndarray:
        return self.vectorize_batch([text])[0]

    def vectorize_batch(self, texts: List[str]) -> np.ndarray:
        self.load()

        processed_texts = [text if text.strip() else " " for text in texts]

        embeddings = self.model.encode(
            processed_texts,
            batch_size=self.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=True,  # L2 normalization for cosine similarity
        )

        return embeddings.astype(np.float32)

    def get_embedding_dim(self) -> int:
        if self._embedding_dim is not None:
            return self._embedding_dim
        if self.model is not None:
            self._embedding_dim = self.model.get_sentence_embedding_dimension()
            return self._embedding_dim

        for key, dim in KNOWN_DIMS.items():
            if key in self.model_name:
                return dim
        return 768

    def load(self) -> None:
        """Load model into memory."""
        if self.model is not None:
            return

        logger.info("Loading vectorizer model %s on %s", self.model_name, self.device)
        self.model = SentenceTransformer(self.model_name, device=self.device)
        self._embedding_dim = self.model.get_sentence_embedding_dimension()
        logger.info("Vectorizer loaded (dim=%d)", self._embedding_dim)

    def unload(self) -> None:
        """Free resources."""
        if self.model is None:
            return

        del self.model
        self.model = None
        gc.collect()

        if self.device == "cuda" and torch.cuda.is_available():
            torch.cuda.empty_cache()

        logger.info("Vectorizer unloaded")
