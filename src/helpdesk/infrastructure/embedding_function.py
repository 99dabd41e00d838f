"""
Local embedding provider based on sentence-transformers.

Useful when no hosted embedding endpoint is configured; vectors are
normalized so cosine similarity equals the dot product.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..config import get_config
from ..domain.repositories import IEmbeddingProvider
from ..exceptions import ProviderFailureError

logger = logging.getLogger(__name__)

# Loaded models, shared across providers
_embedding_models: Dict[str, object] = {}


def get_embedding_model(model_name: str):
    """
    Get or load a SentenceTransformer model.

    Raises:
        ImportError: If sentence-transformers is not installed.
    """
    if model_name in _embedding_models:
        logger.debug(f"Using cached embedding model: {model_name}")
        return _embedding_models[model_name]

    try:
        from sentence_transformers import SentenceTransformer
    except ImportError as err:
        raise ImportError(
            "sentence-transformers is required for local embeddings. "
            "Install with: pip install sentence-transformers"
        ) from err

    logger.info(f"Loading embedding model: {model_name}")
    model = SentenceTransformer(model_name)
    _embedding_models[model_name] = model
    logger.info(f"Embedding model loaded successfully: {model_name}")
    return model


def clear_embedding_cache() -> None:
    """Clear cached embedding models to free memory."""
    _embedding_models.clear()
    logger.debug("Embedding model cache cleared")


class SentenceTransformerEmbeddingProvider(IEmbeddingProvider):
    """Runs a local SentenceTransformer in the default executor."""

    provider_name = "sentence-transformers"

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or get_config().local_embedding_model
        self._model = None

    def _get_model(self):
        if self._model is None:
            self._model = get_embedding_model(self.model_name)
        return self._model

    def _encode(self, text: str) -> List[float]:
        vector = self._get_model().encode(
            text,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return vector.astype(float).tolist()

    async def embed(self, text: str) -> List[float]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._encode, text)
        except (RuntimeError, ValueError, OSError) as e:
            raise ProviderFailureError(self.provider_name, str(e)) from e
