"""
Embedding models: text -> fixed-dimension vector.

All embedders implement BaseEmbedder so the search service can swap them
without code changes. An embedder is created once at application startup,
handed to the search service, and closed on shutdown.

Providers:
- sentence_transformers: local all-MiniLM-L6-v2 (384 dims, default)
- vertex_ai: Google Vertex AI text-embedding-005 (768 dims)
"""

import asyncio
import importlib.util
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from google import genai

from .config import Settings

logger = logging.getLogger(__name__)


class EmbeddingProvider(Enum):
    """Supported embedding providers"""
    SENTENCE_TRANSFORMERS = "sentence_transformers"  # Local open-source models
    VERTEX_AI = "vertex_ai"  # Google Vertex AI text-embedding-005


class BaseEmbedder(ABC):
    """
    Abstract base class for embedding implementations.

    Implementations do blocking work (model inference, SDK calls); embed()
    moves it off the event loop into the default thread pool.
    """

    dimension: int

    @abstractmethod
    def embed_sync(self, text: str) -> List[float]:
        """
        Embed a single text (blocking).

        Args:
            text: Text to embed

        Returns:
            Vector of length self.dimension
        """
        pass

    async def embed(self, text: str) -> List[float]:
        """Embed a single text without blocking the event loop"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.embed_sync, text)

    @abstractmethod
    def get_model_info(self) -> dict:
        """
        Get information about the embedding model.

        Returns:
            Dict with keys: name, provider, dimension
        """
        pass

    def close(self):
        """Optional cleanup (close API clients, free model memory, etc.)"""
        pass


class SentenceTransformerEmbedder(BaseEmbedder):
    """
    Local embedding model via sentence-transformers.

    Produces mean-pooled, L2-normalized vectors, so dot product equals
    cosine similarity. Well-known models load on first use to keep startup
    fast; for any other model the dimension is read from the loaded model.
    """

    KNOWN_DIMENSIONS = {
        "all-MiniLM-L6-v2": 384,
        "all-MiniLM-L12-v2": 384,
        "all-mpnet-base-v2": 768,
        "multi-qa-MiniLM-L6-cos-v1": 384,
    }

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", dimension: Optional[int] = None):
        """
        Args:
            model_name: HuggingFace model identifier
                - 'all-MiniLM-L6-v2' (384 dims, 90MB, fast)
                - 'all-mpnet-base-v2' (768 dims, better quality)
            dimension: Output dimension of the model (looked up or read from
                the model when omitted)
        """
        self.model_name = model_name
        self._dimension = dimension or self.KNOWN_DIMENSIONS.get(model_name)
        self.model = None  # Lazy loading
        logger.info(f"SentenceTransformerEmbedder initialized (model will load on first use): {model_name}")

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            # Unknown model: load it now so the vector store gets the real size
            self._ensure_loaded()
            self._dimension = int(self.model.get_sentence_embedding_dimension())
            logger.info(f"Embedding dimension of {self.model_name}: {self._dimension}")
        return self._dimension

    def _ensure_loaded(self):
        """Lazy load model on first use (avoid startup overhead)"""
        if self.model is None:
            logger.info(f"Loading embedding model: {self.model_name}")
            try:
                from sentence_transformers import SentenceTransformer
                self.model = SentenceTransformer(self.model_name)
                logger.info(f"Model loaded successfully: {self.model_name}")
            except Exception as e:
                logger.error(f"Failed to load model {self.model_name}: {e}")
                raise

    def embed_sync(self, text: str) -> List[float]:
        self._ensure_loaded()
        vector = self.model.encode(text, normalize_embeddings=True)
        return [float(x) for x in vector]

    def get_model_info(self) -> dict:
        return {
            "name": self.model_name,
            "provider": EmbeddingProvider.SENTENCE_TRANSFORMERS.value,
            "dimension": self.dimension,
            "loaded": self.model is not None,
        }

    def close(self):
        """Free model memory."""
        if self.model is not None:
            logger.info(f"Closing embedding model: {self.model_name}")
            del self.model
            self.model = None


class VertexAIEmbedder(BaseEmbedder):
    """Vertex AI embeddings via the Google Gen AI SDK"""

    def __init__(
        self,
        model_name: str = "text-embedding-005",
        project_id: Optional[str] = None,
        location: str = "us-central1",
        client: Optional[genai.Client] = None,
        dimension: int = 768,
    ):
        if client is None:
            if not project_id:
                raise ValueError("GCP_PROJECT_ID is required for the Vertex AI embedding provider")
            client = genai.Client(vertexai=True, project=project_id, location=location)
        self.client = client
        self.model_name = model_name
        self.dimension = dimension
        logger.info(f"VertexAIEmbedder initialized: {model_name} (project={project_id}, location={location})")

    def embed_sync(self, text: str) -> List[float]:
        response = self.client.models.embed_content(
            model=self.model_name,
            contents=text,
        )
        return list(response.embeddings[0].values)

    def get_model_info(self) -> dict:
        return {
            "name": self.model_name,
            "provider": EmbeddingProvider.VERTEX_AI.value,
            "dimension": self.dimension,
        }

    def close(self):
        self.client = None


def create_embedder(settings: Settings) -> BaseEmbedder:
    """
    Create embedder from settings.

    Config (env vars):
        EMBEDDING_PROVIDER: "sentence_transformers" | "vertex_ai"
        EMBEDDING_MODEL: Model identifier (provider-specific)
        GCP_PROJECT_ID, GCP_LOCATION: Vertex AI only

    Raises:
        ValueError: Unknown provider or missing provider configuration
        ImportError: sentence-transformers is not installed (local provider)
    """
    try:
        provider = EmbeddingProvider(settings.embedding_provider)
    except ValueError:
        valid = ", ".join(p.value for p in EmbeddingProvider)
        raise ValueError(
            f"Unknown embedding provider: {settings.embedding_provider}. Valid options: {valid}"
        )

    if provider == EmbeddingProvider.SENTENCE_TRANSFORMERS:
        if importlib.util.find_spec("sentence_transformers") is None:
            raise ImportError(
                "EMBEDDING_PROVIDER=sentence_transformers requires the sentence-transformers package"
            )
        logger.info(f"Creating local embedding model: {settings.embedding_model}")
        return SentenceTransformerEmbedder(model_name=settings.embedding_model)

    model = settings.embedding_model
    if model == Settings.embedding_model:
        # Local default does not exist on Vertex AI
        model = "text-embedding-005"
    logger.info(f"Creating Vertex AI embedding model: {model}")
    return VertexAIEmbedder(
        model_name=model,
        project_id=settings.gcp_project_id,
        location=settings.gcp_location,
    )
