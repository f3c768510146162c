"""
Local embedding providers.

The Ollama gateway in `twinmarks.agents.gateway` implements the same
interface for remote models; these providers cover offline and test use.
"""

from abc import ABC, abstractmethod
import hashlib
from typing import Dict, Optional

from ..core.errors import OracleFailure


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str, model: Optional[str] = None, image_data: Optional[str] = None) -> list[float]:
        """Generate embedding vector for given text with the named model."""
        pass

    def requires_credentials(self) -> bool:
        """Whether calls need an API key configured."""
        return False

    def check_credentials(self) -> None:
        """Raise MissingCredential when a required API key is absent."""
        return None


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    Uses a consistent hashing approach to generate reproducible embeddings
    from text, which is useful without requiring external model dependencies.
    The model name is ignored.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_text(self, text: str, model: Optional[str] = None, image_data: Optional[str] = None) -> list[float]:
        """Generate deterministic embedding vector using hash function."""
        vector = []
        block = 0
        while len(vector) < self.dimension:
            hex_dig = hashlib.sha256(f"{block}:{text}".encode("utf-8")).hexdigest()
            for i in range(0, len(hex_dig), 8):
                if len(vector) >= self.dimension:
                    break
                value = int(hex_dig[i:i + 8], 16)
                # Normalize to [0, 1] and then map to [-1, 1] for cosine similarity
                vector.append((value / (2**32)) * 2 - 1)
            block += 1

        return vector

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Models are loaded lazily and kept per name, so the fallback model list
    can name several local models.
    """

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self.model_name = model_name
        self._models: Dict[str, object] = {}

    def _load(self, model_name: str):
        if model_name not in self._models:
            try:
                from sentence_transformers import SentenceTransformer
                self._models[model_name] = SentenceTransformer(model_name)
            except (OSError, ValueError) as e:
                raise OracleFailure(f"Could not load embedding model {model_name}: {e}", model=model_name) from e
        return self._models[model_name]

    def embed_text(self, text: str, model: Optional[str] = None, image_data: Optional[str] = None) -> list[float]:
        """Generate embedding vector using sentence transformers."""
        encoder = self._load(model or self.model_name)
        embedding = encoder.encode(text, convert_to_tensor=False)
        return embedding.tolist()

    def get_dimension(self, model: Optional[str] = None) -> int:
        """Get the dimension of the embedding vectors."""
        return self._load(model or self.model_name).get_sentence_embedding_dimension()
