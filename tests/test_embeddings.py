"""
Tests for the local embedding providers.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from twinmarks.core.errors import OracleFailure
from twinmarks.vector.embeddings import DeterministicHashEmbedding, IEmbeddingProvider, SentenceTransformerEmbedding


def test_embedding_interface():
    """Test that the embedding provider implements the interface correctly."""
    embedder = DeterministicHashEmbedding(dimension=384)

    assert isinstance(embedder, IEmbeddingProvider)
    assert embedder.get_dimension() == 384
    assert embedder.requires_credentials() is False


def test_deterministic_embedding():
    """Test that the same input always produces the same output."""
    embedder = DeterministicHashEmbedding(dimension=384)

    vector1 = embedder.embed_text("Hello, world!")
    vector2 = DeterministicHashEmbedding(dimension=384).embed_text("Hello, world!")

    assert vector1 == vector2
    assert len(vector1) == 384
    assert all(-1.0 <= v <= 1.0 for v in vector1)


def test_different_inputs_produce_different_vectors():
    embedder = DeterministicHashEmbedding(dimension=16)
    assert embedder.embed_text("Hello, world!") != embedder.embed_text("Goodbye, world!")


def test_model_name_is_ignored():
    embedder = DeterministicHashEmbedding(dimension=16)
    assert embedder.embed_text("text", model="a") == embedder.embed_text("text", model="b")


class TestSentenceTransformerEmbedding:

    def test_models_loaded_lazily_and_cached(self):
        fake_model = MagicMock()
        fake_model.encode.return_value = np.array([0.5, 0.25])
        with patch("sentence_transformers.SentenceTransformer", return_value=fake_model) as loader:
            embedder = SentenceTransformerEmbedding("all-MiniLM-L6-v2")
            assert loader.call_count == 0

            assert embedder.embed_text("one") == [0.5, 0.25]
            embedder.embed_text("two")

        loader.assert_called_once_with("all-MiniLM-L6-v2")

    def test_load_failure_is_oracle_failure(self):
        with patch("sentence_transformers.SentenceTransformer", side_effect=OSError("not found")):
            embedder = SentenceTransformerEmbedding()
            with pytest.raises(OracleFailure):
                embedder.embed_text("text", model="no-such-model")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
