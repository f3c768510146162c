"""
Tests for the oracle gateway: embedding model fallback, generation
degradation, JSON response parsing and Ollama error mapping.
"""

from unittest.mock import MagicMock, patch

import httpx
import ollama
import pytest

from twinmarks.agents.gateway import (
    EmbeddingGateway,
    OllamaGateway,
    candidate_embedding_models,
    parse_json_response,
)
from twinmarks.core.errors import (
    AuthenticationFailure,
    MalformedResponse,
    MissingCredential,
    OracleFailure,
    QuotaExceeded,
)

from conftest import RecordingEmbedder, ScriptedGenerator


def test_candidate_models_deduplicated_in_order():
    models = candidate_embedding_models("custom", fallbacks=["all-minilm", "custom"])
    assert models[0] == "custom"
    assert models.count("custom") == 1
    assert models[-1] == "all-minilm"


def test_embed_with_fallback_returns_model_used():
    embedder = RecordingEmbedder(failing_models=["first"])
    gateway = EmbeddingGateway(embedder)

    result = gateway.embed_with_fallback("hello", ["first", "second", "third"])

    assert result.model_used == "second"
    assert len(result.vector) == 8
    assert [model for _, model in embedder.calls] == ["first", "second"]


def test_embed_with_fallback_raises_last_error():
    embedder = RecordingEmbedder(failing_models=["a", "b"])
    gateway = EmbeddingGateway(embedder)

    with pytest.raises(OracleFailure) as exc_info:
        gateway.embed_with_fallback("hello", ["a", "b"])
    assert exc_info.value.model == "b"


def test_authentication_failure_short_circuits():
    embedder = RecordingEmbedder(rejected_models=["a"])
    gateway = EmbeddingGateway(embedder)

    with pytest.raises(AuthenticationFailure):
        gateway.embed_with_fallback("hello", ["a", "b", "c"])
    assert len(embedder.calls) == 1


def test_quota_failure_moves_to_next_model():
    class QuotaLimitedEmbedder(RecordingEmbedder):
        def embed_text(self, text, model=None, image_data=None):
            if model == "a":
                self.calls.append((text, model))
                raise QuotaExceeded("quota", model=model, status_code=429)
            return super().embed_text(text, model, image_data)

    embedder = QuotaLimitedEmbedder()
    result = EmbeddingGateway(embedder).embed_with_fallback("hello", ["a", "b"])

    assert result.model_used == "b"
    assert [model for _, model in embedder.calls] == ["a", "b"]


def test_missing_credential_before_any_call():
    embedder = RecordingEmbedder(require_key=True)
    gateway = EmbeddingGateway(embedder)

    with pytest.raises(MissingCredential):
        gateway.embed_with_fallback("hello", ["a"])
    assert embedder.calls == []


def test_embed_with_fallback_skips_duplicate_candidates():
    embedder = RecordingEmbedder(failing_models=["a"])
    gateway = EmbeddingGateway(embedder)

    with pytest.raises(OracleFailure):
        gateway.embed_with_fallback("hello", ["a", "a", None, "a"])
    assert len(embedder.calls) == 1


def test_generate_without_generator_fails():
    gateway = EmbeddingGateway(RecordingEmbedder())
    with pytest.raises(OracleFailure):
        gateway.generate("prompt", "llama3.2")


def test_generate_or_default_degrades_on_oracle_failure():
    generator = ScriptedGenerator([QuotaExceeded("slow down", status_code=429)])
    gateway = EmbeddingGateway(RecordingEmbedder(), generator)

    assert gateway.generate_or_default("prompt", "llama3.2", default="fallback") == "fallback"
    assert generator.call_count == 1


def test_generate_or_default_still_raises_missing_credential():
    generator = ScriptedGenerator([MissingCredential()])
    gateway = EmbeddingGateway(RecordingEmbedder(), generator)

    with pytest.raises(MissingCredential):
        gateway.generate_or_default("prompt", "llama3.2", default="fallback")


def test_parse_json_response_strips_code_fences():
    text = "```json\n[\"a\", \"b\"]\n```"
    assert parse_json_response(text, list) == ["a", "b"]


@pytest.mark.parametrize("text,expected_type", [
    ("not json", list),
    ("{\"a\": 1}", list),
    ("[\"a\"]", dict),
    ("", list),
])
def test_parse_json_response_rejects_bad_shapes(text, expected_type):
    with pytest.raises(MalformedResponse):
        parse_json_response(text, expected_type)


class TestOllamaGateway:
    """OllamaGateway with the ollama client mocked out."""

    @pytest.fixture
    def client(self):
        with patch("twinmarks.agents.gateway.ollama.Client") as client_cls:
            client = MagicMock()
            client_cls.return_value = client
            yield client

    def test_embed_truncates_input(self, client):
        client.embed.return_value = {"embeddings": [[0.1, 0.2]]}
        gateway = OllamaGateway("http://localhost:11434")

        vector = gateway.embed_text("x" * 10000, model="nomic-embed-text")

        assert vector == [0.1, 0.2]
        sent = client.embed.call_args.kwargs["input"]
        assert len(sent) == 8000

    def test_generate_sends_bare_base64_image(self, client):
        client.generate.return_value = {"response": "a page"}
        gateway = OllamaGateway("http://localhost:11434")

        text = gateway.generate("describe", "llava", image_data="data:image/jpeg;base64,QUJD")

        assert text == "a page"
        assert client.generate.call_args.kwargs["images"] == ["QUJD"]

    @pytest.mark.parametrize("status,error_type", [
        (401, AuthenticationFailure),
        (403, AuthenticationFailure),
        (429, QuotaExceeded),
        (500, OracleFailure),
    ])
    def test_response_errors_are_mapped(self, client, status, error_type):
        client.embed.side_effect = ollama.ResponseError("boom", status)
        gateway = OllamaGateway("http://localhost:11434")

        with pytest.raises(error_type) as exc_info:
            gateway.embed_text("text", model="nomic-embed-text")
        assert exc_info.value.status_code == status

    def test_connection_errors_are_oracle_failures(self, client):
        client.generate.side_effect = httpx.ConnectError("refused")
        gateway = OllamaGateway("http://localhost:11434")

        with pytest.raises(OracleFailure):
            gateway.generate("prompt", "llama3.2")

    def test_remote_host_requires_api_key(self, client):
        gateway = OllamaGateway("https://ollama.com", require_api_key=True)

        with pytest.raises(MissingCredential):
            gateway.embed_text("text", model="nomic-embed-text")
        client.embed.assert_not_called()

    def test_api_key_sent_as_bearer_header(self):
        with patch("twinmarks.agents.gateway.ollama.Client") as client_cls:
            gateway = OllamaGateway("https://ollama.com", api_key="secret", require_api_key=True)
            gateway.client
        assert client_cls.call_args.kwargs["headers"] == {"Authorization": "Bearer secret"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
