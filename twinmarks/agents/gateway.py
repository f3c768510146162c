"""
Embedding/generation oracle access and the call-fallback discipline.

Embedding calls walk a candidate model list and stop early on credential
problems; the model that succeeded is returned to the caller, who decides
whether to persist it. Generation calls are single-model; callers that have
a non-AI fallback value use `generate_or_default`.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Optional

import httpx
import ollama

from ..core.config import EMBED_FALLBACK_MODELS, EMBED_MAX_CHARS, EMBED_MODEL
from ..core.errors import (
    AuthenticationFailure,
    MalformedResponse,
    MissingCredential,
    OracleFailure,
    QuotaExceeded,
)
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider

CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


class IGenerationProvider(ABC):
    """Abstract interface for text generation providers."""

    @abstractmethod
    def generate(self, prompt: str, model: str, image_data: Optional[str] = None) -> str:
        """Generate text for a prompt, optionally grounded on an image."""
        pass

    def check_credentials(self) -> None:
        return None


@dataclass
class EmbedResult:
    vector: List[float]
    model_used: str


class OllamaGateway(IEmbeddingProvider, IGenerationProvider):
    """
    Oracle backed by an Ollama server (local daemon or hosted API).
    Maps transport errors onto the twinmarks error taxonomy.
    """

    def __init__(self, host: str, api_key: Optional[str] = None, timeout: float = 120.0,
                 require_api_key: bool = False):
        self.host = host
        self.api_key = api_key
        self.timeout = timeout
        self.require_api_key = require_api_key
        self._client = None

    @property
    def client(self) -> ollama.Client:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._client = ollama.Client(host=self.host, headers=headers, timeout=self.timeout)
        return self._client

    def requires_credentials(self) -> bool:
        return self.require_api_key

    def check_credentials(self) -> None:
        if self.require_api_key and not self.api_key:
            raise MissingCredential(f"API key is missing for oracle host {self.host}")

    @staticmethod
    def _map_error(error: Exception, model: str) -> OracleFailure:
        if isinstance(error, ollama.ResponseError):
            status = error.status_code
            message = f"{model}: {error.error}"
            if status in (401, 403):
                return AuthenticationFailure(message, model=model, status_code=status)
            if status == 429:
                return QuotaExceeded(message, model=model, status_code=status)
            return OracleFailure(message, model=model, status_code=status)
        return OracleFailure(f"{model}: {error}", model=model)

    def embed_text(self, text: str, model: Optional[str] = None, image_data: Optional[str] = None) -> list[float]:
        """Embed text with the named model. Ollama embeddings are text-only, so image data is ignored."""
        self.check_credentials()
        if not model:
            raise OracleFailure("No embedding model given")

        try:
            response = self.client.embed(model=model, input=text[:EMBED_MAX_CHARS])
        except (ollama.ResponseError, ollama.RequestError, httpx.HTTPError, ConnectionError) as e:
            raise self._map_error(e, model) from e

        embeddings = response["embeddings"]
        if not embeddings or not embeddings[0]:
            raise OracleFailure(f"{model}: empty embedding returned", model=model)
        return [float(v) for v in embeddings[0]]

    def generate(self, prompt: str, model: str, image_data: Optional[str] = None) -> str:
        self.check_credentials()
        images = [_strip_data_url(image_data)] if image_data else None

        try:
            response = self.client.generate(model=model, prompt=prompt, images=images)
        except (ollama.ResponseError, ollama.RequestError, httpx.HTTPError, ConnectionError) as e:
            raise self._map_error(e, model) from e

        return response["response"] or ""


def _strip_data_url(image_data: str) -> str:
    """Screenshots arrive as data URLs; Ollama wants bare base64."""
    if image_data.startswith("data:") and "," in image_data:
        return image_data.split(",", 1)[1]
    return image_data


def candidate_embedding_models(preferred: Optional[str] = None,
                               fallbacks: Iterable[str] = None) -> List[str]:
    """Preferred model, then the configured default and fallbacks, without duplicates."""
    if fallbacks is None:
        fallbacks = EMBED_FALLBACK_MODELS
    models = []
    for model in [preferred, EMBED_MODEL, *fallbacks]:
        if model and model not in models:
            models.append(model)
    return models


def parse_json_response(text: str, expected_type: type) -> Any:
    """Parse an oracle reply that must be a bare JSON value of `expected_type`.

    Markdown code fences are tolerated; anything else is a MalformedResponse.
    """
    if not isinstance(text, str):
        raise MalformedResponse("response is not text")
    cleaned = CODE_FENCE.sub("", text).strip()
    try:
        value = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"response is not valid JSON: {e}", raw_text=text) from e

    if not isinstance(value, expected_type):
        raise MalformedResponse(
            f"expected JSON {expected_type.__name__}, got {type(value).__name__}",
            raw_text=text
        )
    return value


class EmbeddingGateway:
    """Front door for every embedding and generation call made by the core."""

    def __init__(self, provider: IEmbeddingProvider, generator: Optional[IGenerationProvider] = None):
        self.provider = provider
        self.generator = generator

    def check_credentials(self) -> None:
        """Fail fast with MissingCredential before any oracle call."""
        self.provider.check_credentials()
        if self.generator is not None:
            self.generator.check_credentials()

    def embed(self, text: str, model: str, image_data: Optional[str] = None) -> List[float]:
        return self.embed_with_fallback(text, [model], image_data).vector

    def embed_with_fallback(self, text: str, candidate_models: Iterable[str],
                            image_data: Optional[str] = None) -> EmbedResult:
        """Try each candidate model in order and return the first success.

        Credential failures stop the walk immediately since other models
        would fail the same way. Raises the last failure if every model fails.
        """
        self.provider.check_credentials()

        models = []
        for model in candidate_models:
            if model and model not in models:
                models.append(model)
        if not models:
            raise OracleFailure("No embedding model configured")

        last_error: Optional[OracleFailure] = None
        for model in models:
            start_time = datetime.now()
            try:
                vector = self.provider.embed_text(text, model, image_data)
            except (MissingCredential, AuthenticationFailure) as e:
                logger.log_oracle_call("embed", model, "failed", {"error": str(e), "short_circuit": True})
                raise
            except OracleFailure as e:
                logger.log_oracle_call("embed", model, "failed", {"error": str(e)})
                last_error = e
                continue

            elapsed_ms = int((datetime.now() - start_time).total_seconds() * 1000)
            logger.log_oracle_call("embed", model, "success", {
                "dimension": len(vector),
                "processing_time_ms": elapsed_ms
            })
            return EmbedResult(vector=vector, model_used=model)

        raise last_error

    def generate(self, prompt: str, model: str, image_data: Optional[str] = None) -> str:
        if self.generator is None:
            raise OracleFailure("No generation provider configured", model=model)

        start_time = datetime.now()
        try:
            text = self.generator.generate(prompt, model, image_data)
        except OracleFailure as e:
            logger.log_oracle_call("generate", model, "failed", {"error": str(e)})
            raise

        elapsed_ms = int((datetime.now() - start_time).total_seconds() * 1000)
        logger.log_oracle_call("generate", model, "success", {
            "prompt_length": len(prompt),
            "response_length": len(text),
            "multimodal": bool(image_data),
            "processing_time_ms": elapsed_ms
        })
        return text

    def generate_or_default(self, prompt: str, model: str, default: str,
                            image_data: Optional[str] = None) -> str:
        """Generate text, degrading to `default` on oracle failure.

        A missing credential is still raised: there is nothing to degrade from.
        """
        try:
            return self.generate(prompt, model, image_data)
        except OracleFailure:
            logger.warning(f"Generation with {model} failed; using non-AI fallback value")
            return default
