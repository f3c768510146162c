"""
Shared fixtures: in-memory stores and a recording oracle so tests can assert
which embedding and generation calls were made.
"""

import pytest

from twinmarks.agents.gateway import EmbeddingGateway, IGenerationProvider
from twinmarks.core.errors import AuthenticationFailure, MissingCredential, OracleFailure
from twinmarks.core.schema import PageRecord
from twinmarks.core.settings import InMemorySettingsStore
from twinmarks.core.store import InMemoryRecordStore
from twinmarks.vector.embeddings import DeterministicHashEmbedding, IEmbeddingProvider


class RecordingEmbedder(IEmbeddingProvider):
    """Hash embeddings with per-model failure injection."""

    def __init__(self, dimension=8, failing_models=(), rejected_models=(), require_key=False):
        self.hasher = DeterministicHashEmbedding(dimension)
        self.failing_models = set(failing_models)
        self.rejected_models = set(rejected_models)
        self.require_key = require_key
        self.calls = []
        self.vectors = {}

    def embed_text(self, text, model=None, image_data=None):
        self.calls.append((text, model))
        if model in self.rejected_models:
            raise AuthenticationFailure(f"{model}: key rejected", model=model, status_code=401)
        if model in self.failing_models:
            raise OracleFailure(f"{model}: unavailable", model=model, status_code=500)
        if text in self.vectors:
            return list(self.vectors[text])
        return self.hasher.embed_text(text)

    def requires_credentials(self):
        return self.require_key

    def check_credentials(self):
        if self.require_key:
            raise MissingCredential()


class ScriptedGenerator(IGenerationProvider):
    """Returns queued responses in order; queued exceptions are raised."""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.prompts = []
        self.images = []

    def generate(self, prompt, model, image_data=None):
        self.prompts.append(prompt)
        self.images.append(image_data)
        if not self.responses:
            raise OracleFailure("no scripted response left", model=model)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def call_count(self):
        return len(self.prompts)


def page(url, vector=None, **fields):
    """Build a PageRecord with a title derived from the URL."""
    fields.setdefault("title", url.rsplit("/", 1)[-1] or url)
    return PageRecord(url=url, vector=vector, **fields)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def settings():
    return InMemorySettingsStore()


@pytest.fixture
def embedder():
    return RecordingEmbedder()


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def gateway(embedder, generator):
    return EmbeddingGateway(provider=embedder, generator=generator)
