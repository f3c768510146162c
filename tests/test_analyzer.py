"""
Tests for page analysis: description/tag parsing, degradation paths,
embedding model persistence and preserving user fields.
"""

import pytest

from twinmarks.agents.analyzer import PageAnalyzer, is_multimodal_model, parse_description_and_tags
from twinmarks.agents.gateway import EmbeddingGateway
from twinmarks.core.config import EMBED_MODEL
from twinmarks.core.errors import MissingCredential, OracleFailure

from conftest import RecordingEmbedder, ScriptedGenerator, page

URL = "https://blog.example/post"
LONG_DESCRIPTION = "A detailed walkthrough of profiling and optimizing Python services in production."
TEXT = "Profiling Python services. " * 50


def test_parse_description_and_tags():
    description, tags = parse_description_and_tags("A page about AI.\n---TAGS---\n[AI, Research、ai]")
    assert description == "A page about AI."
    assert tags == ["AI", "Research"]


def test_parse_without_marker_keeps_text():
    assert parse_description_and_tags("  just text ") == ("just text", [])


def test_multimodal_model_detection():
    assert is_multimodal_model("llava:13b")
    assert not is_multimodal_model("llama3.2")


def test_analyze_stores_record(store, settings, gateway, generator, embedder):
    generator.responses = [f"{LONG_DESCRIPTION}\n---TAGS---\n[Python, Performance]"]

    record = PageAnalyzer(store, settings, gateway).analyze(URL, "Post", TEXT)

    assert record.tags == ["Python", "Performance"]
    assert record.description == LONG_DESCRIPTION
    assert record.vector is not None
    assert record.semantic_vector is not None
    assert record.text_content == TEXT[:200]
    assert store.get(URL) == record
    # Long descriptions are embedded on their own
    assert embedder.calls[0] == (LONG_DESCRIPTION, EMBED_MODEL)


def test_long_description_gets_generated_summary(store, settings, gateway, generator):
    long_text = "x" * 150
    generator.responses = [f"{long_text}\n---TAGS---\n[A]", "Short summary"]

    record = PageAnalyzer(store, settings, gateway).analyze(URL, "Post", TEXT)

    assert record.description == "Short summary"
    assert generator.call_count == 2


def test_summary_failure_truncates_description(store, settings, gateway, generator):
    long_text = "y" * 150
    generator.responses = [f"{long_text}\n---TAGS---\n[A]", OracleFailure("down")]

    record = PageAnalyzer(store, settings, gateway).analyze(URL, "Post", TEXT)

    assert record.description == "y" * 100


def test_generation_failure_degrades_to_page_text(store, settings, gateway, generator, embedder):
    generator.responses = [OracleFailure("down"), OracleFailure("down")]

    record = PageAnalyzer(store, settings, gateway).analyze(URL, "Post", TEXT)

    assert record.tags == []
    assert record.description == TEXT[:100]
    assert embedder.calls[0][0] == TEXT[:500].strip()


def test_short_description_embeds_with_context(store, settings, gateway, generator, embedder):
    generator.responses = ["Short.\n---TAGS---\n[A]"]

    PageAnalyzer(store, settings, gateway).analyze(URL, "Post", TEXT)

    embedded_text = embedder.calls[0][0]
    assert embedded_text.startswith("Post\nShort.\nContext: ")


def test_multimodal_prompt_first_then_text_fallback(store, settings, embedder):
    generator = ScriptedGenerator([OracleFailure("vision failed"), "Text only.\n---TAGS---\n[A]"])
    gateway = EmbeddingGateway(embedder, generator)

    PageAnalyzer(store, settings, gateway, model="llava").analyze(
        URL, "Post", TEXT, image_data="data:image/jpeg;base64,QUJD", h1="Heading"
    )

    assert generator.images[0] == "data:image/jpeg;base64,QUJD"
    assert "H1: Heading" in generator.prompts[0]
    assert generator.images[1] is None


def test_image_ignored_for_text_model(store, settings, gateway, generator):
    generator.responses = ["Text.\n---TAGS---\n[A]"]

    PageAnalyzer(store, settings, gateway, model="llama3.2").analyze(URL, "Post", TEXT, image_data="QUJD")

    assert generator.images == [None]


def test_fallback_embedding_model_is_remembered(store, settings, generator):
    embedder = RecordingEmbedder(failing_models=[EMBED_MODEL])
    gateway = EmbeddingGateway(embedder, generator)
    generator.responses = [f"{LONG_DESCRIPTION}\n---TAGS---\n[A]"]

    PageAnalyzer(store, settings, gateway).analyze(URL, "Post", TEXT)

    remembered = settings.get_embedding_model(EMBED_MODEL)
    assert remembered != EMBED_MODEL
    assert embedder.calls[1][1] == remembered


def test_semantic_vector_failure_is_tolerated(store, settings, generator):
    class FlakyEmbedder(RecordingEmbedder):
        def embed_text(self, text, model=None, image_data=None):
            if text.startswith(LONG_DESCRIPTION) and "Tags:" in text:
                raise OracleFailure("semantic failed", model=model)
            return super().embed_text(text, model, image_data)

    gateway = EmbeddingGateway(FlakyEmbedder(), generator)
    generator.responses = [f"{LONG_DESCRIPTION}\n---TAGS---\n[A]"]

    record = PageAnalyzer(store, settings, gateway).analyze(URL, "Post", TEXT)

    assert record.vector is not None
    assert record.semantic_vector is None


def test_reanalysis_preserves_notes_and_category(store, settings, gateway, generator, embedder):
    store.put(page(URL, [1.0], notes="my notes", category="Tech", tags=["Old"]))
    generator.responses = [f"{LONG_DESCRIPTION}\n---TAGS---\n[New]"]

    record = PageAnalyzer(store, settings, gateway).analyze(URL, "Post", TEXT)

    assert record.notes == "my notes"
    assert record.category == "Tech"
    assert record.tags == ["New"]
    assert any("Notes: my notes" in text for text, _ in embedder.calls)


def test_missing_credential_fails_fast(store, settings):
    generator = ScriptedGenerator()
    gateway = EmbeddingGateway(RecordingEmbedder(require_key=True), generator)

    with pytest.raises(MissingCredential):
        PageAnalyzer(store, settings, gateway).analyze(URL, "Post", TEXT)
    assert generator.call_count == 0
    assert store.count() == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
