"""
Tests for retrieval-augmented answers: category phase, global fallback and
the zero-context answer.
"""

import json

import pytest

from twinmarks.agents.gateway import EmbeddingGateway, candidate_embedding_models
from twinmarks.agents.rag import INSUFFICIENT_INFORMATION_ANSWER, RAGAnswerEngine
from twinmarks.core.errors import OracleFailure
from twinmarks.core.settings import TaxonomyConfig
from twinmarks.vector.types import SearchResult

from conftest import RecordingEmbedder, page

QUERY = "how do I speed up python loops?"


def _vec(i, dim=8):
    v = [0.0] * dim
    v[i % dim] = 1.0
    return v


@pytest.fixture
def taxonomy(settings):
    settings.set_taxonomy(TaxonomyConfig(categories=["Cooking", "Tech"], last_sync=1))


def test_category_phase_ranks_records_in_selected_categories(store, settings, gateway, embedder,
                                                              generator, taxonomy):
    embedder.vectors[QUERY] = _vec(0)
    store.put(page("https://tech.example/best", _vec(0), category="Tech", text_content="numpy vectorization"))
    store.put(page("https://tech.example/other", _vec(1), category="Tech"))
    store.put(page("https://food.example/pasta", _vec(0), category="Cooking"))
    generator.responses = [json.dumps(["Tech"]), "Use numpy [1]."]

    result = RAGAnswerEngine(store, settings, gateway).answer(QUERY)

    assert result.phase == "category"
    assert result.answer == "Use numpy [1]."
    assert [url for _, url in result.sources] == ["https://tech.example/best", "https://tech.example/other"]
    prompt = generator.prompts[1]
    assert "[Source 1] (Tech)" in prompt
    assert "numpy vectorization" in prompt
    assert "https://food.example/pasta" not in prompt


def test_category_phase_takes_top_seven(store, settings, gateway, embedder, generator, taxonomy):
    embedder.vectors[QUERY] = _vec(0)
    for i in range(9):
        store.put(page(f"https://tech.example/{i}", _vec(i), category="Tech"))
    generator.responses = [json.dumps(["Tech"]), "answer"]

    result = RAGAnswerEngine(store, settings, gateway).answer(QUERY)

    assert len(result.sources) == 7


def test_empty_category_match_uses_global_fallback(store, settings, gateway, generator, taxonomy):
    """Selected categories with no stored records fall back to global results."""
    store.put(page("https://food.example/pasta", _vec(0), category="Cooking", text_content="stored text"))
    generator.responses = [json.dumps(["Tech"]), "From your pages [1]."]
    results = [SearchResult(url="https://food.example/pasta", title="Pasta", score=0.4)]

    result = RAGAnswerEngine(store, settings, gateway).answer(QUERY, search_results=results)

    assert result.phase == "global"
    assert result.answer != INSUFFICIENT_INFORMATION_ANSWER
    assert result.sources == [("Pasta", "https://food.example/pasta")]
    assert "(Global)" in generator.prompts[1]
    assert "stored text" in generator.prompts[1]


def test_global_fallback_takes_top_five(store, settings, gateway, generator):
    results = [SearchResult(url=f"https://{i}.example", title=str(i), score=1.0 - i / 10, description="d")
               for i in range(8)]
    generator.responses = ["answer"]

    result = RAGAnswerEngine(store, settings, gateway).answer(QUERY, search_results=results)

    assert len(result.sources) == 5
    assert "Content: d" in generator.prompts[0]


def test_zero_context_returns_fixed_answer_without_generation(store, settings, gateway, generator):
    result = RAGAnswerEngine(store, settings, gateway).answer(QUERY, search_results=[])

    assert result.answer == INSUFFICIENT_INFORMATION_ANSWER
    assert result.sources == []
    assert generator.call_count == 0


def test_zero_context_after_category_selection_skips_answer_call(store, settings, gateway, generator, taxonomy):
    generator.responses = [json.dumps(["Tech"])]

    result = RAGAnswerEngine(store, settings, gateway).answer(QUERY)

    assert result.answer == INSUFFICIENT_INFORMATION_ANSWER
    assert result.sources == []
    assert generator.call_count == 1


def test_query_embedding_failure_degrades_to_global(store, settings, generator, taxonomy):
    embedder = RecordingEmbedder(failing_models=candidate_embedding_models())
    gateway = EmbeddingGateway(embedder, generator)
    store.put(page("https://tech.example/a", _vec(0), category="Tech"))
    generator.responses = [json.dumps(["Tech"]), "answer"]
    results = [SearchResult(url="https://tech.example/a", title="A", score=0.9)]

    result = RAGAnswerEngine(store, settings, gateway).answer(QUERY, search_results=results)

    assert result.phase == "global"


def test_generation_failure_is_raised(store, settings, gateway, generator):
    generator.responses = [OracleFailure("model unavailable", status_code=503)]
    results = [SearchResult(url="https://a.example", title="A", score=0.9)]

    with pytest.raises(OracleFailure):
        RAGAnswerEngine(store, settings, gateway).answer(QUERY, search_results=results)


def test_skip_category_selection(store, settings, gateway, generator, taxonomy):
    generator.responses = ["answer"]
    results = [SearchResult(url="https://a.example", title="A", score=0.9)]

    result = RAGAnswerEngine(store, settings, gateway).answer(
        QUERY, search_results=results, skip_category_selection=True
    )

    assert result.phase == "global"
    assert generator.call_count == 1
    assert "No content available" in generator.prompts[0]


def test_answer_prompt_rules(store, settings, gateway, generator):
    generator.responses = ["answer"]
    RAGAnswerEngine(store, settings, gateway).answer(
        QUERY, search_results=[SearchResult(url="https://a.example", title="A", score=0.9)]
    )
    prompt = generator.prompts[0]

    assert "same language as the question" in prompt
    assert "[1], [2]" in prompt
    assert "general knowledge" in prompt
    assert QUERY in prompt


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
