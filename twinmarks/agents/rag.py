"""
Retrieval-augmented answers over saved pages.

Context comes from the categories the oracle deems relevant when a taxonomy
exists, and otherwise from the caller's global search results.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ..core.config import EMBED_MODEL, GENERATION_MODEL, RAG_CATEGORY_TOP_K, RAG_GLOBAL_TOP_K
from ..core.errors import OracleFailure
from ..core.settings import ISettingsStore
from ..core.store import IRecordStore
from ..util.logging import logger
from ..vector.similarity import rank_records
from ..vector.types import SearchResult
from .categories import select_relevant_categories
from .gateway import EmbeddingGateway, candidate_embedding_models

INSUFFICIENT_INFORMATION_ANSWER = (
    "There is not enough information in your saved pages to answer this question. "
    "Try searching with more specific keywords or save more pages on the topic."
)
NO_CONTENT = "No content available"
GLOBAL_SOURCE_LABEL = "Global"

PHASE_CATEGORY = "category"
PHASE_GLOBAL = "global"
PHASE_NONE = "none"


@dataclass
class ContextItem:
    title: str
    url: str
    content: str
    score: float
    category: Optional[str] = None


@dataclass
class RagAnswer:
    answer: str
    sources: List[Tuple[str, str]] = field(default_factory=list)
    phase: str = PHASE_NONE

    def to_dict(self):
        return {
            "answer": self.answer,
            "sources": [{"title": title, "url": url} for title, url in self.sources],
            "phase": self.phase,
        }


def build_answer_prompt(query: str, items: List[ContextItem]) -> str:
    context = "\n\n".join(
        f"[Source {idx}] ({item.category or GLOBAL_SOURCE_LABEL})\n"
        f"Title: {item.title}\nURL: {item.url}\nContent: {item.content}"
        for idx, item in enumerate(items, 1)
    )
    return (
        "You are an assistant for a personal collection of saved web pages.\n"
        "Answer the user's question using the saved page contents below as your knowledge source.\n\n"
        "### Rules:\n"
        "1. Always prioritize the content of the provided pages.\n"
        "2. Cite the pages you used inline as [1], [2] and so on.\n"
        "3. Information drawn from several sources is cited as [1][2].\n"
        "4. Only when the provided pages are insufficient, supplement with general knowledge "
        "and state explicitly that you are doing so.\n"
        "5. If nothing in the saved pages matches what the user is looking for, say so honestly.\n"
        "6. Answer in the same language as the question.\n\n"
        f"Question: {query}\n\n"
        "---\n"
        f"Saved pages (citation numbers follow this list, [1] to [{len(items)}]):\n"
        f"{context}\n"
        "---\n\n"
        "Format the answer as Markdown."
    )


class RAGAnswerEngine:
    """Two-phase retrieval (category, then global) followed by one generation call."""

    def __init__(self, store: IRecordStore, settings: ISettingsStore, gateway: EmbeddingGateway,
                 model: str = GENERATION_MODEL, category_top_k: int = RAG_CATEGORY_TOP_K,
                 global_top_k: int = RAG_GLOBAL_TOP_K):
        self.store = store
        self.settings = settings
        self.gateway = gateway
        self.model = model
        self.category_top_k = category_top_k
        self.global_top_k = global_top_k

    def _category_context(self, query: str) -> List[ContextItem]:
        taxonomy = self.settings.get_taxonomy()
        if taxonomy.is_empty:
            return []

        selected = select_relevant_categories(query, taxonomy.categories, self.gateway, self.model)
        logger.log_operation("rag.select_categories", "success", {"selected": selected})
        if not selected:
            return []

        in_scope = [r for r in self.store.get_all() if r.category and r.category in selected]
        if not in_scope:
            return []

        try:
            embedded = self.gateway.embed_with_fallback(
                query,
                candidate_embedding_models(self.settings.get_embedding_model(EMBED_MODEL))
            )
        except OracleFailure as e:
            logger.warning(f"Query embedding failed, using global results: {e}")
            return []

        ranked = rank_records(embedded.vector, in_scope, limit=self.category_top_k)
        by_url = {r.url: r for r in in_scope}
        items = []
        for result in ranked:
            record = by_url[result.url]
            items.append(ContextItem(
                title=record.title,
                url=record.url,
                content=record.text_content or record.description or NO_CONTENT,
                score=result.score,
                category=record.category
            ))
        return items

    def _global_context(self, search_results: Iterable[SearchResult]) -> List[ContextItem]:
        items = []
        for result in list(search_results)[:self.global_top_k]:
            stored = self.store.get(result.url)
            content = (stored.text_content if stored else None) or result.description or NO_CONTENT
            items.append(ContextItem(title=result.title, url=result.url, content=content, score=result.score))
        return items

    def answer(self, query: str, search_results: Iterable[SearchResult] = (),
               skip_category_selection: bool = False) -> RagAnswer:
        """Answer `query` from saved pages with inline [n] citations.

        Returns the fixed insufficient-information answer, without any
        generation call, when no context can be gathered. Generation errors
        propagate.
        """
        self.gateway.check_credentials()

        items: List[ContextItem] = []
        phase = PHASE_NONE
        if not skip_category_selection:
            items = self._category_context(query)
            if items:
                phase = PHASE_CATEGORY

        if not items:
            items = self._global_context(search_results)
            if items:
                phase = PHASE_GLOBAL

        if not items:
            logger.log_operation("rag.answer", "no_context", {"query": query})
            return RagAnswer(answer=INSUFFICIENT_INFORMATION_ANSWER, sources=[], phase=PHASE_NONE)

        text = self.gateway.generate(build_answer_prompt(query, items), self.model)
        logger.log_operation("rag.answer", "success", {"phase": phase, "sources": len(items)})
        return RagAnswer(
            answer=text,
            sources=[(item.title, item.url) for item in items],
            phase=phase
        )
