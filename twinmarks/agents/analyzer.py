"""
Page analysis: turn extracted page content into a stored, vectorized record.

Generation steps degrade to non-AI values when the oracle fails; only the
primary embedding is required for a page to be saved.
"""

import re
from typing import List, Optional, Tuple

from ..core.config import EMBED_MODEL, GENERATION_MODEL, MULTIMODAL_MODEL_HINTS, TEXT_SNIPPET_CHARS
from ..core.errors import OracleFailure
from ..core.schema import PageRecord, normalize_tags, now_ms
from ..core.settings import ISettingsStore
from ..core.store import IRecordStore
from ..util.logging import logger
from .gateway import EmbeddingGateway, candidate_embedding_models

TAGS_MARKER = "---TAGS---"
TAG_SPLIT = re.compile(r"[,、]")
FALLBACK_DESCRIPTION_CHARS = 500
MULTIMODAL_TEXT_CHARS = 1000
TEXT_PROMPT_CHARS = 5000
EMBED_CONTEXT_CHARS = 1000
SHORT_DESCRIPTION_CHARS = 50
SUMMARY_CHARS = 100


def is_multimodal_model(model: str) -> bool:
    name = (model or "").lower()
    return any(hint in name for hint in MULTIMODAL_MODEL_HINTS)


def parse_description_and_tags(generated: str) -> Tuple[str, List[str]]:
    """Split oracle output of the form "description ---TAGS--- [a, b, c]"."""
    if TAGS_MARKER not in generated:
        return generated.strip(), []

    description, tag_part = generated.split(TAGS_MARKER, 1)
    tag_part = tag_part.strip().strip("[]")
    tags = [t.strip().strip("\"'") for t in TAG_SPLIT.split(tag_part)]
    return description.strip(), normalize_tags(tags)


def build_multimodal_prompt(url: str, title: str, text: str, h1: Optional[str],
                            meta_description: Optional[str]) -> str:
    return (
        "From the screenshot of the web page and the metadata below, describe in detail what the page "
        "is about and what kind of content it is (article, tool, chart, login screen and so on).\n"
        "Also produce 3 to 5 **broad category tags** for the page. Choose general classifications "
        "(for example \"Web development\", \"News\", \"AI\", \"Business\", \"Shopping\"), not specific "
        "proper nouns.\n\n"
        "Output format:\n"
        "[description]\n"
        f"{TAGS_MARKER}\n"
        "[tag1, tag2, tag3]\n\n"
        f"Title: {title}\n"
        f"URL: {url}\n"
        f"H1: {h1 or 'none'}\n"
        f"Meta description: {meta_description or 'none'}\n"
        f"Body (first {MULTIMODAL_TEXT_CHARS} characters): {text[:MULTIMODAL_TEXT_CHARS]}..."
    )


def build_text_prompt(url: str, title: str, text: str) -> str:
    return (
        "Summarize and describe the text content of the web page below concisely, in 50 characters "
        "or fewer. Also produce 3 to 5 **broad category tags** for the content. Choose general "
        "classifications (for example \"Technology\", \"News\", \"Lifestyle\", \"Shopping\", "
        "\"Learning\"), not specific proper nouns.\n\n"
        "Output format:\n"
        "[description]\n"
        f"{TAGS_MARKER}\n"
        "[tag1, tag2, tag3]\n\n"
        f"Title: {title}\n"
        f"URL: {url}\n\n"
        f"{text[:TEXT_PROMPT_CHARS]}"
    )


class PageAnalyzer:
    """Describes, tags and embeds a page, then saves it to the record store."""

    def __init__(self, store: IRecordStore, settings: ISettingsStore, gateway: EmbeddingGateway,
                 model: str = GENERATION_MODEL):
        self.store = store
        self.settings = settings
        self.gateway = gateway
        self.model = model

    def _describe(self, url: str, title: str, text: str, image_data: Optional[str],
                  h1: Optional[str], meta_description: Optional[str]) -> str:
        if image_data and is_multimodal_model(self.model):
            try:
                generated = self.gateway.generate(
                    build_multimodal_prompt(url, title, text, h1, meta_description),
                    self.model,
                    image_data=image_data
                )
                if generated.strip():
                    return generated
            except OracleFailure as e:
                logger.warning(f"Multimodal description failed for {url}, retrying text only: {e}")

        return self.gateway.generate_or_default(
            build_text_prompt(url, title, text),
            self.model,
            default=text[:FALLBACK_DESCRIPTION_CHARS]
        )

    def _summarize(self, description: str) -> str:
        if len(description) < SUMMARY_CHARS:
            return description
        return self.gateway.generate_or_default(
            f"Summarize the following text in 50 characters or fewer.\n\n{description}",
            self.model,
            default=description[:SUMMARY_CHARS]
        ).strip() or description[:SUMMARY_CHARS]

    def _semantic_vector(self, description: str, tags: List[str], notes: Optional[str],
                         models: List[str]) -> Optional[List[float]]:
        parts = [
            description[:EMBED_CONTEXT_CHARS],
            f"Tags: {', '.join(tags)}" if tags else "",
            f"Notes: {notes}" if notes else "",
        ]
        try:
            return self.gateway.embed_with_fallback("\n".join(p for p in parts if p), models).vector
        except OracleFailure as e:
            logger.warning(f"Semantic vector failed, storing without it: {e}")
            return None

    def analyze(self, url: str, title: str, text: str, image_data: Optional[str] = None,
                h1: Optional[str] = None, meta_description: Optional[str] = None) -> PageRecord:
        """Analyze a page and store the resulting record.

        Raises MissingCredential before any oracle call, and the embedding
        error when every candidate model fails. Existing notes and category
        of a previously saved page are preserved.
        """
        self.gateway.check_credentials()
        text = text or ""
        existing = self.store.get(url)

        generated = self._describe(url, title, text, image_data, h1, meta_description)
        description, tags = parse_description_and_tags(generated)

        if len(description) > SHORT_DESCRIPTION_CHARS:
            embed_input = description
        else:
            embed_input = f"{title}\n{description}\nContext: {text[:EMBED_CONTEXT_CHARS]}"

        stored_model = self.settings.get_embedding_model(EMBED_MODEL)
        models = candidate_embedding_models(stored_model)
        embedded = self.gateway.embed_with_fallback(embed_input, models)
        if embedded.model_used != stored_model:
            self.settings.set_embedding_model(embedded.model_used)

        summary = self._summarize(description)
        notes = existing.notes if existing else None
        semantic_vector = self._semantic_vector(description, tags, notes, [embedded.model_used])

        record = PageRecord(
            url=url,
            title=title,
            vector=embedded.vector,
            semantic_vector=semantic_vector,
            description=summary,
            tags=tags,
            category=existing.category if existing else None,
            notes=notes,
            text_content=text[:TEXT_SNIPPET_CHARS],
            timestamp=now_ms()
        )
        self.store.put(record)
        logger.log_store_operation("analyze", url, {
            "tags": tags,
            "model_used": embedded.model_used,
            "has_semantic_vector": semantic_vector is not None
        })
        return record
