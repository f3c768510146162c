"""
HTTP API over the saved-page index.

Store, settings and gateway are resolved through dependency functions so
tests can swap them with `app.dependency_overrides`.
"""

from functools import lru_cache
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .schemas import (
    CategoryCountModel,
    CategoryStatsResponse,
    CategorySyncRequest,
    ClusterModel,
    CountResponse,
    HealthResponse,
    LinkModel,
    LinksResponse,
    NotesUpdateRequest,
    OrganizeRequest,
    OrganizeResponse,
    PageAnalyzeRequest,
    PageListResponse,
    PageResponse,
    PagesDeleteRequest,
    RagRequest,
    RagResponse,
    RagSource,
    SearchRequest,
    SearchResponse,
    SearchResultModel,
    TagApplyRequest,
    TagOptimizeRequest,
    TagOptimizeResponse,
    TagsUpdateRequest,
)
from ..agents.analyzer import PageAnalyzer
from ..agents.categories import CategorySync
from ..agents.gateway import EmbeddingGateway, candidate_embedding_models
from ..agents.labeler import LabelAssigner
from ..agents.organizer import ClusterOrganizer
from ..agents.rag import RAGAnswerEngine
from ..agents.tags import TagOptimizer, apply_tag_mapping, collect_tags
from ..core import config
from ..core.config import EMBED_MODEL, LINK_THRESHOLD, RAG_GLOBAL_TOP_K, VERSION, debug_enabled
from ..core.db import health_check
from ..core.errors import (
    AuthenticationFailure,
    MalformedResponse,
    MissingCredential,
    OracleFailure,
    QuotaExceeded,
    SnapshotFormatError,
    TwinmarksError,
    describe_error,
)
from ..core.schema import PageRecord
from ..core.settings import ISettingsStore
from ..core.store import IRecordStore
from ..util.logging import logger
from ..vector.similarity import SimilarityEngine
from ..vector.types import SearchResult

# Most specific first: subclasses must match before OracleFailure
ERROR_STATUS = [
    (MissingCredential, 400),
    (AuthenticationFailure, 401),
    (QuotaExceeded, 429),
    (MalformedResponse, 502),
    (OracleFailure, 502),
    (SnapshotFormatError, 400),
]

app = FastAPI(
    title="twinmarks API",
    version=VERSION,
    description="Personal semantic index over saved web pages",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=None)
def _default_store() -> IRecordStore:
    config.ensure_db_directory()
    return config.get_record_store()


@lru_cache(maxsize=None)
def _default_settings() -> ISettingsStore:
    config.ensure_db_directory()
    return config.get_settings_store()


@lru_cache(maxsize=None)
def _default_gateway() -> EmbeddingGateway:
    return config.get_gateway()


def get_store() -> IRecordStore:
    return _default_store()


def get_settings() -> ISettingsStore:
    return _default_settings()


def get_gateway() -> EmbeddingGateway:
    return _default_gateway()


def status_for(exc: Exception) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(TwinmarksError)
async def twinmarks_error_handler(request, exc):
    """Map typed failures to HTTP status codes with a user-facing message."""
    status_code = status_for(exc)
    logger.log_operation("api.error", "failed", {
        "path": request.url.path,
        "error": type(exc).__name__,
        "status_code": status_code
    })
    content = {"detail": describe_error(exc), "error_type": type(exc).__name__}
    if debug_enabled():
        content["debug"] = str(exc)
    return JSONResponse(status_code=status_code, content=content)


def _page_response(record: PageRecord) -> PageResponse:
    return PageResponse(
        url=record.url,
        title=record.title,
        description=record.description,
        tags=record.tags,
        category=record.category,
        notes=record.notes,
        text_content=record.text_content,
        timestamp=record.timestamp,
        has_vector=record.has_vector,
        has_semantic_vector=bool(record.semantic_vector)
    )


def _search_models(results: List[SearchResult]) -> List[SearchResultModel]:
    return [SearchResultModel(**r.to_dict()) for r in results]


def _embed_query(query: str, gateway: EmbeddingGateway, settings: ISettingsStore) -> List[float]:
    models = candidate_embedding_models(settings.get_embedding_model(EMBED_MODEL))
    return gateway.embed_with_fallback(query, models).vector


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(store: IRecordStore = Depends(get_store)):
    """Check system health."""
    db_health = health_check(config.DB_PATH) if config.STORE_PROVIDER == "sqlite" else True
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        page_count=store.count()
    )


@app.get("/pages", response_model=PageListResponse)
def list_pages(store: IRecordStore = Depends(get_store)):
    records = store.get_all()
    return PageListResponse(pages=[_page_response(r) for r in records], total=len(records))


# Define /pages/item and /pages/related as query-parameter routes: URLs contain slashes
@app.get("/pages/item", response_model=PageResponse)
def get_page(url: str, store: IRecordStore = Depends(get_store)):
    record = store.get(url)
    if record is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return _page_response(record)


@app.get("/pages/related", response_model=SearchResponse)
def related_pages(url: str, limit: int = 5, field: str = "vector",
                  store: IRecordStore = Depends(get_store)):
    """Pages most similar to a stored page."""
    if store.get(url) is None:
        raise HTTPException(status_code=404, detail="Page not found")
    if field not in ("vector", "semantic_vector"):
        raise HTTPException(status_code=422, detail="field must be 'vector' or 'semantic_vector'")
    results = SimilarityEngine(store).find_related(url, limit=limit, field=field)
    return SearchResponse(results=_search_models(results))


@app.post("/pages/analyze", response_model=PageResponse)
def analyze_page(request: PageAnalyzeRequest,
                 store: IRecordStore = Depends(get_store),
                 settings: ISettingsStore = Depends(get_settings),
                 gateway: EmbeddingGateway = Depends(get_gateway)):
    """Describe, tag, embed and save a page."""
    analyzer = PageAnalyzer(store, settings, gateway)
    record = analyzer.analyze(
        url=request.url,
        title=request.title,
        text=request.text,
        image_data=request.image_data,
        h1=request.h1,
        meta_description=request.meta_description
    )
    return _page_response(record)


@app.delete("/pages", response_model=CountResponse)
def delete_pages(request: PagesDeleteRequest, store: IRecordStore = Depends(get_store)):
    urls = [u for u in request.urls if store.get(u) is not None]
    store.remove_all(urls)
    return CountResponse(count=len(urls))


@app.put("/pages/tags", response_model=PageResponse)
def update_tags(request: TagsUpdateRequest, store: IRecordStore = Depends(get_store)):
    record = store.update_tags(request.url, request.tags)
    if record is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return _page_response(record)


@app.put("/pages/notes", response_model=PageResponse)
def update_notes(request: NotesUpdateRequest, store: IRecordStore = Depends(get_store)):
    record = store.update_notes(request.url, request.notes)
    if record is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return _page_response(record)


@app.post("/search", response_model=SearchResponse)
def search(request: SearchRequest,
           store: IRecordStore = Depends(get_store),
           settings: ISettingsStore = Depends(get_settings),
           gateway: EmbeddingGateway = Depends(get_gateway)):
    """Rank stored pages against the embedded query."""
    query_vector = _embed_query(request.query, gateway, settings)
    results = SimilarityEngine(store).rank(query_vector, field=request.field, limit=request.limit)
    return SearchResponse(results=_search_models(results))


@app.get("/links", response_model=LinksResponse)
def links(threshold: float = LINK_THRESHOLD, field: str = "vector", store: IRecordStore = Depends(get_store)):
    """Similarity graph edges above `threshold`."""
    if field not in ("vector", "semantic_vector"):
        raise HTTPException(status_code=422, detail="field must be 'vector' or 'semantic_vector'")
    edges = SimilarityEngine(store).links(threshold, field=field)
    return LinksResponse(
        links=[LinkModel(source=e.source, target=e.target, score=e.score) for e in edges],
        threshold=threshold
    )


@app.post("/rag/answer", response_model=RagResponse)
def rag_answer(request: RagRequest,
               store: IRecordStore = Depends(get_store),
               settings: ISettingsStore = Depends(get_settings),
               gateway: EmbeddingGateway = Depends(get_gateway)):
    """Answer a question from saved pages with inline citations."""
    gateway.check_credentials()
    try:
        query_vector = _embed_query(request.query, gateway, settings)
        global_results = SimilarityEngine(store).rank(query_vector, limit=RAG_GLOBAL_TOP_K)
    except OracleFailure as e:
        logger.warning(f"Global search for RAG failed: {e}")
        global_results = []

    engine = RAGAnswerEngine(store, settings, gateway)
    result = engine.answer(
        request.query,
        search_results=global_results,
        skip_category_selection=request.skip_category_selection
    )
    return RagResponse(
        answer=result.answer,
        sources=[RagSource(title=title, url=url) for title, url in result.sources],
        phase=result.phase
    )


@app.post("/categories/sync", response_model=CategoryStatsResponse)
def sync_categories(request: CategorySyncRequest,
                    store: IRecordStore = Depends(get_store),
                    settings: ISettingsStore = Depends(get_settings),
                    gateway: EmbeddingGateway = Depends(get_gateway)):
    gateway.check_credentials()
    stats = CategorySync(store, settings, LabelAssigner(gateway)).sync(request.target_category_count)
    return CategoryStatsResponse(
        categories=[CategoryCountModel(**c.to_dict()) for c in stats],
        last_sync=settings.get_taxonomy().last_sync
    )


@app.get("/categories/stats", response_model=CategoryStatsResponse)
def category_stats(store: IRecordStore = Depends(get_store), settings: ISettingsStore = Depends(get_settings)):
    """Per-category counts against the current taxonomy."""
    taxonomy = settings.get_taxonomy()
    stats = store.category_stats(None if taxonomy.is_empty else taxonomy.categories)
    return CategoryStatsResponse(
        categories=[CategoryCountModel(**c.to_dict()) for c in stats],
        last_sync=taxonomy.last_sync
    )


@app.post("/clusters/organize", response_model=OrganizeResponse)
def organize(request: OrganizeRequest,
             store: IRecordStore = Depends(get_store),
             settings: ISettingsStore = Depends(get_settings),
             gateway: EmbeddingGateway = Depends(get_gateway)):
    gateway.check_credentials()
    organizer = ClusterOrganizer(store, settings, LabelAssigner(gateway))
    clusters = organizer.organize(
        k=request.k,
        naming_instruction=request.naming_instruction,
        forbidden_names=request.forbidden_names
    )
    return OrganizeResponse(clusters=[ClusterModel(**c.to_dict()) for c in clusters])


@app.post("/tags/optimize", response_model=TagOptimizeResponse)
def optimize_tags(request: TagOptimizeRequest,
                  store: IRecordStore = Depends(get_store),
                  gateway: EmbeddingGateway = Depends(get_gateway)):
    """Propose a tag mapping; the current vocabulary is used when no tags are given."""
    tags = request.tags
    if tags is None:
        tags = [tag for tag, _ in collect_tags(store.get_all())]
    if tags:
        gateway.check_credentials()
    mapping = TagOptimizer(gateway).optimize(tags, request.target_count)
    return TagOptimizeResponse(mapping=mapping)


@app.post("/tags/apply", response_model=CountResponse)
def apply_tags(request: TagApplyRequest, store: IRecordStore = Depends(get_store)):
    return CountResponse(count=apply_tag_mapping(store, request.mapping))


@app.get("/snapshot")
def export_snapshot(store: IRecordStore = Depends(get_store)):
    return Response(content=store.export_snapshot(), media_type="application/json")


@app.post("/snapshot", response_model=CountResponse)
async def import_snapshot(request: Request, store: IRecordStore = Depends(get_store)):
    """Merge a snapshot (raw JSON array body) into the store."""
    body = await request.body()
    imported = await run_in_threadpool(store.import_snapshot, body)
    return CountResponse(count=imported)
