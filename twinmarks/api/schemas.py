"""
Request and response models for the twinmarks HTTP API.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict


class PageAnalyzeRequest(BaseModel):
    url: str
    title: str = ""
    text: str = ""
    image_data: Optional[str] = None
    h1: Optional[str] = None
    meta_description: Optional[str] = None

    @field_validator('url')
    @classmethod
    def url_must_be_http(cls, v):
        v = v.strip()
        if not v.startswith(('http://', 'https://')):
            raise ValueError('url must start with http:// or https://')
        return v


class PageResponse(BaseModel):
    url: str
    title: str
    description: Optional[str] = None
    tags: List[str] = []
    category: Optional[str] = None
    notes: Optional[str] = None
    text_content: Optional[str] = None
    timestamp: int
    has_vector: bool
    has_semantic_vector: bool


class PageListResponse(BaseModel):
    pages: List[PageResponse]
    total: int


class PagesDeleteRequest(BaseModel):
    urls: List[str]

    @field_validator('urls')
    @classmethod
    def urls_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('urls cannot be empty')
        return v


class TagsUpdateRequest(BaseModel):
    url: str
    tags: List[str]


class NotesUpdateRequest(BaseModel):
    url: str
    notes: Optional[str] = None


class SearchRequest(BaseModel):
    query: str
    limit: int = Field(default=5, ge=1, le=100)
    field: str = "vector"

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v

    @field_validator('field')
    @classmethod
    def field_must_be_valid(cls, v):
        valid_fields = ['vector', 'semantic_vector']
        if v not in valid_fields:
            raise ValueError(f'field must be one of: {valid_fields}')
        return v


class SearchResultModel(BaseModel):
    url: str
    title: str
    score: float
    description: Optional[str] = None
    category: Optional[str] = None


class SearchResponse(BaseModel):
    results: List[SearchResultModel]


class LinkModel(BaseModel):
    source: str
    target: str
    score: float


class LinksResponse(BaseModel):
    links: List[LinkModel]
    threshold: float


class RagRequest(BaseModel):
    query: str
    skip_category_selection: bool = False

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v


class RagSource(BaseModel):
    title: str
    url: str


class RagResponse(BaseModel):
    answer: str
    sources: List[RagSource]
    phase: str


class CategorySyncRequest(BaseModel):
    target_category_count: int = Field(default=20, ge=2, le=100)


class CategoryCountModel(BaseModel):
    name: str
    count: int


class CategoryStatsResponse(BaseModel):
    categories: List[CategoryCountModel]
    last_sync: Optional[int] = None


class OrganizeRequest(BaseModel):
    k: Optional[int] = Field(default=None, ge=2)
    naming_instruction: Optional[str] = None
    forbidden_names: List[str] = []


class ClusterItem(BaseModel):
    url: str
    title: str
    tags: List[str] = []


class ClusterModel(BaseModel):
    id: int
    name: Optional[str] = None
    key: str
    items: List[ClusterItem]


class OrganizeResponse(BaseModel):
    clusters: List[ClusterModel]


class TagOptimizeRequest(BaseModel):
    tags: Optional[List[str]] = None
    target_count: Optional[int] = Field(default=None, ge=1)


class TagOptimizeResponse(BaseModel):
    mapping: Dict[str, str]


class TagApplyRequest(BaseModel):
    mapping: Dict[str, str]


class CountResponse(BaseModel):
    count: int


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    page_count: int
