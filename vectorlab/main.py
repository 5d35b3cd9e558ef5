"""
Vector Lab - FastAPI application for semantic, lexical and hybrid search

API for comparing retrieval strategies over one document collection:
- Semantic: embedding cosine similarity (sentence-transformers or Vertex AI)
- Lexical: BM25 over document text
- Hybrid: alpha-weighted fusion of both

Storage is pluggable (in-memory for development, PostgreSQL + pgvector for
deployments). The embedder and vector store are created once at startup
and shared by all requests through the SearchService.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings, load_environment
from .embeddings import create_embedder
from .errors import InvalidInputError, SearchError
from .logging_config import setup_logging
from .search_service import SearchMode, SearchResponse, SearchService
from .vector_store import create_vector_store

# Load .env.local / .env before reading settings
env_path = load_environment()

settings = Settings.from_env()

# Configure logging: console (brief) + file (detailed)
setup_logging(
    log_file=settings.log_file or None,
    console_level=getattr(logging, settings.log_level, logging.INFO),
    file_level=logging.DEBUG  # Always DEBUG in file for troubleshooting
)

logger = logging.getLogger(__name__)
if env_path:
    logger.info(f"Loaded environment from: {env_path}")
else:
    logger.warning("No .env.local or .env file found - using system environment variables only")

APP_START_TIME = datetime.now(timezone.utc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create embedder, vector store and search service; release them on shutdown"""
    if getattr(app.state, "search_service", None) is not None:
        # Injected externally (tests, embedding in another app)
        yield
        return

    logger.info(f"Initializing embedding model (provider={settings.embedding_provider})...")
    embedder = create_embedder(settings)

    vector_store = create_vector_store(settings, dimension=embedder.dimension)
    try:
        await vector_store.connect()
        logger.info(f"Vector store ready ({settings.vector_store})")
    except Exception as e:
        # Keep serving: requests that need the store get 503
        logger.error(f"Vector store connection failed: {e}")
        vector_store = None

    app.state.search_service = SearchService(embedder, vector_store, settings)

    yield

    # Shutdown: Cleanup resources
    logger.info("Shutting down...")
    if vector_store is not None:
        await vector_store.disconnect()
    embedder.close()
    app.state.search_service = None


# FastAPI app
app = FastAPI(
    title="Vector Lab API",
    description="Semantic, lexical (BM25) and hybrid search over a vector store",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_search_service(request: Request) -> SearchService:
    service = getattr(request.app.state, "search_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Search service not initialized",
        )
    return service


# Request/Response models
class HealthResponse(BaseModel):
    status: str
    version: str
    vector_store: str
    documents: Optional[int] = None
    embedding_model: Dict[str, Any]
    started_at: str
    uptime_seconds: float


class SearchParams(BaseModel):
    query: str = Field(..., description="Search query", min_length=1)
    top_k: Optional[int] = Field(
        default=None,
        ge=1,
        description="Number of results (default: DEFAULT_TOP_K, max: MAX_TOP_K)"
    )
    alpha: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Hybrid weight: 1.0 = semantic only, 0.0 = lexical only (default: DEFAULT_ALPHA)"
    )
    namespace: Optional[str] = Field(
        default=None,
        description="Vector store namespace (default: DEFAULT_NAMESPACE)"
    )

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "query": "how do cats sleep",
            "top_k": 10,
            "alpha": 0.7,
        }
    })


class SearchRequest(SearchParams):
    mode: SearchMode = Field(default=SearchMode.HYBRID, description="semantic | lexical | hybrid")


class SearchResultItem(BaseModel):
    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None
    details: Optional[Dict[str, float]] = None


class SearchResponseModel(BaseModel):
    query: str
    mode: SearchMode
    results: List[SearchResultItem]
    total: int
    time_ms: float


class EmbeddingRequest(BaseModel):
    text: str = Field(..., description="Text to embed", min_length=1)


class EmbeddingResponse(BaseModel):
    embedding: List[float]
    dimension: int


class DocumentUpsertRequest(BaseModel):
    text: str = Field(..., description="Document text (stored as metadata.text)", min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Extra metadata stored with the vector")
    namespace: Optional[str] = None
    id: Optional[str] = Field(default=None, description="Record id (generated when omitted)")
    embedding: Optional[List[float]] = Field(
        default=None,
        description="Precomputed embedding (must match the store dimension); the text is embedded when omitted"
    )


class DocumentUpsertResponse(BaseModel):
    id: str
    namespace: str
    message: str


class DocumentResponse(BaseModel):
    id: str
    namespace: str
    metadata: Dict[str, Any]
    embedding: Optional[List[float]] = None


class DocumentListResponse(BaseModel):
    namespace: str
    documents: List[DocumentResponse]
    total: int


def _to_response(query: str, response: SearchResponse) -> SearchResponseModel:
    return SearchResponseModel(
        query=query,
        mode=response.mode,
        results=[
            SearchResultItem(id=hit.id, score=hit.score, metadata=hit.metadata, details=hit.details)
            for hit in response.results
        ],
        total=len(response.results),
        time_ms=round(response.time_ms, 3),
    )


async def _run_search(service: SearchService, params: SearchParams, mode: SearchMode) -> SearchResponseModel:
    try:
        response = await service.search(
            query=params.query,
            mode=mode,
            top_k=params.top_k,
            alpha=params.alpha,
            namespace=params.namespace,
        )
        return _to_response(params.query, response)

    except SearchError:
        raise
    except Exception as e:
        logger.exception(f"{mode.value} search failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Search failed: {str(e)}",
        )


# Routes
@app.get("/", response_model=dict)
async def root():
    """Root endpoint"""
    return {
        "service": "Vector Lab API",
        "version": __version__,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health", response_model=HealthResponse)
async def health(service: SearchService = Depends(get_search_service)):
    """Health check endpoint"""
    uptime = (datetime.now(timezone.utc) - APP_START_TIME).total_seconds()
    documents = None
    try:
        documents = await service.document_count()
    except SearchError as e:
        logger.warning(f"Health check: {e.message}")
    store_ready = documents is not None

    return HealthResponse(
        status="healthy" if store_ready else "degraded",
        version=__version__,
        vector_store=settings.vector_store if store_ready else "unavailable",
        documents=documents,
        embedding_model=service.embedder.get_model_info() if service.embedder else {},
        started_at=APP_START_TIME.isoformat(),
        uptime_seconds=round(uptime, 2),
    )


@app.post("/v1/search", response_model=SearchResponseModel, response_model_exclude_none=True)
async def search(request: SearchRequest, service: SearchService = Depends(get_search_service)):
    """
    Search the vector store in the requested mode.

    **Modes:**
    - `semantic`: cosine similarity between query and document embeddings
    - `lexical`: BM25 over up to LEXICAL_CORPUS_LIMIT documents of the namespace,
      scores divided by the best score (>= 1)
    - `hybrid`: `alpha * semantic + (1 - alpha) * lexical` over the top
      HYBRID_CANDIDATES semantic matches

    **Example:**
    ```json
    {
        "query": "cat on a mat",
        "mode": "hybrid",
        "top_k": 5,
        "alpha": 0.7
    }
    ```

    **Errors:** `{"error": "..."}` with 400 (invalid request), 503 (embedding
    model or vector store unavailable), 500 (unexpected failure).
    """
    return await _run_search(service, request, request.mode)


@app.post("/v1/search/semantic", response_model=SearchResponseModel, response_model_exclude_none=True)
async def search_semantic(request: SearchParams, service: SearchService = Depends(get_search_service)):
    """Semantic-only search (same as /v1/search with mode=semantic)"""
    return await _run_search(service, request, SearchMode.SEMANTIC)


@app.post("/v1/search/lexical", response_model=SearchResponseModel, response_model_exclude_none=True)
async def search_lexical(request: SearchParams, service: SearchService = Depends(get_search_service)):
    """BM25-only search (same as /v1/search with mode=lexical)"""
    return await _run_search(service, request, SearchMode.LEXICAL)


@app.post("/v1/search/hybrid", response_model=SearchResponseModel, response_model_exclude_none=True)
async def search_hybrid(request: SearchParams, service: SearchService = Depends(get_search_service)):
    """Hybrid search (same as /v1/search with mode=hybrid)"""
    return await _run_search(service, request, SearchMode.HYBRID)


@app.post("/v1/embed", response_model=EmbeddingResponse)
async def create_embedding(request: EmbeddingRequest, service: SearchService = Depends(get_search_service)):
    """
    Generate a text embedding with the configured model

    Example:
        POST /v1/embed
        {
            "text": "What is hybrid search?"
        }
    """
    try:
        embedding = await service.embed(request.text)
        return EmbeddingResponse(embedding=embedding, dimension=len(embedding))

    except SearchError:
        raise
    except Exception as e:
        logger.exception("Embedding generation failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Embedding generation failed: {str(e)}",
        )


@app.post("/v1/documents", response_model=DocumentUpsertResponse)
async def upsert_document(request: DocumentUpsertRequest, service: SearchService = Depends(get_search_service)):
    """
    Embed a document and store it in the vector store

    The text is kept in metadata["text"] so lexical and hybrid search can score it.
    A precomputed `embedding` is stored as given (its length must match the
    store dimension) instead of embedding the text.
    """
    namespace = service.settings.default_namespace if request.namespace is None else request.namespace
    try:
        record_id = await service.upsert_document(
            text=request.text,
            metadata=request.metadata,
            namespace=namespace,
            record_id=request.id,
            vector=request.embedding,
        )
        return DocumentUpsertResponse(
            id=record_id,
            namespace=namespace,
            message="Document stored",
        )

    except SearchError:
        raise
    except Exception as e:
        logger.exception("Document upsert failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Document upsert failed: {str(e)}",
        )


@app.get("/v1/documents", response_model=DocumentListResponse)
async def list_documents(
    namespace: Optional[str] = None,
    limit: int = Query(default=10, ge=1, le=1000, description="Maximum number of records"),
    service: SearchService = Depends(get_search_service),
):
    """
    Sample stored records of a namespace, oldest first

    With limit=1 this shows the metadata layout of the namespace; an empty
    namespace returns an empty list.
    """
    namespace = service.settings.default_namespace if namespace is None else namespace
    records = await service.list_documents(namespace, limit)
    return DocumentListResponse(
        namespace=namespace,
        documents=[
            DocumentResponse(id=r.id, namespace=namespace, metadata=r.metadata or {})
            for r in records
        ],
        total=len(records),
    )


@app.get("/v1/documents/{record_id}", response_model=DocumentResponse)
async def get_document(
    record_id: str,
    namespace: Optional[str] = None,
    service: SearchService = Depends(get_search_service),
):
    """Fetch one stored record (metadata and embedding) by id; 404 when missing"""
    namespace = service.settings.default_namespace if namespace is None else namespace
    record = await service.get_document(record_id, namespace)
    return DocumentResponse(
        id=record.id,
        namespace=namespace,
        metadata=record.metadata,
        embedding=record.vector,
    )


# Error responses share one shape: {"error": "..."}
@app.exception_handler(SearchError)
async def search_error_handler(request: Request, exc: SearchError):
    if not isinstance(exc, InvalidInputError):
        logger.warning(f"{request.url.path}: {exc.message}")
    return JSONResponse(status_code=int(exc.status_code), content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "; ".join(messages) or "Invalid request"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": f"Internal server error: {str(exc)}"},
    )


def run():
    """Console entry point: serve the API with uvicorn"""
    import uvicorn

    uvicorn.run("vectorlab.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
