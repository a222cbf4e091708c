from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .catalog import CatalogClient
from .config import (
    AZURE_SEARCH_API_KEY,
    AZURE_SEARCH_API_VERSION,
    AZURE_SEARCH_ENDPOINT,
    AZURE_SEARCH_INDEX,
    AZURE_SEARCH_SEMANTIC_CONFIGURATION,
    HTTP_TIMEOUT,
    LLM_PROVIDER,
    LOG_LEVEL,
    MAX_HISTORY,
    REPORT_OUTPUT_FORMAT,
    SEARCH_BACKEND,
    SESSION_DB,
    SESSION_STORE,
    SSRS_API_URL,
    SSRS_AUTH_TYPE,
    SSRS_BEARER_TOKEN,
    SSRS_PASSWORD,
    SSRS_USERNAME,
    SSRS_VIEWER_URL,
    VECTOR_SEARCH_ENABLED,
    ensure_dirs,
    field_mapping_from_env,
)
from .conversation import ReportConversation
from .llm import EmbeddingClient, LLMClient
from .operations import Operation, ReportEngine
from .parameters import ParameterExtractor
from .resolver import ReportNameResolver
from .schemas import ChatRequest, ChatResponse
from .search import AzureSearchBackend, SearchClient
from .storage import InMemorySessionStore, SqliteSessionStore, create_session_id

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


app = FastAPI(title="Report Assistant")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event() -> None:
    ensure_dirs()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    if get_engine.cache_info().currsize:
        await get_engine().aclose()


@lru_cache(maxsize=1)
def get_llm() -> LLMClient:
    return LLMClient()


@lru_cache(maxsize=1)
def get_store():
    if SESSION_STORE == "sqlite":
        ensure_dirs()
        return SqliteSessionStore(SESSION_DB)
    return InMemorySessionStore()


def _search_backend(field_mapping):
    if SEARCH_BACKEND == "chroma":
        from .vectorstore import ChromaSearchBackend

        return ChromaSearchBackend(field_mapping)
    return AzureSearchBackend(
        AZURE_SEARCH_ENDPOINT,
        AZURE_SEARCH_INDEX,
        AZURE_SEARCH_API_KEY,
        api_version=AZURE_SEARCH_API_VERSION,
        timeout=HTTP_TIMEOUT,
    )


@lru_cache(maxsize=1)
def get_engine() -> ReportEngine:
    llm = get_llm()
    field_mapping = field_mapping_from_env()
    search = SearchClient(
        _search_backend(field_mapping),
        field_mapping,
        embedder=EmbeddingClient() if VECTOR_SEARCH_ENABLED else None,
        vector_search_enabled=VECTOR_SEARCH_ENABLED,
        semantic_configuration=AZURE_SEARCH_SEMANTIC_CONFIGURATION,
    )
    catalog = CatalogClient(
        SSRS_API_URL,
        auth_type=SSRS_AUTH_TYPE,
        username=SSRS_USERNAME,
        password=SSRS_PASSWORD,
        bearer_token=SSRS_BEARER_TOKEN,
        timeout=HTTP_TIMEOUT,
    )
    return ReportEngine(
        search,
        catalog,
        ReportNameResolver(catalog, llm),
        ParameterExtractor(llm),
        viewer_base_url=SSRS_VIEWER_URL,
        output_format=REPORT_OUTPUT_FORMAT,
    )


def get_conversation() -> ReportConversation:
    return ReportConversation(get_store(), get_engine(), get_llm(), history_limit=MAX_HISTORY)


@app.get("/health")
async def health(llm: LLMClient = Depends(get_llm)) -> dict:
    return {
        "status": "ok",
        "llm_enabled": llm.available(),
        "llm_provider": LLM_PROVIDER,
        "llm_model": llm.model_name(),
        "search_backend": SEARCH_BACKEND,
        "session_store": SESSION_STORE,
    }


@app.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, conversation: ReportConversation = Depends(get_conversation)) -> ChatResponse:
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message must not be empty")
    session_id = request.session_id or create_session_id()
    result = await conversation.process_message(session_id, request.message)
    return ChatResponse(
        session_id=result.session_id,
        message=result.message,
        stage=result.stage,
        report_url=result.report_url,
    )


@app.post("/chat/clear")
async def clear_chat(session_id: Optional[str] = None, store=Depends(get_store)) -> dict:
    cleared = await store.clear(session_id)
    return {"cleared": cleared, "session_id": session_id}


@app.get("/reports")
async def list_reports(engine: ReportEngine = Depends(get_engine)) -> dict:
    try:
        reports = await engine.catalog.get_reports()
    except Exception as exc:
        logger.exception("Failed to list catalog reports")
        raise HTTPException(status_code=502, detail="Report catalog is unavailable") from exc
    return {"reports": [report.model_dump() for report in reports]}


@app.post("/operations/{operation}")
async def invoke_operation(
    operation: str,
    arguments: Optional[Dict[str, Any]] = Body(default=None),
    engine: ReportEngine = Depends(get_engine),
) -> dict:
    if operation not in {item.value for item in Operation}:
        raise HTTPException(status_code=404, detail=f"Unknown operation: {operation}")
    try:
        return await engine.invoke(operation, arguments or {})
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
