from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .schemas import FieldMapping

logger = logging.getLogger(__name__)

SearchHit = Dict[str, Any]

MAX_RESULTS = 20
DOCUMENTATION_RESULTS = 5
MAX_RETRIES = 3
NO_DOCUMENTATION = "No detailed documentation available for this report."
DOCUMENTATION_ERROR = "Unable to retrieve documentation due to an error."


class SearchBackend(Protocol):
    async def search(
        self,
        text: str,
        *,
        select: List[str],
        top: int,
        semantic_configuration: Optional[str],
        vector_query: Optional[Dict[str, Any]],
    ) -> List[SearchHit]:
        ...


class Embedder(Protocol):
    async def embed(self, text: str) -> List[float]:
        ...


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or 500 <= status < 600
    return False


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Request to the search service failed (attempt %s). Retrying in %.0fs: %s",
        retry_state.attempt_number,
        retry_state.next_action.sleep if retry_state.next_action else 0,
        exc,
    )


class AzureSearchBackend:
    """Azure AI Search REST API (documents search)."""

    def __init__(
        self,
        endpoint: str,
        index_name: str,
        api_key: str,
        api_version: str = "2024-07-01",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
    ) -> None:
        if not endpoint or not index_name or not api_key:
            raise ValueError("Azure Search endpoint, index name and API key are required")
        self._url = f"{endpoint.rstrip('/')}/indexes/{index_name}/docs/search"
        self._api_key = api_key
        self._api_version = api_version
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def search(
        self,
        text: str,
        *,
        select: List[str],
        top: int,
        semantic_configuration: Optional[str],
        vector_query: Optional[Dict[str, Any]],
    ) -> List[SearchHit]:
        body: Dict[str, Any] = {"search": text, "top": top, "select": ",".join(select), "count": True}
        if semantic_configuration:
            body["queryType"] = "semantic"
            body["semanticConfiguration"] = semantic_configuration
        if vector_query:
            body["vectorQueries"] = [vector_query]
        response = await self._client.post(
            self._url,
            params={"api-version": self._api_version},
            headers={"api-key": self._api_key},
            json=body,
        )
        response.raise_for_status()
        documents = response.json().get("value", [])
        return [{key: value for key, value in doc.items() if not key.startswith("@search.")} for doc in documents]

    async def aclose(self) -> None:
        await self._client.aclose()


class SearchClient:
    def __init__(
        self,
        backend: SearchBackend,
        field_mapping: FieldMapping,
        embedder: Optional[Embedder] = None,
        vector_search_enabled: bool = False,
        semantic_configuration: Optional[str] = "azureml-default",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._fields = field_mapping
        self._embedder = embedder
        self._semantic_configuration = semantic_configuration
        self._sleep = sleep
        self._vector_search_enabled = vector_search_enabled
        if vector_search_enabled and embedder is None:
            logger.warning("Vector search is enabled but no embedding generator is configured; disabling it")
            self._vector_search_enabled = False
        if vector_search_enabled and not field_mapping.vector:
            logger.warning("Vector search is enabled but no vector field is mapped; disabling it")
            self._vector_search_enabled = False

    async def aclose(self) -> None:
        close = getattr(self._backend, "aclose", None)
        if close is not None:
            await close()

    async def _execute_with_retry(self, call: Callable[[], Awaitable[List[SearchHit]]]) -> List[SearchHit]:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(MAX_RETRIES + 1),
            wait=wait_exponential(multiplier=2, exp_base=2),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await call()
        return []

    async def _vector_query(self, query: str) -> Optional[Dict[str, Any]]:
        if not self._vector_search_enabled:
            return None
        try:
            vector = await self._embedder.embed(query)
        except Exception:
            logger.warning("Vector search could not be enabled. Falling back to semantic search only.", exc_info=True)
            return None
        if not vector:
            return None
        logger.info("Vector search enabled with %d dimensions", len(vector))
        return {"kind": "vector", "vector": list(vector), "k": MAX_RESULTS, "fields": self._fields.vector}

    async def search_reports(self, query: str) -> List[SearchHit]:
        try:
            logger.info("Searching for reports with query: %s", query)
            select = self._fields.select_fields()
            vector_query = await self._vector_query(query)
            hits = await self._execute_with_retry(
                lambda: self._backend.search(
                    query,
                    select=select,
                    top=MAX_RESULTS,
                    semantic_configuration=self._semantic_configuration,
                    vector_query=vector_query,
                )
            )
            return [{key: hit[key] for key in select if key in hit} for hit in hits[:MAX_RESULTS]]
        except Exception:
            logger.exception("Error searching for reports with query: %s", query)
            return []

    async def get_documentation(self, title: str) -> str:
        try:
            logger.info("Getting documentation for report: %s", title)
            select = self._fields.select_fields()
            hits = await self._execute_with_retry(
                lambda: self._backend.search(
                    title,
                    select=select,
                    top=DOCUMENTATION_RESULTS,
                    semantic_configuration=self._semantic_configuration,
                    vector_query=None,
                )
            )
        except Exception:
            logger.exception("Error getting documentation for report: %s", title)
            return DOCUMENTATION_ERROR
        parts = []
        for hit in hits:
            content = hit.get(self._fields.content)
            if content and str(content).strip():
                parts.append(str(content).strip())
        return "\n\n".join(parts) if parts else NO_DOCUMENTATION

    def title_of(self, hit: SearchHit) -> str:
        return str(hit.get(self._fields.title) or "").strip()

    def document_key(self, hit: SearchHit) -> str:
        """Chunks of one logical document share a parent id; fall back to the title."""
        if self._fields.parent_id and hit.get(self._fields.parent_id):
            return str(hit[self._fields.parent_id])
        return self.title_of(hit).lower()
