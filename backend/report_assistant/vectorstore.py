from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import chromadb
from chromadb.config import Settings

from .config import CHROMA_COLLECTION, CHROMA_DIR
from .schemas import FieldMapping


class ChromaSearchBackend:
    """Local documentation index kept in a persistent Chroma collection.

    The mapped id field is the Chroma id and the content field is the document
    text; every other mapped field is read from the chunk's metadata.
    """

    def __init__(self, field_mapping: FieldMapping, path: Optional[str] = None, collection: str = CHROMA_COLLECTION) -> None:
        self._fields = field_mapping
        self._client = chromadb.PersistentClient(
            path=path or str(CHROMA_DIR),
            settings=Settings(anonymized_telemetry=False),
        )
        self._collection = self._client.get_or_create_collection(collection)

    async def search(
        self,
        text: str,
        *,
        select: List[str],
        top: int,
        semantic_configuration: Optional[str],
        vector_query: Optional[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._query, text, select, top, vector_query)

    def _query(self, text: str, select: List[str], top: int, vector_query: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if self._collection.count() == 0:
            return []
        if vector_query:
            result = self._collection.query(query_embeddings=[vector_query["vector"]], n_results=top)
        else:
            result = self._collection.query(query_texts=[text], n_results=top)
        ids = result.get("ids", [[]])[0]
        documents = (result.get("documents") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]

        hits = []
        for index, doc_id in enumerate(ids):
            meta = dict(metadatas[index] or {}) if index < len(metadatas) else {}
            hit: Dict[str, Any] = {}
            for field in select:
                if field == self._fields.id:
                    hit[field] = doc_id
                elif field == self._fields.content:
                    hit[field] = documents[index] if index < len(documents) else ""
                elif field in meta:
                    hit[field] = meta[field]
            hits.append(hit)
        return hits
