"""Local Chroma search backend mapped through the same field names as the managed index."""

import asyncio

from report_assistant.schemas import FieldMapping
from report_assistant.search import SearchClient
from report_assistant.vectorstore import ChromaSearchBackend


def test_vector_query_maps_fields(tmp_path):
    mapping = FieldMapping()
    backend = ChromaSearchBackend(mapping, path=str(tmp_path), collection="docs_test")
    backend._collection.add(
        ids=["c1", "c2"],
        documents=["Sales by region and month", "Stock on hand per warehouse"],
        metadatas=[{"title": "Sales", "parent_id": "doc-1"}, {"title": "Inventory Status", "parent_id": "doc-2"}],
        embeddings=[[1.0, 0.0], [0.0, 1.0]],
    )

    hits = asyncio.run(
        backend.search(
            "sales",
            select=mapping.select_fields(),
            top=1,
            semantic_configuration=None,
            vector_query={"kind": "vector", "vector": [0.9, 0.1], "k": 1, "fields": "contentVector"},
        )
    )

    assert hits == [{"id": "c1", "title": "Sales", "content": "Sales by region and month", "parent_id": "doc-1"}]


def test_empty_collection_returns_nothing(tmp_path):
    backend = ChromaSearchBackend(FieldMapping(), path=str(tmp_path), collection="empty_test")
    client = SearchClient(backend, FieldMapping(), semantic_configuration=None)
    assert asyncio.run(client.search_reports("sales")) == []
