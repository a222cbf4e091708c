"""Shared fixtures: a small report catalog, a stubbed search index and fake LLMs."""

import sys
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from report_assistant.catalog import find_by_name
from report_assistant.operations import ReportEngine
from report_assistant.parameters import ParameterExtractor
from report_assistant.resolver import ReportNameResolver
from report_assistant.schemas import FieldMapping, Report, ReportParameter
from report_assistant.search import SearchClient
from report_assistant.storage import InMemorySessionStore


# =============================================================================
# CATALOG FIXTURES
# =============================================================================

def region_parameter() -> ReportParameter:
    return ReportParameter(name="Region", data_type="String", prompt="Sales region", allowed_values=["North", "South"])


def format_parameter() -> ReportParameter:
    return ReportParameter(name="Format", data_type="String", prompt="Output layout", default_values=["PDF"])


class FakeCatalog:
    """In-memory stand-in for CatalogClient with the same coroutine surface."""

    def __init__(self, reports: List[Report], parameters: Optional[Dict[str, List[ReportParameter]]] = None):
        self.reports = reports
        self.parameters = parameters or {}
        self.get_reports_calls = 0

    async def get_reports(self) -> List[Report]:
        self.get_reports_calls += 1
        return [report.model_copy(deep=True) for report in self.reports]

    async def get_report_by_id(self, report_id: str) -> Optional[Report]:
        for report in self.reports:
            if report.id == report_id:
                loaded = report.model_copy(deep=True)
                loaded.parameters = [p.model_copy(deep=True) for p in self.parameters.get(report_id, [])]
                return loaded
        return None

    async def get_report_parameters(self, report_id: str) -> List[ReportParameter]:
        return list(self.parameters.get(report_id, []))

    async def get_report_by_name(self, name: str) -> Optional[Report]:
        match = find_by_name(self.reports, name)
        return await self.get_report_by_id(match.id) if match else None


class FakeLLM:
    """Returns canned replies; records every prompt it receives."""

    def __init__(self, chitchat: str = "", extraction: str = "", suggestion: str = ""):
        self.chitchat = chitchat
        self.extraction = extraction
        self.suggestion = suggestion
        self.calls: List[str] = []

    def available(self) -> bool:
        return True

    def model_name(self) -> str:
        return "fake-model"

    async def chitchat_reply(self, message: str) -> str:
        self.calls.append("chitchat")
        return self.chitchat

    async def extract_parameters(self, message: str, report: Report) -> str:
        self.calls.append("extract")
        return self.extraction

    async def suggest_report_name(self, title, report_names, history) -> str:
        self.calls.append("suggest")
        return self.suggestion


@pytest.fixture
def sales_report():
    return Report(
        id="R1",
        name="Sales",
        path="/Finance/Sales",
        description="Monthly sales figures",
        parameters=[region_parameter(), format_parameter()],
    )


@pytest.fixture
def catalog():
    reports = [
        Report(id="R1", name="Sales", path="/Finance/Sales", description="Monthly sales figures"),
        Report(id="R2", name="Inventory Status", path="/Ops/Inventory Status"),
        Report(id="R3", name="RegionalSalesMonthly", path="/Finance/RegionalSalesMonthly"),
    ]
    return FakeCatalog(reports, {"R1": [region_parameter(), format_parameter()], "R2": [], "R3": []})


# =============================================================================
# SEARCH FIXTURES
# =============================================================================

def hit(title: str, doc_id: str = "", parent_id: str = "", content: str = "") -> dict:
    return {
        "id": doc_id or title.lower(),
        "title": title,
        "content": content or f"Documentation for {title}",
        "parent_id": parent_id,
    }


@pytest.fixture
def field_mapping():
    return FieldMapping()


@pytest.fixture
def search_backend():
    backend = AsyncMock()
    backend.search.return_value = []
    return backend


@pytest.fixture
def search_client(search_backend, field_mapping):
    return SearchClient(search_backend, field_mapping, sleep=AsyncMock())


@pytest.fixture
def engine(search_client, catalog):
    return ReportEngine(
        search_client,
        catalog,
        ReportNameResolver(catalog),
        ParameterExtractor(),
        viewer_base_url="https://ssrs.test/ReportServer",
    )


@pytest.fixture
def store():
    return InMemorySessionStore()
