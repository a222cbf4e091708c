from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping

from .parameters import ParameterExtractor, build_report_url, validate_parameters
from .schemas import Report

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    SEARCH_REPORTS = "search_reports"
    GET_DOCUMENTATION = "get_documentation"
    RESOLVE_REPORT = "resolve_report"
    VALIDATE_PARAMETERS = "validate_parameters"
    BUILD_URL = "build_url"
    EXTRACT_PARAMETERS = "extract_parameters"


_STRING = {"type": "string"}
_VALUES = {"type": "object", "additionalProperties": {"type": "string"}}

_TOOL_SPECS = {
    Operation.SEARCH_REPORTS: (
        "Search the report documentation. Titles may differ from the catalog report names.",
        {"query": _STRING},
        ["query"],
    ),
    Operation.GET_DOCUMENTATION: (
        "Get detailed documentation about a specific report.",
        {"title": _STRING},
        ["title"],
    ),
    Operation.RESOLVE_REPORT: (
        "Map a documentation title onto the catalog report it describes.",
        {"title": _STRING},
        ["title"],
    ),
    Operation.VALIDATE_PARAMETERS: (
        "Check parameter values against the catalog definition of a report.",
        {"report_id": _STRING, "values": _VALUES},
        ["report_id"],
    ),
    Operation.BUILD_URL: (
        "Build the URL that renders a report with the given parameter values.",
        {"report_id": _STRING, "values": _VALUES},
        ["report_id"],
    ),
    Operation.EXTRACT_PARAMETERS: (
        "Extract report parameter values from a free-text message.",
        {"report_id": _STRING, "text": _STRING},
        ["report_id", "text"],
    ),
}


def tool_definitions() -> List[Dict[str, Any]]:
    tools = []
    for operation, (description, properties, required) in _TOOL_SPECS.items():
        tools.append(
            {
                "type": "function",
                "function": {
                    "name": operation.value,
                    "description": description,
                    "parameters": {"type": "object", "properties": properties, "required": required},
                },
            }
        )
    return tools


class ReportEngine:
    def __init__(self, search, catalog, resolver, extractor: ParameterExtractor, viewer_base_url: str, output_format: str = "PDF") -> None:
        self.search = search
        self.catalog = catalog
        self.resolver = resolver
        self.extractor = extractor
        self.viewer_base_url = viewer_base_url
        self.output_format = output_format

    async def aclose(self) -> None:
        for client in (self.search, self.catalog):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()

    async def invoke(self, operation: str, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            operation = Operation(operation)
        except ValueError:
            raise ValueError(f"Unknown operation: {operation}") from None
        logger.info("Invoking engine operation %s", operation.value)
        handler = {
            Operation.SEARCH_REPORTS: self._search_reports,
            Operation.GET_DOCUMENTATION: self._get_documentation,
            Operation.RESOLVE_REPORT: self._resolve_report,
            Operation.VALIDATE_PARAMETERS: self._validate_parameters,
            Operation.BUILD_URL: self._build_url,
            Operation.EXTRACT_PARAMETERS: self._extract_parameters,
        }[operation]
        return await handler(dict(arguments))

    async def _report(self, arguments: Dict[str, Any]) -> Report:
        report_id = str(arguments.get("report_id") or "").strip()
        if not report_id:
            raise ValueError("report_id is required")
        report = await self.catalog.get_report_by_id(report_id)
        if report is None:
            raise LookupError(f"Report with ID '{report_id}' not found")
        return report

    @staticmethod
    def _values(arguments: Dict[str, Any]) -> Dict[str, str]:
        values = arguments.get("values") or {}
        if not isinstance(values, dict):
            raise ValueError("values must be an object of parameter names to values")
        return {str(key): "" if value is None else str(value) for key, value in values.items()}

    async def _search_reports(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        query = str(arguments.get("query") or "").strip()
        if not query:
            raise ValueError("query is required")
        return {"hits": await self.search.search_reports(query)}

    async def _get_documentation(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        title = str(arguments.get("title") or "").strip()
        if not title:
            raise ValueError("title is required")
        return {"title": title, "documentation": await self.search.get_documentation(title)}

    async def _resolve_report(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        title = str(arguments.get("title") or "").strip()
        if not title:
            raise ValueError("title is required")
        report = await self.resolver.resolve(title)
        return {"found": report is not None, "report": report.model_dump() if report else None}

    async def _validate_parameters(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        report = await self._report(arguments)
        return validate_parameters(report, self._values(arguments)).model_dump()

    async def _build_url(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        report = await self._report(arguments)
        url = build_report_url(report, self._values(arguments), self.viewer_base_url, self.output_format)
        return {"report_url": url}

    async def _extract_parameters(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        report = await self._report(arguments)
        text = str(arguments.get("text") or "")
        return {"values": await self.extractor.extract(text, report)}
