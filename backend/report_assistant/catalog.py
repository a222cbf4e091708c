from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .schemas import Report, ReportParameter

logger = logging.getLogger(__name__)


def _collection(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        items = payload.get("value")
        if items is None:
            items = payload.get("items")
        return list(items or [])
    return []


def _values(raw: Any) -> List[str]:
    values = []
    for item in raw or []:
        if isinstance(item, dict):
            item = item.get("Value", item.get("value"))
        if item is not None:
            values.append(str(item))
    return values


def parse_report(data: Dict[str, Any]) -> Report:
    return Report(
        id=str(data.get("Id") or data.get("id") or ""),
        name=data.get("Name") or data.get("name") or "",
        path=data.get("Path") or data.get("path") or "",
        description=data.get("Description") or data.get("description") or "",
    )


def parse_parameter(data: Dict[str, Any]) -> ReportParameter:
    default_values = [] if data.get("DefaultValuesIsNull") else _values(data.get("DefaultValues"))
    allowed_values = [] if data.get("ValidValuesIsNull") else _values(data.get("ValidValues"))
    return ReportParameter(
        name=data.get("Name", ""),
        data_type=data.get("ParameterType") or data.get("Type") or "",
        nullable=bool(data.get("Nullable", False)),
        allow_blank=bool(data.get("AllowBlank", False)),
        multi_value=bool(data.get("MultiValue", False)),
        prompt_user=bool(data.get("PromptUser", True)),
        allowed_values=allowed_values,
        default_values=default_values,
        dependencies=[str(item) for item in data.get("Dependencies") or []],
        prompt=data.get("Prompt") or "",
    )


def find_by_name(reports: List[Report], name: str) -> Optional[Report]:
    """Exact case-insensitive match first, then the first substring match in either direction."""
    wanted = name.strip().lower()
    if not wanted:
        return None
    for report in reports:
        if report.name.lower() == wanted:
            return report
    for report in reports:
        candidate = report.name.lower()
        if candidate and (wanted in candidate or candidate in wanted):
            return report
    return None


class CatalogClient:
    def __init__(
        self,
        base_url: str,
        auth_type: str = "none",
        username: str = "",
        password: str = "",
        bearer_token: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
    ) -> None:
        if http_client is None:
            auth = None
            headers = {"Accept": "application/json"}
            if auth_type == "basic" and username and password:
                auth = httpx.BasicAuth(username, password)
            elif auth_type == "bearer" and bearer_token:
                headers["Authorization"] = f"Bearer {bearer_token}"
            base = base_url if base_url.endswith("/") else base_url + "/"
            http_client = httpx.AsyncClient(base_url=base, auth=auth, headers=headers, timeout=timeout)
        self._client = http_client
        logger.info("CatalogClient initialised with base URL: %s", self._client.base_url)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_reports(self) -> List[Report]:
        logger.info("Fetching all reports from the report server")
        response = await self._client.get("reports")
        if response.status_code == 401:
            logger.warning("Received 401 Unauthorized from the report server")
        response.raise_for_status()
        reports = [parse_report(item) for item in _collection(response.json())]
        logger.info("Retrieved %d reports", len(reports))
        return reports

    async def get_report_by_id(self, report_id: str) -> Optional[Report]:
        try:
            key = report_id.lstrip("/")
            response = await self._client.get(f"reports({key})")
            if response.is_error:
                logger.warning("Report not found by ID: %s, status: %s", report_id, response.status_code)
                return None
            report = parse_report(response.json())
            report.parameters = await self.get_report_parameters(key)
            return report
        except Exception:
            logger.exception("Error fetching report by ID: %s", report_id)
            return None

    async def get_report_parameters(self, report_id: str) -> List[ReportParameter]:
        try:
            key = report_id.lstrip("/")
            response = await self._client.get(f"reports({key})/ParameterDefinitions")
            if response.is_error:
                logger.warning("Failed to fetch parameters for report %s, status: %s", report_id, response.status_code)
                return []
            return [parse_parameter(item) for item in _collection(response.json())]
        except Exception:
            logger.exception("Error fetching parameters for report: %s", report_id)
            return []

    async def get_report_by_name(self, name: str) -> Optional[Report]:
        try:
            logger.info("Searching for report by name: %s", name)
            match = find_by_name(await self.get_reports(), name)
            if match is None:
                return None
            return await self.get_report_by_id(match.id)
        except Exception:
            logger.exception("Error finding report by name: %s", name)
            return None
