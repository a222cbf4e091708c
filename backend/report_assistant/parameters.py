"""Report parameter validation, report URL construction and value extraction."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional
from urllib.parse import quote

from .parsing import as_string_map, parse_json_object
from .schemas import Report, ReportParameter, ValidationResult

logger = logging.getLogger(__name__)

RENDER_COMMAND = "rs:Command=Render"
FORMAT_MARKER = "rs:Format"

_PAIR_RE = re.compile(r"([A-Za-z_][\w]*)\s*(?:=|:)\s*(\"[^\"]*\"|'[^']*'|[^,;&\n]+)")
_NON_ANSWERS = {"yes", "y", "yeah", "ok", "okay", "sure", "no", "n", "thanks", "thank you", "please"}


def _escape(value: str) -> str:
    return quote(value, safe="-_.~")


def check_value(parameter: ReportParameter, value: str) -> Optional[str]:
    if parameter.allowed_values and value not in parameter.allowed_values:
        return (
            f"Value '{value}' is not allowed for parameter '{parameter.name}'. "
            f"Allowed values: {', '.join(parameter.allowed_values)}"
        )
    return None


def missing_parameters(report: Report, values: Mapping[str, str]) -> List[ReportParameter]:
    """Required parameters without a usable value, in catalog order.

    A parameter with a default is never missing.
    """
    missing = []
    for parameter in report.parameters:
        if not parameter.is_required or parameter.default_values:
            continue
        if not values.get(parameter.name):
            missing.append(parameter)
    return missing


def validate_parameters(report: Report, values: Mapping[str, str]) -> ValidationResult:
    errors: List[str] = []
    by_name = {parameter.name: parameter for parameter in report.parameters}

    for parameter in missing_parameters(report, values):
        errors.append(f"Required parameter '{parameter.name}' is missing")

    for name, value in values.items():
        parameter = by_name.get(name)
        if parameter is None:
            errors.append(f"Unknown parameter '{name}'")
            continue
        error = check_value(parameter, value)
        if error:
            errors.append(error)

    return ValidationResult(ok=not errors, errors=errors)


def build_report_url(
    report: Report,
    values: Mapping[str, str],
    viewer_base_url: str,
    output_format: str = "PDF",
) -> str:
    """Build a URL-access link that renders the report.

    The query separator precedes the report path and parameters equal to their
    server default are left out, as the server applies defaults itself.
    """
    validation = validate_parameters(report, values)
    if not validation.ok:
        raise ValueError(f"Invalid parameter values: {'; '.join(validation.errors)}")

    path = report.path or f"/{report.name}"
    if not path.startswith("/"):
        path = f"/{path}"

    query = [RENDER_COMMAND]
    for parameter in report.parameters:
        default = parameter.default_value
        if parameter.name in values:
            value = values[parameter.name]
            if default is not None and value == default:
                logger.debug("Parameter %s uses its default value %s", parameter.name, value)
                continue
        elif default is not None:
            logger.debug("Parameter %s falls back to default value %s", parameter.name, default)
            continue
        else:
            value = ""
        query.append(f"{_escape(parameter.name)}={_escape(value)}")
    query.append(f"{FORMAT_MARKER}={output_format}")

    url = f"{viewer_base_url}?{path}&{'&'.join(query)}"
    logger.info("Generated report URL: %s", url)
    return url


def canonical_value(parameter: ReportParameter, value: str) -> str:
    value = value.strip()
    for allowed in parameter.allowed_values:
        if allowed.lower() == value.lower():
            return allowed
    return value


def describe_parameter(parameter: ReportParameter) -> str:
    line = f"- {parameter.name}"
    if parameter.is_required and not parameter.default_values:
        line += " (required)"
    if parameter.prompt and parameter.prompt != parameter.name:
        line += f": {parameter.prompt}"
    if parameter.allowed_values:
        line += f"\n  Allowed values: {', '.join(parameter.allowed_values)}"
    if parameter.multi_value:
        line += "\n  Accepts multiple values"
    if parameter.dependencies:
        line += f"\n  Depends on: {', '.join(parameter.dependencies)}"
    if parameter.default_value is not None:
        line += f"\n  Default value: {parameter.default_value}"
    return line


class ParameterExtractor:
    """Pulls parameter values out of a free-text reply.

    Explicit ``Name=Value`` pairs are read directly; the language model, when
    available, handles everything else. Names come back in catalog casing.
    """

    def __init__(self, llm=None) -> None:
        self._llm = llm

    async def extract(self, text: str, report: Report, values: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        extracted = self._extract_pairs(text, report)

        if self._llm is not None and self._llm.available():
            reply = await self._llm.extract_parameters(text, report)
            parsed = parse_json_object(reply)
            if parsed is None and reply:
                logger.warning("Failed to parse extracted parameters from model reply")
            for name, value in as_string_map(parsed).items():
                parameter = report.find_parameter(name)
                if parameter is not None and parameter.name not in extracted:
                    extracted[parameter.name] = canonical_value(parameter, value)

        if not extracted:
            extracted = self._extract_bare_answer(text, report, values or {})
        return extracted

    def _extract_pairs(self, text: str, report: Report) -> Dict[str, str]:
        found: Dict[str, str] = {}
        for match in _PAIR_RE.finditer(text):
            parameter = report.find_parameter(match.group(1))
            if parameter is None:
                continue
            value = match.group(2).strip().strip("\"'")
            if value:
                found[parameter.name] = canonical_value(parameter, value)
        return found

    def _extract_bare_answer(self, text: str, report: Report, values: Mapping[str, str]) -> Dict[str, str]:
        """Treat a short reply as the answer to the next missing parameter."""
        missing = missing_parameters(report, values)
        if not missing:
            return {}
        parameter = missing[0]
        answer = text.strip().rstrip(".!")
        if parameter.allowed_values:
            words = {word.lower() for word in re.findall(r"[\w-]+", answer)}
            hits = [allowed for allowed in parameter.allowed_values
                    if allowed.lower() == answer.lower() or allowed.lower() in words]
            return {parameter.name: hits[0]} if len(hits) == 1 else {}
        if self._llm is None or not self._llm.available():
            if answer and "\n" not in answer and answer.lower() not in _NON_ANSWERS:
                return {parameter.name: answer}
        return {}
