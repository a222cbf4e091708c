from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_KEY_VALUE_RE = re.compile(r"^\s*[-*]?\s*[\"']?([A-Za-z_][\w .]*?)[\"']?\s*[:=]\s*[\"']?(.+?)[\"']?\s*,?\s*$")
_WRAPPER_KEYS = ("parameters", "values", "result", "data")

Parser = Callable[[str], Optional[Dict[str, Any]]]


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def parse_direct(text: str) -> Optional[Dict[str, Any]]:
    return _loads_object(text.strip())


def parse_fenced(text: str) -> Optional[Dict[str, Any]]:
    match = _FENCED_BLOCK_RE.search(text)
    return _loads_object(match.group(1).strip()) if match else None


def parse_embedded(text: str) -> Optional[Dict[str, Any]]:
    match = _JSON_OBJECT_RE.search(text)
    return _loads_object(match.group(0)) if match else None


def parse_key_values(text: str) -> Optional[Dict[str, Any]]:
    found: Dict[str, Any] = {}
    for line in text.splitlines():
        match = _KEY_VALUE_RE.match(line)
        if match:
            found[match.group(1).strip()] = match.group(2).strip()
    return found or None


DEFAULT_PARSERS = (parse_direct, parse_fenced, parse_embedded, parse_key_values)


def unwrap(value: Dict[str, Any]) -> Dict[str, Any]:
    """Return the inner object of replies like {"parameters": {...}}."""
    if len(value) == 1:
        key, inner = next(iter(value.items()))
        if key.lower() in _WRAPPER_KEYS and isinstance(inner, dict):
            return inner
    return value


def parse_json_object(text: Optional[str], parsers: Iterable[Parser] = DEFAULT_PARSERS) -> Optional[Dict[str, Any]]:
    if not text or not text.strip():
        return None
    for parser in parsers:
        try:
            value = parser(text)
        except Exception:
            logger.debug("Parser %s failed", parser.__name__, exc_info=True)
            continue
        if value:
            value = unwrap(value)
            if value:
                return value
    logger.debug("No structured data found in model reply: %r", text[:200])
    return None


def as_string_map(value: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Flatten a parsed object to name -> string value, dropping nested or empty values."""
    result: Dict[str, str] = {}
    for key, item in (value or {}).items():
        if item is None or isinstance(item, (dict, list)):
            continue
        if isinstance(item, bool):
            item = "true" if item else "false"
        text = str(item).strip()
        if text:
            result[str(key).strip()] = text
    return result
