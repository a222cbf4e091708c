from __future__ import annotations

import re
from typing import List

_TOKEN_SEPARATORS = re.compile(r"[\s\-_.,]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def clean_text(text: str) -> str:
    text = text.replace("\u00a0", " ")
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def tokenize(text: str) -> List[str]:
    """Split a report name into lower-cased words.

    Separators are whitespace, hyphen, underscore, period and comma; camelCase
    runs are split as well so that "RegionalSalesMonthly" yields three words.
    """
    tokens: List[str] = []
    for part in _TOKEN_SEPARATORS.split(text or ""):
        if not part:
            continue
        tokens.extend(piece.lower() for piece in _CAMEL_BOUNDARY.split(part) if piece)
    return tokens


def token_overlap(first: str, second: str) -> float:
    first_tokens = tokenize(first)
    second_tokens = tokenize(second)
    if not first_tokens or not second_tokens:
        return 0.0
    second_set = set(second_tokens)
    matches = sum(1 for token in first_tokens if token in second_set)
    return matches / max(len(first_tokens), len(second_tokens))


def format_history(messages, limit: int) -> str:
    recent = messages[-limit:] if limit > 0 else []
    lines = []
    for message in recent:
        role = "User" if message.role == "user" else "Assistant"
        lines.append(f"{role}: {message.content}")
    return "\n".join(lines)
