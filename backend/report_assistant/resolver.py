from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .schemas import ChatMessage, Report
from .utils import token_overlap

logger = logging.getLogger(__name__)

LLM_REPLY_PREFIXES = ("The best match is ", "Best match: ", "I recommend ", "You should use ", "The report ")
HISTORY_TURNS = 5


def match_exact(title: str, reports: Sequence[Report]) -> Optional[Report]:
    wanted = title.strip().lower()
    if not wanted:
        return None
    return next((report for report in reports if report.name.strip().lower() == wanted), None)


def match_substring(title: str, reports: Sequence[Report]) -> Optional[Report]:
    wanted = title.strip().lower()
    if not wanted:
        return None
    for report in reports:
        name = report.name.strip().lower()
        if name and (wanted in name or name in wanted):
            return report
    return None


def match_tokens(title: str, reports: Sequence[Report]) -> Optional[Report]:
    best = None
    best_score = 0.0
    for report in reports:
        score = token_overlap(title, report.name)
        if score > best_score:
            best, best_score = report, score
    return best


def clean_suggestion(reply: str) -> str:
    suggestion = reply.strip()
    for prefix in LLM_REPLY_PREFIXES:
        if suggestion.lower().startswith(prefix.lower()):
            suggestion = suggestion[len(prefix):]
            break
    return suggestion.strip().strip("\"'`").strip().rstrip(".").strip("\"'`")


class ReportNameResolver:
    def __init__(self, catalog, llm=None) -> None:
        self._catalog = catalog
        self._llm = llm

    async def resolve(self, title: str, history: Optional[List[ChatMessage]] = None) -> Optional[Report]:
        reports = await self._catalog.get_reports()
        return await self.resolve_in(title, reports, history or [])

    async def resolve_in(self, title: str, reports: Sequence[Report], history: List[ChatMessage]) -> Optional[Report]:
        title = title.strip()
        if not title or not reports:
            return None

        for step in (match_exact, match_substring, match_tokens):
            report = step(title, reports)
            if report is not None:
                logger.info("Resolved '%s' to catalog report '%s' (%s)", title, report.name, step.__name__)
                return report

        return await self._resolve_with_llm(title, reports, history)

    async def _resolve_with_llm(self, title: str, reports: Sequence[Report], history: List[ChatMessage]) -> Optional[Report]:
        if self._llm is None or not self._llm.available():
            return None
        logger.info("Attempting LLM-based report matching for: %s", title)
        reply = await self._llm.suggest_report_name(title, [r.name for r in reports], history[-HISTORY_TURNS:])
        suggestion = clean_suggestion(reply or "")
        if not suggestion or "no match" in suggestion.lower():
            logger.info("LLM couldn't find a matching report for: %s", title)
            return None

        logger.info("LLM suggested report name: %s", suggestion)
        report = match_exact(suggestion, reports) or match_tokens(suggestion, reports)
        if report is not None:
            logger.info("Matched LLM suggestion '%s' to '%s'", suggestion, report.name)
        return report
