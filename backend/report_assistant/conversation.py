from __future__ import annotations

import logging
import re
from typing import List, Optional

from .operations import ReportEngine
from .parameters import build_report_url, check_value, describe_parameter, missing_parameters
from .resolver import match_exact
from .schemas import Report, SessionContext, Stage, TurnResult
from .utils import clean_text

logger = logging.getLogger(__name__)

CHITCHAT_PATTERNS = [
    r"^hi$", r"^hello$", r"^hey$", r"^hi there$", r"^hello there$", r"^hey there$",
    r"^good morning$", r"^good afternoon$", r"^good evening$", r"^howdy$",
    r"^how are you$", r"^how are you doing$", r"^how's it going$", r"^what's up$",
    r"^greetings$", r"^yo$", r"^hiya$", r"^sup$", r"^test$", r"^testing$",
    r"^are you there$", r"^you there$", r"^anybody home$", r"^anyone there$",
]
_CHITCHAT_RE = [re.compile(pattern, re.IGNORECASE) for pattern in CHITCHAT_PATTERNS]
_SELECTION_RE = re.compile(r"^(?:#|no\.?|number|option|report)?\s*(\d+)\s*[.)]?$", re.IGNORECASE)

START_OVER_PHRASES = ("start over", "new report", "different report")
CHANGE_PARAMETER_PHRASES = ("change parameter", "update parameter", "different parameter")
MAX_CANDIDATES = 5

GREETING = "Hello! I can help you find and run reports. What kind of report are you looking for?"
APOLOGY = "I'm sorry, but something went wrong. Could you tell me again what report you need?"
NO_REPORTS = (
    "I couldn't find any reports matching your request. "
    "Could you provide more details about the type of report you're looking for?"
)


def is_chitchat(message: str) -> bool:
    normalized = message.strip().lower()
    return any(pattern.match(normalized) for pattern in _CHITCHAT_RE)


class ReportConversation:
    def __init__(self, store, engine: ReportEngine, llm=None, history_limit: int = 5) -> None:
        self._store = store
        self._engine = engine
        self._llm = llm
        self._history_limit = history_limit

    async def process_message(self, session_id: str, text: str) -> TurnResult:
        text = clean_text(text)
        async with self._store.lock(session_id):
            context = await self._store.get_or_create(session_id)
            snapshot = context.model_copy(deep=True)
            try:
                if is_chitchat(text):
                    result = await self._chitchat(text, context)
                else:
                    context.add_message("user", text)
                    result = await self._dispatch(text, context)
            except Exception:
                logger.exception("Error processing message for session %s", session_id)
                context = snapshot
                context.add_message("user", text)
                result = self._reply(context, APOLOGY)
            await self._store.save(context)
            return result

    async def _dispatch(self, text: str, context: SessionContext) -> TurnResult:
        if context.stage == Stage.REPORT_SELECTION:
            return await self._select_report(text, context)
        if context.stage == Stage.PARAMETER_FILLING:
            return await self._fill_parameters(text, context)
        if context.stage == Stage.REPORT_URL_CREATION:
            return self._create_url(context)
        if context.stage == Stage.COMPLETED:
            return await self._completed(text, context)
        raise ValueError(f"Unexpected stage: {context.stage}")

    def _reply(self, context: SessionContext, message: str) -> TurnResult:
        context.add_message("assistant", message)
        report_url = context.report_url if context.stage == Stage.COMPLETED else None
        return TurnResult(session_id=context.session_id, message=message, stage=context.stage, report_url=report_url)

    async def _chitchat(self, text: str, context: SessionContext) -> TurnResult:
        context.add_message("user", text)
        reply = ""
        if self._llm is not None and self._llm.available():
            reply = await self._llm.chitchat_reply(text)
        return self._reply(context, reply or GREETING)

    # Report selection

    async def _select_report(self, text: str, context: SessionContext) -> TurnResult:
        if context.candidates:
            match = _SELECTION_RE.match(text.strip())
            if match:
                index = int(match.group(1))
                if 1 <= index <= len(context.candidates):
                    return await self._choose(context.candidates[index - 1], context)
                return self._reply(
                    context,
                    f"Please pick a number between 1 and {len(context.candidates)}, "
                    "or tell me the name of one of the reports listed.",
                )
            picked = self._pick_by_name(text, context.candidates)
            if picked is not None:
                return await self._choose(picked, context)

        reports = await self._find_reports(text, context)
        if not reports:
            return self._reply(context, NO_REPORTS)
        if len(reports) == 1:
            return await self._choose(reports[0], context)

        context.candidates = reports
        lines = ["I found several reports that might match what you're looking for:", ""]
        for index, report in enumerate(reports, start=1):
            lines.append(f"{index}. {report.name}: {report.description}" if report.description else f"{index}. {report.name}")
        lines.extend(["", "Which one would you like to use? You can select by number or name."])
        return self._reply(context, "\n".join(lines))

    @staticmethod
    def _pick_by_name(text: str, candidates: List[Report]) -> Optional[Report]:
        """Exact name, else the longest candidate name mentioned in the reply."""
        exact = match_exact(text, candidates)
        if exact is not None:
            return exact
        lowered = text.lower()
        mentioned = [report for report in candidates if report.name.strip() and report.name.strip().lower() in lowered]
        return max(mentioned, key=lambda report: len(report.name)) if mentioned else None

    async def _find_reports(self, text: str, context: SessionContext) -> List[Report]:
        search = self._engine.search
        hits = await search.search_reports(text)

        titles = []
        seen_keys = set()
        for hit in hits:
            key = search.document_key(hit)
            title = search.title_of(hit)
            if title and key not in seen_keys:
                seen_keys.add(key)
                titles.append(title)
        titles = titles[:MAX_CANDIDATES]

        found: List[Report] = []
        if titles:
            catalog_reports = await self._engine.catalog.get_reports()
            history = context.recent_history(self._history_limit)
            for title in titles:
                report = await self._engine.resolver.resolve_in(title, catalog_reports, history)
                if report is not None and all(report.id != existing.id for existing in found):
                    found.append(report)
        if found:
            return found

        direct = await self._engine.catalog.get_report_by_name(text)
        return [direct] if direct is not None else []

    async def _choose(self, report: Report, context: SessionContext) -> TurnResult:
        detailed = await self._engine.catalog.get_report_by_id(report.id)
        if detailed is None:
            return self._reply(
                context,
                f"I found the '{report.name}' report but couldn't load its details from the report server. "
                "Please try again in a moment.",
            )

        context.selected_report = detailed
        context.parameter_values = {}
        context.candidates = []
        context.report_url = None
        context.stage = Stage.PARAMETER_FILLING

        lines = [f"I found the '{detailed.name}' report which matches your request."]
        if detailed.description:
            lines.append(detailed.description)
        # Parameters the server never prompts for are resolved server-side.
        shown = [parameter for parameter in detailed.parameters if parameter.prompt_user]
        if shown:
            lines.extend(["", "This report has the following parameters:"])
            lines.extend(describe_parameter(parameter) for parameter in shown)
        missing = missing_parameters(detailed, context.parameter_values)
        if missing:
            lines.extend(["", self._ask_for(missing[0])])
        else:
            lines.extend(["", "No values are required. Tell me any values you'd like to set, or say 'go' to run it."])
        return self._reply(context, "\n".join(lines))

    # Parameter filling

    @staticmethod
    def _ask_for(parameter) -> str:
        text = f"Please provide a value for '{parameter.name}'"
        if parameter.prompt and parameter.prompt != parameter.name:
            text += f": {parameter.prompt}"
        if parameter.allowed_values:
            text += "\n\nAllowed values:\n" + "\n".join(f"- {value}" for value in parameter.allowed_values)
        return text

    async def _fill_parameters(self, text: str, context: SessionContext, changing: bool = False) -> TurnResult:
        report = context.selected_report
        if report is None:
            context.stage = Stage.REPORT_SELECTION
            return self._reply(context, "Let's first select a report. What kind of report are you looking for?")

        extracted = await self._engine.extractor.extract(text, report, context.parameter_values)
        rejected = []
        for name, value in extracted.items():
            parameter = report.find_parameter(name)
            if parameter is None:
                continue
            error = check_value(parameter, value)
            if error:
                rejected.append(error)
            else:
                context.parameter_values[parameter.name] = value

        if changing and not extracted:
            current = [f"- {name}: {value}" for name, value in context.parameter_values.items()] or ["- (none set)"]
            return self._reply(context, "Which parameter would you like to change? Current values:\n" + "\n".join(current))

        missing = missing_parameters(report, context.parameter_values)
        if not missing and not rejected:
            context.stage = Stage.REPORT_URL_CREATION
            return self._create_url(context)

        lines = list(rejected)
        if missing:
            if lines:
                lines.append("")
            lines.append(f"For the {report.name} report, I need some more information:")
            lines.extend(["", self._ask_for(missing[0])])
        return self._reply(context, "\n".join(lines))

    # URL creation

    def _create_url(self, context: SessionContext) -> TurnResult:
        report = context.selected_report
        if report is None:
            context.stage = Stage.REPORT_SELECTION
            return self._reply(context, "Let's first select a report. What kind of report are you looking for?")

        missing = missing_parameters(report, context.parameter_values)
        if missing:
            context.stage = Stage.PARAMETER_FILLING
            names = ", ".join(parameter.name for parameter in missing)
            return self._reply(context, f"I need more information before generating the report: {names}")

        context.report_url = build_report_url(
            report, context.parameter_values, self._engine.viewer_base_url, self._engine.output_format
        )
        context.stage = Stage.COMPLETED

        lines = [f"I've generated the {report.name} report"]
        if context.parameter_values:
            lines[0] += " with the following parameters:"
            for name, value in context.parameter_values.items():
                parameter = report.find_parameter(name)
                prompt = f" ({parameter.prompt})" if parameter is not None and parameter.prompt else ""
                lines.append(f"- {name}: {value}{prompt}")
        else:
            lines[0] += "."
        lines.extend(["", "The report is now available. You can view it in the panel below."])
        return self._reply(context, "\n".join(lines))

    # Completed

    async def _completed(self, text: str, context: SessionContext) -> TurnResult:
        lowered = text.lower()
        if any(phrase in lowered for phrase in START_OVER_PHRASES):
            context.reset()
            return self._reply(context, "Sure, let's start over. What kind of report are you looking for?")
        if any(phrase in lowered for phrase in CHANGE_PARAMETER_PHRASES):
            context.stage = Stage.PARAMETER_FILLING
            return await self._fill_parameters(text, context, changing=True)
        return self._reply(
            context,
            "The report is already generated and displayed below. If you'd like to start over with a new "
            "report or change parameters, just let me know.",
        )
