from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from openai import AsyncOpenAI
from sentence_transformers import SentenceTransformer

from .config import (
    EMBEDDING_MODEL,
    GROQ_API_KEY,
    GROQ_BASE_URL,
    GROQ_MODEL,
    LLM_PROVIDER,
    LOCAL_EMBEDDING_MODEL,
    OPENAI_API_KEY,
    OPENAI_MODEL,
)
from .schemas import ChatMessage, Report
from .utils import format_history

logger = logging.getLogger(__name__)

CHITCHAT_PROMPT = (
    "You are a friendly assistant helping with SQL Server Reporting Services (SSRS) reports. "
    "The user has sent a greeting or a casual message not related to reports. "
    "Respond in a friendly manner and gently guide the conversation toward selecting reports. "
    "Keep your response short, friendly and helpful."
)

EXTRACTION_PROMPT = (
    "You are an assistant that extracts parameter values from user messages. "
    "The user is providing values for report parameters. "
    "Extract any parameter values mentioned in their message.\n\n"
    "The available parameters are:\n{parameters}\n\n"
    "Return a JSON object mapping parameter names to their values and nothing else.\n"
    'Example: {{"Month": "January", "Region": "North"}}'
)

MATCH_PROMPT = (
    "You are an AI assistant helping to find reports in SQL Server Reporting Services (SSRS). "
    "A user is looking for a report, but we couldn't find an exact match. "
    "Below are the available reports in the system. Identify which report from the list is the best "
    "match for what the user is looking for. Consider semantic similarity, not just string similarity; "
    "the names might have different formats or abbreviations.\n\n"
    "Available reports:\n{reports}\n\n"
    "Respond ONLY with the name of the best matching report (exactly as listed), or 'NO MATCH' if none "
    "of the reports seem to match."
)


class EmbeddingClient:
    def __init__(self) -> None:
        self._openai = AsyncOpenAI(api_key=OPENAI_API_KEY) if OPENAI_API_KEY else None
        self._local_model = None

    async def embed(self, text: str) -> List[float]:
        if self._openai:
            response = await self._openai.embeddings.create(model=EMBEDDING_MODEL, input=[text])
            return list(response.data[0].embedding)
        return await asyncio.to_thread(self._embed_locally, text)

    def _embed_locally(self, text: str) -> List[float]:
        if self._local_model is None:
            self._local_model = SentenceTransformer(LOCAL_EMBEDDING_MODEL)
        return self._local_model.encode([text], convert_to_numpy=True)[0].tolist()


class LLMClient:
    def __init__(self) -> None:
        self._client = None
        self._model = None

        try:
            if LLM_PROVIDER == "groq" and GROQ_API_KEY:
                self._client = AsyncOpenAI(api_key=GROQ_API_KEY, base_url=GROQ_BASE_URL)
                self._model = GROQ_MODEL
            elif OPENAI_API_KEY:
                self._client = AsyncOpenAI(api_key=OPENAI_API_KEY)
                self._model = OPENAI_MODEL
        except Exception:
            logger.exception("Could not initialise the language model client")
            self._client = None
            self._model = None

    def available(self) -> bool:
        return self._client is not None

    def model_name(self) -> str:
        return self._model or ""

    async def complete(
        self,
        system: str,
        messages: Sequence[Dict[str, str]],
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Return the model's free-text reply, or "" when unavailable or failing."""
        if not self._client:
            return ""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "system", "content": system}, *messages],
                temperature=temperature,
                max_tokens=max_tokens,
            )
            return (response.choices[0].message.content or "").strip()
        except Exception:
            logger.exception("Completion request to %s failed", self._model)
            return ""

    async def chitchat_reply(self, message: str) -> str:
        return await self.complete(CHITCHAT_PROMPT, [{"role": "user", "content": message}], temperature=0.7)

    async def extract_parameters(self, message: str, report: Report) -> str:
        lines = []
        for parameter in report.parameters:
            lines.append(f"- {parameter.name}: {parameter.prompt or parameter.name}")
            if parameter.allowed_values:
                lines.append(f"  Allowed values: {', '.join(parameter.allowed_values)}")
            lines.append(f"  Data type: {parameter.data_type or 'String'}")
        system = EXTRACTION_PROMPT.format(parameters="\n".join(lines))
        return await self.complete(system, [{"role": "user", "content": message}])

    async def suggest_report_name(self, title: str, report_names: List[str], history: List[ChatMessage]) -> str:
        formatted = "\n".join(f"{index}. {name}" for index, name in enumerate(report_names, start=1))
        system = MATCH_PROMPT.format(reports=formatted)
        history_text = format_history(history, len(history))
        prompt = (
            f"Conversation context:\n{history_text}\n\n"
            f"Based on the conversation above, which report from the list best matches '{title}'? "
            "Respond only with the exact name from the list."
        )
        return await self.complete(system, [{"role": "user", "content": prompt}], max_tokens=100)
