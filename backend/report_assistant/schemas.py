from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class Stage(str, Enum):
    REPORT_SELECTION = "ReportSelection"
    PARAMETER_FILLING = "ParameterFilling"
    REPORT_URL_CREATION = "ReportUrlCreation"
    COMPLETED = "Completed"


class ChatMessage(BaseModel):
    role: str
    content: str


class ReportParameter(BaseModel):
    name: str
    data_type: str = ""
    nullable: bool = False
    allow_blank: bool = False
    multi_value: bool = False
    prompt_user: bool = True
    allowed_values: List[str] = Field(default_factory=list)
    default_values: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    prompt: str = ""

    @property
    def is_required(self) -> bool:
        return not self.nullable and not self.allow_blank

    @property
    def default_value(self) -> Optional[str]:
        return self.default_values[0] if self.default_values else None


class Report(BaseModel):
    id: str
    name: str
    path: str = ""
    description: str = ""
    parameters: List[ReportParameter] = Field(default_factory=list)

    def find_parameter(self, name: str) -> Optional[ReportParameter]:
        """Case-insensitive lookup; the returned parameter carries the catalog casing."""
        wanted = name.strip().lower()
        for parameter in self.parameters:
            if parameter.name.lower() == wanted:
                return parameter
        return None


class FieldMapping(BaseModel):
    """Binds logical document fields to the physical field names of a search index."""

    id: str = "id"
    title: str = "title"
    content: str = "content"
    url: Optional[str] = "url"
    file_path: Optional[str] = "filepath"
    metadata: Optional[str] = "meta_json_string"
    vector: Optional[str] = "contentVector"
    parent_id: Optional[str] = "parent_id"

    @field_validator("id", "title", "content")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("field is required in the search field mapping")
        return value.strip()

    @field_validator("url", "file_path", "metadata", "vector", "parent_id")
    @classmethod
    def _optional(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    def select_fields(self) -> List[str]:
        fields = [self.id, self.title, self.content, self.url, self.file_path, self.metadata, self.parent_id]
        return [field for field in fields if field]


class SessionContext(BaseModel):
    session_id: str
    history: List[ChatMessage] = Field(default_factory=list)
    stage: Stage = Stage.REPORT_SELECTION
    selected_report: Optional[Report] = None
    parameter_values: Dict[str, str] = Field(default_factory=dict)
    report_url: Optional[str] = None
    candidates: List[Report] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def add_message(self, role: str, content: str) -> None:
        self.history.append(ChatMessage(role=role, content=content))

    def recent_history(self, limit: int) -> List[ChatMessage]:
        return self.history[-limit:] if limit > 0 else []

    def reset(self) -> None:
        self.selected_report = None
        self.parameter_values.clear()
        self.report_url = None
        self.candidates = []
        self.stage = Stage.REPORT_SELECTION


class ValidationResult(BaseModel):
    ok: bool
    errors: List[str] = Field(default_factory=list)


class TurnResult(BaseModel):
    session_id: str
    message: str
    stage: Stage
    report_url: Optional[str] = None


class ChatRequest(BaseModel):
    session_id: Optional[str] = None
    message: str


class ChatResponse(BaseModel):
    session_id: str
    message: str
    stage: Stage
    report_url: Optional[str] = None
