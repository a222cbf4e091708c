from __future__ import annotations

import os
from pathlib import Path
from dotenv import load_dotenv

from .schemas import FieldMapping

load_dotenv()

PROJECT_DIR = Path(__file__).resolve().parents[2]
DATA_DIR = PROJECT_DIR / "data"
CHROMA_DIR = Path(os.getenv("CHROMA_DIR", str(DATA_DIR / "chroma")))
SESSION_DB = Path(os.getenv("SESSION_DB", str(DATA_DIR / "sessions.db")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").strip().lower()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
LOCAL_EMBEDDING_MODEL = os.getenv("LOCAL_EMBEDDING_MODEL", "all-MiniLM-L6-v2")

GROQ_API_KEY = os.getenv("GROQ_API_KEY", "").strip()
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")
GROQ_BASE_URL = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")

SEARCH_BACKEND = os.getenv("SEARCH_BACKEND", "azure").strip().lower()
AZURE_SEARCH_ENDPOINT = os.getenv("AZURE_SEARCH_ENDPOINT", "").strip()
AZURE_SEARCH_API_KEY = os.getenv("AZURE_SEARCH_API_KEY", "").strip()
AZURE_SEARCH_INDEX = os.getenv("AZURE_SEARCH_INDEX", "").strip()
AZURE_SEARCH_API_VERSION = os.getenv("AZURE_SEARCH_API_VERSION", "2024-07-01")
AZURE_SEARCH_SEMANTIC_CONFIGURATION = os.getenv("AZURE_SEARCH_SEMANTIC_CONFIGURATION", "azureml-default")
VECTOR_SEARCH_ENABLED = os.getenv("VECTOR_SEARCH_ENABLED", "false").strip().lower() in {"1", "true", "yes"}
CHROMA_COLLECTION = os.getenv("CHROMA_COLLECTION", "report_docs")

SSRS_API_URL = os.getenv("SSRS_API_URL", "https://ssrs.example.com/reports/api/v2.0/")
SSRS_AUTH_TYPE = os.getenv("SSRS_AUTH_TYPE", "none").strip().lower()
SSRS_USERNAME = os.getenv("SSRS_USERNAME", "")
SSRS_PASSWORD = os.getenv("SSRS_PASSWORD", "")
SSRS_BEARER_TOKEN = os.getenv("SSRS_BEARER_TOKEN", "")
SSRS_VIEWER_URL = os.getenv("SSRS_VIEWER_URL", "https://ssrs.example.com/ReportServer")
REPORT_OUTPUT_FORMAT = os.getenv("REPORT_OUTPUT_FORMAT", "PDF")

SESSION_STORE = os.getenv("SESSION_STORE", "memory").strip().lower()
MAX_HISTORY = int(os.getenv("MAX_HISTORY", "5"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "120"))


def field_mapping_from_env() -> FieldMapping:
    return FieldMapping(
        id=os.getenv("SEARCH_FIELD_ID", "id"),
        title=os.getenv("SEARCH_FIELD_TITLE", "title"),
        content=os.getenv("SEARCH_FIELD_CONTENT", "content"),
        url=os.getenv("SEARCH_FIELD_URL", "url"),
        file_path=os.getenv("SEARCH_FIELD_FILE_PATH", "filepath"),
        metadata=os.getenv("SEARCH_FIELD_METADATA", "meta_json_string"),
        vector=os.getenv("SEARCH_FIELD_VECTOR", "contentVector"),
        parent_id=os.getenv("SEARCH_FIELD_PARENT_ID", "parent_id"),
    )


def ensure_dirs() -> None:
    for path in [DATA_DIR, CHROMA_DIR, SESSION_DB.parent]:
        path.mkdir(parents=True, exist_ok=True)
