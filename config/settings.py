# config/settings.py
import os
import sys
from typing import Optional
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment
import logging


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()

_log = logging.getLogger("config.settings")


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(..., validation_alias="APP_ENV")
    REDIS_URL: str = Field(..., validation_alias="REDIS_URL")
    REDIS_CONNECT_TIMEOUT_SECONDS: float = 5.0

    # CORS & Limits
    ALLOWED_ORIGIN: str = Field(..., validation_alias="ALLOWED_ORIGIN")
    RATE_LIMIT_TIMES: int = Field(default=30, validation_alias="RATE_LIMIT_TIMES")
    RATE_LIMIT_SECONDS: int = Field(default=60, validation_alias="RATE_LIMIT_SECONDS")
    MAX_FILE_MB: int = Field(default=10, validation_alias="MAX_FILE_MB")
    TRUST_PROXY: bool = Field(default=False, validation_alias="TRUST_PROXY")

    # Anthropic Settings (generation is disabled when no key is configured)
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None, validation_alias="ANTHROPIC_API_KEY")
    ANTHROPIC_API_URL: str = "https://api.anthropic.com/v1/messages"
    ANTHROPIC_MODEL: str = Field(default="claude-3-5-haiku-latest", validation_alias="ANTHROPIC_MODEL")
    ANTHROPIC_VERSION: str = "2023-06-01"
    GENERATION_MAX_TOKENS: int = 400
    GENERATION_TIMEOUT_SECONDS: float = 45.0
    CONFIRM_TIMEOUT_SECONDS: float = 8.0
    URL_FETCH_TIMEOUT_SECONDS: float = 20.0

    # Embedding Engine
    EMBEDDINGS_ENABLED: bool = Field(default=True, validation_alias="EMBEDDINGS_ENABLED")
    EMBEDDING_MODEL_NAME: str = "sentence-transformers/all-MiniLM-L6-v2"
    EMBED_BATCH_SIZE: int = 16
    EMBED_TIMEOUT_SECONDS: float = 20.0

    # Classifiers
    INTENT_CLASSIFIER_ENABLED: bool = True
    ADVERSE_CLASSIFIER_ENABLED: bool = True
    INTENTS_PATH: str = Field(
        default=os.path.join(os.path.dirname(__file__), "intents.json"),
        validation_alias="INTENTS_PATH",
    )

    # Retrieval / answering
    DEFAULT_TOP_K: int = 8
    GENERATION_MIN_SCORE: float = 0.05
    KB_POLL_SECONDS: float = 5.0
    URGENT_CONTACT: str = Field(default="our support line", validation_alias="URGENT_CONTACT")

    # Logging knobs
    LOGGER_NAME: str = "askbase"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    # Prompts
    ANSWER_SYSTEM_PROMPT: str = (
        "You are a helpful, friendly FAQ assistant. Answer ONLY using the provided knowledge base. "
        "Be concise and human-like.\n"
        "If the answer is not present or unclear in the knowledge base, say you're not sure.\n"
        "Do NOT include a 'Related topics' or 'You might also ask' section in your text; "
        "the UI will surface suggestions separately.\n"
        "Do NOT include references like 'FAQ #1' or numbered FAQ references, and do NOT include "
        "bracket citations like [#1] or [1] in the answer text.\n"
        "However, if the knowledge base contains file retention or deletion policies (e.g., files are "
        "kept for a limited time, can be deleted by users, or cannot be recovered after deletion), "
        "state those policies clearly and DO NOT say you're unsure.\n"
    )

    ADVERSE_CONFIRM_PROMPT: str = (
        "Classify if the message reports a potential adverse medical/safety event (including "
        "mental-health crisis or self-harm risk) that requires human follow-up. Consider context "
        'and negations. Respond with STRICT JSON: {"adverse": true|false, "confidence": 0..1} only.'
    )

    FAQ_EXTRACT_PROMPT: str = (
        "Extract FAQs from the given content. Return STRICT JSON array of objects with keys: "
        "question, answer, optional title, optional tags (array of strings). "
        "Do not include any extra text."
    )


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
