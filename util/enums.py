# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"
    TEST = "test"


class RetrievalMode(str, Enum):
    LEXICAL = "lexical"
    SEMANTIC = "semantic"


class IntentSource(str, Enum):
    RULE = "rule"
    TRAINED = "trained"


class StreamKind(str, Enum):
    TOKEN = "token"
    META = "meta"
    DONE = "done"
    ERROR = "error"


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    MESSAGE_REQUIRED = ErrorInfo("message is required", status.HTTP_400_BAD_REQUEST)
    INVALID_VOTE = ErrorInfo("invalid vote", status.HTTP_400_BAD_REQUEST)
    ITEMS_NOT_LIST = ErrorInfo("items must be an array", status.HTTP_400_BAD_REQUEST)
    UNSUPPORTED_IMPORT = ErrorInfo(
        "Unsupported file format. Provide JSON array or CSV with columns: question,answer[,title,tags]",
        status.HTTP_400_BAD_REQUEST,
    )
    GENERATION_NOT_CONFIGURED = ErrorInfo(
        "Generation not configured. Set ANTHROPIC_API_KEY.", status.HTTP_400_BAD_REQUEST
    )
    PDF_UNREADABLE = ErrorInfo("Could not extract text from PDF", status.HTTP_400_BAD_REQUEST)
    EXTRACTION_FAILED = ErrorInfo("Failed to extract FAQs", status.HTTP_400_BAD_REQUEST)
    URL_REQUIRED = ErrorInfo("url is required", status.HTTP_400_BAD_REQUEST)
    URL_INVALID = ErrorInfo("url must be an absolute http(s) URL", status.HTTP_400_BAD_REQUEST)
    URL_UNREADABLE = ErrorInfo("No readable text at URL", status.HTTP_400_BAD_REQUEST)
    URL_TOO_LARGE = ErrorInfo("Page at URL is too large", 413)
    URL_FETCH_FAILED = ErrorInfo("Could not fetch URL", status.HTTP_502_BAD_GATEWAY)
    ANSWER_FAILED = ErrorInfo("Failed to answer. Please try again.", status.HTTP_502_BAD_GATEWAY)
