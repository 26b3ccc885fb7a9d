# repository/namespaces.py
from typing import Final

ROOT: Final[str] = "askbase"

FAQ: Final[str] = f"{ROOT}:faq"
FAQ_ENTRIES: Final[str] = f"{FAQ}:entries"
FAQ_REVISION: Final[str] = f"{FAQ}:revision"
EMBEDDINGS: Final[str] = f"{ROOT}:embeddings"
AUDIT: Final[str] = f"{ROOT}:audit"
ADVERSE_LOG: Final[str] = f"{AUDIT}:adverse"
UNANSWERED_LOG: Final[str] = f"{AUDIT}:unanswered"
FEEDBACK_LOG: Final[str] = f"{AUDIT}:feedback"
