# tests/conftest.py
import os

# Settings validate at import time; seed them before any app module loads.
os.environ["APP_ENV"] = "test"
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("ALLOWED_ORIGIN", "http://localhost:3000")
os.environ["EMBEDDINGS_ENABLED"] = "false"
os.environ.pop("ANTHROPIC_API_KEY", None)

import pytest

from model.knowledge import KnowledgeEntry


@pytest.fixture
def faq_entries():
    return [
        KnowledgeEntry(
            id="1",
            title="Reset password",
            question="How do I reset my password?",
            answer="Open Settings, choose Security and click Reset password.",
            tags=("account", "security"),
        ),
        KnowledgeEntry(
            id="2",
            title="File retention",
            question="How long are uploaded files kept?",
            answer="Uploaded files are kept for 7 days. Deleted files cannot be recovered.",
            tags=("files",),
        ),
        KnowledgeEntry(
            id="3",
            title="Billing cycle",
            question="When am I billed?",
            answer="Invoices are issued on the first day of every month.",
            tags=("billing",),
        ),
    ]
