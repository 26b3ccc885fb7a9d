# tests/test_knowledge_model.py
from model.knowledge import KnowledgeEntry, merge_entries, normalize_items
from util.functions import redact_message


def test_normalize_fills_ids_titles_and_tags():
    entries = normalize_items(
        [
            {"question": "Q" * 80, "answer": "A"},
            {"q": "", "a": "only answer"},
            {"id": 7, "title": "Given", "question": "q", "answer": "a", "tags": ["x", " ", "y"]},
        ]
    )
    assert [e.id for e in entries] == ["1", "2", "7"]
    assert entries[0].title == "Q" * 60
    assert entries[1].title == "FAQ 2"
    assert entries[1].answer == "only answer"
    assert entries[2].tags == ("x", "y")


def test_document_text_joins_fields():
    e = KnowledgeEntry(id="1", title="T", question="Q", answer="A", tags=("a", "b"))
    assert e.document_text() == "T \n Q \n A \n a b"


def test_redact_masks_contact_details():
    out = redact_message("Call me on +1 (555) 010-9999 or mail x.y@example.com\n\nthanks")
    assert out == "Call me on [number] or mail [email] thanks"


def test_redact_clips():
    assert redact_message("a" * 600).endswith("…")
    assert len(redact_message("a" * 600)) == 501


def test_merge_upserts_in_place_and_appends_new_ids():
    old = [KnowledgeEntry(id="1", answer="old"), KnowledgeEntry(id="2")]
    merged = merge_entries(old, [KnowledgeEntry(id="3"), KnowledgeEntry(id="1", answer="new")])
    assert [e.id for e in merged] == ["1", "2", "3"]
    assert merged[0].answer == "new"


def test_merge_collapses_repeats_within_one_batch():
    merged = merge_entries([KnowledgeEntry(id="x", answer="a"), KnowledgeEntry(id="x", answer="b")])
    assert [(e.id, e.answer) for e in merged] == [("x", "b")]
