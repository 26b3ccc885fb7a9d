# tests/test_semantic_retriever.py
import time
import numpy as np
import pytest
from core.embeddings_retriever import SemanticRetriever, fingerprint
from model.knowledge import KnowledgeEntry
from util.enums import RetrievalMode
from fakes.fake_services import HashingEmbedder
from fakes.memory_repositories import InMemoryEmbeddingRepository


def _retriever(embedder=None, repo=None, batch_size=2):
    return SemanticRetriever(
        embedder or HashingEmbedder(),
        repo or InMemoryEmbeddingRepository(),
        batch_size=batch_size,
        timeout=5.0,
    )


@pytest.mark.asyncio
async def test_build_embeds_every_entry_in_batches_and_persists(faq_entries):
    embedder = HashingEmbedder()
    repo = InMemoryEmbeddingRepository()
    index = await _retriever(embedder, repo, batch_size=2).sync(faq_entries)
    assert index is not None
    assert index.ids == ("1", "2", "3")
    assert embedder.calls == 2
    assert repo.saves == 1
    assert np.allclose(np.linalg.norm(index.embeddings, axis=1), 1.0)


@pytest.mark.asyncio
async def test_sync_reuses_matching_persisted_index(faq_entries):
    repo = InMemoryEmbeddingRepository()
    await _retriever(repo=repo).sync(faq_entries)
    embedder = HashingEmbedder()
    index = await _retriever(embedder, repo).sync(faq_entries)
    assert index.fingerprint == fingerprint(faq_entries)
    assert embedder.calls == 0


@pytest.mark.asyncio
async def test_count_mismatch_forces_full_rebuild(faq_entries):
    repo = InMemoryEmbeddingRepository()
    await _retriever(repo=repo).sync(faq_entries[:2])
    embedder = HashingEmbedder()
    index = await _retriever(embedder, repo, batch_size=8).sync(faq_entries)
    assert len(index) == 3
    assert len(embedder.texts) == 3


@pytest.mark.asyncio
async def test_retrieve_ranks_by_cosine(faq_entries):
    retriever = _retriever()
    index = await retriever.sync(faq_entries)
    by_id = {e.id: e for e in faq_entries}
    hits = await retriever.retrieve(index, by_id, "How do I reset my password?", k=2)
    assert hits[0].entry.id == "1"
    assert len(hits) == 2
    assert all(h.mode is RetrievalMode.SEMANTIC for h in hits)
    assert all(0.0 <= h.score <= 1.0 for h in hits)


@pytest.mark.asyncio
async def test_failing_embedder_degrades_to_empty(faq_entries):
    retriever = _retriever(HashingEmbedder(fail=True))
    assert await retriever.sync(faq_entries) is None
    by_id = {e.id: e for e in faq_entries}
    assert await retriever.retrieve(None, by_id, "reset password", k=3) == []


@pytest.mark.asyncio
async def test_query_embedding_failure_returns_empty(faq_entries):
    embedder = HashingEmbedder()
    retriever = _retriever(embedder)
    index = await retriever.sync(faq_entries)
    embedder.fail = True
    hits = await retriever.retrieve(index, {e.id: e for e in faq_entries}, "reset", k=3)
    assert hits == []


@pytest.mark.asyncio
async def test_broken_persistence_still_builds(faq_entries):
    index = await _retriever(repo=InMemoryEmbeddingRepository(broken=True)).sync(faq_entries)
    assert index is not None and len(index) == 3


@pytest.mark.asyncio
async def test_empty_kb_has_no_index():
    assert await _retriever().sync([]) is None


@pytest.mark.asyncio
async def test_equal_scores_keep_knowledge_base_order():
    twins = [
        KnowledgeEntry(id=i, title="Refund policy", question="How do refunds work?", answer="Within 14 days.")
        for i in ("z", "m", "a")
    ]
    retriever = _retriever()
    index = await retriever.sync(twins)
    hits = await retriever.retrieve(index, {e.id: e for e in twins}, "refund policy", k=3)
    assert [h.entry.id for h in hits] == ["z", "m", "a"]
    assert len({h.score for h in hits}) == 1


class SlowEmbedder(HashingEmbedder):
    def encode(self, texts):
        time.sleep(0.3)
        return super().encode(texts)


@pytest.mark.asyncio
async def test_slow_embedding_times_out_to_empty(faq_entries):
    embedder = HashingEmbedder()
    fast = _retriever(embedder)
    index = await fast.sync(faq_entries)
    slow = SemanticRetriever(SlowEmbedder(), InMemoryEmbeddingRepository(), timeout=0.05)
    assert await slow.sync(faq_entries) is None
    assert await slow.retrieve(index, {e.id: e for e in faq_entries}, "reset password", k=3) == []
