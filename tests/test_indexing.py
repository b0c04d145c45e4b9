"""
Tests for the evidence indexing service

Tests cover:
- Canonical record text
- Chunking
- Full sync: counts, per-record errors, progress, clear-first
"""

import pytest

from muse.config import IndexingConfig
from muse.haystack_svc.service import EvidenceIndexingService, build_evidence_text
from muse.haystack_svc.vector_index import InMemoryVectorIndex
from tests.helpers import HashingEmbedder


class FailingEmbedder(HashingEmbedder):
    """Refuses to embed text mentioning a keyword."""

    def __init__(self, keyword: str):
        super().__init__()
        self.keyword = keyword

    async def embed(self, text: str) -> list[float]:
        if self.keyword in text:
            raise RuntimeError("embedding service unavailable")
        return await super().embed(text)


@pytest.fixture
def config():
    return IndexingConfig(chunk_size=200, chunk_overlap=20, batch_size=2, vector_backend="memory")


@pytest.fixture
def service(corpus, embedder, config):
    return EvidenceIndexingService(corpus, embedder, InMemoryVectorIndex(), config)


class TestBuildEvidenceText:
    """Test the canonical embeddable text."""

    def test_contains_header_and_results(self, sample_records):
        text = build_evidence_text(sample_records[0])
        assert text.startswith("Evidence ID: 1\nTitle: GitHub Sponsors")
        assert "Evidence Strength: 4/5" in text
        assert "Methodologies: Difference-in-differences" in text
        assert "GitHub Sponsors funding for maintainers → maintainer activity" in text
        assert "(Effect: positive)" in text

    def test_record_without_results(self, sample_records):
        text = build_evidence_text(sample_records[2])
        assert "Intervention → Outcome" not in text
        assert "Evidence Strength: 3/5" in text


class TestChunking:
    """Test text chunking."""

    def test_short_text_is_one_chunk(self, service):
        assert service.chunk_text("A short piece of evidence.") == ["A short piece of evidence."]

    def test_long_text_is_split(self, service):
        text = "\n\n".join(f"Paragraph {i} " + "word " * 30 for i in range(6))
        chunks = service.chunk_text(text)
        assert len(chunks) > 1
        assert all(c.strip() for c in chunks)

    def test_blank_text(self, service):
        assert service.chunk_text("   ") == []


class TestEmbedAll:
    """Test a full sync."""

    @pytest.mark.asyncio
    async def test_sync_embeds_every_record(self, service):
        result = await service.embed_all()

        assert result.ok
        assert result.embedded_count == 4
        assert result.chunk_count >= 4
        stats = await service.index_stats()
        assert stats.exists
        assert stats.count == result.chunk_count

    @pytest.mark.asyncio
    async def test_resync_is_idempotent(self, service):
        first = await service.embed_all()
        await service.embed_all()
        assert (await service.index_stats()).count == first.chunk_count

    @pytest.mark.asyncio
    async def test_clear_first(self, service):
        await service.embed_all()
        result = await service.embed_all(clear_first=True)
        assert (await service.index_stats()).count == result.chunk_count

    @pytest.mark.asyncio
    async def test_failing_record_is_reported(self, corpus, config):
        service = EvidenceIndexingService(
            corpus, FailingEmbedder("Code review"), InMemoryVectorIndex(), config,
        )
        result = await service.embed_all()

        assert not result.ok
        assert result.embedded_count == 3
        assert len(result.errors) == 1
        assert result.errors[0].startswith("4: ")

    @pytest.mark.asyncio
    async def test_progress_callback(self, service):
        calls = []
        await service.embed_all(progress=lambda current, total, eid: calls.append((current, total, eid)))
        assert [c[0] for c in calls] == [1, 2, 3, 4]
        assert {c[1] for c in calls} == {4}
        assert [c[2] for c in calls] == ["1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_chunk_ids(self, service, embedder):
        await service.embed_all()
        hits = await service.index.query(await embedder.embed("GitHub Sponsors"), limit=100)
        assert hits
        for hit in hits:
            assert hit.chunk.chunk_id == f"{hit.chunk.evidence_id}-chunk-{hit.chunk.chunk_index}"
