"""
Tests for the evidence corpus

Tests cover:
- Frontmatter parsing
- File provider: ids, deployment merge, invalid files, ordering, reload
- In-memory provider and the with-results filter
"""

import json

import pytest

from muse.corpus.provider import (
    FileCorpusProvider,
    InMemoryCorpusProvider,
    list_with_results,
    split_frontmatter,
)
from muse.models.enums import EffectType
from tests.helpers import make_record

SPONSORS_MDX = """---
title: "GitHub Sponsors and maintainer activity"
author: "A. Researcher"
date: 2023-05-01
strength: "4"
methodologies: ["Difference-in-differences"]
tags: ["open source", "funding"]
results:
  - intervention: "GitHub Sponsors"
    outcome_variable: "maintainer activity"
    outcome: "1"
citation:
  - name: "Sponsors paper"
    src: "https://example.org/paper"
---

Body text of the evidence page.
"""

NOTES_MDX = """---
title: "Notes"
results:
---
Nothing measured.
"""


@pytest.fixture
def evidence_dirs(tmp_path):
    evidence = tmp_path / "evidence"
    deployments = tmp_path / "deployments"
    evidence.mkdir()
    deployments.mkdir()
    (evidence / "10.mdx").write_text(SPONSORS_MDX, encoding="utf-8")
    (evidence / "2.mdx").write_text(NOTES_MDX, encoding="utf-8")
    (evidence / "readme.txt").write_text("not evidence", encoding="utf-8")
    (deployments / "10.json").write_text(
        json.dumps({"attestationUID": "0xfeed", "timestamp": "2024-02-03T00:00:00Z"}),
        encoding="utf-8",
    )
    return evidence, deployments


class TestSplitFrontmatter:
    """Test YAML frontmatter extraction."""

    def test_parses_block(self):
        data = split_frontmatter(SPONSORS_MDX)
        assert data["title"] == "GitHub Sponsors and maintainer activity"
        assert data["results"][0]["intervention"] == "GitHub Sponsors"

    def test_no_frontmatter(self):
        assert split_frontmatter("# Just markdown") == {}

    def test_unterminated(self):
        assert split_frontmatter("---\ntitle: x") == {}


class TestFileCorpusProvider:
    """Test MDX directory loading."""

    @pytest.mark.asyncio
    async def test_loads_records_in_numeric_order(self, evidence_dirs):
        provider = FileCorpusProvider(*evidence_dirs)
        records = await provider.list_all()
        assert [r.evidence_id for r in records] == ["2", "10"]

    @pytest.mark.asyncio
    async def test_record_fields(self, evidence_dirs):
        provider = FileCorpusProvider(*evidence_dirs)
        record = await provider.get("10")

        assert record.title == "GitHub Sponsors and maintainer activity"
        assert record.date == "2023-05-01"
        assert record.strength == 4
        assert record.results[0].effect is EffectType.POSITIVE
        assert record.citations[0].src == "https://example.org/paper"
        assert record.attestation_uid == "0xfeed"
        assert record.timestamp == "2024-02-03T00:00:00Z"

    @pytest.mark.asyncio
    async def test_null_results_become_empty(self, evidence_dirs):
        provider = FileCorpusProvider(*evidence_dirs)
        record = await provider.get("2")
        assert record.results == []
        assert record.attestation_uid is None

    @pytest.mark.asyncio
    async def test_invalid_file_is_skipped(self, evidence_dirs):
        evidence, deployments = evidence_dirs
        (evidence / "3.mdx").write_text("---\nstrength: 42\n---\n", encoding="utf-8")
        (evidence / "4.mdx").write_text("---\ntitle: [unclosed\n---\n", encoding="utf-8")

        records = await FileCorpusProvider(evidence, deployments).list_all()
        assert [r.evidence_id for r in records] == ["2", "10"]

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        provider = FileCorpusProvider(tmp_path / "nope", tmp_path / "nope")
        assert await provider.list_all() == []
        assert await provider.get("1") is None

    @pytest.mark.asyncio
    async def test_reload_picks_up_new_files(self, evidence_dirs):
        evidence, deployments = evidence_dirs
        provider = FileCorpusProvider(evidence, deployments)
        assert len(await provider.list_all()) == 2

        (evidence / "11.mdx").write_text(NOTES_MDX, encoding="utf-8")
        assert len(await provider.list_all()) == 2
        assert len(await provider.reload()) == 3

    @pytest.mark.asyncio
    async def test_with_results_filter(self, evidence_dirs):
        records = await list_with_results(FileCorpusProvider(*evidence_dirs))
        assert [r.evidence_id for r in records] == ["10"]


class TestInMemoryCorpusProvider:
    """Test the fixed-list provider."""

    @pytest.mark.asyncio
    async def test_get_and_order(self):
        provider = InMemoryCorpusProvider([make_record("b"), make_record("10"), make_record("9")])
        assert [r.evidence_id for r in await provider.list_all()] == ["9", "10", "b"]
        assert (await provider.get("b")).evidence_id == "b"
        assert await provider.get("zzz") is None

    @pytest.mark.asyncio
    async def test_list_with_results(self, corpus):
        assert [r.evidence_id for r in await list_with_results(corpus)] == ["1", "2", "4"]
