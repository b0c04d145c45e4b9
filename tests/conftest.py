"""Shared fixtures."""

import pytest

from muse.config import (
    get_external_search_config,
    get_indexing_config,
    get_pipeline_config,
    get_retrieval_config,
    get_settings,
)
from muse.corpus.provider import InMemoryCorpusProvider
from muse.models.evidence import EvidenceRecord
from tests.helpers import HashingEmbedder, make_record


@pytest.fixture
def sample_records() -> list[EvidenceRecord]:
    return [
        make_record(
            "1",
            title="GitHub Sponsors and open source maintainer activity",
            author="Ada Researcher",
            date="2023-05-01",
            strength=4,
            methodologies=["Difference-in-differences"],
            results=[{
                "intervention": "GitHub Sponsors funding for maintainers",
                "outcome_variable": "maintainer activity on open source projects",
                "outcome": "1",
            }],
        ),
        make_record(
            "2",
            title="Community grants and developer retention",
            strength=2,
            methodologies="Survey",
            results=[{
                "intervention": "small community grants",
                "outcome_variable": "developer retention",
                "outcome": "3",
            }],
        ),
        make_record(
            "3",
            title="Background notes without findings",
            strength=3,
        ),
        make_record(
            "4",
            title="Code review bots",
            strength=3,
            results=[{
                "intervention": "automated code review bots",
                "outcome_variable": "pull request merge time",
                "effect": "positive",
            }],
        ),
    ]


@pytest.fixture
def corpus(sample_records) -> InMemoryCorpusProvider:
    return InMemoryCorpusProvider(sample_records)


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep tests independent of the caller's environment and .env."""
    for var in ("GOOGLE_AI_API_KEY", "SEMANTIC_SCHOLAR_API_KEY", "CONTACT_EMAIL"):
        monkeypatch.delenv(var, raising=False)
    getters = (
        get_settings,
        get_retrieval_config,
        get_indexing_config,
        get_external_search_config,
        get_pipeline_config,
    )
    for getter in getters:
        getter.cache_clear()
    yield
    for getter in getters:
        getter.cache_clear()
