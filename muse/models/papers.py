"""Academic papers found outside the curated corpus."""

import hashlib
from typing import Optional

from pydantic import Field

from muse.models.enums import PaperSource
from muse.models.evidence import CamelModel


class ExternalPaper(CamelModel):
    """Normalised search hit from any paper provider."""

    id: str
    title: str
    authors: list[str] = Field(default_factory=list)
    year: Optional[int] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    abstract: Optional[str] = None
    source: PaperSource
    citation_count: Optional[int] = None

    @staticmethod
    def normalize_title(title: str) -> str:
        return " ".join(title.lower().split())

    @classmethod
    def make_id(cls, source: PaperSource, doi: Optional[str], title: str) -> str:
        """Stable id: ``ext-<source>-<first 8 hex of sha256(identifier)>``.

        The identifier is the DOI when known, else the normalised title.
        """
        identifier = doi or cls.normalize_title(title)
        digest = hashlib.sha256(identifier.encode("utf-8")).hexdigest()[:8]
        return f"ext-{source.value}-{digest}"

    @property
    def dedupe_key(self) -> str:
        if self.doi:
            return f"doi:{self.doi.strip().lower()}"
        return f"title:{self.normalize_title(self.title)}"
