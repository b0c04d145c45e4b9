"""
Evidence Corpus Provider

Read-only access to the curated evidence records:
- InMemoryCorpusProvider for bundled or test corpora
- FileCorpusProvider for MDX files with YAML frontmatter, merged with
  optional deployment (attestation) JSON per record
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, runtime_checkable

import yaml
from pydantic import ValidationError

from muse.config import get_settings
from muse.models.evidence import EvidenceRecord

logger = logging.getLogger(__name__)

EVIDENCE_SUFFIXES = (".mdx", ".md")


@runtime_checkable
class CorpusProvider(Protocol):
    """Anything that can list the evidence corpus."""

    async def list_all(self) -> list[EvidenceRecord]:
        ...

    async def get(self, evidence_id: str) -> Optional[EvidenceRecord]:
        ...


async def list_with_results(corpus: CorpusProvider) -> list[EvidenceRecord]:
    """Records eligible for edge matching (at least one result tuple)."""
    return [r for r in await corpus.list_all() if r.has_results]


def _sort_key(record: EvidenceRecord) -> tuple[int, int, str]:
    try:
        return (0, int(record.evidence_id), record.evidence_id)
    except ValueError:
        return (1, 0, record.evidence_id)


class InMemoryCorpusProvider:
    """A fixed list of records."""

    def __init__(self, records: Iterable[EvidenceRecord]):
        self._records = sorted(records, key=_sort_key)
        self._by_id = {r.evidence_id: r for r in self._records}

    async def list_all(self) -> list[EvidenceRecord]:
        return list(self._records)

    async def get(self, evidence_id: str) -> Optional[EvidenceRecord]:
        return self._by_id.get(evidence_id)


def split_frontmatter(text: str) -> dict[str, Any]:
    """Parse the YAML block between the leading ``---`` fences."""
    if not text.startswith("---"):
        return {}
    parts = text.split("---", 2)
    if len(parts) < 3:
        return {}
    data = yaml.safe_load(parts[1])
    return data if isinstance(data, dict) else {}


class FileCorpusProvider:
    """
    Evidence records from a directory of MDX files.

    The evidence id is the file stem. Records are loaded once per
    instance; call ``reload()`` to pick up edits.
    """

    def __init__(
        self,
        evidence_dir: Optional[Path] = None,
        deployments_dir: Optional[Path] = None,
    ):
        settings = get_settings()
        self.evidence_dir = Path(evidence_dir or settings.evidence_dir)
        self.deployments_dir = Path(deployments_dir or settings.deployments_dir)
        self._records: Optional[list[EvidenceRecord]] = None
        self._lock = asyncio.Lock()

    def _read_deployment(self, evidence_id: str) -> dict[str, Any]:
        path = self.deployments_dir / f"{evidence_id}.json"
        if not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring invalid deployment file %s: %s", path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def parse_file(self, path: Path) -> Optional[EvidenceRecord]:
        """Parse one evidence file, or None if it is unusable."""
        evidence_id = path.stem
        try:
            frontmatter = split_frontmatter(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Skipping unreadable evidence file %s: %s", path, exc)
            return None

        deployment = self._read_deployment(evidence_id)
        data = {
            **frontmatter,
            "evidence_id": evidence_id,
            "attestation_uid": deployment.get("attestationUID"),
            "timestamp": deployment.get("timestamp"),
        }
        try:
            return EvidenceRecord.model_validate(data)
        except ValidationError as exc:
            logger.warning("Skipping invalid evidence %s: %s", evidence_id, exc)
            return None

    def _load(self) -> list[EvidenceRecord]:
        if not self.evidence_dir.is_dir():
            logger.warning("Evidence directory %s does not exist", self.evidence_dir)
            return []
        records = []
        for path in sorted(self.evidence_dir.iterdir()):
            if path.suffix not in EVIDENCE_SUFFIXES:
                continue
            record = self.parse_file(path)
            if record is not None:
                records.append(record)
        records.sort(key=_sort_key)
        logger.info("Loaded %d evidence records from %s", len(records), self.evidence_dir)
        return records

    async def list_all(self) -> list[EvidenceRecord]:
        if self._records is None:
            async with self._lock:
                if self._records is None:
                    self._records = await asyncio.to_thread(self._load)
        return list(self._records)

    async def get(self, evidence_id: str) -> Optional[EvidenceRecord]:
        for record in await self.list_all():
            if record.evidence_id == evidence_id:
                return record
        return None

    async def reload(self) -> list[EvidenceRecord]:
        self._records = None
        return await self.list_all()
