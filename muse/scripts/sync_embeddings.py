"""
Embed the evidence corpus into the vector index.

Usage:
    muse-sync-embeddings [--clear] [--evidence-dir DIR] [--backend memory|qdrant]

Exits with status 1 when any record failed to embed.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from muse.config import get_indexing_config, get_settings
from muse.corpus.provider import FileCorpusProvider
from muse.haystack_svc.embedder import create_embedder
from muse.haystack_svc.service import EvidenceIndexingService, SyncResult
from muse.haystack_svc.vector_index import create_vector_index

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync evidence embeddings into the vector index")
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Drop the index before re-embedding",
    )
    parser.add_argument(
        "--evidence-dir",
        type=Path,
        default=None,
        help="Directory of evidence MDX files (default: from settings)",
    )
    parser.add_argument(
        "--deployments-dir",
        type=Path,
        default=None,
        help="Directory of deployment JSON files (default: from settings)",
    )
    parser.add_argument(
        "--backend",
        type=str,
        choices=["memory", "qdrant"],
        default=None,
        help="Vector backend (default: MUSE_INDEX_VECTOR_BACKEND)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-record progress",
    )
    return parser


async def run(args: argparse.Namespace) -> SyncResult:
    settings = get_settings()
    config = get_indexing_config()
    if args.backend:
        config = config.model_copy(update={"vector_backend": args.backend})

    service = EvidenceIndexingService(
        corpus=FileCorpusProvider(
            args.evidence_dir or settings.evidence_dir,
            args.deployments_dir or settings.deployments_dir,
        ),
        embedder=create_embedder(config),
        index=create_vector_index(config, settings),
        config=config,
    )

    def _progress(current: int, total: int, evidence_id: str) -> None:
        logger.info("[%d/%d] %s", current, total, evidence_id)

    result = await service.embed_all(
        clear_first=args.clear,
        progress=_progress if args.verbose else None,
    )
    stats = await service.index_stats()
    logger.info("Index now holds %d chunks", stats.count)
    return result


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s  %(name)s  %(message)s",
    )

    result = asyncio.run(run(args))
    print(f"Embedded {result.embedded_count} records ({result.chunk_count} chunks)")
    if result.errors:
        print(f"{len(result.errors)} errors:", file=sys.stderr)
        for error in result.errors:
            print(f"  {error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
