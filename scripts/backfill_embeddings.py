"""Generate embeddings for emails and tasks that were stored without one."""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from email_tasks.config import settings
from email_tasks.pipeline_config import SearchTarget
from email_tasks.services import get_embedding_service, get_repository, get_vector_store


def backfill(targets: list[SearchTarget], limit: int, all_pages: bool) -> None:
    embedder = get_embedding_service()
    if embedder is None:
        print("No embedding provider configured (set OPENAI_API_KEY or EMBEDDING_PROVIDER).")
        sys.exit(1)

    repository = get_repository()
    for target in targets:
        after_id = None
        while True:
            stats = embedder.backfill(repository, get_vector_store(target), target, limit=limit, after_id=after_id)
            print(
                f"{target.value}: {stats.processed} processed, {stats.successful} embedded, "
                f"{stats.failed} failed, {stats.skipped} skipped (through id {stats.last_id})"
            )
            if not all_pages or stats.processed < limit:
                break
            after_id = stats.last_id


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--target", choices=[t.value for t in SearchTarget] + ["all"], default="all")
    parser.add_argument("--limit", type=int, default=100, help="Records per page")
    parser.add_argument("--all-pages", action="store_true", help="Keep paging until every record was visited")
    args = parser.parse_args()
    logging.basicConfig(level=settings.log_level.upper())
    chosen = list(SearchTarget) if args.target == "all" else [SearchTarget(args.target)]
    backfill(chosen, args.limit, args.all_pages)
