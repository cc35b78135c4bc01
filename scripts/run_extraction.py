"""Run one batch task-extraction pass from the command line (e.g. from cron)."""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from email_tasks.config import settings
from email_tasks.services import build_orchestrator


def run_extraction(
    limit: int,
    days_back: int | None,
    include_processed: bool,
    email_ids: list[int] | None,
    user_id: int | None,
) -> None:
    orchestrator = build_orchestrator(user_id)
    if email_ids:
        print(f"Extracting tasks from {len(email_ids)} specific email(s)...")
        result = orchestrator.run_emails(email_ids)
    else:
        window = f"last {days_back} day(s)" if days_back is not None else "all time"
        print(f"Extracting tasks from up to {limit} email(s), {window}...")
        result = orchestrator.run(limit=limit, days_back=days_back, unprocessed_only=not include_processed)

    for extraction in result.emails:
        print(
            f"  email {extraction.email_id}: {extraction.task_count} task(s) "
            f"[{extraction.parse_state.value}, {extraction.model_used}]"
        )
    print(
        f"\nDone! Processed {result.processed} email(s), created {result.task_count} task(s), "
        f"{result.deferred} deferred, {result.failed} failed."
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--days-back", type=int, default=None)
    parser.add_argument("--include-processed", action="store_true")
    parser.add_argument("--email-id", type=int, action="append", dest="email_ids")
    parser.add_argument("--user-id", type=int, default=None)
    args = parser.parse_args()
    logging.basicConfig(level=settings.log_level.upper())
    run_extraction(args.limit, args.days_back, args.include_processed, args.email_ids, args.user_id)
