import argparse
import logging
from pathlib import Path

import yaml

from app.core.enums import ApplicationStatus
from app.core.logging import setup_logging
from app.db import crud
from app.services.application_queue import get_queue_processor


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Submit queued applications one at a time")
    parser.add_argument(
        "--enqueue",
        help="Optional YAML file with a list of {job: {...}, profile: {...}} entries to enqueue first",
    )
    parser.add_argument("--force", action="store_true", help="Drain even when auto-submit is disabled")
    return parser.parse_args()


def main() -> None:
    setup_logging(logging.INFO)
    args = parse_args()
    processor = get_queue_processor()

    if args.enqueue:
        entries = yaml.safe_load(Path(args.enqueue).read_text(encoding="utf-8")) or []
        for entry in entries:
            record = crud.build_record(entry["job"], entry["profile"])
            crud.enqueue_application(processor.store, record)
            print(f"Enqueued {record.job_id}: {record.job.title or record.job.apply_url}")

    outcome = processor.drain(force=args.force)
    print(f"Drain finished with status={outcome['status']}")
    for item in outcome["processed"]:
        print(f"  {item['job_id']}: {item['status']}")

    failed = crud.list_applications(processor.store, status=ApplicationStatus.FAILED)
    for record in failed:
        print(f"Failed: {record.job_id} error={record.error}")


if __name__ == "__main__":
    main()
