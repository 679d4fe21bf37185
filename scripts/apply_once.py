import argparse
import json
import logging
from pathlib import Path

import yaml

from app.core.enums import ApplyMode
from app.core.logging import setup_logging
from app.db.models import JobRef
from app.services.form_submission_service import apply_to_job


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply to a single Ashby job posting")
    parser.add_argument("--url", required=True, help="Ashby job posting URL")
    parser.add_argument(
        "--profile",
        default="data/profile.yaml",
        help="YAML file with applicant fields (first_name, last_name, email, resume_path, ...)",
    )
    parser.add_argument("--mode", choices=[m.value for m in ApplyMode], default=ApplyMode.AUTO.value)
    parser.add_argument("--title", default="", help="Role title used when drafting answers")
    parser.add_argument("--company", default="", help="Company name used when drafting answers")
    return parser.parse_args()


def main() -> None:
    setup_logging(logging.INFO)
    args = parse_args()

    profile_path = Path(args.profile)
    if not profile_path.exists():
        raise SystemExit(f"Profile file not found: {profile_path}")
    profile = yaml.safe_load(profile_path.read_text(encoding="utf-8")) or {}

    job = JobRef(id=args.url, title=args.title, company=args.company, apply_url=args.url)
    result = apply_to_job(args.url, profile, args.mode, job=job)
    print(json.dumps(result, indent=2, default=str))
    if not result.get("ok"):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
