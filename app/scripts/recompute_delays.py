from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from database import SessionLocal, init_database  # noqa: E402
from data_exchange import import_shift_records  # noqa: E402
from policy import delay_rounding, ensure_default_policy, load_active_policy, policy_timezone  # noqa: E402
from repair import recompute_all_delays  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Recompute counted delay minutes for every stored shift using the active "
            "timeclock policy, writing back only the records whose values changed."
        )
    )
    parser.add_argument(
        "--import-file",
        type=Path,
        help="Optional JSON file of roster or shift records to load before recomputing.",
    )
    parser.add_argument("--actor", default="cli", help="Name recorded in the audit log.")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_database()
    ensure_default_policy(SessionLocal)
    with SessionLocal() as session:
        policy = load_active_policy(session)
        tz = policy_timezone(policy)
        if args.import_file:
            created, skipped = import_shift_records(session, args.import_file, tz=tz)
            print(f"Imported {created} shift records ({skipped} skipped).")
        summary = recompute_all_delays(
            session,
            delay_rounding(policy),
            actor=args.actor,
            tz=tz,
            dry_run=args.dry_run,
        )
    print(json.dumps(summary.to_dict(), indent=2))
    return 1 if summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())
