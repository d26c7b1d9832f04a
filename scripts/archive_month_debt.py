from __future__ import annotations

import argparse


def main() -> int:
    parser = argparse.ArgumentParser(description="Archive a closed month's unfinished goals as debt (with dry-run).")
    parser.add_argument("month", help="Month to archive, YYYY-MM")
    parser.add_argument("--reason", default=None, help="Reason stored on every archive row")
    parser.add_argument("--dry-run", action="store_true", help="Print what would be archived, without archiving")
    parser.add_argument("--sample", type=int, default=5, help="Show up to N sample goals (default: 5)")
    args = parser.parse_args()

    # NOTE: This script is intended to be run inside the API container/runtime where
    # the app modules (`core`, `services`, `models`) are available on PYTHONPATH.
    from core.exceptions import APIException
    from core.logging import setup_logging
    from services.engine import get_goal_engine

    setup_logging()
    engine = get_goal_engine()

    try:
        candidates = engine.debt.preview_monthly_debt(args.month)
    except APIException as e:
        raise SystemExit(f"{e.error_code}: {e.detail}")

    print("Monthly debt archival")
    print(f"- month: {args.month}")
    print(f"- reason: {args.reason}")
    print(f"- matches: {len(candidates)}")

    sample_n = max(0, int(args.sample or 0))
    for goal in candidates[:sample_n]:
        print(f"  - {goal.due_date_local} {goal.id} {goal.text!r}")

    if args.dry_run:
        print("Dry run: nothing archived.")
        return 0

    archived = engine.debt.transition_monthly_debt(args.month, args.reason)
    print(f"Archived {archived} goal(s) as debt.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
