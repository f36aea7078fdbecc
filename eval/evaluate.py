"""
eval/evaluate.py

Offline replay report for the local case store.

Replays the action log of every stored case and prints, per case, the
derived phase, attempt counts and score, followed by overall totals.  The
store is only read; nothing is synced or generated.

Usage:
  python -m eval.evaluate
  python -m eval.evaluate --db data/casequiz.db --actions
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from pipelines.progression import Phase, replay
from pipelines.scoring import max_total
from storage.db import CaseStore, connect
from storage.settings import load_settings

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _summarise(store: CaseStore) -> list[dict[str, Any]]:
    """Replay each case and return one result row per case."""
    results: list[dict[str, Any]] = []
    for case in store.get_all_cases():
        actions = store.get_case_actions(case.id)
        if actions is None:
            results.append({"case": case.id, "patient": case.patient, "error": "action log unreadable"})
            continue

        progress = replay(case, actions)
        if progress.completed:
            state = "complete"
        elif progress.phase == Phase.diagnosis:
            state = "diagnosis"
        elif actions:
            state = "tests"
        else:
            state = "unused"

        results.append(
            {
                "case": case.id,
                "patient": case.patient,
                "state": state,
                "actions": len(actions),
                "test_attempts": sum(progress.test_attempts.values()),
                "diagnosis_attempts": sum(progress.diagnosis_attempts.values()),
                "score": progress.score,
                "error": None,
            }
        )
    return results


def _print_action_table(store: CaseStore) -> None:
    actions = store.list_case_actions()
    print("\n=== CASE_ACTION TABLE CONTENTS ===")
    if not actions:
        print("No case_actions found in the database")
        return
    for a in actions:
        print(
            f"{a.created_at:<34} {a.case_id[:12]:<13} {a.type.value:<10} "
            f"{a.value[:30]:<31} {'✓' if a.is_correct else '✗'}  #{a.attempt}"
        )
    print(f"Total case_actions: {len(actions)}")


def main(argv: list[str] | None = None) -> None:
    """Run the replay report and print results."""
    parser = argparse.ArgumentParser(description="Replay every stored case and report scores.")
    parser.add_argument("--db", type=Path, help="Database file (defaults to CASEQUIZ_DB_PATH).")
    parser.add_argument("--actions", action="store_true", help="Also dump the raw action log.")
    args = parser.parse_args(argv)

    settings = load_settings()
    if args.db is not None:
        settings = settings.model_copy(update={"db_path": args.db, "replica_url": None})

    if not settings.db_path.exists():
        print(f"\n[CaseQuiz Eval] No database at {settings.db_path}.\n")
        sys.exit(0)

    store = CaseStore(connect(settings), replicated=settings.replica_enabled)
    store.migrate()
    results = _summarise(store)

    header = f"{'Case':<14} {'Patient':<24} {'State':<10} {'Actions':<8} {'Tests':<6} {'Dx':<6} {'Score'}"
    print("\n" + "=" * 80)
    print("CASE REPLAY REPORT")
    print("=" * 80)
    print(header)
    print("-" * 80)
    for r in results:
        if r["error"]:
            print(f"{r['case'][:12]:<14} {r['patient'][:22]:<24} ERROR: {r['error']}")
            continue
        print(
            f"{r['case'][:12]:<14} {r['patient'][:22]:<24} {r['state']:<10} {r['actions']:<8} "
            f"{r['test_attempts']:<6} {r['diagnosis_attempts']:<6} {r['score']}/{max_total()}"
        )

    completed = [r for r in results if r.get("state") == "complete"]
    mean_score = sum(r["score"] for r in completed) / len(completed) if completed else float("nan")
    print("=" * 80)
    print(f"Total cases:      {len(results)}")
    print(f"Completed cases:  {len(completed)}")
    print(f"Mean final score: {mean_score:.1f}/{max_total()}")
    print("=" * 80)

    if args.actions:
        _print_action_table(store)


if __name__ == "__main__":
    main()
