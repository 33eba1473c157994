"""Management CLI for intake drafts.

Usage:
    python -m project_intake.cli migrate draft.json [--legacy 2]   # Upgrade a draft file
    python -m project_intake.cli grade draft.json                  # Completeness + step checks
    python -m project_intake.cli steps                             # Show the step configuration
"""

import json
import sys

from project_intake.schemas.intake import dump_record
from project_intake.schemas.steps import get_step_config
from project_intake.services.completeness import evaluate
from project_intake.services.normalizer import migrate_with_report, project_legacy
from project_intake.services.validator import validate_all


def _read_draft(path: str):
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def migrate_file(path: str, legacy_version: int | None = None) -> int:
    report = migrate_with_report(_read_draft(path))
    for warning in report.warnings:
        print(f"  WARNING: {warning}", file=sys.stderr)
    if report.recovered:
        print("  Draft was unreadable; a fresh record was produced.", file=sys.stderr)

    output = dump_record(report.record)
    if legacy_version is not None:
        output = project_legacy(report.record, legacy_version)
    print(json.dumps(output, indent=2))
    return 1 if report.recovered else 0


def grade_file(path: str) -> int:
    report = migrate_with_report(_read_draft(path))
    result = evaluate(report.record)
    print(f"  Source version: {report.source_version or 'unknown'}")
    print(f"  Core:        {result.core:3d}%")
    print(f"  Context:     {result.context:3d}%")
    print(f"  Progressive: {result.progressive:3d}%")
    for label in result.missing:
        print(f"  Missing: {label}")
    if result.progressive_gap:
        print(f"  Missing: {result.progressive_gap}")

    blocked = 0
    for step_id, messages in validate_all(report.record).items():
        if messages:
            blocked += 1
        for message in messages:
            print(f"  [{step_id}] {message}")
    return 1 if blocked else 0


def list_steps() -> int:
    for index, step in enumerate(get_step_config()):
        fields = ", ".join(step.fields) or "-"
        print(f"  {index}. {step.name} ({step.tier.value}): {fields}")
    return 0


if __name__ == "__main__":
    args = sys.argv[1:]
    cmd = args[0] if args else ""
    if cmd == "migrate" and len(args) >= 2:
        legacy = None
        if "--legacy" in args:
            legacy = int(args[args.index("--legacy") + 1])
        sys.exit(migrate_file(args[1], legacy))
    elif cmd == "grade" and len(args) >= 2:
        sys.exit(grade_file(args[1]))
    elif cmd == "steps":
        sys.exit(list_steps())
    else:
        print(__doc__)
        sys.exit(2)
