from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from survey_access.scenario_runner import run_packs

DEFAULT_PACKS_DIR = Path(__file__).resolve().parent / "scenarios"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay phase scenario packs through the phase resolvers.")
    parser.add_argument(
        "--packs-dir",
        default=str(DEFAULT_PACKS_DIR),
        help="Directory of *.json scenario packs.",
    )
    parser.add_argument("--output", default=None, help="Optional path to write the JSON report to.")
    parser.add_argument("--verbose", action="store_true", help="Log mismatching cases to stderr.")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s %(message)s")

    report = run_packs(Path(args.packs_dir))
    rendered = json.dumps(report, indent=2) + "\n"
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(rendered, encoding="utf-8")
    else:
        print(rendered, end="")

    # Non-zero when any case disagrees with its expected phase.
    return 0 if report["summary_metrics"]["case_pass_rate"] == 1.0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
