"""Command-line interface for the Personal Finance Tracker.

Usage:
  finance-tracker --input statement.csv
  finance-tracker --input card.csv --mode credit_card --groups

Runs the same normalization and categorization as the API import path over
local CSV files and prints a text report; nothing is written to a database.
"""

from __future__ import annotations

import argparse
import datetime as dt
import logging
from typing import List, Optional

from .config import IMPORT_MODES, AppConfig
from .data_loader import load_csv_files
from .logging_setup import configure_logging
from .merchants import group_uncategorized
from .reports import build_summary, format_text_report, save_json

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Personal Finance Tracker")
    p.add_argument("--input", "-i", nargs="+", required=True, help="CSV file(s) to load")
    p.add_argument("--mode", "-m", choices=IMPORT_MODES, help="How to read amount signs (default from config)")
    p.add_argument("--config", "-c", help="Path to JSON config with rules and defaults")
    p.add_argument("--from", dest="date_from", help="Start date (YYYY-MM-DD)")
    p.add_argument("--to", dest="date_to", help="End date (YYYY-MM-DD)")
    p.add_argument("--json", dest="json_out", help="Write summary JSON to path")
    p.add_argument("--groups", action="store_true", help="List uncategorized merchants")
    p.add_argument("--log-level", default=None, help="Logging level (default INFO)")
    return p.parse_args(argv)


def _parse_date(d: Optional[str]) -> Optional[dt.date]:
    if not d:
        return None
    return dt.date.fromisoformat(d)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    cfg = AppConfig.load(args.config)
    mode = args.mode or cfg.default_import_mode
    try:
        txns = load_csv_files(args.input, mode=mode, rules=cfg.rules)
    except (OSError, ValueError) as exc:
        logger.error("Could not load input: %s", exc)
        return 1

    dfrom = _parse_date(args.date_from)
    dto = _parse_date(args.date_to)
    if dfrom or dto:
        txns = [t for t in txns if (not dfrom or t.date >= dfrom) and (not dto or t.date <= dto)]

    summary = build_summary(txns)
    groups = group_uncategorized(txns) if args.groups else None
    print(format_text_report(summary, groups))

    if args.json_out:
        if groups is not None:
            summary["uncategorized_groups"] = [g.to_dict() for g in groups]
        save_json(summary, args.json_out)
        print(f"\nSaved JSON summary to: {args.json_out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
