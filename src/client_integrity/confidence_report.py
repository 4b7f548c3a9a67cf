import argparse
import csv
import json
import logging
import os
from typing import Dict, List, Sequence

import pandas as pd

from client_integrity.common import load_config, read_rows
from client_integrity.errors import ImportFileError, StorePersistenceError
from client_integrity.logging_utils import configure_logging
from client_integrity.models import ImportReport, ImportRow
from client_integrity.reconciler import build_reconciler
from client_integrity.store import JsonClientStore

logger = logging.getLogger(__name__)

NAME_SOURCE_POINTS = {
    "columns": 35,
    "name_column": 35,
    "misaligned": 20,
    "email": 10,
    "phone": 0,
    "row": 0,
}
BUCKETS = ["very_high", "high", "medium", "low"]


def pct(n, d):
    return round((n / d * 100.0), 2) if d else 0.0


def confidence_score(row: ImportRow) -> int:
    """0-100, additive with a penalty per diagnostic on the row."""
    score = NAME_SOURCE_POINTS.get(row.name_source, 0)
    if row.email:
        score += 25
    if row.phone:
        score += 20
    if row.date_of_birth:
        score += 15
    if row.preferred_name:
        score += 5

    # Each warning means a value was blanked, guessed or realigned
    score -= 10 * len(row.diagnostics)
    return int(max(0, min(100, score)))


def confidence_bucket(score: int) -> str:
    if score >= 80:
        return "very_high"
    if score >= 60:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def build_row_confidence(rows: Sequence[ImportRow]) -> pd.DataFrame:
    records: List[Dict[str, object]] = []
    for row in rows:
        score = confidence_score(row)
        records.append(
            {
                "row": row.row_number,
                "full_name": row.full_name,
                "email": row.email,
                "phone": row.phone,
                "date_of_birth": row.date_of_birth,
                "name_source": row.name_source,
                "status": "skipped" if row.skipped_reason else "added",
                "skipped_reason": row.skipped_reason,
                "diagnostic_count": len(row.diagnostics),
                "diagnostics": " | ".join(row.diagnostics),
                "confidence_score": score,
                "confidence_bucket": confidence_bucket(score),
            }
        )
    return pd.DataFrame(records)


def summarize(df: pd.DataFrame) -> pd.DataFrame:
    total = len(df)
    counts: Dict[str, int] = (
        df["confidence_bucket"].value_counts().to_dict() if total else {}
    )
    rows = []
    for bucket in BUCKETS:
        count = int(counts.get(bucket, 0))
        rows.append({"bucket": bucket, "count": count, "pct": pct(count, total)})
    return pd.DataFrame(rows)


def write_row_confidence(rows: Sequence[ImportRow], out_dir) -> List[str]:
    df = build_row_confidence(rows)
    out_rows = os.path.join(str(out_dir), "row_confidence.csv")
    out_summary = os.path.join(str(out_dir), "row_confidence_summary.csv")
    df.to_csv(out_rows, index=False, encoding="utf-8", quoting=csv.QUOTE_ALL)
    summarize(df).to_csv(out_summary, index=False, encoding="utf-8", quoting=csv.QUOTE_ALL)
    return [out_rows, out_summary]


def main():
    parser = argparse.ArgumentParser(
        description="Score import rows without saving them to the client store."
    )
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--rows-file", type=str, default=None)
    parser.add_argument("--store", type=str, default=None)
    parser.add_argument("--out-dir", type=str, default=None)
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")

    args = parser.parse_args()
    config = load_config(args)
    configure_logging(config, level_override=args.log_level)
    rows_file = config.inputs.get("rows_file")
    if not rows_file:
        parser.error("--rows-file is required (or inputs.rows_file in the config)")
    out_dir = str(config.outputs.dir or os.getcwd())

    try:
        rows = read_rows(rows_file, sheet_name=config.import_.sheet_name)
        existing = JsonClientStore(config.store.path).list()
    except (ImportFileError, StorePersistenceError) as exc:
        logger.error("Confidence preview of %s failed: %s", rows_file, exc)
        print(json.dumps(ImportReport.failed(str(exc)).to_dict(), ensure_ascii=False, indent=2))
        return 1
    report = build_reconciler(config).reconcile(rows, existing)

    os.makedirs(out_dir, exist_ok=True)
    out_rows, out_summary = write_row_confidence(report.rows, out_dir)
    df = build_row_confidence(report.rows)
    total = len(df)
    print(
        {
            "rows_total": total,
            "would_add": report.added_count,
            "would_skip": report.skipped_count,
            "avg_confidence": round(float(df["confidence_score"].mean()), 2) if total else 0.0,
        }
    )
    print(f"Saved: {out_rows}")
    print(f"Saved: {out_summary}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
