from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Optional

from .common import load_config, read_rows
from .confidence_report import write_row_confidence
from .errors import ImportFileError, StorePersistenceError
from .logging_utils import configure_logging
from .merge import group_duplicates
from .models import ImportReport
from .reconciler import ImportReconciler, build_reconciler
from .store import ClientStore, JsonClientStore

logger = logging.getLogger(__name__)


def import_into_store(
    store: ClientStore,
    rows: Any,
    reconciler: Optional[ImportReconciler] = None,
    dry_run: bool = False,
) -> ImportReport:
    """Reconcile rows against the latest store snapshot and save the merge in one write.

    A failed read or write yields a fatal report with zero counts; nothing is
    partially applied.
    """
    reconciler = reconciler or ImportReconciler()
    try:
        existing = store.list()
    except StorePersistenceError as exc:
        logger.error("Unable to load clients before import: %s", exc)
        return ImportReport.failed(f"Failed to load existing clients: {exc}")

    report = reconciler.reconcile(rows, existing)
    if report.fatal or not report.added or dry_run:
        return report

    try:
        store.upsert_all(report.merged_store)
    except (StorePersistenceError, OSError) as exc:
        logger.error("Import of %d client(s) not saved: %s", report.added_count, exc)
        return ImportReport.failed(f"Failed to save imported clients: {exc}")
    return report


def import_file(
    path: str,
    store: ClientStore,
    reconciler: Optional[ImportReconciler] = None,
    sheet_name: Any = 0,
    dry_run: bool = False,
) -> ImportReport:
    try:
        rows = read_rows(path, sheet_name=sheet_name)
    except ImportFileError as exc:
        logger.error("Import of %s failed: %s", path, exc)
        return ImportReport.failed(str(exc))
    return import_into_store(store, rows, reconciler=reconciler, dry_run=dry_run)


def _write_outputs(report: ImportReport, out_dir: Path) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / "import_report.json"
    with open(report_path, "w", encoding="utf-8") as handle:
        json.dump(report.to_dict(), handle, ensure_ascii=False, indent=2)
    logger.info("Saved: %s", report_path)
    if report.rows:
        for path in write_row_confidence(report.rows, out_dir):
            logger.info("Saved: %s", path)


def main() -> int:
    parser = argparse.ArgumentParser(description="Import client rows into the client store.")
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config.")
    parser.add_argument("--rows-file", type=str, default=None, help="CSV or Excel file to import.")
    parser.add_argument("--store", type=str, default=None, help="Path to the JSON client store.")
    parser.add_argument("--sheet-name", type=str, default=None)
    parser.add_argument("--out-dir", type=str, default=None)
    parser.add_argument("--dry-run", action="store_true", help="Report without saving.")
    parser.add_argument(
        "--audit-duplicates",
        action="store_true",
        help="List stored clients that would match each other as duplicates.",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")
    args = parser.parse_args()

    config = load_config(args)
    configure_logging(config, level_override=args.log_level)
    store = JsonClientStore(config.store.path)

    if args.audit_duplicates:
        groups = group_duplicates(store.list())
        print(json.dumps([group.to_dict() for group in groups], ensure_ascii=False, indent=2))
        return 0

    rows_file = config.inputs.get("rows_file")
    if not rows_file:
        parser.error("--rows-file is required (or inputs.rows_file in the config)")

    report = import_file(
        rows_file,
        store,
        reconciler=build_reconciler(config),
        sheet_name=config.import_.sheet_name,
        dry_run=args.dry_run,
    )
    if config.outputs.dir:
        _write_outputs(report, config.outputs.dir)

    print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    return 1 if report.fatal else 0


if __name__ == "__main__":
    raise SystemExit(main())
