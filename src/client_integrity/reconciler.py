from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable, Collection, List, Optional, Sequence, Tuple

from .common import new_client_id
from .config_loader import PipelineConfig
from .extraction import ColumnExtractor
from .merge import DuplicateResolver, MatchSignals, describe_record
from .models import ClientRecord, ImportReport, ImportRow
from .normalization import DateNormalizer
from .validation import RowValidator

logger = logging.getLogger(__name__)

# Spreadsheet row 1 is the header, so the first data row is row 2.
HEADER_ROW_OFFSET = 2


class ImportReconciler:
    def __init__(
        self,
        extractor: Optional[ColumnExtractor] = None,
        validator: Optional[RowValidator] = None,
        resolver: Optional[DuplicateResolver] = None,
        id_factory: Callable[[Collection[str]], str] = new_client_id,
    ):
        self.extractor = extractor or ColumnExtractor()
        self.validator = validator or RowValidator()
        self.resolver = resolver or DuplicateResolver()
        self.id_factory = id_factory

    def prepare_rows(self, rows: Sequence[Mapping]) -> List[ImportRow]:
        prepared: List[ImportRow] = []
        for index, raw in enumerate(rows):
            row = self.extractor.extract(raw, row_number=index + HEADER_ROW_OFFSET)
            row, _ = self.validator.validate(row)
            prepared.append(row)
        return prepared

    def _find_duplicate(
        self,
        row: ImportRow,
        existing: Sequence[ClientRecord],
        accepted: Sequence[ImportRow],
    ) -> Optional[Tuple[Any, MatchSignals]]:
        for candidate in list(existing) + list(accepted):
            signals = self.resolver.compute(row, candidate)
            if signals.is_duplicate:
                return candidate, signals
        return None

    def reconcile(self, rows: Any, existing_store: Sequence[ClientRecord]) -> ImportReport:
        if not isinstance(rows, (list, tuple)) or not all(isinstance(r, Mapping) for r in rows):
            logger.warning("Import rejected: input is not a list of header/value rows")
            return ImportReport.failed(
                "Failed to parse file: expected spreadsheet rows of header/value pairs"
            )

        existing = list(existing_store)
        prepared = self.prepare_rows(rows)
        report = ImportReport(rows=prepared)

        taken_ids = {record.id for record in existing}
        accepted: List[ImportRow] = []
        for row in prepared:
            report.diagnostics.extend(row.diagnostics)
            match = self._find_duplicate(row, existing, accepted)
            if match is not None:
                other, signals = match
                row.skipped_reason = (
                    f"duplicate of {describe_record(other)} (matched on: {signals.describe()})"
                )
                report.skipped_count += 1
                report.diagnostics.append(f"Row {row.row_number}: Skipped {row.skipped_reason}")
                logger.debug("Row %s skipped: %s", row.row_number, row.skipped_reason)
                continue
            client_id = self.id_factory(taken_ids)
            taken_ids.add(client_id)
            accepted.append(row)
            report.added.append(row.to_client_record(client_id))
            report.added_count += 1

        report.merged_store = existing + report.added
        logger.info(
            "Import reconciled %d row(s): %d added, %d skipped, %d diagnostic(s)",
            len(prepared),
            report.added_count,
            report.skipped_count,
            len(report.diagnostics),
        )
        return report


def build_reconciler(config: PipelineConfig) -> ImportReconciler:
    date_normalizer = DateNormalizer(
        fallback_year_min=config.import_.fallback_year_min,
        fallback_year_max=config.import_.fallback_year_max,
    )
    extractor = ColumnExtractor(
        header_variants=config.import_.header_variants, date_normalizer=date_normalizer
    )
    return ImportReconciler(extractor=extractor)

