from __future__ import annotations

import logging
from typing import List, Tuple

from .models import ImportRow
from .normalization import is_valid_email, is_valid_phone, looks_like_email

logger = logging.getLogger(__name__)


class RowValidator:
    """Blank out unusable contact values on an extracted row.

    Every cleared value leaves a diagnostic on the row. Rows are never rejected
    here; duplicate detection is the only thing that drops a row.
    """

    def validate(self, row: ImportRow) -> Tuple[ImportRow, List[str]]:
        self._validate_email(row)
        self._validate_phone(row)
        if row.diagnostics:
            logger.debug("Row %s diagnostics: %s", row.row_number, "; ".join(row.diagnostics))
        return row, row.diagnostics

    @staticmethod
    def _validate_email(row: ImportRow) -> None:
        value = (row.email or "").strip()
        if value and not is_valid_email(value):
            row.warn(f"Invalid email format '{value}'")
            value = ""
        row.email = value

    @staticmethod
    def _validate_phone(row: ImportRow) -> None:
        value = (row.phone or "").strip()
        if value and not is_valid_phone(value):
            if looks_like_email(value):
                row.warn(f"Phone value '{value}' looks like an email address; cleared")
            else:
                row.warn(f"Invalid phone format '{value}'")
            value = ""
        row.phone = value
