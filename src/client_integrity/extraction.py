from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import ImportRow
from .normalization import (
    DateNormalizer,
    guess_name_from_email_local,
    is_valid_email,
    is_valid_phone,
    looks_like_email,
    normalize_text_key,
    safe_get,
    split_full_name,
)

logger = logging.getLogger(__name__)

# Header spellings accepted per field, in lookup priority order.
HEADER_VARIANTS: "OrderedDict[str, List[str]]" = OrderedDict(
    [
        ("first_name", ["first name", "firstname", "first", "given name", "forename"]),
        ("last_name", ["last name", "lastname", "last", "surname", "family name"]),
        ("name", ["name", "full name", "client name"]),
        ("email", ["email", "e-mail", "email address"]),
        ("phone", ["phone", "phone number", "telephone", "mobile", "mobile number", "tel"]),
        ("date_of_birth", ["date of birth", "dob", "birth date", "birthdate", "birthday"]),
        ("preferred_name", ["preferred name", "nickname", "known as"]),
        ("session_fee", ["session fee", "fee"]),
        ("currency", ["currency"]),
        ("notes", ["notes", "note"]),
    ]
)

PASS_THROUGH_FIELDS = ("preferred_name", "session_fee", "currency", "notes")


def merge_header_variants(
    overrides: Optional[Mapping[str, Iterable[str]]] = None,
) -> "OrderedDict[str, List[str]]":
    merged: "OrderedDict[str, List[str]]" = OrderedDict(
        (field_name, list(variants)) for field_name, variants in HEADER_VARIANTS.items()
    )
    for field_name, extra in (overrides or {}).items():
        if field_name not in merged:
            logger.warning("Ignoring header variants for unknown field: %s", field_name)
            continue
        for variant in extra or []:
            key = normalize_text_key(variant)
            if key and key not in merged[field_name]:
                merged[field_name].append(key)
    return merged


class ColumnExtractor:
    def __init__(
        self,
        header_variants: Optional[Mapping[str, Iterable[str]]] = None,
        date_normalizer: Optional[DateNormalizer] = None,
    ):
        self.header_variants = merge_header_variants(header_variants)
        self.date_normalizer = date_normalizer or DateNormalizer()

    def find_header(self, headers: Mapping[str, str], field_name: str) -> Optional[str]:
        for variant in self.header_variants.get(field_name, []):
            header = headers.get(variant)
            if header is not None:
                return header
        return None

    def extract(self, raw: Mapping[str, Any], row_number: int) -> ImportRow:
        headers: Dict[str, str] = {}
        for header in raw.keys():
            headers.setdefault(normalize_text_key(str(header)), header)

        def value_of(field_name: str) -> str:
            header = self.find_header(headers, field_name)
            return safe_get(raw, header) if header is not None else ""

        row = ImportRow(row_number=row_number, raw={str(k): safe_get(raw, k) for k in raw.keys()})
        row.email = value_of("email")
        row.phone = value_of("phone")
        for field_name in PASS_THROUGH_FIELDS:
            setattr(row, field_name, value_of(field_name))

        has_split_name = (
            self.find_header(headers, "first_name") is not None
            or self.find_header(headers, "last_name") is not None
        )
        name_value = value_of("name")
        if has_split_name:
            row.first_name = value_of("first_name")
            row.last_name = value_of("last_name")
            row.name_source = "columns"
        elif self.find_header(headers, "name") is not None:
            if not looks_like_email(row.email) and looks_like_email(row.phone):
                self._repair_shifted_columns(row, name_value)
            else:
                row.first_name, row.last_name = split_full_name(name_value)
                row.name_source = "name_column"
        if not (row.first_name or row.last_name) and name_value:
            row.first_name, row.last_name = split_full_name(name_value)
            row.name_source = "name_column"

        self._extract_date_of_birth(row, value_of("date_of_birth"))

        if not (row.first_name or row.last_name):
            self._fallback_name(row)
        return row

    @staticmethod
    def _repair_shifted_columns(row: ImportRow, name_value: str) -> None:
        shifted_last, shifted_email = row.email, row.phone
        row.first_name = name_value
        row.last_name = shifted_last
        row.email = shifted_email
        row.phone = ""
        row.name_source = "misaligned"
        row.warn(
            "Columns appear shifted (email found in Phone column); "
            f"using '{shifted_last}' as last name and '{shifted_email}' as email"
        )
        logger.debug("Repaired shifted columns on row %s", row.row_number)

    def _extract_date_of_birth(self, row: ImportRow, raw_dob: str) -> None:
        if not raw_dob:
            return
        result = self.date_normalizer.normalize(raw_dob)
        if isinstance(result, str):
            row.date_of_birth = result
        else:
            row.date_of_birth = ""
            row.warn(f"Invalid date format '{raw_dob}'")

    @staticmethod
    def _fallback_name(row: ImportRow) -> None:
        if is_valid_email(row.email):
            local = row.email.strip().split("@", 1)[0]
            row.first_name, row.last_name = guess_name_from_email_local(local)
            if row.first_name or row.last_name:
                row.name_source = "email"
                row.warn(f"No name found; derived name '{row.full_name}' from email")
                return
        if is_valid_phone(row.phone):
            row.first_name, row.last_name = "Client", row.phone.strip()
            row.name_source = "phone"
            row.warn(f"No name found; using '{row.full_name}'")
            return
        row.first_name, row.last_name = "Client", str(row.row_number)
        row.name_source = "row"
        row.warn(f"No name found; using '{row.full_name}'")
