from __future__ import annotations

import logging
import os
import re
import unicodedata
import warnings
import zipfile
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .errors import ImportFileError

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\s+\-()]+$")

CANONICAL_DATE_FORMAT = "%Y-%m-%d"

# Tried top to bottom; the first calendar-valid parse wins, so 03/04/2020 is
# always read as US month/day.
DATE_FORMATS: List[Tuple[str, str]] = [
    ("iso", "%Y-%m-%d"),
    ("us", "%m/%d/%Y"),
    ("european", "%d/%m/%Y"),
    ("dash_dmy", "%d-%m-%Y"),
    ("dash_mdy", "%m-%d-%Y"),
    ("slash_ymd", "%Y/%m/%d"),
    ("short_month_mdy", "%b %d, %Y"),
    ("long_month_mdy", "%B %d, %Y"),
    ("short_month_dmy", "%d %b %Y"),
    ("long_month_dmy", "%d %B %Y"),
    ("short_month_ymd", "%Y %b %d"),
    ("long_month_ymd", "%Y %B %d"),
    ("dot_mdy", "%m.%d.%Y"),
    ("dot_dmy", "%d.%m.%Y"),
    ("compact", "%Y%m%d"),
]

FALLBACK_YEAR_MIN = 1900
FALLBACK_YEAR_MAX = 2100

CanonicalDate = str
DateStrategy = Callable[[str], Optional[CanonicalDate]]


@dataclass(frozen=True)
class DateParseFailure:
    raw: str
    reason: str = "unrecognized date"

    def __bool__(self) -> bool:
        return False


def _strptime_strategy(fmt: str) -> DateStrategy:
    def parse(raw: str) -> Optional[CanonicalDate]:
        try:
            return datetime.strptime(raw, fmt).strftime(CANONICAL_DATE_FORMAT)
        except ValueError:
            return None

    parse.__name__ = f"parse_{fmt}"
    return parse


def _pandas_fallback_strategy(year_min: int, year_max: int) -> DateStrategy:
    def parse(raw: str) -> Optional[CanonicalDate]:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", UserWarning)
                parsed = pd.to_datetime(raw, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
        if parsed is None or pd.isna(parsed):
            return None
        if not year_min <= parsed.year <= year_max:
            logger.debug("Fallback date parse of %r gave out-of-range year %s", raw, parsed.year)
            return None
        return parsed.strftime(CANONICAL_DATE_FORMAT)

    parse.__name__ = "parse_fallback"
    return parse


class DateNormalizer:
    def __init__(
        self,
        formats: Optional[Sequence[Tuple[str, str]]] = None,
        fallback_year_min: int = FALLBACK_YEAR_MIN,
        fallback_year_max: int = FALLBACK_YEAR_MAX,
    ):
        self.formats = list(formats if formats is not None else DATE_FORMATS)
        self.strategies: List[DateStrategy] = [_strptime_strategy(fmt) for _, fmt in self.formats]
        self.strategies.append(_pandas_fallback_strategy(fallback_year_min, fallback_year_max))

    def normalize(self, raw: Optional[str]) -> Union[CanonicalDate, DateParseFailure]:
        value = (raw or "").strip()
        if not value:
            return DateParseFailure(raw=value, reason="empty")
        for strategy in self.strategies:
            result = strategy(value)
            if result:
                return result
        return DateParseFailure(raw=value)


_DEFAULT_DATE_NORMALIZER = DateNormalizer()


def normalize_date(raw: Optional[str]) -> Union[CanonicalDate, DateParseFailure]:
    return _DEFAULT_DATE_NORMALIZER.normalize(raw)


def _norm(text: Optional[str]) -> str:
    s = (text or "").strip()
    if not s:
        return ""
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", s).lower()


def normalize_text_key(value: Optional[str]) -> str:
    return _norm(value)


def normalize_name_key(value: Optional[str]) -> str:
    # Case and outer whitespace only; accents and inner spacing are significant
    return (value or "").strip().lower()


def normalize_email_key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def looks_like_email(value: Optional[str]) -> bool:
    return "@" in (value or "")


def is_valid_email(value: Optional[str]) -> bool:
    return bool(EMAIL_RE.match((value or "").strip()))


def is_valid_phone(value: Optional[str]) -> bool:
    candidate = (value or "").strip()
    if not candidate or looks_like_email(candidate):
        return False
    return bool(PHONE_RE.match(candidate))


def split_full_name(name: Optional[str]) -> Tuple[str, str]:
    tokens = (name or "").split()
    if not tokens:
        return "", ""
    return tokens[0], " ".join(tokens[1:])


def guess_name_from_email_local(local: str) -> Tuple[str, str]:
    parts = [part for part in re.split(r"[._-]+", local) if part]
    first = parts[0].title() if parts else ""
    last = parts[1].title() if len(parts) > 1 else ""
    return first, last


def _coerce_to_string(value: Any) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def safe_get(row: Any, key: str) -> str:
    try:
        return _coerce_to_string(row.get(key, ""))
    except (AttributeError, KeyError, TypeError):
        try:
            if hasattr(row, "__contains__") and key in row:
                return _coerce_to_string(row[key])
            return ""
        except (KeyError, TypeError, AttributeError):
            return ""


def warn_missing(path: Optional[str], label: str) -> bool:
    if not path or not os.path.exists(path):
        logger.warning("%s path missing: %s", label, path)
        return True
    return False


def _frame_to_rows(df: pd.DataFrame) -> List[Dict[str, str]]:
    headers = [_coerce_to_string(column) for column in df.columns]
    rows: List[Dict[str, str]] = []
    for values in df.itertuples(index=False, name=None):
        rows.append({header: _coerce_to_string(value) for header, value in zip(headers, values)})
    return rows


def read_rows(path: str, sheet_name: Union[int, str] = 0) -> List[Dict[str, str]]:
    """Read a CSV or Excel file into header -> cell text mappings."""
    if warn_missing(path, "Import file"):
        raise ImportFileError(f"Import file not found: {path}")
    extension = os.path.splitext(path)[1].lower()
    try:
        if extension in {".csv", ".txt"}:
            df = pd.read_csv(path, dtype=str, keep_default_na=False)
        elif extension in {".xlsx", ".xlsm", ".xls"}:
            df = pd.read_excel(path, sheet_name=sheet_name, dtype=str)
        else:
            raise ImportFileError(f"Unsupported import file type '{extension or path}'")
    except pd.errors.EmptyDataError:
        logger.warning("Import file %s has no rows", path)
        return []
    except (
        pd.errors.ParserError,
        UnicodeDecodeError,
        ValueError,
        KeyError,
        OSError,
        zipfile.BadZipFile,
    ) as exc:
        raise ImportFileError(f"Failed to parse file: {exc}") from exc
    return _frame_to_rows(df)
