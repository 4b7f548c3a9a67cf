from __future__ import annotations

import uuid
from typing import Any, Collection

from .config_loader import PipelineConfig, load_pipeline_config
from .errors import (
    ClientIntegrityError,
    ImportFileError,
    NoPendingTaskError,
    StorePersistenceError,
)
from .merge import DuplicateResolver, MatchSignals
from .models import ClientRecord, ImportReport, ImportRow, ReciprocalTask, Relationship, TaskState
from .normalization import (
    DateNormalizer,
    DateParseFailure,
    guess_name_from_email_local,
    is_valid_email,
    is_valid_phone,
    looks_like_email,
    normalize_date,
    normalize_email_key,
    normalize_name_key,
    normalize_text_key,
    read_rows,
    safe_get,
    split_full_name,
    warn_missing,
)
from .store import ClientStore, InMemoryClientStore, JsonClientStore

__all__ = [
    "ClientIntegrityError",
    "ClientRecord",
    "ClientStore",
    "DateNormalizer",
    "DateParseFailure",
    "DuplicateResolver",
    "ImportFileError",
    "ImportReport",
    "ImportRow",
    "InMemoryClientStore",
    "JsonClientStore",
    "MatchSignals",
    "NoPendingTaskError",
    "PipelineConfig",
    "ReciprocalTask",
    "Relationship",
    "StorePersistenceError",
    "TaskState",
    "ensure_client_record",
    "guess_name_from_email_local",
    "is_valid_email",
    "is_valid_phone",
    "load_config",
    "looks_like_email",
    "new_client_id",
    "normalize_date",
    "normalize_email_key",
    "normalize_name_key",
    "normalize_text_key",
    "read_rows",
    "safe_get",
    "split_full_name",
    "warn_missing",
]


def new_client_id(taken: Collection[str] = ()) -> str:
    while True:
        candidate = uuid.uuid4().hex
        if candidate not in taken:
            return candidate


def load_config(args: Any) -> PipelineConfig:
    return load_pipeline_config(args)


def ensure_client_record(obj: Any) -> ClientRecord:
    if isinstance(obj, ClientRecord):
        return obj
    if isinstance(obj, dict):
        return ClientRecord.from_mapping(obj)
    raise TypeError(f"Unsupported client payload type: {type(obj)!r}")
