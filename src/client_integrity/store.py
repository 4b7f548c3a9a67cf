from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Protocol, Sequence, Union

from .errors import StorePersistenceError
from .models import ClientRecord

logger = logging.getLogger(__name__)


class ClientStore(Protocol):
    def list(self) -> List[ClientRecord]: ...

    def upsert_all(self, records: Sequence[ClientRecord]) -> None: ...


def _merge_by_id(
    existing: Iterable[ClientRecord], updates: Iterable[ClientRecord]
) -> List[ClientRecord]:
    merged: "OrderedDict[str, ClientRecord]" = OrderedDict(
        (record.id, record) for record in existing
    )
    for record in updates:
        if not record.id:
            raise StorePersistenceError("Cannot store a client record without an id")
        merged[record.id] = record
    return list(merged.values())


class InMemoryClientStore:
    """Client store held in a list. Reads and writes are copies."""

    def __init__(self, records: Iterable[ClientRecord] = ()):
        self._records: List[ClientRecord] = [copy.deepcopy(record) for record in records]

    def list(self) -> List[ClientRecord]:
        return copy.deepcopy(self._records)

    def upsert_all(self, records: Sequence[ClientRecord]) -> None:
        self._records = _merge_by_id(self._records, copy.deepcopy(list(records)))


class JsonClientStore:
    """Client store kept as one JSON array on disk, replaced atomically on each write."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read_payload(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, ValueError) as exc:
            raise StorePersistenceError(f"Unable to read client store {self.path}: {exc}") from exc
        if isinstance(payload, dict):
            payload = payload.get("clients", [])
        if not isinstance(payload, list):
            raise StorePersistenceError(f"Client store {self.path} does not hold a list of clients")
        malformed = [index for index, entry in enumerate(payload) if not isinstance(entry, dict)]
        if malformed:
            # Every entry must survive the next rewrite
            raise StorePersistenceError(
                f"Client store {self.path} has non-object entries at positions {malformed}"
            )
        return payload

    def list(self) -> List[ClientRecord]:
        return [ClientRecord.from_mapping(entry) for entry in self._read_payload()]

    def upsert_all(self, records: Sequence[ClientRecord]) -> None:
        merged = _merge_by_id(self.list(), records)
        directory = self.path.parent if str(self.path.parent) else Path(".")
        tmp_name = ""
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory, suffix=".tmp", delete=False
            ) as handle:
                tmp_name = handle.name
                payload = [record.to_dict() for record in merged]
                json.dump(payload, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorePersistenceError(f"Unable to write client store {self.path}: {exc}") from exc
        logger.info("Saved %d client(s) to %s", len(merged), self.path)
