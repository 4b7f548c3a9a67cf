from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

_CLIENT_KEYS = {
    "id",
    "name",
    "firstName",
    "first_name",
    "lastName",
    "last_name",
    "fullName",
    "full_name",
    "preferredName",
    "preferred_name",
    "email",
    "phone",
    "dateOfBirth",
    "date_of_birth",
    "relationships",
    "documents",
    "sessions",
    "sessionFee",
    "session_fee",
    "currency",
    "notes",
}


def _text(payload: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


@dataclass(frozen=True)
class Relationship:
    related_client_id: str
    type: str = ""

    @staticmethod
    def from_mapping(payload: Dict[str, Any]) -> "Relationship":
        return Relationship(
            related_client_id=_text(payload, "relatedClientId", "related_client_id"),
            type=_text(payload, "type"),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"relatedClientId": self.related_client_id, "type": self.type}


@dataclass
class ClientRecord:
    id: str = ""
    first_name: str = ""
    last_name: str = ""
    preferred_name: str = ""
    email: str = ""
    phone: str = ""
    date_of_birth: str = ""
    relationships: List[Relationship] = field(default_factory=list)
    documents: List[Any] = field(default_factory=list)
    sessions: int = 0
    session_fee: str = ""
    currency: str = ""
    notes: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @staticmethod
    def _ensure_relationship_list(values: Sequence[Any]) -> List[Relationship]:
        return [
            value if isinstance(value, Relationship) else Relationship.from_mapping(value)
            for value in values
        ]

    @classmethod
    def from_mapping(cls, payload: Dict[str, Any]) -> "ClientRecord":
        first_name = _text(payload, "firstName", "first_name")
        last_name = _text(payload, "lastName", "last_name")
        if not (first_name or last_name):
            legacy_name = _text(payload, "name", "fullName", "full_name")
            if legacy_name:
                parts = legacy_name.split(None, 1)
                first_name = parts[0]
                last_name = parts[1] if len(parts) > 1 else ""
        try:
            sessions = int(payload.get("sessions", 0) or 0)
        except (TypeError, ValueError):
            sessions = 0
        return cls(
            id=_text(payload, "id"),
            first_name=first_name,
            last_name=last_name,
            preferred_name=_text(payload, "preferredName", "preferred_name"),
            email=_text(payload, "email"),
            phone=_text(payload, "phone"),
            date_of_birth=_text(payload, "dateOfBirth", "date_of_birth"),
            relationships=cls._ensure_relationship_list(payload.get("relationships", []) or []),
            documents=list(payload.get("documents", []) or []),
            sessions=sessions,
            session_fee=_text(payload, "sessionFee", "session_fee"),
            currency=_text(payload, "currency"),
            notes=_text(payload, "notes"),
            extra={key: value for key, value in payload.items() if key not in _CLIENT_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "id": self.id,
                "firstName": self.first_name,
                "lastName": self.last_name,
                "name": self.full_name,
                "preferredName": self.preferred_name,
                "email": self.email,
                "phone": self.phone,
                "dateOfBirth": self.date_of_birth,
                "relationships": [rel.to_dict() for rel in self.relationships],
                "documents": list(self.documents),
                "sessions": self.sessions,
                "sessionFee": self.session_fee,
                "currency": self.currency,
                "notes": self.notes,
            }
        )
        return payload

    def has_relationship_to(self, client_id: str) -> bool:
        return any(rel.related_client_id == client_id for rel in self.relationships)

    def replace(self, **changes: Any) -> "ClientRecord":
        return replace(self, **changes)


@dataclass
class ImportRow:
    """One spreadsheet line while an import is running. Never persisted."""

    row_number: int
    raw: Dict[str, str] = field(default_factory=dict)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    date_of_birth: str = ""
    preferred_name: str = ""
    session_fee: str = ""
    currency: str = ""
    notes: str = ""
    name_source: str = ""
    skipped_reason: str = ""
    diagnostics: List[str] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def warn(self, message: str) -> None:
        self.diagnostics.append(f"Row {self.row_number}: {message}")

    def to_client_record(self, client_id: str) -> ClientRecord:
        return ClientRecord(
            id=client_id,
            first_name=self.first_name,
            last_name=self.last_name,
            preferred_name=self.preferred_name,
            email=self.email,
            phone=self.phone,
            date_of_birth=self.date_of_birth,
            relationships=[],
            documents=[],
            sessions=0,
            session_fee=self.session_fee,
            currency=self.currency,
            notes=self.notes,
        )


@dataclass
class ImportReport:
    added_count: int = 0
    skipped_count: int = 0
    diagnostics: List[str] = field(default_factory=list)
    fatal: bool = False
    merged_store: List[ClientRecord] = field(default_factory=list)
    added: List[ClientRecord] = field(default_factory=list)
    rows: List[ImportRow] = field(default_factory=list)

    @classmethod
    def failed(cls, message: str) -> "ImportReport":
        return cls(fatal=True, diagnostics=[message])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "addedCount": self.added_count,
            "skippedCount": self.skipped_count,
            "diagnostics": list(self.diagnostics),
            "fatal": self.fatal,
        }


class TaskState(str, Enum):
    QUEUED = "queued"
    CURRENT = "current"
    CONFIRMED = "confirmed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ReciprocalTask:
    source_id: str
    target_id: str
    source_name: str
    target_name: str
    initial_type: str
    suggested_type: str = ""
    state: TaskState = TaskState.QUEUED
    confirmed_type: Optional[str] = None

    def with_state(self, state: TaskState, **changes: Any) -> "ReciprocalTask":
        return replace(self, state=state, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "sourceName": self.source_name,
            "targetName": self.target_name,
            "initialType": self.initial_type,
            "suggestedType": self.suggested_type,
            "state": self.state.value,
        }
