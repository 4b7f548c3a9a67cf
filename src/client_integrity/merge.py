from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .models import ClientRecord, ImportRow
from .normalization import normalize_email_key, normalize_name_key

TIER_EMAIL = "email"
TIER_NAME_DOB = "name+dob"
TIER_NAME = "name"


@dataclass
class MatchSignals:
    matched: List[str] = field(default_factory=list)

    @property
    def is_duplicate(self) -> bool:
        return bool(self.matched)

    def describe(self) -> str:
        return ", ".join(self.matched)


def _fields(record: Any) -> Dict[str, str]:
    return {
        "email": normalize_email_key(getattr(record, "email", "")),
        "first": normalize_name_key(getattr(record, "first_name", "")),
        "last": normalize_name_key(getattr(record, "last_name", "")),
        "dob": (getattr(record, "date_of_birth", "") or "").strip(),
    }


class DuplicateResolver:
    """Three-tier duplicate policy; any tier matching makes two records the same client.

    1. email: both non-empty and equal ignoring case.
    2. name+dob: both have a date of birth, first and last names equal, same date.
    3. name: first and last names equal and non-empty, regardless of email or date.

    Tier 3 accepts that two distinct people with the same name will collide.
    """

    def compute(self, a: Any, b: Any) -> MatchSignals:
        left, right = _fields(a), _fields(b)
        signals = MatchSignals()

        if left["email"] and left["email"] == right["email"]:
            signals.matched.append(TIER_EMAIL)

        same_first = left["first"] == right["first"]
        same_last = left["last"] == right["last"]
        same_dob = bool(left["dob"]) and left["dob"] == right["dob"]
        if same_dob and same_first and same_last:
            signals.matched.append(TIER_NAME_DOB)

        if left["first"] and left["last"] and same_first and same_last:
            signals.matched.append(TIER_NAME)

        return signals

    def is_duplicate(self, a: Any, b: Any) -> bool:
        return self.compute(a, b).is_duplicate


@dataclass
class DuplicateGroup:
    keep: ClientRecord
    duplicates: List[ClientRecord] = field(default_factory=list)
    matched: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keep": {"id": self.keep.id, "name": self.keep.full_name},
            "duplicates": [{"id": c.id, "name": c.full_name} for c in self.duplicates],
            "matchedOn": list(self.matched),
        }


def group_duplicates(
    clients: Sequence[ClientRecord], resolver: Optional[DuplicateResolver] = None
) -> List[DuplicateGroup]:
    """Group stored clients the resolver treats as one person; the earliest heads each group."""
    resolver = resolver or DuplicateResolver()
    groups: List[DuplicateGroup] = []
    for client in clients:
        for group in groups:
            signals = resolver.compute(group.keep, client)
            if signals.is_duplicate:
                group.duplicates.append(client)
                for tier in signals.matched:
                    if tier not in group.matched:
                        group.matched.append(tier)
                break
        else:
            groups.append(DuplicateGroup(keep=client))
    return [group for group in groups if group.duplicates]


def describe_record(record: Any) -> str:
    if isinstance(record, ImportRow):
        return f"row {record.row_number}"
    name = getattr(record, "full_name", "") or getattr(record, "id", "")
    return f"existing client '{name}'"
