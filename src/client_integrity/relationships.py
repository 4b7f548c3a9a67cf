from __future__ import annotations

import argparse
import json
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Mapping, Optional, Sequence, Tuple

from .common import ensure_client_record, load_config
from .errors import NoPendingTaskError
from .logging_utils import configure_logging
from .models import ClientRecord, ReciprocalTask, Relationship, TaskState
from .store import ClientStore, JsonClientStore

logger = logging.getLogger(__name__)

RECIPROCAL_TYPES: Dict[str, str] = {
    "Mum": "Daughter",
    "Mother": "Daughter",
    "Dad": "Son",
    "Father": "Son",
    "Daughter": "Mum",
    "Son": "Dad",
    "Wife": "Husband",
    "Husband": "Wife",
    "Partner": "Partner",
    "Sister": "Sister",
    "Brother": "Brother",
    "Friend": "Friend",
    "Guardian": "Ward",
    "Ward": "Guardian",
}


def _reciprocal_map(overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    mapping = dict(RECIPROCAL_TYPES)
    mapping.update(overrides or {})
    return mapping


def suggest_reciprocal_type(rel_type: str, overrides: Optional[Mapping[str, str]] = None) -> str:
    return _reciprocal_map(overrides).get(rel_type, rel_type)


def find_missing_reciprocals(
    saved: ClientRecord,
    clients: Sequence[ClientRecord],
    reciprocal_types: Optional[Mapping[str, str]] = None,
) -> List[ReciprocalTask]:
    """One task per edge of ``saved`` whose target has no edge back to ``saved``."""
    by_id = {client.id: client for client in clients}
    tasks: List[ReciprocalTask] = []
    for rel in saved.relationships:
        if not rel.related_client_id or rel.related_client_id == saved.id:
            continue
        target = by_id.get(rel.related_client_id)
        if target is None:
            logger.debug("Client %s relates to unknown client %s", saved.id, rel.related_client_id)
            continue
        if target.has_relationship_to(saved.id):
            continue
        tasks.append(
            ReciprocalTask(
                source_id=saved.id,
                target_id=target.id,
                source_name=saved.full_name,
                target_name=target.full_name,
                initial_type=rel.type,
                suggested_type=suggest_reciprocal_type(rel.type, reciprocal_types),
            )
        )
    return tasks


def find_all_missing_reciprocals(
    clients: Sequence[ClientRecord], reciprocal_types: Optional[Mapping[str, str]] = None
) -> List[ReciprocalTask]:
    tasks: List[ReciprocalTask] = []
    for client in clients:
        tasks.extend(find_missing_reciprocals(client, clients, reciprocal_types))
    return tasks


def apply_reciprocal(
    target: ClientRecord, source_id: str, rel_type: str
) -> Tuple[ClientRecord, bool]:
    """Append an edge from ``target`` to ``source_id`` unless one already exists."""
    if target.id == source_id or target.has_relationship_to(source_id):
        return target, False
    relationships = list(target.relationships) + [
        Relationship(related_client_id=source_id, type=rel_type)
    ]
    return target.replace(relationships=relationships), True


class RelationshipConsistencyQueue:
    """FIFO of reciprocal links waiting for a confirm or skip.

    Tasks move queued -> current -> confirmed | skipped, with at most one
    current task. Confirming only ever appends an edge to the target client.
    """

    def __init__(
        self, store: ClientStore, reciprocal_types: Optional[Mapping[str, str]] = None
    ):
        self.store = store
        self.reciprocal_types = dict(reciprocal_types or {})
        self._queued: Deque[ReciprocalTask] = deque()
        self._current: Optional[ReciprocalTask] = None

    def __len__(self) -> int:
        return len(self._queued) + (1 if self._current is not None else 0)

    @property
    def pending(self) -> List[ReciprocalTask]:
        return list(self._queued)

    def enqueue_from_save(
        self, saved_client: Any, clients: Optional[Sequence[ClientRecord]] = None
    ) -> List[ReciprocalTask]:
        saved = ensure_client_record(saved_client)
        snapshot = self.store.list() if clients is None else list(clients)
        snapshot = [client for client in snapshot if client.id != saved.id] + [saved]
        tasks = find_missing_reciprocals(saved, snapshot, self.reciprocal_types)
        self._queued.extend(tasks)
        if tasks:
            logger.info(
                "Queued %d reciprocal relationship(s) for %s",
                len(tasks),
                saved.full_name or saved.id,
            )
        return tasks

    def peek_current(self) -> Optional[ReciprocalTask]:
        if self._current is None and self._queued:
            self._current = self._queued.popleft().with_state(TaskState.CURRENT)
        return self._current

    def _require_current(self) -> ReciprocalTask:
        task = self.peek_current()
        if task is None:
            raise NoPendingTaskError("No reciprocal relationship is waiting for a decision")
        return task

    def confirm(self, rel_type: Optional[str] = None) -> ReciprocalTask:
        task = self._require_current()
        chosen = (rel_type or "").strip() or task.suggested_type or task.initial_type
        target = next((c for c in self.store.list() if c.id == task.target_id), None)
        if target is None:
            logger.warning(
                "Reciprocal target %s no longer exists; nothing written", task.target_id
            )
        else:
            updated, changed = apply_reciprocal(target, task.source_id, chosen)
            if changed:
                self.store.upsert_all([updated])
                logger.info(
                    "Linked %s -> %s as %s", task.target_name, task.source_name, chosen
                )
            else:
                logger.info(
                    "%s already links back to %s; nothing written",
                    task.target_name,
                    task.source_name,
                )
        self._current = None
        return task.with_state(TaskState.CONFIRMED, confirmed_type=chosen)

    def skip(self) -> ReciprocalTask:
        task = self._require_current()
        self._current = None
        logger.debug("Skipped reciprocal %s -> %s", task.target_id, task.source_id)
        return task.with_state(TaskState.SKIPPED)


def repair_relationship_types(
    clients: Sequence[ClientRecord], reciprocal_types: Optional[Mapping[str, str]] = None
) -> Tuple[List[ClientRecord], int]:
    """Rewrite edge types that disagree with their back-edge.

    For A -> B with a back-edge B -> A, if neither type is the reciprocal of the
    other, A's type becomes the reciprocal of B's. No edge is added or removed.
    """
    mapping = _reciprocal_map(reciprocal_types)
    by_id = {client.id: client for client in clients}
    repaired: List[ClientRecord] = []
    changed = 0
    for client in clients:
        relationships: List[Relationship] = []
        for rel in client.relationships:
            related = by_id.get(rel.related_client_id)
            back_edges = related.relationships if related else []
            back = next((r for r in back_edges if r.related_client_id == client.id), None)
            if back is None:
                relationships.append(rel)
                continue
            if mapping.get(rel.type, rel.type) == back.type:
                relationships.append(rel)
                continue
            back_reciprocal = mapping.get(back.type, back.type)
            if back_reciprocal == rel.type:
                relationships.append(rel)
                continue
            relationships.append(
                Relationship(related_client_id=rel.related_client_id, type=back_reciprocal)
            )
            changed += 1
        repaired.append(client.replace(relationships=relationships))
    return repaired, changed


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Check or repair relationship links between stored clients."
    )
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--store", type=str, default=None)
    parser.add_argument(
        "--repair-types",
        action="store_true",
        help="Rewrite relationship types that disagree with their reciprocal edge.",
    )
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")
    args = parser.parse_args()

    config = load_config(args)
    configure_logging(config, level_override=args.log_level)
    store = JsonClientStore(config.store.path)
    reciprocal_types = config.relationships.reciprocal_types
    clients = store.list()

    if args.repair_types:
        repaired, changed = repair_relationship_types(clients, reciprocal_types)
        if changed and not args.dry_run:
            store.upsert_all(repaired)
        print(json.dumps({"clients": len(repaired), "relationshipsFixed": changed}))
        return 0

    missing = find_all_missing_reciprocals(clients, reciprocal_types)
    print(json.dumps([task.to_dict() for task in missing], ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
