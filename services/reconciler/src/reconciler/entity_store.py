"""
Keyed entity collection for the reconciler.

The store knows nothing about snapshots or events: it merges fields,
removes ids, and answers reads.  Every merge produces a new validated
model instance so readers holding an old reference see a consistent
(if stale) record.

Semantics:
  * ``upsert`` of an unknown id creates the entity from schema defaults.
  * ``remove`` of an unknown id is a no-op.
  * Re-applying identical fields leaves the store unchanged and does not
    notify listeners, which is what makes event replay idempotent.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any, Generic, TypeVar

import structlog

from sy_common.models.base import Entity

logger = structlog.get_logger()

E = TypeVar("E", bound=Entity)

ChangeListener = Callable[[str, Any], None]


class EntityStore(Generic[E]):
    """Dictionary of entities keyed by identity.

    Args:
        model: Pydantic entity class records are validated against.
        name: Store name used in logs; defaults to the model name.
    """

    def __init__(self, model: type[E], *, name: str | None = None) -> None:
        self.model = model
        self.name = name or model.__name__.lower()
        self.is_live = False
        self._entities: dict[str, E] = {}
        self._listeners: list[ChangeListener] = []

    # ── writes ──

    def upsert(self, entity_id: str, fields: Mapping[str, Any] | None = None) -> E:
        """Merge *fields* into the entity, creating it when absent.

        Raises:
            pydantic.ValidationError: If the merged record is invalid.
        """
        existing = self._entities.get(entity_id)
        base = existing.model_dump() if existing is not None else {}
        entity = self.model.model_validate({**base, **(fields or {}), "id": entity_id})
        if entity == existing:
            return existing
        self._entities[entity_id] = entity
        self._notify(entity_id, entity)
        return entity

    def remove(self, entity_id: str) -> E | None:
        """Delete *entity_id*; returns the removed entity or ``None``."""
        entity = self._entities.pop(entity_id, None)
        if entity is not None:
            self._notify(entity_id, None)
        return entity

    def replace(
        self,
        records: Mapping[str, Mapping[str, Any]],
        in_scope: Callable[[E], bool] | None = None,
    ) -> list[E]:
        """Make the entities in scope exactly the ids in *records*.

        Entities matching *in_scope* (all entities when ``None``) that are
        absent from *records* are removed; every record is then merged.
        Entities outside the scope are left untouched.

        Returns:
            The merged entities, in record order.
        """
        stale = [
            entity_id
            for entity_id, entity in self._entities.items()
            if entity_id not in records and (in_scope is None or in_scope(entity))
        ]
        for entity_id in stale:
            self.remove(entity_id)
        return [self.upsert(entity_id, fields) for entity_id, fields in records.items()]

    def clear(self) -> None:
        """Remove every entity."""
        for entity_id in list(self._entities):
            self.remove(entity_id)

    # ── reads ──

    def get(self, entity_id: str) -> E | None:
        return self._entities.get(entity_id)

    def all(self) -> list[E]:
        return list(self._entities.values())

    def filter(self, predicate: Callable[[E], bool]) -> list[E]:
        return [e for e in self._entities.values() if predicate(e)]

    def ids(self) -> list[str]:
        return list(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def __iter__(self) -> Iterator[E]:
        return iter(list(self._entities.values()))

    # ── change notification ──

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Call *listener* with ``(entity_id, entity_or_None)`` after each change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, entity_id: str, entity: E | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(entity_id, entity)
            except Exception:  # noqa: BLE001
                logger.exception("store_listener_failed", store=self.name, entity_id=entity_id)
