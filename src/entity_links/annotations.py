"""Shared behaviour for evidence and feedback annotations attached to entities."""

from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Any, Generic, TypeVar

import structlog

from entity_links.backend import Backend, Row
from entity_links.errors import ValidationError
from entity_links.models import EntityRef
from entity_links.observability import timed
from entity_links.validation import validate_confidence

logger = structlog.get_logger()

T = TypeVar("T")
P = TypeVar("P")

ORDER_FIELDS = ("created_at", "collected_at", "confidence")


class AnnotationManager(ABC, Generic[T, P]):
    """Polymorphic annotation rows keyed by (entity_type, entity_id).

    Subclasses set the table, the type column and the row model, and
    validate their own pending items.
    """

    table: str
    type_column: str
    model: Any
    name: str

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def _entity_filter(self, entity: EntityRef, operation: str) -> dict[str, Any]:
        return {"entity_type": entity.type.value, "entity_id": entity.require_id(operation)}

    @abstractmethod
    def validate_item(self, item: P) -> None:
        """Raise ValidationError if a pending item cannot be stored."""
        pass

    def _row(self, entity_filter: dict[str, Any], item: P) -> Row:
        """Validate an item and build its row, with confidence stored as a float."""
        self.validate_item(item)
        row = asdict(item)
        row["confidence"] = validate_confidence(row.get("confidence"))
        return {**entity_filter, **row, "tags": [], "metadata": {}}

    def add(self, entity: EntityRef, item: P) -> T:
        """Attach one annotation to a persisted entity."""
        eq = self._entity_filter(entity, f"add_{self.name}")
        row = self._row(eq, item)
        logger.info(f"Adding {self.name}", entity=str(entity))
        rows = self.backend.insert(self.table, [row])
        return self.model.from_row(rows[0])

    def get(
        self,
        entity: EntityRef,
        item_type: str | None = None,
        supports_only: bool = False,
        refutes_only: bool = False,
        order_by: str = "created_at",
        ascending: bool = False,
        extra_filters: dict[str, Any] | None = None,
    ) -> list[T]:
        """List annotations for an entity, newest first by default."""
        if order_by not in ORDER_FIELDS:
            raise ValidationError(f"Cannot order {self.name} by '{order_by}'", field="order_by")
        eq = self._entity_filter(entity, f"get_{self.name}")
        if item_type:
            eq[self.type_column] = item_type
        if supports_only:
            eq["supports"] = True
        elif refutes_only:
            eq["supports"] = False
        eq.update(extra_filters or {})

        with timed(f"get_{self.name}", entity.type.value) as timer:
            rows = timer.record(self.backend.select(self.table, eq=eq, order_by=order_by, ascending=ascending))
        return [self.model.from_row(row) for row in rows]

    def count(self, entity: EntityRef) -> int:
        return self.backend.count(self.table, eq=self._entity_filter(entity, f"count_{self.name}"))

    def _summary_rows(self, entity: EntityRef, columns: str) -> list[Row]:
        eq = self._entity_filter(entity, f"{self.name}_summary")
        with timed(f"get_{self.name}_summary", entity.type.value) as timer:
            return timer.record(self.backend.select(self.table, columns=columns, eq=eq))

    def summary(self, entity: EntityRef) -> dict[str, Any]:
        """Counts by type and by stance."""
        rows = self._summary_rows(entity, f"{self.type_column}, supports")
        by_type: dict[str, int] = {}
        supporting = refuting = 0
        for row in rows:
            by_type[row[self.type_column]] = by_type.get(row[self.type_column], 0) + 1
            if row.get("supports") is True:
                supporting += 1
            elif row.get("supports") is False:
                refuting += 1
        return {"total": len(rows), "supporting": supporting, "refuting": refuting, "by_type": by_type}

    def update(self, item_id: str, **updates: Any) -> T:
        if "entity_type" in updates or "entity_id" in updates:
            raise ValidationError(f"Cannot move {self.name} to another entity")
        if "confidence" in updates:
            updates["confidence"] = validate_confidence(updates["confidence"])
        logger.info(f"Updating {self.name}", item_id=item_id, fields=list(updates))
        rows = self.backend.update(self.table, updates, eq={"id": item_id})
        if not rows:
            raise ValidationError(f"{self.name.capitalize()} {item_id} not found", field="id")
        return self.model.from_row(rows[0])

    def delete(self, item_id: str) -> None:
        logger.info(f"Deleting {self.name}", item_id=item_id)
        self.backend.delete(self.table, eq={"id": item_id})

    def delete_all(self, entity: EntityRef) -> int:
        eq = self._entity_filter(entity, f"delete_all_{self.name}")
        logger.info(f"Deleting all {self.name}", entity=str(entity))
        return self.backend.delete(self.table, eq=eq)

    def average_confidence(self, entity: EntityRef) -> float | None:
        """Mean confidence over rows that have one, or None when no row does."""
        rows = self.backend.select(
            self.table, columns="confidence", eq=self._entity_filter(entity, f"{self.name}_confidence")
        )
        values = [row["confidence"] for row in rows if row.get("confidence") is not None]
        if not values:
            return None
        return sum(values) / len(values)

    def sync_pending(self, entity: EntityRef, items: list[P]) -> list[T]:
        """Insert every buffered item for a freshly created entity.

        No diffing: this runs once, right after the parent's first insert. All
        items are validated before the single bulk insert.

        Raises:
            MissingIdentifierError: If the entity has no id (no backend call is made)
        """
        eq = self._entity_filter(entity, f"sync_pending_{self.name}")
        if not items:
            return []
        rows = [self._row(eq, item) for item in items]
        logger.info(f"Syncing pending {self.name}", entity=str(entity), count=len(rows))
        return [self.model.from_row(row) for row in self.backend.insert(self.table, rows)]
