"""Ordering of journey stages and their touchpoints.

Every write of a new order goes through one server-side routine that takes
the parent id and the complete ordered id list, and rejects lists that are
not a permutation of the current siblings.
"""

from typing import Any

import structlog

from entity_links.backend import Backend, Row
from entity_links.errors import NotFoundError, ValidationError
from entity_links.models import STAGES_TABLE, TOUCHPOINTS_TABLE, Stage, Touchpoint
from entity_links.validation import validate_required_text

logger = structlog.get_logger()

DIRECTIONS = {"left": -1, "up": -1, "right": 1, "down": 1}


class SequencedChildren:
    """Children of a parent row ordered by an integer ``sequence`` column."""

    table: str
    parent_column: str
    reorder_function: str
    reorder_ids_param: str
    reorder_parent_param: str
    resequence_function: str
    model: Any
    name: str

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def list_for(self, parent_id: str) -> Any:
        rows = self.backend.select(self.table, eq={self.parent_column: parent_id}, order_by="sequence")
        return [self.model.from_row(row) for row in rows]

    def get(self, child_id: str) -> Any:
        row = self.backend.select_one(self.table, eq={"id": child_id})
        if row is None:
            raise NotFoundError(f"{self.name.capitalize()} {child_id} not found")
        return self.model.from_row(row)

    def create(self, parent_id: str, name: str, **fields: Any) -> Any:
        """Append a child after the current last sibling."""
        name = validate_required_text(name, "name")
        last = self.backend.select(
            self.table,
            columns="sequence",
            eq={self.parent_column: parent_id},
            order_by="sequence",
            ascending=False,
            limit=1,
        )
        sequence = (last[0]["sequence"] + 1) if last and last[0].get("sequence") is not None else 0
        logger.info(f"Creating {self.name}", parent_id=parent_id, sequence=sequence)
        row: Row = {**fields, self.parent_column: parent_id, "name": name, "sequence": sequence}
        return self.model.from_row(self.backend.insert(self.table, [row])[0])

    def delete(self, child_id: str) -> None:
        """Delete a child and close the gap it leaves."""
        child = self.get(child_id)
        logger.info(f"Deleting {self.name}", child_id=child_id)
        self.backend.delete(self.table, eq={"id": child_id})
        self.resequence(getattr(child, self.parent_column))

    def reorder(self, parent_id: str, ordered_ids: list[str]) -> None:
        """Apply an explicit full order atomically.

        Raises:
            DatabaseError: If the ids are not exactly the current siblings (nothing is written)
        """
        if not ordered_ids:
            return
        logger.info(f"Reordering {self.name}s", parent_id=parent_id, count=len(ordered_ids))
        self.backend.rpc(
            self.reorder_function,
            {self.reorder_parent_param: parent_id, self.reorder_ids_param: list(ordered_ids)},
        )

    def move(self, child_id: str, direction: str) -> list[str]:
        """Swap a child with its neighbour and reorder through the same routine.

        Returns:
            The new ordered id list

        Raises:
            ValidationError: If the direction is unknown or the move leaves the list
        """
        if direction not in DIRECTIONS:
            raise ValidationError(f"Unknown direction '{direction}'", field="direction")
        child = self.get(child_id)
        parent_id = getattr(child, self.parent_column)
        rows = self.backend.select(
            self.table, columns="id, sequence", eq={self.parent_column: parent_id}, order_by="sequence"
        )
        siblings = [str(row["id"]) for row in rows]

        current = siblings.index(child_id)
        new_index = current + DIRECTIONS[direction]
        if new_index < 0 or new_index >= len(siblings):
            raise ValidationError(f"Cannot move {self.name} {direction}", field="direction")

        siblings[current], siblings[new_index] = siblings[new_index], siblings[current]
        self.reorder(parent_id, siblings)
        return siblings

    def resequence(self, parent_id: str) -> None:
        self.backend.rpc(self.resequence_function, {self.reorder_parent_param: parent_id})


class JourneyStages(SequencedChildren):
    table = STAGES_TABLE
    parent_column = "user_journey_id"
    reorder_function = "reorder_journey_stages"
    reorder_parent_param = "p_journey_id"
    reorder_ids_param = "p_stage_ids"
    resequence_function = "resequence_journey_stages"
    model = Stage
    name = "stage"


class StageTouchpoints(SequencedChildren):
    table = TOUCHPOINTS_TABLE
    parent_column = "stage_id"
    reorder_function = "reorder_stage_touchpoints"
    reorder_parent_param = "p_stage_id"
    reorder_ids_param = "p_touchpoint_ids"
    resequence_function = "resequence_stage_touchpoints"
    model = Touchpoint
    name = "touchpoint"
