"""Local backend keeping tables in memory, optionally persisted to a YAML file."""

import copy
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
import yaml

from entity_links.backend import Backend, Row
from entity_links.errors import FOREIGN_KEY_VIOLATION, RAISE_EXCEPTION, UNIQUE_VIOLATION, DatabaseError
from entity_links.models import (
    ENTITY_TABLES,
    EVIDENCE_TABLE,
    FEEDBACK_TABLE,
    LINKS_TABLE,
    STAGES_TABLE,
    TOUCHPOINTS_TABLE,
)

logger = structlog.get_logger()

LINK_UNIQUE_COLUMNS = ("source_type", "source_id", "target_type", "target_id", "link_type")

_TABLE_TYPES = {table: entity_type.value for entity_type, table in ENTITY_TABLES.items()}

# parent table -> (child table, foreign key column)
_CHILD_TABLES = {
    "user_journeys": (STAGES_TABLE, "user_journey_id"),
    STAGES_TABLE: (TOUCHPOINTS_TABLE, "stage_id"),
}
_PARENT_TABLES = {child: (parent, column) for parent, (child, column) in _CHILD_TABLES.items()}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(row: Row, eq: dict[str, Any] | None, in_: dict[str, list[Any]] | None) -> bool:
    for column, value in (eq or {}).items():
        if row.get(column) != value:
            return False
    for column, values in (in_ or {}).items():
        if row.get(column) not in values:
            return False
    return True


def _project(row: Row, columns: str) -> Row:
    if columns.strip() == "*":
        return copy.deepcopy(row)
    names = [c.strip() for c in columns.split(",") if c.strip()]
    return {name: copy.deepcopy(row.get(name)) for name in names}


class LocalBackend(Backend):
    """Backend storing every table as a list of rows.

    Mirrors the constraints of the hosted schema: entity link tuples and
    ``slug`` columns are unique, deleting an entity removes the links,
    evidence and feedback that reference it, and the reorder routines
    validate the full id set before writing anything.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        """Initialize local backend.

        Args:
            path: YAML file to load tables from and save them to (in-memory only when None)
        """
        self.path = Path(path) if path else None
        self.tables: dict[str, list[Row]] = {}
        if self.path and self.path.exists():
            self._load()
        logger.debug("Local backend initialized", path=str(self.path) if self.path else None)

    def _load(self) -> None:
        try:
            with open(self.path, "r") as f:
                self.tables = yaml.safe_load(f) or {}
            logger.debug("Local data loaded", tables=list(self.tables.keys()))
        except Exception as e:
            logger.error("Failed to load local data", path=str(self.path), error=str(e))
            raise ValueError(f"Failed to load local data from {self.path}: {e}") from e

    def _save(self) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.path, "w") as f:
                yaml.safe_dump(self.tables, f, default_flow_style=False, sort_keys=False)
        except Exception as e:
            logger.error("Failed to save local data", path=str(self.path), error=str(e))
            raise ValueError(f"Failed to save local data to {self.path}: {e}") from e

    def _table(self, table: str) -> list[Row]:
        return self.tables.setdefault(table, [])

    def _check_unique(self, table: str, candidates: list[Row], existing: list[Row]) -> None:
        """Raise a unique violation if any candidate collides with existing rows or another candidate."""
        seen_links: set[tuple] = set()
        seen_slugs: set[str] = set()
        for row in existing:
            if table == LINKS_TABLE:
                seen_links.add(tuple(row.get(c) for c in LINK_UNIQUE_COLUMNS))
            if row.get("slug"):
                seen_slugs.add(row["slug"])

        for row in candidates:
            if table == LINKS_TABLE:
                key = tuple(row.get(c) for c in LINK_UNIQUE_COLUMNS)
                if key in seen_links:
                    raise DatabaseError(
                        'duplicate key value violates unique constraint "entity_links_unique"', code=UNIQUE_VIOLATION
                    )
                seen_links.add(key)
            slug = row.get("slug")
            if slug:
                if slug in seen_slugs:
                    raise DatabaseError(
                        f'duplicate key value violates unique constraint "{table}_slug_key"', code=UNIQUE_VIOLATION
                    )
                seen_slugs.add(slug)

    def select(
        self,
        table: str,
        columns: str = "*",
        eq: dict[str, Any] | None = None,
        in_: dict[str, list[Any]] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[Row]:
        rows = [row for row in self.tables.get(table, []) if _matches(row, eq, in_)]
        if order_by:
            # Nulls sort last regardless of direction.
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=not ascending)
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        logger.debug("Local select", table=table, eq=eq, count=len(rows))
        return [_project(row, columns) for row in rows]

    def insert(self, table: str, rows: list[Row]) -> list[Row]:
        prepared = []
        for row in rows:
            new_row = copy.deepcopy(row)
            new_row.setdefault("id", str(uuid.uuid4()))
            new_row.setdefault("created_at", _now())
            prepared.append(new_row)

        if table in _PARENT_TABLES:
            parent_table, column = _PARENT_TABLES[table]
            parent_ids = {row.get("id") for row in self.tables.get(parent_table, [])}
            for row in prepared:
                if row.get(column) not in parent_ids:
                    raise DatabaseError(
                        f'insert or update on table "{table}" violates foreign key constraint on "{column}"',
                        code=FOREIGN_KEY_VIOLATION,
                    )

        existing = self._table(table)
        self._check_unique(table, prepared, existing)
        existing.extend(prepared)
        self._save()
        logger.debug("Local insert", table=table, count=len(prepared))
        return copy.deepcopy(prepared)

    def update(self, table: str, values: Row, eq: dict[str, Any]) -> list[Row]:
        rows = self._table(table)
        targets = [row for row in rows if _matches(row, eq, None)]
        if "slug" in values or table == LINKS_TABLE:
            others = [row for row in rows if not _matches(row, eq, None)]
            self._check_unique(table, [{**row, **values} for row in targets], others)

        for row in targets:
            row.update(copy.deepcopy(values))
            row["updated_at"] = _now()
        self._save()
        logger.debug("Local update", table=table, eq=eq, count=len(targets))
        return copy.deepcopy(targets)

    def upsert(self, table: str, rows: list[Row]) -> list[Row]:
        existing = {row["id"]: row for row in self._table(table) if "id" in row}
        result = []
        to_insert = []
        for row in rows:
            if row.get("id") in existing:
                existing[row["id"]].update(copy.deepcopy(row))
                result.append(copy.deepcopy(existing[row["id"]]))
            else:
                to_insert.append(row)
        if to_insert:
            result.extend(self.insert(table, to_insert))
        else:
            self._save()
        return result

    def delete(
        self,
        table: str,
        eq: dict[str, Any] | None = None,
        in_: dict[str, list[Any]] | None = None,
    ) -> int:
        rows = self._table(table)
        removed = [row for row in rows if _matches(row, eq, in_)]
        self.tables[table] = [row for row in rows if not _matches(row, eq, in_)]
        for row in removed:
            self._cascade(table, row)
        self._save()
        logger.debug("Local delete", table=table, eq=eq, in_=in_, count=len(removed))
        return len(removed)

    def _cascade(self, table: str, row: Row) -> None:
        entity_type = _TABLE_TYPES.get(table)
        row_id = row.get("id")
        if entity_type and row_id is not None:
            self.tables[LINKS_TABLE] = [
                link
                for link in self.tables.get(LINKS_TABLE, [])
                if not (link["source_type"] == entity_type and link["source_id"] == row_id)
                and not (link["target_type"] == entity_type and link["target_id"] == row_id)
            ]
            for annex in (EVIDENCE_TABLE, FEEDBACK_TABLE):
                self.tables[annex] = [
                    r
                    for r in self.tables.get(annex, [])
                    if not (r["entity_type"] == entity_type and r["entity_id"] == row_id)
                ]
        if table in _CHILD_TABLES:
            child_table, column = _CHILD_TABLES[table]
            children = [r for r in self.tables.get(child_table, []) if r.get(column) == row_id]
            self.tables[child_table] = [r for r in self.tables.get(child_table, []) if r.get(column) != row_id]
            for child in children:
                self._cascade(child_table, child)

    def count(self, table: str, eq: dict[str, Any] | None = None) -> int:
        return sum(1 for row in self.tables.get(table, []) if _matches(row, eq, None))

    def rpc(self, function: str, params: dict[str, Any]) -> Any:
        logger.debug("Local rpc", function=function, params=params)
        if function == "reorder_journey_stages":
            return self._reorder(STAGES_TABLE, "user_journey_id", params["p_journey_id"], params["p_stage_ids"])
        if function == "reorder_stage_touchpoints":
            return self._reorder(TOUCHPOINTS_TABLE, "stage_id", params["p_stage_id"], params["p_touchpoint_ids"])
        if function == "resequence_journey_stages":
            return self._resequence(STAGES_TABLE, "user_journey_id", params["p_journey_id"])
        if function == "resequence_stage_touchpoints":
            return self._resequence(TOUCHPOINTS_TABLE, "stage_id", params["p_stage_id"])
        raise DatabaseError(f"function {function} does not exist", code="42883")

    def _reorder(self, table: str, parent_column: str, parent_id: str, ordered_ids: list[str]) -> None:
        siblings = {row["id"]: row for row in self._table(table) if row.get(parent_column) == parent_id}
        if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(siblings):
            raise DatabaseError(
                f"Some ids do not belong to {parent_column} {parent_id} or are missing",
                code=RAISE_EXCEPTION,
            )
        for index, row_id in enumerate(ordered_ids):
            siblings[row_id]["sequence"] = index
        self._save()

    def _resequence(self, table: str, parent_column: str, parent_id: str) -> None:
        siblings = [row for row in self._table(table) if row.get(parent_column) == parent_id]
        siblings.sort(key=lambda r: (r.get("sequence") is None, r.get("sequence") or 0))
        for index, row in enumerate(siblings):
            row["sequence"] = index
        self._save()
