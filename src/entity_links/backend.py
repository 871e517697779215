"""Backend interface for table-scoped persistence."""

from abc import ABC, abstractmethod
from typing import Any

Row = dict[str, Any]


class Backend(ABC):
    """Abstract base class for persistence backends.

    Filters compose the way a relational client composes them: ``eq`` maps
    columns to a required value, ``in_`` maps columns to a collection of
    accepted values, and all filters are combined with AND.
    """

    @abstractmethod
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
        """Select rows matching the filters."""
        pass

    @abstractmethod
    def insert(self, table: str, rows: list[Row]) -> list[Row]:
        """Insert one or more rows in a single call and return them as stored."""
        pass

    @abstractmethod
    def update(self, table: str, values: Row, eq: dict[str, Any]) -> list[Row]:
        """Update rows matching the filters and return them."""
        pass

    @abstractmethod
    def upsert(self, table: str, rows: list[Row]) -> list[Row]:
        """Insert rows or update them by primary key."""
        pass

    @abstractmethod
    def delete(
        self,
        table: str,
        eq: dict[str, Any] | None = None,
        in_: dict[str, list[Any]] | None = None,
    ) -> int:
        """Delete rows matching the filters and return how many were removed."""
        pass

    @abstractmethod
    def count(self, table: str, eq: dict[str, Any] | None = None) -> int:
        """Count rows matching the filters."""
        pass

    @abstractmethod
    def rpc(self, function: str, params: dict[str, Any]) -> Any:
        """Call a server-side routine."""
        pass

    def select_one(self, table: str, columns: str = "*", eq: dict[str, Any] | None = None) -> Row | None:
        """Select a single row, or None if nothing matches."""
        rows = self.select(table, columns=columns, eq=eq, limit=1)
        return rows[0] if rows else None
