"""Supabase backend implementation using supabase-py."""

from typing import Any

import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from entity_links.backend import Backend, Row
from entity_links.errors import DatabaseError

logger = structlog.get_logger()


class SupabaseBackend(Backend):
    """Backend talking to a Supabase (PostgREST) project."""

    def __init__(self, url: str, key: str | None = None, client: Client | None = None) -> None:
        """Initialize Supabase backend.

        Args:
            url: Project URL
            key: Service role or anon key
            client: Pre-built client (skips create_client)
        """
        self.url = url
        if client is None:
            if not key:
                raise ValueError("Supabase key required")
            logger.debug("Initializing Supabase backend", url=url)
            client = create_client(url, key)
        self.client = client
        logger.info("Supabase backend initialized", url=url)

    def _execute(self, operation: str, table: str, query: Any) -> Any:
        try:
            return query.execute()
        except APIError as e:
            logger.error(
                "Supabase request failed",
                operation=operation,
                table=table,
                code=e.code,
                message=e.message,
                details=e.details,
            )
            raise DatabaseError(e.message or str(e), code=e.code, details=e.details) from e

    @staticmethod
    def _filter(query: Any, eq: dict[str, Any] | None, in_: dict[str, list[Any]] | None) -> Any:
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        for column, values in (in_ or {}).items():
            query = query.in_(column, list(values))
        return query

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
        query = self._filter(self.client.table(table).select(columns), eq, in_)
        if order_by:
            query = query.order(order_by, desc=not ascending)
        if limit is not None:
            query = query.limit(limit)
        response = self._execute("select", table, query)
        return response.data or []

    def insert(self, table: str, rows: list[Row]) -> list[Row]:
        logger.debug("Supabase insert", table=table, count=len(rows))
        response = self._execute("insert", table, self.client.table(table).insert(rows))
        return response.data or []

    def update(self, table: str, values: Row, eq: dict[str, Any]) -> list[Row]:
        logger.debug("Supabase update", table=table, eq=eq)
        query = self._filter(self.client.table(table).update(values), eq, None)
        response = self._execute("update", table, query)
        return response.data or []

    def upsert(self, table: str, rows: list[Row]) -> list[Row]:
        logger.debug("Supabase upsert", table=table, count=len(rows))
        response = self._execute("upsert", table, self.client.table(table).upsert(rows))
        return response.data or []

    def delete(
        self,
        table: str,
        eq: dict[str, Any] | None = None,
        in_: dict[str, list[Any]] | None = None,
    ) -> int:
        if not eq and not in_:
            raise ValueError("Refusing to delete without a filter")
        logger.debug("Supabase delete", table=table, eq=eq, in_=in_)
        query = self._filter(self.client.table(table).delete(), eq, in_)
        response = self._execute("delete", table, query)
        return len(response.data or [])

    def count(self, table: str, eq: dict[str, Any] | None = None) -> int:
        query = self._filter(self.client.table(table).select("id", count="exact"), eq, None)
        response = self._execute("count", table, query)
        return response.count or 0

    def rpc(self, function: str, params: dict[str, Any]) -> Any:
        logger.debug("Supabase rpc", function=function)
        response = self._execute("rpc", function, self.client.rpc(function, params))
        return response.data
