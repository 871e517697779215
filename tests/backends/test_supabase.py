"""Tests for the Supabase backend query building."""

from unittest.mock import MagicMock, Mock

import pytest
from postgrest.exceptions import APIError

from entity_links.backends import SupabaseBackend
from entity_links.errors import DatabaseError


@pytest.fixture
def mock_client() -> Mock:
    """Create a mock supabase client whose query builders chain."""
    return MagicMock()


@pytest.fixture
def supabase_backend(mock_client: Mock) -> SupabaseBackend:
    """Create a Supabase backend around the mock client."""
    return SupabaseBackend(url="https://example.supabase.co", client=mock_client)


def test_requires_key_without_client() -> None:
    """Test a backend cannot be built without a key or client."""
    with pytest.raises(ValueError, match="Supabase key required"):
        SupabaseBackend(url="https://example.supabase.co")


def test_creates_client(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test create_client is called with the url and key."""
    client = MagicMock()
    create = MagicMock(return_value=client)
    monkeypatch.setattr("entity_links.backends.supabase.create_client", create)

    backend = SupabaseBackend(url="https://example.supabase.co", key="service-key")

    create.assert_called_once_with("https://example.supabase.co", "service-key")
    assert backend.client is client


def test_select_builds_query(supabase_backend: SupabaseBackend, mock_client: Mock) -> None:
    """Test filters, ordering and limit are applied in order."""
    query = mock_client.table.return_value.select.return_value
    final = query.eq.return_value.in_.return_value.order.return_value.limit.return_value
    final.execute.return_value.data = [{"id": "s1"}]

    rows = supabase_backend.select(
        "journey_stages",
        columns="id, sequence",
        eq={"user_journey_id": "j1"},
        in_={"id": ("s1", "s2")},
        order_by="sequence",
        ascending=False,
        limit=5,
    )

    assert rows == [{"id": "s1"}]
    mock_client.table.assert_called_once_with("journey_stages")
    mock_client.table.return_value.select.assert_called_once_with("id, sequence")
    query.eq.assert_called_once_with("user_journey_id", "j1")
    query.eq.return_value.in_.assert_called_once_with("id", ["s1", "s2"])
    query.eq.return_value.in_.return_value.order.assert_called_once_with("sequence", desc=True)


def test_select_empty_data(supabase_backend: SupabaseBackend, mock_client: Mock) -> None:
    """Test a response without data yields an empty list."""
    mock_client.table.return_value.select.return_value.execute.return_value.data = None
    assert supabase_backend.select("evidence") == []


def test_insert_and_update(supabase_backend: SupabaseBackend, mock_client: Mock) -> None:
    """Test insert sends rows and update filters by eq."""
    table = mock_client.table.return_value
    table.insert.return_value.execute.return_value.data = [{"id": "e1"}]
    table.update.return_value.eq.return_value.execute.return_value.data = [{"id": "e1", "title": "new"}]

    assert supabase_backend.insert("evidence", [{"title": "old"}]) == [{"id": "e1"}]
    assert supabase_backend.update("evidence", {"title": "new"}, eq={"id": "e1"}) == [{"id": "e1", "title": "new"}]

    table.insert.assert_called_once_with([{"title": "old"}])
    table.update.return_value.eq.assert_called_once_with("id", "e1")


def test_delete_counts_rows(supabase_backend: SupabaseBackend, mock_client: Mock) -> None:
    """Test delete returns the number of removed rows."""
    delete = mock_client.table.return_value.delete.return_value
    delete.in_.return_value.execute.return_value.data = [{"id": "l1"}, {"id": "l2"}]

    assert supabase_backend.delete("entity_links", in_={"id": ["l1", "l2"]}) == 2


def test_delete_requires_filter(supabase_backend: SupabaseBackend, mock_client: Mock) -> None:
    """Test an unfiltered delete is refused."""
    with pytest.raises(ValueError, match="without a filter"):
        supabase_backend.delete("entity_links")
    mock_client.table.assert_not_called()


def test_count_uses_exact_count(supabase_backend: SupabaseBackend, mock_client: Mock) -> None:
    """Test count asks PostgREST for an exact count."""
    select = mock_client.table.return_value.select
    select.return_value.eq.return_value.execute.return_value.count = 3

    assert supabase_backend.count("feedback", eq={"entity_id": "a1"}) == 3
    select.assert_called_once_with("id", count="exact")


def test_rpc(supabase_backend: SupabaseBackend, mock_client: Mock) -> None:
    """Test routines are called with their parameters."""
    mock_client.rpc.return_value.execute.return_value.data = None
    params = {"p_journey_id": "j1", "p_stage_ids": ["s2", "s1"]}

    supabase_backend.rpc("reorder_journey_stages", params)

    mock_client.rpc.assert_called_once_with("reorder_journey_stages", params)


def test_api_error_becomes_database_error(supabase_backend: SupabaseBackend, mock_client: Mock) -> None:
    """Test PostgREST errors keep their Postgres code."""
    mock_client.table.return_value.insert.return_value.execute.side_effect = APIError(
        {
            "message": 'duplicate key value violates unique constraint "assumptions_slug_key"',
            "code": "23505",
            "details": "Key (slug)=(pay) already exists.",
            "hint": None,
        }
    )

    with pytest.raises(DatabaseError) as exc_info:
        supabase_backend.insert("assumptions", [{"slug": "pay"}])

    assert exc_info.value.is_unique_violation
    assert exc_info.value.details == "Key (slug)=(pay) already exists."


def test_rpc_membership_error(supabase_backend: SupabaseBackend, mock_client: Mock) -> None:
    """Test the reorder routine's raised exception is recognised."""
    mock_client.rpc.return_value.execute.side_effect = APIError(
        {"message": "Some stage ids do not belong to journey j1", "code": "P0001", "details": None, "hint": None}
    )

    with pytest.raises(DatabaseError) as exc_info:
        supabase_backend.rpc("reorder_journey_stages", {"p_journey_id": "j1", "p_stage_ids": []})

    assert exc_info.value.is_membership_violation
