"""Tests for server actions and the ActionResult envelope."""

from unittest.mock import MagicMock

import pytest

from entity_links.actions import ActionErrorCode, ActionResult, Actions, StaticAuth
from entity_links.backend import Backend
from entity_links.backends import LocalBackend
from entity_links.errors import DatabaseError
from entity_links.models import (
    EVIDENCE_TABLE,
    LINKS_TABLE,
    EntityRef,
    EntityType,
    PendingEvidence,
    PendingFeedback,
)
from entity_links.pending import PendingBuffer
from entity_links.relationships import RelationshipManager
from entity_links.slots import HYPOTHESIS_SLOTS, LOG_ENTRY_SLOTS, SPECIMEN_SLOTS
from entity_links.stages import JourneyStages, StageTouchpoints

BMC = EntityType.BUSINESS_MODEL_CANVAS
VPC = EntityType.VALUE_PROPOSITION_CANVAS


@pytest.fixture
def backend() -> LocalBackend:
    """Create an in-memory backend with a canvas, a log entry and a journey."""
    backend = LocalBackend()
    backend.insert("business_model_canvases", [{"id": "bmc1", "name": "Core", "slug": "core"}])
    backend.insert("log_entries", [{"id": "l1", "title": "Week 1"}])
    backend.insert("user_journeys", [{"id": "j1", "name": "Onboarding"}])
    return backend


@pytest.fixture
def revalidate() -> MagicMock:
    return MagicMock()


@pytest.fixture
def actions(backend: LocalBackend, revalidate: MagicMock) -> Actions:
    """Create actions for an authenticated user."""
    return Actions(backend, StaticAuth("ada"), revalidate=revalidate)


def test_result_envelope() -> None:
    """Test success and failure serialise to their two shapes."""
    assert ActionResult.ok().to_dict() == {"success": True}
    assert ActionResult.ok({"id": "x"}, warnings=["careful"]).to_dict() == {
        "success": True,
        "data": {"id": "x"},
        "warnings": ["careful"],
    }
    assert ActionResult.fail("Nope", ActionErrorCode.NOT_FOUND).to_dict() == {
        "success": False,
        "error": "Nope",
        "code": "NOT_FOUND",
    }


def test_unauthenticated_action_makes_no_calls() -> None:
    """Test the auth gate runs before any backend access."""
    backend = MagicMock(spec=Backend)
    actions = Actions(backend, StaticAuth(None))

    result = actions.sync_links(EntityRef(BMC, "bmc1"), VPC, "related", ["v1"])

    assert result.code is ActionErrorCode.UNAUTHORIZED
    assert backend.method_calls == []


def test_create_without_pending_links(backend: LocalBackend, revalidate: MagicMock) -> None:
    """Test creating with an empty buffer writes only the entity."""
    spy = MagicMock(wraps=backend)
    actions = Actions(spy, StaticAuth("ada"), revalidate=revalidate)

    result = actions.create_entity(EntityType.ASSUMPTION, {"statement": "Teams will pay"}, PendingBuffer())

    assert result.success
    assert result.warnings == []
    spy.insert.assert_called_once()
    assert spy.insert.call_args[0][0] == "assumptions"
    assert all(call.args[0] != LINKS_TABLE for call in spy.select.call_args_list)
    assert backend.count(LINKS_TABLE) == 0
    revalidate.assert_any_call(f"/admin/assumptions/{result.data['id']}")


def test_create_flushes_pending(actions: Actions, backend: LocalBackend) -> None:
    """Test pending links and evidence are written with the new id."""
    pending = PendingBuffer()
    pending.add_link(EntityType.ASSUMPTION, "a1", "Teams will pay", "tests")
    pending.add_evidence(PendingEvidence("interview"))

    result = actions.create_entity(EntityType.HYPOTHESIS, {"statement": "Annual plans convert"}, pending)

    assert result.success
    hypothesis_id = result.data["id"]
    assert backend.select_one(LINKS_TABLE, eq={"source_id": hypothesis_id})["target_id"] == "a1"
    assert backend.count(EVIDENCE_TABLE, eq={"entity_id": hypothesis_id}) == 1


def test_create_flushes_inbound_slots(actions: Actions, backend: LocalBackend) -> None:
    """Test links buffered in inbound slots are stored with the new entity as target."""
    backend.insert("studio_experiments", [{"id": "e1", "title": "Pricing page test"}])
    backend.insert("ventures", [{"id": "v1", "name": "Studio"}])

    pending = PendingBuffer()
    RelationshipManager(backend, EntityRef(EntityType.HYPOTHESIS), HYPOTHESIS_SLOTS, pending=pending).add(
        HYPOTHESIS_SLOTS[1], "e1"
    )
    result = actions.create_entity(EntityType.HYPOTHESIS, {"statement": "Annual plans convert"}, pending)

    assert result.success
    assert result.warnings == []
    link = backend.select_one(LINKS_TABLE, eq={"target_id": result.data["id"]})
    assert (link["source_type"], link["source_id"], link["link_type"]) == ("experiment", "e1", "tests")

    pending = PendingBuffer()
    RelationshipManager(backend, EntityRef(EntityType.SPECIMEN), SPECIMEN_SLOTS, pending=pending).add(
        SPECIMEN_SLOTS[0], "v1"
    )
    result = actions.create_entity(EntityType.SPECIMEN, {"title": "Hero"}, pending)

    assert result.warnings == []
    link = backend.select_one(LINKS_TABLE, eq={"target_id": result.data["id"]})
    assert (link["source_type"], link["source_id"], link["link_type"]) == ("project", "v1", "contains")


def test_create_partial_failure_keeps_entity(backend: LocalBackend) -> None:
    """Test a failed link sync leaves the entity and returns a warning."""
    spy = MagicMock(wraps=backend)

    def insert(table: str, rows: list) -> list:
        if table == LINKS_TABLE:
            raise DatabaseError("timeout", code="57014")
        return backend.insert(table, rows)

    spy.insert.side_effect = insert
    pending = PendingBuffer()
    pending.add_link(EntityType.HYPOTHESIS, "h1", "H1", "tested_by")

    result = Actions(spy, StaticAuth("ada")).create_entity(EntityType.ASSUMPTION, {"statement": "x"}, pending)

    assert result.success
    assert result.warnings == [
        "Assumption created, but failed to link hypothesis (tested_by). You can link them manually."
    ]
    assert backend.select_one("assumptions", eq={"id": result.data["id"]}) is not None


def test_create_duplicate_slug(actions: Actions) -> None:
    """Test a slug collision gets a readable message."""
    result = actions.create_entity(BMC, {"name": "Copy", "slug": "core"})

    assert not result.success
    assert result.code is ActionErrorCode.DATABASE_ERROR
    assert result.error == "Slug already in use"


def test_create_unknown_type(actions: Actions) -> None:
    """Test an unknown entity type is a validation error."""
    result = actions.create_entity("spaceship", {})
    assert result.code is ActionErrorCode.VALIDATION_ERROR


def test_sync_links(actions: Actions, backend: LocalBackend, revalidate: MagicMock) -> None:
    """Test syncing through an action returns the diff and revalidates the entity."""
    result = actions.sync_links(EntityRef(BMC, "bmc1"), VPC, "related", ["v1", "v2"])

    assert result.success
    assert result.data == {"added": ["v1", "v2"], "removed": []}
    revalidate.assert_any_call("/admin/canvases/business-models/bmc1")
    assert backend.count(LINKS_TABLE) == 2


def test_sync_links_access_denied(actions: Actions) -> None:
    """Test syncing for an entity that cannot be read is refused."""
    result = actions.sync_links(EntityRef(BMC, "other"), VPC, "related", ["v1"])

    assert result.code is ActionErrorCode.ACCESS_DENIED
    assert result.error == "Business model canvas not found or access denied"


def test_sync_links_without_id_makes_no_calls() -> None:
    """Test a missing id fails validation before any backend call."""
    backend = MagicMock(spec=Backend)
    result = Actions(backend, StaticAuth("ada")).sync_links(EntityRef(BMC), VPC, "related", ["v1"])

    assert result.code is ActionErrorCode.VALIDATION_ERROR
    assert backend.method_calls == []


def test_sync_links_invalid_type(actions: Actions) -> None:
    """Test an invalid link type is a validation error."""
    result = actions.sync_links(EntityRef(BMC, "bmc1"), VPC, "tests", ["v1"])
    assert result.code is ActionErrorCode.VALIDATION_ERROR
    assert "Invalid link type" in result.error


def test_sync_links_database_error(backend: LocalBackend) -> None:
    """Test store failures are reported generically."""
    spy = MagicMock(wraps=backend)

    def select(table: str, *args, **kwargs) -> list:
        if table == LINKS_TABLE:
            raise DatabaseError("connection refused", code="08001")
        return backend.select(table, *args, **kwargs)

    spy.select.side_effect = select
    result = Actions(spy, StaticAuth("ada")).sync_links(EntityRef(BMC, "bmc1"), VPC, "related", ["v1"])

    assert result.code is ActionErrorCode.DATABASE_ERROR
    assert result.error == "Failed to sync links"


def test_sync_links_as_target(actions: Actions, backend: LocalBackend) -> None:
    """Test the mirror sync through an action."""
    backend.insert("studio_hypotheses", [{"id": "h1", "statement": "x"}])
    result = actions.sync_links_as_target(EntityRef(EntityType.HYPOTHESIS, "h1"), EntityType.EXPERIMENT, "tests", ["e1"])
    assert result.success
    assert backend.select_one(LINKS_TABLE, eq={"target_id": "h1"})["source_id"] == "e1"


def test_revalidation_failure_does_not_fail_action(backend: LocalBackend) -> None:
    """Test revalidation errors are logged and ignored."""
    revalidate = MagicMock(side_effect=RuntimeError("cache offline"))
    result = Actions(backend, StaticAuth("ada"), revalidate=revalidate).sync_links(
        EntityRef(BMC, "bmc1"), VPC, "related", ["v1"]
    )
    assert result.success


def test_relationship_actions(actions: Actions, backend: LocalBackend) -> None:
    """Test adding, reordering and removing through a slot."""
    slot = LOG_ENTRY_SLOTS[0]
    log = EntityRef(EntityType.LOG_ENTRY, "l1")
    for specimen_id in ("s1", "s2"):
        assert actions.add_relationship(log, slot, specimen_id).success

    assert actions.reorder_relationship(log, slot, ["s2", "s1"]).success
    rows = backend.select(LINKS_TABLE, eq={"source_id": "l1"}, order_by="position")
    assert [row["target_id"] for row in rows] == ["s2", "s1"]

    bad = actions.reorder_relationship(log, slot, ["s2"])
    assert bad.code is ActionErrorCode.VALIDATION_ERROR

    assert actions.remove_relationship(log, slot, "s2").data == {"added": [], "removed": ["s2"]}


def test_add_evidence_and_feedback(actions: Actions) -> None:
    """Test annotation actions validate input."""
    canvas = EntityRef(BMC, "bmc1")
    assert actions.add_evidence(canvas, PendingEvidence("interview", confidence=0.6)).success
    assert actions.add_feedback(canvas, PendingFeedback("green", "team_discussion")).success

    result = actions.add_evidence(canvas, PendingEvidence("rumour"))
    assert result.code is ActionErrorCode.VALIDATION_ERROR


def test_delete_entity(actions: Actions, backend: LocalBackend) -> None:
    """Test deleting removes the entity and its links."""
    actions.sync_links(EntityRef(BMC, "bmc1"), VPC, "related", ["v1"])

    assert actions.delete_entity(EntityRef(BMC, "bmc1")).success
    assert backend.count(LINKS_TABLE) == 0
    assert actions.delete_entity(EntityRef(BMC, "bmc1")).code is ActionErrorCode.ACCESS_DENIED


def test_reorder_stages_actions(actions: Actions, backend: LocalBackend, revalidate: MagicMock) -> None:
    """Test stage reorder and move results."""
    stages = JourneyStages(backend)
    ids = [stages.create("j1", name).id for name in ("Awareness", "Research", "Purchase", "Onboarding")]

    assert actions.reorder_stages("j1", [ids[2], ids[0], ids[1], ids[3]]).success
    revalidate.assert_any_call("/admin/journeys/j1/canvas")

    result = actions.move_stage(ids[2], "left")
    assert result.code is ActionErrorCode.VALIDATION_ERROR
    assert result.error == "Cannot move stage left"

    result = actions.reorder_stages("j1", ids[:3])
    assert result.code is ActionErrorCode.VALIDATION_ERROR
    assert result.error == "Some stages do not belong to this journey"

    assert actions.move_stage(ids[0], "right").success
    assert [s.name for s in stages.list_for("j1")] == ["Purchase", "Research", "Awareness", "Onboarding"]


def test_reorder_stages_unknown_journey(actions: Actions) -> None:
    """Test reordering a journey that cannot be read is refused."""
    assert actions.reorder_stages("missing", ["s1"]).code is ActionErrorCode.ACCESS_DENIED


def test_move_unknown_stage(actions: Actions) -> None:
    """Test moving a missing stage is NOT_FOUND."""
    result = actions.move_stage("missing", "left")
    assert result.code is ActionErrorCode.NOT_FOUND


def test_touchpoint_actions(actions: Actions, backend: LocalBackend) -> None:
    """Test touchpoint reorder and move results."""
    stage = JourneyStages(backend).create("j1", "Research")
    touchpoints = StageTouchpoints(backend)
    ids = [touchpoints.create(stage.id, name).id for name in ("Search", "Reviews")]

    assert actions.reorder_touchpoints(stage.id, [ids[1], ids[0]]).success
    assert actions.move_touchpoint(ids[0], "up").success
    assert [t.name for t in touchpoints.list_for(stage.id)] == ["Search", "Reviews"]

    result = actions.reorder_touchpoints(stage.id, [ids[0]])
    assert result.error == "Some touchpoints do not belong to this stage"
