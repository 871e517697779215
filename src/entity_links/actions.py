"""Server actions: the boundary that turns library errors into ActionResult envelopes.

Every action checks for an authenticated user before touching the backend,
verifies the parent row exists, and invalidates cached routes after a
successful write. No exception escapes an action.
"""

import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol

import structlog

from entity_links.backend import Backend
from entity_links.errors import DatabaseError, NotFoundError
from entity_links.evidence import EvidenceManager
from entity_links.feedback import FeedbackManager
from entity_links.links import LinkManager
from entity_links.models import EntityRef, EntityType, PendingEvidence, PendingFeedback, RelationshipSlot
from entity_links.pending import PendingBuffer
from entity_links.relationships import RelationshipManager
from entity_links.stages import JourneyStages, StageTouchpoints

logger = structlog.get_logger()

ENTITY_ROUTES: dict[EntityType, str] = {
    EntityType.ASSUMPTION: "assumptions",
    EntityType.HYPOTHESIS: "hypotheses",
    EntityType.EXPERIMENT: "experiments",
    EntityType.USER_JOURNEY: "journeys",
    EntityType.BUSINESS_MODEL_CANVAS: "canvases/business-models",
    EntityType.VALUE_PROPOSITION_CANVAS: "canvases/value-propositions",
    EntityType.CUSTOMER_PROFILE: "canvases/customer-profiles",
    EntityType.VALUE_MAP: "canvases/value-maps",
    EntityType.SERVICE_BLUEPRINT: "blueprints",
    EntityType.STORY_MAP: "story-maps",
    EntityType.SPECIMEN: "specimens",
    EntityType.PROJECT: "ventures",
    EntityType.STUDIO_PROJECT: "studio",
    EntityType.LOG_ENTRY: "log",
    EntityType.BACKLOG_ITEM: "backlog",
}


class ActionErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    ACCESS_DENIED = "ACCESS_DENIED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    NOT_FOUND = "NOT_FOUND"


@dataclass
class ActionResult:
    """``{success: true, data?}`` or ``{success: false, error, code}``.

    A successful result may carry warnings when the primary write succeeded
    but a dependent sync did not.
    """

    success: bool
    data: Any = None
    error: str | None = None
    code: ActionErrorCode | None = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, data: Any = None, warnings: list[str] | None = None) -> "ActionResult":
        return cls(success=True, data=data, warnings=list(warnings or []))

    @classmethod
    def fail(cls, error: str, code: ActionErrorCode) -> "ActionResult":
        return cls(success=False, error=error, code=code)

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error, "code": self.code.value}
        result: dict[str, Any] = {"success": True}
        if self.data is not None:
            result["data"] = self.data
        if self.warnings:
            result["warnings"] = list(self.warnings)
        return result


class AuthProvider(Protocol):
    def is_authenticated(self) -> bool: ...


class StaticAuth:
    """Auth collaborator for local use: authenticated whenever a user name is set."""

    def __init__(self, user: str | None = None) -> None:
        self.user = user

    def is_authenticated(self) -> bool:
        return bool(self.user)


def server_action(func: Callable[..., ActionResult]) -> Callable[..., ActionResult]:
    """Gate an action on authentication and map raised errors to failed results."""

    @functools.wraps(func)
    def wrapper(self: "Actions", *args: Any, **kwargs: Any) -> ActionResult:
        name = func.__name__
        if not self.auth.is_authenticated():
            logger.warning("Unauthenticated action rejected", action=name)
            return ActionResult.fail("Unauthorized", ActionErrorCode.UNAUTHORIZED)
        try:
            return func(self, *args, **kwargs)
        except NotFoundError as e:
            return ActionResult.fail(str(e), ActionErrorCode.NOT_FOUND)
        except ValueError as e:
            logger.info("Action validation failed", action=name, error=str(e))
            return ActionResult.fail(str(e), ActionErrorCode.VALIDATION_ERROR)
        except DatabaseError as e:
            logger.error("Action database error", action=name, code=e.code, message=e.message, details=e.details)
            if e.is_unique_violation and "slug" in (e.message or ""):
                return ActionResult.fail("Slug already in use", ActionErrorCode.DATABASE_ERROR)
            return ActionResult.fail(f"Failed to {name.replace('_', ' ')}", ActionErrorCode.DATABASE_ERROR)

    return wrapper


class Actions:
    """Entry points called by forms and the CLI."""

    def __init__(
        self,
        backend: Backend,
        auth: AuthProvider,
        revalidate: Callable[[str], None] | None = None,
    ) -> None:
        self.backend = backend
        self.auth = auth
        self._revalidate = revalidate
        self.links = LinkManager(backend)
        self.evidence = EvidenceManager(backend)
        self.feedback = FeedbackManager(backend)
        self.stages = JourneyStages(backend)
        self.touchpoints = StageTouchpoints(backend)

    def revalidate(self, *paths: str) -> None:
        """Mark routes stale. Failures are logged and otherwise ignored."""
        if not self._revalidate:
            return
        for path in paths:
            try:
                self._revalidate(path)
            except Exception as e:
                logger.warning("Revalidation failed", path=path, error=str(e))

    def entity_paths(self, entity: EntityRef) -> list[str]:
        route = ENTITY_ROUTES.get(entity.type, entity.type.value.replace("_", "-"))
        paths = [f"/admin/{route}"]
        if entity.id:
            paths.append(f"/admin/{route}/{entity.id}")
        return paths

    def _verify_access(self, entity: EntityRef) -> ActionResult | None:
        """Return a failed result if the entity row is not visible, else None."""
        entity_id = entity.require_id("verify_access")
        try:
            row = self.backend.select_one(entity.type.table, columns="id", eq={"id": entity_id})
        except DatabaseError as e:
            logger.error("Access check failed", entity=str(entity), code=e.code, message=e.message)
            return ActionResult.fail("Failed to verify access", ActionErrorCode.DATABASE_ERROR)
        if row is None:
            label = entity.type.label.capitalize()
            return ActionResult.fail(f"{label} not found or access denied", ActionErrorCode.ACCESS_DENIED)
        return None

    @server_action
    def create_entity(
        self,
        entity_type: EntityType,
        values: dict[str, Any],
        pending: PendingBuffer | None = None,
    ) -> ActionResult:
        """Insert an entity, then flush its pending links, evidence and feedback.

        The entity stays created even if the flush fails; the result is then a
        success carrying warnings.
        """
        entity_type = EntityType(entity_type)
        logger.info("Creating entity", entity_type=entity_type.value)
        created = self.backend.insert(entity_type.table, [dict(values)])[0]
        entity = EntityRef(entity_type, str(created["id"]))

        warnings: list[str] = []
        if pending is not None and not pending.is_empty:
            flushed = pending.flush(self.backend, entity)
            warnings = flushed.warnings
            if warnings:
                logger.warning("Entity created with partial links", entity=str(entity), warnings=warnings)
                warnings = [
                    f"{entity_type.label.capitalize()} created, but {w}. You can link them manually." for w in warnings
                ]

        self.revalidate(*self.entity_paths(entity))
        return ActionResult.ok({"id": entity.id, "entity": created}, warnings=warnings)

    @server_action
    def delete_entity(self, entity: EntityRef) -> ActionResult:
        denied = self._verify_access(entity)
        if denied:
            return denied
        logger.info("Deleting entity", entity=str(entity))
        self.backend.delete(entity.type.table, eq={"id": entity.id})
        self.revalidate(*self.entity_paths(entity))
        return ActionResult.ok()

    @server_action
    def sync_links(
        self, source: EntityRef, target_type: EntityType, link_type: str, target_ids: list[str]
    ) -> ActionResult:
        denied = self._verify_access(source)
        if denied:
            return denied
        result = self.links.sync_entity_links(source, target_type, link_type, target_ids)
        if result.changed:
            self.revalidate(*self.entity_paths(source))
        return ActionResult.ok({"added": result.added, "removed": result.removed})

    @server_action
    def sync_links_as_target(
        self, target: EntityRef, source_type: EntityType, link_type: str, source_ids: list[str]
    ) -> ActionResult:
        denied = self._verify_access(target)
        if denied:
            return denied
        result = self.links.sync_entity_links_as_target(target, source_type, link_type, source_ids)
        if result.changed:
            self.revalidate(*self.entity_paths(target))
        return ActionResult.ok({"added": result.added, "removed": result.removed})

    @server_action
    def add_relationship(self, entity: EntityRef, slot: RelationshipSlot, target_id: str) -> ActionResult:
        denied = self._verify_access(entity)
        if denied:
            return denied
        manager = RelationshipManager(self.backend, entity, [slot])
        result = manager.add(slot, target_id)
        self.revalidate(*self.entity_paths(entity))
        return ActionResult.ok({"added": result.added, "removed": result.removed})

    @server_action
    def remove_relationship(self, entity: EntityRef, slot: RelationshipSlot, target_id: str) -> ActionResult:
        denied = self._verify_access(entity)
        if denied:
            return denied
        manager = RelationshipManager(self.backend, entity, [slot])
        result = manager.remove(slot, target_id)
        self.revalidate(*self.entity_paths(entity))
        return ActionResult.ok({"added": result.added, "removed": result.removed})

    @server_action
    def reorder_relationship(self, entity: EntityRef, slot: RelationshipSlot, ordered_ids: list[str]) -> ActionResult:
        denied = self._verify_access(entity)
        if denied:
            return denied
        RelationshipManager(self.backend, entity, [slot]).reorder(slot, ordered_ids)
        self.revalidate(*self.entity_paths(entity))
        return ActionResult.ok()

    @server_action
    def add_evidence(self, entity: EntityRef, item: PendingEvidence) -> ActionResult:
        denied = self._verify_access(entity)
        if denied:
            return denied
        evidence = self.evidence.add(entity, item)
        self.revalidate(*self.entity_paths(entity))
        return ActionResult.ok({"id": evidence.id})

    @server_action
    def add_feedback(self, entity: EntityRef, item: PendingFeedback) -> ActionResult:
        denied = self._verify_access(entity)
        if denied:
            return denied
        feedback = self.feedback.add(entity, item)
        self.revalidate(*self.entity_paths(entity))
        return ActionResult.ok({"id": feedback.id})

    def _revalidate_journey(self, journey_id: str) -> None:
        self.revalidate(f"/admin/journeys/{journey_id}/canvas", f"/admin/journeys/{journey_id}")

    @server_action
    def reorder_stages(self, journey_id: str, stage_ids: list[str]) -> ActionResult:
        denied = self._verify_access(EntityRef(EntityType.USER_JOURNEY, journey_id))
        if denied:
            return denied
        try:
            self.stages.reorder(journey_id, stage_ids)
        except DatabaseError as e:
            logger.error("Reorder stages failed", journey_id=journey_id, code=e.code, message=e.message)
            if e.is_membership_violation:
                return ActionResult.fail(
                    "Some stages do not belong to this journey", ActionErrorCode.VALIDATION_ERROR
                )
            return ActionResult.fail("Failed to reorder stages", ActionErrorCode.DATABASE_ERROR)
        self._revalidate_journey(journey_id)
        return ActionResult.ok()

    @server_action
    def move_stage(self, stage_id: str, direction: str) -> ActionResult:
        stage = self.stages.get(stage_id)
        self.stages.move(stage_id, direction)
        self._revalidate_journey(stage.user_journey_id)
        return ActionResult.ok()

    @server_action
    def reorder_touchpoints(self, stage_id: str, touchpoint_ids: list[str]) -> ActionResult:
        stage = self.stages.get(stage_id)
        try:
            self.touchpoints.reorder(stage_id, touchpoint_ids)
        except DatabaseError as e:
            logger.error("Reorder touchpoints failed", stage_id=stage_id, code=e.code, message=e.message)
            if e.is_membership_violation:
                return ActionResult.fail(
                    "Some touchpoints do not belong to this stage", ActionErrorCode.VALIDATION_ERROR
                )
            return ActionResult.fail("Failed to reorder touchpoints", ActionErrorCode.DATABASE_ERROR)
        self._revalidate_journey(stage.user_journey_id)
        return ActionResult.ok()

    @server_action
    def move_touchpoint(self, touchpoint_id: str, direction: str) -> ActionResult:
        touchpoint = self.touchpoints.get(touchpoint_id)
        self.touchpoints.move(touchpoint_id, direction)
        stage = self.stages.get(touchpoint.stage_id)
        self._revalidate_journey(stage.user_journey_id)
        return ActionResult.ok()
