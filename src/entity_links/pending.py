"""Staging buffer for links, evidence and feedback collected before the parent entity exists."""

from dataclasses import dataclass, field

import structlog

from entity_links.backend import Backend
from entity_links.errors import DatabaseError, ValidationError
from entity_links.evidence import EvidenceManager
from entity_links.feedback import FeedbackManager
from entity_links.links import LinkManager
from entity_links.models import Direction, EntityRef, EntityType, PendingEvidence, PendingFeedback, PendingLink

logger = structlog.get_logger()


@dataclass
class FlushResult:
    """Outcome of flushing a buffer.

    The parent row is committed regardless; ``warnings`` lists the steps that
    failed so the caller can tell the user which relationships need fixing.
    """

    links_created: int = 0
    evidence_created: int = 0
    feedback_created: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


class PendingBuffer:
    """Accumulates value objects during a create flow.

    Links are grouped by (other entity type, link type, direction). For an
    inbound group the buffered ``target_id`` is the id of the link source.
    """

    def __init__(self) -> None:
        self.links: dict[tuple[EntityType, str, Direction], list[PendingLink]] = {}
        self.evidence: list[PendingEvidence] = []
        self.feedback: list[PendingFeedback] = []

    def add_link(
        self,
        target_type: EntityType,
        target_id: str,
        target_label: str,
        link_type: str,
        notes: str | None = None,
        ordered: bool = False,
        direction: Direction = Direction.OUTBOUND,
    ) -> bool:
        """Buffer a link. Returns False if the same target is already buffered for this group."""
        key = (EntityType(target_type), link_type, Direction(direction))
        group = self.links.setdefault(key, [])
        if any(pending.target_id == target_id for pending in group):
            return False
        group.append(
            PendingLink(
                target_id=target_id,
                target_label=target_label,
                link_type=link_type,
                notes=notes,
                position=len(group) if ordered else None,
            )
        )
        return True

    def remove_link(
        self,
        target_type: EntityType,
        target_id: str,
        link_type: str,
        direction: Direction = Direction.OUTBOUND,
    ) -> bool:
        key = (EntityType(target_type), link_type, Direction(direction))
        group = self.links.get(key, [])
        remaining = [pending for pending in group if pending.target_id != target_id]
        if len(remaining) == len(group):
            return False
        # Keep buffered positions contiguous.
        for index, pending in enumerate(remaining):
            if pending.position is not None:
                pending.position = index
        self.links[key] = remaining
        return True

    def links_for(
        self, target_type: EntityType, link_type: str, direction: Direction = Direction.OUTBOUND
    ) -> list[PendingLink]:
        return list(self.links.get((EntityType(target_type), link_type, Direction(direction)), []))

    def set_order(
        self,
        target_type: EntityType,
        link_type: str,
        ordered_ids: list[str],
        direction: Direction = Direction.OUTBOUND,
    ) -> None:
        """Rearrange a buffered group. ``ordered_ids`` must be a permutation of its ids."""
        key = (EntityType(target_type), link_type, Direction(direction))
        by_id = {pending.target_id: pending for pending in self.links.get(key, [])}
        self.links[key] = [by_id[target_id] for target_id in ordered_ids]
        for index, pending in enumerate(self.links[key]):
            pending.position = index

    def grouped_links(self) -> dict[tuple[EntityType, str, Direction], list[PendingLink]]:
        """Non-empty link groups in insertion order."""
        return {key: list(group) for key, group in self.links.items() if group}

    def add_evidence(self, item: PendingEvidence) -> None:
        self.evidence.append(item)

    def add_feedback(self, item: PendingFeedback) -> None:
        self.feedback.append(item)

    @property
    def is_empty(self) -> bool:
        return not (self.grouped_links() or self.evidence or self.feedback)

    def clear(self) -> None:
        self.links.clear()
        self.evidence.clear()
        self.feedback.clear()

    def flush(self, backend: Backend, entity: EntityRef) -> FlushResult:
        """Replay the buffer as real writes once the parent id is known.

        One sync call per (type, link type, direction) group, then evidence,
        then feedback. Inbound groups are written with the entity as the link
        target. Each step runs even if an earlier one failed. Empty groups
        issue no backend call.

        Raises:
            MissingIdentifierError: If the entity has no id
        """
        entity.require_id("flush")
        result = FlushResult()
        links = LinkManager(backend)

        for (target_type, link_type, direction), group in self.grouped_links().items():
            inbound = direction == Direction.INBOUND
            ids = [p.target_id for p in group]
            try:
                if any(pending.position is not None or pending.notes for pending in group):
                    if inbound:
                        created = len(links.sync_pending_links_as_target(entity, target_type, group))
                    else:
                        created = len(links.sync_pending_links(entity, target_type, group))
                elif inbound:
                    created = len(links.sync_entity_links_as_target(entity, target_type, link_type, ids).added)
                else:
                    created = len(links.sync_entity_links(entity, target_type, link_type, ids).added)
                result.links_created += created
            except (DatabaseError, ValidationError) as e:
                logger.error(
                    "Failed to sync pending links",
                    entity=str(entity),
                    target_type=target_type.value,
                    link_type=link_type,
                    direction=direction.value,
                    error=str(e),
                )
                result.warnings.append(f"failed to link {target_type.label} ({link_type})")

        if self.evidence:
            try:
                result.evidence_created = len(EvidenceManager(backend).sync_pending(entity, self.evidence))
            except (DatabaseError, ValidationError) as e:
                logger.error("Failed to sync pending evidence", entity=str(entity), error=str(e))
                result.warnings.append("failed to save evidence")

        if self.feedback:
            try:
                result.feedback_created = len(FeedbackManager(backend).sync_pending(entity, self.feedback))
            except (DatabaseError, ValidationError) as e:
                logger.error("Failed to sync pending feedback", entity=str(entity), error=str(e))
                result.warnings.append("failed to save feedback")

        logger.info(
            "Flushed pending buffer",
            entity=str(entity),
            links=result.links_created,
            evidence=result.evidence_created,
            feedback=result.feedback_created,
            warnings=len(result.warnings),
        )
        return result
