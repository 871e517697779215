"""Data models for entity links."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from entity_links.errors import MissingIdentifierError

LINKS_TABLE = "entity_links"
EVIDENCE_TABLE = "evidence"
FEEDBACK_TABLE = "feedback"
STAGES_TABLE = "journey_stages"
TOUCHPOINTS_TABLE = "touchpoints"


class EntityType(str, Enum):
    """Every record type addressable by the relationship system."""

    ASSUMPTION = "assumption"
    HYPOTHESIS = "hypothesis"
    EXPERIMENT = "experiment"
    USER_JOURNEY = "user_journey"
    JOURNEY_STAGE = "journey_stage"
    TOUCHPOINT = "touchpoint"
    BUSINESS_MODEL_CANVAS = "business_model_canvas"
    VALUE_PROPOSITION_CANVAS = "value_proposition_canvas"
    CUSTOMER_PROFILE = "customer_profile"
    VALUE_MAP = "value_map"
    CANVAS_ITEM = "canvas_item"
    SERVICE_BLUEPRINT = "service_blueprint"
    STORY_MAP = "story_map"
    SPECIMEN = "specimen"
    PROJECT = "project"
    STUDIO_PROJECT = "studio_project"
    LOG_ENTRY = "log_entry"
    GALLERY_SEQUENCE = "gallery_sequence"
    BACKLOG_ITEM = "backlog_item"

    @property
    def table(self) -> str:
        return ENTITY_TABLES[self]

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


# Ventures are stored as projects.
ENTITY_TABLES: dict[EntityType, str] = {
    EntityType.ASSUMPTION: "assumptions",
    EntityType.HYPOTHESIS: "studio_hypotheses",
    EntityType.EXPERIMENT: "studio_experiments",
    EntityType.USER_JOURNEY: "user_journeys",
    EntityType.JOURNEY_STAGE: STAGES_TABLE,
    EntityType.TOUCHPOINT: TOUCHPOINTS_TABLE,
    EntityType.BUSINESS_MODEL_CANVAS: "business_model_canvases",
    EntityType.VALUE_PROPOSITION_CANVAS: "value_proposition_canvases",
    EntityType.CUSTOMER_PROFILE: "customer_profiles",
    EntityType.VALUE_MAP: "value_maps",
    EntityType.CANVAS_ITEM: "canvas_items",
    EntityType.SERVICE_BLUEPRINT: "service_blueprints",
    EntityType.STORY_MAP: "story_maps",
    EntityType.SPECIMEN: "specimens",
    EntityType.PROJECT: "ventures",
    EntityType.STUDIO_PROJECT: "studio_projects",
    EntityType.LOG_ENTRY: "log_entries",
    EntityType.GALLERY_SEQUENCE: "gallery_sequences",
    EntityType.BACKLOG_ITEM: "backlog_items",
}


def table_for(entity_type: EntityType | str) -> str:
    """Return the table holding rows of the given entity type.

    Raises:
        ValueError: If the tag is not a known entity type
    """
    return EntityType(entity_type).table


class LinkStrength(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    TENTATIVE = "tentative"


class Direction(str, Enum):
    """Which side of a link the owning entity sits on."""

    OUTBOUND = "outbound"
    INBOUND = "inbound"


@dataclass(frozen=True)
class EntityRef:
    """A (type, id) pair identifying any record. The id is absent before the first insert."""

    type: EntityType
    id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", EntityType(self.type))

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def require_id(self, operation: str | None = None) -> str:
        if self.id is None:
            raise MissingIdentifierError(self.type.value, operation)
        return self.id

    def with_id(self, entity_id: str) -> "EntityRef":
        return EntityRef(self.type, entity_id)

    def __str__(self) -> str:
        return f"{self.type.value}:{self.id or '<new>'}"


@dataclass
class Link:
    """A persisted, typed, directed association between two entities."""

    id: str
    source_type: EntityType
    source_id: str
    target_type: EntityType
    target_id: str
    link_type: str = "related"
    strength: LinkStrength | None = None
    notes: str | None = None
    position: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> EntityRef:
        return EntityRef(self.source_type, self.source_id)

    @property
    def target(self) -> EntityRef:
        return EntityRef(self.target_type, self.target_id)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Link":
        strength = row.get("strength")
        return cls(
            id=str(row["id"]),
            source_type=EntityType(row["source_type"]),
            source_id=str(row["source_id"]),
            target_type=EntityType(row["target_type"]),
            target_id=str(row["target_id"]),
            link_type=row.get("link_type", "related"),
            strength=LinkStrength(strength) if strength else None,
            notes=row.get("notes"),
            position=row.get("position"),
            metadata=row.get("metadata") or {},
        )


@dataclass
class PendingLink:
    """A display-ready stand-in for a link whose source has not been inserted yet."""

    target_id: str
    target_label: str
    link_type: str
    notes: str | None = None
    position: int | None = None


@dataclass
class PendingEvidence:
    evidence_type: str
    supports: bool = True
    title: str | None = None
    content: str | None = None
    source_url: str | None = None
    confidence: float | None = None


@dataclass
class PendingFeedback:
    hat_type: str
    feedback_type: str
    supports: bool | None = None
    title: str | None = None
    content: str | None = None
    source_url: str | None = None
    confidence: float | None = None


@dataclass
class Evidence:
    """A persisted evidence row attached to an entity."""

    id: str
    entity_type: EntityType
    entity_id: str
    evidence_type: str
    supports: bool = True
    title: str | None = None
    content: str | None = None
    source_url: str | None = None
    confidence: float | None = None
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Evidence":
        return cls(
            id=str(row["id"]),
            entity_type=EntityType(row["entity_type"]),
            entity_id=str(row["entity_id"]),
            evidence_type=row["evidence_type"],
            supports=row.get("supports", True),
            title=row.get("title"),
            content=row.get("content"),
            source_url=row.get("source_url"),
            confidence=row.get("confidence"),
            tags=row.get("tags") or [],
            metadata=row.get("metadata") or {},
            created_at=row.get("created_at"),
        )


@dataclass
class Feedback:
    """A persisted feedback row attached to an entity."""

    id: str
    entity_type: EntityType
    entity_id: str
    hat_type: str
    feedback_type: str
    supports: bool | None = None
    title: str | None = None
    content: str | None = None
    source_url: str | None = None
    confidence: float | None = None
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Feedback":
        return cls(
            id=str(row["id"]),
            entity_type=EntityType(row["entity_type"]),
            entity_id=str(row["entity_id"]),
            hat_type=row["hat_type"],
            feedback_type=row["feedback_type"],
            supports=row.get("supports"),
            title=row.get("title"),
            content=row.get("content"),
            source_url=row.get("source_url"),
            confidence=row.get("confidence"),
            tags=row.get("tags") or [],
            metadata=row.get("metadata") or {},
            created_at=row.get("created_at"),
        )


@dataclass(frozen=True)
class RelationshipSlot:
    """Declarative description of one relationship category exposed for a parent entity type.

    Outbound slots store the parent as the link source, inbound slots store it as the target.
    """

    target_type: EntityType
    link_type: str
    label: str
    group: str
    display_field: str = "name"
    direction: Direction = Direction.OUTBOUND
    ordered: bool = False
    allow_multiple: bool = True
    subtitle_field: str | None = None
    edit_href: Callable[[str], str] | None = field(default=None, compare=False)

    @property
    def key(self) -> tuple[EntityType, str, Direction]:
        return (self.target_type, self.link_type, self.direction)


@dataclass
class Stage:
    id: str
    user_journey_id: str
    name: str
    sequence: int

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Stage":
        return cls(
            id=str(row["id"]),
            user_journey_id=str(row["user_journey_id"]),
            name=row.get("name", ""),
            sequence=row.get("sequence", 0),
        )


@dataclass
class Touchpoint:
    id: str
    stage_id: str
    name: str
    sequence: int

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Touchpoint":
        return cls(
            id=str(row["id"]),
            stage_id=str(row["stage_id"]),
            name=row.get("name", ""),
            sequence=row.get("sequence", 0),
        )
