"""Relationship slots exposed for each parent entity type."""

from entity_links.models import Direction, EntityType, RelationshipSlot

E = EntityType


def _href(path: str):
    return lambda entity_id: f"/admin/{path}/{entity_id}/edit"


ASSUMPTION_SLOTS = [
    RelationshipSlot(E.HYPOTHESIS, "tested_by", "Hypotheses", "Validation", "statement", edit_href=_href("hypotheses")),
    RelationshipSlot(
        E.BUSINESS_MODEL_CANVAS,
        "related",
        "Business Models",
        "Strategic Context",
        edit_href=_href("canvases/business-model"),
    ),
    RelationshipSlot(
        E.VALUE_PROPOSITION_CANVAS,
        "related",
        "Value Propositions",
        "Strategic Context",
        edit_href=_href("canvases/value-proposition"),
    ),
]

HYPOTHESIS_SLOTS = [
    RelationshipSlot(E.ASSUMPTION, "tests", "Assumptions", "Validation", "statement", edit_href=_href("assumptions")),
    RelationshipSlot(
        E.EXPERIMENT,
        "tests",
        "Experiments",
        "Validation",
        "title",
        direction=Direction.INBOUND,
        edit_href=_href("experiments"),
    ),
]

EXPERIMENT_SLOTS = [
    RelationshipSlot(E.HYPOTHESIS, "tests", "Hypotheses", "Validation", "statement", edit_href=_href("hypotheses")),
    RelationshipSlot(E.ASSUMPTION, "tests", "Assumptions", "Validation", "statement", edit_href=_href("assumptions")),
]

BUSINESS_MODEL_CANVAS_SLOTS = [
    RelationshipSlot(
        E.VALUE_PROPOSITION_CANVAS,
        "related",
        "Value Propositions",
        "Strategic Context",
        edit_href=_href("canvases/value-proposition"),
    ),
    RelationshipSlot(
        E.CUSTOMER_PROFILE,
        "related",
        "Customer Profiles",
        "Strategic Context",
        edit_href=_href("canvases/customer-profiles"),
    ),
    RelationshipSlot(
        E.BUSINESS_MODEL_CANVAS,
        "related",
        "Related Business Models",
        "Strategic Context",
        edit_href=_href("canvases/business-model"),
    ),
]

VALUE_PROPOSITION_CANVAS_SLOTS = [
    RelationshipSlot(
        E.BUSINESS_MODEL_CANVAS,
        "related",
        "Business Models",
        "Strategic Context",
        edit_href=_href("canvases/business-model"),
    ),
]

USER_JOURNEY_SLOTS = [
    RelationshipSlot(
        E.CUSTOMER_PROFILE,
        "related",
        "Customer Profiles",
        "Strategic Context",
        edit_href=_href("canvases/customer-profiles"),
    ),
    RelationshipSlot(
        E.VALUE_PROPOSITION_CANVAS,
        "related",
        "Value Propositions",
        "Strategic Context",
        edit_href=_href("canvases/value-proposition"),
    ),
]

SPECIMEN_SLOTS = [
    RelationshipSlot(
        E.PROJECT,
        "contains",
        "Ventures",
        "Context",
        direction=Direction.INBOUND,
        edit_href=_href("ventures"),
    ),
    RelationshipSlot(
        E.ASSUMPTION, "demonstrates", "Assumptions", "Validation", "statement", edit_href=_href("assumptions")
    ),
]

LOG_ENTRY_SLOTS = [
    RelationshipSlot(E.SPECIMEN, "contains", "Specimens", "Content", "title", ordered=True, edit_href=_href("specimens")),
    RelationshipSlot(E.PROJECT, "related", "Projects", "Context", edit_href=_href("ventures")),
    RelationshipSlot(E.ASSUMPTION, "related", "Assumptions", "Context", "statement", edit_href=_href("assumptions")),
]

PROJECT_SLOTS = [
    RelationshipSlot(E.SPECIMEN, "contains", "Specimens", "Content", "title", ordered=True, edit_href=_href("specimens")),
    RelationshipSlot(
        E.LOG_ENTRY, "related", "Log Entries", "Content", "title", edit_href=_href("log")
    ),
]

STUDIO_PROJECT_SLOTS = [
    RelationshipSlot(
        E.CUSTOMER_PROFILE,
        "explores",
        "Customer Profiles",
        "Strategic Context",
        edit_href=_href("canvases/customer-profiles"),
    ),
    RelationshipSlot(
        E.BUSINESS_MODEL_CANVAS,
        "explores",
        "Business Models",
        "Strategic Context",
        edit_href=_href("canvases/business-model"),
    ),
    RelationshipSlot(
        E.VALUE_PROPOSITION_CANVAS,
        "explores",
        "Value Propositions",
        "Strategic Context",
        edit_href=_href("canvases/value-proposition"),
    ),
    RelationshipSlot(E.ASSUMPTION, "tests", "Assumptions", "Evidence", "statement", edit_href=_href("assumptions")),
    RelationshipSlot(
        E.USER_JOURNEY, "explores", "User Journeys", "Journeys & Blueprints", edit_href=_href("journeys")
    ),
    RelationshipSlot(
        E.SERVICE_BLUEPRINT,
        "prototypes",
        "Service Blueprints",
        "Journeys & Blueprints",
        edit_href=_href("blueprints"),
    ),
    RelationshipSlot(E.STORY_MAP, "informs", "Story Maps", "Development", edit_href=_href("story-maps")),
]

GALLERY_SEQUENCE_SLOTS = [
    RelationshipSlot(E.SPECIMEN, "contains", "Specimens", "Content", "title", ordered=True, edit_href=_href("specimens")),
]

SLOTS: dict[EntityType, list[RelationshipSlot]] = {
    E.ASSUMPTION: ASSUMPTION_SLOTS,
    E.HYPOTHESIS: HYPOTHESIS_SLOTS,
    E.EXPERIMENT: EXPERIMENT_SLOTS,
    E.BUSINESS_MODEL_CANVAS: BUSINESS_MODEL_CANVAS_SLOTS,
    E.VALUE_PROPOSITION_CANVAS: VALUE_PROPOSITION_CANVAS_SLOTS,
    E.USER_JOURNEY: USER_JOURNEY_SLOTS,
    E.SPECIMEN: SPECIMEN_SLOTS,
    E.LOG_ENTRY: LOG_ENTRY_SLOTS,
    E.PROJECT: PROJECT_SLOTS,
    E.STUDIO_PROJECT: STUDIO_PROJECT_SLOTS,
    E.GALLERY_SEQUENCE: GALLERY_SEQUENCE_SLOTS,
}


def slots_for(entity_type: EntityType) -> list[RelationshipSlot]:
    """Slots configured for a parent type; empty for types without a relationship panel."""
    return list(SLOTS.get(EntityType(entity_type), []))


def find_slot(entity_type: EntityType, target_type: EntityType, link_type: str) -> RelationshipSlot | None:
    for slot in slots_for(entity_type):
        if slot.target_type == EntityType(target_type) and slot.link_type == link_type:
            return slot
    return None
