"""Link type rules and field validators.

Which link types are valid from each source type to each target type, plus
the checks run on form values before any write.
"""

from typing import Any, Iterable

import structlog

from entity_links.errors import InvalidLinkTypeError, ValidationError
from entity_links.models import EntityType

logger = structlog.get_logger()

E = EntityType

# Pairs not listed here allow only the default link types.
VALID_LINK_TYPES: dict[EntityType, dict[EntityType, list[str]]] = {
    E.LOG_ENTRY: {
        E.ASSUMPTION: ["documents", "related"],
        E.EXPERIMENT: ["documents", "related"],
        E.SPECIMEN: ["contains", "related"],
        E.PROJECT: ["references", "related"],
        E.HYPOTHESIS: ["documents", "related"],
        E.CANVAS_ITEM: ["documents", "related"],
        E.STUDIO_PROJECT: ["documents", "related"],
    },
    E.SPECIMEN: {
        E.ASSUMPTION: ["demonstrates", "validates"],
        E.PROJECT: ["related"],
        E.CANVAS_ITEM: ["demonstrates", "related"],
    },
    E.EXPERIMENT: {
        E.HYPOTHESIS: ["tests", "validates"],
        E.ASSUMPTION: ["tests", "validates"],
        E.CANVAS_ITEM: ["validates", "related"],
    },
    E.BUSINESS_MODEL_CANVAS: {
        E.VALUE_PROPOSITION_CANVAS: ["related"],
        E.CUSTOMER_PROFILE: ["related"],
        E.BUSINESS_MODEL_CANVAS: ["related"],
    },
    E.VALUE_PROPOSITION_CANVAS: {
        E.BUSINESS_MODEL_CANVAS: ["related"],
        E.CUSTOMER_PROFILE: ["related"],
    },
    E.CUSTOMER_PROFILE: {
        E.BUSINESS_MODEL_CANVAS: ["related"],
        E.VALUE_PROPOSITION_CANVAS: ["related"],
    },
    E.USER_JOURNEY: {
        E.BUSINESS_MODEL_CANVAS: ["related"],
        E.VALUE_PROPOSITION_CANVAS: ["related"],
        E.CUSTOMER_PROFILE: ["related"],
    },
    E.TOUCHPOINT: {
        E.ASSUMPTION: ["tests", "related"],
        E.CANVAS_ITEM: ["addresses_job", "relieves_pain", "creates_gain", "related"],
    },
    E.GALLERY_SEQUENCE: {
        E.SPECIMEN: ["contains"],
    },
    E.PROJECT: {
        E.SPECIMEN: ["contains", "related"],
        E.LOG_ENTRY: ["related"],
    },
    E.STUDIO_PROJECT: {
        E.CUSTOMER_PROFILE: ["explores"],
        E.BUSINESS_MODEL_CANVAS: ["explores"],
        E.VALUE_PROPOSITION_CANVAS: ["explores"],
        E.ASSUMPTION: ["tests"],
        E.USER_JOURNEY: ["explores"],
        E.SERVICE_BLUEPRINT: ["prototypes"],
        E.STORY_MAP: ["informs"],
    },
    E.HYPOTHESIS: {
        E.ASSUMPTION: ["related", "tests"],
        E.CANVAS_ITEM: ["related"],
    },
    E.ASSUMPTION: {
        E.CANVAS_ITEM: ["related"],
        E.EXPERIMENT: ["related"],
        E.HYPOTHESIS: ["related", "tested_by"],
    },
    E.CANVAS_ITEM: {
        E.ASSUMPTION: ["related"],
        E.CANVAS_ITEM: ["addresses_job", "relieves_pain", "creates_gain", "related"],
    },
}

DEFAULT_LINK_TYPES: list[str] = ["related", "references"]

# (source, target, description); checked in both directions.
COMMON_LINK_PATTERNS: list[tuple[EntityType, EntityType, str]] = [
    (E.LOG_ENTRY, E.PROJECT, "Log entries reference projects"),
    (E.LOG_ENTRY, E.EXPERIMENT, "Log entries document experiments"),
    (E.LOG_ENTRY, E.ASSUMPTION, "Log entries document assumptions"),
    (E.LOG_ENTRY, E.SPECIMEN, "Log entries contain specimens"),
    (E.LOG_ENTRY, E.STUDIO_PROJECT, "Log entries document studio projects"),
    (E.EXPERIMENT, E.HYPOTHESIS, "Experiments test hypotheses"),
    (E.EXPERIMENT, E.ASSUMPTION, "Experiments test assumptions"),
    (E.SPECIMEN, E.ASSUMPTION, "Specimens demonstrate assumptions"),
    (E.BUSINESS_MODEL_CANVAS, E.VALUE_PROPOSITION_CANVAS, "BMC relates to VPC"),
    (E.BUSINESS_MODEL_CANVAS, E.CUSTOMER_PROFILE, "BMC relates to profiles"),
    (E.VALUE_PROPOSITION_CANVAS, E.CUSTOMER_PROFILE, "VPC relates to profiles"),
    (E.CANVAS_ITEM, E.CANVAS_ITEM, "Canvas item fit relationships"),
    (E.CANVAS_ITEM, E.ASSUMPTION, "Canvas items relate to assumptions"),
    (E.USER_JOURNEY, E.CUSTOMER_PROFILE, "Journeys relate to profiles"),
    (E.USER_JOURNEY, E.VALUE_PROPOSITION_CANVAS, "Journeys relate to VPC"),
    (E.TOUCHPOINT, E.ASSUMPTION, "Touchpoints test assumptions"),
    (E.GALLERY_SEQUENCE, E.SPECIMEN, "Galleries contain specimens"),
    (E.PROJECT, E.SPECIMEN, "Projects contain specimens"),
    (E.HYPOTHESIS, E.ASSUMPTION, "Hypotheses relate to assumptions"),
    (E.STUDIO_PROJECT, E.ASSUMPTION, "Studio projects test assumptions"),
]

EVIDENCE_TYPES: list[str] = [
    "interview",
    "survey",
    "observation",
    "research",
    "analytics",
    "metrics",
    "ab_test",
    "experiment",
    "prototype",
    "user_test",
    "heuristic_eval",
    "competitor",
    "expert",
    "market_research",
    "team_discussion",
    "stakeholder_feedback",
]

FEEDBACK_TYPES: list[str] = list(EVIDENCE_TYPES)

HAT_TYPES: list[str] = ["white", "black", "yellow", "red", "green", "blue"]

_warn_uncommon = False


def set_uncommon_link_warnings(enabled: bool) -> None:
    global _warn_uncommon
    _warn_uncommon = enabled


def is_valid_link_type(source_type: EntityType, target_type: EntityType, link_type: str) -> bool:
    """Check if a link type is valid between two entity types."""
    if link_type in DEFAULT_LINK_TYPES:
        return True
    rules = VALID_LINK_TYPES.get(EntityType(source_type), {})
    return link_type in rules.get(EntityType(target_type), [])


def get_valid_link_types(source_type: EntityType, target_type: EntityType) -> list[str]:
    """Get valid link types for a source -> target pair, defaults first."""
    specific = VALID_LINK_TYPES.get(EntityType(source_type), {}).get(EntityType(target_type), [])
    return list(dict.fromkeys([*DEFAULT_LINK_TYPES, *specific]))


def get_suggested_link_types(source_type: EntityType, target_type: EntityType) -> list[str]:
    """Get link types for a pair with the specific ones first."""
    specific = VALID_LINK_TYPES.get(EntityType(source_type), {}).get(EntityType(target_type), [])
    return [*specific, *(t for t in DEFAULT_LINK_TYPES if t not in specific)]


def validate_link(source_type: EntityType, target_type: EntityType, link_type: str) -> None:
    """Raise InvalidLinkTypeError if the link type is not allowed for the pair."""
    if not is_valid_link_type(source_type, target_type, link_type):
        valid = ", ".join(get_valid_link_types(source_type, target_type))
        raise InvalidLinkTypeError(
            f"Invalid link type '{link_type}' from {EntityType(source_type).value} "
            f"to {EntityType(target_type).value}. Valid types: {valid}",
            field="link_type",
        )


def _is_common_pattern(source_type: EntityType, target_type: EntityType) -> bool:
    return any(
        (s == source_type and t == target_type) or (s == target_type and t == source_type)
        for s, t, _ in COMMON_LINK_PATTERNS
    )


def warn_if_uncommon_link(
    source_type: EntityType,
    target_type: EntityType,
    link_type: str,
    context: str | None = None,
) -> str | None:
    """Log a warning for link pairs outside the common pattern catalogue.

    Returns:
        The warning text, or None when no warning was issued
    """
    if not _warn_uncommon:
        return None
    source_type, target_type = EntityType(source_type), EntityType(target_type)
    if source_type == target_type or _is_common_pattern(source_type, target_type):
        return None

    warning = f"Uncommon link pattern: {source_type.value} -> {target_type.value} ({link_type})"
    if context:
        warning += f" ({context})"
    logger.warning(warning, source_type=source_type.value, target_type=target_type.value, link_type=link_type)
    return warning


def get_link_pattern_info(source_type: EntityType, target_type: EntityType) -> dict[str, Any]:
    """Describe whether a pair is common and suggest intermediaries when it is not."""
    source_type, target_type = EntityType(source_type), EntityType(target_type)
    for s, t, description in COMMON_LINK_PATTERNS:
        if (s, t) in ((source_type, target_type), (target_type, source_type)):
            return {"is_common": True, "description": description, "suggestions": []}

    suggestions: list[str] = []
    if source_type != target_type:
        source_connections = {e for s, t, _ in COMMON_LINK_PATTERNS if source_type in (s, t) for e in (s, t)}
        target_connections = {e for s, t, _ in COMMON_LINK_PATTERNS if target_type in (s, t) for e in (s, t)}
        intermediaries = sorted(
            e.value for e in source_connections & target_connections if e not in (source_type, target_type)
        )
        if intermediaries:
            suggestions.append(f"Consider linking through: {', '.join(intermediaries[:3])}")

    return {"is_common": False, "description": None, "suggestions": suggestions}


def validate_required_text(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


def validate_choice(value: str, choices: Iterable[str], field: str) -> str:
    choices = list(choices)
    if value not in choices:
        raise ValidationError(f"Invalid {field} '{value}'. Expected one of: {', '.join(choices)}", field=field)
    return value


def validate_confidence(value: float | None) -> float | None:
    """Confidence is optional; when given it must lie in [0, 1]."""
    if value is None:
        return None
    try:
        confidence = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Confidence must be a number, got {value!r}", field="confidence") from e
    if not 0.0 <= confidence <= 1.0:
        raise ValidationError(f"Confidence must be between 0 and 1, got {confidence}", field="confidence")
    return confidence


def validate_evidence_type(value: str) -> str:
    return validate_choice(value, EVIDENCE_TYPES, "evidence_type")


def validate_feedback_type(value: str) -> str:
    return validate_choice(value, FEEDBACK_TYPES, "feedback_type")


def validate_hat_type(value: str) -> str:
    return validate_choice(value, HAT_TYPES, "hat_type")
