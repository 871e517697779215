"""Tests for link type rules and field validators."""

from collections.abc import Iterator

import pytest

from entity_links.errors import InvalidLinkTypeError, ValidationError
from entity_links.models import EntityType
from entity_links.validation import (
    EVIDENCE_TYPES,
    HAT_TYPES,
    get_link_pattern_info,
    get_suggested_link_types,
    get_valid_link_types,
    is_valid_link_type,
    set_uncommon_link_warnings,
    validate_confidence,
    validate_evidence_type,
    validate_hat_type,
    validate_link,
    validate_required_text,
    warn_if_uncommon_link,
)


@pytest.fixture
def uncommon_warnings() -> Iterator[None]:
    """Enable uncommon link warnings for one test."""
    set_uncommon_link_warnings(True)
    yield
    set_uncommon_link_warnings(False)


def test_default_link_types_always_valid() -> None:
    """Test related and references are allowed between any pair."""
    assert is_valid_link_type(EntityType.STORY_MAP, EntityType.SPECIMEN, "related")
    assert is_valid_link_type(EntityType.STORY_MAP, EntityType.SPECIMEN, "references")


def test_specific_link_types() -> None:
    """Test pair-specific link types."""
    assert is_valid_link_type(EntityType.EXPERIMENT, EntityType.HYPOTHESIS, "tests")
    assert is_valid_link_type(EntityType.HYPOTHESIS, EntityType.ASSUMPTION, "tests")
    assert is_valid_link_type(EntityType.ASSUMPTION, EntityType.HYPOTHESIS, "tested_by")
    assert not is_valid_link_type(EntityType.HYPOTHESIS, EntityType.EXPERIMENT, "tests")


def test_valid_and_suggested_ordering() -> None:
    """Test valid types list defaults first and suggestions list specific types first."""
    assert get_valid_link_types(EntityType.SPECIMEN, EntityType.ASSUMPTION) == [
        "related",
        "references",
        "demonstrates",
        "validates",
    ]
    assert get_suggested_link_types(EntityType.SPECIMEN, EntityType.ASSUMPTION) == [
        "demonstrates",
        "validates",
        "related",
        "references",
    ]
    assert get_suggested_link_types(EntityType.STORY_MAP, EntityType.SPECIMEN) == ["related", "references"]


def test_validate_link_rejects_unknown_type() -> None:
    """Test an invalid link type raises with the valid choices."""
    with pytest.raises(InvalidLinkTypeError) as exc_info:
        validate_link(EntityType.HYPOTHESIS, EntityType.EXPERIMENT, "tests")
    assert exc_info.value.field == "link_type"
    assert "Valid types: related, references" in str(exc_info.value)


def test_uncommon_link_warning_disabled_by_default() -> None:
    """Test no warning is produced unless enabled."""
    assert warn_if_uncommon_link(EntityType.STORY_MAP, EntityType.SPECIMEN, "related") is None


def test_uncommon_link_warning(uncommon_warnings: None) -> None:
    """Test uncommon pairs produce a warning and common or same-type pairs do not."""
    warning = warn_if_uncommon_link(EntityType.STORY_MAP, EntityType.SPECIMEN, "related", "sync")
    assert warning == "Uncommon link pattern: story_map -> specimen (related) (sync)"
    assert warn_if_uncommon_link(EntityType.HYPOTHESIS, EntityType.EXPERIMENT, "related") is None
    assert warn_if_uncommon_link(EntityType.STORY_MAP, EntityType.STORY_MAP, "related") is None


def test_link_pattern_info_common() -> None:
    """Test a catalogued pair is described in either direction."""
    info = get_link_pattern_info(EntityType.HYPOTHESIS, EntityType.EXPERIMENT)
    assert info == {"is_common": True, "description": "Experiments test hypotheses", "suggestions": []}


def test_link_pattern_info_suggests_intermediaries() -> None:
    """Test an uncommon pair suggests entities both sides commonly link to."""
    info = get_link_pattern_info(EntityType.EXPERIMENT, EntityType.SPECIMEN)
    assert info["is_common"] is False
    assert info["suggestions"] == ["Consider linking through: assumption, log_entry"]


def test_validate_required_text() -> None:
    """Test required text is stripped and blanks are rejected."""
    assert validate_required_text("  Awareness ", "name") == "Awareness"
    with pytest.raises(ValidationError, match="name is required"):
        validate_required_text("   ", "name")


@pytest.mark.parametrize("value", [0, 0.5, 1, None])
def test_validate_confidence_accepts(value: float | None) -> None:
    """Test confidence within bounds, or absent, is accepted."""
    assert validate_confidence(value) == (None if value is None else float(value))


@pytest.mark.parametrize("value", [-0.1, 1.5, "high"])
def test_validate_confidence_rejects(value: object) -> None:
    """Test confidence outside [0, 1] or non-numeric is rejected."""
    with pytest.raises(ValidationError) as exc_info:
        validate_confidence(value)
    assert exc_info.value.field == "confidence"


def test_type_catalogues() -> None:
    """Test evidence and hat catalogues."""
    assert len(EVIDENCE_TYPES) == 16
    assert HAT_TYPES == ["white", "black", "yellow", "red", "green", "blue"]
    assert validate_evidence_type("interview") == "interview"
    assert validate_hat_type("green") == "green"
    with pytest.raises(ValidationError):
        validate_hat_type("purple")
