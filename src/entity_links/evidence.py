"""Evidence attached to entities through the universal evidence table."""

from entity_links.annotations import AnnotationManager
from entity_links.errors import ValidationError
from entity_links.models import EVIDENCE_TABLE, Evidence, PendingEvidence
from entity_links.validation import validate_confidence, validate_evidence_type


class EvidenceManager(AnnotationManager[Evidence, PendingEvidence]):
    """Supporting or refuting material for an entity. Stance is always a boolean."""

    table = EVIDENCE_TABLE
    type_column = "evidence_type"
    model = Evidence
    name = "evidence"

    def validate_item(self, item: PendingEvidence) -> None:
        validate_evidence_type(item.evidence_type)
        validate_confidence(item.confidence)
        if not isinstance(item.supports, bool):
            raise ValidationError("Evidence must either support or refute", field="supports")
