"""Feedback attached to entities, classified by thinking hat and source type."""

from typing import Any

from entity_links.annotations import AnnotationManager
from entity_links.models import FEEDBACK_TABLE, EntityRef, Feedback, PendingFeedback
from entity_links.validation import validate_confidence, validate_feedback_type, validate_hat_type


class FeedbackManager(AnnotationManager[Feedback, PendingFeedback]):
    """Feedback rows. Unlike evidence, ``supports`` may be None for neutral feedback."""

    table = FEEDBACK_TABLE
    type_column = "feedback_type"
    model = Feedback
    name = "feedback"

    def validate_item(self, item: PendingFeedback) -> None:
        validate_hat_type(item.hat_type)
        validate_feedback_type(item.feedback_type)
        validate_confidence(item.confidence)

    def get(
        self,
        entity: EntityRef,
        item_type: str | None = None,
        supports_only: bool = False,
        refutes_only: bool = False,
        order_by: str = "created_at",
        ascending: bool = False,
        hat_type: str | None = None,
    ) -> list[Feedback]:
        extra = {"hat_type": hat_type} if hat_type else None
        return super().get(entity, item_type, supports_only, refutes_only, order_by, ascending, extra)

    def summary(self, entity: EntityRef) -> dict[str, Any]:
        """Counts by feedback type, by hat and by stance."""
        rows = self._summary_rows(entity, "feedback_type, hat_type, supports")
        by_type: dict[str, int] = {}
        by_hat: dict[str, int] = {}
        supporting = refuting = 0
        for row in rows:
            by_type[row["feedback_type"]] = by_type.get(row["feedback_type"], 0) + 1
            by_hat[row["hat_type"]] = by_hat.get(row["hat_type"], 0) + 1
            if row.get("supports") is True:
                supporting += 1
            elif row.get("supports") is False:
                refuting += 1
        return {
            "total": len(rows),
            "supporting": supporting,
            "refuting": refuting,
            "by_type": by_type,
            "by_hat": by_hat,
        }
