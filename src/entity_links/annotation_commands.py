"""Evidence and feedback commands for entity links CLI."""

from cyclopts import App

from entity_links.models import PendingEvidence, PendingFeedback

evidence_app = App(name="evidence", help="Manage evidence attached to entities")
feedback_app = App(name="feedback", help="Manage feedback attached to entities")


def _stance(supports: bool | None) -> str:
    if supports is None:
        return "neutral"
    return "supports" if supports else "refutes"


@evidence_app.command(name="add")
def add_evidence(
    entity: str,
    evidence_type: str,
    *,
    refutes: bool = False,
    title: str | None = None,
    content: str | None = None,
    url: str | None = None,
    confidence: float | None = None,
) -> None:
    """Attach evidence to an entity given as type:id."""
    from entity_links.cli import get_actions, parse_ref, report

    item = PendingEvidence(
        evidence_type=evidence_type,
        supports=not refutes,
        title=title,
        content=content,
        source_url=url,
        confidence=confidence,
    )
    result = get_actions().add_evidence(parse_ref(entity), item)
    report(result, f"Added evidence {result.data['id']} to {entity}" if result.success else "")


@evidence_app.command(name="list")
def list_evidence(
    entity: str,
    type: str | None = None,
    supports_only: bool = False,
    refutes_only: bool = False,
) -> None:
    """List evidence for an entity, newest first."""
    from entity_links.cli import get_backend, parse_ref
    from entity_links.evidence import EvidenceManager

    items = EvidenceManager(get_backend()).get(
        parse_ref(entity), item_type=type, supports_only=supports_only, refutes_only=refutes_only
    )
    if not items:
        print(f"No evidence found for {entity}")
        return

    for item in items:
        confidence = f" ({item.confidence:.0%})" if item.confidence is not None else ""
        print(f"  [{_stance(item.supports)}] {item.evidence_type}: {item.title or item.id}{confidence}")


@evidence_app.command(name="summary")
def evidence_summary(entity: str) -> None:
    """Show evidence counts and average confidence for an entity."""
    from entity_links.cli import get_backend, parse_ref
    from entity_links.evidence import EvidenceManager

    manager = EvidenceManager(get_backend())
    ref = parse_ref(entity)
    summary = manager.summary(ref)
    print(f"Evidence for {entity}: {summary['total']} ({summary['supporting']} supporting, {summary['refuting']} refuting)")
    for evidence_type, count in sorted(summary["by_type"].items()):
        print(f"  {evidence_type}: {count}")
    average = manager.average_confidence(ref)
    if average is not None:
        print(f"Average confidence: {average:.2f}")


@evidence_app.command(name="delete")
def delete_evidence(*evidence_ids: str) -> None:
    """Delete evidence rows by id."""
    from entity_links.cli import get_backend
    from entity_links.evidence import EvidenceManager

    manager = EvidenceManager(get_backend())
    for evidence_id in evidence_ids:
        manager.delete(evidence_id)
    print(f"Deleted {len(evidence_ids)} evidence item(s)")


@feedback_app.command(name="add")
def add_feedback(
    entity: str,
    hat: str,
    feedback_type: str,
    *,
    supports: bool | None = None,
    title: str | None = None,
    content: str | None = None,
    url: str | None = None,
    confidence: float | None = None,
) -> None:
    """Attach feedback to an entity given as type:id.

    Args:
        entity: Entity as type:id
        hat: Thinking hat (white, black, yellow, red, green, blue)
        feedback_type: Source of the feedback, e.g. interview
        supports: Stance; leave unset for neutral feedback
    """
    from entity_links.cli import get_actions, parse_ref, report

    item = PendingFeedback(
        hat_type=hat,
        feedback_type=feedback_type,
        supports=supports,
        title=title,
        content=content,
        source_url=url,
        confidence=confidence,
    )
    result = get_actions().add_feedback(parse_ref(entity), item)
    report(result, f"Added feedback {result.data['id']} to {entity}" if result.success else "")


@feedback_app.command(name="list")
def list_feedback(entity: str, hat: str | None = None, type: str | None = None) -> None:
    """List feedback for an entity, newest first."""
    from entity_links.cli import get_backend, parse_ref
    from entity_links.feedback import FeedbackManager

    items = FeedbackManager(get_backend()).get(parse_ref(entity), item_type=type, hat_type=hat)
    if not items:
        print(f"No feedback found for {entity}")
        return

    for item in items:
        print(f"  [{item.hat_type}/{_stance(item.supports)}] {item.feedback_type}: {item.title or item.id}")


@feedback_app.command(name="summary")
def feedback_summary(entity: str) -> None:
    """Show feedback counts by hat and type for an entity."""
    from entity_links.cli import get_backend, parse_ref
    from entity_links.feedback import FeedbackManager

    summary = FeedbackManager(get_backend()).summary(parse_ref(entity))
    print(f"Feedback for {entity}: {summary['total']} ({summary['supporting']} supporting, {summary['refuting']} refuting)")
    for hat, count in sorted(summary["by_hat"].items()):
        print(f"  {hat} hat: {count}")
    for feedback_type, count in sorted(summary["by_type"].items()):
        print(f"  {feedback_type}: {count}")
