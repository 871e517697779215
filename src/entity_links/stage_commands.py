"""Journey stage and touchpoint ordering commands for entity links CLI."""

from cyclopts import App

stage_app = App(name="stage", help="Manage journey stages and their touchpoints")


@stage_app.command(name="list")
def list_stages(journey_id: str, touchpoints: bool = False) -> None:
    """List the stages of a journey in sequence order."""
    from entity_links.cli import get_backend
    from entity_links.stages import JourneyStages, StageTouchpoints

    backend = get_backend()
    stages = JourneyStages(backend).list_for(journey_id)
    if not stages:
        print(f"No stages found for journey {journey_id}")
        return

    for stage in stages:
        print(f"{stage.sequence}. {stage.id} {stage.name}")
        if touchpoints:
            for touchpoint in StageTouchpoints(backend).list_for(stage.id):
                print(f"    {touchpoint.sequence}. {touchpoint.id} {touchpoint.name}")


@stage_app.command
def add(journey_id: str, name: str) -> None:
    """Append a stage to a journey."""
    from entity_links.cli import get_backend
    from entity_links.stages import JourneyStages

    stage = JourneyStages(get_backend()).create(journey_id, name)
    print(f"Created stage {stage.id} at position {stage.sequence}")


@stage_app.command
def remove(stage_id: str) -> None:
    """Delete a stage and close the gap in its journey."""
    from entity_links.cli import get_backend
    from entity_links.stages import JourneyStages

    JourneyStages(get_backend()).delete(stage_id)
    print(f"Deleted stage {stage_id}")


@stage_app.command
def reorder(journey_id: str, *stage_ids: str) -> None:
    """Set the full stage order of a journey."""
    from entity_links.cli import get_actions, report

    report(get_actions().reorder_stages(journey_id, list(stage_ids)), f"Reordered {len(stage_ids)} stage(s)")


@stage_app.command
def move(stage_id: str, direction: str) -> None:
    """Move a stage one step left or right."""
    from entity_links.cli import get_actions, report

    report(get_actions().move_stage(stage_id, direction), f"Moved stage {stage_id} {direction}")


@stage_app.command(name="add-touchpoint")
def add_touchpoint(stage_id: str, name: str) -> None:
    """Append a touchpoint to a stage."""
    from entity_links.cli import get_backend
    from entity_links.stages import StageTouchpoints

    touchpoint = StageTouchpoints(get_backend()).create(stage_id, name)
    print(f"Created touchpoint {touchpoint.id} at position {touchpoint.sequence}")


@stage_app.command(name="reorder-touchpoints")
def reorder_touchpoints(stage_id: str, *touchpoint_ids: str) -> None:
    """Set the full touchpoint order of a stage."""
    from entity_links.cli import get_actions, report

    result = get_actions().reorder_touchpoints(stage_id, list(touchpoint_ids))
    report(result, f"Reordered {len(touchpoint_ids)} touchpoint(s)")


@stage_app.command(name="move-touchpoint")
def move_touchpoint(touchpoint_id: str, direction: str) -> None:
    """Move a touchpoint one step up or down within its stage."""
    from entity_links.cli import get_actions, report

    report(get_actions().move_touchpoint(touchpoint_id, direction), f"Moved touchpoint {touchpoint_id} {direction}")
