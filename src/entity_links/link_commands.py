"""Link management commands for entity links CLI."""

from cyclopts import App

from entity_links.models import EntityType
from entity_links.validation import get_link_pattern_info, get_suggested_link_types

link_app = App(name="link", help="Manage links between entities")


@link_app.command
def add(
    source: str,
    *targets: str,
    type: str | None = None,
    notes: str | None = None,
) -> None:
    """Add links from a source entity to target entities, all given as type:id."""
    from entity_links.cli import get_backend, parse_ref
    from entity_links.links import LinkManager

    manager = LinkManager(get_backend())
    source_ref = parse_ref(source)
    for target in targets:
        target_ref = parse_ref(target)
        link_type = type or get_suggested_link_types(source_ref.type, target_ref.type)[0]
        manager.link_entities(source_ref, target_ref, link_type, notes=notes)
    print(f"Added {len(targets)} link(s) from {source}")


@link_app.command
def remove(
    source: str,
    *targets: str,
    type: str | None = None,
) -> None:
    """Remove links from a source entity to target entities."""
    from entity_links.cli import get_backend, parse_ref
    from entity_links.links import LinkManager

    manager = LinkManager(get_backend())
    source_ref = parse_ref(source)
    removed = sum(manager.unlink_entities(source_ref, parse_ref(target), type) for target in targets)
    print(f"Removed {removed} link(s) from {source}")


@link_app.command(name="list")
def list_links(
    entity: str,
    type: str | None = None,
    direction: str = "both",
) -> None:
    """List the links of an entity."""
    from entity_links.cli import get_backend, parse_ref
    from entity_links.links import LinkManager

    links = LinkManager(get_backend()).get_linked_entities(parse_ref(entity), direction=direction, link_type=type)
    if not links:
        print(f"No links found for {entity}")
        return

    print(f"Links for {entity}:\n")
    for link in links:
        position = f" #{link.position}" if link.position is not None else ""
        print(f"  {link.source} --[{link.link_type}]--> {link.target}{position}")


@link_app.command
def sync(
    entity: str,
    other_type: str,
    *ids: str,
    type: str | None = None,
    as_target: bool = False,
) -> None:
    """Replace one relationship group of an entity with exactly the given ids.

    Args:
        entity: Owning entity as type:id
        other_type: Entity type on the other side of the links
        ids: Desired ids, in order
        type: Link type (defaults to the first suggested type for the pair)
        as_target: Store the owning entity as the link target instead of the source
    """
    from entity_links.cli import get_actions, parse_ref, report

    ref = parse_ref(entity)
    other = EntityType(other_type)
    if as_target:
        link_type = type or get_suggested_link_types(other, ref.type)[0]
        result = get_actions().sync_links_as_target(ref, other, link_type, list(ids))
    else:
        link_type = type or get_suggested_link_types(ref.type, other)[0]
        result = get_actions().sync_links(ref, other, link_type, list(ids))

    if result.success:
        message = f"Synced {entity} {link_type} {other.value}: +{len(result.data['added'])} -{len(result.data['removed'])}"
    else:
        message = ""
    report(result, message)


@link_app.command
def tree(entity: str) -> None:
    """Display the relationship panel of an entity, grouped by slot."""
    from entity_links.cli import get_backend, parse_ref
    from entity_links.relationships import RelationshipManager
    from entity_links.slots import slots_for

    ref = parse_ref(entity)
    slots = slots_for(ref.type)
    if not slots:
        print(f"No relationship slots defined for {ref.type.label}")
        return

    manager = RelationshipManager(get_backend(), ref, slots)
    print(f"Entity: {ref} ({manager.total_count()} linked)\n")
    for group, entries in manager.groups().items():
        print(f"{group} ({manager.group_count(group)}):")
        for slot, items in entries:
            print(f"  {slot.label}:")
            if not items:
                print("    (none)")
            for item in items:
                print(f"    - {item.entity_id} {item.label}")
        print()


@link_app.command
def types(source_type: str, target_type: str) -> None:
    """Show the link types allowed between two entity types."""
    source, target = EntityType(source_type), EntityType(target_type)
    print(f"{source.value} -> {target.value}: {', '.join(get_suggested_link_types(source, target))}")

    info = get_link_pattern_info(source, target)
    if info["is_common"]:
        print(f"Common pattern: {info['description']}")
    else:
        print("Uncommon pattern")
        for suggestion in info["suggestions"]:
            print(f"  {suggestion}")
