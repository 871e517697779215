"""Link operations over the universal entity_links table."""

from dataclasses import dataclass, field
from typing import Any

import structlog

from entity_links.backend import Backend, Row
from entity_links.errors import ValidationError
from entity_links.models import LINKS_TABLE, EntityRef, EntityType, Link, LinkStrength, PendingLink
from entity_links.observability import timed
from entity_links.validation import validate_link, warn_if_uncommon_link

logger = structlog.get_logger()

LINK_UPDATE_FIELDS = {"strength", "notes", "metadata", "position"}


@dataclass
class SyncResult:
    """Ids inserted and removed by a sync operation."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def _unique(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(str(i) for i in ids))


class LinkManager:
    """Creates, reads and reconciles links between entities."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def link_entities(
        self,
        source: EntityRef,
        target: EntityRef,
        link_type: str = "related",
        strength: LinkStrength | str | None = None,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
        position: int | None = None,
    ) -> Link:
        """Create a single link between two persisted entities."""
        source_id = source.require_id("link_entities")
        target_id = target.require_id("link_entities")
        validate_link(source.type, target.type, link_type)
        warn_if_uncommon_link(source.type, target.type, link_type, "link_entities")

        logger.info("Linking entities", source=str(source), target=str(target), link_type=link_type)
        rows = self.backend.insert(
            LINKS_TABLE,
            [
                {
                    "source_type": source.type.value,
                    "source_id": source_id,
                    "target_type": target.type.value,
                    "target_id": target_id,
                    "link_type": link_type,
                    "strength": LinkStrength(strength).value if strength else None,
                    "notes": notes,
                    "metadata": metadata or {},
                    "position": position,
                }
            ],
        )
        return Link.from_row(rows[0])

    def unlink_entities(self, source: EntityRef, target: EntityRef, link_type: str | None = None) -> int:
        """Remove links between two entities, optionally only of one type."""
        eq = {
            "source_type": source.type.value,
            "source_id": source.require_id("unlink_entities"),
            "target_type": target.type.value,
            "target_id": target.require_id("unlink_entities"),
        }
        if link_type:
            eq["link_type"] = link_type
        logger.info("Unlinking entities", source=str(source), target=str(target), link_type=link_type)
        return self.backend.delete(LINKS_TABLE, eq=eq)

    def get_linked_entities(
        self,
        entity: EntityRef,
        direction: str = "both",
        link_type: str | None = None,
        target_type: EntityType | None = None,
    ) -> list[Link]:
        """Get links for an entity in the requested direction.

        Args:
            entity: Entity whose links to read
            direction: "outgoing", "incoming" or "both"
            link_type: Only links of this type
            target_type: Type of the entity on the other side of the link
        """
        if direction not in ("outgoing", "incoming", "both"):
            raise ValidationError(f"Invalid direction '{direction}'", field="direction")
        entity_id = entity.require_id("get_linked_entities")
        other = EntityType(target_type).value if target_type else "*"
        rows: list[Row] = []

        with timed("get_linked_entities", entity.type.value, other) as timer:
            if direction in ("outgoing", "both"):
                eq = {"source_type": entity.type.value, "source_id": entity_id}
                if link_type:
                    eq["link_type"] = link_type
                if target_type:
                    eq["target_type"] = EntityType(target_type).value
                rows.extend(self.backend.select(LINKS_TABLE, eq=eq, order_by="position"))

            if direction in ("incoming", "both"):
                eq = {"target_type": entity.type.value, "target_id": entity_id}
                if link_type:
                    eq["link_type"] = link_type
                if target_type:
                    eq["source_type"] = EntityType(target_type).value
                rows.extend(self.backend.select(LINKS_TABLE, eq=eq))
            timer.record(rows)

        return [Link.from_row(row) for row in rows]

    def get_linked_entities_with_data(
        self,
        source: EntityRef,
        target_type: EntityType,
        link_type: str | None = None,
    ) -> list[tuple[Link, Row]]:
        """Get outgoing links together with the target rows they point at.

        Links whose target row no longer exists are left out.
        """
        target_type = EntityType(target_type)
        eq = {
            "source_type": source.type.value,
            "source_id": source.require_id("get_linked_entities_with_data"),
            "target_type": target_type.value,
        }
        if link_type:
            eq["link_type"] = link_type

        with timed("get_linked_entities_with_data", source.type.value, target_type.value) as timer:
            links = [Link.from_row(row) for row in self.backend.select(LINKS_TABLE, eq=eq, order_by="position")]
            if not links:
                return []
            entities = self.backend.select(target_type.table, in_={"id": [link.target_id for link in links]})
            by_id = {str(e["id"]): e for e in entities}
            result = [(link, by_id[link.target_id]) for link in links if link.target_id in by_id]
            timer.record(result)
        return result

    def get_linked_entity_counts(self, source: EntityRef) -> dict[EntityType, int]:
        """Count outgoing links per target type."""
        rows = self.backend.select(
            LINKS_TABLE,
            columns="target_type",
            eq={"source_type": source.type.value, "source_id": source.require_id("get_linked_entity_counts")},
        )
        counts: dict[EntityType, int] = {}
        for row in rows:
            target_type = EntityType(row["target_type"])
            counts[target_type] = counts.get(target_type, 0) + 1
        return counts

    def update_link(self, link_id: str, **updates: Any) -> Link:
        """Update strength, notes, metadata or position of a link."""
        unknown = set(updates) - LINK_UPDATE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update link fields: {', '.join(sorted(unknown))}")
        if updates.get("strength"):
            updates["strength"] = LinkStrength(updates["strength"]).value
        logger.info("Updating link", link_id=link_id, fields=list(updates))
        rows = self.backend.update(LINKS_TABLE, updates, eq={"id": link_id})
        if not rows:
            raise ValidationError(f"Link {link_id} not found", field="id")
        return Link.from_row(rows[0])

    def update_link_position(self, link_id: str, position: int) -> None:
        self.backend.update(LINKS_TABLE, {"position": position}, eq={"id": link_id})

    def delete_link(self, link_id: str) -> None:
        logger.info("Deleting link", link_id=link_id)
        self.backend.delete(LINKS_TABLE, eq={"id": link_id})

    def are_entities_linked(self, source: EntityRef, target: EntityRef, link_type: str | None = None) -> bool:
        eq = {
            "source_type": source.type.value,
            "source_id": source.require_id("are_entities_linked"),
            "target_type": target.type.value,
            "target_id": target.require_id("are_entities_linked"),
        }
        if link_type:
            eq["link_type"] = link_type
        return self.backend.count(LINKS_TABLE, eq=eq) > 0

    def get_related_entities(self, entity: EntityRef, target_type: EntityType | None = None) -> dict[str, list[Link]]:
        """Get 'related' links in both directions, since that link type is symmetric."""
        entity_id = entity.require_id("get_related_entities")
        outgoing_eq = {"source_type": entity.type.value, "source_id": entity_id, "link_type": "related"}
        incoming_eq = {"target_type": entity.type.value, "target_id": entity_id, "link_type": "related"}
        if target_type:
            outgoing_eq["target_type"] = EntityType(target_type).value
            incoming_eq["source_type"] = EntityType(target_type).value

        with timed("get_related_entities", entity.type.value, str(target_type or "*")) as timer:
            outgoing = [Link.from_row(r) for r in self.backend.select(LINKS_TABLE, eq=outgoing_eq)]
            incoming = [Link.from_row(r) for r in self.backend.select(LINKS_TABLE, eq=incoming_eq)]
            timer.record(outgoing + incoming)
        return {"outgoing": outgoing, "incoming": incoming}

    def sync_entity_links(
        self,
        source: EntityRef,
        target_type: EntityType,
        link_type: str,
        target_ids: list[str],
    ) -> SyncResult:
        """Make the persisted targets of (source, target_type, link_type) equal ``target_ids``.

        Stale links are deleted by row id before missing ones are inserted in one
        bulk call. New rows take their position from their index in ``target_ids``.

        Raises:
            MissingIdentifierError: If the source has no id (no backend call is made)
        """
        source_id = source.require_id("sync_entity_links")
        target_type = EntityType(target_type)
        validate_link(source.type, target_type, link_type)
        warn_if_uncommon_link(source.type, target_type, link_type, "sync_entity_links")
        desired = _unique(target_ids)

        with timed("sync_entity_links", source.type.value, target_type.value):
            existing = self.backend.select(
                LINKS_TABLE,
                columns="id, target_id",
                eq={
                    "source_type": source.type.value,
                    "source_id": source_id,
                    "target_type": target_type.value,
                    "link_type": link_type,
                },
            )
            result = self._reconcile(existing, "target_id", desired)

            if result.removed:
                stale = [row["id"] for row in existing if str(row["target_id"]) in result.removed]
                self.backend.delete(LINKS_TABLE, in_={"id": stale})

            if result.added:
                self.backend.insert(
                    LINKS_TABLE,
                    [
                        {
                            "source_type": source.type.value,
                            "source_id": source_id,
                            "target_type": target_type.value,
                            "target_id": target_id,
                            "link_type": link_type,
                            "position": desired.index(target_id),
                            "metadata": {},
                        }
                        for target_id in result.added
                    ],
                )

        logger.info(
            "Synced entity links",
            source=str(source),
            target_type=target_type.value,
            link_type=link_type,
            added=len(result.added),
            removed=len(result.removed),
        )
        return result

    def sync_entity_links_as_target(
        self,
        target: EntityRef,
        source_type: EntityType,
        link_type: str,
        source_ids: list[str],
    ) -> SyncResult:
        """Mirror of sync_entity_links for relationships owned by the link target.

        Raises:
            MissingIdentifierError: If the target has no id (no backend call is made)
        """
        target_id = target.require_id("sync_entity_links_as_target")
        source_type = EntityType(source_type)
        validate_link(source_type, target.type, link_type)
        warn_if_uncommon_link(source_type, target.type, link_type, "sync_entity_links_as_target")
        desired = _unique(source_ids)

        with timed("sync_entity_links_as_target", source_type.value, target.type.value):
            existing = self.backend.select(
                LINKS_TABLE,
                columns="id, source_id",
                eq={
                    "source_type": source_type.value,
                    "target_type": target.type.value,
                    "target_id": target_id,
                    "link_type": link_type,
                },
            )
            result = self._reconcile(existing, "source_id", desired)

            if result.removed:
                stale = [row["id"] for row in existing if str(row["source_id"]) in result.removed]
                self.backend.delete(LINKS_TABLE, in_={"id": stale})

            if result.added:
                self.backend.insert(
                    LINKS_TABLE,
                    [
                        {
                            "source_type": source_type.value,
                            "source_id": source_id,
                            "target_type": target.type.value,
                            "target_id": target_id,
                            "link_type": link_type,
                            "position": desired.index(source_id),
                            "metadata": {},
                        }
                        for source_id in result.added
                    ],
                )

        logger.info(
            "Synced entity links as target",
            target=str(target),
            source_type=source_type.value,
            link_type=link_type,
            added=len(result.added),
            removed=len(result.removed),
        )
        return result

    @staticmethod
    def _reconcile(existing: list[Row], column: str, desired: list[str]) -> SyncResult:
        current = [str(row[column]) for row in existing]
        wanted = set(desired)
        return SyncResult(
            added=[i for i in desired if i not in set(current)],
            removed=_unique([i for i in current if i not in wanted]),
        )

    def sync_pending_links(
        self,
        source: EntityRef,
        target_type: EntityType,
        pending_links: list[PendingLink],
    ) -> list[Link]:
        """Insert buffered links for a freshly created source.

        Insert-only: a new source has no links to reconcile against. An empty
        buffer issues no backend call.
        """
        source_id = source.require_id("sync_pending_links")
        if not pending_links:
            return []
        target_type = EntityType(target_type)
        for pending in pending_links:
            validate_link(source.type, target_type, pending.link_type)

        rows = [
            {
                "source_type": source.type.value,
                "source_id": source_id,
                "target_type": target_type.value,
                "target_id": pending.target_id,
                "link_type": pending.link_type,
                "notes": pending.notes,
                "position": pending.position if pending.position is not None else index,
                "metadata": {},
            }
            for index, pending in enumerate(pending_links)
        ]
        logger.info("Syncing pending links", source=str(source), target_type=target_type.value, count=len(rows))
        return [Link.from_row(row) for row in self.backend.insert(LINKS_TABLE, rows)]

    def sync_pending_links_as_target(
        self,
        target: EntityRef,
        source_type: EntityType,
        pending_links: list[PendingLink],
    ) -> list[Link]:
        """Insert buffered inbound links for a freshly created target.

        Each pending link's ``target_id`` holds the id of the link source.
        """
        target_id = target.require_id("sync_pending_links_as_target")
        if not pending_links:
            return []
        source_type = EntityType(source_type)
        for pending in pending_links:
            validate_link(source_type, target.type, pending.link_type)

        rows = [
            {
                "source_type": source_type.value,
                "source_id": pending.target_id,
                "target_type": target.type.value,
                "target_id": target_id,
                "link_type": pending.link_type,
                "notes": pending.notes,
                "position": pending.position if pending.position is not None else index,
                "metadata": {},
            }
            for index, pending in enumerate(pending_links)
        ]
        logger.info(
            "Syncing pending links as target", target=str(target), source_type=source_type.value, count=len(rows)
        )
        return [Link.from_row(row) for row in self.backend.insert(LINKS_TABLE, rows)]
