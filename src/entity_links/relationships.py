"""Relationship manager: reads, groups and edits the links shown for one entity."""

from dataclasses import dataclass
from typing import Any

import structlog

from entity_links.backend import Backend, Row
from entity_links.errors import DatabaseError, ValidationError
from entity_links.links import LinkManager, SyncResult
from entity_links.models import LINKS_TABLE, Direction, EntityRef, EntityType, Link, RelationshipSlot
from entity_links.pending import PendingBuffer

logger = structlog.get_logger()

PLACEHOLDER_LABEL = "(missing {type} {id})"


@dataclass
class LinkedItem:
    """One entity shown in a slot, backed by a persisted link or a pending one."""

    entity_id: str
    label: str
    slot: RelationshipSlot
    link_id: str | None = None
    subtitle: str | None = None
    position: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.link_id is None

    @property
    def edit_href(self) -> str | None:
        return self.slot.edit_href(self.entity_id) if self.slot.edit_href else None


@dataclass
class AvailableItem:
    id: str
    label: str
    subtitle: str | None = None


class RelationshipManager:
    """Multi-slot view over an entity's relationships.

    In edit mode (the entity has an id) links are read from and written to the
    backend immediately. In create mode every change goes to the pending
    buffer, which is flushed once the entity has been inserted.
    """

    def __init__(
        self,
        backend: Backend,
        entity: EntityRef,
        slots: list[RelationshipSlot],
        pending: PendingBuffer | None = None,
    ) -> None:
        if not entity.is_persisted and pending is None:
            raise ValueError("A pending buffer is required for an entity without an id")
        self.backend = backend
        self.entity = entity
        self.slots = list(slots)
        self.pending = pending
        self.links = LinkManager(backend)
        self._existing: list[Link] = []
        self._labels: dict[tuple[EntityType, str], dict[str, Row]] = {}
        self._loaded = False

    @property
    def is_edit_mode(self) -> bool:
        return self.entity.is_persisted

    def load(self) -> None:
        """Read every link touching the entity in two queries, then resolve labels."""
        self._existing = []
        if self.is_edit_mode:
            entity_id = self.entity.id
            outgoing = self.backend.select(
                LINKS_TABLE,
                eq={"source_type": self.entity.type.value, "source_id": entity_id},
                order_by="position",
            )
            incoming = self.backend.select(
                LINKS_TABLE,
                eq={"target_type": self.entity.type.value, "target_id": entity_id},
                order_by="position",
            )
            self._existing = [Link.from_row(row) for row in outgoing + incoming]
            logger.debug("Loaded relationships", entity=str(self.entity), count=len(self._existing))
        self._resolve_labels()
        self._loaded = True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _slot_links(self, slot: RelationshipSlot) -> list[Link]:
        if slot.direction == Direction.INBOUND:
            return [
                link
                for link in self._existing
                if link.source_type == slot.target_type
                and link.link_type == slot.link_type
                and link.target_type == self.entity.type
                and link.target_id == self.entity.id
            ]
        return [
            link
            for link in self._existing
            if link.source_type == self.entity.type
            and link.source_id == self.entity.id
            and link.target_type == slot.target_type
            and link.link_type == slot.link_type
        ]

    @staticmethod
    def _other_id(slot: RelationshipSlot, link: Link) -> str:
        return link.source_id if slot.direction == Direction.INBOUND else link.target_id

    def _label_columns(self, slot: RelationshipSlot) -> str:
        columns = ["id", slot.display_field]
        if slot.subtitle_field:
            columns.append(slot.subtitle_field)
        return ", ".join(columns)

    def _resolve_labels(self) -> None:
        """Look up display labels for every linked id, one query per (type, display field)."""
        wanted: dict[tuple[EntityType, str], tuple[str, set[str]]] = {}
        for slot in self.slots:
            ids = {self._other_id(slot, link) for link in self._slot_links(slot)}
            if not ids:
                continue
            key = (slot.target_type, slot.display_field)
            columns, collected = wanted.setdefault(key, (self._label_columns(slot), set()))
            collected.update(ids)

        self._labels = {}
        for (target_type, display_field), (columns, ids) in wanted.items():
            try:
                rows = self.backend.select(target_type.table, columns=columns, in_={"id": sorted(ids)})
            except DatabaseError as e:
                logger.warning(
                    "Failed to resolve relationship labels",
                    target_type=target_type.value,
                    code=e.code,
                    error=e.message,
                )
                rows = []
            self._labels[(target_type, display_field)] = {str(row["id"]): row for row in rows}

    def _label_for(self, slot: RelationshipSlot, entity_id: str) -> tuple[str, str | None]:
        row = self._labels.get((slot.target_type, slot.display_field), {}).get(entity_id)
        if row is None:
            return PLACEHOLDER_LABEL.format(type=slot.target_type.label, id=entity_id), None
        label = row.get(slot.display_field) or entity_id
        subtitle = row.get(slot.subtitle_field) if slot.subtitle_field else None
        return str(label), subtitle

    def linked_items(self, slot: RelationshipSlot) -> list[LinkedItem]:
        """Entities currently linked through a slot, in position order for ordered slots."""
        if not self.is_edit_mode:
            return [
                LinkedItem(entity_id=p.target_id, label=p.target_label, slot=slot, position=p.position)
                for p in self.pending.links_for(slot.target_type, slot.link_type, slot.direction)
            ]

        self._ensure_loaded()
        items = []
        for link in self._slot_links(slot):
            entity_id = self._other_id(slot, link)
            label, subtitle = self._label_for(slot, entity_id)
            items.append(
                LinkedItem(
                    entity_id=entity_id,
                    label=label,
                    slot=slot,
                    link_id=link.id,
                    subtitle=subtitle,
                    position=link.position,
                )
            )
        if slot.ordered:
            items.sort(key=lambda item: (item.position is None, item.position or 0))
        return items

    def groups(self) -> dict[str, list[tuple[RelationshipSlot, list[LinkedItem]]]]:
        """Slots and their items grouped by the slot's group label, in slot order."""
        grouped: dict[str, list[tuple[RelationshipSlot, list[LinkedItem]]]] = {}
        for slot in self.slots:
            grouped.setdefault(slot.group, []).append((slot, self.linked_items(slot)))
        return grouped

    def group_count(self, group: str) -> int:
        return sum(len(items) for _, items in self.groups().get(group, []))

    def total_count(self) -> int:
        return sum(len(self.linked_items(slot)) for slot in self.slots)

    def available_items(self, slot: RelationshipSlot) -> list[AvailableItem]:
        """Candidates for a slot that are not linked yet."""
        rows = self.backend.select(
            slot.target_type.table, columns=self._label_columns(slot), order_by=slot.display_field
        )
        linked = {item.entity_id for item in self.linked_items(slot)}
        if slot.target_type == self.entity.type and self.entity.id:
            linked.add(self.entity.id)
        return [
            AvailableItem(
                id=str(row["id"]),
                label=str(row.get(slot.display_field) or row["id"]),
                subtitle=row.get(slot.subtitle_field) if slot.subtitle_field else None,
            )
            for row in rows
            if str(row["id"]) not in linked
        ]

    def _sync(self, slot: RelationshipSlot, ids: list[str]) -> SyncResult:
        if slot.direction == Direction.INBOUND:
            return self.links.sync_entity_links_as_target(self.entity, slot.target_type, slot.link_type, ids)
        return self.links.sync_entity_links(self.entity, slot.target_type, slot.link_type, ids)

    def add(self, slot: RelationshipSlot, target_id: str, label: str | None = None) -> SyncResult | None:
        """Link a target through a slot.

        Create mode buffers the link and returns None. Single-valued slots
        replace their current target.
        """
        if not self.is_edit_mode:
            if not slot.allow_multiple:
                for pending in self.pending.links_for(slot.target_type, slot.link_type, slot.direction):
                    self.pending.remove_link(slot.target_type, pending.target_id, slot.link_type, slot.direction)
            self.pending.add_link(
                slot.target_type,
                target_id,
                label or self._lookup_label(slot, target_id),
                slot.link_type,
                ordered=slot.ordered,
                direction=slot.direction,
            )
            return None

        current = [item.entity_id for item in self.linked_items(slot)]
        desired = [*current, target_id] if slot.allow_multiple else [target_id]
        logger.info("Adding relationship", entity=str(self.entity), slot=slot.label, target_id=target_id)
        result = self._sync(slot, desired)
        self.load()
        if slot.ordered:
            self._renumber(slot)
        return result

    def remove(self, slot: RelationshipSlot, entity_id: str) -> SyncResult | None:
        """Unlink an entity from a slot. Create mode drops it from the buffer and returns None."""
        if not self.is_edit_mode:
            self.pending.remove_link(slot.target_type, entity_id, slot.link_type, slot.direction)
            return None

        current = [item.entity_id for item in self.linked_items(slot)]
        logger.info("Removing relationship", entity=str(self.entity), slot=slot.label, entity_id=entity_id)
        result = self._sync(slot, [i for i in current if i != entity_id])
        self.load()
        if slot.ordered:
            self._renumber(slot)
        return result

    def reorder(self, slot: RelationshipSlot, ordered_ids: list[str]) -> None:
        """Persist a new order for an ordered slot. ``ordered_ids`` must be a permutation of the linked ids."""
        if not slot.ordered:
            raise ValidationError(f"Slot '{slot.label}' is not ordered", field="slot")
        if not self.is_edit_mode:
            current = [p.target_id for p in self.pending.links_for(slot.target_type, slot.link_type, slot.direction)]
            self._check_permutation(slot, current, ordered_ids)
            self.pending.set_order(slot.target_type, slot.link_type, ordered_ids, slot.direction)
            return

        self.load()
        items = self.linked_items(slot)
        self._check_permutation(slot, [item.entity_id for item in items], ordered_ids)
        by_entity = {item.entity_id: item for item in items}
        self._write_positions(slot, [by_entity[i] for i in ordered_ids])

    @staticmethod
    def _check_permutation(slot: RelationshipSlot, current: list[str], ordered_ids: list[str]) -> None:
        if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(current):
            raise ValidationError(
                f"Order for '{slot.label}' must list every linked item exactly once", field="ordered_ids"
            )

    def _renumber(self, slot: RelationshipSlot) -> None:
        """Read all links of an ordered slot and rewrite positions as 0..n-1."""
        self._write_positions(slot, self.linked_items(slot))

    def _write_positions(self, slot: RelationshipSlot, items: list[LinkedItem]) -> None:
        for index, item in enumerate(items):
            if item.position != index:
                self.links.update_link_position(item.link_id, index)
                item.position = index
        positions = {item.link_id: item.position for item in items}
        for link in self._existing:
            if link.id in positions:
                link.position = positions[link.id]
        logger.debug("Renumbered ordered slot", entity=str(self.entity), slot=slot.label, count=len(items))

    def _lookup_label(self, slot: RelationshipSlot, target_id: str) -> str:
        try:
            row = self.backend.select_one(slot.target_type.table, columns=self._label_columns(slot), eq={"id": target_id})
        except DatabaseError as e:
            logger.warning("Failed to look up label", target_type=slot.target_type.value, error=e.message)
            row = None
        if not row:
            return PLACEHOLDER_LABEL.format(type=slot.target_type.label, id=target_id)
        return str(row.get(slot.display_field) or target_id)

    def to_dict(self) -> dict[str, Any]:
        """Plain structure of the grouped relationships, for rendering."""
        return {
            "entity": {"type": self.entity.type.value, "id": self.entity.id},
            "groups": {
                group: [
                    {
                        "label": slot.label,
                        "target_type": slot.target_type.value,
                        "link_type": slot.link_type,
                        "direction": slot.direction.value,
                        "items": [
                            {"id": item.entity_id, "label": item.label, "link_id": item.link_id} for item in items
                        ],
                    }
                    for slot, items in entries
                ]
                for group, entries in self.groups().items()
            },
        }
