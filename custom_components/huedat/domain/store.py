"""Canonical in-memory cache of rooms, zones and scenes."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
import logging
from typing import Any

from ..const import GROUP_TYPES, RTYPE_GROUPED_LIGHT, RTYPE_SCENE
from .events import EventKind, StreamEvent
from .state import (
    UNSET,
    GroupResource,
    ResourcePatch,
    ResourceSnapshot,
    SceneResource,
    groups_from_persisted,
    scenes_from_persisted,
)

_LOGGER = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    """Kinds of change notifications published by :class:`StateStore`."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class StoreChange:
    """A single observable change to the cached resources.

    ``current`` is ``None`` for deletions and ``previous`` is ``None`` for
    inserts.
    """

    kind: ChangeKind
    resource_id: str
    resource_type: str
    current: GroupResource | SceneResource | None = None
    previous: GroupResource | SceneResource | None = None


StoreListener = Callable[[StoreChange], None]


class StateStore:
    """Own the group and scene maps and serialise every mutation.

    Readers get immutable objects and never need the lock. Writers (full
    refreshes, stream batches, confirmed optimistic values and hydration) are
    all funnelled through one ``asyncio.Lock`` so stream events arriving after
    a refresh are applied on top of the refreshed data.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._groups: dict[str, GroupResource] = {}
        self._scenes: dict[str, SceneResource] = {}
        self._light_index: dict[str, str] | None = None
        self._listeners: list[StoreListener] = []

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------
    def async_add_listener(self, listener: StoreListener) -> Callable[[], None]:
        """Register ``listener`` and return a callback that removes it."""

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, changes: Iterable[StoreChange]) -> None:
        """Deliver ``changes`` to every registered listener in order."""

        for change in changes:
            for listener in list(self._listeners):
                try:
                    listener(change)
                except Exception:
                    _LOGGER.exception(
                        "Store listener failed for %s %s",
                        change.kind.value,
                        change.resource_id,
                    )

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------
    def groups(self) -> list[GroupResource]:
        """Return the cached groups in display order."""

        return list(self._groups.values())

    def group(self, group_id: str) -> GroupResource | None:
        """Return the cached group for ``group_id`` if known."""

        return self._groups.get(group_id)

    def scenes(self, group_id: str | None = None) -> list[SceneResource]:
        """Return cached scenes, optionally limited to one group."""

        if group_id is None:
            return list(self._scenes.values())
        return [scene for scene in self._scenes.values() if scene.group_id == group_id]

    def scene(self, scene_id: str) -> SceneResource | None:
        """Return the cached scene for ``scene_id`` if known."""

        return self._scenes.get(scene_id)

    def owner_of(self, grouped_light_id: str) -> str | None:
        """Return the id of the group that owns ``grouped_light_id``."""

        if self._light_index is None:
            self._light_index = {
                group.grouped_light_id: group.id
                for group in self._groups.values()
                if group.grouped_light_id
            }
            _LOGGER.debug(
                "Rebuilt grouped light index with %d entries", len(self._light_index)
            )
        return self._light_index.get(grouped_light_id)

    def _invalidate_index(self) -> None:
        self._light_index = None

    # ------------------------------------------------------------------
    # Full refresh
    # ------------------------------------------------------------------
    async def async_apply_full_refresh(
        self,
        groups: Iterable[GroupResource],
        *,
        group_type: str | None = None,
    ) -> list[StoreChange]:
        """Reconcile the cache against a full refresh of ``groups``.

        Unchanged items are left untouched, changed items are replaced in
        place, new items are appended and items missing from ``groups`` are
        removed. When ``group_type`` is given only existing groups of that
        type are candidates for removal.
        """

        async with self._lock:
            changes = self._reconcile_groups(list(groups), group_type)
            self._notify(changes)
        return changes

    def _reconcile_groups(
        self, incoming: list[GroupResource], group_type: str | None
    ) -> list[StoreChange]:
        changes: list[StoreChange] = []
        seen: set[str] = set()
        index_dirty = False
        for item in incoming:
            if item.id in seen:
                _LOGGER.debug("Ignoring duplicate group %s in refresh", item.id)
                continue
            seen.add(item.id)
            existing = self._groups.get(item.id)
            if existing is None:
                self._groups[item.id] = item
                index_dirty = True
                changes.append(
                    StoreChange(ChangeKind.INSERT, item.id, item.group_type, item)
                )
                continue
            if existing.grouped_light_id != item.grouped_light_id:
                index_dirty = True
            if existing == item:
                # Restricted equality ignores metadata; keep it current silently.
                if _metadata_differs(existing, item):
                    self._groups[item.id] = item
                continue
            self._groups[item.id] = item
            changes.append(
                StoreChange(
                    ChangeKind.UPDATE, item.id, item.group_type, item, existing
                )
            )

        for group_id, existing in list(self._groups.items()):
            if group_id in seen:
                continue
            if group_type is not None and existing.group_type != group_type:
                continue
            del self._groups[group_id]
            index_dirty = True
            changes.append(
                StoreChange(
                    ChangeKind.DELETE, group_id, existing.group_type, None, existing
                )
            )

        if index_dirty:
            self._invalidate_index()
        if changes:
            _LOGGER.debug(
                "Full refresh (%s) produced %d change(s)",
                group_type or "all",
                len(changes),
            )
        return changes

    async def async_apply_scenes(
        self, scenes: Iterable[SceneResource]
    ) -> list[StoreChange]:
        """Reconcile the cached scenes against a full scene list."""

        async with self._lock:
            changes: list[StoreChange] = []
            incoming: dict[str, SceneResource] = {}
            for scene in scenes:
                incoming.setdefault(scene.id, scene)
            for scene_id, scene in incoming.items():
                existing = self._scenes.get(scene_id)
                if existing == scene:
                    continue
                self._scenes[scene_id] = scene
                kind = ChangeKind.INSERT if existing is None else ChangeKind.UPDATE
                changes.append(
                    StoreChange(kind, scene_id, RTYPE_SCENE, scene, existing)
                )
            for scene_id in [sid for sid in self._scenes if sid not in incoming]:
                existing = self._scenes.pop(scene_id)
                changes.append(
                    StoreChange(ChangeKind.DELETE, scene_id, RTYPE_SCENE, None, existing)
                )
            self._notify(changes)
        return changes

    # ------------------------------------------------------------------
    # Stream events
    # ------------------------------------------------------------------
    async def async_apply_stream_event(self, event: StreamEvent) -> list[StoreChange]:
        """Merge one stream event into the cache."""

        return await self.async_apply_stream_events((event,))

    async def async_apply_stream_events(
        self, events: Iterable[StreamEvent]
    ) -> list[StoreChange]:
        """Merge a batch of stream events in wire order."""

        async with self._lock:
            changes: list[StoreChange] = []
            for event in events:
                change = self._apply_event(event)
                if change is not None:
                    changes.append(change)
            self._notify(changes)
        return changes

    def _apply_event(self, event: StreamEvent) -> StoreChange | None:
        if event.kind is EventKind.ERROR:
            _LOGGER.debug(
                "Ignoring error event for %s %s",
                event.resource_type,
                event.resource_id,
            )
            return None
        if event.resource_type == RTYPE_GROUPED_LIGHT:
            return self._apply_grouped_light(event)
        if event.resource_type in GROUP_TYPES:
            return self._apply_group_metadata(event)
        if event.resource_type == RTYPE_SCENE:
            return self._apply_scene(event)
        return None

    def _apply_grouped_light(self, event: StreamEvent) -> StoreChange | None:
        owner = self.owner_of(event.resource_id)
        if owner is None:
            return None
        group = self._groups[owner]
        if event.kind is EventKind.DELETE:
            if group.grouped_light_id != event.resource_id:
                return None
            updated = replace(group, grouped_light_id=None, snapshot=None)
            self._groups[owner] = updated
            self._invalidate_index()
            return StoreChange(
                ChangeKind.UPDATE, owner, group.group_type, updated, group
            )
        if not event.patch.has_light_state():
            return None
        return self._merge_light_patch(group, event.patch)

    def _merge_light_patch(
        self, group: GroupResource, patch: ResourcePatch
    ) -> StoreChange | None:
        snapshot = group.snapshot or ResourceSnapshot(
            id=group.grouped_light_id or group.id, name=group.name
        )
        updated = replace(group, snapshot=patch.apply_to_snapshot(snapshot))
        self._groups[group.id] = updated
        if updated == group:
            return None
        return StoreChange(
            ChangeKind.UPDATE, group.id, group.group_type, updated, group
        )

    def _apply_group_metadata(self, event: StreamEvent) -> StoreChange | None:
        existing = self._groups.get(event.resource_id)
        if event.kind is EventKind.DELETE:
            if existing is None:
                return None
            del self._groups[event.resource_id]
            self._invalidate_index()
            return StoreChange(
                ChangeKind.DELETE,
                event.resource_id,
                existing.group_type,
                None,
                existing,
            )
        if existing is None:
            if event.kind is not EventKind.ADD or event.patch.name is UNSET:
                return None
            created = event.patch.apply_to_group(
                GroupResource(
                    id=event.resource_id,
                    group_type=event.resource_type,
                    name="",
                )
            )
            self._groups[created.id] = created
            self._invalidate_index()
            return StoreChange(
                ChangeKind.INSERT, created.id, created.group_type, created
            )
        updated = event.patch.apply_to_group(existing)
        if updated is existing:
            return None
        if updated.name != existing.name and updated.snapshot is not None:
            updated = replace(
                updated, snapshot=replace(updated.snapshot, name=updated.name)
            )
        self._groups[updated.id] = updated
        if updated.grouped_light_id != existing.grouped_light_id:
            self._invalidate_index()
        if updated == existing:
            return None
        return StoreChange(
            ChangeKind.UPDATE, updated.id, updated.group_type, updated, existing
        )

    def _apply_scene(self, event: StreamEvent) -> StoreChange | None:
        existing = self._scenes.get(event.resource_id)
        if event.kind is EventKind.DELETE:
            if existing is None:
                return None
            del self._scenes[event.resource_id]
            return StoreChange(
                ChangeKind.DELETE, event.resource_id, RTYPE_SCENE, None, existing
            )
        if existing is None:
            return None
        patch = event.patch
        changes: dict[str, Any] = {}
        if patch.name is not UNSET:
            changes["name"] = patch.name
        if patch.scene_active is not UNSET:
            changes["active"] = patch.scene_active
        if not changes:
            return None
        updated = replace(existing, **changes)
        if updated == existing:
            return None
        self._scenes[updated.id] = updated
        return StoreChange(
            ChangeKind.UPDATE, updated.id, RTYPE_SCENE, updated, existing
        )

    # ------------------------------------------------------------------
    # Confirmed writes
    # ------------------------------------------------------------------
    async def async_apply_confirmed(
        self, group_id: str, patch: ResourcePatch
    ) -> StoreChange | None:
        """Promote a bridge-confirmed light change into the durable cache."""

        async with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                _LOGGER.debug("Dropping confirmed change for unknown group %s", group_id)
                return None
            change = self._merge_light_patch(group, patch)
            if change is not None:
                self._notify((change,))
        return change

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def as_persisted(self) -> dict[str, list[dict[str, Any]]]:
        """Return a point-in-time serialisation of the cached resources."""

        return {
            "groups": [group.as_dict() for group in self._groups.values()],
            "scenes": [scene.as_dict() for scene in self._scenes.values()],
        }

    async def async_hydrate(self, payload: Any) -> int:
        """Load a previously persisted serialisation into an empty store.

        Accepts the mapping written by :meth:`as_persisted` or a bare list of
        groups. Returns the number of hydrated groups; corrupt entries are
        skipped and hydration never clobbers data that arrived first.
        """

        if isinstance(payload, Mapping):
            group_items = payload.get("groups") or []
            scene_items = payload.get("scenes") or []
        elif isinstance(payload, list):
            group_items, scene_items = payload, []
        else:
            return 0

        async with self._lock:
            if self._groups:
                _LOGGER.debug("Skipping hydration; store already populated")
                return 0
            for group in groups_from_persisted(group_items):
                self._groups.setdefault(group.id, group)
            for scene in scenes_from_persisted(scene_items):
                self._scenes.setdefault(scene.id, scene)
            self._invalidate_index()
            changes = [
                StoreChange(ChangeKind.INSERT, group.id, group.group_type, group)
                for group in self._groups.values()
            ]
            self._notify(changes)
        _LOGGER.debug("Hydrated %d cached group(s)", len(changes))
        return len(changes)


def _metadata_differs(left: GroupResource, right: GroupResource) -> bool:
    """Return True when fields outside restricted equality differ."""

    return (
        left.group_type != right.group_type
        or left.archetype != right.archetype
        or left.children != right.children
        or left.grouped_light_id != right.grouped_light_id
        or (
            left.snapshot is not None
            and right.snapshot is not None
            and left.snapshot.mirek_valid != right.snapshot.mirek_valid
        )
    )


__all__ = ["ChangeKind", "StateStore", "StoreChange", "StoreListener"]
