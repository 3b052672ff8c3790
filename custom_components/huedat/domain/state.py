"""Domain runtime state objects."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Final


class _Unset:
    """Marker type for patch fields absent from a payload."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final = _Unset()


def _coerce_float(value: Any) -> float | None:
    """Return ``value`` as a float when possible."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return None
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def clamp_brightness(value: Any) -> float:
    """Return ``value`` clamped to the 0..100 brightness range."""

    number = _coerce_float(value)
    if number is None:
        raise ValueError(f"Invalid brightness value: {value!r}")
    return max(0.0, min(100.0, number))


@dataclass(frozen=True, slots=True)
class XYColor:
    """CIE 1931 chromaticity coordinates."""

    x: float
    y: float


@dataclass(frozen=True, slots=True)
class ResourceSnapshot:
    """Aggregate light state for a room or zone.

    Equality only covers the fields that matter for change detection; the
    ``mirek_valid`` flag is carried along but never triggers an update.
    """

    id: str
    on: bool = False
    brightness: float = 0.0
    mirek: int | None = None
    xy: XYColor | None = None
    name: str = ""
    mirek_valid: bool | None = field(default=None, compare=False)

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""

        payload: dict[str, Any] = {
            "id": self.id,
            "on": self.on,
            "brightness": self.brightness,
            "name": self.name,
        }
        if self.mirek is not None:
            payload["mirek"] = self.mirek
        if self.mirek_valid is not None:
            payload["mirek_valid"] = self.mirek_valid
        if self.xy is not None:
            payload["xy"] = {"x": self.xy.x, "y": self.xy.y}
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ResourceSnapshot:
        """Build a snapshot from :meth:`as_dict` output."""

        xy_raw = payload.get("xy")
        xy = None
        if isinstance(xy_raw, Mapping):
            x = _coerce_float(xy_raw.get("x"))
            y = _coerce_float(xy_raw.get("y"))
            if x is not None and y is not None:
                xy = XYColor(x, y)
        mirek = payload.get("mirek")
        return cls(
            id=str(payload["id"]),
            on=bool(payload.get("on", False)),
            brightness=_coerce_float(payload.get("brightness")) or 0.0,
            mirek=int(mirek) if isinstance(mirek, (int, float)) else None,
            xy=xy,
            name=str(payload.get("name") or ""),
            mirek_valid=payload.get("mirek_valid"),
        )


@dataclass(frozen=True, slots=True)
class GroupResource:
    """Room or zone with the state of its aggregate grouped light.

    Only ``id``, ``name`` and ``snapshot`` take part in equality; archetype
    and member changes do not count as a change for observers.
    """

    id: str
    group_type: str = field(compare=False)
    name: str
    archetype: str | None = field(default=None, compare=False)
    children: tuple[str, ...] = field(default=(), compare=False)
    grouped_light_id: str | None = field(default=None, compare=False)
    snapshot: ResourceSnapshot | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""

        return {
            "id": self.id,
            "type": self.group_type,
            "name": self.name,
            "archetype": self.archetype,
            "children": list(self.children),
            "grouped_light_id": self.grouped_light_id,
            "snapshot": self.snapshot.as_dict() if self.snapshot else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> GroupResource:
        """Build a group from :meth:`as_dict` output."""

        snapshot_raw = payload.get("snapshot")
        snapshot = (
            ResourceSnapshot.from_dict(snapshot_raw)
            if isinstance(snapshot_raw, Mapping)
            else None
        )
        children_raw = payload.get("children") or ()
        return cls(
            id=str(payload["id"]),
            group_type=str(payload.get("type") or ""),
            name=str(payload.get("name") or ""),
            archetype=payload.get("archetype"),
            children=tuple(str(child) for child in children_raw),
            grouped_light_id=payload.get("grouped_light_id"),
            snapshot=snapshot,
        )


@dataclass(frozen=True, slots=True)
class SceneResource:
    """Scene bound to a room or zone."""

    id: str
    name: str
    group_id: str | None = None
    group_type: str | None = None
    active: str | None = None

    @property
    def is_active(self) -> bool:
        """Return True when the bridge reports the scene as recalled."""

        return self.active not in (None, "inactive")

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""

        return {
            "id": self.id,
            "name": self.name,
            "group_id": self.group_id,
            "group_type": self.group_type,
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> SceneResource:
        """Build a scene from :meth:`as_dict` output."""

        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            group_id=payload.get("group_id"),
            group_type=payload.get("group_type"),
            active=payload.get("active"),
        )


_SNAPSHOT_FIELDS: Final = ("on", "brightness", "mirek", "mirek_valid", "xy")


@dataclass(frozen=True, slots=True)
class ResourcePatch:
    """Partial field set carried by a stream event.

    Every field is either a value or :data:`UNSET`; absent fields are never
    treated as cleared.
    """

    on: bool | _Unset = UNSET
    brightness: float | _Unset = UNSET
    mirek: int | None | _Unset = UNSET
    mirek_valid: bool | None | _Unset = UNSET
    xy: XYColor | _Unset = UNSET
    name: str | _Unset = UNSET
    archetype: str | _Unset = UNSET
    children: tuple[str, ...] | _Unset = UNSET
    grouped_light_id: str | _Unset = UNSET
    scene_active: str | _Unset = UNSET

    def present(self) -> dict[str, Any]:
        """Return the fields that were present in the payload."""

        return {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
            if getattr(self, name) is not UNSET
        }

    def has_light_state(self) -> bool:
        """Return True when the patch touches aggregate light fields."""

        return any(getattr(self, name) is not UNSET for name in _SNAPSHOT_FIELDS)

    def apply_to_snapshot(self, snapshot: ResourceSnapshot) -> ResourceSnapshot:
        """Return ``snapshot`` with the present light fields merged in."""

        changes = {
            name: getattr(self, name)
            for name in _SNAPSHOT_FIELDS
            if getattr(self, name) is not UNSET
        }
        if not changes:
            return snapshot
        return replace(snapshot, **changes)

    def apply_to_group(self, group: GroupResource) -> GroupResource:
        """Return ``group`` with the present metadata fields merged in."""

        changes: dict[str, Any] = {}
        if self.name is not UNSET:
            changes["name"] = self.name
        if self.archetype is not UNSET:
            changes["archetype"] = self.archetype
        if self.children is not UNSET:
            changes["children"] = tuple(self.children)
        if self.grouped_light_id is not UNSET:
            changes["grouped_light_id"] = self.grouped_light_id
        if not changes:
            return group
        return replace(group, **changes)


def groups_from_persisted(items: Iterable[Any]) -> list[GroupResource]:
    """Return groups decoded from a persisted list, skipping corrupt items."""

    groups: list[GroupResource] = []
    for item in items:
        if not isinstance(item, Mapping) or "id" not in item:
            continue
        try:
            groups.append(GroupResource.from_dict(item))
        except (KeyError, TypeError, ValueError):
            continue
    return groups


def scenes_from_persisted(items: Iterable[Any]) -> list[SceneResource]:
    """Return scenes decoded from a persisted list, skipping corrupt items."""

    scenes: list[SceneResource] = []
    for item in items:
        if not isinstance(item, Mapping) or "id" not in item:
            continue
        scenes.append(SceneResource.from_dict(item))
    return scenes


__all__ = [
    "UNSET",
    "GroupResource",
    "ResourcePatch",
    "ResourceSnapshot",
    "SceneResource",
    "XYColor",
    "clamp_brightness",
    "groups_from_persisted",
    "scenes_from_persisted",
]
