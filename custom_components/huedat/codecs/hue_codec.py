"""Codec helpers translating CLIP v2 payloads to domain objects."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import json
import logging
from typing import Any

from pydantic import ValidationError

from ..const import GROUP_TYPES, RTYPE_GROUPED_LIGHT, RTYPE_SCENE
from ..domain.events import EventKind, StreamEvent
from ..domain.state import (
    UNSET,
    GroupResource,
    ResourcePatch,
    ResourceSnapshot,
    SceneResource,
    XYColor,
)
from .hue_models import EventEnvelope, HueResource, ResourceListResponse

_LOGGER = logging.getLogger(__name__)


def decode_resource_list(raw: Any) -> ResourceListResponse:
    """Validate a resource list envelope.

    Raises ``ValueError`` when the payload does not have the envelope shape.
    The ``errors`` array is returned untouched for the caller to judge.
    """

    if not isinstance(raw, Mapping):
        raise ValueError(f"Unexpected resource payload type: {type(raw).__name__}")
    return ResourceListResponse.model_validate(raw)


def decode_resources(items: Iterable[Any]) -> list[HueResource]:
    """Return validated resources, skipping records that fail validation."""

    resources: list[HueResource] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        try:
            resources.append(HueResource.model_validate(item))
        except ValidationError as err:
            _LOGGER.debug("Skipping invalid resource record: %s", err)
    return resources


def patch_from_resource(resource: HueResource) -> ResourcePatch:
    """Return a patch holding only the fields present in ``resource``."""

    present = resource.model_fields_set
    values: dict[str, Any] = {}
    if "on" in present and resource.on is not None:
        values["on"] = resource.on.on
    if "dimming" in present and resource.dimming is not None:
        values["brightness"] = resource.dimming.brightness
    if "color_temperature" in present and resource.color_temperature is not None:
        ct = resource.color_temperature
        if "mirek" in ct.model_fields_set:
            values["mirek"] = ct.mirek
        if "mirek_valid" in ct.model_fields_set:
            values["mirek_valid"] = ct.mirek_valid
    if "color" in present and resource.color is not None and resource.color.xy:
        values["xy"] = XYColor(resource.color.xy.x, resource.color.xy.y)
    if "metadata" in present and resource.metadata is not None:
        meta = resource.metadata
        if "name" in meta.model_fields_set and meta.name is not None:
            values["name"] = meta.name
        if "archetype" in meta.model_fields_set and meta.archetype is not None:
            values["archetype"] = meta.archetype
    if "children" in present and resource.children is not None:
        values["children"] = tuple(child.rid for child in resource.children)
    if "services" in present and resource.services is not None:
        grouped_light_id = resource.service_id(RTYPE_GROUPED_LIGHT)
        if grouped_light_id is not None:
            values["grouped_light_id"] = grouped_light_id
    if "status" in present and resource.status is not None:
        if "active" in resource.status.model_fields_set and resource.status.active:
            values["scene_active"] = resource.status.active
    return ResourcePatch(**values)


def decode_event_data(payload: str) -> list[StreamEvent]:
    """Decode the JSON body of one ``data:`` line into stream events.

    Raises ``ValueError`` for malformed JSON or an unexpected top-level shape;
    individual records without an ``id`` or ``type`` are skipped.
    """

    raw = json.loads(payload)
    if isinstance(raw, Mapping):
        raw = [raw]
    if not isinstance(raw, list):
        raise ValueError(f"Unexpected event payload type: {type(raw).__name__}")

    events: list[StreamEvent] = []
    for item in raw:
        envelope = EventEnvelope.model_validate(item)
        kind = EventKind.parse(envelope.type)
        for record in envelope.data:
            if not isinstance(record, Mapping):
                continue
            resource_type = record.get("type")
            if not record.get("id") or not isinstance(resource_type, str):
                continue
            try:
                resource = HueResource.model_validate(record)
            except ValidationError as err:
                _LOGGER.debug(
                    "Skipping invalid %s event record: %s", resource_type, err
                )
                continue
            events.append(
                StreamEvent(
                    resource_id=resource.id,
                    resource_type=resource_type,
                    patch=patch_from_resource(resource),
                    kind=kind,
                )
            )
    return events


def snapshot_from_grouped_light(
    resource: HueResource, *, name: str = ""
) -> ResourceSnapshot:
    """Return the aggregate light state carried by a grouped light."""

    patch = patch_from_resource(resource)
    return patch.apply_to_snapshot(ResourceSnapshot(id=resource.id, name=name))


def decode_groups(
    group_items: Iterable[Any],
    grouped_light_items: Iterable[Any],
    *,
    group_type: str,
) -> list[GroupResource]:
    """Join rooms or zones with the grouped light each one exposes.

    A group's snapshot always comes from the grouped light referenced in its
    ``services``; groups without one keep an empty snapshot.
    """

    if group_type not in GROUP_TYPES:
        raise ValueError(f"Unsupported group type: {group_type}")

    lights = {
        resource.id: resource for resource in decode_resources(grouped_light_items)
    }
    groups: list[GroupResource] = []
    for resource in decode_resources(group_items):
        patch = patch_from_resource(resource)
        name = patch.name if patch.name is not UNSET else ""
        grouped_light_id = (
            patch.grouped_light_id if patch.grouped_light_id is not UNSET else None
        )
        snapshot = None
        if grouped_light_id is not None:
            light = lights.get(grouped_light_id)
            if light is not None:
                snapshot = snapshot_from_grouped_light(light, name=name)
            else:
                _LOGGER.debug(
                    "Grouped light %s referenced by %s is missing",
                    grouped_light_id,
                    resource.id,
                )
        groups.append(
            GroupResource(
                id=resource.id,
                group_type=group_type,
                name=name,
                archetype=patch.archetype if patch.archetype is not UNSET else None,
                children=patch.children if patch.children is not UNSET else (),
                grouped_light_id=grouped_light_id,
                snapshot=snapshot,
            )
        )
    return groups


def decode_scenes(
    items: Iterable[Any], groups: Iterable[GroupResource] = ()
) -> list[SceneResource]:
    """Return scenes with their owning room or zone resolved."""

    group_types = {group.id: group.group_type for group in groups}
    scenes: list[SceneResource] = []
    for resource in decode_resources(items):
        if resource.type not in (None, RTYPE_SCENE):
            continue
        group_id = resource.group.rid if resource.group else None
        group_type = resource.group.rtype if resource.group else None
        scenes.append(
            SceneResource(
                id=resource.id,
                name=(resource.metadata.name if resource.metadata else None) or "",
                group_id=group_id,
                group_type=group_types.get(group_id or "", group_type),
                active=resource.status.active if resource.status else None,
            )
        )
    return scenes


def encode_power(on: bool) -> dict[str, Any]:
    """Return the grouped light body for a power command."""

    return {"on": {"on": bool(on)}}


def encode_brightness(brightness: float) -> dict[str, Any]:
    """Return the grouped light body for an absolute brightness command."""

    return {"dimming": {"brightness": max(0.0, min(100.0, float(brightness)))}}


def encode_scene_recall() -> dict[str, Any]:
    """Return the scene body that activates a scene."""

    return {"recall": {"action": "active"}}


__all__ = [
    "decode_event_data",
    "decode_groups",
    "decode_resource_list",
    "decode_resources",
    "decode_scenes",
    "encode_brightness",
    "encode_power",
    "encode_scene_recall",
    "patch_from_resource",
    "snapshot_from_grouped_light",
]
