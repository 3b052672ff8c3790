"""Pydantic models for CLIP v2 bridge payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class OnState(BaseModel):
    """``on`` block of a light or grouped light."""

    model_config = ConfigDict(extra="ignore")

    on: bool


class Dimming(BaseModel):
    """``dimming`` block carrying brightness in percent."""

    model_config = ConfigDict(extra="ignore")

    brightness: float

    @field_validator("brightness", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> Any:
        """Clamp numeric brightness into 0..100."""

        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return max(0.0, min(100.0, float(value)))
        return value


class ColorTemperature(BaseModel):
    """``color_temperature`` block; ``mirek`` may be explicitly null."""

    model_config = ConfigDict(extra="ignore")

    mirek: int | None = None
    mirek_valid: bool | None = None

    @field_validator("mirek", mode="before")
    @classmethod
    def _integral_mirek(cls, value: Any) -> Any:
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value


class XYPoint(BaseModel):
    """CIE xy chromaticity point."""

    model_config = ConfigDict(extra="ignore")

    x: float
    y: float


class Color(BaseModel):
    """``color`` block."""

    model_config = ConfigDict(extra="ignore")

    xy: XYPoint | None = None


class Metadata(BaseModel):
    """``metadata`` block with the display name and archetype."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    archetype: str | None = None


class ResourceIdentifier(BaseModel):
    """Reference to another resource (``{rid, rtype}``)."""

    model_config = ConfigDict(extra="ignore")

    rid: str
    rtype: str


class SceneStatus(BaseModel):
    """Scene ``status`` block."""

    model_config = ConfigDict(extra="ignore")

    active: str | None = None


class HueResource(BaseModel):
    """Any CLIP v2 resource record, full or partial.

    Fields are optional because stream events only carry what changed;
    ``model_fields_set`` tells present fields from absent ones.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    type: str | None = None
    on: OnState | None = None
    dimming: Dimming | None = None
    color_temperature: ColorTemperature | None = None
    color: Color | None = None
    metadata: Metadata | None = None
    children: list[ResourceIdentifier] | None = None
    services: list[ResourceIdentifier] | None = None
    group: ResourceIdentifier | None = None
    status: SceneStatus | None = None

    def service_id(self, rtype: str) -> str | None:
        """Return the first service reference of ``rtype``."""

        for service in self.services or ():
            if service.rtype == rtype:
                return service.rid
        return None


class EventEnvelope(BaseModel):
    """One envelope inside an event stream ``data:`` array."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    type: str = "update"
    creationtime: str | None = None
    data: list[dict[str, Any]] = []


class BridgeErrorEntry(BaseModel):
    """Entry of the ``errors`` array in a resource response."""

    model_config = ConfigDict(extra="allow")

    description: str = ""


class ResourceListResponse(BaseModel):
    """Envelope returned by ``GET /clip/v2/resource/...``."""

    model_config = ConfigDict(extra="ignore")

    errors: list[BridgeErrorEntry] = []
    data: list[dict[str, Any]] = []


__all__ = [
    "BridgeErrorEntry",
    "Color",
    "ColorTemperature",
    "Dimming",
    "EventEnvelope",
    "HueResource",
    "Metadata",
    "OnState",
    "ResourceIdentifier",
    "ResourceListResponse",
    "SceneStatus",
    "XYPoint",
]
