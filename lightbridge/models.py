"""Dataclasses for groups, lights and lighting changes."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class GroupChange(str, Enum):
    """Requested on/off transition for a group."""

    ON = "on"
    OFF = "off"
    TOGGLE = "toggle"
    NONE = "none"


@dataclass(frozen=True)
class Group:
    """A named zone or room and the bridge identifiers needed to drive it."""

    name: str
    kind: str
    group_id: str
    aggregate_id: str
    member_ids: FrozenSet[str] = field(default_factory=frozenset)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "groupId": self.group_id,
            "aggregateId": self.aggregate_id,
            "members": sorted(self.member_ids),
        }


@dataclass(frozen=True)
class Light:
    """Live state of a single light as reported by the bridge."""

    id: str
    is_on: bool
    owner_id: Optional[str] = None
    name: Optional[str] = None
    mirek: Optional[int] = None
    brightness: Optional[float] = None

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "Light":
        """Build a light from a ``light`` resource of the CLIP v2 API."""

        on = resource.get("on") or {}
        dimming = resource.get("dimming") or {}
        temperature = resource.get("color_temperature") or {}
        mirek = temperature.get("mirek")
        # The bridge keeps the last mirek around while the light is in xy mode.
        if not temperature.get("mirek_valid", True):
            mirek = None
        brightness = dimming.get("brightness")
        return cls(
            id=resource["id"],
            is_on=bool(on.get("on", False)),
            owner_id=(resource.get("owner") or {}).get("rid"),
            name=(resource.get("metadata") or {}).get("name"),
            mirek=int(mirek) if mirek is not None else None,
            brightness=float(brightness) if brightness is not None else None,
        )


@dataclass(frozen=True)
class ColorTarget:
    """Desired color temperature and brightness; ``None`` leaves a field alone."""

    mirek: Optional[int] = None
    brightness: Optional[float] = None

    def is_empty(self) -> bool:
        return self.mirek is None and self.brightness is None

    def as_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.mirek is not None:
            payload["color_temperature"] = {"mirek": self.mirek}
        if self.brightness is not None:
            payload["dimming"] = {"brightness": self.brightness}
        return payload


@dataclass(frozen=True)
class LastAppliedChange:
    """Most recent color decision received from the schedule service."""

    mirek: int
    brightness: float
    now: Optional[str] = None
    just_updated: bool = False
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_target(self) -> ColorTarget:
        return ColorTarget(mirek=self.mirek, brightness=self.brightness)


@dataclass
class VendorBody:
    """Response body from the bridge: succeeded items plus inline per-item faults."""

    data: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, payload: Any) -> "VendorBody":
        if not isinstance(payload, dict):
            return cls()
        data = payload.get("data") or []
        errors = []
        for entry in payload.get("errors") or []:
            if isinstance(entry, dict):
                errors.append(str(entry.get("description", entry)))
            else:
                errors.append(str(entry))
        return cls(data=[item for item in data if isinstance(item, dict)], errors=errors)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


@dataclass
class ApplyResult:
    """Outcome of a lighting update: whether a write was issued and with what."""

    group: str
    written: bool
    payload: Optional[Dict[str, Any]] = None
    turn_on: Optional[bool] = None

    def to_response_payload(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {"status": "ok", "group": self.group, "written": self.written}
        if self.payload is not None:
            response["payload"] = self.payload
        if self.turn_on is not None:
            response["on"] = self.turn_on
        return response


__all__ = [
    "GroupChange",
    "Group",
    "Light",
    "ColorTarget",
    "LastAppliedChange",
    "VendorBody",
    "ApplyResult",
]
