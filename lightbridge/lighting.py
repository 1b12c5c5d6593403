"""Lighting control: convergence checks and group updates against the bridge."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .models import ApplyResult, ColorTarget, Group, GroupChange, Light, VendorBody
from .state import GroupDirectory, LastChangeStore

LOGGER = logging.getLogger(__name__)

# Brightness read back from the bridge can differ from the written value by up to this much.
BRIGHTNESS_TOLERANCE = 1.0


def members_of(group: Group, lights: Iterable[Light]) -> List[Light]:
    """Lights belonging to ``group``; rooms list devices, zones list lights."""

    return [
        light
        for light in lights
        if light.id in group.member_ids or (light.owner_id is not None and light.owner_id in group.member_ids)
    ]


def lights_on(group: Group, lights: Iterable[Light]) -> List[Light]:
    return [light for light in members_of(group, lights) if light.is_on]


def deviates(light: Light, target: ColorTarget, tolerance: float = BRIGHTNESS_TOLERANCE) -> bool:
    if target.mirek is not None:
        if light.mirek is None or light.mirek != target.mirek:
            return True
    if target.brightness is not None:
        if light.brightness is None or abs(light.brightness - target.brightness) > tolerance:
            return True
    return False


def is_converged(
    group: Group, lights: Iterable[Light], target: ColorTarget, tolerance: float = BRIGHTNESS_TOLERANCE
) -> bool:
    """True when every lit member already matches ``target``.

    A group with no lit members is converged.
    """

    return not any(deviates(light, target, tolerance) for light in lights_on(group, lights))


def resolve_toggle(change: GroupChange, group: Group, lights: Iterable[Light]) -> Optional[bool]:
    """Turn a requested change into the on/off value to write, or ``None`` for no switch."""

    if change == GroupChange.ON:
        return True
    if change == GroupChange.OFF:
        return False
    if change == GroupChange.TOGGLE:
        return len(lights_on(group, lights)) == 0
    if change == GroupChange.NONE:
        return None
    raise ValueError(f"Unexpected change type: {change}")


def build_state_payload(
    on: Optional[bool] = None,
    target: Optional[ColorTarget] = None,
    transition_ms: Optional[int] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if on is not None:
        payload["on"] = {"on": on}
    if target is not None:
        payload.update(target.as_payload())
    if payload and transition_ms is not None:
        payload["dynamics"] = {"duration": transition_ms}
    return payload


class LightSource(Protocol):
    async def get_lights(self) -> List[Light]: ...

    async def write_group_state(self, aggregate_id: str, payload: Dict[str, Any]) -> VendorBody: ...


class LightingController:
    """Applies on/off and color changes to named groups, skipping redundant writes."""

    def __init__(
        self,
        client: LightSource,
        directory: GroupDirectory,
        last_change: LastChangeStore,
        all_lights_group: str,
        transition_ms: Optional[int] = None,
    ) -> None:
        self._client = client
        self._directory = directory
        self._last_change = last_change
        self._all_lights_group = all_lights_group
        self._transition_ms = transition_ms

    @property
    def all_lights_group(self) -> str:
        return self._all_lights_group

    async def update_color(self, target: ColorTarget, group_name: Optional[str] = None) -> ApplyResult:
        name = group_name or self._all_lights_group
        group = await self._directory.lookup(name)
        if target.is_empty():
            return ApplyResult(group=group.name, written=False)

        lights = await self._client.get_lights()
        if is_converged(group, lights, target):
            LOGGER.info(
                "Group %s already at mirek=%s brightness=%s; no write needed",
                group.name,
                target.mirek,
                target.brightness,
            )
            return ApplyResult(group=group.name, written=False)

        payload = build_state_payload(target=target, transition_ms=self._transition_ms)
        LOGGER.info("Updating group %s color: %s", group.name, payload)
        await self._client.write_group_state(group.aggregate_id, payload)
        return ApplyResult(group=group.name, written=True, payload=payload)

    def _fill_from_last_change(self, mirek: Optional[int], brightness: Optional[float]) -> ColorTarget:
        last = self._last_change.get()
        if last is not None:
            if mirek is None:
                mirek = last.mirek
            if brightness is None:
                brightness = last.brightness
        return ColorTarget(mirek=mirek, brightness=brightness)

    async def set_group(
        self,
        group_name: str,
        change: GroupChange,
        mirek: Optional[int] = None,
        brightness: Optional[float] = None,
        use_last_change: bool = True,
    ) -> ApplyResult:
        change = GroupChange(change)
        if use_last_change:
            target = self._fill_from_last_change(mirek, brightness)
        else:
            target = ColorTarget(mirek=mirek, brightness=brightness)

        if change == GroupChange.NONE:
            return await self.update_color(target, group_name)

        group = await self._directory.lookup(group_name)
        lights = await self._client.get_lights()
        turn_on = resolve_toggle(change, group, lights)
        LOGGER.info("Toggling group %r to %s", group.name, "on" if turn_on else "off")

        # Not run through the convergence guard: the lights being switched on have no lit reading
        # to compare against, so the color always rides along with an on write (see DESIGN.md).
        color = target if turn_on and not target.is_empty() else None
        payload = build_state_payload(on=turn_on, target=color, transition_ms=self._transition_ms)
        await self._client.write_group_state(group.aggregate_id, payload)
        return ApplyResult(group=group.name, written=True, payload=payload, turn_on=turn_on)


__all__ = [
    "BRIGHTNESS_TOLERANCE",
    "LightingController",
    "build_state_payload",
    "deviates",
    "is_converged",
    "lights_on",
    "members_of",
    "resolve_toggle",
]
