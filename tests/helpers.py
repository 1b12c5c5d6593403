"""Bridge resource builders and an in-memory stand-in for :class:`BridgeClient`."""
from __future__ import annotations

import asyncio
from collections import Counter
from typing import Any, Dict, List, Optional

from lightbridge.config import BridgeConfig, EnvironmentConfig
from lightbridge.models import Light, VendorBody


def group_record(group_id: str, name: str, children: List[str], rtype: str = "light") -> Dict[str, Any]:
    return {
        "id": group_id,
        "metadata": {"name": name, "archetype": "other"},
        "children": [{"rid": rid, "rtype": rtype} for rid in children],
    }


def grouped_light(aggregate_id: str, owner: str) -> Dict[str, Any]:
    return {"id": aggregate_id, "owner": {"rid": owner, "rtype": "zone"}, "on": {"on": True}}


def light_record(
    light_id: str,
    on: bool,
    mirek: Optional[int] = 500,
    brightness: Optional[float] = 50.0,
    owner: Optional[str] = None,
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "id": light_id,
        "owner": {"rid": owner or f"device-{light_id}", "rtype": "device"},
        "metadata": {"name": f"Light {light_id}"},
        "on": {"on": on},
        "dimming": {"brightness": brightness},
        "color_temperature": {"mirek": mirek, "mirek_valid": mirek is not None},
    }
    if brightness is None:
        del record["dimming"]
    return record


def default_layout() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "zones": [
            group_record("zone-living", "Living", ["l1", "l2"]),
            group_record("zone-all", "All Lights", ["l1", "l2", "l3"]),
            group_record("zone-office", "Office", ["l1"]),
        ],
        "rooms": [
            group_record("room-bed", "Bedroom", ["device-l3"], rtype="device"),
            group_record("room-office", "Office", ["device-l2"], rtype="device"),
        ],
        "grouped_lights": [
            grouped_light("gl-living", "zone-living"),
            grouped_light("gl-all", "zone-all"),
            grouped_light("gl-zone-office", "zone-office"),
            grouped_light("gl-bed", "room-bed"),
            grouped_light("gl-room-office", "room-office"),
        ],
        "lights": [
            light_record("l1", on=True),
            light_record("l2", on=False),
            light_record("l3", on=True),
        ],
    }


class FakeBridge:
    """Records calls and writes; ``delay`` stretches each fetch so builds overlap."""

    def __init__(
        self,
        zones: Optional[List[Dict[str, Any]]] = None,
        rooms: Optional[List[Dict[str, Any]]] = None,
        grouped_lights: Optional[List[Dict[str, Any]]] = None,
        lights: Optional[List[Dict[str, Any]]] = None,
        delay: float = 0.0,
        fail_with: Optional[Exception] = None,
    ) -> None:
        layout = default_layout()
        self.zones = layout["zones"] if zones is None else zones
        self.rooms = layout["rooms"] if rooms is None else rooms
        self.grouped_lights = layout["grouped_lights"] if grouped_lights is None else grouped_lights
        self.lights = layout["lights"] if lights is None else lights
        self.delay = delay
        self.fail_with = fail_with
        self.calls: Counter = Counter()
        self.writes: List[tuple] = []
        self.closed = False

    async def _pause(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def fetch_groups(self, kind: str) -> VendorBody:
        self.calls[kind] += 1
        await self._pause()
        return VendorBody(data=list(self.zones if kind == "zone" else self.rooms))

    async def fetch_aggregate_ownership(self) -> VendorBody:
        self.calls["grouped_light"] += 1
        await self._pause()
        return VendorBody(data=list(self.grouped_lights))

    async def get_lights(self) -> List[Light]:
        self.calls["light"] += 1
        await self._pause()
        return [Light.from_resource(record) for record in self.lights]

    async def write_group_state(self, aggregate_id: str, payload: Dict[str, Any]) -> VendorBody:
        self.calls["write"] += 1
        self.writes.append((aggregate_id, payload))
        return VendorBody()

    def close(self) -> None:
        self.closed = True


def make_config(**overrides: Any) -> EnvironmentConfig:
    values: Dict[str, Any] = {
        "bridge": BridgeConfig(base_url="https://bridge.test", api_key="secret", bridge_id="001788FFFE123456"),
        "all_lights_group": "All Lights",
        "schedule": None,
    }
    values.update(overrides)
    return EnvironmentConfig(**values)
