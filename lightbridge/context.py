"""Process-wide handle bundling the bridge client and the state built on top of it."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .automation import ScheduleFollower
from .bridge_client import BridgeClient
from .config import EnvironmentConfig
from .lighting import LightingController
from .state import GroupDirectory, LastChangeStore


@dataclass
class BridgeContext:
    config: EnvironmentConfig
    client: BridgeClient
    directory: GroupDirectory
    last_change: LastChangeStore
    controller: LightingController
    follower: Optional[ScheduleFollower] = None

    def close(self) -> None:
        self.client.close()


def create_context(config: EnvironmentConfig, client: Optional[BridgeClient] = None) -> BridgeContext:
    """Wire up a :class:`BridgeContext`; ``client`` may be substituted in tests."""

    client = client or BridgeClient(config.bridge)
    directory = GroupDirectory(client)
    last_change = LastChangeStore()
    controller = LightingController(
        client,
        directory,
        last_change,
        all_lights_group=config.all_lights_group,
        transition_ms=config.transition_ms,
    )
    follower = None
    if config.schedule is not None:
        follower = ScheduleFollower(config.schedule, controller, last_change)
    return BridgeContext(
        config=config,
        client=client,
        directory=directory,
        last_change=last_change,
        controller=controller,
        follower=follower,
    )


__all__ = ["BridgeContext", "create_context"]
