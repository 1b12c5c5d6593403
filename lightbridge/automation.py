"""Periodic follower for the companion schedule service."""
from __future__ import annotations

import asyncio
import logging
from typing import Literal, Optional, Union

import requests
from pydantic import BaseModel, Field, ValidationError

from .config import ScheduleConfig
from .errors import ScheduleServiceError
from .lighting import LightingController
from .models import ApplyResult, LastAppliedChange
from .state import LastChangeStore

LOGGER = logging.getLogger(__name__)


class MirekBrightness(BaseModel):
    mirek: int = Field(..., ge=153, le=500)
    brightness: float = Field(..., ge=0, le=100)


class ChangeActionColor(BaseModel):
    color: MirekBrightness


class NowChange(BaseModel):
    """Payload of ``GET /now`` on the schedule service."""

    now: str
    change_action: Union[Literal["none"], ChangeActionColor]
    just_updated: bool

    @property
    def color(self) -> Optional[MirekBrightness]:
        if isinstance(self.change_action, ChangeActionColor):
            return self.change_action.color
        return None


def fetch_now_change(config: ScheduleConfig, timeout: float = 10.0) -> NowChange:
    url = f"{config.service_url}/now"
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as exc:
        raise ScheduleServiceError(f"Schedule service request failed: {exc}") from exc
    except ValueError as exc:
        raise ScheduleServiceError("Schedule service returned a non-JSON body") from exc

    try:
        return NowChange.model_validate(payload)
    except ValidationError as exc:
        raise ScheduleServiceError(f"Invalid schedule payload: {exc}") from exc


class ScheduleFollower:
    """Pulls the current scheduled change and applies it to the all-lights group."""

    def __init__(
        self,
        config: ScheduleConfig,
        controller: LightingController,
        last_change: LastChangeStore,
    ) -> None:
        self._config = config
        self._controller = controller
        self._last_change = last_change
        self._running = False

    async def apply_once(self) -> Optional[ApplyResult]:
        loop = asyncio.get_running_loop()
        now_change = await loop.run_in_executor(None, fetch_now_change, self._config)
        color = now_change.color
        if color is None:
            LOGGER.info("No change to be made.")
            return None

        recorded = self._last_change.record(
            LastAppliedChange(
                mirek=color.mirek,
                brightness=color.brightness,
                now=now_change.now,
                just_updated=now_change.just_updated,
            )
        )
        return await self._controller.update_color(recorded.as_target())

    async def run(self) -> None:
        LOGGER.info(
            "Starting schedule follower for %s every %ss", self._config.service_url, self._config.interval_seconds
        )
        self._running = True
        while self._running:
            try:
                await self.apply_once()
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.exception("Scheduled update failed: %s", exc)
            await asyncio.sleep(self._config.interval_seconds)

    def stop(self) -> None:
        LOGGER.info("Stopping schedule follower")
        self._running = False


__all__ = [
    "ChangeActionColor",
    "MirekBrightness",
    "NowChange",
    "ScheduleFollower",
    "fetch_now_change",
]
