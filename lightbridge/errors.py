"""Error taxonomy shared by the bridge client, directory and HTTP layer."""
from __future__ import annotations

from typing import Optional


class LightBridgeError(Exception):
    """Base class for every error raised by the light bridge."""


class ConfigurationError(LightBridgeError):
    """Raised when required configuration is missing or malformed."""


class GroupNotFound(LightBridgeError):
    """Raised when a group name is absent from the group directory."""

    def __init__(self, name: str) -> None:
        super().__init__(f'Group "{name}" not found in the directory.')
        self.name = name


class MissingAggregate(ConfigurationError):
    """Raised when a zone or room has no grouped light on the bridge."""

    def __init__(self, name: str, group_id: str) -> None:
        super().__init__(f'Group "{name}" ({group_id}) has no grouped light on the bridge.')
        self.name = name
        self.group_id = group_id


class BridgeUnreachable(LightBridgeError):
    """Transport failure or non-2xx response from the vendor bridge."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CertificateMismatch(LightBridgeError):
    """The bridge certificate failed the pinned identity check."""


class ScheduleServiceError(LightBridgeError):
    """The companion schedule service could not be reached or sent bad data."""


__all__ = [
    "LightBridgeError",
    "ConfigurationError",
    "GroupNotFound",
    "MissingAggregate",
    "BridgeUnreachable",
    "CertificateMismatch",
    "ScheduleServiceError",
]
