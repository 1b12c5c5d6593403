"""In-memory state: the memoized group directory and the last scheduled change."""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Dict, List, Optional, Protocol

from .errors import GroupNotFound, MissingAggregate
from .models import Group, LastAppliedChange, VendorBody

LOGGER = logging.getLogger(__name__)


class GroupSource(Protocol):
    async def fetch_groups(self, kind: str) -> VendorBody: ...

    async def fetch_aggregate_ownership(self) -> VendorBody: ...


class GroupDirectory:
    """Lazily built, process-lifetime mapping from group name to :class:`Group`.

    The mapping is built from the bridge's zones, rooms and grouped lights on
    first use and never refreshed. Callers arriving while the build is in
    flight await the same build. A failed build is discarded so that the next
    call starts over.
    """

    def __init__(self, source: GroupSource) -> None:
        self._source = source
        self._groups: Optional[Dict[str, Group]] = None
        self._build: Optional[asyncio.Future] = None

    @property
    def is_built(self) -> bool:
        return self._groups is not None

    async def ensure_built(self) -> Dict[str, Group]:
        if self._groups is not None:
            return self._groups
        if self._build is None:
            self._build = asyncio.ensure_future(self._populate())
        build = self._build
        try:
            groups = await asyncio.shield(build)
        except Exception:
            if self._build is build:
                self._build = None
            raise
        self._groups = groups
        return groups

    async def _populate(self) -> Dict[str, Group]:
        ownership = await self._source.fetch_aggregate_ownership()
        aggregate_by_owner: Dict[str, str] = {}
        for item in ownership.data:
            owner = (item.get("owner") or {}).get("rid")
            if owner and item.get("id"):
                aggregate_by_owner[owner] = item["id"]

        groups: Dict[str, Group] = {}
        for kind in ("zone", "room"):
            body = await self._source.fetch_groups(kind)
            for record in body.data:
                group = _group_from_record(kind, record, aggregate_by_owner)
                previous = groups.get(group.name)
                if previous is not None:
                    LOGGER.warning(
                        "%s %r replaces %s with the same name (%s -> %s)",
                        kind.capitalize(),
                        group.name,
                        previous.kind,
                        previous.group_id,
                        group.group_id,
                    )
                groups[group.name] = group
                LOGGER.info(
                    "Found %s: %s (rid: %s, id: %s).", kind, group.name, group.group_id, group.aggregate_id
                )
        return groups

    def resolve(self, name: str) -> Group:
        """Return the group called ``name`` without touching the network."""

        if self._groups is None:
            raise RuntimeError("Group directory has not been built yet")
        try:
            return self._groups[name]
        except KeyError:
            raise GroupNotFound(name) from None

    async def lookup(self, name: str) -> Group:
        await self.ensure_built()
        return self.resolve(name)

    async def groups(self) -> List[Group]:
        built = await self.ensure_built()
        return sorted(built.values(), key=lambda group: group.name.lower())


def _group_from_record(kind: str, record: Dict, aggregate_by_owner: Dict[str, str]) -> Group:
    name = (record.get("metadata") or {}).get("name") or record["id"]
    group_id = record["id"]
    aggregate_id = aggregate_by_owner.get(group_id)
    if aggregate_id is None:
        raise MissingAggregate(name, group_id)
    members = frozenset(
        child["rid"] for child in record.get("children") or [] if isinstance(child, dict) and child.get("rid")
    )
    return Group(name=name, kind=kind, group_id=group_id, aggregate_id=aggregate_id, member_ids=members)


class LastChangeStore:
    """Holds the most recent color decision from the schedule service."""

    def __init__(self) -> None:
        self._change: Optional[LastAppliedChange] = None
        self._lock = threading.RLock()

    def record(self, change: LastAppliedChange) -> LastAppliedChange:
        with self._lock:
            self._change = change
            return change

    def get(self) -> Optional[LastAppliedChange]:
        with self._lock:
            return self._change

    def clear(self) -> None:
        with self._lock:
            self._change = None


__all__ = ["GroupDirectory", "GroupSource", "LastChangeStore"]
