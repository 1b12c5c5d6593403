"""FastAPI server exposing group control and color updates for the bridge."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Dict, Iterator, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from . import __version__
from .config import EnvironmentConfig, build_environment_config
from .context import BridgeContext, create_context
from .errors import BridgeUnreachable, CertificateMismatch, GroupNotFound, MissingAggregate
from .models import ApplyResult, ColorTarget, GroupChange

LOGGER = logging.getLogger(__name__)


class UpdateColorRequest(BaseModel):
    mirek: int = Field(..., ge=153, le=500, description="Color temperature in mirek")
    brightness: float = Field(..., ge=0, le=100, description="Brightness percentage")


class SetGroupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    group_name: str = Field(..., alias="groupName", min_length=1)
    change: GroupChange
    mirek: Optional[int] = Field(None, ge=153, le=500)
    brightness: Optional[float] = Field(None, ge=0, le=100)


class ToggleGroupRequest(BaseModel):
    group: str = Field(..., min_length=1)
    change: GroupChange


class GroupResponse(BaseModel):
    name: str
    kind: str
    groupId: str
    aggregateId: str
    members: List[str]


def _error_detail(exc: Exception) -> Dict[str, str]:
    return {"name": type(exc).__name__, "message": str(exc)}


@contextlib.contextmanager
def _bridge_errors() -> Iterator[None]:
    """Translate directory and bridge failures into HTTP errors."""

    try:
        yield
    except GroupNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_error_detail(exc)) from exc
    except MissingAggregate as exc:
        LOGGER.error("Group directory is misconfigured: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=_error_detail(exc)) from exc
    except (BridgeUnreachable, CertificateMismatch) as exc:
        LOGGER.error("Bridge request failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=_error_detail(exc)) from exc


async def _respond(operation: Awaitable[ApplyResult]) -> Dict[str, Any]:
    with _bridge_errors():
        result = await operation
    return result.to_response_payload()


def get_context(request: Request) -> BridgeContext:
    context = request.app.state.context
    if context is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bridge context not ready")
    return context


def create_app(
    config: Optional[EnvironmentConfig] = None,
    context: Optional[BridgeContext] = None,
) -> FastAPI:
    """Build the HTTP app.

    Without a ``context`` one is created on startup from ``config``, or from
    the environment when no config is given either.
    """

    app = FastAPI(title="Light Bridge", version=__version__)
    app.state.context = context
    app.state.follower_task = None

    @app.on_event("startup")
    async def startup() -> None:
        if app.state.context is None:
            app.state.context = create_context(config or build_environment_config())
        follower = app.state.context.follower
        if follower is not None:
            app.state.follower_task = asyncio.create_task(follower.run())

    @app.on_event("shutdown")
    async def shutdown() -> None:
        ctx: Optional[BridgeContext] = app.state.context
        task: Optional[asyncio.Task] = app.state.follower_task
        if ctx is not None and ctx.follower is not None:
            ctx.follower.stop()
        if task:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        app.state.follower_task = None
        if ctx is not None and context is None:
            ctx.close()

    @app.get("/status")
    async def service_status() -> Dict[str, str]:
        return {"status": "up"}

    @app.get("/groups", response_model=List[GroupResponse])
    async def list_groups(ctx: BridgeContext = Depends(get_context)) -> List[Dict[str, Any]]:
        with _bridge_errors():
            groups = await ctx.directory.groups()
        return [group.as_dict() for group in groups]

    @app.put("/update-color")
    async def update_color(payload: UpdateColorRequest, ctx: BridgeContext = Depends(get_context)) -> Dict[str, Any]:
        target = ColorTarget(mirek=payload.mirek, brightness=payload.brightness)
        return await _respond(ctx.controller.update_color(target))

    @app.put("/set-group")
    async def set_group(payload: SetGroupRequest, ctx: BridgeContext = Depends(get_context)) -> Dict[str, Any]:
        return await _respond(
            ctx.controller.set_group(
                payload.group_name,
                payload.change,
                mirek=payload.mirek,
                brightness=payload.brightness,
            )
        )

    @app.put("/toggle-group")
    async def toggle_group(payload: ToggleGroupRequest, ctx: BridgeContext = Depends(get_context)) -> Dict[str, Any]:
        return await _respond(ctx.controller.set_group(payload.group, payload.change, use_last_change=False))

    return app


app = create_app()


__all__ = ["app", "create_app", "get_context"]
