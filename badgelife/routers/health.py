"""Service health checks aggregated under /health."""

from __future__ import annotations

import os
from typing import Any, Dict

from fastapi import APIRouter, Request

from badgelife import __version__

router = APIRouter(tags=["health"])

# check name -> app.state attribute holding an object with ``async health()``
_CHECKS = {
    "openai": "vlm",
    "serpapi": "web_search",
    "qdrant": "vector_store",
    "redis": "event_bus",
    "supabase": "catalog",
}


def _app_version() -> str:
    return os.getenv("APP_VERSION") or os.getenv("GIT_SHA") or __version__


async def _check(request: Request, attribute: str) -> bool:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        return False
    try:
        return bool(await service.health())
    except Exception:
        return False


async def _collect_status(request: Request) -> Dict[str, bool]:
    return {name: await _check(request, attribute) for name, attribute in _CHECKS.items()}


@router.get("/health", name="health_root")
async def health_root(request: Request) -> Dict[str, Any]:
    statuses = await _collect_status(request)
    return {
        "ok": all(statuses.values()),
        "services": list(statuses.keys()),
        "version": _app_version(),
        "details": statuses,
    }


@router.get("/health/openai", name="health_openai")
async def health_openai(request: Request) -> Dict[str, bool]:
    return {"ok": await _check(request, _CHECKS["openai"])}


@router.get("/health/serpapi", name="health_serpapi")
async def health_serpapi(request: Request) -> Dict[str, bool]:
    return {"ok": await _check(request, _CHECKS["serpapi"])}


@router.get("/health/qdrant", name="health_qdrant")
async def health_qdrant(request: Request) -> Dict[str, bool]:
    return {"ok": await _check(request, _CHECKS["qdrant"])}


@router.get("/health/redis", name="health_redis")
async def health_redis(request: Request) -> Dict[str, bool]:
    return {"ok": await _check(request, _CHECKS["redis"])}


@router.get("/health/supabase", name="health_supabase")
async def health_supabase(request: Request) -> Dict[str, bool]:
    return {"ok": await _check(request, _CHECKS["supabase"])}


__all__ = ["router"]
