"""Admin endpoints for the runtime CORS allowlist.

All routes require the X-Admin-Key header (see app.middleware.admin_auth).
"""

from fastapi import APIRouter, Depends, HTTPException

from app.middleware.admin_auth import require_admin_key
from app.schemas.forms import CorsOriginRequest
from app.services.cors_allowlist import CorsAllowlist, get_cors_allowlist

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin_key)])


@router.get("/cors")
async def list_origins(allowlist: CorsAllowlist = Depends(get_cors_allowlist)) -> dict:
    return {"allowed": allowlist.list()}


@router.post("/cors")
async def add_origin(
    payload: CorsOriginRequest,
    allowlist: CorsAllowlist = Depends(get_cors_allowlist),
) -> dict:
    if not payload.origin:
        raise HTTPException(status_code=400, detail="origin required")
    allowlist.add(payload.origin)
    return {"allowed": allowlist.list()}


@router.delete("/cors")
async def remove_origin(
    payload: CorsOriginRequest,
    allowlist: CorsAllowlist = Depends(get_cors_allowlist),
) -> dict:
    if not payload.origin:
        raise HTTPException(status_code=400, detail="origin required")
    if not allowlist.remove(payload.origin):
        raise HTTPException(status_code=404, detail="origin not found")
    return {"allowed": allowlist.list()}


@router.post("/cors/reset")
async def reset_origins(allowlist: CorsAllowlist = Depends(get_cors_allowlist)) -> dict:
    return {"allowed": allowlist.reset()}
