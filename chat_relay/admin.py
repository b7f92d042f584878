"""Admin endpoints for inspecting the key pool."""

from typing import Dict

from fastapi import APIRouter, HTTPException, Request

admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.get("/status")
async def get_all_status(request: Request) -> Dict[str, object]:
    """Get the rate-limit status of every key in the pool."""
    key_manager = request.app.state.key_manager
    return key_manager.get_status()


@admin_router.get("/status/{index}")
async def get_key_status(request: Request, index: int) -> Dict[str, object]:
    """Get the rate-limit status of the key at one pool position."""
    key_manager = request.app.state.key_manager
    keys = key_manager.get_status()["keys"]
    if index < 0 or index >= len(keys):
        raise HTTPException(status_code=404, detail=f"Key {index} not found")
    return keys[index]
