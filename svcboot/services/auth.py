from typing import Any, Final

from fastapi import APIRouter, Depends, Request

from ..infrastructure.database.handle import DatabaseHandle, get_database

router: Final = APIRouter(tags=["auth"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    return {"status": "ok", "service": request.app.state.service.name}


@router.get("/health/database")
async def database_health(
    database: DatabaseHandle = Depends(get_database),
) -> dict[str, Any]:
    """Round-trip a trivial query through the shared handle."""
    rows = await database.query("SELECT 1 AS ok")
    return {"status": "ok" if rows and rows[0]["ok"] == 1 else "degraded"}
