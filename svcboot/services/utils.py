from typing import Any, Final

from fastapi import APIRouter, Request

router: Final = APIRouter(tags=["utils"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    return {"status": "ok", "service": request.app.state.service.name}
