"""Health check endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Check store connectivity when the store is Postgres."""
    repository = request.app.state.container.repository
    verify = getattr(repository, "verify_connectivity", None)
    if verify is None:
        return {"status": "ok", "store": "memory"}

    try:
        healthy = await verify()
    except Exception:
        healthy = False

    if healthy:
        return {"status": "ok", "store": "postgres"}
    return JSONResponse(status_code=503, content={"status": "unhealthy"})
