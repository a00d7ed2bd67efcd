"""POST /jobs/tick: run one dispatcher tick."""

import structlog
from fastapi import APIRouter, Depends, Request

from ..auth import verify_worker_token

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/jobs/tick")
async def tick(request: Request, _auth: None = Depends(verify_worker_token)):
    """Claim and run up to DISPATCHER_MAX_CLAIMS_PER_TICK jobs."""
    result = await request.app.state.container.dispatcher.tick()
    logger.info("jobs.tick_complete", claimed=result.claimed, aborted=result.aborted)
    return result.to_dict()
