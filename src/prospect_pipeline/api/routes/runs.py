"""Run endpoints: create, start, cancel, inspect."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from prospect_pipeline.errors import ValidationError
from prospect_pipeline.models import SearchContext

from ..auth import verify_worker_token

router = APIRouter(prefix="/runs", dependencies=[Depends(verify_worker_token)])


class CreateRunRequest(BaseModel):
    owner_id: str
    context: SearchContext


class OwnerRequest(BaseModel):
    owner_id: str


@router.post("", status_code=201)
async def create_run(body: CreateRunRequest, request: Request):
    """Persist a new Run without starting it."""
    run = await request.app.state.container.trigger.create(body.owner_id, body.context)
    return {"run_id": run.id, "status": run.status.value}


@router.post("/{run_id}/start", status_code=202)
async def start_run(run_id: str, body: OwnerRequest, request: Request):
    """
    Accept a Run for background orchestration.

    Always 202 once ownership is confirmed; the outcome is reported through
    the Run's status, never in this response.
    """
    try:
        return await request.app.state.container.trigger.accept(run_id, body.owner_id)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{run_id}/cancel")
async def cancel_run(run_id: str, body: OwnerRequest, request: Request):
    try:
        cancelled = await request.app.state.container.trigger.cancel(run_id, body.owner_id)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return {"run_id": run_id, "cancelled": cancelled}


@router.get("/{run_id}")
async def get_run(run_id: str, request: Request) -> dict[str, Any]:
    """Run status plus its per-stage tasks."""
    try:
        run, tasks = await request.app.state.container.trigger.status(run_id)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=e.message)

    return {
        "run_id": run.id,
        "owner_id": run.owner_id,
        "phase": run.phase.value,
        "status": run.status.value,
        "progress_pct": run.progress_pct,
        "error": run.error,
        "tasks": [
            {
                "name": t.name,
                "status": t.status.value,
                "attempt": t.attempt,
                "error": t.error,
            }
            for t in tasks
        ],
    }
