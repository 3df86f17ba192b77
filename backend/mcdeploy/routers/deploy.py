from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..deploy import CancelRequest, DeployProgress
from ..engine import DeployEngine

router = APIRouter(prefix="/deploy", tags=["deploy"])


def get_engine(request: Request) -> DeployEngine:
    return request.app.state.engine


EngineDep = Annotated[DeployEngine, Depends(get_engine)]


@router.get("/{task_id}", response_model=DeployProgress)
async def get_deploy_progress(task_id: str, engine: EngineDep):
    """Current snapshot of a deploy task, for clients that poll."""
    return engine.tracker.require_snapshot(task_id)


@router.get("/{task_id}/events")
async def stream_deploy_progress(task_id: str, engine: EngineDep):
    """Server-sent events, one per progress report, closed after the final one."""
    engine.tracker.require_snapshot(task_id)

    async def event_stream():
        async for progress in engine.tracker.watch(task_id):
            yield f"data: {progress.model_dump_json()}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.post("/{task_id}/cancel", response_model=DeployProgress)
async def cancel_deploy(task_id: str, body: CancelRequest, engine: EngineDep):
    return await engine.servers.cancel_deployment(task_id, body.delete_on_cancel)
