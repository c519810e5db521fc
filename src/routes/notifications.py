"""Notification emission routes, called by the visit lifecycle handlers."""

from fastapi import APIRouter, Depends, HTTPException

from src.core import NotificationCore
from src.routes.dependencies import get_core
from src.schemas.notifications import EmitRequest, EmitResponse, ProviderInfo

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/emit", response_model=EmitResponse, status_code=202)
async def emit_notification(
    request: EmitRequest,
    core: NotificationCore = Depends(get_core),
) -> EmitResponse:
    """Queue a notification for delivery through the event's fallback chain.

    Unconfigured event types and rate-limited subjects are skipped, not rejected.
    """
    job_id, reason = await core.notifications.submit(
        request.event_type,
        request.context,
        request.subject_key,
        scope_key=request.scope_key,
        scheduled_at=request.scheduled_at,
        org_id=request.org_id,
    )
    if job_id is None:
        return EmitResponse(status="skipped", reason=reason)
    return EmitResponse(status="queued", job_id=job_id)


@router.get("/providers", response_model=list[ProviderInfo])
async def list_providers(core: NotificationCore = Depends(get_core)) -> list[ProviderInfo]:
    return [
        ProviderInfo(name=p.name, channel_type=p.channel_type)
        for p in core.notifications.providers.providers()
    ]


@router.delete("/jobs/{job_id}", status_code=204)
async def cancel_job(job_id: str, core: NotificationCore = Depends(get_core)) -> None:
    """Remove a scheduled job that no worker has picked up yet."""
    if not await core.notifications.queue.cancel(job_id):
        raise HTTPException(status_code=404, detail="Job not found or already running")
