"""Webhook subscription management and broadcast routes."""

from fastapi import APIRouter, Depends, HTTPException

from src.core import NotificationCore
from src.exceptions import WebhookNotFound
from src.routes.dependencies import get_core
from src.schemas.webhooks import (
    BroadcastRequest,
    BroadcastResponse,
    WebhookConfig,
    WebhookDeliveryAttempt,
    WebhookSubscription,
    WebhookSubscriptionView,
)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _view(subscription: WebhookSubscription) -> WebhookSubscriptionView:
    return WebhookSubscriptionView(
        id=subscription.id,
        org_id=subscription.org_id,
        url=subscription.url,
        events=sorted(subscription.subscribed_events),
        is_active=subscription.is_active,
        last_success_at=subscription.last_success_at,
        last_failure_at=subscription.last_failure_at,
        failure_count=subscription.failure_count,
    )


@router.get("/subscriptions", response_model=list[WebhookSubscriptionView])
async def list_subscriptions(core: NotificationCore = Depends(get_core)) -> list[WebhookSubscriptionView]:
    return [_view(s) for s in core.webhooks.get_webhooks().values()]


@router.post("/subscriptions/{webhook_id}", response_model=WebhookSubscriptionView)
async def register_subscription(
    webhook_id: str,
    config: WebhookConfig,
    core: NotificationCore = Depends(get_core),
) -> WebhookSubscriptionView:
    """Create or replace a subscription. Driven by the organisation management API."""
    return _view(core.webhooks.register_webhook(webhook_id, config))


@router.delete("/subscriptions/{webhook_id}", status_code=204)
async def unregister_subscription(webhook_id: str, core: NotificationCore = Depends(get_core)) -> None:
    if not core.webhooks.unregister_webhook(webhook_id):
        raise HTTPException(status_code=404, detail=f"Webhook not found: {webhook_id}")


@router.post("/subscriptions/{webhook_id}/test", response_model=WebhookDeliveryAttempt)
async def test_subscription(webhook_id: str, core: NotificationCore = Depends(get_core)) -> WebhookDeliveryAttempt:
    try:
        return await core.webhooks.test_webhook(webhook_id)
    except WebhookNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/broadcast", response_model=BroadcastResponse, status_code=202)
async def broadcast_event(
    request: BroadcastRequest,
    core: NotificationCore = Depends(get_core),
) -> BroadcastResponse:
    """Fan an event out to subscribers; delivery continues after the response."""
    tasks = await core.webhooks.broadcast(
        request.event, request.data, request.org_id, target_ids=request.target_ids
    )
    return BroadcastResponse(deliveries=len(tasks))
