"""
Subscription webhook handling.

Applies Stripe-style subscription events to the ``subscriptions`` table of
the remote store. Events tagged with another app's ``app_name`` metadata are
acknowledged and ignored. Results are plain dicts: ``{"ok": bool}`` plus a
``reason`` when the event was not applied.
"""

import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from ..sync.remote_store import RemoteStore, RemoteStoreError

# Retrieves a subscription object by id (e.g. from the payment provider's API)
FetchSubscription = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]


class WebhookError(Exception):
    """Webhook payload is not a usable event."""

    pass


def parse_webhook_payload(body: str) -> Dict[str, Any]:
    """Decode a raw webhook body.

    Raises:
        WebhookError: If the body is not JSON or has no type/data.object
    """
    try:
        event = json.loads(body)
    except json.JSONDecodeError as e:
        raise WebhookError(f"Invalid JSON: {e}") from e

    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise WebhookError("Event has no type")
    data = event.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("object"), dict):
        raise WebhookError("Event has no data.object")
    return event


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _period_end(subscription: Dict[str, Any]) -> Optional[str]:
    seconds = subscription.get("current_period_end")
    if not seconds:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def _price_id(subscription: Dict[str, Any]) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


def subscription_values(subscription: Dict[str, Any]) -> Dict[str, Any]:
    """Columns of a subscription row derived from a subscription object."""
    return {
        "status": subscription.get("status"),
        "price_id": _price_id(subscription),
        "current_period_end": _period_end(subscription),
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "updated_at": _now_iso(),
    }


async def _checkout_completed(
    session: Dict[str, Any],
    remote: RemoteStore,
    fetch_subscription: Optional[FetchSubscription],
) -> Dict[str, Any]:
    subscription_ref = session.get("subscription")
    if session.get("mode") != "subscription" or not subscription_ref:
        return {"ok": True}

    subscription_id = (
        subscription_ref if isinstance(subscription_ref, str) else subscription_ref.get("id")
    )
    user_id = (session.get("metadata") or {}).get("user_id")

    if fetch_subscription is not None:
        subscription = await fetch_subscription(subscription_id)
    elif isinstance(subscription_ref, dict):
        # Expanded subscription object in the event itself
        subscription = subscription_ref
    else:
        logger.warning("Webhook: no way to retrieve subscription details")
        return {"ok": False, "reason": "not_configured"}

    if not user_id or not subscription:
        logger.warning(f"Webhook: checkout {session.get('id')} has no user or subscription")
        return {"ok": True}

    await remote.table("subscriptions").upsert(
        {
            "user_id": user_id,
            "stripe_customer_id": session.get("customer"),
            "stripe_subscription_id": subscription_id,
            **subscription_values(subscription),
        },
        on_conflict=("user_id",),
    )
    logger.info(f"Subscription {subscription_id} recorded for {user_id}")
    return {"ok": True}


async def handle_webhook_event(
    event: Dict[str, Any],
    remote: Optional[RemoteStore],
    app_name: str = "indie-sample-finder",
    fetch_subscription: Optional[FetchSubscription] = None,
) -> Dict[str, Any]:
    """Apply one webhook event to the subscriptions table.

    Args:
        event: Decoded event (``type`` and ``data.object``)
        remote: Remote store, or None when cloud sync is not configured
        app_name: Events whose metadata names a different app are ignored
        fetch_subscription: Async lookup of a subscription object by id,
            used for ``checkout.session.completed``

    Returns:
        ``{"ok": True}`` when handled or deliberately ignored, otherwise
        ``{"ok": False, "reason": ...}``
    """
    if remote is None:
        logger.info("Webhook: remote store not configured")
        return {"ok": False, "reason": "not_configured"}

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}

    if metadata.get("app_name") and metadata["app_name"] != app_name:
        return {"ok": True, "reason": "not_for_this_app"}

    subscriptions = remote.table("subscriptions")
    try:
        if event_type == "checkout.session.completed":
            return await _checkout_completed(obj, remote, fetch_subscription)

        if event_type == "customer.subscription.updated":
            user_id = metadata.get("user_id")
            if user_id:
                await subscriptions.update(subscription_values(obj), user_id=user_id)
                logger.info(f"Subscription updated for {user_id}: {obj.get('status')}")

        elif event_type == "customer.subscription.deleted":
            user_id = metadata.get("user_id")
            if user_id:
                await subscriptions.update(
                    {"status": "canceled", "updated_at": _now_iso()}, user_id=user_id
                )
                logger.info(f"Subscription canceled for {user_id}")

        else:
            logger.info(f"Unhandled event type: {event_type}")

    except RemoteStoreError as e:
        logger.error(f"Webhook error for {event_type}: {e}")
        return {"ok": False, "reason": "error"}

    return {"ok": True}
