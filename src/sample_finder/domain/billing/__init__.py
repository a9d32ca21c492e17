"""Billing domain - subscription tiers and webhook handling."""

from .tiers import (
    TIER_LIMITS,
    UNLIMITED,
    SubscriptionTier,
    get_tier,
    get_tier_limits,
    tier_from_price_id,
    within_limit,
)
from .webhook import (
    WebhookError,
    handle_webhook_event,
    parse_webhook_payload,
    subscription_values,
)

__all__ = [
    "TIER_LIMITS",
    "UNLIMITED",
    "SubscriptionTier",
    "get_tier",
    "get_tier_limits",
    "tier_from_price_id",
    "within_limit",
    "WebhookError",
    "handle_webhook_event",
    "parse_webhook_payload",
    "subscription_values",
]
