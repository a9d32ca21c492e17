"""Subscription tiers and their limits."""

from typing import Dict, Literal, Optional, TypedDict

from ...core.config import BillingConfig
from ..sync.remote_store import RemoteStore

SubscriptionTier = Literal["free", "pro", "pro_plus"]

UNLIMITED = -1

# Statuses that grant the paid tier of the subscribed price
ACTIVE_STATUSES = ("active", "trialing")


class TierLimits(TypedDict):
    max_assets: int
    max_palettes: int
    max_similarity_results: int
    can_export_pdf: bool
    can_upload_receipts: bool


TIER_LIMITS: Dict[str, TierLimits] = {
    "free": {
        "max_assets": 50,
        "max_palettes": 5,
        "max_similarity_results": 5,
        "can_export_pdf": False,
        "can_upload_receipts": False,
    },
    "pro": {
        "max_assets": 500,
        "max_palettes": 50,
        "max_similarity_results": 20,
        "can_export_pdf": True,
        "can_upload_receipts": True,
    },
    "pro_plus": {
        "max_assets": UNLIMITED,
        "max_palettes": UNLIMITED,
        "max_similarity_results": 50,
        "can_export_pdf": True,
        "can_upload_receipts": True,
    },
}


def tier_from_price_id(price_id: Optional[str], config: BillingConfig) -> SubscriptionTier:
    """Map a price id to its tier. Unknown or missing prices are 'free'."""
    if not price_id:
        return "free"
    if config.pro_plus_price_id and price_id == config.pro_plus_price_id:
        return "pro_plus"
    if config.pro_price_id and price_id == config.pro_price_id:
        return "pro"
    return "free"


def get_tier_limits(tier: str) -> TierLimits:
    return TIER_LIMITS.get(tier, TIER_LIMITS["free"])


def within_limit(limit: int, count: int) -> bool:
    """True if one more item fits under ``limit`` given ``count`` existing."""
    return limit == UNLIMITED or count < limit


async def get_tier(
    remote: RemoteStore, user_id: str, config: BillingConfig
) -> SubscriptionTier:
    """Tier of ``user_id`` from their stored subscription row."""
    subscription = await remote.table("subscriptions").find_one(user_id=user_id)
    if subscription is None or subscription.get("status") not in ACTIVE_STATUSES:
        return "free"
    return tier_from_price_id(subscription.get("price_id"), config)
