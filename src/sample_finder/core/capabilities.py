"""Availability of optional external services, detected once at startup."""

from dataclasses import dataclass

from loguru import logger

from .config import Config


@dataclass(frozen=True)
class Capabilities:
    """Which optional collaborators are usable in this process."""

    remote_embeddings: bool = False
    cloud_sync: bool = False
    billing: bool = False


OFFLINE = Capabilities()


def detect_capabilities(config: Config) -> Capabilities:
    """Inspect configuration and return the capability set.

    Remote embeddings need the feature enabled plus credentials for the
    chosen provider. Cloud sync needs a remote store URL. Billing needs at
    least one price id.
    """
    embeddings = config.embeddings
    if not embeddings.enabled:
        remote_embeddings = False
    elif embeddings.provider == "openai":
        remote_embeddings = bool(embeddings.openai_api_key)
    else:
        remote_embeddings = bool(embeddings.endpoint_url)

    capabilities = Capabilities(
        remote_embeddings=remote_embeddings,
        cloud_sync=bool(config.sync.database_url),
        billing=bool(config.billing.pro_price_id or config.billing.pro_plus_price_id),
    )
    logger.debug(f"Detected capabilities: {capabilities}")
    return capabilities
