"""
Embedding generation.

Maps a descriptor to a fixed-length unit vector. A remote semantic model is
used when one is configured; otherwise, and whenever the remote call fails or
times out, a deterministic local vector is produced so that offline
similarity search always works.
"""

import asyncio
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger

from ...core.capabilities import Capabilities
from ...core.config import Config
from .clients import (
    EmbeddingClient,
    EmbeddingError,
    HttpEmbeddingClient,
    OpenAIEmbeddingClient,
)

EMBEDDING_DIMENSIONS = 1536


def normalize(vector: Sequence[float]) -> List[float]:
    """Scale to unit Euclidean norm. The zero vector is returned unchanged."""
    array = np.asarray(vector, dtype=np.float64)
    magnitude = float(np.linalg.norm(array))
    if magnitude == 0.0:
        return array.tolist()
    return (array / magnitude).tolist()


def descriptor_seed(descriptor: str) -> int:
    """Sum of the descriptor's UTF-16 code units.

    Descriptors with equal sums share a seed and therefore a vector; this
    collision is accepted.
    """
    if not descriptor:
        return 0
    code_units = np.frombuffer(descriptor.encode("utf-16-le"), dtype="<u2")
    return int(code_units.sum(dtype=np.int64))


def deterministic_embedding(
    descriptor: str, dimensions: int = EMBEDDING_DIMENSIONS
) -> List[float]:
    """Reproducible hash-to-vector mapping used when no remote model answers.

    value[i] = frac(sin(seed * (i + 1)) * 10000), then normalized.
    """
    seed = descriptor_seed(descriptor)
    index = np.arange(1, dimensions + 1, dtype=np.float64)
    values = np.sin(seed * index) * 10000.0
    return normalize(values - np.floor(values))


class EmbeddingProvider:
    """Produces embeddings, hiding which strategy answered.

    Args:
        client: Remote client, or None for purely local embeddings
        timeout_seconds: Upper bound on a single remote call
        dimensions: Required vector length
    """

    def __init__(
        self,
        client: Optional[EmbeddingClient] = None,
        timeout_seconds: float = 10.0,
        dimensions: int = EMBEDDING_DIMENSIONS,
    ) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.dimensions = dimensions

    async def embed(self, descriptor: str) -> List[float]:
        """Return a unit vector for ``descriptor``. Never raises for remote failures."""
        remote = await self._fetch_remote(descriptor)
        if remote is not None:
            return normalize(remote)
        return deterministic_embedding(descriptor, self.dimensions)

    async def _fetch_remote(self, descriptor: str) -> Optional[List[float]]:
        if self.client is None:
            return None

        try:
            vector = await asyncio.wait_for(
                self.client.fetch(descriptor), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Remote embedding ({self.client.name}) timed out after "
                f"{self.timeout_seconds}s, using deterministic embedding"
            )
            return None
        except EmbeddingError as e:
            logger.warning(
                f"Remote embedding ({self.client.name}) failed, using deterministic embedding: {e}"
            )
            return None

        if vector is None:
            logger.debug(f"Remote embedding ({self.client.name}) is disabled")
            return None
        if len(vector) != self.dimensions:
            logger.warning(
                f"Remote embedding ({self.client.name}) returned {len(vector)} "
                f"dimensions, expected {self.dimensions}; using deterministic embedding"
            )
            return None
        return vector


def create_embedding_client(config: Config) -> EmbeddingClient:
    """Build the remote client named by ``config.embeddings.provider``."""
    embeddings = config.embeddings
    if embeddings.provider == "openai":
        return OpenAIEmbeddingClient(
            api_key=embeddings.openai_api_key or "",
            model=embeddings.model,
            timeout_seconds=embeddings.timeout_seconds,
        )
    if embeddings.provider == "http":
        return HttpEmbeddingClient(
            embeddings.endpoint_url, timeout_seconds=embeddings.timeout_seconds
        )
    raise ValueError(f"Unknown embeddings provider: {embeddings.provider}")


def create_embedding_provider(
    config: Config, capabilities: Capabilities
) -> EmbeddingProvider:
    """Provider wired for this process: remote when available, else local only."""
    client = create_embedding_client(config) if capabilities.remote_embeddings else None
    return EmbeddingProvider(
        client=client, timeout_seconds=config.embeddings.timeout_seconds
    )
