"""
Remote embedding clients.

Each client turns a descriptor into a vector, returns None when the service
explicitly reports that embeddings are disabled, and raises EmbeddingError
for every other failure mode (network, auth, non-success status, malformed
payload).
"""

import math
from typing import Any, List, Optional, Protocol

import httpx
import openai
from openai import AsyncOpenAI


class EmbeddingError(Exception):
    """Remote embedding could not be obtained."""

    pass


class EmbeddingClient(Protocol):
    """Anything that can fetch a remote embedding for a descriptor."""

    name: str

    async def fetch(self, descriptor: str) -> Optional[List[float]]: ...


def coerce_vector(payload: Any) -> List[float]:
    """Validate a JSON-ish embedding payload and return it as floats.

    Raises:
        EmbeddingError: If the payload is not a non-empty list of finite numbers
    """
    if not isinstance(payload, list) or not payload:
        raise EmbeddingError("Embedding payload is not a non-empty list")
    vector = []
    for value in payload:
        # bool is a subclass of int
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingError(f"Embedding contains non-numeric value: {value!r}")
        if not math.isfinite(value):
            raise EmbeddingError(f"Embedding contains non-finite value: {value!r}")
        vector.append(float(value))
    return vector


class OpenAIEmbeddingClient:
    """Embeddings from the OpenAI embeddings API."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        timeout_seconds: float = 10.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self._client = client or AsyncOpenAI(
            api_key=api_key, timeout=timeout_seconds, max_retries=0
        )

    async def fetch(self, descriptor: str) -> Optional[List[float]]:
        try:
            response = await self._client.embeddings.create(
                model=self.model, input=descriptor
            )
        except openai.OpenAIError as e:
            raise EmbeddingError(f"OpenAI embedding request failed: {e}") from e

        try:
            payload = response.data[0].embedding
        except (AttributeError, IndexError) as e:
            raise EmbeddingError("OpenAI embedding response had no data") from e
        return coerce_vector(list(payload))


class HttpEmbeddingClient:
    """Embeddings from an HTTP endpoint.

    The endpoint accepts ``{"descriptor": "..."}`` and answers either
    ``{"embedding": [...]}`` or ``{"disabled": true}``.
    """

    name = "http"

    def __init__(self, endpoint_url: str, timeout_seconds: float = 10.0) -> None:
        self.endpoint_url = endpoint_url
        self.timeout_seconds = timeout_seconds

    async def fetch(self, descriptor: str) -> Optional[List[float]]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.endpoint_url, json={"descriptor": descriptor}
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding endpoint request failed: {e}") from e
        except ValueError as e:
            raise EmbeddingError("Embedding endpoint returned invalid JSON") from e

        if not isinstance(data, dict):
            raise EmbeddingError("Embedding endpoint returned a non-object payload")
        if data.get("disabled"):
            return None
        return coerce_vector(data.get("embedding"))
