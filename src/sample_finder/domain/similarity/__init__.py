"""Similarity domain - embeddings and ranking.

This domain handles:
- Remote and deterministic embedding generation
- Blended similarity scoring and ranking
"""

from .clients import (
    EmbeddingClient,
    EmbeddingError,
    HttpEmbeddingClient,
    OpenAIEmbeddingClient,
)
from .embedding import (
    EMBEDDING_DIMENSIONS,
    EmbeddingProvider,
    create_embedding_provider,
    deterministic_embedding,
    normalize,
)
from .rank import (
    SimilarityResult,
    combined_similarity,
    cosine_similarity,
    duration_similarity,
    rank_similar,
    token_similarity,
)
from .search import find_similar

__all__ = [
    # Clients
    "EmbeddingClient",
    "EmbeddingError",
    "HttpEmbeddingClient",
    "OpenAIEmbeddingClient",
    # Embedding
    "EMBEDDING_DIMENSIONS",
    "EmbeddingProvider",
    "create_embedding_provider",
    "deterministic_embedding",
    "normalize",
    # Ranking
    "find_similar",
    "SimilarityResult",
    "combined_similarity",
    "cosine_similarity",
    "duration_similarity",
    "rank_similar",
    "token_similarity",
]
