"""
Similarity ranking.

Blends three signals into one score per candidate:
- embedding cosine similarity (weight 0.6, only when both vectors exist and
  embeddings are requested)
- Jaccard overlap of descriptor + tag tokens (weight 0.3)
- duration ratio (weight 0.1)

The weighted sum is divided by the sum of the active weights, so text-only
comparisons still land in [0, 1].
"""

from typing import List, NamedTuple, Sequence

import numpy as np

from ..library.models import Asset

EMBEDDING_WEIGHT = 0.6
TEXT_WEIGHT = 0.3
DURATION_WEIGHT = 0.1


class SimilarityResult(NamedTuple):
    asset: Asset
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product over the product of magnitudes; 0 for zero or mismatched vectors."""
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    magnitude_a = float(np.linalg.norm(vec_a))
    magnitude_b = float(np.linalg.norm(vec_b))
    if magnitude_a == 0.0 or magnitude_b == 0.0:
        return 0.0

    return float(np.dot(vec_a, vec_b) / (magnitude_a * magnitude_b))


def tokenize(text: str) -> set:
    return set(text.lower().split())


def token_similarity(a: str, b: str) -> float:
    """Jaccard similarity of whitespace token sets (0 if either set is empty)."""
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def duration_similarity(a: float, b: float) -> float:
    """min/max duration ratio; 0 if either duration is 0."""
    if a == 0 or b == 0:
        return 0.0
    return min(a, b) / max(a, b)


def asset_text(asset: Asset) -> str:
    return asset.descriptor + " " + " ".join(asset.tags)


def combined_similarity(target: Asset, candidate: Asset, use_embeddings: bool) -> float:
    score = 0.0
    weights = 0.0

    if use_embeddings and target.embedding and candidate.embedding:
        score += cosine_similarity(target.embedding, candidate.embedding) * EMBEDDING_WEIGHT
        weights += EMBEDDING_WEIGHT

    score += token_similarity(asset_text(target), asset_text(candidate)) * TEXT_WEIGHT
    weights += TEXT_WEIGHT

    score += duration_similarity(target.duration_ms, candidate.duration_ms) * DURATION_WEIGHT
    weights += DURATION_WEIGHT

    return score / weights if weights > 0 else 0.0


def rank_similar(
    target: Asset,
    candidates: Sequence[Asset],
    limit: int = 10,
    use_embeddings: bool = True,
) -> List[SimilarityResult]:
    """Rank ``candidates`` by similarity to ``target``.

    The target (matched by id) is never part of the result. Results are sorted
    by score descending; equal scores keep their input order.

    Args:
        target: Asset to compare against
        candidates: Pool to rank
        limit: Maximum number of results
        use_embeddings: Include the embedding term when vectors exist

    Returns:
        At most ``limit`` SimilarityResult tuples
    """
    if limit <= 0:
        return []

    results = [
        SimilarityResult(candidate, combined_similarity(target, candidate, use_embeddings))
        for candidate in candidates
        if candidate.id != target.id
    ]
    results.sort(key=lambda result: result.score, reverse=True)
    return results[:limit]
