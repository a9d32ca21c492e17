"""Similarity search against the local library."""

from typing import List

from ..library.store import LibraryStore
from .rank import SimilarityResult, rank_similar


def find_similar(
    store: LibraryStore,
    asset_id: str,
    limit: int = 10,
    use_embeddings: bool = True,
) -> List[SimilarityResult]:
    """Rank the library against one of its assets and count the search.

    Raises:
        KeyError: If ``asset_id`` is not in the library
    """
    assets = store.get_assets()
    target = next((a for a in assets if a.id == asset_id), None)
    if target is None:
        raise KeyError(f"Asset not found: {asset_id}")

    results = rank_similar(target, assets, limit=limit, use_embeddings=use_embeddings)
    store.record_similarity_search()
    return results
