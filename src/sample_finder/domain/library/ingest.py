"""
Ingest pipeline: raw file -> features -> descriptor -> embedding -> library.

Ingestion always produces an asset. Undecodable audio yields zeroed features
and a failing remote embedding service yields a deterministic vector.
"""

import asyncio
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from loguru import logger

from ..analysis.descriptor import build_descriptor, content_hash, strip_extension
from ..analysis.features import AudioFeatures, extract_features
from ..similarity.embedding import EmbeddingProvider
from .models import Asset, new_id, now_ms
from .store import LibraryStore


def clean_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Strip whitespace, drop empties and duplicates, keep first-seen order."""
    if not tags:
        return []
    return list(dict.fromkeys(t.strip() for t in tags if t and t.strip()))


async def ingest(
    store: LibraryStore,
    provider: EmbeddingProvider,
    data: bytes,
    filename: str,
    tags: Optional[Iterable[str]] = None,
    skip_duplicates: bool = False,
) -> Asset:
    """Run the full pipeline for one file and add the result to the library.

    Args:
        store: Library to add the asset to (its blob store receives the bytes)
        provider: Embedding provider
        data: Raw file bytes
        filename: Original filename (title and descriptor derive from it)
        tags: Initial tags
        skip_duplicates: Return the existing asset when the same audio is
            already in the library instead of adding a second record

    Returns:
        The stored asset
    """
    digest = content_hash(data)
    if skip_duplicates:
        existing = store.find_asset_by_hash(digest)
        if existing is not None:
            logger.info(f"Skipping {filename}: same audio as asset {existing.id}")
            return existing

    tags = clean_tags(tags)
    features = await asyncio.to_thread(extract_features, data, filename)
    descriptor = build_descriptor(filename, tags, features)
    embedding = await provider.embed(descriptor)

    asset = Asset(
        id=new_id(),
        title=strip_extension(filename),
        original_filename=filename,
        content_hash=digest,
        duration_ms=features.duration_ms,
        rms=features.rms,
        spectral_centroid=features.spectral_centroid,
        descriptor=descriptor,
        embedding=embedding,
        tags=tags,
        created_at=now_ms(),
    )

    if store.blobs is not None:
        store.blobs.store(asset.id, data)
    return store.add_asset(asset)


async def ingest_path(
    store: LibraryStore,
    provider: EmbeddingProvider,
    path: Path,
    tags: Optional[Iterable[str]] = None,
    skip_duplicates: bool = False,
) -> Asset:
    path = Path(path)
    return await ingest(
        store, provider, path.read_bytes(), path.name, tags, skip_duplicates
    )


async def ingest_files(
    store: LibraryStore,
    provider: EmbeddingProvider,
    paths: Sequence[Path],
    supported_formats: Sequence[str],
    max_files: int = 50,
    tags: Optional[Iterable[str]] = None,
    skip_duplicates: bool = False,
) -> List[Asset]:
    """Ingest a batch of files.

    Files with unsupported extensions are ignored, the batch is truncated to
    ``max_files``, and a file that cannot be read is logged and skipped.
    """
    formats = {ext.lower() for ext in supported_formats}
    audio_paths = [Path(p) for p in paths if Path(p).suffix.lower() in formats]

    skipped = len(paths) - len(audio_paths)
    if skipped:
        logger.warning(f"Ignoring {skipped} file(s) with unsupported formats")
    if len(audio_paths) > max_files:
        logger.warning(f"Only ingesting the first {max_files} of {len(audio_paths)} files")
        audio_paths = audio_paths[:max_files]

    tags = clean_tags(tags)
    assets = []
    for path in audio_paths:
        try:
            assets.append(await ingest_path(store, provider, path, tags, skip_duplicates))
        except OSError as e:
            logger.error(f"Failed to ingest {path}: {e}")
    return assets


async def retag_asset(
    store: LibraryStore,
    provider: EmbeddingProvider,
    asset_id: str,
    tags: Iterable[str],
) -> Optional[Asset]:
    """Replace an asset's tags and rebuild its descriptor and embedding."""
    asset = store.get_asset(asset_id)
    if asset is None:
        return None

    tags = clean_tags(tags)
    features = AudioFeatures(asset.duration_ms, asset.rms, asset.spectral_centroid)
    descriptor = build_descriptor(asset.original_filename, tags, features)
    embedding = await provider.embed(descriptor)
    return store.update_asset(
        asset_id, tags=tags, descriptor=descriptor, embedding=embedding
    )
