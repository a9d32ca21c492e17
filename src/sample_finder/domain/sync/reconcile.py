"""
Reconciliation: merge a local dataset into the remote store for one user.

Every step checks for an existing row before inserting, using the same keys
the remote schema enforces as unique:

- assets: (user_id, content_hash)
- palettes: (user_id, name)
- palette_items: (palette_id, asset_id)
- receipts: (user_id, asset_id)

so re-running after an interruption never duplicates rows. A failing item is
logged and skipped; earlier items stay merged.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from loguru import logger

from ..library.models import Asset, LocalDataset, Palette, Receipt
from .remote_store import RemoteStore, RemoteStoreError


@dataclass
class MigrationResult:
    """Counts mirror the input dataset, not how many rows were newly created."""

    assets_count: int
    palettes_count: int
    receipts_count: int
    asset_id_map: Dict[str, str] = field(default_factory=dict)
    failures: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def iso_timestamp(epoch_ms: int) -> str:
    """Epoch milliseconds -> ISO 8601 UTC string."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


async def ensure_profile(
    remote: RemoteStore, user_id: str, email: Optional[str] = None
) -> None:
    """Create the profile row, or refresh its email when one is given.

    An existing profile keeps its ``created_at`` and, without ``email``, its
    stored email.
    """
    row = {"id": user_id, "created_at": datetime.now(timezone.utc).isoformat()}
    if email is not None:
        row["email"] = email
    await remote.table("profiles").upsert(
        row,
        on_conflict=("id",),
        update_columns=("email",) if email is not None else (),
    )


async def migrate_asset(remote: RemoteStore, user_id: str, asset: Asset) -> str:
    """Return the remote id for ``asset``, inserting it when its hash is new."""
    assets = remote.table("assets")
    existing = await assets.find_one(user_id=user_id, content_hash=asset.content_hash)
    if existing is not None:
        return existing["id"]

    values = {
        "user_id": user_id,
        "title": asset.title,
        "original_filename": asset.original_filename,
        "content_hash": asset.content_hash,
        "duration_ms": asset.duration_ms,
        "rms": asset.rms,
        "spectral_centroid": asset.spectral_centroid,
        "descriptor": asset.descriptor,
        "embedding": asset.embedding,
        "tags": asset.tags,
        "created_at": iso_timestamp(asset.created_at),
    }
    try:
        row = await assets.insert(values)
    except RemoteStoreError:
        # A concurrent migration may have inserted the same hash first.
        existing = await assets.find_one(
            user_id=user_id, content_hash=asset.content_hash
        )
        if existing is None:
            raise
        logger.debug(f"Asset {asset.id} already inserted as {existing['id']}")
        return existing["id"]
    return row["id"]


async def migrate_palette(
    remote: RemoteStore,
    user_id: str,
    palette: Palette,
    asset_id_map: Dict[str, str],
) -> List[str]:
    """Find-or-create the palette by name and upsert its items.

    Returns:
        Descriptions of palette items that failed
    """
    palettes = remote.table("palettes")
    existing = await palettes.find_one(user_id=user_id, name=palette.name)
    if existing is not None:
        palette_id = existing["id"]
        await palettes.update({"notes": palette.notes}, id=palette_id)
    else:
        row = await palettes.insert(
            {
                "user_id": user_id,
                "name": palette.name,
                "notes": palette.notes,
                "created_at": iso_timestamp(palette.created_at),
            }
        )
        palette_id = row["id"]

    failures = []
    items = remote.table("palette_items")
    for position, local_asset_id in enumerate(palette.asset_ids):
        remote_asset_id = asset_id_map.get(local_asset_id)
        if remote_asset_id is None:
            continue
        try:
            await items.upsert(
                {
                    "palette_id": palette_id,
                    "asset_id": remote_asset_id,
                    "position": position,
                },
                on_conflict=("palette_id", "asset_id"),
            )
        except RemoteStoreError as e:
            logger.error(f"Failed to sync item {local_asset_id} of palette {palette.name!r}: {e}")
            failures.append(f"palette_item {palette.id}/{local_asset_id}")
    return failures


async def migrate_receipt(
    remote: RemoteStore, user_id: str, receipt: Receipt, remote_asset_id: str
) -> None:
    receipts = remote.table("receipts")
    values = {
        "source_url": receipt.source_url,
        "notes": receipt.notes,
        "license_flags": receipt.license_flags,
    }
    existing = await receipts.find_one(user_id=user_id, asset_id=remote_asset_id)
    if existing is not None:
        await receipts.update(values, id=existing["id"])
    else:
        await receipts.insert(
            {
                "user_id": user_id,
                "asset_id": remote_asset_id,
                "created_at": iso_timestamp(receipt.created_at),
                **values,
            }
        )


async def migrate(
    user_id: str,
    dataset: LocalDataset,
    remote: RemoteStore,
    email: Optional[str] = None,
) -> MigrationResult:
    """Merge ``dataset`` into ``remote`` under ``user_id``.

    Assets that fail to insert are left out of ``asset_id_map``; their palette
    items and receipts are skipped. Safe to call repeatedly.

    Args:
        user_id: Authenticated principal id
        dataset: Local assets, palettes and receipts
        remote: Remote store handle
        email: Stored on the profile row

    Returns:
        MigrationResult with input counts, the local->remote asset id map and
        any per-item failures
    """
    if not user_id:
        raise ValueError("user_id is required")

    result = MigrationResult(
        assets_count=len(dataset.assets),
        palettes_count=len(dataset.palettes),
        receipts_count=len(dataset.receipts),
    )

    try:
        await ensure_profile(remote, user_id, email)
    except RemoteStoreError as e:
        logger.error(f"Failed to upsert profile {user_id}: {e}")
        result.failures.append(f"profile {user_id}")

    for asset in dataset.assets:
        try:
            result.asset_id_map[asset.id] = await migrate_asset(remote, user_id, asset)
        except RemoteStoreError as e:
            logger.error(f"Failed to sync asset {asset.id} ({asset.original_filename}): {e}")
            result.failures.append(f"asset {asset.id}")

    for palette in dataset.palettes:
        try:
            result.failures.extend(
                await migrate_palette(remote, user_id, palette, result.asset_id_map)
            )
        except RemoteStoreError as e:
            logger.error(f"Failed to sync palette {palette.name!r}: {e}")
            result.failures.append(f"palette {palette.id}")

    for receipt in dataset.receipts:
        remote_asset_id = result.asset_id_map.get(receipt.asset_id)
        if remote_asset_id is None:
            logger.debug(f"Skipping receipt {receipt.id}: asset {receipt.asset_id} not synced")
            continue
        try:
            await migrate_receipt(remote, user_id, receipt, remote_asset_id)
        except RemoteStoreError as e:
            logger.error(f"Failed to sync receipt {receipt.id}: {e}")
            result.failures.append(f"receipt {receipt.id}")

    logger.info(
        f"Migrated {result.assets_count} assets, {result.palettes_count} palettes, "
        f"{result.receipts_count} receipts for {user_id} "
        f"({len(result.failures)} failures)"
    )
    return result
