"""
Local library store for Sample Finder.

A repository over the single persisted library document. Every mutation runs
inside ``transaction()``: load, modify, atomically write, all under one lock,
so each write commits before the method returns. Reads return a fresh
snapshot that callers may modify freely.
"""

import json
import os
import threading
import time
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from loguru import logger

from ...core.blob_store import BlobStore
from .models import (
    DEFAULT_LICENSE_FLAGS,
    Asset,
    Engagement,
    LocalDataset,
    Palette,
    Receipt,
    new_id,
    now_ms,
)
from .state import LibraryState, StateCorruptedError

STATE_FILENAME = "library.json"


def should_show_signup_prompt(engagement: Engagement, palettes: Sequence[Palette]) -> bool:
    """Decide whether to nudge the user toward creating an account.

    True when the prompt has not been shown, data is not synced yet, and the
    user either ran a similarity search and put something in a palette, or
    built a palette with at least three assets. Pure: no side effects.
    """
    if engagement.signup_prompt_shown or engagement.synced_to_cloud:
        return False

    searched_and_collected = engagement.similarity_search_count >= 1 and any(
        len(p.asset_ids) >= 1 for p in palettes
    )
    full_palette = any(len(p.asset_ids) >= 3 for p in palettes)

    return searched_and_collected or full_palette


class LibraryStore:
    """Offline source of truth for assets, palettes, receipts and engagement.

    Args:
        path: Location of the JSON document
        blobs: Optional blob store; when given, deleting an asset or clearing
            the library also removes the raw audio
    """

    def __init__(self, path: Path, blobs: Optional[BlobStore] = None) -> None:
        self.path = Path(path)
        self.blobs = blobs
        self._lock = threading.RLock()

    @classmethod
    def in_directory(cls, data_dir: Path) -> "LibraryStore":
        """Store rooted at ``data_dir`` with blobs under ``data_dir/blobs``."""
        data_dir = Path(data_dir)
        return cls(data_dir / STATE_FILENAME, BlobStore(data_dir / "blobs"))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _backup_corrupt_file(self) -> None:
        backup = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time())}")
        try:
            os.replace(self.path, backup)
            logger.error(f"Moved corrupt library document to {backup}")
        except OSError as e:
            logger.error(f"Could not back up corrupt library document {self.path}: {e}")

    def _load(self) -> LibraryState:
        if not self.path.exists():
            return LibraryState()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
            return LibraryState.from_document(document)
        except (json.JSONDecodeError, UnicodeDecodeError, StateCorruptedError) as e:
            logger.error(f"Library document {self.path} is corrupt, resetting: {e}")
            self._backup_corrupt_file()
            return LibraryState()

    def _save(self, state: LibraryState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(self.path.name + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(state.to_document(), f)
        os.replace(temp_path, self.path)

    @contextmanager
    def transaction(self) -> Iterator[LibraryState]:
        """Atomic read-modify-write of the whole document.

        Changes made to the yielded state are committed when the block exits
        normally and discarded if it raises.
        """
        with self._lock:
            state = self._load()
            yield state
            self._save(state)

    def snapshot(self) -> LibraryState:
        """Current state, freshly loaded."""
        with self._lock:
            return self._load()

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def add_asset(self, asset: Asset) -> Asset:
        with self.transaction() as state:
            state.assets.append(asset)
            state.engagement.assets_added += 1
        logger.info(f"Added asset {asset.id} ({asset.original_filename})")
        return asset

    def update_asset(self, asset_id: str, **updates: Any) -> Optional[Asset]:
        """Apply field updates to an asset. Returns the updated asset, or None if missing."""
        with self.transaction() as state:
            for index, asset in enumerate(state.assets):
                if asset.id == asset_id:
                    updated = replace(asset, **updates)
                    state.assets[index] = updated
                    return updated
        return None

    def delete_asset(self, asset_id: str) -> bool:
        """Remove an asset, strip it from every palette and drop its receipts.

        Returns:
            True if the asset existed
        """
        with self.transaction() as state:
            before = len(state.assets)
            state.assets = [a for a in state.assets if a.id != asset_id]
            for palette in state.palettes:
                palette.asset_ids = [aid for aid in palette.asset_ids if aid != asset_id]
            state.receipts = [r for r in state.receipts if r.asset_id != asset_id]
            existed = len(state.assets) != before

        if self.blobs is not None:
            self.blobs.delete(asset_id)
        if existed:
            logger.info(f"Deleted asset {asset_id}")
        return existed

    def get_assets(self) -> List[Asset]:
        return self.snapshot().assets

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        return next((a for a in self.get_assets() if a.id == asset_id), None)

    def find_asset_by_hash(self, content_hash: str) -> Optional[Asset]:
        return next(
            (a for a in self.get_assets() if a.content_hash == content_hash), None
        )

    # ------------------------------------------------------------------
    # Palettes
    # ------------------------------------------------------------------

    def add_palette(self, palette: Palette) -> Palette:
        palette.asset_ids = list(dict.fromkeys(palette.asset_ids))
        with self.transaction() as state:
            state.palettes.append(palette)
            state.engagement.palettes_created += 1
        logger.info(f"Created palette {palette.id} ({palette.name})")
        return palette

    def create_palette(self, name: str, notes: str = "") -> Palette:
        return self.add_palette(Palette(id=new_id(), name=name, notes=notes))

    def update_palette(self, palette_id: str, **updates: Any) -> Optional[Palette]:
        if "asset_ids" in updates:
            updates["asset_ids"] = list(dict.fromkeys(updates["asset_ids"]))
        with self.transaction() as state:
            for index, palette in enumerate(state.palettes):
                if palette.id == palette_id:
                    updated = replace(palette, **updates)
                    state.palettes[index] = updated
                    return updated
        return None

    def delete_palette(self, palette_id: str) -> bool:
        with self.transaction() as state:
            before = len(state.palettes)
            state.palettes = [p for p in state.palettes if p.id != palette_id]
            return len(state.palettes) != before

    def get_palettes(self) -> List[Palette]:
        return self.snapshot().palettes

    def get_palette(self, palette_id: str) -> Optional[Palette]:
        return next((p for p in self.get_palettes() if p.id == palette_id), None)

    def add_asset_to_palette(self, palette_id: str, asset_id: str) -> bool:
        """Append an asset to a palette. Adding an id already present is a no-op.

        Returns:
            True if the asset was appended, False if it was already there

        Raises:
            KeyError: If the palette or asset does not exist
        """
        with self.transaction() as state:
            palette = next((p for p in state.palettes if p.id == palette_id), None)
            if palette is None:
                raise KeyError(f"Palette not found: {palette_id}")
            if not any(a.id == asset_id for a in state.assets):
                raise KeyError(f"Asset not found: {asset_id}")
            if asset_id in palette.asset_ids:
                return False
            palette.asset_ids.append(asset_id)
            return True

    def remove_asset_from_palette(self, palette_id: str, asset_id: str) -> bool:
        with self.transaction() as state:
            palette = next((p for p in state.palettes if p.id == palette_id), None)
            if palette is None or asset_id not in palette.asset_ids:
                return False
            palette.asset_ids = [aid for aid in palette.asset_ids if aid != asset_id]
            return True

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def add_receipt(self, receipt: Receipt) -> Receipt:
        with self.transaction() as state:
            state.receipts.append(receipt)
        return receipt

    def update_receipt(self, receipt_id: str, **updates: Any) -> Optional[Receipt]:
        with self.transaction() as state:
            for index, receipt in enumerate(state.receipts):
                if receipt.id == receipt_id:
                    updated = replace(receipt, **updates)
                    state.receipts[index] = updated
                    return updated
        return None

    def delete_receipt(self, receipt_id: str) -> bool:
        with self.transaction() as state:
            before = len(state.receipts)
            state.receipts = [r for r in state.receipts if r.id != receipt_id]
            return len(state.receipts) != before

    def get_receipts(self) -> List[Receipt]:
        return self.snapshot().receipts

    def get_receipt_for_asset(self, asset_id: str) -> Optional[Receipt]:
        return next((r for r in self.get_receipts() if r.asset_id == asset_id), None)

    def upsert_receipt_for_asset(
        self,
        asset_id: str,
        source_url: Optional[str] = None,
        notes: Optional[str] = None,
        license_flags: Optional[Dict[str, bool]] = None,
    ) -> Receipt:
        """Update the asset's receipt in place, or create one with default flags.

        Raises:
            KeyError: If the asset does not exist
        """
        with self.transaction() as state:
            if not any(a.id == asset_id for a in state.assets):
                raise KeyError(f"Asset not found: {asset_id}")

            for index, receipt in enumerate(state.receipts):
                if receipt.asset_id == asset_id:
                    flags = dict(receipt.license_flags)
                    flags.update(license_flags or {})
                    updated = replace(
                        receipt,
                        source_url=receipt.source_url if source_url is None else source_url,
                        notes=receipt.notes if notes is None else notes,
                        license_flags=flags,
                    )
                    state.receipts[index] = updated
                    return updated

            flags = dict(DEFAULT_LICENSE_FLAGS)
            flags.update(license_flags or {})
            receipt = Receipt(
                id=new_id(),
                asset_id=asset_id,
                source_url=source_url or "",
                notes=notes or "",
                license_flags=flags,
                created_at=now_ms(),
            )
            state.receipts.append(receipt)
            return receipt

    # ------------------------------------------------------------------
    # Engagement
    # ------------------------------------------------------------------

    def get_engagement(self) -> Engagement:
        return self.snapshot().engagement

    def record_similarity_search(self) -> None:
        with self.transaction() as state:
            state.engagement.similarity_search_count += 1

    def mark_signup_prompt_shown(self) -> None:
        with self.transaction() as state:
            state.engagement.signup_prompt_shown = True

    def mark_synced_to_cloud(self) -> None:
        with self.transaction() as state:
            state.engagement.synced_to_cloud = True

    def should_show_signup_prompt(self) -> bool:
        state = self.snapshot()
        return should_show_signup_prompt(state.engagement, state.palettes)

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def export_payload(self) -> LocalDataset:
        """Assets, palettes and receipts for migration to a remote store."""
        state = self.snapshot()
        return LocalDataset(
            assets=state.assets, palettes=state.palettes, receipts=state.receipts
        )

    def merge_dataset(self, dataset: LocalDataset) -> Dict[str, int]:
        """Add records from another dataset, skipping ids already present.

        Palette entries and receipts that point at unknown assets are dropped.

        Returns:
            Count of added records per kind
        """
        added = {"assets": 0, "palettes": 0, "receipts": 0}
        with self.transaction() as state:
            asset_ids = {a.id for a in state.assets}
            for asset in dataset.assets:
                if asset.id not in asset_ids:
                    state.assets.append(asset)
                    asset_ids.add(asset.id)
                    state.engagement.assets_added += 1
                    added["assets"] += 1

            palette_ids = {p.id for p in state.palettes}
            for palette in dataset.palettes:
                if palette.id in palette_ids:
                    continue
                palette.asset_ids = [
                    aid for aid in dict.fromkeys(palette.asset_ids) if aid in asset_ids
                ]
                state.palettes.append(palette)
                palette_ids.add(palette.id)
                state.engagement.palettes_created += 1
                added["palettes"] += 1

            receipt_ids = {r.id for r in state.receipts}
            for receipt in dataset.receipts:
                if receipt.id not in receipt_ids and receipt.asset_id in asset_ids:
                    state.receipts.append(receipt)
                    receipt_ids.add(receipt.id)
                    added["receipts"] += 1

        logger.info(f"Merged dataset into library: {added}")
        return added

    def clear(self) -> None:
        """Reset to an empty library, including counters and stored audio."""
        with self.transaction() as state:
            state.assets = []
            state.palettes = []
            state.receipts = []
            state.engagement = Engagement()
        if self.blobs is not None:
            self.blobs.clear()
        logger.info("Cleared local library")
