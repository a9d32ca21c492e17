"""
Palette export.

Packs a palette into a ZIP archive: ``manifest.json`` describing the palette
and its assets in order, plus ``audio/<original filename>`` for every asset
whose raw audio is still stored.
"""

import json
import re
import zipfile
from pathlib import Path
from typing import Any, Dict

from loguru import logger

from .models import now_ms
from .store import LibraryStore


def palette_slug(name: str) -> str:
    """'Dark Kicks' -> 'dark-kicks'."""
    return re.sub(r"\s+", "-", name.strip()).lower()


def build_manifest(store: LibraryStore, palette_id: str) -> Dict[str, Any]:
    """Describe a palette and its assets, skipping ids no longer in the library.

    Raises:
        KeyError: If the palette does not exist
    """
    state = store.snapshot()
    palette = next((p for p in state.palettes if p.id == palette_id), None)
    if palette is None:
        raise KeyError(f"Palette not found: {palette_id}")

    assets_by_id = {a.id: a for a in state.assets}
    manifest_assets = []
    for asset_id in palette.asset_ids:
        asset = assets_by_id.get(asset_id)
        if asset is None:
            continue
        manifest_assets.append(
            {
                "id": asset.id,
                "title": asset.title,
                "filename": asset.original_filename,
                "duration_ms": asset.duration_ms,
                "tags": asset.tags,
            }
        )

    return {
        "name": palette.name,
        "notes": palette.notes,
        "created_at": palette.created_at,
        "exported_at": now_ms(),
        "assets": manifest_assets,
    }


def export_palette(store: LibraryStore, palette_id: str, dest_dir: Path) -> Path:
    """Write ``<slug>-palette.zip`` into ``dest_dir``.

    Returns:
        Path of the written archive

    Raises:
        KeyError: If the palette does not exist
    """
    manifest = build_manifest(store, palette_id)
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    archive_path = dest_dir / f"{palette_slug(manifest['name'])}-palette.zip"

    written = 0
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        used_names = set()
        for entry in manifest["assets"]:
            data = store.blobs.get(entry["id"]) if store.blobs is not None else None
            if data is None:
                logger.warning(f"No stored audio for asset {entry['id']}, manifest only")
                continue
            name = entry["filename"]
            if name in used_names:
                name = f"{entry['id']}-{name}"
            used_names.add(name)
            archive.writestr(f"audio/{name}", data)
            written += 1

        archive.writestr("manifest.json", json.dumps(manifest, indent=2))

    logger.info(f"Exported palette {manifest['name']!r} ({written} audio files) to {archive_path}")
    return archive_path
