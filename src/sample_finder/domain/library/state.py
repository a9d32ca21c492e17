"""
Persisted local-state document.

The whole library lives in one versioned JSON object::

    {"version": 2, "assets": [...], "palettes": [...], "receipts": [...],
     "engagement": {...}}

Older documents are upgraded by ``migrate_state`` before they are read;
documents newer than this build are refused rather than discarded.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .models import Asset, Engagement, Palette, Receipt

# Document schema version for migrations
CURRENT_VERSION = 2

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class StateCorruptedError(Exception):
    """The persisted document cannot be parsed into library state."""

    pass


class StateVersionError(Exception):
    """The persisted document was written by a newer, unknown schema version."""

    pass


@dataclass
class LibraryState:
    """In-memory form of the local-state document."""

    version: int = CURRENT_VERSION
    assets: List[Asset] = field(default_factory=list)
    palettes: List[Palette] = field(default_factory=list)
    receipts: List[Receipt] = field(default_factory=list)
    engagement: Engagement = field(default_factory=Engagement)

    def to_document(self) -> Dict[str, Any]:
        return {
            "version": CURRENT_VERSION,
            "assets": [asset.to_dict() for asset in self.assets],
            "palettes": [palette.to_dict() for palette in self.palettes],
            "receipts": [receipt.to_dict() for receipt in self.receipts],
            "engagement": self.engagement.to_dict(),
        }

    @classmethod
    def from_document(cls, document: Any) -> "LibraryState":
        """Migrate and parse a raw document.

        Raises:
            StateCorruptedError: If the document is structurally invalid
            StateVersionError: If the document version is newer than supported
        """
        document = migrate_state(document)
        try:
            palettes = [Palette.from_dict(p) for p in document.get("palettes", [])]
            for palette in palettes:
                palette.asset_ids = list(dict.fromkeys(palette.asset_ids))
            return cls(
                version=CURRENT_VERSION,
                assets=[Asset.from_dict(a) for a in document.get("assets", [])],
                palettes=palettes,
                receipts=[Receipt.from_dict(r) for r in document.get("receipts", [])],
                engagement=Engagement.from_dict(document.get("engagement") or {}),
            )
        except (TypeError, AttributeError) as e:
            raise StateCorruptedError(f"Invalid library document: {e}") from e


def camel_to_snake(name: str) -> str:
    """'originalFilename' -> 'original_filename'."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _snake_keys(record: Any) -> Dict[str, Any]:
    if not isinstance(record, dict):
        raise StateCorruptedError(f"Expected an object, got {type(record).__name__}")
    return {camel_to_snake(key): value for key, value in record.items()}


def _migrate_v1_to_v2(document: Dict[str, Any]) -> Dict[str, Any]:
    """Version 1 is the camelCase browser export; version 2 uses snake_case."""
    receipts = []
    for receipt in document.get("receipts", []):
        converted = _snake_keys(receipt)
        flags = converted.get("license_flags") or {}
        converted["license_flags"] = {
            camel_to_snake(name): bool(value) for name, value in _snake_keys(flags).items()
        }
        receipts.append(converted)

    return {
        "version": 2,
        "assets": [_snake_keys(asset) for asset in document.get("assets", [])],
        "palettes": [_snake_keys(palette) for palette in document.get("palettes", [])],
        "receipts": receipts,
        "engagement": _snake_keys(document.get("engagement") or {}),
    }


def migrate_state(document: Any) -> Dict[str, Any]:
    """Upgrade a raw document to CURRENT_VERSION, one step at a time.

    Raises:
        StateCorruptedError: If the document is not a versioned object
        StateVersionError: If the version is newer than CURRENT_VERSION
    """
    if not isinstance(document, dict):
        raise StateCorruptedError("Library document is not a JSON object")

    version = document.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise StateCorruptedError(f"Invalid document version: {version!r}")

    if version > CURRENT_VERSION:
        raise StateVersionError(
            f"Library document version {version} is newer than supported "
            f"version {CURRENT_VERSION}"
        )

    for key in ("assets", "palettes", "receipts"):
        if not isinstance(document.get(key, []), list):
            raise StateCorruptedError(f"Library document field {key!r} is not a list")

    if version < 2:
        document = _migrate_v1_to_v2(document)

    return document
