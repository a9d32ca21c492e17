"""
Sample library domain models.

Contains the records owned by the local library store: assets, palettes,
license receipts and engagement counters.
"""

import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

DEFAULT_LICENSE_FLAGS: Dict[str, bool] = {
    "royalty_free": False,
    "commercial_use": True,
    "attribution_required": False,
    "exclusive": False,
}


def new_id() -> str:
    """Opaque unique identifier for a new record."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


NUMBER = (int, float)
NONE = type(None)

# Accepted types per persisted field, then per list item / dict value
_FIELD_TYPES: Dict[str, Dict[str, Any]] = {
    "Asset": {
        "id": str,
        "title": str,
        "original_filename": str,
        "content_hash": str,
        "duration_ms": NUMBER,
        "rms": NUMBER,
        "spectral_centroid": NUMBER + (NONE,),
        "descriptor": str,
        "embedding": (list, NONE),
        "tags": list,
        "created_at": NUMBER,
    },
    "Palette": {
        "id": str,
        "name": str,
        "notes": str,
        "asset_ids": list,
        "created_at": NUMBER,
    },
    "Receipt": {
        "id": str,
        "asset_id": str,
        "source_url": str,
        "notes": str,
        "license_flags": dict,
        "created_at": NUMBER,
    },
    "Engagement": {
        "similarity_search_count": int,
        "palettes_created": int,
        "assets_added": int,
        "signup_prompt_shown": bool,
        "synced_to_cloud": bool,
    },
}

_ITEM_TYPES: Dict[str, Any] = {
    "embedding": NUMBER,
    "tags": str,
    "asset_ids": str,
    "license_flags": bool,
}


def _known_fields(cls: type, data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep the fields ``cls`` declares, checking the type of each one.

    Raises:
        TypeError: If a field (or one of its items) has the wrong type
    """
    names = {f.name for f in fields(cls)}
    known = {key: value for key, value in data.items() if key in names}

    for name, value in known.items():
        expected = _FIELD_TYPES[cls.__name__][name]
        if not isinstance(value, expected):
            raise TypeError(
                f"{cls.__name__}.{name} has invalid type {type(value).__name__}"
            )
        if name not in _ITEM_TYPES or value is None:
            continue
        items = value.values() if isinstance(value, dict) else value
        if not all(
            isinstance(item, _ITEM_TYPES[name]) for item in items
        ):
            raise TypeError(f"{cls.__name__}.{name} contains an invalid item")
    return known


@dataclass
class Asset:
    """One audio sample in the library.

    ``content_hash`` is a pure function of the file bytes; two assets with the
    same hash are the same audio.
    """

    id: str
    title: str
    original_filename: str
    content_hash: str
    duration_ms: int = 0
    rms: float = 0.0
    spectral_centroid: Optional[float] = None
    descriptor: str = ""
    embedding: Optional[List[float]] = None
    tags: List[str] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        return cls(**_known_fields(cls, data))


@dataclass
class Palette:
    """A named, ordered collection of asset ids (each id at most once)."""

    id: str
    name: str
    notes: str = ""
    asset_ids: List[str] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Palette":
        return cls(**_known_fields(cls, data))


@dataclass
class Receipt:
    """License/usage record attached to exactly one asset."""

    id: str
    asset_id: str
    source_url: str = ""
    notes: str = ""
    license_flags: Dict[str, bool] = field(
        default_factory=lambda: dict(DEFAULT_LICENSE_FLAGS)
    )
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Receipt":
        return cls(**_known_fields(cls, data))


@dataclass
class Engagement:
    """Interaction counters plus the two one-way flags."""

    similarity_search_count: int = 0
    palettes_created: int = 0
    assets_added: int = 0
    signup_prompt_shown: bool = False
    synced_to_cloud: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Engagement":
        return cls(**_known_fields(cls, data))


@dataclass
class LocalDataset:
    """Everything a migration needs from the local library."""

    assets: List[Asset] = field(default_factory=list)
    palettes: List[Palette] = field(default_factory=list)
    receipts: List[Receipt] = field(default_factory=list)
