"""Library domain - the offline sample library.

This domain handles:
- Asset, palette, receipt and engagement models
- The persisted library document and its version migrations
- The local library store (CRUD, cascading deletes, signup prompt policy)

The ingest pipeline (``library.ingest``) and palette export
(``library.export``) are imported from their modules directly.
"""

# Models
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

# Persisted document
from .state import (
    CURRENT_VERSION,
    LibraryState,
    StateCorruptedError,
    StateVersionError,
    migrate_state,
)

# Store
from .store import LibraryStore, should_show_signup_prompt

__all__ = [
    # Models
    "DEFAULT_LICENSE_FLAGS",
    "Asset",
    "Engagement",
    "LocalDataset",
    "Palette",
    "Receipt",
    "new_id",
    "now_ms",
    # Document
    "CURRENT_VERSION",
    "LibraryState",
    "StateCorruptedError",
    "StateVersionError",
    "migrate_state",
    # Store
    "LibraryStore",
    "should_show_signup_prompt",
]
