"""Analysis domain - turning raw audio into comparable descriptions.

This domain handles:
- Decoding audio and extracting duration / loudness / brightness
- Building canonical text descriptors
- Content hashing for deduplication
"""

from .features import (
    AudioFeatures,
    EMPTY_FEATURES,
    compute_rms,
    compute_spectral_centroid,
    decode_audio,
    extract_features,
    format_from_filename,
)
from .descriptor import (
    build_descriptor,
    content_hash,
    strip_extension,
)

__all__ = [
    # Features
    "AudioFeatures",
    "EMPTY_FEATURES",
    "compute_rms",
    "compute_spectral_centroid",
    "decode_audio",
    "extract_features",
    "format_from_filename",
    # Descriptor
    "build_descriptor",
    "content_hash",
    "strip_extension",
]
