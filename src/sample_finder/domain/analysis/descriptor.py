"""
Descriptor building and content addressing.

A descriptor is a canonical, deterministic text summary of an asset. It feeds
both the embedding step and the lexical term of similarity ranking, so the
same inputs must always produce the same string.
"""

import hashlib
import re
from typing import Iterable

from .features import AudioFeatures

_EXTENSION = re.compile(r"\.[^.]+$")


def strip_extension(filename: str) -> str:
    """Drop the last extension: 'Kick 01.wav' -> 'Kick 01'."""
    return _EXTENSION.sub("", filename)


def duration_label(duration_ms: float) -> str:
    if duration_ms < 500:
        return "very-short one-shot"
    if duration_ms < 2000:
        return "short one-shot"
    if duration_ms < 8000:
        return "medium loop"
    return "long loop"


def loudness_label(rms: float) -> str:
    if rms < 0.1:
        return "quiet soft"
    if rms < 0.3:
        return "medium volume"
    return "loud punchy"


def brightness_label(spectral_centroid: float) -> str:
    if spectral_centroid < 1000:
        return "dark bass low"
    if spectral_centroid < 3000:
        return "mid-range warm"
    return "bright crisp high"


def build_descriptor(
    filename: str, tags: Iterable[str], features: AudioFeatures
) -> str:
    """Build the descriptor string for an asset.

    Parts, in order: lower-cased filename without extension, tags (if any),
    duration bucket, loudness bucket, brightness bucket (only when the
    spectral centroid is known).

    Examples:
        >>> build_descriptor("Kick.wav", ["808"], AudioFeatures(300, 0.5, 120.0))
        'kick 808 very-short one-shot loud punchy dark bass low'
    """
    parts = [strip_extension(filename).lower()]

    tags = list(tags)
    if tags:
        parts.append(" ".join(tags))

    parts.append(duration_label(features.duration_ms))
    parts.append(loudness_label(features.rms))

    if features.spectral_centroid is not None:
        parts.append(brightness_label(features.spectral_centroid))

    return " ".join(parts)


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of the raw file bytes (the dedup key)."""
    return hashlib.sha256(data).hexdigest()
