"""Shared fixtures: async backend, synthesized WAV audio, stores and assets."""

import io
import wave

import numpy as np
import pytest

from sample_finder.domain.library import Asset, LibraryStore, new_id
from sample_finder.domain.sync import open_remote_store


@pytest.fixture
def anyio_backend():
    return "asyncio"


def synth_wav(
    frequency: float = 440.0,
    duration_ms: int = 1000,
    amplitude: float = 0.5,
    sample_rate: int = 44100,
    channels: int = 1,
) -> bytes:
    """16-bit PCM sine wave as WAV bytes."""
    frame_count = int(sample_rate * duration_ms / 1000)
    t = np.arange(frame_count) / sample_rate
    signal = amplitude * np.sin(2 * np.pi * frequency * t)
    pcm = (signal * 32767).astype("<i2")
    if channels > 1:
        pcm = np.repeat(pcm, channels)

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return buffer.getvalue()


@pytest.fixture
def make_wav():
    return synth_wav


@pytest.fixture
def make_asset():
    """Factory for assets with sensible defaults."""

    def _make(**overrides) -> Asset:
        values = {
            "id": new_id(),
            "title": "kick",
            "original_filename": "kick.wav",
            "content_hash": new_id().replace("-", ""),
            "duration_ms": 1000,
            "rms": 0.2,
            "descriptor": "kick short one-shot medium volume",
            "tags": [],
        }
        values.update(overrides)
        return Asset(**values)

    return _make


@pytest.fixture
def library_store(tmp_path):
    return LibraryStore.in_directory(tmp_path / "library")


@pytest.fixture
def remote(tmp_path):
    return open_remote_store(f"sqlite:///{tmp_path / 'remote.db'}")
