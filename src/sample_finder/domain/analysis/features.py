"""
Audio feature extraction.

Decodes raw audio bytes with pydub and derives duration, loudness (RMS) and
spectral brightness (spectral centroid) with numpy. Decoding failures never
propagate: they degrade to zeroed features.
"""

import io
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional, Tuple

import numpy as np
from loguru import logger
from pydub import AudioSegment

FFT_SIZE = 2048

# File extensions whose ffmpeg demuxer name differs from the extension
_FORMAT_ALIASES = {
    "aif": "aiff",
    "oga": "ogg",
}


@dataclass(frozen=True)
class AudioFeatures:
    """Compact numeric description of an audio asset."""

    duration_ms: int
    rms: float
    spectral_centroid: Optional[float] = None


EMPTY_FEATURES = AudioFeatures(duration_ms=0, rms=0.0)


def format_from_filename(filename: Optional[str]) -> Optional[str]:
    """Guess the container format from a filename extension ('kick.WAV' -> 'wav')."""
    if not filename:
        return None
    suffix = PurePath(filename).suffix.lower().lstrip(".")
    if not suffix:
        return None
    return _FORMAT_ALIASES.get(suffix, suffix)


def decode_audio(
    data: bytes, format_hint: Optional[str] = None
) -> Tuple[np.ndarray, int, int]:
    """Decode audio bytes into a mono float signal.

    Args:
        data: Raw file bytes
        format_hint: Container format (e.g. 'wav'); WAV decodes without ffmpeg

    Returns:
        (samples in [-1, 1], sample_rate, duration_ms)

    Raises:
        Exception: Whatever pydub/ffmpeg raises for undecodable input
    """
    audio = AudioSegment.from_file(io.BytesIO(data), format=format_hint)

    samples = np.array(audio.get_array_of_samples(), dtype=np.float64)
    if audio.channels > 1:
        usable = len(samples) - (len(samples) % audio.channels)
        samples = samples[:usable].reshape(-1, audio.channels).mean(axis=1)

    full_scale = float(1 << (8 * audio.sample_width - 1))
    samples = samples / full_scale

    return samples, audio.frame_rate, len(audio)


def compute_rms(samples: np.ndarray) -> float:
    """Root-mean-square amplitude, clamped to [0, 1]."""
    if samples.size == 0:
        return 0.0
    rms = float(np.sqrt(np.mean(np.square(samples))))
    return min(max(rms, 0.0), 1.0)


def compute_spectral_centroid(
    samples: np.ndarray, sample_rate: int, fft_size: int = FFT_SIZE
) -> Optional[float]:
    """Amplitude-weighted mean frequency (Hz) of the average magnitude spectrum.

    The signal is cut into Hann-windowed frames of ``fft_size`` samples (the
    last one zero-padded). Returns None for silence or an unusable signal.
    """
    if samples.size == 0 or sample_rate <= 0:
        return None

    frame_count = int(np.ceil(samples.size / fft_size))
    padded = np.zeros(frame_count * fft_size, dtype=np.float64)
    padded[: samples.size] = samples
    frames = padded.reshape(frame_count, fft_size) * np.hanning(fft_size)

    magnitudes = np.abs(np.fft.rfft(frames, axis=1)).mean(axis=0)
    frequencies = np.fft.rfftfreq(fft_size, d=1.0 / sample_rate)

    total = float(magnitudes.sum())
    if total <= 0.0 or not np.isfinite(total):
        return None
    return float((magnitudes * frequencies).sum() / total)


def extract_features(data: bytes, filename: Optional[str] = None) -> AudioFeatures:
    """Derive features from raw audio bytes.

    Args:
        data: Raw file bytes
        filename: Original filename, used only as a format hint

    Returns:
        AudioFeatures; EMPTY_FEATURES when the bytes cannot be decoded
    """
    try:
        samples, sample_rate, duration_ms = decode_audio(
            data, format_from_filename(filename)
        )
    except Exception as e:
        logger.warning(f"Could not decode audio {filename or '<bytes>'}: {e}")
        return EMPTY_FEATURES

    return AudioFeatures(
        duration_ms=int(duration_ms),
        rms=compute_rms(samples),
        spectral_centroid=compute_spectral_centroid(samples, sample_rate),
    )
