"""
Tests for descriptor building and content hashing.
"""

import pytest

from sample_finder.domain.analysis.descriptor import (
    brightness_label,
    build_descriptor,
    content_hash,
    duration_label,
    loudness_label,
    strip_extension,
)
from sample_finder.domain.analysis.features import AudioFeatures


class TestBuckets:
    @pytest.mark.parametrize(
        "duration_ms,expected",
        [
            (0, "very-short one-shot"),
            (499, "very-short one-shot"),
            (500, "short one-shot"),
            (1999, "short one-shot"),
            (2000, "medium loop"),
            (7999, "medium loop"),
            (8000, "long loop"),
        ],
    )
    def test_duration(self, duration_ms, expected):
        assert duration_label(duration_ms) == expected

    @pytest.mark.parametrize(
        "rms,expected",
        [(0.0, "quiet soft"), (0.1, "medium volume"), (0.29, "medium volume"), (0.3, "loud punchy")],
    )
    def test_loudness(self, rms, expected):
        assert loudness_label(rms) == expected

    @pytest.mark.parametrize(
        "centroid,expected",
        [(999.9, "dark bass low"), (1000, "mid-range warm"), (3000, "bright crisp high")],
    )
    def test_brightness(self, centroid, expected):
        assert brightness_label(centroid) == expected


class TestBuildDescriptor:
    def test_full_descriptor(self):
        features = AudioFeatures(duration_ms=300, rms=0.5, spectral_centroid=120.0)
        assert (
            build_descriptor("Kick.wav", ["808"], features)
            == "kick 808 very-short one-shot loud punchy dark bass low"
        )

    def test_no_tags_and_unknown_centroid(self):
        features = AudioFeatures(duration_ms=4000, rms=0.05)
        assert build_descriptor("Pad Loop.aiff", [], features) == "pad loop medium loop quiet soft"

    def test_only_last_extension_is_stripped(self):
        assert strip_extension("snare.v2.wav") == "snare.v2"
        assert strip_extension("noext") == "noext"

    def test_deterministic(self):
        features = AudioFeatures(duration_ms=1200, rms=0.2, spectral_centroid=2500.0)
        first = build_descriptor("Hat.wav", ["crisp", "open"], features)
        second = build_descriptor("Hat.wav", ["crisp", "open"], features)
        assert first == second


def test_content_hash_depends_only_on_bytes():
    assert content_hash(b"abc") == content_hash(b"abc")
    assert content_hash(b"abc") != content_hash(b"abd")
    assert content_hash(b"abc") == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )
