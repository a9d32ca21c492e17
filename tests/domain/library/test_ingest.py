"""
Tests for the ingest pipeline.
"""

from unittest.mock import AsyncMock

import pytest

from sample_finder.domain.analysis.descriptor import content_hash
from sample_finder.domain.library.ingest import (
    clean_tags,
    ingest,
    ingest_files,
    retag_asset,
)
from sample_finder.domain.similarity.clients import EmbeddingError
from sample_finder.domain.similarity.embedding import (
    EmbeddingProvider,
    deterministic_embedding,
)


@pytest.fixture
def provider():
    return EmbeddingProvider()


def test_clean_tags():
    assert clean_tags([" 808 ", "", "kick", "808", "  "]) == ["808", "kick"]
    assert clean_tags(None) == []


class TestIngest:
    @pytest.mark.anyio
    async def test_full_pipeline(self, library_store, provider, make_wav):
        data = make_wav(frequency=110.0, duration_ms=300, amplitude=0.6)

        asset = await ingest(library_store, provider, data, "Sub Kick.wav", tags=["808"])

        assert asset.title == "Sub Kick"
        assert asset.original_filename == "Sub Kick.wav"
        assert asset.content_hash == content_hash(data)
        assert asset.duration_ms == pytest.approx(300, abs=2)
        assert asset.descriptor.startswith("sub kick 808 very-short one-shot")
        assert asset.embedding == deterministic_embedding(asset.descriptor)
        assert library_store.get_asset(asset.id) == asset
        assert library_store.blobs.get(asset.id) == data

    @pytest.mark.anyio
    async def test_undecodable_audio_still_ingests(self, library_store, provider):
        asset = await ingest(library_store, provider, b"definitely not audio", "broken.wav")
        assert asset.duration_ms == 0
        assert asset.rms == 0.0
        assert asset.spectral_centroid is None
        assert asset.descriptor == "broken very-short one-shot quiet soft"
        assert len(asset.embedding) == 1536

    @pytest.mark.anyio
    async def test_remote_failure_falls_back(self, library_store, make_wav):
        client = AsyncMock()
        client.name = "mock"
        client.fetch.side_effect = EmbeddingError("service down")
        asset = await ingest(
            library_store, EmbeddingProvider(client), make_wav(duration_ms=100), "hat.wav"
        )
        assert asset.embedding == deterministic_embedding(asset.descriptor)

    @pytest.mark.anyio
    async def test_duplicates_are_kept_by_default(self, library_store, provider, make_wav):
        data = make_wav(duration_ms=100)
        first = await ingest(library_store, provider, data, "a.wav")
        second = await ingest(library_store, provider, data, "b.wav")
        assert first.id != second.id
        assert first.content_hash == second.content_hash
        assert len(library_store.get_assets()) == 2

    @pytest.mark.anyio
    async def test_skip_duplicates(self, library_store, provider, make_wav):
        data = make_wav(duration_ms=100)
        first = await ingest(library_store, provider, data, "a.wav")
        second = await ingest(library_store, provider, data, "b.wav", skip_duplicates=True)
        assert second.id == first.id
        assert len(library_store.get_assets()) == 1


class TestIngestFiles:
    @pytest.mark.anyio
    async def test_filters_and_truncates(self, library_store, provider, make_wav, tmp_path):
        for i in range(3):
            (tmp_path / f"kick{i}.wav").write_bytes(make_wav(frequency=100.0 + i, duration_ms=50))
        (tmp_path / "notes.txt").write_text("not audio")

        paths = sorted(tmp_path.iterdir())
        assets = await ingest_files(
            library_store, provider, paths, supported_formats=[".wav"], max_files=2
        )

        assert [a.original_filename for a in assets] == ["kick0.wav", "kick1.wav"]

    @pytest.mark.anyio
    async def test_unreadable_file_is_skipped(self, library_store, provider, make_wav, tmp_path):
        good = tmp_path / "good.wav"
        good.write_bytes(make_wav(duration_ms=50))
        missing = tmp_path / "missing.wav"

        assets = await ingest_files(
            library_store, provider, [missing, good], supported_formats=[".wav"], tags=["x"]
        )

        assert [a.original_filename for a in assets] == ["good.wav"]
        assert assets[0].tags == ["x"]


class TestRetag:
    @pytest.mark.anyio
    async def test_rebuilds_descriptor_and_embedding(self, library_store, provider, make_wav):
        asset = await ingest(library_store, provider, make_wav(duration_ms=100), "hat.wav")

        updated = await retag_asset(library_store, provider, asset.id, ["open", "crisp"])

        assert updated.tags == ["open", "crisp"]
        assert updated.descriptor.startswith("hat open crisp ")
        assert updated.embedding == deterministic_embedding(updated.descriptor)
        assert library_store.get_asset(asset.id).descriptor == updated.descriptor

    @pytest.mark.anyio
    async def test_unknown_asset(self, library_store, provider):
        assert await retag_asset(library_store, provider, "missing", ["x"]) is None
