"""
Tests for the local library store.
"""

import json

import pytest

from sample_finder.domain.library import (
    DEFAULT_LICENSE_FLAGS,
    Engagement,
    LibraryStore,
    LocalDataset,
    Palette,
    Receipt,
    StateVersionError,
    new_id,
    should_show_signup_prompt,
)
from sample_finder.domain.similarity import find_similar


@pytest.fixture
def populated(library_store, make_asset):
    """Two assets, one palette holding both, one receipt for the first."""
    first = library_store.add_asset(make_asset(title="kick"))
    second = library_store.add_asset(make_asset(title="snare"))
    palette = library_store.create_palette("Drums")
    library_store.add_asset_to_palette(palette.id, first.id)
    library_store.add_asset_to_palette(palette.id, second.id)
    receipt = library_store.upsert_receipt_for_asset(first.id, source_url="https://shop")
    return first, second, palette, receipt


class TestAssets:
    def test_add_and_get(self, library_store, make_asset):
        asset = library_store.add_asset(make_asset(title="kick"))
        assert library_store.get_asset(asset.id) == asset
        assert library_store.get_engagement().assets_added == 1

    def test_persists_across_instances(self, library_store, make_asset):
        asset = library_store.add_asset(make_asset())
        reopened = LibraryStore(library_store.path)
        assert reopened.get_asset(asset.id) == asset

    def test_update(self, library_store, make_asset):
        asset = library_store.add_asset(make_asset(tags=["a"]))
        updated = library_store.update_asset(asset.id, tags=["b"])
        assert updated.tags == ["b"]
        assert library_store.get_asset(asset.id).tags == ["b"]

    def test_update_missing(self, library_store):
        assert library_store.update_asset("missing", tags=[]) is None

    def test_find_by_hash(self, library_store, make_asset):
        asset = library_store.add_asset(make_asset(content_hash="abc"))
        assert library_store.find_asset_by_hash("abc") == asset
        assert library_store.find_asset_by_hash("zzz") is None


class TestCascadingDelete:
    def test_removes_asset_palette_entry_and_receipt(self, library_store, populated):
        first, second, palette, _ = populated

        assert library_store.delete_asset(first.id) is True

        assert library_store.get_asset(first.id) is None
        assert library_store.get_palette(palette.id).asset_ids == [second.id]
        assert library_store.get_receipt_for_asset(first.id) is None

    def test_removes_blob(self, library_store, make_asset):
        asset = library_store.add_asset(make_asset())
        library_store.blobs.store(asset.id, b"audio")
        library_store.delete_asset(asset.id)
        assert library_store.blobs.get(asset.id) is None

    def test_missing_asset(self, library_store):
        assert library_store.delete_asset("missing") is False


class TestPalettes:
    def test_add_is_idempotent(self, library_store, make_asset):
        asset = library_store.add_asset(make_asset())
        palette = library_store.create_palette("Kicks")

        assert library_store.add_asset_to_palette(palette.id, asset.id) is True
        assert library_store.add_asset_to_palette(palette.id, asset.id) is False
        assert library_store.get_palette(palette.id).asset_ids == [asset.id]

    def test_add_unknown_ids_raise(self, library_store, make_asset):
        asset = library_store.add_asset(make_asset())
        palette = library_store.create_palette("Kicks")
        with pytest.raises(KeyError):
            library_store.add_asset_to_palette("missing", asset.id)
        with pytest.raises(KeyError):
            library_store.add_asset_to_palette(palette.id, "missing")

    def test_order_is_preserved(self, library_store, make_asset):
        ids = [library_store.add_asset(make_asset()).id for _ in range(3)]
        palette = library_store.create_palette("Set")
        for asset_id in reversed(ids):
            library_store.add_asset_to_palette(palette.id, asset_id)
        assert library_store.get_palette(palette.id).asset_ids == list(reversed(ids))

    def test_remove_and_delete(self, library_store, populated):
        first, second, palette, _ = populated
        assert library_store.remove_asset_from_palette(palette.id, first.id) is True
        assert library_store.remove_asset_from_palette(palette.id, first.id) is False
        assert library_store.delete_palette(palette.id) is True
        assert library_store.get_palettes() == []
        # Assets survive palette deletion
        assert library_store.get_asset(second.id) is not None

    def test_create_counts(self, library_store):
        library_store.create_palette("A", notes="first")
        assert library_store.get_engagement().palettes_created == 1
        assert library_store.get_palettes()[0].notes == "first"


class TestReceipts:
    def test_upsert_creates_with_default_flags(self, library_store, make_asset):
        asset = library_store.add_asset(make_asset())
        receipt = library_store.upsert_receipt_for_asset(asset.id, notes="bought")
        assert receipt.license_flags == DEFAULT_LICENSE_FLAGS
        assert receipt.notes == "bought"

    def test_upsert_updates_in_place(self, library_store, populated):
        first, _, _, receipt = populated
        updated = library_store.upsert_receipt_for_asset(
            first.id, license_flags={"royalty_free": True}
        )
        assert updated.id == receipt.id
        assert updated.source_url == "https://shop"
        assert updated.license_flags["royalty_free"] is True
        assert updated.license_flags["commercial_use"] is True
        assert len(library_store.get_receipts()) == 1

    def test_upsert_unknown_asset(self, library_store):
        with pytest.raises(KeyError):
            library_store.upsert_receipt_for_asset("missing")


class TestSignupPrompt:
    def test_policy_is_pure(self):
        engagement = Engagement(similarity_search_count=1)
        palettes = [Palette(id="p", name="p", asset_ids=["a"])]
        assert should_show_signup_prompt(engagement, palettes) is True
        assert engagement == Engagement(similarity_search_count=1)

    def test_search_alone_is_not_enough(self):
        palettes = [Palette(id="p", name="p")]
        assert should_show_signup_prompt(Engagement(similarity_search_count=3), palettes) is False

    def test_three_asset_palette_is_enough(self):
        palettes = [Palette(id="p", name="p", asset_ids=["a", "b", "c"])]
        assert should_show_signup_prompt(Engagement(), palettes) is True

    def test_false_after_shown(self, library_store, populated):
        library_store.record_similarity_search()
        assert library_store.should_show_signup_prompt() is True
        library_store.mark_signup_prompt_shown()
        assert library_store.should_show_signup_prompt() is False

    def test_false_after_synced(self, library_store, populated):
        library_store.record_similarity_search()
        library_store.mark_synced_to_cloud()
        assert library_store.should_show_signup_prompt() is False


class TestCorruption:
    def test_corrupt_document_resets_and_backs_up(self, library_store):
        library_store.path.parent.mkdir(parents=True, exist_ok=True)
        library_store.path.write_text("{not json", encoding="utf-8")

        assert library_store.get_assets() == []
        backups = list(library_store.path.parent.glob("library.json.corrupt-*"))
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == "{not json"

    def test_structurally_invalid_document_resets(self, library_store):
        library_store.path.parent.mkdir(parents=True, exist_ok=True)
        library_store.path.write_text(json.dumps({"version": 2, "assets": "nope"}))
        assert library_store.snapshot().assets == []

    def test_null_tags_reset_instead_of_breaking_search(self, library_store):
        library_store.path.parent.mkdir(parents=True, exist_ok=True)
        asset = {
            "id": "b",
            "title": "kick",
            "original_filename": "kick.wav",
            "content_hash": "h",
            "tags": None,
        }
        library_store.path.write_text(json.dumps({"version": 2, "assets": [asset]}))

        assert library_store.get_assets() == []
        assert list(library_store.path.parent.glob("library.json.corrupt-*"))
        with pytest.raises(KeyError):
            find_similar(library_store, "b")

    def test_newer_version_is_refused_and_untouched(self, library_store):
        library_store.path.parent.mkdir(parents=True, exist_ok=True)
        document = json.dumps({"version": 99, "assets": []})
        library_store.path.write_text(document, encoding="utf-8")

        with pytest.raises(StateVersionError):
            library_store.get_assets()
        assert library_store.path.read_text(encoding="utf-8") == document

    def test_failed_transaction_is_not_committed(self, library_store, make_asset):
        with pytest.raises(RuntimeError):
            with library_store.transaction() as state:
                state.assets.append(make_asset())
                raise RuntimeError("boom")
        assert library_store.get_assets() == []


class TestBulk:
    def test_export_payload(self, library_store, populated):
        dataset = library_store.export_payload()
        assert len(dataset.assets) == 2
        assert len(dataset.palettes) == 1
        assert len(dataset.receipts) == 1

    def test_merge_skips_known_ids_and_dangling_refs(self, library_store, make_asset):
        existing = library_store.add_asset(make_asset())
        incoming = make_asset()
        dataset = LocalDataset(
            assets=[existing, incoming],
            palettes=[Palette(id=new_id(), name="Imported", asset_ids=[incoming.id, "ghost"])],
            receipts=[
                Receipt(id=new_id(), asset_id=incoming.id),
                Receipt(id=new_id(), asset_id="ghost"),
            ],
        )

        added = library_store.merge_dataset(dataset)

        assert added == {"assets": 1, "palettes": 1, "receipts": 1}
        assert library_store.get_palettes()[0].asset_ids == [incoming.id]

    def test_clear(self, library_store, populated):
        first = populated[0]
        library_store.blobs.store(first.id, b"audio")
        library_store.clear()
        state = library_store.snapshot()
        assert state.assets == [] and state.palettes == [] and state.receipts == []
        assert state.engagement == Engagement()
        assert library_store.blobs.get(first.id) is None
