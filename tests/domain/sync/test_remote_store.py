"""
Tests for the SQL remote store (SQLite backend).
"""

from pathlib import Path

import pytest

from sample_finder.domain.sync.remote_store import (
    RemoteStoreError,
    SQLRemoteStore,
    is_postgres_url,
    sqlite_path_from_url,
)


class TestUrls:
    def test_postgres_detection(self):
        assert is_postgres_url("postgresql://u@h/db")
        assert is_postgres_url("postgres://u@h/db")
        assert not is_postgres_url("sqlite:///remote.db")

    def test_sqlite_paths(self):
        assert sqlite_path_from_url("sqlite:///data/remote.db") == Path("data/remote.db")
        assert sqlite_path_from_url("sqlite:////tmp/remote.db") == Path("/tmp/remote.db")
        assert sqlite_path_from_url("/tmp/remote.db") == Path("/tmp/remote.db")

    def test_sqlite_url_without_path(self):
        with pytest.raises(ValueError):
            sqlite_path_from_url("sqlite://host/remote.db")

    def test_empty_url(self):
        with pytest.raises(ValueError):
            SQLRemoteStore("")


class TestTable:
    @pytest.mark.anyio
    async def test_insert_issues_id_and_round_trips_json(self, remote):
        row = await remote.table("assets").insert(
            {
                "user_id": "u1",
                "title": "kick",
                "content_hash": "abc",
                "embedding": [0.5, 0.5],
                "tags": ["808"],
            }
        )
        assert row["id"]

        found = await remote.table("assets").find_one(id=row["id"])
        assert found["embedding"] == [0.5, 0.5]
        assert found["tags"] == ["808"]
        assert found["spectral_centroid"] is None

    @pytest.mark.anyio
    async def test_find_one_missing(self, remote):
        assert await remote.table("palettes").find_one(user_id="nobody") is None

    @pytest.mark.anyio
    async def test_unique_content_hash_per_user(self, remote):
        assets = remote.table("assets")
        await assets.insert({"user_id": "u1", "content_hash": "abc"})
        await assets.insert({"user_id": "u2", "content_hash": "abc"})
        with pytest.raises(RemoteStoreError):
            await assets.insert({"user_id": "u1", "content_hash": "abc"})
        assert await assets.count() == 2

    @pytest.mark.anyio
    async def test_update_and_select(self, remote):
        palettes = remote.table("palettes")
        row = await palettes.insert({"user_id": "u1", "name": "Drums", "notes": ""})

        changed = await palettes.update({"notes": "tight"}, id=row["id"])

        assert changed == 1
        rows = await palettes.select(user_id="u1")
        assert [r["notes"] for r in rows] == ["tight"]

    @pytest.mark.anyio
    async def test_update_requires_filter(self, remote):
        with pytest.raises(ValueError):
            await remote.table("palettes").update({"notes": "x"})

    @pytest.mark.anyio
    async def test_upsert_overwrites_on_conflict(self, remote):
        subscriptions = remote.table("subscriptions")
        await subscriptions.upsert(
            {"user_id": "u1", "status": "active", "cancel_at_period_end": False},
            on_conflict=("user_id",),
        )
        await subscriptions.upsert(
            {"user_id": "u1", "status": "past_due", "cancel_at_period_end": True},
            on_conflict=("user_id",),
        )

        rows = await subscriptions.select(user_id="u1")
        assert len(rows) == 1
        assert rows[0]["status"] == "past_due"
        assert rows[0]["cancel_at_period_end"] is True

    @pytest.mark.anyio
    async def test_upsert_updates_only_listed_columns(self, remote):
        subscriptions = remote.table("subscriptions")
        await subscriptions.upsert(
            {"user_id": "u1", "status": "active", "cancel_at_period_end": False},
            on_conflict=("user_id",),
        )
        await subscriptions.upsert(
            {"user_id": "u1", "status": "canceled", "cancel_at_period_end": True},
            on_conflict=("user_id",),
            update_columns=("status",),
        )

        row = await subscriptions.find_one(user_id="u1")
        assert row["status"] == "canceled"
        assert row["cancel_at_period_end"] is False

    @pytest.mark.anyio
    async def test_upsert_with_no_update_columns_keeps_row(self, remote):
        profiles = remote.table("profiles")
        await profiles.upsert({"id": "u1", "email": "a@example.com"}, on_conflict=("id",))
        await profiles.upsert({"id": "u1"}, on_conflict=("id",), update_columns=())

        assert (await profiles.find_one(id="u1"))["email"] == "a@example.com"
        assert await profiles.count() == 1

    @pytest.mark.anyio
    async def test_upsert_update_column_must_be_in_row(self, remote):
        with pytest.raises(ValueError):
            await remote.table("profiles").upsert(
                {"id": "u1"}, on_conflict=("id",), update_columns=("email",)
            )

    @pytest.mark.anyio
    async def test_unknown_column_rejected(self, remote):
        with pytest.raises(ValueError):
            await remote.table("assets").find_one(**{"id; DROP TABLE assets": "x"})

    def test_unknown_table_rejected(self, remote):
        with pytest.raises(ValueError):
            remote.table("users")

    def test_schema_is_idempotent(self, remote):
        remote.init_schema()
        remote.init_schema()
