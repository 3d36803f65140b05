"""Tests for creatorgen.storage — SQLite datastore and local object storage."""

from __future__ import annotations

import asyncio

import pytest

from creatorgen.core.models import GenerationRecord, TemplateRules
from creatorgen.storage.base import ProfileStore


class TestProfiles:
    def test_missing_profile(self, datastore):
        assert asyncio.run(datastore.get_profile("ghost")) is None

    def test_roundtrip(self, datastore, make_profile):
        profile = make_profile(
            credits=25,
            role="admin",
            plan="pro",
            auto_recharge_enabled=True,
            auto_recharge_pack_id="pack-50",
            auto_recharge_threshold=5,
        )
        datastore.upsert_profile(profile)
        assert asyncio.run(datastore.get_profile("user-1")) == profile

    def test_decrement(self, datastore, make_profile):
        datastore.upsert_profile(make_profile(credits=10))
        assert asyncio.run(datastore.decrement_credits("user-1", 3)) == 7
        assert asyncio.run(datastore.get_profile("user-1")).credits == 7

    def test_decrement_refused_below_amount(self, datastore, make_profile):
        """The conditional update never takes a balance below zero."""
        datastore.upsert_profile(make_profile(credits=2))
        assert asyncio.run(datastore.decrement_credits("user-1", 3)) is None
        assert asyncio.run(datastore.get_profile("user-1")).credits == 2

    def test_decrement_unknown_user(self, datastore):
        assert asyncio.run(datastore.decrement_credits("ghost", 3)) is None

    def test_update_credits(self, datastore, make_profile):
        datastore.upsert_profile(make_profile(credits=10))
        asyncio.run(datastore.update_credits("user-1", 4))
        assert asyncio.run(datastore.get_profile("user-1")).credits == 4

    def test_default_decrement_not_implemented(self, make_profile):
        """Stores without an atomic primitive signal it."""

        class PlainStore(ProfileStore):
            async def get_profile(self, user_id):
                return make_profile()

            async def update_credits(self, user_id, credits):
                return None

        with pytest.raises(NotImplementedError):
            asyncio.run(PlainStore().decrement_credits("user-1", 3))


class TestGenerationRecords:
    def test_insert_and_list(self, datastore):
        record = GenerationRecord(
            user_id="user-1",
            combined_prompt_text="USER INSTRUCTIONS:\nhello",
            settings={"model": "nano-banana-pro", "input_images": 0},
            image_url="https://cdn.test/out.png",
            prompt_id="tpl-1",
        )
        record_id = asyncio.run(datastore.insert(record))

        rows = datastore.list_generations("user-1")
        assert len(rows) == 1
        assert rows[0]["id"] == record_id
        assert rows[0]["settings"] == {"model": "nano-banana-pro", "input_images": 0}
        assert rows[0]["prompt_id"] == "tpl-1"

    def test_list_filters_by_user(self, datastore):
        for user in ("a", "b", "a"):
            asyncio.run(datastore.insert(GenerationRecord(user_id=user, combined_prompt_text="x", settings={})))
        assert len(datastore.list_generations("a")) == 2
        assert len(datastore.list_generations()) == 3


class TestConfigStore:
    @pytest.mark.parametrize("value, expected", [(True, True), (False, False)])
    def test_flags(self, datastore, value, expected):
        datastore.set_flag("generations_paused", value)
        assert asyncio.run(datastore.get_flag("generations_paused")) is expected

    def test_missing_flag_false(self, datastore):
        assert asyncio.run(datastore.get_flag("nope")) is False

    def test_template_rules(self, datastore):
        rules = TemplateRules(template_id="tpl-1", rules="Keep the border.", subject_mode="human")
        datastore.upsert_template_rules(rules)
        assert asyncio.run(datastore.get_template_rules("tpl-1")) == rules
        assert asyncio.run(datastore.get_template_rules("tpl-2")) is None


class TestLocalObjectStorage:
    def test_upload_download(self, storage):
        url = asyncio.run(storage.upload("users/u1/a.png", b"abc", "image/png"))
        assert url == "http://testserver/storage/generations/users/u1/a.png"
        assert asyncio.run(storage.download("users/u1/a.png")) == b"abc"

    def test_missing_object(self, storage):
        with pytest.raises(FileNotFoundError):
            asyncio.run(storage.download("users/u1/missing.png"))

    def test_path_traversal_rejected(self, storage):
        with pytest.raises(ValueError):
            asyncio.run(storage.upload("../../escape.png", b"x", "image/png"))

    def test_sibling_directory_rejected(self, storage):
        """A directory sharing the bucket name prefix is outside the bucket."""
        with pytest.raises(ValueError):
            asyncio.run(storage.upload(f"../{storage.bucket}2/x.png", b"x", "image/png"))
        assert not (storage.root / f"{storage.bucket}2").exists()

    @pytest.mark.parametrize(
        "url, path",
        [
            ("http://testserver/storage/generations/users/u1/a.png", "users/u1/a.png"),
            ("https://x.supabase.co/storage/v1/object/public/generations/tmp/a%20b.png", "tmp/a b.png"),
            ("https://cdn.test/other/a.png", None),
            ("https://cdn.test/generations/", None),
        ],
    )
    def test_path_from_url(self, storage, url, path):
        assert storage.path_from_url(url) == path
