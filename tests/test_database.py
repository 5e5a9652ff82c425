"""
Tests for the SQLite wallet record store.
"""

import asyncio
from datetime import datetime

import pytest

from soursop.database import WalletRecord, WalletStore
from soursop.exceptions import DuplicateFieldError, StorageError, ValidationError


def make_record(user_id=1, address="addr-1", key="enc-key-1", mnemonic="enc-mnemonic-1"):
    return WalletRecord(
        user_id=user_id,
        address=address,
        encrypted_private_key=key,
        encrypted_mnemonic=mnemonic,
    )


class TestCreateAndSave:

    @pytest.mark.asyncio
    async def test_saves_and_assigns_id(self, store):
        saved = await store.create_and_save(make_record())
        assert saved.id is not None
        assert isinstance(saved.created_at, datetime)
        assert saved.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_accepts_mapping(self, store):
        saved = await store.create_and_save({
            "user_id": 7,
            "address": "addr-7",
            "encrypted_private_key": "enc-7",
            "ignored": "field",
        })
        assert saved.user_id == 7
        assert saved.encrypted_mnemonic is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field_name", ["user_id", "address", "encrypted_private_key"])
    async def test_missing_required_field(self, store, field_name):
        record = make_record()
        setattr(record, field_name, None)

        with pytest.raises(ValidationError) as exc_info:
            await store.create_and_save(record)

        assert exc_info.value.field_name == field_name
        assert exc_info.value.message == f"Wallet validation failed: {field_name} is required"

    @pytest.mark.asyncio
    async def test_missing_user_id_in_mapping(self, store):
        with pytest.raises(ValidationError) as exc_info:
            await store.create_and_save({"address": "a", "encrypted_private_key": "k"})
        assert exc_info.value.field_name == "user_id"

    @pytest.mark.asyncio
    async def test_non_integer_user_id(self, store):
        with pytest.raises(ValidationError):
            await store.create_and_save(make_record(user_id="42"))

    @pytest.mark.asyncio
    async def test_mnemonic_is_optional(self, store):
        saved = await store.create_and_save(make_record(mnemonic=None))
        assert saved.encrypted_mnemonic is None


class TestUniqueness:

    @pytest.mark.asyncio
    async def test_duplicate_user(self, store):
        await store.create_and_save(make_record())
        with pytest.raises(DuplicateFieldError) as exc_info:
            await store.create_and_save(make_record(address="addr-2", key="enc-key-2"))
        assert exc_info.value.field_name == "user_id"
        assert exc_info.value.message == "Duplicate value for field: user_id"

    @pytest.mark.asyncio
    async def test_duplicate_address(self, store):
        await store.create_and_save(make_record())
        with pytest.raises(DuplicateFieldError) as exc_info:
            await store.create_and_save(make_record(user_id=2, key="enc-key-2"))
        assert exc_info.value.field_name == "address"

    @pytest.mark.asyncio
    async def test_duplicate_encrypted_key(self, store):
        await store.create_and_save(make_record())
        with pytest.raises(DuplicateFieldError) as exc_info:
            await store.create_and_save(make_record(user_id=2, address="addr-2"))
        assert exc_info.value.field_name == "encrypted_private_key"

    @pytest.mark.asyncio
    async def test_duplicate_is_a_storage_error(self, store):
        await store.create_and_save(make_record())
        with pytest.raises(StorageError):
            await store.create_and_save(make_record())

    @pytest.mark.asyncio
    async def test_concurrent_saves_for_same_user(self, store):
        results = await asyncio.gather(
            store.create_and_save(make_record(address="a1", key="k1")),
            store.create_and_save(make_record(address="a2", key="k2")),
            return_exceptions=True,
        )
        saved = [r for r in results if isinstance(r, WalletRecord)]
        rejected = [r for r in results if isinstance(r, DuplicateFieldError)]
        assert len(saved) == 1
        assert len(rejected) == 1

    @pytest.mark.asyncio
    async def test_store_usable_after_rejection(self, store):
        await store.create_and_save(make_record())
        with pytest.raises(DuplicateFieldError):
            await store.create_and_save(make_record())
        saved = await store.create_and_save(make_record(user_id=2, address="addr-2", key="enc-key-2"))
        assert saved.user_id == 2


class TestFindByUserId:

    @pytest.mark.asyncio
    async def test_absent_user(self, store):
        assert await store.find_by_user_id(999) is None

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        saved = await store.create_and_save(make_record(user_id=5))
        found = await store.find_by_user_id(5)
        assert found == saved


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_records_survive_reopen(self, tmp_path):
        path = tmp_path / "nested" / "wallets.db"
        async with WalletStore(path) as first:
            await first.create_and_save(make_record())

        async with WalletStore(path) as second:
            found = await second.find_by_user_id(1)

        assert found is not None
        assert found.address == "addr-1"

    @pytest.mark.asyncio
    async def test_lazy_initialize(self, tmp_path):
        wallet_store = WalletStore(tmp_path / "lazy.db", enable_wal=False)
        try:
            assert await wallet_store.find_by_user_id(1) is None
        finally:
            await wallet_store.close()
