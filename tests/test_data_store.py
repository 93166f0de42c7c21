"""Tests du Data Store / Data Store tests."""

from datetime import datetime, timedelta, timezone

import pytest

from guardian.database import cleanup_location_history
from guardian.models.connection import ConnectionStatus
from guardian.schemas.location import Position
from guardian.services.data_store import DataStore

NOW = "2024-05-01T12:00:00+00:00"


@pytest.mark.asyncio
async def test_upsert_presence_merges_fields(store):
    await store.upsert_presence("family", "kid", {"latitude": 1.0, "longitude": 2.0, "is_online": True})
    await store.upsert_presence("family", "kid", {"address": "School"})
    row = await store.get_presence("family", "kid")
    assert (row.latitude, row.longitude, row.address, row.is_online) == (1.0, 2.0, "School", True)
    assert len(await store.list_presence("family")) == 1


@pytest.mark.asyncio
async def test_upsert_presence_rejects_unknown_fields(store):
    with pytest.raises(ValueError):
        await store.upsert_presence("family", "kid", {"speed": 12})


@pytest.mark.asyncio
async def test_concurrent_insert_recovers_as_update(store, monkeypatch):
    await store.upsert_presence("family", "kid", {"latitude": 1.0, "longitude": 2.0})
    real_update = DataStore._update_presence
    calls = []

    async def racing_update(self, owner_id, subject_id, fields):
        calls.append(fields)
        if len(calls) == 1:
            # Simule une ligne inseree entre la lecture et l'insert / Row inserted between read and insert
            return False
        return await real_update(self, owner_id, subject_id, fields)

    monkeypatch.setattr(DataStore, "_update_presence", racing_update)
    await store.upsert_presence("family", "kid", {"latitude": 5.0})
    assert len(calls) == 2
    assert (await store.get_presence("family", "kid")).latitude == 5.0


@pytest.mark.asyncio
async def test_mark_subject_offline_in_every_group(store):
    await store.upsert_presence("family", "kid", {"is_online": True, "share_location": True})
    await store.upsert_presence("school", "kid", {"is_online": True, "share_location": True})
    assert await store.mark_subject_offline("kid", NOW) == 2
    for owner in ("family", "school"):
        row = await store.get_presence(owner, "kid")
        assert not row.is_online
        assert row.last_seen == NOW


@pytest.mark.asyncio
async def test_connected_users_in_both_directions(store):
    await store.add_connection("a", "me", NOW)
    await store.add_connection("me", "b", NOW)
    await store.add_connection("c", "me", NOW, status=ConnectionStatus.PENDING)
    assert await store.list_connected_user_ids("me") == ["a", "b"]


@pytest.mark.asyncio
async def test_recent_history_ids_oldest_first(store):
    ids = []
    for minute in range(7):
        created = f"2024-05-01T12:{minute:02d}:00+00:00"
        ids.append(await store.insert_history("me", Position(latitude=1, longitude=minute), created))
    assert await store.query_recent_history_ids("me", 5) == ids[2:]
    assert not await store.update_history(999_999, Position(latitude=0, longitude=0), NOW)


@pytest.mark.asyncio
async def test_cleanup_purges_old_history(session_factory, store):
    old = (datetime.now(timezone.utc) - timedelta(hours=48)).isoformat(timespec="seconds")
    fresh = datetime.now(timezone.utc).isoformat(timespec="seconds")
    await store.insert_history("me", Position(latitude=1, longitude=1), old)
    await store.insert_history("me", Position(latitude=2, longitude=2), fresh)

    removed = await cleanup_location_history(session_factory.kw["bind"], hours=24)
    assert removed == 1
    assert (await store.query_latest_history("me")).latitude == 2
