"""Tests de l'anneau SOS / SOS ring tests."""

import asyncio

import pytest
from conftest import HOME, offset

from guardian.services.sos_recorder import SOS_BUFFER_SIZE, EmergencyTracker, SOSRecorder
from guardian.utils.clock import to_iso

USER = "user-sos"


async def _all_rows(store, user_id=USER):
    return await store.query_history_since(user_id, "1970-01-01T00:00:00+00:00")


@pytest.mark.asyncio
async def test_first_five_writes_insert(store, clock):
    recorder = SOSRecorder(store, clock=clock)
    ids = []
    for i in range(SOS_BUFFER_SIZE):
        clock.advance(3600)
        ids.append(await recorder.record(USER, offset(HOME, north_m=i * 100)))
    buffer = recorder.buffer(USER)
    assert buffer.row_ids == ids
    assert buffer.insert_count == 5
    assert buffer.cursor == 0
    assert len(await _all_rows(store)) == 5


@pytest.mark.asyncio
async def test_wraparound_updates_in_fifo_order(store, clock):
    recorder = SOSRecorder(store, clock=clock)
    for i in range(5):
        clock.advance(3600)
        await recorder.record(USER, offset(HOME, north_m=i * 100))
    ids = list(recorder.buffer(USER).row_ids)

    for i in range(5, 10):
        clock.advance(3600)
        row_id = await recorder.record(USER, offset(HOME, north_m=i * 100))
        assert row_id == ids[i - 5]
        assert recorder.buffer(USER).cursor == (i - 4) % 5

    rows = await _all_rows(store)
    assert len(rows) == 5
    assert sorted(row.id for row in rows) == sorted(ids)
    # La ligne la plus recente est la 10e ecriture / The newest row holds the 10th write
    assert rows[0].id == ids[4]
    assert rows[0].latitude == offset(HOME, north_m=900).latitude


@pytest.mark.asyncio
async def test_recovery_after_restart(store, clock):
    first = SOSRecorder(store, clock=clock)
    for i in range(7):
        clock.advance(3600)
        await first.record(USER, offset(HOME, north_m=i * 100))
    expected = await store.query_recent_history_ids(USER, 5)

    restarted = SOSRecorder(store, clock=clock)
    clock.advance(3600)
    row_id = await restarted.record(USER, HOME)
    # Plus ancienne ligne reecrite en premier / Oldest row is overwritten first
    assert row_id == expected[0]
    assert restarted.buffer(USER).row_ids == expected
    assert len(await _all_rows(store)) == 5


@pytest.mark.asyncio
async def test_vanished_row_is_replaced(store, clock):
    recorder = SOSRecorder(store, clock=clock)
    buffer = await recorder.recover(USER)
    buffer.row_ids = [9001, 9002, 9003, 9004, 9005]
    buffer.insert_count = 5

    row_id = await recorder.record(USER, HOME)
    assert row_id not in (9001, 9002)
    assert buffer.row_ids[0] == row_id
    assert buffer.cursor == 1


@pytest.mark.asyncio
async def test_emergency_tracker_records_immediately(engine, store, geocoder):
    tracker = EmergencyTracker(engine.tracking, engine.sos, engine.resolver, interval_s=3600)
    position = await tracker.start_emergency(USER)
    assert tracker.is_active(USER)
    assert position.address is not None
    assert len(await _all_rows(store)) == 1
    # Deuxieme declaration sans effet / Second declaration is a no-op
    assert await tracker.start_emergency(USER) is None
    assert await tracker.stop_emergency(USER)
    assert not tracker.is_active(USER)


@pytest.mark.asyncio
async def test_emergency_loop_keeps_ring_bounded(engine, store):
    tracker = EmergencyTracker(engine.tracking, engine.sos, engine.resolver, interval_s=0.01)
    await tracker.start_emergency(USER)
    for _ in range(500):
        buffer = engine.sos.buffer(USER)
        if buffer is not None and buffer.full and buffer.cursor >= 2:
            break
        await asyncio.sleep(0.01)
    await tracker.stop_emergency(USER)
    assert engine.sos.buffer(USER).insert_count == 5
    assert len(await _all_rows(store)) == 5


@pytest.mark.asyncio
async def test_new_emergency_keeps_regular_history(engine, store, clock):
    regular_ids = []
    for i in range(SOS_BUFFER_SIZE):
        clock.advance(3600)
        regular_ids.append(await store.insert_history(USER, offset(HOME, east_m=i * 100), to_iso(clock())))

    clock.advance(3600)
    tracker = EmergencyTracker(engine.tracking, engine.sos, engine.resolver, interval_s=3600)
    await tracker.start_emergency(USER)
    await tracker.stop_emergency(USER)

    rows = await _all_rows(store)
    assert len(rows) == SOS_BUFFER_SIZE + 1
    assert regular_ids[0] in {row.id for row in rows}
    assert engine.sos.buffer(USER).insert_count == 1


@pytest.mark.asyncio
async def test_resume_picks_up_existing_ring(engine, store, clock):
    for i in range(SOS_BUFFER_SIZE):
        clock.advance(3600)
        await store.insert_history(USER, offset(HOME, east_m=i * 100), to_iso(clock()))
    expected = await store.query_recent_history_ids(USER, SOS_BUFFER_SIZE)

    clock.advance(3600)
    tracker = EmergencyTracker(engine.tracking, engine.sos, engine.resolver, interval_s=3600)
    await tracker.start_emergency(USER, resume=True)
    await tracker.stop_emergency(USER)

    assert len(await _all_rows(store)) == SOS_BUFFER_SIZE
    assert engine.sos.buffer(USER).row_ids == expected
    assert engine.sos.buffer(USER).cursor == 1


@pytest.mark.asyncio
async def test_rate_limited_sample_reuses_last_address(engine, store, geolocator, geocoder):
    tracker = EmergencyTracker(engine.tracking, engine.sos, engine.resolver, interval_s=0.01)
    first = await tracker.start_emergency(USER)
    # Deplacement sans avancer l'horloge : geocodage limite / Move without advancing the clock: geocoding rate-limited
    geolocator.position = offset(HOME, north_m=200)
    for _ in range(500):
        if len(await _all_rows(store)) >= 2:
            break
        await asyncio.sleep(0.01)
    await tracker.stop_emergency(USER)

    rows = await _all_rows(store)
    assert len(geocoder.calls) == 1
    assert all(row.address == first.address for row in rows)


@pytest.mark.asyncio
async def test_emergency_mode_flag_on_session(engine):
    await engine.tracking.start(USER)
    tracker = EmergencyTracker(engine.tracking, engine.sos, engine.resolver, interval_s=3600)
    await tracker.start_emergency(USER)
    assert engine.tracking.get_session(USER).emergency_mode is True
    await tracker.stop_emergency(USER)
    assert engine.tracking.get_session(USER).emergency_mode is False
