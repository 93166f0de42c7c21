"""Tests de la decision de persistance / Persistence decision tests."""

from conftest import HOME, T0, offset

from guardian.services.stationary_policy import (
    PersistedPosition,
    StationaryAnchor,
    is_stationary_blocked,
    should_persist,
)


def test_first_sample_always_persists():
    decision = should_persist(None, None, HOME, T0)
    assert decision.persist
    assert decision.anchor is None


def test_small_move_creates_anchor_without_persisting():
    last = PersistedPosition(HOME, T0)
    near = offset(HOME, north_m=10)
    decision = should_persist(last, None, near, T0 + 120)
    assert not decision.persist
    assert decision.anchor == StationaryAnchor(near, T0 + 120)


def test_big_move_persists_and_clears_anchor():
    last = PersistedPosition(HOME, T0)
    anchor = StationaryAnchor(HOME, T0)
    decision = should_persist(last, anchor, offset(HOME, east_m=200), T0 + 60)
    assert decision.persist
    assert decision.anchor is None


def test_leaving_anchor_below_threshold_does_not_persist():
    last = PersistedPosition(HOME, T0)
    anchor = StationaryAnchor(HOME, T0 - 7200)
    # 40 m : hors ancre mais sous les 50 m / outside the anchor but under 50 m
    decision = should_persist(last, anchor, offset(HOME, north_m=40), T0 + 60)
    assert not decision.persist
    assert decision.anchor is None
    assert not decision.blocked


def test_refresh_after_thirty_minutes():
    last = PersistedPosition(HOME, T0)
    anchor = StationaryAnchor(HOME, T0)
    decision = should_persist(last, anchor, offset(HOME, north_m=5), T0 + 1800)
    assert decision.persist
    assert not decision.blocked


def test_one_hour_block_dominates_refresh():
    last = PersistedPosition(HOME, T0 - 7200)
    anchor = StationaryAnchor(HOME, T0 - 3600)
    decision = should_persist(last, anchor, offset(HOME, north_m=5), T0)
    assert not decision.persist
    assert decision.blocked
    assert decision.anchor == anchor


def test_block_holds_until_device_leaves_anchor_zone():
    last = PersistedPosition(HOME, T0 - 7200)
    anchor = StationaryAnchor(HOME, T0 - 3600)
    for minute in range(0, 120, 7):
        jitter = offset(HOME, north_m=minute % 20, east_m=5)
        decision = should_persist(last, anchor, jitter, T0 + minute * 60)
        assert decision.blocked
        anchor = decision.anchor

    moved = should_persist(last, anchor, offset(HOME, north_m=35), T0 + 7200)
    assert not moved.blocked
    assert moved.persist
    assert moved.anchor is None


def test_sub_position_far_from_anchor_resets_it():
    last = PersistedPosition(HOME, T0)
    anchor = StationaryAnchor(offset(HOME, north_m=-25), T0 - 3000)
    new_pos = offset(HOME, north_m=25)
    decision = should_persist(last, anchor, new_pos, T0 + 60)
    assert decision.anchor == StationaryAnchor(new_pos, T0 + 60)
    assert not decision.persist


def test_decision_is_deterministic():
    last = PersistedPosition(HOME, T0)
    anchor = StationaryAnchor(HOME, T0 + 10)
    new_pos = offset(HOME, north_m=12, east_m=3)
    results = {should_persist(last, anchor, new_pos, T0 + 900) for _ in range(5)}
    assert len(results) == 1


def test_shared_block_predicate():
    last = PersistedPosition(HOME, T0 - 7200)
    anchor = StationaryAnchor(HOME, T0 - 3600)
    assert is_stationary_blocked(last, anchor, HOME, T0)
    assert not is_stationary_blocked(last, anchor, HOME, T0 - 1)
    assert not is_stationary_blocked(None, None, HOME, T0)
