# MIT License
# Copyright (c) 2025 Hashborn

"""
Stake Lifecycle Tests

Covers the ACTIVE -> COOLDOWN_PENDING -> WITHDRAWN state machine:
- lock parameter validation (minimum amount, 30 + 15k day locks)
- lock and cooldown boundaries (inclusive at the threshold)
- terminal WITHDRAWN state
- restake, including cancelling a pending cooldown
- atomicity of rejected operations
"""

import os
import shutil
import pytest

from stakepool.staking.core.service import StakingService
from stakepool.staking.core.clock import ManualClock
from stakepool.staking.core.events import EventBus
from stakepool.staking.core import events
from stakepool.staking.observability.metrics import metrics_registry
from stakepool.protocol.types.common import (
    StakeStatus, NotFound, Unauthorized, MinStakeViolation, MinLockViolation, InvalidLockStep, LockTooLong,
    NotActive, StillLocked, CooldownAlreadyStarted, NoCooldownStarted, CooldownNotElapsed, InsufficientFunds,
)
from stakepool.protocol.crypto.keys import generate_private_key, public_key_from_private
from stakepool.protocol.crypto.addresses import address_from_pubkey
from stakepool.protocol.config.params import NETWORKS, MIN_STAKE, DAY_SECS, U64_MAX


TEST_DB_DIR = "./test_lifecycle_db"
ASSET = "NOVA"
LOCK_30 = 30 * DAY_SECS          # 2_592_000
COOLDOWN = 7 * DAY_SECS          # 604_800


def new_address() -> str:
    return address_from_pubkey(public_key_from_private(generate_private_key()), prefix="nova")


# ═══════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def clock():
    return ManualClock(start=0)


@pytest.fixture
def bus():
    bus = EventBus()
    yield bus
    bus.clear()


@pytest.fixture
def service(clock, bus):
    if os.path.exists(TEST_DB_DIR):
        shutil.rmtree(TEST_DB_DIR)
    os.makedirs(TEST_DB_DIR)

    svc = StakingService(os.path.join(TEST_DB_DIR, "pool.db"), config=NETWORKS["mainnet"], clock=clock, bus=bus)
    yield svc

    svc.close()
    if os.path.exists(TEST_DB_DIR):
        shutil.rmtree(TEST_DB_DIR)


@pytest.fixture
def owner(service):
    """Pool owner with an initialized pool and some funds of its own."""
    addr = new_address()
    service.initialize(addr, ASSET)
    service.mint(addr, ASSET, 100 * MIN_STAKE)
    return addr


@pytest.fixture
def alice(service, owner):
    addr = new_address()
    service.mint(addr, ASSET, 10 * MIN_STAKE)
    return addr


def total_staked(service) -> int:
    return service.get_pool(ASSET).total_staked


def custody(service) -> int:
    return service.balance_of_account(service.get_pool(ASSET).custody_account)


def saturation_count(direction: str) -> float:
    value = metrics_registry.get_sample_value(
        'stakepool_saturation_events_total', {'asset_id': ASSET, 'direction': direction}
    )
    return value or 0.0


# ═══════════════════════════════════════════════════════════════════
# FULL CYCLE
# ═══════════════════════════════════════════════════════════════════

def test_full_cycle_from_time_zero(service, clock, alice):
    """Stake at t=0 for 30 days, unstake at maturity, withdraw after the cooldown."""
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)

    assert stake.status == StakeStatus.ACTIVE
    assert stake.start_time == 0
    assert stake.unlock_time == 2_592_000
    assert stake.cooldown_start == 0
    assert total_staked(service) == MIN_STAKE
    assert custody(service) == MIN_STAKE
    assert service.balance_of(alice, ASSET) == 9 * MIN_STAKE

    clock.set(2_592_000)
    stake = service.start_unstake(alice, stake.address)
    assert stake.status == StakeStatus.COOLDOWN_PENDING
    assert stake.cooldown_start == 2_592_000

    clock.set(3_196_800)
    stake = service.complete_unstake(alice, stake.address)
    assert stake.status == StakeStatus.WITHDRAWN
    assert stake.withdrawn_at == 3_196_800
    assert total_staked(service) == 0
    assert custody(service) == 0
    assert service.balance_of(alice, ASSET) == 10 * MIN_STAKE

    # Record is persisted in its terminal state
    assert service.get_stake(stake.address).status == StakeStatus.WITHDRAWN


def test_total_staked_tracks_active_stakes(service, clock, alice):
    bob = new_address()
    service.mint(bob, ASSET, 10 * MIN_STAKE)

    a = service.stake(alice, ASSET, 2 * MIN_STAKE, 30)
    service.stake(bob, ASSET, 3 * MIN_STAKE, 45)
    assert total_staked(service) == 5 * MIN_STAKE

    clock.set(LOCK_30)
    service.start_unstake(alice, a.address)
    # Cooldown does not release principal yet
    assert total_staked(service) == 5 * MIN_STAKE

    clock.advance(COOLDOWN)
    service.complete_unstake(alice, a.address)
    assert total_staked(service) == 3 * MIN_STAKE
    assert custody(service) == 3 * MIN_STAKE


# ═══════════════════════════════════════════════════════════════════
# STAKE PARAMETERS
# ═══════════════════════════════════════════════════════════════════

def test_stake_below_minimum_is_rejected(service, alice):
    with pytest.raises(MinStakeViolation):
        service.stake(alice, ASSET, MIN_STAKE - 1, 30)

    assert total_staked(service) == 0
    assert service.list_stakes(owner=alice) == []
    assert service.balance_of(alice, ASSET) == 10 * MIN_STAKE


@pytest.mark.parametrize("lock_days", [30, 45, 60, 75, 360])
def test_valid_lock_durations(service, alice, lock_days):
    stake = service.stake(alice, ASSET, MIN_STAKE, lock_days)
    assert stake.lock_days == lock_days
    assert stake.unlock_time == lock_days * DAY_SECS


@pytest.mark.parametrize("lock_days,error", [
    (0, MinLockViolation),
    (15, MinLockViolation),
    (29, MinLockViolation),
    (31, InvalidLockStep),
    (44, InvalidLockStep),
    (365, InvalidLockStep),
])
def test_invalid_lock_durations(service, alice, lock_days, error):
    with pytest.raises(error):
        service.stake(alice, ASSET, MIN_STAKE, lock_days)
    assert service.list_stakes(owner=alice) == []


def test_minimum_checked_before_lock(service, alice):
    with pytest.raises(MinStakeViolation):
        service.stake(alice, ASSET, 1, 31)


def test_lock_beyond_timestamp_range(service, alice):
    with pytest.raises(LockTooLong):
        service.stake(alice, ASSET, MIN_STAKE, 30 + 15 * 10**14)


def test_stake_into_unknown_pool(service, alice):
    with pytest.raises(NotFound):
        service.stake(alice, "OTHER", MIN_STAKE, 30)


def test_stake_without_funds_leaves_no_trace(service, owner):
    """A failed transfer must not leave a stake record or advance the sequence."""
    poor = new_address()
    service.mint(poor, ASSET, MIN_STAKE - 1 + MIN_STAKE // 2)

    with pytest.raises(InsufficientFunds):
        service.stake(poor, ASSET, 2 * MIN_STAKE, 30)

    assert service.list_stakes(owner=poor) == []
    assert total_staked(service) == 0
    assert custody(service) == 0

    service.mint(poor, ASSET, MIN_STAKE)
    stake = service.stake(poor, ASSET, 2 * MIN_STAKE, 30)
    assert stake.sequence == 0


def test_stakes_get_distinct_addresses(service, alice):
    """Two stakes by the same owner in the same second do not collide."""
    first = service.stake(alice, ASSET, MIN_STAKE, 30)
    second = service.stake(alice, ASSET, MIN_STAKE, 30)

    assert first.address != second.address
    assert (first.sequence, second.sequence) == (0, 1)
    assert [s.address for s in service.list_stakes(owner=alice)] == [first.address, second.address]
    assert total_staked(service) == 2 * MIN_STAKE


# ═══════════════════════════════════════════════════════════════════
# START / COMPLETE UNSTAKE
# ═══════════════════════════════════════════════════════════════════

def test_start_unstake_respects_lock(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)

    clock.set(LOCK_30 - 1)
    with pytest.raises(StillLocked):
        service.start_unstake(alice, stake.address)
    assert service.get_stake(stake.address).status == StakeStatus.ACTIVE

    # Lock expiry is inclusive
    clock.set(LOCK_30)
    assert service.start_unstake(alice, stake.address).cooldown_start == LOCK_30


def test_start_unstake_twice(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    clock.set(LOCK_30)
    service.start_unstake(alice, stake.address)

    clock.advance(10)
    with pytest.raises(CooldownAlreadyStarted):
        service.start_unstake(alice, stake.address)
    # Original cooldown start is kept
    assert service.get_stake(stake.address).cooldown_start == LOCK_30


def test_complete_unstake_requires_cooldown(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    clock.set(LOCK_30 + COOLDOWN)

    with pytest.raises(NoCooldownStarted):
        service.complete_unstake(alice, stake.address)


def test_cooldown_boundary(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    clock.set(LOCK_30)
    service.start_unstake(alice, stake.address)

    clock.set(LOCK_30 + COOLDOWN - 1)
    with pytest.raises(CooldownNotElapsed):
        service.complete_unstake(alice, stake.address)
    assert total_staked(service) == MIN_STAKE

    clock.set(LOCK_30 + COOLDOWN)
    assert service.complete_unstake(alice, stake.address).status == StakeStatus.WITHDRAWN


@pytest.mark.parametrize("clock", [ManualClock(start=-30 * DAY_SECS)])
def test_cooldown_starting_at_time_zero(service, bus, clock, alice):
    """A lock maturing exactly at t=0 starts a cooldown at 0 like any other time."""
    rejected = []
    bus.subscribe(events.OPERATION_REJECTED, lambda op_type, error: rejected.append(error))

    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    assert stake.unlock_time == 0

    clock.set(0)
    stake = service.start_unstake(alice, stake.address)
    assert stake.status == StakeStatus.COOLDOWN_PENDING
    assert stake.cooldown_start == 0

    with pytest.raises(CooldownAlreadyStarted):
        service.start_unstake(alice, stake.address)

    clock.set(COOLDOWN - 1)
    with pytest.raises(CooldownNotElapsed):
        service.complete_unstake(alice, stake.address)

    clock.set(COOLDOWN)
    assert service.complete_unstake(alice, stake.address).status == StakeStatus.WITHDRAWN
    assert total_staked(service) == 0
    assert [e.code for e in rejected] == ["COOLDOWN_ON", "WAIT_COOLDOWN"]


@pytest.mark.parametrize("clock", [ManualClock(start=-60 * DAY_SECS)])
def test_cooldown_at_negative_time(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)

    clock.set(-LOCK_30)
    stake = service.start_unstake(alice, stake.address)
    assert stake.cooldown_start == -LOCK_30
    assert service.get_stake(stake.address).status == StakeStatus.COOLDOWN_PENDING

    clock.set(-LOCK_30 + COOLDOWN)
    assert service.complete_unstake(alice, stake.address).withdrawn_at == -LOCK_30 + COOLDOWN


def test_withdrawn_is_terminal(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    clock.set(LOCK_30)
    service.start_unstake(alice, stake.address)
    clock.advance(COOLDOWN)
    service.complete_unstake(alice, stake.address)

    clock.advance(365 * DAY_SECS)
    with pytest.raises(NotActive):
        service.start_unstake(alice, stake.address)
    with pytest.raises(NotActive):
        service.complete_unstake(alice, stake.address)
    with pytest.raises(NotActive):
        service.restake(alice, stake.address, 30)

    # Principal was paid out exactly once
    assert service.balance_of(alice, ASSET) == 10 * MIN_STAKE
    assert total_staked(service) == 0


def test_only_stake_owner_may_act(service, clock, alice):
    mallory = new_address()
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)

    # Ownership is checked before the lock
    with pytest.raises(Unauthorized):
        service.start_unstake(mallory, stake.address)

    clock.set(LOCK_30)
    with pytest.raises(Unauthorized):
        service.start_unstake(mallory, stake.address)
    with pytest.raises(Unauthorized):
        service.restake(mallory, stake.address, 30)

    service.start_unstake(alice, stake.address)
    clock.advance(COOLDOWN)
    with pytest.raises(Unauthorized):
        service.complete_unstake(mallory, stake.address)
    assert service.get_stake(stake.address).status == StakeStatus.COOLDOWN_PENDING


def test_unknown_stake(service, alice):
    with pytest.raises(NotFound):
        service.start_unstake(alice, "novastake1qqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqq")


def test_payout_blocked_by_drained_custody(service, clock, owner, alice):
    """Owner withdrawal can leave custody short; the payout fails cleanly and can be retried."""
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    service.owner_withdraw(owner, ASSET, MIN_STAKE)

    clock.set(LOCK_30)
    service.start_unstake(alice, stake.address)
    clock.advance(COOLDOWN)

    with pytest.raises(InsufficientFunds):
        service.complete_unstake(alice, stake.address)
    assert service.get_stake(stake.address).status == StakeStatus.COOLDOWN_PENDING
    assert total_staked(service) == MIN_STAKE

    service.owner_deposit(owner, ASSET, MIN_STAKE)
    assert service.complete_unstake(alice, stake.address).status == StakeStatus.WITHDRAWN
    assert service.balance_of(alice, ASSET) == 10 * MIN_STAKE


# ═══════════════════════════════════════════════════════════════════
# RESTAKE
# ═══════════════════════════════════════════════════════════════════

def test_restake_relocks_from_now(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)

    clock.set(LOCK_30 + 100)
    relocked = service.restake(alice, stake.address, 45)

    assert relocked.address == stake.address
    assert relocked.status == StakeStatus.ACTIVE
    assert relocked.start_time == LOCK_30 + 100
    assert relocked.unlock_time == LOCK_30 + 100 + 45 * DAY_SECS
    assert relocked.lock_days == 45
    assert relocked.amount == MIN_STAKE
    # No tokens move
    assert total_staked(service) == MIN_STAKE
    assert custody(service) == MIN_STAKE

    # The new lock applies
    clock.advance(45 * DAY_SECS - 1)
    with pytest.raises(StillLocked):
        service.restake(alice, stake.address, 30)
    clock.advance(1)
    relocked = service.restake(alice, stake.address, 30)
    assert relocked.unlock_time == clock.now() + LOCK_30
    assert relocked.cooldown_start == 0
    assert total_staked(service) == MIN_STAKE
    assert custody(service) == MIN_STAKE


def test_restake_before_unlock(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    clock.set(LOCK_30 - 1)
    with pytest.raises(StillLocked):
        service.restake(alice, stake.address, 30)


def test_restake_validates_lock(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    clock.set(LOCK_30)
    with pytest.raises(MinLockViolation):
        service.restake(alice, stake.address, 29)
    with pytest.raises(InvalidLockStep):
        service.restake(alice, stake.address, 50)
    assert service.get_stake(stake.address).unlock_time == LOCK_30


def test_restake_cancels_cooldown(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    clock.set(LOCK_30)
    service.start_unstake(alice, stake.address)

    clock.advance(DAY_SECS)
    relocked = service.restake(alice, stake.address, 30)
    assert relocked.status == StakeStatus.ACTIVE
    assert relocked.cooldown_start == 0

    clock.advance(COOLDOWN)
    with pytest.raises(NoCooldownStarted):
        service.complete_unstake(alice, stake.address)
    assert total_staked(service) == MIN_STAKE


# ═══════════════════════════════════════════════════════════════════
# AGGREGATE SATURATION
# ═══════════════════════════════════════════════════════════════════

def _force_total_staked(service, value: int):
    with service.atomic() as ctx:
        pool = ctx.store.require_pool(ASSET)
        pool.total_staked = value
        ctx.store.update_pool(pool)


def test_total_staked_saturates_at_max(service, alice):
    _force_total_staked(service, U64_MAX - 5)
    before = saturation_count("add")

    service.stake(alice, ASSET, MIN_STAKE, 30)

    assert total_staked(service) == U64_MAX
    assert saturation_count("add") == before + 1


def test_total_staked_floors_at_zero(service, clock, alice):
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    _force_total_staked(service, 0)
    clock.set(LOCK_30)
    service.start_unstake(alice, stake.address)
    clock.advance(COOLDOWN)
    before = saturation_count("sub")

    service.complete_unstake(alice, stake.address)

    assert total_staked(service) == 0
    assert saturation_count("sub") == before + 1
    assert service.balance_of(alice, ASSET) == 10 * MIN_STAKE


# ═══════════════════════════════════════════════════════════════════
# EVENTS
# ═══════════════════════════════════════════════════════════════════

def test_events_follow_commits(service, bus, clock, alice):
    created, rejected = [], []
    bus.subscribe(events.STAKE_CREATED, lambda result: created.append(result))
    bus.subscribe(events.OPERATION_REJECTED, lambda op_type, error: rejected.append(error))

    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    with pytest.raises(StillLocked):
        service.start_unstake(alice, stake.address)

    assert [s.address for s in created] == [stake.address]
    assert len(rejected) == 1
    assert rejected[0].code == "LOCKED"


def test_failing_listener_does_not_undo_operation(service, bus, alice):
    def broken(result):
        raise RuntimeError("listener failure")

    bus.subscribe(events.STAKE_CREATED, broken)
    stake = service.stake(alice, ASSET, MIN_STAKE, 30)
    assert service.get_stake(stake.address) is not None


def test_unsubscribed_listener_not_called(service, bus, alice):
    seen = []

    def listener(result):
        seen.append(result.address)

    bus.subscribe(events.STAKE_CREATED, listener)
    first = service.stake(alice, ASSET, MIN_STAKE, 30)
    bus.unsubscribe(events.STAKE_CREATED, listener)
    service.stake(alice, ASSET, MIN_STAKE, 30)

    assert seen == [first.address]
