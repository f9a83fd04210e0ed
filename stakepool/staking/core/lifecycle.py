# MIT License
# Copyright (c) 2025 Hashborn

import logging
from .amounts import saturating_add, saturating_sub
from .clock import Clock
from .ledger import TokenLedger
from .state import PoolStore
from ..observability.metrics import record_saturation
from ...protocol.types.common import (
    Authority, StakeStatus, Unauthorized, MinStakeViolation, MinLockViolation, InvalidLockStep,
    LockTooLong, NotActive, StillLocked, CooldownAlreadyStarted, NoCooldownStarted, CooldownNotElapsed,
    ValidationError,
)
from ...protocol.types.stake import StakeAccount
from ...protocol.crypto.addresses import stake_address
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig, U64_MAX, I64_MAX

logger = logging.getLogger(__name__)

class StakeLifecycleManager:
    """
    Drives StakeAccount records through

        ACTIVE -> COOLDOWN_PENDING -> WITHDRAWN

    with restake looping back to ACTIVE from either non-terminal state.
    Every check runs before the first write; the caller commits or
    discards the store as a whole.
    """

    def __init__(self, store: PoolStore, ledger: TokenLedger, clock: Clock, config: NetworkConfig = CURRENT_NETWORK):
        self.store = store
        self.ledger = ledger
        self.clock = clock
        self.config = config

    def validate_lock_days(self, lock_days: int):
        if lock_days < self.config.min_lock_days:
            raise MinLockViolation(f"Lock must be at least {self.config.min_lock_days} days, got {lock_days}")
        if (lock_days - self.config.min_lock_days) % self.config.lock_step_days != 0:
            raise InvalidLockStep(
                f"Lock must be {self.config.min_lock_days} days plus a multiple of "
                f"{self.config.lock_step_days}, got {lock_days}"
            )
        if lock_days > U64_MAX:
            raise LockTooLong(f"Lock of {lock_days} days exceeds u64")

    def _unlock_time(self, start: int, lock_days: int) -> int:
        unlock = start + self.config.lock_secs(lock_days)
        if unlock > I64_MAX:
            raise LockTooLong(f"Lock of {lock_days} days ends beyond the timestamp range")
        return unlock

    def stake(self, user: str, asset_id: str, amount: int, lock_days: int) -> StakeAccount:
        if amount < self.config.min_stake:
            raise MinStakeViolation(f"Minimum stake is {self.config.min_stake}, got {amount}")
        if amount > U64_MAX:
            raise ValidationError(f"Stake amount {amount} exceeds u64")
        self.validate_lock_days(lock_days)

        now = self.clock.now()
        unlock_time = self._unlock_time(now, lock_days)
        pool = self.store.require_pool(asset_id)

        sequence = self.store.next_sequence(user, asset_id)
        stake = StakeAccount(
            address=stake_address(user, asset_id, sequence, prefix=self.config.bech32_prefix_stake),
            owner=user,
            asset_id=asset_id,
            sequence=sequence,
            amount=amount,
            start_time=now,
            unlock_time=unlock_time,
            lock_days=lock_days,
            status=StakeStatus.ACTIVE,
            cooldown_start=0,
        )
        self.store.create_stake(stake)

        self.ledger.transfer(
            self.ledger.associated_address(user, asset_id),
            pool.custody_account,
            Authority(identity=user),
            amount,
        )

        pool.total_staked, saturated = saturating_add(pool.total_staked, amount)
        if saturated:
            logger.warning(f"total_staked of {asset_id} saturated at {U64_MAX}")
            record_saturation(asset_id, "add")
        self.store.update_pool(pool)

        logger.info(f"Stake {stake.address}: {user} locked {amount} {asset_id} for {lock_days}d until {unlock_time}")
        return stake

    def start_unstake(self, user: str, address: str) -> StakeAccount:
        stake = self._require_owned(user, address)
        now = self.clock.now()

        if not stake.is_active:
            raise NotActive(f"Stake {address} is {stake.status.value}")
        if now < stake.unlock_time:
            raise StillLocked(f"Stake {address} is locked until {stake.unlock_time}")
        if stake.status == StakeStatus.COOLDOWN_PENDING:
            raise CooldownAlreadyStarted(f"Cooldown of {address} started at {stake.cooldown_start}")

        stake = stake.evolve(status=StakeStatus.COOLDOWN_PENDING, cooldown_start=now)
        self.store.update_stake(stake)

        logger.info(f"Stake {address}: cooldown started at {now}")
        return stake

    def complete_unstake(self, user: str, address: str) -> StakeAccount:
        stake = self._require_owned(user, address)
        now = self.clock.now()

        if not stake.is_active:
            raise NotActive(f"Stake {address} is {stake.status.value}")
        if stake.status != StakeStatus.COOLDOWN_PENDING:
            raise NoCooldownStarted(f"Stake {address} has no cooldown in progress")
        cooldown_end = stake.cooldown_end(self.config.cooldown_secs)
        if now < cooldown_end:
            raise CooldownNotElapsed(f"Stake {address} cooldown ends at {cooldown_end}")

        pool = self.store.require_pool(stake.asset_id)
        user_account = self.ledger.open_account(user, stake.asset_id)
        # Custody is debited by the pool itself, never by the user
        self.ledger.transfer(pool.custody_account, user_account.address, pool.signer(), stake.amount)

        pool.total_staked, saturated = saturating_sub(pool.total_staked, stake.amount)
        if saturated:
            logger.warning(f"total_staked of {stake.asset_id} floored at 0 releasing {address}")
            record_saturation(stake.asset_id, "sub")
        self.store.update_pool(pool)

        stake = stake.evolve(status=StakeStatus.WITHDRAWN, withdrawn_at=now)
        self.store.update_stake(stake)

        logger.info(f"Stake {address}: released {stake.amount} {stake.asset_id} to {user}")
        return stake

    def restake(self, user: str, address: str, new_lock_days: int) -> StakeAccount:
        """
        Relocks a matured stake for `new_lock_days` from now.

        Allowed while a cooldown is pending; the pending withdrawal is
        cancelled and the stake returns to ACTIVE.
        """
        stake = self._require_owned(user, address)
        self.validate_lock_days(new_lock_days)
        now = self.clock.now()

        if not stake.is_active:
            raise NotActive(f"Stake {address} is {stake.status.value}")
        if now < stake.unlock_time:
            raise StillLocked(f"Stake {address} is locked until {stake.unlock_time}")

        if stake.status == StakeStatus.COOLDOWN_PENDING:
            logger.info(f"Stake {address}: restake cancels cooldown started at {stake.cooldown_start}")

        stake = stake.evolve(
            status=StakeStatus.ACTIVE,
            start_time=now,
            unlock_time=self._unlock_time(now, new_lock_days),
            lock_days=new_lock_days,
            cooldown_start=0,
        )
        self.store.update_stake(stake)

        logger.info(f"Stake {address}: relocked for {new_lock_days}d until {stake.unlock_time}")
        return stake

    def _require_owned(self, user: str, address: str) -> StakeAccount:
        stake = self.store.require_stake(address)
        if stake.owner != user:
            raise Unauthorized(f"{user} does not own stake {address}")
        return stake
