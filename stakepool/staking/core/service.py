# MIT License
# Copyright (c) 2025 Hashborn

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional
import json
import logging
import os
import threading
import time
from pydantic import BaseModel
from .auth import authenticate
from .clock import Clock, SystemClock
from .events import EventBus, event_bus
from . import events
from .ledger import TokenLedger
from .lifecycle import StakeLifecycleManager
from .pool_manager import PoolManager
from .state import PoolStore
from ..storage.db import StorageDB
from ..observability import metrics
from ...protocol.types.common import OpType, PoolError, ValidationError
from ...protocol.types.op import Operation, OperationReceipt
from ...protocol.types.pool import PoolState
from ...protocol.types.stake import StakeAccount
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig

logger = logging.getLogger(__name__)

EVENT_BY_OP = {
    OpType.INITIALIZE: events.POOL_INITIALIZED,
    OpType.OWNER_DEPOSIT: events.OWNER_DEPOSITED,
    OpType.OWNER_WITHDRAW: events.OWNER_WITHDREW,
    OpType.STAKE: events.STAKE_CREATED,
    OpType.START_UNSTAKE: events.UNSTAKE_STARTED,
    OpType.COMPLETE_UNSTAKE: events.UNSTAKE_COMPLETED,
    OpType.RESTAKE: events.RESTAKED,
}

class OperationContext:
    """Managers bound to one operation's working store."""

    def __init__(self, store: PoolStore, clock: Clock, config: NetworkConfig):
        self.store = store
        self.ledger = TokenLedger(store, config)
        self.pools = PoolManager(store, self.ledger, clock, config)
        self.lifecycle = StakeLifecycleManager(store, self.ledger, clock, config)

class StakingService:
    def __init__(self, db_path: str, config: NetworkConfig = CURRENT_NETWORK,
                 clock: Optional[Clock] = None, bus: EventBus = event_bus):
        self.db = StorageDB(db_path)
        self.config = config
        self.clock = clock or SystemClock()
        self.events = bus
        self._lock = threading.RLock()

    def close(self):
        self.db.close()

    # --- Atomic execution ---
    @contextmanager
    def atomic(self) -> Iterator[OperationContext]:
        """
        Runs a block against a fresh working store and commits it on exit.

        An exception inside the block propagates and nothing is written.
        """
        with self._lock:
            ctx = OperationContext(PoolStore(self.db), self.clock, self.config)
            yield ctx
            if ctx.store.has_changes:
                ctx.store.persist()

    def _execute(self, op_type: OpType, action: Callable[[OperationContext], BaseModel],
                 op: Optional[Operation] = None) -> BaseModel:
        started = time.perf_counter()
        try:
            with self.atomic() as ctx:
                if op is not None:
                    authenticate(op, ctx.store)
                result = action(ctx)
                if op is not None:
                    ctx.store.record_operation(op, self.clock.now(), result.model_dump(mode="json"))
        except (PoolError, ValidationError) as e:
            metrics.record_rejection(op_type, e.code)
            logger.info(f"{op_type.value} rejected ({e.code}): {e}")
            self.events.emit(events.OPERATION_REJECTED, op_type=op_type, error=e)
            raise

        metrics.record_operation(op_type, time.perf_counter() - started)
        self.events.emit(EVENT_BY_OP[op_type], result=result)
        return result

    # --- Pool Manager ---
    def initialize(self, owner: str, asset_id: str) -> PoolState:
        return self._execute(OpType.INITIALIZE, lambda ctx: ctx.pools.initialize(owner, asset_id))

    def owner_deposit(self, owner: str, asset_id: str, amount: int) -> PoolState:
        return self._execute(OpType.OWNER_DEPOSIT, lambda ctx: ctx.pools.owner_deposit(owner, asset_id, amount))

    def owner_withdraw(self, owner: str, asset_id: str, amount: int) -> PoolState:
        return self._execute(OpType.OWNER_WITHDRAW, lambda ctx: ctx.pools.owner_withdraw(owner, asset_id, amount))

    # --- Stake Lifecycle ---
    def stake(self, user: str, asset_id: str, amount: int, lock_days: int) -> StakeAccount:
        return self._execute(OpType.STAKE, lambda ctx: ctx.lifecycle.stake(user, asset_id, amount, lock_days))

    def start_unstake(self, user: str, stake_address: str) -> StakeAccount:
        return self._execute(OpType.START_UNSTAKE, lambda ctx: ctx.lifecycle.start_unstake(user, stake_address))

    def complete_unstake(self, user: str, stake_address: str) -> StakeAccount:
        return self._execute(OpType.COMPLETE_UNSTAKE, lambda ctx: ctx.lifecycle.complete_unstake(user, stake_address))

    def restake(self, user: str, stake_address: str, new_lock_days: int) -> StakeAccount:
        return self._execute(OpType.RESTAKE, lambda ctx: ctx.lifecycle.restake(user, stake_address, new_lock_days))

    # --- Signed operations ---
    def apply_operation(self, op: Operation) -> OperationReceipt:
        """Authenticates a signed operation and applies it atomically."""
        result = self._execute(op.op_type, lambda ctx: self._dispatch(op, ctx), op=op)
        return OperationReceipt(
            op_hash=op.hash(),
            op_type=op.op_type,
            caller=op.caller,
            applied_at=self.clock.now(),
            result=result.model_dump(mode="json"),
        )

    @staticmethod
    def _dispatch(op: Operation, ctx: OperationContext) -> BaseModel:
        caller = op.caller
        if op.op_type == OpType.INITIALIZE:
            return ctx.pools.initialize(caller, op.asset_id)
        if op.op_type == OpType.OWNER_DEPOSIT:
            return ctx.pools.owner_deposit(caller, op.asset_id, op.amount)
        if op.op_type == OpType.OWNER_WITHDRAW:
            return ctx.pools.owner_withdraw(caller, op.asset_id, op.amount)
        if op.op_type == OpType.STAKE:
            return ctx.lifecycle.stake(caller, op.asset_id, op.amount, op.lock_days)

        # Remaining operations target an existing stake
        if not op.stake_address:
            raise ValidationError(f"{op.op_type.value} must provide stake_address")

        if op.op_type == OpType.START_UNSTAKE:
            return ctx.lifecycle.start_unstake(caller, op.stake_address)
        if op.op_type == OpType.COMPLETE_UNSTAKE:
            return ctx.lifecycle.complete_unstake(caller, op.stake_address)
        if op.op_type == OpType.RESTAKE:
            return ctx.lifecycle.restake(caller, op.stake_address, op.lock_days)

        raise ValidationError(f"Unsupported operation {op.op_type}")

    # --- Ledger helpers ---
    def mint(self, owner: str, asset_id: str, amount: int) -> int:
        """Credits `amount` to owner's associated account. Returns the new balance."""
        with self.atomic() as ctx:
            acc = ctx.ledger.mint(owner, asset_id, amount)
        return acc.balance

    def apply_genesis(self, genesis_path: str) -> bool:
        """
        Loads token allocations and pools from genesis.json once.

        Format:
            {"alloc": {"<owner>": {"<asset_id>": amount}},
             "pools": [{"owner": "<owner>", "asset_id": "<asset_id>"}]}
        """
        if not os.path.exists(genesis_path):
            logger.warning(f"No genesis file at {genesis_path}. Starting empty.")
            return False

        with open(genesis_path, "r") as f:
            data = json.load(f)

        with self.atomic() as ctx:
            if ctx.store.get_all_pools():
                logger.info("State already initialized, skipping genesis.")
                return False

            count = 0
            for owner, assets in data.get("alloc", {}).items():
                for asset_id, amount in assets.items():
                    ctx.ledger.mint(owner, asset_id, int(amount))
                    count += 1

            for entry in data.get("pools", []):
                ctx.pools.initialize(entry["owner"], entry["asset_id"])

        logger.info(f"Applied genesis: {count} allocations, {len(data.get('pools', []))} pools.")
        return True

    # --- Queries ---
    def _read(self) -> PoolStore:
        return PoolStore(self.db)

    def get_pool(self, asset_id: str) -> Optional[PoolState]:
        return self._read().get_pool(asset_id)

    def list_pools(self) -> List[PoolState]:
        return self._read().get_all_pools()

    def get_stake(self, stake_address: str) -> Optional[StakeAccount]:
        return self._read().get_stake(stake_address)

    def list_stakes(self, owner: Optional[str] = None, asset_id: Optional[str] = None) -> List[StakeAccount]:
        return self._read().get_stakes(owner=owner, asset_id=asset_id)

    def balance_of(self, owner: str, asset_id: str) -> int:
        ledger = TokenLedger(self._read(), self.config)
        return ledger.balance_of(ledger.associated_address(owner, asset_id))

    def balance_of_account(self, address: str) -> int:
        return TokenLedger(self._read(), self.config).balance_of(address)

    def get_nonce(self, address: str) -> int:
        return self._read().get_nonce(address)

    def get_operation(self, op_hash: str) -> Optional[Dict[str, Any]]:
        row = self.db.get_operation(op_hash)
        if not row:
            return None
        op_hash, op_type, caller, data, applied_at = row
        return {
            "op_hash": op_hash,
            "op_type": op_type,
            "caller": caller,
            "applied_at": applied_at,
            **json.loads(data),
        }
