# MIT License
# Copyright (c) 2025 Hashborn

from typing import Any, Callable, Dict, List, Optional, Set
import json
import logging
from pydantic import BaseModel
from .accounts import TokenAccount
from ...protocol.types.pool import PoolState
from ...protocol.types.stake import StakeAccount
from ...protocol.types.op import Operation
from ...protocol.types.common import AlreadyExists, NotFound, ConcurrentUpdate
from ..storage.db import StorageDB, StorageConflict

logger = logging.getLogger(__name__)

POOL_PREFIX = "pool:"
STAKE_PREFIX = "stake:"
TOKEN_PREFIX = "tok:"
SEQ_PREFIX = "seq:"
NONCE_PREFIX = "nonce:"

class PoolStore:
    """
    Working set of one operation over the keyed storage.

    Reads go through to the DB and are cached together with the version they
    were read at. Writes are staged in memory; `persist()` commits all of
    them in one DB transaction, each guarded by its read version, so a
    record changed by someone else in the meantime fails the whole commit
    with ConcurrentUpdate instead of being overwritten.
    """

    def __init__(self, db: StorageDB):
        self.db = db
        # key -> parsed record (model or int)
        self._cache: Dict[str, Any] = {}
        # key -> version the record was read at (0 = did not exist)
        self._versions: Dict[str, int] = {}
        self._dirty: Set[str] = set()
        self._operations: List[tuple] = []

    # --- generic record access ---
    def _load(self, key: str, parse: Callable[[str], Any]) -> Optional[Any]:
        if key in self._cache:
            return self._cache[key]

        record = self.db.get_record(key)
        if record is None:
            self._versions.setdefault(key, 0)
            return None

        raw, version = record
        obj = parse(raw)
        self._cache[key] = obj
        self._versions[key] = version
        return obj

    def _stage(self, key: str, obj: Any):
        self._cache[key] = obj
        self._versions.setdefault(key, 0)
        self._dirty.add(key)

    def _scan(self, prefix: str, parse: Callable[[str], Any]) -> Dict[str, Any]:
        """All records under prefix: DB rows overlaid with this working set."""
        found: Dict[str, Any] = {}
        for key, (raw, version) in self.db.get_state_by_prefix(prefix).items():
            found[key] = parse(raw)
            self._versions.setdefault(key, version)

        for key, obj in self._cache.items():
            if key.startswith(prefix) and obj is not None:
                found[key] = obj
        return found

    @staticmethod
    def _encode(obj: Any) -> str:
        if isinstance(obj, BaseModel):
            return obj.model_dump_json()
        return str(obj)

    # --- PoolState ---
    def get_pool(self, asset_id: str) -> Optional[PoolState]:
        return self._load(f"{POOL_PREFIX}{asset_id}", PoolState.model_validate_json)

    def require_pool(self, asset_id: str) -> PoolState:
        pool = self.get_pool(asset_id)
        if pool is None:
            raise NotFound(f"Pool for asset {asset_id} not found")
        return pool

    def create_pool(self, pool: PoolState):
        if self.get_pool(pool.asset_id) is not None:
            raise AlreadyExists(f"Pool for asset {pool.asset_id} already exists")
        self._stage(f"{POOL_PREFIX}{pool.asset_id}", pool)

    def update_pool(self, pool: PoolState):
        if self.get_pool(pool.asset_id) is None:
            raise NotFound(f"Pool for asset {pool.asset_id} not found")
        self._stage(f"{POOL_PREFIX}{pool.asset_id}", pool)

    def get_all_pools(self) -> List[PoolState]:
        return list(self._scan(POOL_PREFIX, PoolState.model_validate_json).values())

    # --- StakeAccount ---
    def get_stake(self, address: str) -> Optional[StakeAccount]:
        return self._load(f"{STAKE_PREFIX}{address}", StakeAccount.model_validate_json)

    def require_stake(self, address: str) -> StakeAccount:
        stake = self.get_stake(address)
        if stake is None:
            raise NotFound(f"Stake {address} not found")
        return stake

    def create_stake(self, stake: StakeAccount):
        if self.get_stake(stake.address) is not None:
            raise AlreadyExists(f"Stake {stake.address} already exists")
        self._stage(f"{STAKE_PREFIX}{stake.address}", stake)

    def update_stake(self, stake: StakeAccount):
        if self.get_stake(stake.address) is None:
            raise NotFound(f"Stake {stake.address} not found")
        self._stage(f"{STAKE_PREFIX}{stake.address}", stake)

    def get_stakes(self, owner: Optional[str] = None, asset_id: Optional[str] = None) -> List[StakeAccount]:
        stakes = self._scan(STAKE_PREFIX, StakeAccount.model_validate_json).values()
        result = [
            s for s in stakes
            if (owner is None or s.owner == owner) and (asset_id is None or s.asset_id == asset_id)
        ]
        return sorted(result, key=lambda s: (s.asset_id, s.owner, s.sequence))

    def next_sequence(self, owner: str, asset_id: str) -> int:
        """Returns the owner's next stake sequence in this pool and advances it."""
        key = f"{SEQ_PREFIX}{asset_id}:{owner}"
        current = self._load(key, int) or 0
        self._stage(key, current + 1)
        return current

    # --- Token accounts ---
    def get_token_account(self, address: str) -> Optional[TokenAccount]:
        return self._load(f"{TOKEN_PREFIX}{address}", TokenAccount.model_validate_json)

    def set_token_account(self, account: TokenAccount):
        self._stage(f"{TOKEN_PREFIX}{account.address}", account)

    # --- Caller nonces ---
    def get_nonce(self, address: str) -> int:
        return self._load(f"{NONCE_PREFIX}{address}", int) or 0

    def increment_nonce(self, address: str):
        self._stage(f"{NONCE_PREFIX}{address}", self.get_nonce(address) + 1)

    # --- Operation journal ---
    def record_operation(self, op: Operation, applied_at: int, result: Dict[str, Any]):
        data = json.dumps({"op": op.model_dump(mode="json"), "result": result}, sort_keys=True)
        self._operations.append((op.hash(), op.op_type.value, op.caller, data, applied_at))

    @property
    def has_changes(self) -> bool:
        return bool(self._dirty or self._operations)

    def persist(self):
        """Commits all staged writes atomically."""
        writes = [
            (key, self._encode(self._cache[key]), self._versions[key])
            for key in sorted(self._dirty)
        ]
        try:
            self.db.commit(writes, self._operations)
        except StorageConflict as e:
            logger.warning(f"Commit rejected: {e}")
            raise ConcurrentUpdate(str(e)) from e

        for key in self._dirty:
            self._versions[key] += 1
        logger.debug(f"Persisted {len(writes)} records, {len(self._operations)} operations")
        self._dirty.clear()
        self._operations.clear()
