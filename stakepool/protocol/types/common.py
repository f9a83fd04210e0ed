# MIT License
# Copyright (c) 2025 Hashborn

from dataclasses import dataclass
from enum import Enum
from typing import Optional

class OpType(str, Enum):
    # Pool Manager (owner only)
    INITIALIZE = "INITIALIZE"
    OWNER_DEPOSIT = "OWNER_DEPOSIT"
    OWNER_WITHDRAW = "OWNER_WITHDRAW"

    # Stake lifecycle (stake owner only)
    STAKE = "STAKE"
    START_UNSTAKE = "START_UNSTAKE"
    COMPLETE_UNSTAKE = "COMPLETE_UNSTAKE"
    RESTAKE = "RESTAKE"

class StakeStatus(str, Enum):
    ACTIVE = "ACTIVE"                       # funds locked
    COOLDOWN_PENDING = "COOLDOWN_PENDING"   # lock expired, cooldown running
    WITHDRAWN = "WITHDRAWN"                 # terminal

@dataclass(frozen=True)
class Authority:
    """
    Signing capability handed to the ledger.

    identity: who signs. scope: when set, the only ledger account this
    capability may debit (pool-derived authorities are scoped to custody).
    """
    identity: str
    scope: Optional[str] = None

    def can_debit(self, account_address: str, account_owner: str) -> bool:
        if self.identity != account_owner:
            return False
        return self.scope is None or self.scope == account_address

class ProtocolError(Exception):
    pass

class ValidationError(ProtocolError):
    code = "VALIDATION_ERROR"

class PoolError(ProtocolError):
    """Deterministic rejection. Raised before any state is committed."""
    code = "POOL_ERROR"

class NotFound(PoolError):
    code = "NOT_FOUND"

class AlreadyExists(PoolError):
    code = "ALREADY_EXISTS"

class Unauthorized(PoolError):
    code = "UNAUTHORIZED"

class InvalidSignature(Unauthorized):
    code = "INVALID_SIGNATURE"

class InvalidNonce(PoolError):
    code = "INVALID_NONCE"

class ConcurrentUpdate(PoolError):
    code = "CONCURRENT_UPDATE"

# Stake parameter validation
class MinStakeViolation(PoolError):
    code = "MIN_STAKE"

class MinLockViolation(PoolError):
    code = "MIN_LOCK"

class InvalidLockStep(PoolError):
    code = "BAD_LOCK"

class LockTooLong(PoolError):
    code = "LOCK_TOO_LONG"

# Lifecycle state
class NotActive(PoolError):
    code = "NOT_ACTIVE"

class StillLocked(PoolError):
    code = "LOCKED"

class CooldownAlreadyStarted(PoolError):
    code = "COOLDOWN_ON"

class NoCooldownStarted(PoolError):
    code = "NO_COOLDOWN"

class CooldownNotElapsed(PoolError):
    code = "WAIT_COOLDOWN"

# Ledger
class LedgerError(PoolError):
    code = "LEDGER_ERROR"

class InsufficientFunds(LedgerError):
    code = "INSUFFICIENT_FUNDS"

class AccountNotFound(LedgerError):
    code = "ACCOUNT_NOT_FOUND"

class AssetMismatch(LedgerError):
    code = "ASSET_MISMATCH"
