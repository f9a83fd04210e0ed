# MIT License
# Copyright (c) 2025 Hashborn

import logging
from .clock import Clock
from .ledger import TokenLedger
from .state import PoolStore
from ...protocol.types.common import Authority, AlreadyExists, Unauthorized, ValidationError
from ...protocol.types.pool import PoolState
from ...protocol.crypto.addresses import pool_authority_address, custody_address
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig, U64_MAX

logger = logging.getLogger(__name__)

class PoolManager:
    """Pool creation and owner-side funding of the custody account."""

    def __init__(self, store: PoolStore, ledger: TokenLedger, clock: Clock, config: NetworkConfig = CURRENT_NETWORK):
        self.store = store
        self.ledger = ledger
        self.clock = clock
        self.config = config

    def initialize(self, owner: str, asset_id: str) -> PoolState:
        if not asset_id:
            raise ValidationError("asset_id must not be empty")
        if self.store.get_pool(asset_id) is not None:
            raise AlreadyExists(f"Pool for asset {asset_id} already exists")

        authority = pool_authority_address(asset_id, prefix=self.config.bech32_prefix_pool)
        vault = custody_address(asset_id, prefix=self.config.bech32_prefix_vault)

        pool = PoolState(
            owner=owner,
            asset_id=asset_id,
            custody_account=vault,
            authority=authority,
            total_staked=0,
            created_at=self.clock.now(),
        )
        self.ledger.open_account(authority, asset_id, address=vault)
        self.store.create_pool(pool)

        logger.info(f"Pool initialized for {asset_id} (owner {owner}, custody {vault})")
        return pool

    def owner_deposit(self, caller: str, asset_id: str, amount: int) -> PoolState:
        """Funds custody for future payouts. Does not count as stake."""
        pool = self._require_owner(caller, asset_id)
        self._check_amount(amount)

        self.ledger.transfer(
            self.ledger.associated_address(caller, asset_id),
            pool.custody_account,
            Authority(identity=caller),
            amount,
        )
        logger.info(f"Owner deposited {amount} into {asset_id} custody")
        return pool

    def owner_withdraw(self, caller: str, asset_id: str, amount: int) -> PoolState:
        """
        Pulls funds out of custody back to the owner.

        Not capped by total_staked: the owner is trusted with custody, so
        withdrawing principal owed to stakers is possible by design.
        """
        pool = self._require_owner(caller, asset_id)
        self._check_amount(amount)

        owner_account = self.ledger.open_account(caller, asset_id)
        self.ledger.transfer(pool.custody_account, owner_account.address, pool.signer(), amount)

        if self.ledger.balance_of(pool.custody_account) < pool.total_staked:
            logger.warning(
                f"Custody of {asset_id} now below total_staked "
                f"({self.ledger.balance_of(pool.custody_account)} < {pool.total_staked})"
            )
        logger.info(f"Owner withdrew {amount} from {asset_id} custody")
        return pool

    def _require_owner(self, caller: str, asset_id: str) -> PoolState:
        pool = self.store.require_pool(asset_id)
        if caller != pool.owner:
            raise Unauthorized(f"{caller} is not the owner of pool {asset_id}")
        return pool

    @staticmethod
    def _check_amount(amount: int):
        if amount <= 0 or amount > U64_MAX:
            raise ValidationError(f"Amount must be in (0, {U64_MAX}], got {amount}")
