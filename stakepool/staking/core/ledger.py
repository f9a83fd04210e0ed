# MIT License
# Copyright (c) 2025 Hashborn

import logging
from typing import Optional
from .accounts import TokenAccount
from .state import PoolStore
from ...protocol.types.common import (
    Authority, Unauthorized, InsufficientFunds, AccountNotFound, AssetMismatch, LedgerError, ValidationError
)
from ...protocol.crypto.addresses import token_account_address
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig, U64_MAX

logger = logging.getLogger(__name__)

class TokenLedger:
    """
    Account-based token ledger sharing the operation's working store.

    Balance changes are staged in the same PoolStore as the pool and stake
    records, so they commit or roll back together with the operation.
    """

    def __init__(self, store: PoolStore, config: NetworkConfig = CURRENT_NETWORK):
        self.store = store
        self.config = config

    def associated_address(self, owner: str, asset_id: str) -> str:
        return token_account_address(owner, asset_id, prefix=self.config.bech32_prefix_token)

    def get_account(self, address: str) -> Optional[TokenAccount]:
        return self.store.get_token_account(address)

    def open_account(self, owner: str, asset_id: str, address: Optional[str] = None) -> TokenAccount:
        """Returns the account at `address` (default: owner's associated one), creating it empty."""
        address = address or self.associated_address(owner, asset_id)
        acc = self.store.get_token_account(address)
        if acc is not None:
            if acc.owner != owner or acc.asset_id != asset_id:
                raise LedgerError(f"Account {address} belongs to {acc.owner}/{acc.asset_id}")
            return acc

        acc = TokenAccount(address=address, owner=owner, asset_id=asset_id)
        self.store.set_token_account(acc)
        return acc

    def balance_of(self, address: str) -> int:
        acc = self.store.get_token_account(address)
        return acc.balance if acc else 0

    def mint(self, owner: str, asset_id: str, amount: int) -> TokenAccount:
        """Credits new units to the owner's associated account (faucet / genesis)."""
        if amount <= 0:
            raise ValidationError("Mint amount must be positive")
        acc = self.open_account(owner, asset_id)
        if acc.balance + amount > U64_MAX:
            raise LedgerError(f"Mint would overflow balance of {acc.address}")
        acc.balance += amount
        self.store.set_token_account(acc)
        logger.debug(f"Minted {amount} {asset_id} to {acc.address}")
        return acc

    def transfer(self, from_account: str, to_account: str, authority: Authority, amount: int):
        """
        Moves `amount` between two accounts of the same asset.

        `authority` must be the owner of `from_account`; a scoped authority
        may only debit the account it is scoped to.
        """
        if amount < 0 or amount > U64_MAX:
            raise ValidationError(f"Invalid transfer amount {amount}")

        src = self.store.get_token_account(from_account)
        if src is None:
            raise AccountNotFound(f"Token account {from_account} not found")
        dst = self.store.get_token_account(to_account)
        if dst is None:
            raise AccountNotFound(f"Token account {to_account} not found")

        if src.asset_id != dst.asset_id:
            raise AssetMismatch(f"Cannot transfer {src.asset_id} into a {dst.asset_id} account")

        if not authority.can_debit(src.address, src.owner):
            raise Unauthorized(f"{authority.identity} may not debit {src.address}")

        if src.balance < amount:
            raise InsufficientFunds(f"Insufficient balance: have {src.balance}, need {amount}")

        if src.address == dst.address:
            return

        if dst.balance + amount > U64_MAX:
            raise LedgerError(f"Transfer would overflow balance of {dst.address}")

        src.balance -= amount
        dst.balance += amount
        self.store.set_token_account(src)
        self.store.set_token_account(dst)
