# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from .common import Authority
from ..config.params import U64_MAX

class PoolState(BaseModel):
    """One pool per asset. Owns the custody account through `authority`."""
    owner: str                  # may fund/defund custody
    asset_id: str
    custody_account: str        # ledger account holding staked funds
    authority: str              # pool-derived identity owning custody_account
    total_staked: int = Field(default=0, ge=0, le=U64_MAX)
    created_at: int = 0

    def signer(self) -> Authority:
        """Capability to debit the custody account, and nothing else."""
        return Authority(identity=self.authority, scope=self.custody_account)
