# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from ...protocol.config.params import U64_MAX

class TokenAccount(BaseModel):
    """Ledger account holding one asset for one owner."""
    address: str
    owner: str          # identity allowed to debit (user, pool owner or pool authority)
    asset_id: str
    balance: int = Field(default=0, ge=0, le=U64_MAX)
