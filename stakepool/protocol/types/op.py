# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
import json
from ..crypto.hash import sha256_hex
from ..crypto.keys import sign as crypto_sign
from .common import OpType

class Operation(BaseModel):
    """Signed request to mutate pool or stake state."""
    op_type: OpType
    caller: str                 # bech32 account address of the signer
    asset_id: str
    amount: int = Field(default=0, ge=0)      # STAKE, OWNER_DEPOSIT, OWNER_WITHDRAW
    lock_days: int = Field(default=0, ge=0)   # STAKE, RESTAKE
    stake_address: Optional[str] = None       # START_UNSTAKE, COMPLETE_UNSTAKE, RESTAKE
    nonce: int = Field(ge=0)
    timestamp: int = 0          # client-side, informational
    pub_key: str = ""           # hex public key of caller
    signature: str = ""         # hex (r,s)

    def signing_bytes(self) -> bytes:
        body = self.model_dump(mode="json", exclude={"signature"})
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def hash(self) -> str:
        return sha256_hex(self.signing_bytes())

    def sign(self, priv_key_bytes: bytes):
        """Signs the operation hash."""
        msg_hash = bytes.fromhex(self.hash())
        self.signature = crypto_sign(msg_hash, priv_key_bytes).hex()

class OperationReceipt(BaseModel):
    op_hash: str
    op_type: OpType
    caller: str
    applied_at: int
    result: Dict[str, Any] = Field(default_factory=dict)
