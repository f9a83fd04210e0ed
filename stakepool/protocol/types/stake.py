# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as ModelValidationError
from .common import StakeStatus, ValidationError
from ..config.params import U64_MAX, I64_MAX, I64_MIN

class StakeAccount(BaseModel):
    address: str            # derived from (owner, asset_id, sequence)
    owner: str
    asset_id: str
    sequence: int = Field(ge=0)
    amount: int = Field(gt=0, le=U64_MAX)
    start_time: int = Field(ge=I64_MIN, le=I64_MAX)
    unlock_time: int = Field(ge=I64_MIN, le=I64_MAX)
    lock_days: int = Field(gt=0, le=U64_MAX)
    status: StakeStatus = StakeStatus.ACTIVE
    # Meaningful only while COOLDOWN_PENDING; status, not this value, marks the cooldown
    cooldown_start: int = Field(default=0, ge=I64_MIN, le=I64_MAX)
    withdrawn_at: int = Field(default=0, ge=I64_MIN, le=I64_MAX)

    @model_validator(mode="after")
    def _check_lifecycle(self) -> "StakeAccount":
        if self.unlock_time <= self.start_time:
            raise ValueError("unlock_time must be after start_time")
        if self.status == StakeStatus.ACTIVE and self.cooldown_start != 0:
            raise ValueError("active stake cannot carry a cooldown")
        return self

    @property
    def is_active(self) -> bool:
        """True until withdrawn (covers both ACTIVE and COOLDOWN_PENDING)."""
        return self.status != StakeStatus.WITHDRAWN

    def cooldown_end(self, cooldown_secs: int) -> int:
        return self.cooldown_start + cooldown_secs

    def evolve(self, **changes) -> "StakeAccount":
        """Returns a validated copy with `changes` applied."""
        data = self.model_dump()
        data.update(changes)
        try:
            return StakeAccount.model_validate(data)
        except ModelValidationError as e:
            raise ValidationError(f"Invalid transition of stake {self.address}: {e}") from e
