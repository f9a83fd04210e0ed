# MIT License
# Copyright (c) 2025 Hashborn

import bech32 # type: ignore
from .hash import hash160
from typing import Tuple, Optional

def _encode(prefix: str, h20: bytes) -> str:
    five_bit_r = bech32.convertbits(h20, 8, 5)
    if five_bit_r is None:
        raise ValueError("Error converting to bech32 words")
    return bech32.bech32_encode(prefix, five_bit_r)

def address_from_pubkey(pub_bytes: bytes, prefix: str = "nova") -> str:
    """Creates Bech32 address from public key."""
    return _encode(prefix, hash160(pub_bytes))

def derive_address(prefix: str, *seeds: bytes) -> str:
    """
    Deterministic record address from seeds.

    Seeds are length-prefixed before hashing so that ("ab", "c") and
    ("a", "bc") never map to the same address.
    """
    material = b"".join(len(s).to_bytes(2, 'big') + s for s in seeds)
    return _encode(prefix, hash160(material))

def pool_authority_address(asset_id: str, prefix: str = "novapool") -> str:
    """Identity the pool signs custody withdrawals with."""
    return derive_address(prefix, b"pool_state", asset_id.encode("utf-8"))

def custody_address(asset_id: str, prefix: str = "novavault") -> str:
    return derive_address(prefix, b"token_vault", asset_id.encode("utf-8"))

def token_account_address(owner: str, asset_id: str, prefix: str = "novatok") -> str:
    """Associated ledger account of `owner` for `asset_id`."""
    return derive_address(prefix, b"token", owner.encode("utf-8"), asset_id.encode("utf-8"))

def stake_address(owner: str, asset_id: str, sequence: int, prefix: str = "novastake") -> str:
    return derive_address(
        prefix,
        b"stake",
        owner.encode("utf-8"),
        asset_id.encode("utf-8"),
        sequence.to_bytes(8, 'little'),
    )

def decode_address(addr: str) -> Tuple[str, bytes]:
    """Decodes Bech32 address to (prefix, h20_bytes)."""
    hrp, data = bech32.bech32_decode(addr)
    if hrp is None or data is None:
        raise ValueError("Invalid bech32 address")

    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise ValueError("Error converting from bech32 words")

    return hrp, bytes(decoded)

def is_valid_address(addr: str, expected_prefix: Optional[str] = None) -> bool:
    try:
        hrp, _ = decode_address(addr)
        if expected_prefix and hrp != expected_prefix:
            return False
        return True
    except ValueError:
        return False
