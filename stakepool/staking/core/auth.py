# MIT License
# Copyright (c) 2025 Hashborn

import logging
from .state import PoolStore
from ...protocol.types.op import Operation
from ...protocol.types.common import InvalidSignature, InvalidNonce
from ...protocol.crypto.addresses import address_from_pubkey, decode_address
from ...protocol.crypto.keys import verify

logger = logging.getLogger(__name__)

def authenticate(op: Operation, store: PoolStore) -> str:
    """
    Verifies that `op` was signed by `op.caller` and consumes its nonce.

    Returns the authenticated caller identity. The nonce increment is staged
    in `store` and only commits together with the operation.
    """
    if not op.signature or not op.pub_key:
        raise InvalidSignature("Missing signature or pub_key")

    try:
        prefix, _ = decode_address(op.caller)
        pub_bytes = bytes.fromhex(op.pub_key)
        sig_bytes = bytes.fromhex(op.signature)
    except ValueError as e:
        raise InvalidSignature(f"Malformed caller, key or signature: {e}") from e

    derived = address_from_pubkey(pub_bytes, prefix=prefix)
    if derived != op.caller:
        raise InvalidSignature(f"pub_key mismatch: derived {derived}, expected {op.caller}")

    if not verify(bytes.fromhex(op.hash()), sig_bytes, pub_bytes):
        raise InvalidSignature("Invalid signature")

    expected = store.get_nonce(op.caller)
    if op.nonce != expected:
        raise InvalidNonce(f"Invalid nonce: expected {expected}, got {op.nonce}")

    store.increment_nonce(op.caller)
    return op.caller
