# MIT License
# Copyright (c) 2025 Hashborn

from ecdsa import SigningKey, VerifyingKey, SECP256k1, BadSignatureError # type: ignore
import hashlib
import os

def generate_private_key() -> bytes:
    """Generates a random 32-byte private key."""
    return os.urandom(32)

def public_key_from_private(priv_bytes: bytes) -> bytes:
    """Returns compressed 33-byte public key from private key."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    return sk.get_verifying_key().to_string("compressed")

def _encode_rs(r: int, s: int, order: int) -> bytes:
    return r.to_bytes(32, 'big') + s.to_bytes(32, 'big')

def _decode_rs(sig: bytes, order: int):
    if len(sig) != 64:
        raise BadSignatureError("signature must be 64 bytes")
    return int.from_bytes(sig[:32], 'big'), int.from_bytes(sig[32:], 'big')

def sign(message_hash: bytes, priv_bytes: bytes) -> bytes:
    """Signs a 32-byte digest. Returns 64-byte (r,s) signature."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    return sk.sign_digest_deterministic(message_hash, hashfunc=hashlib.sha256, sigencode=_encode_rs)

def verify(message_hash: bytes, signature: bytes, pub_bytes: bytes) -> bool:
    """Verifies a (r,s) signature over a 32-byte digest."""
    try:
        vk = VerifyingKey.from_string(pub_bytes, curve=SECP256k1)
        return vk.verify_digest(signature, message_hash, sigdecode=_decode_rs)
    except (BadSignatureError, ValueError, AssertionError):
        return False
