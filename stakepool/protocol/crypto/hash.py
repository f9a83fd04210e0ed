# MIT License
# Copyright (c) 2025 Hashborn

import hashlib

def sha256(data: bytes) -> bytes:
    """Returns SHA256 hash of bytes."""
    return hashlib.sha256(data).digest()

def sha256_hex(data: bytes) -> str:
    """Returns SHA256 hash of bytes as hex string."""
    return sha256(data).hex()

def hash160(data: bytes) -> bytes:
    """
    20-byte digest used as the payload of every bech32 address.

    BLAKE2b-160 over SHA256(data); ripemd160 is not guaranteed to be
    available in hashlib on OpenSSL 3 builds.
    """
    return hashlib.blake2b(sha256(data), digest_size=20).digest()
