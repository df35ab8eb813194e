"""secp256k1 attester keys.

Attester keys are ordinary secp256k1 private keys stored as PKCS#8 PEM,
optionally password protected. Signing itself happens in
``upof.signature`` over the raw 32-byte scalar.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import pathlib
from typing import Optional, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from upof.hardening import CryptoUtils


def generate_private_key() -> ec.EllipticCurvePrivateKey:
    """Generate a new secp256k1 private key."""
    return ec.generate_private_key(ec.SECP256K1())


def private_key_from_scalar(secret: bytes) -> ec.EllipticCurvePrivateKey:
    """Build a key from a raw 32-byte big-endian scalar."""
    if len(secret) != 32:
        raise ValueError("secp256k1 private scalar must be 32 bytes")
    return ec.derive_private_key(int.from_bytes(secret, "big"), ec.SECP256K1())


def private_key_scalar(key: ec.EllipticCurvePrivateKey) -> bytes:
    """Return the raw 32-byte big-endian private scalar."""
    return key.private_numbers().private_value.to_bytes(32, "big")


def public_key_bytes(key: ec.EllipticCurvePrivateKey) -> bytes:
    """Uncompressed SEC1 public key (65 bytes, 0x04 prefix)."""
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


def address_from_public_key(public_key: bytes) -> str:
    """Identity of an uncompressed public key: ``0x`` + last 20 bytes of H(x || y)."""
    if len(public_key) != 65 or public_key[0] != 0x04:
        raise ValueError("expected a 65-byte uncompressed secp256k1 public key")
    return "0x" + CryptoUtils.hash_sha256(public_key[1:])[-20:].hex()


def address_of(key: ec.EllipticCurvePrivateKey) -> str:
    return address_from_public_key(public_key_bytes(key))


def private_key_to_pem(key: ec.EllipticCurvePrivateKey, password: Optional[bytes] = None) -> bytes:
    if password:
        encryption = serialization.BestAvailableEncryption(password)
    else:
        encryption = serialization.NoEncryption()
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def save_private_key(
    key: ec.EllipticCurvePrivateKey,
    path: Union[str, pathlib.Path],
    password: Optional[bytes] = None,
) -> pathlib.Path:
    """Write the key as PKCS#8 PEM with owner-only permissions."""
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(private_key_to_pem(key, password))
    p.chmod(0o600)
    return p


def load_private_key(
    path: Union[str, pathlib.Path],
    password: Optional[bytes] = None,
) -> ec.EllipticCurvePrivateKey:
    """Load a PKCS#8 PEM secp256k1 private key.

    Raises:
        ValueError: the file is not a secp256k1 private key, or the password
            is wrong.
    """
    data = pathlib.Path(path).read_bytes()
    try:
        key = serialization.load_pem_private_key(data, password=password)
    except TypeError as e:
        # cryptography raises TypeError for a missing or unexpected password
        raise ValueError(str(e)) from e
    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(key.curve, ec.SECP256K1):
        raise ValueError("key file must contain a secp256k1 private key")
    return key
