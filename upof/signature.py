"""
UPoF Attestation Signatures

Recoverable secp256k1 ECDSA over typed attestation digests.

    SignatureVerifier   - pure signer recovery; no state, no logging of secrets
    AttestationSigner   - producer side: signs attestations for a domain

A signature is the triple ``(v, r, s)``: ``v`` in {27, 28}, ``r`` and ``s``
32-byte big-endian. The 65-byte wire form is ``r || s || v``. High-``s``
(malleable) signatures are rejected.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from coincurve import PrivateKey, PublicKey
from cryptography.hazmat.primitives.asymmetric import ec

from upof.hardening import ZERO_ADDRESS, CryptoUtils, ValidationError
from upof.keys import address_from_public_key, private_key_scalar
from upof.typed_data import Attestation, DomainDescriptor, attestation_digest, encode_address, encode_uint

SECP256K1_ORDER = int(
    "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16
)
SECP256K1_HALF_ORDER = SECP256K1_ORDER // 2


def _hex_bytes(value: Union[bytes, str]) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.lower().startswith("0x") else value)
    return bytes(value)


# =============================================================================
# SIGNATURE
# =============================================================================

@dataclass(frozen=True)
class Signature:
    """A recoverable ECDSA signature triple."""
    v: int
    r: bytes
    s: bytes

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Signature":
        """Parse the 65-byte ``r || s || v`` form (``v`` may be 0/1 or 27/28)."""
        if len(raw) != 65:
            raise ValidationError("signature", f"Must be 65 bytes (got {len(raw)})", raw)
        v = raw[64]
        if v in (0, 1):
            v += 27
        return cls(v=v, r=bytes(raw[:32]), s=bytes(raw[32:64]))

    @classmethod
    def from_hex(cls, text: str) -> "Signature":
        text = text.strip()
        if text.lower().startswith("0x"):
            text = text[2:]
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise ValidationError("signature", "Must be hex encoded", text) from e
        return cls.from_bytes(raw)

    @classmethod
    def coerce(cls, value: Union["Signature", bytes, str, Dict[str, Any]]) -> "Signature":
        """Accept a Signature, its 65-byte form, hex, or a ``{v, r, s}`` mapping."""
        if isinstance(value, Signature):
            return value
        if isinstance(value, (bytes, bytearray)):
            return cls.from_bytes(bytes(value))
        if isinstance(value, str):
            return cls.from_hex(value)
        if isinstance(value, dict):
            try:
                return cls(v=int(value["v"]), r=_hex_bytes(value["r"]), s=_hex_bytes(value["s"]))
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError("signature", "Expected v, r and s members", value) from e
        raise ValidationError("signature", f"Unsupported signature type {type(value).__name__}", value)

    def malformation(self) -> Optional[str]:
        """Why this signature can never verify, or None if it is well formed."""
        if self.v not in (27, 28):
            return "v must be 27 or 28"
        if len(self.r) != 32 or len(self.s) != 32:
            return "r and s must be 32 bytes"
        r = int.from_bytes(self.r, "big")
        s = int.from_bytes(self.s, "big")
        if r == 0 or s == 0:
            return "r and s must be non-zero"
        if r >= SECP256K1_ORDER:
            return "r out of range"
        if s > SECP256K1_HALF_ORDER:
            return "s in upper half of curve order"
        return None

    @property
    def is_well_formed(self) -> bool:
        return self.malformation() is None

    def to_bytes(self) -> bytes:
        return self.r + self.s + bytes([self.v])

    def to_hex(self) -> str:
        return "0x" + self.to_bytes().hex()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "v": self.v,
            "r": "0x" + self.r.hex(),
            "s": "0x" + self.s.hex(),
            "signature": self.to_hex(),
        }


# =============================================================================
# VERIFIER
# =============================================================================

class SignatureVerifier:
    """
    Recovers the signing identity of an attestation.

    Pure: retains no state between calls. Returns None, never raises, when the
    signature is malformed or recovery yields no identity.
    """

    @staticmethod
    def recover_digest(digest: bytes, signature: Signature) -> Optional[str]:
        if len(digest) != 32 or not signature.is_well_formed:
            return None
        recoverable = signature.r + signature.s + bytes([signature.v - 27])
        try:
            public_key = PublicKey.from_signature_and_message(recoverable, digest, hasher=None)
        except ValueError:
            return None
        address = address_from_public_key(public_key.format(compressed=False))
        if address == ZERO_ADDRESS:
            return None
        return address

    @classmethod
    def recover(
        cls,
        domain: DomainDescriptor,
        attestation: Attestation,
        signature: Signature,
    ) -> Optional[str]:
        return cls.recover_digest(attestation_digest(domain, attestation), signature)

    @classmethod
    def verify(
        cls,
        domain: DomainDescriptor,
        attestation: Attestation,
        signature: Signature,
        expected_signer: str,
    ) -> bool:
        recovered = cls.recover(domain, attestation, signature)
        if recovered is None:
            return False
        return CryptoUtils.secure_compare_str(recovered, expected_signer.lower())


# =============================================================================
# SIGNER
# =============================================================================

class AttestationSigner:
    """Off-system attester: signs attestations with a secp256k1 key."""

    def __init__(self, private_key: Union[ec.EllipticCurvePrivateKey, bytes]):
        if isinstance(private_key, ec.EllipticCurvePrivateKey):
            private_key = private_key_scalar(private_key)
        self._key = PrivateKey(private_key)
        self._address = address_from_public_key(self._key.public_key.format(compressed=False))

    @property
    def address(self) -> str:
        return self._address

    def sign_digest(self, digest: bytes) -> Signature:
        if len(digest) != 32:
            raise ValidationError("digest", f"Must be exactly 32 bytes (got {len(digest)})", digest)
        raw = self._key.sign_recoverable(digest, hasher=None)
        return Signature(v=raw[64] + 27, r=raw[:32], s=raw[32:64])

    def sign(self, domain: DomainDescriptor, attestation: Attestation) -> Signature:
        return self.sign_digest(attestation_digest(domain, attestation))

    def check(self, domain: DomainDescriptor, attestation: Attestation, signature: Signature) -> bool:
        """Self-check that ``signature`` recovers to this signer."""
        return SignatureVerifier.verify(domain, attestation, signature, self._address)


def sanctions_label_hash(label: str) -> bytes:
    """32-byte identifier of a sanctions dataset label such as ``OFAC:2025-09-04``."""
    return CryptoUtils.hash_sha256(label.encode("utf-8"))


UNIQUENESS_POLICIES = ("none", "per-asset", "per-bank-ref")


def uniqueness_key_for(
    policy: Optional[str],
    account: str,
    asset: str,
    bank_ref: Optional[str] = None,
) -> Optional[bytes]:
    """
    Uniqueness key an attester issues under ``policy``.

    ``per-asset`` binds one active record per (account, asset);
    ``per-bank-ref`` binds one per (account, bank reference). ``none`` (or
    no policy) issues no key. Arguments are laid out as ABI-encoded
    ``(address, address)`` and ``(address, string)`` tuples before hashing.
    """
    if policy in (None, "", "none"):
        return None
    if policy == "per-asset":
        return CryptoUtils.hash_sha256(encode_address(account) + encode_address(asset))
    if policy == "per-bank-ref":
        ref = (bank_ref or "").encode("utf-8")
        padded = ref + b"\x00" * (-len(ref) % 32)
        return CryptoUtils.hash_sha256(
            encode_address(account) + encode_uint(64) + encode_uint(len(ref)) + padded
        )
    raise ValidationError(
        "unique_policy", f"Unknown policy {policy!r}; expected one of {', '.join(UNIQUENESS_POLICIES)}", policy
    )
