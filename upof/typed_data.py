"""
UPoF Typed Data Hashing

Two-level, domain-separated typed hashing of attestations:

    typeHash         = H("Attestation(address account,address asset,uint256 amount,uint256 expiry,uint256 nonce)")
    structHash       = H(typeHash || enc(account) || enc(asset) || enc(amount) || enc(expiry) || enc(nonce))
    domainSeparator  = H(domainTypeHash || H(name) || H(version) || enc(chainId) || enc(verifyingContract))
    digest           = H(0x19 0x01 || domainSeparator || structHash)

Every field is a 32-byte big-endian word; addresses are left-padded. The
domain binds a digest to one deployment so an attestation signed for one
vault is useless on any other. ``H`` is SHA-256, not keccak-256, so
digests, signatures and identities do not interoperate with EIP-712 tooling:
an attestation produced by an Ethereum signer never recovers here.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from upof.hardening import CryptoUtils, Validators, normalize_address

ATTESTATION_TYPE = (
    "Attestation(address account,address asset,uint256 amount,uint256 expiry,uint256 nonce)"
)
DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)

ATTESTATION_TYPEHASH = CryptoUtils.hash_sha256(ATTESTATION_TYPE)
DOMAIN_TYPEHASH = CryptoUtils.hash_sha256(DOMAIN_TYPE)

TYPED_DATA_PREFIX = b"\x19\x01"


def encode_uint(value: int) -> bytes:
    """Encode a uint256 as a 32-byte big-endian word."""
    return Validators.validate_amount(value, "uint256").unwrap().to_bytes(32, "big")


def encode_address(address: str) -> bytes:
    """Encode a 20-byte address left-padded to 32 bytes."""
    raw = bytes.fromhex(normalize_address(address)[2:])
    return b"\x00" * 12 + raw


def encode_string(value: str) -> bytes:
    return CryptoUtils.hash_sha256(value.encode("utf-8"))


@dataclass(frozen=True)
class DomainDescriptor:
    """Deployment context an attestation digest is bound to."""
    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def __post_init__(self):
        object.__setattr__(
            self, "verifying_contract", normalize_address(self.verifying_contract, "verifying_contract")
        )
        Validators.validate_amount(self.chain_id, "chain_id").unwrap()

    @classmethod
    def from_config(cls, verifying_contract: str) -> "DomainDescriptor":
        """Build a domain from the configured name, version and chain id."""
        from upof.config import get_config

        domain = get_config().domain
        return cls(
            name=domain.name.get(),
            version=domain.version.get(),
            chain_id=domain.chain_id.get(),
            verifying_contract=verifying_contract,
        )

    def separator(self) -> bytes:
        return CryptoUtils.hash_sha256(
            DOMAIN_TYPEHASH
            + encode_string(self.name)
            + encode_string(self.version)
            + encode_uint(self.chain_id)
            + encode_address(self.verifying_contract)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chain_id": self.chain_id,
            "verifying_contract": self.verifying_contract,
        }


@dataclass(frozen=True)
class Attestation:
    """
    The signed statement: ``account`` controls at least ``amount`` of
    ``asset`` off-system, valid until ``expiry`` (None for no expiry), for
    the account's ``nonce``-th attested mint.
    """
    account: str
    asset: str
    amount: int
    expiry: Optional[int]
    nonce: int

    def __post_init__(self):
        object.__setattr__(self, "account", normalize_address(self.account, "account"))
        object.__setattr__(self, "asset", normalize_address(self.asset, "asset"))
        Validators.validate_amount(self.amount, "amount").unwrap()
        Validators.validate_timestamp(self.expiry, "expiry").unwrap()
        Validators.validate_amount(self.nonce, "nonce").unwrap()

    def struct_hash(self) -> bytes:
        return CryptoUtils.hash_sha256(
            ATTESTATION_TYPEHASH
            + encode_address(self.account)
            + encode_address(self.asset)
            + encode_uint(self.amount)
            + encode_uint(self.expiry or 0)
            + encode_uint(self.nonce)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "asset": self.asset,
            "amount": self.amount,
            "expiry": self.expiry,
            "nonce": self.nonce,
        }


def attestation_digest(domain: DomainDescriptor, attestation: Attestation) -> bytes:
    """The 32-byte digest an attester signs."""
    return CryptoUtils.hash_sha256(TYPED_DATA_PREFIX + domain.separator() + attestation.struct_hash())
