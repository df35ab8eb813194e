"""
UPoF — Universal Proof-of-Funds

Portable, cryptographically verifiable proof-of-funds records. A holder
either locks an asset under custody (escrow mode) or presents an attestation
signed by an allow-listed signer (attested mode); any third party asks the
vault, in one call, whether a record is currently valid for a required asset
and minimum amount.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                        PROOF-OF-FUNDS VAULT                              │
    │                                                                          │
    │  CORE                                                                    │
    │    vault.py       Record ledger, escrow, nonces; mint/burn/verify       │
    │    uniqueness.py  One active record per uniqueness key                  │
    │                                                                          │
    │  COLLABORATORS                                                           │
    │    allowlist.py   Signer and compliance allow-lists                     │
    │    signature.py   Recoverable secp256k1 attestation signatures          │
    │    typed_data.py  Domain-separated typed hashing                        │
    │    custody.py     All-or-nothing asset custody primitive                │
    │    metadata.py    Display metadata for records                          │
    │                                                                          │
    │  INFRASTRUCTURE                                                          │
    │    events.py  config.py  observability.py  hardening.py  schema.py      │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Design Principles
─────────────────

    Fail Closed: A record is valid only when every check passes. Signer
    membership is queried live, so revoking a signer invalidates its records.

    Atomic Operations: Every mutation applies fully or not at all. The
    attested-mint nonce is the single intentional exception: once signature
    evaluation is reached it stays consumed.

Copyright © 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "0.1.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import UPoF modules on first access."""

    # Vault exports
    if name in ("ProofOfFundsVault", "Record", "RecordMode", "ComplianceAttachment",
                "Verification", "VerifyReason"):
        from upof import vault
        return getattr(vault, name)

    # Allow-list exports
    if name in ("SignerAllowlist", "ComplianceAllowlist", "KycProviderInfo"):
        from upof import allowlist
        return getattr(allowlist, name)

    # Signature exports
    if name in ("Signature", "SignatureVerifier", "AttestationSigner", "sanctions_label_hash"):
        from upof import signature
        return getattr(signature, name)

    # Typed data exports
    if name in ("DomainDescriptor", "Attestation", "attestation_digest"):
        from upof import typed_data
        return getattr(typed_data, name)

    # Custody exports
    if name in ("CustodyProvider", "InMemoryCustody", "CustodyError"):
        from upof import custody
        return getattr(custody, name)

    if name == "UniquenessGuard":
        from upof import uniqueness
        return uniqueness.UniquenessGuard

    if name == "MetadataRenderer":
        from upof import metadata
        return metadata.MetadataRenderer

    # Error exports
    if name in ("VaultError", "InvalidAmount", "ComplianceRejected", "UniquenessConflict",
                "CustodyTransferFailed", "InvalidSigner", "NotHolder", "NotOwner",
                "RecordNotFound", "TransferRejected", "CallerMismatch", "ReentrantCall"):
        from upof import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'upof' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Vault
    "ProofOfFundsVault",
    "Record",
    "RecordMode",
    "ComplianceAttachment",
    "Verification",
    "VerifyReason",
    # Allow-lists
    "SignerAllowlist",
    "ComplianceAllowlist",
    "KycProviderInfo",
    # Signatures
    "Signature",
    "SignatureVerifier",
    "AttestationSigner",
    "sanctions_label_hash",
    "DomainDescriptor",
    "Attestation",
    "attestation_digest",
    # Custody
    "CustodyProvider",
    "InMemoryCustody",
    "CustodyError",
    "UniquenessGuard",
    "MetadataRenderer",
    # Errors
    "VaultError",
    "InvalidAmount",
    "ComplianceRejected",
    "UniquenessConflict",
    "CustodyTransferFailed",
    "InvalidSigner",
    "NotHolder",
    "NotOwner",
    "RecordNotFound",
    "TransferRejected",
    "CallerMismatch",
    "ReentrantCall",
]
