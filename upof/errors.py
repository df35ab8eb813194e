"""
UPoF Error Taxonomy

Every state-changing vault operation either commits in full or raises one of
the errors below, leaving no partial state behind. Each error carries:

    kind    - the error class name, stable across releases
    reason  - a short machine-readable code surfaced verbatim to callers

``verify`` never raises these; it reports absence of validity through its
reason code instead.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class VaultError(Exception):
    """Base class for all vault operation failures."""

    default_reason = "VAULT_ERROR"

    def __init__(self, reason: Optional[str] = None, message: str = ""):
        self.reason = reason or self.default_reason
        self.message = message or self.reason
        super().__init__(f"{self.kind}: {self.reason}" + (f" ({message})" if message else ""))

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "reason": self.reason,
            "message": self.message,
        }


class InvalidAmount(VaultError):
    """Mint amount is not a positive integer."""
    default_reason = "INVALID_AMOUNT"


class ComplianceRejected(VaultError):
    """Unauthorized KYC provider or sanctions version supplied."""
    default_reason = "COMPLIANCE_REJECTED"


class UniquenessConflict(VaultError):
    """Uniqueness key already reserved by an active record."""
    default_reason = "UNIQUE_KEY_ACTIVE"


class CustodyTransferFailed(VaultError):
    """External custody transfer in or out failed."""
    default_reason = "CUSTODY_TRANSFER_FAILED"


class InvalidSigner(VaultError):
    """Recovered signer is not allow-listed, or the signature is malformed."""
    default_reason = "INVALID_ATTESTER"


class NotHolder(VaultError):
    """Caller does not hold (and is not approved for) the record."""
    default_reason = "NOT_HOLDER"


class NotOwner(VaultError):
    """Admin-only operation attempted by a non-owner."""
    default_reason = "NOT_OWNER"


class RecordNotFound(VaultError):
    """Operation referenced a nonexistent record id."""
    default_reason = "TOKEN_NOT_FOUND"


class TransferRejected(VaultError):
    """Transfer attempted while records are non-transferable."""
    default_reason = "SOULBOUND"


class CallerMismatch(VaultError):
    """Attested mint submitted by someone other than the attested account."""
    default_reason = "ONLY_SELF"


class ReentrantCall(VaultError):
    """A guarded entry point was re-entered during an external custody call."""
    default_reason = "REENTRANT_CALL"
