"""
Error taxonomy tests.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from upof.errors import (
    CallerMismatch,
    ComplianceRejected,
    CustodyTransferFailed,
    InvalidAmount,
    InvalidSigner,
    NotHolder,
    NotOwner,
    RecordNotFound,
    ReentrantCall,
    TransferRejected,
    UniquenessConflict,
    VaultError,
)


class TestVaultError:
    """Tests for error kinds and reasons."""

    @pytest.mark.parametrize("cls,reason", [
        (InvalidAmount, "INVALID_AMOUNT"),
        (UniquenessConflict, "UNIQUE_KEY_ACTIVE"),
        (InvalidSigner, "INVALID_ATTESTER"),
        (NotHolder, "NOT_HOLDER"),
        (NotOwner, "NOT_OWNER"),
        (RecordNotFound, "TOKEN_NOT_FOUND"),
        (TransferRejected, "SOULBOUND"),
        (CallerMismatch, "ONLY_SELF"),
        (ReentrantCall, "REENTRANT_CALL"),
    ])
    def test_default_reasons(self, cls, reason):
        error = cls()
        assert isinstance(error, VaultError)
        assert error.reason == reason
        assert error.kind == cls.__name__

    def test_explicit_reason(self):
        error = ComplianceRejected("KYC_PROVIDER_NOT_ALLOWED")
        assert error.reason == "KYC_PROVIDER_NOT_ALLOWED"
        assert str(error) == "ComplianceRejected: KYC_PROVIDER_NOT_ALLOWED"

    def test_message_in_str_and_dict(self):
        error = CustodyTransferFailed("TRANSFER_OUT_FAILED", "asset frozen")
        assert str(error) == "CustodyTransferFailed: TRANSFER_OUT_FAILED (asset frozen)"
        assert error.to_dict() == {
            "error": "CustodyTransferFailed",
            "reason": "TRANSFER_OUT_FAILED",
            "message": "asset frozen",
        }

    def test_message_defaults_to_reason(self):
        assert NotOwner().to_dict()["message"] == "NOT_OWNER"
