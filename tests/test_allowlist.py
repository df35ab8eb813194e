"""
Signer and compliance allow-list tests.

Run with: pytest tests/test_allowlist.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from upof.allowlist import ComplianceAllowlist, KycProviderInfo, SignerAllowlist
from upof.errors import NotOwner
from upof.events import (
    EventBus,
    EventSink,
    KycProviderSet,
    OwnershipTransferred,
    SanctionsVersionSet,
    SignerSet,
)
from upof.hardening import ValidationError

OWNER = "0x" + "0a" * 20
SIGNER = "0x" + "51" * 20
PROVIDER = "0x" + "4b" * 20
STRANGER = "0x" + "99" * 20
VERSION = b"\x07" * 32


@pytest.fixture
def sink():
    return EventSink(bus=EventBus())


class TestSignerAllowlist:
    """Tests for the signer allow-list."""

    def test_add_and_remove(self, sink):
        registry = SignerAllowlist(OWNER, sink)
        assert registry.is_authorized(SIGNER) is False

        registry.set_signer(OWNER, SIGNER, True)
        assert registry.is_authorized(SIGNER)
        assert registry.is_authorized(SIGNER.upper().replace("0X", "0x"))
        assert registry.signers() == [SIGNER]

        registry.set_signer(OWNER, SIGNER, False)
        assert registry.is_authorized(SIGNER) is False
        assert registry.signers() == []

    def test_writes_overwrite(self, sink):
        registry = SignerAllowlist(OWNER, sink)
        registry.set_signer(OWNER, SIGNER, True)
        registry.set_signer(OWNER, SIGNER, True)
        assert registry.signers() == [SIGNER]

    def test_non_owner_rejected(self, sink):
        registry = SignerAllowlist(OWNER, sink)
        with pytest.raises(NotOwner) as exc:
            registry.set_signer(STRANGER, SIGNER, True)
        assert exc.value.reason == "NOT_OWNER"
        assert registry.is_authorized(SIGNER) is False
        assert registry.audit.entries()[-1].outcome == "denied"

    def test_events_emitted(self, sink):
        registry = SignerAllowlist(OWNER, sink)
        registry.set_signer(OWNER, SIGNER, True)
        registry.set_signer(OWNER, SIGNER, False)
        events = sink.store.read_stream("signers")
        assert [type(e) for e in events] == [SignerSet, SignerSet]
        assert [e.allowed for e in events] == [True, False]

    def test_garbage_queries_are_false(self, sink):
        registry = SignerAllowlist(OWNER, sink)
        assert registry.is_authorized(None) is False
        assert registry.is_authorized("not-an-address") is False

    def test_invalid_signer_write(self, sink):
        registry = SignerAllowlist(OWNER, sink)
        with pytest.raises(ValidationError):
            registry.set_signer(OWNER, "0x1234", True)

    def test_audit_chain(self, sink):
        registry = SignerAllowlist(OWNER, sink)
        registry.set_signer(OWNER, SIGNER, True)
        with pytest.raises(NotOwner):
            registry.set_signer(STRANGER, SIGNER, False)
        registry.set_signer(OWNER, SIGNER, False)
        assert [e.outcome for e in registry.audit.entries()] == ["success", "denied", "success"]
        assert registry.audit.verify_chain()


class TestComplianceAllowlist:
    """Tests for the KYC provider and sanctions version allow-list."""

    def test_kyc_provider(self, sink):
        registry = ComplianceAllowlist(OWNER, sink)
        registry.set_kyc_provider(OWNER, PROVIDER, True, name="DemoKYC", url="https://kyc.example")
        assert registry.is_authorized_provider(PROVIDER)
        assert registry.kyc_provider_info(PROVIDER) == KycProviderInfo(PROVIDER, "DemoKYC", "https://kyc.example")

        registry.set_kyc_provider(OWNER, PROVIDER, False)
        assert registry.is_authorized_provider(PROVIDER) is False
        assert registry.kyc_provider_info(PROVIDER) is None

    def test_sanctions_version(self, sink):
        registry = ComplianceAllowlist(OWNER, sink)
        registry.set_sanctions_version(OWNER, VERSION, True)
        assert registry.is_authorized_sanctions_version(VERSION)
        assert registry.is_authorized_sanctions_version("0x" + VERSION.hex())
        assert registry.is_authorized_sanctions_version(b"\x08" * 32) is False
        registry.set_sanctions_version(OWNER, VERSION, False)
        assert registry.is_authorized_sanctions_version(VERSION) is False

    def test_invalid_version_queries(self, sink):
        registry = ComplianceAllowlist(OWNER, sink)
        assert registry.is_authorized_sanctions_version(None) is False
        assert registry.is_authorized_sanctions_version(b"short") is False
        assert registry.is_authorized_provider(None) is False

    def test_owner_only(self, sink):
        registry = ComplianceAllowlist(OWNER, sink)
        with pytest.raises(NotOwner):
            registry.set_kyc_provider(STRANGER, PROVIDER, True)
        with pytest.raises(NotOwner):
            registry.set_sanctions_version(STRANGER, VERSION, True)

    def test_events(self, sink):
        registry = ComplianceAllowlist(OWNER, sink)
        registry.set_kyc_provider(OWNER, PROVIDER, True, name="DemoKYC")
        registry.set_sanctions_version(OWNER, VERSION, True)
        events = sink.store.read_stream("compliance")
        assert isinstance(events[0], KycProviderSet)
        assert events[0].name == "DemoKYC"
        assert isinstance(events[1], SanctionsVersionSet)
        assert events[1].version == VERSION


class TestOwnership:
    """Tests for ownership handover."""

    def test_transfer_ownership(self, sink):
        registry = SignerAllowlist(OWNER, sink)
        registry.transfer_ownership(OWNER, STRANGER)
        assert registry.owner == STRANGER

        with pytest.raises(NotOwner):
            registry.set_signer(OWNER, SIGNER, True)
        registry.set_signer(STRANGER, SIGNER, True)

        handover = sink.store.events_of_type(OwnershipTransferred)
        assert len(handover) == 1
        assert handover[0].component == "signers"
        assert handover[0].previous_owner == OWNER

    def test_transfer_requires_owner(self, sink):
        registry = ComplianceAllowlist(OWNER, sink)
        with pytest.raises(NotOwner):
            registry.transfer_ownership(STRANGER, STRANGER)
        assert registry.owner == OWNER

    def test_default_sink(self):
        registry = SignerAllowlist(OWNER)
        registry.set_signer(OWNER, SIGNER, True)
        assert registry.events.store.total_events == 1
