"""
Attestation request schema tests.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import json

import pytest

from upof.schema import (
    ATTESTATION_REQUEST_SCHEMA,
    SchemaValidationError,
    load_attestation_request,
    parse_attestation_request,
    validate_against_schema,
)
from upof.signature import uniqueness_key_for

ALICE = "0x" + "a1" * 20
ASSET = "0x" + "5e" * 20
VAULT = "0x" + "7a" * 20


def request(**overrides):
    document = {
        "domain": {"name": "ProofOfFundsVault", "version": "1", "chain_id": 31337, "verifying_contract": VAULT},
        "attestation": {"account": ALICE, "asset": ASSET, "amount": 5000, "expiry": None, "nonce": 0},
    }
    document.update(overrides)
    return document


class TestAttestationRequestSchema:
    """Tests for attestation request validation."""

    def test_valid(self):
        assert validate_against_schema(request(), ATTESTATION_REQUEST_SCHEMA) == []

    def test_amount_as_decimal_string(self):
        document = request()
        document["attestation"]["amount"] = "115792089237316195423570985008687907853269984665640564039457584007913129639935"
        assert validate_against_schema(document, ATTESTATION_REQUEST_SCHEMA) == []
        _, attestation, _ = parse_attestation_request(document)
        assert attestation.amount == (1 << 256) - 1

    @pytest.mark.parametrize("path,value", [
        (("attestation", "amount"), 0),
        (("attestation", "amount"), "-1"),
        (("attestation", "account"), "0x1234"),
        (("attestation", "nonce"), -1),
        (("domain", "chain_id"), 0),
        (("domain", "verifying_contract"), "vault"),
    ])
    def test_invalid_members(self, path, value):
        document = request()
        document[path[0]][path[1]] = value
        assert validate_against_schema(document, ATTESTATION_REQUEST_SCHEMA)

    def test_unknown_member_rejected(self):
        errors = validate_against_schema(request(extra=True), ATTESTATION_REQUEST_SCHEMA)
        assert errors

    def test_compliance_block(self):
        document = request(compliance={"uniqueness_key": "11" * 32, "kyc_provider": ALICE})
        assert validate_against_schema(document, ATTESTATION_REQUEST_SCHEMA) == []
        _, _, compliance = parse_attestation_request(document)
        assert compliance["uniqueness_key"] == "11" * 32

    def test_bad_compliance_word(self):
        document = request(compliance={"license_hash": "0x1234"})
        assert validate_against_schema(document, ATTESTATION_REQUEST_SCHEMA)


class TestParseAttestationRequest:
    """Tests for building typed values from requests."""

    def test_parse(self):
        domain, attestation, compliance = parse_attestation_request(request())
        assert domain.verifying_contract == VAULT
        assert attestation.account == ALICE
        assert attestation.expiry is None
        assert compliance is None

    def test_domain_defaults_from_config(self, monkeypatch):
        monkeypatch.setenv("UPOF_CHAIN_ID", "8453")
        domain, _, _ = parse_attestation_request(request(domain={"verifying_contract": VAULT}))
        assert domain.name == "ProofOfFundsVault"
        assert domain.chain_id == 8453

    def test_invalid_raises(self):
        with pytest.raises(SchemaValidationError) as exc:
            parse_attestation_request({"attestation": {}})
        assert exc.value.schema_name == ATTESTATION_REQUEST_SCHEMA
        assert exc.value.errors

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "request.json"
        path.write_text(json.dumps(request()))
        _, attestation, _ = load_attestation_request(path)
        assert attestation.amount == 5000

    def test_policy_derives_uniqueness_key(self):
        document = request(
            compliance={"kyc_provider": ALICE},
            policy={"unique_policy": "per-bank-ref", "bank_ref": "ACC-1"},
        )
        _, _, compliance = parse_attestation_request(document)
        key = uniqueness_key_for("per-bank-ref", ALICE, ASSET, bank_ref="ACC-1")
        assert compliance == {"kyc_provider": ALICE, "uniqueness_key": "0x" + key.hex()}

    def test_policy_without_compliance_block(self):
        _, _, compliance = parse_attestation_request(request(policy={"unique_policy": "per-asset"}))
        assert compliance["uniqueness_key"] == "0x" + uniqueness_key_for("per-asset", ALICE, ASSET).hex()

    def test_policy_none_keeps_compliance_absent(self):
        _, _, compliance = parse_attestation_request(request(policy={"unique_policy": "none"}))
        assert compliance is None

    def test_explicit_key_must_match_policy(self):
        key = uniqueness_key_for("per-asset", ALICE, ASSET)
        matching = request(compliance={"uniqueness_key": key.hex()}, policy={"unique_policy": "per-asset"})
        assert parse_attestation_request(matching)[2]["uniqueness_key"] == "0x" + key.hex()

        conflicting = request(compliance={"uniqueness_key": "11" * 32}, policy={"unique_policy": "per-asset"})
        with pytest.raises(SchemaValidationError):
            parse_attestation_request(conflicting)

    def test_unknown_policy_rejected_by_schema(self):
        assert validate_against_schema(request(policy={"unique_policy": "per-account"}), ATTESTATION_REQUEST_SCHEMA)
