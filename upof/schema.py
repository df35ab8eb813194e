"""JSON Schema validation of UPoF request documents.

Schemas live in ``upof/schemas/*.schema.json`` and may reference each other
through ``$ref``; all of them are registered by ``$id`` so references
resolve without network access.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from upof.typed_data import Attestation, DomainDescriptor

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"
ATTESTATION_REQUEST_SCHEMA = "attestation-request.schema.json"


class SchemaValidationError(ValueError):
    """A document failed schema validation."""

    def __init__(self, schema_name: str, errors: List[str]):
        self.schema_name = schema_name
        self.errors = errors
        super().__init__(f"{schema_name}: " + "; ".join(errors))


def load_json(path: Union[str, Path]) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def _schema_registry() -> Registry:
    """Registry of every bundled schema, keyed by ``$id``."""
    resources = []
    for schema_path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        schema = load_json(schema_path)
        schema_id = schema.get("$id") or f"https://schemas.momentum.inc/upof/{schema_path.name}"
        resources.append((schema_id, Resource.from_contents(schema, default_specification=DRAFT202012)))
    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def schema_validator(schema_name: str) -> Draft202012Validator:
    schema = load_json(SCHEMAS_DIR / schema_name)
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_against_schema(obj: Any, schema_name: str) -> List[str]:
    """Return validation error messages (empty if valid)."""
    validator = schema_validator(schema_name)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]


def parse_attestation_request(
    document: Dict[str, Any],
) -> Tuple[DomainDescriptor, Attestation, Optional[Dict[str, Any]]]:
    """Validate an attestation request and build its typed parts.

    Domain members that are omitted fall back to configuration. A
    ``policy.unique_policy`` adds the derived ``uniqueness_key`` to the
    returned compliance block.

    Raises:
        SchemaValidationError: the document does not match the schema.
    """
    errors = validate_against_schema(document, ATTESTATION_REQUEST_SCHEMA)
    if errors:
        raise SchemaValidationError(ATTESTATION_REQUEST_SCHEMA, errors)

    from upof.config import get_config

    cfg = get_config().domain
    d = document["domain"]
    domain = DomainDescriptor(
        name=d.get("name", cfg.name.get()),
        version=d.get("version", cfg.version.get()),
        chain_id=int(d.get("chain_id", cfg.chain_id.get())),
        verifying_contract=d["verifying_contract"],
    )

    a = document["attestation"]
    expiry = a.get("expiry")
    attestation = Attestation(
        account=a["account"],
        asset=a["asset"],
        amount=int(a["amount"]),
        expiry=int(expiry) if expiry is not None else None,
        nonce=int(a["nonce"]),
    )
    return domain, attestation, _compliance_with_policy(document, attestation)


def _compliance_with_policy(document: Dict[str, Any], attestation: Attestation) -> Optional[Dict[str, Any]]:
    """The request's compliance block plus the policy-derived uniqueness key."""
    from upof.signature import uniqueness_key_for

    compliance = dict(document.get("compliance") or {})
    policy = document.get("policy") or {}
    key = uniqueness_key_for(
        policy.get("unique_policy"), attestation.account, attestation.asset, policy.get("bank_ref")
    )
    if key is not None:
        given = compliance.get("uniqueness_key")
        if given is not None and given.lower().removeprefix("0x") != key.hex():
            raise SchemaValidationError(
                ATTESTATION_REQUEST_SCHEMA,
                ["$.compliance.uniqueness_key: differs from the key derived by $.policy.unique_policy"],
            )
        compliance["uniqueness_key"] = "0x" + key.hex()
    return compliance or None


def load_attestation_request(
    path: Union[str, Path],
) -> Tuple[DomainDescriptor, Attestation, Optional[Dict[str, Any]]]:
    return parse_attestation_request(load_json(path))
