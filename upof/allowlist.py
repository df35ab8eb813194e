"""
UPoF Allow-lists

Owner-controlled membership registries consulted by the vault:

    SignerAllowlist       - identities authorized to sign attestations
    ComplianceAllowlist   - authorized KYC providers and sanctions dataset versions

Writes are owner-only, overwrite the previous value and emit a change event.
Reads are public and side-effect free. The vault always queries these live;
membership is never cached into a record.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from upof.errors import NotOwner
from upof.events import (
    EventSink,
    KycProviderSet,
    OwnershipTransferred,
    SanctionsVersionSet,
    SignerSet,
)
from upof.hardening import Validators, normalize_address
from upof.observability import AuditLogger, UpofLayer, get_logger


# =============================================================================
# OWNERSHIP
# =============================================================================

class Ownable:
    """Single-owner access control shared by the registries and the vault."""

    component = "ownable"

    def __init__(self, owner: str, events: Optional[EventSink] = None):
        self._owner = normalize_address(owner, "owner")
        self._events = events or EventSink()
        self._log = get_logger(self.component, self._layer())
        self._audit = AuditLogger(self._log)

    def _layer(self) -> UpofLayer:
        return UpofLayer.ALLOWLIST

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def events(self) -> EventSink:
        return self._events

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    def _require_owner(self, caller: str, action: str) -> str:
        caller = normalize_address(caller, "caller")
        if caller != self._owner:
            self._audit.log(caller, action, self.component, self._owner, "denied")
            self._log.warning(
                f"{action} rejected: caller is not owner",
                error_code=NotOwner.default_reason,
                caller=caller,
            )
            raise NotOwner(message=f"{caller} is not the owner of {self.component}")
        return caller

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """Hand administrative control to ``new_owner``."""
        caller, previous = self._change_owner(caller, new_owner)
        self._announce_owner(caller, previous)

    def _change_owner(self, caller: str, new_owner: str) -> Tuple[str, str]:
        caller = self._require_owner(caller, "transfer_ownership")
        new_owner = normalize_address(new_owner, "new_owner")
        previous, self._owner = self._owner, new_owner
        return caller, previous

    def _announce_owner(self, caller: str, previous: str) -> None:
        self._audit.log(caller, "transfer_ownership", self.component, self._owner, "success",
                        previous_owner=previous)
        self._events.emit(
            self.component,
            OwnershipTransferred(component=self.component, previous_owner=previous, new_owner=self._owner),
        )


# =============================================================================
# SIGNER ALLOW-LIST
# =============================================================================

class SignerAllowlist(Ownable):
    """Addresses authorized to sign attestations."""

    component = "signers"

    def __init__(self, owner: str, events: Optional[EventSink] = None):
        super().__init__(owner, events)
        self._signers: Set[str] = set()
        self._lock = threading.RLock()

    def set_signer(self, caller: str, signer: str, allowed: bool) -> None:
        caller = self._require_owner(caller, "set_signer")
        signer = normalize_address(signer, "signer")
        with self._lock:
            if allowed:
                self._signers.add(signer)
            else:
                self._signers.discard(signer)
        self._audit.log(caller, "set_signer", "signer", signer, "success", allowed=bool(allowed))
        self._events.emit(self.component, SignerSet(signer=signer, allowed=bool(allowed)))

    def is_authorized(self, signer: Optional[str]) -> bool:
        if signer is None:
            return False
        result = Validators.validate_address(signer, "signer")
        if not result.is_valid:
            return False
        with self._lock:
            return result.sanitized_value in self._signers

    def signers(self) -> List[str]:
        with self._lock:
            return sorted(self._signers)


# =============================================================================
# COMPLIANCE ALLOW-LIST
# =============================================================================

@dataclass(frozen=True)
class KycProviderInfo:
    """Display metadata for an authorized KYC provider."""
    provider: str
    name: str = ""
    url: str = ""


class ComplianceAllowlist(Ownable):
    """
    Authorized KYC providers and sanctions dataset versions.

    A sanctions version is the 32-byte hash of a dataset label such as
    ``"OFAC:2025-09-04"`` (see ``upof.signature.sanctions_label_hash``).
    """

    component = "compliance"

    def __init__(self, owner: str, events: Optional[EventSink] = None):
        super().__init__(owner, events)
        self._providers: Dict[str, KycProviderInfo] = {}
        self._sanctions_versions: Set[bytes] = set()
        self._lock = threading.RLock()

    def set_kyc_provider(
        self,
        caller: str,
        provider: str,
        allowed: bool,
        name: str = "",
        url: str = "",
    ) -> None:
        caller = self._require_owner(caller, "set_kyc_provider")
        provider = normalize_address(provider, "provider")
        with self._lock:
            if allowed:
                self._providers[provider] = KycProviderInfo(provider=provider, name=name, url=url)
            else:
                self._providers.pop(provider, None)
        self._audit.log(caller, "set_kyc_provider", "kyc_provider", provider, "success",
                        allowed=bool(allowed), name=name)
        self._events.emit(
            self.component,
            KycProviderSet(provider=provider, allowed=bool(allowed), name=name, url=url),
        )

    def set_sanctions_version(self, caller: str, version: bytes, allowed: bool) -> None:
        caller = self._require_owner(caller, "set_sanctions_version")
        version = Validators.validate_word(version, "version").unwrap()
        with self._lock:
            if allowed:
                self._sanctions_versions.add(version)
            else:
                self._sanctions_versions.discard(version)
        self._audit.log(caller, "set_sanctions_version", "sanctions_version", "0x" + version.hex(),
                        "success", allowed=bool(allowed))
        self._events.emit(self.component, SanctionsVersionSet(version=version, allowed=bool(allowed)))

    def is_authorized_provider(self, provider: Optional[str]) -> bool:
        if provider is None:
            return False
        result = Validators.validate_address(provider, "provider")
        if not result.is_valid:
            return False
        with self._lock:
            return result.sanitized_value in self._providers

    def is_authorized_sanctions_version(self, version: Optional[bytes]) -> bool:
        if version is None:
            return False
        result = Validators.validate_word(version, "version")
        if not result.is_valid:
            return False
        with self._lock:
            return result.sanitized_value in self._sanctions_versions

    def kyc_provider_info(self, provider: str) -> Optional[KycProviderInfo]:
        result = Validators.validate_address(provider, "provider")
        if not result.is_valid:
            return None
        with self._lock:
            return self._providers.get(result.sanitized_value)
