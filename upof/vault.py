"""
UPoF Proof-of-Funds Vault

The issuance and verification state machine. A holder obtains a portable
proof-of-funds record either by locking an asset under custody (escrow
mode) or by presenting an attestation signed by an allow-listed signer
(attested mode). Any third party asks ``verify`` whether a record is
currently valid for a required asset and minimum amount.

Mint Flow:

    caller ─▶ amount check ─▶ ComplianceAllowlist ─▶ UniquenessGuard.reserve
                                                          │
                  ┌───────────────────────────────────────┴──────────────┐
                  ▼ escrow                                               ▼ attested
          custody.transfer_in                           nonce read-and-increment
                  │                                       SignatureVerifier.recover
                  │                                       SignerAllowlist
                  └──────────────────▶ ledger write ◀────────────────────┘
                                           │
                                           ▼
                                  Minted, ComplianceAttached

Verify Flow (first failing check wins):

    TOKEN_NOT_FOUND ─▶ REVOKED ─▶ ASSET_MISMATCH ─▶ EXPIRED
        ─▶ INSUFFICIENT_ESCROW | ATTESTER_NOT_ALLOWED ─▶ INSUFFICIENT_ATTESTED ─▶ OK

Concurrency Model:

    Every mutation runs under one re-entrant lock and applies fully or not at
    all. Entry points additionally set an explicit entered flag, so a custody
    hook that calls back into the vault on the same thread fails with
    ReentrantCall instead of observing half-applied state. Events are
    published after the mutation commits. The attested nonce increment always
    precedes signature evaluation and is never rolled back.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import dataclasses
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Union

from upof.allowlist import ComplianceAllowlist, Ownable, SignerAllowlist
from upof.custody import CustodyError, CustodyProvider
from upof.errors import (
    CallerMismatch,
    ComplianceRejected,
    CustodyTransferFailed,
    InvalidAmount,
    InvalidSigner,
    NotHolder,
    RecordNotFound,
    ReentrantCall,
    TransferRejected,
    UniquenessConflict,
    VaultError,
)
from upof.events import (
    Approval,
    Burned,
    ComplianceAttached,
    Event,
    EventBus,
    EventSink,
    Minted,
    Revoked,
    SoulboundSet,
    Transferred,
)
from upof.hardening import (
    ZERO_ADDRESS,
    ZERO_WORD,
    AtomicCounter,
    CryptoUtils,
    ValidationError,
    Validators,
    normalize_address,
    normalize_optional_address,
)
from upof.observability import UpofLayer
from upof.signature import Signature, SignatureVerifier
from upof.typed_data import Attestation, DomainDescriptor, attestation_digest
from upof.uniqueness import UniquenessGuard


# =============================================================================
# RECORD MODEL
# =============================================================================

class RecordMode(Enum):
    """How a record's funds are evidenced."""
    ESCROW = "ESCROW"
    ATTESTED = "ATTESTED"


class VerifyReason:
    """Reason codes returned by ``verify``."""
    OK = "OK"
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    REVOKED = "REVOKED"
    ASSET_MISMATCH = "ASSET_MISMATCH"
    EXPIRED = "EXPIRED"
    INSUFFICIENT_ESCROW = "INSUFFICIENT_ESCROW"
    ATTESTER_NOT_ALLOWED = "ATTESTER_NOT_ALLOWED"
    INSUFFICIENT_ATTESTED = "INSUFFICIENT_ATTESTED"


class Verification(NamedTuple):
    """Outcome of ``verify``; compares equal to a ``(valid, reason)`` tuple."""
    valid: bool
    reason: str


def _optional_word(value: Any, field_name: str) -> Optional[bytes]:
    if value is None:
        return None
    return Validators.validate_word(value, field_name).unwrap()


def _wire_value(value: Any) -> Any:
    """Map the wire sentinels for "absent" to None."""
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.lower() == ZERO_ADDRESS:
        return None
    if isinstance(value, (str, bytes, bytearray)):
        word = Validators.validate_word(value)
        if word.is_valid and word.sanitized_value == ZERO_WORD:
            return None
    return value


# Names used by the attestation service's compliance output
WIRE_ALIASES = {
    "kycProvider": "kyc_provider",
    "kycRef": "kyc_reference",
    "sanctionsVersion": "sanctions_version",
    "compliancePackCID": "compliance_pack_reference",
    "licenseHash": "license_hash",
    "uniqueKey": "uniqueness_key",
}


@dataclass(frozen=True)
class ComplianceAttachment:
    """
    Compliance references supplied with a mint, stored uninterpreted.

    Every field is optional. ``kyc_provider`` and ``sanctions_version`` are
    gated against the ComplianceAllowlist when present; ``uniqueness_key``
    is reserved for the lifetime of the record.
    """
    kyc_provider: Optional[str] = None
    kyc_reference: Optional[bytes] = None
    sanctions_version: Optional[bytes] = None
    compliance_pack_reference: Optional[str] = None
    license_hash: Optional[bytes] = None
    uniqueness_key: Optional[bytes] = None

    def __post_init__(self):
        object.__setattr__(self, "kyc_provider",
                           normalize_optional_address(self.kyc_provider, "kyc_provider"))
        for name in ("kyc_reference", "sanctions_version", "license_hash", "uniqueness_key"):
            object.__setattr__(self, name, _optional_word(getattr(self, name), name))
        if self.uniqueness_key == ZERO_WORD:
            raise ValidationError(
                "uniqueness_key", "All-zero key is not a key; omit it instead", self.uniqueness_key
            )

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> Optional["ComplianceAttachment"]:
        """
        Build from a sentinel-encoded mapping where the zero address, the
        all-zero word and the empty string mean "absent".

        Keys are the field names or the attestation service's camelCase
        names (``kycRef``, ``uniqueKey``, ...). Any other key raises
        ``ValidationError``.
        """
        if not data:
            return None

        values: Dict[str, Any] = {}
        for key, value in data.items():
            name = WIRE_ALIASES.get(key, key)
            if name not in _ATTACHMENT_FIELDS:
                raise ValidationError("attachment", f"Unknown compliance field {key!r}", key)
            if name in values:
                raise ValidationError(name, f"Supplied twice (as {key!r})", key)
            values[name] = _wire_value(value)

        attachment = cls(**values)
        return None if attachment.is_empty else attachment

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in dataclasses.fields(self))

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


_ATTACHMENT_FIELDS = frozenset(f.name for f in dataclasses.fields(ComplianceAttachment))


@dataclass
class Record:
    """A proof-of-funds record."""
    record_id: int
    mode: RecordMode
    holder: str
    asset: str
    amount: int
    issued_at: int
    expiry: Optional[int] = None
    signer: Optional[str] = None
    revoked: bool = False
    compliance: Optional[ComplianceAttachment] = None

    @property
    def uniqueness_key(self) -> Optional[bytes]:
        return self.compliance.uniqueness_key if self.compliance else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "mode": self.mode.value,
            "holder": self.holder,
            "asset": self.asset,
            "amount": self.amount,
            "issued_at": self.issued_at,
            "expiry": self.expiry,
            "signer": self.signer,
            "revoked": self.revoked,
            "compliance": self.compliance.to_dict() if self.compliance else None,
        }


AttachmentInput = Union[ComplianceAttachment, Dict[str, Any], None]
SignatureInput = Union[Signature, bytes, str, Dict[str, Any]]


def _system_clock() -> int:
    return int(time.time())


# =============================================================================
# VAULT
# =============================================================================

class ProofOfFundsVault(Ownable):
    """
    Record ledger, escrow balances and per-account nonces.

    Every entry point takes the acting identity as ``caller``. Mutations
    raise a ``VaultError`` subclass and leave no partial state behind.
    ``verify`` never raises for a missing or invalid record.
    """

    component = "vault"

    def __init__(
        self,
        owner: str,
        signers: SignerAllowlist,
        compliance: ComplianceAllowlist,
        custody: CustodyProvider,
        domain: Optional[DomainDescriptor] = None,
        clock: Optional[Callable[[], int]] = None,
        event_bus: Optional[EventBus] = None,
    ):
        super().__init__(owner, EventSink(bus=event_bus))
        self._signers = signers
        self._compliance = compliance
        self._custody = custody
        self._domain = domain or DomainDescriptor.from_config(CryptoUtils.random_address())
        self._clock = clock or _system_clock

        from upof.config import get_config
        self._soulbound = bool(get_config().vault.soulbound_default.get())

        self._records: Dict[int, Record] = {}
        self._escrow: Dict[int, int] = {}
        self._nonces: Dict[str, int] = {}
        self._approvals: Dict[int, str] = {}
        self._next_id = AtomicCounter(1)
        self._uniqueness = UniquenessGuard()

        self._lock = threading.RLock()
        self._entered = False

        self._log.info(
            "Vault initialized",
            owner=self.owner,
            address=self.address,
            chain_id=self._domain.chain_id,
        )

    def _layer(self) -> UpofLayer:
        return UpofLayer.VAULT

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def domain(self) -> DomainDescriptor:
        return self._domain

    @property
    def address(self) -> str:
        """Vault identity bound into every attestation digest."""
        return self._domain.verifying_contract

    @property
    def signers(self) -> SignerAllowlist:
        return self._signers

    @property
    def compliance(self) -> ComplianceAllowlist:
        return self._compliance

    @property
    def soulbound(self) -> bool:
        return self._soulbound

    @property
    def total_minted(self) -> int:
        return self._next_id.get() - 1

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    @contextmanager
    def _entry(self, operation: str) -> Iterator[None]:
        """Non-reentrancy flag; callers already hold ``self._lock``."""
        if self._entered:
            raise self._reject(
                ReentrantCall(message=f"{operation} called during a custody transfer"), operation
            )
        self._entered = True
        try:
            yield
        finally:
            self._entered = False

    def _reject(self, error: VaultError, operation: str, **context: Any) -> VaultError:
        self._log.warning(
            f"{operation} rejected: {error.reason}",
            error_code=error.reason,
            error_kind=error.kind,
            **context,
        )
        return error

    def _publish(self, record_id: Optional[int], events: List[Event]) -> None:
        stream = f"record-{record_id}" if record_id is not None else self.component
        self._events.emit(stream, *events)

    def _require_record(self, record_id: int, operation: str) -> Record:
        record = self._records.get(record_id)
        if record is None:
            raise self._reject(
                RecordNotFound(message=f"record {record_id} does not exist"),
                operation,
                record_id=record_id,
            )
        return record

    def _check_amount(self, amount: Any, operation: str) -> int:
        result = Validators.validate_amount(amount, min_value=1)
        if not result.is_valid:
            raise self._reject(InvalidAmount(message=result.errors[0].message), operation)
        return result.sanitized_value

    @staticmethod
    def _check_expiry(expiry: Optional[int]) -> Optional[int]:
        # 0 is the wire encoding of "no expiry"
        expiry = Validators.validate_timestamp(expiry, "expiry").unwrap()
        return expiry or None

    @staticmethod
    def _coerce_attachment(attachment: AttachmentInput) -> Optional[ComplianceAttachment]:
        if attachment is None:
            return None
        if isinstance(attachment, dict):
            return ComplianceAttachment.from_wire(attachment)
        if attachment.is_empty:
            return None
        return attachment

    def _check_compliance(self, attachment: Optional[ComplianceAttachment], operation: str) -> None:
        if attachment is None:
            return
        if (attachment.kyc_provider is not None
                and not self._compliance.is_authorized_provider(attachment.kyc_provider)):
            raise self._reject(
                ComplianceRejected("KYC_PROVIDER_NOT_ALLOWED"),
                operation,
                kyc_provider=attachment.kyc_provider,
            )
        if (attachment.sanctions_version is not None
                and not self._compliance.is_authorized_sanctions_version(attachment.sanctions_version)):
            raise self._reject(
                ComplianceRejected("SANCTIONS_VERSION_NOT_ALLOWED"),
                operation,
                sanctions_version=attachment.sanctions_version,
            )

    def _reserve_key(self, key: Optional[bytes], operation: str, record_id: int = 0) -> None:
        try:
            self._uniqueness.reserve(key, record_id)
        except UniquenessConflict as e:
            raise self._reject(e, operation, uniqueness_key=key) from None

    def _mint_events(self, record: Record) -> List[Event]:
        events: List[Event] = [
            Minted(
                record_id=record.record_id,
                holder=record.holder,
                mode=record.mode.value,
                asset=record.asset,
                amount=record.amount,
                expiry=record.expiry,
                signer=record.signer,
            )
        ]
        if record.compliance is not None:
            events.append(ComplianceAttached(record_id=record.record_id, **record.compliance.to_dict()))
        return events

    def _write_record(self, record: Record) -> None:
        self._records[record.record_id] = record
        if record.mode is RecordMode.ESCROW:
            self._escrow[record.record_id] = record.amount
        self._uniqueness.bind(record.uniqueness_key, record.record_id)

    # -------------------------------------------------------------------------
    # Mint
    # -------------------------------------------------------------------------

    def mint_escrow(
        self,
        caller: str,
        asset: str,
        amount: int,
        expiry: Optional[int] = None,
        attachment: AttachmentInput = None,
    ) -> int:
        """
        Lock ``amount`` of ``asset`` from ``caller`` into custody and mint an
        ESCROW record held by ``caller``.

        Raises:
            InvalidAmount, ComplianceRejected, UniquenessConflict,
            CustodyTransferFailed, ReentrantCall
        """
        operation = "mint_escrow"
        caller = normalize_address(caller, "caller")
        asset = normalize_address(asset, "asset")
        expiry = self._check_expiry(expiry)
        attachment = self._coerce_attachment(attachment)

        with self._lock:
            with self._entry(operation):
                amount = self._check_amount(amount, operation)
                self._check_compliance(attachment, operation)
                key = attachment.uniqueness_key if attachment else None
                self._reserve_key(key, operation)

                try:
                    self._custody.transfer_in(caller, asset, amount)
                except CustodyError as e:
                    self._uniqueness.release(key)
                    raise self._reject(
                        CustodyTransferFailed("TRANSFER_IN_FAILED", str(e)),
                        operation,
                        caller=caller,
                        asset=asset,
                        amount=amount,
                    ) from e
                except BaseException:
                    self._uniqueness.release(key)
                    raise

                record = Record(
                    record_id=self._next_id.get_and_increment(),
                    mode=RecordMode.ESCROW,
                    holder=caller,
                    asset=asset,
                    amount=amount,
                    issued_at=self._now(),
                    expiry=expiry,
                    compliance=attachment,
                )
                self._write_record(record)

            self._log.info(
                "Escrow record minted",
                operation=operation,
                record_id=record.record_id,
                holder=caller,
                asset=asset,
                amount=amount,
            )
            self._publish(record.record_id, self._mint_events(record))
        return record.record_id

    def mint_attested(
        self,
        caller: str,
        account: str,
        asset: str,
        amount: int,
        expiry: Optional[int],
        signature: SignatureInput,
        attachment: AttachmentInput = None,
    ) -> int:
        """
        Mint an ATTESTED record for ``account`` from a signed attestation.

        The signed nonce is the account's nonce before this call. It is
        consumed once signature evaluation is reached, whether or not the
        signature turns out to be valid.

        Raises:
            CallerMismatch, InvalidAmount, ComplianceRejected,
            UniquenessConflict, InvalidSigner, ReentrantCall
        """
        operation = "mint_attested"
        caller = normalize_address(caller, "caller")
        account = normalize_address(account, "account")
        asset = normalize_address(asset, "asset")
        expiry = self._check_expiry(expiry)
        attachment = self._coerce_attachment(attachment)

        with self._lock:
            with self._entry(operation):
                if caller != account:
                    raise self._reject(
                        CallerMismatch(message="attested mints must be submitted by the account"),
                        operation,
                        caller=caller,
                        account=account,
                    )
                amount = self._check_amount(amount, operation)
                self._check_compliance(attachment, operation)
                key = attachment.uniqueness_key if attachment else None
                self._reserve_key(key, operation)

                nonce = self._nonces.get(account, 0)
                self._nonces[account] = nonce + 1

                try:
                    parsed: Optional[Signature] = Signature.coerce(signature)
                except ValidationError:
                    parsed = None

                if parsed is None or not parsed.is_well_formed:
                    self._uniqueness.release(key)
                    raise self._reject(
                        InvalidSigner("MALFORMED_SIGNATURE"),
                        operation,
                        account=account,
                        nonce=nonce,
                    )

                attestation = Attestation(
                    account=account, asset=asset, amount=amount, expiry=expiry, nonce=nonce
                )
                signer = SignatureVerifier.recover(self._domain, attestation, parsed)
                if signer is None or not self._signers.is_authorized(signer):
                    self._uniqueness.release(key)
                    raise self._reject(
                        InvalidSigner("INVALID_ATTESTER"),
                        operation,
                        account=account,
                        nonce=nonce,
                        signer=signer,
                    )

                record = Record(
                    record_id=self._next_id.get_and_increment(),
                    mode=RecordMode.ATTESTED,
                    holder=account,
                    asset=asset,
                    amount=amount,
                    issued_at=self._now(),
                    expiry=expiry,
                    signer=signer,
                    compliance=attachment,
                )
                self._write_record(record)

            self._log.info(
                "Attested record minted",
                operation=operation,
                record_id=record.record_id,
                holder=account,
                asset=asset,
                amount=amount,
                signer=signer,
                nonce=nonce,
            )
            self._publish(record.record_id, self._mint_events(record))
        return record.record_id

    # -------------------------------------------------------------------------
    # Burn
    # -------------------------------------------------------------------------

    def burn(self, caller: str, record_id: int) -> None:
        """
        Destroy a record and release any escrow to the holder.

        Ledger deletion and escrow zeroing happen before the custody
        transfer. If the transfer fails, all of it is restored.
        """
        operation = "burn"
        caller = normalize_address(caller, "caller")

        with self._lock:
            with self._entry(operation):
                record = self._require_record(record_id, operation)
                if caller != record.holder:
                    raise self._reject(NotHolder(), operation, record_id=record_id, caller=caller)

                escrowed = self._escrow.pop(record_id, 0)
                del self._records[record_id]
                approved = self._approvals.pop(record_id, None)
                key = record.uniqueness_key
                key_released = False
                if key is not None and not record.revoked:
                    self._uniqueness.release(key)
                    key_released = True

                def restore() -> None:
                    self._records[record_id] = record
                    if record.mode is RecordMode.ESCROW:
                        self._escrow[record_id] = escrowed
                    if approved is not None:
                        self._approvals[record_id] = approved
                    if key_released:
                        self._uniqueness.reserve(key, record_id)

                if escrowed > 0:
                    try:
                        self._custody.transfer_out(caller, record.asset, escrowed)
                    except CustodyError as e:
                        restore()
                        raise self._reject(
                            CustodyTransferFailed("TRANSFER_OUT_FAILED", str(e)),
                            operation,
                            record_id=record_id,
                            amount=escrowed,
                        ) from e
                    except BaseException:
                        restore()
                        raise

            self._log.info(
                "Record burned",
                operation=operation,
                record_id=record_id,
                holder=caller,
                released_amount=escrowed,
            )
            self._publish(record_id, [Burned(record_id=record_id, holder=caller, released_amount=escrowed)])

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    def set_revoked(self, caller: str, record_id: int, value: bool) -> None:
        """
        Owner-only. Revoking releases the record's uniqueness key at once;
        the revoked record stays enumerable but never verifies. Un-revoking
        takes the key back and fails if another record now holds it.
        """
        operation = "set_revoked"
        with self._lock:
            with self._entry(operation):
                caller = self._require_owner(caller, operation)
                record = self._require_record(record_id, operation)
                value = bool(value)
                if record.revoked == value:
                    return

                key = record.uniqueness_key
                if value:
                    if self._uniqueness.holder_of(key) == record_id:
                        self._uniqueness.release(key)
                else:
                    self._reserve_key(key, operation, record_id)
                record.revoked = value

            self._audit.log(caller, operation, "record", str(record_id), "success", revoked=value)
            self._publish(record_id, [Revoked(record_id=record_id, revoked=value)])

    def set_soulbound(self, caller: str, value: bool) -> None:
        """Owner-only. Toggle the global non-transferable flag."""
        operation = "set_soulbound"
        with self._lock:
            with self._entry(operation):
                caller = self._require_owner(caller, operation)
                self._soulbound = bool(value)

            self._audit.log(caller, operation, "vault", self.address, "success", soulbound=self._soulbound)
            self._publish(None, [SoulboundSet(soulbound=self._soulbound)])

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """Owner-only. Hand administrative control of the vault to ``new_owner``."""
        with self._lock:
            with self._entry("transfer_ownership"):
                caller, previous = self._change_owner(caller, new_owner)
            self._announce_owner(caller, previous)

    # -------------------------------------------------------------------------
    # Holdership
    # -------------------------------------------------------------------------

    def approve(self, caller: str, record_id: int, operator: Optional[str]) -> None:
        """Holder grants ``operator`` the right to transfer the record (None clears)."""
        operation = "approve"
        caller = normalize_address(caller, "caller")
        operator = normalize_optional_address(operator, "operator")
        with self._lock:
            with self._entry(operation):
                record = self._require_record(record_id, operation)
                if caller != record.holder:
                    raise self._reject(NotHolder(), operation, record_id=record_id, caller=caller)
                if operator is None:
                    self._approvals.pop(record_id, None)
                else:
                    self._approvals[record_id] = operator

            self._publish(record_id, [Approval(record_id=record_id, holder=caller, operator=operator)])

    def get_approved(self, record_id: int) -> Optional[str]:
        with self._lock:
            self._require_record(record_id, "get_approved")
            return self._approvals.get(record_id)

    def transfer(self, caller: str, record_id: int, to: str) -> None:
        """Move holdership to ``to``. Rejected while soulbound."""
        operation = "transfer"
        caller = normalize_address(caller, "caller")
        to = normalize_address(to, "to")
        if to == ZERO_ADDRESS:
            raise ValidationError("to", "Cannot transfer to the zero address; burn instead", to)

        with self._lock:
            with self._entry(operation):
                record = self._require_record(record_id, operation)
                if self._soulbound:
                    raise self._reject(TransferRejected(), operation, record_id=record_id)
                if caller != record.holder and self._approvals.get(record_id) != caller:
                    raise self._reject(NotHolder(), operation, record_id=record_id, caller=caller)

                previous = record.holder
                record.holder = to
                self._approvals.pop(record_id, None)

            self._log.info(
                "Record transferred",
                operation=operation,
                record_id=record_id,
                from_holder=previous,
                to_holder=to,
            )
            self._publish(record_id, [Transferred(record_id=record_id, from_holder=previous, to_holder=to)])

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def owner_of(self, record_id: int) -> str:
        with self._lock:
            return self._require_record(record_id, "owner_of").holder

    def get_record(self, record_id: int) -> Record:
        """A copy of the record; mutating it does not affect the vault."""
        with self._lock:
            return dataclasses.replace(self._require_record(record_id, "get_record"))

    def exists(self, record_id: int) -> bool:
        with self._lock:
            return record_id in self._records

    def balance_of(self, account: str) -> int:
        return len(self.records_of(account))

    def records_of(self, account: str) -> List[int]:
        account = normalize_address(account, "account")
        with self._lock:
            return sorted(rid for rid, r in self._records.items() if r.holder == account)

    def escrow_of(self, record_id: int) -> int:
        with self._lock:
            return self._escrow.get(record_id, 0)

    def nonce_of(self, account: str) -> int:
        account = normalize_address(account, "account")
        with self._lock:
            return self._nonces.get(account, 0)

    def is_key_active(self, key: Optional[bytes]) -> bool:
        if key is None:
            return False
        return self._uniqueness.is_active(Validators.validate_word(key, "key").unwrap())

    def digest_for(
        self,
        account: str,
        asset: str,
        amount: int,
        expiry: Optional[int],
        nonce: Optional[int] = None,
    ) -> bytes:
        """The digest an attester must sign for the account's next attested mint."""
        if nonce is None:
            nonce = self.nonce_of(account)
        attestation = Attestation(
            account=account, asset=asset, amount=amount, expiry=expiry or None, nonce=nonce
        )
        return attestation_digest(self._domain, attestation)

    # -------------------------------------------------------------------------
    # Verify
    # -------------------------------------------------------------------------

    def verify(
        self,
        record_id: int,
        required_asset: Optional[str] = None,
        min_amount: Optional[int] = 0,
    ) -> Verification:
        """
        Is the record currently valid for ``required_asset`` and ``min_amount``?

        Read-only. Signer membership is queried live, so removing a signer
        from the allow-list invalidates every record it attested. ``None``
        means no minimum; a malformed minimum can never be met and yields the
        record's insufficient-funds reason.
        """
        threshold = Validators.validate_amount(0 if min_amount is None else min_amount, "min_amount")
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return Verification(False, VerifyReason.TOKEN_NOT_FOUND)
            if record.revoked:
                return Verification(False, VerifyReason.REVOKED)
            # The zero address means "any asset"
            if required_asset is not None and str(required_asset).lower() != ZERO_ADDRESS:
                asset = Validators.validate_address(required_asset, "required_asset")
                if not asset.is_valid or asset.sanitized_value != record.asset:
                    return Verification(False, VerifyReason.ASSET_MISMATCH)
            if record.expiry is not None and self._now() > record.expiry:
                return Verification(False, VerifyReason.EXPIRED)
            if record.mode is RecordMode.ESCROW:
                if not threshold.is_valid or self._escrow.get(record_id, 0) < threshold.sanitized_value:
                    return Verification(False, VerifyReason.INSUFFICIENT_ESCROW)
            else:
                if not self._signers.is_authorized(record.signer):
                    return Verification(False, VerifyReason.ATTESTER_NOT_ALLOWED)
                if not threshold.is_valid or record.amount < threshold.sanitized_value:
                    return Verification(False, VerifyReason.INSUFFICIENT_ATTESTED)
            return Verification(True, VerifyReason.OK)

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """The persisted state shape as plain data."""
        with self._lock:
            return {
                "owner": self.owner,
                "domain": self._domain.to_dict(),
                "soulbound": self._soulbound,
                "next_id": self._next_id.get(),
                "records": {rid: r.to_dict() for rid, r in sorted(self._records.items())},
                "escrow": dict(sorted(self._escrow.items())),
                "nonces": dict(sorted(self._nonces.items())),
                "approvals": dict(sorted(self._approvals.items())),
                "active_keys": {
                    "0x" + key.hex(): rid for key, rid in self._uniqueness.active_keys().items()
                },
            }

    def render_metadata(self, record_id: int) -> Dict[str, Any]:
        """Display-ready metadata for a record, with its live verify status."""
        from upof.metadata import MetadataRenderer

        with self._lock:
            record = self.get_record(record_id)
            escrow = self.escrow_of(record_id)
            status = self.verify(record_id).reason
        return MetadataRenderer().render(record, escrow, self._now(), status=status)

    def token_uri(self, record_id: int) -> str:
        """``render_metadata`` as a base64 JSON data URI."""
        from upof.metadata import MetadataRenderer

        with self._lock:
            record = self.get_record(record_id)
            escrow = self.escrow_of(record_id)
            status = self.verify(record_id).reason
        return MetadataRenderer().to_data_uri(record, escrow, self._now(), status=status)
