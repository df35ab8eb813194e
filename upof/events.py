"""
UPoF Event Infrastructure

Typed events, an in-memory event bus and an append-only event store for the
proof-of-funds vault and its allow-lists.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                          EVENT INFRASTRUCTURE                            │
    │                                                                          │
    │  Event Bus                 Event Store                                   │
    │  ├─ Typed events           ├─ Append-only                                │
    │  ├─ Pub/sub                ├─ One stream per record / registry          │
    │  ├─ Priorities, filters    └─ Replay                                     │
    │                                                                          │
    │  Vault Events              Registry Events                               │
    │  ├─ Minted                 ├─ SignerSet                                  │
    │  ├─ ComplianceAttached     ├─ KycProviderSet                             │
    │  ├─ Burned / Revoked       ├─ SanctionsVersionSet                        │
    │  └─ Transferred / Approval └─ OwnershipTransferred                       │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Design Principles
─────────────────

    Immutable Events: Events are facts about committed mutations. They are
    published only after the mutation that produced them has fully applied.

    Ordering: Events within a stream keep commit order. The global sequence
    number orders events across streams.

Usage
─────

    bus = EventBus()

    @bus.subscribe(Minted)
    def on_mint(event: Minted):
        print(f"record {event.record_id} minted for {event.holder}")

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from upof.canonical import canonical_digest, to_json_types

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all events in the system.

    Each event has a unique ID, timestamp, and optional metadata.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(default_factory=_utc_now)
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON for display/transport (not for digest computation)."""
        return json.dumps(to_json_types(self.to_dict()), sort_keys=True)

    def digest(self) -> str:
        """Deterministic digest of the event payload (excludes id and timestamp)."""
        data = self.to_dict()
        for key in ("event_id", "event_timestamp", "correlation_id", "metadata"):
            data.pop(key, None)
        return canonical_digest(data)


# ════════════════════════════════════════════════════════════════════════════
# VAULT EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Minted(Event):
    """Emitted when a proof-of-funds record is minted."""
    record_id: int = 0
    holder: str = ""
    mode: str = ""
    asset: str = ""
    amount: int = 0
    expiry: Optional[int] = None
    signer: Optional[str] = None


@dataclass
class ComplianceAttached(Event):
    """Emitted alongside Minted when a compliance attachment was supplied."""
    record_id: int = 0
    kyc_provider: Optional[str] = None
    kyc_reference: Optional[bytes] = None
    sanctions_version: Optional[bytes] = None
    compliance_pack_reference: Optional[str] = None
    license_hash: Optional[bytes] = None
    uniqueness_key: Optional[bytes] = None


@dataclass
class Burned(Event):
    """Emitted when a record is burned and any escrow released."""
    record_id: int = 0
    holder: str = ""
    released_amount: int = 0


@dataclass
class Revoked(Event):
    """Emitted when the owner changes a record's revoked flag."""
    record_id: int = 0
    revoked: bool = False


@dataclass
class SoulboundSet(Event):
    """Emitted when the global non-transferable flag changes."""
    soulbound: bool = False


@dataclass
class Transferred(Event):
    """Emitted when a record changes holder."""
    record_id: int = 0
    from_holder: str = ""
    to_holder: str = ""


@dataclass
class Approval(Event):
    """Emitted when a holder approves an operator for a record."""
    record_id: int = 0
    holder: str = ""
    operator: Optional[str] = None


@dataclass
class OwnershipTransferred(Event):
    """Emitted when a vault or registry changes owner."""
    component: str = ""
    previous_owner: str = ""
    new_owner: str = ""


# ════════════════════════════════════════════════════════════════════════════
# REGISTRY EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class SignerSet(Event):
    """Emitted when a signer is added to or removed from the allow-list."""
    signer: str = ""
    allowed: bool = False


@dataclass
class KycProviderSet(Event):
    """Emitted when a KYC provider is allowed or disallowed."""
    provider: str = ""
    allowed: bool = False
    name: str = ""
    url: str = ""


@dataclass
class SanctionsVersionSet(Event):
    """Emitted when a sanctions dataset version is allowed or disallowed."""
    version: bytes = b""
    allowed: bool = False


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass(frozen=True)
class Subscription:
    """A handler bound to the event types (and optional predicate) it receives."""
    handler: EventHandler
    event_types: Tuple[Type[Event], ...]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None

    def accepts(self, event: Event) -> bool:
        if not isinstance(event, self.event_types):
            return False
        return self.filter_func is None or bool(self.filter_func(event))


class EventHandlerError(Exception):
    """A subscriber raised while handling an event."""

    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory pub/sub.

    Subscribers run in descending priority, outside the bus lock. A failing
    subscriber never reaches the publisher because the mutation behind the
    event has already committed; the failure is counted, logged and handed
    to ``on_error``.
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._subscriptions: List[Subscription] = []
        self._counts = {"published_count": 0, "handled_count": 0, "error_count": 0}
        self._on_error = on_error
        self._lock = threading.RLock()

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Register the decorated function. With no types it receives every event.

            @bus.subscribe(Minted, priority=10)
            def on_mint(event): ...
        """
        types = tuple(event_types) or (Event,)

        def register(handler: EventHandler) -> EventHandler:
            subscription = Subscription(handler, types, priority, filter_func)
            with self._lock:
                self._subscriptions.append(subscription)
                # stable: equal priorities keep subscription order
                self._subscriptions.sort(key=lambda s: s.priority, reverse=True)
            return handler

        return register

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            kept = [s for s in self._subscriptions if s.handler != handler]
            removed = len(kept) != len(self._subscriptions)
            self._subscriptions = kept
        return removed

    def publish(self, event: Event) -> None:
        with self._lock:
            self._counts["published_count"] += 1
            targets = [s.handler for s in self._subscriptions if s.accepts(event)]

        for handler in targets:
            self._deliver(handler, event)

    def _deliver(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
        except Exception as e:
            self._bump("error_count")
            error = EventHandlerError(event, handler, e)
            logger.error("%s", error, exc_info=True)
            if self._on_error is not None:
                self._on_error(error)
        else:
            self._bump("handled_count")

    def _bump(self, counter: str) -> None:
        with self._lock:
            self._counts[counter] += 1

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {**self._counts, "handler_count": len(self._subscriptions)}


# ════════════════════════════════════════════════════════════════════════════
# EVENT STORE
# ════════════════════════════════════════════════════════════════════════════


class ConcurrencyError(Exception):
    """An append named a stream version that is no longer current."""

    def __init__(self, stream_id: str, expected: int, actual: int):
        self.stream_id = stream_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Stream {stream_id} is at version {actual}, append expected {expected}")


@dataclass(frozen=True)
class EventRecord:
    """An event as stored: global position plus its version within a stream."""
    sequence_number: int
    event: Event
    stream_id: str
    version: int
    recorded_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        body = {k: getattr(self, k) for k in ("sequence_number", "stream_id", "version", "recorded_at")}
        body["event"] = self.event.to_dict()
        return body


class EventStore:
    """
    Append-only log partitioned into streams.

    The vault writes ``record-<id>`` and ``vault`` streams; the allow-lists
    write ``signers`` and ``compliance``.
    """

    def __init__(self):
        self._log: List[EventRecord] = []
        self._streams: Dict[str, List[EventRecord]] = defaultdict(list)
        self._lock = threading.RLock()

    def append(
        self,
        stream_id: str,
        events: List[Event],
        expected_version: Optional[int] = None,
    ) -> List[EventRecord]:
        """Append atomically; with ``expected_version`` the stream must be at that version."""
        with self._lock:
            stream = self._streams[stream_id]
            if expected_version is not None and expected_version != len(stream):
                raise ConcurrencyError(stream_id, expected_version, len(stream))

            appended = [
                EventRecord(
                    sequence_number=len(self._log) + offset,
                    event=event,
                    stream_id=stream_id,
                    version=len(stream) + offset,
                )
                for offset, event in enumerate(events, start=1)
            ]
            self._log.extend(appended)
            stream.extend(appended)
            return appended

    def read_stream(self, stream_id: str, from_version: int = 0) -> List[Event]:
        with self._lock:
            return [r.event for r in self._streams.get(stream_id, ())][from_version:]

    def read_all(self, from_position: int = 0, max_count: int = 1000) -> List[EventRecord]:
        with self._lock:
            return self._log[from_position:from_position + max_count]

    def events_of_type(self, event_type: Type[Event]) -> List[Event]:
        with self._lock:
            return [r.event for r in self._log if isinstance(r.event, event_type)]

    def get_stream_version(self, stream_id: str) -> int:
        with self._lock:
            return len(self._streams.get(stream_id, ()))

    @property
    def total_events(self) -> int:
        with self._lock:
            return len(self._log)


class EventSink:
    """Commits events to a store and then publishes them on a bus."""

    def __init__(self, bus: Optional[EventBus] = None, store: Optional[EventStore] = None):
        self.bus = bus or EventBus()
        self.store = store or EventStore()

    def emit(self, stream_id: str, *events: Event) -> None:
        from upof.observability import get_correlation_id

        cid = get_correlation_id()
        for event in events:
            if event.correlation_id is None:
                event.correlation_id = cid
        self.store.append(stream_id, list(events))
        for event in events:
            self.bus.publish(event)
