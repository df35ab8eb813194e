"""Display metadata for proof-of-funds records.

Renders ERC-721 style JSON documents (name, description, attributes,
properties) suitable for wallets and explorers, plus a self-contained
``data:`` URI form.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from upof.canonical import jcs_canonicalize, to_json_types


def _iso(ts: Optional[int]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class MetadataRenderer:
    """Renders a record snapshot for display."""

    name_prefix = "Proof of Funds"

    def status_for(self, record: Any, now: int) -> str:
        """Status from the record alone, when no live verify reason is known."""
        if record.revoked:
            return "REVOKED"
        if record.expiry is not None and now > record.expiry:
            return "EXPIRED"
        return "ACTIVE"

    def render(
        self,
        record: Any,
        escrow_balance: int,
        now: int,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Render ``record``.

        ``status`` is the live ``verify`` reason; ``OK`` is displayed as
        ``ACTIVE``.
        """
        if status is None:
            status = self.status_for(record, now)
        elif status == "OK":
            status = "ACTIVE"

        mode = record.mode.value
        attributes: List[Dict[str, Any]] = [
            {"trait_type": "Mode", "value": mode},
            {"trait_type": "Asset", "value": record.asset},
            {"trait_type": "Amount", "value": str(record.amount)},
            {"trait_type": "Status", "value": status},
            {"trait_type": "Issued At", "display_type": "date", "value": record.issued_at},
        ]
        if record.expiry is not None:
            attributes.append({"trait_type": "Expiry", "display_type": "date", "value": record.expiry})
        if record.signer is not None:
            attributes.append({"trait_type": "Attester", "value": record.signer})
        if mode == "ESCROW":
            attributes.append({"trait_type": "Escrow Balance", "value": str(escrow_balance)})

        properties: Dict[str, Any] = {
            "record_id": record.record_id,
            "holder": record.holder,
            "revoked": record.revoked,
            "issued_at": _iso(record.issued_at),
            "expires_at": _iso(record.expiry),
        }
        if record.compliance is not None:
            properties["compliance"] = to_json_types(record.compliance.to_dict())

        return {
            "name": f"{self.name_prefix} #{record.record_id}",
            "description": (
                f"{mode.title()} proof of funds for {record.amount} units of {record.asset} "
                f"held by {record.holder}."
            ),
            "attributes": attributes,
            "properties": properties,
        }

    def to_data_uri(
        self,
        record: Any,
        escrow_balance: int,
        now: int,
        status: Optional[str] = None,
    ) -> str:
        document = jcs_canonicalize(self.render(record, escrow_balance, now, status=status))
        return "data:application/json;base64," + base64.b64encode(document).decode("ascii")
