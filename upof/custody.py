"""
UPoF Custody Primitive

The vault's only external dependency for escrow mode: an all-or-nothing
transfer of a fungible asset into or out of custody.

    ┌──────────┐  transfer_in(from, asset, amount)   ┌─────────────────┐
    │  Vault   │ ──────────────────────────────────▶ │ CustodyProvider │
    │          │ ◀────────────────────────────────── │                 │
    └──────────┘  transfer_out(to, asset, amount)    └─────────────────┘

A transfer either completes fully or raises CustodyError and leaves every
balance untouched.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Dict, Optional, Set, Tuple

from upof.hardening import Validators, normalize_address
from upof.observability import UpofLayer, get_logger


class CustodyError(Exception):
    """A custody transfer could not be completed."""
    pass


# Called during a transfer with (direction, account, amount); "in" or "out".
TransferHook = Callable[[str, str, int], None]


# =============================================================================
# CUSTODY INTERFACE
# =============================================================================

class CustodyProvider(ABC):
    """Abstract custody primitive consumed by the vault."""

    @abstractmethod
    def transfer_in(self, from_account: str, asset: str, amount: int) -> None:
        """Pull ``amount`` of ``asset`` from ``from_account`` into custody."""
        pass

    @abstractmethod
    def transfer_out(self, to_account: str, asset: str, amount: int) -> None:
        """Release ``amount`` of ``asset`` from custody to ``to_account``."""
        pass


# =============================================================================
# IN-MEMORY CUSTODY
# =============================================================================

class InMemoryCustody(CustodyProvider):
    """
    In-memory ledger of account balances, vault allowances and custody.

    Accounts must ``approve`` the vault before ``transfer_in`` can pull their
    funds. A per-asset hook runs in the middle of a transfer, which lets tests
    model an asset whose transfer calls back into the vault.
    """

    def __init__(self):
        self._balances: Dict[Tuple[str, str], int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self._custody: Dict[str, int] = defaultdict(int)
        self._hooks: Dict[str, TransferHook] = {}
        self._frozen: Set[str] = set()
        self._lock = threading.RLock()
        self._log = get_logger("custody", UpofLayer.CUSTODY)

    # -- setup ---------------------------------------------------------------

    def credit(self, account: str, asset: str, amount: int) -> None:
        """Mint ``amount`` of ``asset`` to ``account`` outside custody."""
        key = (normalize_address(account, "account"), normalize_address(asset, "asset"))
        amount = Validators.validate_amount(amount).unwrap()
        with self._lock:
            self._balances[key] += amount

    def approve(self, account: str, asset: str, amount: int) -> None:
        """Set the allowance ``account`` grants the vault for ``asset``."""
        key = (normalize_address(account, "account"), normalize_address(asset, "asset"))
        amount = Validators.validate_amount(amount).unwrap()
        with self._lock:
            self._allowances[key] = amount

    def set_hook(self, asset: str, hook: Optional[TransferHook]) -> None:
        asset = normalize_address(asset, "asset")
        with self._lock:
            if hook is None:
                self._hooks.pop(asset, None)
            else:
                self._hooks[asset] = hook

    def freeze(self, asset: str, frozen: bool = True) -> None:
        """Make every transfer of ``asset`` fail (paused token)."""
        asset = normalize_address(asset, "asset")
        with self._lock:
            if frozen:
                self._frozen.add(asset)
            else:
                self._frozen.discard(asset)

    # -- reads ---------------------------------------------------------------

    def balance_of(self, account: str, asset: str) -> int:
        key = (normalize_address(account, "account"), normalize_address(asset, "asset"))
        with self._lock:
            return self._balances.get(key, 0)

    def allowance(self, account: str, asset: str) -> int:
        key = (normalize_address(account, "account"), normalize_address(asset, "asset"))
        with self._lock:
            return self._allowances.get(key, 0)

    def custody_balance(self, asset: str) -> int:
        asset = normalize_address(asset, "asset")
        with self._lock:
            return self._custody.get(asset, 0)

    # -- transfers -----------------------------------------------------------

    def _run_hook(self, asset: str, direction: str, account: str, amount: int) -> None:
        hook = self._hooks.get(asset)
        if hook is not None:
            hook(direction, account, amount)

    def transfer_in(self, from_account: str, asset: str, amount: int) -> None:
        key = (normalize_address(from_account, "from_account"), normalize_address(asset, "asset"))
        account, asset = key
        with self._lock:
            if asset in self._frozen:
                raise CustodyError(f"asset {asset} is frozen")
            if self._balances.get(key, 0) < amount:
                raise CustodyError(f"insufficient balance for {account}")
            if self._allowances.get(key, 0) < amount:
                raise CustodyError(f"insufficient allowance from {account}")

            self._run_hook(asset, "in", account, amount)

            self._balances[key] -= amount
            self._allowances[key] -= amount
            self._custody[asset] += amount

        self._log.debug("custody transfer in", account=account, asset=asset, amount=amount)

    def transfer_out(self, to_account: str, asset: str, amount: int) -> None:
        key = (normalize_address(to_account, "to_account"), normalize_address(asset, "asset"))
        account, asset = key
        with self._lock:
            if asset in self._frozen:
                raise CustodyError(f"asset {asset} is frozen")
            if self._custody.get(asset, 0) < amount:
                raise CustodyError(f"custody holds less than {amount} of {asset}")

            self._run_hook(asset, "out", account, amount)

            self._custody[asset] -= amount
            self._balances[key] += amount

        self._log.debug("custody transfer out", account=account, asset=asset, amount=amount)
