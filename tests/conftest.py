import os
import pathlib
import sys
from types import SimpleNamespace

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import upof`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from upof.allowlist import ComplianceAllowlist, SignerAllowlist  # noqa: E402
from upof.config import ConfigManager  # noqa: E402
from upof.custody import InMemoryCustody  # noqa: E402
from upof.events import Event, EventBus  # noqa: E402
from upof.keys import generate_private_key  # noqa: E402
from upof.signature import AttestationSigner, sanctions_label_hash  # noqa: E402
from upof.typed_data import DomainDescriptor  # noqa: E402
from upof.vault import ProofOfFundsVault  # noqa: E402


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless UPOF_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('UPOF_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set UPOF_RUN_SLOW=1 to enable'))


START_TIME = 1_760_000_000

ADDRS = SimpleNamespace(
    owner="0x" + "0a" * 20,
    alice="0x" + "a1" * 20,
    bob="0x" + "b0" * 20,
    carol="0x" + "c0" * 20,
    asset="0x" + "5e" * 20,
    other_asset="0x" + "6f" * 20,
    kyc_provider="0x" + "4b" * 20,
    vault="0x" + "7a" * 20,
)

SANCTIONS_LABEL = "OFAC:2025-09-04"


class FixedClock:
    """Injectable clock returning unix seconds."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    for var in list(os.environ):
        if var.startswith("UPOF_"):
            monkeypatch.delenv(var, raising=False)
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


@pytest.fixture
def addrs():
    return ADDRS


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def attester():
    return AttestationSigner(generate_private_key())


@pytest.fixture
def rogue_attester():
    return AttestationSigner(generate_private_key())


@pytest.fixture
def sanctions_version():
    return sanctions_label_hash(SANCTIONS_LABEL)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def published(event_bus):
    """Every event published on the vault bus, in order."""
    seen = []

    @event_bus.subscribe(Event)
    def _record(event):
        seen.append(event)

    return seen


@pytest.fixture
def signers(attester):
    registry = SignerAllowlist(ADDRS.owner)
    registry.set_signer(ADDRS.owner, attester.address, True)
    return registry


@pytest.fixture
def compliance(sanctions_version):
    registry = ComplianceAllowlist(ADDRS.owner)
    registry.set_kyc_provider(ADDRS.owner, ADDRS.kyc_provider, True, name="DemoKYC", url="https://kyc.example")
    registry.set_sanctions_version(ADDRS.owner, sanctions_version, True)
    return registry


@pytest.fixture
def custody():
    ledger = InMemoryCustody()
    for account in (ADDRS.alice, ADDRS.bob):
        ledger.credit(account, ADDRS.asset, 10_000)
        ledger.approve(account, ADDRS.asset, 10_000)
    return ledger


@pytest.fixture
def domain():
    return DomainDescriptor(
        name="ProofOfFundsVault",
        version="1",
        chain_id=31337,
        verifying_contract=ADDRS.vault,
    )


@pytest.fixture
def vault(signers, compliance, custody, domain, clock, event_bus):
    return ProofOfFundsVault(
        ADDRS.owner,
        signers,
        compliance,
        custody,
        domain=domain,
        clock=clock,
        event_bus=event_bus,
    )


@pytest.fixture
def sign_for():
    """Sign the attestation for an account's next attested mint on ``vault``."""

    def _sign(vault, signer, account, asset, amount, expiry=None, nonce=None):
        return signer.sign_digest(vault.digest_for(account, asset, amount, expiry, nonce))

    return _sign
