"""
Pytest configuration and shared fixtures for claim API tests.
"""

import hashlib
from unittest.mock import AsyncMock

import pytest

from claim_api.core.config import settings
from claim_api.crypto.address import Address
from claim_api.crypto.builder import begin_cell
from claim_api.crypto.cell import Cell
from claim_api.services.commitment_store import ClaimEntry, CommitmentStore, build_snapshot
from claim_api.services.wallet_deriver import SaltResponse, WalletDeriver

OWNER_A = Address(0, hashlib.sha256(b"owner-a").digest())
OWNER_B = Address(0, hashlib.sha256(b"owner-b").digest())
MINTER = Address(0, hashlib.sha256(b"minter").digest())

ENTRY_A = ClaimEntry(amount=1000000000, start_from=1673808578, expire_at=1721080197)


def make_owner(index: int) -> Address:
    return Address(0, hashlib.sha256(f"owner-{index}".encode()).digest())


@pytest.fixture(autouse=True)
def no_abort(monkeypatch: pytest.MonkeyPatch) -> None:
    """Never signal the test process on integrity failures."""
    monkeypatch.setattr(settings, "ABORT_ON_INTEGRITY_FAILURE", False)


@pytest.fixture
def claim_entries() -> dict[Address, ClaimEntry]:
    """Owner A plus a spread of other owners; owner B is absent."""
    entries = {OWNER_A: ENTRY_A}
    for i in range(1, 40):
        entries[make_owner(i)] = ClaimEntry(
            amount=i * 1_000_000,
            start_from=1700000000 + i,
            expire_at=1800000000 + i,
        )
    entries[Address(-1, bytes(32))] = ClaimEntry(amount=1, start_from=0, expire_at=1)
    return entries


@pytest.fixture
def snapshot_bytes(claim_entries: dict[Address, ClaimEntry]) -> bytes:
    """Snapshot BoC for claim_entries."""
    return build_snapshot(claim_entries)


@pytest.fixture
def store(snapshot_bytes: bytes) -> CommitmentStore:
    """Commitment store loaded with root verification."""
    return CommitmentStore.load(snapshot_bytes, verify_root=True)


@pytest.fixture
def wallet_code() -> Cell:
    """Stand-in wallet code cell."""
    return begin_cell().store_uint(0xFF00F4A4, 32).store_bytes(b"jetton-wallet").end_cell()


@pytest.fixture
def salt_fetcher() -> AsyncMock:
    """Salt fetcher answering salt 42 without a StateInit."""
    return AsyncMock(return_value=SaltResponse(salt=42))


@pytest.fixture
def deriver(store: CommitmentStore, wallet_code: Cell, salt_fetcher: AsyncMock) -> WalletDeriver:
    """Wallet deriver bound to the test store root."""
    return WalletDeriver(
        minter=MINTER,
        wallet_code=wallet_code,
        merkle_root=store.root(),
        salt_fetcher=salt_fetcher,
        salt_timeout=1.0,
        workchain=0,
    )


@pytest.fixture
def mock_toncenter_client() -> AsyncMock:
    """Mock TON HTTP API client."""
    client = AsyncMock()
    client.run_get_method = AsyncMock()
    client.get_account_state = AsyncMock()
    client.check_health = AsyncMock(return_value=True)
    client.connect = AsyncMock()
    client.disconnect = AsyncMock()
    client.endpoint = "https://testnet.toncenter.com/api/v2"
    client.is_connected = True
    return client
