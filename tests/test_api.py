"""
API tests for the wallet endpoint and service probes.
"""

import base64

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from claim_api import main
from claim_api.api.v1 import router as api_v1_router
from claim_api.core.config import settings
from claim_api.core.errors import FormatError, UpstreamError
from claim_api.services import payload_encoder
from claim_api.services.claim_service import ClaimService
from conftest import OWNER_A, OWNER_B


@pytest.fixture
def claim_service(store, deriver) -> ClaimService:
    return ClaimService(store=store, deriver=deriver)


@pytest.fixture
def client(claim_service: ClaimService) -> TestClient:
    app = FastAPI()
    app.include_router(api_v1_router)
    app.state.claim_service = claim_service
    return TestClient(app)


class TestWalletEndpoint:
    """Tests for GET /wallet/{owner_address}."""

    def test_eligible_owner(self, client: TestClient, deriver, store) -> None:
        """Test the full claim response."""
        response = client.get(f"/wallet/{OWNER_A.to_raw()}")

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"owner", "jetton_wallet", "custom_payload", "state_init", "compressed_info"}
        assert body["owner"] == OWNER_A.to_raw()
        assert body["jetton_wallet"] == deriver.derive_with_salt(OWNER_A, 42).address.to_raw()
        assert body["compressed_info"] == {
            "amount": "1000000000",
            "start_from": "1673808578",
            "expired_at": "1721080197",
        }
        proof = payload_encoder.decode(base64.b64decode(body["custom_payload"]))
        assert proof.compute_root() == store.root()

    def test_friendly_address(self, client: TestClient) -> None:
        """Test user-friendly owner addresses."""
        response = client.get(f"/wallet/{OWNER_A.to_friendly()}")
        assert response.status_code == 200
        assert response.json()["owner"] == OWNER_A.to_raw()

    def test_ineligible_owner(self, client: TestClient) -> None:
        """Test that owners outside the airdrop get an empty object."""
        response = client.get(f"/wallet/{OWNER_B.to_raw()}")

        assert response.status_code == 200
        assert response.json() == {}

    @pytest.mark.parametrize(
        "owner",
        ["0:nothex", "\u00e9" * 48, "\u0660:" + "00" * 32],
    )
    def test_malformed_address(self, client: TestClient, owner: str) -> None:
        """Test that malformed addresses are rejected."""
        response = client.get(f"/wallet/{owner}")
        assert response.status_code == 400

    def test_upstream_error(self, client: TestClient, salt_fetcher) -> None:
        """Test that minter failures map to 502."""
        salt_fetcher.side_effect = UpstreamError("minter unavailable", retryable=True)

        response = client.get(f"/wallet/{OWNER_A.to_raw()}")
        assert response.status_code == 502

    def test_upstream_timeout(self, client: TestClient, salt_fetcher) -> None:
        """Test that minter timeouts map to 504."""
        salt_fetcher.side_effect = UpstreamError("timed out", retryable=True, timed_out=True)

        response = client.get(f"/wallet/{OWNER_A.to_raw()}")
        assert response.status_code == 504

    def test_integrity_failure(self, client: TestClient, claim_service: ClaimService, monkeypatch) -> None:
        """Test that inconsistent proofs are never served."""
        monkeypatch.setattr("claim_api.services.claim_service.verify_inclusion", lambda *args: False)

        response = client.get(f"/wallet/{OWNER_A.to_raw()}")

        assert response.status_code == 500
        assert "custom_payload" not in response.text
        assert not claim_service.is_ready

    def test_service_not_initialized(self) -> None:
        """Test 503 before the service is attached."""
        app = FastAPI()
        app.include_router(api_v1_router)

        response = TestClient(app).get(f"/wallet/{OWNER_A.to_raw()}")
        assert response.status_code == 503


class TestProbes:
    """Tests for health, readiness and status endpoints."""

    def test_live(self) -> None:
        """Test liveness."""
        response = TestClient(main.app).get("/live")
        assert response.status_code == 200

    def test_ready(self, monkeypatch: pytest.MonkeyPatch, claim_service: ClaimService) -> None:
        """Test readiness follows the service state."""
        client = TestClient(main.app)

        monkeypatch.setattr(main, "claim_service", None)
        assert client.get("/ready").status_code == 503

        monkeypatch.setattr(main, "claim_service", claim_service)
        assert client.get("/ready").status_code == 200

        claim_service.integrity_ok = False
        assert client.get("/ready").status_code == 503

    def test_health_and_status(self, monkeypatch: pytest.MonkeyPatch, claim_service: ClaimService, store) -> None:
        """Test health and status documents."""
        monkeypatch.setattr(main, "claim_service", claim_service)
        client = TestClient(main.app)

        health = client.get("/health").json()
        assert health["status"] == "healthy"
        assert health["upstream"] == "unknown"

        status = client.get("/status").json()
        assert status["claims"]["snapshot"]["root"] == store.root().hex()


class TestLifespan:
    """Tests for application startup."""

    @pytest.mark.asyncio
    async def test_startup_fails_on_bad_snapshot(self, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
        """Test that the service refuses to start without a valid snapshot."""
        path = tmp_path / "airdropData.boc"
        path.write_bytes(b"garbage")
        monkeypatch.setattr(settings, "SNAPSHOT_PATH", str(path))
        monkeypatch.setattr(settings, "SCHEDULER_ENABLED", False)

        with pytest.raises(FormatError):
            async with main.lifespan(FastAPI()):
                pass
