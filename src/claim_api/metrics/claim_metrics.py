"""
Mintless Claim API - Claim Metrics

Prometheus metrics for the claim lookup service.

Metrics Categories:
- Wallet lookups by outcome
- Proof generation and payload size
- Upstream salt fetches and failures
- Commitment snapshot state
"""

import structlog
from prometheus_client import Counter, Gauge, Histogram, Info

logger = structlog.get_logger(__name__)


class ClaimMetrics:
    """
    Centralized metrics for the claim service.

    Provides visibility into:
    - Eligible vs. ineligible lookups and request failures
    - Proof extraction cost
    - Minter salt round trips
    - The loaded commitment
    """

    def __init__(self) -> None:
        """Initialize all claim metrics."""
        self._init_lookup_metrics()
        self._init_proof_metrics()
        self._init_upstream_metrics()
        self._init_snapshot_metrics()
        self._init_info_metrics()

    def _init_lookup_metrics(self) -> None:
        self.lookups = Counter(
            "claim_api_lookups_total",
            "Wallet lookups by result",
            ["result"],
        )

        self.lookup_duration = Histogram(
            "claim_api_lookup_duration_seconds",
            "End-to-end wallet lookup time",
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0],
        )

    def _init_proof_metrics(self) -> None:
        self.proof_duration = Histogram(
            "claim_api_proof_duration_seconds",
            "Inclusion proof extraction time",
            buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05],
        )

        self.proof_verifications = Counter(
            "claim_api_proof_verifications_total",
            "Proof self-checks against the loaded root",
            ["result"],
        )

        self.payload_size = Histogram(
            "claim_api_payload_bytes",
            "Size of encoded claim payloads",
            buckets=[256, 512, 1024, 2048, 4096, 8192],
        )

    def _init_upstream_metrics(self) -> None:
        self.salt_fetch_duration = Histogram(
            "claim_api_salt_fetch_duration_seconds",
            "Minter salt get-method round trip",
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0],
        )

        self.upstream_failures = Counter(
            "claim_api_upstream_failures_total",
            "Failed calls to the TON HTTP API",
            ["reason"],
        )

        self.upstream_node_connected = Gauge(
            "claim_api_upstream_node_connected",
            "1 if the last upstream probe succeeded",
        )

    def _init_snapshot_metrics(self) -> None:
        self.snapshot_entries = Gauge(
            "claim_api_snapshot_entries",
            "Entries in the loaded claim snapshot",
        )

        self.integrity_failures = Counter(
            "claim_api_integrity_failures_total",
            "Proofs that failed to verify against the loaded root",
        )

    def _init_info_metrics(self) -> None:
        self.service_info = Info(
            "claim_api_service",
            "Claim service information",
        )

        self.commitment_info = Info(
            "claim_api_commitment",
            "Loaded commitment and minter",
        )

    # Convenience methods

    def record_lookup(self, result: str, duration: float | None = None) -> None:
        """Record a lookup outcome by result label."""
        self.lookups.labels(result=result).inc()
        if duration is not None:
            self.lookup_duration.observe(duration)

    def record_proof(self, duration: float, payload_size: int, valid: bool) -> None:
        self.proof_duration.observe(duration)
        self.payload_size.observe(payload_size)
        self.proof_verifications.labels(result="valid" if valid else "invalid").inc()
        if not valid:
            self.integrity_failures.inc()

    def observe_salt_fetch(self, duration: float) -> None:
        self.salt_fetch_duration.observe(duration)

    def record_upstream_failure(self, reason: str) -> None:
        self.upstream_failures.labels(reason=reason).inc()

    def set_upstream_connected(self, connected: bool) -> None:
        self.upstream_node_connected.set(1 if connected else 0)

    def set_snapshot(self, entries: int, root: str, minter: str) -> None:
        """Publish the loaded commitment."""
        self.snapshot_entries.set(entries)
        self.commitment_info.info({"root": root, "minter": minter})

    def set_service_info(self, version: str, environment: str, endpoint: str) -> None:
        """Set service info labels."""
        self.service_info.info({
            "version": version,
            "environment": environment,
            "upstream": endpoint,
        })


# Singleton instance
_claim_metrics: ClaimMetrics | None = None


def get_claim_metrics() -> ClaimMetrics:
    """Get global claim metrics instance."""
    global _claim_metrics
    if _claim_metrics is None:
        _claim_metrics = ClaimMetrics()
    return _claim_metrics
