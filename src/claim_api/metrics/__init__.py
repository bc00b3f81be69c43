"""
Mintless Claim API - Metrics Module

Prometheus metrics for the claim service.

Exports:
- Lookup counters by result
- Proof and salt fetch latency
- Upstream failure counters
- Snapshot and service info
"""

from claim_api.metrics.claim_metrics import (
    ClaimMetrics,
    get_claim_metrics,
)

__all__ = [
    "ClaimMetrics",
    "get_claim_metrics",
]
