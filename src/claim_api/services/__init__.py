"""
Mintless Claim API - Services Package

Provides the commitment store, proof generation, payload encoding, wallet
derivation and the claim lookup service.

Note: Imports are performed lazily to avoid circular import issues.
Use direct imports from submodules when needed:
    from claim_api.services.commitment_store import CommitmentStore
    from claim_api.services.claim_service import ClaimService
    etc.
"""

__all__ = [
    "ClaimEntry",
    "CommitmentStore",
    "ProofGenerator",
    "WalletDeriver",
    "WalletDerivation",
    "ToncenterClient",
    "ClaimService",
    "ClaimLookupResult",
]
