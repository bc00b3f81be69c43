"""
Mintless Claim API - Proof Generator

Extracts per-owner inclusion proofs from the loaded commitment.
"""

import structlog

from claim_api.crypto.address import ADDRESS_BITS, Address
from claim_api.crypto.merkle import InclusionProof, build_inclusion_proof, verify_proof
from claim_api.services.commitment_store import CommitmentStore, address_key

logger = structlog.get_logger(__name__)


class ProofGenerator:
    """
    Stateless proof extraction over a CommitmentStore.

    Holds no mutable state, so a single instance serves all requests and
    may be called from worker threads.
    """

    def __init__(self, store: CommitmentStore) -> None:
        self.store = store

    def prove_for(self, owner: Address) -> InclusionProof | None:
        """
        Build the inclusion proof for an owner.

        Args:
            owner: Owner address

        Returns:
            InclusionProof, or None if the owner is not in the claim set
        """
        proof = build_inclusion_proof(self.store.root_cell, address_key(owner), ADDRESS_BITS)
        if proof is not None:
            logger.debug(
                "Inclusion proof built",
                owner=owner.to_raw(),
                nodes=len(proof.nodes),
                pruned=proof.pruned_count,
            )
        return proof

    def verify(self, proof: InclusionProof) -> bool:
        """Check that a proof rehashes to the store root."""
        return verify_proof(proof, self.store.root())
