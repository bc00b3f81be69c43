"""
Mintless Claim API - Payload Encoder

Wraps an inclusion proof into the claim custom payload the jetton wallet
expects on its first transfer:

    merkle_airdrop_claim#0df602d6 proof:^(MERKLE_PROOF Hashmap 267 AirdropData)

serialized as a bag of cells with a CRC32-C trailer and no index.
"""

from claim_api.core.errors import EncodingMismatch
from claim_api.crypto.boc import BocError, boc_to_cell, serialize_boc
from claim_api.crypto.builder import begin_cell
from claim_api.crypto.cell import Cell, CellError, CellType
from claim_api.crypto.merkle import InclusionProof

MERKLE_AIRDROP_CLAIM = 0x0DF602D6
OP_BITS = 32


def claim_payload_cell(proof: InclusionProof) -> Cell:
    """Build the claim payload cell: op code plus a reference to the Merkle proof."""
    return (
        begin_cell()
        .store_uint(MERKLE_AIRDROP_CLAIM, OP_BITS)
        .store_ref(proof.to_merkle_proof_cell())
        .end_cell()
    )


def encode(proof: InclusionProof) -> bytes:
    """
    Serialize a proof into claim payload bytes.

    Encoding is canonical: equal proofs always produce identical bytes.
    """
    return serialize_boc(claim_payload_cell(proof))


def decode(payload: bytes) -> InclusionProof:
    """
    Parse claim payload bytes back into a proof.

    Args:
        payload: BoC bytes produced by encode()

    Returns:
        The InclusionProof carried by the payload

    Raises:
        EncodingMismatch: If the payload deviates from the expected layout
    """
    try:
        root = boc_to_cell(payload)
    except BocError as e:
        raise EncodingMismatch(f"Invalid payload BoC: {e}") from e

    if root.is_exotic:
        raise EncodingMismatch("Claim payload must be an ordinary cell")
    src = root.begin_parse()
    if src.remaining_bits != OP_BITS or src.remaining_refs != 1:
        raise EncodingMismatch("Claim payload must hold exactly an op code and one reference")
    op = src.load_uint(OP_BITS)
    if op != MERKLE_AIRDROP_CLAIM:
        raise EncodingMismatch(f"Unexpected op 0x{op:08x}")

    merkle = src.load_ref()
    if merkle.type is not CellType.MERKLE_PROOF:
        raise EncodingMismatch("Claim payload reference is not a Merkle proof cell")

    try:
        proof = InclusionProof.from_cell(merkle.refs[0])
    except (CellError, ValueError) as e:
        raise EncodingMismatch(f"Invalid proof dictionary: {e}") from e

    if serialize_boc(claim_payload_cell(proof)) != payload:
        raise EncodingMismatch("Claim payload is not in canonical form")
    return proof
