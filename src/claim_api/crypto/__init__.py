"""
Mintless Claim API - Cell Codec and Proofs

Provides the TON cell model, bag-of-cells serialization, addresses,
hashmap dictionaries, and pruned-dictionary inclusion proofs.
"""

from claim_api.crypto.address import Address, AddressError
from claim_api.crypto.boc import BocError, boc_to_cell, deserialize_boc, serialize_boc
from claim_api.crypto.builder import Builder, Slice, begin_cell
from claim_api.crypto.cell import BitString, Cell, CellError, CellType
from claim_api.crypto.merkle import (
    InclusionProof,
    NodeKind,
    ProofNode,
    build_inclusion_proof,
    verify_inclusion,
    verify_proof,
)

__all__ = [
    "Address",
    "AddressError",
    "BitString",
    "BocError",
    "Builder",
    "Cell",
    "CellError",
    "CellType",
    "InclusionProof",
    "NodeKind",
    "ProofNode",
    "Slice",
    "begin_cell",
    "boc_to_cell",
    "build_inclusion_proof",
    "deserialize_boc",
    "serialize_boc",
    "verify_inclusion",
    "verify_proof",
]
