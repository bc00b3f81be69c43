"""
Mintless Claim API - Merkle Inclusion Proofs

Provides pruned-dictionary inclusion proofs, their flat arena form, and
verification against a commitment root.

A proof is the claim dictionary restricted to one key's path:
- Cells on the path are kept expanded (same data, rebuilt references)
- Each off-path sibling is replaced by a level-1 pruned branch carrying
  only its hash and depth
- The leaf is kept whole

Because pruned branches report their stored hash at level 0, the level-0
hash of the pruned dictionary equals the hash of the full dictionary.
"""

from dataclasses import dataclass
from enum import Enum

from claim_api.crypto.builder import Slice
from claim_api.crypto.cell import (
    EMPTY_BITS,
    BitString,
    Cell,
    CellError,
    CellType,
    convert_to_merkle_proof,
    pruned_branch,
)
from claim_api.crypto.dictionary import find_leaf, read_label


class NodeKind(str, Enum):
    """Whether a proof node carries full content or only a hash."""

    EXPANDED = "expanded"
    PRUNED = "pruned"


@dataclass(frozen=True)
class ProofNode:
    """
    Single node of a proof arena.

    Attributes:
        kind: EXPANDED or PRUNED
        bits: Cell data (expanded nodes only)
        children: Arena indexes of the references (expanded nodes only)
        hash: Level-0 hash of the subtree (pruned nodes only)
        depth: Level-0 depth of the subtree (pruned nodes only)
    """

    kind: NodeKind
    bits: BitString = EMPTY_BITS
    children: tuple[int, ...] = ()
    hash: bytes | None = None
    depth: int = 0

    @classmethod
    def expanded(cls, bits: BitString, children: tuple[int, ...] = ()) -> "ProofNode":
        return cls(kind=NodeKind.EXPANDED, bits=bits, children=children)

    @classmethod
    def pruned(cls, hash_value: bytes, depth: int) -> "ProofNode":
        return cls(kind=NodeKind.PRUNED, hash=hash_value, depth=depth)

    @property
    def is_pruned(self) -> bool:
        return self.kind is NodeKind.PRUNED


@dataclass(frozen=True)
class InclusionProof:
    """
    Inclusion proof as a flat arena of nodes.

    Nodes are stored in pre-order; node 0 is the dictionary root and every
    child index is greater than its parent's.

    Attributes:
        nodes: Arena of proof nodes
    """

    nodes: tuple[ProofNode, ...]

    def __post_init__(self) -> None:
        if not self.nodes:
            raise ValueError("Inclusion proof cannot be empty")
        for index, node in enumerate(self.nodes):
            for child in node.children:
                if child <= index or child >= len(self.nodes):
                    raise ValueError(f"Node {index} has invalid child index {child}")

    @property
    def pruned_count(self) -> int:
        return sum(1 for node in self.nodes if node.is_pruned)

    def to_cell(self) -> Cell:
        """Rebuild the pruned dictionary cell tree bottom-up."""
        built: list[Cell | None] = [None] * len(self.nodes)
        for index in range(len(self.nodes) - 1, -1, -1):
            node = self.nodes[index]
            if node.is_pruned:
                built[index] = pruned_branch(node.hash, node.depth)
            else:
                built[index] = Cell(node.bits, [built[child] for child in node.children])
        return built[0]

    def to_merkle_proof_cell(self) -> Cell:
        """Wrap the pruned dictionary in an exotic Merkle proof cell."""
        return convert_to_merkle_proof(self.to_cell())

    def compute_root(self) -> bytes:
        """Rehash the arena and return the level-0 root hash."""
        return self.to_cell().hash(0)

    def find_leaf(self, key: int, key_bits: int) -> Slice | None:
        """Value slice for ``key`` if the proof reveals it."""
        return find_leaf(self.to_cell(), key, key_bits)

    @classmethod
    def from_cell(cls, root: Cell) -> "InclusionProof":
        """
        Flatten a pruned dictionary into an arena.

        Raises:
            CellError: If the tree holds exotic cells other than level-1
                pruned branches
        """
        nodes: list[ProofNode | None] = []
        stack: list[tuple[Cell, int | None, int]] = [(root, None, 0)]
        children_of: dict[int, list[int]] = {}
        while stack:
            cell, parent, position = stack.pop()
            index = len(nodes)
            if parent is not None:
                children_of[parent][position] = index
            if cell.type is CellType.PRUNED_BRANCH:
                if cell.level_mask != 1:
                    raise CellError("Only level-1 pruned branches are allowed in proofs")
                nodes.append(ProofNode.pruned(cell.hash(0), cell.depth(0)))
                continue
            if cell.is_exotic:
                raise CellError(f"Unexpected {cell.type.name} cell in proof")
            nodes.append(ProofNode.expanded(cell.bits))
            children_of[index] = [0] * len(cell.refs)
            for position_i in range(len(cell.refs) - 1, -1, -1):
                stack.append((cell.refs[position_i], index, position_i))

        arena = []
        for index, node in enumerate(nodes):
            if index in children_of:
                node = ProofNode.expanded(node.bits, tuple(children_of[index]))
            arena.append(node)
        return cls(tuple(arena))


def build_inclusion_proof(root: Cell, key: int, key_bits: int) -> InclusionProof | None:
    """
    Extract the minimal inclusion proof for ``key``.

    Args:
        root: Full dictionary root cell
        key: Integer key
        key_bits: Key width in bits

    Returns:
        InclusionProof, or None if the key is not in the dictionary
    """
    nodes: list[ProofNode | None] = []

    def prune(cell: Cell) -> int:
        nodes.append(ProofNode.pruned(cell.hash(0), cell.depth(0)))
        return len(nodes) - 1

    def expand(cell: Cell) -> int:
        index = len(nodes)
        nodes.append(None)
        children = tuple(expand(ref) for ref in cell.refs)
        nodes[index] = ProofNode.expanded(cell.bits, children)
        return index

    def descend(cell: Cell, bits_left: int) -> int | None:
        if cell.is_exotic:
            return None
        src = cell.begin_parse()
        label, length = read_label(src, bits_left)
        if label != (key >> (bits_left - length)) & ((1 << length) - 1):
            return None
        bits_left -= length
        if bits_left == 0:
            return expand(cell)
        if len(cell.refs) != 2:
            raise CellError("Dictionary fork must have two references")

        index = len(nodes)
        nodes.append(None)
        branch = (key >> (bits_left - 1)) & 1
        children = []
        for side, child in enumerate(cell.refs):
            if side == branch:
                child_index = descend(child, bits_left - 1)
                if child_index is None:
                    return None
            else:
                child_index = prune(child)
            children.append(child_index)
        nodes[index] = ProofNode.expanded(cell.bits, tuple(children))
        return index

    if descend(root, key_bits) is None:
        return None
    return InclusionProof(tuple(nodes))


def verify_proof(proof: InclusionProof, expected_root: bytes) -> bool:
    """
    Verify an inclusion proof against a commitment root.

    Args:
        proof: Proof to verify
        expected_root: 32-byte root hash

    Returns:
        True if the proof rehashes to expected_root
    """
    try:
        return proof.compute_root() == expected_root
    except CellError:
        return False


def verify_inclusion(
    proof: InclusionProof,
    expected_root: bytes,
    key: int,
    key_bits: int,
    expected_value: BitString,
) -> bool:
    """Verify a proof and that it reveals ``expected_value`` as the leaf data for ``key``."""
    if not verify_proof(proof, expected_root):
        return False
    leaf = proof.find_leaf(key, key_bits)
    if leaf is None:
        return False
    return leaf.load_bits(leaf.remaining_bits) == expected_value
