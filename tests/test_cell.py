"""
Unit tests for the cell model and bag-of-cells serialization.

Includes known vectors from the TON reference implementation.
"""

import base64

import pytest

from claim_api.crypto.boc import BocError, boc_to_cell, crc32c, deserialize_boc, serialize_boc
from claim_api.crypto.builder import begin_cell
from claim_api.crypto.cell import (
    BitString,
    Cell,
    CellError,
    CellType,
    convert_to_merkle_proof,
    convert_to_pruned_branch,
    library_cell,
    pruned_branch,
)

EMPTY_CELL_HASH = "96a296d224f285c67bee93c30f8a309157f0daa35dc5b87e410b78630a09cfc7"
EMPTY_CELL_BOC = "te6cckEBAQEAAgAAAEysuc0="


def sample_tree() -> Cell:
    shared = begin_cell().store_uint(7, 3).end_cell()
    left = begin_cell().store_uint(0xDEAD, 16).store_ref(shared).end_cell()
    right = begin_cell().store_bit(1).store_ref(shared).store_ref(Cell()).end_cell()
    return begin_cell().store_coins(12345).store_ref(left).store_ref(right).end_cell()


class TestBitString:
    """Tests for BitString."""

    def test_from_bin_roundtrip(self) -> None:
        """Test binary string conversion."""
        bits = BitString.from_bin("1011001")
        assert bits.length == 7
        assert bits.to_bin() == "1011001"

    def test_padded_bytes(self) -> None:
        """Test completion tag padding."""
        bits = BitString.from_bin("101")
        assert bits.to_padded_bytes() == bytes([0b10110000])
        assert BitString.from_padded_bytes(bytes([0b10110000])) == bits

    def test_aligned_padding_is_plain_bytes(self) -> None:
        """Test that byte-aligned strings are not padded."""
        bits = BitString.from_bytes(b"\xab\xcd")
        assert bits.to_padded_bytes() == b"\xab\xcd"

    def test_substring_and_concat(self) -> None:
        """Test substring extraction and concatenation."""
        bits = BitString.from_bin("110010")
        assert bits.substring(1, 3).to_bin() == "100"
        assert bits.substring(0, 2).concat(bits.substring(2, 4)) == bits

    def test_value_overflow_rejected(self) -> None:
        """Test that values wider than the length are rejected."""
        with pytest.raises(CellError):
            BitString(4, 2)


class TestBuilderSlice:
    """Tests for Builder and Slice field codecs."""

    @pytest.mark.parametrize(("value", "bits"), [(-1, 8), (-128, 8), (127, 8), (0, 0), (-(1 << 40), 48)])
    def test_signed_roundtrip(self, value: int, bits: int) -> None:
        """Test two's complement int storage."""
        cell = begin_cell().store_int(value, bits).end_cell()
        src = cell.begin_parse()

        assert cell.bits.length == bits
        assert src.load_int(bits) == value
        src.end_parse()

    @pytest.mark.parametrize(("value", "bits"), [(128, 8), (-129, 8), (1, 0)])
    def test_signed_overflow(self, value: int, bits: int) -> None:
        """Test that out-of-range signed values are rejected."""
        with pytest.raises(CellError):
            begin_cell().store_int(value, bits)

    def test_maybe_ref(self) -> None:
        """Test present and absent optional references."""
        child = begin_cell().store_uint(9, 4).end_cell()
        src = begin_cell().store_maybe_ref(child).store_maybe_ref(None).end_cell().begin_parse()

        assert src.load_maybe_ref() == child
        assert src.load_maybe_ref() is None
        src.end_parse()


class TestCellHashing:
    """Tests for cell representation hashes."""

    def test_empty_cell_hash(self) -> None:
        """Test the well-known empty cell hash."""
        assert Cell().hash().hex() == EMPTY_CELL_HASH
        assert Cell().depth() == 0

    def test_hash_changes_with_data(self) -> None:
        """Test that different data gives different hashes."""
        a = begin_cell().store_uint(1, 8).end_cell()
        b = begin_cell().store_uint(2, 8).end_cell()
        assert a.hash() != b.hash()

    def test_depth(self) -> None:
        """Test depth is one more than the deepest reference."""
        tree = sample_tree()
        assert tree.depth() == 2

    def test_equal_trees_are_equal(self) -> None:
        """Test equality by hash."""
        assert sample_tree() == sample_tree()

    def test_cell_overflow(self) -> None:
        """Test that cells cannot exceed 1023 bits."""
        with pytest.raises(CellError):
            begin_cell().store_uint(0, 1000).store_uint(0, 24).end_cell()

    def test_too_many_refs(self) -> None:
        """Test that cells cannot hold more than four references."""
        with pytest.raises(CellError):
            Cell(refs=[Cell()] * 5)


class TestExoticCells:
    """Tests for pruned branches, library cells and Merkle proofs."""

    def test_pruned_branch_keeps_level0_hash(self) -> None:
        """Test that a pruned branch stands in for its subtree at level 0."""
        tree = sample_tree()
        pruned = convert_to_pruned_branch(tree)

        assert pruned.type is CellType.PRUNED_BRANCH
        assert pruned.level_mask == 1
        assert pruned.hash(0) == tree.hash(0)
        assert pruned.depth(0) == tree.depth(0)
        assert pruned.hash(1) != tree.hash(0)

    def test_parent_of_pruned_has_same_level0_hash(self) -> None:
        """Test that pruning a child leaves the parent's level-0 hash unchanged."""
        tree = sample_tree()
        left, right = tree.refs
        partial = Cell(tree.bits, [left, convert_to_pruned_branch(right)])

        assert partial.hash(0) == tree.hash(0)
        assert partial.level_mask == 1
        assert partial.hash() != tree.hash()

    def test_pruned_branch_validation(self) -> None:
        """Test that malformed pruned branch parameters are rejected."""
        with pytest.raises(CellError):
            pruned_branch(b"\x00" * 31, 1)
        with pytest.raises(CellError):
            pruned_branch(b"\x00" * 32, 1 << 16)

    def test_merkle_proof_cell(self) -> None:
        """Test Merkle proof wrapping."""
        tree = sample_tree()
        proof = convert_to_merkle_proof(tree)

        assert proof.type is CellType.MERKLE_PROOF
        assert proof.level_mask == 0
        assert proof.bits.substring(8, 256).to_bytes() == tree.hash(0)

    def test_merkle_proof_hash_mismatch(self) -> None:
        """Test that a Merkle proof must point at its reference."""
        bits = BitString((CellType.MERKLE_PROOF << 272) | 5, 280)
        with pytest.raises(CellError):
            Cell(bits, [Cell()], exotic=True)

    def test_library_cell(self) -> None:
        """Test library reference cell."""
        code = sample_tree()
        lib = library_cell(code)

        assert lib.type is CellType.LIBRARY
        assert lib.bits.substring(8, 256).to_bytes() == code.hash()
        assert not lib.refs

    def test_unknown_exotic_type(self) -> None:
        """Test that unknown exotic types are rejected."""
        with pytest.raises(CellError):
            Cell(BitString(0x09, 8), exotic=True)

    def test_exotic_cell_not_parsable(self) -> None:
        """Test that exotic cells are not opened as ordinary slices."""
        with pytest.raises(CellError):
            convert_to_pruned_branch(sample_tree()).begin_parse()


class TestBoc:
    """Tests for bag-of-cells serialization."""

    def test_crc32c_vector(self) -> None:
        """Test CRC-32C check value."""
        assert crc32c(b"123456789") == 0xE3069283

    def test_empty_cell_boc(self) -> None:
        """Test the reference encoding of the empty cell."""
        assert base64.b64encode(serialize_boc(Cell())).decode() == EMPTY_CELL_BOC
        assert boc_to_cell(base64.b64decode(EMPTY_CELL_BOC)) == Cell()

    def test_roundtrip_with_shared_cells(self) -> None:
        """Test round trip of a tree with a shared subtree."""
        tree = sample_tree()
        data = serialize_boc(tree)
        restored = boc_to_cell(data)

        assert restored.hash() == tree.hash()
        assert restored.refs[0].refs[0] is restored.refs[1].refs[0]

    def test_roundtrip_with_index(self) -> None:
        """Test round trip with the offset index."""
        tree = sample_tree()
        assert boc_to_cell(serialize_boc(tree, with_index=True)) == tree

    def test_roundtrip_exotic(self) -> None:
        """Test that level masks survive serialization."""
        tree = sample_tree()
        left, right = tree.refs
        partial = Cell(tree.bits, [left, convert_to_pruned_branch(right)])
        proof = convert_to_merkle_proof(partial)

        restored = boc_to_cell(serialize_boc(proof))
        assert restored.type is CellType.MERKLE_PROOF
        assert restored.hash() == proof.hash()
        assert restored.refs[0].refs[1].type is CellType.PRUNED_BRANCH

    def test_serialization_is_canonical(self) -> None:
        """Test that equal trees serialize to identical bytes."""
        assert serialize_boc(sample_tree()) == serialize_boc(sample_tree())

    def test_crc_mismatch(self) -> None:
        """Test that a corrupted checksum is rejected."""
        data = bytearray(serialize_boc(sample_tree()))
        data[-1] ^= 0xFF
        with pytest.raises(BocError):
            deserialize_boc(bytes(data))

    def test_truncated(self) -> None:
        """Test that truncated data is rejected."""
        data = serialize_boc(sample_tree())
        for size in (0, 3, 10, len(data) - 1):
            with pytest.raises(BocError):
                deserialize_boc(data[:size])

    def test_trailing_data(self) -> None:
        """Test that trailing bytes are rejected."""
        with pytest.raises(BocError):
            deserialize_boc(serialize_boc(Cell()) + b"\x00")

    def test_bad_magic(self) -> None:
        """Test that unknown magic is rejected."""
        with pytest.raises(BocError):
            deserialize_boc(b"\x00\x01\x02\x03" + serialize_boc(Cell())[4:])
