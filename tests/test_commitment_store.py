"""
Unit tests for the Commitment Store and Proof Generator.
"""

import pytest

from claim_api.core.errors import FormatError
from claim_api.crypto.address import ADDRESS_BITS, Address
from claim_api.crypto.boc import serialize_boc
from claim_api.crypto.builder import begin_cell
from claim_api.crypto.dictionary import build_dictionary
from claim_api.services.commitment_store import (
    ClaimEntry,
    CommitmentStore,
    address_key,
    build_claim_dictionary,
    build_snapshot,
    load_claim_entry,
)
from claim_api.services.proof_generator import ProofGenerator
from conftest import ENTRY_A, OWNER_A, OWNER_B


class TestClaimEntry:
    """Tests for ClaimEntry."""

    def test_valid(self) -> None:
        """Test a valid claim window."""
        ENTRY_A.validate()

    @pytest.mark.parametrize(
        ("amount", "start_from", "expire_at"),
        [
            (1, 10, 10),
            (1, 10, 5),
            (1, -1, 5),
            (-1, 0, 5),
            (1 << 120, 0, 5),
            (1, 0, 1 << 48),
        ],
    )
    def test_invalid(self, amount: int, start_from: int, expire_at: int) -> None:
        """Test rejected claim windows and out-of-range fields."""
        with pytest.raises(ValueError):
            ClaimEntry(amount, start_from, expire_at).validate()

    def test_leaf_layout(self) -> None:
        """Test Coins amount followed by two uint48 timestamps."""
        bits = ENTRY_A.to_bits()
        # 1000000000 needs 4 bytes: 4-bit length + 32 bits + 2 * 48
        assert bits.length == 4 + 32 + 96
        assert bits.substring(0, 4).value == 4
        assert bits.substring(4, 32).value == 1000000000
        assert bits.substring(36, 48).value == 1673808578
        assert bits.substring(84, 48).value == 1721080197

    def test_load_roundtrip(self) -> None:
        """Test parsing stored entry bits."""
        cell = begin_cell().store_bits(ENTRY_A.to_bits()).end_cell()
        assert load_claim_entry(cell.begin_parse()) == ENTRY_A


class TestCommitmentStore:
    """Tests for CommitmentStore."""

    def test_root_matches_dictionary_hash(self, store: CommitmentStore, claim_entries) -> None:
        """Test that the root is the level-0 hash of the claim dictionary."""
        assert store.root() == build_claim_dictionary(claim_entries).hash(0)
        assert len(store.root()) == 32
        assert store.root_int() == int.from_bytes(store.root(), "big")

    def test_get_present(self, store: CommitmentStore, claim_entries) -> None:
        """Test lookups for every member."""
        for owner, entry in claim_entries.items():
            assert store.get(owner) == entry

    def test_get_absent(self, store: CommitmentStore) -> None:
        """Test lookups for a non-member."""
        assert store.get(OWNER_B) is None

    def test_entry_count_and_owners(self, store: CommitmentStore, claim_entries) -> None:
        """Test entry count and key-ordered owner listing."""
        owners = list(store.owners())
        assert store.entry_count == len(claim_entries)
        assert set(owners) == set(claim_entries)
        assert [address_key(o) for o in owners] == sorted(address_key(o) for o in claim_entries)

    def test_root_independent_of_insertion_order(self, claim_entries) -> None:
        """Test that reordering entries keeps the root."""
        reordered = dict(reversed(list(claim_entries.items())))
        assert build_snapshot(reordered) == build_snapshot(claim_entries)

    def test_truncated_snapshot(self, snapshot_bytes: bytes) -> None:
        """Test that a truncated snapshot fails to load."""
        with pytest.raises(FormatError):
            CommitmentStore.load(snapshot_bytes[: len(snapshot_bytes) // 2])

    def test_corrupted_snapshot(self, snapshot_bytes: bytes) -> None:
        """Test that a flipped byte fails to load."""
        data = bytearray(snapshot_bytes)
        data[len(data) // 2] ^= 0x40
        with pytest.raises(FormatError):
            CommitmentStore.load(bytes(data))

    def test_not_a_dictionary(self) -> None:
        """Test that a BoC holding something else fails to load."""
        with pytest.raises(FormatError):
            CommitmentStore.load(serialize_boc(begin_cell().store_uint(3, 2).end_cell()))

    def test_non_canonical_snapshot(self) -> None:
        """Test that root verification rejects a non-canonical dictionary."""
        owner = Address(0, bytes(32))
        key = address_key(owner)
        # Leaf label stored in short form although the long form is shorter
        builder = begin_cell().store_bit(0)
        for _ in range(ADDRESS_BITS):
            builder.store_bit(1)
        builder.store_bit(0).store_uint(key, ADDRESS_BITS)
        builder.store_bits(ENTRY_A.to_bits())
        data = serialize_boc(builder.end_cell())

        assert CommitmentStore.load(data, verify_root=False).get(owner) == ENTRY_A
        with pytest.raises(FormatError):
            CommitmentStore.load(data, verify_root=True)

    def test_invalid_window_entries_load(self) -> None:
        """Test that entries breaking the claim window still load."""
        bad = ClaimEntry(amount=5, start_from=100, expire_at=50)
        root = build_dictionary({address_key(OWNER_A): bad}, ADDRESS_BITS, lambda e, b: b.store_bits(e.to_bits()))
        store = CommitmentStore.load(serialize_boc(root))
        assert store.get(OWNER_A) == bad

    def test_from_file(self, tmp_path, snapshot_bytes: bytes) -> None:
        """Test loading from disk."""
        path = tmp_path / "airdropData.boc"
        path.write_bytes(snapshot_bytes)
        assert CommitmentStore.from_file(path).get(OWNER_A) == ENTRY_A

    def test_missing_file(self, tmp_path) -> None:
        """Test that a missing snapshot is a FormatError."""
        with pytest.raises(FormatError):
            CommitmentStore.from_file(tmp_path / "missing.boc")

    def test_empty_claim_set(self) -> None:
        """Test that a snapshot needs at least one entry."""
        with pytest.raises(ValueError):
            build_snapshot({})


class TestProofGenerator:
    """Tests for ProofGenerator."""

    def test_every_owner_rehashes_to_root(self, store: CommitmentStore, claim_entries) -> None:
        """Test that each member's proof rehashes to the store root."""
        generator = ProofGenerator(store)
        for owner in claim_entries:
            proof = generator.prove_for(owner)
            assert proof is not None
            assert proof.compute_root() == store.root()
            assert generator.verify(proof)

    def test_absent_owner(self, store: CommitmentStore) -> None:
        """Test that non-members produce no proof."""
        assert ProofGenerator(store).prove_for(OWNER_B) is None

    def test_single_owner_set(self) -> None:
        """Test the one-entry scenario."""
        store = CommitmentStore.load(build_snapshot({OWNER_A: ENTRY_A}))
        proof = ProofGenerator(store).prove_for(OWNER_A)

        assert proof.pruned_count == 0
        assert proof.compute_root() == store.root()
        assert ProofGenerator(store).prove_for(OWNER_B) is None
