"""
Mintless Claim API - Commitment Store

Loads the airdrop snapshot (a BoC holding ``HashmapE 267 AirdropData``
stored directly, without the Maybe bit) and serves point lookups.

The loaded cell tree keeps the hash of every cell, so proofs never rehash
untouched subtrees. With root verification enabled the dictionary is
rebuilt canonically from the parsed entries at load time and must hash to
the same root; otherwise the snapshot is rejected.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

import structlog

from claim_api.core.config import settings
from claim_api.core.errors import FormatError
from claim_api.crypto.address import ADDRESS_BITS, Address
from claim_api.crypto.boc import BocError, boc_to_cell, serialize_boc
from claim_api.crypto.builder import Builder, Slice
from claim_api.crypto.cell import BitString, Cell, CellError
from claim_api.crypto.dictionary import build_dictionary, find_leaf, iter_dictionary

logger = structlog.get_logger(__name__)

TIMESTAMP_BITS = 48


@dataclass(frozen=True)
class ClaimEntry:
    """
    Claim terms for one owner.

    Attributes:
        amount: Jetton amount in base units (Coins)
        start_from: Unix time the claim opens
        expire_at: Unix time the claim closes
    """

    amount: int
    start_from: int
    expire_at: int

    def validate(self) -> None:
        """
        Check the claim window.

        Raises:
            ValueError: If expire_at <= start_from, start_from < 0, or a
                field does not fit its on-chain width
        """
        if self.amount < 0 or self.amount >> 120:
            raise ValueError(f"Amount {self.amount} out of Coins range")
        if self.start_from < 0:
            raise ValueError("start_from cannot be negative")
        if self.expire_at <= self.start_from:
            raise ValueError("expire_at must be after start_from")
        if self.expire_at >> TIMESTAMP_BITS:
            raise ValueError(f"expire_at does not fit in {TIMESTAMP_BITS} bits")

    def to_bits(self) -> BitString:
        """Leaf value bits: Coins amount, uint48 start_from, uint48 expire_at."""
        builder = Builder()
        store_claim_entry(self, builder)
        return builder.end_cell().bits


def store_claim_entry(entry: ClaimEntry, builder: Builder) -> None:
    builder.store_coins(entry.amount)
    builder.store_uint(entry.start_from, TIMESTAMP_BITS)
    builder.store_uint(entry.expire_at, TIMESTAMP_BITS)


def load_claim_entry(src: Slice) -> ClaimEntry:
    return ClaimEntry(
        amount=src.load_coins(),
        start_from=src.load_uint(TIMESTAMP_BITS),
        expire_at=src.load_uint(TIMESTAMP_BITS),
    )


def address_key(address: Address) -> int:
    """Dictionary key for an owner: its 267-bit addr_std serialization."""
    return address.to_bits().value


def build_claim_dictionary(entries: Mapping[Address, ClaimEntry]) -> Cell:
    """
    Build the claim dictionary root cell.

    Raises:
        ValueError: If entries is empty or an entry fails validation
    """
    for entry in entries.values():
        entry.validate()
    items = {address_key(address): entry for address, entry in entries.items()}
    return build_dictionary(items, ADDRESS_BITS, store_claim_entry)


def build_snapshot(entries: Mapping[Address, ClaimEntry]) -> bytes:
    """Serialize a claim set into snapshot BoC bytes."""
    return serialize_boc(build_claim_dictionary(entries))


class CommitmentStore:
    """
    Immutable claim set with its commitment root.

    Safe to share between any number of concurrent readers.
    """

    def __init__(self, root_cell: Cell, entry_count: int) -> None:
        """
        Initialize store (internal use).

        Use load() or from_file() to construct stores.
        """
        self._root_cell = root_cell
        self._entry_count = entry_count

    @classmethod
    def load(cls, snapshot: bytes, verify_root: bool | None = None) -> "CommitmentStore":
        """
        Load a store from snapshot bytes.

        Args:
            snapshot: BoC bytes of the claim dictionary
            verify_root: Rebuild the dictionary and compare roots
                (defaults to SNAPSHOT_VERIFY_ROOT)

        Returns:
            Loaded CommitmentStore

        Raises:
            FormatError: If the snapshot is malformed or inconsistent
        """
        if verify_root is None:
            verify_root = settings.SNAPSHOT_VERIFY_ROOT

        try:
            root_cell = boc_to_cell(snapshot)
        except BocError as e:
            raise FormatError(f"Invalid snapshot BoC: {e}") from e

        entries: dict[int, ClaimEntry] = {}
        try:
            for key, entry in iter_dictionary(root_cell, ADDRESS_BITS, load_claim_entry):
                entries[key] = entry
        except CellError as e:
            raise FormatError(f"Invalid claim dictionary: {e}") from e

        invalid = 0
        for entry in entries.values():
            try:
                entry.validate()
            except ValueError:
                invalid += 1
        if invalid:
            logger.warning("Snapshot contains entries with an invalid claim window", count=invalid)

        if verify_root:
            try:
                rebuilt = build_dictionary(entries, ADDRESS_BITS, store_claim_entry)
            except (ValueError, CellError) as e:
                raise FormatError(f"Cannot rebuild claim dictionary: {e}") from e
            if rebuilt.hash(0) != root_cell.hash(0):
                raise FormatError(
                    f"Snapshot root {root_cell.hash(0).hex()} does not match "
                    f"recomputed root {rebuilt.hash(0).hex()}"
                )

        logger.info(
            "Commitment snapshot loaded",
            entries=len(entries),
            root=root_cell.hash(0).hex(),
            verified=verify_root,
        )
        return cls(root_cell, len(entries))

    @classmethod
    def from_file(cls, path: str | Path, verify_root: bool | None = None) -> "CommitmentStore":
        """Load a store from a snapshot file."""
        try:
            snapshot = Path(path).read_bytes()
        except OSError as e:
            raise FormatError(f"Cannot read snapshot {path}: {e}") from e
        return cls.load(snapshot, verify_root=verify_root)

    @property
    def root_cell(self) -> Cell:
        return self._root_cell

    @property
    def entry_count(self) -> int:
        return self._entry_count

    def root(self) -> bytes:
        """32-byte commitment root (level-0 hash of the dictionary)."""
        return self._root_cell.hash(0)

    def root_int(self) -> int:
        return int.from_bytes(self.root(), "big")

    def get(self, owner: Address) -> ClaimEntry | None:
        """Claim entry for ``owner``, or None if not eligible."""
        leaf = find_leaf(self._root_cell, address_key(owner), ADDRESS_BITS)
        if leaf is None:
            return None
        return load_claim_entry(leaf)

    def owners(self) -> Iterator[Address]:
        """Owners in key order."""
        for key, _ in iter_dictionary(self._root_cell, ADDRESS_BITS, load_claim_entry):
            yield Address.from_bits(BitString(key, ADDRESS_BITS))
