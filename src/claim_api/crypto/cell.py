"""
Mintless Claim API - Cell Model

Implements the TON cell: up to 1023 data bits and up to 4 references,
either ordinary or exotic (pruned branch, library reference, Merkle proof,
Merkle update).

Hashes and depths follow the TVM rules:
- Every cell carries a level mask derived from its children (or, for
  exotic cells, from its own layout)
- One representation hash is computed per significant level
- Pruned branches report their stored hash/depth at lower levels, which is
  what makes a pruned tree hash to the same root as the full tree
"""

import hashlib
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence

MAX_CELL_BITS = 1023
MAX_CELL_REFS = 4
MAX_LEVEL = 3
HASH_BYTES = 32
DEPTH_BYTES = 2


class CellError(ValueError):
    """Raised for structurally invalid cells or out-of-bounds reads."""

    pass


class CellType(IntEnum):
    """Cell kinds. Exotic kinds use their on-wire type byte as value."""

    ORDINARY = -1
    PRUNED_BRANCH = 1
    LIBRARY = 2
    MERKLE_PROOF = 3
    MERKLE_UPDATE = 4


@dataclass(frozen=True)
class BitString:
    """
    Immutable bit sequence.

    Bits are held big-endian in a single integer: the first bit of the
    string is the most significant bit of ``value``.

    Attributes:
        value: Integer holding the bits
        length: Number of bits
    """

    value: int = 0
    length: int = 0

    def __post_init__(self) -> None:
        if self.length < 0:
            raise CellError("Bit length cannot be negative")
        if self.value < 0 or self.value >> self.length:
            raise CellError(f"Value does not fit in {self.length} bits")

    @classmethod
    def from_bytes(cls, data: bytes, length: int | None = None) -> "BitString":
        """Take the first ``length`` bits of ``data`` (all bits by default)."""
        total = len(data) * 8
        if length is None:
            length = total
        if length > total:
            raise CellError(f"Cannot take {length} bits from {total}")
        value = int.from_bytes(data, "big") >> (total - length)
        return cls(value, length)

    @classmethod
    def from_padded_bytes(cls, data: bytes) -> "BitString":
        """Decode bytes ending with the 0b1000... completion tag."""
        value = int.from_bytes(data, "big")
        if value == 0:
            raise CellError("Completion tag not found")
        trailing_zeros = (value & -value).bit_length() - 1
        return cls(value >> (trailing_zeros + 1), len(data) * 8 - trailing_zeros - 1)

    @classmethod
    def from_bin(cls, text: str) -> "BitString":
        """Build from a string of '0'/'1' characters."""
        if not text:
            return cls()
        return cls(int(text, 2), len(text))

    def __len__(self) -> int:
        return self.length

    def bit(self, index: int) -> int:
        if index < 0 or index >= self.length:
            raise CellError(f"Bit index {index} out of bounds")
        return (self.value >> (self.length - index - 1)) & 1

    def substring(self, start: int, length: int) -> "BitString":
        if start < 0 or length < 0 or start + length > self.length:
            raise CellError(f"Substring {start}+{length} out of bounds")
        shifted = self.value >> (self.length - start - length)
        return BitString(shifted & ((1 << length) - 1), length)

    def concat(self, other: "BitString") -> "BitString":
        return BitString((self.value << other.length) | other.value, self.length + other.length)

    def to_bytes(self) -> bytes:
        """Byte form of a byte-aligned string."""
        if self.length % 8:
            raise CellError("Bit string is not byte aligned")
        return self.value.to_bytes(self.length // 8, "big")

    def to_padded_bytes(self) -> bytes:
        """
        Byte form with completion tag.

        Non-aligned strings get a single 1 bit appended followed by zeros up
        to the next byte boundary.
        """
        remainder = self.length % 8
        if remainder == 0:
            return self.to_bytes()
        pad = 8 - remainder
        padded = ((self.value << 1) | 1) << (pad - 1)
        return padded.to_bytes((self.length + pad) // 8, "big")

    def to_bin(self) -> str:
        if self.length == 0:
            return ""
        return format(self.value, f"0{self.length}b")

    def __str__(self) -> str:
        return self.to_bin()


EMPTY_BITS = BitString()


class LevelMask:
    """Level mask of a cell (bit i set means level i+1 is significant)."""

    __slots__ = ("mask",)

    def __init__(self, mask: int = 0) -> None:
        self.mask = mask

    @property
    def level(self) -> int:
        return self.mask.bit_length()

    @property
    def hash_index(self) -> int:
        return bin(self.mask).count("1")

    @property
    def hash_count(self) -> int:
        return self.hash_index + 1

    def apply(self, level: int) -> "LevelMask":
        return LevelMask(self.mask & ((1 << level) - 1))

    def is_significant(self, level: int) -> bool:
        return level == 0 or (self.mask >> (level - 1)) & 1 == 1


def refs_descriptor(ref_count: int, exotic: bool, level_mask: int) -> int:
    """First descriptor byte: d1 = refs + 8 * exotic + 32 * level_mask."""
    return ref_count + (8 if exotic else 0) + level_mask * 32


def bits_descriptor(bit_length: int) -> int:
    """Second descriptor byte: d2 = floor(b / 8) + ceil(b / 8)."""
    return bit_length // 8 + (bit_length + 7) // 8


def _exotic_type(bits: BitString) -> CellType:
    if bits.length < 8:
        raise CellError("Exotic cell must have at least 8 bits")
    type_byte = bits.substring(0, 8).value
    try:
        cell_type = CellType(type_byte)
    except ValueError:
        raise CellError(f"Unknown exotic cell type {type_byte}") from None
    if cell_type is CellType.ORDINARY:
        raise CellError(f"Unknown exotic cell type {type_byte}")
    return cell_type


def _parse_pruned(bits: BitString, refs: Sequence["Cell"]) -> tuple[int, list[tuple[bytes, int]]]:
    """Validate a pruned branch and return (mask, [(hash, depth), ...])."""
    if refs:
        raise CellError("Pruned branch cannot have references")
    offset = 8
    if bits.length == 8 + HASH_BYTES * 8 + DEPTH_BYTES * 8:
        # Legacy layout without the mask byte, level 1 implied
        mask = 1
    else:
        mask = bits.substring(8, 8).value
        offset = 16
        if mask < 1 or mask > 7:
            raise CellError(f"Invalid pruned branch level mask {mask}")
    count = LevelMask(mask).hash_index
    expected = offset + count * (HASH_BYTES + DEPTH_BYTES) * 8
    if bits.length != expected:
        raise CellError(f"Pruned branch must have {expected} bits, got {bits.length}")

    hashes = []
    for i in range(count):
        hashes.append(bits.substring(offset + i * 256, 256).to_bytes())
    depth_offset = offset + count * 256
    depths = [bits.substring(depth_offset + i * 16, 16).value for i in range(count)]
    return mask, list(zip(hashes, depths))


def _check_library(bits: BitString, refs: Sequence["Cell"]) -> None:
    if refs:
        raise CellError("Library cell cannot have references")
    if bits.length != 8 + 256:
        raise CellError("Library cell must have 264 bits")


def _check_merkle_proof(bits: BitString, refs: Sequence["Cell"]) -> None:
    if len(refs) != 1:
        raise CellError("Merkle proof must have exactly one reference")
    if bits.length != 8 + 256 + 16:
        raise CellError("Merkle proof must have 280 bits")
    proof_hash = bits.substring(8, 256).to_bytes()
    proof_depth = bits.substring(264, 16).value
    if proof_hash != refs[0].hash(0):
        raise CellError("Merkle proof hash does not match its reference")
    if proof_depth != refs[0].depth(0):
        raise CellError("Merkle proof depth does not match its reference")


def _check_merkle_update(bits: BitString, refs: Sequence["Cell"]) -> None:
    if len(refs) != 2:
        raise CellError("Merkle update must have exactly two references")
    if bits.length != 8 + 2 * (256 + 16):
        raise CellError("Merkle update must have 552 bits")
    for i, ref in enumerate(refs):
        if bits.substring(8 + i * 256, 256).to_bytes() != ref.hash(0):
            raise CellError(f"Merkle update hash {i} does not match its reference")
        if bits.substring(8 + 512 + i * 16, 16).value != ref.depth(0):
            raise CellError(f"Merkle update depth {i} does not match its reference")


class Cell:
    """
    Immutable TON cell.

    Hashes and depths for all four levels are computed once at
    construction, so a loaded tree never needs rehashing.

    Example:
        >>> leaf = Cell(BitString(0xAB, 8))
        >>> root = Cell(BitString(1, 1), [leaf])
        >>> len(root.hash())
        32
    """

    __slots__ = ("bits", "refs", "type", "_mask", "_hashes", "_depths")

    def __init__(
        self,
        bits: BitString = EMPTY_BITS,
        refs: Sequence["Cell"] = (),
        exotic: bool = False,
    ) -> None:
        refs = tuple(refs)
        if bits.length > MAX_CELL_BITS:
            raise CellError(f"Cell cannot hold {bits.length} bits")
        if len(refs) > MAX_CELL_REFS:
            raise CellError(f"Cell cannot hold {len(refs)} references")

        self.bits = bits
        self.refs = refs
        self.type = _exotic_type(bits) if exotic else CellType.ORDINARY
        self._mask, self._hashes, self._depths = self._compute_hashes()

    @property
    def is_exotic(self) -> bool:
        return self.type is not CellType.ORDINARY

    @property
    def level_mask(self) -> int:
        return self._mask

    @property
    def level(self) -> int:
        return LevelMask(self._mask).level

    def hash(self, level: int = MAX_LEVEL) -> bytes:
        """Representation hash at ``level`` (default: the highest)."""
        return self._hashes[min(level, MAX_LEVEL)]

    def depth(self, level: int = MAX_LEVEL) -> int:
        return self._depths[min(level, MAX_LEVEL)]

    def begin_parse(self, allow_exotic: bool = False):
        """Open a slice over this cell."""
        from claim_api.crypto.builder import Slice

        if self.is_exotic and not allow_exotic:
            raise CellError(f"Cannot parse exotic {self.type.name} cell")
        return Slice(self)

    def _compute_hashes(self) -> tuple[int, list[bytes], list[int]]:
        cell_type = self.type
        bits = self.bits
        refs = self.refs
        pruned: list[tuple[bytes, int]] = []

        if cell_type is CellType.ORDINARY:
            mask_value = 0
            for ref in refs:
                mask_value |= ref.level_mask
        elif cell_type is CellType.PRUNED_BRANCH:
            mask_value, pruned = _parse_pruned(bits, refs)
        elif cell_type is CellType.LIBRARY:
            _check_library(bits, refs)
            mask_value = 0
        elif cell_type is CellType.MERKLE_PROOF:
            _check_merkle_proof(bits, refs)
            mask_value = refs[0].level_mask >> 1
        else:
            _check_merkle_update(bits, refs)
            mask_value = (refs[0].level_mask | refs[1].level_mask) >> 1

        mask = LevelMask(mask_value)
        is_merkle = cell_type in (CellType.MERKLE_PROOF, CellType.MERKLE_UPDATE)
        hash_count = 1 if cell_type is CellType.PRUNED_BRANCH else mask.hash_count
        hash_offset = mask.hash_count - hash_count
        d2 = bits_descriptor(bits.length)

        hashes: list[bytes] = []
        depths: list[int] = []
        hash_i = 0
        for level_i in range(mask.level + 1):
            if not mask.is_significant(level_i):
                continue
            if hash_i < hash_offset:
                hash_i += 1
                continue

            if hash_i == hash_offset:
                data = bits.to_padded_bytes()
            else:
                data = hashes[-1]

            child_level = level_i + 1 if is_merkle else level_i
            depth = 0
            for ref in refs:
                depth = max(depth, ref.depth(child_level))
            if refs:
                depth += 1

            hasher = hashlib.sha256()
            d1 = refs_descriptor(len(refs), self.is_exotic, mask.apply(level_i).mask)
            hasher.update(bytes((d1, d2)))
            hasher.update(data)
            for ref in refs:
                hasher.update(ref.depth(child_level).to_bytes(DEPTH_BYTES, "big"))
            for ref in refs:
                hasher.update(ref.hash(child_level))

            hashes.append(hasher.digest())
            depths.append(depth)
            hash_i += 1

        resolved_hashes = []
        resolved_depths = []
        for level in range(MAX_LEVEL + 1):
            index = mask.apply(level).hash_index
            if cell_type is CellType.PRUNED_BRANCH:
                if index != mask.hash_index:
                    stored_hash, stored_depth = pruned[index]
                    resolved_hashes.append(stored_hash)
                    resolved_depths.append(stored_depth)
                else:
                    resolved_hashes.append(hashes[0])
                    resolved_depths.append(depths[0])
            else:
                resolved_hashes.append(hashes[index])
                resolved_depths.append(depths[index])

        for depth in resolved_depths:
            if depth >> (DEPTH_BYTES * 8):
                raise CellError(f"Cell depth {depth} exceeds limit")

        return mask_value, resolved_hashes, resolved_depths

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cell):
            return NotImplemented
        return self.hash() == other.hash()

    def __hash__(self) -> int:
        return hash(self.hash())

    def __repr__(self) -> str:
        kind = "" if self.type is CellType.ORDINARY else f"{self.type.name} "
        return f"<Cell {kind}bits={self.bits.length} refs={len(self.refs)} hash={self.hash().hex()[:16]}>"


def pruned_branch(hash_value: bytes, depth: int) -> Cell:
    """Level-1 pruned branch: type(8) mask(8) hash(256) depth(16)."""
    if len(hash_value) != HASH_BYTES or not 0 <= depth < 1 << 16:
        raise CellError("Invalid pruned branch hash or depth")
    value = (CellType.PRUNED_BRANCH << 8) | 1
    value = (value << 256) | int.from_bytes(hash_value, "big")
    value = (value << 16) | depth
    return Cell(BitString(value, 8 + 8 + 256 + 16), exotic=True)


def convert_to_pruned_branch(cell: Cell) -> Cell:
    """Replace a level-0 subtree by a pruned branch with its hash and depth."""
    return pruned_branch(cell.hash(0), cell.depth(0))


def convert_to_merkle_proof(cell: Cell) -> Cell:
    """Wrap a (pruned) tree into a Merkle proof cell pointing at its level-0 hash."""
    value = (CellType.MERKLE_PROOF << 256) | int.from_bytes(cell.hash(0), "big")
    value = (value << 16) | cell.depth(0)
    return Cell(BitString(value, 8 + 256 + 16), [cell], exotic=True)


def library_cell(code: Cell) -> Cell:
    """Library reference cell resolving to ``code`` by its representation hash."""
    value = (CellType.LIBRARY << 256) | int.from_bytes(code.hash(), "big")
    return Cell(BitString(value, 8 + 256), exotic=True)
