"""
Mintless Claim API - Bag of Cells Serialization

Encodes and decodes cell trees in the standard BoC container:

    magic(4) flags(1) off_bytes(1) cells roots absent tot_cells_size
    root_list [index] cell_data [crc32c]

Serialization is canonical: cells are deduplicated by representation hash
and ordered parents-first, so equal trees always produce identical bytes.
"""

from claim_api.crypto.cell import (
    BitString,
    Cell,
    CellError,
    LevelMask,
    bits_descriptor,
    refs_descriptor,
)

BOC_GENERIC_MAGIC = bytes.fromhex("b5ee9c72")
BOC_INDEXED_MAGIC = bytes.fromhex("68ff65f3")
BOC_INDEXED_CRC32C_MAGIC = bytes.fromhex("acc3a728")


class BocError(ValueError):
    """Malformed or unsupported bag of cells."""

    pass


def _make_crc32c_table() -> list[int]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            crc = (crc >> 1) ^ 0x82F63B78 if crc & 1 else crc >> 1
        table.append(crc)
    return table


_CRC32C_TABLE = _make_crc32c_table()


def crc32c(data: bytes) -> int:
    """CRC-32C (Castagnoli) checksum."""
    crc = 0xFFFFFFFF
    table = _CRC32C_TABLE
    for byte in data:
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


def _topological_order(root: Cell) -> tuple[list[Cell], dict[bytes, int]]:
    """Unique cells of the tree, parents before children, root first."""
    cells: dict[bytes, Cell] = {}
    pending = [root]
    while pending:
        current, pending = pending, []
        for cell in current:
            key = cell.hash()
            if key in cells:
                continue
            cells[key] = cell
            pending.extend(cell.refs)

    unvisited = dict.fromkeys(cells)
    in_progress: set[bytes] = set()
    post_order: list[bytes] = []

    while unvisited:
        start = next(iter(unvisited))
        in_progress.add(start)
        stack = [(start, iter(reversed(cells[start].refs)))]
        while stack:
            key, children = stack[-1]
            for child in children:
                child_key = child.hash()
                if child_key not in unvisited:
                    continue
                if child_key in in_progress:
                    raise BocError("Cell graph is not acyclic")
                in_progress.add(child_key)
                stack.append((child_key, iter(reversed(child.refs))))
                break
            else:
                stack.pop()
                in_progress.discard(key)
                del unvisited[key]
                post_order.append(key)

    ordered = [cells[key] for key in reversed(post_order)]
    indexes = {cell.hash(): i for i, cell in enumerate(ordered)}
    return ordered, indexes


def _serialize_cell(cell: Cell, ref_indexes: list[int], size_bytes: int) -> bytes:
    d1 = refs_descriptor(len(cell.refs), cell.is_exotic, cell.level_mask)
    d2 = bits_descriptor(cell.bits.length)
    out = bytearray((d1, d2))
    out += cell.bits.to_padded_bytes()
    for index in ref_indexes:
        out += index.to_bytes(size_bytes, "big")
    return bytes(out)


def serialize_boc(root: Cell, with_index: bool = False, with_crc32c: bool = True) -> bytes:
    """
    Serialize a single-root cell tree.

    Args:
        root: Root cell
        with_index: Include the cell offset index
        with_crc32c: Append a CRC32-C checksum

    Returns:
        BoC bytes
    """
    cells, indexes = _topological_order(root)
    cell_count = len(cells)
    size_bytes = max((max(cell_count.bit_length(), 1) + 7) // 8, 1)

    blobs = []
    offsets = []
    total_size = 0
    for cell in cells:
        blob = _serialize_cell(cell, [indexes[ref.hash()] for ref in cell.refs], size_bytes)
        blobs.append(blob)
        total_size += len(blob)
        offsets.append(total_size)
    offset_bytes = max((max(total_size.bit_length(), 1) + 7) // 8, 1)

    flags = (0x80 if with_index else 0) | (0x40 if with_crc32c else 0) | size_bytes
    out = bytearray(BOC_GENERIC_MAGIC)
    out.append(flags)
    out.append(offset_bytes)
    out += cell_count.to_bytes(size_bytes, "big")
    out += (1).to_bytes(size_bytes, "big")  # roots
    out += (0).to_bytes(size_bytes, "big")  # absent
    out += total_size.to_bytes(offset_bytes, "big")
    out += (0).to_bytes(size_bytes, "big")  # root index
    if with_index:
        for offset in offsets:
            out += offset.to_bytes(offset_bytes, "big")
    for blob in blobs:
        out += blob
    if with_crc32c:
        out += crc32c(bytes(out)).to_bytes(4, "little")
    return bytes(out)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def read(self, size: int) -> bytes:
        if size < 0 or self.pos + size > len(self.data):
            raise BocError("Unexpected end of data")
        chunk = self.data[self.pos:self.pos + size]
        self.pos += size
        return chunk

    def read_uint(self, size: int) -> int:
        return int.from_bytes(self.read(size), "big")


def deserialize_boc(data: bytes) -> list[Cell]:
    """
    Parse a bag of cells.

    Args:
        data: BoC bytes

    Returns:
        Root cells, in root list order

    Raises:
        BocError: If the container or any cell is malformed
    """
    reader = _Reader(data)
    magic = reader.read(4)
    if magic == BOC_GENERIC_MAGIC:
        flags = reader.read_uint(1)
        has_index = bool(flags & 0x80)
        has_crc32c = bool(flags & 0x40)
        if flags & 0x18:
            raise BocError("Unsupported BoC flags")
        size_bytes = flags & 0x07
    elif magic in (BOC_INDEXED_MAGIC, BOC_INDEXED_CRC32C_MAGIC):
        has_index = True
        has_crc32c = magic == BOC_INDEXED_CRC32C_MAGIC
        size_bytes = reader.read_uint(1)
    else:
        raise BocError(f"Unknown BoC magic {magic.hex()}")

    if size_bytes < 1 or size_bytes > 4:
        raise BocError(f"Invalid reference size {size_bytes}")
    offset_bytes = reader.read_uint(1)
    if offset_bytes < 1 or offset_bytes > 8:
        raise BocError(f"Invalid offset size {offset_bytes}")

    cell_count = reader.read_uint(size_bytes)
    root_count = reader.read_uint(size_bytes)
    absent_count = reader.read_uint(size_bytes)
    total_size = reader.read_uint(offset_bytes)
    if root_count < 1 or root_count > cell_count:
        raise BocError(f"Invalid root count {root_count} for {cell_count} cells")
    if absent_count:
        raise BocError("Absent cells are not supported")

    if magic == BOC_GENERIC_MAGIC:
        roots = [reader.read_uint(size_bytes) for _ in range(root_count)]
    else:
        roots = [0]
    if has_index:
        reader.read(cell_count * offset_bytes)

    cells_start = reader.pos
    raw_cells: list[tuple[bool, int, BitString, list[int]]] = []
    for i in range(cell_count):
        d1 = reader.read_uint(1)
        d2 = reader.read_uint(1)
        ref_count = d1 & 0x07
        exotic = bool(d1 & 0x08)
        with_hashes = bool(d1 & 0x10)
        level_mask = d1 >> 5
        if ref_count > 4:
            raise BocError(f"Cell {i} has invalid reference count {ref_count}")
        if with_hashes:
            reader.read(LevelMask(level_mask).hash_count * (32 + 2))

        data_size = (d2 + 1) // 2
        payload = reader.read(data_size)
        try:
            if d2 % 2:
                bits = BitString.from_padded_bytes(payload)
            else:
                bits = BitString.from_bytes(payload)
        except CellError as e:
            raise BocError(f"Cell {i}: {e}") from e

        refs = [reader.read_uint(size_bytes) for _ in range(ref_count)]
        for ref in refs:
            if ref <= i or ref >= cell_count:
                raise BocError(f"Cell {i} has invalid reference {ref}")
        raw_cells.append((exotic, level_mask, bits, refs))

    if reader.pos - cells_start != total_size:
        raise BocError("Cell data size does not match header")

    if has_crc32c:
        expected = reader.read(4)
        if crc32c(data[:reader.pos - 4]).to_bytes(4, "little") != expected:
            raise BocError("CRC32-C mismatch")
    if reader.pos != len(data):
        raise BocError("Trailing data after BoC")

    built: list[Cell | None] = [None] * cell_count
    for i in range(cell_count - 1, -1, -1):
        exotic, level_mask, bits, refs = raw_cells[i]
        try:
            cell = Cell(bits, [built[ref] for ref in refs], exotic=exotic)
        except CellError as e:
            raise BocError(f"Cell {i}: {e}") from e
        if cell.level_mask != level_mask:
            raise BocError(f"Cell {i} level mask mismatch")
        built[i] = cell

    return [built[root] for root in roots]


def boc_to_cell(data: bytes) -> Cell:
    """Deserialize a BoC that must contain exactly one root."""
    roots = deserialize_boc(data)
    if len(roots) != 1:
        raise BocError(f"Expected a single root, got {len(roots)}")
    return roots[0]
