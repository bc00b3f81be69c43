"""
Mintless Claim API - Cell Builder and Slice

Sequential writer and reader for cell contents. Covers the TL-B primitives
the claim service needs: fixed-width integers, bits, Coins
(VarUInteger 16), addresses, and (maybe-)references.
"""

from claim_api.crypto.address import ADDRESS_BITS, Address, AddressError
from claim_api.crypto.cell import (
    EMPTY_BITS,
    MAX_CELL_BITS,
    MAX_CELL_REFS,
    BitString,
    Cell,
    CellError,
)

COINS_LENGTH_BITS = 4
MAX_COINS = (1 << 120) - 1


class Builder:
    """
    Cell builder.

    All ``store_*`` methods return the builder so calls can be chained:

        >>> cell = Builder().store_uint(3, 8).store_coins(10).end_cell()
    """

    def __init__(self) -> None:
        self._value = 0
        self._length = 0
        self._refs: list[Cell] = []

    @property
    def bits(self) -> int:
        return self._length

    @property
    def refs(self) -> int:
        return len(self._refs)

    def store_uint(self, value: int, bits: int) -> "Builder":
        if bits < 0:
            raise CellError("Bit width cannot be negative")
        if value < 0 or value >> bits:
            raise CellError(f"Value {value} does not fit in uint{bits}")
        if self._length + bits > MAX_CELL_BITS:
            raise CellError("Cell overflow")
        self._value = (self._value << bits) | value
        self._length += bits
        return self

    def store_int(self, value: int, bits: int) -> "Builder":
        if bits == 0:
            if value != 0:
                raise CellError(f"Value {value} does not fit in int0")
            return self
        low = -(1 << (bits - 1))
        if not low <= value < -low:
            raise CellError(f"Value {value} does not fit in int{bits}")
        return self.store_uint(value & ((1 << bits) - 1), bits)

    def store_bit(self, bit: bool | int) -> "Builder":
        return self.store_uint(1 if bit else 0, 1)

    def store_bits(self, bits: BitString) -> "Builder":
        return self.store_uint(bits.value, bits.length)

    def store_bytes(self, data: bytes) -> "Builder":
        return self.store_uint(int.from_bytes(data, "big"), len(data) * 8)

    def store_coins(self, amount: int) -> "Builder":
        """Store ``amount`` as VarUInteger 16 (4-bit byte length, then bytes)."""
        if amount < 0 or amount > MAX_COINS:
            raise CellError(f"Coins value {amount} out of range")
        size = (amount.bit_length() + 7) // 8
        self.store_uint(size, COINS_LENGTH_BITS)
        return self.store_uint(amount, size * 8)

    def store_address(self, address: Address | None) -> "Builder":
        """Store addr_std, or addr_none for ``None``."""
        if address is None:
            return self.store_uint(0, 2)
        return self.store_bits(address.to_bits())

    def store_ref(self, cell: Cell) -> "Builder":
        if len(self._refs) >= MAX_CELL_REFS:
            raise CellError("Too many references")
        self._refs.append(cell)
        return self

    def store_maybe_ref(self, cell: Cell | None) -> "Builder":
        if cell is None:
            return self.store_bit(0)
        self.store_bit(1)
        return self.store_ref(cell)

    def store_slice(self, src: "Slice") -> "Builder":
        """Append everything still unread in ``src``."""
        self.store_bits(src.load_bits(src.remaining_bits))
        while src.remaining_refs:
            self.store_ref(src.load_ref())
        return self

    def end_cell(self, exotic: bool = False) -> Cell:
        return Cell(BitString(self._value, self._length), self._refs, exotic=exotic)


class Slice:
    """Sequential reader over a cell's bits and references."""

    def __init__(self, cell: Cell) -> None:
        self._bits = cell.bits
        self._refs = cell.refs
        self._bit_pos = 0
        self._ref_pos = 0

    @property
    def remaining_bits(self) -> int:
        return self._bits.length - self._bit_pos

    @property
    def remaining_refs(self) -> int:
        return len(self._refs) - self._ref_pos

    def load_bits(self, bits: int) -> BitString:
        if bits < 0 or bits > self.remaining_bits:
            raise CellError(f"Cannot read {bits} bits, {self.remaining_bits} left")
        if bits == 0:
            return EMPTY_BITS
        chunk = self._bits.substring(self._bit_pos, bits)
        self._bit_pos += bits
        return chunk

    def preload_uint(self, bits: int) -> int:
        if bits < 0 or bits > self.remaining_bits:
            raise CellError(f"Cannot read {bits} bits, {self.remaining_bits} left")
        if bits == 0:
            return 0
        return self._bits.substring(self._bit_pos, bits).value

    def load_uint(self, bits: int) -> int:
        return self.load_bits(bits).value

    def load_int(self, bits: int) -> int:
        value = self.load_uint(bits)
        if bits and value >> (bits - 1):
            value -= 1 << bits
        return value

    def load_bit(self) -> bool:
        return self.load_uint(1) == 1

    def load_bytes(self, size: int) -> bytes:
        return self.load_bits(size * 8).to_bytes()

    def load_coins(self) -> int:
        size = self.load_uint(COINS_LENGTH_BITS)
        return self.load_uint(size * 8)

    def load_maybe_address(self) -> Address | None:
        """Load addr_none (returned as ``None``) or addr_std."""
        tag = self.preload_uint(2)
        if tag == 0b00:
            self.load_uint(2)
            return None
        if tag != 0b10:
            raise CellError(f"Unsupported address tag {tag:02b}")
        try:
            return Address.from_bits(self.load_bits(ADDRESS_BITS))
        except AddressError as e:
            raise CellError(str(e)) from e

    def load_address(self) -> Address:
        address = self.load_maybe_address()
        if address is None:
            raise CellError("Expected an address, got addr_none")
        return address

    def load_ref(self) -> Cell:
        if self._ref_pos >= len(self._refs):
            raise CellError("No references left")
        ref = self._refs[self._ref_pos]
        self._ref_pos += 1
        return ref

    def load_maybe_ref(self) -> Cell | None:
        if self.load_bit():
            return self.load_ref()
        return None

    def end_parse(self) -> None:
        """Ensure the slice was consumed completely."""
        if self.remaining_bits or self.remaining_refs:
            raise CellError(
                f"Unparsed data left: {self.remaining_bits} bits, {self.remaining_refs} refs"
            )


def begin_cell() -> Builder:
    return Builder()
