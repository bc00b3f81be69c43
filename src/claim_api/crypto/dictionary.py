"""
Mintless Claim API - Hashmap Dictionaries

Builds and parses ``Hashmap n X`` cell trees (binary Patricia trees over
n-bit keys). Keys are plain integers holding the n key bits.

Construction is canonical: each edge label is the longest common prefix of
the keys below it, encoded in the shortest of the three label forms
(hml_short, hml_long, hml_same; ties keep the earlier form). The root
therefore depends only on the key/value set, never on insertion order.
"""

from collections.abc import Callable, Iterator, Mapping
from typing import TypeVar

from claim_api.crypto.builder import Builder, Slice
from claim_api.crypto.cell import Cell, CellError

V = TypeVar("V")


def label_length_bits(key_bits: int) -> int:
    """Width of the length field in long/same labels: ceil(log2(n + 1))."""
    return key_bits.bit_length()


def write_label(builder: Builder, label: int, length: int, key_bits: int) -> None:
    """Store a label of ``length`` bits for an edge with ``key_bits`` bits left."""
    len_bits = label_length_bits(key_bits)
    kind = "short"
    size = 2 * length + 2
    if 2 + len_bits + length < size:
        kind = "long"
        size = 2 + len_bits + length
    is_same = length <= 1 or label == 0 or label == (1 << length) - 1
    if is_same and 3 + len_bits < size:
        kind = "same"

    if kind == "short":
        builder.store_bit(0)
        for _ in range(length):
            builder.store_bit(1)
        builder.store_bit(0)
        builder.store_uint(label, length)
    elif kind == "long":
        builder.store_uint(0b10, 2)
        builder.store_uint(length, len_bits)
        builder.store_uint(label, length)
    else:
        builder.store_uint(0b11, 2)
        builder.store_bit(label & 1)
        builder.store_uint(length, len_bits)


def read_label(src: Slice, key_bits: int) -> tuple[int, int]:
    """
    Read an edge label.

    Returns:
        (label, length) with ``label`` holding ``length`` bits

    Raises:
        CellError: If the label is longer than the remaining key
    """
    if not src.load_bit():
        length = 0
        while src.load_bit():
            length += 1
        if length > key_bits:
            raise CellError(f"Label of {length} bits exceeds {key_bits} key bits")
        label = src.load_uint(length)
    elif not src.load_bit():
        length = src.load_uint(label_length_bits(key_bits))
        if length > key_bits:
            raise CellError(f"Label of {length} bits exceeds {key_bits} key bits")
        label = src.load_uint(length)
    else:
        bit = src.load_bit()
        length = src.load_uint(label_length_bits(key_bits))
        if length > key_bits:
            raise CellError(f"Label of {length} bits exceeds {key_bits} key bits")
        label = (1 << length) - 1 if bit else 0
    return label, length


def _build_edge(
    items: list[tuple[int, V]],
    key_bits: int,
    store_value: Callable[[V, Builder], None],
) -> Cell:
    first, last = items[0][0], items[-1][0]
    if len(items) == 1:
        length = key_bits
    else:
        length = key_bits - (first ^ last).bit_length()
    remaining = key_bits - length

    builder = Builder()
    write_label(builder, first >> remaining, length, key_bits)
    if remaining == 0:
        store_value(items[0][1], builder)
        return builder.end_cell()

    branch_bit = 1 << (remaining - 1)
    suffix_mask = branch_bit - 1
    left = [(key & suffix_mask, value) for key, value in items if not key & branch_bit]
    right = [(key & suffix_mask, value) for key, value in items if key & branch_bit]
    builder.store_ref(_build_edge(left, remaining - 1, store_value))
    builder.store_ref(_build_edge(right, remaining - 1, store_value))
    return builder.end_cell()


def build_dictionary(
    items: Mapping[int, V],
    key_bits: int,
    store_value: Callable[[V, Builder], None],
) -> Cell:
    """
    Build the root cell of a non-empty ``Hashmap key_bits V``.

    Args:
        items: Mapping of integer keys to values
        key_bits: Key width in bits
        store_value: Serializer writing one value into a builder

    Returns:
        Dictionary root cell

    Raises:
        ValueError: If items is empty or a key does not fit in key_bits
    """
    if not items:
        raise ValueError("Cannot build a dictionary from empty items")
    for key in items:
        if key < 0 or key >> key_bits:
            raise ValueError(f"Key {key} does not fit in {key_bits} bits")
    ordered = sorted(items.items(), key=lambda item: item[0])
    return _build_edge(ordered, key_bits, store_value)


def iter_dictionary(
    root: Cell,
    key_bits: int,
    load_value: Callable[[Slice], V],
) -> Iterator[tuple[int, V]]:
    """
    Walk a dictionary in key order.

    ``load_value`` must consume the whole leaf value; leftover data in a leaf
    is an error. Exotic (pruned) cells are rejected.
    """
    stack = [(root, 0, key_bits)]
    while stack:
        cell, prefix, bits_left = stack.pop()
        src = cell.begin_parse()
        label, length = read_label(src, bits_left)
        prefix = (prefix << length) | label
        bits_left -= length
        if bits_left == 0:
            value = load_value(src)
            src.end_parse()
            yield prefix, value
            continue
        left = src.load_ref()
        right = src.load_ref()
        src.end_parse()
        stack.append((right, (prefix << 1) | 1, bits_left - 1))
        stack.append((left, prefix << 1, bits_left - 1))


def parse_dictionary(
    root: Cell,
    key_bits: int,
    load_value: Callable[[Slice], V],
) -> dict[int, V]:
    """Load every entry of a dictionary into a dict."""
    return dict(iter_dictionary(root, key_bits, load_value))


def find_leaf(root: Cell, key: int, key_bits: int) -> Slice | None:
    """
    Locate the value slice for ``key`` without parsing other entries.

    Pruned branches on the way are treated as absent, so this also works on
    the pruned dictionary inside an inclusion proof.
    """
    cell = root
    bits_left = key_bits
    while True:
        if cell.is_exotic:
            return None
        src = cell.begin_parse()
        label, length = read_label(src, bits_left)
        if label != (key >> (bits_left - length)) & ((1 << length) - 1):
            return None
        bits_left -= length
        if bits_left == 0:
            return src
        if len(cell.refs) != 2:
            raise CellError("Dictionary fork must have two references")
        branch = (key >> (bits_left - 1)) & 1
        cell = cell.refs[branch]
        bits_left -= 1
