"""
Mintless Claim API - Account Addresses

Standard internal addresses (addr_std without anycast) in the two textual
forms wallets use:
- raw: ``<workchain>:<64 hex chars>``
- user-friendly: 36 bytes base64/base64url encoded
  (flags, workchain, hash, CRC16-XMODEM)
"""

import base64
import binascii
import re
from dataclasses import dataclass

from claim_api.crypto.cell import BitString

BOUNCEABLE_TAG = 0x11
NON_BOUNCEABLE_TAG = 0x51
TESTNET_FLAG = 0x80

# addr_std$10 anycast:(Maybe Anycast) workchain_id:int8 address:bits256
ADDRESS_BITS = 2 + 1 + 8 + 256

RAW_ADDRESS_RE = re.compile(r"-?[0-9]+:[0-9a-fA-F]{64}")


class AddressError(ValueError):
    """Malformed textual or binary address."""

    pass


def crc16(data: bytes) -> bytes:
    """CRC16-XMODEM checksum, big-endian."""
    return binascii.crc_hqx(data, 0).to_bytes(2, "big")


@dataclass(frozen=True)
class Address:
    """
    Standard internal account address.

    Attributes:
        workchain: Workchain id (signed 8-bit)
        hash_part: 32-byte account id
    """

    workchain: int
    hash_part: bytes

    def __post_init__(self) -> None:
        if not -128 <= self.workchain <= 127:
            raise AddressError(f"Workchain {self.workchain} out of int8 range")
        if len(self.hash_part) != 32:
            raise AddressError("Account id must be 32 bytes")

    @classmethod
    def parse(cls, text: str) -> "Address":
        """
        Parse either textual form.

        Args:
            text: Raw (``0:abcd...``) or user-friendly address

        Returns:
            Parsed Address

        Raises:
            AddressError: If the text is not a valid address
        """
        text = text.strip()
        if ":" in text:
            return cls.parse_raw(text)
        return cls.parse_friendly(text)

    @classmethod
    def parse_raw(cls, text: str) -> "Address":
        if not RAW_ADDRESS_RE.fullmatch(text):
            raise AddressError(f"Raw address must be <workchain>:<64 hex chars>: {text!r}")
        workchain_text, _, hash_text = text.partition(":")
        return cls(int(workchain_text), bytes.fromhex(hash_text))

    @classmethod
    def parse_friendly(cls, text: str) -> "Address":
        if len(text) != 48 or not text.isascii():
            raise AddressError(f"User-friendly address must be 48 ASCII chars: {text!r}")
        normalized = text.replace("-", "+").replace("_", "/")
        try:
            data = base64.b64decode(normalized, validate=True)
        except binascii.Error:
            raise AddressError(f"Invalid base64 in address: {text!r}") from None
        if len(data) != 36:
            raise AddressError("User-friendly address must decode to 36 bytes")
        if crc16(data[:34]) != data[34:]:
            raise AddressError("Address checksum mismatch")

        tag = data[0] & ~TESTNET_FLAG
        if tag not in (BOUNCEABLE_TAG, NON_BOUNCEABLE_TAG):
            raise AddressError(f"Unknown address tag 0x{data[0]:02x}")
        workchain = int.from_bytes(data[1:2], "big", signed=True)
        return cls(workchain, data[2:34])

    def to_raw(self) -> str:
        return f"{self.workchain}:{self.hash_part.hex()}"

    def to_friendly(
        self,
        bounceable: bool = True,
        testnet: bool = False,
        url_safe: bool = True,
    ) -> str:
        tag = BOUNCEABLE_TAG if bounceable else NON_BOUNCEABLE_TAG
        if testnet:
            tag |= TESTNET_FLAG
        body = bytes([tag]) + self.workchain.to_bytes(1, "big", signed=True) + self.hash_part
        data = body + crc16(body)
        if url_safe:
            return base64.urlsafe_b64encode(data).decode("ascii")
        return base64.b64encode(data).decode("ascii")

    def to_bits(self) -> BitString:
        """267-bit addr_std serialization, also used as dictionary key."""
        value = 0b100
        value = (value << 8) | (self.workchain & 0xFF)
        value = (value << 256) | int.from_bytes(self.hash_part, "big")
        return BitString(value, ADDRESS_BITS)

    @classmethod
    def from_bits(cls, bits: BitString) -> "Address":
        if bits.length != ADDRESS_BITS:
            raise AddressError(f"Address must be {ADDRESS_BITS} bits")
        if bits.substring(0, 3).value != 0b100:
            raise AddressError("Only addr_std without anycast is supported")
        workchain = bits.substring(3, 8).value
        if workchain >= 128:
            workchain -= 256
        return cls(workchain, bits.substring(11, 256).to_bytes())

    def __str__(self) -> str:
        return self.to_raw()
