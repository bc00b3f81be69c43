"""
Mintless Claim API - Jetton Minter Bootstrap

Resolves the issuing minter at startup: reads its identity file, fetches
its on-chain state once, and extracts the wallet code and the published
merkle root from its data.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from claim_api.core.config import settings
from claim_api.core.errors import FormatError, UpstreamError
from claim_api.crypto.address import Address, AddressError
from claim_api.crypto.boc import BocError, boc_to_cell
from claim_api.crypto.cell import Cell, CellError, library_cell
from claim_api.services.toncenter_client import (
    NodeConnectionError,
    ToncenterClient,
    ToncenterClientError,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MinterData:
    """Decoded persistent data of a mintless jetton minter."""

    total_supply: int
    admin: Address | None
    next_admin: Address | None
    wallet_code: Cell
    metadata: Cell
    merkle_root: int


@dataclass(frozen=True)
class MinterContext:
    """
    Everything wallet derivation needs to know about the minter.

    Attributes:
        address: Minter address
        wallet_code: Code cell placed into every wallet StateInit
        merkle_root: Root published in the minter data (None if not fetched)
        balance: Minter balance at bootstrap time
    """

    address: Address
    wallet_code: Cell
    merkle_root: int | None = None
    balance: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address.to_raw(),
            "wallet_code_hash": self.wallet_code.hash().hex(),
            "merkle_root": f"{self.merkle_root:064x}" if self.merkle_root is not None else None,
            "balance": str(self.balance),
        }


def load_minter_identity(path: str | Path) -> Address:
    """
    Read the minter address from its identity file.

    The file is a JSON object with an ``address`` field.

    Raises:
        FormatError: If the file is missing, not JSON, or has no valid address
    """
    try:
        document = json.loads(Path(path).read_text())
    except (OSError, ValueError) as e:
        raise FormatError(f"Cannot read minter identity {path}: {e}") from e

    if not isinstance(document, dict) or not isinstance(document.get("address"), str):
        raise FormatError(f"Minter identity {path} has no address")
    try:
        return Address.parse(document["address"])
    except AddressError as e:
        raise FormatError(f"Invalid minter address in {path}: {e}") from e


def parse_minter_data(data: Cell) -> MinterData:
    """
    Decode minter persistent data.

    Layout: total_supply:Coins admin:MsgAddress next_admin:MsgAddress
    wallet_code:^Cell metadata:^Cell merkle_root:uint256

    Raises:
        CellError: If the data does not match the layout
    """
    src = data.begin_parse()
    minter_data = MinterData(
        total_supply=src.load_coins(),
        admin=src.load_maybe_address(),
        next_admin=src.load_maybe_address(),
        wallet_code=src.load_ref(),
        metadata=src.load_ref(),
        merkle_root=src.load_uint(256),
    )
    src.end_parse()
    return minter_data


def load_wallet_code(path: str | Path, as_library: bool) -> Cell:
    """
    Load compiled wallet code from a BoC file.

    Args:
        path: Path to the code BoC
        as_library: Wrap the code into a library reference cell

    Raises:
        FormatError: If the file cannot be read or parsed
    """
    try:
        code = boc_to_cell(Path(path).read_bytes())
    except OSError as e:
        raise FormatError(f"Cannot read wallet code {path}: {e}") from e
    except BocError as e:
        raise FormatError(f"Invalid wallet code BoC {path}: {e}") from e
    return library_cell(code) if as_library else code


async def bootstrap_minter(
    client: ToncenterClient,
    address: Address,
    snapshot_root: bytes,
) -> MinterContext:
    """
    Fetch minter state and build the derivation context.

    Args:
        client: Connected TON HTTP API client
        address: Minter address
        snapshot_root: Root of the loaded commitment

    Returns:
        MinterContext

    Raises:
        UpstreamError: If the state cannot be fetched
        FormatError: If the minter is inactive, its data is malformed, or its
            root disagrees with the snapshot (when verification is enabled)
    """
    logger.info("Loading minter state", address=address.to_raw())
    try:
        state = await client.get_account_state(address)
    except NodeConnectionError as e:
        raise UpstreamError(f"Cannot fetch minter state: {e}", retryable=True) from e
    except ToncenterClientError as e:
        raise UpstreamError(f"Invalid minter state response: {e}") from e

    if not state.is_active:
        raise FormatError(f"Minter {address.to_raw()} is not active (state: {state.state})")
    if state.code is None:
        raise FormatError(f"Minter {address.to_raw()} has no code")
    if state.data is None:
        raise FormatError(f"Minter {address.to_raw()} has no data")

    try:
        minter_data = parse_minter_data(state.data)
    except CellError as e:
        raise FormatError(f"Unexpected minter data layout: {e}") from e

    if settings.JETTON_WALLET_CODE_PATH:
        wallet_code = load_wallet_code(settings.JETTON_WALLET_CODE_PATH, settings.WALLET_CODE_AS_LIBRARY)
        logger.info(
            "Using wallet code from file",
            path=settings.JETTON_WALLET_CODE_PATH,
            as_library=settings.WALLET_CODE_AS_LIBRARY,
        )
    else:
        wallet_code = minter_data.wallet_code

    snapshot_root_int = int.from_bytes(snapshot_root, "big")
    if minter_data.merkle_root != snapshot_root_int:
        if settings.VERIFY_ONCHAIN_ROOT:
            raise FormatError(
                f"Minter merkle root {minter_data.merkle_root:064x} does not match "
                f"snapshot root {snapshot_root.hex()}"
            )
        logger.warning(
            "Minter merkle root differs from snapshot root",
            minter_root=f"{minter_data.merkle_root:064x}",
            snapshot_root=snapshot_root.hex(),
        )

    context = MinterContext(
        address=address,
        wallet_code=wallet_code,
        merkle_root=minter_data.merkle_root,
        balance=state.balance,
    )
    logger.info("Minter state loaded", **context.to_dict())
    return context
