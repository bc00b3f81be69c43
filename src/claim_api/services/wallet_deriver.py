"""
Mintless Claim API - Wallet Deriver

Derives the jetton wallet address and StateInit for an owner.

The wallet address is ``workchain:repr_hash(StateInit)`` where StateInit
carries the wallet code and the initial wallet data:

    status:uint4 balance:Coins owner:MsgAddress minter:MsgAddress
    merkle_root:uint256 salt:uint10

The salt is assigned by the minter and fetched per request through its
get-method; everything else is computed locally.
"""

import asyncio
import base64
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from claim_api.core.config import settings
from claim_api.core.errors import UpstreamError
from claim_api.crypto.address import Address
from claim_api.crypto.boc import serialize_boc
from claim_api.crypto.builder import begin_cell
from claim_api.crypto.cell import Cell
from claim_api.metrics import get_claim_metrics
from claim_api.services.toncenter_client import (
    NodeConnectionError,
    ToncenterClient,
    ToncenterClientError,
    address_param,
)

logger = structlog.get_logger(__name__)

SALT_BITS = 10
WALLET_STATUS_BITS = 4


@dataclass(frozen=True)
class SaltResponse:
    """Result of the minter salt get-method."""

    salt: int
    state_init: Cell | None = None


@dataclass(frozen=True)
class WalletDerivation:
    """
    Derived jetton wallet for one owner.

    Attributes:
        address: Wallet address
        state_init: StateInit cell deploying the wallet
        salt: Salt mixed into the wallet data
    """

    address: Address
    state_init: Cell
    salt: int

    @property
    def state_init_boc(self) -> bytes:
        return serialize_boc(self.state_init)

    def state_init_base64(self) -> str:
        return base64.b64encode(self.state_init_boc).decode("ascii")

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address.to_raw(),
            "state_init": self.state_init_base64(),
            "salt": self.salt,
        }


def pack_wallet_data(owner: Address, minter: Address, merkle_root: int, salt: int) -> Cell:
    """Initial data of a fresh mintless jetton wallet."""
    return (
        begin_cell()
        .store_uint(0, WALLET_STATUS_BITS)
        .store_coins(0)
        .store_address(owner)
        .store_address(minter)
        .store_uint(merkle_root, 256)
        .store_uint(salt, SALT_BITS)
        .end_cell()
    )


def build_state_init(code: Cell, data: Cell) -> Cell:
    """
    StateInit with code and data only.

    Bits: no split_depth, no special, code present, data present, no library.
    """
    return (
        begin_cell()
        .store_bit(0)
        .store_bit(0)
        .store_maybe_ref(code)
        .store_maybe_ref(data)
        .store_bit(0)
        .end_cell()
    )


class WalletDeriver:
    """
    Jetton wallet derivation bound to one minter, wallet code and root.

    Safe for concurrent use: derive() only reads its configuration and
    awaits the salt fetch in the calling task.
    """

    def __init__(
        self,
        minter: Address,
        wallet_code: Cell,
        merkle_root: bytes,
        salt_fetcher: Callable[[Address], Awaitable[SaltResponse]] | None = None,
        client: ToncenterClient | None = None,
        salt_timeout: float | None = None,
        workchain: int | None = None,
    ) -> None:
        """
        Initialize wallet deriver.

        Args:
            minter: Minter address
            wallet_code: Wallet code cell (usually a library reference)
            merkle_root: 32-byte commitment root
            salt_fetcher: Coroutine returning the owner's salt; defaults to
                calling the minter get-method through ``client``
            client: TON HTTP API client for the default salt fetcher
            salt_timeout: Deadline for one salt fetch in seconds
            workchain: Workchain of derived wallets
        """
        if salt_fetcher is None and client is None:
            raise ValueError("Either salt_fetcher or client is required")
        self.minter = minter
        self.wallet_code = wallet_code
        self.merkle_root = int.from_bytes(merkle_root, "big")
        self._client = client
        self._salt_fetcher = salt_fetcher or self.fetch_salt
        self._salt_timeout = salt_timeout if salt_timeout is not None else settings.UPSTREAM_SALT_TIMEOUT
        self._workchain = workchain if workchain is not None else settings.WALLET_WORKCHAIN

    def derive_with_salt(self, owner: Address, salt: int) -> WalletDerivation:
        """
        Compute the wallet for an owner and a known salt.

        Pure and deterministic.

        Raises:
            ValueError: If salt is outside the 10-bit range
        """
        if not 0 <= salt < 1 << SALT_BITS:
            raise ValueError(f"Salt {salt} does not fit in {SALT_BITS} bits")
        data = pack_wallet_data(owner, self.minter, self.merkle_root, salt)
        state_init = build_state_init(self.wallet_code, data)
        address = Address(self._workchain, state_init.hash())
        return WalletDerivation(address=address, state_init=state_init, salt=salt)

    async def derive(self, owner: Address) -> WalletDerivation:
        """
        Fetch the owner's salt and compute the wallet.

        Args:
            owner: Wallet owner

        Returns:
            WalletDerivation

        Raises:
            UpstreamError: If the salt fetch fails, times out, or the minter
                StateInit disagrees with the local derivation
        """
        metrics = get_claim_metrics()
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(self._salt_fetcher(owner), timeout=self._salt_timeout)
        except asyncio.TimeoutError as e:
            metrics.record_upstream_failure("timeout")
            logger.warning("Salt fetch timed out", owner=owner.to_raw(), timeout=self._salt_timeout)
            raise UpstreamError(
                f"Salt fetch timed out after {self._salt_timeout}s",
                retryable=True,
                timed_out=True,
            ) from e
        except UpstreamError as e:
            metrics.record_upstream_failure("transient" if e.retryable else "invalid_response")
            raise
        finally:
            metrics.observe_salt_fetch(time.monotonic() - start)

        try:
            derivation = self.derive_with_salt(owner, response.salt)
        except ValueError as e:
            metrics.record_upstream_failure("invalid_response")
            raise UpstreamError(f"Minter returned invalid salt: {e}") from e

        if response.state_init is not None and response.state_init.hash() != derivation.state_init.hash():
            metrics.record_upstream_failure("state_init_mismatch")
            logger.error(
                "Minter StateInit differs from local derivation",
                owner=owner.to_raw(),
                salt=response.salt,
                minter_hash=response.state_init.hash().hex(),
                local_hash=derivation.state_init.hash().hex(),
            )
            raise UpstreamError("Minter StateInit does not match the derived wallet")

        logger.debug("Wallet derived", owner=owner.to_raw(), wallet=derivation.address.to_raw(), salt=response.salt)
        return derivation

    async def fetch_salt(self, owner: Address) -> SaltResponse:
        """
        Call the minter salt get-method for an owner.

        Raises:
            UpstreamError: retryable for node failures, non-retryable for
                malformed results
        """
        try:
            stack = await self._client.run_get_method(
                self.minter,
                settings.SALT_GET_METHOD,
                [address_param(owner)],
            )
        except NodeConnectionError as e:
            raise UpstreamError(f"Salt fetch failed: {e}", retryable=True) from e
        except ToncenterClientError as e:
            raise UpstreamError(f"Invalid salt response: {e}") from e

        if len(stack) != 2 or not isinstance(stack[0], Cell) or not isinstance(stack[1], int):
            raise UpstreamError(f"{settings.SALT_GET_METHOD} returned an unexpected stack")
        return SaltResponse(salt=stack[1], state_init=stack[0])
