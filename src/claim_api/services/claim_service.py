"""
Mintless Claim API - Claim Service

Composes the commitment store, proof generator, payload encoder and wallet
deriver into one lookup per request, and owns their startup lifecycle.
"""

import asyncio
import base64
import os
import signal
import time
from dataclasses import dataclass
from typing import Any

import structlog

from claim_api.core.config import settings
from claim_api.core.errors import EncodingMismatch, ParseError, UpstreamError
from claim_api.crypto.address import ADDRESS_BITS, Address, AddressError
from claim_api.crypto.merkle import verify_inclusion
from claim_api.metrics import get_claim_metrics
from claim_api.services import payload_encoder
from claim_api.services.commitment_store import ClaimEntry, CommitmentStore, address_key
from claim_api.services.minter import bootstrap_minter, load_minter_identity
from claim_api.services.proof_generator import ProofGenerator
from claim_api.services.toncenter_client import ToncenterClient
from claim_api.services.wallet_deriver import WalletDerivation, WalletDeriver

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClaimLookupResult:
    """Everything a wallet needs to claim for one eligible owner."""

    owner: Address
    entry: ClaimEntry
    custom_payload: bytes
    wallet: WalletDerivation

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wallet API response shape."""
        return {
            "owner": self.owner.to_raw(),
            "jetton_wallet": self.wallet.address.to_raw(),
            "custom_payload": base64.b64encode(self.custom_payload).decode("ascii"),
            "state_init": self.wallet.state_init_base64(),
            "compressed_info": {
                "amount": str(self.entry.amount),
                "start_from": str(self.entry.start_from),
                "expired_at": str(self.entry.expire_at),
            },
        }


def parse_owner(raw_address: str) -> Address:
    """
    Parse an owner address in raw or user-friendly form.

    Raises:
        ParseError: If the address is malformed
    """
    try:
        return Address.parse(raw_address)
    except AddressError as e:
        raise ParseError(f"Invalid owner address: {e}") from e


class ClaimService:
    """
    Claim lookup service.

    Orchestrates:
    - Snapshot loading and minter bootstrap at startup
    - Per-request proof extraction and payload encoding
    - Concurrent wallet derivation through the minter
    - Integrity self-checks of every served proof
    """

    def __init__(
        self,
        store: CommitmentStore | None = None,
        deriver: WalletDeriver | None = None,
        client: ToncenterClient | None = None,
    ) -> None:
        """
        Initialize claim service.

        Components passed in are used as-is; missing ones are built by
        initialize() from settings.
        """
        self.store = store
        self.deriver = deriver
        self.generator = ProofGenerator(store) if store is not None else None
        self._client = client
        self._minter_info: dict[str, Any] | None = None
        self._initialized = store is not None and deriver is not None
        self.integrity_ok = True

    @property
    def client(self) -> ToncenterClient | None:
        return self._client

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.integrity_ok

    async def initialize(self) -> None:
        """
        Load the snapshot, bootstrap the minter and self-check.

        Raises:
            FormatError: If the snapshot or minter state is unusable
            UpstreamError: If the minter state cannot be fetched
            EncodingMismatch: If the startup self-check fails
        """
        logger.info("Initializing Claim Service")

        if self.store is None:
            self.store = await asyncio.to_thread(CommitmentStore.from_file, settings.SNAPSHOT_PATH)
            self.generator = ProofGenerator(self.store)

        if self.deriver is None:
            minter_address = load_minter_identity(settings.MINTER_FILE)
            if self._client is None:
                self._client = ToncenterClient()
            await self._client.connect()
            context = await bootstrap_minter(self._client, minter_address, self.store.root())
            self._minter_info = context.to_dict()
            self.deriver = WalletDeriver(
                minter=context.address,
                wallet_code=context.wallet_code,
                merkle_root=self.store.root(),
                client=self._client,
            )

        await asyncio.to_thread(self._self_check)

        metrics = get_claim_metrics()
        metrics.set_snapshot(
            entries=self.store.entry_count,
            root=self.store.root().hex(),
            minter=self.deriver.minter.to_raw(),
        )

        self._initialized = True
        logger.info(
            "Claim Service initialized",
            entries=self.store.entry_count,
            root=self.store.root().hex(),
            minter=self.deriver.minter.to_raw(),
        )

    async def shutdown(self) -> None:
        """Shutdown service and close connections."""
        logger.info("Shutting down Claim Service")
        if self._client is not None:
            await self._client.disconnect()
        self._initialized = False

    async def lookup(self, raw_address: str) -> ClaimLookupResult | None:
        """
        Resolve claim data for an owner.

        Args:
            raw_address: Owner address as received in the request

        Returns:
            ClaimLookupResult, or None if the owner is not eligible

        Raises:
            ParseError: If the address is malformed
            UpstreamError: If wallet derivation fails
            EncodingMismatch: If the proof fails its self-check
        """
        metrics = get_claim_metrics()
        start = time.monotonic()

        try:
            owner = parse_owner(raw_address)
        except ParseError:
            metrics.record_lookup("invalid_address")
            raise

        entry = self.store.get(owner)
        if entry is None:
            metrics.record_lookup("ineligible", time.monotonic() - start)
            logger.debug("Owner not eligible", owner=owner.to_raw())
            return None

        payload_task = asyncio.create_task(asyncio.to_thread(self._build_payload, owner, entry))
        derive_task = asyncio.create_task(self.deriver.derive(owner))
        try:
            custom_payload, derivation = await asyncio.gather(payload_task, derive_task)
        except UpstreamError:
            metrics.record_lookup("upstream_error", time.monotonic() - start)
            raise
        except EncodingMismatch:
            metrics.record_lookup("integrity_error", time.monotonic() - start)
            self._on_integrity_failure()
            raise
        finally:
            # Stop whichever half is still running
            for task in (payload_task, derive_task):
                if not task.done():
                    task.cancel()

        metrics.record_lookup("eligible", time.monotonic() - start)
        return ClaimLookupResult(
            owner=owner,
            entry=entry,
            custom_payload=custom_payload,
            wallet=derivation,
        )

    def status(self) -> dict[str, Any]:
        """Get service status."""
        upstream = None
        if self._client is not None:
            upstream = {
                "endpoint": self._client.endpoint,
                "connected": self._client.is_connected,
            }
        return {
            "initialized": self._initialized,
            "integrity_ok": self.integrity_ok,
            "snapshot": {
                "root": self.store.root().hex(),
                "entries": self.store.entry_count,
            } if self.store is not None else None,
            "minter": self._minter_info or (
                {"address": self.deriver.minter.to_raw()} if self.deriver is not None else None
            ),
            "upstream": upstream,
        }

    def _build_payload(self, owner: Address, entry: ClaimEntry) -> bytes:
        """Extract, self-check and encode the proof (runs in a worker thread)."""
        start = time.monotonic()
        proof = self.generator.prove_for(owner)
        if proof is None:
            raise EncodingMismatch(f"Owner {owner.to_raw()} has an entry but no proof path")

        valid = verify_inclusion(
            proof,
            self.store.root(),
            address_key(owner),
            ADDRESS_BITS,
            entry.to_bits(),
        )
        payload = payload_encoder.encode(proof) if valid else b""
        get_claim_metrics().record_proof(time.monotonic() - start, len(payload), valid)
        if not valid:
            raise EncodingMismatch(f"Proof for {owner.to_raw()} does not verify against the loaded root")
        return payload

    def _self_check(self) -> None:
        """Prove and decode one owner to confirm the commitment is servable."""
        owner = next(iter(self.store.owners()), None)
        if owner is None:
            return
        payload = self._build_payload(owner, self.store.get(owner))
        proof = payload_encoder.decode(payload)
        if proof.compute_root() != self.store.root():
            raise EncodingMismatch("Decoded startup proof does not match the loaded root")
        logger.info("Startup proof self-check passed", owner=owner.to_raw(), payload_bytes=len(payload))

    def _on_integrity_failure(self) -> None:
        self.integrity_ok = False
        logger.critical(
            "Served proof failed integrity check",
            root=self.store.root().hex(),
            abort=settings.ABORT_ON_INTEGRITY_FAILURE,
        )
        if settings.ABORT_ON_INTEGRITY_FAILURE:
            os.kill(os.getpid(), signal.SIGTERM)
