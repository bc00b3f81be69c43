"""
Mintless Claim API - TON HTTP API Client

Client for the toncenter v2 JSON-RPC endpoint.
Provides account state fetches and get-method calls against the jetton
minter, with retries on transient node failures.
"""

import base64
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from claim_api.core.config import settings
from claim_api.crypto.address import Address
from claim_api.crypto.boc import BocError, boc_to_cell, serialize_boc
from claim_api.crypto.builder import begin_cell
from claim_api.crypto.cell import Cell

logger = structlog.get_logger(__name__)

StackValue = int | Cell


class ToncenterClientError(Exception):
    """Base exception for TON HTTP API errors."""

    pass


class NodeConnectionError(ToncenterClientError):
    """Node unreachable, overloaded, or answered with a server error."""

    pass


class ResponseFormatError(ToncenterClientError):
    """Node answered with a structurally invalid response."""

    pass


class GetMethodError(ToncenterClientError):
    """Get-method finished with a non-zero exit code."""

    def __init__(self, method: str, exit_code: int) -> None:
        super().__init__(f"Get-method {method} failed with exit code {exit_code}")
        self.method = method
        self.exit_code = exit_code


@dataclass
class AccountState:
    """Account state as reported by getAddressInformation."""

    address: Address
    state: str
    balance: int
    code: Cell | None = None
    data: Cell | None = None

    @property
    def is_active(self) -> bool:
        return self.state == "active"

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address.to_raw(),
            "state": self.state,
            "balance": str(self.balance),
            "code_hash": self.code.hash().hex() if self.code else None,
            "data_hash": self.data.hash().hex() if self.data else None,
        }


def _decode_cell(value: Any, what: str) -> Cell:
    if not isinstance(value, str):
        raise ResponseFormatError(f"{what} is not a base64 string")
    try:
        return boc_to_cell(base64.b64decode(value, validate=True))
    except (ValueError, BocError) as e:
        raise ResponseFormatError(f"Invalid {what} BoC: {e}") from e


def slice_param(cell: Cell) -> list[str]:
    """Get-method stack argument holding ``cell`` as a slice."""
    return ["tvm.Slice", base64.b64encode(serialize_boc(cell)).decode("ascii")]


def address_param(address: Address) -> list[str]:
    """Get-method stack argument holding an address slice."""
    return slice_param(begin_cell().store_address(address).end_cell())


def parse_stack_entry(entry: Any) -> StackValue:
    """
    Decode one entry of a runGetMethod result stack.

    Supports ``["num", "0x.."]`` and ``["cell" | "slice", {"bytes": b64}]``.

    Raises:
        ResponseFormatError: If the entry has an unsupported or malformed form
    """
    if not isinstance(entry, list) or len(entry) != 2:
        raise ResponseFormatError(f"Malformed stack entry: {entry!r}")
    kind, value = entry
    if kind == "num":
        if not isinstance(value, str):
            raise ResponseFormatError("Stack number is not a string")
        try:
            return int(value, 0)
        except ValueError as e:
            raise ResponseFormatError(f"Invalid stack number {value!r}") from e
    if kind in ("cell", "slice"):
        if not isinstance(value, dict) or "bytes" not in value:
            raise ResponseFormatError(f"Stack {kind} has no bytes")
        return _decode_cell(value["bytes"], f"stack {kind}")
    raise ResponseFormatError(f"Unsupported stack entry type {kind!r}")


class ToncenterClient:
    """
    TON HTTP API client.

    Provides:
    - Node connection and health checking
    - Account state lookup
    - Get-method execution with stack decoding
    - Retry logic with exponential backoff for transient failures
    """

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """
        Initialize TON HTTP API client.

        Args:
            endpoint: API base URL (``.../api/v2``), defaults to settings
            api_key: Optional toncenter API key
            timeout: Per-request timeout in seconds
        """
        self._endpoint = (endpoint or settings.toncenter_endpoint).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.TONCENTER_API_KEY
        self._timeout = timeout if timeout is not None else settings.UPSTREAM_REQUEST_TIMEOUT
        self._client: httpx.AsyncClient | None = None
        self._connected = False
        self._request_id = 0

    @property
    def is_connected(self) -> bool:
        """Check if client is connected to node."""
        return self._connected and self._client is not None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def connect(self) -> None:
        """
        Open the HTTP session and verify the node answers.

        Raises:
            NodeConnectionError: If the node is unreachable
        """
        logger.info("Connecting to TON HTTP API", url=self._endpoint, api_key=bool(self._api_key))

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["X-API-Key"] = self._api_key
        self._client = httpx.AsyncClient(
            base_url=self._endpoint,
            timeout=httpx.Timeout(self._timeout),
            headers=headers,
        )

        if not await self.check_health():
            self._connected = False
            raise NodeConnectionError(f"TON HTTP API at {self._endpoint} is not reachable")
        self._connected = True
        logger.info("Connected to TON HTTP API", url=self._endpoint)

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self._connected = False
        logger.info("Disconnected from TON HTTP API")

    async def check_health(self) -> bool:
        """Check that the node serves masterchain info."""
        if self._client is None:
            return False
        try:
            await self._call_once("getMasterchainInfo", {})
            return True
        except ToncenterClientError:
            return False

    async def get_account_state(self, address: Address) -> AccountState:
        """
        Fetch code, data, balance and status of an account.

        Args:
            address: Account address

        Returns:
            AccountState with decoded code and data cells

        Raises:
            NodeConnectionError: If the node stays unreachable after retries
            ResponseFormatError: If the response cannot be decoded
        """
        result = await self.call("getAddressInformation", {"address": address.to_raw()})
        if not isinstance(result, dict):
            raise ResponseFormatError("getAddressInformation result is not an object")

        state = result.get("state")
        if not isinstance(state, str):
            raise ResponseFormatError("Account state is missing")
        try:
            balance = int(result.get("balance", 0))
        except (TypeError, ValueError) as e:
            raise ResponseFormatError(f"Invalid balance {result.get('balance')!r}") from e

        code = _decode_cell(result["code"], "code") if result.get("code") else None
        data = _decode_cell(result["data"], "data") if result.get("data") else None

        logger.debug("Account state fetched", address=address.to_raw(), state=state, balance=balance)
        return AccountState(address=address, state=state, balance=balance, code=code, data=data)

    async def run_get_method(
        self,
        address: Address,
        method: str,
        stack: list[list[str]] | None = None,
    ) -> list[StackValue]:
        """
        Execute a get-method and decode its result stack.

        Args:
            address: Contract address
            method: Get-method name
            stack: Arguments, e.g. ``[address_param(owner)]``

        Returns:
            Decoded stack values, bottom first

        Raises:
            GetMethodError: If the method exits with a non-zero code
            NodeConnectionError: If the node stays unreachable after retries
            ResponseFormatError: If the response cannot be decoded
        """
        result = await self.call(
            "runGetMethod",
            {"address": address.to_raw(), "method": method, "stack": stack or []},
        )
        if not isinstance(result, dict) or not isinstance(result.get("stack"), list):
            raise ResponseFormatError("runGetMethod result has no stack")

        exit_code = result.get("exit_code", 0)
        if exit_code not in (0, 1):
            raise GetMethodError(method, exit_code)
        return [parse_stack_entry(entry) for entry in result["stack"]]

    async def call(self, method: str, params: dict[str, Any]) -> Any:
        """JSON-RPC call with retry on transient failures."""
        if not self.is_connected:
            await self.connect()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.UPSTREAM_RETRY_COUNT),
            wait=wait_exponential(
                multiplier=settings.UPSTREAM_RETRY_DELAY,
                max=settings.UPSTREAM_RETRY_MAX_DELAY,
            ),
            retry=retry_if_exception_type(NodeConnectionError),
            reraise=True,
        ):
            with attempt:
                return await self._call_once(method, params)

    async def _call_once(self, method: str, params: dict[str, Any]) -> Any:
        self._request_id += 1
        body = {"id": self._request_id, "jsonrpc": "2.0", "method": method, "params": params}

        try:
            response = await self._client.post("/jsonRPC", json=body)
        except httpx.HTTPError as e:
            raise NodeConnectionError(f"{method} request failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(
                "TON HTTP API request rejected",
                method=method,
                status_code=response.status_code,
                response=response.text[:200],
            )
            raise NodeConnectionError(f"{method} returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ResponseFormatError(f"{method} returned non-JSON body") from e

        if not isinstance(payload, dict):
            raise ResponseFormatError(f"{method} returned a non-object body")
        if not payload.get("ok", False):
            raise ResponseFormatError(
                f"{method} failed: {payload.get('error', 'unknown error')} (code {payload.get('code')})"
            )
        return payload.get("result")
