"""
Mintless Claim API - Wallet Endpoints

Implements the claim lookup used by wallets before the first transfer of
a mintless jetton:
- GET /wallet/{owner_address}: Claim payload, wallet StateInit and claim terms
"""

import structlog
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from claim_api.core.errors import EncodingMismatch, ParseError, UpstreamError
from claim_api.services.claim_service import ClaimService

logger = structlog.get_logger(__name__)
router = APIRouter()


# Response Models
class CompressedInfo(BaseModel):
    """Claim terms, as decimal strings."""

    amount: str
    start_from: str
    expired_at: str


class WalletResponse(BaseModel):
    """
    Wallet claim information.

    Every field is omitted for owners outside the airdrop, so the body is
    an empty object.
    """

    owner: str | None = Field(default=None, description="Owner address in raw form")
    jetton_wallet: str | None = Field(default=None, description="Jetton wallet address in raw form")
    custom_payload: str | None = Field(
        default=None,
        description="Claim payload to attach to the transfer, base64 BoC",
    )
    state_init: str | None = Field(
        default=None,
        description="Wallet StateInit to attach to the transfer, base64 BoC",
    )
    compressed_info: CompressedInfo | None = None


def _get_claim_service(req: Request) -> ClaimService:
    claim_service = getattr(req.app.state, "claim_service", None)
    if claim_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Claim service not initialized",
        )
    return claim_service


# Endpoints
@router.get(
    "/{owner_address:path}",
    response_model=WalletResponse,
    response_model_exclude_none=True,
    summary="Get wallet claim information",
    description="Return the claim payload, wallet StateInit and claim terms for an owner.",
    responses={
        200: {"description": "Claim information, or {} if the owner is not eligible"},
        400: {"description": "Malformed owner address"},
        502: {"description": "Minter query failed"},
        504: {"description": "Minter query timed out"},
    },
)
async def get_wallet(owner_address: str, req: Request) -> WalletResponse:
    """
    Get claim information for a wallet owner.

    The address is the owner's address (raw ``wc:hex`` or user-friendly),
    not the jetton wallet address.
    """
    claim_service = _get_claim_service(req)

    try:
        result = await claim_service.lookup(owner_address)
        if result is None:
            return WalletResponse()
        return WalletResponse(**result.to_dict())

    except ParseError as e:
        logger.info("Rejected owner address", owner=owner_address, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except UpstreamError as e:
        logger.error(
            "Wallet derivation failed",
            owner=owner_address,
            retryable=e.retryable,
            timed_out=e.timed_out,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT if e.timed_out else status.HTTP_502_BAD_GATEWAY,
            detail=f"Minter query failed: {e}",
        )
    except EncodingMismatch as e:
        logger.critical("Refusing to serve inconsistent proof", owner=owner_address, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Commitment integrity check failed",
        )
    except Exception as e:
        logger.error("Failed to get wallet", owner=owner_address, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get wallet: {e}",
        )
