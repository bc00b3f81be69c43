"""
Mintless Claim API v1

Endpoints:
- GET /wallet/{owner_address} - Claim information for a wallet owner
"""

from fastapi import APIRouter

from claim_api.api.v1.endpoints import wallets

router = APIRouter()
router.include_router(wallets.router, prefix="/wallet", tags=["Wallets"])
