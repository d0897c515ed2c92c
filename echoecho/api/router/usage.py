from fastapi import APIRouter, Depends

from echoecho.api.middleware.authentication.jwt_bearer import get_current_wallet
from echoecho.api.models.request_models import UsageResponse
from echoecho.core.dependencies import get_usage_gate
from echoecho.core.service.entitlement.models import UsageCategory
from echoecho.core.service.entitlement.usage_gate import UsageMeteringGate

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/{category}", response_model=UsageResponse)
async def get_usage(
    category: UsageCategory,
    wallet_address: str = Depends(get_current_wallet),
    gate: UsageMeteringGate = Depends(get_usage_gate)
) -> UsageResponse:
    """Today's quota position for a metered category"""
    usage = await gate.check(wallet_address, category)
    return UsageResponse(usage=usage, unlimited=usage.unlimited)
