from fastapi import APIRouter, Depends

from echoecho.api.middleware.authentication.jwt_bearer import get_current_wallet
from echoecho.api.models.request_models import MeResponse
from echoecho.core.dependencies import get_entitlement_store, get_lifecycle_manager
from echoecho.core.service.entitlement.lifecycle import SubscriptionLifecycleManager
from echoecho.infra.repository.entitlement_store import EntitlementStore

router = APIRouter(tags=["users"])


@router.get("/me", response_model=MeResponse)
async def get_me(
    wallet_address: str = Depends(get_current_wallet),
    store: EntitlementStore = Depends(get_entitlement_store),
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle_manager)
) -> MeResponse:
    """Current user, created on first contact, with the reconciled tier"""
    await store.create_user(wallet_address)
    status = await lifecycle.reconcile_user_status(wallet_address)
    user = await store.get_user(wallet_address)

    return MeResponse(
        user=user,
        tier=status.tier,
        subscription=status.subscription,
        is_admin=lifecycle.is_admin(wallet_address)
    )
