from fastapi import APIRouter, Depends

from echoecho.api.middleware.authentication.jwt_bearer import get_current_wallet
from echoecho.api.models.request_models import NotificationDetailsRequest
from echoecho.core.dependencies import get_entitlement_store
from echoecho.core.service.entitlement.models import User
from echoecho.infra.repository.entitlement_store import EntitlementStore

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.put("", response_model=User)
async def save_notification_details(
    request: NotificationDetailsRequest,
    wallet_address: str = Depends(get_current_wallet),
    store: EntitlementStore = Depends(get_entitlement_store)
) -> User:
    """Store the push notification token and URL issued by the Farcaster client"""
    await store.create_user(wallet_address)
    return await store.save_user_notification_details(wallet_address, request.token, request.url)
