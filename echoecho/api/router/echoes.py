from fastapi import APIRouter, Depends, status

from echoecho.api.middleware.authentication.jwt_bearer import get_current_wallet
from echoecho.api.models.request_models import EchoHistoryResponse, EchoRequest, EchoStats
from echoecho.core.dependencies import get_activity_repository, get_entitlement_store
from echoecho.core.service.entitlement.models import Echo, EchoType
from echoecho.infra.repository.activity_repository import ActivityRepository
from echoecho.infra.repository.entitlement_store import EntitlementStore

router = APIRouter(prefix="/echoes", tags=["echoes"])


@router.get("", response_model=EchoHistoryResponse)
async def get_echo_history(
    wallet_address: str = Depends(get_current_wallet),
    activity: ActivityRepository = Depends(get_activity_repository)
) -> EchoHistoryResponse:
    """Echo history, collected NFTs and summary stats for the caller"""
    echoes = await activity.get_user_echoes(wallet_address)
    nfts = await activity.get_user_nfts(wallet_address)

    stats = EchoStats(
        total_echoes=len(echoes),
        counter_narratives=sum(1 for e in echoes if e.type == EchoType.COUNTER_NARRATIVE),
        nfts_collected=len(nfts)
    )
    return EchoHistoryResponse(echoes=echoes, nfts=nfts, stats=stats)


@router.post("", response_model=Echo, status_code=status.HTTP_201_CREATED)
async def record_echo(
    request: EchoRequest,
    wallet_address: str = Depends(get_current_wallet),
    store: EntitlementStore = Depends(get_entitlement_store),
    activity: ActivityRepository = Depends(get_activity_repository)
) -> Echo:
    await store.create_user(wallet_address)
    return await activity.save_echo(wallet_address, request.cast_id, request.type, request.source)
