from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from echoecho.core.exceptions.handler import ServiceError
from echoecho.core.logger.logger import get_logger
from echoecho.core.service.auth.jwt_service import JWTService
from echoecho.core.service.entitlement.validators import normalize_address

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


def get_jwt_service() -> JWTService:
    return JWTService()


async def get_current_wallet(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    jwt_service: JWTService = Depends(get_jwt_service)
) -> str:
    """Resolve the caller's normalized wallet address from the bearer token"""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )

    payload = jwt_service.verify_token(credentials.credentials)
    try:
        return normalize_address(payload.wallet_address)
    except ServiceError:
        logger.warning("Token carries an invalid wallet address")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
