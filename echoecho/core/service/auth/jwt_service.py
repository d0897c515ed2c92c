import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, status
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from echoecho.core.logger.logger import get_logger
from echoecho.core.service.auth.models.token import TokenPayload, TokenResponse
from echoecho.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class JWTService:
    """Issues and verifies bearer tokens whose subject is a wallet address"""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.access_token_expire_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES

    def create_access_token(
        self,
        wallet_address: str,
        expires_delta: Optional[timedelta] = None
    ) -> TokenResponse:
        """Create an access token for the given wallet"""
        if expires_delta is None:
            expires_delta = timedelta(minutes=self.access_token_expire_minutes)

        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + expires_delta

        to_encode = TokenPayload(
            wallet_address=wallet_address,
            exp=expires_at,
            iat=issued_at,
            jti=str(uuid.uuid4())
        )

        encoded_jwt = jwt.encode(
            to_encode.model_dump(),
            self.secret_key,
            algorithm=self.algorithm
        )

        return TokenResponse(
            access_token=encoded_jwt,
            expires_in=int(expires_delta.total_seconds())
        )

    def verify_token(self, token: str) -> TokenPayload:
        """
        Verify a JWT token and return its payload
        Raises HTTPException if token is invalid
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm]
            )
            return TokenPayload(**payload)

        except ExpiredSignatureError:
            logger.info("Token expired")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired"
            )

        except (InvalidTokenError, ValueError) as e:
            logger.warning(
                "Invalid token",
                extra={"error": str(e)}
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )
