from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException

from echoecho.core.service.auth.jwt_service import JWTService
from echoecho.infra.config.settings import get_settings

settings = get_settings()

TEST_WALLET_ADDRESS = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


@pytest.fixture
def jwt_service():
    return JWTService()


def test_create_access_token(jwt_service):
    """Should create a verifiable access token"""
    tokens = jwt_service.create_access_token(TEST_WALLET_ADDRESS)

    assert tokens.access_token
    assert tokens.token_type == "bearer"
    assert tokens.expires_in == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    payload = jwt_service.verify_token(tokens.access_token)
    assert payload.wallet_address == TEST_WALLET_ADDRESS
    assert payload.exp > payload.iat
    assert payload.jti


def test_verify_expired_token(jwt_service):
    """Should reject expired tokens"""
    tokens = jwt_service.create_access_token(TEST_WALLET_ADDRESS, expires_delta=timedelta(seconds=-1))

    with pytest.raises(HTTPException) as exc_info:
        jwt_service.verify_token(tokens.access_token)

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Token has expired"


def test_verify_token_signed_with_other_key(jwt_service):
    """Should reject tokens signed with a different secret"""
    now = datetime.now(timezone.utc)
    forged = jwt.encode(
        {
            "wallet_address": TEST_WALLET_ADDRESS,
            "exp": now + timedelta(minutes=5),
            "iat": now,
            "jti": "forged"
        },
        "some-other-secret",
        algorithm="HS256"
    )

    with pytest.raises(HTTPException) as exc_info:
        jwt_service.verify_token(forged)

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Invalid token"


def test_verify_token_missing_wallet_claim(jwt_service):
    """Should reject tokens without the wallet_address claim"""
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"exp": now + timedelta(minutes=5), "iat": now, "jti": "no-wallet"},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )

    with pytest.raises(HTTPException) as exc_info:
        jwt_service.verify_token(token)

    assert exc_info.value.status_code == 401


def test_verify_garbage_token(jwt_service):
    with pytest.raises(HTTPException) as exc_info:
        jwt_service.verify_token("not-a-jwt")

    assert exc_info.value.status_code == 401
