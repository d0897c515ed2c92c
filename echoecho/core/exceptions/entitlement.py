"""
Domain errors raised by the entitlement, payment and usage services.
"""

from typing import Any, Dict, Optional

from fastapi import status

from echoecho.core.exceptions.handler import ServiceError, ServiceErrorCode


class InvalidAddressError(ServiceError):
    def __init__(self, address: Any):
        super().__init__(
            code=ServiceErrorCode.INVALID_ADDRESS,
            message="Invalid wallet address",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"address": str(address)},
        )


class InvalidTierError(ServiceError):
    def __init__(self, tier: Any, allowed: Optional[list] = None):
        super().__init__(
            code=ServiceErrorCode.INVALID_TIER,
            message="Invalid tier",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"tier": str(tier), "allowed": allowed or []},
        )


class InvalidTxHashError(ServiceError):
    def __init__(self, tx_hash: Any):
        super().__init__(
            code=ServiceErrorCode.INVALID_TX_HASH,
            message="Invalid transaction hash",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"transaction_hash": str(tx_hash)},
        )


class InvalidAmountError(ServiceError):
    def __init__(self, amount: Any):
        super().__init__(
            code=ServiceErrorCode.INVALID_AMOUNT,
            message="Invalid USDC amount",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"amount_usdc": str(amount)},
        )


class InvalidEmailError(ServiceError):
    def __init__(self, email: Any):
        super().__init__(
            code=ServiceErrorCode.INVALID_EMAIL,
            message="Invalid email",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"email": str(email)},
        )


class InvalidNotificationDetailsError(ServiceError):
    def __init__(self):
        super().__init__(
            code=ServiceErrorCode.INVALID_INPUT,
            message="Invalid notification details",
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class ForbiddenError(ServiceError):
    def __init__(self, message: str = "Forbidden: Admin access required"):
        super().__init__(
            code=ServiceErrorCode.FORBIDDEN,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
        )


class QuotaExceededError(ServiceError):
    """Daily quota reached for a metered category; carries what the client needs to render upgrade messaging."""

    def __init__(self, tier: str, category: str, limit: int, used: int):
        self.tier = tier
        self.category = category
        self.limit = limit
        self.used = used
        super().__init__(
            code=ServiceErrorCode.QUOTA_EXCEEDED,
            message=f"Daily {category} limit reached for {tier} tier",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={
                "tier": tier,
                "category": category,
                "limit": limit,
                "used": used,
                "hint": f"You have reached your daily limit of {limit} {category} calls. Please upgrade to a higher tier.",
            },
        )


class UpstreamQuotaError(ServiceError):
    """Raised by metered upstream adapters when the provider rejects the call for quota or billing reasons."""

    def __init__(self, provider: str, message: str = "Upstream provider quota exceeded"):
        self.provider = provider
        super().__init__(
            code=ServiceErrorCode.UPSTREAM_QUOTA_EXCEEDED,
            message=message,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"provider": provider},
        )


class PaymentVerificationError(ServiceError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ServiceErrorCode.PAYMENT_VERIFICATION_FAILED,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class PaymentMismatchError(ServiceError):
    def __init__(self, message: str = "Invalid USDC transfer details", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ServiceErrorCode.PAYMENT_MISMATCH,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class DuplicatePaymentError(ServiceError):
    def __init__(self, tx_hash: str):
        super().__init__(
            code=ServiceErrorCode.DUPLICATE_PAYMENT,
            message="Transaction already used for a subscription",
            status_code=status.HTTP_409_CONFLICT,
            details={"transaction_hash": tx_hash},
        )


class InvalidChoiceError(ServiceError):
    def __init__(self, field: str, value: Any, allowed: Optional[list] = None):
        super().__init__(
            code=ServiceErrorCode.INVALID_INPUT,
            message=f"Invalid {field}",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={field: str(value), "allowed": allowed or []},
        )
