"""
Input validation shared by the entitlement store and services.
All checks run before any write.
"""

import re
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Type, TypeVar

from eth_utils import is_address

from echoecho.core.exceptions.entitlement import (
    InvalidAddressError,
    InvalidAmountError,
    InvalidChoiceError,
    InvalidEmailError,
    InvalidTierError,
    InvalidTxHashError,
)
from echoecho.core.service.entitlement.models import PAID_TIERS, EchoType, ReminderKind, UsageCategory, UserTier

TX_HASH_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

E = TypeVar("E", bound=Enum)


def normalize_address(address: Any) -> str:
    """Validate an EVM account address and return its lower-cased form"""
    if not isinstance(address, str) or not is_address(address):
        raise InvalidAddressError(address)
    return address.lower()


def validate_tx_hash(tx_hash: Any) -> str:
    if not isinstance(tx_hash, str) or not TX_HASH_PATTERN.match(tx_hash):
        raise InvalidTxHashError(tx_hash)
    return tx_hash


def parse_tier(tier: Any, allowed: Iterable[UserTier] = tuple(UserTier)) -> UserTier:
    allowed = tuple(allowed)
    try:
        parsed = UserTier(tier)
    except ValueError:
        raise InvalidTierError(tier, [t.value for t in allowed])
    if parsed not in allowed:
        raise InvalidTierError(tier, [t.value for t in allowed])
    return parsed


def parse_paid_tier(tier: Any) -> UserTier:
    return parse_tier(tier, PAID_TIERS)


def validate_amount(amount: Any) -> Decimal:
    # bool is an int subclass; reject it explicitly
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal, str)):
        raise InvalidAmountError(amount)
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise InvalidAmountError(amount)
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(amount)
    return value


def validate_email(email: Any) -> str:
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email):
        raise InvalidEmailError(email)
    return email


def _parse_choice(enum_cls: Type[E], value: Any, field: str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidChoiceError(field, value, [c.value for c in enum_cls])


def parse_usage_category(category: Any) -> UsageCategory:
    return _parse_choice(UsageCategory, category, "category")


def parse_reminder_kind(kind: Any) -> ReminderKind:
    return _parse_choice(ReminderKind, kind, "reminder_kind")


def parse_echo_type(echo_type: Any) -> EchoType:
    return _parse_choice(EchoType, echo_type, "echo_type")
