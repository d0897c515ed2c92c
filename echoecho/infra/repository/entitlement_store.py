"""
Entitlement store: users, subscriptions, payments and daily usage counters using SQLAlchemy ORM
"""

import uuid
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from echoecho.core.exceptions.entitlement import InvalidNotificationDetailsError
from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.models import (
    Clock,
    EntitlementConfig,
    Payment,
    ReminderKind,
    Subscription,
    SubscriptionStatus,
    UsageCategory,
    User,
    UserInfo,
    UserTier,
    utc_now,
)
from echoecho.core.service.entitlement.validators import (
    normalize_address,
    parse_paid_tier,
    parse_reminder_kind,
    parse_tier,
    parse_usage_category,
    validate_amount,
    validate_email,
    validate_tx_hash,
)
from echoecho.infra.database import ensure_schema
from echoecho.infra.models import PaymentModel, SubscriptionModel, UsageCounterModel, UserModel

logger = get_logger(__name__)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Backends without timezone support hand back naive datetimes; everything stored is UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class EntitlementStore:
    """
    Durable store for the entitlement entities.

    Every operation provisions the schema first and validates its input before
    writing. Each write commits on its own; multi-step flows such as
    create_subscription -> update_user_tier are not atomic and rely on
    reconciliation to heal a stale tier.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[EntitlementConfig] = None,
        clock: Clock = utc_now
    ):
        self.session = session
        self.config = config or EntitlementConfig()
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock().astimezone(timezone.utc)

    def _today(self):
        return self._now().date()

    async def _fetch_one(self, stmt):
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalars().first()

    async def _fetch_all(self, stmt) -> list:
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    def _user_to_entity(self, model: UserModel) -> User:
        """Convert SQLAlchemy model to Pydantic entity"""
        return User(
            id=model.id,
            wallet_address=model.wallet_address,
            farcaster_fid=model.farcaster_fid,
            email=model.email,
            tier=UserTier(model.tier),
            created_at=_as_utc(model.created_at),
            updated_at=_as_utc(model.updated_at),
            notification_token=model.notification_token,
            notification_url=model.notification_url
        )

    def _subscription_to_entity(self, model: SubscriptionModel) -> Subscription:
        return Subscription(
            id=model.id,
            user_id=model.user_id,
            wallet_address=model.wallet_address,
            tier=UserTier(model.tier),
            status=SubscriptionStatus(model.status),
            created_at=_as_utc(model.created_at),
            expires_at=_as_utc(model.expires_at),
            next_billing_at=_as_utc(model.next_billing_at),
            auto_renew=model.auto_renew,
            last_reminder_3d_at=_as_utc(model.last_reminder_3d_at),
            last_reminder_1d_at=_as_utc(model.last_reminder_1d_at),
            transaction_hash=model.transaction_hash
        )

    def _payment_to_entity(self, model: PaymentModel) -> Payment:
        return Payment(
            id=model.id,
            wallet_address=model.wallet_address,
            tx_hash=model.tx_hash,
            amount_usdc=Decimal(str(model.amount_usdc)),
            tier=UserTier(model.tier),
            confirmed_at=_as_utc(model.confirmed_at)
        )

    # Users

    async def _get_user_model(self, wallet_address: str) -> Optional[UserModel]:
        stmt = select(UserModel).where(UserModel.wallet_address == wallet_address)
        return await self._fetch_one(stmt)

    async def get_user(self, wallet_address: str) -> Optional[User]:
        """
        Get user by wallet address

        Raises:
            InvalidAddressError: if the address is not a well-formed account identifier
        """
        user_key = normalize_address(wallet_address)
        await ensure_schema(self.session)

        user_model = await self._get_user_model(user_key)
        return self._user_to_entity(user_model) if user_model else None

    async def create_user(
        self,
        wallet_address: str,
        info: Optional[Union[UserInfo, dict]] = None
    ) -> User:
        """
        Create a user with the default free tier, or return the existing one

        Args:
            wallet_address: Wallet address (any case)
            info: Optional farcaster_fid, email and initial tier

        Returns:
            The new or already existing user
        """
        user_key = normalize_address(wallet_address)
        if isinstance(info, dict):
            info = UserInfo(**info)
        info = info or UserInfo()
        tier = parse_tier(info.tier) if info.tier else UserTier.FREE
        if info.email:
            validate_email(info.email)

        await ensure_schema(self.session)

        existing = await self._get_user_model(user_key)
        if existing:
            return self._user_to_entity(existing)

        new_user = UserModel(
            id=_new_id("user"),
            wallet_address=user_key,
            farcaster_fid=info.farcaster_fid,
            email=info.email,
            tier=tier.value,
            created_at=self._now()
        )

        try:
            self.session.add(new_user)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(
                f"User already exists (race condition): {e}",
                extra={"wallet_address": user_key}
            )
            existing = await self._get_user_model(user_key)
            return self._user_to_entity(existing)

        logger.info(
            "New user created in database",
            extra={
                "wallet_address": user_key,
                "user_id": new_user.id,
                "tier": tier.value
            }
        )
        return self._user_to_entity(new_user)

    async def update_user_tier(self, wallet_address: str, tier: Union[UserTier, str]) -> Optional[User]:
        """
        Set the user's tier

        Raises:
            InvalidTierError: for any value outside free, premium, pro
        """
        user_key = normalize_address(wallet_address)
        new_tier = parse_tier(tier)
        await ensure_schema(self.session)

        stmt = (
            update(UserModel)
            .where(UserModel.wallet_address == user_key)
            .values(tier=new_tier.value, updated_at=self._now())
        )
        result = await self.session.execute(stmt)
        await self.session.commit()

        if result.rowcount == 0:
            logger.warning("Tier update for unknown user", extra={"wallet_address": user_key})
            return None

        logger.info(
            "User tier updated",
            extra={"wallet_address": user_key, "tier": new_tier.value}
        )
        return await self.get_user(user_key)

    async def save_user_notification_details(
        self,
        wallet_address: str,
        token: str,
        url: str
    ) -> Optional[User]:
        """Store the mini app push notification token and URL"""
        user_key = normalize_address(wallet_address)
        if not token or not url:
            raise InvalidNotificationDetailsError()
        await ensure_schema(self.session)

        stmt = (
            update(UserModel)
            .where(UserModel.wallet_address == user_key)
            .values(notification_token=token, notification_url=url, updated_at=self._now())
        )
        result = await self.session.execute(stmt)
        await self.session.commit()

        if result.rowcount == 0:
            return None
        return await self.get_user(user_key)

    async def get_all_users_with_notifications(self) -> List[User]:
        await ensure_schema(self.session)
        stmt = select(UserModel).where(
            UserModel.notification_token.is_not(None),
            UserModel.notification_url.is_not(None)
        )
        return [self._user_to_entity(m) for m in await self._fetch_all(stmt)]

    # Subscriptions

    async def create_subscription(
        self,
        wallet_address: str,
        tier: Union[UserTier, str],
        transaction_hash: str
    ) -> Subscription:
        """
        Create an active subscription and move the user onto its tier

        Raises:
            InvalidTierError: unless tier is premium or pro
            InvalidTxHashError: unless transaction_hash is 0x followed by 64 hex chars
        """
        user_key = normalize_address(wallet_address)
        paid_tier = parse_paid_tier(tier)
        validate_tx_hash(transaction_hash)
        await ensure_schema(self.session)

        user = await self.get_user(user_key)
        if not user:
            user = await self.create_user(user_key)

        now = self._now()
        expires_at = now + self.config.duration_for(paid_tier)

        subscription = SubscriptionModel(
            id=_new_id("sub"),
            user_id=user.id,
            wallet_address=user_key,
            tier=paid_tier.value,
            status=SubscriptionStatus.ACTIVE.value,
            created_at=now,
            expires_at=expires_at,
            next_billing_at=expires_at,
            auto_renew=True,
            transaction_hash=transaction_hash
        )
        self.session.add(subscription)
        await self.session.commit()

        logger.info(
            "Subscription created",
            extra={
                "wallet_address": user_key,
                "subscription_id": subscription.id,
                "tier": paid_tier.value,
                "expires_at": expires_at.isoformat(),
                "transaction_hash": transaction_hash
            }
        )

        await self.update_user_tier(user_key, paid_tier)
        return self._subscription_to_entity(subscription)

    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        await ensure_schema(self.session)
        stmt = select(SubscriptionModel).where(SubscriptionModel.id == subscription_id)
        model = await self._fetch_one(stmt)
        return self._subscription_to_entity(model) if model else None

    async def get_subscription_by_tx_hash(self, transaction_hash: str) -> Optional[Subscription]:
        """Any subscription, active or expired, paid for by the transaction"""
        await ensure_schema(self.session)
        stmt = (
            select(SubscriptionModel)
            .where(func.lower(SubscriptionModel.transaction_hash) == transaction_hash.lower())
            .limit(1)
        )
        model = await self._fetch_one(stmt)
        return self._subscription_to_entity(model) if model else None

    async def get_user_subscription(self, wallet_address: str) -> Optional[Subscription]:
        """Most recent active subscription for the wallet"""
        user_key = normalize_address(wallet_address)
        await ensure_schema(self.session)

        stmt = (
            select(SubscriptionModel)
            .where(
                SubscriptionModel.wallet_address == user_key,
                SubscriptionModel.status == SubscriptionStatus.ACTIVE.value
            )
            .order_by(SubscriptionModel.created_at.desc())
            .limit(1)
        )
        model = await self._fetch_one(stmt)
        return self._subscription_to_entity(model) if model else None

    async def get_expiring_subscriptions(self, days_ahead: int) -> List[Subscription]:
        """
        Active subscriptions expiring between the start of today and the end of
        the day `days_ahead` days from now (UTC calendar days, both inclusive)
        """
        await ensure_schema(self.session)
        today = self._today()
        window_start = datetime.combine(today, time.min, tzinfo=timezone.utc)
        window_end = datetime.combine(today + timedelta(days=days_ahead), time.max, tzinfo=timezone.utc)

        stmt = (
            select(SubscriptionModel)
            .where(
                SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
                SubscriptionModel.expires_at >= window_start,
                SubscriptionModel.expires_at <= window_end
            )
            .order_by(SubscriptionModel.expires_at)
        )
        return [self._subscription_to_entity(m) for m in await self._fetch_all(stmt)]

    async def get_all_active_subscriptions(self) -> List[Subscription]:
        await ensure_schema(self.session)
        stmt = select(SubscriptionModel).where(
            SubscriptionModel.status == SubscriptionStatus.ACTIVE.value
        )
        return [self._subscription_to_entity(m) for m in await self._fetch_all(stmt)]

    async def mark_reminder_sent(
        self,
        subscription_id: str,
        kind: Union[ReminderKind, str]
    ) -> Optional[Subscription]:
        """Stamp the 3-day or 1-day reminder time; re-stamping is harmless"""
        kind = parse_reminder_kind(kind)
        await ensure_schema(self.session)

        column = "last_reminder_3d_at" if kind is ReminderKind.THREE_DAYS else "last_reminder_1d_at"
        stmt = (
            update(SubscriptionModel)
            .where(SubscriptionModel.id == subscription_id)
            .values({column: self._now()})
        )
        await self.session.execute(stmt)
        await self.session.commit()
        return await self.get_subscription(subscription_id)

    async def expire_subscription(self, subscription_id: str) -> Optional[Subscription]:
        """
        Flip an active subscription to expired and drop its owner to the free tier

        Returns:
            The expired subscription, or None if it does not exist or was already expired
        """
        await ensure_schema(self.session)

        stmt = (
            update(SubscriptionModel)
            .where(
                SubscriptionModel.id == subscription_id,
                SubscriptionModel.status == SubscriptionStatus.ACTIVE.value
            )
            .values(status=SubscriptionStatus.EXPIRED.value)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()

        if result.rowcount == 0:
            return None

        subscription = await self.get_subscription(subscription_id)
        logger.info(
            "Subscription expired",
            extra={
                "subscription_id": subscription_id,
                "wallet_address": subscription.wallet_address,
                "tier": subscription.tier.value
            }
        )
        await self.update_user_tier(subscription.wallet_address, UserTier.FREE)
        return subscription

    # Payments

    async def record_payment(
        self,
        wallet_address: str,
        transaction_hash: str,
        amount_usdc: Union[Decimal, int, float, str],
        tier: Union[UserTier, str]
    ) -> Payment:
        """
        Append a confirmed payment

        Raises:
            InvalidAmountError: unless amount_usdc > 0
            InvalidTierError: unless tier is premium or pro
        """
        user_key = normalize_address(wallet_address)
        validate_tx_hash(transaction_hash)
        amount = validate_amount(amount_usdc)
        paid_tier = parse_paid_tier(tier)
        await ensure_schema(self.session)

        payment = PaymentModel(
            id=_new_id("pay"),
            wallet_address=user_key,
            tx_hash=transaction_hash,
            amount_usdc=amount,
            tier=paid_tier.value,
            confirmed_at=self._now()
        )
        self.session.add(payment)
        await self.session.commit()

        logger.info(
            "Payment recorded",
            extra={
                "wallet_address": user_key,
                "payment_id": payment.id,
                "amount_usdc": str(amount),
                "tier": paid_tier.value,
                "transaction_hash": transaction_hash
            }
        )
        return self._payment_to_entity(payment)

    async def get_payment_by_tx_hash(self, transaction_hash: str) -> Optional[Payment]:
        await ensure_schema(self.session)
        stmt = select(PaymentModel).where(func.lower(PaymentModel.tx_hash) == transaction_hash.lower())
        model = await self._fetch_one(stmt)
        return self._payment_to_entity(model) if model else None

    async def get_total_subscription_revenue(self) -> Decimal:
        await ensure_schema(self.session)
        result = await self.session.execute(select(func.coalesce(func.sum(PaymentModel.amount_usdc), 0)))
        return Decimal(str(result.scalar_one()))

    # Usage counters, scoped to the current UTC day

    def _counter_filter(self, user_key: str, category: UsageCategory):
        return (
            UsageCounterModel.wallet_address == user_key,
            UsageCounterModel.category == category.value,
            UsageCounterModel.usage_date == self._today(),
        )

    async def get_api_calls_used(self, wallet_address: str, category: Union[UsageCategory, str]) -> int:
        user_key = normalize_address(wallet_address)
        category = parse_usage_category(category)
        await ensure_schema(self.session)

        result = await self.session.execute(
            select(UsageCounterModel.calls_used).where(*self._counter_filter(user_key, category))
        )
        return result.scalar_one_or_none() or 0

    async def increment_api_calls(self, wallet_address: str, category: Union[UsageCategory, str]) -> int:
        """Count one call against today's counter, creating the row on first use"""
        user_key = normalize_address(wallet_address)
        category = parse_usage_category(category)
        await ensure_schema(self.session)

        bump = (
            update(UsageCounterModel)
            .where(*self._counter_filter(user_key, category))
            .values(calls_used=UsageCounterModel.calls_used + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(bump)
        if result.rowcount == 0:
            try:
                self.session.add(UsageCounterModel(
                    wallet_address=user_key,
                    category=category.value,
                    usage_date=self._today(),
                    calls_used=1
                ))
                await self.session.commit()
            except IntegrityError:
                # Another request created today's row first
                await self.session.rollback()
                await self.session.execute(bump)
                await self.session.commit()
        else:
            await self.session.commit()

        used = await self.get_api_calls_used(user_key, category)
        logger.debug(
            "API usage incremented",
            extra={"wallet_address": user_key, "category": category.value, "used": used}
        )
        return used

    async def rollback_api_calls(self, wallet_address: str, category: Union[UsageCategory, str]) -> int:
        """Undo one counted call; never drives the counter below zero"""
        user_key = normalize_address(wallet_address)
        category = parse_usage_category(category)
        await ensure_schema(self.session)

        stmt = (
            update(UsageCounterModel)
            .where(*self._counter_filter(user_key, category))
            .values(calls_used=case(
                (UsageCounterModel.calls_used > 0, UsageCounterModel.calls_used - 1),
                else_=0
            ))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.commit()

        used = await self.get_api_calls_used(user_key, category)
        logger.info(
            "API usage rolled back",
            extra={"wallet_address": user_key, "category": category.value, "used": used}
        )
        return used
