"""
SQLAlchemy ORM models for database tables
"""

from sqlalchemy import Column, String, Integer, Date, DateTime, Boolean, Numeric, Index, ForeignKey
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UserModel(Base):
    """SQLAlchemy ORM model for users table"""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    wallet_address = Column(String(42), nullable=False, unique=True)
    farcaster_fid = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)
    tier = Column(String(20), default='free', nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    notification_token = Column(String(512), nullable=True)
    notification_url = Column(String(1024), nullable=True)

    __table_args__ = (
        Index('idx_users_tier', 'tier'),
    )

    def __repr__(self):
        return f"<User(wallet_address='{self.wallet_address}', tier='{self.tier}')>"


class SubscriptionModel(Base):
    """SQLAlchemy ORM model for subscriptions table"""

    __tablename__ = "subscriptions"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    wallet_address = Column(String(42), nullable=False)
    tier = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    next_billing_at = Column(DateTime(timezone=True), nullable=True)
    auto_renew = Column(Boolean, default=True, nullable=False)
    last_reminder_3d_at = Column(DateTime(timezone=True), nullable=True)
    last_reminder_1d_at = Column(DateTime(timezone=True), nullable=True)
    transaction_hash = Column(String(66), nullable=False)

    # No uniqueness on (wallet_address, status): duplicate active rows are resolved by created_at
    __table_args__ = (
        Index('idx_subscriptions_wallet_status', 'wallet_address', 'status'),
        Index('idx_subscriptions_status_expires', 'status', 'expires_at'),
    )

    def __repr__(self):
        return f"<Subscription(id='{self.id}', wallet='{self.wallet_address}', tier='{self.tier}', status='{self.status}')>"


class PaymentModel(Base):
    """SQLAlchemy ORM model for payments table"""

    __tablename__ = "payments"

    id = Column(String(64), primary_key=True)
    wallet_address = Column(String(42), nullable=False)
    tx_hash = Column(String(66), nullable=False)
    amount_usdc = Column(Numeric(18, 6), nullable=False)
    tier = Column(String(20), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_payments_wallet', 'wallet_address'),
        Index('idx_payments_tx_hash', 'tx_hash'),
    )

    def __repr__(self):
        return f"<Payment(wallet='{self.wallet_address}', tier='{self.tier}', amount={self.amount_usdc})>"


class UsageCounterModel(Base):
    """SQLAlchemy ORM model for per-wallet, per-category daily API call counters"""

    __tablename__ = "user_usage"

    wallet_address = Column(String(42), primary_key=True)
    category = Column(String(32), primary_key=True)
    usage_date = Column(Date, primary_key=True)
    calls_used = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<UsageCounter(wallet='{self.wallet_address}', category='{self.category}', date={self.usage_date}, used={self.calls_used})>"


class EchoModel(Base):
    """SQLAlchemy ORM model for echoes table"""

    __tablename__ = "echoes"

    id = Column(String(64), primary_key=True)
    user_address = Column(String(42), nullable=False)
    cast_id = Column(String(255), nullable=False)
    type = Column(String(32), nullable=False)
    source = Column(String(32), nullable=False)
    echoed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_echoes_user', 'user_address'),
    )


class NftModel(Base):
    """SQLAlchemy ORM model for nfts table"""

    __tablename__ = "nfts"

    id = Column(String(64), primary_key=True)
    user_address = Column(String(42), nullable=False)
    token_id = Column(String(78), nullable=False)
    title = Column(String(255), nullable=True)
    rarity = Column(String(20), nullable=True)
    minted_at = Column(DateTime(timezone=True), nullable=False)
    image = Column(String(1024), nullable=True)

    __table_args__ = (
        Index('idx_nfts_user_token', 'user_address', 'token_id', unique=True),
    )
