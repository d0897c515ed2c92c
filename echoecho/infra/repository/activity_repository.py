"""
Echo and NFT activity repository using SQLAlchemy ORM
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.models import Clock, Echo, EchoType, Nft, NftRarity, utc_now
from echoecho.core.service.entitlement.validators import normalize_address, parse_echo_type
from echoecho.core.exceptions.handler import ServiceError, ServiceErrorCode
from echoecho.infra.database import ensure_schema
from echoecho.infra.models import EchoModel, NftModel

logger = get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class ActivityRepository:
    """Append-only echo records and collected NFTs per user"""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self.session = session
        self._clock = clock

    def _echo_to_entity(self, model: EchoModel) -> Echo:
        return Echo(
            id=model.id,
            user_address=model.user_address,
            cast_id=model.cast_id,
            type=EchoType(model.type),
            source=model.source,
            echoed_at=_as_utc(model.echoed_at)
        )

    def _nft_to_entity(self, model: NftModel) -> Nft:
        return Nft(
            id=model.id,
            user_address=model.user_address,
            token_id=model.token_id,
            title=model.title,
            rarity=NftRarity(model.rarity or NftRarity.COMMON.value),
            minted_at=_as_utc(model.minted_at),
            image=model.image
        )

    async def save_echo(
        self,
        user_address: str,
        cast_id: str,
        echo_type: EchoType = EchoType.STANDARD,
        source: str = "farcaster"
    ) -> Echo:
        """Record that the user echoed a cast"""
        user_key = normalize_address(user_address)
        if not cast_id or not source:
            raise ServiceError(
                code=ServiceErrorCode.INVALID_INPUT,
                message="Invalid echo data",
                status_code=400
            )
        echo_type = parse_echo_type(echo_type)
        await ensure_schema(self.session)

        echo = EchoModel(
            id=f"echo_{uuid.uuid4().hex}",
            user_address=user_key,
            cast_id=cast_id,
            type=echo_type.value,
            source=source,
            echoed_at=self._clock()
        )
        self.session.add(echo)
        await self.session.commit()

        logger.info(
            "Echo recorded",
            extra={"user_address": user_key, "cast_id": cast_id, "echo_type": echo_type.value}
        )
        return self._echo_to_entity(echo)

    async def get_user_echoes(self, user_address: str) -> List[Echo]:
        user_key = normalize_address(user_address)
        await ensure_schema(self.session)
        stmt = (
            select(EchoModel)
            .where(EchoModel.user_address == user_key)
            .order_by(EchoModel.echoed_at.desc())
        )
        result = await self.session.execute(stmt)
        return [self._echo_to_entity(m) for m in result.scalars().all()]

    async def save_nft(
        self,
        user_address: str,
        token_id: str,
        title: Optional[str] = None,
        rarity: NftRarity = NftRarity.COMMON,
        image: Optional[str] = None
    ) -> Nft:
        """Store a collected NFT once per (user, token id)"""
        user_key = normalize_address(user_address)
        rarity = NftRarity(rarity)
        await ensure_schema(self.session)

        existing = await self._get_nft(user_key, token_id)
        if existing:
            return self._nft_to_entity(existing)

        nft = NftModel(
            id=f"nft_{uuid.uuid4().hex}",
            user_address=user_key,
            token_id=str(token_id),
            title=title or f"Insight Token #{token_id}",
            rarity=rarity.value,
            minted_at=self._clock(),
            image=image
        )
        try:
            self.session.add(nft)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return self._nft_to_entity(await self._get_nft(user_key, token_id))

        logger.info("NFT saved", extra={"user_address": user_key, "token_id": str(token_id)})
        return self._nft_to_entity(nft)

    async def _get_nft(self, user_key: str, token_id: str) -> Optional[NftModel]:
        stmt = select(NftModel).where(NftModel.user_address == user_key, NftModel.token_id == str(token_id))
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_user_nfts(self, user_address: str) -> List[Nft]:
        user_key = normalize_address(user_address)
        await ensure_schema(self.session)
        stmt = (
            select(NftModel)
            .where(NftModel.user_address == user_key)
            .order_by(NftModel.minted_at.desc())
        )
        result = await self.session.execute(stmt)
        return [self._nft_to_entity(m) for m in result.scalars().all()]
