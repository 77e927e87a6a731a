"""SQLAlchemy async ThinkingState store.

Works with any async driver SQLAlchemy supports; tests and single-node
deployments use ``sqlite+aiosqlite``. One row per session holds the
serialized state plus an optional expiry (epoch seconds).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Callable

from sqlalchemy import Float, String, Text, delete, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from turnkeeper.schemas import ThinkingState
from turnkeeper.storage.serializer import deserialize, serialize

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class ThinkingStateRow(Base):
    __tablename__ = "thinking_states"

    session_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    model_id: Mapped[str | None] = mapped_column(String(255))
    data: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False)
    expires_at: Mapped[float | None] = mapped_column(Float, index=True)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SqlThinkingStateStore:
    def __init__(
        self,
        url: str | None = None,
        *,
        engine: AsyncEngine | None = None,
        ttl: timedelta | None = None,
        sliding_expiration: bool = True,
        echo: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if engine is None:
            if not url:
                raise ValueError("Either url or engine is required")
            engine = create_async_engine(url, echo=echo)
        self.engine = engine
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self.ttl = ttl
        self.sliding_expiration = sliding_expiration
        self._clock = clock

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose of connection pool."""
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session

    def _now(self) -> float:
        return self._clock().timestamp()

    def _expiry(self) -> float | None:
        return self._now() + self.ttl.total_seconds() if self.ttl else None

    def _expired(self, row: ThinkingStateRow) -> bool:
        return row.expires_at is not None and row.expires_at <= self._now()

    async def get(self, session_id: str) -> ThinkingState | None:
        async with self.session() as session:
            row = await session.get(ThinkingStateRow, session_id)
            if row is None:
                return None
            if self._expired(row):
                await session.delete(row)
                await session.commit()
                return None
            if self.sliding_expiration and self.ttl:
                row.expires_at = self._expiry()
                await session.commit()
            return deserialize(row.data)

    async def set(self, state: ThinkingState) -> None:
        row = ThinkingStateRow(
            session_id=state.session_id,
            model_id=state.model_id,
            data=serialize(state),
            updated_at=self._now(),
            expires_at=self._expiry(),
        )
        async with self.session() as session:
            await session.merge(row)
            await session.commit()

    async def remove(self, session_id: str) -> bool:
        async with self.session() as session:
            result = await session.execute(delete(ThinkingStateRow).where(ThinkingStateRow.session_id == session_id))
            await session.commit()
            return result.rowcount > 0

    async def exists(self, session_id: str) -> bool:
        async with self.session() as session:
            row = await session.get(ThinkingStateRow, session_id)
            return row is not None and not self._expired(row)

    async def cleanup_expired(self) -> int:
        async with self.session() as session:
            result = await session.execute(
                delete(ThinkingStateRow).where(
                    ThinkingStateRow.expires_at.is_not(None),
                    ThinkingStateRow.expires_at <= self._now(),
                )
            )
            await session.commit()
        if result.rowcount:
            logger.info("Removed %d expired thinking states", result.rowcount)
        return result.rowcount

    async def count(self) -> int:
        async with self.session() as session:
            result = await session.execute(select(ThinkingStateRow.session_id))
            return len(result.all())

    async def healthy(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            logger.warning("Thinking state store health check failed", exc_info=True)
            return False
        return True

    async def __aenter__(self) -> "SqlThinkingStateStore":
        await self.create_tables()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
