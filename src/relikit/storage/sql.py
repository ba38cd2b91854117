# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Relational record store on SQLAlchemy's asyncio ORM.

Ids come from the table's identity column (``sqlite_autoincrement`` keeps
SQLite from reusing the id of a deleted tail row). The unique index on
``email`` enforces the business key; violations surface as DuplicateKey.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String, delete, func, select, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..api.errors import ConnectionFailure, DuplicateKey, NotFound
from ..protocol.messages import Record
from .records import RecordStore


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; stored values are always UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Base(DeclarativeBase):
    pass


class RecordRow(Base):
    __tablename__ = "records"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_record(self) -> Record:
        return Record(
            id=self.id,
            name=self.name,
            email=self.email,
            phone=self.phone,
            address=self.address,
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
        )


class SqlRecordStore(RecordStore):
    provider = "sql"

    def __init__(self, engine: AsyncEngine, **kwargs) -> None:
        super().__init__(**kwargs)
        self.engine = engine
        self.sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> SqlRecordStore:
        return cls(create_async_engine(url, pool_pre_ping=True), **kwargs)

    async def init(self) -> None:
        """Create the table when `auto_migrate` is set."""
        if not self.cfg.auto_migrate:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.log.info("sql.migrated", event="sql.migrated", table=RecordRow.__tablename__)

    async def close(self) -> None:
        await self.engine.dispose()

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except DBAPIError:
            self.log.warning("sql.ping_failed", event="sql.ping_failed")
            return False

    @asynccontextmanager
    async def _session(self, *, email: str | None = None) -> AsyncIterator[AsyncSession]:
        async with self.sessions() as session:
            try:
                yield session
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateKey(email or "?") from e
            except DBAPIError as e:
                await session.rollback()
                raise ConnectionFailure(f"database error: {e.orig}") from e

    # ---------- backend calls ----------

    async def _get(self, record_id: int) -> Record | None:
        async with self._session() as session:
            row = await session.get(RecordRow, record_id)
            return row.to_record() if row else None

    async def _get_by_email(self, email: str) -> Record | None:
        async with self._session() as session:
            row = (await session.execute(select(RecordRow).where(RecordRow.email == email))).scalar_one_or_none()
            return row.to_record() if row else None

    async def _create(self, record: Record) -> Record:
        async with self._session(email=record.email) as session:
            row = RecordRow(
                name=record.name,
                email=record.email,
                phone=record.phone,
                address=record.address,
                created_at=record.created_at,
                updated_at=None,
            )
            session.add(row)
            await session.commit()
            return row.to_record()

    async def _update(self, record: Record, now) -> Record:
        async with self._session(email=record.email) as session:
            row = await session.get(RecordRow, record.id)
            if row is None:
                raise NotFound(f"Record with ID {record.id} not found")
            row.name = record.name
            row.email = record.email
            row.phone = record.phone
            row.address = record.address
            row.updated_at = now
            await session.commit()
            return row.to_record()

    async def _delete(self, record_id: int) -> bool:
        async with self._session() as session:
            row = await session.get(RecordRow, record_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True

    async def _list(self) -> list[Record]:
        async with self._session() as session:
            rows = (await session.execute(select(RecordRow).order_by(RecordRow.id))).scalars().all()
            return [r.to_record() for r in rows]

    async def _count(self) -> int:
        async with self._session() as session:
            return int((await session.execute(select(func.count()).select_from(RecordRow))).scalar_one())

    async def _clear(self) -> int:
        async with self._session() as session:
            result = await session.execute(delete(RecordRow))
            await session.commit()
            return int(result.rowcount or 0)
