"""SQLAlchemy 2.x async entity store.

One table per entity kind. Every table carries the soft-delete flag and an
autoincrement surrogate key that defines the listing order; the public id is
a UUID string. Unique fields are unique among active rows only, so a
soft-deleted row never blocks re-creating a record with the same key.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .errors import DuplicateEntity, NotFound, ValidationError
from .models import BNCC_ITEM, INSTITUTION, INSTITUTION_TYPE, KINDS, USER_RULE, EntityKind, ManagedEntity
from .store import EntityStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class SoftDeleteMixin:
    """Identity and soft-delete columns shared by every managed table."""
    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


def _active_unique(name: str, column: str) -> Index:
    return Index(
        name,
        column,
        unique=True,
        sqlite_where=text("deleted = 0"),
        postgresql_where=text("NOT deleted"),
    )


class BnccItemRow(SoftDeleteMixin, Base):
    """BNCC skills table."""
    __tablename__ = "bncc_items"

    code: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    component: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    grade: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    thematic_unit: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class InstitutionTypeRow(SoftDeleteMixin, Base):
    """Institution types table."""
    __tablename__ = "institution_types"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        _active_unique("uq_institution_types_name_active", "name"),
    )


class UserRuleRow(SoftDeleteMixin, Base):
    """User rules (roles) table."""
    __tablename__ = "user_rules"

    rule_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        _active_unique("uq_user_rules_rule_name_active", "rule_name"),
    )


class InstitutionRow(SoftDeleteMixin, Base):
    """Institutions table."""
    __tablename__ = "institutions"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    type_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("institution_types.id"))
    address_line_1: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    city: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    state_province: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    postal_code: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    country: Mapped[str] = mapped_column(String(100), default="", nullable=False)


ROW_MODELS: Dict[str, Type[SoftDeleteMixin]] = {
    BNCC_ITEM.name: BnccItemRow,
    INSTITUTION_TYPE.name: InstitutionTypeRow,
    USER_RULE.name: UserRuleRow,
    INSTITUTION.name: InstitutionRow,
}


class SqlEntityStore(EntityStore):
    """Entity store over one declarative model"""

    def __init__(self, kind: EntityKind, sessions: async_sessionmaker[AsyncSession]):
        super().__init__(kind)
        self._model = ROW_MODELS[kind.name]
        self._sessions = sessions

    async def list(self, include_deleted: bool = False) -> List[ManagedEntity]:
        stmt = select(self._model).order_by(self._model.pk)
        if not include_deleted:
            stmt = stmt.where(self._model.deleted.is_(False))
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._to_entity(row) for row in rows]

    async def get(self, entity_id: str) -> ManagedEntity:
        async with self._sessions() as session:
            row = await self._get_row(session, entity_id)
        return self._to_entity(row)

    async def create(self, fields: Dict[str, Any]) -> ManagedEntity:
        async with self._sessions() as session:
            await self._check_unique(session, fields)
            row = self._model(id=str(uuid.uuid4()), deleted=False, **fields)
            session.add(row)
            await self._commit(session, fields)
            return self._to_entity(row)

    async def update(self, entity_id: str, fields: Dict[str, Any]) -> ManagedEntity:
        async with self._sessions() as session:
            row = await self._get_row(session, entity_id)
            await self._check_unique(session, fields, exclude_id=entity_id)
            for name, value in fields.items():
                setattr(row, name, value)
            await self._commit(session, fields)
            return self._to_entity(row)

    async def soft_delete(self, entity_id: str) -> ManagedEntity:
        async with self._sessions() as session:
            row = await self._get_row(session, entity_id)
            row.deleted = True
            await session.commit()
            return self._to_entity(row)

    async def restore(self, entity_id: str) -> ManagedEntity:
        async with self._sessions() as session:
            row = await self._get_row(session, entity_id)
            if row.deleted:
                current = self._to_entity(row)
                await self._check_unique(session, current.fields, exclude_id=entity_id)
                row.deleted = False
                await self._commit(session, current.fields)
            return self._to_entity(row)

    async def _get_row(self, session: AsyncSession, entity_id: str):
        stmt = select(self._model).where(self._model.id == entity_id)
        row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFound(self.kind.name, entity_id)
        return row

    async def _check_unique(self,
                            session: AsyncSession,
                            fields: Dict[str, Any],
                            exclude_id: Optional[str] = None) -> None:
        for name in self.kind.unique:
            if name not in fields:
                continue
            column = getattr(self._model, name)
            stmt = select(self._model.id).where(column == fields[name], self._model.deleted.is_(False))
            if exclude_id is not None:
                stmt = stmt.where(self._model.id != exclude_id)
            if (await session.execute(stmt)).first() is not None:
                raise DuplicateEntity(self.kind.name, name, fields[name])

    async def _commit(self, session: AsyncSession, fields: Dict[str, Any]) -> None:
        try:
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            # Race with another writer on a partial unique index
            for name in self.kind.unique:
                if name in fields:
                    raise DuplicateEntity(self.kind.name, name, fields[name]) from e
            raise ValidationError(
                f"{self.kind.name} violates a database constraint: {e.orig}",
                {"kind": self.kind.name, "constraint": str(e.orig)},
            ) from e

    def _to_entity(self, row) -> ManagedEntity:
        return ManagedEntity(
            id=row.id,
            kind=self.kind.name,
            fields={name: getattr(row, name) for name in self.kind.field_names},
            deleted=bool(row.deleted),
        )


async def create_engine_and_tables(url: str, echo: bool = False) -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create the async engine, ensure tables exist and return a session factory"""
    engine = create_async_engine(url, echo=echo, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
    return engine, sessions


def build_sql_stores(sessions: async_sessionmaker[AsyncSession]) -> Dict[str, SqlEntityStore]:
    """One store per entity kind"""
    return {name: SqlEntityStore(kind, sessions) for name, kind in KINDS.items()}
