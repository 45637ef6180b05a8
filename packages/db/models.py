"""SQLAlchemy models and helpers for expiry management data."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .core import ensure_db_path

_ENGINE_CACHE: dict[Path, Engine] = {}
_SESSION_FACTORY_CACHE: dict[Path, sessionmaker[Session]] = {}


class Base(DeclarativeBase):
    """Declarative base for ShelfWatch ORM models."""


def _resolve_db_path(path: Path | None = None) -> Path:
    return ensure_db_path(path).resolve()


def get_engine(path: Path | None = None) -> Engine:
    """Return or create a cached SQLAlchemy engine for the configured database."""

    db_path = _resolve_db_path(path)
    engine = _ENGINE_CACHE.get(db_path)
    if engine is None:
        engine = create_engine(
            f"sqlite:///{db_path}",
            future=True,
            echo=False,
        )
        _ENGINE_CACHE[db_path] = engine
    return engine


def get_session_factory(path: Path | None = None) -> sessionmaker[Session]:
    """Return a cached session factory bound to the configured engine."""

    db_path = _resolve_db_path(path)
    factory = _SESSION_FACTORY_CACHE.get(db_path)
    if factory is None:
        engine = get_engine(db_path)
        factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
        _SESSION_FACTORY_CACHE[db_path] = factory
    return factory


@contextmanager
def expiry_session(path: Path | None = None) -> Iterator[Session]:
    """Context manager yielding a SQLAlchemy session committed on success."""

    factory = get_session_factory(path)
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class ProductRow(Base):
    """Catalog product columns the expiry engine reads and writes."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    category_id: Mapped[Optional[str]] = mapped_column(String(64))
    category_name: Mapped[Optional[str]] = mapped_column(String(128))
    barcode: Mapped[Optional[str]] = mapped_column(String(64))
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, index=True)
    exclude_from_expiry_check: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ExpiryActionRow(Base):
    """Append-only ledger of expiry actions."""

    __tablename__ = "expiry_actions"
    __table_args__ = (Index("idx_expiry_actions_product_created", "product_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
    admin_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    excluded_from_check: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    expiry_date_at_action: Mapped[Optional[date]] = mapped_column(Date)
    days_until_expiry_at_action: Mapped[Optional[int]] = mapped_column(Integer)
    prior_expiry_date: Mapped[Optional[date]] = mapped_column(Date)
    previous_action_id: Mapped[Optional[int]] = mapped_column(ForeignKey("expiry_actions.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        default=lambda: datetime.now(timezone.utc),
    )
    is_undone: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    undone_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    undone_by: Mapped[Optional[str]] = mapped_column(String(64))


class ExpirySettingsRow(Base):
    """Single-row settings table."""

    __tablename__ = "expiry_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    warning_days: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    critical_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_deadline: Mapped[str] = mapped_column(String(5), nullable=False, default="20:00")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


def create_all(path: Path | None = None) -> None:
    """Ensure all ORM tables are created."""

    engine = get_engine(path)
    Base.metadata.create_all(engine)


__all__ = [
    "Base",
    "ExpiryActionRow",
    "ExpirySettingsRow",
    "ProductRow",
    "create_all",
    "expiry_session",
    "get_engine",
    "get_session_factory",
]
