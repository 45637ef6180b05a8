"""SQLAlchemy-backed storage for products, expiry actions and settings."""
from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from packages.db import ExpiryActionRow, ExpirySettingsRow, ProductRow, create_all, expiry_session
from packages.freshness import (
    ActionEntry,
    ActionType,
    DependencyError,
    ExpirySettings,
    NotFoundError,
    ProductRecord,
)

LOGGER = logging.getLogger("shelfwatch.expiry.store")
SETTINGS_ROW_ID = 1


class _ProductLocks:
    """Process-local mutex per product id.

    Entries live only while a caller holds the lock object.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, product_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[product_id] = lock
            return lock


_LOCKS = _ProductLocks()


class ProductScope:
    """Serialized view of one product inside a single write transaction."""

    def __init__(self, session: Session, row: ProductRow) -> None:
        self._session = session
        self._row = row

    @property
    def product(self) -> ProductRecord:
        return _product_from_row(self._row)

    def last_action(self) -> Optional[ActionEntry]:
        stmt = (
            _effective_actions()
            .where(ExpiryActionRow.product_id == self._row.id)
            .order_by(ExpiryActionRow.created_at.desc(), ExpiryActionRow.id.desc())
            .limit(1)
        )
        row = self._session.execute(stmt).scalars().first()
        return _action_from_row(row) if row is not None else None

    def action(self, action_id: int) -> Optional[ActionEntry]:
        row = self._session.get(ExpiryActionRow, action_id)
        if row is None or row.product_id != self._row.id:
            return None
        return _action_from_row(row)

    def set_expiry_date(self, value: date) -> None:
        self._row.expiry_date = value

    def set_excluded(self, value: bool) -> None:
        self._row.exclude_from_expiry_check = value

    def append(
        self,
        *,
        admin_id: str,
        action_type: ActionType,
        created_at: datetime,
        excluded_from_check: bool = False,
        note: Optional[str] = None,
        expiry_date_at_action: Optional[date] = None,
        days_until_expiry_at_action: Optional[int] = None,
        prior_expiry_date: Optional[date] = None,
        previous_action_id: Optional[int] = None,
    ) -> ActionEntry:
        row = ExpiryActionRow(
            product_id=self._row.id,
            admin_id=admin_id,
            action_type=action_type.value,
            excluded_from_check=excluded_from_check,
            note=note,
            expiry_date_at_action=expiry_date_at_action,
            days_until_expiry_at_action=days_until_expiry_at_action,
            prior_expiry_date=prior_expiry_date,
            previous_action_id=previous_action_id,
            created_at=created_at.astimezone(timezone.utc),
            is_undone=False,
        )
        self._session.add(row)
        self._session.flush()
        return _action_from_row(row)

    def mark_undone(self, action_id: int, *, at: datetime, by: str) -> ActionEntry:
        row = self._session.get(ExpiryActionRow, action_id)
        if row is None:
            raise NotFoundError(f"Action {action_id} not found")
        row.is_undone = True
        row.undone_at = at.astimezone(timezone.utc)
        row.undone_by = by
        self._session.flush()
        return _action_from_row(row)


class ExpiryStore:
    """Read and write expiry data through SQLAlchemy sessions."""

    def __init__(
        self,
        db_path: Path | None = None,
        *,
        default_settings: ExpirySettings | None = None,
    ) -> None:
        self.db_path = db_path
        self.default_settings = default_settings or ExpirySettings()

    def ensure_schema(self) -> None:
        with self._guard("create schema"):
            create_all(self.db_path)

    # Products ------------------------------------------------------------- #

    def save_product(self, product: ProductRecord) -> ProductRecord:
        """Insert or replace a catalog product row."""

        with self._guard("save product"), expiry_session(self.db_path) as session:
            row = session.get(ProductRow, product.id) or ProductRow(id=product.id)
            row.name = product.name
            row.category_id = product.category_id
            row.category_name = product.category_name
            row.barcode = product.barcode
            row.expiry_date = product.expiry_date
            row.exclude_from_expiry_check = product.exclude_from_expiry_check
            session.add(row)
        return product

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        with self._guard("load product"), expiry_session(self.db_path) as session:
            row = session.get(ProductRow, product_id)
            return _product_from_row(row) if row is not None else None

    def get_products(self, product_ids: Iterable[str]) -> List[ProductRecord]:
        ids = sorted(set(product_ids))
        if not ids:
            return []
        with self._guard("load products"), expiry_session(self.db_path) as session:
            rows = session.execute(select(ProductRow).where(ProductRow.id.in_(ids))).scalars().all()
            return [_product_from_row(row) for row in rows]

    def products_expiring_by(self, cutoff: date) -> List[ProductRecord]:
        """Return products whose expiry date is on or before ``cutoff``."""

        stmt = (
            select(ProductRow)
            .where(ProductRow.expiry_date.is_not(None), ProductRow.expiry_date <= cutoff)
            .order_by(ProductRow.expiry_date.asc(), ProductRow.name.asc())
        )
        with self._guard("query expiring products"), expiry_session(self.db_path) as session:
            return [_product_from_row(row) for row in session.execute(stmt).scalars().all()]

    # Actions -------------------------------------------------------------- #

    def get_action(self, action_id: int) -> Optional[ActionEntry]:
        with self._guard("load action"), expiry_session(self.db_path) as session:
            row = session.get(ExpiryActionRow, action_id)
            return _action_from_row(row) if row is not None else None

    def last_actions(self, product_ids: Iterable[str]) -> Dict[str, ActionEntry]:
        """Return the most recent effective action per product."""

        ids = sorted(set(product_ids))
        if not ids:
            return {}
        stmt = (
            _effective_actions()
            .where(ExpiryActionRow.product_id.in_(ids))
            .order_by(ExpiryActionRow.created_at.desc(), ExpiryActionRow.id.desc())
        )
        with self._guard("query last actions"), expiry_session(self.db_path) as session:
            rows = session.execute(stmt).scalars().all()
        latest: Dict[str, ActionEntry] = {}
        for row in rows:
            if row.product_id not in latest:
                latest[row.product_id] = _action_from_row(row)
        return latest

    def effective_actions_between(self, start: datetime, end: datetime) -> List[ActionEntry]:
        """Return effective actions created in ``[start, end)``, newest first."""

        stmt = (
            _effective_actions()
            .where(
                ExpiryActionRow.created_at >= start.astimezone(timezone.utc),
                ExpiryActionRow.created_at < end.astimezone(timezone.utc),
            )
            .order_by(ExpiryActionRow.created_at.desc(), ExpiryActionRow.id.desc())
        )
        with self._guard("query actions"), expiry_session(self.db_path) as session:
            return [_action_from_row(row) for row in session.execute(stmt).scalars().all()]

    def list_actions(
        self,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        admin_id: Optional[str] = None,
        product_id: Optional[str] = None,
        action_type: Optional[ActionType] = None,
        limit: int = 100,
        offset: int = 0,
        latest_only: bool = False,
    ) -> Tuple[List[ActionEntry], int]:
        conditions = []
        if start is not None:
            conditions.append(ExpiryActionRow.created_at >= start.astimezone(timezone.utc))
        if end is not None:
            conditions.append(ExpiryActionRow.created_at < end.astimezone(timezone.utc))
        if admin_id:
            conditions.append(ExpiryActionRow.admin_id == admin_id)
        if product_id:
            conditions.append(ExpiryActionRow.product_id == product_id)
        if action_type is not None:
            conditions.append(ExpiryActionRow.action_type == action_type.value)

        stmt = select(ExpiryActionRow).order_by(ExpiryActionRow.created_at.desc(), ExpiryActionRow.id.desc())
        count_stmt = select(func.count()).select_from(ExpiryActionRow)
        if conditions:
            stmt = stmt.where(*conditions)
            count_stmt = count_stmt.where(*conditions)

        with self._guard("query history"), expiry_session(self.db_path) as session:
            if latest_only:
                rows = session.execute(stmt).scalars().all()
                latest = _latest_per_product(rows)
                return [_action_from_row(row) for row in latest[offset : offset + limit]], len(latest)
            total = int(session.execute(count_stmt).scalar_one())
            rows = session.execute(stmt.offset(offset).limit(limit)).scalars().all()
            return [_action_from_row(row) for row in rows], total

    @contextmanager
    def product_scope(self, product_id: str) -> Iterator[ProductScope]:
        """Serialize writes for ``product_id`` inside one committed transaction."""

        lock = _LOCKS.get(product_id)
        with lock:
            with self._guard("write product"), expiry_session(self.db_path) as session:
                row = session.get(ProductRow, product_id, with_for_update=True)
                if row is None:
                    raise NotFoundError(f"Product {product_id} not found")
                yield ProductScope(session, row)

    # Settings ------------------------------------------------------------- #

    def load_settings(self) -> ExpirySettings:
        with self._guard("load settings"), expiry_session(self.db_path) as session:
            row = session.get(ExpirySettingsRow, SETTINGS_ROW_ID)
            if row is None:
                return self.default_settings
            return ExpirySettings(
                enabled=bool(row.enabled),
                warning_days=int(row.warning_days),
                critical_days=int(row.critical_days),
                processing_deadline=row.processing_deadline,
            )

    def save_settings(self, settings: ExpirySettings) -> ExpirySettings:
        with self._guard("save settings"), expiry_session(self.db_path) as session:
            row = session.get(ExpirySettingsRow, SETTINGS_ROW_ID) or ExpirySettingsRow(id=SETTINGS_ROW_ID)
            row.enabled = settings.enabled
            row.warning_days = settings.warning_days
            row.critical_days = settings.critical_days
            row.processing_deadline = settings.processing_deadline
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)
        return settings

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            LOGGER.exception("Storage failure during %s", operation)
            raise DependencyError(f"storage failure during {operation}") from exc


def _effective_actions():
    return select(ExpiryActionRow).where(
        ExpiryActionRow.is_undone.is_(False),
        ExpiryActionRow.action_type != ActionType.UNDONE.value,
    )


def _latest_per_product(rows: Sequence[ExpiryActionRow]) -> List[ExpiryActionRow]:
    seen: set[str] = set()
    latest: List[ExpiryActionRow] = []
    for row in rows:
        if row.product_id in seen:
            continue
        seen.add(row.product_id)
        latest.append(row)
    return latest


def _product_from_row(row: ProductRow) -> ProductRecord:
    return ProductRecord(
        id=row.id,
        name=row.name,
        category_id=row.category_id,
        category_name=row.category_name,
        barcode=row.barcode,
        expiry_date=row.expiry_date,
        exclude_from_expiry_check=bool(row.exclude_from_expiry_check),
    )


def _action_from_row(row: ExpiryActionRow) -> ActionEntry:
    return ActionEntry(
        id=int(row.id),
        product_id=row.product_id,
        admin_id=row.admin_id,
        action_type=ActionType(row.action_type),
        created_at=_aware(row.created_at),
        excluded_from_check=bool(row.excluded_from_check),
        note=row.note,
        expiry_date_at_action=row.expiry_date_at_action,
        days_until_expiry_at_action=row.days_until_expiry_at_action,
        prior_expiry_date=row.prior_expiry_date,
        previous_action_id=row.previous_action_id,
        is_undone=bool(row.is_undone),
        undone_at=_aware(row.undone_at) if row.undone_at is not None else None,
        undone_by=row.undone_by,
    )


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = ["ExpiryStore", "ProductScope", "SETTINGS_ROW_ID"]
