"""Persistent visited-set backed by SQLAlchemy (SQLite by default).

The store owns the `packages`, `visited` and `subscriptions` tables. Writes
are serialized by a process-wide lock and guarded by the tables' unique
constraints, so concurrent callers can never create a second package row for
one name or a second visit row for one (package, date).
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, delete, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import DuplicateVisitError, StoreError
from .models import Base, PackageModel, SubscriptionModel, VisitModel


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VisitRecord:
    """One persisted (package, date) observation."""

    package_id: int
    date: str
    had_error: bool


def database_url(db: str | Path) -> str:
    """Turn a plain file path into a SQLite URL; pass SQLAlchemy URLs through."""

    raw = str(db).strip()
    if "://" in raw:
        return raw
    if raw == ":memory:":
        return "sqlite://"
    return f"sqlite:///{raw}"


def is_memory_url(url: str) -> bool:
    """True for SQLAlchemy URLs of a private in-memory SQLite database."""

    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


class VisitStore:
    """Lookup, exists-check, and insert operations over the visit history."""

    def __init__(self, db: str | Path, *, echo: bool = False) -> None:
        self.url = database_url(db)
        self.in_memory = is_memory_url(self.url)
        self.engine = self._create_engine(self.url, echo=echo)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._write_lock = threading.RLock()

        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to initialize schema at {self.url}: {exc}") from exc

    @staticmethod
    def _create_engine(url: str, *, echo: bool) -> Engine:
        if not url.startswith("sqlite"):
            return create_engine(url, echo=echo, pool_pre_ping=True)

        # An in-memory database lives on one connection; every thread must share it.
        pool_args = {"poolclass": StaticPool} if is_memory_url(url) else {}
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
            **pool_args,
        )
        event.listen(engine, "connect", _set_sqlite_pragmas)
        return engine

    def _read_guard(self):
        """Reads on a shared single connection must not interleave with writes."""

        return self._write_lock if self.in_memory else nullcontext()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._read_guard():
            try:
                with self._session_factory() as session:
                    yield session
            except SQLAlchemyError as exc:
                raise StoreError(f"{exc.__class__.__name__}: {exc}") from exc

    def package_id(self, name: str) -> int | None:
        """Return the identifier of package `name`, or None if unknown."""

        with self._session() as session:
            return session.execute(
                select(PackageModel.id).where(PackageModel.name == name)
            ).scalar_one_or_none()

    def resolve_package(self, name: str) -> int:
        """Return the identifier of package `name`, inserting it if absent."""

        name = name.strip()
        if not name:
            raise ValueError("package name must be non-empty")

        existing = self.package_id(name)
        if existing is not None:
            return existing

        with self._write_lock:
            existing = self.package_id(name)
            if existing is not None:
                return existing

            try:
                with self._session_factory.begin() as session:
                    package = PackageModel(name=name)
                    session.add(package)
                    session.flush()
                    new_id = int(package.id)
            except IntegrityError:
                # Another process inserted the same name first.
                existing = self.package_id(name)
                if existing is None:
                    raise StoreError(f"package {name!r} conflicts but cannot be found")
                return existing
            except SQLAlchemyError as exc:
                raise StoreError(f"Failed to insert package {name!r}: {exc}") from exc

        logger.info("package %s not there yet, inserted with id=%d", name, new_id)
        return new_id

    def is_visited(self, package_id: int, date: str) -> bool:
        """Return True if a visit row exists for (package_id, date)."""

        with self._session() as session:
            found = session.execute(
                select(VisitModel.id)
                .where(VisitModel.package_id == package_id, VisitModel.date == date)
                .limit(1)
            ).scalar_one_or_none()
        return found is not None

    def visit(self, package_id: int, date: str) -> VisitRecord | None:
        with self._session() as session:
            row = session.execute(
                select(VisitModel).where(
                    VisitModel.package_id == package_id,
                    VisitModel.date == date,
                )
            ).scalar_one_or_none()
            if row is None:
                return None
            return VisitRecord(package_id=row.package_id, date=row.date, had_error=bool(row.had_error))

    def record_visit(self, package_id: int, date: str, had_error: bool) -> None:
        """Insert a visit row.

        Raises `DuplicateVisitError` when (package_id, date) is already present
        and `StoreError` for any other storage failure.
        """

        with self._write_lock:
            try:
                with self._session_factory.begin() as session:
                    session.add(
                        VisitModel(package_id=package_id, date=date, had_error=bool(had_error))
                    )
            except IntegrityError as exc:
                if self.is_visited(package_id, date):
                    raise DuplicateVisitError(package_id, date) from exc
                raise StoreError(
                    f"Failed to record visit package_id={package_id} date={date}: {exc}"
                ) from exc
            except SQLAlchemyError as exc:
                raise StoreError(
                    f"Failed to record visit package_id={package_id} date={date}: {exc}"
                ) from exc

    def subscribe(self, recipient: str, package_name: str) -> bool:
        """Subscribe `recipient` to a package; False if already subscribed."""

        recipient = recipient.strip()
        if not recipient:
            raise ValueError("recipient must be non-empty")
        package_id = self.resolve_package(package_name)

        with self._write_lock:
            try:
                with self._session_factory.begin() as session:
                    session.add(SubscriptionModel(recipient=recipient, package_id=package_id))
            except IntegrityError:
                return False
            except SQLAlchemyError as exc:
                raise StoreError(f"Failed to subscribe {recipient!r}: {exc}") from exc
        return True

    def unsubscribe(self, recipient: str, package_name: str) -> bool:
        package_id = self.package_id(package_name)
        if package_id is None:
            return False

        with self._write_lock:
            try:
                with self._session_factory.begin() as session:
                    result = session.execute(
                        delete(SubscriptionModel).where(
                            SubscriptionModel.recipient == recipient,
                            SubscriptionModel.package_id == package_id,
                        )
                    )
                    removed = result.rowcount
            except SQLAlchemyError as exc:
                raise StoreError(f"Failed to unsubscribe {recipient!r}: {exc}") from exc
        return bool(removed)

    def subscribers_for(self, package_id: int) -> list[str]:
        with self._session() as session:
            rows = session.execute(
                select(SubscriptionModel.recipient)
                .where(SubscriptionModel.package_id == package_id)
                .order_by(SubscriptionModel.recipient)
            ).scalars()
            return list(rows)

    def counts(self) -> dict[str, int]:
        """Row counts for status reporting."""

        with self._session() as session:
            return {
                "packages": session.scalar(select(func.count(PackageModel.id))) or 0,
                "visited": session.scalar(select(func.count(VisitModel.id))) or 0,
                "visited_with_error": session.scalar(
                    select(func.count(VisitModel.id)).where(VisitModel.had_error.is_(True))
                )
                or 0,
                "subscriptions": session.scalar(select(func.count(SubscriptionModel.id))) or 0,
            }

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> "VisitStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["VisitRecord", "VisitStore", "database_url", "is_memory_url"]
