"""Durable state transitions for benchmark runs, one transaction per write."""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import BuildAlreadyResolvedError, StorageError
from ..schemas import BuildStatus, Platform, RunSummary, TriggerType
from ..utils import ensure_utc, seconds_between
from .models import Base, BenchmarkRunRecord, PlatformBuildRecord

logger = logging.getLogger(__name__)


def create_session_factory(database_url: str, echo: bool = False) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory; raises ``StorageError`` for unusable URLs."""

    try:
        engine = create_engine(database_url, echo=echo, future=True, pool_pre_ping=True)
    except (SQLAlchemyError, ValueError, ImportError) as exc:
        raise StorageError(f"Cannot configure database {engine_label(database_url)}: {exc}") from exc
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def engine_label(database_url: str) -> str:
    """Database URL with any password masked, for log and error messages."""
    if "@" not in database_url:
        return database_url
    scheme, _, rest = database_url.partition("://")
    return f"{scheme}://***@{rest.rpartition('@')[2]}"


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""

    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _jsonable(payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if payload is None:
        return None
    return json.loads(json.dumps(payload, default=str))


class RunRecorder:
    """Persists benchmark runs and platform builds.

    Every public method is a single self-contained transaction, so concurrent
    monitoring tasks can share one recorder (and its connection pool) without
    coordinating with each other.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "RunRecorder":
        return cls(create_session_factory(database_url, echo=echo))

    @property
    def engine(self) -> Engine:
        return self._session_factory.kw["bind"]

    def initialize(self) -> None:
        """Create tables that do not exist yet."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot initialise schema: {exc}") from exc

    def dispose(self) -> None:
        self.engine.dispose()

    def create_run(
        self,
        trigger_type: TriggerType,
        notes: Optional[str] = None,
        run_timestamp: Optional[datetime] = None,
    ) -> int:
        with self._transaction("create run") as session:
            record = BenchmarkRunRecord(trigger_type=TriggerType(trigger_type).value, notes=notes)
            if run_timestamp is not None:
                record.run_timestamp = ensure_utc(run_timestamp)
            session.add(record)
            session.flush()
            run_id = record.id
        logger.info("Created benchmark run #%s", run_id)
        return run_id

    def record_build_start(
        self,
        run_id: int,
        platform: Platform,
        trigger_time: datetime,
        build_ref: Optional[str] = None,
    ) -> int:
        with self._transaction(f"record {Platform(platform).value} build start") as session:
            record = PlatformBuildRecord(
                run_id=run_id,
                platform=Platform(platform).value,
                trigger_time=ensure_utc(trigger_time),
                status=BuildStatus.IN_PROGRESS.value,
                build_id=build_ref,
            )
            session.add(record)
            session.flush()
            return record.id

    def record_build_completion(
        self,
        build_record_id: int,
        completion_time: datetime,
        status: BuildStatus,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Move an ``in_progress`` build to its terminal state.

        Completion time, derived duration and status are written in one
        UPDATE. The first terminal write is final: repeating it with identical
        data is a no-op, and any difference (status, completion time, error
        message or metadata) raises ``BuildAlreadyResolvedError`` without
        touching the row, even when the status itself is unchanged.
        """

        status = BuildStatus(status)
        if not status.is_terminal:
            raise ValueError("record_build_completion requires a terminal status")
        completion_time = ensure_utc(completion_time)
        payload = _jsonable(metadata)

        with self._transaction(f"record completion of build #{build_record_id}") as session:
            record = session.get(PlatformBuildRecord, build_record_id)
            if record is None:
                raise StorageError(f"Build record #{build_record_id} does not exist")

            if record.status != BuildStatus.IN_PROGRESS.value:
                if self._same_terminal_data(record, completion_time, status, error_message, payload):
                    logger.debug("Build #%s already recorded as %s", build_record_id, status.value)
                    return
                raise BuildAlreadyResolvedError(
                    f"Build #{build_record_id} is already {record.status}; refusing to record {status.value}"
                )

            duration = seconds_between(record.trigger_time, completion_time)
            if duration < 0:
                logger.warning(
                    "[%s] Completion time precedes trigger time by %.1fs; recording zero duration",
                    record.platform,
                    -duration,
                )
                duration = 0.0

            record.completion_time = completion_time
            record.duration_seconds = duration
            record.status = status.value
            record.error_message = error_message
            record.build_metadata = payload

    def load_run(self, run_id: int) -> RunSummary:
        with self._transaction(f"load run #{run_id}") as session:
            record = session.get(BenchmarkRunRecord, run_id)
            if record is None:
                raise KeyError(f"Run {run_id} not found")
            return RunSummary.model_validate(record)

    @staticmethod
    def _same_terminal_data(
        record: PlatformBuildRecord,
        completion_time: datetime,
        status: BuildStatus,
        error_message: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> bool:
        return (
            record.status == status.value
            and record.completion_time is not None
            and ensure_utc(record.completion_time) == completion_time
            and record.error_message == error_message
            and record.build_metadata == metadata
        )

    @contextmanager
    def _transaction(self, action: str) -> Generator[Session, None, None]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Storage failure while trying to %s: %s", action, exc)
            raise StorageError(f"Failed to {action}: {exc}") from exc


__all__ = ["RunRecorder", "create_session_factory", "engine_label", "session_scope"]
