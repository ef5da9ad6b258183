"""
Write path for job telemetry: execution events and status traces
"""
from dataclasses import replace
from typing import List, Optional

import sqlalchemy as sa
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from jobtrace.core.config import settings
from jobtrace.core.errors import StorageError
from jobtrace.models.events import ExecutionEvent, State, StatusTraceEvent, utcnow
from jobtrace.models.tables import JobExecutionLog, JobStatusTraceLog


def execution_event_from_row(row: JobExecutionLog) -> ExecutionEvent:
    return ExecutionEvent(
        id=row.id,
        hostname=row.hostname,
        ip=row.ip,
        task_id=row.task_id,
        job_name=row.job_name,
        execution_source=row.execution_source,
        sharding_item=row.sharding_item,
        start_time=row.start_time,
        is_success=bool(row.is_success),
        complete_time=row.complete_time,
        failure_cause=row.failure_cause,
    )


def status_trace_event_from_row(row: JobStatusTraceLog) -> StatusTraceEvent:
    return StatusTraceEvent(
        id=row.id,
        job_name=row.job_name,
        original_task_id=row.original_task_id or "",
        task_id=row.task_id,
        slave_id=row.slave_id,
        source=row.source,
        execution_type=row.execution_type,
        sharding_item=row.sharding_item,
        state=row.state,
        message=row.message or "",
        creation_time=row.creation_time,
    )


def _truncate(value: Optional[str], limit: int) -> Optional[str]:
    if value is None or len(value) <= limit:
        return value
    return value[:limit]


class EventStore:
    """Durable, deduplicated persistence of execution and trace events.

    Each call runs in its own transaction. Storage failures are rolled back
    and surface as :class:`StorageError`; nothing is retried here.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from jobtrace.models.db import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    def append_execution(self, event: ExecutionEvent) -> int:
        """Insert a start event, or complete the matching open row in place.

        Returns the id of the row that was inserted or updated.
        """
        if event.is_completion and event.complete_time is None:
            event = replace(event, complete_time=utcnow())
        try:
            with self._session_factory() as session, session.begin():
                self._serialize(session)
                open_row = self._find_open_execution(session, event.task_id, event.job_name)
                if not event.is_completion:
                    if open_row is not None:
                        # Redelivered start for a run that is still open
                        logger.debug("Ignoring duplicate start for {} ({})", event.job_name, event.task_id)
                        return open_row.id
                    row_id = self._insert_execution(session, event)
                elif open_row is not None:
                    open_row.is_success = event.is_success
                    open_row.complete_time = event.complete_time
                    open_row.failure_cause = _truncate(event.failure_cause, settings.failure_cause_max_length)
                    session.flush()
                    row_id = open_row.id
                    logger.debug("Completed execution {} for {} success={}", row_id, event.job_name, event.is_success)
                else:
                    logger.warning(
                        "No open execution for {} ({}), storing completion as a new row",
                        event.job_name,
                        event.task_id,
                    )
                    row_id = self._insert_execution(session, event)
        except SQLAlchemyError as e:
            logger.error("Failed to append execution event for {}: {}", event.job_name, e)
            raise StorageError(f"Failed to append execution event for {event.job_name}") from e
        return row_id

    def append_trace(self, event: StatusTraceEvent) -> int:
        """Append a status trace. Always inserts exactly one row."""
        try:
            with self._session_factory() as session, session.begin():
                original_task_id = event.original_task_id
                if event.state != State.TASK_STAGING and not original_task_id:
                    original_task_id = self._staging_original_task_id(session, event.task_id)
                row = JobStatusTraceLog(
                    job_name=event.job_name,
                    original_task_id=original_task_id or "",
                    task_id=event.task_id,
                    slave_id=event.slave_id,
                    source=event.source.value,
                    execution_type=event.execution_type,
                    sharding_item=event.sharding_item,
                    state=event.state.value,
                    message=event.message,
                    creation_time=event.creation_time,
                )
                session.add(row)
                session.flush()
                row_id = row.id
        except SQLAlchemyError as e:
            logger.error("Failed to append status trace for {}: {}", event.job_name, e)
            raise StorageError(f"Failed to append status trace for {event.job_name}") from e
        logger.debug("Appended trace {} {} for {}", row_id, event.state.value, event.job_name)
        return row_id

    def get_status_traces(self, task_id: str) -> List[StatusTraceEvent]:
        """All traces recorded for a task, oldest first."""
        try:
            with self._session_factory() as session:
                rows = session.execute(
                    sa.select(JobStatusTraceLog)
                    .where(JobStatusTraceLog.task_id == task_id)
                    .order_by(JobStatusTraceLog.id.asc())
                ).scalars().all()
                return [status_trace_event_from_row(r) for r in rows]
        except SQLAlchemyError as e:
            logger.error("Failed to load status traces for {}: {}", task_id, e)
            raise StorageError(f"Failed to load status traces for {task_id}") from e

    @staticmethod
    def _serialize(session: Session) -> None:
        # FOR UPDATE locks nothing when no open row exists yet. SQLite already
        # holds the write lock (BEGIN IMMEDIATE); other backends get a
        # serializable transaction, so a racing insert fails instead of
        # duplicating the open row.
        if session.get_bind().dialect.name != "sqlite":
            session.connection(execution_options={"isolation_level": "SERIALIZABLE"})

    @staticmethod
    def _find_open_execution(session: Session, task_id: str, job_name: str) -> Optional[JobExecutionLog]:
        return session.execute(
            sa.select(JobExecutionLog)
            .where(JobExecutionLog.task_id == task_id)
            .where(JobExecutionLog.job_name == job_name)
            .where(JobExecutionLog.is_success.is_(False))
            .where(JobExecutionLog.complete_time.is_(None))
            .order_by(JobExecutionLog.id.desc())
            .limit(1)
            .with_for_update()
        ).scalars().first()

    @staticmethod
    def _insert_execution(session: Session, event: ExecutionEvent) -> int:
        row = JobExecutionLog(
            hostname=event.hostname,
            ip=event.ip,
            task_id=event.task_id,
            job_name=event.job_name,
            execution_source=event.execution_source.value,
            sharding_item=event.sharding_item,
            start_time=event.start_time,
            complete_time=event.complete_time,
            is_success=event.is_success,
            failure_cause=_truncate(event.failure_cause, settings.failure_cause_max_length),
        )
        session.add(row)
        session.flush()
        logger.debug("Inserted execution {} for {}", row.id, event.job_name)
        return row.id

    @staticmethod
    def _staging_original_task_id(session: Session, task_id: str) -> Optional[str]:
        return session.execute(
            sa.select(JobStatusTraceLog.original_task_id)
            .where(JobStatusTraceLog.task_id == task_id)
            .where(JobStatusTraceLog.state == State.TASK_STAGING.value)
            .order_by(JobStatusTraceLog.id.asc())
            .limit(1)
        ).scalars().first()
