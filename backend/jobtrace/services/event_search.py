"""
Read path for job telemetry: paginated, sortable, filterable event search.

Column identifiers only ever come from an entity's descriptor. Caller
supplied sort and filter keys are looked up in the descriptor's allow-lists
and silently dropped when unknown; every value is a bound parameter.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar

import sqlalchemy as sa
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from jobtrace.core.config import settings
from jobtrace.core.errors import StorageError
from jobtrace.models.events import ExecutionEvent, StatusTraceEvent
from jobtrace.models.tables import JobExecutionLog, JobStatusTraceLog
from jobtrace.services.event_store import execution_event_from_row, status_trace_event_from_row

T = TypeVar("T")

SORT_ORDERS = ("ASC", "DESC")

_TRUE_STRINGS = {"1", "true", "t", "yes", "y"}
_FALSE_STRINGS = {"0", "false", "f", "no", "n"}


def to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


@dataclass
class Condition:
    """Query shape supplied by operators. Any field may be malformed."""

    page_size: int = 10
    page_number: int = 1
    sort_column: Optional[str] = None
    sort_order: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    fields: Optional[Mapping[str, Any]] = None


@dataclass
class Result(Generic[T]):
    total: int
    rows: List[T] = field(default_factory=list)


@dataclass(frozen=True)
class EntityDescriptor(Generic[T]):
    """Everything search needs to know about one event table."""

    model: Any
    time_column: str
    sortable: Tuple[str, ...]
    filterable: Tuple[str, ...]
    to_event: Callable[[Any], T]
    default_order: str = "id"

    def _resolve(self, name: Any, allowed: Sequence[str]) -> Optional[sa.Column]:
        if not isinstance(name, str) or not name:
            return None
        for candidate in (name, to_snake(name)):
            if candidate in allowed:
                return self.model.__table__.c[candidate]
        return None

    def sort_column(self, name: Any) -> Optional[sa.Column]:
        return self._resolve(name, self.sortable)

    def filter_column(self, name: Any) -> Optional[sa.Column]:
        return self._resolve(name, self.filterable)

    @property
    def creation_time(self) -> sa.Column:
        return self.model.__table__.c[self.time_column]

    @property
    def identity(self) -> sa.Column:
        return self.model.__table__.c[self.default_order]


EXECUTION_EVENTS: EntityDescriptor[ExecutionEvent] = EntityDescriptor(
    model=JobExecutionLog,
    time_column="start_time",
    sortable=(
        "id",
        "hostname",
        "ip",
        "task_id",
        "job_name",
        "execution_source",
        "sharding_item",
        "start_time",
        "complete_time",
        "is_success",
    ),
    filterable=(
        "id",
        "hostname",
        "ip",
        "task_id",
        "job_name",
        "execution_source",
        "sharding_item",
        "is_success",
    ),
    to_event=execution_event_from_row,
)

STATUS_TRACE_EVENTS: EntityDescriptor[StatusTraceEvent] = EntityDescriptor(
    model=JobStatusTraceLog,
    time_column="creation_time",
    sortable=(
        "id",
        "job_name",
        "task_id",
        "slave_id",
        "source",
        "execution_type",
        "sharding_item",
        "state",
        "creation_time",
    ),
    filterable=(
        "id",
        "job_name",
        "task_id",
        "original_task_id",
        "slave_id",
        "source",
        "execution_type",
        "sharding_item",
        "state",
    ),
    to_event=status_trace_event_from_row,
)


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return default
    return value


def _as_naive_utc(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def coerce_value(column: sa.Column, value: Any) -> Any:
    """Convert a filter value to the column's python type.

    Raises ValueError/TypeError when the value cannot represent the type.
    """
    if isinstance(value, enum.Enum):
        value = value.value
    column_type = column.type
    if isinstance(column_type, sa.Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"not a boolean: {value!r}")
    if isinstance(column_type, sa.Integer):
        if isinstance(value, bool):
            raise TypeError("booleans are not integers here")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"not an integer: {value!r}")
        return int(value)
    if isinstance(column_type, sa.DateTime):
        coerced = _as_naive_utc(value)
        if coerced is None:
            raise ValueError(f"not a timestamp: {value!r}")
        return coerced
    if isinstance(value, (dict, list, tuple, set)):
        raise TypeError(f"unsupported filter value {value!r}")
    return str(value)


class EventSearch:
    """Count + page queries over the event tables."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from jobtrace.models.db import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    def find_execution_events(self, condition: Condition) -> Result[ExecutionEvent]:
        return self.search(EXECUTION_EVENTS, condition)

    def find_status_trace_events(self, condition: Condition) -> Result[StatusTraceEvent]:
        return self.search(STATUS_TRACE_EVENTS, condition)

    def search(self, descriptor: EntityDescriptor[T], condition: Condition) -> Result[T]:
        page_size = _positive_int(condition.page_size, settings.default_page_size)
        page_number = _positive_int(condition.page_number, 1)
        where = self._build_where(descriptor, condition)

        count_stmt = sa.select(sa.func.count()).select_from(descriptor.model.__table__).where(*where)
        page_stmt = (
            sa.select(descriptor.model)
            .where(*where)
            .order_by(*self._build_order(descriptor, condition))
            .limit(page_size)
            .offset((page_number - 1) * page_size)
        )

        try:
            with self._session_factory() as session:
                total = session.execute(count_stmt).scalar() or 0
                rows = session.execute(page_stmt).scalars().all()
                events = [descriptor.to_event(r) for r in rows]
        except SQLAlchemyError as e:
            logger.error("Event search on {} failed: {}", descriptor.model.__tablename__, e)
            raise StorageError(f"Event search on {descriptor.model.__tablename__} failed") from e

        return Result(total=int(total), rows=events)

    @staticmethod
    def _build_where(descriptor: EntityDescriptor, condition: Condition) -> List[Any]:
        clauses: List[Any] = []
        start_time = _as_naive_utc(condition.start_time)
        end_time = _as_naive_utc(condition.end_time)
        if start_time is not None:
            clauses.append(descriptor.creation_time >= start_time)
        if end_time is not None:
            clauses.append(descriptor.creation_time <= end_time)

        fields: Dict[Any, Any] = dict(condition.fields) if isinstance(condition.fields, Mapping) else {}
        for key, value in fields.items():
            if value is None:
                continue
            column = descriptor.filter_column(key)
            if column is None:
                logger.debug("Ignoring unknown filter key {!r}", key)
                continue
            try:
                clauses.append(column == coerce_value(column, value))
            except (TypeError, ValueError) as e:
                # No row can hold a value of the wrong type
                logger.debug("Filter {!r} matches nothing: {}", key, e)
                clauses.append(sa.false())
        return clauses

    @staticmethod
    def _build_order(descriptor: EntityDescriptor, condition: Condition) -> List[Any]:
        column = descriptor.sort_column(condition.sort_column)
        if column is None:
            return [descriptor.identity.asc()]
        order = condition.sort_order if condition.sort_order in SORT_ORDERS else "ASC"
        ordered = column.desc() if order == "DESC" else column.asc()
        if column is descriptor.identity:
            return [ordered]
        return [ordered, descriptor.identity.asc()]
