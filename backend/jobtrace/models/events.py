"""
Execution and status-trace events emitted by job executors
"""
from __future__ import annotations

import enum
import traceback as tb
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Union

from jobtrace.core.errors import ValidationError


def utcnow() -> datetime:
    # Stored naive, always UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ExecutionSource(str, enum.Enum):
    NORMAL_TRIGGER = "NORMAL_TRIGGER"
    MISFIRE = "MISFIRE"
    FAILOVER = "FAILOVER"


class Source(str, enum.Enum):
    CLOUD_SCHEDULER = "CLOUD_SCHEDULER"
    CLOUD_EXECUTOR = "CLOUD_EXECUTOR"
    LITE_EXECUTOR = "LITE_EXECUTOR"


class State(str, enum.Enum):
    TASK_STAGING = "TASK_STAGING"
    TASK_RUNNING = "TASK_RUNNING"
    TASK_FINISHED = "TASK_FINISHED"
    TASK_KILLED = "TASK_KILLED"
    TASK_LOST = "TASK_LOST"
    TASK_FAILED = "TASK_FAILED"
    TASK_ERROR = "TASK_ERROR"
    TASK_DROPPED = "TASK_DROPPED"
    TASK_GONE = "TASK_GONE"
    TASK_GONE_BY_OPERATOR = "TASK_GONE_BY_OPERATOR"
    TASK_UNREACHABLE = "TASK_UNREACHABLE"
    TASK_UNKNOWN = "TASK_UNKNOWN"


@dataclass
class ExecutionEvent:
    """One job run: created at start, completed later by a second event.

    The start event and its completion share ``(task_id, job_name)`` and end
    up as a single stored row.
    """

    hostname: str
    ip: str
    task_id: str
    job_name: str
    execution_source: ExecutionSource
    sharding_item: int
    start_time: datetime = field(default_factory=utcnow)
    is_success: bool = False
    complete_time: Optional[datetime] = None
    failure_cause: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        if not self.job_name:
            raise ValidationError("job_name is required")
        if self.sharding_item is None or self.sharding_item < 0:
            raise ValidationError(f"sharding_item must be >= 0, got {self.sharding_item!r}")
        if not isinstance(self.execution_source, ExecutionSource):
            try:
                self.execution_source = ExecutionSource(self.execution_source)
            except ValueError as exc:
                raise ValidationError(f"unknown execution_source {self.execution_source!r}") from exc

    @property
    def is_completion(self) -> bool:
        return self.is_success or self.complete_time is not None

    def execution_success(self) -> "ExecutionEvent":
        """Completion copy of this event marking the run successful."""
        return replace(self, id=None, is_success=True, complete_time=utcnow(), failure_cause=None)

    def execution_failure(self, cause: Union[BaseException, str]) -> "ExecutionEvent":
        """Completion copy of this event marking the run failed."""
        if isinstance(cause, BaseException):
            cause = "".join(tb.format_exception(type(cause), cause, cause.__traceback__))
        return replace(self, id=None, is_success=False, complete_time=utcnow(), failure_cause=cause)


@dataclass
class StatusTraceEvent:
    """A single state transition of a task. Never updated once stored."""

    job_name: str
    task_id: str
    slave_id: str
    source: Source
    execution_type: str
    sharding_item: str
    state: State
    message: str = ""
    original_task_id: str = ""
    creation_time: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def __post_init__(self):
        if not self.job_name:
            raise ValidationError("job_name is required")
        try:
            self.source = Source(self.source)
            self.state = State(self.state)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
