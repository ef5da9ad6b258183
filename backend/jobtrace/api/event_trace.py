"""
API endpoints for job execution and status trace history
"""
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from jobtrace.core.errors import ValidationError
from jobtrace.models.events import ExecutionEvent, ExecutionSource, Source, State, StatusTraceEvent
from jobtrace.services.event_search import Condition, EventSearch, Result
from jobtrace.services.event_store import EventStore

router = APIRouter(prefix="/event-trace")

# Query params with a fixed meaning; everything else is a field filter
RESERVED_PARAMS = {"pageSize", "pageNumber", "sortName", "sortOrder", "startTime", "endTime"}


def get_event_store() -> EventStore:
    return EventStore()


def get_event_search() -> EventSearch:
    return EventSearch()


class ExecutionEventIn(BaseModel):
    hostname: str
    ip: str
    task_id: str
    job_name: str
    execution_source: ExecutionSource = ExecutionSource.NORMAL_TRIGGER
    sharding_item: int = Field(ge=0)
    start_time: Optional[datetime] = None
    is_success: bool = False
    complete_time: Optional[datetime] = None
    failure_cause: Optional[str] = None


class StatusTraceEventIn(BaseModel):
    job_name: str
    task_id: str
    slave_id: str
    source: Source
    execution_type: str
    sharding_item: str
    state: State
    message: str = ""
    original_task_id: str = ""
    creation_time: Optional[datetime] = None


def _to_int(value: Optional[str]) -> int:
    try:
        return int(value) if value is not None else 0
    except ValueError:
        return 0


def _condition_from_request(request: Request) -> Condition:
    params = request.query_params
    fields = {k: v for k, v in params.items() if k not in RESERVED_PARAMS}
    return Condition(
        page_size=_to_int(params.get("pageSize")),
        page_number=_to_int(params.get("pageNumber")),
        sort_column=params.get("sortName"),
        sort_order=params.get("sortOrder"),
        start_time=params.get("startTime"),
        end_time=params.get("endTime"),
        fields=fields,
    )


def _format(result: Result) -> Dict[str, Any]:
    return {"total": result.total, "rows": [asdict(r) for r in result.rows]}


def _without_none(model: BaseModel) -> Dict[str, Any]:
    # Let the event dataclass fill its own timestamps
    return {k: v for k, v in model.model_dump().items() if v is not None}


@router.get("/execution")
def find_execution_events(request: Request, search: EventSearch = Depends(get_event_search)) -> Dict[str, Any]:
    """
    Page through job execution history. Unknown sort/filter keys are ignored.
    """
    return _format(search.find_execution_events(_condition_from_request(request)))


@router.get("/status")
def find_status_trace_events(request: Request, search: EventSearch = Depends(get_event_search)) -> Dict[str, Any]:
    return _format(search.find_status_trace_events(_condition_from_request(request)))


@router.get("/status/{task_id}")
def get_status_traces(task_id: str, store: EventStore = Depends(get_event_store)) -> Dict[str, Any]:
    traces = store.get_status_traces(task_id)
    return {"task_id": task_id, "rows": [asdict(t) for t in traces]}


@router.post("/execution", status_code=201)
def append_execution_event(body: ExecutionEventIn, store: EventStore = Depends(get_event_store)) -> Dict[str, Any]:
    try:
        event = ExecutionEvent(**_without_none(body))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"id": store.append_execution(event)}


@router.post("/status", status_code=201)
def append_status_trace_event(body: StatusTraceEventIn, store: EventStore = Depends(get_event_store)) -> Dict[str, Any]:
    try:
        event = StatusTraceEvent(**_without_none(body))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"id": store.append_trace(event)}
