"""pytest settings and fixtures."""
import os

# Must be set before jobtrace.core.config is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from sqlalchemy.orm import sessionmaker

from jobtrace.core.logging import configure_logging
from jobtrace.models.db import build_engine
from jobtrace.models.events import ExecutionEvent, ExecutionSource, Source, State, StatusTraceEvent
from jobtrace.models.tables import Base
from jobtrace.services.event_search import EventSearch
from jobtrace.services.event_store import EventStore

configure_logging("WARNING")


def make_engine():
    """In-memory SQLite shared by every session of one test."""
    return build_engine("sqlite:///:memory:")


def start_event(job_name, task_id="fake_task_id", **kwargs):
    return ExecutionEvent(
        hostname="localhost",
        ip="127.0.0.1",
        task_id=task_id,
        job_name=job_name,
        execution_source=ExecutionSource.NORMAL_TRIGGER,
        sharding_item=0,
        **kwargs,
    )


def trace_event(job_name, task_id="fake_failed_failover_task_id", state=State.TASK_FAILED, **kwargs):
    return StatusTraceEvent(
        job_name=job_name,
        task_id=task_id,
        slave_id="fake_slave_id",
        source=Source.LITE_EXECUTOR,
        execution_type="FAILOVER",
        sharding_item="0",
        state=state,
        message="message is empty.",
        **kwargs,
    )


@pytest.fixture(scope="function")
def session_factory():
    """Fresh schema for each test."""
    engine = make_engine()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def store(session_factory):
    return EventStore(session_factory)


@pytest.fixture(scope="function")
def search(session_factory):
    return EventSearch(session_factory)


@pytest.fixture(scope="module")
def populated_search():
    """500 jobs, every even one completed successfully, one failover trace per job."""
    engine = make_engine()
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    event_store = EventStore(factory)
    for i in range(1, 501):
        started = start_event(f"test_job_{i}")
        event_store.append_execution(started)
        if i % 2 == 0:
            event_store.append_execution(started.execution_success())
        event_store.append_trace(trace_event(f"test_job_{i}"))
    yield EventSearch(factory)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
