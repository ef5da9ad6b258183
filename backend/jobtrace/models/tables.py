from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base


Base = declarative_base()


class JobExecutionLog(Base):
    __tablename__ = "job_execution_log"
    # Never reuse ids of deleted rows on SQLite
    __table_args__ = (
        Index("idx_execution_task_job", "task_id", "job_name"),
        Index("idx_execution_start_time", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    hostname = Column(String(255), nullable=False)
    ip = Column(String(50), nullable=False)
    task_id = Column(String(1000), nullable=False)
    job_name = Column(String(100), nullable=False, index=True)
    execution_source = Column(String(20), nullable=False)  # NORMAL_TRIGGER, MISFIRE, FAILOVER
    sharding_item = Column(Integer, nullable=False)
    start_time = Column(DateTime, nullable=False)
    complete_time = Column(DateTime, nullable=True)
    is_success = Column(Boolean, nullable=False, default=False)
    failure_cause = Column(Text, nullable=True)


class JobStatusTraceLog(Base):
    __tablename__ = "job_status_trace_log"
    __table_args__ = (
        Index("idx_trace_task_id_state", "task_id", "state"),
        Index("idx_trace_creation_time", "creation_time"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_name = Column(String(100), nullable=False, index=True)
    original_task_id = Column(String(1000), nullable=False, default="")
    task_id = Column(String(1000), nullable=False)
    slave_id = Column(String(1000), nullable=False)
    source = Column(String(50), nullable=False)
    execution_type = Column(String(20), nullable=False)
    sharding_item = Column(String(100), nullable=False)  # free-form shard label
    state = Column(String(30), nullable=False)
    message = Column(String(4000), nullable=True)
    creation_time = Column(DateTime, nullable=False)
