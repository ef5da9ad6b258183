from alembic import op
import sqlalchemy as sa


revision = "0001_event_trace"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "job_execution_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("hostname", sa.String(length=255), nullable=False),
        sa.Column("ip", sa.String(length=50), nullable=False),
        sa.Column("task_id", sa.String(length=1000), nullable=False),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("execution_source", sa.String(length=20), nullable=False),
        sa.Column("sharding_item", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("complete_time", sa.DateTime(), nullable=True),
        sa.Column("is_success", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("failure_cause", sa.Text(), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("idx_execution_task_job", "job_execution_log", ["task_id", "job_name"])
    op.create_index("idx_execution_start_time", "job_execution_log", ["start_time"])
    op.create_index("ix_job_execution_log_job_name", "job_execution_log", ["job_name"])

    op.create_table(
        "job_status_trace_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("original_task_id", sa.String(length=1000), nullable=False, server_default=""),
        sa.Column("task_id", sa.String(length=1000), nullable=False),
        sa.Column("slave_id", sa.String(length=1000), nullable=False),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("execution_type", sa.String(length=20), nullable=False),
        sa.Column("sharding_item", sa.String(length=100), nullable=False),
        sa.Column("state", sa.String(length=30), nullable=False),
        sa.Column("message", sa.String(length=4000), nullable=True),
        sa.Column("creation_time", sa.DateTime(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("idx_trace_task_id_state", "job_status_trace_log", ["task_id", "state"])
    op.create_index("idx_trace_creation_time", "job_status_trace_log", ["creation_time"])
    op.create_index("ix_job_status_trace_log_job_name", "job_status_trace_log", ["job_name"])


def downgrade() -> None:
    op.drop_index("ix_job_status_trace_log_job_name", table_name="job_status_trace_log")
    op.drop_index("idx_trace_creation_time", table_name="job_status_trace_log")
    op.drop_index("idx_trace_task_id_state", table_name="job_status_trace_log")
    op.drop_table("job_status_trace_log")
    op.drop_index("ix_job_execution_log_job_name", table_name="job_execution_log")
    op.drop_index("idx_execution_start_time", table_name="job_execution_log")
    op.drop_index("idx_execution_task_job", table_name="job_execution_log")
    op.drop_table("job_execution_log")
