import json
from dataclasses import asdict

import click
import sqlalchemy as sa

from jobtrace.core.errors import StorageError
from jobtrace.core.logging import configure_logging
from jobtrace.models.db import engine, init_db
from jobtrace.services.event_search import Condition, EventSearch


@click.group(help="Job trace store maintenance and queries")
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def main(log_level):
    configure_logging(log_level, force=bool(log_level))


@main.command("init-db", help="Create job_execution_log and job_status_trace_log if missing")
def init_db_command():
    init_db(engine)
    click.echo("Tables ready.")


@main.command(help="Clear job_execution_log and job_status_trace_log")
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
def clear(yes: bool):
    if not yes:
        click.confirm(
            "This will delete all rows from job_execution_log and job_status_trace_log. Continue?",
            abort=True,
        )

    with engine.begin() as conn:
        conn.execute(sa.text("DELETE FROM job_status_trace_log"))
        conn.execute(sa.text("DELETE FROM job_execution_log"))
    click.echo("Tables cleared.")


def _parse_fields(pairs):
    fields = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--field")
        fields[key] = value
    return fields


@main.command(help="Search execution or status trace history")
@click.argument("kind", type=click.Choice(["executions", "traces"]))
@click.option("--page-size", default=10, show_default=True, type=int)
@click.option("--page-number", default=1, show_default=True, type=int)
@click.option("--sort", "sort_column", default=None, help="Column to sort by, e.g. jobName")
@click.option("--order", "sort_order", default=None, help="ASC or DESC")
@click.option("--field", "field_pairs", multiple=True, help="Exact-match filter key=value (repeatable)")
def search(kind, page_size, page_number, sort_column, sort_order, field_pairs):
    condition = Condition(
        page_size=page_size,
        page_number=page_number,
        sort_column=sort_column,
        sort_order=sort_order,
        fields=_parse_fields(field_pairs),
    )
    searcher = EventSearch()
    try:
        if kind == "executions":
            result = searcher.find_execution_events(condition)
        else:
            result = searcher.find_status_trace_events(condition)
    except StorageError as e:
        raise click.ClickException(str(e))

    click.echo(json.dumps({"total": result.total, "rows": [asdict(r) for r in result.rows]}, default=str, indent=2))


if __name__ == "__main__":
    main()
