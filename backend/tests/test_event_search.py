"""Event search read path tests."""
from datetime import datetime, timedelta, timezone

import pytest

from conftest import start_event, trace_event
from jobtrace.models.events import ExecutionSource, State, utcnow
from jobtrace.services.event_search import Condition, coerce_value, EXECUTION_EVENTS, to_snake


def _condition(page_size=10, page_number=1, sort_column=None, sort_order=None, start_time=None, end_time=None, fields=None):
    return Condition(page_size, page_number, sort_column, sort_order, start_time, end_time, fields)


class TestExecutionPaging:
    @pytest.mark.parametrize(
        "page_size,page_number,expected_rows",
        [(10, 1, 10), (50, 1, 50), (100, 5, 100), (100, 6, 0), (30, 17, 20), (500, 1, 500), (1000, 1, 500)],
    )
    def test_page_size_and_number(self, populated_search, page_size, page_number, expected_rows):
        result = populated_search.find_execution_events(_condition(page_size, page_number))
        assert result.total == 500
        assert len(result.rows) == expected_rows
        assert len(result.rows) == min(page_size, max(0, result.total - (page_number - 1) * page_size))

    @pytest.mark.parametrize("page_size,page_number", [(-1, -1), (0, 0), (0, 1), (10, -3), ("abc", None), (True, 1)])
    def test_invalid_paging_uses_defaults(self, populated_search, page_size, page_number):
        result = populated_search.find_execution_events(_condition(page_size, page_number))
        assert result.total == 500
        assert len(result.rows) == 10
        assert result.rows[0].job_name == "test_job_1"

    def test_pages_do_not_overlap(self, populated_search):
        first = populated_search.find_execution_events(_condition(10, 1))
        second = populated_search.find_execution_events(_condition(10, 2))
        assert {r.id for r in first.rows}.isdisjoint({r.id for r in second.rows})
        assert max(r.id for r in first.rows) < min(r.id for r in second.rows)

    def test_repeated_search_is_identical(self, populated_search):
        condition = _condition(25, 3, "jobName", "DESC")
        assert populated_search.find_execution_events(condition) == populated_search.find_execution_events(condition)


class TestExecutionSort:
    def test_sort_by_job_name(self, populated_search):
        result = populated_search.find_execution_events(_condition(sort_column="jobName", sort_order="ASC"))
        assert result.total == 500
        assert len(result.rows) == 10
        assert result.rows[0].job_name == "test_job_1"

        result = populated_search.find_execution_events(_condition(sort_column="jobName", sort_order="DESC"))
        assert result.total == 500
        assert len(result.rows) == 10
        assert result.rows[0].job_name == "test_job_99"

    def test_snake_case_sort_column(self, populated_search):
        result = populated_search.find_execution_events(_condition(sort_column="job_name", sort_order="DESC"))
        assert result.rows[0].job_name == "test_job_99"

    def test_sort_by_id_desc(self, populated_search):
        result = populated_search.find_execution_events(_condition(sort_column="id", sort_order="DESC"))
        assert result.rows[0].job_name == "test_job_500"

    def test_sort_by_success_keeps_id_order_within_ties(self, populated_search):
        result = populated_search.find_execution_events(_condition(sort_column="isSuccess", sort_order="DESC"))
        assert [r.job_name for r in result.rows[:3]] == ["test_job_2", "test_job_4", "test_job_6"]

    @pytest.mark.parametrize("sort_order", ["ERROR_SORT", "desc", "", None])
    def test_invalid_sort_order_falls_back_to_ascending(self, populated_search, sort_order):
        result = populated_search.find_execution_events(_condition(sort_column="jobName", sort_order=sort_order))
        assert result.total == 500
        assert len(result.rows) == 10
        assert result.rows[0].job_name == "test_job_1"

    @pytest.mark.parametrize("sort_column", ["notExistField", "failureCause", "", 42])
    def test_unknown_sort_column_uses_natural_order(self, populated_search, sort_column):
        result = populated_search.find_execution_events(_condition(sort_column=sort_column, sort_order="DESC"))
        default = populated_search.find_execution_events(_condition())
        assert result.total == 500
        assert [r.id for r in result.rows] == [r.id for r in default.rows]

    def test_sort_column_with_sql_is_ignored(self, populated_search):
        result = populated_search.find_execution_events(
            _condition(sort_column="id; DROP TABLE job_execution_log; --", sort_order="DESC")
        )
        assert result.total == 500
        assert result.rows[0].job_name == "test_job_1"
        assert populated_search.find_execution_events(_condition()).total == 500


class TestExecutionTimeRange:
    def test_time_bounds(self, populated_search):
        now = utcnow()
        ten_minutes_before = now - timedelta(minutes=10)

        result = populated_search.find_execution_events(_condition(start_time=ten_minutes_before))
        assert (result.total, len(result.rows)) == (500, 10)
        result = populated_search.find_execution_events(_condition(start_time=now))
        assert (result.total, len(result.rows)) == (0, 0)
        result = populated_search.find_execution_events(_condition(end_time=ten_minutes_before))
        assert (result.total, len(result.rows)) == (0, 0)
        result = populated_search.find_execution_events(_condition(end_time=now))
        assert (result.total, len(result.rows)) == (500, 10)
        result = populated_search.find_execution_events(_condition(start_time=ten_minutes_before, end_time=now))
        assert (result.total, len(result.rows)) == (500, 10)

    def test_bounds_are_inclusive(self, store, search):
        moment = datetime(2024, 5, 1, 12, 0, 0)
        store.append_execution(start_event("job_a", start_time=moment))
        store.append_execution(start_event("job_b", start_time=moment + timedelta(seconds=1)))

        assert search.find_execution_events(_condition(start_time=moment, end_time=moment)).total == 1
        assert search.find_execution_events(_condition(start_time=moment)).total == 2
        assert search.find_execution_events(_condition(end_time=moment)).total == 1

    def test_aware_bounds_are_compared_in_utc(self, store, search):
        moment = datetime(2024, 5, 1, 12, 0, 0)
        store.append_execution(start_event("job_a", start_time=moment))
        aware = datetime(2024, 5, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))

        assert search.find_execution_events(_condition(start_time=aware, end_time=aware)).total == 1

    def test_unparseable_bounds_are_ignored(self, populated_search):
        result = populated_search.find_execution_events(_condition(start_time="yesterday", end_time=12))
        assert result.total == 500


class TestExecutionFields:
    @pytest.mark.parametrize("value", [True, 1, "1", "true"])
    def test_filter_by_success(self, populated_search, value):
        result = populated_search.find_execution_events(_condition(fields={"isSuccess": value}))
        assert result.total == 250
        assert len(result.rows) == 10
        assert all(r.is_success for r in result.rows)

    def test_null_values_are_dropped(self, populated_search):
        result = populated_search.find_execution_events(_condition(fields={"isSuccess": None, "jobName": "test_job_1"}))
        assert result.total == 1
        assert len(result.rows) == 1
        assert result.rows[0].job_name == "test_job_1"

    def test_filters_are_conjoined(self, populated_search):
        result = populated_search.find_execution_events(_condition(fields={"isSuccess": False, "jobName": "test_job_2"}))
        assert result.total == 0

    def test_unknown_field_is_ignored(self, populated_search):
        result = populated_search.find_execution_events(_condition(fields={"notExistField": "some value"}))
        assert result.total == 500
        assert len(result.rows) == 10

    @pytest.mark.parametrize(
        "fields",
        [
            {"shardingItem": "abc"},
            {"shardingItem": 0.5},
            {"isSuccess": "maybe"},
            {"isSuccess": "maybe", "jobName": "test_job_2"},
        ],
    )
    def test_uncoercible_value_matches_nothing(self, populated_search, fields):
        result = populated_search.find_execution_events(_condition(fields=fields))
        assert result.total == 0
        assert result.rows == []

    def test_integral_float_matches(self, populated_search):
        result = populated_search.find_execution_events(_condition(fields={"shardingItem": 0.0}))
        assert result.total == 500

    def test_enum_value(self, populated_search):
        result = populated_search.find_execution_events(
            _condition(fields={"executionSource": ExecutionSource.NORMAL_TRIGGER, "shardingItem": 0})
        )
        assert result.total == 500
        result = populated_search.find_execution_events(_condition(fields={"executionSource": "MISFIRE"}))
        assert result.total == 0

    def test_filter_key_with_sql_is_ignored(self, populated_search):
        result = populated_search.find_execution_events(_condition(fields={"job_name = job_name OR 1=1 --": "x"}))
        assert result.total == 500

    def test_filter_value_is_bound(self, populated_search):
        result = populated_search.find_execution_events(_condition(fields={"jobName": "test_job_1' OR '1'='1"}))
        assert result.total == 0

    def test_non_mapping_fields_are_ignored(self, populated_search):
        result = populated_search.find_execution_events(_condition(fields=["jobName", "test_job_1"]))
        assert result.total == 500

    def test_rows_are_execution_events(self, populated_search):
        row = populated_search.find_execution_events(_condition(fields={"jobName": "test_job_2"})).rows[0]
        assert row.id is not None
        assert row.hostname == "localhost"
        assert row.ip == "127.0.0.1"
        assert row.task_id == "fake_task_id"
        assert row.execution_source is ExecutionSource.NORMAL_TRIGGER
        assert row.is_success is True
        assert row.complete_time is not None


class TestStatusTraceSearch:
    @pytest.mark.parametrize(
        "page_size,page_number,expected_rows",
        [(10, 1, 10), (50, 1, 50), (100, 5, 100), (100, 6, 0)],
    )
    def test_page_size_and_number(self, populated_search, page_size, page_number, expected_rows):
        result = populated_search.find_status_trace_events(_condition(page_size, page_number))
        assert result.total == 500
        assert len(result.rows) == expected_rows

    def test_invalid_paging_uses_defaults(self, populated_search):
        result = populated_search.find_status_trace_events(_condition(-1, -1))
        assert result.total == 500
        assert len(result.rows) == 10

    def test_sort(self, populated_search):
        result = populated_search.find_status_trace_events(_condition(sort_column="jobName", sort_order="ASC"))
        assert result.rows[0].job_name == "test_job_1"
        result = populated_search.find_status_trace_events(_condition(sort_column="jobName", sort_order="DESC"))
        assert result.rows[0].job_name == "test_job_99"

    def test_error_sort(self, populated_search):
        result = populated_search.find_status_trace_events(_condition(sort_column="jobName", sort_order="ERROR_SORT"))
        assert result.rows[0].job_name == "test_job_1"
        result = populated_search.find_status_trace_events(_condition(sort_column="notExistField", sort_order="ASC"))
        assert result.total == 500
        assert len(result.rows) == 10

    def test_time_bounds(self, populated_search):
        now = utcnow()
        ten_minutes_before = now - timedelta(minutes=10)
        assert populated_search.find_status_trace_events(_condition(start_time=ten_minutes_before)).total == 500
        assert populated_search.find_status_trace_events(_condition(start_time=now)).total == 0
        assert populated_search.find_status_trace_events(_condition(end_time=ten_minutes_before)).total == 0
        assert populated_search.find_status_trace_events(_condition(end_time=now)).total == 500

    def test_fields(self, populated_search):
        result = populated_search.find_status_trace_events(_condition(fields={"jobName": "test_job_1"}))
        assert result.total == 1
        assert len(result.rows) == 1
        trace = result.rows[0]
        assert trace.state is State.TASK_FAILED
        assert trace.task_id == "fake_failed_failover_task_id"
        assert trace.sharding_item == "0"

    def test_state_and_shard_label_filters(self, populated_search):
        assert populated_search.find_status_trace_events(_condition(fields={"state": State.TASK_FAILED})).total == 500
        assert populated_search.find_status_trace_events(_condition(fields={"state": "TASK_RUNNING"})).total == 0
        assert populated_search.find_status_trace_events(_condition(fields={"shardingItem": 0})).total == 500

    def test_error_fields(self, populated_search):
        result = populated_search.find_status_trace_events(_condition(fields={"notExistField": "some value"}))
        assert result.total == 500
        assert len(result.rows) == 10

    def test_scenario_counts(self, store, search):
        for i in range(1, 501):
            started = start_event(f"job_{i}")
            store.append_execution(started)
            if i % 2 == 0:
                store.append_execution(started.execution_success())
            store.append_trace(trace_event(f"job_{i}", task_id="constant_task"))

        assert search.find_execution_events(_condition()).total == 500
        assert search.find_execution_events(_condition(fields={"isSuccess": True})).total == 250
        assert search.find_status_trace_events(_condition(fields={"jobName": "job_1"})).total == 1


class TestHelpers:
    def test_to_snake(self):
        assert to_snake("jobName") == "job_name"
        assert to_snake("isSuccess") == "is_success"
        assert to_snake("job_name") == "job_name"

    def test_coerce_boolean_rejects_garbage(self):
        column = EXECUTION_EVENTS.filter_column("isSuccess")
        with pytest.raises(ValueError):
            coerce_value(column, "maybe")

    def test_coerce_integer_rejects_fractions(self):
        column = EXECUTION_EVENTS.filter_column("shardingItem")
        assert coerce_value(column, 2.0) == 2
        assert coerce_value(column, "3") == 3
        with pytest.raises(ValueError):
            coerce_value(column, 1.5)
        with pytest.raises(ValueError):
            coerce_value(column, "1.5")

    def test_descriptor_rejects_columns_outside_allow_list(self):
        assert EXECUTION_EVENTS.filter_column("failureCause") is None
        assert EXECUTION_EVENTS.sort_column("failureCause") is None
        assert EXECUTION_EVENTS.sort_column("completeTime") is not None
