"""Tests for the run store."""

import re
import threading
from datetime import datetime, timedelta, timezone

import pytest
from engine.src.errors import RunNotFound
from engine.src.models.pipeline import Job, PipelineDefinition, Step
from engine.src.models.results import (
    JobResult,
    JobStatus,
    StepResult,
    StepStatus,
    TriggerKind,
)
from engine.src.services.run_store import RunStore, calculate_overall_status

@pytest.fixture
def store(tmp_path):
    run_store = RunStore(f"sqlite:///{tmp_path / 'runs.db'}")
    run_store.init_db()
    return run_store

@pytest.fixture
def definition():
    return PipelineDefinition(
        name="CI",
        on=["push"],
        jobs={
            "build": Job(name="build", steps=[Step(name="make", run="make")]),
            "test": Job(
                name="test",
                needs=["build"],
                steps=[Step(name="unit", run="make test"), Step(name="lint", run="make lint")],
            ),
        },
    )

def success_results():
    return {
        "build": JobResult(
            name="build",
            status=JobStatus.SUCCESS,
            steps={"make": StepResult(name="make", status=StepStatus.SUCCESS, output="ok\n")},
        ),
        "test": JobResult(
            name="test",
            status=JobStatus.FAILURE,
            steps={
                "unit": StepResult(name="unit", status=StepStatus.SUCCESS, output="passed"),
                "lint": StepResult(name="lint", status=StepStatus.FAILURE, output="E501"),
            },
        ),
    }

def store_at(store, definition, started_at, results=None):
    return store.store_run(
        definition,
        results if results is not None else {},
        repo_name="owner/repo",
        branch="main",
        commit_sha="abc123",
        commit_message="Fix things",
        commit_author="Dev",
        triggered_by="pusher",
        started_at=started_at,
        finished_at=started_at + timedelta(seconds=30),
    )

def test_store_then_get_round_trip(store, definition):
    started = datetime(2026, 10, 17, 10, 0, 0, 123456, tzinfo=timezone.utc)
    record = store.store_run(
        definition,
        success_results(),
        repo_name="owner/repo",
        branch="main",
        commit_sha="abc123",
        commit_message="Fix things",
        commit_author="Dev",
        triggered_by="pusher",
        trigger_kind=TriggerKind.MANUAL,
        started_at=started,
        finished_at=started + timedelta(minutes=1),
    )

    loaded = store.get_run(record.id)

    assert loaded.model_dump() == record.model_dump()
    assert list(loaded.results["test"].steps) == ["unit", "lint"]
    assert loaded.trigger_kind == TriggerKind.MANUAL
    assert loaded.definition.jobs["test"].needs == ["build"]

def test_overall_status(store, definition):
    record = store_at(store, definition, datetime.now(timezone.utc), success_results())
    assert record.status == JobStatus.FAILURE

    ok = {"build": JobResult(name="build", status=JobStatus.SUCCESS)}
    assert calculate_overall_status(ok) == JobStatus.SUCCESS
    assert calculate_overall_status({}) == JobStatus.SUCCESS

def test_run_id_format(store, definition):
    record = store_at(store, definition, datetime.now(timezone.utc))
    assert re.fullmatch(r"\d{14}-\d{4}", record.id)

def test_run_ids_unique_within_a_second(store, definition):
    now = datetime.now(timezone.utc)
    ids = [store_at(store, definition, now).id for _ in range(5)]

    assert len(set(ids)) == 5
    assert ids == sorted(ids)

def test_concurrent_stores_get_distinct_ids(store, definition):
    ids = []
    lock = threading.Lock()

    def worker():
        record = store_at(store, definition, datetime.now(timezone.utc))
        with lock:
            ids.append(record.id)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(set(ids)) == 8

def test_get_missing_run(store):
    with pytest.raises(RunNotFound) as exc_info:
        store.get_run("20200101000000-0001")
    assert exc_info.value.run_id == "20200101000000-0001"

def test_list_recent_runs_newest_first(store, definition):
    base = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)
    first = store_at(store, definition, base)
    third = store_at(store, definition, base + timedelta(hours=2))
    second = store_at(store, definition, base + timedelta(hours=1))

    recent = store.list_recent_runs(2)

    assert [r.id for r in recent] == [third.id, second.id]
    assert first.id not in [r.id for r in recent]

def test_list_recent_runs_empty(store):
    assert store.list_recent_runs(10) == []

def test_list_recent_runs_zero_limit(store, definition):
    store_at(store, definition, datetime.now(timezone.utc))
    assert store.list_recent_runs(0) == []
