"""Tests for the dependency scheduler."""

import threading
import time

import pytest
from engine.src.errors import DependencyCycle, UnknownDependency
from engine.src.models.pipeline import Job, PipelineDefinition, Step
from engine.src.models.results import JobResult, JobStatus, StepResult, StepStatus
from engine.src.services.scheduler import build_dependency_graph, execute_pipeline

def make_definition(graph, fail=()):
    """graph: job name -> list of needs. Jobs in `fail` run `exit 1`."""
    jobs = {}
    for name, needs in graph.items():
        run = "exit 1" if name in fail else "true"
        jobs[name] = Job(name=name, needs=needs, steps=[Step(name="s", run=run)])
    return PipelineDefinition(name="test", jobs=jobs)

class RecordingRunner:
    """Job runner double that records start/finish order."""

    def __init__(self, fail=(), delay=0.0):
        self.fail = set(fail)
        self.delay = delay
        self.events = []
        self.lock = threading.Lock()

    def __call__(self, job, working_dir, step_timeout):
        with self.lock:
            self.events.append(("start", job.name))
        time.sleep(self.delay)
        status = StepStatus.FAILURE if job.name in self.fail else StepStatus.SUCCESS
        with self.lock:
            self.events.append(("end", job.name))
        return JobResult(
            name=job.name,
            status=JobStatus.FAILURE if job.name in self.fail else JobStatus.SUCCESS,
            steps={"s": StepResult(name="s", status=status)},
        )

    def index(self, kind, name):
        return self.events.index((kind, name))

    def started(self):
        return [name for kind, name in self.events if kind == "start"]

def test_unknown_dependency_rejected():
    definition = make_definition({"build": [], "test": ["compile"]})
    with pytest.raises(UnknownDependency) as exc_info:
        build_dependency_graph(definition)
    assert exc_info.value.job == "test"
    assert exc_info.value.needs == "compile"

def test_cycle_rejected():
    definition = make_definition({"A": ["B"], "B": ["A"]})
    with pytest.raises(DependencyCycle) as exc_info:
        build_dependency_graph(definition)
    assert set(exc_info.value.participants) == {"A", "B"}

def test_self_dependency_is_a_cycle():
    with pytest.raises(DependencyCycle):
        build_dependency_graph(make_definition({"A": ["A"]}))

def test_longer_cycle_reports_participants():
    definition = make_definition({"root": [], "a": ["root", "c"], "b": ["a"], "c": ["b"]})
    with pytest.raises(DependencyCycle) as exc_info:
        build_dependency_graph(definition)
    assert set(exc_info.value.participants) == {"a", "b", "c"}

def test_invalid_graph_runs_nothing(tmp_path):
    runner = RecordingRunner()
    with pytest.raises(DependencyCycle):
        execute_pipeline(make_definition({"A": ["B"], "B": ["A"], "C": []}), str(tmp_path), job_runner=runner)
    assert runner.events == []

    with pytest.raises(UnknownDependency):
        execute_pipeline(make_definition({"A": ["missing"], "C": []}), str(tmp_path), job_runner=runner)
    assert runner.events == []

def test_dependencies_finish_before_dependents(tmp_path):
    graph = {"lint": [], "build": [], "test": ["build"], "deploy": ["test", "lint"]}
    runner = RecordingRunner(delay=0.01)

    results = execute_pipeline(make_definition(graph), str(tmp_path), job_runner=runner)

    assert list(results) == ["lint", "build", "test", "deploy"]
    assert all(r.status == JobStatus.SUCCESS for r in results.values())
    assert runner.index("end", "build") < runner.index("start", "test")
    assert runner.index("end", "test") < runner.index("start", "deploy")
    assert runner.index("end", "lint") < runner.index("start", "deploy")

def test_every_job_runs_exactly_once(tmp_path):
    graph = {
        "a": [],
        "b": ["a"],
        "c": ["a"],
        "d": ["b", "c"],
        "e": ["d", "a"],
        "f": [],
    }
    runner = RecordingRunner()
    results = execute_pipeline(make_definition(graph), str(tmp_path), job_runner=runner)

    assert sorted(runner.started()) == sorted(graph)
    assert set(results) == set(graph)

def test_independent_jobs_run_concurrently(tmp_path):
    barrier = threading.Barrier(2, timeout=5)

    def runner(job, working_dir, step_timeout):
        barrier.wait()  # Deadlocks (then times out) unless both run at once
        return JobResult(name=job.name, status=JobStatus.SUCCESS)

    results = execute_pipeline(
        make_definition({"a": [], "b": []}), str(tmp_path), max_workers=2, job_runner=runner
    )
    assert all(r.status == JobStatus.SUCCESS for r in results.values())

def test_concurrency_is_bounded(tmp_path):
    running = []
    peak = []
    lock = threading.Lock()

    def runner(job, working_dir, step_timeout):
        with lock:
            running.append(job.name)
            peak.append(len(running))
        time.sleep(0.02)
        with lock:
            running.remove(job.name)
        return JobResult(name=job.name, status=JobStatus.SUCCESS)

    graph = {f"job{i}": [] for i in range(6)}
    execute_pipeline(make_definition(graph), str(tmp_path), max_workers=2, job_runner=runner)
    assert max(peak) <= 2

def test_failed_dependency_skips_dependents(tmp_path):
    graph = {"build": [], "test": ["build"], "deploy": ["test"], "lint": []}
    runner = RecordingRunner(fail={"build"})

    results = execute_pipeline(make_definition(graph), str(tmp_path), job_runner=runner)

    assert results["build"].status == JobStatus.FAILURE
    assert results["test"].status == JobStatus.SKIPPED
    assert results["deploy"].status == JobStatus.SKIPPED
    assert results["test"].steps == {}
    assert results["lint"].status == JobStatus.SUCCESS
    assert sorted(runner.started()) == ["build", "lint"]

def test_sibling_failure_does_not_abort_others(tmp_path):
    graph = {"a": [], "b": [], "c": ["b"]}
    runner = RecordingRunner(fail={"a"})

    results = execute_pipeline(make_definition(graph), str(tmp_path), job_runner=runner)

    assert results["a"].status == JobStatus.FAILURE
    assert results["b"].status == JobStatus.SUCCESS
    assert results["c"].status == JobStatus.SUCCESS

def test_crashing_job_runner_is_recorded_as_failure(tmp_path):
    def runner(job, working_dir, step_timeout):
        if job.name == "bad":
            raise RuntimeError("runner exploded")
        return JobResult(name=job.name, status=JobStatus.SUCCESS)

    results = execute_pipeline(
        make_definition({"bad": [], "after": ["bad"], "ok": []}), str(tmp_path), job_runner=runner
    )
    assert results["bad"].status == JobStatus.FAILURE
    assert results["after"].status == JobStatus.SKIPPED
    assert results["ok"].status == JobStatus.SUCCESS

def test_real_steps_in_working_dir(tmp_path):
    definition = PipelineDefinition(
        name="real",
        jobs={
            "write": Job(name="write", steps=[Step(name="w", run="echo built > artifact")]),
            "read": Job(name="read", needs=["write"], steps=[Step(name="r", run="cat artifact")]),
            "broken": Job(
                name="broken",
                steps=[
                    Step(name="ok", run="true"),
                    Step(name="fail", run="exit 2"),
                    Step(name="never", run="touch never"),
                ],
            ),
        },
    )

    results = execute_pipeline(definition, str(tmp_path), max_workers=2)

    assert results["read"].steps["r"].output.strip() == "built"
    assert results["broken"].status == JobStatus.FAILURE
    assert list(results["broken"].steps) == ["ok", "fail"]
    assert not (tmp_path / "never").exists()

def test_long_dependency_chain_validates():
    graph = {"job0": []}
    graph.update({f"job{i}": [f"job{i - 1}"] for i in range(1, 3000)})

    dependency_graph = build_dependency_graph(make_definition(graph))
    assert dependency_graph.needs["job2999"] == ["job2998"]

def test_cycle_at_end_of_long_chain():
    graph = {f"job{i}": [f"job{i + 1}"] for i in range(2999)}
    graph["job2999"] = ["job2000"]

    with pytest.raises(DependencyCycle) as exc_info:
        build_dependency_graph(make_definition(graph))
    assert "job2999" in exc_info.value.participants

def test_binary_step_output_keeps_step_results(tmp_path):
    definition = PipelineDefinition(
        name="binary",
        jobs={"bin": Job(name="bin", steps=[Step(name="dump", run=r"printf '\377\376ok'")])},
    )

    results = execute_pipeline(definition, str(tmp_path))

    assert results["bin"].status == JobStatus.SUCCESS
    assert results["bin"].steps["dump"].output.endswith("ok")
