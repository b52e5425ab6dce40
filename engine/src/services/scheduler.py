"""
Dependency scheduler - runs the job graph of a pipeline.

Jobs whose dependencies have all finished are started concurrently on a
bounded thread pool. A job runs only if every job it needs succeeded;
otherwise it is recorded as Skipped without running any step.
"""

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from engine.src.config import get_settings
from engine.src.errors import DependencyCycle, UnknownDependency
from engine.src.models.pipeline import Job, PipelineDefinition
from engine.src.models.results import JobResult, JobStatus
from engine.src.services.job_runner import run_job

logger = logging.getLogger(__name__)

JobRunner = Callable[[Job, str, Optional[float]], JobResult]

WHITE, GRAY, BLACK = 0, 1, 2

@dataclass
class DependencyGraph:
    needs: Dict[str, List[str]]
    dependents: Dict[str, Set[str]] = field(default_factory=dict)

    def roots(self) -> List[str]:
        return [name for name, deps in self.needs.items() if not deps]

def build_dependency_graph(definition: PipelineDefinition) -> DependencyGraph:
    """
    Build the job -> needs graph and validate it.

    Raises UnknownDependency for a `needs` entry naming no job and
    DependencyCycle when the graph is not acyclic.
    """
    needs: Dict[str, List[str]] = {}
    dependents: Dict[str, Set[str]] = {name: set() for name in definition.jobs}

    for name, job in definition.jobs.items():
        deps = list(dict.fromkeys(job.needs))
        for dep in deps:
            if dep not in definition.jobs:
                raise UnknownDependency(name, dep)
            dependents[dep].add(name)
        needs[name] = deps

    graph = DependencyGraph(needs=needs, dependents=dependents)
    _check_acyclic(graph)
    return graph

def _check_acyclic(graph: DependencyGraph):
    color = {name: WHITE for name in graph.needs}

    for root in graph.needs:
        if color[root] != WHITE:
            continue
        # Iterative DFS: path holds the GRAY chain, stack its pending deps
        path: List[str] = [root]
        stack = [iter(graph.needs[root])]
        color[root] = GRAY
        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                stack.pop()
                color[path.pop()] = BLACK
            elif color[dep] == GRAY:
                raise DependencyCycle(path[path.index(dep):] + [dep])
            elif color[dep] == WHITE:
                color[dep] = GRAY
                path.append(dep)
                stack.append(iter(graph.needs[dep]))

def execute_pipeline(
    definition: PipelineDefinition,
    working_dir: str,
    max_workers: Optional[int] = None,
    step_timeout: Optional[float] = None,
    job_runner: JobRunner = run_job,
) -> Dict[str, JobResult]:
    """
    Execute every job of `definition` exactly once, honoring `needs`.
    Returns job name -> JobResult in definition order.
    """
    graph = build_dependency_graph(definition)
    max_workers = max_workers or get_settings().max_concurrent_jobs

    # Only this thread writes to `results`; workers hand theirs back via futures
    results: Dict[str, JobResult] = {}
    waiting = {name: len(deps) for name, deps in graph.needs.items()}
    ready = deque(graph.roots())
    in_flight: Dict[Future, str] = {}

    def finish(name: str, result: JobResult):
        results[name] = result
        for child in sorted(graph.dependents[name]):
            waiting[child] -= 1
            if waiting[child] == 0:
                ready.append(child)

    logger.info(
        f"Executing pipeline '{definition.name}' "
        f"({len(definition.jobs)} jobs, up to {max_workers} at once)"
    )

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while ready or in_flight:
            while ready:
                name = ready.popleft()
                blocked = [d for d in graph.needs[name] if results[d].status != JobStatus.SUCCESS]
                if blocked:
                    logger.warning(f"Skipping job '{name}': dependencies did not succeed: {blocked}")
                    finish(name, JobResult.skipped(name))
                    continue

                fut = pool.submit(job_runner, definition.jobs[name], working_dir, step_timeout)
                in_flight[fut] = name

            if not in_flight:
                break

            done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
            for fut in done:
                name = in_flight.pop(fut)
                try:
                    result = fut.result()
                except Exception:
                    logger.exception(f"Job '{name}' crashed")
                    result = JobResult(name=name, status=JobStatus.FAILURE)
                finish(name, result)

    return {name: results[name] for name in definition.jobs}
