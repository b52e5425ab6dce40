"""
Job state machine - runs a job's steps in order, stopping on the first failure.
"""

import logging
from typing import Callable, Dict, Optional

from engine.src.errors import JobStateError, StepFailed
from engine.src.models.pipeline import Job, Step
from engine.src.models.results import (
    JobResult,
    JobState,
    JobStatus,
    StepResult,
    StepStatus,
)
from engine.src.services.executor import execute_step

logger = logging.getLogger(__name__)

StepExecutor = Callable[[Step, str, Optional[float]], StepResult]

TRANSITIONS = {
    JobState.PENDING: {JobState.RUNNING},
    JobState.RUNNING: {JobState.SUCCEEDED, JobState.FAILED},
    JobState.SUCCEEDED: set(),
    JobState.FAILED: set(),
}

class JobRun:
    """One execution of a job. Not reusable: failure is terminal for the run."""

    def __init__(
        self,
        job: Job,
        working_dir: str,
        step_timeout: Optional[float] = None,
        executor: StepExecutor = execute_step,
    ):
        self.job = job
        self.working_dir = working_dir
        self.step_timeout = step_timeout
        self.executor = executor
        self.state = JobState.PENDING
        self.steps: Dict[str, StepResult] = {}

    def transition(self, new_state: JobState):
        if new_state not in TRANSITIONS[self.state]:
            raise JobStateError(
                f"Job '{self.job.name}' cannot go from {self.state.value} to {new_state.value}"
            )
        logger.debug(f"Job '{self.job.name}': {self.state.value} -> {new_state.value}")
        self.state = new_state

    def run(self) -> JobResult:
        self.transition(JobState.RUNNING)
        logger.info(f"Starting job '{self.job.name}' with {len(self.job.steps)} steps")

        for step in self.job.steps:
            try:
                result = self.executor(step, self.working_dir, self.step_timeout)
            except StepFailed as e:
                self.steps[step.name] = StepResult(
                    name=step.name,
                    status=StepStatus.FAILURE,
                    output=e.output or e.stderr,
                )
                logger.error(f"Job '{self.job.name}' failed at step '{step.name}': {e}")
                self.transition(JobState.FAILED)
                break  # Stop on first failure

            self.steps[step.name] = result
        else:
            self.transition(JobState.SUCCEEDED)

        logger.info(f"Job '{self.job.name}' finished: {self.state.value}")
        return self.result()

    def result(self) -> JobResult:
        if self.state == JobState.SUCCEEDED:
            status = JobStatus.SUCCESS
        elif self.state == JobState.FAILED:
            status = JobStatus.FAILURE
        else:
            raise JobStateError(f"Job '{self.job.name}' has not finished ({self.state.value})")

        return JobResult(name=self.job.name, status=status, steps=dict(self.steps))

def run_job(
    job: Job,
    working_dir: str,
    step_timeout: Optional[float] = None,
) -> JobResult:
    """Run every step of `job` in `working_dir` and return its result."""
    return JobRun(job, working_dir, step_timeout).run()
