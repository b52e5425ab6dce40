"""
Engine error hierarchy.
"""

from typing import List, Optional, Sequence

class EngineError(Exception):
    """Base class for all pipeline engine errors."""
    pass

# Source acquisition

class AcquisitionError(EngineError):
    """Raised when a working tree could not be prepared."""
    pass

class UnsupportedRefKind(AcquisitionError):
    """Raised for refs that do not name a branch (e.g. tags)."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Unsupported ref kind, not cloning: {ref}")

class CloneFailed(AcquisitionError):
    def __init__(self, url: str, output: str):
        self.url = url
        self.output = output
        super().__init__(f"git clone of {url} failed: {output.strip()}")

class CheckoutFailed(AcquisitionError):
    def __init__(self, ref: str, stderr: str):
        self.ref = ref
        self.stderr = stderr
        super().__init__(f"git checkout of '{ref}' failed: {stderr.strip()}")

class GitQueryError(EngineError):
    """Raised when a read-only git query fails."""

    def __init__(self, command: Sequence[str], stderr: str):
        self.command = list(command)
        self.stderr = stderr
        super().__init__(f"git {' '.join(command)} failed: {stderr.strip()}")

class WorkspaceBusy(EngineError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Working tree {path} is in use by another run")

class AuthLookupMiss(EngineError):
    """No stored credential for a repository. Never fatal."""

    def __init__(self, repo: str):
        self.repo = repo
        super().__init__(f"Authentication data for repository '{repo}' not found")

# Pipeline definition

class PipelineConfigError(EngineError):
    """Raised when pipeline configuration is invalid."""
    pass

class UnknownDependency(PipelineConfigError):
    def __init__(self, job: str, needs: str):
        self.job = job
        self.needs = needs
        super().__init__(f"Job '{job}' needs unknown job '{needs}'")

class DependencyCycle(PipelineConfigError):
    def __init__(self, participants: List[str]):
        self.participants = participants
        super().__init__(f"Dependency cycle between jobs: {' -> '.join(participants)}")

# Execution

class StepFailed(EngineError):
    """
    Raised by the step executor when a step exits non-zero or cannot be launched.

    `output` holds the combined stdout+stderr captured so far; the job driver
    turns it into the failing StepResult.
    """

    def __init__(
        self,
        step: str,
        stderr: str,
        output: str = "",
        exit_code: Optional[int] = None,
    ):
        self.step = step
        self.stderr = stderr
        self.output = output
        self.exit_code = exit_code
        super().__init__(f"step '{step}' failed (exit={exit_code}): {stderr}")

class StepTimeout(StepFailed):
    def __init__(self, step: str, timeout: float, output: str = ""):
        self.timeout = timeout
        super().__init__(step, f"timed out after {timeout}s", output=output)

class JobStateError(EngineError):
    """Illegal job state transition."""
    pass

# Storage

class RunNotFound(EngineError):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"run with ID '{run_id}' not found")
