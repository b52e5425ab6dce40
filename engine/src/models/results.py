"""
Execution result and run record models.
"""

from pydantic import BaseModel
from typing import Dict, Optional
from datetime import datetime
from enum import Enum

from engine.src.models.pipeline import PipelineDefinition

class StepStatus(str, Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"

class JobStatus(str, Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"
    SKIPPED = "Skipped"  # A dependency did not succeed

class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class TriggerKind(str, Enum):
    WEBHOOK = "webhook"
    MANUAL = "manual"

class StepResult(BaseModel):
    name: str
    status: StepStatus
    output: str = ""

    class Config:
        frozen = True

class JobResult(BaseModel):
    name: str
    status: JobStatus
    steps: Dict[str, StepResult] = {}

    @classmethod
    def skipped(cls, name: str) -> "JobResult":
        return cls(name=name, status=JobStatus.SKIPPED)

class RunRecord(BaseModel):
    id: str
    definition: PipelineDefinition
    results: Dict[str, JobResult]
    started_at: datetime
    finished_at: datetime
    status: JobStatus
    repo_name: str
    branch: str
    commit_sha: str
    commit_message: str
    commit_author: str
    triggered_by: str
    trigger_kind: TriggerKind = TriggerKind.WEBHOOK

class TriggerEvent(BaseModel):
    """What the external listener hands to the engine for one run."""

    clone_url: str
    ref: str
    commit_sha: Optional[str] = None
    repo_full_name: str
    branch: str = ""
    triggered_by: str = ""
    trigger_kind: TriggerKind = TriggerKind.WEBHOOK

    # Filled from the push payload when available, otherwise read back from git
    commit_message: Optional[str] = None
    commit_author: Optional[str] = None
