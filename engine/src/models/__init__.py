from engine.src.models.pipeline import Step, Job, PipelineDefinition
from engine.src.models.results import (
    StepStatus,
    JobStatus,
    JobState,
    TriggerKind,
    StepResult,
    JobResult,
    RunRecord,
    TriggerEvent,
)

__all__ = [
    "Step",
    "Job",
    "PipelineDefinition",
    "StepStatus",
    "JobStatus",
    "JobState",
    "TriggerKind",
    "StepResult",
    "JobResult",
    "RunRecord",
    "TriggerEvent",
]
