"""
Pipeline YAML parser and validator.
"""

import os
import yaml
from typing import List, Dict, Any, Optional

from engine.src.errors import PipelineConfigError
from engine.src.models.pipeline import PipelineDefinition, Job, Step

def parse_pipeline_config(yaml_content: str) -> PipelineDefinition:
    """Parse pipeline YAML configuration from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise PipelineConfigError(f"Invalid YAML: {e}")

    return validate_config(config)

def parse_pipeline_dict(config: Dict[str, Any]) -> PipelineDefinition:
    """Validate pipeline configuration from dict."""
    return validate_config(config)

def load_pipeline_file(path: str) -> PipelineDefinition:
    """Read and validate the pipeline file of a working tree."""
    if not os.path.isfile(path):
        raise PipelineConfigError(f"Pipeline configuration not found: {path}")

    with open(path, "r") as f:
        return parse_pipeline_config(f.read())

def validate_config(config: Optional[Dict[str, Any]]) -> PipelineDefinition:
    """Validate pipeline configuration structure."""
    if not config:
        raise PipelineConfigError("Empty pipeline configuration")

    if not isinstance(config, dict):
        raise PipelineConfigError("Pipeline configuration must be a dictionary")

    name = config.get("name", "Unnamed Pipeline")
    if not isinstance(name, str):
        raise PipelineConfigError("Pipeline 'name' must be a string")

    # YAML 1.1 loads a bare `on:` key as the boolean True
    events = config.get("on", config.get(True)) or []
    if isinstance(events, dict):
        events = [str(event) for event in events]
    triggers = _string_list(events, "Pipeline 'on'")

    if "jobs" not in config:
        raise PipelineConfigError("Pipeline must have 'jobs' defined")

    jobs = config["jobs"]
    if not isinstance(jobs, dict):
        raise PipelineConfigError("Pipeline 'jobs' must be a mapping")

    if len(jobs) == 0:
        raise PipelineConfigError("Pipeline must have at least one job")

    validated_jobs = {}
    for job_name, job in jobs.items():
        if not isinstance(job_name, str):
            raise PipelineConfigError(f"Job name {job_name!r} must be a string")
        validated_jobs[job_name] = validate_job(job_name, job)

    return PipelineDefinition(name=name, on=triggers, jobs=validated_jobs)

def validate_job(job_name: str, job: Dict[str, Any]) -> Job:
    """Validate a single job and its steps."""
    if not isinstance(job, dict):
        raise PipelineConfigError(f"Job '{job_name}' must be a dictionary")

    needs = _string_list(job.get("needs") or [], f"Job '{job_name}' 'needs'")

    if "steps" not in job:
        raise PipelineConfigError(f"Job '{job_name}' missing 'steps'")

    steps = job["steps"]
    if not isinstance(steps, list):
        raise PipelineConfigError(f"Job '{job_name}' 'steps' must be a list")

    if len(steps) == 0:
        raise PipelineConfigError(f"Job '{job_name}' must have at least one step")

    validated_steps = []
    seen = set()
    for i, step in enumerate(steps):
        validated_step = validate_step(job_name, step, i)
        if validated_step.name in seen:
            raise PipelineConfigError(
                f"Job '{job_name}' has duplicate step name '{validated_step.name}'"
            )
        seen.add(validated_step.name)
        validated_steps.append(validated_step)

    return Job(name=job_name, steps=validated_steps, needs=needs)

def validate_step(job_name: str, step: Dict[str, Any], index: int) -> Step:
    """Validate a single job step."""
    if not isinstance(step, dict):
        raise PipelineConfigError(f"Job '{job_name}' step {index} must be a dictionary")

    # Required fields
    if "name" not in step:
        raise PipelineConfigError(f"Job '{job_name}' step {index} missing 'name'")

    if "run" not in step:
        raise PipelineConfigError(f"Job '{job_name}' step {index} missing 'run'")

    # Validate types
    if not isinstance(step["name"], str):
        raise PipelineConfigError(f"Job '{job_name}' step {index} 'name' must be a string")

    if not isinstance(step["run"], str):
        raise PipelineConfigError(f"Job '{job_name}' step {index} 'run' must be a string")

    return Step(name=step["name"], run=step["run"])

def _string_list(value: Any, what: str) -> List[str]:
    if isinstance(value, str):
        return [value]

    if not isinstance(value, list):
        raise PipelineConfigError(f"{what} must be a string or a list")

    for item in value:
        if not isinstance(item, str):
            raise PipelineConfigError(f"{what} entries must be strings")

    return list(value)
