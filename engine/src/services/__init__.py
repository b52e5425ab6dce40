from engine.src.services.executor import execute_step
from engine.src.services.git import (
    acquire_source,
    resolve_branch,
    get_current_commit,
    get_current_branch,
    get_commit_details,
)
from engine.src.services.job_runner import JobRun, run_job
from engine.src.services.pipeline_parser import (
    parse_pipeline_config,
    parse_pipeline_dict,
    load_pipeline_file,
)
from engine.src.services.pipeline_runner import run_pipeline, trigger_manual_run
from engine.src.services.repo_auth import FileRepoAuth, StaticRepoAuth
from engine.src.services.run_store import RunStore, get_run_store
from engine.src.services.scheduler import build_dependency_graph, execute_pipeline

__all__ = [
    "execute_step",
    "acquire_source",
    "resolve_branch",
    "get_current_commit",
    "get_current_branch",
    "get_commit_details",
    "JobRun",
    "run_job",
    "parse_pipeline_config",
    "parse_pipeline_dict",
    "load_pipeline_file",
    "run_pipeline",
    "trigger_manual_run",
    "FileRepoAuth",
    "StaticRepoAuth",
    "RunStore",
    "get_run_store",
    "build_dependency_graph",
    "execute_pipeline",
]
