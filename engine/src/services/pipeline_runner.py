"""
Run a pipeline for one trigger: acquire sources, execute jobs, store the run.
"""

import logging
import os
from typing import Optional, Tuple

from engine.src.config import get_settings
from engine.src.errors import GitQueryError
from engine.src.models.results import RunRecord, TriggerEvent, TriggerKind
from engine.src.services.git import (
    acquire_source,
    get_commit_details,
    get_current_branch,
    get_current_commit,
)
from engine.src.services.pipeline_parser import load_pipeline_file
from engine.src.services.repo_auth import FileRepoAuth, RepoAuth
from engine.src.services.run_store import RunStore, get_run_store, utcnow
from engine.src.services.scheduler import execute_pipeline
from engine.src.services.workspace import workspace_guard

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

def run_pipeline(
    trigger: TriggerEvent,
    store: Optional[RunStore] = None,
    auth: Optional[RepoAuth] = None,
    workspace_dir: Optional[str] = None,
    max_workers: Optional[int] = None,
    step_timeout: Optional[float] = None,
) -> RunRecord:
    """
    Execute the pipeline of `trigger` end to end.

    Acquisition and definition errors propagate before any job runs and
    nothing is stored for them. Otherwise the stored RunRecord is returned,
    whatever the job outcomes.
    """
    settings = get_settings()
    store = store or get_run_store()
    auth = auth if auth is not None else FileRepoAuth()
    workspace_dir = workspace_dir or settings.workspace_dir
    if step_timeout is None:
        step_timeout = settings.step_timeout

    logger.info(
        f"Starting {trigger.trigger_kind.value} run for {trigger.repo_full_name} "
        f"(ref: {trigger.ref}, commit: {trigger.commit_sha or 'HEAD'})"
    )

    with workspace_guard(workspace_dir, timeout=settings.workspace_lock_timeout):
        started_at = utcnow()

        acquire_source(
            trigger.clone_url,
            trigger.ref,
            workspace_dir,
            commit_sha=trigger.commit_sha,
            auth=auth,
        )

        definition = load_pipeline_file(os.path.join(workspace_dir, settings.pipeline_file))
        commit_sha, branch = _read_revision(workspace_dir, trigger)
        commit_author, commit_message = _read_commit_details(workspace_dir, commit_sha, trigger)

        results = execute_pipeline(
            definition,
            workspace_dir,
            max_workers=max_workers,
            step_timeout=step_timeout,
        )
        finished_at = utcnow()

    record = store.store_run(
        definition,
        results,
        repo_name=trigger.repo_full_name,
        branch=branch,
        commit_sha=commit_sha,
        commit_message=commit_message,
        commit_author=commit_author,
        triggered_by=trigger.triggered_by,
        trigger_kind=trigger.trigger_kind,
        started_at=started_at,
        finished_at=finished_at,
    )

    log_run_summary(record)
    return record

def trigger_manual_run(
    repo_full_name: str,
    branch: Optional[str] = None,
    commit_sha: Optional[str] = None,
    **kwargs,
) -> RunRecord:
    """Run the pipeline of a GitHub repository without a push event."""
    settings = get_settings()
    branch = branch or settings.default_branch

    trigger = TriggerEvent(
        clone_url=f"https://{settings.github_host}/{repo_full_name}.git",
        ref=f"refs/heads/{branch}",
        commit_sha=commit_sha,
        repo_full_name=repo_full_name,
        branch=branch,
        triggered_by=settings.manual_trigger_actor,
        trigger_kind=TriggerKind.MANUAL,
    )
    return run_pipeline(trigger, **kwargs)

def _read_revision(workspace_dir: str, trigger: TriggerEvent) -> Tuple[str, str]:
    try:
        commit_sha = get_current_commit(workspace_dir)
    except GitQueryError as e:
        logger.warning(f"Could not get current commit SHA: {e}")
        commit_sha = trigger.commit_sha or UNKNOWN

    branch = trigger.branch
    if not branch:
        try:
            branch = get_current_branch(workspace_dir)
        except GitQueryError as e:
            logger.warning(f"Could not get current branch name: {e}")
            branch = UNKNOWN

    return commit_sha, branch

def _read_commit_details(
    workspace_dir: str,
    commit_sha: str,
    trigger: TriggerEvent,
) -> Tuple[str, str]:
    if trigger.commit_author is not None and trigger.commit_message is not None:
        return trigger.commit_author, trigger.commit_message

    author, message = UNKNOWN, UNKNOWN
    if commit_sha != UNKNOWN:
        try:
            author, message = get_commit_details(workspace_dir, commit_sha)
        except GitQueryError as e:
            logger.warning(f"Could not get commit details for SHA '{commit_sha}': {e}")

    return trigger.commit_author or author, trigger.commit_message or message

def log_run_summary(record: RunRecord):
    logger.info(f"Run {record.id} finished with status: {record.status.value}")
    for job_name, result in record.results.items():
        logger.info(f"  {job_name}: {result.status.value}")
        for step_name, step in result.steps.items():
            logger.info(f"    {step_name}: {step.status.value}")
