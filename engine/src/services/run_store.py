"""
Persist pipeline runs to the database and read them back.
"""

import logging
import threading
from datetime import datetime, timezone
from functools import lru_cache
from typing import Dict, List, Optional

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from engine.src.config import get_settings
from engine.src.errors import RunNotFound
from engine.src.models.db import Base, PipelineRun
from engine.src.models.pipeline import PipelineDefinition
from engine.src.models.results import (
    JobResult,
    JobStatus,
    RunRecord,
    TriggerKind,
)

logger = logging.getLogger(__name__)

RUN_ID_FORMAT = "%Y%m%d%H%M%S"
MAX_ID_ATTEMPTS = 5

def calculate_overall_status(results: Dict[str, JobResult]) -> JobStatus:
    for result in results.values():
        if result.status == JobStatus.FAILURE:
            return JobStatus.FAILURE
    return JobStatus.SUCCESS

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

class RunStore:
    """
    One row per run, written in a single transaction and never updated.

    Run ids are `YYYYMMDDHHMMSS-NNNN`: the creation second plus a sequence
    number within that second, so ids sort by creation time.
    """

    def __init__(self, database_url: Optional[str] = None):
        database_url = database_url or get_settings().database_url

        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False

        self.engine = create_engine(database_url, connect_args=connect_args)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self._id_lock = threading.Lock()

    def init_db(self):
        Base.metadata.create_all(self.engine)

    def _next_run_id(self, session, now: datetime) -> str:
        stamp = now.strftime(RUN_ID_FORMAT)
        taken = session.scalar(
            select(func.count()).select_from(PipelineRun).where(PipelineRun.id.like(f"{stamp}-%"))
        )
        return f"{stamp}-{taken + 1:04d}"

    def store_run(
        self,
        definition: PipelineDefinition,
        results: Dict[str, JobResult],
        repo_name: str,
        branch: str,
        commit_sha: str,
        commit_message: str,
        commit_author: str,
        triggered_by: str,
        trigger_kind: TriggerKind = TriggerKind.WEBHOOK,
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
    ) -> RunRecord:
        """Assign a run id, compute the overall status and persist the record."""
        now = utcnow()

        with self._id_lock:
            for attempt in range(MAX_ID_ATTEMPTS):
                with self.SessionLocal() as session:
                    record = RunRecord(
                        id=self._next_run_id(session, now),
                        definition=definition,
                        results=results,
                        started_at=started_at or now,
                        finished_at=finished_at or now,
                        status=calculate_overall_status(results),
                        repo_name=repo_name,
                        branch=branch,
                        commit_sha=commit_sha,
                        commit_message=commit_message,
                        commit_author=commit_author,
                        triggered_by=triggered_by,
                        trigger_kind=trigger_kind,
                    )
                    session.add(
                        PipelineRun(
                            id=record.id,
                            repo_name=record.repo_name,
                            branch=record.branch,
                            commit_sha=record.commit_sha,
                            status=record.status.value,
                            trigger_kind=record.trigger_kind.value,
                            started_at=_naive_utc(record.started_at),
                            finished_at=_naive_utc(record.finished_at),
                            record=record.model_dump(mode="json"),
                        )
                    )
                    try:
                        session.commit()
                    except IntegrityError:
                        # Another process took the same id
                        session.rollback()
                        logger.warning(f"Run id {record.id} already taken, retrying")
                        continue

                logger.info(f"Stored run {record.id} with status {record.status.value}")
                return record

        raise RuntimeError(f"Could not allocate a run id after {MAX_ID_ATTEMPTS} attempts")

    def get_run(self, run_id: str) -> RunRecord:
        with self.SessionLocal() as session:
            row = session.get(PipelineRun, run_id)
            if row is None:
                raise RunNotFound(run_id)
            return RunRecord.model_validate(row.record)

    def list_recent_runs(self, limit: int = 20) -> List[RunRecord]:
        """Most recently started runs first."""
        if limit <= 0:
            return []

        with self.SessionLocal() as session:
            rows = session.scalars(
                select(PipelineRun)
                .order_by(PipelineRun.started_at.desc(), PipelineRun.id.desc())
                .limit(limit)
            ).all()
            return [RunRecord.model_validate(row.record) for row in rows]

@lru_cache()
def get_run_store() -> RunStore:
    store = RunStore()
    store.init_db()
    return store
