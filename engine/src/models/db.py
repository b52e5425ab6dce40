"""
Database models for the run store.
"""

from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class PipelineRun(Base):
    __tablename__ = "pipeline_runs"

    id = Column(String(32), primary_key=True)
    repo_name = Column(String(255), nullable=False)
    branch = Column(String(255), nullable=False)
    commit_sha = Column(String(64), nullable=False)
    status = Column(String(50), nullable=False)
    trigger_kind = Column(String(50), nullable=False)
    started_at = Column(DateTime, nullable=False, index=True)
    finished_at = Column(DateTime)
    record = Column(JSON, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
