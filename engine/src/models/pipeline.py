"""
Pipeline definition models.
"""

from pydantic import BaseModel, Field
from typing import Dict, List

class Step(BaseModel):
    name: str
    run: str

    class Config:
        frozen = True

class Job(BaseModel):
    name: str
    steps: List[Step]
    needs: List[str] = []

    class Config:
        frozen = True

class PipelineDefinition(BaseModel):
    """Parsed job graph of a `.ci.yaml` file. Jobs keep file order."""

    name: str = "Unnamed Pipeline"
    on: List[str] = []
    jobs: Dict[str, Job] = Field(default_factory=dict)

    class Config:
        frozen = True
