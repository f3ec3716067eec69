"""
Orchestrator settings, fed from CLI options and their environment variables.
"""
from enum import Enum
from pydantic import BaseModel, Field


class RuntimeKind(str, Enum):
    DOCKER = "docker"
    PROCESS = "process"


class Settings(BaseModel):
    """
    Knobs for a single stackup invocation.
    """
    project_name: str = "stackup"
    state_dir: str = ".stackup"
    runtime: RuntimeKind = RuntimeKind.DOCKER
    readiness_timeout: float = Field(default=60.0, gt=0)
    readiness_interval: float = Field(default=1.0, gt=0)
    max_workers: int = Field(default=4, ge=1)
