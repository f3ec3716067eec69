"""
Models for run state: per-service status and runtime handles.
"""
from typing import Optional
from enum import Enum
from pydantic import BaseModel


class ServiceStatus(str, Enum):
    """
    Lifecycle status of a service.
    Pending -> Starting -> Running -> (Stopped | Failed)
    """
    PENDING = "pending"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


class ContainerHandle(BaseModel):
    """
    What the runtime hands back for a started service.
    Serializable so that a later invocation can stop it.
    """
    service: str
    container_id: str
    image: str
    pid: Optional[int] = None


class ServiceState(BaseModel):
    name: str
    status: ServiceStatus = ServiceStatus.PENDING
    handle: Optional[ContainerHandle] = None
    error: Optional[str] = None
