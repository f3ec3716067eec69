"""
Models for defining services, including build sources, health checks and mounts.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel, model_validator


class BuildConfig(BaseModel):
    """
    Where and how to build a service image.
    ``target`` selects a stage of a multi-stage build.
    """
    context: str
    dockerfile: Optional[str] = None
    target: Optional[str] = None
    args: Dict[str, str] = {}


class HealthCheck(BaseModel):
    """
    Defines a command to run to check the readiness of a service.
    """
    test: List[str]
    interval: float = 5.0
    timeout: float = 30.0
    retries: int = 3
    start_period: float = 0.0


class VolumeMount(BaseModel):
    """
    Defines a mapping between a volume (or host path) and a service path.
    """
    source: str
    target: str
    read_only: bool = False

    @property
    def is_named(self) -> bool:
        """True when ``source`` names a managed volume rather than a host path."""
        return bool(self.source) and not self.source.startswith(('.', '/', '~')) and '/' not in self.source


class PortMapping(BaseModel):
    """
    A container port, optionally published on the host.
    """
    target: int
    published: Optional[int] = None
    protocol: str = "tcp"


class ServiceSpec(BaseModel):
    """
    The full definition of a single service after substitution and validation.
    """
    name: str
    image: Optional[str] = None
    build: Optional[BuildConfig] = None

    # Execution
    command: List[str] = []
    working_dir: Optional[str] = None

    # Environment
    environment: Dict[str, str] = {}

    # Networking
    ports: List[PortMapping] = []
    networks: List[str] = []

    # Storage
    volumes: List[VolumeMount] = []

    # Lifecycle
    healthcheck: Optional[HealthCheck] = None
    depends_on: List[str] = []

    @model_validator(mode="after")
    def _require_image_or_build(self) -> "ServiceSpec":
        if not self.image and self.build is None:
            raise ValueError(f"service '{self.name}' needs either 'image' or 'build'")
        return self

    @property
    def named_volumes(self) -> List[str]:
        return [m.source for m in self.volumes if m.is_named]
