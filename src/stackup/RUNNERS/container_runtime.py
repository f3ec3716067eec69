# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
The narrow interface stackup uses to talk to a container runtime.

stackup never creates containers, images, networks or volumes itself; it
asks a runtime to do so and keeps track of the handles it gets back.
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..MODELS.orchestration_config import NetworkDefinition, VolumeDefinition
from ..MODELS.run_state import ContainerHandle
from ..MODELS.service_definition import ServiceSpec


class ContainerRuntime(ABC):
    """
    Base class for container runtimes.

    :param project: Project name used to namespace containers, networks and volumes.
    :param base_dir: Directory that relative build contexts and bind mounts resolve against.
    """
    def __init__(self, project: str, base_dir: str = "."):
        self.project = project
        self.base_dir = base_dir

    def scoped(self, name: str) -> str:
        """Project-scoped name for a service, network or volume."""
        return f"{self.project}_{name}"

    def resource_name(self, definition) -> str:
        """Runtime name of a network or volume definition."""
        return definition.external_name or self.scoped(definition.name)

    @abstractmethod
    def build(self, spec: ServiceSpec) -> str:
        """Builds the service's image from its build context and returns the image reference."""

    def has_image(self, image_ref: str) -> bool:
        return False

    @abstractmethod
    def run(self,
            image_ref: str,
            spec: ServiceSpec,
            extra_env: Optional[Dict[str, str]] = None,
            volumes: Optional[Dict[str, str]] = None,
            networks: Optional[Dict[str, str]] = None) -> ContainerHandle:
        """
        Creates and starts a container for ``spec``.

        :param extra_env: Variables injected below the service's own environment.
        :param volumes: Named volume -> backing location, as returned by ``create_volume``.
        :param networks: Network -> runtime name, as returned by ``create_network``.
        """

    @abstractmethod
    def stop(self, handle: ContainerHandle, timeout: int = 10):
        """Stops a container. Stopping an already stopped container is not an error."""

    @abstractmethod
    def remove(self, handle: ContainerHandle):
        """Removes a stopped container."""

    @abstractmethod
    def is_running(self, handle: ContainerHandle) -> bool:
        pass

    def check_health(self, handle: ContainerHandle, spec: ServiceSpec) -> bool:
        """
        One readiness check. Without a health check a running container is ready.
        """
        return self.is_running(handle)

    def service_address(self, service: str) -> str:
        """Address other services use to reach ``service``."""
        return service

    @abstractmethod
    def create_network(self, definition: NetworkDefinition) -> str:
        """Creates the network if it does not exist and returns its runtime name."""

    @abstractmethod
    def remove_network(self, name: str, runtime_name: str):
        pass

    @abstractmethod
    def create_volume(self, definition: VolumeDefinition) -> str:
        """Creates the volume if it does not exist and returns its backing location."""

    @abstractmethod
    def remove_volume(self, name: str, location: str):
        pass
