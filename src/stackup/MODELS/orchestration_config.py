"""
Models for overall stack configuration.
"""
from typing import Dict, Optional
from pydantic import BaseModel
from .service_definition import ServiceSpec

DEFAULT_NETWORK = "default"


class NetworkDefinition(BaseModel):
    """
    A declared network, keyed by its manifest name. ``driver`` is the isolation mode.
    ``external_name`` is compose's ``name:`` and replaces the project-scoped runtime name.
    """
    name: str
    driver: str = "bridge"
    internal: bool = False
    external_name: Optional[str] = None


class VolumeDefinition(BaseModel):
    """
    A declared named volume, keyed by its manifest name.

    Persistent volumes survive ``down``; the others are removed with the
    services that use them.
    """
    name: str
    persistent: bool = True
    external_name: Optional[str] = None


class StackConfig(BaseModel):
    """
    Complete configuration for a multi-service stack.
    Equivalent to a parsed docker-compose.yml file.

    ``services`` keeps manifest declaration order.
    """
    services: Dict[str, ServiceSpec]
    networks: Dict[str, NetworkDefinition] = {}
    volumes: Dict[str, VolumeDefinition] = {}

    def networks_for(self, service: ServiceSpec) -> Dict[str, NetworkDefinition]:
        """Networks a service joins, falling back to the implicit default network."""
        names = service.networks or [DEFAULT_NETWORK]
        return {name: self.networks.get(name, NetworkDefinition(name=name)) for name in names}

    def used_networks(self) -> Dict[str, NetworkDefinition]:
        result: Dict[str, NetworkDefinition] = {}
        for svc in self.services.values():
            result.update(self.networks_for(svc))
        return result
