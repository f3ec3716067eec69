"""
Network management for services, handling isolated networks and service discovery.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from pydantic import BaseModel

from ..errors import StateFileError
from ..MODELS.orchestration_config import NetworkDefinition
from ..RUNNERS.container_runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class Network(BaseModel):
    """
    A created network.
    """
    name: str
    driver: str = "bridge"
    internal: bool = False
    runtime_name: str
    created_at: str


class NetworkManager:
    """
    Creates or reuses networks keyed by name and tracks which services joined them.
    Networks outlive teardown and are destroyed only by ``remove``.
    """
    def __init__(self, runtime: ContainerRuntime, state_dir: str = ".stackup"):
        self.runtime = runtime
        self.state_dir = os.path.abspath(state_dir)
        self.index_file = os.path.join(self.state_dir, "networks.json")
        self.networks: Dict[str, Network] = self._load_index()
        self.members: Dict[str, Set[str]] = {}  # network -> services

    def _load_index(self) -> Dict[str, Network]:
        if not os.path.exists(self.index_file):
            return {}
        try:
            with open(self.index_file, 'r') as f:
                data = json.load(f)
            return {name: Network(**info) for name, info in data.items()}
        except (ValueError, TypeError, AttributeError) as e:
            raise StateFileError(f"Corrupt network index {self.index_file}: {e}") from e

    def _save_index(self):
        os.makedirs(self.state_dir, exist_ok=True)
        with open(self.index_file, 'w') as f:
            json.dump({name: net.model_dump() for name, net in self.networks.items()}, f, indent=2)

    def create(self, definition: NetworkDefinition) -> Network:
        """
        Creates a network, or returns the existing one of the same name.
        """
        existing = self.networks.get(definition.name)
        if existing is not None:
            logger.debug("Reusing network %s", definition.name)
            return existing
        runtime_name = self.runtime.create_network(definition)
        network = Network(
            name=definition.name,
            driver=definition.driver,
            internal=definition.internal,
            runtime_name=runtime_name,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.networks[definition.name] = network
        self._save_index()
        logger.info("Created network %s (%s)", definition.name, definition.driver)
        return network

    def get(self, name: str) -> Optional[Network]:
        return self.networks.get(name)

    def list(self) -> List[Network]:
        return list(self.networks.values())

    def runtime_names(self) -> Dict[str, str]:
        return {name: net.runtime_name for name, net in self.networks.items()}

    def remove(self, name: str) -> bool:
        """
        Destroys a network.

        :return: False if no such network exists.
        """
        network = self.networks.get(name)
        if network is None:
            return False
        self.runtime.remove_network(name, network.runtime_name)
        del self.networks[name]
        self.members.pop(name, None)
        self._save_index()
        logger.info("Removed network %s", name)
        return True

    def connect(self, service: str, network: str):
        """
        Records ``service`` as a member of ``network``.
        """
        if network not in self.networks:
            raise KeyError(f"Network {network} does not exist")
        self.members.setdefault(network, set()).add(service)

    def peers(self, service: str) -> List[str]:
        """
        Services sharing at least one network with ``service``; the scope
        in which ``service`` can resolve other services by name.
        """
        found: Set[str] = set()
        for members in self.members.values():
            if service in members:
                found.update(members)
        found.discard(service)
        return sorted(found)

    def discovery_env(self, service: str) -> Dict[str, str]:
        """
        Generates environment variables for service discovery.
        Example: DB_HOST=db (docker) or DB_HOST=127.0.0.1 (native processes)
        """
        env = {}
        for peer in self.peers(service):
            prefix = peer.upper().replace('-', '_').replace('.', '_')
            env[f"{prefix}_HOST"] = self.runtime.service_address(peer)
        return env
