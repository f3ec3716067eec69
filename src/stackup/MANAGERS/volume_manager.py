"""
Volume management: named volumes that outlive the services using them.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel

from ..errors import StateFileError
from ..MODELS.orchestration_config import VolumeDefinition
from ..RUNNERS.container_runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class Volume(BaseModel):
    """
    A created volume. ``location`` is whatever the runtime uses to find
    its storage (a docker volume name or a directory).
    """
    name: str
    location: str
    persistent: bool = True
    created_at: str


class VolumeManager:
    """
    Creates or reuses named volumes, keyed by name.

    Volumes are recorded in an index under the state directory and are
    only destroyed through ``remove``. Which volumes go away on ``down``
    is decided by the lifecycle controller from their ``persistent`` flag.
    """
    def __init__(self, runtime: ContainerRuntime, state_dir: str = ".stackup"):
        """
        :param runtime: Runtime that owns the backing storage.
        :param state_dir: Directory holding the volume index.
        """
        self.runtime = runtime
        self.state_dir = os.path.abspath(state_dir)
        self.index_file = os.path.join(self.state_dir, "volumes.json")
        self._volumes: Dict[str, Volume] = self._load_index()

    def _load_index(self) -> Dict[str, Volume]:
        if not os.path.exists(self.index_file):
            return {}
        try:
            with open(self.index_file, 'r') as f:
                data = json.load(f)
            return {name: Volume(**info) for name, info in data.items()}
        except (ValueError, TypeError, AttributeError) as e:
            raise StateFileError(f"Corrupt volume index {self.index_file}: {e}") from e

    def _save_index(self):
        os.makedirs(self.state_dir, exist_ok=True)
        with open(self.index_file, 'w') as f:
            json.dump({name: vol.model_dump() for name, vol in self._volumes.items()}, f, indent=2)

    def create(self, definition: VolumeDefinition) -> Volume:
        """
        Creates a volume, or returns the existing one of the same name untouched.
        """
        existing = self._volumes.get(definition.name)
        if existing is not None:
            logger.debug("Reusing volume %s", definition.name)
            return existing
        location = self.runtime.create_volume(definition)
        volume = Volume(
            name=definition.name,
            location=location,
            persistent=definition.persistent,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self._volumes[definition.name] = volume
        self._save_index()
        logger.info("Created volume %s", definition.name)
        return volume

    def get(self, name: str) -> Optional[Volume]:
        return self._volumes.get(name)

    def list(self) -> List[Volume]:
        return list(self._volumes.values())

    def locations(self) -> Dict[str, str]:
        return {name: vol.location for name, vol in self._volumes.items()}

    def remove(self, name: str) -> bool:
        """
        Destroys a volume and its data.

        :return: False if no such volume exists.
        """
        volume = self._volumes.get(name)
        if volume is None:
            return False
        self.runtime.remove_volume(name, volume.location)
        del self._volumes[name]
        self._save_index()
        logger.info("Removed volume %s", name)
        return True
