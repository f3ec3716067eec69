"""
Process-wide registry of service run states.

The registry exists between ``init_registry`` (called when a stack starts
or is torn down) and ``clear_registry`` (called once teardown is complete).
It is mirrored to a JSON state file so that a stack started with
``up --detach`` can be inspected and stopped by a later invocation.
"""
import json
import logging
import os
import threading
from typing import Dict, Iterable, Optional

from ..errors import RegistryNotInitialised, StateFileError
from ..MODELS.run_state import ServiceState, ServiceStatus, ContainerHandle

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ServiceStatus.PENDING: {ServiceStatus.STARTING},
    ServiceStatus.STARTING: {ServiceStatus.RUNNING, ServiceStatus.FAILED},
    ServiceStatus.RUNNING: {ServiceStatus.STOPPED, ServiceStatus.FAILED},
    # a later ``up`` may start stopped or failed services again
    ServiceStatus.STOPPED: {ServiceStatus.STARTING},
    ServiceStatus.FAILED: {ServiceStatus.STARTING, ServiceStatus.STOPPED},
}


class RunRegistry:
    """
    Holds the state of every service in one project, one lock per service.
    """
    def __init__(self, project: str, state_file: str):
        self.project = project
        self.state_file = state_file
        self._states: Dict[str, ServiceState] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    @classmethod
    def load(cls, project: str, state_file: str) -> "RunRegistry":
        registry = cls(project, state_file)
        for name, state in read_state_file(state_file).items():
            registry._states[name] = state
            registry._locks[name] = threading.RLock()
        return registry

    def register(self, names: Iterable[str]):
        with self._guard:
            for name in names:
                if name not in self._states:
                    self._states[name] = ServiceState(name=name)
                    self._locks[name] = threading.RLock()

    def lock(self, name: str) -> threading.RLock:
        return self._locks[name]

    def get(self, name: str) -> ServiceState:
        return self._states[name].model_copy()

    def names(self):
        return list(self._states)

    def states(self) -> Dict[str, ServiceState]:
        with self._guard:
            return {name: state.model_copy() for name, state in self._states.items()}

    def transition(self,
                   name: str,
                   status: ServiceStatus,
                   handle: Optional[ContainerHandle] = None,
                   error: Optional[str] = None):
        """
        Moves a service to ``status``. Callers must hold the service's lock.

        :raises ValueError: If the transition is not part of the lifecycle.
        """
        current = self._states[name]
        if status not in ALLOWED_TRANSITIONS[current.status]:
            raise ValueError(f"Service {name} cannot go from {current.status.value} to {status.value}")
        updated = current.model_copy(update={"status": status, "error": error})
        if handle is not None:
            updated.handle = handle
        self._states[name] = updated
        logger.debug("%s: %s -> %s", name, current.status.value, status.value)
        self.save()

    def set_handle(self, name: str, handle: Optional[ContainerHandle]):
        self._states[name] = self._states[name].model_copy(update={"handle": handle})
        self.save()

    def save(self):
        with self._guard:
            payload = {
                "project": self.project,
                "services": {name: state.model_dump(mode="json") for name, state in self._states.items()},
            }
            directory = os.path.dirname(self.state_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            tmp = self.state_file + ".tmp"
            with open(tmp, 'w') as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp, self.state_file)


def read_state_file(state_file: str) -> Dict[str, ServiceState]:
    if not os.path.exists(state_file):
        return {}
    try:
        with open(state_file, 'r') as f:
            data = json.load(f)
        return {name: ServiceState(**info) for name, info in data.get("services", {}).items()}
    except (ValueError, TypeError, AttributeError) as e:
        raise StateFileError(f"Corrupt state file {state_file}: {e}") from e


_registry: Optional[RunRegistry] = None
_registry_lock = threading.Lock()


def init_registry(project: str, state_file: str) -> RunRegistry:
    """
    Makes the registry for ``project`` current, picking up any state a
    previous invocation left behind.
    """
    global _registry
    with _registry_lock:
        if _registry is None or _registry.project != project or _registry.state_file != state_file:
            _registry = RunRegistry.load(project, state_file)
        return _registry


def get_registry() -> RunRegistry:
    if _registry is None:
        raise RegistryNotInitialised("No stack has been started in this process")
    return _registry


def clear_registry(delete_state: bool = True):
    """
    Drops the current registry and, by default, its state file.
    """
    global _registry
    with _registry_lock:
        if _registry is not None and delete_state and os.path.exists(_registry.state_file):
            os.remove(_registry.state_file)
        _registry = None
