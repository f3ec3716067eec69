import logging
import threading

import pytest

from stackup.MANAGERS.lifecycle_controller import LifecycleController
from stackup.MANAGERS import run_registry
from stackup.MODELS.run_state import ContainerHandle
from stackup.MODELS.settings import Settings
from stackup.PARSERS.compose_parser import ComposeParser
from stackup.RUNNERS.container_runtime import ContainerRuntime


class FakeRuntime(ContainerRuntime):
    """
    In-memory runtime. Records every call; volumes are dicts in ``store``.
    """
    def __init__(self, project="test", fail_on=(), unhealthy=(), on_run=None):
        super().__init__(project)
        self.fail_on = set(fail_on)
        self.unhealthy = set(unhealthy)
        self.on_run = on_run
        self.calls = []
        self.running = {}
        self.envs = {}
        self.mounts = {}
        self.attached = {}
        self.networks = {}
        self.store = {}
        self._lock = threading.Lock()
        self._seq = 0

    def _record(self, op, name):
        with self._lock:
            self.calls.append((op, name))

    def names(self, op):
        return [name for (o, name) in self.calls if o == op]

    def build(self, spec):
        self._record("build", spec.name)
        return f"{self.scoped(spec.name)}:built"

    def run(self, image_ref, spec, extra_env=None, volumes=None, networks=None):
        self._record("run", spec.name)
        if self.on_run:
            self.on_run(spec)
        if spec.name in self.fail_on:
            raise RuntimeError(f"cannot start {spec.name}")
        with self._lock:
            self._seq += 1
            container_id = f"c{self._seq}"
            self.running[container_id] = spec.name
            self.envs[spec.name] = dict(extra_env or {})
            self.mounts[spec.name] = dict(volumes or {})
            self.attached[spec.name] = dict(networks or {})
        return ContainerHandle(service=spec.name, container_id=container_id, image=image_ref)

    def stop(self, handle, timeout=10):
        self._record("stop", handle.service)
        with self._lock:
            self.running.pop(handle.container_id, None)

    def remove(self, handle):
        self._record("remove", handle.service)

    def is_running(self, handle):
        return handle.container_id in self.running

    def check_health(self, handle, spec):
        return spec.name not in self.unhealthy and self.is_running(handle)

    def create_network(self, definition):
        self._record("create_network", definition.name)
        self.networks[definition.name] = definition
        return self.resource_name(definition)

    def remove_network(self, name, runtime_name):
        self._record("remove_network", name)
        self.networks.pop(name, None)

    def create_volume(self, definition):
        self._record("create_volume", definition.name)
        location = self.resource_name(definition)
        self.store.setdefault(location, {})
        return location

    def remove_volume(self, name, location):
        self._record("remove_volume", name)
        self.store.pop(location, None)


@pytest.fixture(autouse=True)
def reset_registry():
    yield
    run_registry.clear_registry(delete_state=False)
    root = logging.getLogger("stackup")
    for handler in [h for h in root.handlers if getattr(h, "_stackup", False)]:
        root.removeHandler(handler)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        project_name="test",
        state_dir=str(tmp_path / ".stackup"),
        readiness_timeout=0.3,
        readiness_interval=0.01,
        max_workers=4,
    )


@pytest.fixture
def make_controller(settings):
    def factory(manifest, runtime=None, env=None):
        config = ComposeParser(env or {}).parse_from_string(manifest)
        return LifecycleController(config, runtime or FakeRuntime(), settings)
    return factory


@pytest.fixture
def fake_runtime():
    """Factory for FakeRuntime instances."""
    return FakeRuntime
