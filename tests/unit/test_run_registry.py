import pytest

from stackup.errors import RegistryNotInitialised
from stackup.MANAGERS import run_registry
from stackup.MANAGERS.run_registry import RunRegistry, init_registry, get_registry, clear_registry, read_state_file
from stackup.MODELS.run_state import ServiceStatus, ContainerHandle


def test_lifecycle_transitions_are_enforced(tmp_path):
    registry = RunRegistry("demo", str(tmp_path / "state.json"))
    registry.register(["db"])
    assert registry.get("db").status == ServiceStatus.PENDING

    with pytest.raises(ValueError):
        registry.transition("db", ServiceStatus.RUNNING)

    registry.transition("db", ServiceStatus.STARTING)
    registry.transition("db", ServiceStatus.RUNNING)
    registry.transition("db", ServiceStatus.STOPPED)
    with pytest.raises(ValueError):
        registry.transition("db", ServiceStatus.RUNNING)


def test_state_is_persisted(tmp_path):
    state_file = str(tmp_path / "state.json")
    registry = RunRegistry("demo", state_file)
    registry.register(["db"])
    registry.transition("db", ServiceStatus.STARTING)
    registry.set_handle("db", ContainerHandle(service="db", container_id="abc", image="postgres"))
    registry.transition("db", ServiceStatus.RUNNING)

    states = read_state_file(state_file)
    assert states["db"].status == ServiceStatus.RUNNING
    assert states["db"].handle.container_id == "abc"

    loaded = RunRegistry.load("demo", state_file)
    assert loaded.get("db").handle.image == "postgres"


def test_register_keeps_existing_state(tmp_path):
    registry = RunRegistry("demo", str(tmp_path / "state.json"))
    registry.register(["db"])
    registry.transition("db", ServiceStatus.STARTING)
    registry.register(["db", "api"])
    assert registry.get("db").status == ServiceStatus.STARTING
    assert registry.get("api").status == ServiceStatus.PENDING


def test_process_wide_init_and_clear(tmp_path):
    clear_registry(delete_state=False)
    with pytest.raises(RegistryNotInitialised):
        get_registry()

    state_file = str(tmp_path / "state.json")
    registry = init_registry("demo", state_file)
    assert get_registry() is registry
    assert init_registry("demo", state_file) is registry

    registry.register(["db"])
    registry.transition("db", ServiceStatus.STARTING)
    assert (tmp_path / "state.json").exists()

    clear_registry()
    assert not (tmp_path / "state.json").exists()
    assert run_registry._registry is None
