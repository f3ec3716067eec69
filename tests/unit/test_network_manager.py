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
Unit tests for the network manager.
"""
import pytest
from stackup.MANAGERS.network_manager import NetworkManager
from stackup.MODELS.orchestration_config import NetworkDefinition
from stackup.RUNNERS.process_runtime import ProcessRuntime


class TestNetworkManager:
    """Tests for NetworkManager."""

    def test_create_network(self, tmp_path, fake_runtime):
        """Test network creation."""
        mgr = NetworkManager(fake_runtime(), state_dir=str(tmp_path))
        net = mgr.create(NetworkDefinition(name="backend", internal=True))
        assert net.runtime_name == "test_backend"
        assert net.internal is True
        assert "backend" in mgr.networks

    def test_create_is_idempotent(self, tmp_path, fake_runtime):
        runtime = fake_runtime()
        mgr = NetworkManager(runtime, state_dir=str(tmp_path))
        first = mgr.create(NetworkDefinition(name="backend"))
        second = NetworkManager(runtime, state_dir=str(tmp_path)).create(NetworkDefinition(name="backend"))
        assert first == second
        assert runtime.names("create_network") == ["backend"]

    def test_remove_network(self, tmp_path, fake_runtime):
        """Test network removal."""
        runtime = fake_runtime()
        mgr = NetworkManager(runtime, state_dir=str(tmp_path))
        mgr.create(NetworkDefinition(name="backend"))
        assert mgr.remove("backend") is True
        assert "backend" not in mgr.networks
        assert runtime.names("remove_network") == ["backend"]
        assert mgr.remove("backend") is False

    def test_connect_requires_network(self, tmp_path, fake_runtime):
        mgr = NetworkManager(fake_runtime(), state_dir=str(tmp_path))
        with pytest.raises(KeyError):
            mgr.connect("web", "missing")

    def test_peers_are_scoped_by_network(self, tmp_path, fake_runtime):
        mgr = NetworkManager(fake_runtime(), state_dir=str(tmp_path))
        mgr.create(NetworkDefinition(name="backend"))
        mgr.create(NetworkDefinition(name="frontend"))
        mgr.connect("db", "backend")
        mgr.connect("api", "backend")
        mgr.connect("api", "frontend")
        mgr.connect("proxy", "frontend")

        assert mgr.peers("api") == ["db", "proxy"]
        assert mgr.peers("db") == ["api"]
        assert mgr.peers("proxy") == ["api"]

    def test_discovery_env(self, tmp_path):
        """Test service discovery environment generation."""
        runtime = ProcessRuntime("demo", base_dir=str(tmp_path))
        mgr = NetworkManager(runtime, state_dir=str(tmp_path))
        mgr.create(NetworkDefinition(name="default"))
        mgr.connect("spring-api", "default")
        mgr.connect("db", "default")
        assert mgr.discovery_env("db") == {"SPRING_API_HOST": "127.0.0.1"}
        assert mgr.discovery_env("spring-api") == {"DB_HOST": "127.0.0.1"}
