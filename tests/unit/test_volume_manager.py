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
Unit tests for the volume manager.
"""
import os
import pytest
from stackup.MANAGERS.volume_manager import VolumeManager
from stackup.MODELS.orchestration_config import VolumeDefinition
from stackup.RUNNERS.process_runtime import ProcessRuntime


class TestVolumeManager:
    """Tests for VolumeManager."""

    def test_create_volume(self, tmp_path, fake_runtime):
        """Test volume creation."""
        runtime = fake_runtime()
        vm = VolumeManager(runtime, state_dir=str(tmp_path))
        vol = vm.create(VolumeDefinition(name="pgdata"))
        assert vol.name == "pgdata"
        assert vol.location == "test_pgdata"
        assert "test_pgdata" in runtime.store

    def test_create_volume_idempotent(self, tmp_path, fake_runtime):
        """Creating the same volume twice returns the existing volume."""
        runtime = fake_runtime()
        vm = VolumeManager(runtime, state_dir=str(tmp_path))
        vol1 = vm.create(VolumeDefinition(name="pgdata"))
        runtime.store[vol1.location]["PG_VERSION"] = "16"
        vol2 = vm.create(VolumeDefinition(name="pgdata"))
        assert vol1 == vol2
        assert runtime.names("create_volume") == ["pgdata"]
        assert runtime.store[vol2.location] == {"PG_VERSION": "16"}

    def test_index_survives_new_manager(self, tmp_path, fake_runtime):
        """A later invocation reuses volumes created by an earlier one."""
        runtime = fake_runtime()
        VolumeManager(runtime, state_dir=str(tmp_path)).create(VolumeDefinition(name="pgdata"))
        vm = VolumeManager(runtime, state_dir=str(tmp_path))
        assert vm.get("pgdata") is not None
        vm.create(VolumeDefinition(name="pgdata"))
        assert runtime.names("create_volume") == ["pgdata"]

    def test_list_volumes(self, tmp_path, fake_runtime):
        """Test listing volumes."""
        vm = VolumeManager(fake_runtime(), state_dir=str(tmp_path))
        vm.create(VolumeDefinition(name="vol1"))
        vm.create(VolumeDefinition(name="vol2"))
        names = [v.name for v in vm.list()]
        assert names == ["vol1", "vol2"]
        assert vm.locations() == {"vol1": "test_vol1", "vol2": "test_vol2"}

    def test_remove_volume(self, tmp_path, fake_runtime):
        """Test volume removal."""
        runtime = fake_runtime()
        vm = VolumeManager(runtime, state_dir=str(tmp_path))
        vm.create(VolumeDefinition(name="pgdata"))
        assert vm.remove("pgdata") is True
        assert vm.get("pgdata") is None
        assert "test_pgdata" not in runtime.store
        assert vm.remove("pgdata") is False

    def test_process_runtime_keeps_data(self, tmp_path):
        """Directory-backed volumes keep their files until removed."""
        runtime = ProcessRuntime("demo", base_dir=str(tmp_path), state_dir=".stackup")
        vm = VolumeManager(runtime, state_dir=str(tmp_path / ".stackup"))
        vol = vm.create(VolumeDefinition(name="data"))
        assert os.path.isdir(vol.location)
        with open(os.path.join(vol.location, "row.txt"), "w") as f:
            f.write("kept")

        again = VolumeManager(runtime, state_dir=str(tmp_path / ".stackup")).create(VolumeDefinition(name="data"))
        with open(os.path.join(again.location, "row.txt")) as f:
            assert f.read() == "kept"

        vm.remove("data")
        assert not os.path.exists(vol.location)
