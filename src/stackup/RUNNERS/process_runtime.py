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
Runtime that runs each service's command as a native process.

There is no image and no isolation: the build context stands in for the
image, every service gets a private root directory under the state
directory, and named volumes are directories linked into that root.
"""
import logging
import os
import shutil
import subprocess
from typing import Dict, Optional

import psutil

from ..MODELS.orchestration_config import NetworkDefinition, VolumeDefinition
from ..MODELS.run_state import ContainerHandle
from ..MODELS.service_definition import ServiceSpec
from .container_runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class ProcessRuntime(ContainerRuntime):
    """
    Manages services as local processes with log redirection.
    Processes are addressed by pid, so a later invocation can stop them.
    """
    def __init__(self, project: str, base_dir: str = ".", state_dir: str = ".stackup"):
        """
        :param state_dir: Where logs, service roots and volumes live.
        """
        super().__init__(project, base_dir)
        self.state_dir = os.path.abspath(os.path.join(base_dir, state_dir))
        self.log_dir = os.path.join(self.state_dir, "logs")
        self._processes: Dict[int, subprocess.Popen] = {}

    def service_root(self, service: str) -> str:
        return os.path.join(self.state_dir, "services", self.scoped(service))

    def build(self, spec: ServiceSpec) -> str:
        # nothing to build for a native process; the context is the "image"
        context = os.path.abspath(os.path.join(self.base_dir, spec.build.context))
        logger.info("Using build context %s for %s", context, spec.name)
        return context

    def run(self,
            image_ref: str,
            spec: ServiceSpec,
            extra_env: Optional[Dict[str, str]] = None,
            volumes: Optional[Dict[str, str]] = None,
            networks: Optional[Dict[str, str]] = None) -> ContainerHandle:
        if not spec.command:
            raise ValueError(f"service '{spec.name}' has no command to run")

        root = self.service_root(spec.name)
        os.makedirs(root, exist_ok=True)
        self._link_volumes(spec, root, volumes or {})

        env = os.environ.copy()
        env.update(extra_env or {})
        env.update(spec.environment)
        env["STACKUP_SERVICE_ROOT"] = root

        working_dir = root
        if spec.working_dir:
            working_dir = os.path.join(root, spec.working_dir.lstrip("/\\"))
            os.makedirs(working_dir, exist_ok=True)

        os.makedirs(self.log_dir, exist_ok=True)
        log_path = os.path.join(self.log_dir, f"{spec.name}.log")
        logger.info("[%s] Starting command: %s", spec.name, " ".join(spec.command))
        with open(log_path, "a") as log_handle:
            process = subprocess.Popen(
                spec.command,
                env=env,
                cwd=working_dir,
                stdout=log_handle,
                stderr=subprocess.STDOUT,
                text=True,
                shell=False,
            )
        self._processes[process.pid] = process
        return ContainerHandle(
            service=spec.name,
            container_id=f"{self.scoped(spec.name)}-{process.pid}",
            image=image_ref,
            pid=process.pid,
        )

    def _link_volumes(self, spec: ServiceSpec, root: str, volumes: Dict[str, str]):
        """
        Links every mount target inside the service root to its source.
        """
        for mount in spec.volumes:
            if mount.is_named:
                source = volumes.get(mount.source) or os.path.join(self.state_dir, "volumes", self.scoped(mount.source))
            else:
                source = os.path.abspath(os.path.join(self.base_dir, os.path.expanduser(mount.source)))
            os.makedirs(source, exist_ok=True)

            target = os.path.join(root, mount.target.lstrip("/\\"))
            os.makedirs(os.path.dirname(target), exist_ok=True)
            if os.path.islink(target):
                if os.path.realpath(target) == os.path.realpath(source):
                    continue
                os.unlink(target)
            elif os.path.isdir(target):
                shutil.rmtree(target)
            os.symlink(source, target, target_is_directory=True)
            logger.debug("Mapped volume %s -> %s", source, target)

    def _process(self, handle: ContainerHandle) -> Optional[psutil.Process]:
        if handle.pid is None:
            return None
        try:
            return psutil.Process(handle.pid)
        except psutil.NoSuchProcess:
            return None

    def stop(self, handle: ContainerHandle, timeout: int = 10):
        """
        Sends SIGTERM to the process and its children, then SIGKILL after ``timeout``.
        """
        proc = self._process(handle)
        if proc is None:
            return
        try:
            family = proc.children(recursive=True) + [proc]
        except psutil.NoSuchProcess:
            return
        logger.info("[%s] Stopping process %s", handle.service, handle.pid)
        for p in family:
            try:
                p.terminate()
            except psutil.NoSuchProcess:
                pass
        _, alive = psutil.wait_procs(family, timeout=timeout)
        for p in alive:
            logger.warning("[%s] Process %s did not terminate, killing", handle.service, p.pid)
            try:
                p.kill()
            except psutil.NoSuchProcess:
                pass
        popen = self._processes.pop(handle.pid, None)
        if popen is not None:
            popen.wait(timeout=timeout)

    def remove(self, handle: ContainerHandle):
        # symlinks are unlinked, volume data behind them is left alone
        root = self.service_root(handle.service)
        if os.path.isdir(root):
            shutil.rmtree(root)

    def is_running(self, handle: ContainerHandle) -> bool:
        popen = self._processes.get(handle.pid)
        if popen is not None:
            return popen.poll() is None
        proc = self._process(handle)
        if proc is None:
            return False
        try:
            return proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False

    def check_health(self, handle: ContainerHandle, spec: ServiceSpec) -> bool:
        if not self.is_running(handle):
            return False
        if not spec.healthcheck:
            return True
        env = os.environ.copy()
        env.update(spec.environment)
        try:
            result = subprocess.run(
                spec.healthcheck.test,
                env=env,
                cwd=self.service_root(spec.name),
                capture_output=True,
                timeout=spec.healthcheck.timeout,
                shell=False,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug("[%s] Health check failed: %s", spec.name, e)
            return False
        return result.returncode == 0

    def service_address(self, service: str) -> str:
        return "127.0.0.1"

    def create_network(self, definition: NetworkDefinition) -> str:
        # processes share the host network; membership only drives discovery variables
        return self.resource_name(definition)

    def remove_network(self, name: str, runtime_name: str):
        pass

    def create_volume(self, definition: VolumeDefinition) -> str:
        path = os.path.join(self.state_dir, "volumes", self.resource_name(definition))
        os.makedirs(path, exist_ok=True)
        return path

    def remove_volume(self, name: str, location: str):
        if os.path.isdir(location):
            shutil.rmtree(location)
