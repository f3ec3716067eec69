"""
Container runtime backed by the ``docker`` command line client.
"""
import logging
import os
import subprocess
from typing import Dict, List, Optional

from ..errors import RuntimeCommandError
from ..MODELS.orchestration_config import NetworkDefinition, VolumeDefinition, DEFAULT_NETWORK
from ..MODELS.run_state import ContainerHandle
from ..MODELS.service_definition import ServiceSpec
from .container_runtime import ContainerRuntime

logger = logging.getLogger(__name__)


class DockerCliRuntime(ContainerRuntime):
    """
    Drives Docker through its CLI. Every call is a separate ``docker`` process,
    arguments are passed as a list and never through a shell.
    """
    def __init__(self, project: str, base_dir: str = ".", docker_bin: str = "docker"):
        super().__init__(project, base_dir)
        self.docker_bin = docker_bin

    def _docker(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        command = [self.docker_bin] + args
        logger.debug("Running %s", " ".join(command))
        try:
            result = subprocess.run(command, capture_output=True, text=True, shell=False)
        except FileNotFoundError as e:
            raise RuntimeCommandError(command, 127, str(e)) from e
        if check and result.returncode != 0:
            raise RuntimeCommandError(command, result.returncode, result.stderr)
        return result

    def build(self, spec: ServiceSpec) -> str:
        build = spec.build
        tag = spec.image or f"{self.scoped(spec.name)}:latest"
        context = os.path.join(self.base_dir, build.context)
        args = ["build", "-t", tag]
        if build.dockerfile:
            args += ["-f", os.path.join(context, build.dockerfile)]
        if build.target:
            args += ["--target", build.target]
        for key, value in build.args.items():
            args += ["--build-arg", f"{key}={value}"]
        args.append(context)
        logger.info("Building image %s for %s", tag, spec.name)
        self._docker(args)
        return tag

    def has_image(self, image_ref: str) -> bool:
        return self._docker(["image", "inspect", image_ref], check=False).returncode == 0

    def run(self,
            image_ref: str,
            spec: ServiceSpec,
            extra_env: Optional[Dict[str, str]] = None,
            volumes: Optional[Dict[str, str]] = None,
            networks: Optional[Dict[str, str]] = None) -> ContainerHandle:
        name = self.scoped(spec.name)
        known = networks or {}
        networks = [known.get(n, self.scoped(n)) for n in (spec.networks or [DEFAULT_NETWORK])]
        volumes = volumes or {}

        # a container left behind by an interrupted run would block the name
        self._docker(["rm", "-f", name], check=False)

        args = ["run", "-d", "--name", name, "--network", networks[0], "--network-alias", spec.name]
        env = dict(extra_env or {})
        env.update(spec.environment)
        for key, value in env.items():
            args += ["-e", f"{key}={value}"]
        for port in spec.ports:
            mapping = f"{port.published}:{port.target}" if port.published else str(port.target)
            args += ["-p", f"{mapping}/{port.protocol}"]
        for mount in spec.volumes:
            if mount.is_named:
                source = volumes.get(mount.source, self.scoped(mount.source))
            else:
                source = os.path.abspath(os.path.join(self.base_dir, os.path.expanduser(mount.source)))
            args += ["-v", f"{source}:{mount.target}" + (":ro" if mount.read_only else "")]
        if spec.working_dir:
            args += ["-w", spec.working_dir]
        args.append(image_ref)
        args += spec.command

        container_id = self._docker(args).stdout.strip()
        try:
            for network in networks[1:]:
                self._docker(["network", "connect", "--alias", spec.name, network, container_id])
        except RuntimeCommandError:
            # nobody holds a handle to this container yet
            self._docker(["rm", "-f", container_id], check=False)
            raise
        logger.info("Started container %s (%s)", name, container_id[:12])
        return ContainerHandle(service=spec.name, container_id=container_id, image=image_ref)

    def stop(self, handle: ContainerHandle, timeout: int = 10):
        result = self._docker(["stop", "-t", str(timeout), handle.container_id], check=False)
        if result.returncode != 0 and "No such container" not in result.stderr:
            raise RuntimeCommandError(["docker", "stop", handle.container_id], result.returncode, result.stderr)

    def remove(self, handle: ContainerHandle):
        result = self._docker(["rm", handle.container_id], check=False)
        if result.returncode != 0 and "No such container" not in result.stderr:
            raise RuntimeCommandError(["docker", "rm", handle.container_id], result.returncode, result.stderr)

    def is_running(self, handle: ContainerHandle) -> bool:
        result = self._docker(["inspect", "-f", "{{.State.Running}}", handle.container_id], check=False)
        return result.returncode == 0 and result.stdout.strip() == "true"

    def check_health(self, handle: ContainerHandle, spec: ServiceSpec) -> bool:
        if not spec.healthcheck:
            return self.is_running(handle)
        result = self._docker(["exec", handle.container_id] + spec.healthcheck.test, check=False)
        return result.returncode == 0

    def create_network(self, definition: NetworkDefinition) -> str:
        name = self.resource_name(definition)
        if self._docker(["network", "inspect", name], check=False).returncode == 0:
            return name
        args = ["network", "create", "--driver", definition.driver]
        if definition.internal:
            args.append("--internal")
        self._docker(args + [name])
        logger.info("Created network %s", name)
        return name

    def remove_network(self, name: str, runtime_name: str):
        self._docker(["network", "rm", runtime_name])

    def create_volume(self, definition: VolumeDefinition) -> str:
        name = self.resource_name(definition)
        if self._docker(["volume", "inspect", name], check=False).returncode != 0:
            self._docker(["volume", "create", name])
            logger.info("Created volume %s", name)
        return name

    def remove_volume(self, name: str, location: str):
        self._docker(["volume", "rm", location])
