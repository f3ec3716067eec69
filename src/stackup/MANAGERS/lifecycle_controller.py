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
Lifecycle control for a stack: ordered, wave-parallel startup with
readiness gating and rollback, and reverse-order teardown.
"""
import logging
import os
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from typing import Dict, List, Optional

from ..BUILDERS.image_builder import ImageBuilder
from ..errors import OperationCancelled, RegistryNotInitialised, StackupError, StartError
from ..MODELS.orchestration_config import StackConfig
from ..MODELS.run_state import ServiceState, ServiceStatus
from ..MODELS.settings import Settings
from ..RUNNERS.container_runtime import ContainerRuntime
from ..RUNNERS.dependency_resolver import DependencyResolver
from .network_manager import NetworkManager
from .readiness import ReadinessProbe
from .run_registry import init_registry, clear_registry, get_registry, read_state_file, RunRegistry
from .volume_manager import VolumeManager

logger = logging.getLogger(__name__)


class LifecycleController:
    """
    Starts and stops the services of one stack.

    Service run state is owned by this class; every change goes through the
    run registry under the service's lock.
    """
    def __init__(self,
                 config: StackConfig,
                 runtime: ContainerRuntime,
                 settings: Optional[Settings] = None,
                 probe: Optional[ReadinessProbe] = None):
        """
        Initializes the controller.

        :param config: Configuration for all services.
        :param runtime: Runtime that runs the containers.
        :param settings: Project name, state directory and tuning knobs.
        :param probe: Readiness probe; defaults to polling the runtime.
        """
        self.config = config
        self.runtime = runtime
        self.settings = settings or Settings()
        self.state_file = os.path.join(self.settings.state_dir, "state.json")
        self.resolver = DependencyResolver()
        self.volume_manager = VolumeManager(runtime, self.settings.state_dir)
        self.network_manager = NetworkManager(runtime, self.settings.state_dir)
        self.image_builder = ImageBuilder(runtime)
        self.probe = probe or ReadinessProbe(
            runtime,
            timeout=self.settings.readiness_timeout,
            interval=self.settings.readiness_interval,
        )

    def _registry(self) -> RunRegistry:
        return init_registry(self.settings.project_name, self.state_file)

    def _ensure_resources(self):
        """
        Creates (or reuses) every network and volume the stack needs.
        """
        for name, definition in self.config.used_networks().items():
            self.network_manager.create(definition)
        for svc in self.config.services.values():
            for net in self.config.networks_for(svc):
                self.network_manager.connect(svc.name, net)
        for definition in self.config.volumes.values():
            self.volume_manager.create(definition)

    def up(self, build: bool = False, cancel: Optional[threading.Event] = None) -> Dict[str, ServiceState]:
        """
        Starts all services in dependency order, one wave at a time.

        :param build: Rebuild images of services that have a build source.
        :param cancel: When set, no further wave is started and started services are rolled back.
        :return: Final state of every service.
        :raises CycleError: Before anything is created, if dependencies form a cycle.
        :raises StartError: If a service failed to start or become ready.
        """
        waves = self.resolver.resolve_waves(self.config)
        logger.info("Starting services in waves: %s", " | ".join(", ".join(w) for w in waves))

        registry = self._registry()
        registry.register(self.config.services)
        self._ensure_resources()

        started: List[str] = []
        try:
            for wave in waves:
                if cancel is not None and cancel.is_set():
                    raise OperationCancelled("Startup cancelled")
                self._start_wave(registry, wave, build, started)
        except StartError as e:
            e.skipped = [
                name for name in self.resolver.dependents(self.config, e.service)
                if registry.get(name).status == ServiceStatus.PENDING
            ]
            logger.error("%s", e)
            self._rollback(registry, started)
            raise
        except OperationCancelled as e:
            logger.error("%s", e)
            self._rollback(registry, started)
            raise
        except KeyboardInterrupt as e:
            logger.error("Startup interrupted")
            self._rollback(registry, started)
            raise OperationCancelled("Startup interrupted") from e
        return registry.states()

    def _start_wave(self, registry: RunRegistry, wave: List[str], build: bool, started: List[str]):
        runnable = []
        for name in wave:
            if registry.get(name).status == ServiceStatus.RUNNING:
                logger.info("Service %s is already running", name)
                continue
            deps = self.config.services[name].depends_on
            if all(registry.get(dep).status == ServiceStatus.RUNNING for dep in deps):
                runnable.append(name)

        failures: Dict[str, StartError] = {}
        workers = min(self.settings.max_workers, max(len(runnable), 1))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stackup-start") as pool:
            futures = {name: pool.submit(self._start_service, registry, name, build) for name in runnable}
            interrupt = self._settle(futures, started, failures)
        if interrupt is not None:
            raise interrupt
        if failures:
            # report the first failure in manifest order
            raise failures[next(name for name in wave if name in failures)]

    def _settle(self, futures: Dict[str, Future], started: List[str], failures: Dict[str, StartError]):
        """
        Waits for every start in a wave, recording each outcome.

        Every service that did start ends up in ``started``, even after a
        Ctrl+C, so that rollback can stop it. Starts still queued when an
        interrupt arrives are cancelled.

        :return: The KeyboardInterrupt seen while waiting, if any.
        """
        interrupt = None
        pending = dict(futures)
        while pending:
            try:
                for name in list(pending):
                    future = pending[name]
                    if interrupt is not None:
                        future.cancel()
                    try:
                        future.result()
                        started.append(name)
                    except CancelledError:
                        pass
                    except StartError as e:
                        failures[name] = e
                    except KeyboardInterrupt as e:
                        interrupt = interrupt or e
                    except Exception as e:
                        failures[name] = StartError(name, e)
                    del pending[name]
            except KeyboardInterrupt as e:
                interrupt = interrupt or e
        return interrupt

    def _start_service(self, registry: RunRegistry, name: str, build: bool):
        """
        Moves one service Pending -> Starting -> Running (or Failed).
        """
        spec = self.config.services[name]
        with registry.lock(name):
            if registry.get(name).status == ServiceStatus.STARTING:
                # left behind by an invocation that died mid-start
                registry.transition(name, ServiceStatus.FAILED, error="interrupted while starting")
            registry.transition(name, ServiceStatus.STARTING)
            logger.info("Starting service: %s", name)
            try:
                image_ref = self.image_builder.resolve(spec, force_build=build)
                handle = self.runtime.run(
                    image_ref,
                    spec,
                    extra_env=self.network_manager.discovery_env(name),
                    volumes=self.volume_manager.locations(),
                    networks=self.network_manager.runtime_names(),
                )
            except Exception as e:
                registry.transition(name, ServiceStatus.FAILED, error=str(e))
                raise StartError(name, e) from e
            except BaseException:
                registry.transition(name, ServiceStatus.FAILED, error="interrupted")
                raise
            registry.set_handle(name, handle)

            try:
                self.probe.wait(handle, spec)
            except StartError as e:
                self._fail_started(registry, name, handle, str(e))
                raise
            except Exception as e:
                self._fail_started(registry, name, handle, str(e))
                raise StartError(name, e) from e
            except BaseException:
                self._fail_started(registry, name, handle, "interrupted")
                raise
            registry.transition(name, ServiceStatus.RUNNING)

    def _fail_started(self, registry: RunRegistry, name: str, handle, error: str):
        registry.transition(name, ServiceStatus.FAILED, error=error)
        if self._stop_quietly(name, handle):
            registry.set_handle(name, None)

    def _stop_quietly(self, name, handle) -> bool:
        try:
            self.runtime.stop(handle)
            self.runtime.remove(handle)
        except Exception as e:
            logger.warning("Could not clean up %s: %s", name, e)
            return False
        return True

    def _rollback(self, registry: RunRegistry, started: List[str]):
        """
        Stops the services started by this ``up`` in reverse order.
        """
        for name in reversed(started):
            with registry.lock(name):
                state = registry.get(name)
                if state.status != ServiceStatus.RUNNING:
                    continue
                logger.info("Rolling back service: %s", name)
                try:
                    self.runtime.stop(state.handle)
                    self.runtime.remove(state.handle)
                except StackupError as e:
                    logger.error("Rollback of %s failed: %s", name, e)
                    continue
                registry.transition(name, ServiceStatus.STOPPED)
                registry.set_handle(name, None)

    def down(self, remove_volumes: bool = False, cancel: Optional[threading.Event] = None) -> Dict[str, ServiceState]:
        """
        Stops all services in reverse dependency order.

        Services that are pending, stopped or failed are skipped. If ``cancel``
        is set, containers are no longer removed but every started service is
        still stopped. Volumes declared with ``persistent: false`` are removed
        after a complete teardown; the others only when ``remove_volumes`` is given.

        :return: State of every service after teardown.
        :raises OperationCancelled: If teardown was cancelled.
        :raises StackupError: If a service could not be stopped.
        """
        if not os.path.exists(self.state_file):
            logger.info("Nothing to stop")
            clear_registry(delete_state=False)
            if remove_volumes:
                self._remove_volumes()
            return {}

        registry = self._registry()
        order = self.resolver.resolve_order(self.config)
        # services started from an older manifest go first
        leftovers = [name for name in registry.names() if name not in self.config.services]
        errors: List[StackupError] = []

        for name in leftovers + list(reversed(order)):
            if name not in registry.names():
                continue
            with registry.lock(name):
                state = registry.get(name)
                if state.handle is None:
                    continue
                if state.status == ServiceStatus.FAILED:
                    self._stop_quietly(name, state.handle)
                    registry.set_handle(name, None)
                    continue
                if state.status in (ServiceStatus.RUNNING, ServiceStatus.STARTING):
                    logger.info("Stopping service: %s", name)
                    try:
                        self.runtime.stop(state.handle)
                    except StackupError as e:
                        logger.error("Failed to stop %s: %s", name, e)
                        errors.append(e)
                        continue
                    if state.status == ServiceStatus.RUNNING:
                        registry.transition(name, ServiceStatus.STOPPED)
                    else:
                        registry.transition(name, ServiceStatus.FAILED, error="stopped while starting")
                if cancel is not None and cancel.is_set():
                    continue
                try:
                    self.runtime.remove(state.handle)
                except StackupError as e:
                    logger.error("Failed to remove %s: %s", name, e)
                    errors.append(e)
                    continue
                registry.set_handle(name, None)

        states = registry.states()
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Teardown cancelled; containers were stopped but not removed")
        if errors:
            raise errors[0]
        clear_registry()
        self._remove_volumes(transient_only=not remove_volumes)
        return states

    def _remove_volumes(self, transient_only: bool = False):
        for name, definition in self.config.volumes.items():
            if transient_only and definition.persistent:
                continue
            self.volume_manager.remove(name)

    def ps(self) -> Dict[str, ServiceState]:
        """
        Returns the state of all services, reconciled with the runtime.

        Uses the live registry when this process runs the stack, and the
        state file otherwise.
        """
        try:
            registry = get_registry()
        except RegistryNotInitialised:
            registry = None
        if registry is not None and registry.state_file == self.state_file:
            states = registry.states()
        else:
            states = read_state_file(self.state_file)
        result = {}
        for name in self.config.services:
            state = states.get(name, ServiceState(name=name))
            if state.status == ServiceStatus.RUNNING and state.handle and not self.runtime.is_running(state.handle):
                state = state.model_copy(update={"status": ServiceStatus.FAILED, "error": "exited"})
            result[name] = state
        return result
