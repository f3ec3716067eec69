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
Error taxonomy for stackup.

Every error carries a stable ``exit_code`` which the CLI returns to the shell.
"""
from typing import List, Optional


class StackupError(Exception):
    """Base error for all stackup failures."""

    exit_code = 1


class ValidationError(StackupError):
    """Raised when a manifest is well formed but semantically invalid."""

    exit_code = 2


class SchemaError(StackupError):
    """Raised when a manifest is malformed or misses a required field."""

    exit_code = 3


class CycleError(StackupError):
    """Raised when service dependencies form a cycle."""

    exit_code = 4

    def __init__(self, members: List[str]):
        self.members = list(members)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.members)}")


class StartError(StackupError):
    """Raised when the runtime fails to start a service."""

    exit_code = 5

    def __init__(self, service: str, cause: Optional[BaseException] = None, message: Optional[str] = None):
        self.service = service
        self.cause = cause
        # dependents left pending because this service failed
        self.skipped: List[str] = []
        detail = message or (str(cause) if cause else "unknown error")
        super().__init__(f"Service '{service}' failed to start: {detail}")

    def __str__(self):
        message = super().__str__()
        if self.skipped:
            message += f" (not started: {', '.join(self.skipped)})"
        return message


class ReadinessTimeoutError(StartError):
    """Raised when a started service never reports ready."""

    exit_code = 6

    def __init__(self, service: str, timeout: float):
        self.timeout = timeout
        super().__init__(service, message=f"not ready after {timeout:g}s")


class RuntimeCommandError(StackupError):
    """Raised when a container runtime command exits with an error."""

    exit_code = 7

    def __init__(self, command: List[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"'{' '.join(self.command)}' exited with {returncode}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class OperationCancelled(StackupError):
    """Raised when an operation is cancelled before it completes."""

    exit_code = 130


class RegistryNotInitialised(StackupError):
    """Raised when the run registry is used outside of an up/down cycle."""


class StateFileError(StackupError):
    """Raised when a state or index file under the state directory cannot be read."""
