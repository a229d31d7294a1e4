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
Error types raised by dbox components.

Every error carries the process exit code the CLI reports for it.
"""


class DistroboxError(Exception):
    """
    Base class for all dbox failures.
    """
    exit_code = 1

    def __init__(self, message: str, exit_code: int = None):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code


class UsageError(DistroboxError):
    """Conflicting or missing arguments."""
    exit_code = 2


class ProtectedFileError(DistroboxError):
    """Refusal to touch a file that dbox did not create."""
    exit_code = 2


class ContainerContextError(DistroboxError):
    """Operation run on the wrong side of the container boundary."""
    exit_code = 126


class MissingDependencyError(DistroboxError):
    """A required external command or package manager is missing."""
    exit_code = 127


class TargetNotFoundError(DistroboxError):
    """A binary, unit or application to export does not exist."""
    exit_code = 127


class NotInstalledError(TargetNotFoundError):
    """An application has no desktop entry inside the container."""


class NotExportedError(DistroboxError):
    """Deletion requested for an artifact that was never exported."""


class ContainerNotFoundError(DistroboxError):
    """The named container is unknown to the engine."""


class BootstrapTimeoutError(DistroboxError):
    """The container did not report readiness in time."""


class EngineCommandError(DistroboxError):
    """The container engine returned a non-zero status."""
