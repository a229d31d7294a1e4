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
Builders for container engine invocations (create, exec and lifecycle verbs).
"""
import os
import stat
from typing import Dict, List, Optional

from ..MODELS.container_identity import ContainerIdentity
from ..MODELS.distrobox_config import ContainerManager, DistroboxConfig
from ..MODELS.engine_command import EngineCommand
from ..MODELS.mount_spec import MountTable, load_mount_table
from ..RUNNERS.command_runner import CommandRunner
from ..UTILS.markers import ENTRYPOINT_PATH, EXPORT_BINARY_PATH, under_root
from ..errors import MissingDependencyError

MANAGER_LABEL = "manager=distrobox"
ENTRYPOINT_BINARY = "dbox-init"
EXPORT_BINARY = "dbox-export"


def detect_engine(config: DistroboxConfig, runner: CommandRunner) -> str:
    """
    Resolves which container engine to drive.

    :param config: Resolved configuration.
    :param runner: Runner used to look up executables.
    :return: Engine executable name.
    :raises MissingDependencyError: If the engine is not installed.
    """
    if config.container_manager != ContainerManager.AUTODETECT:
        engine = config.container_manager.value
        if runner.which(engine) is None:
            raise MissingDependencyError(f"{engine} is not installed")
        return engine

    for engine in (ContainerManager.PODMAN.value, ContainerManager.DOCKER.value):
        if runner.which(engine) is not None:
            return engine
    raise MissingDependencyError("missing dependency: we need a container manager, please install podman or docker")


class EngineCommandBuilder:
    """
    Turns a ContainerIdentity and the mount table into engine argument lists.
    Building a command has no side effects; running it is the caller's job.
    """
    def __init__(self,
                 engine: str,
                 identity: ContainerIdentity,
                 runner: Optional[CommandRunner] = None,
                 host_root: str = "/",
                 mount_table: Optional[MountTable] = None,
                 verbose: bool = False):
        """
        Initializes the builder.

        :param engine: Engine executable (``podman`` or ``docker``).
        :param identity: The container to build commands for.
        :param runner: Used to locate the entrypoint and export binaries.
        :param host_root: Root under which host paths are inspected.
        :param mount_table: Override for the packaged mount table.
        :param verbose: Pass ``--verbose`` to the bootstrap entrypoint.
        """
        self.engine = engine
        self.identity = identity
        self.runner = runner or CommandRunner()
        self.host_root = host_root
        self.mount_table = mount_table or load_mount_table()
        self.verbose = verbose

    @property
    def is_podman(self) -> bool:
        return os.path.basename(self.engine).startswith("podman")

    def _command(self, verb: str, options: Optional[List[str]] = None, arguments: Optional[List[str]] = None) -> EngineCommand:
        return EngineCommand(
            engine=self.engine,
            verb=verb,
            options=options or [],
            target=self.identity.name,
            arguments=arguments or [],
        )

    def _host_path(self, path: str) -> str:
        return under_root(self.host_root, path)

    def _strip_root(self, path: str) -> str:
        if self.host_root in ("", "/"):
            return path
        root = os.path.realpath(self.host_root)
        if path == root:
            return "/"
        if path.startswith(root + os.sep):
            return path[len(root):]
        return path

    def host_sockets(self) -> List[str]:
        """
        Enumerates sockets under the host's runtime directory, leaving out
        every user's private ``/run/user`` tree.

        :return: Sorted absolute socket paths.
        """
        run_dir = self._host_path("/run")
        user_dir = os.path.join(run_dir, "user")
        sockets = []
        for dirpath, dirnames, filenames in os.walk(run_dir):
            if dirpath == user_dir or dirpath.startswith(user_dir + os.sep):
                dirnames[:] = []
                continue
            for name in filenames:
                path = os.path.join(dirpath, name)
                try:
                    if stat.S_ISSOCK(os.lstat(path).st_mode):
                        sockets.append(self._strip_root(os.path.realpath(path)))
                except OSError:
                    continue
        return sorted(set(sockets))

    def host_config_volumes(self) -> List[str]:
        """
        Read-only volumes for the dynamic host files, with symlink chains
        resolved so the container sees the final targets.
        """
        volumes = []
        for mount in self.mount_table.host_config:
            path = self._host_path(mount.source)
            if not os.path.exists(path):
                continue
            resolved = self._strip_root(os.path.realpath(path))
            volumes.append(f"{resolved}:{mount.target}:ro")
        return volumes

    def build_create(self) -> EngineCommand:
        """
        Builds the ``create`` invocation for the container.

        :return: The engine command.
        :raises MissingDependencyError: If the bootstrap entrypoint is not installed.
        """
        user = self.identity.user
        entrypoint = self.runner.which(ENTRYPOINT_BINARY)
        if entrypoint is None:
            raise MissingDependencyError(f"cannot find {ENTRYPOINT_BINARY}, is dbox installed correctly?")

        options = [
            "--hostname", self.identity.name,
            "--name", self.identity.name,
            "--privileged",
            "--security-opt", "label=disable",
            "--user", "root:root",
            "--ipc", "host",
            "--network", "host",
            "--pid", "host",
            "--label", MANAGER_LABEL,
            "--env", f"SHELL={user.shell}",
            "--env", f"HOME={user.home}",
        ]

        for mount in self.mount_table.engine:
            flags = "ro,rslave" if mount.read_only else "rslave"
            options += ["--volume", f"{mount.source}:{mount.target}:{flags}"]
        options += ["--volume", f"{user.home}:{user.home}:rslave"]

        options += ["--volume", f"{entrypoint}:{ENTRYPOINT_PATH}:ro"]
        exporter = self.runner.which(EXPORT_BINARY)
        if exporter is not None:
            options += ["--volume", f"{exporter}:{EXPORT_BINARY_PATH}:ro"]

        for socket_path in self.host_sockets():
            options += ["--volume", f"{socket_path}:{socket_path}"]

        runtime_dir = f"/run/user/{user.uid}"
        if os.path.isdir(self._host_path(runtime_dir)):
            options += ["--volume", f"{runtime_dir}:{runtime_dir}:rslave"]

        for volume in self.host_config_volumes():
            options += ["--volume", volume]

        if self.is_podman:
            options += [
                "--userns", "keep-id",
                "--ulimit", "host",
                "--annotation", "run.oci.keep_original_groups=1",
            ]

        options += ["--entrypoint", ENTRYPOINT_PATH]

        arguments = ["--verbose"] if self.verbose else []
        arguments += [
            "--name", user.name,
            "--user", str(user.uid),
            "--group", str(user.gid),
            "--home", user.home,
        ]

        return EngineCommand(
            engine=self.engine,
            verb="create",
            options=options,
            target=self.identity.image,
            arguments=arguments,
        )

    def build_exec(self,
                   command: Optional[List[str]] = None,
                   workdir: Optional[str] = None,
                   environment: Optional[Dict[str, str]] = None,
                   tty: bool = True) -> EngineCommand:
        """
        Builds the ``exec`` invocation for an interactive session.

        :param command: Command to run; defaults to a login shell.
        :param workdir: Working directory inside the container.
        :param environment: Variables forwarded into the session.
        :param tty: Allocate a pseudo terminal.
        """
        user = self.identity.user
        options = ["--interactive"]
        if tty:
            options.append("--tty")
        if self.is_podman:
            options.append("--detach-keys=")
        options += ["--user", user.name, "--workdir", workdir or user.home]
        for key, value in (environment or {}).items():
            options += ["--env", f"{key}={value}"]

        return self._command("exec", options, list(command) if command else [user.shell, "-l"])

    def build_inspect(self) -> EngineCommand:
        return self._command("inspect", ["--type", "container", "--format", "{{.State.Status}}"])

    def build_probe(self, path: str) -> EngineCommand:
        """
        Builds an ``exec`` that succeeds only if ``path`` is a file in the container.
        """
        return self._command("exec", ["--user", "root"], ["test", "-f", path])

    def build_start(self) -> EngineCommand:
        return self._command("start")

    def build_logs(self) -> EngineCommand:
        return self._command("logs")

    def build_stop(self) -> EngineCommand:
        return self._command("stop")

    def build_rm(self, force: bool = False) -> EngineCommand:
        return self._command("rm", ["--force"] if force else [])

    def build_list(self) -> EngineCommand:
        return EngineCommand(
            engine=self.engine,
            verb="ps",
            options=[
                "--all",
                "--filter", f"label={MANAGER_LABEL}",
                "--format", "{{.Names}}\t{{.Status}}\t{{.Image}}",
            ],
        )
