"""
Interactive sessions inside a ready distrobox.
"""
import os
import re
import shutil
import sys
from typing import Dict, List, Mapping, Optional

from .container_manager import ContainerManager
from .readiness_gate import ReadinessGate
from ..MODELS.engine_command import EngineCommand
from ..UTILS.markers import ENTER_PATH_ENV

# Host-only variables that must not leak into the container
EXCLUDED_VARIABLES = re.compile(r"^(HOST|HOSTNAME|HOME|PATH|SHELL|XDG_.*_DIRS|_.*)$")
UNSAFE_VALUE = re.compile(r'[\s"]')


class EnterSession:
    """
    Waits for the container to be ready, then attaches the caller to it.
    """
    def __init__(self, containers: ContainerManager, gate: ReadinessGate):
        """
        :param containers: Manager for the container to enter.
        :param gate: Gate blocking until the bootstrap completes.
        """
        self.containers = containers
        self.gate = gate

    def environment(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """
        Snapshot of the caller's environment that is safe to flatten into
        ``--env`` flags: values with whitespace or quotes are dropped.

        :param environ: Environment to snapshot; defaults to ``os.environ``.
        """
        environ = os.environ if environ is None else environ
        env = {
            key: value for key, value in sorted(environ.items())
            if not EXCLUDED_VARIABLES.match(key) and not UNSAFE_VALUE.search(value)
        }
        enter_path = shutil.which("dbox") or os.path.abspath(sys.argv[0])
        if not UNSAFE_VALUE.search(enter_path):
            env[ENTER_PATH_ENV] = enter_path
        return env

    def workdir(self) -> str:
        """
        Working directory for the session: the caller's, else home, else ``/``.
        """
        try:
            cwd = os.getcwd()
        except FileNotFoundError:
            cwd = None
        if cwd and os.path.isdir(cwd):
            return cwd
        home = self.containers.builder.identity.user.home
        if os.path.isdir(home):
            return home
        return "/"

    def command(self, command: Optional[List[str]] = None, tty: bool = True,
                environ: Optional[Mapping[str, str]] = None) -> EngineCommand:
        return self.containers.builder.build_exec(
            command=command,
            workdir=self.workdir(),
            environment=self.environment(environ),
            tty=tty,
        )

    def run(self, command: Optional[List[str]] = None, tty: bool = True) -> int:
        """
        Enters the container.

        :param command: Command to run instead of a login shell.
        :param tty: Attach a terminal.
        :return: Exit status of the command.
        """
        self.gate.wait()
        return self.containers.execute(self.command(command, tty))
