"""
Lifecycle management for a single distrobox through the container engine.
"""
import subprocess
from typing import Dict, List, Optional

from ..BUILDERS.engine_command_builder import EngineCommandBuilder
from ..MODELS.engine_command import EngineCommand
from ..RUNNERS.command_runner import CommandRunner
from ..errors import ContainerNotFoundError, EngineCommandError


class ContainerManager:
    """
    Runs the engine commands produced by an EngineCommandBuilder.
    """
    def __init__(self, builder: EngineCommandBuilder, runner: Optional[CommandRunner] = None):
        """
        :param builder: Command builder for the container.
        :param runner: Executes the engine.
        """
        self.builder = builder
        self.runner = runner or builder.runner

    @property
    def name(self) -> str:
        return self.builder.identity.name

    def _run(self, command: EngineCommand, capture: bool = True) -> subprocess.CompletedProcess:
        result = self.runner.run(command.argv(), capture=capture)
        if result.returncode != 0:
            detail = (result.stderr or "").strip() if capture else ""
            raise EngineCommandError(
                f"{command.engine} {command.verb} {self.name} failed"
                + (f": {detail}" if detail else "")
            )
        return result

    def status(self) -> Optional[str]:
        """
        Gets the engine state of the container.

        :return: State string (e.g. ``running``, ``exited``), or None if it does not exist.
        """
        result = self.runner.run(self.builder.build_inspect().argv(), capture=True)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip() or None

    def exists(self) -> bool:
        return self.status() is not None

    def create(self):
        """
        Creates the container; the engine pulls the image if needed.
        """
        self._run(self.builder.build_create(), capture=False)

    def ensure_running(self) -> bool:
        """
        Starts the container unless it is already running.

        :return: True if it had to be started.
        :raises ContainerNotFoundError: If the container does not exist.
        """
        state = self.status()
        if state is None:
            raise ContainerNotFoundError(
                f"cannot find container {self.name}, create it first with: dbox create --name {self.name}"
            )
        if state == "running":
            return False
        self._run(self.builder.build_start())
        return True

    def logs(self) -> List[str]:
        """
        Reads the container's log stream (stdout and stderr).

        :return: Log lines, oldest first.
        """
        result = self._run(self.builder.build_logs())
        output = (result.stdout or "") + (result.stderr or "")
        return output.splitlines()

    def has_file(self, path: str) -> bool:
        """
        Checks for a file inside the running container.
        """
        result = self.runner.run(self.builder.build_probe(path).argv(), capture=True)
        return result.returncode == 0

    def stop(self):
        self._run(self.builder.build_stop())

    def remove(self, force: bool = False):
        self._run(self.builder.build_rm(force=force))

    def list(self) -> List[Dict[str, str]]:
        """
        Lists every container created by dbox.

        :return: One dict per container with ``name``, ``status`` and ``image``.
        """
        result = self._run(self.builder.build_list())
        containers = []
        for line in (result.stdout or "").splitlines():
            parts = line.split("\t")
            if len(parts) < 3:
                continue
            containers.append({"name": parts[0], "status": parts[1], "image": parts[2]})
        return containers

    def execute(self, command: EngineCommand, env: Optional[Dict[str, str]] = None) -> int:
        """
        Runs an interactive command attached to the caller's terminal.

        :return: Exit status of the command.
        """
        return self.runner.call(command.argv(), env=env)
