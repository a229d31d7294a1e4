"""
Bind mounting of host resources into the container.
"""
import os
from typing import Optional

from ..RUNNERS.command_runner import CommandRunner
from ..UTILS.console import Console
from ..UTILS.markers import under_root
from ..errors import DistroboxError


class MountManager:
    """
    Applies recursive bind mounts, creating mount points as needed.
    """
    def __init__(self, runner: CommandRunner, root: str = "/", console: Optional[Console] = None):
        """
        Initializes the mount manager.

        :param runner: Runs ``mount``.
        :param root: Filesystem root the paths are resolved under.
        :param console: Where skipped mounts are traced.
        """
        self.runner = runner
        self.root = root
        self.console = console or Console()

    def bind(self, source: str, target: str, read_only: bool = False) -> bool:
        """
        Binds ``source`` over ``target``, following sub-mounts under ``source``.

        :param source: Absolute source path.
        :param target: Absolute target path.
        :param read_only: Mount read-only.
        :return: True if mounted, False if skipped because the source does not exist.
        :raises DistroboxError: If the mount point cannot be prepared or mount fails.
        """
        source_path = under_root(self.root, source)
        target_path = under_root(self.root, target)

        if not os.path.exists(source_path):
            self.console.debug(f"skipping {target}: {source} does not exist")
            return False

        try:
            if os.path.isdir(source_path):
                os.makedirs(target_path, exist_ok=True)
            elif not os.path.exists(target_path):
                os.makedirs(os.path.dirname(target_path), exist_ok=True)
                open(target_path, "a").close()
        except OSError as e:
            raise DistroboxError(f"cannot create mount point {target}: {e.strerror}") from e

        command = ["mount", "--rbind", "-o", "ro" if read_only else "rw", source_path, target_path]
        result = self.runner.run(command, capture=True)
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            raise DistroboxError(f"cannot bind {source} to {target}" + (f": {detail}" if detail else ""))
        return True
