"""
Reconciliation of the container's account databases and elevation policy
with the host user.

Every change is check-then-apply so running it again leaves the
databases unchanged.
"""
import os
from typing import List, Optional

from ..MODELS.container_identity import UserIdentity
from ..RUNNERS.command_runner import CommandRunner
from ..UTILS.console import Console
from ..UTILS.markers import under_root
from ..errors import DistroboxError

SUDOERS_PATH = "/etc/sudoers"
GROUP_PATH = "/etc/group"
ELEVATION_GROUPS = ("sudo", "wheel")


class UserManager:
    """
    Manages groups, users, passwords and sudoers entries inside the container.
    """
    def __init__(self, runner: CommandRunner, root: str = "/", console: Optional[Console] = None):
        """
        :param runner: Runs the shadow utilities.
        :param root: Filesystem root the databases live under.
        :param console: Where warnings are printed.
        """
        self.runner = runner
        self.root = root
        self.console = console or Console()

    def _run(self, command: List[str]):
        result = self.runner.run(command, capture=True)
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            raise DistroboxError(f"{command[0]} failed" + (f": {detail}" if detail else ""))

    def groups(self) -> List[List[str]]:
        """
        Reads the group database.

        :return: One ``[name, password, gid, members]`` list per group.
        """
        path = under_root(self.root, GROUP_PATH)
        if not os.path.exists(path):
            return []
        with open(path, "r") as f:
            return [line.rstrip("\n").split(":") for line in f if line.strip() and not line.startswith("#")]

    def group_exists(self, name: str = None, gid: int = None) -> bool:
        for fields in self.groups():
            if name is not None and fields[0] == name:
                return True
            if gid is not None and len(fields) > 2 and fields[2] == str(gid):
                return True
        return False

    def ensure_group(self, user: UserIdentity) -> bool:
        """
        Creates the user's primary group unless its gid is already known.

        :return: True if the group was created.
        """
        if self.group_exists(gid=user.gid):
            return False
        self._run(["groupadd", "--force", "--gid", str(user.gid), user.name])
        return True

    def ensure_user(self, user: UserIdentity) -> bool:
        """
        Creates the user; if that fails (typically because the engine already
        created it) the existing user is added to the elevation group instead.

        :return: True if the user was created.
        """
        result = self.runner.run([
            "useradd",
            "--home-dir", user.home,
            "--no-create-home",
            "--shell", user.shell,
            "--uid", str(user.uid),
            "--gid", str(user.gid),
            user.name,
        ], capture=True)
        if result.returncode == 0:
            return True

        self.console.warn(f"there was a problem setting up the user {user.name}, reusing the existing account")
        for group in ELEVATION_GROUPS:
            if self.group_exists(name=group):
                self._run(["usermod", "-a", "-G", group, user.name])
                break
        else:
            self.console.warn(f"no {' or '.join(ELEVATION_GROUPS)} group found for {user.name}")
        return False

    def remove_passwords(self, names: List[str]):
        """
        Deletes the passwords of the given accounts; the engine provides isolation.
        """
        for name in names:
            self._run(["passwd", "--delete", name])

    def sudoers_lines(self, user: UserIdentity) -> List[str]:
        return [
            "Defaults !fqdn",
            f"{user.name} ALL = (root) NOPASSWD:ALL",
        ]

    def ensure_sudoers(self, user: UserIdentity) -> List[str]:
        """
        Appends the elevation rules that are not present yet.

        :return: Lines that were appended.
        """
        path = under_root(self.root, SUDOERS_PATH)
        existing = set()
        content = ""
        if os.path.exists(path):
            with open(path, "r") as f:
                content = f.read()
            existing = {line.strip() for line in content.splitlines()}

        missing = [line for line in self.sudoers_lines(user) if line not in existing]
        if not missing:
            return []

        os.makedirs(os.path.dirname(path), exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o440)
        with os.fdopen(fd, "a") as f:
            if content and not content.endswith("\n"):
                f.write("\n")
            for line in missing:
                f.write(line + "\n")
        return missing
