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
Container bootstrap: the entrypoint that runs once inside a freshly
started distrobox to make it match the host user, then stays alive.

The sequence is fail-fast: the first fatal step raises and nothing after
it runs. Best-effort integrations only print warnings.
"""
import json
import os
import signal
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from .mount_manager import MountManager
from .user_manager import UserManager
from ..MODELS.container_identity import UserIdentity
from ..MODELS.mount_spec import MountTable, load_mount_table
from ..RUNNERS.command_runner import CommandRunner
from ..RUNNERS.package_installer import PackageInstaller, detect_installer
from ..UTILS.console import Console
from ..UTILS.markers import HOST_ROOT, READINESS_FILE, READINESS_SENTINEL, inside_container, under_root
from ..errors import ContainerContextError, DistroboxError


class BootstrapState(str, Enum):
    """Progress of the bootstrap sequence."""

    NOT_STARTED = "not-started"
    DEPENDENCIES_CHECKED = "dependencies-checked"
    MOUNTS_APPLIED = "mounts-applied"
    SUDO_CONFIGURED = "sudo-configured"
    USER_RECONCILED = "user-reconciled"
    READY = "ready"


class BootstrapReconciler:
    """
    Reconciles a container with the host user it was created for.
    Safe to run again on every container start.
    """

    BASE_COMMANDS = ["mount", "passwd", "sudo", "useradd", "usermod"]

    def __init__(
        self,
        user: UserIdentity,
        runner: Optional[CommandRunner] = None,
        root: str = "/",
        console: Optional[Console] = None,
        mount_table: Optional[MountTable] = None,
        installer_factory: Callable[[CommandRunner], PackageInstaller] = detect_installer,
    ):
        """
        Initializes the reconciler.

        Args:
            user: The host user to mirror.
            runner: Runs mount, package manager and account commands.
            root: Filesystem root of the container.
            console: Where progress, warnings and the readiness line go.
            mount_table: Override for the packaged mount table.
            installer_factory: Picks the package manager when commands are missing.
        """
        self.user = user
        self.console = console or Console()
        self.runner = runner or CommandRunner(self.console)
        self.root = root
        self.mount_table = mount_table or load_mount_table()
        self.installer_factory = installer_factory
        self.mounts = MountManager(self.runner, root, self.console)
        self.users = UserManager(self.runner, root, self.console)
        self.state = BootstrapState.NOT_STARTED

    def run(self):
        """
        Runs the whole sequence up to readiness.

        Raises:
            ContainerContextError: If not running inside a container.
            MissingDependencyError: If commands are missing and no package manager is known.
            DistroboxError: On any other fatal step.
        """
        self.guard()
        self.check_dependencies()
        self.apply_mounts()
        self.configure_sudo()
        self.reconcile_user()
        self.finish()

    def guard(self):
        """Refuses to touch a system that is not a container."""
        if not inside_container(self.root):
            raise ContainerContextError("you must run dbox-init inside a container")
        readiness = under_root(self.root, READINESS_FILE)
        if os.path.exists(readiness):
            os.remove(readiness)

    def required_commands(self) -> List[str]:
        return self.BASE_COMMANDS + [self.user.shell_name]

    def check_dependencies(self) -> List[str]:
        """
        Installs packages for missing required commands.

        Returns:
            Packages that were installed.
        """
        required = self.required_commands()
        missing = [c for c in required if self.runner.which(c) is None]
        installed = []
        if missing:
            self.console.info(f"Installing missing dependencies: {' '.join(missing)}")
            installer = self.installer_factory(self.runner)
            installed = installer.ensure_installed(missing)
        self.state = BootstrapState.DEPENDENCIES_CHECKED
        return installed

    def apply_mounts(self):
        """
        Binds host resources seen under the host root into place.
        A failed required mount is fatal, a failed best-effort one only
        warns; mounts whose source does not exist are skipped either way.
        """
        for mount in self.mount_table.bootstrap_readonly + self.mount_table.bootstrap_readwrite:
            try:
                self.mounts.bind(HOST_ROOT + mount.source, mount.target, read_only=mount.read_only)
            except DistroboxError as e:
                if mount.required:
                    raise
                self.console.warn(f"{mount.target} integration with the host failed, runtime support may not work ({e.message})")
        self.state = BootstrapState.MOUNTS_APPLIED

    def configure_sudo(self):
        appended = self.users.ensure_sudoers(self.user)
        for line in appended:
            self.console.debug(f"sudoers: added '{line}'")
        self.state = BootstrapState.SUDO_CONFIGURED

    def reconcile_user(self):
        """Makes the host user exist with passwordless login and elevation."""
        self.users.ensure_group(self.user)
        self.users.ensure_user(self.user)
        self.users.remove_passwords([self.user.name, "root"])
        self.state = BootstrapState.USER_RECONCILED

    def _link_themes(self):
        home = self.user.home
        targets = [os.path.join(home, m.target) for m in self.mount_table.themes]
        for target in targets:
            os.makedirs(under_root(self.root, target), exist_ok=True)
        if targets:
            result = self.runner.run(
                ["chown", "-R", f"{self.user.uid}:{self.user.gid}"] + [under_root(self.root, t) for t in targets],
                capture=True,
            )
            if result.returncode != 0:
                raise DistroboxError(f"cannot chown {', '.join(targets)}")

        for mount, target in zip(self.mount_table.themes, targets):
            try:
                self.mounts.bind(HOST_ROOT + mount.source, target, read_only=mount.read_only)
            except DistroboxError as e:
                self.console.warn(f"{mount.source} integration with the host failed ({e.message})")

    def _write_readiness_file(self):
        path = under_root(self.root, READINESS_FILE)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(
                {
                    "status": READINESS_SENTINEL,
                    "user": self.user.name,
                    "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                },
                f,
            )

    def finish(self):
        """Links host themes and icons, then signals readiness."""
        self._link_themes()
        self.state = BootstrapState.READY
        self._write_readiness_file()
        self.console.signal(READINESS_SENTINEL)

    def supervise(self, stop_event: Optional[threading.Event] = None):
        """
        Keeps the entrypoint alive until the engine stops the container.

        Args:
            stop_event: Event that ends the wait; set by SIGTERM, SIGINT or SIGHUP.
        """
        stop_event = stop_event or threading.Event()

        def _stop(signum, frame):
            stop_event.set()

        previous = {}
        for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP):
            previous[sig] = signal.signal(sig, _stop)
        try:
            stop_event.wait()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
