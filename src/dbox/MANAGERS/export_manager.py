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
Export of binaries, applications and services from a distrobox to the host.

Runs inside the container. Host files are reached through the host root
bind mount, so every path written here is a host path seen from inside.
Exports of the same artifact are not locked against each other; running
an export and a delete of one artifact concurrently is undefined.
"""
import os
import shutil
import stat
from typing import List, Optional

from ..CONVERTERS.to_desktop_entry import DesktopEntryConverter
from ..CONVERTERS.to_systemd import SystemdConverter
from ..CONVERTERS.to_wrapper_script import WrapperScriptConverter
from ..MODELS.export_artifact import (
    ApplicationExport,
    BinaryExport,
    ExportAction,
    ExportArtifact,
    ExportResult,
    ServiceExport,
)
from ..UTILS.console import Console
from ..UTILS.markers import BINARY_EXPORT_MARKER, HOST_ROOT, inside_container, under_root
from ..errors import (
    ContainerContextError,
    NotExportedError,
    NotInstalledError,
    ProtectedFileError,
    TargetNotFoundError,
    UsageError,
)

APPLICATIONS_DIR = "/usr/share/applications"
ICON_DIRS = ["/usr/share/icons", "/usr/share/pixmaps"]
SHARE_DIR = "/usr/share"

# Searched in order; the last match wins
UNIT_DIRS = [
    "/usr/lib/systemd/system",
    "/lib/systemd/system",
    "/etc/systemd/system",
    "/usr/lib/systemd/user",
    "/etc/systemd/user",
]


class ExportManager:
    """
    Creates and removes host-side artifacts that redirect into a container.
    """

    def __init__(
        self,
        container_name: str,
        home: str,
        container_root: str = "/",
        host_root: str = HOST_ROOT,
        euid: Optional[int] = None,
        search_path: Optional[str] = None,
        console: Optional[Console] = None,
    ):
        """
        Initializes the export manager.

        Args:
            container_name: Name of the container the artifacts come from.
            home: The user's home directory (same path on host and container).
            container_root: Root of the container filesystem.
            host_root: Where the host filesystem is visible.
            euid: Effective uid of the caller; defaults to the process euid.
            search_path: PATH used to resolve application commands.
            console: Where progress is reported.
        """
        self.container_name = container_name
        self.home = home
        self.container_root = container_root
        self.host_root = host_root
        self.euid = os.geteuid() if euid is None else euid
        self.search_path = search_path
        self.console = console or Console()

    # Paths

    def _container_path(self, path: str) -> str:
        return under_root(self.container_root, path)

    def _host_path(self, path: str) -> str:
        return under_root(self.host_root, path)

    def host_share_dir(self) -> str:
        return self._host_path(os.path.join(self.home, ".local/share"))

    def host_applications_dir(self) -> str:
        return os.path.join(self.host_share_dir(), "applications")

    def host_unit_dir(self) -> str:
        return self._host_path(os.path.join(self.home, ".config/systemd/user"))

    def binary_target(self, artifact: BinaryExport) -> str:
        return os.path.join(artifact.export_path, os.path.basename(artifact.source))

    def service_target(self, artifact: ServiceExport) -> str:
        name = artifact.name[:-len(".service")] if artifact.name.endswith(".service") else artifact.name
        return os.path.join(self.host_unit_dir(), f"{name}-{self.container_name}.service")

    def host_icon_path(self, icon: str) -> str:
        """
        Maps a container icon under ``/usr/share`` to the host user's share dir.

        :param icon: Container path of the icon (without the container root).
        """
        relative = os.path.relpath(icon, SHARE_DIR)
        return os.path.join(self.host_share_dir(), relative)

    # Entry point

    def validate(self, artifact: ExportArtifact):
        """
        Checks the execution context shared by all variants.

        Raises:
            ContainerContextError: If not running inside a container.
            UsageError: If running as root without requesting sudo.
        """
        if not inside_container(self.container_root):
            raise ContainerContextError("you must run dbox-export inside a container")
        if self.euid == 0 and not artifact.sudo:
            raise UsageError("running as root: pass --sudo to export with elevated privileges")

    def apply(self, artifact: ExportArtifact, action: ExportAction = ExportAction.EXPORT) -> ExportResult:
        """
        Exports or deletes an artifact.

        Args:
            artifact: What to export.
            action: Export or delete.

        Returns:
            What was written or removed.
        """
        self.validate(artifact)
        if isinstance(artifact, BinaryExport):
            handler = self.delete_binary if action == ExportAction.DELETE else self.export_binary
        elif isinstance(artifact, ApplicationExport):
            handler = self.delete_application if action == ExportAction.DELETE else self.export_application
        else:
            handler = self.delete_service if action == ExportAction.DELETE else self.export_service
        return handler(artifact)

    # Binaries

    def _check_binary_source(self, artifact: BinaryExport):
        if not os.path.isfile(self._container_path(artifact.source)):
            raise TargetNotFoundError(f"cannot find {artifact.source} in the container")

    def export_binary(self, artifact: BinaryExport) -> ExportResult:
        self._check_binary_source(artifact)
        target = self.binary_target(artifact)
        content = WrapperScriptConverter(self.container_name).convert(artifact)

        if os.path.exists(target) and not self._is_exported_binary(target):
            raise ProtectedFileError(f"{target} exists and was not exported by dbox, refusing to overwrite it")

        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, "w") as f:
            f.write(content)
        mode = os.stat(target).st_mode
        os.chmod(target, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        self.console.info(f"{artifact.source} from {self.container_name} exported successfully in {artifact.export_path}.")
        return ExportResult(artifact=artifact, action=ExportAction.EXPORT, written=[target])

    def _is_exported_binary(self, path: str) -> bool:
        try:
            with open(path, "r", errors="replace") as f:
                return BINARY_EXPORT_MARKER in f.read()
        except OSError:
            return False

    def delete_binary(self, artifact: BinaryExport) -> ExportResult:
        target = self.binary_target(artifact)
        if not os.path.exists(target):
            raise NotExportedError(f"{target} does not exist, nothing to delete")
        if not self._is_exported_binary(target):
            raise ProtectedFileError(f"{target} is not exported by dbox, refusing to delete it")
        os.remove(target)
        self.console.info(f"{target} deleted successfully.")
        return ExportResult(artifact=artifact, action=ExportAction.DELETE, removed=[target])

    # Applications

    def find_desktop_files(self, name: str) -> List[str]:
        """
        Finds desktop entries mentioning the application, case-insensitively.

        Returns:
            Container paths (without the container root), sorted.
        """
        root = self._container_path(APPLICATIONS_DIR)
        needle = name.lower()
        found = []
        for dirpath, _, filenames in os.walk(root):
            for filename in filenames:
                path = os.path.join(dirpath, filename)
                try:
                    with open(path, "r", errors="replace") as f:
                        if needle in f.read().lower():
                            found.append(path)
                except OSError:
                    continue
        return sorted(self._strip_container_root(p) for p in found)

    def find_icons(self, name: str) -> List[str]:
        """
        Finds icon files whose name contains the application name.

        Returns:
            Container paths (without the container root), sorted.
        """
        needle = name.lower()
        found = []
        for icon_dir in ICON_DIRS:
            for dirpath, _, filenames in os.walk(self._container_path(icon_dir)):
                for filename in filenames:
                    if needle in filename.lower():
                        found.append(self._strip_container_root(os.path.join(dirpath, filename)))
        return sorted(found)

    def _strip_container_root(self, path: str) -> str:
        if self.container_root in ("", "/"):
            return path
        return "/" + os.path.relpath(path, self.container_root)

    def _resolve_application(self, artifact: ApplicationExport):
        if shutil.which(artifact.name, path=self.search_path) is None:
            raise NotInstalledError(f"{artifact.name} is not installed in {self.container_name}")

    def _desktop_targets(self, desktop_files: List[str]) -> List[str]:
        return [os.path.join(self.host_applications_dir(), os.path.basename(p)) for p in desktop_files]

    def _check_desktop_targets(self, targets: List[str], converter: DesktopEntryConverter, action: str):
        for target in targets:
            if not os.path.exists(target):
                continue
            with open(target, "r", errors="replace") as f:
                if not converter.is_exported(f.read()):
                    raise ProtectedFileError(f"{target} was not exported by dbox, refusing to {action} it")

    def _same_content(self, first: str, second: str) -> bool:
        with open(first, "rb") as a, open(second, "rb") as b:
            return a.read() == b.read()

    def export_application(self, artifact: ApplicationExport) -> ExportResult:
        self._resolve_application(artifact)
        desktop_files = self.find_desktop_files(artifact.name)
        if not desktop_files:
            raise NotInstalledError(f"{artifact.name} has no desktop entry, it does not seem to be installed")

        converter = DesktopEntryConverter(self.container_name, artifact.extra_flags, artifact.sudo)
        desktop_targets = self._desktop_targets(desktop_files)
        self._check_desktop_targets(desktop_targets, converter, "overwrite")

        written = []
        for icon in self.find_icons(artifact.name):
            source = self._container_path(icon)
            target = self.host_icon_path(icon)
            if os.path.exists(target) and not self._same_content(source, target):
                self.console.warn(f"keeping {target}, it differs from the icon in {self.container_name}")
                continue
            os.makedirs(os.path.dirname(target), exist_ok=True)
            shutil.copyfile(source, target)
            written.append(target)

        os.makedirs(self.host_applications_dir(), exist_ok=True)
        for desktop_file, target in zip(desktop_files, desktop_targets):
            with open(self._container_path(desktop_file), "r", newline="") as f:
                content = converter.convert(f.read())
            with open(target, "w", newline="") as f:
                f.write(content)
            written.append(target)

        self.console.info(f"Application {artifact.name} successfully exported.")
        return ExportResult(artifact=artifact, action=ExportAction.EXPORT, written=written)

    def delete_application(self, artifact: ApplicationExport) -> ExportResult:
        desktop_targets = self._desktop_targets(self.find_desktop_files(artifact.name))
        if not any(os.path.exists(t) for t in desktop_targets):
            raise NotExportedError(f"{artifact.name} is not exported")
        converter = DesktopEntryConverter(self.container_name)
        self._check_desktop_targets(desktop_targets, converter, "delete")

        # Only icons identical to the container's copy were written by the export
        icon_targets = [
            target for icon, target in
            ((i, self.host_icon_path(i)) for i in self.find_icons(artifact.name))
            if os.path.exists(target) and self._same_content(self._container_path(icon), target)
        ]

        removed = []
        for target in icon_targets + desktop_targets:
            if os.path.exists(target):
                os.remove(target)
                removed.append(target)

        self.console.info(f"Application {artifact.name} successfully un-exported.")
        return ExportResult(artifact=artifact, action=ExportAction.DELETE, removed=removed)

    # Services

    def find_unit(self, name: str) -> str:
        """
        Locates the unit file for a service.

        Returns:
            Container path of the last matching unit.

        Raises:
            TargetNotFoundError: If no unit directory holds it.
        """
        filename = name if name.endswith(".service") else f"{name}.service"
        found = None
        for unit_dir in UNIT_DIRS:
            path = os.path.join(unit_dir, filename)
            if os.path.isfile(self._container_path(path)):
                found = path
        if found is None:
            raise TargetNotFoundError(f"cannot find any service file for {name}")
        return found

    def export_service(self, artifact: ServiceExport) -> ExportResult:
        source = self.find_unit(artifact.name)
        target = self.service_target(artifact)
        converter = SystemdConverter(self.container_name, artifact.sudo)

        if os.path.exists(target):
            with open(target, "r", errors="replace") as f:
                if not converter.is_exported(f.read()):
                    raise ProtectedFileError(f"{target} was not exported by dbox, refusing to overwrite it")
            self.console.info(f"Service {artifact.name} is already exported.")
            return ExportResult(artifact=artifact, action=ExportAction.EXPORT, already_exported=True)

        with open(self._container_path(source), "r", newline="") as f:
            content, _ = converter.convert(f.read())
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, "w", newline="") as f:
            f.write(content)

        self.console.info(
            f"Service {artifact.name} successfully exported.\n"
            f"OK. Run: systemctl --user daemon-reload && systemctl --user start {os.path.basename(target)}"
        )
        return ExportResult(artifact=artifact, action=ExportAction.EXPORT, written=[target])

    def delete_service(self, artifact: ServiceExport) -> ExportResult:
        target = self.service_target(artifact)
        if not os.path.exists(target):
            raise NotExportedError(f"service {artifact.name} is not exported")
        with open(target, "r", errors="replace") as f:
            if not SystemdConverter(self.container_name).is_exported(f.read()):
                raise ProtectedFileError(f"{target} was not exported by dbox, refusing to delete it")
        os.remove(target)
        self.console.info(f"Service {artifact.name} successfully un-exported.")
        return ExportResult(artifact=artifact, action=ExportAction.DELETE, removed=[target])
