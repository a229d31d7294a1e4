"""
System package installers, one per supported package manager family.

The bootstrap probes for a package manager in a fixed priority order and
asks it to provide whatever required commands are missing.
"""
import os
import subprocess
from typing import Dict, Iterable, List, Optional, Type

from .command_runner import CommandRunner
from ..errors import DistroboxError, MissingDependencyError


class PackageInstaller:
    """
    Installs the packages providing a set of commands.
    Subclasses describe one package manager.
    """
    executable = ""
    # command -> package providing it; unlisted commands map to themselves
    packages: Dict[str, str] = {}

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    @classmethod
    def probe(cls, runner: CommandRunner) -> bool:
        """Checks whether this package manager is available."""
        return runner.which(cls.executable) is not None

    def package_for(self, command: str) -> str:
        return self.packages.get(command, command)

    def install_commands(self, packages: List[str]) -> List[List[str]]:
        raise NotImplementedError

    def environment(self) -> Optional[Dict[str, str]]:
        return None

    def ensure_installed(self, commands: Iterable[str]) -> List[str]:
        """
        Installs the packages for the commands that are not on PATH.

        :param commands: Commands that must be available.
        :return: Package names that were installed (empty when nothing was missing).
        :raises DistroboxError: If the package manager fails.
        """
        missing = [c for c in commands if self.runner.which(c) is None]
        if not missing:
            return []

        packages = sorted({self.package_for(c) for c in missing})
        for command in self.install_commands(packages):
            try:
                self.runner.run(command, check=True, env=self.environment())
            except subprocess.CalledProcessError as e:
                raise DistroboxError(
                    f"{self.executable} failed to install {' '.join(packages)} (exit {e.returncode})"
                ) from e
        return packages


class ApkInstaller(PackageInstaller):
    executable = "apk"
    packages = {"mount": "util-linux", "passwd": "shadow", "useradd": "shadow", "usermod": "shadow"}

    def install_commands(self, packages):
        return [["apk", "add", "--no-cache"] + packages]


class AptInstaller(PackageInstaller):
    executable = "apt-get"
    packages = {"passwd": "passwd", "useradd": "passwd", "usermod": "passwd"}

    def install_commands(self, packages):
        return [
            ["apt-get", "update"],
            ["apt-get", "install", "-y", "--no-install-recommends"] + packages,
        ]

    def environment(self):
        env = os.environ.copy()
        env["DEBIAN_FRONTEND"] = "noninteractive"
        return env


class DnfInstaller(PackageInstaller):
    executable = "dnf"
    packages = {"mount": "util-linux", "useradd": "shadow-utils", "usermod": "shadow-utils"}

    def install_commands(self, packages):
        return [[self.executable, "install", "-y"] + packages]


class MicrodnfInstaller(DnfInstaller):
    executable = "microdnf"


class YumInstaller(DnfInstaller):
    executable = "yum"


class PacmanInstaller(PackageInstaller):
    executable = "pacman"
    packages = {"mount": "util-linux", "passwd": "shadow", "useradd": "shadow", "usermod": "shadow"}

    def install_commands(self, packages):
        return [["pacman", "-Sy", "--noconfirm", "--needed"] + packages]


class SlackpkgInstaller(PackageInstaller):
    executable = "slackpkg"
    packages = {"mount": "util-linux", "passwd": "shadow", "useradd": "shadow", "usermod": "shadow"}

    def install_commands(self, packages):
        return [
            ["slackpkg", "-batch=on", "-default_answer=y", "update"],
            ["slackpkg", "-batch=on", "-default_answer=y", "install"] + packages,
        ]


class XbpsInstaller(PackageInstaller):
    executable = "xbps-install"
    packages = {"mount": "util-linux", "passwd": "shadow", "useradd": "shadow", "usermod": "shadow"}

    def install_commands(self, packages):
        return [["xbps-install", "-Sy"] + packages]


class ZypperInstaller(PackageInstaller):
    executable = "zypper"
    packages = {"mount": "util-linux", "passwd": "shadow", "useradd": "shadow", "usermod": "shadow"}

    def install_commands(self, packages):
        return [["zypper", "--non-interactive", "install"] + packages]


# Probe order
INSTALLERS: List[Type[PackageInstaller]] = [
    ApkInstaller,
    AptInstaller,
    DnfInstaller,
    MicrodnfInstaller,
    YumInstaller,
    PacmanInstaller,
    SlackpkgInstaller,
    XbpsInstaller,
    ZypperInstaller,
]


def detect_installer(runner: CommandRunner) -> PackageInstaller:
    """
    Picks the first available package manager.

    :param runner: Runner used for probing and installing.
    :return: An installer bound to ``runner``.
    :raises MissingDependencyError: If no known package manager is present.
    """
    for installer_cls in INSTALLERS:
        if installer_cls.probe(runner):
            return installer_cls(runner)
    raise MissingDependencyError("could not find a supported package manager")
