import pytest
from dbox.RUNNERS.package_installer import (
    AptInstaller,
    DnfInstaller,
    MicrodnfInstaller,
    PacmanInstaller,
    detect_installer,
)
from dbox.errors import DistroboxError, MissingDependencyError


def test_detect_first_available(make_runner):
    runner = make_runner(available={"pacman", "dnf"})
    assert isinstance(detect_installer(runner), DnfInstaller)


def test_detect_microdnf(make_runner):
    installer = detect_installer(make_runner(available={"microdnf"}))
    assert isinstance(installer, MicrodnfInstaller)
    assert installer.install_commands(["sudo"]) == [["microdnf", "install", "-y", "sudo"]]


def test_detect_nothing(make_runner):
    with pytest.raises(MissingDependencyError) as excinfo:
        detect_installer(make_runner())
    assert excinfo.value.exit_code == 127


def test_nothing_missing_installs_nothing(make_runner):
    runner = make_runner(available={"pacman", "sudo", "mount"})
    assert PacmanInstaller(runner).ensure_installed(["sudo", "mount"]) == []
    assert runner.commands == []


def test_installs_packages_for_missing_commands(make_runner):
    runner = make_runner(available={"pacman", "mount"})
    installed = PacmanInstaller(runner).ensure_installed(["mount", "sudo", "useradd", "usermod"])
    assert installed == ["shadow", "sudo"]
    assert runner.commands == [["pacman", "-Sy", "--noconfirm", "--needed", "shadow", "sudo"]]


def test_apt_updates_first(make_runner):
    runner = make_runner(available={"apt-get"})
    AptInstaller(runner).ensure_installed(["sudo"])
    assert runner.commands == [
        ["apt-get", "update"],
        ["apt-get", "install", "-y", "--no-install-recommends", "sudo"],
    ]
    assert AptInstaller(runner).environment()["DEBIAN_FRONTEND"] == "noninteractive"


def test_failure_raises(make_runner):
    runner = make_runner(available={"dnf"}, responses={("dnf", "install"): (1, "", "no network")})
    with pytest.raises(DistroboxError) as excinfo:
        DnfInstaller(runner).ensure_installed(["sudo"])
    assert "dnf failed to install sudo" in excinfo.value.message
