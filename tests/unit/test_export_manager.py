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
Unit tests for exporting binaries, applications and services.
"""
import os
import pytest
from dbox.MANAGERS.export_manager import ExportManager
from dbox.MODELS.export_artifact import (
    ApplicationExport,
    BinaryExport,
    ExportAction,
    ServiceExport,
)
from dbox.UTILS.console import Console
from dbox.errors import (
    ContainerContextError,
    NotExportedError,
    NotInstalledError,
    ProtectedFileError,
    TargetNotFoundError,
    UsageError,
)

HOME = "/home/alice"


@pytest.fixture(autouse=True)
def enter_path(monkeypatch):
    monkeypatch.setenv("DBOX_ENTER_PATH", "/usr/bin/dbox")


@pytest.fixture
def host_root(tmp_path):
    root = tmp_path / "host"
    (root / "home" / "alice").mkdir(parents=True)
    return root


@pytest.fixture
def bin_dir(tmp_path):
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def manager(container_root, host_root, bin_dir):
    return ExportManager(
        container_name="dev",
        home=HOME,
        container_root=str(container_root),
        host_root=str(host_root),
        euid=1000,
        search_path=str(bin_dir),
        console=Console(),
    )


def _install(bin_dir, container_root, name):
    """Puts an executable on the search path and in the container's /usr/bin."""
    for directory in (bin_dir, container_root / "usr" / "bin"):
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text("#!/bin/sh\n")
        path.chmod(0o755)


def _write(root, path, content):
    target = root / path.lstrip("/")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    return target


class TestContext:
    """Checks shared by every export."""

    def test_outside_container(self, tmp_path, host_root):
        manager = ExportManager("dev", HOME, container_root=str(tmp_path / "nowhere"), host_root=str(host_root), euid=1000)
        with pytest.raises(ContainerContextError) as excinfo:
            manager.apply(ApplicationExport(name="vim"))
        assert excinfo.value.exit_code == 126

    def test_root_requires_sudo(self, container_root, host_root):
        manager = ExportManager("dev", HOME, container_root=str(container_root), host_root=str(host_root), euid=0)
        with pytest.raises(UsageError):
            manager.apply(ServiceExport(name="syncthing"))


class TestBinaryExport:
    """Tests for binary wrappers."""

    def test_export_binary(self, manager, container_root, bin_dir, tmp_path):
        _install(bin_dir, container_root, "vim")
        export_path = tmp_path / "host-bin"
        result = manager.apply(BinaryExport(source="/usr/bin/vim", export_path=str(export_path)))

        wrapper = export_path / "vim"
        assert result.written == [str(wrapper)]
        assert os.access(str(wrapper), os.X_OK)
        content = wrapper.read_text()
        assert "# distrobox_binary" in content
        assert "# name: dev" in content
        assert 'enter -n dev -- /usr/bin/vim "$@"' in content

    def test_reexport_is_stable(self, manager, container_root, bin_dir, tmp_path):
        _install(bin_dir, container_root, "vim")
        artifact = BinaryExport(source="/usr/bin/vim", export_path=str(tmp_path / "host-bin"))
        manager.apply(artifact)
        first = (tmp_path / "host-bin" / "vim").read_text()
        manager.apply(artifact)
        assert (tmp_path / "host-bin" / "vim").read_text() == first

    def test_missing_source(self, manager, tmp_path):
        with pytest.raises(TargetNotFoundError) as excinfo:
            manager.apply(BinaryExport(source="/usr/bin/nope", export_path=str(tmp_path)))
        assert excinfo.value.exit_code == 127

    def test_refuses_to_overwrite_foreign_file(self, manager, container_root, bin_dir, tmp_path):
        _install(bin_dir, container_root, "vim")
        export_path = tmp_path / "host-bin"
        export_path.mkdir()
        (export_path / "vim").write_text("#!/bin/sh\necho mine\n")
        with pytest.raises(ProtectedFileError):
            manager.apply(BinaryExport(source="/usr/bin/vim", export_path=str(export_path)))
        assert (export_path / "vim").read_text() == "#!/bin/sh\necho mine\n"

    def test_refuses_to_delete_foreign_file(self, manager, tmp_path):
        (tmp_path / "vim").write_text("#!/bin/sh\necho mine\n")
        with pytest.raises(ProtectedFileError) as excinfo:
            manager.apply(BinaryExport(source="/usr/bin/vim", export_path=str(tmp_path)), ExportAction.DELETE)
        assert excinfo.value.exit_code == 2
        assert (tmp_path / "vim").exists()

    def test_export_then_delete(self, manager, container_root, bin_dir, tmp_path):
        _install(bin_dir, container_root, "vim")
        export_path = tmp_path / "host-bin"
        artifact = BinaryExport(source="/usr/bin/vim", export_path=str(export_path))
        manager.apply(artifact)
        result = manager.apply(artifact, ExportAction.DELETE)
        assert result.removed == [str(export_path / "vim")]
        assert not (export_path / "vim").exists()

    def test_delete_not_exported(self, manager, tmp_path):
        with pytest.raises(NotExportedError):
            manager.apply(BinaryExport(source="/usr/bin/vim", export_path=str(tmp_path)), ExportAction.DELETE)


class TestApplicationExport:
    """Tests for desktop application exports."""

    DESKTOP = "[Desktop Entry]\nName=Vim\nExec=vim %F\nTryExec=vim\nIcon=gvim\n"

    def _setup_vim(self, container_root, bin_dir):
        _install(bin_dir, container_root, "vim")
        _write(container_root, "/usr/share/applications/gvim.desktop", self.DESKTOP)
        _write(container_root, "/usr/share/applications/other.desktop", "[Desktop Entry]\nExec=emacs\n")
        _write(container_root, "/usr/share/icons/hicolor/48x48/apps/gvim.png", "png")

    def test_export_application(self, manager, container_root, host_root, bin_dir):
        self._setup_vim(container_root, bin_dir)
        result = manager.apply(ApplicationExport(name="vim", extra_flags="--foo"))

        share = host_root / "home" / "alice" / ".local" / "share"
        entry = share / "applications" / "gvim.desktop"
        icon = share / "icons" / "hicolor" / "48x48" / "apps" / "gvim.png"
        assert sorted(result.written) == sorted([str(entry), str(icon)])
        assert not (share / "applications" / "other.desktop").exists()
        content = entry.read_text()
        assert "Exec=/usr/bin/dbox enter -n dev -- vim --foo %F\n" in content
        assert "TryExec=true\n" in content
        assert icon.read_text() == "png"

    def test_reexport_application_is_stable(self, manager, container_root, host_root, bin_dir):
        self._setup_vim(container_root, bin_dir)
        manager.apply(ApplicationExport(name="vim"))
        entry = host_root / "home" / "alice" / ".local" / "share" / "applications" / "gvim.desktop"
        first = entry.read_text()
        manager.apply(ApplicationExport(name="vim"))
        assert entry.read_text() == first

    def test_not_installed(self, manager, host_root):
        with pytest.raises(NotInstalledError) as excinfo:
            manager.apply(ApplicationExport(name="mpv"))
        assert excinfo.value.exit_code == 127
        assert not (host_root / "home" / "alice" / ".local").exists()

    def test_installed_without_desktop_entry(self, manager, container_root, host_root, bin_dir):
        _install(bin_dir, container_root, "mpv")
        with pytest.raises(NotInstalledError):
            manager.apply(ApplicationExport(name="mpv"))
        assert not (host_root / "home" / "alice" / ".local").exists()

    def test_delete_application(self, manager, container_root, host_root, bin_dir):
        self._setup_vim(container_root, bin_dir)
        manager.apply(ApplicationExport(name="vim"))
        result = manager.apply(ApplicationExport(name="vim"), ExportAction.DELETE)
        share = host_root / "home" / "alice" / ".local" / "share"
        assert len(result.removed) == 2
        assert not (share / "applications" / "gvim.desktop").exists()
        assert not (share / "icons" / "hicolor" / "48x48" / "apps" / "gvim.png").exists()

    def test_delete_not_exported(self, manager, container_root, bin_dir):
        self._setup_vim(container_root, bin_dir)
        with pytest.raises(NotExportedError):
            manager.apply(ApplicationExport(name="vim"), ExportAction.DELETE)

    def _host_entry(self, host_root):
        return host_root / "home" / "alice" / ".local" / "share" / "applications" / "gvim.desktop"

    def test_refuses_to_delete_foreign_desktop_entry(self, manager, container_root, host_root, bin_dir):
        self._setup_vim(container_root, bin_dir)
        entry = _write(host_root, "/home/alice/.local/share/applications/gvim.desktop", self.DESKTOP)
        icon = _write(host_root, "/home/alice/.local/share/icons/hicolor/48x48/apps/gvim.png", "png")
        with pytest.raises(ProtectedFileError) as excinfo:
            manager.apply(ApplicationExport(name="vim"), ExportAction.DELETE)
        assert excinfo.value.exit_code == 2
        assert entry.read_text() == self.DESKTOP
        assert icon.exists()

    def test_refuses_to_overwrite_foreign_desktop_entry(self, manager, container_root, host_root, bin_dir):
        self._setup_vim(container_root, bin_dir)
        entry = _write(host_root, "/home/alice/.local/share/applications/gvim.desktop", self.DESKTOP)
        with pytest.raises(ProtectedFileError):
            manager.apply(ApplicationExport(name="vim"))
        assert entry.read_text() == self.DESKTOP
        assert not (host_root / "home" / "alice" / ".local" / "share" / "icons").exists()

    def test_entry_exported_from_another_container_is_foreign(self, manager, container_root, host_root, bin_dir):
        self._setup_vim(container_root, bin_dir)
        other = "[Desktop Entry]\nExec=/usr/bin/dbox enter -n work -- vim %F\n"
        entry = _write(host_root, "/home/alice/.local/share/applications/gvim.desktop", other)
        with pytest.raises(ProtectedFileError):
            manager.apply(ApplicationExport(name="vim"), ExportAction.DELETE)
        assert entry.read_text() == other

    def test_foreign_icon_is_kept(self, manager, container_root, host_root, bin_dir):
        self._setup_vim(container_root, bin_dir)
        icon = _write(host_root, "/home/alice/.local/share/icons/hicolor/48x48/apps/gvim.png", "host png")
        result = manager.apply(ApplicationExport(name="vim"))
        assert str(icon) not in result.written
        assert icon.read_text() == "host png"

        result = manager.apply(ApplicationExport(name="vim"), ExportAction.DELETE)
        assert result.removed == [str(self._host_entry(host_root))]
        assert icon.read_text() == "host png"

    def test_crlf_entry_keeps_line_endings(self, manager, container_root, host_root, bin_dir):
        self._setup_vim(container_root, bin_dir)
        desktop = container_root / "usr" / "share" / "applications" / "gvim.desktop"
        desktop.write_bytes(self.DESKTOP.replace("\n", "\r\n").encode())
        manager.apply(ApplicationExport(name="vim"))
        content = self._host_entry(host_root).read_bytes()
        assert b"Exec=/usr/bin/dbox enter -n dev -- vim %F\r\n" in content
        assert b"TryExec=true\r\n" in content
        assert b"\n" not in content.replace(b"\r\n", b"")

    def test_delete_with_other_enter_path(self, manager, container_root, host_root, bin_dir, monkeypatch):
        self._setup_vim(container_root, bin_dir)
        manager.apply(ApplicationExport(name="vim"))
        monkeypatch.setenv("DBOX_ENTER_PATH", "/opt/dbox/bin/dbox")
        manager.apply(ApplicationExport(name="vim"), ExportAction.DELETE)
        assert not self._host_entry(host_root).exists()


class TestServiceExport:
    """Tests for systemd unit exports."""

    UNIT = "[Unit]\nDescription=Syncthing\n\n[Service]\nExecStart=/usr/bin/syncthing serve\n"

    def test_export_service(self, manager, container_root, host_root):
        _write(container_root, "/usr/lib/systemd/user/syncthing.service", self.UNIT)
        result = manager.apply(ServiceExport(name="syncthing"))
        target = host_root / "home" / "alice" / ".config" / "systemd" / "user" / "syncthing-dev.service"
        assert result.written == [str(target)]
        assert "ExecStart=/usr/bin/dbox enter -n dev -- /usr/bin/syncthing serve\n" in target.read_text()

    def test_last_unit_directory_wins(self, manager, container_root, host_root):
        _write(container_root, "/usr/lib/systemd/system/syncthing.service", self.UNIT)
        _write(container_root, "/etc/systemd/user/syncthing.service", "[Service]\nExecStart=/usr/bin/custom\n")
        assert manager.find_unit("syncthing.service") == "/etc/systemd/user/syncthing.service"

    def test_double_export_reports_already_exported(self, manager, container_root, host_root):
        _write(container_root, "/usr/lib/systemd/user/syncthing.service", self.UNIT)
        manager.apply(ServiceExport(name="syncthing"))
        target = host_root / "home" / "alice" / ".config" / "systemd" / "user" / "syncthing-dev.service"
        first = target.read_text()
        result = manager.apply(ServiceExport(name="syncthing"))
        assert result.already_exported
        assert target.read_text() == first

    def test_missing_unit(self, manager):
        with pytest.raises(TargetNotFoundError):
            manager.apply(ServiceExport(name="nope"))

    def test_delete_service(self, manager, container_root, host_root):
        _write(container_root, "/usr/lib/systemd/user/syncthing.service", self.UNIT)
        manager.apply(ServiceExport(name="syncthing"))
        manager.apply(ServiceExport(name="syncthing.service"), ExportAction.DELETE)
        assert not (host_root / "home" / "alice" / ".config" / "systemd" / "user" / "syncthing-dev.service").exists()
        with pytest.raises(NotExportedError):
            manager.apply(ServiceExport(name="syncthing"), ExportAction.DELETE)

    def _target(self, host_root):
        return host_root / "home" / "alice" / ".config" / "systemd" / "user" / "syncthing-dev.service"

    def test_refuses_to_delete_foreign_unit(self, manager, host_root):
        target = _write(host_root, "/home/alice/.config/systemd/user/syncthing-dev.service", self.UNIT)
        with pytest.raises(ProtectedFileError) as excinfo:
            manager.apply(ServiceExport(name="syncthing"), ExportAction.DELETE)
        assert excinfo.value.exit_code == 2
        assert target.read_text() == self.UNIT

    def test_refuses_to_overwrite_foreign_unit(self, manager, container_root, host_root):
        _write(container_root, "/usr/lib/systemd/user/syncthing.service", self.UNIT)
        mine = "[Service]\nExecStart=/usr/bin/syncthing serve --mine\n"
        target = _write(host_root, "/home/alice/.config/systemd/user/syncthing-dev.service", mine)
        with pytest.raises(ProtectedFileError):
            manager.apply(ServiceExport(name="syncthing"))
        assert target.read_text() == mine
