"""
Well-known paths and strings shared by the host and container sides.
"""
import os
import shlex
from typing import Callable, Iterable

# Present when the process runs inside a container (podman, docker).
CONTAINER_MARKERS = ("/run/.containerenv", "/.dockerenv")

# Printed on the container's stdout once the bootstrap completes.
READINESS_SENTINEL = "container_setup_done"

# Written inside the container once the bootstrap completes.
READINESS_FILE = "/run/.dbox-ready"

# Embedded in every exported binary wrapper.
BINARY_EXPORT_MARKER = "# distrobox_binary"

# Where the host root is visible from inside the container.
HOST_ROOT = "/run/host"

# Where the bootstrap entrypoint and exporter are bound inside the container.
ENTRYPOINT_PATH = "/usr/bin/entrypoint"
EXPORT_BINARY_PATH = "/usr/bin/dbox-export"

# Passed into sessions so exported artifacts know how to re-enter.
ENTER_PATH_ENV = "DBOX_ENTER_PATH"


def under_root(root: str, path: str) -> str:
    """
    Re-anchors an absolute path below ``root``.

    :param root: Alternate filesystem root, ``/`` for the live system.
    :param path: Absolute path.
    """
    if root in ("", "/"):
        return path
    return os.path.join(root, path.lstrip("/"))


def inside_container(root: str = "/", markers: Iterable[str] = CONTAINER_MARKERS) -> bool:
    """
    Checks for a container marker file.

    :param root: Filesystem root to look under.
    """
    return any(os.path.exists(under_root(root, m)) for m in markers)


def route_marker(container_name: str, quote: Callable[[str], str] = shlex.quote) -> str:
    """
    Part of the enter command that identifies ``container_name`` whatever
    path the entering command was installed under. Its presence marks a
    desktop entry or unit as exported by dbox.
    """
    return f"enter -n {quote(container_name)} --"


def enter_command(container_name: str, quote: Callable[[str], str] = shlex.quote) -> str:
    """
    Command prefix that re-enters ``container_name`` from the host.

    :param container_name: Container to enter.
    :param quote: Quoting function for the target file format.
    """
    enter_path = os.environ.get(ENTER_PATH_ENV) or "dbox"
    return f"{quote(enter_path)} {route_marker(container_name, quote)}"


def desktop_quote(arg: str) -> str:
    """
    Quotes an argument for a desktop entry ``Exec`` line.
    """
    if arg and not any(c in arg for c in ' \t\n"\'\\$`<>~|&;*?#()'):
        return arg
    escaped = "".join("\\" + c if c in '"`$\\' else c for c in arg)
    return f'"{escaped}"'
