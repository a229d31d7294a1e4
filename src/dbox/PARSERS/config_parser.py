"""
Parsers for dbox configuration files and the engine's container marker file.

Both are shell-style ``key="value"`` files, read with python-dotenv.
"""
import os
import socket
from typing import Dict, List, Mapping, Optional
from dotenv import dotenv_values
from pydantic import ValidationError

from ..MODELS.distrobox_config import DistroboxConfig
from ..UTILS.markers import CONTAINER_MARKERS, under_root
from ..errors import UsageError

SYSTEM_CONFIG_FILES = [
    "/usr/share/dbox/dbox.conf",
    "/usr/etc/dbox/dbox.conf",
    "/etc/dbox/dbox.conf",
]

USER_CONFIG_FILES = [
    "~/.config/dbox/dbox.conf",
    "~/.dboxrc",
]

# config file key -> DistroboxConfig field
FILE_KEYS = {
    "container_manager": "container_manager",
    "container_name_default": "container_name",
    "container_image_default": "container_image",
    "container_user_custom_home": "container_user_custom_home",
    "verbose": "verbose",
    "readiness_timeout": "readiness_timeout",
    "readiness_interval": "readiness_interval",
}

# environment variable -> DistroboxConfig field
ENV_KEYS = {
    "DBX_CONTAINER_MANAGER": "container_manager",
    "DBX_CONTAINER_NAME": "container_name",
    "DBX_CONTAINER_IMAGE": "container_image",
    "DBX_CONTAINER_CUSTOM_HOME": "container_user_custom_home",
    "DBX_VERBOSE": "verbose",
    "DBX_READINESS_TIMEOUT": "readiness_timeout",
    "DBX_READINESS_INTERVAL": "readiness_interval",
}


class ConfigParser:
    """
    Assembles a DistroboxConfig from config files and the environment.
    Later sources override earlier ones.
    """
    def __init__(self,
                 config_files: Optional[List[str]] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """
        :param config_files: Files to read, lowest priority first.
        :param environ: Environment to read ``DBX_*`` overrides from.
        """
        if config_files is None:
            config_files = SYSTEM_CONFIG_FILES + [os.path.expanduser(p) for p in USER_CONFIG_FILES]
        self.config_files = config_files
        self.environ = os.environ if environ is None else environ

    def load_values(self) -> Dict[str, str]:
        """
        Collects raw values from every source.

        :return: Field name to raw string value.
        """
        values: Dict[str, str] = {}
        for path in self.config_files:
            if not os.path.isfile(path):
                continue
            for key, value in dotenv_values(path).items():
                field = FILE_KEYS.get(key)
                if field and value:
                    values[field] = value

        for key, field in ENV_KEYS.items():
            value = self.environ.get(key)
            if value:
                values[field] = value
        return values

    def parse(self, **overrides) -> DistroboxConfig:
        """
        Builds the configuration; keyword overrides (CLI flags) win when not None.

        :raises UsageError: If a value is invalid.
        """
        values = self.load_values()
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return DistroboxConfig(**values)
        except ValidationError as e:
            raise UsageError(f"invalid configuration: {e}") from e


def read_container_name(root: str = "/", environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Determines the name of the container we are running in.

    Reads ``name`` from the engine's marker file, falling back to
    ``CONTAINER_ID`` and finally the hostname.

    :param root: Filesystem root to look under.
    :param environ: Environment to consult.
    """
    environ = os.environ if environ is None else environ
    for marker in CONTAINER_MARKERS:
        path = under_root(root, marker)
        if os.path.isfile(path):
            name = dotenv_values(path).get("name")
            if name:
                return name
    return environ.get("CONTAINER_ID") or socket.gethostname()
