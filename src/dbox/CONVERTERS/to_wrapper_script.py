"""
Converter generating host-side wrapper scripts for exported binaries.
"""
import shlex
from typing import Sequence

from jinja2 import Template
from ..MODELS.export_artifact import BinaryExport
from ..UTILS.markers import BINARY_EXPORT_MARKER, CONTAINER_MARKERS, ENTER_PATH_ENV

WRAPPER_TEMPLATE = """#!/bin/sh
{{ marker }}
# name: {{ container_name }}
if {% for m in markers %}[ -f {{ m }} ]{% if not loop.last %} || {% endif %}{% endfor %}; then
	exec {{ binary }} "$@"
else
	exec "${{ '{' }}{{ enter_env }}:-dbox{{ '}' }}" enter -n {{ container_name }} -- {{ sudo }}{{ binary }}{{ extra_flags }} "$@"
fi
"""


class WrapperScriptConverter:
    """
    Renders the wrapper that re-enters the container on the host and runs
    the binary directly when already inside it.
    """
    def __init__(self, container_name: str, markers: Sequence[str] = CONTAINER_MARKERS):
        """
        :param container_name: Container the binary lives in.
        :param markers: Files whose presence means the wrapper runs inside a container.
        """
        self.container_name = container_name
        self.markers = markers
        self.template = Template(WRAPPER_TEMPLATE, keep_trailing_newline=True)

    def convert(self, artifact: BinaryExport) -> str:
        """
        Generates the wrapper script.

        :param artifact: The exported binary.
        :return: Script content; identical for identical inputs.
        """
        return self.template.render(
            marker=BINARY_EXPORT_MARKER,
            markers=self.markers,
            container_name=shlex.quote(self.container_name),
            enter_env=ENTER_PATH_ENV,
            binary=shlex.quote(artifact.source),
            sudo="sudo -S " if artifact.sudo else "",
            extra_flags=f" {artifact.extra_flags}" if artifact.extra_flags else "",
        )
