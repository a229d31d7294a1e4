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
Converters re-targeting systemd units so their processes run inside a distrobox.
"""
import re
from typing import Tuple
from ..PARSERS.keyfile_parser import KeyFileParser
from ..UTILS.markers import enter_command, route_marker

# Rewritten in this order
EXEC_DIRECTIVES = [
    "ExecStart",
    "ExecStartPre",
    "ExecStartPost",
    "ExecReload",
    "ExecStop",
    "ExecStopPost",
]

# Special executable prefixes: -, @, :, +, !, !!
EXEC_PREFIX = re.compile(r"^([-@:+!]*)\s*(.*)$", re.DOTALL)


class SystemdConverter:
    """
    Converts a unit found in the container into a host user unit.
    """

    def __init__(self, container_name: str, sudo: bool = False):
        """
        Initializes the systemd converter.

        :param container_name: Container the service runs in.
        :param sudo: Run the service commands through ``sudo -S``.
        """
        self.container_name = container_name
        self.sudo = sudo
        self.prefix = enter_command(container_name)
        self.route = route_marker(container_name)

    def is_routed(self, command: str) -> bool:
        return self.route in command

    def is_exported(self, content: str) -> bool:
        """
        Checks that a unit was written by this converter: at least one
        execution directive enters the container.
        """
        unit = KeyFileParser.parse_from_string(content)
        return any(
            self.is_routed(entry.value)
            for directive in EXEC_DIRECTIVES
            for entry in unit.entries(directive)
        )

    def rewrite_exec(self, command: str) -> str:
        """
        Routes one execution directive value through the container.

        :param command: Directive value, possibly with special prefixes.
        :return: The routed value; unchanged if empty or already routed.
        """
        if not command.strip() or self.is_routed(command):
            return command

        flags, rest = EXEC_PREFIX.match(command).groups()
        if "@" in flags:
            # argv[0] override cannot be forwarded; drop it
            flags = flags.replace("@", "")
            parts = rest.split(None, 2)
            rest = " ".join(parts[:1] + parts[2:])

        sudo = "sudo -S " if self.sudo else ""
        return f"{flags}{self.prefix} {sudo}{rest}"

    def convert(self, content: str) -> Tuple[str, bool]:
        """
        Rewrites every execution directive of a unit.

        :param content: Unit file content.
        :return: The converted content and whether anything changed.
        """
        unit = KeyFileParser.parse_from_string(content)
        changed = False
        for directive in EXEC_DIRECTIVES:
            for entry in unit.entries(directive):
                routed = self.rewrite_exec(entry.value)
                if routed != entry.value:
                    entry.value = routed
                    changed = True
        return unit.format(), changed
