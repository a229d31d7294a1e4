"""
Converter re-targeting desktop entries so they launch through the container.
"""
import re
from ..PARSERS.keyfile_parser import KeyFileParser
from ..UTILS.markers import desktop_quote, enter_command, route_marker

# Field codes of the desktop entry specification
FIELD_CODE = re.compile(r"(?<!\S)%[fFuUdDnNickvm](?!\S)")


class DesktopEntryConverter:
    """
    Rewrites ``Exec`` and neutralises ``TryExec``; every other key is kept
    exactly as written.
    """
    def __init__(self, container_name: str, extra_flags: str = "", sudo: bool = False):
        """
        :param container_name: Container the application lives in.
        :param extra_flags: Flags appended to the application command.
        :param sudo: Run the application through ``sudo -S``.
        """
        self.container_name = container_name
        self.extra_flags = extra_flags
        self.sudo = sudo
        self.prefix = enter_command(container_name, quote=desktop_quote)
        self.route = route_marker(container_name, quote=desktop_quote)

    def is_routed(self, command: str) -> bool:
        return self.route in command

    def is_exported(self, content: str) -> bool:
        """
        Checks that a desktop entry was written by this converter: it has
        ``Exec`` lines and every one of them enters the container.
        """
        commands = [e.value for e in KeyFileParser.parse_from_string(content).entries("Exec")]
        return bool(commands) and all(self.is_routed(c) for c in commands)

    def rewrite_exec(self, command: str) -> str:
        """
        Routes an ``Exec`` command line through the container.

        :param command: Original command line.
        :return: Command line prefixed with the enter command, extra flags
                 placed before the first field code.
        """
        if self.is_routed(command):
            return command

        if self.extra_flags:
            match = FIELD_CODE.search(command)
            if match:
                command = f"{command[:match.start()]}{self.extra_flags} {command[match.start():]}"
            else:
                command = f"{command} {self.extra_flags}"

        sudo = "sudo -S " if self.sudo else ""
        return f"{self.prefix} {sudo}{command}"

    def convert(self, content: str) -> str:
        """
        Converts a desktop entry.

        :param content: Desktop entry as found in the container.
        :return: Desktop entry for the host.
        """
        keyfile = KeyFileParser.parse_from_string(content)
        for entry in keyfile.entries("Exec"):
            entry.value = self.rewrite_exec(entry.value)
        for entry in keyfile.entries("TryExec"):
            entry.value = "true"
        return keyfile.format()
