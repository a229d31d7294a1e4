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
Parser and formatter for ``[Section]`` / ``Key=Value`` files such as
desktop entries and systemd units.

Unlike ``configparser`` this keeps everything it does not understand:
comments, blank lines, repeated keys, key order and backslash line
continuations all survive a parse/format cycle unchanged. Only entries
whose value is assigned are re-rendered.
"""
from typing import List, Optional, Union


class Entry:
    """
    A single ``Key=Value`` assignment.
    """
    def __init__(self, key: str, value: str, raw: Optional[str] = None):
        """
        :param key: Key as written, including any locale suffix (``Name[de]``).
        :param value: Value text; may span several lines when continued with ``\\``.
        :param raw: Original text of the assignment, reused while unmodified.
        """
        self.key = key
        self._value = value
        self.raw = raw

    @property
    def value(self) -> str:
        return self._value

    @value.setter
    def value(self, value: str):
        self._value = value
        self.raw = None

    def format(self) -> str:
        if self.raw is not None:
            return self.raw
        return f"{self.key}={self._value}"

    def __repr__(self):
        return f"Entry({self.key!r}, {self._value!r})"


Line = Union[Entry, str]


class Section:
    """
    A ``[name]`` group and the lines under it, in file order.
    """
    def __init__(self, name: str, header: Optional[str] = None):
        self.name = name
        self.header = header if header is not None else f"[{name}]"
        self.lines: List[Line] = []

    def entries(self, key: Optional[str] = None) -> List[Entry]:
        """
        Lists assignments, optionally only those for ``key``.
        """
        return [
            line for line in self.lines
            if isinstance(line, Entry) and (key is None or line.key == key)
        ]

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        found = self.entries(key)
        return found[0].value if found else default

    def set(self, key: str, value: str):
        """
        Assigns ``value`` to every existing ``key`` entry, or appends one.
        """
        found = self.entries(key)
        if not found:
            self.lines.append(Entry(key, value))
            return
        for entry in found:
            entry.value = value

    def format(self) -> List[str]:
        return [self.header] + [
            line.format() if isinstance(line, Entry) else line for line in self.lines
        ]


class KeyFile:
    """
    A parsed key file: lines before the first section, then the sections.
    """
    def __init__(self):
        self.preamble: List[str] = []
        self.sections: List[Section] = []
        self.trailing_newline = True
        self.newline = "\n"

    def section(self, name: str) -> Optional[Section]:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def entries(self, key: str) -> List[Entry]:
        """Assignments for ``key`` across all sections, in file order."""
        found = []
        for section in self.sections:
            found.extend(section.entries(key))
        return found

    def format(self) -> str:
        lines = list(self.preamble)
        for section in self.sections:
            lines.extend(section.format())
        text = self.newline.join(lines)
        if self.trailing_newline and lines:
            text += self.newline
        return text


class KeyFileParser:
    """
    Parser for key files.
    """
    COMMENT_PREFIXES = ("#", ";")

    @staticmethod
    def parse(path: str) -> KeyFile:
        """
        Parses a key file from a path.

        :param path: Path to the file.
        :return: The parsed file.
        """
        with open(path, 'r', newline='') as f:
            content = f.read()
        return KeyFileParser.parse_from_string(content)

    @staticmethod
    def parse_from_string(content: str) -> KeyFile:
        """
        Parses a key file from a string.
        """
        keyfile = KeyFile()
        # Line endings are kept as found; CRLF files stay CRLF
        keyfile.newline = "\r\n" if "\r\n" in content else "\n"
        keyfile.trailing_newline = content.endswith(keyfile.newline)
        lines = content.split(keyfile.newline) if content else []
        if keyfile.trailing_newline:
            lines.pop()
        current: Optional[Section] = None
        pending: Optional[List[str]] = None  # lines of a continued assignment

        for line in lines:
            if pending is not None:
                pending.append(line)
                if not line.endswith("\\"):
                    current.lines.append(KeyFileParser._entry(keyfile.newline.join(pending)))
                    pending = None
                continue

            stripped = line.strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                current = Section(stripped[1:-1], header=line)
                keyfile.sections.append(current)
                continue

            target = current.lines if current is not None else keyfile.preamble
            if not stripped or stripped.startswith(KeyFileParser.COMMENT_PREFIXES) or "=" not in line:
                target.append(line)
                continue

            if current is None:
                keyfile.preamble.append(line)
            elif line.endswith("\\"):
                pending = [line]
            else:
                current.lines.append(KeyFileParser._entry(line))

        if pending is not None:
            # Continuation running into end of file
            current.lines.append(KeyFileParser._entry(keyfile.newline.join(pending)))

        return keyfile

    @staticmethod
    def _entry(raw: str) -> Entry:
        key, value = raw.split("=", 1)
        return Entry(key.strip(), value.lstrip(), raw=raw)
