"""
Shared fixtures: a recording command runner and a fake container root.
"""
import subprocess
import pytest


class FakeRunner:
    """
    Stands in for CommandRunner: records commands and answers from a script.
    """
    def __init__(self, available=None, responses=None):
        """
        :param available: Command names ``which`` resolves.
        :param responses: Maps a command prefix (tuple) to ``(returncode, stdout, stderr)``
                          or to a callable returning such a tuple.
        """
        self.available = set(available or [])
        self.responses = responses or {}
        self.commands = []
        self.calls = []

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.available else None

    def _answer(self, command):
        for length in range(len(command), 0, -1):
            answer = self.responses.get(tuple(command[:length]))
            if answer is not None:
                return answer() if callable(answer) else answer
        return (0, "", "")

    def run(self, command, check=False, capture=False, env=None):
        self.commands.append(list(command))
        returncode, stdout, stderr = self._answer(command)
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, command, stdout, stderr)
        return subprocess.CompletedProcess(command, returncode, stdout, stderr)

    def call(self, command, env=None):
        self.calls.append(list(command))
        return self._answer(command)[0]

    def ran(self, *prefix):
        return [c for c in self.commands if tuple(c[:len(prefix)]) == prefix]


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def container_root(tmp_path):
    """A directory tree that looks like a podman container's root."""
    root = tmp_path / "container"
    (root / "run").mkdir(parents=True)
    (root / "run" / ".containerenv").write_text('engine="podman-4.9.0"\nname="dev"\n')
    (root / "etc").mkdir()
    return root


@pytest.fixture
def make_runner():
    """Factory for runners with scripted availability and responses."""
    return FakeRunner
