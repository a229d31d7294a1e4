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
Execution of external commands (container engine, package managers,
account tools) behind a single seam that tests can replace.
"""
import shutil
import subprocess
from typing import List, Dict, Optional

from ..UTILS.console import Console


class CommandRunner:
    """
    Runs external commands without a shell.
    """
    def __init__(self, console: Optional[Console] = None):
        """
        Initializes the command runner.

        Args:
            console (Optional[Console]): Where command traces are printed in verbose mode.
        """
        self.console = console or Console()

    def which(self, name: str) -> Optional[str]:
        """
        Resolves a command on PATH.

        Args:
            name (str): Command name.

        Returns:
            Optional[str]: Absolute path, or None when missing.
        """
        return shutil.which(name)

    def run(self,
            command: List[str],
            check: bool = False,
            capture: bool = False,
            env: Optional[Dict[str, str]] = None) -> subprocess.CompletedProcess:
        """
        Runs a command to completion.

        Args:
            command (List[str]): Command and arguments to execute.
            check (bool): Raise CalledProcessError on a non-zero status.
            capture (bool): Capture stdout/stderr as text instead of inheriting them.
            env (Optional[Dict[str, str]]): Environment for the process.

        Returns:
            subprocess.CompletedProcess: The finished process.
        """
        self.console.debug(" ".join(command))
        return subprocess.run(
            command,
            env=env,
            capture_output=capture,
            text=True,
            check=check,
            # Avoid shell=True for security reasons (CWE-78)
            shell=False
        )

    def call(self, command: List[str], env: Optional[Dict[str, str]] = None) -> int:
        """
        Runs an interactive command attached to the caller's terminal.

        Returns:
            int: Exit status of the command.
        """
        self.console.debug(" ".join(command))
        return subprocess.call(command, env=env, shell=False)
