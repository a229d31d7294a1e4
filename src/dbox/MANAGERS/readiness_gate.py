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
Readiness gate: blocks the entering side until the bootstrap inside the
container reports completion, either through the readiness file it writes
or the sentinel line on its log stream.
"""
import re
import time
from typing import Callable, List, Optional, Set

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, stop_never, wait_fixed

from .container_manager import ContainerManager
from ..UTILS.console import Console
from ..UTILS.markers import READINESS_FILE, READINESS_SENTINEL
from ..errors import BootstrapTimeoutError


class ReadinessGate:
    """
    Polls a container's logs at a fixed interval until the readiness
    sentinel shows up, surfacing warnings and errors as they appear.
    """
    PROBLEM_PATTERN = re.compile(r"error|warning", re.IGNORECASE)

    def __init__(self,
                 containers: ContainerManager,
                 timeout: float = 120.0,
                 interval: float = 1.0,
                 console: Optional[Console] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initializes the gate.

        Args:
            containers: Manager for the container to wait on.
            timeout: Seconds to wait before giving up; 0 waits forever.
            interval: Seconds between log polls.
            console: Where surfaced log lines are printed.
            sleep: Sleep function used between polls.
        """
        self.containers = containers
        self.timeout = timeout
        self.interval = interval
        self.console = console or Console()
        self.sleep = sleep
        self._baseline = 0
        self._trust_file = True
        self._surfaced: Set[str] = set()

    def _new_lines(self) -> List[str]:
        return self.containers.logs()[self._baseline:]

    def poll(self) -> bool:
        """
        Reads the logs once.

        Returns:
            True if the sentinel has been seen or the readiness file exists.
        """
        ready = False
        for line in self._new_lines():
            if READINESS_SENTINEL in line:
                ready = True
                continue
            if self.PROBLEM_PATTERN.search(line) and line not in self._surfaced:
                self._surfaced.add(line)
                self.console.info(line)
        if not ready and self._trust_file:
            ready = self.containers.has_file(READINESS_FILE)
        return ready

    def wait(self):
        """
        Ensures the container is running, then waits for its bootstrap.

        Raises:
            ContainerNotFoundError: If the container does not exist.
            BootstrapTimeoutError: If the sentinel does not appear in time.
        """
        state = self.containers.status()
        if state != "running":
            if state is None:
                # Raises ContainerNotFoundError
                self.containers.ensure_running()
            # Logs and a readiness file from an earlier run must not satisfy the gate
            self._baseline = len(self.containers.logs())
            self._trust_file = False
            self.console.info(f"Starting container {self.containers.name}")
            self.containers.ensure_running()

        stop = stop_after_delay(self.timeout) if self.timeout > 0 else stop_never
        retrying = Retrying(
            stop=stop,
            wait=wait_fixed(self.interval),
            retry=retry_if_result(lambda ready: not ready),
            sleep=self.sleep,
        )
        try:
            retrying(self.poll)
        except RetryError as e:
            raise BootstrapTimeoutError(
                f"bootstrap timed out: {self.containers.name} did not become ready within {self.timeout:g}s"
            ) from e
