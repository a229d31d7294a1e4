"""
Model for a single container engine invocation.
"""
from typing import List
from pydantic import BaseModel


class EngineCommand(BaseModel):
    """
    An ordered engine invocation: ``<engine> <verb> [options] [target] [arguments]``.
    Built fresh for every call, never persisted.
    """
    engine: str
    verb: str
    options: List[str] = []
    target: str = ""
    arguments: List[str] = []

    def argv(self) -> List[str]:
        """
        Flattens the command into an argument vector.

        :return: Arguments suitable for ``subprocess``.
        """
        argv = [self.engine, self.verb] + list(self.options)
        if self.target:
            argv.append(self.target)
        return argv + list(self.arguments)

    def __str__(self) -> str:
        return " ".join(self.argv())
