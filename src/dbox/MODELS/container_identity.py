"""
Models describing who a container is created for.
"""
import os
import pwd
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserIdentity(BaseModel):
    """
    The host user mirrored inside the container.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    uid: int = Field(ge=0)
    gid: int = Field(ge=0)
    home: str = Field(min_length=1)
    shell: str = "/bin/bash"

    @field_validator("home")
    @classmethod
    def _home_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("home must be an absolute path")
        return value.rstrip("/") or "/"

    @property
    def shell_name(self) -> str:
        """Basename of the login shell, e.g. ``bash``."""
        return os.path.basename(self.shell) or "bash"

    @classmethod
    def from_host(cls, home: Optional[str] = None) -> "UserIdentity":
        """
        Builds the identity of the invoking host user.

        :param home: Custom home directory overriding the passwd entry.
        """
        entry = pwd.getpwuid(os.getuid())
        return cls(
            name=entry.pw_name,
            uid=os.getuid(),
            gid=os.getgid(),
            home=home or os.environ.get("HOME") or entry.pw_dir,
            shell=os.environ.get("SHELL") or entry.pw_shell or "/bin/bash",
        )


class ContainerIdentity(BaseModel):
    """
    A distrobox: engine-level name, the image it runs and the mirrored user.
    Fixed at creation time for the lifetime of the container.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    image: str = ""
    user: UserIdentity

    @classmethod
    def from_host(cls, name: str, image: str = "", home: Optional[str] = None) -> "ContainerIdentity":
        return cls(name=name, image=image, user=UserIdentity.from_host(home))
