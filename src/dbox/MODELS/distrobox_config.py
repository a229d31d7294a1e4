"""
Models for the resolved runtime configuration.
"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ContainerManager(str, Enum):
    """Container engine selection."""
    AUTODETECT = "autodetect"
    PODMAN = "podman"
    DOCKER = "docker"


class DistroboxConfig(BaseModel):
    """
    Configuration assembled once per invocation from config files,
    ``DBX_*`` environment variables and command line flags, then passed
    explicitly to every component.
    """
    model_config = ConfigDict(frozen=True)

    container_manager: ContainerManager = ContainerManager.AUTODETECT
    container_name: str = "my-distrobox"
    container_image: str = "registry.fedoraproject.org/fedora-toolbox:latest"
    container_user_custom_home: Optional[str] = None
    verbose: bool = False

    # Readiness gate
    readiness_timeout: float = Field(default=120.0, ge=0)
    readiness_interval: float = Field(default=1.0, gt=0)

    def with_overrides(self, **overrides) -> "DistroboxConfig":
        """
        Returns a copy with the non-None overrides applied.
        """
        values = {k: v for k, v in overrides.items() if v is not None}
        return self.model_validate({**self.model_dump(), **values})
