"""
Models for artifacts exported from a container to the host.
"""
from enum import Enum
from typing import Annotated, List, Literal, Union
from pydantic import BaseModel, ConfigDict, Field


class ExportAction(str, Enum):
    """What to do with an artifact."""
    EXPORT = "export"
    DELETE = "delete"


class _Artifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    extra_flags: str = ""
    sudo: bool = False


class BinaryExport(_Artifact):
    """
    A container executable wrapped by a host-side shell script.
    """
    kind: Literal["binary"] = "binary"
    source: str
    export_path: str


class ApplicationExport(_Artifact):
    """
    A graphical application: its desktop entries and icons.
    """
    kind: Literal["application"] = "application"
    name: str


class ServiceExport(_Artifact):
    """
    A systemd unit re-targeted to run through the container.
    """
    kind: Literal["service"] = "service"
    name: str


ExportArtifact = Annotated[
    Union[BinaryExport, ApplicationExport, ServiceExport],
    Field(discriminator="kind"),
]


class ExportResult(BaseModel):
    """
    Outcome of an export or delete operation.
    """
    artifact: ExportArtifact
    action: ExportAction
    written: List[str] = []
    removed: List[str] = []
    already_exported: bool = False
