"""API models for BlockFlow."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from .editor.blocks import Block, VisualNode
from .editor.validator import DropTarget
from .storage.store import SAFE_NAME


class SessionCreateRequest(BaseModel):
    """Start an editing session, optionally seeded with a workflow."""

    yaml: Optional[str] = Field(None, description="Workflow YAML text to load")
    document: Optional[dict[str, Any]] = Field(
        None, description="Workflow document to load when no YAML text is given"
    )


class SessionResponse(BaseModel):
    id: str
    loaded: int = 0
    nodes: list[dict[str, Any]] = []


class DropRequest(BaseModel):
    """A block descriptor dropped on one of the three areas."""

    block: dict[str, Any] = Field(..., description="Block descriptor from the library")
    target: DropTarget = Field(..., description="Area the block was dropped on")
    job_id: Optional[str] = Field(
        None, description="Job node a step is dropped under; defaults to the last job"
    )


class PipelineDropRequest(BaseModel):
    """A preset pipeline: several block descriptors dropped at once."""

    blocks: list[dict[str, Any]] = Field(..., description="Block descriptors in order")


class DropResponse(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    node: Optional[VisualNode] = None
    replaced: bool = False


class NodeUpdateRequest(BaseModel):
    fields: dict[str, Any] = Field(..., description="Block fields to replace")


class JobRenameRequest(BaseModel):
    job_ref: str = Field(..., min_length=1, description="New job id")


class MoveRequest(BaseModel):
    index: int = Field(..., ge=0, description="Target position within the node's collection")


class SaveRequest(BaseModel):
    """Save the session's block list as a pipeline version."""

    id: Optional[str] = Field(
        None, pattern=SAFE_NAME, description="Pipeline id; defaults to the session id"
    )
    name: str = Field(..., min_length=1)
    team: Optional[str] = Field(
        None, pattern=SAFE_NAME, description="Team folder; defaults to the configured team"
    )
    export_yaml: bool = Field(False, description="Also write the rendered YAML next to it")


class SaveResponse(BaseModel):
    id: str
    team: str
    version: int
    yaml_path: Optional[str] = None


class BlocksResponse(BaseModel):
    blocks: list[Block]


class YamlResponse(BaseModel):
    yaml: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str = "BlockFlow Backend"


class YamlLoadRequest(BaseModel):
    yaml: str = Field(..., description="Workflow YAML text replacing the session content")
