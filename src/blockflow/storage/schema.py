"""Pydantic models for saved pipelines."""

from pydantic import BaseModel

from ..editor.blocks import Block


class SavedPipeline(BaseModel):
    """An ordered block list saved under a team."""

    id: str
    name: str
    team: str = "default"
    blocks: list[Block] = []
    version: int = 1
