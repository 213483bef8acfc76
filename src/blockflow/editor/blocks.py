"""Block model shared by the node store, converter, assembler and validator."""

from __future__ import annotations

import re
import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, JsonValue, field_validator

# A config tree: scalar | list[ConfigValue] | dict[str, ConfigValue]
ConfigValue = JsonValue

_WHITESPACE = re.compile(r"\s+")
_UNSAFE_JOB_CHARS = re.compile(r"[^a-z0-9\-_]")

_KIND_ALIASES = {
    "trigger": "trigger",
    "workflow_trigger": "trigger",
    "workflowtrigger": "trigger",
    "job": "job",
    "step": "step",
}


class BlockKind(str, Enum):
    """The closed set of block kinds."""

    TRIGGER = "trigger"
    JOB = "job"
    STEP = "step"


class Block(BaseModel):
    """The portable, order-independent unit of pipeline configuration.

    Inbound descriptors may use the drag-source spelling (``type``,
    ``jobRef``/``jobName``, ``task``); the model always dumps field names.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    kind: BlockKind = Field(..., validation_alias=AliasChoices("kind", "type"))
    description: Optional[str] = None
    job_ref: Optional[str] = Field(
        None, validation_alias=AliasChoices("job_ref", "jobRef", "jobName")
    )
    domain: Optional[str] = None
    tags: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("tags", "task")
    )
    config: dict[str, ConfigValue] = Field(default_factory=dict)

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _KIND_ALIASES.get(value.strip().lower(), value)
        return value

    @field_validator("tags", "config", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any, info) -> Any:
        if value is None:
            return [] if info.field_name == "tags" else {}
        return value


class VisualNode(BaseModel):
    """A Block plus its placement in the node store."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    kind: BlockKind
    block: Block
    order: int = 0
    parent_id: Optional[str] = None  # owning job node id, steps only


class PresentationState:
    """Selection and edit-mode flags keyed by node id.

    Held outside the node store so UI flags never reach conversion or
    serialization.
    """

    def __init__(self) -> None:
        self._selected: Optional[str] = None
        self._editing: set[str] = set()

    @property
    def selected(self) -> Optional[str]:
        return self._selected

    def select(self, node_id: Optional[str]) -> None:
        self._selected = node_id

    def is_selected(self, node_id: str) -> bool:
        return self._selected == node_id

    def set_editing(self, node_id: str, editing: bool = True) -> None:
        if editing:
            self._editing.add(node_id)
        else:
            self._editing.discard(node_id)

    def is_editing(self, node_id: str) -> bool:
        return node_id in self._editing

    def forget(self, node_id: str) -> None:
        """Drop every flag held for a node that no longer exists."""
        if self._selected == node_id:
            self._selected = None
        self._editing.discard(node_id)

    def clear(self) -> None:
        self._selected = None
        self._editing.clear()


def normalize_job_id(raw: Optional[str]) -> str:
    """Derive a job id from a display name.

    Lower-cased, whitespace runs become ``-``, anything outside
    ``[a-z0-9-_]`` is stripped; falls back to ``"job"``.
    """
    value = (raw or "").strip().lower()
    value = _WHITESPACE.sub("-", value)
    value = _UNSAFE_JOB_CHARS.sub("", value)
    return value or "job"


def default_job_id(index: int) -> str:
    """Canonical id of the job at zero-based ``index``."""
    return f"job{index + 1}"


def split_job_config(config: dict[str, Any]) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    """Unwrap a preset job config and separate its embedded steps.

    Preset job blocks may carry ``{"jobs": {"<id>": {...}}}``; the first
    entry is merged into the top level. Returns ``(job_config, steps)``.
    """
    job_config = dict(config)
    if isinstance(job_config.get("jobs"), dict):
        wrapped = job_config.pop("jobs")
        inner = next(iter(wrapped.values()), None)
        if isinstance(inner, dict):
            job_config.update(inner)

    steps = job_config.pop("steps", None)
    if not isinstance(steps, list):
        return job_config, []
    return job_config, [step for step in steps if isinstance(step, dict)]
