"""Drop validation: may a block descriptor enter a target collection?"""

from __future__ import annotations

from enum import Enum
from logging import getLogger
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from .blocks import Block, BlockKind, VisualNode
from .nodes import NodeStore

logger = getLogger(__name__)

Descriptor = Union[Block, Mapping[str, Any], str, bytes]


class DropTarget(str, Enum):
    """The collection a block was dropped on."""

    TRIGGER = "trigger"
    JOB = "job"
    STEP = "step"


class DropDecision(BaseModel):
    """Outcome of validating a drop, before anything is applied."""

    accepted: bool
    reason: Optional[str] = None
    block: Optional[Block] = None
    kind: Optional[BlockKind] = None
    parent_id: Optional[str] = None  # job node the step goes under
    replaces_trigger: bool = False


class DropResult(BaseModel):
    """Outcome of a drop after it was applied to the store."""

    accepted: bool
    reason: Optional[str] = None
    node: Optional[VisualNode] = None
    replaced: bool = False


class DropValidator:
    """Checks kind compatibility, ordering prerequisites and the duplicate
    policy, in that order, then applies accepted drops to a node store."""

    def __init__(self, store: NodeStore):
        self.store = store

    def validate(
        self,
        descriptor: Descriptor,
        target: DropTarget | str,
        job_id: Optional[str] = None,
    ) -> DropDecision:
        try:
            block = parse_descriptor(descriptor)
            target = DropTarget(target)
        except (ValidationError, ValueError) as e:
            logger.info(f"Rejected malformed drop: {e}")
            return _reject("Malformed block descriptor.")

        decision = (
            self._check_kind(block, target)
            or self._check_prerequisites(block)
            or self._place(block, target, job_id)
        )
        if not decision.accepted:
            logger.info(f"Rejected drop of '{block.name}' on {target.value}: {decision.reason}")
        return decision

    def drop(
        self,
        descriptor: Descriptor,
        target: DropTarget | str,
        job_id: Optional[str] = None,
    ) -> DropResult:
        """Validate and, when accepted, add the block to the store."""
        decision = self.validate(descriptor, target, job_id)
        if not decision.accepted:
            return DropResult(accepted=False, reason=decision.reason)
        return self.apply(decision)

    def apply(self, decision: DropDecision) -> DropResult:
        if decision.replaces_trigger:
            node = self.store.replace_trigger(decision.block)
            return DropResult(accepted=True, node=node, replaced=True)

        node = self.store.add_node(decision.kind, decision.block, decision.parent_id)
        if node is None:
            return DropResult(accepted=False, reason="The block could not be added.")
        return DropResult(accepted=True, node=node)

    # ── Checks ──

    @staticmethod
    def _check_kind(block: Block, target: DropTarget) -> Optional[DropDecision]:
        if target is DropTarget.TRIGGER and block.kind is not BlockKind.TRIGGER:
            return _reject("Only Trigger blocks can be dropped in the trigger area.")
        if target is DropTarget.JOB and block.kind is BlockKind.TRIGGER:
            return _reject("Trigger blocks cannot be dropped in the job area.")
        if target is DropTarget.STEP and block.kind is not BlockKind.STEP:
            return _reject("Only Step blocks can be dropped in the step area.")
        return None

    def _check_prerequisites(self, block: Block) -> Optional[DropDecision]:
        if block.kind is not BlockKind.TRIGGER and not self.store.triggers:
            return _reject("Add a Trigger block first.")
        if block.kind is BlockKind.STEP and not self.store.jobs:
            return _reject("Add a Job block first.")
        return None

    def _place(self, block: Block, target: DropTarget, job_id: Optional[str]) -> DropDecision:
        if block.kind is BlockKind.TRIGGER:
            # a second trigger replaces the first
            return DropDecision(
                accepted=True,
                block=block,
                kind=block.kind,
                replaces_trigger=bool(self.store.triggers),
            )

        if block.kind is BlockKind.JOB:
            return DropDecision(accepted=True, block=block, kind=block.kind)

        # steps dropped on the job area go to the most recent job
        if job_id is not None:
            parent = self.store.get_node(job_id)
            if parent is None or parent.kind is not BlockKind.JOB:
                return _reject("Parent job not found.")
        else:
            parent = self.store.last_job()

        return DropDecision(
            accepted=True,
            block=block.model_copy(update={"job_ref": parent.block.job_ref}),
            kind=BlockKind.STEP,
            parent_id=parent.id,
        )


def parse_descriptor(descriptor: Descriptor) -> Block:
    if isinstance(descriptor, Block):
        return descriptor
    if isinstance(descriptor, (str, bytes)):
        return Block.model_validate_json(descriptor)
    return Block.model_validate(descriptor)


def _reject(reason: str) -> DropDecision:
    return DropDecision(accepted=False, reason=reason)
