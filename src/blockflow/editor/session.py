"""One editing session: node store, drop validation, presentation state
and the derived block list / document / YAML views."""

from __future__ import annotations

import uuid
from logging import getLogger
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ValidationError

from .assembler import assemble
from .blocks import Block, BlockKind, PresentationState, VisualNode, split_job_config
from .converter import from_document, step_block_from_config
from .nodes import NodeStore
from .notifier import ChangeNotifier, Listener
from .serializer import YamlParseResult, block_yaml, parse_yaml, workflow_yaml
from .summary import (
    JobSummary,
    StepSummary,
    TriggerSummary,
    summarize_job,
    summarize_step,
    summarize_trigger,
)
from .validator import Descriptor, DropResult, DropTarget, DropValidator, parse_descriptor

logger = getLogger(__name__)

Summary = Union[TriggerSummary, JobSummary, StepSummary]


class NodeView(BaseModel):
    """A node together with its presentation flags."""

    node: VisualNode
    selected: bool = False
    editing: bool = False


class EditorSession:
    """Everything one user edits between load and reset."""

    def __init__(self, notifier: ChangeNotifier | None = None):
        self.id = uuid.uuid4().hex
        self.notifier = notifier or ChangeNotifier()
        self.store = NodeStore(self.notifier)
        self.validator = DropValidator(self.store)
        self.presentation = PresentationState()

    def subscribe(self, listener: Listener):
        return self.notifier.subscribe(listener)

    # ── Drops ──

    def drop(
        self,
        descriptor: Descriptor,
        target: DropTarget | str,
        job_id: Optional[str] = None,
    ) -> DropResult:
        """Drop one block. A job's embedded steps become its step nodes."""
        decision = self.validator.validate(descriptor, target, job_id)
        if not decision.accepted:
            return DropResult(accepted=False, reason=decision.reason)

        embedded: list[dict[str, Any]] = []
        if decision.kind is BlockKind.JOB:
            job_config, embedded = split_job_config(decision.block.config)
            decision.block = decision.block.model_copy(update={"config": job_config})

        replaced = [node.id for node in self.store.triggers] if decision.replaces_trigger else []
        result = self.validator.apply(decision)
        if result.replaced:
            for node_id in replaced:
                self.presentation.forget(node_id)
        if result.accepted and embedded:
            self._add_embedded_steps(result.node, embedded)
        return result

    def drop_pipeline(self, descriptors: Iterable[Descriptor]) -> list[DropResult]:
        """Drop a preset pipeline: triggers and jobs first, then steps.

        Each step goes to the job whose ref it names, preferring jobs
        created by this pipeline, else to the most recent job.
        """
        results: list[DropResult] = []
        deferred_steps: list[Block] = []
        created_jobs: dict[str, str] = {}

        for descriptor in descriptors:
            try:
                block = parse_descriptor(descriptor)
            except ValidationError as e:
                logger.info(f"Skipping malformed pipeline block: {e}")
                results.append(DropResult(accepted=False, reason="Malformed block descriptor."))
                continue

            if block.kind is BlockKind.STEP:
                deferred_steps.append(block)
                continue

            target = DropTarget.TRIGGER if block.kind is BlockKind.TRIGGER else DropTarget.JOB
            result = self.drop(block, target)
            if result.accepted and block.kind is BlockKind.JOB and block.job_ref:
                created_jobs[block.job_ref] = result.node.id
            results.append(result)

        for block in deferred_steps:
            job_id = created_jobs.get(block.job_ref) if block.job_ref else None
            if job_id is None and block.job_ref:
                job = self.store.find_job_by_ref(block.job_ref)
                job_id = job.id if job is not None else None
            results.append(self.drop(block, DropTarget.STEP, job_id))

        return results

    # ── Edits ──

    def update_node(self, node_id: str, fields: dict[str, Any]) -> Optional[VisualNode]:
        return self.store.update_node_data(node_id, fields)

    def rename_job(self, job_id: str, new_job_ref: str) -> bool:
        return self.store.rename_job(job_id, new_job_ref)

    def move_node(self, node_id: str, index: int) -> bool:
        return self.store.move_node(node_id, index)

    def delete_node(self, node_id: str) -> bool:
        before = {node.id for node in self.store.get_all_nodes()}
        if not self.store.delete_node(node_id):
            return False
        after = {node.id for node in self.store.get_all_nodes()}
        for removed in before - after:
            self.presentation.forget(removed)
        return True

    def select(self, node_id: Optional[str]) -> None:
        self.presentation.select(node_id)

    def set_editing(self, node_id: str, editing: bool = True) -> None:
        self.presentation.set_editing(node_id, editing)

    def reset(self) -> None:
        self.store.clear()
        self.presentation.clear()

    # ── Loading ──

    def load_document(self, doc: Any) -> int:
        """Replace the session content with a workflow document.
        Returns the number of blocks loaded."""
        blocks = from_document(doc)
        self.store.load_blocks(blocks)
        self.presentation.clear()
        return len(blocks)

    def load_yaml(self, text: str) -> YamlParseResult:
        """Parse YAML text and load it; a failed parse changes nothing."""
        result = parse_yaml(text)
        if result.success:
            self.load_document(result.data)
        return result

    def load_blocks(self, blocks: Iterable[Block]) -> None:
        self.store.load_blocks(blocks)
        self.presentation.clear()

    # ── Views ──

    def nodes(self) -> list[NodeView]:
        return [
            NodeView(
                node=node,
                selected=self.presentation.is_selected(node.id),
                editing=self.presentation.is_editing(node.id),
            )
            for node in self.store.get_all_nodes()
        ]

    def blocks(self) -> list[Block]:
        return self.store.to_blocks()

    def document(self, *, annotate: bool = False) -> dict[str, Any]:
        return assemble(self.blocks(), annotate=annotate)

    def yaml(self, *, annotate: bool = False) -> str:
        return workflow_yaml(self.blocks(), annotate=annotate)

    def node_yaml(self, node_id: str) -> Optional[str]:
        node = self.store.get_node(node_id)
        if node is None:
            return None
        return block_yaml(node.block)

    def summary(self, node_id: str) -> Optional[Summary]:
        node = self.store.get_node(node_id)
        if node is None:
            return None
        if node.kind is BlockKind.TRIGGER:
            return summarize_trigger(node.block.config)
        if node.kind is BlockKind.JOB:
            return summarize_job(node.block.config)
        return summarize_step(node.block.config)

    def _add_embedded_steps(self, job: VisualNode, embedded: list[dict[str, Any]]) -> None:
        for index, step in enumerate(embedded):
            self.store.add_node(
                BlockKind.STEP,
                step_block_from_config(step, job.block.job_ref, index),
                job.id,
            )
