"""Node store: the trigger, job and step collections of one editing session."""

from __future__ import annotations

from logging import getLogger
from typing import Any, Iterable, Mapping, Optional

from .blocks import Block, BlockKind, VisualNode, default_job_id, split_job_config
from .converter import blocks_to_nodes, to_blocks
from .notifier import ChangeNotifier

logger = getLogger(__name__)

# drag-source spellings accepted in field updates
_FIELD_ALIASES = {"type": "kind", "jobRef": "job_ref", "jobName": "job_ref", "task": "tags"}


class NodeStore:
    """Owns the three ordered node collections and their invariants.

    - at most one trigger
    - ``order`` is ``0..n-1`` within every collection
    - job ids are unique; a step's ``parent_id`` names an existing job or
      is ``None``

    Every mutation schedules one coalesced notification on ``notifier``.
    Not thread-safe: callers that share a store across threads must hold
    their own lock around it.
    """

    def __init__(self, notifier: ChangeNotifier | None = None):
        self.notifier = notifier or ChangeNotifier()
        self._nodes: dict[BlockKind, list[VisualNode]] = {kind: [] for kind in BlockKind}

    # ── Queries ──

    @property
    def triggers(self) -> tuple[VisualNode, ...]:
        return tuple(self._nodes[BlockKind.TRIGGER])

    @property
    def jobs(self) -> tuple[VisualNode, ...]:
        return tuple(self._nodes[BlockKind.JOB])

    @property
    def steps(self) -> tuple[VisualNode, ...]:
        return tuple(self._nodes[BlockKind.STEP])

    def get_all_nodes(self) -> list[VisualNode]:
        """Triggers, then jobs, then steps, each in collection order."""
        return [*self.triggers, *self.jobs, *self.steps]

    def get_node(self, node_id: str) -> Optional[VisualNode]:
        for node in self.get_all_nodes():
            if node.id == node_id:
                return node
        return None

    def find_job_by_ref(self, job_ref: str) -> Optional[VisualNode]:
        for job in self._nodes[BlockKind.JOB]:
            if job.block.job_ref == job_ref:
                return job
        return None

    def last_job(self) -> Optional[VisualNode]:
        jobs = self._nodes[BlockKind.JOB]
        return jobs[-1] if jobs else None

    def next_job_ref(self) -> str:
        """The id the next auto-named job receives: ``job<count + 1>``,
        bumped past ids already taken."""
        taken = {job.block.job_ref for job in self._nodes[BlockKind.JOB]}
        index = len(self._nodes[BlockKind.JOB])
        while default_job_id(index) in taken:
            index += 1
        return default_job_id(index)

    def steps_of(self, job_id: str) -> list[VisualNode]:
        return [step for step in self._nodes[BlockKind.STEP] if step.parent_id == job_id]

    def to_blocks(self) -> list[Block]:
        return to_blocks(self.get_all_nodes())

    def is_empty(self) -> bool:
        return not any(self._nodes.values())

    # ── Mutations ──

    def add_node(
        self, kind: BlockKind, block: Block, parent_id: Optional[str] = None
    ) -> Optional[VisualNode]:
        """Append a node for ``block`` to the ``kind`` collection.

        Returns ``None`` when a trigger already exists.
        """
        collection = self._nodes[kind]
        if kind is BlockKind.TRIGGER and collection:
            logger.info("Trigger already present; add ignored")
            return None

        block = self._prepare_block(kind, block)
        if kind is BlockKind.JOB:
            if not block.job_ref or self.find_job_by_ref(block.job_ref) is not None:
                block.job_ref = self.next_job_ref()
        elif kind is BlockKind.STEP:
            block, parent_id = self._attach_step(block, parent_id)
        else:
            parent_id = None

        node = VisualNode(kind=kind, block=block, order=len(collection), parent_id=parent_id)
        collection.append(node)
        self._changed()
        return node

    def replace_trigger(self, block: Block) -> VisualNode:
        """Put ``block`` in the trigger slot, replacing any current trigger."""
        node = VisualNode(
            kind=BlockKind.TRIGGER,
            block=self._prepare_block(BlockKind.TRIGGER, block),
            order=0,
        )
        self._nodes[BlockKind.TRIGGER] = [node]
        self._changed()
        return node

    def delete_node(self, node_id: str) -> bool:
        """Remove a node. Deleting a job also removes its steps and
        renumbers the remaining job ids by position."""
        node = self.get_node(node_id)
        if node is None:
            return False

        collection = self._nodes[node.kind]
        collection.remove(node)
        self._renumber(collection)

        if node.kind is BlockKind.JOB:
            steps = self._nodes[BlockKind.STEP]
            steps[:] = [step for step in steps if step.parent_id != node_id]
            self._renumber(steps)
            self._rederive_job_ids()

        self._changed()
        return True

    def update_node_data(self, node_id: str, fields: Mapping[str, Any]) -> Optional[VisualNode]:
        """Replace block fields of a node; ``order`` and ``parent_id`` stay.

        A job id change here does not touch the job's steps; use
        ``rename_job`` for that. Invalid fields raise ``ValidationError``
        and leave the node unchanged.
        """
        node = self.get_node(node_id)
        if node is None:
            return None

        data = node.block.model_dump()
        data.update({_FIELD_ALIASES.get(key, key): value for key, value in fields.items()})
        if data["kind"] != node.kind:
            logger.warning(f"Ignoring kind change of node {node_id}")
        data["kind"] = node.kind
        block = Block.model_validate(data)

        node.block = self._prepare_block(node.kind, block)
        self._changed()
        return node

    def rename_job(self, job_id: str, new_job_ref: str) -> bool:
        """Give a job a new id and carry it to the job's steps."""
        job = self.get_node(job_id)
        if job is None or job.kind is not BlockKind.JOB:
            return False
        job.block.job_ref = new_job_ref
        self.cascade_job_rename(job_id, new_job_ref)
        return True

    def cascade_job_rename(self, job_id: str, new_job_ref: str) -> int:
        """Set ``job_ref`` on every step of ``job_id``. Returns the count."""
        steps = self.steps_of(job_id)
        for step in steps:
            step.block.job_ref = new_job_ref
        self._changed()
        return len(steps)

    def move_node(self, node_id: str, index: int) -> bool:
        """Move a node to ``index`` within its own collection."""
        node = self.get_node(node_id)
        if node is None:
            return False

        collection = self._nodes[node.kind]
        collection.remove(node)
        index = max(0, min(index, len(collection)))
        collection.insert(index, node)
        self._renumber(collection)
        if node.kind is BlockKind.JOB:
            self._rederive_job_ids()

        self._changed()
        return True

    def load_blocks(self, blocks: Iterable[Block]) -> None:
        """Replace all content with nodes rebuilt from ``blocks``."""
        triggers, jobs, steps = blocks_to_nodes(blocks)
        self._nodes = {
            BlockKind.TRIGGER: triggers,
            BlockKind.JOB: jobs,
            BlockKind.STEP: steps,
        }
        self._changed()

    def clear(self) -> None:
        self._nodes = {kind: [] for kind in BlockKind}
        self._changed()

    # ── Internals ──

    def _prepare_block(self, kind: BlockKind, block: Block) -> Block:
        block = block.model_copy(deep=True, update={"kind": kind})
        if kind is BlockKind.TRIGGER:
            block.job_ref = None
        elif kind is BlockKind.JOB:
            job_config, embedded = split_job_config(block.config)
            if embedded:
                logger.warning(
                    f"Dropping {len(embedded)} step(s) embedded in job '{block.name}'"
                )
            block.config = job_config
        return block

    def _attach_step(
        self, block: Block, parent_id: Optional[str]
    ) -> tuple[Block, Optional[str]]:
        if parent_id is not None:
            parent = self._job_node(parent_id)
            if parent is None:
                logger.warning(f"Step '{block.name}' references missing job {parent_id}; detached")
                return block, None
            block.job_ref = parent.block.job_ref
            return block, parent.id

        if block.job_ref:
            parent = self.find_job_by_ref(block.job_ref)
            if parent is not None:
                return block, parent.id
        return block, None

    def _job_node(self, node_id: str) -> Optional[VisualNode]:
        for job in self._nodes[BlockKind.JOB]:
            if job.id == node_id:
                return job
        return None

    @staticmethod
    def _renumber(collection: list[VisualNode]) -> None:
        for index, node in enumerate(collection):
            node.order = index

    def _rederive_job_ids(self) -> None:
        """Second phase of a structural job change: ids follow position."""
        for index, job in enumerate(self._nodes[BlockKind.JOB]):
            job.block.job_ref = default_job_id(index)
        for step in self._nodes[BlockKind.STEP]:
            parent = self._job_node(step.parent_id) if step.parent_id else None
            if parent is not None:
                step.block.job_ref = parent.block.job_ref

    def _repair_references(self) -> None:
        """Clear dangling parents. A detached step must not name a live job,
        or the assembled document would place it under that job."""
        job_ids = {job.id for job in self._nodes[BlockKind.JOB]}
        job_refs = {job.block.job_ref for job in self._nodes[BlockKind.JOB]}
        for step in self._nodes[BlockKind.STEP]:
            if step.parent_id is not None and step.parent_id not in job_ids:
                logger.warning(
                    f"Repaired dangling parent {step.parent_id} of step '{step.block.name}'"
                )
                step.parent_id = None
            if step.parent_id is None and step.block.job_ref in job_refs:
                logger.warning(
                    f"Detached step '{step.block.name}' no longer refers to job "
                    f"'{step.block.job_ref}'"
                )
                step.block.job_ref = ""

    def _changed(self) -> None:
        self._repair_references()
        self.notifier.schedule(self.to_blocks)
