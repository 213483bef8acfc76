"""Conversion between node collections, block lists and workflow documents."""

from __future__ import annotations

from logging import getLogger
from typing import Any, Iterable

from .blocks import Block, BlockKind, VisualNode, default_job_id, split_job_config

logger = getLogger(__name__)

DEFAULT_TRIGGER_NAME = "Workflow Trigger"

# Block metadata carried by annotated documents (see assemble(annotate=True))
METADATA_KEYS = ("x_name", "x_description", "x_domain", "x_tags")


def to_blocks(nodes: Iterable[VisualNode]) -> list[Block]:
    """Flatten nodes into the ordered block list.

    Trigger first, then each job followed by its attached steps, then any
    step whose parent job no longer exists. Blocks are copies.
    """
    triggers, jobs, steps = _partition(nodes)

    blocks = [node.block.model_copy(deep=True) for node in triggers]
    attached: set[str] = set()
    for job in jobs:
        blocks.append(job.block.model_copy(deep=True))
        for step in steps:
            if step.parent_id == job.id:
                blocks.append(step.block.model_copy(deep=True))
                attached.add(step.id)

    blocks.extend(
        step.block.model_copy(deep=True) for step in steps if step.id not in attached
    )
    return blocks


def blocks_to_nodes(
    blocks: Iterable[Block],
) -> tuple[list[VisualNode], list[VisualNode], list[VisualNode]]:
    """Rebuild the three node collections from a block list.

    Steps link to the job whose ref matches their ``job_ref``; when two jobs
    share a ref the later one wins. Steps embedded in a job's config become
    step nodes of that job.
    """
    triggers: list[VisualNode] = []
    jobs: list[VisualNode] = []
    steps: list[VisualNode] = []
    job_node_by_ref: dict[str, str] = {}
    pending_steps: list[Block] = []

    for block in blocks:
        if block.kind is BlockKind.TRIGGER:
            if triggers:
                logger.warning(f"Dropping extra trigger block '{block.name}'")
                continue
            trigger = block.model_copy(deep=True, update={"job_ref": None})
            triggers.append(VisualNode(kind=BlockKind.TRIGGER, block=trigger, order=0))
        elif block.kind is BlockKind.JOB:
            job_config, embedded = split_job_config(block.config)
            job_ref = block.job_ref or _free_job_id(set(job_node_by_ref), len(jobs))
            job_block = block.model_copy(
                deep=True, update={"job_ref": job_ref, "config": job_config}
            )
            node = VisualNode(kind=BlockKind.JOB, block=job_block, order=len(jobs))
            jobs.append(node)
            job_node_by_ref[job_ref] = node.id
            pending_steps.extend(
                step_block_from_config(step, job_ref, index)
                for index, step in enumerate(embedded)
            )
        else:
            pending_steps.append(block)

    for block in pending_steps:
        parent_id = job_node_by_ref.get(block.job_ref) if block.job_ref else None
        steps.append(
            VisualNode(
                kind=BlockKind.STEP,
                block=block.model_copy(deep=True),
                order=len(steps),
                parent_id=parent_id,
            )
        )

    return triggers, jobs, steps


def from_document(doc: Any) -> list[Block]:
    """Read a workflow document back into an ordered block list.

    Parsing is liberal: a non-mapping document yields nothing, a
    non-mapping ``jobs`` is treated as empty, a missing ``steps`` yields no
    steps and non-mapping step entries are skipped.
    """
    if not isinstance(doc, dict):
        if doc is not None:
            logger.warning(f"Ignoring workflow document of type {type(doc).__name__}")
        return []

    tree = _as_tree(doc)
    blocks: list[Block] = []

    trigger_fields = {key: value for key, value in tree.items() if key != "jobs"}
    if trigger_fields:
        meta, config = _split_metadata(trigger_fields)
        name = meta.get("x_name") or _text(config.get("name")) or DEFAULT_TRIGGER_NAME
        blocks.append(_block(BlockKind.TRIGGER, name, None, config, meta))

    jobs = tree.get("jobs")
    if jobs is not None and not isinstance(jobs, dict):
        logger.warning("Workflow 'jobs' is not a mapping; treating it as empty")
    if not isinstance(jobs, dict):
        jobs = {}

    for job_ref, entry in jobs.items():
        meta, config = _split_metadata(entry if isinstance(entry, dict) else {})
        steps = config.pop("steps", None)
        name = meta.get("x_name") or job_ref or "job"
        blocks.append(_block(BlockKind.JOB, name, job_ref, config, meta))

        if not isinstance(steps, list):
            continue
        for index, step in enumerate(steps):
            if not isinstance(step, dict):
                logger.warning(f"Skipping non-mapping step #{index + 1} of job '{job_ref}'")
                continue
            blocks.append(step_block_from_config(step, job_ref, index))

    return blocks


def step_block_from_config(step: dict[str, Any], job_ref: str, index: int) -> Block:
    """Build a Step block from one entry of a job's ``steps`` sequence."""
    meta, config = _split_metadata(step)
    name = meta.get("x_name") or _text(config.get("name")) or f"Step {index + 1}"
    return _block(BlockKind.STEP, name, job_ref, config, meta)


def _block(
    kind: BlockKind,
    name: str,
    job_ref: str | None,
    config: dict[str, Any],
    meta: dict[str, Any],
) -> Block:
    return Block(
        name=name,
        kind=kind,
        description=meta.get("x_description"),
        job_ref=job_ref,
        domain=meta.get("x_domain"),
        tags=meta.get("x_tags", []),
        config=config,
    )


def _split_metadata(fields: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    meta: dict[str, Any] = {}
    config: dict[str, Any] = {}
    for key, value in fields.items():
        if key not in METADATA_KEYS:
            config[key] = value
        elif key == "x_tags":
            meta[key] = [str(tag) for tag in value] if isinstance(value, list) else []
        elif value is not None:
            meta[key] = _text(value)
    return meta, config


def _partition(
    nodes: Iterable[VisualNode],
) -> tuple[list[VisualNode], list[VisualNode], list[VisualNode]]:
    triggers: list[VisualNode] = []
    jobs: list[VisualNode] = []
    steps: list[VisualNode] = []
    for node in nodes:
        if node.kind is BlockKind.TRIGGER:
            triggers.append(node)
        elif node.kind is BlockKind.JOB:
            jobs.append(node)
        else:
            steps.append(node)

    def by_order(node: VisualNode) -> int:
        return node.order

    return sorted(triggers, key=by_order), sorted(jobs, key=by_order), sorted(steps, key=by_order)


def _free_job_id(taken: set[str], index: int) -> str:
    while default_job_id(index) in taken:
        index += 1
    return default_job_id(index)


def _as_tree(value: Any) -> Any:
    """Coerce a loaded value into a plain JSON-like tree with string keys."""
    if isinstance(value, dict):
        return {str(key): _as_tree(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_as_tree(item) for item in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)
