"""Fold an ordered block list into one nested workflow document."""

from __future__ import annotations

from typing import Any, Iterable

from .blocks import Block, BlockKind, normalize_job_id


def job_id_for(block: Block) -> str:
    """The key a job block occupies under ``jobs``."""
    return block.job_ref or normalize_job_id(block.name)


def assemble(blocks: Iterable[Block], *, annotate: bool = False) -> dict[str, Any]:
    """Build the workflow document for ``blocks``.

    Trigger config fields go to the top level, each job lands under
    ``jobs[<job id>]`` (a later job with the same id overwrites an earlier
    one) and steps are appended to the job named by their ``job_ref``.
    Steps that reference no known job are left out.

    With ``annotate`` every object also carries the block's ``x_*``
    metadata and steps get no synthesized ``name``, so ``from_document``
    can rebuild the exact block list.
    """
    blocks = list(blocks)
    doc: dict[str, Any] = {}

    trigger = next((b for b in blocks if b.kind is BlockKind.TRIGGER), None)
    if trigger is not None:
        doc.update(trigger.config)
        if annotate:
            doc.update(_metadata(trigger))

    jobs: dict[str, dict[str, Any]] = {}
    for block in blocks:
        if block.kind is not BlockKind.JOB:
            continue
        job = dict(block.config)
        job.pop("steps", None)
        if annotate:
            job.update(_metadata(block))
        jobs[job_id_for(block)] = job

    for block in blocks:
        if block.kind is not BlockKind.STEP or not block.job_ref:
            continue
        job = jobs.get(block.job_ref)
        if job is None:
            continue
        job.setdefault("steps", []).append(_step_object(block, annotate))

    if jobs:
        doc["jobs"] = jobs
    return doc


def _step_object(block: Block, annotate: bool) -> dict[str, Any]:
    step: dict[str, Any] = {}
    if not annotate:
        step["name"] = block.config.get("name") or block.name
    elif "name" in block.config:
        step["name"] = block.config["name"]
    for key, value in block.config.items():
        if key != "name":
            step[key] = value
    if annotate:
        step.update(_metadata(block))
    return step


def _metadata(block: Block) -> dict[str, Any]:
    meta: dict[str, Any] = {"x_name": block.name}
    if block.description is not None:
        meta["x_description"] = block.description
    if block.domain is not None:
        meta["x_domain"] = block.domain
    if block.tags:
        meta["x_tags"] = list(block.tags)
    return meta
