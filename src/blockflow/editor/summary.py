"""At-a-glance summaries of trigger, job and step configs."""

from typing import Any

from pydantic import BaseModel

EVENT_LABELS = {
    "workflow_dispatch": "Manual",
    "push": "Push",
    "pull_request": "Pull Request",
    "schedule": "Schedule",
}


class TriggerSummary(BaseModel):
    workflow_name: str = ""
    events: list[str] = []
    branches: list[str] = []
    paths: list[str] = []


class JobSummary(BaseModel):
    runs_on: list[str] = []
    needs: list[str] = []
    timeout: list[str] = []
    conditions: list[str] = []


class StepSummary(BaseModel):
    uses: list[str] = []
    run: list[str] = []
    with_params: dict[str, Any] = {}


def summarize_trigger(config: dict[str, Any]) -> TriggerSummary:
    summary = TriggerSummary()
    if isinstance(config.get("name"), str):
        summary.workflow_name = config["name"]

    on = config.get("on")
    if not isinstance(on, dict):
        return summary

    summary.events = [EVENT_LABELS[event] for event in on if event in EVENT_LABELS]
    for event in ("push", "pull_request"):
        event_config = on.get(event)
        if not isinstance(event_config, dict):
            continue
        summary.branches.extend(_strings(event_config.get("branches")))
        summary.paths.extend(_strings(event_config.get("paths")))
    return summary


def summarize_job(config: dict[str, Any]) -> JobSummary:
    """Summarize a job config, including one still wrapped in ``jobs``."""
    summary = JobSummary()
    sources = []
    if isinstance(config.get("jobs"), dict):
        sources.extend(job for job in config["jobs"].values() if isinstance(job, dict))
    sources.append(config)

    for job in sources:
        if job.get("runs-on"):
            summary.runs_on.append(str(job["runs-on"]))
        summary.needs.extend(_strings(job.get("needs")))
        if job.get("timeout"):
            summary.timeout.append(str(job["timeout"]))
        if job.get("if"):
            summary.conditions.append(str(job["if"]))
    return summary


def summarize_step(config: dict[str, Any]) -> StepSummary:
    summary = StepSummary()
    sources = [config]
    if isinstance(config.get("steps"), list):
        sources.extend(step for step in config["steps"] if isinstance(step, dict))

    for step in sources:
        if step.get("uses"):
            summary.uses.append(str(step["uses"]))
        if step.get("run"):
            summary.run.append(str(step["run"]))
        if isinstance(step.get("with"), dict):
            summary.with_params.update(step["with"])
    return summary


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]
