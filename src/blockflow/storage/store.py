"""File based pipeline storage organized by team."""

import json
import re
from logging import getLogger
from pathlib import Path

from .schema import SavedPipeline

logger = getLogger(__name__)

# team folders and pipeline ids become path parts and glob patterns
SAFE_NAME = r"^[A-Za-z0-9_-]+$"
_SAFE_NAME = re.compile(SAFE_NAME)


class PipelineStore:
    """Stores saved block lists as versioned JSON files, organized by team."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def save(self, pipeline: SavedPipeline) -> str:
        """Save a pipeline version and return its ID."""
        _check_name("pipeline id", pipeline.id)
        team_dir = self._team_dir(pipeline.team)
        team_dir.mkdir(parents=True, exist_ok=True)

        filepath = team_dir / f"{pipeline.id}-v{pipeline.version}.json"
        filepath.write_text(pipeline.model_dump_json(indent=2), encoding="utf-8")
        logger.info(f"Pipeline saved: {pipeline.name} ({pipeline.id} v{pipeline.version})")
        return pipeline.id

    def load(self, pipeline_id: str, team: str = "default") -> SavedPipeline | None:
        """Load the latest version of a pipeline by ID."""
        team_dir = self._team_dir(team)
        if not team_dir.exists():
            return None

        versions = self._versions(team_dir, pipeline_id)
        if not versions:
            return None

        data = json.loads(versions[-1].read_text(encoding="utf-8"))
        return SavedPipeline.model_validate(data)

    def next_version(self, pipeline_id: str, team: str = "default") -> int:
        latest = self.load(pipeline_id, team=team)
        return 1 if latest is None else latest.version + 1

    def list_by_team(self, team: str) -> list[SavedPipeline]:
        """List the latest version of every pipeline of a team."""
        team_dir = self._team_dir(team)
        if not team_dir.exists():
            return []

        latest: dict[str, SavedPipeline] = {}
        for filepath in sorted(team_dir.glob("*.json")):
            try:
                pipeline = SavedPipeline.model_validate_json(filepath.read_text(encoding="utf-8"))
            except ValueError as e:
                logger.warning(f"Skipping malformed pipeline file {filepath.name}: {e}")
                continue
            current = latest.get(pipeline.id)
            if current is None or pipeline.version > current.version:
                latest[pipeline.id] = pipeline
        return sorted(latest.values(), key=lambda p: p.id)

    def delete(self, pipeline_id: str, team: str = "default") -> bool:
        """Delete all versions and exports of a pipeline. Returns True if any were deleted."""
        team_dir = self._team_dir(team)
        if not team_dir.exists():
            return False

        matches = self._versions(team_dir, pipeline_id)
        export = team_dir / f"{pipeline_id}.yaml"
        if export.exists():
            matches.append(export)
        for f in matches:
            f.unlink()
        if matches:
            logger.info(f"Pipeline deleted: {pipeline_id}")
        return len(matches) > 0

    def export_yaml(self, pipeline_id: str, text: str, team: str = "default") -> Path:
        """Write the rendered workflow text next to the pipeline's versions."""
        _check_name("pipeline id", pipeline_id)
        team_dir = self._team_dir(team)
        team_dir.mkdir(parents=True, exist_ok=True)

        filepath = team_dir / f"{pipeline_id}.yaml"
        filepath.write_text(text, encoding="utf-8")
        return filepath

    def _team_dir(self, team: str) -> Path:
        _check_name("team", team)
        return self.base_dir / team

    @staticmethod
    def _versions(team_dir: Path, pipeline_id: str) -> list[Path]:
        _check_name("pipeline id", pipeline_id)

        # numeric sort so v10 follows v9
        def version_of(path: Path) -> int:
            return int(path.stem.rsplit("-v", 1)[1])

        matches = [
            path
            for path in team_dir.glob(f"{pipeline_id}-v*.json")
            if path.stem.rsplit("-v", 1)[1].isdigit()
            and path.stem.rsplit("-v", 1)[0] == pipeline_id
        ]
        return sorted(matches, key=version_of)


def _check_name(kind: str, value: str) -> None:
    if not _SAFE_NAME.fullmatch(value):
        raise ValueError(f"Invalid {kind} '{value}': use letters, digits, '-' and '_'")
