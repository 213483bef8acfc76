import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Path, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .config import get_settings
from .editor.session import EditorSession
from .models import (
    BlocksResponse,
    DropRequest,
    DropResponse,
    HealthResponse,
    JobRenameRequest,
    MoveRequest,
    NodeUpdateRequest,
    PipelineDropRequest,
    SaveRequest,
    SaveResponse,
    SessionCreateRequest,
    SessionResponse,
    YamlLoadRequest,
    YamlResponse,
)
from .storage.schema import SavedPipeline
from .storage.store import SAFE_NAME, PipelineStore

load_dotenv()

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="BlockFlow API",
    description="Block-based visual editor for CI workflow configuration",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

pipeline_store = PipelineStore(settings.pipelines_dir)
sessions: dict[str, EditorSession] = {}


def _session(session_id: str) -> EditorSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _team(team: Optional[str]) -> str:
    return team or settings.default_team


def _nodes(session: EditorSession) -> list[dict]:
    return [view.model_dump(mode="json") for view in session.nodes()]


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok")


# --- Editing sessions ---

@app.post("/api/sessions", response_model=SessionResponse)
async def create_session(request: SessionCreateRequest | None = None):
    session = EditorSession()
    loaded = 0
    if request is not None and request.yaml is not None:
        result = session.load_yaml(request.yaml)
        if not result.success:
            raise HTTPException(status_code=400, detail=result.error)
        loaded = len(session.blocks())
    elif request is not None and request.document is not None:
        loaded = session.load_document(request.document)

    sessions[session.id] = session
    logger.info(f"Session created: {session.id} ({loaded} blocks)")
    return SessionResponse(id=session.id, loaded=loaded, nodes=_nodes(session))


@app.post("/api/sessions/{session_id}/reset")
async def reset_session(session_id: str):
    _session(session_id).reset()
    return {"status": "cleared", "session_id": session_id}


@app.delete("/api/sessions/{session_id}")
async def close_session(session_id: str):
    _session(session_id)
    del sessions[session_id]
    logger.info(f"Session closed: {session_id}")
    return {"status": "closed", "session_id": session_id}


@app.get("/api/sessions/{session_id}/nodes")
async def list_nodes(session_id: str):
    return _nodes(_session(session_id))


@app.post("/api/sessions/{session_id}/drop", response_model=DropResponse)
async def drop_block(session_id: str, request: DropRequest):
    session = _session(session_id)
    result = session.drop(request.block, request.target, request.job_id)
    if not result.accepted:
        raise HTTPException(status_code=422, detail=result.reason)
    return DropResponse(**result.model_dump())


@app.post("/api/sessions/{session_id}/pipeline-drop", response_model=list[DropResponse])
async def drop_pipeline(session_id: str, request: PipelineDropRequest):
    session = _session(session_id)
    results = session.drop_pipeline(request.blocks)
    return [DropResponse(**result.model_dump()) for result in results]


@app.patch("/api/sessions/{session_id}/nodes/{node_id}")
async def update_node(session_id: str, node_id: str, request: NodeUpdateRequest):
    session = _session(session_id)
    try:
        node = session.update_node(node_id, request.fields)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return node.model_dump(mode="json")


@app.post("/api/sessions/{session_id}/jobs/{node_id}/rename")
async def rename_job(session_id: str, node_id: str, request: JobRenameRequest):
    session = _session(session_id)
    if not session.rename_job(node_id, request.job_ref):
        raise HTTPException(status_code=404, detail="Job not found")
    return _nodes(session)


@app.post("/api/sessions/{session_id}/nodes/{node_id}/move")
async def move_node(session_id: str, node_id: str, request: MoveRequest):
    session = _session(session_id)
    if not session.move_node(node_id, request.index):
        raise HTTPException(status_code=404, detail="Node not found")
    return _nodes(session)


@app.delete("/api/sessions/{session_id}/nodes/{node_id}")
async def delete_node(session_id: str, node_id: str):
    session = _session(session_id)
    if not session.delete_node(node_id):
        raise HTTPException(status_code=404, detail="Node not found")
    return {"status": "deleted", "node_id": node_id}


@app.get("/api/sessions/{session_id}/nodes/{node_id}/summary")
async def node_summary(session_id: str, node_id: str):
    summary = _session(session_id).summary(node_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return summary.model_dump(mode="json")


@app.get("/api/sessions/{session_id}/nodes/{node_id}/yaml", response_model=YamlResponse)
async def node_yaml(session_id: str, node_id: str):
    text = _session(session_id).node_yaml(node_id)
    if text is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return YamlResponse(yaml=text)


@app.get("/api/sessions/{session_id}/blocks", response_model=BlocksResponse)
async def list_blocks(session_id: str):
    return BlocksResponse(blocks=_session(session_id).blocks())


@app.get("/api/sessions/{session_id}/document")
async def get_document(session_id: str, annotate: bool = False):
    return _session(session_id).document(annotate=annotate)


@app.get("/api/sessions/{session_id}/yaml", response_model=YamlResponse)
async def get_yaml(session_id: str, annotate: bool = False):
    return YamlResponse(yaml=_session(session_id).yaml(annotate=annotate))


@app.put("/api/sessions/{session_id}/yaml")
async def load_yaml(session_id: str, request: YamlLoadRequest):
    session = _session(session_id)
    result = session.load_yaml(request.yaml)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return _nodes(session)


@app.post("/api/sessions/{session_id}/save", response_model=SaveResponse)
async def save_session(session_id: str, request: SaveRequest):
    session = _session(session_id)
    pipeline_id = request.id or session.id
    team = _team(request.team)

    pipeline = SavedPipeline(
        id=pipeline_id,
        name=request.name,
        team=team,
        blocks=session.blocks(),
        version=pipeline_store.next_version(pipeline_id, team=team),
    )
    pipeline_store.save(pipeline)

    yaml_path = None
    if request.export_yaml:
        yaml_path = str(pipeline_store.export_yaml(pipeline_id, session.yaml(), team=team))
    return SaveResponse(id=pipeline_id, team=team, version=pipeline.version, yaml_path=yaml_path)


# --- Saved pipelines ---

@app.get("/api/pipelines")
async def list_pipelines(team: Optional[str] = Query(None, pattern=SAFE_NAME)):
    return [p.model_dump(mode="json") for p in pipeline_store.list_by_team(_team(team))]


@app.get("/api/pipelines/{pipeline_id}")
async def get_pipeline(
    pipeline_id: str = Path(..., pattern=SAFE_NAME),
    team: Optional[str] = Query(None, pattern=SAFE_NAME),
):
    pipeline = pipeline_store.load(pipeline_id, team=_team(team))
    if pipeline is None:
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return pipeline.model_dump(mode="json")


@app.post("/api/pipelines/{pipeline_id}/open", response_model=SessionResponse)
async def open_pipeline(
    pipeline_id: str = Path(..., pattern=SAFE_NAME),
    team: Optional[str] = Query(None, pattern=SAFE_NAME),
):
    pipeline = pipeline_store.load(pipeline_id, team=_team(team))
    if pipeline is None:
        raise HTTPException(status_code=404, detail="Pipeline not found")

    session = EditorSession()
    session.load_blocks(pipeline.blocks)
    sessions[session.id] = session
    return SessionResponse(id=session.id, loaded=len(pipeline.blocks), nodes=_nodes(session))


@app.delete("/api/pipelines/{pipeline_id}")
async def delete_pipeline(
    pipeline_id: str = Path(..., pattern=SAFE_NAME),
    team: Optional[str] = Query(None, pattern=SAFE_NAME),
):
    deleted = pipeline_store.delete(pipeline_id, team=_team(team))
    if not deleted:
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return {"status": "deleted", "pipeline_id": pipeline_id}
