from .assembler import assemble, job_id_for
from .blocks import Block, BlockKind, PresentationState, VisualNode, normalize_job_id
from .converter import blocks_to_nodes, from_document, to_blocks
from .nodes import NodeStore
from .notifier import ChangeNotifier
from .serializer import block_yaml, parse_yaml, serialize, workflow_yaml
from .session import EditorSession
from .validator import DropResult, DropTarget, DropValidator

__all__ = [
    "assemble",
    "job_id_for",
    "Block",
    "BlockKind",
    "PresentationState",
    "VisualNode",
    "normalize_job_id",
    "blocks_to_nodes",
    "from_document",
    "to_blocks",
    "NodeStore",
    "ChangeNotifier",
    "block_yaml",
    "parse_yaml",
    "serialize",
    "workflow_yaml",
    "EditorSession",
    "DropResult",
    "DropTarget",
    "DropValidator",
]
