"""File checkpoints taken before mutating tool calls."""

from codeloop.checkpoints.models import Checkpoint, CheckpointKind, FileSnapshot, RollbackResult
from codeloop.checkpoints.service import CheckpointService, SnapshotCheckpointService

__all__ = [
    "Checkpoint",
    "CheckpointKind",
    "CheckpointService",
    "FileSnapshot",
    "RollbackResult",
    "SnapshotCheckpointService",
]
