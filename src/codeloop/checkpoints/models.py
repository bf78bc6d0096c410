"""Data models for checkpoints."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CheckpointKind(str, Enum):
    """Why a checkpoint was taken."""

    USER_MESSAGE = "user_message"
    TOOL_EDIT = "tool_edit"


class FileSnapshot(BaseModel):
    """Pre-image of one file.

    ``content`` is None when the file did not exist, so rolling back
    deletes it.
    """

    path: str
    content: Optional[bytes] = None
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def existed(self) -> bool:
        return self.content is not None


class Checkpoint(BaseModel):
    id: str
    kind: CheckpointKind
    description: str
    snapshots: dict[str, FileSnapshot] = Field(default_factory=dict)
    message_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class RollbackResult(BaseModel):
    """Outcome of restoring a checkpoint."""

    success: bool
    restored_files: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
