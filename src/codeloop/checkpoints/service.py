"""Checkpoint services.

The agent asks for a checkpoint before every mutating tool call that
targets a path, and never looks inside one afterwards.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from codeloop.checkpoints.models import Checkpoint, CheckpointKind, FileSnapshot, RollbackResult

logger = logging.getLogger(__name__)

# Upper bound on files captured when a whole folder is about to change
MAX_FILES_PER_CHECKPOINT = 500


class CheckpointService(ABC):
    """Creates and restores file pre-images."""

    @abstractmethod
    async def create_checkpoint(
        self,
        kind: CheckpointKind,
        description: str,
        affected_paths: Iterable[Path],
        message_id: Optional[str] = None,
    ) -> Checkpoint:
        pass

    @abstractmethod
    async def rollback_to(self, checkpoint_id: str) -> RollbackResult:
        pass


class SnapshotCheckpointService(CheckpointService):
    """Keeps snapshots in memory for the lifetime of the process."""

    def __init__(self) -> None:
        self._checkpoints: dict[str, Checkpoint] = {}
        self._order: list[str] = []

    @property
    def checkpoints(self) -> list[Checkpoint]:
        """Checkpoints in creation order."""
        return [self._checkpoints[cid] for cid in self._order]

    def get(self, checkpoint_id: str) -> Optional[Checkpoint]:
        return self._checkpoints.get(checkpoint_id)

    async def create_checkpoint(
        self,
        kind: CheckpointKind,
        description: str,
        affected_paths: Iterable[Path],
        message_id: Optional[str] = None,
    ) -> Checkpoint:
        """Capture the current content of every affected path.

        Folders are captured file by file. Paths that do not exist are
        recorded as such.
        """
        snapshots: dict[str, FileSnapshot] = {}
        for path in affected_paths:
            for file_path in self._expand(Path(path)):
                key = str(file_path)
                if key in snapshots:
                    continue
                snapshot = self._snapshot(file_path)
                if snapshot is not None:
                    snapshots[key] = snapshot

        checkpoint = Checkpoint(
            id=uuid.uuid4().hex,
            kind=kind,
            description=description,
            snapshots=snapshots,
            message_id=message_id,
        )
        self._checkpoints[checkpoint.id] = checkpoint
        self._order.append(checkpoint.id)
        logger.debug(f"Checkpoint {checkpoint.id[:8]}: {description} ({len(snapshots)} file(s))")
        return checkpoint

    async def rollback_to(self, checkpoint_id: str) -> RollbackResult:
        """Restore every file captured in a checkpoint.

        Files that did not exist when the checkpoint was taken are deleted.
        """
        checkpoint = self._checkpoints.get(checkpoint_id)
        if checkpoint is None:
            return RollbackResult(success=False, errors=[f"Checkpoint not found: {checkpoint_id}"])

        restored: list[str] = []
        errors: list[str] = []

        for key, snapshot in checkpoint.snapshots.items():
            path = Path(key)
            try:
                if snapshot.content is None:
                    if path.exists():
                        path.unlink()
                else:
                    path.parent.mkdir(parents=True, exist_ok=True)
                    path.write_bytes(snapshot.content)
                restored.append(key)
            except OSError as e:
                errors.append(f"{key}: {e}")

        if errors:
            logger.warning(f"Rollback of {checkpoint_id[:8]} had {len(errors)} error(s)")
        else:
            logger.info(f"Rolled back {len(restored)} file(s) to checkpoint {checkpoint_id[:8]}")

        return RollbackResult(success=not errors, restored_files=restored, errors=errors)

    @staticmethod
    def _expand(path: Path) -> list[Path]:
        if not path.is_dir():
            return [path]
        files = [p for p in sorted(path.rglob("*")) if p.is_file()]
        if len(files) > MAX_FILES_PER_CHECKPOINT:
            logger.warning(
                f"Checkpoint of {path} truncated to {MAX_FILES_PER_CHECKPOINT} of {len(files)} files"
            )
        return files[:MAX_FILES_PER_CHECKPOINT]

    @staticmethod
    def _snapshot(path: Path) -> Optional[FileSnapshot]:
        try:
            content = path.read_bytes() if path.is_file() else None
        except OSError as e:
            # Unreadable files are left out rather than recorded as missing
            logger.warning(f"Could not snapshot {path}: {e}")
            return None
        return FileSnapshot(path=str(path), content=content)
