import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from cron_engine.errors import HandlerError
from cron_engine.handlers.protocol import TaskHandler

logger = logging.getLogger(__name__)


class NoopConfig(BaseModel):
    pass


class NoopHandler(TaskHandler):
    """
    Does nothing; useful for wiring checks and health probes.
    """

    @staticmethod
    def task_identifier() -> str:
        return "noop"

    async def async_execute(self, config: Dict[str, Any]) -> Dict[str, Any]:
        return {"ok": True}


class CleanupConfig(BaseModel):
    directory: str = Field(..., description="Directory scanned recursively for stale files")
    max_age_days: int = Field(30, ge=0, description="Files last modified longer ago than this are deleted")
    keep: List[str] = Field(default=[], description="File names, relative to the directory, that are never deleted")


class CleanupOldFilesHandler(TaskHandler):
    @staticmethod
    def task_identifier() -> str:
        return "cleanup_old_files"

    async def async_execute(self, config: Dict[str, Any]) -> Dict[str, Any]:
        try:
            cleanup = CleanupConfig.model_validate(config)
        except ValueError as e:
            raise HandlerError(f"Invalid config: {str(e)}")
        return await asyncio.to_thread(self._cleanup, cleanup)

    def _cleanup(self, cleanup: CleanupConfig) -> Dict[str, Any]:
        root = Path(cleanup.directory)
        if not root.is_dir():
            return {"message": "Directory does not exist", "deleted_files": 0, "max_age_days": cleanup.max_age_days}

        cutoff = time.time() - cleanup.max_age_days * 24 * 60 * 60
        keep = set(cleanup.keep)
        deleted = 0
        failed: List[str] = []

        for path in root.rglob("*"):
            if not path.is_file():
                continue
            if path.relative_to(root).as_posix() in keep:
                continue
            if path.stat().st_mtime >= cutoff:
                continue
            try:
                path.unlink()
                deleted += 1
            except OSError as e:
                logger.error("Failed to delete file %s: %s", path, e)
                failed.append(str(path))

        if failed and not deleted:
            raise HandlerError(f"Failed to delete {len(failed)} file(s) under {root}")
        return {
            "message": "File cleanup completed",
            "deleted_files": deleted,
            "failed_files": failed,
            "max_age_days": cleanup.max_age_days,
        }
