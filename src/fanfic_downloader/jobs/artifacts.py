"""Disk-backed artifact storage.

One file per completed job, named ``{job_id}.{extension}``, in a single
scratch directory.  Nothing else is persisted.  Deletes are idempotent so
that delete-on-read and the retention sweep can race without errors.
"""

from __future__ import annotations

from collections.abc import Container
from pathlib import Path

import structlog

from fanfic_downloader.core.exceptions import StorageError
from fanfic_downloader.jobs.models import DownloadResult, StoredArtifact

logger = structlog.get_logger(__name__)


class ArtifactStorage:
    """Writes, deletes and sweeps artifact files under *directory*."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def ensure_dir(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, job_id: str, extension: str) -> Path:
        return self.directory / f"{job_id}.{extension}"

    def write(self, job_id: str, result: DownloadResult) -> StoredArtifact:
        """Persist *result* for *job_id*.

        Raises:
            StorageError: If the file could not be written.
        """
        path = self.path_for(job_id, result.extension)
        try:
            self.ensure_dir()
            path.write_bytes(result.data)
        except OSError as exc:
            raise StorageError(f"Could not write artifact {path}: {exc}") from exc
        logger.info("artifact_saved", job_id=job_id, path=str(path), size_bytes=len(result.data))
        return StoredArtifact(
            path=path,
            content_type=result.content_type,
            size_bytes=len(result.data),
        )

    def delete(self, path: Path) -> bool:
        """Remove *path* if it exists.

        Returns:
            ``False`` only when the file exists but could not be removed; the
            failure is logged and the next sweep tries again.
        """
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("artifact_delete_failed", path=str(path), error=str(exc))
            return False
        logger.debug("artifact_deleted", path=str(path))
        return True

    def sweep_orphans(self, known_ids: Container[str]) -> int:
        """Delete every artifact whose job id is not in *known_ids*.

        Returns:
            Number of files removed.
        """
        if not self.directory.is_dir():
            return 0
        removed = 0
        for path in self.directory.iterdir():
            if not path.is_file() or path.stem in known_ids:
                continue
            if self.delete(path):
                removed += 1
        if removed:
            logger.info("orphan_artifacts_removed", count=removed, directory=str(self.directory))
        return removed
