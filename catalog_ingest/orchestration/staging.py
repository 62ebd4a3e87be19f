"""
Staging area for uploaded payloads.

Queued uploads are written to a directory shared between the process that
accepts the upload and the worker that consumes the job. The job message
carries only the staged file's path.
"""

import os
import tempfile
from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from catalog_ingest.observability.logger import get_logger

logger = get_logger(__name__)


class StagingArea:
    """
    Writes, opens and removes staged payloads under one directory.

    Payloads are written to a temporary name and renamed into place, so a
    consumer never sees a partially written file.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def ensure(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def stage(self, payload: bytes, filename: str | None = None) -> str:
        """
        Persist a payload.

        Args:
            payload: Raw upload bytes
            filename: Original file name, kept as a suffix for operators

        Returns:
            Reference (absolute path) to the staged payload

        Raises:
            OSError: If the payload could not be written
        """
        self.ensure()
        suffix = Path(filename).name if filename else "upload.csv"
        target = self.directory / f"{uuid4().hex}_{suffix}"

        fd, temp_path = tempfile.mkstemp(dir=self.directory, prefix=".staging-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(temp_path, target)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

        logger.info("Staged payload", extra={"ref": str(target), "bytes": len(payload)})
        return str(target.resolve())

    def exists(self, ref: str) -> bool:
        return Path(ref).is_file()

    def open(self, ref: str) -> BinaryIO:
        return open(ref, "rb")

    def delete(self, ref: str) -> bool:
        """Remove a staged payload; returns False if it was already gone."""
        try:
            Path(ref).unlink()
        except FileNotFoundError:
            return False
        logger.debug("Removed staged payload", extra={"ref": ref})
        return True
