"""Local staging of attachment bytes between download and upload."""

import os
import re
import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


class StagingArea:
    """
    Directory holding downloaded attachments until they are uploaded.

    Files are laid out as <root>/<record id>/<field>/<index>/<filename>
    so attachments of different records, fields or positions never
    share a path, and the staged file keeps its (sanitized) original
    name for the upload.
    """

    UNSAFE_CHARACTERS = re.compile(r"[^A-Za-z0-9._-]")
    FALLBACK_NAME = "attachment"

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    @classmethod
    def sanitize_filename(cls, name: str) -> str:
        """Replace anything outside [A-Za-z0-9._-] with an underscore."""
        safe = cls.UNSAFE_CHARACTERS.sub("_", name or "")
        if not safe.strip("."):
            return cls.FALLBACK_NAME
        return safe

    def path_for(self, record_id: str, field_name: str, index: int, filename: str) -> Path:
        """Staging path for one attachment."""
        return (
            self.root
            / self.sanitize_filename(record_id)
            / self.sanitize_filename(field_name)
            / str(index)
            / self.sanitize_filename(filename)
        )

    def stage(
        self,
        record_id: str,
        field_name: str,
        index: int,
        filename: str,
        content: bytes
    ) -> Path:
        """
        Write attachment bytes to the staging area.

        Raises:
            OSError: If the file could not be written or ended up empty
        """
        path = self.path_for(record_id, field_name, index, filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

        if path.stat().st_size == 0:
            self.discard(path)
            raise OSError(f"Staged file {path} is empty")

        logger.debug(f"Staged {len(content)} bytes at {path}")
        return path

    def discard(self, path: Path) -> None:
        """Delete a staged file and its empty parent directories. Never raises."""
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to delete staged file {path}: {e}")
            return

        parent = path.parent
        while parent != self.root and self.root in parent.parents:
            try:
                os.rmdir(parent)
            except OSError:
                break
            parent = parent.parent
