"""
Asset Extractor - Blob Columns to Files

Writes file contents stored in source database columns (avatars,
attachments) to disk, optionally with a square thumbnail next to each one.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Optional, Union

from ..images import ImageResizer, PillowImageResizer
from ..types import BlobSummary, ExportIOError
from .serialize import decode_text
from .session import SessionController

logger = logging.getLogger(__name__)

THUMBNAIL_DEFAULT_SIZE = 50

# Full size and thumbnail siblings of an avatar path
PICTURE_PATH = ("/avat", "/pavat")
THUMBNAIL_PATH = ("/avat", "/navat")


def shard_attachment_path(path: str) -> str:
    """
    vBulletin attachment layout: split the user id segment one digit per directory.

    ``attachments/123/456.attach`` becomes ``attachments/1/2/3/456.attach``.
    Paths that are not vBulletin attachments are returned unchanged.
    """
    if path.find(".attach") <= 0 or "attachments/" not in path:
        return path

    parts = path.split("/")
    if len(parts) < 2:
        return path
    parts[1] = "/".join(parts[1])
    return "/".join(parts)


def _blob_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def _ensure_parent(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExportIOError(str(path.parent), f"Could not create directory ({e})")


class BlobExtractor:
    """Blob extraction bound to an export session."""

    def __init__(
        self,
        session: SessionController,
        resizer: Optional[ImageResizer] = None,
        base_dir: Optional[Path] = None,
    ):
        """
        Args:
            session: Session used for queries, comments and progress
            resizer: Thumbnail generator, Pillow by default
            base_dir: Directory relative blob paths are resolved against
        """
        self.session = session
        self.resizer = resizer or PillowImageResizer()
        self.base_dir = base_dir
        self.summaries: list[BlobSummary] = []

    def _target(self, path: str) -> Path:
        target = Path(path)
        if self.base_dir is not None and not target.is_absolute():
            target = Path(self.base_dir) / target
        return target

    def export_blobs(
        self,
        sql: str,
        blob_column: str,
        path_column: str,
        thumbnail: Union[bool, int, None] = None,
    ) -> int:
        """
        Write every blob returned by a query to its path.

        Args:
            sql: Statement returning the blob and path columns
            blob_column: Column with the file contents
            path_column: Column with the destination path
            thumbnail: Thumbnail size in pixels, True for the default of 50

        Returns:
            Number of blobs written

        Raises:
            ExportIOError: If a directory or blob file cannot be created
        """
        self.session.comment("Exporting blobs...")
        start = time.perf_counter()

        size = THUMBNAIL_DEFAULT_SIZE if thumbnail is True else (thumbnail or None)
        count = thumbnails = failed = 0

        for row in self.session.query(sql) or ():
            raw_path = row.get(path_column)
            if raw_path is None:
                logger.warning(f"Blob row without {path_column}, skipped")
                continue
            if isinstance(raw_path, bytes):
                raw_path = decode_text(raw_path)

            path = shard_attachment_path(str(raw_path))
            _ensure_parent(self._target(path))

            blob_path = self._target(path.replace(*PICTURE_PATH) if size else path)
            _ensure_parent(blob_path)
            try:
                with open(blob_path, "wb") as f:
                    f.write(_blob_bytes(row.get(blob_column)))
            except OSError as e:
                raise ExportIOError(str(blob_path), f"Could not open blob file ({e})")
            self.session.status(".")

            if size:
                thumb_path = self._target(path.replace(*THUMBNAIL_PATH))
                _ensure_parent(thumb_path)
                try:
                    self.resizer.resize_crop(blob_path, thumb_path, size, size)
                    thumbnails += 1
                except (OSError, ValueError) as e:
                    failed += 1
                    logger.warning(f"Could not generate a thumbnail for {blob_path}: {e}")

            count += 1

        self.session.status(f"{count} Blobs.\n")
        self.session.comment(f"{count} Blobs.", echo=False)

        self.summaries.append(BlobSummary(
            count=count,
            thumbnails=thumbnails,
            failed_thumbnails=failed,
            elapsed_s=time.perf_counter() - start,
        ))
        return count
