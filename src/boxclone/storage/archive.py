"""Zip packaging of a directory subtree for bulk reads."""

import tempfile
import zipfile
from collections.abc import Iterator
from pathlib import Path
from typing import IO

import structlog

from boxclone.storage.walker import iter_tree

logger = structlog.get_logger()

ARCHIVE_MEDIA_TYPE = "application/zip"
ARCHIVE_FILENAME = "archive.zip"
ARCHIVE_REQUEST_TYPE = "application/x-gtar"

SPOOL_MAX_BYTES = 8 * 1024 * 1024  # 8MB in memory before spilling to disk
CHUNK_SIZE = 64 * 1024


def build_archive(directory: Path) -> IO[bytes]:
    """Package a directory subtree into a zip archive.

    Hidden entries are skipped. Empty directories are kept as explicit
    directory members so the tree shape survives extraction.

    Args:
        directory: Directory to package.

    Returns:
        Spooled temporary file positioned at the start of the archive.
        The caller owns it and must close it.

    Raises:
        OSError: If a file cannot be read or the archive cannot be written.
    """
    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES)
    members = 0
    try:
        with zipfile.ZipFile(spool, "w", zipfile.ZIP_DEFLATED) as zf:
            for entry in iter_tree(directory, include_hidden=False):
                arcname = entry.path.relative_to(directory).as_posix()
                if entry.is_dir:
                    zf.writestr(f"{arcname}/", b"")
                elif entry.path.is_file():
                    zf.write(entry.path, arcname)
                else:
                    continue
                members += 1
    except BaseException:
        spool.close()
        raise

    spool.seek(0)
    logger.debug("archive_built", directory=str(directory), members=members)
    return spool


def iter_chunks(stream: IO[bytes], chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Read a binary stream in chunks and close it when exhausted.

    Args:
        stream: Open binary stream.
        chunk_size: Maximum bytes per chunk.

    Yields:
        Consecutive chunks of the stream.
    """
    with stream:
        while chunk := stream.read(chunk_size):
            yield chunk
